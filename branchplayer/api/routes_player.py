# branchplayer/api/routes_player.py
from __future__ import annotations

import os
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from branchplayer.api.deps import find_song, get_session
from branchplayer.api.routes_media import stream_file
from branchplayer.models.device import RepeatMode
from branchplayer.services.session import DeviceSession

router = APIRouter(prefix="/player", tags=["player"])


class RepeatRequest(BaseModel):
    # omitted -> advance off -> one -> all -> off
    mode: Optional[RepeatMode] = None


class PlaybackReport(BaseModel):
    isPlaying: bool


@router.get("")
async def get_player(session: DeviceSession = Depends(get_session)):
    return session.ctx.playback.to_dict()


# =====================================================
# PLAY SONG (from the list)
# =====================================================
@router.post("/play/{song_id}")
async def play(song_id: str, session: DeviceSession = Depends(get_session)):
    song = find_song(session.ctx, song_id)
    await session.queue.play(song)
    return session.ctx.playback.to_dict()


# =====================================================
# NEXT / PREVIOUS
# =====================================================
@router.post("/next")
async def play_next(session: DeviceSession = Depends(get_session)):
    await session.queue.play_next()
    return session.ctx.playback.to_dict()


@router.post("/prev")
async def play_previous(session: DeviceSession = Depends(get_session)):
    await session.queue.play_previous()
    return session.ctx.playback.to_dict()


# =====================================================
# SHUFFLE / REPEAT
# =====================================================
@router.post("/shuffle")
async def toggle_shuffle(session: DeviceSession = Depends(get_session)):
    session.queue.toggle_shuffle()
    return session.ctx.playback.to_dict()


@router.post("/repeat")
async def set_repeat(body: RepeatRequest, session: DeviceSession = Depends(get_session)):
    session.queue.set_repeat_mode(body.mode)
    return session.ctx.playback.to_dict()


# =====================================================
# AUDIO DRIVER REPORTS
# =====================================================
@router.post("/state")
async def report_state(body: PlaybackReport, session: DeviceSession = Depends(get_session)):
    session.queue.set_playing(body.isPlaying)
    return {"ok": True}


@router.post("/ended")
async def report_ended(session: DeviceSession = Depends(get_session)):
    await session.queue.on_song_ended()
    return session.ctx.playback.to_dict()


# =====================================================
# LOCAL AUDIO (cached copy of the current song)
# =====================================================
@router.get("/local-audio")
async def local_audio(
    request: Request,
    songId: Optional[str] = None,
    session: DeviceSession = Depends(get_session),
):
    handle = session.queue.handle
    if handle is None or handle.released or not os.path.isfile(handle.path):
        raise HTTPException(status_code=404, detail="No local audio for the current song")
    # a stale URL from the previous song must not play the new one
    if songId is not None and songId != handle.song_id:
        raise HTTPException(status_code=404, detail="No local audio for the current song")
    return stream_file(handle.path, request, content_type="audio/mpeg")
