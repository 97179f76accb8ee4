# branchplayer/api/routes_library.py
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pydantic import BaseModel

from branchplayer.api.deps import find_song, get_session, require_admin
from branchplayer.services.session import DeviceSession

router = APIRouter(prefix="/library", tags=["library"])


class EditRequest(BaseModel):
    title: str
    artist: str


# =====================================================
# LIST LIBRARY
# =====================================================
@router.get("")
async def list_library(session: DeviceSession = Depends(get_session)):
    ctx = session.ctx
    return {
        "branch": ctx.branch,
        "songs": [
            {**s.model_dump(), "cached": s.id in session.cache.cached_ids}
            for s in ctx.songs
        ],
    }


# =====================================================
# EDIT
# =====================================================
@router.post("/edit/{song_id}")
async def start_edit(song_id: str, session: DeviceSession = Depends(require_admin)):
    song = find_song(session.ctx, song_id)
    session.editor.start_edit(song)
    return {"ok": True, "editingSongId": song_id}


@router.delete("/edit")
async def cancel_edit(session: DeviceSession = Depends(require_admin)):
    session.editor.cancel_edit()
    return {"ok": True}


@router.put("/edit/{song_id}")
async def save_edit(song_id: str, body: EditRequest, session: DeviceSession = Depends(require_admin)):
    ok = await session.editor.save_edit(song_id, body.title, body.artist)
    return {"ok": ok, "statusMessage": session.ctx.status_message}


# =====================================================
# MOVE (swap order with the neighbour)
# =====================================================
@router.post("/move/{index}/{direction}")
async def move_song(index: int, direction: str, session: DeviceSession = Depends(require_admin)):
    try:
        ok = await session.editor.move_song(index, direction)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"ok": ok}


# =====================================================
# DELETE
# =====================================================
@router.delete("/songs/{song_id}")
async def delete_song(song_id: str, session: DeviceSession = Depends(require_admin)):
    song = find_song(session.ctx, song_id)
    ok = await session.editor.delete_song(song)
    return {"ok": ok, "statusMessage": session.ctx.status_message}


# =====================================================
# UPLOAD
# =====================================================
@router.post("/upload")
async def upload(
    files: List[UploadFile] = File(...),
    session: DeviceSession = Depends(require_admin),
):
    payload = [(f.filename or "audio", await f.read()) for f in files]
    success, failed = await session.editor.upload(payload)
    return {"ok": failed == 0, "success": success, "failed": failed}
