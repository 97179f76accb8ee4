from __future__ import annotations

from fastapi import HTTPException, Request, WebSocket

from branchplayer.services.context import DeviceContext
from branchplayer.services.session import DeviceSession
from branchplayer.ws.manager import WebSocketManager


# =========================
# DEVICE SESSION
# =========================

def get_session(request: Request) -> DeviceSession:
    session = getattr(request.app.state, "session", None)
    if session is None:
        raise HTTPException(status_code=500, detail="Device session not initialized")
    return session


def get_session_ws(websocket: WebSocket) -> DeviceSession:
    return websocket.app.state.session


def require_admin(request: Request) -> DeviceSession:
    session = get_session(request)
    if not session.ctx.is_admin:
        raise HTTPException(status_code=403, detail="Admin only")
    return session


def find_song(ctx: DeviceContext, song_id: str):
    song = next((s for s in ctx.songs if s.id == song_id), None)
    if song is None:
        raise HTTPException(status_code=404, detail="Song not found")
    return song


# =========================
# WS MANAGER
# =========================

def get_ws_manager_ws(websocket: WebSocket) -> WebSocketManager:
    return websocket.app.state.ws_manager
