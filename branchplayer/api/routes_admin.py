# branchplayer/api/routes_admin.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from branchplayer.api.deps import require_admin
from branchplayer.models.command import CommandRequest
from branchplayer.services.session import DeviceSession

router = APIRouter(prefix="/admin", tags=["admin"])


# =====================================================
# REMOTE COMMAND -> branch device
# =====================================================
@router.post("/commands/{branch_id}")
async def send_command(
    branch_id: str,
    body: CommandRequest,
    session: DeviceSession = Depends(require_admin),
):
    try:
        ok = await session.commands.send(branch_id, body.type, body.payload)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not ok:
        raise HTTPException(status_code=502, detail="Failed to send command")
    return {"ok": True}


# =====================================================
# MONITORING (status of every branch device)
# 👉 null = device not connected
# =====================================================
@router.get("/monitoring")
async def monitoring(session: DeviceSession = Depends(require_admin)):
    return session.ctx.monitoring
