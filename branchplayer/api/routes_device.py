# branchplayer/api/routes_device.py
from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from branchplayer.api.deps import get_session
from branchplayer.models.device import AuthUser
from branchplayer.services.session import DeviceSession

router = APIRouter(tags=["device"])


class ModeRequest(BaseModel):
    mode: Literal["general", "branch1", "branch2"]


# =====================================================
# DEVICE STATE
# =====================================================
@router.get("/device")
async def get_device(session: DeviceSession = Depends(get_session)):
    return session.ctx.snapshot()


# =====================================================
# SET MODE (persisted)
# =====================================================
@router.post("/device/mode")
async def set_mode(body: ModeRequest, session: DeviceSession = Depends(get_session)):
    await session.controller.set_mode(body.mode)
    return session.ctx.snapshot()


# =====================================================
# RESET MODE
# =====================================================
@router.post("/device/reset")
async def reset_mode(session: DeviceSession = Depends(get_session)):
    await session.controller.reset_mode()
    return session.ctx.snapshot()


# =====================================================
# SWITCH BRANCH
# 👉 fixed devices keep their branch; the request is ignored
# =====================================================
@router.post("/device/branch/{branch_id}")
async def switch_branch(branch_id: str, session: DeviceSession = Depends(get_session)):
    try:
        switched = session.controller.switch_branch(branch_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"ok": True, "switched": switched, "branch": session.ctx.branch}


# =====================================================
# AUTH SESSION
# 👉 sign-in itself happens at the auth provider; the UI reports the result
# =====================================================
@router.post("/auth/session")
async def sign_in(user: AuthUser, session: DeviceSession = Depends(get_session)):
    if session.ctx.is_loading or session.ctx.editing is not None:
        raise HTTPException(status_code=409, detail="Busy")
    session.controller.set_user(user)
    return session.ctx.snapshot()


@router.delete("/auth/session")
async def sign_out(session: DeviceSession = Depends(get_session)):
    if session.ctx.is_loading or session.ctx.editing is not None:
        raise HTTPException(status_code=409, detail="Busy")
    session.controller.set_user(None)
    return session.ctx.snapshot()
