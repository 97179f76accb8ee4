from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel

BranchId = Literal["branch1", "branch2"]
DeviceMode = Literal["unset", "general", "branch1", "branch2"]
RepeatMode = Literal["off", "one", "all"]

BRANCHES: tuple[str, ...] = ("branch1", "branch2")
REPEAT_CYCLE: tuple[str, ...] = ("off", "one", "all")

FIXED_LABELS = {
    "branch1": "Branch 1 player",
    "branch2": "Branch 2 player",
}


def fixed_branch(mode: Optional[str]) -> Optional[str]:
    """Branch a device is pinned to, or None for unset/general devices."""
    if mode in BRANCHES:
        return mode
    return None


def next_repeat_mode(mode: str) -> str:
    idx = REPEAT_CYCLE.index(mode) if mode in REPEAT_CYCLE else 0
    return REPEAT_CYCLE[(idx + 1) % len(REPEAT_CYCLE)]


def status_label(mode: Optional[str], is_admin: bool, is_authenticated: bool) -> str:
    if not mode or mode == "unset":
        return "Device setup required"
    if mode in FIXED_LABELS:
        return FIXED_LABELS[mode]
    if is_admin:
        return "Admin mode"
    if is_authenticated:
        return "Listening mode"
    return "Signed out"


class AuthUser(BaseModel):
    uid: str = ""
    email: str = ""


def is_admin(user: Optional[AuthUser], admin_email: str) -> bool:
    if user is None or not admin_email:
        return False
    return user.email.lower() == admin_email.lower()
