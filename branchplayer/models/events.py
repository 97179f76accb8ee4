from __future__ import annotations

from pydantic import BaseModel
from typing import Literal, Any, Dict


EventType = Literal[
    "state",
    "library",
    "command",
    "monitoring",
    "notice",
]


class WsEvent(BaseModel):
    type: EventType
    data: Dict[str, Any]


# audio driver -> device
class DriverMessage(BaseModel):
    type: Literal["playback", "ended"]
    data: Dict[str, Any] = {}
