from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel

CommandType = Literal["next", "prev", "toggleShuffle", "setRepeat", "playSong"]


class Command(BaseModel):
    type: CommandType
    payload: Any = None
    # sender clock, ms since epoch
    timestamp: float = 0.0


class CommandRequest(BaseModel):
    type: CommandType
    payload: Any = None
