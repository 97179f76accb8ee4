from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel

from branchplayer.models.device import RepeatMode
from branchplayer.models.song import SongRef


class StatusSnapshot(BaseModel):
    isPlaying: bool = False
    isShuffle: bool = False
    repeatMode: RepeatMode = "off"
    currentSong: Optional[SongRef] = None
    updatedAt: Optional[Any] = None
