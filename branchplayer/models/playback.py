from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from branchplayer.models.song import Song


@dataclass
class PlaybackState:
    current_song: Optional[Song] = None
    is_playing: bool = False
    is_shuffle: bool = False
    repeat_mode: str = "off"
    play_queue: List[Song] = field(default_factory=list)
    current_queue_index: int = -1
    current_list_index: int = -1

    # what the audio driver should load for current_song
    source: str = ""
    is_local: bool = False

    def clear(self) -> None:
        # shuffle and repeat are listener preferences and survive a clear
        self.current_song = None
        self.is_playing = False
        self.play_queue = []
        self.current_queue_index = -1
        self.current_list_index = -1
        self.source = ""
        self.is_local = False

    def to_dict(self) -> dict:
        return {
            "currentSong": self.current_song.model_dump() if self.current_song else None,
            "isPlaying": self.is_playing,
            "isShuffle": self.is_shuffle,
            "repeatMode": self.repeat_mode,
            "playQueue": [s.id for s in self.play_queue],
            "currentQueueIndex": self.current_queue_index,
            "currentListIndex": self.current_list_index,
            "source": self.source,
            "isLocal": self.is_local,
        }


@dataclass
class EditState:
    song_id: str
    title: str = ""
    artist: str = ""
