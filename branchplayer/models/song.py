# branchplayer/models/song.py
from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel


class Song(BaseModel):
    # ids
    id: str

    # display
    title: str = ""
    artist: str = ""
    album: str = " "

    # remote download URL
    src: str = ""

    # sort key; assigned at creation, swapped by reorders
    order: float = 0.0

    # read from the legacy top-level `songs` collection
    isOld: bool = False

    fileName: str = ""
    createdAt: Optional[Any] = None

    @classmethod
    def from_doc(cls, doc_id: str, data: dict, *, is_old: bool = False) -> "Song":
        fields = dict(data or {})
        fields["id"] = doc_id
        fields["isOld"] = is_old
        if fields.get("order") is None:
            fields["order"] = 0.0
        return cls.model_validate(fields)


class SongRef(BaseModel):
    """Projection of a song published in status snapshots."""

    id: str
    title: str = ""
    artist: str = ""
    isOld: bool = False

    @classmethod
    def of(cls, song: Song) -> "SongRef":
        return cls(id=song.id, title=song.title, artist=song.artist, isOld=bool(song.isOld))


def merge_songs(branch_songs: List[Song], legacy_songs: List[Song]) -> List[Song]:
    """
    Concatenate both sources and stable-sort by `order`.

    Equal orders keep arrival order: branch songs first, then legacy songs,
    each in the order its source delivered them.
    """
    combined = [*branch_songs, *legacy_songs]
    combined.sort(key=lambda s: s.order or 0)
    return combined


def index_of(songs: List[Song], song_id: Optional[str]) -> int:
    if song_id is None:
        return -1
    for i, s in enumerate(songs):
        if s.id == song_id:
            return i
    return -1
