from __future__ import annotations

import logging
import random
from typing import List, Optional

from branchplayer.models.device import REPEAT_CYCLE, next_repeat_mode
from branchplayer.models.playback import PlaybackState
from branchplayer.models.song import Song, index_of
from branchplayer.services.audio_cache import AudioCacheManager, LocalAudioHandle
from branchplayer.services.context import DeviceContext
from branchplayer.services.status_mirror import StatusMirror

log = logging.getLogger("player.queue")


def shuffled(songs: List[Song], rng: random.Random) -> List[Song]:
    """Fisher-Yates over a copy."""
    out = list(songs)
    for i in range(len(out) - 1, 0, -1):
        j = rng.randint(0, i)
        out[i], out[j] = out[j], out[i]
    return out


class PlaybackQueueEngine:
    """
    Current song, play queue, shuffle/repeat and the next/previous rules.

    Holds the device's single local playable handle.
    """

    def __init__(
        self,
        ctx: DeviceContext,
        cache: AudioCacheManager,
        mirror: StatusMirror,
        *,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.ctx = ctx
        self.cache = cache
        self.mirror = mirror
        self.rng = rng or random.Random()

        self._handle: Optional[LocalAudioHandle] = None
        # bumped on every load and reset; a load that sees a newer value was superseded
        self._load_seq = 0

    @property
    def pb(self) -> PlaybackState:
        return self.ctx.playback

    @property
    def handle(self) -> Optional[LocalAudioHandle]:
        return self._handle

    # =========================
    # RESOURCES
    # =========================

    def release_handle(self) -> None:
        if self._handle is not None:
            self._handle.release()
            self._handle = None

    def reset(self) -> None:
        """Drop all playback state (branch change, mode reset)."""
        self._load_seq += 1
        self.release_handle()
        self.pb.clear()

    def _changed(self) -> None:
        self.mirror.publish()
        self.ctx.emit("state", self.ctx.snapshot())

    # =========================
    # LOAD
    # =========================

    async def load_and_play(self, song: Optional[Song]) -> None:
        if song is None:
            return

        self.release_handle()
        self._load_seq += 1
        seq = self._load_seq

        data = await self.cache.get(song.id)
        if seq != self._load_seq:
            return

        handle: Optional[LocalAudioHandle] = None
        if data:
            handle = await self.cache.open_handle(song.id, data)
            if seq != self._load_seq:
                if handle is not None:
                    handle.release()
                return
        else:
            self.cache.schedule_download(song)

        if handle is not None:
            self._handle = handle
            self.pb.source = handle.url
            self.pb.is_local = True
        else:
            self.pb.source = song.src
            self.pb.is_local = False

        self.pb.current_song = song
        log.info(
            "song_loaded",
            extra={"songId": song.id, "local": self.pb.is_local, "branch": self.ctx.branch},
        )
        self._changed()

    # =========================
    # PLAYER API
    # =========================

    async def play(self, song: Song) -> None:
        if self.ctx.editing is not None:
            return

        songs = self.ctx.songs
        if self.pb.is_shuffle:
            others = [s for s in songs if s.id != song.id]
            self.pb.play_queue = [song, *shuffled(others, self.rng)]
            self.pb.current_queue_index = 0
        else:
            self.pb.play_queue = list(songs)
            self.pb.current_queue_index = index_of(songs, song.id)
        self.pb.current_list_index = index_of(songs, song.id)

        await self.load_and_play(song)

    async def play_next(self) -> None:
        queue = self.pb.play_queue
        if not queue:
            return
        idx = self.pb.current_queue_index + 1
        if idx >= len(queue):
            idx = 0
        await self._play_queue_index(idx)

    async def play_previous(self) -> None:
        queue = self.pb.play_queue
        if not queue:
            return
        idx = self.pb.current_queue_index - 1
        if idx < 0:
            idx = len(queue) - 1
        await self._play_queue_index(idx)

    async def _play_queue_index(self, idx: int) -> None:
        song = self.pb.play_queue[idx]
        self.pb.current_queue_index = idx
        # the list position, not the queue position; they differ under shuffle
        self.pb.current_list_index = index_of(self.ctx.songs, song.id)
        await self.load_and_play(song)

    def toggle_shuffle(self) -> None:
        self.pb.is_shuffle = not self.pb.is_shuffle
        songs = self.ctx.songs
        current = self.pb.current_song

        if self.pb.is_shuffle:
            if current is not None:
                others = [s for s in songs if s.id != current.id]
                self.pb.play_queue = [current, *shuffled(others, self.rng)]
            else:
                self.pb.play_queue = shuffled(songs, self.rng)
        else:
            self.pb.play_queue = list(songs)

        self.pb.current_queue_index = index_of(
            self.pb.play_queue, current.id if current else None
        )
        self._changed()

    def set_repeat_mode(self, mode: Optional[str] = None) -> str:
        if mode is None:
            mode = next_repeat_mode(self.pb.repeat_mode)
        if mode not in REPEAT_CYCLE:
            raise ValueError(f"invalid repeat mode: {mode!r}")
        self.pb.repeat_mode = mode
        self._changed()
        return mode

    def set_playing(self, is_playing: bool) -> None:
        if self.pb.is_playing == is_playing:
            return
        self.pb.is_playing = is_playing
        self._changed()

    async def on_song_ended(self) -> None:
        """The audio driver finished the current song."""
        mode = self.pb.repeat_mode
        if mode == "one" and self.pb.current_song is not None:
            await self.load_and_play(self.pb.current_song)
            return
        if mode == "off" and self.pb.current_queue_index >= len(self.pb.play_queue) - 1:
            self.set_playing(False)
            return
        await self.play_next()

    # =========================
    # LIBRARY EVENTS
    # =========================

    def reconcile_queue(self) -> None:
        """Re-derive the queue and both indices after the merged list changed."""
        songs = self.ctx.songs

        if not self.pb.is_shuffle:
            self.pb.play_queue = list(songs)
        else:
            by_id = {s.id: s for s in songs}
            kept = [by_id[s.id] for s in self.pb.play_queue if s.id in by_id]
            seen = {s.id for s in kept}
            fresh = [s for s in songs if s.id not in seen]
            self.pb.play_queue = kept + shuffled(fresh, self.rng)

        current = self.pb.current_song
        current_id = current.id if current else None
        if current is not None:
            # pick up metadata edits; the playable source stays as loaded
            fresh_current = next((s for s in songs if s.id == current_id), None)
            if fresh_current is not None:
                self.pb.current_song = fresh_current

        self.pb.current_queue_index = index_of(self.pb.play_queue, current_id)
        self.pb.current_list_index = index_of(songs, current_id)

    def remove_song(self, song_id: str) -> None:
        """
        Take a song being deleted out of playback.

        Indices are clamped right away so nothing points past the
        shortened queue.
        """
        removed_current = False
        if self.pb.current_song is not None and self.pb.current_song.id == song_id:
            self._load_seq += 1
            self.release_handle()
            self.pb.current_song = None
            self.pb.is_playing = False
            self.pb.source = ""
            self.pb.is_local = False
            removed_current = True

        self.pb.play_queue = [s for s in self.pb.play_queue if s.id != song_id]

        if removed_current:
            self.pb.current_queue_index = -1
            self.pb.current_list_index = -1
            self._changed()
        else:
            current = self.pb.current_song
            self.pb.current_queue_index = index_of(
                self.pb.play_queue, current.id if current else None
            )
