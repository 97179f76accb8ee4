from __future__ import annotations

import logging
import os
from typing import Iterable, Optional, Tuple

from branchplayer.models.playback import EditState
from branchplayer.models.song import Song
from branchplayer.services.audio_cache import AudioCacheManager
from branchplayer.services.blob_storage import BlobStorageError, LocalBlobStorage
from branchplayer.services.context import DeviceContext
from branchplayer.services.playback_queue import PlaybackQueueEngine
from branchplayer.state.doc_paths import song_doc, songs_collection
from branchplayer.state.document_store import SERVER_TIMESTAMP, DocumentStoreError, now_ms

log = logging.getLogger("library.editor")


def parse_file_name(file_name: str) -> Tuple[str, str]:
    """`"Artist - Title.mp3"` -> ("Artist", "Title")"""
    base = os.path.splitext(file_name)[0]
    parts = base.split(" - ")
    artist = parts[0] or "Unknown"
    title = parts[1] if len(parts) > 1 and parts[1] else base
    return artist, title


class LibraryEditor:
    """Admin edits of the current branch's library."""

    def __init__(
        self,
        ctx: DeviceContext,
        queue: PlaybackQueueEngine,
        cache: AudioCacheManager,
        blobs: LocalBlobStorage,
    ) -> None:
        self.ctx = ctx
        self.queue = queue
        self.cache = cache
        self.blobs = blobs

    def _song_path(self, song: Song) -> str:
        return song_doc(self.ctx.branch or "", song.id, is_old=song.isOld)

    def _find(self, song_id: str) -> Optional[Song]:
        return next((s for s in self.ctx.songs if s.id == song_id), None)

    # =========================
    # EDIT
    # =========================

    def start_edit(self, song: Song) -> bool:
        if not self.ctx.is_admin:
            return False
        self.ctx.editing = EditState(song_id=song.id, title=song.title, artist=song.artist)
        self.ctx.emit("state", self.ctx.snapshot())
        return True

    def cancel_edit(self) -> None:
        if self.ctx.editing is None:
            return
        self.ctx.editing = None
        self.ctx.emit("state", self.ctx.snapshot())

    async def save_edit(self, song_id: str, title: str, artist: str) -> bool:
        editing = self.ctx.editing
        if not self.ctx.is_admin or editing is None or editing.song_id != song_id:
            return False

        title, artist = title.strip(), artist.strip()
        if not title or not artist:
            self.ctx.set_message("Title and artist cannot be empty")
            return False

        self.ctx.is_loading = True
        ok = False
        try:
            song = self._find(song_id)
            if song is None:
                raise DocumentStoreError(f"song not in library: {song_id}")
            await self.ctx.store.update(self._song_path(song), {"title": title, "artist": artist})
            ok = True
        except DocumentStoreError:
            log.exception("edit_failed", extra={"songId": song_id})
        finally:
            self.ctx.is_loading = False
            self.ctx.editing = None
            self.ctx.set_message("Edit saved" if ok else "Edit failed")
        return ok

    # =========================
    # REORDER
    # =========================

    async def move_song(self, index: int, direction: str) -> bool:
        if not self.ctx.is_admin or self.ctx.editing is not None or self.ctx.is_loading:
            return False
        if direction not in ("up", "down"):
            raise ValueError(f"invalid direction: {direction!r}")

        songs = self.ctx.songs
        target = index - 1 if direction == "up" else index + 1
        if index < 0 or index >= len(songs) or target < 0 or target >= len(songs):
            return False

        song_a, song_b = songs[index], songs[target]
        self.ctx.is_loading = True
        try:
            await self.ctx.store.update(self._song_path(song_a), {"order": song_b.order})
            await self.ctx.store.update(self._song_path(song_b), {"order": song_a.order})
        except DocumentStoreError:
            log.exception("move_failed", extra={"songId": song_a.id, "direction": direction})
            self.ctx.set_message("Reorder failed")
            return False
        finally:
            self.ctx.is_loading = False
        return True

    # =========================
    # DELETE
    # =========================

    async def delete_song(self, song: Song) -> bool:
        if not self.ctx.is_admin or self.ctx.editing is not None or self.ctx.is_loading:
            return False

        self.ctx.is_loading = True
        self.ctx.set_message(f"Deleting '{song.title}'...")
        try:
            # stop and release before the remote delete
            self.queue.remove_song(song.id)

            if song.src:
                try:
                    await self.blobs.delete(song.src)
                except BlobStorageError:
                    log.warning("blob_delete_failed", extra={"songId": song.id})

            await self.ctx.store.delete(self._song_path(song))
            await self.cache.remove(song.id)
        except DocumentStoreError:
            log.exception("delete_failed", extra={"songId": song.id})
            self.ctx.set_message("Delete failed")
            return False
        finally:
            self.ctx.is_loading = False

        self.ctx.set_message(f"Deleted '{song.title}'")
        return True

    # =========================
    # UPLOAD
    # =========================

    async def upload(self, files: Iterable[Tuple[str, bytes]]) -> Tuple[int, int]:
        files = list(files)
        if not files:
            return 0, 0
        if not self.ctx.is_admin:
            self.ctx.set_message("Upload not permitted")
            return 0, 0
        branch = self.ctx.branch
        if branch is None:
            self.ctx.set_message("No branch selected")
            return 0, 0

        success, failed = 0, 0
        self.ctx.is_loading = True
        try:
            for n, (file_name, data) in enumerate(files, start=1):
                self.ctx.set_message(f"({n}/{len(files)}) processing '{file_name}'...")
                artist, title = parse_file_name(file_name)
                try:
                    url = await self.blobs.upload(file_name, data)
                    await self.ctx.store.add(
                        songs_collection(branch),
                        {
                            "title": title,
                            "artist": artist,
                            "album": " ",
                            "src": url,
                            "fileName": file_name,
                            "createdAt": SERVER_TIMESTAMP,
                            "order": now_ms(),
                        },
                    )
                    success += 1
                except (BlobStorageError, DocumentStoreError):
                    log.exception("upload_failed", extra={"fileName": file_name})
                    failed += 1
        finally:
            self.ctx.is_loading = False
            self.ctx.set_message(f"Upload done: {success} ok, {failed} failed")
        return success, failed
