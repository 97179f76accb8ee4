from __future__ import annotations

import asyncio
import logging
import os
import sqlite3
import tempfile
from typing import Optional, Set
from urllib.parse import quote

import httpx

from branchplayer.models.song import Song
from branchplayer.state.local_store import LocalStore
from branchplayer.workers.background import BackgroundRunner

log = logging.getLogger("audio.cache")


class LocalAudioHandle:
    """
    Playable local copy of cached audio bytes.

    Backed by a temp file; `release()` removes it and is safe to call twice.
    """

    def __init__(self, song_id: str, path: str, url: str) -> None:
        self.song_id = song_id
        self.path = path
        # where the player UI fetches the bytes; the device serves the file
        self.url = url
        self.released = False

    def release(self) -> None:
        if self.released:
            return
        self.released = True
        try:
            os.unlink(self.path)
        except FileNotFoundError:
            pass
        except OSError:
            log.warning("audio_handle_release_failed", extra={"path": self.path})


def _write_temp(song_id: str, data: bytes) -> str:
    fd, path = tempfile.mkstemp(prefix=f"branchplayer-{song_id}-", suffix=".audio")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
    except BaseException:
        os.unlink(path)
        raise
    return path


class AudioCacheManager:
    """
    Cache-first audio source for the device.

    Every operation degrades to "play from network": faults are logged and
    turned into a miss or a no-op, never raised.
    """

    def __init__(
        self,
        local: LocalStore,
        runner: BackgroundRunner,
        *,
        http: Optional[httpx.AsyncClient] = None,
        timeout_s: float = 60.0,
        public_base_url: str = "",
    ) -> None:
        self.local = local
        self.runner = runner
        self._http = http
        self._timeout_s = timeout_s
        self._base_url = public_base_url.rstrip("/")

        # ids known to be cached, for the library view
        self.cached_ids: Set[str] = set()

    # =========================
    # STORE
    # =========================

    async def get(self, song_id: str) -> Optional[bytes]:
        try:
            return await asyncio.to_thread(self.local.get_audio, song_id)
        except (sqlite3.Error, OSError):
            log.exception("cache_read_error", extra={"songId": song_id})
            return None

    async def put(self, song_id: str, data: bytes) -> bool:
        try:
            await asyncio.to_thread(self.local.put_audio, song_id, data)
        except (sqlite3.Error, OSError):
            log.exception("cache_write_error", extra={"songId": song_id})
            return False
        self.cached_ids.add(song_id)
        return True

    async def remove(self, song_id: str) -> None:
        try:
            await asyncio.to_thread(self.local.delete_audio, song_id)
        except (sqlite3.Error, OSError):
            log.exception("cache_delete_error", extra={"songId": song_id})
        self.cached_ids.discard(song_id)

    async def list_cached_ids(self) -> Set[str]:
        try:
            return set(await asyncio.to_thread(self.local.audio_ids))
        except (sqlite3.Error, OSError):
            log.exception("cache_keys_read_error")
            return set()

    async def sync_cached_ids(self) -> Set[str]:
        self.cached_ids = await self.list_cached_ids()
        return self.cached_ids

    # =========================
    # HANDLES
    # =========================

    async def open_handle(self, song_id: str, data: bytes) -> Optional[LocalAudioHandle]:
        try:
            path = await asyncio.to_thread(_write_temp, song_id, data)
        except OSError:
            log.exception("audio_handle_create_failed", extra={"songId": song_id})
            return None
        return LocalAudioHandle(song_id, path, self.local_url(song_id))

    def local_url(self, song_id: str) -> str:
        return f"{self._base_url}/player/local-audio?songId={quote(song_id)}"

    # =========================
    # DOWNLOAD
    # =========================

    def schedule_download(self, song: Song) -> None:
        self.runner.spawn(self.download_and_cache(song), name=f"download:{song.id}")

    async def download_and_cache(self, song: Song) -> bool:
        if not song.src:
            return False
        try:
            data = await self._fetch(song.src)
        except httpx.HTTPError as e:
            log.warning(
                "audio_download_failed",
                extra={"songId": song.id, "title": song.title, "error": str(e)},
            )
            return False

        if data is None:
            return False

        stored = await self.put(song.id, data)
        if stored:
            log.info("audio_cached", extra={"songId": song.id, "bytes": len(data)})
        return stored

    async def _fetch(self, url: str) -> Optional[bytes]:
        if self._http is not None:
            return await self._fetch_with(self._http, url)
        async with httpx.AsyncClient(timeout=self._timeout_s, follow_redirects=True) as client:
            return await self._fetch_with(client, url)

    async def _fetch_with(self, client: httpx.AsyncClient, url: str) -> Optional[bytes]:
        r = await client.get(url)
        if r.status_code < 200 or r.status_code >= 300:
            log.warning("audio_download_bad_status", extra={"url": url, "status": r.status_code})
            return None
        return r.content
