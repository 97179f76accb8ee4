from __future__ import annotations

import asyncio
import logging
import os
import re
import time
from pathlib import Path
from urllib.parse import quote, unquote, urlparse

log = logging.getLogger("blob.storage")

_UNSAFE = re.compile(r"[^A-Za-z0-9._ -]+")


class BlobStorageError(Exception):
    pass


def safe_file_name(file_name: str) -> str:
    name = os.path.basename(file_name.replace("\\", "/"))
    name = _UNSAFE.sub("_", name).strip().replace("..", "_")
    return name or "audio"


class LocalBlobStorage:
    """
    Uploaded audio under `media_dir`, served by GET /media/{filename}.

    The returned URL is what songs keep in `src`.
    """

    def __init__(self, media_dir: str, public_base_url: str) -> None:
        self.media_dir = Path(media_dir)
        self.public_base_url = public_base_url.rstrip("/")

    def url_for(self, name: str) -> str:
        return f"{self.public_base_url}/media/{quote(name)}"

    def name_from_url(self, url: str) -> str:
        path = unquote(urlparse(url).path)
        if "/media/" not in path:
            raise BlobStorageError(f"not a media url: {url}")
        return path.rsplit("/media/", 1)[1]

    async def upload(self, file_name: str, data: bytes) -> str:
        name = f"{int(time.time() * 1000)}_{safe_file_name(file_name)}"
        target = self.media_dir / name

        def _write() -> None:
            self.media_dir.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise BlobStorageError(f"upload failed: {file_name}") from e

        log.info("blob_uploaded", extra={"blob": name, "bytes": len(data)})
        return self.url_for(name)

    async def delete(self, url: str) -> None:
        name = self.name_from_url(url)
        if "/" in name or "\\" in name or ".." in name:
            raise BlobStorageError(f"invalid blob name: {name}")
        try:
            await asyncio.to_thread((self.media_dir / name).unlink)
        except OSError as e:
            raise BlobStorageError(f"delete failed: {name}") from e
