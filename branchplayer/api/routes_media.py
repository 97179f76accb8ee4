from __future__ import annotations

import os
import mimetypes
from typing import Iterator, Optional, Tuple

from fastapi import APIRouter, Depends, Request, HTTPException
from starlette.responses import StreamingResponse, Response

from branchplayer.api.deps import get_session
from branchplayer.services.session import DeviceSession

router = APIRouter(tags=["media"])

CHUNK_SIZE = 1024 * 256


def _file_iterator(path: str, start: int, end: int) -> Iterator[bytes]:
    with open(path, "rb") as f:
        f.seek(start)
        remaining = end - start + 1
        while remaining > 0:
            chunk = f.read(min(CHUNK_SIZE, remaining))
            if not chunk:
                break
            remaining -= len(chunk)
            yield chunk


def parse_byte_range(header: str, size: int) -> Optional[Tuple[int, int]]:
    """
    Single `bytes=` range -> inclusive (start, end), or None if unsatisfiable.

    Accepts `a-b`, `a-` and the suffix form `-n` (last n bytes), which
    audio elements send when seeking near the end.
    """
    unit, _, ranges = header.partition("=")
    if unit.strip() != "bytes" or "," in ranges:
        return None

    first, sep, last = ranges.strip().partition("-")
    if not sep or size <= 0:
        return None
    try:
        if not first:
            suffix = int(last)
            if suffix <= 0:
                return None
            return max(size - suffix, 0), size - 1
        start = int(first)
        end = int(last) if last else size - 1
    except ValueError:
        return None

    if start < 0 or start > end or start >= size:
        return None
    return start, min(end, size - 1)


def stream_file(path: str, request: Request, content_type: Optional[str] = None) -> Response:
    size = os.path.getsize(path)
    media_type = content_type or mimetypes.guess_type(path)[0] or "application/octet-stream"

    header = request.headers.get("range")
    if not header:
        return StreamingResponse(
            _file_iterator(path, 0, size - 1),
            media_type=media_type,
            headers={"Accept-Ranges": "bytes", "Content-Length": str(size)},
        )

    byte_range = parse_byte_range(header, size)
    if byte_range is None:
        return Response(status_code=416, headers={"Content-Range": f"bytes */{size}"})

    start, end = byte_range
    return StreamingResponse(
        _file_iterator(path, start, end),
        status_code=206,
        media_type=media_type,
        headers={
            "Content-Range": f"bytes {start}-{end}/{size}",
            "Accept-Ranges": "bytes",
            "Content-Length": str(end - start + 1),
        },
    )


# =====================================================
# UPLOADED AUDIO
# 👉 what songs point to in `src`
# =====================================================
@router.get("/media/{filename}")
async def stream_media(
    filename: str,
    request: Request,
    session: DeviceSession = Depends(get_session),
):
    if "/" in filename or "\\" in filename or ".." in filename:
        raise HTTPException(status_code=400, detail="invalid filename")

    path = os.path.join(session.editor.blobs.media_dir, filename)
    if not os.path.isfile(path):
        raise HTTPException(status_code=404, detail="media not found")

    return stream_file(path, request)
