# app/services/video_stream.py
from __future__ import annotations

"""
Byte-range video delivery.

- `parse_range_header("bytes=a-b" | "bytes=a-" | "bytes=-n", size)` → inclusive
  `ByteRange`, `None` when no header, `RangeNotSatisfiable` otherwise.
- `resolve_video_path(film_url)` maps a stored `/uploads/...` URL to a file
  under `MEDIA_ROOT`; anything escaping the root is treated as missing.
- `video_response(path, range_header)` → 200 full body, 206 partial, or 416.

Only the first range of a multi-range header is served.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

from fastapi import Response
from fastapi.responses import StreamingResponse

from app.core.config import settings
from app.core.exceptions import VideoAccessError

logger = logging.getLogger("video.stream")

VIDEO_MEDIA_TYPE = "video/mp4"
_UPLOADS_PREFIX = "/uploads/"


@dataclass(frozen=True)
class ByteRange:
    start: int
    end: int  # inclusive

    @property
    def length(self) -> int:
        return self.end - self.start + 1


class RangeNotSatisfiable(ValueError):
    def __init__(self, size: int) -> None:
        super().__init__(f"Range not satisfiable for size {size}")
        self.size = size


def parse_range_header(header: Optional[str], size: int) -> Optional[ByteRange]:
    if not header:
        return None

    unit, _, ranges = header.strip().partition("=")
    if unit.strip().lower() != "bytes" or not ranges.strip():
        raise RangeNotSatisfiable(size)

    first = ranges.split(",")[0].strip()
    start_s, sep, end_s = first.partition("-")
    if not sep:
        raise RangeNotSatisfiable(size)
    start_s, end_s = start_s.strip(), end_s.strip()

    try:
        if not start_s:
            suffix = int(end_s)
            if suffix <= 0:
                raise RangeNotSatisfiable(size)
            start, end = max(size - suffix, 0), size - 1
        else:
            start = int(start_s)
            end = int(end_s) if end_s else size - 1
    except ValueError as exc:
        raise RangeNotSatisfiable(size) from exc

    if size <= 0 or start < 0 or start >= size or end < start:
        raise RangeNotSatisfiable(size)
    return ByteRange(start=start, end=min(end, size - 1))


def resolve_video_path(film_url: Optional[str], media_root: Optional[str] = None) -> Path:
    if not film_url:
        raise VideoAccessError.video_not_found()

    relative = film_url[len(_UPLOADS_PREFIX):] if film_url.startswith(_UPLOADS_PREFIX) else film_url
    root = Path(media_root or settings.MEDIA_ROOT).resolve()
    candidate = (root / relative.lstrip("/")).resolve()

    if root != candidate and root not in candidate.parents:
        logger.warning("Rejected video path outside media root | film_url=%s", film_url)
        raise VideoAccessError.video_not_found()
    if not candidate.is_file():
        raise VideoAccessError.video_not_found()
    return candidate


def iter_file(path: Path, start: int, end: int, chunk_size: int) -> Iterator[bytes]:
    remaining = end - start + 1
    with path.open("rb") as fh:
        fh.seek(start)
        while remaining > 0:
            chunk = fh.read(min(chunk_size, remaining))
            if not chunk:
                break
            remaining -= len(chunk)
            yield chunk


def video_response(
    path: Path,
    range_header: Optional[str],
    *,
    chunk_size: int = settings.STREAM_CHUNK_SIZE,
) -> Response:
    size = path.stat().st_size
    headers = {"Accept-Ranges": "bytes", "Cache-Control": "no-cache"}

    try:
        byte_range = parse_range_header(range_header, size)
    except RangeNotSatisfiable:
        return Response(status_code=416, headers={"Content-Range": f"bytes */{size}", **headers})

    if byte_range is None:
        headers["Content-Length"] = str(size)
        return StreamingResponse(
            iter_file(path, 0, size - 1, chunk_size),
            status_code=200,
            media_type=VIDEO_MEDIA_TYPE,
            headers=headers,
        )

    headers["Content-Range"] = f"bytes {byte_range.start}-{byte_range.end}/{size}"
    headers["Content-Length"] = str(byte_range.length)
    return StreamingResponse(
        iter_file(path, byte_range.start, byte_range.end, chunk_size),
        status_code=206,
        media_type=VIDEO_MEDIA_TYPE,
        headers=headers,
    )


__all__ = [
    "ByteRange",
    "RangeNotSatisfiable",
    "parse_range_header",
    "resolve_video_path",
    "iter_file",
    "video_response",
]
