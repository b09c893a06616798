"""Byte-range video streaming for local episode files and remote redirects"""

import logging
import os
import re
from pathlib import Path
from typing import Iterator, Optional, Tuple

from fastapi import status
from fastapi.responses import RedirectResponse, Response, StreamingResponse

logger = logging.getLogger(__name__)

VIDEO_MEDIA_TYPE = "video/mp4"
DEFAULT_CHUNK_SIZE = 1024 * 1024  # 1MB chunks

_BYTE_POS = re.compile(r"[0-9]+")


class StreamingError(Exception):
    """Base exception for video streaming errors"""
    pass


class ResourceNotFound(StreamingError):
    """The local video file does not exist"""
    pass


class MalformedRange(StreamingError):
    """Range header is present but cannot be parsed"""
    pass


class RangeNotSatisfiable(StreamingError):
    """Parsed range lies outside the file"""

    def __init__(self, message: str, file_size: int):
        super().__init__(message)
        self.file_size = file_size


def is_remote_source(source: str) -> bool:
    """Remote sources are absolute URLs; everything else is a local path."""
    return source.startswith("http")


def resolve_local_path(source: str, content_root: Path) -> Path:
    """
    Join a relative video source against the content root.

    Raises:
        ResourceNotFound: If the file is missing or escapes the content root
    """
    root = Path(content_root).resolve()
    path = (root / source.lstrip("/\\")).resolve()

    if root != path and root not in path.parents:
        raise ResourceNotFound(f"Video source outside content root: {source}")
    if not path.is_file():
        raise ResourceNotFound(f"Video file not found: {path}")

    return path


def _parse_byte_pos(value: str, label: str) -> int:
    value = value.strip()
    if not _BYTE_POS.fullmatch(value):
        raise MalformedRange(f"Invalid range {label}: {value!r}")
    return int(value, 10)


def get_range_header(range_header: str, file_size: int) -> Tuple[int, int]:
    """
    Parse a single ``bytes=<start>-[<end>]`` Range header.

    An omitted end means the last byte of the file; an end past the last
    byte is clamped to it.

    Returns:
        Inclusive (start, end) byte positions

    Raises:
        MalformedRange: Unit is not bytes, multiple ranges, or non-numeric parts
        RangeNotSatisfiable: start is past the end of the file or after end
    """
    unit, sep, intervals = range_header.strip().partition("=")
    if not sep or unit.strip().lower() != "bytes":
        raise MalformedRange(f"Unsupported range header: {range_header!r}")
    if "," in intervals:
        raise MalformedRange("Multiple ranges are not supported")
    if "-" not in intervals:
        raise MalformedRange(f"Invalid range format: {range_header!r}")

    start_str, end_str = intervals.split("-", 1)
    start = _parse_byte_pos(start_str, "start")

    if end_str.strip():
        end = min(_parse_byte_pos(end_str, "end"), file_size - 1)
    else:
        end = file_size - 1

    if start >= file_size or start > end:
        raise RangeNotSatisfiable(
            f"Requested range {start}-{end_str.strip()} not satisfiable for size {file_size}",
            file_size,
        )

    return start, end


def send_bytes_range_requests(
    file_path: Path, start: int, end: int, chunk_size: int = DEFAULT_CHUNK_SIZE
) -> Iterator[bytes]:
    """Yield chunks of data from file_path between start and end (inclusive)."""
    with open(file_path, "rb") as file_obj:
        file_obj.seek(start)
        remaining = end - start + 1
        while remaining > 0:
            try:
                data = file_obj.read(min(chunk_size, remaining))
            except OSError as e:
                logger.error(f"Read failed for {file_path} at byte {end + 1 - remaining}: {e}")
                raise
            if not data:
                logger.error(f"{file_path} ended {remaining} bytes short of range {start}-{end}")
                raise OSError(f"Unexpected end of file: {file_path}")
            remaining -= len(data)
            yield data


def video_stream_response(
    file_path: Path,
    range_header: Optional[str],
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> StreamingResponse:
    """
    Create a StreamingResponse for a local video with Range support.

    Without a Range header the whole file is sent with status 200; with one,
    exactly the requested window is sent with status 206.
    """
    file_size = os.path.getsize(file_path)

    if not range_header:
        headers = {
            "Content-Length": str(file_size),
            "Content-Type": VIDEO_MEDIA_TYPE,
        }
        return StreamingResponse(
            send_bytes_range_requests(file_path, 0, file_size - 1, chunk_size),
            status_code=status.HTTP_200_OK,
            headers=headers,
            media_type=VIDEO_MEDIA_TYPE,
        )

    start, end = get_range_header(range_header, file_size)

    headers = {
        "Content-Range": f"bytes {start}-{end}/{file_size}",
        "Accept-Ranges": "bytes",
        "Content-Length": str(end - start + 1),
        "Content-Type": VIDEO_MEDIA_TYPE,
    }

    return StreamingResponse(
        send_bytes_range_requests(file_path, start, end, chunk_size),
        status_code=status.HTTP_206_PARTIAL_CONTENT,
        headers=headers,
        media_type=VIDEO_MEDIA_TYPE,
    )


def serve_video_source(
    source: str,
    range_header: Optional[str],
    content_root: Path,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> Response:
    """
    Serve a resolved video source.

    Remote URLs are redirected without touching the disk. Local sources are
    resolved against content_root and streamed.

    Raises:
        ResourceNotFound: Local file missing
        MalformedRange: Unparseable Range header
        RangeNotSatisfiable: Range outside the file
    """
    if is_remote_source(source):
        logger.debug(f"Redirecting to remote source {source}")
        return RedirectResponse(source, status_code=status.HTTP_302_FOUND)

    file_path = resolve_local_path(source, content_root)
    return video_stream_response(file_path, range_header, chunk_size)
