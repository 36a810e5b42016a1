"""
Upload interceptor for the contact form.

Stores at most one uploaded file under the uploads directory before the
submission handler runs.

Storage naming: ``{milliseconds since epoch}{original extension}``, e.g.
``1718000000123.png``.  Files are created exclusively; when two uploads land
in the same millisecond the second one moves on to the next free millisecond
value instead of overwriting the first.

Size limit: the multipart parser spools the whole part before this module
sees it, so an oversized body is fully received before it is rejected.
The copy into the uploads dir goes in 1 MiB chunks, each write on the
thread pool, and stops (partial file removed) once the limit is crossed.
"""

import logging
import os
import time
from pathlib import Path
from typing import Optional

from fastapi import UploadFile
from fastapi.concurrency import run_in_threadpool

from app.models.submission import Attachment

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024  # 1 MiB
_MAX_NAME_ATTEMPTS = 1000


class UploadTooLargeError(Exception):
    """Raised when an uploaded file exceeds the configured size limit."""
    def __init__(self, limit_bytes: int):
        super().__init__(f"File too large (limit {limit_bytes} bytes)")
        self.limit_bytes = limit_bytes
        self.message = "File too large"


def ensure_upload_dir(upload_dir: Path) -> Path:
    """Create the uploads directory (and parents) if it does not exist."""
    upload_dir.mkdir(parents=True, exist_ok=True)
    return upload_dir


def _timestamp_ms() -> int:
    return time.time_ns() // 1_000_000


def _open_exclusive(upload_dir: Path, extension: str):
    """
    Create a new, empty file named ``{timestamp_ms}{extension}``.

    Returns ``(path, file_object)``. The timestamp is bumped by one
    millisecond on every collision.
    """
    stamp = _timestamp_ms()
    for _ in range(_MAX_NAME_ATTEMPTS):
        path = upload_dir / f"{stamp}{extension}"
        try:
            return path, path.open("xb")
        except FileExistsError:
            stamp += 1
    raise FileExistsError(f"Could not find a free upload name in {upload_dir}")


async def accept_upload(
    upload: Optional[UploadFile],
    upload_dir: Path,
    max_bytes: int,
) -> Optional[Attachment]:
    """
    Persist an uploaded file and describe it as an Attachment.

    Args:
        upload: The multipart file part, or None when the form carried none.
        upload_dir: Directory to store the file in (created if missing).
        max_bytes: Maximum accepted size in bytes.

    Returns:
        The stored Attachment, or None when no file was sent.

    Raises:
        UploadTooLargeError: if the file is larger than ``max_bytes``.
            Nothing is left on disk in that case.
    """
    if upload is None or not upload.filename:
        return None

    # The multipart parser has already spooled the part; its size is known
    if upload.size is not None and upload.size > max_bytes:
        raise UploadTooLargeError(max_bytes)

    ensure_upload_dir(upload_dir)
    extension = os.path.splitext(upload.filename)[1]
    path, fh = _open_exclusive(upload_dir, extension)

    size = 0
    try:
        with fh:
            while True:
                chunk = await upload.read(_CHUNK_SIZE)
                if not chunk:
                    break
                size += len(chunk)
                if size > max_bytes:
                    raise UploadTooLargeError(max_bytes)
                await run_in_threadpool(fh.write, chunk)
    except BaseException:
        discard(path)
        raise

    logger.info(f"Stored upload {upload.filename!r} as {path.name} ({size} bytes)")

    return Attachment(
        stored_path=path,
        filename=path.name,
        original_filename=upload.filename,
        original_extension=extension,
        size_bytes=size,
        content_type=upload.content_type,
    )


def discard(path: Path) -> bool:
    """
    Delete a stored upload.

    Returns True if a file was removed, False if it was already gone.
    """
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    logger.info(f"Removed upload {path.name}")
    return True
