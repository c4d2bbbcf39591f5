"""
Local filesystem storage for uploaded audio.

Stored names are ``<upload ms timestamp>-<sanitized original name>``, cut to
255 characters with the extension kept. Files are
created with exclusive-create so two uploads can never overwrite each other;
on a collision a random suffix is inserted after the timestamp.
"""

import logging
import os
import re
import secrets
import time
from pathlib import Path
from typing import Callable, Optional, Tuple

import aiofiles
import aiofiles.os
from aiofiles.threadpool.binary import AsyncBufferedIOBase

logger = logging.getLogger(__name__)

UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")
COLLISION_RETRIES = 5

# Per-component limit on common filesystems (ext4, APFS, NTFS)
MAX_STORED_NAME_LENGTH = 255


def sanitize_filename(original_name: str) -> str:
    """Replace every character outside ``[A-Za-z0-9._-]`` with ``_``."""
    return UNSAFE_CHARS.sub("_", original_name)


def build_stored_name(
    original_name: str,
    timestamp_ms: int,
    suffix: Optional[str] = None,
) -> str:
    prefix = f"{timestamp_ms}-{suffix}-" if suffix else f"{timestamp_ms}-"
    safe_name = _truncate_keeping_extension(
        sanitize_filename(original_name), MAX_STORED_NAME_LENGTH - len(prefix)
    )
    return prefix + safe_name


def _truncate_keeping_extension(name: str, max_length: int) -> str:
    if len(name) <= max_length:
        return name
    stem, extension = os.path.splitext(name)
    if not stem or len(extension) >= max_length:
        return name[:max_length]
    return stem[:max_length - len(extension)] + extension


def is_safe_filename(filename: str) -> bool:
    """A bare file name: no separators, NUL bytes or dot-only components."""
    if not filename or filename in (".", ".."):
        return False
    return not any(sep in filename for sep in ("/", "\\", "\x00"))


def resolve_stored_path(upload_dir: Path, filename: str) -> Optional[Path]:
    """
    Map a download file name to a path strictly inside ``upload_dir``.

    Returns None for names that could escape the storage root. Does not touch
    the filesystem.
    """
    if not is_safe_filename(filename):
        return None
    root = Path(os.path.abspath(upload_dir))
    candidate = Path(os.path.abspath(root / filename))
    if candidate.parent != root:
        return None
    return candidate


async def open_stored_file(
    upload_dir: Path,
    original_name: str,
    clock: Callable[[], float] = time.time,
) -> Tuple[str, Path, AsyncBufferedIOBase]:
    """
    Create the destination file for an upload.

    Returns (stored name, path, open async file handle). The caller owns the
    handle and must close it.
    """
    await aiofiles.os.makedirs(upload_dir, exist_ok=True)
    timestamp_ms = int(clock() * 1000)

    stored_name = build_stored_name(original_name, timestamp_ms)
    for _ in range(COLLISION_RETRIES):
        path = upload_dir / stored_name
        try:
            handle = await aiofiles.open(path, "xb")
            return stored_name, path, handle
        except FileExistsError:
            logger.warning(f"Stored name collision for {stored_name}, adding suffix")
            stored_name = build_stored_name(
                original_name, timestamp_ms, suffix=secrets.token_hex(4)
            )

    raise FileExistsError(f"Could not allocate a unique name for {original_name!r}")


async def remove_partial_file(path: Optional[Path]) -> None:
    if path is None:
        return
    try:
        await aiofiles.os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.error(f"Failed to remove partial upload {path.name}: {e}")
