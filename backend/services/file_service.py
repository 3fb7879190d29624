"""
File serving service.
Resolves stored files safely and reads byte ranges for video streaming.
"""

import logging
import re
from pathlib import Path
from typing import AsyncIterator, Tuple

import aiofiles

from utils.exceptions import ForbiddenError, NotFoundError, RangeNotSatisfiableError

logger = logging.getLogger(__name__)

_RANGE_RE = re.compile(r"^bytes=(\d*)-(\d*)$")

CHUNK_SIZE = 1024 * 1024  # 1MB


class FileService:
    """Service for serving files from the local upload directory."""

    MEDIA_TYPES = {
        '.webm': 'video/webm',
        '.mp4': 'video/mp4',
        '.jpg': 'image/jpeg',
        '.jpeg': 'image/jpeg',
        '.png': 'image/png',
    }

    def __init__(self, root: Path):
        self.root = Path(root)

    def resolve(self, relative_path: str) -> Path:
        """
        Map a request path onto a file under the upload root.

        Raises:
            ForbiddenError: If the path escapes the root
            NotFoundError: If no such file exists
        """
        root = self.root.resolve()
        file_path = (root / relative_path).resolve()

        if not file_path.is_relative_to(root):
            logger.warning(f"Rejected path outside upload root: {relative_path}")
            raise ForbiddenError()

        if not file_path.is_file():
            raise NotFoundError("File not found")
        return file_path

    def get_media_type(self, file_path: Path) -> str:
        return self.MEDIA_TYPES.get(file_path.suffix.lower(), 'application/octet-stream')

    def parse_range(self, range_header: str, size: int) -> Tuple[int, int]:
        """
        Parse a single ``bytes=`` range into inclusive (start, end) offsets.

        Supports ``a-b``, ``a-`` and suffix ``-n`` forms. The end is clamped
        to the last byte.

        Raises:
            RangeNotSatisfiableError: If the header is malformed or out of bounds
        """
        match = _RANGE_RE.match(range_header.strip())
        if not match or (not match.group(1) and not match.group(2)):
            raise RangeNotSatisfiableError(size)

        first, last = match.group(1), match.group(2)
        if not first:
            # Suffix range: last N bytes
            length = int(last)
            if length == 0 or size == 0:
                raise RangeNotSatisfiableError(size)
            return max(0, size - length), size - 1

        start = int(first)
        end = int(last) if last else size - 1
        if start >= size or end < start:
            raise RangeNotSatisfiableError(size)
        return start, min(end, size - 1)

    async def iter_range(self, file_path: Path, start: int, end: int) -> AsyncIterator[bytes]:
        """Yield bytes ``start`` through ``end`` inclusive, one chunk at a time."""
        remaining = end - start + 1
        async with aiofiles.open(file_path, 'rb') as f:
            await f.seek(start)
            while remaining > 0:
                chunk = await f.read(min(CHUNK_SIZE, remaining))
                if not chunk:
                    break
                remaining -= len(chunk)
                yield chunk
