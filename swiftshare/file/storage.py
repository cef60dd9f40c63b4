"""
Received File Storage

Design Decision: Write Strategy
===============================

Options Considered:
1. Write chunks to disk as they arrive
   - Lowest memory use
   - Leaves partial files behind on cancellation

2. Assemble in memory, write once at the end
   - Cancellation leaves nothing on disk
   - A failed write can be retried from the same buffer

Decision: Assemble in memory, then write atomically
- Write to a hidden .part file, then rename into place
- Never overwrite: name collisions resolve to name_1.ext, name_2.ext, ...
- OS errors are mapped to categories with user-facing text

Storage Layout:
```
<download_dir>/
└── SwiftShare/
    ├── photo.jpg
    ├── photo_1.jpg
    └── notes.txt
```
"""

import re
import errno
import logging
from pathlib import Path
from typing import Tuple
import aiofiles
import aiofiles.os

from ..errors import MaterializationError

logger = logging.getLogger(__name__)

APP_FOLDER = "SwiftShare"
DEFAULT_FILE_NAME = "received_file"

_INVALID_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
_WHITESPACE = re.compile(r'\s+')

# errno -> (category, user-facing message)
_ERROR_CATEGORIES = {
    errno.ENOENT: ('not_found', "Directory not found. Please check storage permissions."),
    errno.EEXIST: ('exists', "File already exists and could not be overwritten."),
    errno.EACCES: ('permission', "Permission denied. Please check storage permissions."),
    errno.EPERM: ('permission', "Permission denied. Please check storage permissions."),
    errno.ENOSPC: ('no_space', "Not enough storage space available."),
}


def sanitize_file_name(file_name: str) -> str:
    """Replace characters that are invalid in file names."""
    cleaned = _INVALID_CHARS.sub('_', file_name)
    cleaned = _WHITESPACE.sub(' ', cleaned).strip()
    # Names made only of dots would resolve to the directory itself
    if not cleaned.strip('.'):
        return DEFAULT_FILE_NAME
    return cleaned


def split_extension(file_name: str) -> Tuple[str, str]:
    """Split 'a.b.txt' into ('a.b', 'txt'); no dot means no extension."""
    if '.' in file_name:
        stem, _, extension = file_name.rpartition('.')
        if stem:
            return stem, extension
    return file_name, ''


def categorize_error(error: OSError) -> MaterializationError:
    """Map an OS error to a categorized MaterializationError."""
    category, message = _ERROR_CATEGORIES.get(
        error.errno, ('unknown', "Failed to save the received file.")
    )
    return MaterializationError(category, message, detail=str(error))


class FileMaterializer:
    """
    Persists fully received files.

    Provides:
    - File name sanitization
    - Unique name resolution (never overwrites)
    - Atomic write with post-write verification
    """

    def __init__(self, download_dir: Path):
        """
        Initialize the materializer.

        Args:
            download_dir: Base directory; files land in <download_dir>/SwiftShare
        """
        self.download_dir = Path(download_dir)
        self.target_dir = self.download_dir / APP_FOLDER

    async def exists(self, path: Path) -> bool:
        return await aiofiles.os.path.exists(path)

    async def unique_path(self, file_name: str) -> Path:
        """
        Resolve a path under the target directory that does not exist yet.

        'photo.jpg' -> 'photo.jpg', 'photo_1.jpg', 'photo_2.jpg', ...
        """
        sanitized = sanitize_file_name(file_name or DEFAULT_FILE_NAME)
        stem, extension = split_extension(sanitized)

        candidate = self.target_dir / sanitized
        counter = 0
        while await self.exists(candidate):
            counter += 1
            unique_name = f"{stem}_{counter}.{extension}" if extension else f"{stem}_{counter}"
            candidate = self.target_dir / unique_name

        return candidate

    async def write(self, file_name: str, data: bytes) -> Tuple[Path, int]:
        """
        Write a received file.

        Returns:
            (final_path, size_on_disk) tuple

        Raises:
            MaterializationError: categorized failure (permission, space, ...)
        """
        try:
            await aiofiles.os.makedirs(self.target_dir, exist_ok=True)
            output_path = await self.unique_path(file_name)

            # Write to temp file first
            temp_path = output_path.with_name(f".{output_path.name}.part")
            async with aiofiles.open(temp_path, 'wb') as f:
                await f.write(data)

            await aiofiles.os.rename(temp_path, output_path)

            # Verify file was written
            if not await self.exists(output_path):
                raise MaterializationError(
                    'unknown', "File was not created successfully."
                )
            stat = await aiofiles.os.stat(output_path)

        except OSError as e:
            logger.error(f"Error saving {file_name!r}: {e}")
            raise categorize_error(e) from e

        logger.info(f"Saved {output_path} ({stat.st_size:,} bytes)")
        return output_path, stat.st_size
