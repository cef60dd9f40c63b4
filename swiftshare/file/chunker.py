"""
File Chunker

Design Decision: Chunk Size
===========================

Options Considered:
| Size    | Pros                          | Cons                           |
|---------|-------------------------------|--------------------------------|
| 16KB    | Tiny memory footprint         | Many round trips per file      |
| 64KB    | Small in-flight buffer        | One round trip per 64KB        |
| 256KB   | Fewer round trips             | ~350KB frames after base64     |
| 1MB     | Lowest overhead               | Large frames on slow devices   |

Decision: 64KB (65,536 bytes)
- Transfers are stop-and-wait: exactly one chunk is in flight, so the
  chunk size bounds memory use on the receiving device
- A base64-encoded chunk still fits comfortably in one frame

Chunking Strategy: Fixed-Size
- Chunk i covers bytes [i * CHUNK_SIZE, (i + 1) * CHUNK_SIZE)
- Only the last chunk may be shorter
"""

from pathlib import Path
from typing import List, Tuple, AsyncIterator
import aiofiles

# Chunk size: 64KB
CHUNK_SIZE = 64 * 1024  # 65,536 bytes


class FileChunker:
    """
    Splits file contents into fixed-size chunks.

    The sender keeps the whole chunk list in memory for the
    duration of a transfer, so reads are done once up front.
    """

    def __init__(self, chunk_size: int = CHUNK_SIZE):
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        self.chunk_size = chunk_size

    def get_chunk_count(self, file_size: int) -> int:
        """Calculate number of chunks for a file of given size."""
        return (file_size + self.chunk_size - 1) // self.chunk_size

    def get_chunk_bounds(self, chunk_index: int, file_size: int) -> Tuple[int, int]:
        """
        Get byte range for a specific chunk.

        Returns:
            (start_offset, length) tuple
        """
        start = chunk_index * self.chunk_size
        length = min(self.chunk_size, file_size - start)
        return start, length

    def split(self, data: bytes) -> List[bytes]:
        """Partition in-memory bytes into chunks."""
        return [
            data[offset:offset + self.chunk_size]
            for offset in range(0, len(data), self.chunk_size)
        ]

    async def chunk_file(self, file_path: Path) -> AsyncIterator[Tuple[int, bytes]]:
        """
        Split a file into chunks.

        Yields:
            (chunk_index, chunk_data) tuples
        """
        async with aiofiles.open(file_path, 'rb') as f:
            chunk_index = 0
            while True:
                chunk_data = await f.read(self.chunk_size)
                if not chunk_data:
                    break
                yield chunk_index, chunk_data
                chunk_index += 1

    async def read_chunks(self, file_path: Path) -> List[bytes]:
        """Read a whole file as a list of chunks."""
        return [data async for _, data in self.chunk_file(Path(file_path))]


def join_chunks(chunks: List[bytes]) -> bytes:
    """Concatenate chunks back into the original bytes."""
    return b''.join(chunks)
