"""
Shared Transfer State

Holds the two single-flight slots shared by the sender and receiver:
the outbound chunk set and the inbound chunk store. Owned by the node
and injected into both orchestrators.
"""

import logging
from typing import Optional, List, Set
from dataclasses import dataclass, field

from ..file.metadata import FileMetadata

logger = logging.getLogger(__name__)


@dataclass
class ChunkSet:
    """All chunks of the file currently being sent."""
    id: str
    chunks: List[bytes]
    # Indices already delivered at least once
    served: Set[int] = field(default_factory=set)

    @property
    def total_chunks(self) -> int:
        return len(self.chunks)

    def get_chunk(self, index: int) -> Optional[bytes]:
        if 0 <= index < len(self.chunks):
            return self.chunks[index]
        return None

    def mark_served(self, index: int) -> int:
        """
        Record a delivery of chunk index.

        Returns:
            Bytes newly sent (0 when the chunk was served before)
        """
        if index in self.served:
            return 0
        self.served.add(index)
        return len(self.chunks[index])


@dataclass
class ChunkStore:
    """Chunks of the file currently being received, filled progressively."""
    id: str
    total_chunks: int
    name: str
    size: int
    mime_type: str
    chunks: List[Optional[bytes]] = field(default_factory=list)
    # Highest chunk index requested from the sender so far
    last_requested: int = -1

    def __post_init__(self):
        if not self.chunks:
            self.chunks = [None] * self.total_chunks

    @classmethod
    def from_metadata(cls, metadata: FileMetadata) -> 'ChunkStore':
        return cls(
            id=metadata.id,
            total_chunks=metadata.total_chunks,
            name=metadata.name,
            size=metadata.size,
            mime_type=metadata.mime_type,
        )

    def store(self, index: int, data: bytes) -> int:
        """
        Store a chunk, replacing any earlier copy at the same index.

        Returns:
            Change in stored byte count (0 for an identical redelivery)
        """
        previous = self.chunks[index]
        self.chunks[index] = data
        return len(data) - (len(previous) if previous is not None else 0)

    @property
    def stored_count(self) -> int:
        return sum(1 for chunk in self.chunks if chunk is not None)

    @property
    def stored_bytes(self) -> int:
        return sum(len(chunk) for chunk in self.chunks if chunk is not None)

    @property
    def is_complete(self) -> bool:
        return self.stored_count == self.total_chunks

    def assemble(self) -> bytes:
        """Concatenate chunks 0..total_chunks-1 in index order."""
        if not self.is_complete:
            raise ValueError(
                f"Cannot assemble {self.name}: "
                f"{self.stored_count}/{self.total_chunks} chunks stored"
            )
        return b''.join(self.chunks)


class TransferState:
    """
    Single-flight slots for one connection.

    A send may start only when both slots are empty; a receive may
    start only when the inbound slot is empty. Rejections never mutate.
    """

    def __init__(self):
        self.outbound: Optional[ChunkSet] = None
        self.inbound: Optional[ChunkStore] = None

    @property
    def is_busy(self) -> bool:
        return self.outbound is not None or self.inbound is not None

    def begin_send(self, chunk_set: ChunkSet) -> bool:
        if self.is_busy:
            return False
        self.outbound = chunk_set
        return True

    def begin_receive(self, store: ChunkStore) -> bool:
        if self.inbound is not None:
            return False
        self.inbound = store
        return True

    def reset_outbound(self):
        self.outbound = None

    def reset_inbound(self):
        self.inbound = None

    def reset(self):
        self.outbound = None
        self.inbound = None
