"""
Transfer Records

Per-file history of sends and receives plus the connection-wide
counters shown to the user (bytes moved, current progress).
"""

import logging
import dataclasses
from enum import Enum
from typing import Optional, List, Callable
from dataclasses import dataclass

from ..file.metadata import FileMetadata

logger = logging.getLogger(__name__)


class Direction(Enum):
    SENT = "sent"
    RECEIVED = "received"


@dataclass(frozen=True)
class TransferRecord:
    """State of one file transfer as shown to the user."""
    id: str
    name: str
    size: int
    direction: Direction
    mime_type: str = ''
    total_chunks: int = 0
    progress: float = 0.0
    transferring: bool = False
    available: bool = False
    cancelled: bool = False
    path: Optional[str] = None
    actual_size: Optional[int] = None
    error: Optional[str] = None

    @classmethod
    def from_metadata(cls, metadata: FileMetadata, direction: Direction,
                      **kwargs) -> 'TransferRecord':
        return cls(
            id=metadata.id,
            name=metadata.name,
            size=metadata.size,
            direction=direction,
            mime_type=metadata.mime_type,
            total_chunks=metadata.total_chunks,
            **kwargs,
        )

    @property
    def is_finished(self) -> bool:
        """Completed, cancelled, or aborted."""
        return not self.transferring and (
            self.available or self.cancelled or self.error is not None
        )

    def to_dict(self) -> dict:
        data = dataclasses.asdict(self)
        data['direction'] = self.direction.value
        return data


# Change callback type
RecordCallback = Callable[[TransferRecord], None]


class TransferLog:
    """
    Sent/received records and counters for the current connection.

    Records are immutable; updates replace the record with a changed
    copy located by id.
    """

    def __init__(self):
        self.sent_files: List[TransferRecord] = []
        self.received_files: List[TransferRecord] = []
        self.total_sent_bytes = 0
        self.total_received_bytes = 0
        self.is_transferring = False
        self.transfer_progress = 0.0
        self._callbacks: List[RecordCallback] = []

    def on_change(self, callback: RecordCallback):
        """Register a callback fired after every record add/update."""
        self._callbacks.append(callback)

    def remove_callback(self, callback: RecordCallback):
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _records(self, direction: Direction) -> List[TransferRecord]:
        return self.sent_files if direction == Direction.SENT else self.received_files

    def _notify(self, record: TransferRecord):
        for callback in list(self._callbacks):
            try:
                callback(record)
            except Exception as e:
                logger.error(f"Record callback failed: {e}", exc_info=True)

    def add(self, record: TransferRecord) -> TransferRecord:
        self._records(record.direction).append(record)
        self._notify(record)
        return record

    def get(self, direction: Direction, record_id: str) -> Optional[TransferRecord]:
        for record in self._records(direction):
            if record.id == record_id:
                return record
        return None

    def update(self, direction: Direction, record_id: str,
               **changes) -> Optional[TransferRecord]:
        """Replace the record with the given id by an updated copy."""
        records = self._records(direction)
        for index, record in enumerate(records):
            if record.id == record_id:
                updated = dataclasses.replace(record, **changes)
                records[index] = updated
                self._notify(updated)
                return updated
        return None

    def set_progress(self, progress: float):
        self.is_transferring = True
        self.transfer_progress = progress

    def finish(self):
        """Clear the connection-wide in-progress flags."""
        self.is_transferring = False
        self.transfer_progress = 0.0

    def reset(self):
        self.sent_files = []
        self.received_files = []
        self.total_sent_bytes = 0
        self.total_received_bytes = 0
        self.finish()

    def get_stats(self) -> dict:
        return {
            'total_sent_bytes': self.total_sent_bytes,
            'total_received_bytes': self.total_received_bytes,
            'is_transferring': self.is_transferring,
            'transfer_progress': self.transfer_progress,
            'sent_files': len(self.sent_files),
            'received_files': len(self.received_files),
        }
