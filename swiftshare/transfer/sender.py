"""
File Sender

Design Decision: Push vs. Pull
==============================

Options Considered:
1. Sender pushes every chunk back to back
   - Highest throughput
   - Receiver must buffer whatever arrives; no backpressure

2. Receiver pulls one chunk at a time (stop-and-wait)
   - Exactly one chunk in flight, memory bounded on both sides
   - One round trip per chunk

Decision: Receiver-driven pull
- Sender announces the file (file_ack) and then only answers
  send_chunk_ack requests
- Requests for a transfer that has completed or been cancelled are
  ignored, so a request already in flight when cancel fires is harmless

Send Flow:
1. initiate_send(): read + chunk the file, occupy the outbound slot
2. Send file_ack{file}
3. For each send_chunk_ack{chunkNo}: reply receive_chunk_ack{chunk, chunkNo}
4. After the last chunk: mark the record available, free the slot
"""

import base64
import logging
from pathlib import Path
from typing import Optional, List
from dataclasses import dataclass
import aiofiles.os

from .protocol import ControlMessage
from .records import TransferLog, TransferRecord, Direction
from .session import ConnectionSession
from .state import TransferState, ChunkSet
from ..file.chunker import FileChunker, CHUNK_SIZE
from ..file.metadata import create_metadata
from ..notify import Notifier
from ..utils import format_size, chunk_progress

logger = logging.getLogger(__name__)


@dataclass
class SizeLimits:
    """File size thresholds (bytes)."""
    max_size: int = 100 * 1024 * 1024
    recommended_size: int = 50 * 1024 * 1024
    warning_size: int = 25 * 1024 * 1024


class FileSender:
    """
    Serves the chunks of one outgoing file at a time.

    Registered on the session for send_chunk_ack messages.
    """

    def __init__(self, session: ConnectionSession, state: TransferState,
                 records: TransferLog, notifier: Notifier,
                 chunk_size: int = CHUNK_SIZE,
                 limits: Optional[SizeLimits] = None):
        self.session = session
        self.state = state
        self.records = records
        self.notifier = notifier
        self.chunker = FileChunker(chunk_size)
        self.limits = limits or SizeLimits()

        # Statistics
        self.files_sent = 0
        self.chunks_served = 0

    # === Starting a transfer ===

    async def initiate_send(self, file_path: Path, name: Optional[str] = None,
                            mime_type: str = '') -> bool:
        """
        Start sending a file from disk.

        Returns:
            True if the transfer was accepted and announced to the peer
        """
        if not self._can_start():
            return False

        file_path = Path(file_path)
        try:
            stat = await aiofiles.os.stat(file_path)
            if not self.check_file_size(stat.st_size):
                return False
            chunks = await self.chunker.read_chunks(file_path)
        except OSError as e:
            logger.error(f"Error preparing {file_path}: {e}")
            self.notifier.error(
                'Error', 'Failed to prepare file for transfer. Please try again.'
            )
            return False

        return await self._start(chunks, name or file_path.name, mime_type,
                                 path=str(file_path))

    async def initiate_send_bytes(self, data: bytes, name: str,
                                  mime_type: str = '') -> bool:
        """Start sending in-memory contents under the given file name."""
        if not self._can_start():
            return False
        if not self.check_file_size(len(data)):
            return False
        return await self._start(self.chunker.split(data), name, mime_type)

    def check_file_size(self, size: int) -> bool:
        """Apply the size policy; only files over max_size are refused."""
        limits = self.limits
        if size > limits.max_size:
            self.notifier.warning(
                'File Too Large',
                f"The selected file ({format_size(size)}) exceeds the maximum "
                f"transfer limit of {format_size(limits.max_size)}.\n\n"
                f"Please select a smaller file."
            )
            return False

        if size > limits.recommended_size:
            self.notifier.warning(
                'Large File Warning',
                f"The selected file ({format_size(size)}) is quite large. "
                f"Transfer may take longer and could fail on unstable connections."
            )
        elif size > limits.warning_size:
            self.notifier.info(
                'File Size Notice',
                f"File size: {format_size(size)}. This file is moderately large."
            )
        return True

    def _can_start(self) -> bool:
        if self.state.is_busy:
            self.notifier.warning(
                'Transfer in Progress',
                'Please wait for the current transfer to complete before sending another file.'
            )
            return False

        if not self.session.is_connected:
            self.notifier.warning(
                'Connection Error',
                'Not connected to any device. Please establish a connection first.'
            )
            return False

        return True

    async def _start(self, chunks: List[bytes], name: str, mime_type: str,
                     path: Optional[str] = None) -> bool:
        size = sum(len(chunk) for chunk in chunks)
        metadata = create_metadata(name, size, mime_type, self.chunker.chunk_size)
        chunk_set = ChunkSet(id=metadata.id, chunks=chunks)

        # The file read may have yielded to another send; re-check atomically
        if not self.state.begin_send(chunk_set):
            self.notifier.warning(
                'Transfer in Progress',
                'Please wait for the current transfer to complete before sending another file.'
            )
            return False

        self.records.add(TransferRecord.from_metadata(
            metadata, Direction.SENT,
            progress=0.0, transferring=True, path=path,
        ))
        self.records.set_progress(0.0)

        try:
            await self.session.send(ControlMessage.file_ack(metadata.to_dict()))
        except (ConnectionError, OSError) as e:
            self._abort(chunk_set, 'Failed to start file transfer.', e)
            return False

        logger.info(f"Starting transfer: {name} ({format_size(size)}, "
                    f"{chunk_set.total_chunks} chunks)")

        if chunk_set.total_chunks == 0:
            self._complete(chunk_set)
        return True

    # === Serving chunks ===

    async def handle_send_chunk_ack(self, message: ControlMessage):
        """Answer a chunk request from the receiver."""
        chunk_set = self.state.outbound
        if chunk_set is None:
            logger.debug("Transfer cancelled or no chunks to send")
            return

        chunk_no = message.chunk_no
        chunk = chunk_set.get_chunk(chunk_no)
        if chunk is None:
            logger.error(f"Chunk not found: {chunk_no} (of {chunk_set.total_chunks})")
            return

        try:
            await self.session.send(ControlMessage.receive_chunk_ack(
                base64.b64encode(chunk).decode('ascii'), chunk_no
            ))
        except (ConnectionError, OSError) as e:
            self._abort(chunk_set, 'Failed to send file chunk. Transfer cancelled.', e)
            return

        # Cancelled while the chunk was being written
        if self.state.outbound is not chunk_set:
            return

        self.chunks_served += 1
        self.records.total_sent_bytes += chunk_set.mark_served(chunk_no)

        progress = chunk_progress(chunk_no, chunk_set.total_chunks)
        record = self.records.get(Direction.SENT, chunk_set.id)
        if record is not None and not record.cancelled:
            progress = max(progress, record.progress)
            self.records.update(Direction.SENT, chunk_set.id,
                                progress=progress, transferring=True)
        self.records.set_progress(progress)

        logger.debug(f"Served chunk {chunk_no + 1}/{chunk_set.total_chunks} "
                     f"({len(chunk)} bytes)")

        if chunk_no + 1 >= chunk_set.total_chunks:
            self._complete(chunk_set)

    def _complete(self, chunk_set: ChunkSet):
        logger.info("All chunks sent successfully")
        record = self.records.update(Direction.SENT, chunk_set.id,
                                     available=True, progress=100.0, transferring=False)
        if self.state.outbound is chunk_set:
            self.state.reset_outbound()
        self.records.finish()
        self.files_sent += 1

        if record is not None:
            self.notifier.info('Transfer Complete',
                               f'File "{record.name}" has been sent successfully.',
                               file_id=record.id)

    # === Cancellation / failure ===

    async def cancel_transfer(self) -> bool:
        """
        Cancel the current transfer from this side.

        Notifies the peer (best effort) and marks the outbound record
        cancelled, keeping its progress.

        Returns:
            True if an outbound transfer was cancelled
        """
        if self.session.is_connected:
            try:
                await self.session.send(ControlMessage.cancel_transfer())
            except (ConnectionError, OSError) as e:
                logger.warning(f"Error sending cancel: {e}")

        return self.abort_cancelled()

    def abort_cancelled(self) -> bool:
        """Apply a cancellation to the outbound transfer, if any."""
        chunk_set = self.state.outbound
        if chunk_set is None:
            return False

        self.records.update(Direction.SENT, chunk_set.id,
                            cancelled=True, transferring=False, available=False)
        self.state.reset_outbound()
        self.records.finish()
        logger.info(f"Outbound transfer {chunk_set.id} cancelled")
        return True

    def _abort(self, chunk_set: ChunkSet, message: str, error: Exception):
        logger.error(f"{message} ({error!r})")
        self.records.update(Direction.SENT, chunk_set.id,
                            transferring=False, error=message)
        if self.state.outbound is chunk_set:
            self.state.reset_outbound()
        self.records.finish()
        self.notifier.error('Transfer Error', message, file_id=chunk_set.id)

    def get_stats(self) -> dict:
        """Get sender statistics."""
        return {
            'files_sent': self.files_sent,
            'chunks_served': self.chunks_served,
            'bytes_sent': self.records.total_sent_bytes,
            'active': self.state.outbound is not None,
        }
