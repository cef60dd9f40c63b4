"""
File Receiver

Design Decision: Receive Strategy
=================================

Options Considered:
1. Request all chunks up front, reorder on arrival
   - Fast on good links
   - Unbounded buffering, reordering logic needed

2. Request chunk k+1 only after chunk k is stored (stop-and-wait)
   - Strictly increasing delivery order, no reordering
   - At most one 64KB chunk in flight

Decision: Stop-and-wait, receiver driven
- file_ack creates the chunk store and requests chunk 0
- Each receive_chunk_ack stores its chunk and requests the next one
- A redelivered chunk overwrites its slot; the received-byte counter
  is derived from what is stored, so duplicates are not double counted

Receive Flow:
1. file_ack{file}: create store, request chunk 0
2. receive_chunk_ack{chunk, chunkNo}: store, request chunkNo + 1
3. Last chunk: assemble, free the slot, write to disk
4. Write failed: keep the assembled bytes for retry_save()
"""

import base64
import binascii
import logging
from typing import Dict
from dataclasses import dataclass

from .protocol import ControlMessage
from .records import TransferLog, TransferRecord, Direction
from .session import ConnectionSession
from .state import TransferState, ChunkStore
from ..errors import MessageError, MaterializationError
from ..file.chunker import CHUNK_SIZE
from ..file.metadata import FileMetadata
from ..file.storage import FileMaterializer
from ..notify import Notifier
from ..utils import format_size, chunk_progress

logger = logging.getLogger(__name__)


@dataclass
class PendingSave:
    """An assembled file waiting to be written to disk."""
    file_id: str
    name: str
    data: bytes


class FileReceiver:
    """
    Receives one incoming file at a time.

    Registered on the session for file_ack and receive_chunk_ack.
    """

    def __init__(self, session: ConnectionSession, state: TransferState,
                 records: TransferLog, notifier: Notifier,
                 materializer: FileMaterializer,
                 chunk_size: int = CHUNK_SIZE,
                 max_file_size: int = 100 * 1024 * 1024):
        self.session = session
        self.state = state
        self.records = records
        self.notifier = notifier
        self.materializer = materializer
        self.chunk_size = chunk_size
        # Largest announced file accepted; bounds the chunk store allocation
        self.max_file_size = max_file_size

        # Assembled files whose write failed, by file id
        self.pending_saves: Dict[str, PendingSave] = {}

        # Statistics
        self.files_received = 0
        self.chunks_received = 0

    # === Protocol handlers ===

    async def handle_file_ack(self, message: ControlMessage):
        """A peer announced a file: start pulling its chunks."""
        try:
            metadata = FileMetadata.from_dict(message.get('file'), self.chunk_size)
        except MessageError as e:
            logger.error(f"Ignoring file_ack: {e}")
            self.notifier.warning(
                'Transfer Rejected',
                'The other device announced an invalid file. The transfer was ignored.'
            )
            return

        if self.state.inbound is not None:
            self.notifier.warning(
                'Transfer in Progress',
                'Another file transfer is already in progress. Please wait for it to complete.'
            )
            return

        if metadata.size > self.max_file_size:
            logger.error(f"Ignoring file_ack for {metadata.name}: "
                         f"{metadata.size} bytes exceeds {self.max_file_size}")
            self.notifier.warning(
                'File Too Large',
                f"The incoming file ({format_size(metadata.size)}) exceeds the maximum "
                f"transfer limit of {format_size(self.max_file_size)}. The transfer was ignored."
            )
            return

        store =ChunkStore.from_metadata(metadata)
        self.state.begin_receive(store)
        self.records.add(TransferRecord.from_metadata(
            metadata, Direction.RECEIVED,
            available=False, progress=0.0, transferring=True,
        ))
        self.records.set_progress(0.0)

        logger.info(f"Starting to receive: {metadata.name} "
                    f"({format_size(metadata.size)}, {metadata.total_chunks} chunks)")

        if store.total_chunks == 0:
            await self._finish(store)
            return

        await self._request_chunk(store, 0)

    async def handle_receive_chunk_ack(self, message: ControlMessage):
        """Store a delivered chunk and request the next one."""
        store = self.state.inbound
        if store is None:
            logger.debug("No active transfer; ignoring chunk")
            return

        chunk_no = message.chunk_no
        if chunk_no >= store.total_chunks:
            logger.error(f"Chunk {chunk_no} out of range (total {store.total_chunks})")
            return

        try:
            data = base64.b64decode(message.get('chunk'), validate=True)
        except (binascii.Error, TypeError, ValueError) as e:
            logger.error(f"Undecodable chunk {chunk_no}: {e}")
            return

        self.records.total_received_bytes += store.store(chunk_no, data)
        self.chunks_received += 1

        progress = chunk_progress(chunk_no, store.total_chunks)
        record = self.records.get(Direction.RECEIVED, store.id)
        if record is not None:
            progress = max(progress, record.progress)
            self.records.update(Direction.RECEIVED, store.id, progress=progress)
        self.records.set_progress(progress)

        logger.debug(f"Received chunk {chunk_no + 1}/{store.total_chunks} "
                     f"({progress:.1f}%)")

        if chunk_no + 1 == store.total_chunks:
            if not store.is_complete:
                self._abort(store, 'Received file is incomplete. Transfer cancelled.')
                return
            logger.info("All chunks received, generating file...")
            await self._finish(store)
            return

        # A redelivered older chunk must not trigger a second request
        if chunk_no + 1 > store.last_requested:
            await self._request_chunk(store, chunk_no + 1)

    async def _request_chunk(self, store: ChunkStore, chunk_no: int):
        store.last_requested = chunk_no
        try:
            await self.session.send(ControlMessage.send_chunk_ack(chunk_no))
        except (ConnectionError, OSError) as e:
            logger.error(f"Failed to request chunk {chunk_no}: {e!r}")
            self._abort(store, 'Failed to request file chunk. Transfer may be incomplete.')

    # === Cancellation / failure ===

    def abort_cancelled(self) -> bool:
        """
        Apply a cancellation to the inbound transfer, if any.

        Progress is frozen at the fraction of chunks already stored.
        """
        store = self.state.inbound
        if store is None:
            return False

        progress = (store.stored_count / store.total_chunks * 100) if store.total_chunks else 0.0
        self.records.update(Direction.RECEIVED, store.id,
                            cancelled=True, available=False, transferring=False,
                            progress=progress)
        self.state.reset_inbound()
        self.records.finish()
        logger.info(f"Inbound transfer {store.id} cancelled at {progress:.1f}%")
        return True

    def _abort(self, store: ChunkStore, message: str):
        self.records.update(Direction.RECEIVED, store.id,
                            transferring=False, error=message)
        if self.state.inbound is store:
            self.state.reset_inbound()
        self.records.finish()
        self.notifier.error('Transfer Error', message, file_id=store.id)

    # === Materialization ===

    async def _finish(self, store: ChunkStore):
        """Hand the assembled file to the filesystem."""
        data = store.assemble()
        if len(data) != store.size:
            logger.error(f"Assembled {len(data)} bytes for {store.name}, "
                         f"announced {store.size}")
            self._abort(store, 'Received file size does not match the announced size. '
                               'Transfer cancelled.')
            return

        if self.state.inbound is store:
            self.state.reset_inbound()

        self.pending_saves[store.id] = PendingSave(store.id, store.name, data)
        await self._save(store.id)

    async def retry_save(self, file_id: str) -> bool:
        """
        Re-attempt writing a received file after a failed save.

        Uses the bytes already in memory; nothing is re-requested.
        """
        if file_id not in self.pending_saves:
            logger.warning(f"No pending save for {file_id}")
            return False

        logger.info(f"Retrying save of {self.pending_saves[file_id].name}")
        return await self._save(file_id)

    async def _save(self, file_id: str) -> bool:
        pending = self.pending_saves[file_id]

        try:
            path, actual_size = await self.materializer.write(pending.name, pending.data)
        except MaterializationError as e:
            self.records.update(Direction.RECEIVED, file_id,
                                transferring=False, available=False, error=e.message)
            self.records.finish()
            self.notifier.error(
                'Save Error', str(e), file_id=file_id,
                retry=lambda: self.retry_save(file_id),
            )
            return False

        del self.pending_saves[file_id]
        self.records.update(Direction.RECEIVED, file_id,
                            available=True, progress=100.0, transferring=False,
                            name=path.name, path=str(path),
                            actual_size=actual_size, error=None)
        self.records.finish()
        self.files_received += 1

        self.notifier.info(
            'Transfer Complete',
            f'File "{path.name}" ({format_size(len(pending.data))}) has been '
            f'received successfully.\n\nSaved to: {path.parent}',
            file_id=file_id,
        )
        return True

    def reset(self):
        """Drop failed saves; their records go away with the connection."""
        if self.pending_saves:
            logger.warning(f"Discarding {len(self.pending_saves)} unsaved received file(s)")
        self.pending_saves.clear()

    def get_stats(self) -> dict:
        """Get receiver statistics."""
        return {
            'files_received': self.files_received,
            'chunks_received': self.chunks_received,
            'bytes_received': self.records.total_received_bytes,
            'pending_saves': len(self.pending_saves),
            'active': self.state.inbound is not None,
        }
