"""
SwiftShare Node - Main Controller

This is the entry point front ends talk to. It owns and wires up:
- The connection session (one peer at a time)
- The shared transfer state (single-flight slots)
- The sender and receiver state machines
- The transfer log (records + counters) and the notifier
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional, List, Callable

from .config import Config
from .file import FileMaterializer
from .notify import Notifier
from .transfer import (
    ConnectionSession, SessionState, MessageEvent, ControlMessage,
    TransferState, TransferLog, TransferRecord, Direction,
    FileSender, FileReceiver, SizeLimits,
)

logger = logging.getLogger(__name__)


class SwiftShareNode:
    """
    A complete file-sharing endpoint.

    Combines all components into a unified interface:
    - start_server(port) / connect(host, port, peer_name)
    - send_file(path): send a file to the connected peer
    - cancel_transfer(), disconnect()
    - sent_files / received_files: transfer history for this connection
    """

    def __init__(self, config: Config = None, notifier: Notifier = None):
        """
        Initialize a node.

        Args:
            config: Node configuration (uses defaults if not provided)
            notifier: Where user-facing notices go (logs if not provided)
        """
        self.config = config or Config()
        self.notifier = notifier or Notifier()

        # Initialize components
        self.state = TransferState()
        self.records = TransferLog()

        self.session = ConnectionSession(
            device_name=self.config.device_name,
            host=self.config.host,
            max_frame_size=self.config.max_frame_size,
            connect_timeout=self.config.connect_timeout,
        )

        self.sender = FileSender(
            session=self.session,
            state=self.state,
            records=self.records,
            notifier=self.notifier,
            chunk_size=self.config.chunk_size,
            limits=SizeLimits(
                max_size=self.config.max_file_size,
                recommended_size=self.config.recommended_file_size,
                warning_size=self.config.warning_file_size,
            ),
        )

        self.receiver = FileReceiver(
            session=self.session,
            state=self.state,
            records=self.records,
            notifier=self.notifier,
            materializer=FileMaterializer(self.config.download_dir),
            chunk_size=self.config.chunk_size,
            max_file_size=self.config.max_file_size,
        )

        self._setup_handlers()

    def _setup_handlers(self):
        """Route inbound messages to the state machines."""
        self.session.set_handler(
            MessageEvent.FILE_ACK,
            self.receiver.handle_file_ack
        )
        self.session.set_handler(
            MessageEvent.RECEIVE_CHUNK_ACK,
            self.receiver.handle_receive_chunk_ack
        )
        self.session.set_handler(
            MessageEvent.SEND_CHUNK_ACK,
            self.sender.handle_send_chunk_ack
        )
        self.session.set_handler(
            MessageEvent.CANCEL_TRANSFER,
            self._handle_cancel
        )
        self.session.on_close(self._on_connection_closed)

    # === Connection ===

    @property
    def is_connected(self) -> bool:
        return self.session.is_connected

    @property
    def connected_device(self) -> Optional[str]:
        return self.session.peer_name

    @property
    def listening_port(self) -> Optional[int]:
        return self.session.listening_port

    async def start_server(self, port: Optional[int] = None) -> bool:
        """Listen for a peer (no-op if already listening)."""
        return await self.session.start_server(
            self.config.port if port is None else port
        )

    async def connect(self, host: str, port: int, peer_name: str = '') -> bool:
        """Connect to a peer found by discovery."""
        return await self.session.connect(host, port, peer_name)

    async def disconnect(self):
        """Disconnect from the peer and stop listening."""
        logger.info("Disconnecting...")
        await self.session.disconnect()

    async def stop(self):
        """Disconnect and release all resources."""
        await self.session.close()

    def _on_connection_closed(self, cause: str):
        """Reset everything tied to the connection, in one step."""
        self.state.reset()
        self.records.reset()
        self.receiver.reset()

    # === Transfers ===

    async def send_file(self, file_path: Path, name: Optional[str] = None,
                        mime_type: str = '') -> bool:
        """Send a file to the connected peer."""
        return await self.sender.initiate_send(Path(file_path), name, mime_type)

    async def send_bytes(self, data: bytes, name: str, mime_type: str = '') -> bool:
        """Send in-memory contents to the connected peer."""
        return await self.sender.initiate_send_bytes(data, name, mime_type)

    async def cancel_transfer(self) -> bool:
        """
        Cancel the active transfer(s) from this side.

        Returns:
            True if anything was cancelled
        """
        logger.info("Cancelling transfer...")
        sent = await self.sender.cancel_transfer()
        received = self.receiver.abort_cancelled()

        if sent or received:
            self.notifier.info('Transfer Cancelled', 'The file transfer was cancelled.')
        return sent or received

    async def retry_save(self, file_id: str) -> bool:
        """Re-attempt saving a received file whose write failed."""
        return await self.receiver.retry_save(file_id)

    async def _handle_cancel(self, message: ControlMessage):
        """The peer cancelled: stop whatever is in flight."""
        sent = self.sender.abort_cancelled()
        received = self.receiver.abort_cancelled()

        if sent or received:
            self.notifier.info('Transfer Cancelled',
                               'File transfer was cancelled by the other device.')

    # === Observation ===

    def on_record_change(self, callback: Callable[[TransferRecord], None]):
        """Register a callback for record updates (progress, completion)."""
        self.records.on_change(callback)

    async def wait_for_record(self, direction: Direction,
                              predicate: Callable[[TransferRecord], bool],
                              timeout: Optional[float] = None) -> TransferRecord:
        """
        Wait until a record in the given direction satisfies predicate.

        Raises:
            asyncio.TimeoutError: if timeout expires first
        """
        loop = asyncio.get_running_loop()
        future = loop.create_future()

        for record in self._records(direction):
            if predicate(record):
                return record

        def check(record: TransferRecord):
            if record.direction == direction and predicate(record) and not future.done():
                future.set_result(record)

        self.records.on_change(check)
        try:
            return await asyncio.wait_for(future, timeout)
        finally:
            self.records.remove_callback(check)

    def _records(self, direction: Direction) -> List[TransferRecord]:
        return self.sent_files if direction == Direction.SENT else self.received_files

    @property
    def sent_files(self) -> List[TransferRecord]:
        return list(self.records.sent_files)

    @property
    def received_files(self) -> List[TransferRecord]:
        return list(self.records.received_files)

    @property
    def session_state(self) -> SessionState:
        return self.session.state

    def get_status(self) -> dict:
        """Connection and transfer status."""
        return {
            'device_name': self.config.device_name,
            'state': self.session.state.value,
            'is_connected': self.is_connected,
            'connected_device': self.connected_device,
            'listening_port': self.listening_port,
            'remote_address': self._remote_address(),
            **self.records.get_stats(),
        }

    def _remote_address(self) -> Optional[str]:
        address = self.session.remote_address
        if not address:
            return None
        return f"{address[0]}:{address[1]}"

    def get_full_stats(self) -> dict:
        """Get complete node statistics."""
        return {
            **self.get_status(),
            'sender': self.sender.get_stats(),
            'receiver': self.receiver.get_stats(),
        }
