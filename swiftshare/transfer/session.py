"""
Connection Session

Owns the single duplex TCP stream to the connected peer.

State machine:
```
IDLE ──start_server()──► LISTENING ──peer sends connect──► CONNECTED
IDLE ──connect()───────► CONNECTING ──dial + handshake───► CONNECTED
CONNECTED ──disconnect / close / error──► LISTENING (listener kept) or IDLE
```

Whichever way the connection was made, exactly one "active stream"
carries all outgoing protocol messages. Every termination cause goes
through _terminate(), which resets the connection fields and fires the
close callbacks in one synchronous step.
"""

import asyncio
import logging
from contextlib import suppress
from enum import Enum
from typing import Optional, Tuple, Callable, Awaitable, Dict, List

from .protocol import (
    ControlMessage, MessageEvent, MessageFramer, DEFAULT_MAX_FRAME_SIZE
)

logger = logging.getLogger(__name__)

READ_SIZE = 64 * 1024


class SessionState(Enum):
    IDLE = "idle"
    LISTENING = "listening"
    CONNECTING = "connecting"
    CONNECTED = "connected"


# Types for registered callbacks
MessageHandler = Callable[[ControlMessage], Awaitable[None]]
CloseCallback = Callable[[str], None]


class ConnectionSession:
    """
    One peer connection, either accepted or dialed.

    Inbound messages are decoded by a reader task and dispatched, one
    at a time, to the handler registered for their event.
    """

    def __init__(self, device_name: str, host: str = '0.0.0.0',
                 max_frame_size: int = DEFAULT_MAX_FRAME_SIZE,
                 connect_timeout: float = 10.0):
        """
        Args:
            device_name: Name announced to peers in the connect handshake
            host: Interface to bind the listener to
            max_frame_size: Upper bound on an inbound frame's declared length
            connect_timeout: Seconds to wait when dialing a peer
        """
        self.device_name = device_name
        self.host = host
        self.max_frame_size = max_frame_size
        self.connect_timeout = connect_timeout

        self.server: Optional[asyncio.AbstractServer] = None
        self.peer_name: Optional[str] = None

        # Active stream
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None

        # Accepted socket that has not sent connect yet
        self._pending: Optional[asyncio.StreamWriter] = None
        self._connecting = False
        self._client_task: Optional[asyncio.Task] = None

        self._handlers: Dict[MessageEvent, MessageHandler] = {}
        self._close_callbacks: List[CloseCallback] = []
        self._write_lock = asyncio.Lock()

    # === Properties ===

    @property
    def is_connected(self) -> bool:
        return self._writer is not None

    @property
    def is_listening(self) -> bool:
        return self.server is not None

    @property
    def state(self) -> SessionState:
        if self.is_connected:
            return SessionState.CONNECTED
        if self._connecting:
            return SessionState.CONNECTING
        if self.is_listening:
            return SessionState.LISTENING
        return SessionState.IDLE

    @property
    def stream(self) -> Optional[Tuple[asyncio.StreamReader, asyncio.StreamWriter]]:
        """The active (reader, writer) pair, if connected."""
        if self._writer is None:
            return None
        return self._reader, self._writer

    @property
    def remote_address(self) -> Optional[Tuple[str, int]]:
        """Get remote peer address."""
        if self._writer is None:
            return None
        return self._writer.get_extra_info('peername')

    @property
    def listening_port(self) -> Optional[int]:
        """Port actually bound (useful when started on port 0)."""
        if self.server is None or not self.server.sockets:
            return None
        return self.server.sockets[0].getsockname()[1]

    # === Registration ===

    def on_request(self, event: MessageEvent):
        """Decorator to register a message handler."""
        def decorator(handler: MessageHandler):
            self._handlers[event] = handler
            return handler
        return decorator

    def set_handler(self, event: MessageEvent, handler: MessageHandler):
        """Set a message handler."""
        self._handlers[event] = handler

    def on_close(self, callback: CloseCallback):
        """Register a callback fired when the connection terminates."""
        self._close_callbacks.append(callback)

    # === Lifecycle ===

    async def start_server(self, port: int) -> bool:
        """
        Start listening for a peer.

        Returns:
            False if a listener was already running (no-op)
        """
        if self.server is not None:
            logger.debug("Server already running")
            return False

        self.server = await asyncio.start_server(
            self._handle_connection,
            self.host,
            port
        )

        addr = self.server.sockets[0].getsockname()
        logger.info(f"Transfer server listening on {addr}")
        return True

    async def stop_server(self):
        """Stop accepting connections."""
        if self.server is None:
            return

        server, self.server = self.server, None
        if self._pending is not None:
            self._pending.close()
        server.close()
        await server.wait_closed()
        logger.info("Transfer server stopped")

    async def connect(self, host: str, port: int, peer_name: str = '') -> bool:
        """
        Dial a peer's server and perform the connect handshake.

        Args:
            host: Peer address (as supplied by discovery)
            port: Peer transfer port
            peer_name: Peer's display name (as supplied by discovery)

        Returns:
            True once connected, False if already connected or dialing failed
        """
        if self.is_connected or self._connecting:
            logger.warning("Already connected; disconnect first")
            return False

        self._connecting = True
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port),
                timeout=self.connect_timeout
            )
        except (OSError, asyncio.TimeoutError) as e:
            logger.error(f"Failed to connect to {host}:{port}: {e!r}")
            return False
        finally:
            self._connecting = False

        self._activate(reader, writer, peer_name or f"{host}:{port}")

        try:
            await self.send(ControlMessage.connect(self.device_name))
        except (ConnectionError, OSError) as e:
            logger.error(f"Handshake with {host}:{port} failed: {e}")
            self._terminate(writer, 'handshake failed')
            writer.close()
            return False

        self._client_task = asyncio.create_task(self._read_loop(reader, writer))
        return True

    async def disconnect(self):
        """
        Disconnect from the peer.

        Tells the peer first (best effort), then closes the stream and
        the listener.
        """
        writer = self._writer
        if writer is not None:
            try:
                await self.send(ControlMessage.disconnect())
            except (ConnectionError, OSError) as e:
                logger.warning(f"Error sending disconnect: {e}")

            self._terminate(writer, 'local disconnect')
            writer.close()
            with suppress(ConnectionError, OSError):
                await writer.wait_closed()

        await self.stop_server()

    async def close(self):
        """Disconnect and stop all background tasks."""
        await self.disconnect()
        if self._client_task is not None:
            self._client_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._client_task
            self._client_task = None

    # === Sending ===

    async def send(self, message: ControlMessage):
        """
        Send a message on the active stream.

        Raises:
            ConnectionError: if no stream is active
        """
        writer = self._writer
        if writer is None or writer.is_closing():
            raise ConnectionError("Connection closed")

        data = message.to_bytes()
        async with self._write_lock:
            # One write per frame keeps frame boundaries intact
            writer.write(data)
            await writer.drain()

    # === Internals ===

    def _activate(self, reader: asyncio.StreamReader,
                  writer: asyncio.StreamWriter, peer_name: str):
        self._reader = reader
        self._writer = writer
        self.peer_name = peer_name
        logger.info(f"Connected to {peer_name} ({writer.get_extra_info('peername')})")

    def _terminate(self, writer: asyncio.StreamWriter, cause: str):
        """Single termination path for every close cause."""
        if writer is not self._writer:
            return

        peer = self.peer_name
        self._reader = None
        self._writer = None
        self.peer_name = None
        logger.info(f"Connection to {peer} closed: {cause}")

        for callback in self._close_callbacks:
            callback(cause)

    async def _handle_connection(self, reader: asyncio.StreamReader,
                                 writer: asyncio.StreamWriter):
        """Handle an incoming connection."""
        peer = writer.get_extra_info('peername')

        if self._writer is not None or self._pending is not None:
            logger.warning(f"Rejecting connection from {peer}: already connected")
            writer.close()
            return

        logger.debug(f"New transfer connection from {peer}")
        self._pending = writer
        try:
            await self._read_loop(reader, writer)
        finally:
            if self._pending is writer:
                self._pending = None

    async def _read_loop(self, reader: asyncio.StreamReader,
                         writer: asyncio.StreamWriter):
        """Decode frames from one stream and dispatch them in order."""
        framer = MessageFramer(self.max_frame_size)
        cause = 'closed by peer'
        loop = asyncio.get_running_loop()
        # An accepted socket must complete the connect handshake in time
        handshake_deadline = loop.time() + self.connect_timeout

        try:
            while True:
                if writer is self._pending:
                    remaining = max(handshake_deadline - loop.time(), 0)
                    try:
                        data = await asyncio.wait_for(reader.read(READ_SIZE), remaining)
                    except asyncio.TimeoutError:
                        cause = 'handshake timeout'
                        logger.warning(f"No connect from {writer.get_extra_info('peername')} "
                                       f"within {self.connect_timeout}s; closing")
                        break
                else:
                    data = await reader.read(READ_SIZE)
                if not data:
                    break

                for message in framer.feed(data):
                    await self._dispatch(message, reader, writer)

                if writer is not self._writer and writer is not self._pending:
                    cause = 'session ended'
                    break

        except (ConnectionError, OSError) as e:
            cause = f'transport error: {e!r}'
            logger.error(f"Socket error: {e!r}")
        finally:
            self._terminate(writer, cause)
            writer.close()

    async def _dispatch(self, message: ControlMessage,
                        reader: asyncio.StreamReader,
                        writer: asyncio.StreamWriter):
        event = message.event

        if event == MessageEvent.CONNECT:
            device_name = str(message.get('deviceName') or 'Unknown device')
            if writer is self._pending and self._writer is None:
                self._pending = None
                self._activate(reader, writer, device_name)
            elif writer is self._writer:
                self.peer_name = device_name
            return

        if writer is not self._writer:
            logger.warning(f"Ignoring {event.value} before connect handshake")
            return

        if event == MessageEvent.DISCONNECT:
            self._terminate(writer, 'peer disconnected')
            return

        handler = self._handlers.get(event)
        if handler is None:
            logger.warning(f"No handler for {event.value}")
            return

        try:
            await handler(message)
        except Exception as e:
            logger.error(f"Error handling {event.value}: {e}", exc_info=True)
