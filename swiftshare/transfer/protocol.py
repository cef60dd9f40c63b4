"""
Transfer Protocol - Message Framing

Design Decision: Framing
========================

Options Considered:
1. Newline-delimited JSON
   - Trivial to implement
   - Breaks if a payload ever contains a raw newline

2. Length-prefixed JSON
   - Frame boundaries survive arbitrary TCP segmentation
   - Payload stays human readable

3. Length-prefixed JSON header + binary body
   - Avoids base64 overhead for chunk data
   - Two parsers to keep in sync

Decision: 4-byte big-endian length prefix + UTF-8 JSON payload
- Chunk bytes travel base64-encoded inside the JSON
- Every frame is written with a single write() call so concurrent
  writers can never interleave partial frames
- Declared lengths are bounded by max_frame_size

Message Format:
```
+----------------+---------------------------------------------+
| Length (4B BE) | {"event": "send_chunk_ack", "chunkNo": 3}   |
+----------------+---------------------------------------------+
```

Events:
    connect            {deviceName}
    disconnect         {}
    cancel_transfer    {}
    file_ack           {file: {id, name, size, mimeType, totalChunks}}
    send_chunk_ack     {chunkNo}            receiver -> sender (pull)
    receive_chunk_ack  {chunk, chunkNo}     sender -> receiver (data)
"""

import json
import struct
import logging
from enum import Enum
from typing import Optional, List, Tuple, Dict, Any
from dataclasses import dataclass, field

from ..errors import FrameError, MessageError

logger = logging.getLogger(__name__)

# Length prefix: unsigned 32-bit big-endian
HEADER = struct.Struct('>I')
HEADER_SIZE = HEADER.size

# 16MB is far above a base64-encoded 64KB chunk
DEFAULT_MAX_FRAME_SIZE = 16 * 1024 * 1024


class MessageEvent(Enum):
    """Control message types."""
    # Connection lifecycle
    CONNECT = "connect"
    DISCONNECT = "disconnect"

    # Transfer control
    CANCEL_TRANSFER = "cancel_transfer"
    FILE_ACK = "file_ack"

    # Chunk exchange
    SEND_CHUNK_ACK = "send_chunk_ack"
    RECEIVE_CHUNK_ACK = "receive_chunk_ack"


# Fields each event must carry (besides "event")
REQUIRED_FIELDS: Dict[MessageEvent, Tuple[str, ...]] = {
    MessageEvent.CONNECT: ('deviceName',),
    MessageEvent.DISCONNECT: (),
    MessageEvent.CANCEL_TRANSFER: (),
    MessageEvent.FILE_ACK: ('file',),
    MessageEvent.SEND_CHUNK_ACK: ('chunkNo',),
    MessageEvent.RECEIVE_CHUNK_ACK: ('chunk', 'chunkNo'),
}


@dataclass
class ControlMessage:
    """A control message carried in one frame."""
    event: MessageEvent
    fields: Dict[str, Any] = field(default_factory=dict)

    # === Constructors ===

    @classmethod
    def connect(cls, device_name: str) -> 'ControlMessage':
        return cls(MessageEvent.CONNECT, {'deviceName': device_name})

    @classmethod
    def disconnect(cls) -> 'ControlMessage':
        return cls(MessageEvent.DISCONNECT)

    @classmethod
    def cancel_transfer(cls) -> 'ControlMessage':
        return cls(MessageEvent.CANCEL_TRANSFER)

    @classmethod
    def file_ack(cls, file_info: Dict[str, Any]) -> 'ControlMessage':
        return cls(MessageEvent.FILE_ACK, {'file': file_info})

    @classmethod
    def send_chunk_ack(cls, chunk_no: int) -> 'ControlMessage':
        return cls(MessageEvent.SEND_CHUNK_ACK, {'chunkNo': chunk_no})

    @classmethod
    def receive_chunk_ack(cls, chunk_b64: str, chunk_no: int) -> 'ControlMessage':
        return cls(MessageEvent.RECEIVE_CHUNK_ACK,
                   {'chunk': chunk_b64, 'chunkNo': chunk_no})

    # === Accessors ===

    def get(self, key: str, default: Any = None) -> Any:
        return self.fields.get(key, default)

    @property
    def chunk_no(self) -> Optional[int]:
        return self.fields.get('chunkNo')

    # === Serialization ===

    def to_dict(self) -> Dict[str, Any]:
        return {'event': self.event.value, **self.fields}

    def to_bytes(self) -> bytes:
        """Serialize to a complete frame (length prefix + JSON)."""
        payload = json.dumps(self.to_dict(), separators=(',', ':')).encode('utf-8')
        return pack_frame(payload)

    @classmethod
    def from_dict(cls, data: Any) -> 'ControlMessage':
        """
        Build a message from a decoded JSON value.

        Raises:
            MessageError: if the value is not a well-formed control message
        """
        if not isinstance(data, dict):
            raise MessageError(f"Expected JSON object, got {type(data).__name__}")

        raw_event = data.get('event')
        try:
            event = MessageEvent(raw_event)
        except ValueError:
            raise MessageError(f"Unknown event: {raw_event!r}")

        fields = {k: v for k, v in data.items() if k != 'event'}
        missing = [name for name in REQUIRED_FIELDS[event] if name not in fields]
        if missing:
            raise MessageError(f"{event.value} missing fields: {', '.join(missing)}")

        if 'chunkNo' in fields:
            chunk_no = fields['chunkNo']
            # bool is an int subclass; reject it explicitly
            if isinstance(chunk_no, bool) or not isinstance(chunk_no, int) or chunk_no < 0:
                raise MessageError(f"Invalid chunkNo: {chunk_no!r}")

        return cls(event=event, fields=fields)

    @classmethod
    def from_payload(cls, payload: bytes) -> 'ControlMessage':
        """Parse a frame payload (UTF-8 JSON)."""
        try:
            data = json.loads(payload.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise MessageError(f"Malformed payload: {e}")
        return cls.from_dict(data)


def pack_frame(payload: bytes) -> bytes:
    """Prefix a payload with its 4-byte big-endian length."""
    return HEADER.pack(len(payload)) + payload


def encode_message(message: ControlMessage) -> bytes:
    """Encode a control message as one frame."""
    return message.to_bytes()


def split_frames(buffer: bytes,
                 max_frame_size: int = DEFAULT_MAX_FRAME_SIZE) -> Tuple[List[bytes], bytes]:
    """
    Extract every complete frame payload from a buffer.

    Returns:
        (payloads, remaining_buffer) tuple

    Raises:
        FrameError: if a declared length exceeds max_frame_size
    """
    payloads = []
    offset = 0

    while len(buffer) - offset >= HEADER_SIZE:
        (length,) = HEADER.unpack_from(buffer, offset)

        # Sanity check
        if length > max_frame_size:
            raise FrameError(f"Frame too large: {length} bytes (max {max_frame_size})")

        end = offset + HEADER_SIZE + length
        if len(buffer) < end:
            break  # Wait for more data

        payloads.append(buffer[offset + HEADER_SIZE:end])
        offset = end

    return payloads, buffer[offset:]


def decode_frames(data: bytes, buffer: bytes = b'',
                  max_frame_size: int = DEFAULT_MAX_FRAME_SIZE) -> Tuple[List[ControlMessage], bytes]:
    """
    Decode incoming bytes into control messages.

    Args:
        data: Newly received bytes
        buffer: Accumulated bytes left over from previous calls
        max_frame_size: Upper bound on a declared frame length

    Returns:
        (messages, new_buffer) tuple. Malformed payloads are logged
        and dropped; an oversized length prefix discards the buffer.
    """
    buffer = buffer + data

    try:
        payloads, buffer = split_frames(buffer, max_frame_size)
    except FrameError as e:
        logger.error(f"Dropping {len(buffer)} buffered bytes: {e}")
        return [], b''

    messages = []
    for payload in payloads:
        if not payload:
            # Zero-length frame: valid, carries nothing
            logger.debug("Received empty frame")
            continue
        try:
            messages.append(ControlMessage.from_payload(payload))
        except MessageError as e:
            logger.error(f"Dropping frame ({len(payload)} bytes): {e}")

    return messages, buffer


class MessageFramer:
    """
    Stateful decoder for one inbound byte stream.

    Feed raw socket data in, get complete messages out.
    """

    def __init__(self, max_frame_size: int = DEFAULT_MAX_FRAME_SIZE):
        self.max_frame_size = max_frame_size
        self._buffer = b''

    @property
    def pending_bytes(self) -> int:
        """Bytes buffered waiting for the rest of a frame."""
        return len(self._buffer)

    def feed(self, data: bytes) -> List[ControlMessage]:
        """Add received bytes and return any completed messages."""
        messages, self._buffer = decode_frames(data, self._buffer, self.max_frame_size)
        return messages
