"""
Transfer Module - Chunked File Transfer

Handles framing, the peer connection and the send/receive state machines.
"""

from .protocol import ControlMessage, MessageEvent, MessageFramer, encode_message, decode_frames
from .session import ConnectionSession, SessionState
from .state import TransferState, ChunkSet, ChunkStore
from .records import TransferLog, TransferRecord, Direction
from .sender import FileSender, SizeLimits
from .receiver import FileReceiver

__all__ = [
    'ControlMessage',
    'MessageEvent',
    'MessageFramer',
    'encode_message',
    'decode_frames',
    'ConnectionSession',
    'SessionState',
    'TransferState',
    'ChunkSet',
    'ChunkStore',
    'TransferLog',
    'TransferRecord',
    'Direction',
    'FileSender',
    'SizeLimits',
    'FileReceiver',
]
