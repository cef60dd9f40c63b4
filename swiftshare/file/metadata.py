"""
File Metadata

The metadata announced to the receiver in a file_ack message.
It tells the receiver:
- Which transfer the following chunks belong to (id)
- What to call the file and how big it is
- How many chunks to request
"""

import uuid
import mimetypes
from dataclasses import dataclass
from typing import Dict, Any
from pathlib import Path

from .chunker import CHUNK_SIZE
from ..errors import MessageError


@dataclass
class FileMetadata:
    """Description of a file being transferred."""
    id: str
    name: str
    size: int
    mime_type: str
    total_chunks: int

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the wire representation (camelCase keys)."""
        return {
            'id': self.id,
            'name': self.name,
            'size': self.size,
            'mimeType': self.mime_type,
            'totalChunks': self.total_chunks,
        }

    @classmethod
    def from_dict(cls, data: Any, chunk_size: int = CHUNK_SIZE) -> 'FileMetadata':
        """
        Deserialize from the wire representation.

        Raises:
            MessageError: if required keys are missing or malformed, or
                totalChunks does not match size for chunk_size
        """
        if not isinstance(data, dict):
            raise MessageError("file metadata must be an object")

        try:
            metadata = cls(
                id=str(data['id']),
                name=str(data.get('name') or 'received_file'),
                size=int(data['size']),
                mime_type=str(data.get('mimeType') or 'application/octet-stream'),
                total_chunks=int(data['totalChunks']),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise MessageError(f"Invalid file metadata: {e}")

        if metadata.size < 0 or metadata.total_chunks < 0:
            raise MessageError(
                f"Invalid file metadata: size={metadata.size}, "
                f"totalChunks={metadata.total_chunks}"
            )

        expected_chunks = (metadata.size + chunk_size - 1) // chunk_size
        if metadata.total_chunks != expected_chunks:
            raise MessageError(
                f"Inconsistent file metadata: size={metadata.size} needs "
                f"{expected_chunks} chunks, totalChunks={metadata.total_chunks}"
            )
        return metadata


def create_metadata(name: str, size: int, mime_type: str = '',
                    chunk_size: int = CHUNK_SIZE) -> FileMetadata:
    """Build metadata with a fresh transfer id."""
    return FileMetadata(
        id=str(uuid.uuid4()),
        name=name,
        size=size,
        mime_type=mime_type or guess_mime_type(name),
        total_chunks=(size + chunk_size - 1) // chunk_size,
    )


def guess_mime_type(file_name: str) -> str:
    """Guess MIME type from file extension."""
    mime_type, _ = mimetypes.guess_type(str(Path(file_name)))
    return mime_type or "application/octet-stream"
