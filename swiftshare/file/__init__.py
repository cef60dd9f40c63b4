"""
File Module - Chunking, Metadata, and Storage

This module handles file operations for the transfer engine.
"""

from .chunker import FileChunker, CHUNK_SIZE, join_chunks
from .metadata import FileMetadata, create_metadata, guess_mime_type
from .storage import FileMaterializer, sanitize_file_name

__all__ = [
    'FileChunker',
    'CHUNK_SIZE',
    'join_chunks',
    'FileMetadata',
    'create_metadata',
    'guess_mime_type',
    'FileMaterializer',
    'sanitize_file_name',
]
