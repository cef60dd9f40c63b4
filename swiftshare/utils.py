"""
Utility functions shared by the engine and its front ends.
"""

import socket


def format_size(bytes_count: float) -> str:
    """Format bytes as human-readable size."""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if bytes_count < 1024:
            return f"{bytes_count:.1f} {unit}"
        bytes_count /= 1024
    return f"{bytes_count:.1f} PB"


def chunk_progress(chunk_no: int, total_chunks: int) -> float:
    """Percentage reached once chunk_no (0-based) has been transferred."""
    if total_chunks <= 0:
        return 100.0
    return (chunk_no + 1) / total_chunks * 100


def default_device_name() -> str:
    """Local display name announced to peers."""
    return socket.gethostname() or "SwiftShare device"
