"""
SwiftShare - Local-network peer-to-peer file transfer.

Chunked, stop-and-wait file transfer over a single TCP connection.
"""

from .config import Config, load_config
from .node import SwiftShareNode

__version__ = "1.0.0"

__all__ = ['Config', 'load_config', 'SwiftShareNode']
