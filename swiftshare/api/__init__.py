"""
API Module - REST API for a SwiftShare Node

Provides HTTP endpoints for controlling the node.
"""

from .rest import create_app, run_api_server

__all__ = ['create_app', 'run_api_server']
