"""
Error types shared across the transfer engine.
"""

from typing import Optional


class SwiftShareError(Exception):
    """Base class for all SwiftShare errors."""


class FrameError(SwiftShareError):
    """A frame could not be parsed from the byte stream."""


class MessageError(SwiftShareError):
    """A frame decoded but did not carry a valid control message."""


class MaterializationError(SwiftShareError):
    """
    A received file could not be written to disk.

    Attributes:
        category: Short machine-readable cause ('not_found', 'exists',
            'permission', 'no_space', 'unknown')
        detail: The underlying OS error text
    """

    def __init__(self, category: str, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.category = category
        self.message = message
        self.detail = detail or ''

    def __str__(self) -> str:
        if self.detail:
            return f"{self.message}\n\nError details: {self.detail}"
        return self.message
