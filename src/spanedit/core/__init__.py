"""Core domain types and utilities.

This package contains the span type and the error hierarchy shared by the
alignment, editor and session layers.
"""

from .errors import EditError, ErrorCode
from .ranges import TextRange

__all__ = ["EditError", "ErrorCode", "TextRange"]
