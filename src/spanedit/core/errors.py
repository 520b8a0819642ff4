"""Standardized error types for selection edits.

Every failure raised by the resolver, applicator, generation back-ends and the
edit session derives from :class:`EditError`, which carries a machine-readable
code plus a human-readable message suitable for the notification sink.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar


# -----------------------------------------------------------------------------
# Error Code Constants
# -----------------------------------------------------------------------------

class ErrorCode:
    """Constants for error codes attached to edit failures."""

    # Selection errors
    RESOLUTION_FAILED = "resolution_failed"

    # Message errors
    MESSAGE_NOT_FOUND = "message_not_found"
    UNDO_TARGET_MISSING = "undo_target_missing"
    PERSISTENCE_FAILED = "persistence_failed"

    # Generation errors
    GENERATION_FAILED = "generation_failed"
    GENERATION_BUSY = "generation_busy"
    GENERATION_EMPTY = "generation_empty"
    PRESET_MISSING = "preset_missing"
    BACKEND_UNKNOWN = "backend_unknown"
    OPERATION_CANCELLED = "operation_cancelled"


# -----------------------------------------------------------------------------
# Base Error Class
# -----------------------------------------------------------------------------

@dataclass(eq=False)
class EditError(Exception):
    """Base exception class for all edit errors.

    Attributes:
        error_code: Machine-readable error identifier.
        message: Human-readable error description.
        details: Additional structured error information.
        suggestion: Actionable guidance for recovery.
    """

    error_code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = ""

    # Notification level used when the error reaches the user
    severity: ClassVar[str] = "error"

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a dictionary for events and logs."""
        result: dict[str, Any] = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = dict(self.details)
        if self.suggestion:
            result["suggestion"] = self.suggestion
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


# -----------------------------------------------------------------------------
# Selection Errors
# -----------------------------------------------------------------------------

@dataclass(eq=False)
class ResolutionFailure(EditError):
    """Raised when a rendered selection cannot be mapped onto the raw text."""

    error_code: str = field(default=ErrorCode.RESOLUTION_FAILED)
    message: str = field(default="Selection could not be located in the raw message")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Select a smaller span of plain text and retry")

    message_id: str | None = field(default=None)
    fragment: str | None = field(default=None)

    severity: ClassVar[str] = "info"

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.message_id is not None:
            result["message_id"] = self.message_id
        if self.fragment is not None:
            result["fragment"] = self.fragment
        return result


# -----------------------------------------------------------------------------
# Message Errors
# -----------------------------------------------------------------------------

@dataclass(eq=False)
class MessageNotFound(EditError):
    """Raised when an edit targets a message id unknown to the store."""

    error_code: str = field(default=ErrorCode.MESSAGE_NOT_FOUND)
    message: str = field(default="Message not found in the active chat")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="")

    message_id: str | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.message_id is not None:
            result["message_id"] = self.message_id
        return result


@dataclass(eq=False)
class UndoTargetMissing(MessageNotFound):
    """Raised when the message an undo entry refers to no longer exists."""

    error_code: str = field(default=ErrorCode.UNDO_TARGET_MISSING)
    message: str = field(default="Message not found for undo operation")


@dataclass(eq=False)
class PersistenceFailure(EditError):
    """Raised when writing or persisting an edit fails; state is rolled back."""

    error_code: str = field(default=ErrorCode.PERSISTENCE_FAILED)
    message: str = field(default="Failed to save the edited chat")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="The message was restored; retry the edit")

    message_id: str | None = field(default=None)


# -----------------------------------------------------------------------------
# Generation Errors
# -----------------------------------------------------------------------------

@dataclass(eq=False)
class GenerationFailure(EditError):
    """Raised when the generation service fails or is misconfigured."""

    error_code: str = field(default=ErrorCode.GENERATION_FAILED)
    message: str = field(default="Text generation failed")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Check the generation settings and retry")

    backend: str | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.backend is not None:
            result["backend"] = self.backend
        return result


@dataclass(eq=False)
class GenerationCancelled(EditError):
    """Raised when the user aborts a pending or streaming generation."""

    error_code: str = field(default=ErrorCode.OPERATION_CANCELLED)
    message: str = field(default="Generation cancelled")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="")

    severity: ClassVar[str] = "info"


__all__ = [
    "ErrorCode",
    "EditError",
    "ResolutionFailure",
    "MessageNotFound",
    "UndoTargetMissing",
    "PersistenceFailure",
    "GenerationFailure",
    "GenerationCancelled",
]
