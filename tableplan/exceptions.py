"""Custom exception hierarchy for the tableplan application."""

from __future__ import annotations

from typing import Any


class TableplanError(Exception):
    """Base exception for all tableplan-specific errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(TableplanError):
    """Raised when configuration is invalid or missing."""
    pass


class ValidationError(TableplanError):
    """Raised when input violates a schema contract.

    ``details["errors"]`` lists every violated field, not just the first one.
    """

    @property
    def errors(self) -> list[dict[str, Any]]:
        return list(self.details.get("errors", []))

    @property
    def fields(self) -> list[str]:
        return [str(item.get("field", "")) for item in self.errors]


class GeometryError(TableplanError):
    """Raised when geometry operations fail."""
    pass


class FloorPlanStateError(TableplanError):
    """Base class for floor-plan editor state errors."""
    pass


class EntityNotFoundError(FloorPlanStateError):
    """Raised when a patch addresses an entity that does not exist."""
    pass


class AnalysisInProgressError(FloorPlanStateError):
    """Raised when an analysis is started while another one is in flight."""
    pass


class StaleRunError(FloorPlanStateError):
    """Raised when a detector response arrives for a run that is no longer current."""
    pass


class MLInferenceError(TableplanError):
    """Raised when ML inference fails."""
    pass


class VisionAPIError(MLInferenceError):
    """Raised when calls to the hosted detection API fail."""
    pass


class BookingAPIError(TableplanError):
    """Raised when the booking service fails or answers with an error."""

    def __init__(self, code: str, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, details)
        self.code = code


class StorageError(TableplanError):
    """Raised when storage operations fail."""
    pass


class SessionNotFoundError(TableplanError):
    """Raised when an editor session is not found."""
    pass
