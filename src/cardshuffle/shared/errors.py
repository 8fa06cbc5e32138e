"""cardshuffle Error Handling Module

This module defines the error handling system for cardshuffle, providing
structured error classes with context information.

The error hierarchy follows these principles:
- One Source of Truth: All error codes are defined in ErrorCode enum
- Structured Context: ErrorContext provides additional information
- Proper Exception Chaining: Original exceptions are preserved

Errors surfaced to consumers of the sync layer:
- NetworkError: remote unreachable or non-success status
- ValidationError: missing required fields before any network call
- NotFoundError: mutation target id absent on the server
- StorageUnavailable: local cache medium failed (informational only)
- CompressionFailure: image could not be normalized before upload
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Union

# Type alias for primitive context values (str, int, float, bool only)
PrimitiveContextValue = Union[str, int, float, bool]


class ErrorCode(str, Enum):
    """Error codes for cardshuffle.

    This enum serves as the single source of truth for all error codes
    used throughout the application.
    """

    # Network and API Errors
    NETWORK_ERROR = "NETWORK_ERROR"
    API_REQUEST_FAILED = "API_REQUEST_FAILED"
    API_TIMEOUT = "API_TIMEOUT"
    API_SERVER_ERROR = "API_SERVER_ERROR"
    API_INVALID_RESPONSE = "API_INVALID_RESPONSE"

    # Validation Errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"

    # Lookup Errors
    NOT_FOUND = "NOT_FOUND"

    # Storage Errors
    STORAGE_UNAVAILABLE = "STORAGE_UNAVAILABLE"
    STORAGE_QUOTA_EXCEEDED = "STORAGE_QUOTA_EXCEEDED"
    CACHE_CORRUPTED = "CACHE_CORRUPTED"
    CACHE_SERIALIZATION_ERROR = "CACHE_SERIALIZATION_ERROR"

    # Compression Errors
    COMPRESSION_FAILURE = "COMPRESSION_FAILURE"
    INVALID_IMAGE = "INVALID_IMAGE"

    # Configuration Errors
    CONFIG_ERROR = "CONFIG_ERROR"
    CONFIG_MISSING = "CONFIG_MISSING"

    # Application Errors
    APPLICATION_ERROR = "APPLICATION_ERROR"
    OPERATION_CANCELLED = "OPERATION_CANCELLED"
    CLI_UNEXPECTED_ERROR = "CLI_UNEXPECTED_ERROR"


def _coerce_primitives(value: Any | None) -> dict[str, PrimitiveContextValue] | None:
    """Coerce additional_data values to primitives.

    Converts Path and Enum to primitive types.

    Args:
        value: Input dictionary or None

    Returns:
        Dictionary with primitive values only, or None

    Raises:
        TypeError: If value is not a dict or contains unconvertible types
    """
    if value is None:
        return None

    if not isinstance(value, dict):
        error_msg = f"additional_data must be dict, got {type(value).__name__}"
        raise TypeError(error_msg)

    coerced: dict[str, PrimitiveContextValue] = {}
    for key, val in value.items():
        if isinstance(val, (str, int, float, bool)):
            coerced[key] = val
        elif isinstance(val, Path):
            coerced[key] = str(val)
        elif isinstance(val, Enum):
            coerced[key] = val.value
        else:
            error_msg = (
                f"Cannot coerce {type(val).__name__} to primitive type. "
                f"Only str, int, float, bool, Path, Enum are allowed."
            )
            raise TypeError(error_msg)

    return coerced


@dataclass(frozen=True)
class ErrorContext:
    """Context information for errors.

    Only primitive types (str, int, float, bool) are allowed in
    additional_data so the context is always safe to serialize.

    Attributes:
        operation: Optional operation name that caused the error
        key: Optional cache key or card id involved
        additional_data: Optional dict with primitive values only
    """

    operation: str | None = None
    key: str | None = None
    additional_data: dict[str, PrimitiveContextValue] | None = None

    def __post_init__(self) -> None:
        """Post-initialization validation and coercion."""
        if self.additional_data is not None:
            coerced = _coerce_primitives(self.additional_data)
            object.__setattr__(self, "additional_data", coerced)

    def safe_dict(self) -> dict[str, Any]:
        """Export context as dict, always including additional_data."""
        data: dict[str, Any] = {}
        if self.operation is not None:
            data["operation"] = self.operation
        if self.key is not None:
            data["key"] = self.key
        data["additional_data"] = dict(self.additional_data or {})
        return data


class CardShuffleError(Exception):
    """Base exception class for all cardshuffle errors."""

    default_code: ErrorCode = ErrorCode.APPLICATION_ERROR

    def __init__(
        self,
        message: str,
        code: ErrorCode | None = None,
        context: ErrorContext | None = None,
        original_error: Exception | None = None,
    ) -> None:
        """Initialize CardShuffleError.

        Args:
            message: Human-readable error message
            code: Error code from ErrorCode enum, defaults to the class code
            context: Additional context information
            original_error: Original exception that caused this error
        """
        self.code = code or self.default_code
        self.message = message
        self.context = context or ErrorContext()
        self.original_error = original_error
        super().__init__(f"{self.code.value}: {message}")

    def __str__(self) -> str:
        """Return string representation of the error."""
        return f"{self.code.value}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging and JSON output."""
        return {
            "code": self.code.value,
            "message": self.message,
            "context": self.context.safe_dict(),
            "original_error": str(self.original_error) if self.original_error else None,
        }


class DomainError(CardShuffleError):
    """Domain-specific errors.

    These errors occur when business rules are violated, for example
    a card without an image or a link.
    """


class InfrastructureError(CardShuffleError):
    """Infrastructure-related errors.

    These errors occur when interacting with external systems like
    the remote collection API, the local cache medium or the image codec.
    """


class NetworkError(InfrastructureError):
    """Remote collection API unreachable or returned a non-success status."""

    default_code = ErrorCode.NETWORK_ERROR

    def __init__(
        self,
        message: str,
        code: ErrorCode | None = None,
        context: ErrorContext | None = None,
        original_error: Exception | None = None,
        status: int | None = None,
    ) -> None:
        super().__init__(message, code, context, original_error)
        self.status = status


class ValidationError(DomainError):
    """Required card fields are missing or malformed."""

    default_code = ErrorCode.VALIDATION_ERROR


class NotFoundError(DomainError):
    """Mutation target id is absent on the server."""

    default_code = ErrorCode.NOT_FOUND


class StorageUnavailable(InfrastructureError):
    """Local cache medium could not be read or written.

    Informational only: callers degrade to a cache miss.
    """

    default_code = ErrorCode.STORAGE_UNAVAILABLE


class CompressionFailure(InfrastructureError):
    """Raw image payload could not be compressed."""

    default_code = ErrorCode.COMPRESSION_FAILURE


class ApplicationError(CardShuffleError):
    """Application-level errors (configuration, command handling)."""


# Convenience functions for common error scenarios
def create_validation_error(
    message: str,
    field: str | None = None,
    operation: str | None = None,
) -> ValidationError:
    """Create a validation error with context."""
    additional_data: dict[str, PrimitiveContextValue] | None = (
        {"field": field} if field else None
    )
    context = ErrorContext(operation=operation, additional_data=additional_data)
    return ValidationError(message, ErrorCode.MISSING_REQUIRED_FIELD, context)


def create_config_error(
    message: str,
    config_key: str | None = None,
    original_error: Exception | None = None,
) -> ApplicationError:
    """Create a configuration error with context."""
    context = ErrorContext(operation="load_config", key=config_key)
    return ApplicationError(message, ErrorCode.CONFIG_ERROR, context, original_error)
