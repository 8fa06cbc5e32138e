"""Tests for the error hierarchy and Result types."""

from __future__ import annotations

from pathlib import Path

import pytest

from cardshuffle.shared.errors import (
    CardShuffleError,
    CompressionFailure,
    DomainError,
    ErrorCode,
    ErrorContext,
    InfrastructureError,
    NetworkError,
    NotFoundError,
    StorageUnavailable,
    ValidationError,
    create_config_error,
    create_validation_error,
)
from cardshuffle.shared.result import Failure, Success, capture, capture_async


class TestErrorContext:
    def test_additional_data_is_coerced(self):
        context = ErrorContext(
            operation="op",
            additional_data={"path": Path("/tmp/x"), "code": ErrorCode.NOT_FOUND, "n": 1},
        )
        assert context.additional_data == {"path": "/tmp/x", "code": "NOT_FOUND", "n": 1}

    def test_non_primitive_rejected(self):
        with pytest.raises(TypeError):
            ErrorContext(additional_data={"bad": object()})

    def test_safe_dict(self):
        assert ErrorContext(key="k").safe_dict() == {"key": "k", "additional_data": {}}


class TestErrorHierarchy:
    """Test default codes and classification."""

    @pytest.mark.parametrize(
        ("error_cls", "base", "code"),
        [
            (NetworkError, InfrastructureError, ErrorCode.NETWORK_ERROR),
            (StorageUnavailable, InfrastructureError, ErrorCode.STORAGE_UNAVAILABLE),
            (CompressionFailure, InfrastructureError, ErrorCode.COMPRESSION_FAILURE),
            (ValidationError, DomainError, ErrorCode.VALIDATION_ERROR),
            (NotFoundError, DomainError, ErrorCode.NOT_FOUND),
        ],
    )
    def test_default_codes(self, error_cls, base, code):
        error = error_cls("message")
        assert isinstance(error, base)
        assert error.code == code
        assert str(error) == f"{code.value}: message"

    def test_network_error_status(self):
        error = NetworkError("bad gateway", ErrorCode.API_SERVER_ERROR, status=502)
        assert error.status == 502
        assert error.code == ErrorCode.API_SERVER_ERROR

    def test_to_dict(self):
        cause = OSError("disk")
        error = StorageUnavailable(
            "down", context=ErrorContext(operation="w"), original_error=cause
        )
        assert error.to_dict() == {
            "code": "STORAGE_UNAVAILABLE",
            "message": "down",
            "context": {"operation": "w", "additional_data": {}},
            "original_error": "disk",
        }

    def test_factories(self):
        error = create_validation_error("A link is required", "target_link", "create_card")
        assert error.code == ErrorCode.MISSING_REQUIRED_FIELD
        assert error.context.additional_data == {"field": "target_link"}

        config_error = create_config_error("broken", "app.toml", ValueError("x"))
        assert config_error.code == ErrorCode.CONFIG_ERROR
        assert config_error.context.key == "app.toml"


class TestResult:
    def test_success(self):
        result = Success(3)
        assert result.ok
        assert result.unwrap() == 3
        assert result.unwrap_or(0) == 3

    def test_failure(self):
        error = NotFoundError("gone")
        result = Failure.from_error(error)
        assert not result.ok
        assert result.code == ErrorCode.NOT_FOUND
        assert result.unwrap_or(0) == 0
        with pytest.raises(NotFoundError):
            result.unwrap()

    def test_failure_without_error(self):
        with pytest.raises(CardShuffleError):
            Failure(ErrorCode.APPLICATION_ERROR, "x").unwrap()

    def test_capture(self):
        def boom():
            raise ValidationError("no")

        assert capture(lambda: 1) == Success(1)
        assert capture(boom).code == ErrorCode.VALIDATION_ERROR

    def test_capture_does_not_hide_bugs(self):
        def bug():
            raise KeyError("x")

        with pytest.raises(KeyError):
            capture(bug)

    @pytest.mark.asyncio
    async def test_capture_async(self):
        async def fails():
            raise NetworkError("offline")

        result = await capture_async(fails)
        assert isinstance(result, Failure)
        assert result.code == ErrorCode.NETWORK_ERROR
