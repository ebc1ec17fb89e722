"""
Tests for error classification.
"""

import pytest
from pydantic import BaseModel, ValidationError as PydanticValidationError

from src.core.errors import (
    AuctionNotFoundError,
    BrokerUnavailableError,
    ConcurrencyConflictError,
    ErrorCategory,
    GatewayTimeoutError,
    NegativeMileageError,
    OutboxError,
    ProhibitedModelError,
    ProjectionNotReadyError,
    classify_exception,
)


class _Strict(BaseModel):
    year: int


class TestClassifyException:
    """Recovery category per exception."""

    @pytest.mark.parametrize("exc", [
        BrokerUnavailableError("down"),
        ConcurrencyConflictError("a1"),
        ProjectionNotReadyError("a1", "AuctionUpdated"),
        GatewayTimeoutError("a1", 5.0),
    ])
    def test_transient_errors(self, exc):
        """Infrastructure errors are TRANSIENT."""
        assert classify_exception(exc) == ErrorCategory.TRANSIENT
        assert exc.is_retryable is True

    @pytest.mark.parametrize("exc", [
        ProhibitedModelError("Foo"),
        NegativeMileageError(-5),
        AuctionNotFoundError("a1"),
    ])
    def test_business_rule_errors(self, exc):
        """Rule violations are BUSINESS_RULE."""
        assert classify_exception(exc) == ErrorCategory.BUSINESS_RULE
        assert exc.is_retryable is False

    def test_pydantic_validation_is_business_rule(self):
        """Contract mismatches are BUSINESS_RULE."""
        with pytest.raises(PydanticValidationError) as info:
            _Strict(year="not-a-year")
        assert classify_exception(info.value) == ErrorCategory.BUSINESS_RULE

    def test_everything_else_is_unknown(self):
        """Anything unrecognised, outbox misuse included, is UNKNOWN."""
        assert classify_exception(RuntimeError("boom")) == ErrorCategory.UNKNOWN
        assert classify_exception(OutboxError("misuse")) == ErrorCategory.UNKNOWN

    def test_error_context_is_kept(self):
        """Errors keep their fields and context."""
        exc = ProhibitedModelError("Foo")
        assert exc.model == "Foo"
        assert exc.context == {"model": "Foo"}
        assert "Foo" in exc.message
