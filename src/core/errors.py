"""
Core Error Taxonomy

Exception hierarchy shared by the outbox relay, broker, consumers and
gateway. Every error carries an ErrorCategory that decides how it is
recovered:

    TRANSIENT:      broker/store unreachable, lost optimistic race.
                    Retried by broker redelivery or the next relay tick.
    BUSINESS_RULE:  malformed or semantically invalid payload.
                    Exhausts redelivery, dead-lettered, corrected when a
                    correction rule exists, escalated otherwise.
    UNKNOWN:        anything unclassified. Escalated, never retried
                    automatically.
"""

from enum import Enum
from typing import Optional

from pydantic import ValidationError as PydanticValidationError


class ErrorCategory(str, Enum):
    """Classification used for retry and compensation decisions."""
    TRANSIENT = "transient"
    BUSINESS_RULE = "business_rule"
    UNKNOWN = "unknown"


class CoreError(Exception):
    """
    Base exception for consistency-core errors.

    Attributes:
        message: Human-readable error description
        category: Error classification
        context: Additional context for logs and fault records
    """

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(self, message: str, context: Optional[dict] = None):
        self.message = message
        self.context = context or {}
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        return self.category == ErrorCategory.TRANSIENT


class OutboxError(CoreError):
    """Outbox misuse, e.g. appending outside a transaction."""
    pass


# =============================================================================
# Transient errors
# =============================================================================


class TransientError(CoreError):
    """Base class for errors that are expected to clear on retry."""

    category = ErrorCategory.TRANSIENT


class BrokerUnavailableError(TransientError):
    """The broker could not accept a publish."""
    pass


class ConcurrencyConflictError(TransientError):
    """An optimistic compare-and-swap lost against a concurrent writer."""

    def __init__(self, aggregate_id: str, message: Optional[str] = None):
        super().__init__(
            message or f"Concurrent modification of aggregate '{aggregate_id}'",
            {"aggregate_id": aggregate_id},
        )
        self.aggregate_id = aggregate_id


class ProjectionNotReadyError(TransientError):
    """An event arrived for a projection row that does not exist yet."""

    def __init__(self, item_id: str, message_type: str):
        super().__init__(
            f"Projection item '{item_id}' not present for {message_type}",
            {"item_id": item_id, "message_type": message_type},
        )
        self.item_id = item_id


class GatewayTimeoutError(TransientError):
    """The bid validation point query did not answer in time."""

    def __init__(self, auction_id: str, timeout: float):
        super().__init__(
            f"Auction lookup for '{auction_id}' timed out after {timeout}s",
            {"auction_id": auction_id, "timeout": timeout},
        )
        self.auction_id = auction_id
        self.timeout = timeout


# =============================================================================
# Business-rule errors
# =============================================================================


class BusinessRuleError(CoreError):
    """Base class for payload or domain-rule violations."""

    category = ErrorCategory.BUSINESS_RULE


class PayloadValidationError(BusinessRuleError):
    """A message payload does not match its contract."""

    def __init__(self, message_type: str, detail: str):
        super().__init__(
            f"Invalid {message_type} payload: {detail}",
            {"message_type": message_type},
        )
        self.message_type = message_type


class ProhibitedModelError(BusinessRuleError):
    """The item model is on the prohibited list."""

    def __init__(self, model: str):
        super().__init__(f"Cannot sell cars with model '{model}'", {"model": model})
        self.model = model


class NegativeMileageError(BusinessRuleError):
    """The item mileage is negative."""

    def __init__(self, mileage: int):
        super().__init__(f"Mileage cannot be negative: {mileage}", {"mileage": mileage})
        self.mileage = mileage


class AuctionNotFoundError(BusinessRuleError):
    """The auction aggregate does not exist in the authority store."""

    def __init__(self, auction_id: str):
        super().__init__(f"Auction '{auction_id}' not found", {"auction_id": auction_id})
        self.auction_id = auction_id


class AuctionForbiddenError(BusinessRuleError):
    """The acting user does not own the auction."""

    def __init__(self, auction_id: str, user: str):
        super().__init__(
            f"User '{user}' may not modify auction '{auction_id}'",
            {"auction_id": auction_id, "user": user},
        )
        self.auction_id = auction_id
        self.user = user


class BidRejectedError(BusinessRuleError):
    """The bid cannot be placed at all (as opposed to TooLow/Finished)."""
    pass


def classify_exception(exc: BaseException) -> ErrorCategory:
    """Map any exception to its recovery category."""
    if isinstance(exc, CoreError):
        return exc.category
    if isinstance(exc, PydanticValidationError):
        return ErrorCategory.BUSINESS_RULE
    return ErrorCategory.UNKNOWN
