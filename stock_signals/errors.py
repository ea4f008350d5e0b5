"""
Exception taxonomy for the signal pipeline.

Each class carries the attributes a caller needs to decide what to do next;
messages are formatted once in ``__init__``.

A malformed generative reply is deliberately absent: the response validator
always falls back to keyword classification and never raises.
"""

from __future__ import annotations

from typing import Optional


class StockSignalsError(RuntimeError):
    """Base class for all pipeline errors."""


class DataUnavailableError(StockSignalsError):
    """Raised when price or fundamental data cannot be fetched or is empty.

    Attributes:
        symbol: The ticker that failed.
        reason: Short description of the failure.
    """

    def __init__(self, symbol: str, reason: str) -> None:
        self.symbol = symbol
        self.reason = reason
        super().__init__(f"Market data unavailable for '{symbol}': {reason}")


class BackendUnavailableError(StockSignalsError):
    """Raised when the generative backend cannot produce a reply.

    Attributes:
        reason:      One of ``invalid_request``, ``invalid_key``,
                     ``model_not_found``, ``rate_limited``, ``server_error``,
                     ``timeout``, ``transport``, ``empty_response``,
                     ``not_configured``.
        status_code: HTTP status when the failure came from a response.
    """

    def __init__(
        self,
        reason: str,
        status_code: Optional[int] = None,
        detail: str = "",
    ) -> None:
        self.reason = reason
        self.status_code = status_code
        self.detail = detail
        status = f" (HTTP {status_code})" if status_code is not None else ""
        suffix = f": {detail}" if detail else ""
        super().__init__(f"Generative backend unavailable [{reason}]{status}{suffix}")


class RecommendationValidationError(StockSignalsError, ValueError):
    """Raised when a recommendation draft lacks required fields.

    Attributes:
        missing_fields: Names of every required field that was missing or falsy.
    """

    def __init__(self, missing_fields: list[str]) -> None:
        self.missing_fields = list(missing_fields)
        super().__init__(
            f"Missing required recommendation fields: {', '.join(self.missing_fields)}"
        )


class RecommendationNotFoundError(StockSignalsError, LookupError):
    """Raised when a recommendation id does not exist."""

    def __init__(self, recommendation_id: int) -> None:
        self.recommendation_id = recommendation_id
        super().__init__(f"Recommendation {recommendation_id} not found.")


class InvalidTransitionError(StockSignalsError):
    """Raised when an explicit status change targets a terminal recommendation.

    Attributes:
        recommendation_id: The record that was asked to move.
        current_status:    Its (terminal) status.
        requested_status:  The status the caller asked for.
    """

    def __init__(
        self, recommendation_id: int, current_status: str, requested_status: str
    ) -> None:
        self.recommendation_id = recommendation_id
        self.current_status = current_status
        self.requested_status = requested_status
        super().__init__(
            f"Recommendation {recommendation_id} is already '{current_status}'; "
            f"cannot move to '{requested_status}'."
        )


class PersistenceError(StockSignalsError):
    """Raised when a recommendation write fails at the storage layer."""

    def __init__(self, operation: str, cause: Exception) -> None:
        self.operation = operation
        self.cause = cause
        super().__init__(f"Persistence failure during {operation}: {cause}")
