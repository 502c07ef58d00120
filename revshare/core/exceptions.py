"""
Typed error outcomes of the revenue-share engine.

Every error here is recoverable: services raise them, the request's unit of
work is rolled back, and the API layer renders ``code``/``detail`` verbatim.
Storage outages are not modelled here; they surface as SQLAlchemy errors.
"""
from typing import Any, Dict, Optional


class RevenueShareError(Exception):
    """Base class for all engine errors."""

    code: str = "REVENUE_SHARE_ERROR"
    status_code: int = 400

    def __init__(self, detail: str, **context: Any):
        super().__init__(detail)
        self.detail = detail
        self.context: Dict[str, Any] = context

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.code, "detail": self.detail}
        body.update({k: v for k, v in self.context.items() if v is not None})
        return body


class ConfigInvariantViolation(RevenueShareError):
    """Snapshot percentages would over-collect or drive a share negative."""

    code = "CONFIG_INVARIANT_VIOLATION"
    status_code = 422


class AllocationConflict(RevenueShareError):
    """Reversal attempted against a share that payouts already reference."""

    code = "ALLOCATION_CONFLICT"
    status_code = 409


class InsufficientBalance(RevenueShareError):
    """Requested or paid amount exceeds what the party can withdraw."""

    code = "INSUFFICIENT_BALANCE"
    status_code = 422

    def __init__(self, detail: str, requested: int = 0, available: int = 0, **context: Any):
        super().__init__(detail, requested=requested, available=available, **context)
        self.requested = requested
        self.available = available


class OverAllocation(RevenueShareError):
    """Allocation would pay out more of a share than was earned."""

    code = "OVER_ALLOCATION"
    status_code = 409


class InvalidTransition(RevenueShareError):
    """Disbursement state-machine guard failure."""

    code = "INVALID_TRANSITION"
    status_code = 400

    def __init__(self, detail: str, guard: str, **context: Any):
        super().__init__(detail, guard=guard, **context)
        self.guard = guard


class NotFound(RevenueShareError):
    code = "NOT_FOUND"
    status_code = 404


class TransactionConflict(RevenueShareError):
    """A redelivered event disagrees with the stored, immutable transaction."""

    code = "TRANSACTION_CONFLICT"
    status_code = 409


def error_payload(exc: RevenueShareError, path: Optional[str] = None) -> Dict[str, Any]:
    body = exc.to_dict()
    if path:
        body["path"] = path
    return body
