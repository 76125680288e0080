"""
Summarify Backend — Custom Exception Hierarchy
=================================================

What:  Application-specific exceptions for every failure the ledger core reports.
How:   Each exception carries a message and a context dict. Global exception
       handlers (registered in main.py) turn them into structured JSON
       responses with the matching HTTP status code.
Who:   Raised by services; caught by the handlers in main.py.

Exception Hierarchy:
    SummarifyError (base)
    ├── ValidationError              → 400 Bad Request (no state change)
    ├── AuthenticationError          → 401 Unauthorized
    ├── InsufficientCreditsError     → 402 Payment Required (no state change)
    ├── PermissionDeniedError        → 403 Forbidden
    ├── NotFoundError                → 404 Not Found
    ├── ConflictError                → 409 Conflict
    ├── TransientDependencyError     → 503 Service Unavailable
    │   ├── LLMServiceError
    │   ├── CircuitBreakerOpenError
    │   └── PaymentProviderError
    ├── LedgerInvariantError         → 500 (cached balance diverged from the log)
    └── DatabaseError                → 500 Internal Server Error (rolled back)

Every mutating failure keeps enough detail in `context` (balance, required
amount, job / intent identifiers) for a client to decide whether to retry,
top up, or give up.
"""

from typing import Any, Dict, Optional


class SummarifyError(Exception):
    """
    Base exception for all Summarify application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Structured detail; returned as `details` for 4xx errors,
                  logged only for 5xx errors
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(SummarifyError):
    """
    Raised when client input fails a business rule.

    HTTP:    400 Bad Request
    Example: negative meeting duration, page < 1, limit above the cap,
             a webhook payload with a bad signature.
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class AuthenticationError(SummarifyError):
    """No trusted account identity was supplied with the request (401)."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message=message)


class PermissionDeniedError(SummarifyError):
    """The caller is authenticated but may not use an admin operation (403)."""

    def __init__(self, message: str = "You do not have permission to perform this action"):
        super().__init__(message=message)


class InsufficientCreditsError(SummarifyError):
    """
    Raised when a spend would take the balance below zero.

    HTTP:    402 Payment Required
    Raised before any row is written; the transaction is rolled back.

    Example response:
        {
            "error": "insufficient_credits",
            "message": "Insufficient credits: 1 required, 0 available",
            "details": {"current": 0, "required": 1, "shortfall": 1}
        }
    """

    def __init__(
        self,
        current: int,
        required: int,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx.update(
            {
                "current": current,
                "required": required,
                "shortfall": max(0, required - current),
            }
        )
        super().__init__(
            message=f"Insufficient credits: {required} required, {current} available",
            context=ctx,
        )
        self.current = current
        self.required = required


class NotFoundError(SummarifyError):
    """
    Raised when a referenced account, transcript, job, product or intent is absent.

    HTTP:    404 Not Found
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class ConflictError(SummarifyError):
    """
    Raised when the request collides with existing state.

    HTTP:    409 Conflict
    When:    A summary is already pending/completed for a transcript, a job
             was already refunded, a refund targets a job that did not fail.
    """

    def __init__(
        self,
        message: str = "The request conflicts with the current state",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class TransientDependencyError(SummarifyError):
    """
    Base for failures of an external collaborator (AI, payment processor).

    HTTP:    503 Service Unavailable
    A debit that already committed is never rolled back because of this
    error; the affected job is marked `failed` instead.
    """

    def __init__(
        self,
        message: str = "An upstream service is temporarily unavailable",
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if retry_after:
            ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class LLMServiceError(TransientDependencyError):
    """
    Raised when the AI completion service (Gemini) fails.

    Covers rate limits, content-filter blocks, empty responses and transport
    errors once the adapter's own retry policy is exhausted.
    """

    def __init__(
        self,
        message: str = "AI summary service is temporarily unavailable",
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, retry_after=retry_after, context=context)


class CircuitBreakerOpenError(TransientDependencyError):
    """
    Raised when the AI adapter's circuit breaker is OPEN.

    State machine:
        CLOSED → (threshold failures) → OPEN → (recovery timeout) → HALF_OPEN
        HALF_OPEN → success → CLOSED, failure → OPEN
    """

    def __init__(
        self,
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            "AI service is temporarily unavailable due to repeated failures. "
            f"The service will automatically retry in approximately {recovery_time} seconds."
        )
        super().__init__(message=message, retry_after=recovery_time, context=context)
        self.recovery_time = recovery_time


class PaymentProviderError(TransientDependencyError):
    """Raised when the payment processor (Stripe) rejects or cannot serve a call."""

    def __init__(
        self,
        message: str = "Payment provider is temporarily unavailable",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class LedgerInvariantError(SummarifyError):
    """
    Raised when an account's cached balance differs from the sum of its ledger.

    HTTP:    500 Internal Server Error
    This is a correctness bug, never an acceptable drift.
    """

    def __init__(self, account_id: str, cached: int, ledger: int):
        super().__init__(
            message="Account balance does not match its ledger",
            context={"account_id": account_id, "cached": cached, "ledger": ledger},
        )
        self.account_id = account_id
        self.cached = cached
        self.ledger = ledger


class DatabaseError(SummarifyError):
    """
    Raised when a database operation fails unexpectedly.

    HTTP:    500 Internal Server Error
    The enclosing transaction is rolled back; nothing is persisted. The
    client only ever sees a generic message.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
