"""
Custom exception classes for the sync service.

These exceptions are caught by global exception handlers in exception_handlers.py,
providing consistent error responses across all API endpoints.

Usage:
    from inline_sync.exceptions import UnknownJobError, NoCachedBatchError

    # In coordinator code - just raise, the handler builds the response
    raise UnknownJobError("stripe_prices")  # 400: "Sync job 'stripe_prices' not found"
    raise NoCachedBatchError()              # 400: "No cached batch. Fetch items first."
"""


class AppException(Exception):
    """
    Base exception class for application-level errors.

    All custom exceptions should inherit from this class.
    The global exception handler will catch these and return
    appropriate HTTP responses.

    Attributes:
        message: Human-readable error message
        status_code: HTTP status code to return
        error_code: Machine-readable error code for client handling
    """

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: str | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code or f"ERR_{status_code}"
        super().__init__(message)


# =============================================================================
# Access
# =============================================================================

class AuthenticationError(AppException):
    """Caller identity missing or invalid (401)."""

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(
            message=message,
            status_code=401,
            error_code="NOT_AUTHENTICATED",
        )


class AuthUnavailableError(AppException):
    """
    Identity provider unreachable (503).

    Raised when token verification fails for network reasons, so the
    client can tell "try again" apart from "log in again".
    """

    def __init__(self, provider: str = "Auth provider"):
        super().__init__(
            message=f"{provider} unavailable. Try again later.",
            status_code=503,
            error_code="AUTH_UNAVAILABLE",
        )


class PermissionDeniedError(AppException):
    """Caller lacks the job's capability (403)."""

    def __init__(self):
        super().__init__(
            message="You do not have permission to perform this action.",
            status_code=403,
            error_code="FORBIDDEN",
        )


# =============================================================================
# Configuration errors
# =============================================================================

class UnknownJobError(AppException):
    """
    Job id does not resolve to a registered sync job (400).

    Usage:
        raise UnknownJobError("stripe_prices")
    """

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(
            message=f"Sync job '{job_id}' not found",
            status_code=400,
            error_code="UNKNOWN_JOB",
        )


class MissingRetrievalError(AppException):
    """Job was registered without a retrieval function (500)."""

    def __init__(self, job_id: str):
        super().__init__(
            message=f"No retrieval function defined for sync job '{job_id}'",
            status_code=500,
            error_code="MISSING_RETRIEVAL",
        )


class MissingProcessingError(AppException):
    """Job was registered without a processing function (500)."""

    def __init__(self, job_id: str):
        super().__init__(
            message=f"No processing function defined for sync job '{job_id}'",
            status_code=500,
            error_code="MISSING_PROCESSING",
        )


# =============================================================================
# Source errors
# =============================================================================

class RetrievalFailedError(AppException):
    """
    Retrieval function raised (500).

    The underlying message is passed through verbatim.
    """

    def __init__(self, message: str):
        super().__init__(
            message=message or "Retrieval failed",
            status_code=500,
            error_code="RETRIEVAL_FAILED",
        )


class MalformedResultError(AppException):
    """Retrieval function returned something without an item list (500)."""

    def __init__(self, reason: str | None = None):
        message = "Retrieval function returned an invalid result"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message=message,
            status_code=500,
            error_code="MALFORMED_RESULT",
        )


# =============================================================================
# Protocol sequencing
# =============================================================================

class NoCachedBatchError(AppException):
    """
    Process called without a live cached batch (400).

    Either fetch was never called for this caller, the page was already
    finished, or the entry expired.
    """

    def __init__(self):
        super().__init__(
            message="No cached batch. Fetch items first.",
            status_code=400,
            error_code="NO_CACHED_BATCH",
        )
