"""Custom exceptions for clipstage.

Each exception carries a machine-readable code, an HTTP status for the control
API and a user-facing message that is kept apart from the log detail
(``str(exc)``).
"""

from clipstage.constants import messages
from clipstage.constants.error_codes import get_error_spec
from clipstage.schemas.envelope import ErrorInfo


class ClipstageError(Exception):
    """Base exception for all clipstage errors."""

    code: str = "INTERNAL_ERROR"
    status_code: int = 500
    message: str = "An unexpected error occurred"
    user_message: str = "Something went wrong."

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        status_code: int | None = None,
        user_message: str | None = None,
    ):
        self.message = message or self.__class__.message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        if user_message:
            self.user_message = user_message
        super().__init__(self.message)

    def to_error_info(self) -> ErrorInfo:
        """Convert exception to ErrorInfo for API response."""
        spec = get_error_spec(self.code)
        return ErrorInfo(
            code=self.code,
            message=self.user_message,
            retryable=spec.get("retryable", False),
            suggested_action=spec.get("suggested_action"),
            suggested_endpoint=spec.get("suggested_endpoint"),
        )


# =============================================================================
# Request Errors (400)
# =============================================================================


class InvalidReferenceError(ClipstageError):
    """No clip identifier could be extracted from the input."""

    code = "INVALID_REFERENCE"
    status_code = 400
    message = "Invalid clip reference"
    user_message = messages.INVALID_URL_MESSAGE

    def __init__(self, reference: str | None = None):
        super().__init__(f"Invalid clip reference: {reference!r}")
        self.reference = reference


# =============================================================================
# Resolution Misses (404)
# =============================================================================


class ClipNotFoundError(ClipstageError):
    """Resolution found nothing. Expected outcome, logged at warning level."""

    code = "CLIP_NOT_FOUND"
    status_code = 404
    message = "Clip not found"
    user_message = messages.NO_MATCH_MESSAGE

    def __init__(self, target: str | None = None):
        message = f"Clip not found: {target}" if target else self.message
        super().__init__(message)


class NoReplayAvailableError(ClipstageError):
    code = "NO_REPLAY_AVAILABLE"
    status_code = 404
    message = "No clip has been played yet"
    user_message = messages.NO_REPLAY_MESSAGE


class ApprovalNotFoundError(ClipstageError):
    code = "APPROVAL_NOT_FOUND"
    status_code = 404
    message = "Approval request not found"
    user_message = "That approval request has already expired."

    def __init__(self, request_id: str | None = None):
        message = f"Approval request not found: {request_id}" if request_id else self.message
        super().__init__(message)


# =============================================================================
# Conflict Errors (409)
# =============================================================================


class ClipQuarantinedError(ClipstageError):
    """Clip failed to start too many times and is refused."""

    code = "CLIP_QUARANTINED"
    status_code = 409
    message = "Clip is quarantined"
    user_message = "That clip keeps failing to play, try another one."

    def __init__(self, clip_id: str | None = None):
        message = f"Clip is quarantined: {clip_id}" if clip_id else self.message
        super().__init__(message)


# =============================================================================
# Upstream Errors
# =============================================================================


class UpstreamError(ClipstageError):
    """Base class for failures talking to the clip catalog."""

    status_code = 502
    user_message = messages.SERVICE_UNAVAILABLE_MESSAGE


class TransientUpstreamError(UpstreamError):
    """Network fault, 5xx or rate limit. Safe to retry."""

    code = "UPSTREAM_UNAVAILABLE"
    status_code = 503
    message = "Upstream temporarily unavailable"

    def __init__(self, message: str | None = None, *, retry_after: float | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class CredentialExpiredError(UpstreamError):
    """Upstream rejected the access token and no fresh one could be obtained."""

    code = "CREDENTIAL_EXPIRED"
    status_code = 401
    message = "Upstream credential expired"


class UpstreamRequestError(UpstreamError):
    """Upstream rejected the request itself. Retrying would not help."""

    code = "UPSTREAM_REJECTED"
    message = "Upstream rejected the request"


# =============================================================================
# Local Surface / Hosting Errors
# =============================================================================


class CompositionSurfaceUnreadyError(ClipstageError):
    """The OBS scene could not be prepared or verified. Playback is aborted."""

    code = "COMPOSITION_SURFACE_UNREADY"
    status_code = 503
    message = "Composition surface is not ready"
    user_message = messages.SURFACE_UNREADY_MESSAGE

    def __init__(self, step: str | None = None):
        message = f"Composition surface not ready: {step} failed" if step else self.message
        super().__init__(message)
        self.step = step


class HostingError(ClipstageError):
    """The embed listener could not be bound."""

    code = "HOSTING_FAILURE"
    status_code = 500
    message = "Unable to bind the embed listener"
