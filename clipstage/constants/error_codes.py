"""Error codes dictionary for the control API.

Single source of truth for error codes, their retryability and the action an
operator (or a chat bot driving the API) should take next.
"""

from typing import TypedDict


class ErrorCodeSpec(TypedDict, total=False):
    """Specification for an error code."""

    retryable: bool
    suggested_action: str
    suggested_endpoint: str


ERROR_CODES: dict[str, ErrorCodeSpec] = {
    # ==========================================================================
    # Request errors (user-correctable)
    # ==========================================================================
    "INVALID_REFERENCE": {
        "retryable": False,
        "suggested_action": "fix_input",
    },
    "VALIDATION_ERROR": {
        "retryable": False,
        "suggested_action": "fix_input",
    },
    # ==========================================================================
    # Resolution misses (not failures)
    # ==========================================================================
    "CLIP_NOT_FOUND": {
        "retryable": False,
        "suggested_action": "refine_search",
    },
    "NO_REPLAY_AVAILABLE": {
        "retryable": False,
        "suggested_action": "play_clip",
        "suggested_endpoint": "POST /api/play",
    },
    "APPROVAL_NOT_FOUND": {
        "retryable": False,
    },
    "CLIP_QUARANTINED": {
        "retryable": False,
        "suggested_action": "choose_other_clip",
    },
    # ==========================================================================
    # Upstream errors
    # ==========================================================================
    "UPSTREAM_UNAVAILABLE": {
        "retryable": True,
        "suggested_action": "retry_later",
    },
    "UPSTREAM_REJECTED": {
        "retryable": False,
    },
    "CREDENTIAL_EXPIRED": {
        "retryable": False,
        "suggested_action": "reauthorize",
    },
    # ==========================================================================
    # Local surface / hosting errors
    # ==========================================================================
    "COMPOSITION_SURFACE_UNREADY": {
        "retryable": True,
        "suggested_action": "check_obs_connection",
        "suggested_endpoint": "GET /health",
    },
    "HOSTING_FAILURE": {
        "retryable": False,
        "suggested_action": "free_port",
    },
    "INTERNAL_ERROR": {
        "retryable": True,
        "suggested_action": "retry",
    },
}


def get_error_spec(code: str) -> ErrorCodeSpec:
    """Get error specification by code.

    Returns empty dict if code not found (safe default).
    """
    return ERROR_CODES.get(code, {})


def is_retryable(code: str) -> bool:
    return get_error_spec(code).get("retryable", False)
