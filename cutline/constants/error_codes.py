"""Error codes dictionary for the render API.

Single source of truth for error codes, their retryability and the
suggested recovery action. Used by the exception handlers to build
machine-readable error responses.
"""

from typing import TypedDict


class ErrorCodeSpec(TypedDict, total=False):
    """Specification for an error code."""

    retryable: bool
    suggested_action: str
    suggested_fix: str


ERROR_CODES: dict[str, ErrorCodeSpec] = {
    # ==========================================================================
    # Composition errors
    # ==========================================================================
    "NO_RENDERABLE_LAYERS": {
        "retryable": True,
        "suggested_action": "wait_for_uploads",
        "suggested_fix": (
            "Add a video or image clip whose asset is reachable (http(s) URL or a "
            "file under a configured media root), or a text clip with non-empty text"
        ),
    },
    "UNRESOLVED_ASSET_REFERENCE": {
        "retryable": False,
    },
    "UNREACHABLE_SOURCE": {
        "retryable": True,
        "suggested_action": "wait_for_uploads",
    },
    # ==========================================================================
    # Engine errors
    # ==========================================================================
    "ENCODER_INVOCATION_FAILED": {
        "retryable": True,
        "suggested_action": "retry_export",
    },
    "CLEANUP_FAILED": {
        "retryable": False,
    },
    # ==========================================================================
    # Generic
    # ==========================================================================
    "VALIDATION_ERROR": {
        "retryable": False,
        "suggested_fix": "Check the project and exportOptions payload against the schema",
    },
    "INTERNAL_ERROR": {
        "retryable": False,
    },
}


def get_error_spec(code: str) -> ErrorCodeSpec:
    """Get error specification by code.

    Args:
        code: The error code

    Returns:
        ErrorCodeSpec with retryable flag and suggested actions
    """
    return ERROR_CODES.get(code, {"retryable": False})


def is_retryable(code: str) -> bool:
    """Check if an error code is retryable."""
    spec = get_error_spec(code)
    return spec.get("retryable", False)
