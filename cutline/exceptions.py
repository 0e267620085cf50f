"""Custom exceptions for the cutline render compiler.

Composition-time problems (unresolved assets, unreachable sources) are
recovered locally by dropping the clip; the classes exist so the skip is
logged with a stable code. Invocation-time problems always reach the caller.
"""

from cutline.constants.error_codes import get_error_spec, is_retryable
from cutline.schemas.envelope import ErrorInfo, ErrorLocation


class CutlineError(Exception):
    """Base exception for all cutline errors."""

    code: str = "INTERNAL_ERROR"
    status_code: int = 500
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        status_code: int | None = None,
        location: ErrorLocation | None = None,
        suggested_fix: str | None = None,
    ):
        self.message = message or self.__class__.message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.location = location
        self.suggested_fix = suggested_fix
        super().__init__(self.message)

    def to_error_info(self) -> ErrorInfo:
        """Convert exception to ErrorInfo for API response."""
        spec = get_error_spec(self.code)
        return ErrorInfo(
            code=self.code,
            message=self.message,
            location=self.location,
            retryable=is_retryable(self.code),
            suggested_action=spec.get("suggested_action"),
            suggested_fix=self.suggested_fix or spec.get("suggested_fix"),
        )


# =============================================================================
# Composition Errors
# =============================================================================


class NoRenderableLayersError(CutlineError):
    """Classification produced zero usable layers."""

    code = "NO_RENDERABLE_LAYERS"
    status_code = 400
    message = "Project has no renderable media (reachable video/image source) or text"


class UnresolvedAssetReferenceError(CutlineError):
    """A clip points at an asset id missing from the project."""

    code = "UNRESOLVED_ASSET_REFERENCE"
    status_code = 400
    message = "Clip references an unknown asset"

    def __init__(self, clip_id: str | None = None, asset_id: str | None = None):
        message = f"Clip {clip_id} references unknown asset: {asset_id}" if clip_id else self.message
        location = ErrorLocation(clip_id=clip_id, asset_id=asset_id) if clip_id else None
        super().__init__(message, location=location)


class UnreachableSourceError(CutlineError):
    """An asset source the engine cannot read (not uploaded yet, blob URL, ...)."""

    code = "UNREACHABLE_SOURCE"
    status_code = 400
    message = "Asset source is not reachable by the media engine"

    def __init__(self, asset_id: str | None = None, source: str | None = None):
        message = f"Asset {asset_id} source is not reachable: {source}" if asset_id else self.message
        location = ErrorLocation(asset_id=asset_id) if asset_id else None
        super().__init__(message, location=location)


# =============================================================================
# Engine Errors
# =============================================================================


class EncoderInvocationError(CutlineError):
    """The external engine process failed."""

    code = "ENCODER_INVOCATION_FAILED"
    status_code = 500
    message = "Media engine failed"

    def __init__(self, detail: str | None = None, *, returncode: int | None = None):
        self.returncode = returncode
        self.detail = detail or ""
        if returncode is not None:
            message = f"FFmpeg exited with code {returncode}"
            if self.detail:
                message += f": {self.detail}"
        else:
            message = f"FFmpeg failed: {self.detail}" if self.detail else self.message
        super().__init__(message)


class CleanupError(CutlineError):
    """A temporary file could not be deleted. Logged, never raised to callers."""

    code = "CLEANUP_FAILED"
    status_code = 500
    message = "Failed to delete temporary file"

    def __init__(self, path: str | None = None, reason: str | None = None):
        message = f"Failed to delete temporary file {path}: {reason}" if path else self.message
        super().__init__(message)
