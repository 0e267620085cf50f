from pydantic import BaseModel


class ErrorLocation(BaseModel):
    field: str | None = None
    clip_id: str | None = None
    track_id: str | None = None
    asset_id: str | None = None


class ErrorInfo(BaseModel):
    code: str
    message: str
    location: ErrorLocation | None = None
    retryable: bool = False
    suggested_action: str | None = None
    suggested_fix: str | None = None  # Human-readable fix suggestion
