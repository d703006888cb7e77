from pydantic import BaseModel


class ErrorInfo(BaseModel):
    code: str
    message: str  # User-facing text, never internal detail
    retryable: bool = False
    suggested_action: str | None = None
    suggested_endpoint: str | None = None


class ErrorResponse(BaseModel):
    error: ErrorInfo
