from clipstage.schemas.clip import ClipDescriptor, ClipPage, SearchFilter
from clipstage.schemas.envelope import ErrorInfo, ErrorResponse
from clipstage.schemas.player import (
    ApprovalDecisionRequest,
    ContentWarningRequest,
    PlayClipRequest,
    StatusResponse,
)

__all__ = [
    "ClipDescriptor",
    "ClipPage",
    "SearchFilter",
    "ErrorInfo",
    "ErrorResponse",
    "PlayClipRequest",
    "StatusResponse",
    "ContentWarningRequest",
    "ApprovalDecisionRequest",
]
