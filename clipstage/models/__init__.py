from clipstage.models.app_state import AppState
from clipstage.models.base import Base

__all__ = [
    "Base",
    "AppState",
]
