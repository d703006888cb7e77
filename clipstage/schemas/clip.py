"""Clip value types shared by the resolver, the playback engine and the API."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ClipDescriptor(BaseModel):
    """One concrete clip. Immutable; a re-fetch produces a new descriptor."""

    model_config = ConfigDict(frozen=True)

    id: str
    url: str
    title: str = ""
    broadcaster_name: str = ""
    broadcaster_id: str = ""
    creator_name: str = ""
    game_id: str = ""
    duration: float = Field(0.0, ge=0, description="Clip length in seconds")
    is_featured: bool = False
    created_at: datetime | None = None
    thumbnail_url: str = ""


class SearchFilter(BaseModel):
    """Per-request constraints for random clip selection."""

    model_config = ConfigDict(frozen=True)

    featured_only: bool = False
    max_duration_seconds: int = 30
    max_age_days: int = 30

    def accepts(self, clip: ClipDescriptor) -> bool:
        if self.featured_only and not clip.is_featured:
            return False
        return clip.duration <= self.max_duration_seconds

    def without_featured(self) -> "SearchFilter":
        return self.model_copy(update={"featured_only": False})


class ClipPage(BaseModel):
    """One page of a cursor-paginated clip listing."""

    clips: list[ClipDescriptor] = Field(default_factory=list)
    cursor: str | None = None
