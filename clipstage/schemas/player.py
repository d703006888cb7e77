"""Schemas for the player control API.

Field aliases follow the camelCase names the embed page script and existing
chat bot integrations send.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from clipstage.schemas.clip import ClipDescriptor


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class PlayClipRequest(_CamelModel):
    """Enqueue a clip by id/url, or pick one from a channel."""

    clip_id: str | None = Field(None, alias="clipId")
    url: str | None = None
    channel: str | None = None
    query: str | None = Field(None, description="Title search within the channel")
    featured_only: bool | None = Field(None, alias="featuredOnly")
    max_duration_seconds: int | None = Field(None, alias="maxDurationSeconds", gt=0)
    max_age_days: int | None = Field(None, alias="maxAgeDays", gt=0)
    require_approval: bool = Field(False, alias="requireApproval")

    # Optional metadata, used only when the catalog cannot be reached
    title: str | None = None
    creator_name: str | None = Field(None, alias="creatorName")
    broadcaster_name: str | None = Field(None, alias="broadcasterName")
    game_name: str | None = Field(None, alias="gameName")
    duration_seconds: float = Field(30, alias="durationSeconds")

    @model_validator(mode="after")
    def _require_target(self) -> "PlayClipRequest":
        if not (self.clip_id or self.url or self.channel):
            raise ValueError("one of clipId, url or channel is required")
        return self


class ClipInfo(_CamelModel):
    id: str
    url: str
    title: str
    broadcaster_name: str = Field(serialization_alias="broadcasterName")
    creator_name: str = Field(serialization_alias="creatorName")
    game_id: str = Field(serialization_alias="gameId")
    duration: float
    is_featured: bool = Field(serialization_alias="isFeatured")
    thumbnail_url: str = Field(serialization_alias="thumbnailUrl")

    @classmethod
    def from_descriptor(cls, clip: ClipDescriptor) -> "ClipInfo":
        return cls(
            id=clip.id,
            url=clip.url,
            title=clip.title,
            broadcaster_name=clip.broadcaster_name,
            creator_name=clip.creator_name,
            game_id=clip.game_id,
            duration=clip.duration,
            is_featured=clip.is_featured,
            thumbnail_url=clip.thumbnail_url,
        )


class PlayClipResponse(_CamelModel):
    message: str
    clip: ClipInfo | None = None


class StatusResponse(_CamelModel):
    state: str
    current_clip: ClipInfo | None = Field(None, serialization_alias="currentClip")
    queue_size: int = Field(0, serialization_alias="queueSize")


class MessageResponse(BaseModel):
    message: str


class ContentWarningRequest(_CamelModel):
    clip_id: str | None = Field(None, alias="clipId")
    detection_method: str = Field("unknown", alias="detectionMethod")
    timestamp: str | None = None


class ContentWarningResponse(_CamelModel):
    obs_automation: bool = Field(serialization_alias="obsAutomation")


class ApprovalDecisionRequest(BaseModel):
    """Either an explicit decision or a free-text chat reply to evaluate."""

    approved: bool | None = None
    message: str | None = None

    @model_validator(mode="after")
    def _require_decision(self) -> "ApprovalDecisionRequest":
        if self.approved is None and not self.message:
            raise ValueError("approved or message is required")
        return self


class ApprovalDecisionResponse(BaseModel):
    id: str
    decision: str


class CacheSweepResponse(BaseModel):
    purged: int
    remaining: int


class HealthResponse(BaseModel):
    status: str
    version: str
    state: str
    details: dict[str, Any] = Field(default_factory=dict)
