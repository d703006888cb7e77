"""Embed page and playback control endpoints.

The page endpoints are polled by the OBS browser source; the /api endpoints
are driven by the chat bot and by the page's own content-warning script.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import HTMLResponse, Response

from clipstage.api.deps import Services
from clipstage.constants import messages
from clipstage.exceptions import ClipNotFoundError, UpstreamError
from clipstage.schemas.clip import ClipDescriptor, SearchFilter
from clipstage.schemas.player import (
    ClipInfo,
    ContentWarningRequest,
    ContentWarningResponse,
    MessageResponse,
    PlayClipRequest,
    PlayClipResponse,
    StatusResponse,
)
from clipstage.services.clip_resolver import extract_clip_id
from clipstage.services.container import ServiceContainer
from clipstage.services.embed_page import create_nonce, page_headers, render_page, render_stylesheet

router = APIRouter()
logger = logging.getLogger(__name__)


def _fallback_clip(body: PlayClipRequest, clip_id: str) -> ClipDescriptor:
    return ClipDescriptor(
        id=clip_id,
        url=f"https://clips.twitch.tv/{clip_id}",
        title=body.title or "Unknown Clip",
        creator_name=body.creator_name or "Unknown",
        broadcaster_name=body.broadcaster_name or "Unknown",
        duration=body.duration_seconds if body.duration_seconds > 0 else 30,
        created_at=datetime.now(timezone.utc),
    )


async def _resolve(body: PlayClipRequest, services: ServiceContainer) -> ClipDescriptor:
    """Resolve a play request to one clip.

    Raises:
        InvalidReferenceError: url/clipId has no usable clip id
        ClipNotFoundError: nothing matched
        UpstreamError: catalog unreachable and no fallback metadata supplied
    """
    settings = services.settings
    resolver = services.resolver
    reference = body.url or body.clip_id
    try:
        if reference:
            clip = await resolver.resolve_by_url(reference)
        elif body.query:
            clip = await resolver.search_by_title(body.channel, body.query)
        else:
            search_filter = SearchFilter(
                featured_only=settings.featured_only if body.featured_only is None else body.featured_only,
                max_duration_seconds=body.max_duration_seconds or settings.max_clip_seconds,
                max_age_days=body.max_age_days or settings.clip_age_days,
            )
            clip = await resolver.resolve_random(body.channel, search_filter)
    except UpstreamError as e:
        clip_id = extract_clip_id(reference)
        if clip_id and body.title:
            logger.error(f"Clip lookup for {clip_id} failed ({e}), using request metadata")
            return _fallback_clip(body, clip_id)
        raise

    if clip is None:
        raise ClipNotFoundError(reference or body.query or body.channel)
    return clip


# =============================================================================
# Embed page
# =============================================================================


@router.get("/", response_class=HTMLResponse)
@router.get("/index.html", response_class=HTMLResponse)
async def index(services: Services) -> HTMLResponse:
    settings = services.settings
    host = services.host
    nonce = create_nonce(settings.nonce_length)
    page = render_page(
        host.current_clip,
        nonce,
        game_name=host.game_name,
        width=settings.player_width,
        height=settings.player_height,
    )
    return HTMLResponse(page, headers=page_headers(nonce))


@router.get("/index.css")
async def stylesheet(services: Services) -> Response:
    settings = services.settings
    return Response(
        render_stylesheet(settings.player_width, settings.player_height),
        media_type="text/css",
        headers=page_headers(),
    )


# =============================================================================
# Control API
# =============================================================================


@router.get("/api/status", response_model=StatusResponse)
async def status(services: Services) -> StatusResponse:
    playback = services.playback
    clip = playback.current_clip
    return StatusResponse(
        state=playback.state.value,
        current_clip=ClipInfo.from_descriptor(clip) if clip else None,
        queue_size=playback.queue_size,
    )


@router.post("/api/play", response_model=PlayClipResponse)
async def play(body: PlayClipRequest, services: Services) -> PlayClipResponse:
    try:
        clip = await _resolve(body, services)
    except ClipNotFoundError:
        await services.notifier.send(messages.NO_MATCH_MESSAGE)
        raise
    playback = services.playback
    if body.require_approval:
        playback.submit_with_approval(clip)
        message = "Clip awaiting moderator approval"
    else:
        playback.enqueue(clip)
        message = "Clip enqueued"
    logger.info(f"{message} via API: {clip.id}")
    return PlayClipResponse(message=message, clip=ClipInfo.from_descriptor(clip))


@router.post("/api/replay", response_model=PlayClipResponse)
async def replay(services: Services) -> PlayClipResponse:
    try:
        clip = await services.playback.resolve_last()
    except ClipNotFoundError:
        await services.notifier.send(messages.NO_MATCH_MESSAGE)
        raise
    services.playback.enqueue(clip)
    return PlayClipResponse(message="Replaying last clip", clip=ClipInfo.from_descriptor(clip))


@router.post("/api/stop", response_model=MessageResponse)
async def stop(services: Services) -> MessageResponse:
    await services.playback.stop()
    return MessageResponse(message="Playback stopped")


@router.post("/api/content-warning", response_model=ContentWarningResponse)
async def content_warning(body: ContentWarningRequest, services: Services) -> ContentWarningResponse:
    logger.warning(f"Content warning reported for clip {body.clip_id} via {body.detection_method}")
    automated = await services.adapter.handle_content_warning(body.detection_method)
    return ContentWarningResponse(obs_automation=automated)
