"""Turns a chat command argument into one concrete clip.

Three strategies: direct URL/id lookup, random pick from a channel within
widening lookback windows, and fuzzy title search across the channel's whole
catalog. A miss is an expected outcome: the methods return None and log at
warning level.
"""

import logging
import random
import re
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from urllib.parse import urlsplit

from clipstage.exceptions import InvalidReferenceError
from clipstage.schemas.clip import ClipDescriptor, SearchFilter
from clipstage.services.clip_cache import ClipCache
from clipstage.services.twitch_client import CatalogApi

logger = logging.getLogger(__name__)

# Lookback windows in days, narrowest first
LOOKBACK_WINDOWS: tuple[int, ...] = (1, 7, 30, 365)
EXACT_MATCH_SCORE = 0.99
MIN_MATCH_SCORE = 0.5

_TOKEN_SPLIT = re.compile(r"[\s.,!?]+")
_CLIP_ID = re.compile(r"^[A-Za-z0-9_-]+$")


def extract_clip_id(reference: str | None) -> str | None:
    """Last non-empty path segment of a clip URL (or a bare clip id)."""
    if not reference or not reference.strip():
        return None
    path = urlsplit(reference.strip()).path
    segments = [segment.strip() for segment in path.split("/") if segment.strip()]
    if not segments or not _CLIP_ID.match(segments[-1]):
        return None
    return segments[-1]


def tokenize(text: str) -> list[str]:
    return [token for token in _TOKEN_SPLIT.split(text.lower()) if token]


def score_title(query_tokens: list[str], title: str) -> float:
    """Fraction of query tokens found as a substring of some title token."""
    if not query_tokens:
        return 0.0
    title_tokens = tokenize(title)
    if not title_tokens:
        return 0.0
    matched = sum(1 for q in query_tokens if any(q in t for t in title_tokens))
    return matched / len(query_tokens)


def lookback_windows(max_age_days: int) -> list[int | None]:
    """Windows at least as wide as the age floor, then an unbounded (None) window."""
    windows: list[int | None] = [days for days in LOOKBACK_WINDOWS if days >= max_age_days]
    windows.append(None)
    return windows


class ClipResolver:
    def __init__(
        self,
        catalog: CatalogApi,
        cache: ClipCache,
        *,
        max_search_pages: int = 50,
        rng: random.Random | None = None,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._catalog = catalog
        self._cache = cache
        self._max_search_pages = max_search_pages
        self._rng = rng or random.Random()
        self._now = now

    async def resolve_by_url(self, url: str) -> ClipDescriptor | None:
        """Look up the clip named by the URL's last path segment.

        Raises:
            InvalidReferenceError: no clip id could be extracted
        """
        clip_id = extract_clip_id(url)
        if clip_id is None:
            logger.info(f"resolve_by_url: no clip id in {url!r}")
            raise InvalidReferenceError(url)

        clip = await self._catalog.get_clip(clip_id)
        if clip is None:
            logger.warning(f"resolve_by_url: clip {clip_id} not found upstream")
            return None
        logger.info(f"Resolved clip {clip.id} '{clip.title}' by {clip.creator_name}")
        return clip

    async def _broadcaster_id(self, channel: str, op_name: str) -> str | None:
        broadcaster_id = await self._catalog.get_broadcaster_id(channel.strip().lstrip("@").lower())
        if broadcaster_id is None:
            logger.warning(f"{op_name}: channel {channel!r} not found")
        return broadcaster_id

    async def _fetch_window(self, broadcaster_id: str, days: int | None) -> list[ClipDescriptor]:
        ended_at = self._now()
        started_at = ended_at - timedelta(days=days) if days is not None else None
        clips: list[ClipDescriptor] = []
        cursor: str | None = None
        for _ in range(self._max_search_pages):
            page = await self._catalog.list_clips(broadcaster_id, started_at, ended_at, cursor)
            clips.extend(page.clips)
            cursor = page.cursor
            if not cursor:
                break
        return clips

    async def resolve_random(self, channel: str, search_filter: SearchFilter) -> ClipDescriptor | None:
        """Random clip from the channel honoring the filter.

        Windows widen until one yields a match. Within a window, an empty
        featured-only result is retried without the featured constraint before
        moving on.
        """
        broadcaster_id = await self._broadcaster_id(channel, "resolve_random")
        if broadcaster_id is None:
            return None

        for days in lookback_windows(search_filter.max_age_days):
            clips = await self._fetch_window(broadcaster_id, days)
            if not clips:
                continue
            candidates = [clip for clip in clips if search_filter.accepts(clip)]
            if not candidates and search_filter.featured_only:
                logger.debug(f"No featured clips for {channel} in {days or 'all'} day window, relaxing filter")
                relaxed = search_filter.without_featured()
                candidates = [clip for clip in clips if relaxed.accepts(clip)]
            if candidates:
                clip = self._rng.choice(candidates)
                logger.info(f"Random clip for {channel}: {clip.id} ({days or 'all'} day window)")
                return clip

        logger.warning(
            f"No clips found for {channel} after exhausting all periods "
            f"(featured_only={search_filter.featured_only}, "
            f"max_duration={search_filter.max_duration_seconds}s, max_age={search_filter.max_age_days}d)"
        )
        return None

    async def search_by_title(self, channel: str, query: str) -> ClipDescriptor | None:
        """Best title match for ``query`` in the channel's catalog."""
        cached = self._cache.get(query)
        if cached is not None:
            logger.debug(f"search_by_title: cache hit for {query!r}")
            return cached

        query_tokens = tokenize(query)
        if not query_tokens:
            logger.warning(f"search_by_title: empty query {query!r}")
            return None

        broadcaster_id = await self._broadcaster_id(channel, "search_by_title")
        if broadcaster_id is None:
            return None

        best: ClipDescriptor | None = None
        best_score = 0.0
        cursor: str | None = None
        for page_number in range(1, self._max_search_pages + 1):
            page = await self._catalog.list_clips(broadcaster_id, cursor=cursor)
            for clip in page.clips:
                score = score_title(query_tokens, clip.title)
                if score >= EXACT_MATCH_SCORE:
                    logger.info(f"search_by_title: exact match {clip.id} for {query!r} on page {page_number}")
                    self._cache.put(query, clip)
                    return clip
                if score > best_score:
                    best, best_score = clip, score
            cursor = page.cursor
            if not cursor:
                break

        if best is not None and best_score >= MIN_MATCH_SCORE:
            logger.info(f"search_by_title: best match {best.id} for {query!r} (score {best_score:.2f})")
            self._cache.put(query, best)
            return best

        logger.warning(f"search_by_title: no clip in {channel} matches {query!r} (best score {best_score:.2f})")
        return None
