"""Wiring of the long-lived service objects shared by the API and the server."""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine

from clipstage.config import Settings
from clipstage.models.database import create_engine, create_session_maker, init_db
from clipstage.services.approval import ApprovalService
from clipstage.services.clip_cache import ClipCache
from clipstage.services.clip_resolver import ClipResolver
from clipstage.services.compositor import Compositor, ObsCompositor
from clipstage.services.hosting import EmbedHost
from clipstage.services.notifier import ChatNotifier, HelixChatNotifier, LoggingNotifier
from clipstage.services.playback import PlaybackEngine
from clipstage.services.scene_adapter import ObsContentWarningAutomation, SceneAdapter
from clipstage.services.state_store import StateStore
from clipstage.services.twitch_client import CatalogApi, HelixClient, TokenManager

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    db_engine: AsyncEngine
    state_store: StateStore
    catalog: CatalogApi
    cache: ClipCache
    resolver: ClipResolver
    compositor: Compositor
    adapter: SceneAdapter
    host: EmbedHost
    approvals: ApprovalService
    notifier: ChatNotifier
    playback: PlaybackEngine
    tokens: TokenManager | None = None

    async def startup(self) -> None:
        await init_db(self.db_engine)
        if self.tokens is not None:
            await self.tokens.load()
        if not self.settings.twitch_enabled:
            logger.warning("Twitch credentials not configured, clip lookups will fail")

    async def shutdown(self) -> None:
        await self.playback.shutdown()
        if isinstance(self.compositor, ObsCompositor):
            self.compositor.close()
        await self.db_engine.dispose()


def build_services(
    settings: Settings,
    *,
    catalog: CatalogApi | None = None,
    compositor: Compositor | None = None,
    notifier: ChatNotifier | None = None,
) -> ServiceContainer:
    db_engine = create_engine(settings.state_database_url)
    state_store = StateStore(create_session_maker(db_engine))

    tokens: TokenManager | None = None
    if catalog is None:
        tokens = TokenManager(settings, state_store)
        catalog = HelixClient(settings, tokens)
    if notifier is None:
        if isinstance(catalog, HelixClient) and settings.twitch_broadcaster_login:
            notifier = HelixChatNotifier(catalog, settings.twitch_broadcaster_login)
        else:
            notifier = LoggingNotifier()

    compositor = compositor or ObsCompositor(settings)
    automation = (
        ObsContentWarningAutomation(compositor, settings.scene_name, settings.player_source_name)
        if settings.content_warning_automation
        else None
    )
    adapter = SceneAdapter(compositor, settings, automation)

    cache = ClipCache(settings.cache_expiration_seconds)
    resolver = ClipResolver(catalog, cache, max_search_pages=settings.max_search_pages)
    host = EmbedHost(settings)
    approvals = ApprovalService(settings.approval_timeout_seconds, settings.approval_poll_interval_seconds)
    playback = PlaybackEngine(
        adapter,
        host,
        state_store,
        resolver,
        approvals=approvals,
        notifier=notifier,
        catalog=catalog,
        setup_delay_seconds=settings.setup_delay_seconds,
        cooldown_seconds=settings.cooldown_seconds,
        max_clip_failures=settings.max_clip_failures,
    )
    return ServiceContainer(
        settings=settings,
        db_engine=db_engine,
        state_store=state_store,
        catalog=catalog,
        cache=cache,
        resolver=resolver,
        compositor=compositor,
        adapter=adapter,
        host=host,
        approvals=approvals,
        notifier=notifier,
        playback=playback,
        tokens=tokens,
    )
