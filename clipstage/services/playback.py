"""Playback state machine.

One process-wide ``PlaybackSession`` moves through

    Idle -> Resolving -> [AwaitingApproval] -> Loading -> Playing -> Cooldown -> Idle

Every transition runs under a single condition lock, so at most one clip is
ever shown. A flow first *claims* the session (waits for Idle, installs a new
cancellation token, enters Resolving) and keeps ownership only while its token
is the session's token and uncancelled. ``stop`` cancels the token before it
touches the scene, which turns any late auto-stop timer or approval wait into
a no-op.
"""

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Coroutine
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from clipstage.constants import messages
from clipstage.exceptions import (
    ClipNotFoundError,
    ClipQuarantinedError,
    ClipstageError,
    CompositionSurfaceUnreadyError,
    NoReplayAvailableError,
)
from clipstage.schemas.clip import ClipDescriptor
from clipstage.services.approval import ApprovalDecision, ApprovalRequest, ApprovalService
from clipstage.services.cancellation import CancellationToken
from clipstage.services.clip_resolver import ClipResolver
from clipstage.services.hosting import EmbedHost
from clipstage.services.notifier import ChatNotifier, LoggingNotifier
from clipstage.services.scene_adapter import SceneAdapter
from clipstage.services.state_store import StateStore
from clipstage.services.twitch_client import CatalogApi

logger = logging.getLogger(__name__)


class PlaybackState(str, Enum):
    IDLE = "Idle"
    RESOLVING = "Resolving"
    AWAITING_APPROVAL = "AwaitingApproval"
    LOADING = "Loading"
    PLAYING = "Playing"
    COOLDOWN = "Cooldown"


_CLAIMED_STATES = (PlaybackState.RESOLVING, PlaybackState.AWAITING_APPROVAL)


@dataclass
class PlaybackSession:
    state: PlaybackState = PlaybackState.IDLE
    current_clip: ClipDescriptor | None = None
    token: CancellationToken | None = None
    # Seconds until the pending auto-stop fires, None when nothing is scheduled
    auto_stop_delay: float | None = None
    transitions: deque[PlaybackState] = field(default_factory=lambda: deque([PlaybackState.IDLE], maxlen=100))


class PlaybackEngine:
    def __init__(
        self,
        adapter: SceneAdapter,
        host: EmbedHost,
        state_store: StateStore,
        resolver: ClipResolver,
        *,
        approvals: ApprovalService | None = None,
        notifier: ChatNotifier | None = None,
        catalog: CatalogApi | None = None,
        setup_delay_seconds: float = 3.0,
        cooldown_seconds: float = 2.0,
        max_clip_failures: int = 3,
    ) -> None:
        self._adapter = adapter
        self._host = host
        self._state_store = state_store
        self._resolver = resolver
        self._approvals = approvals or ApprovalService()
        self._notifier = notifier or LoggingNotifier()
        self._catalog = catalog
        self._setup_delay = setup_delay_seconds
        self._cooldown = cooldown_seconds
        self._max_failures = max_clip_failures

        self.session = PlaybackSession()
        self._cond = asyncio.Condition()
        self._queue: deque[ClipDescriptor] = deque()
        self._worker: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()
        self._failures: dict[str, int] = {}
        self._quarantined: set[str] = set()

    @property
    def state(self) -> PlaybackState:
        return self.session.state

    @property
    def current_clip(self) -> ClipDescriptor | None:
        return self.session.current_clip

    @property
    def queue_size(self) -> int:
        return len(self._queue)

    @property
    def approvals(self) -> ApprovalService:
        return self._approvals

    def is_quarantined(self, clip_id: str) -> bool:
        return clip_id in self._quarantined

    # -------------------------------------------------------------------------
    # Session ownership
    # -------------------------------------------------------------------------

    def _transition(self, new_state: PlaybackState) -> None:
        """Must be called with the condition lock held."""
        logger.debug(f"State transition: {self.session.state.value} -> {new_state.value}")
        self.session.state = new_state
        self.session.transitions.append(new_state)
        if new_state is PlaybackState.IDLE:
            self._cond.notify_all()

    async def _claim(self) -> CancellationToken:
        async with self._cond:
            await self._cond.wait_for(lambda: self.session.state is PlaybackState.IDLE)
            token = CancellationToken()
            self.session.token = token
            self.session.auto_stop_delay = None
            self._transition(PlaybackState.RESOLVING)
            return token

    def _owns(self, token: CancellationToken) -> bool:
        return self.session.token is token and not token.cancelled

    async def _release(self, token: CancellationToken) -> None:
        async with self._cond:
            if self.session.token is token and self.session.state in _CLAIMED_STATES:
                self._transition(PlaybackState.IDLE)

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # -------------------------------------------------------------------------
    # Play
    # -------------------------------------------------------------------------

    async def play(self, clip: ClipDescriptor, token: CancellationToken | None = None) -> bool:
        """Show ``clip`` and schedule its auto-stop.

        Waits for Idle unless ``token`` is a claim the caller already holds.
        Returns False when the claim was cancelled by ``stop`` meanwhile.

        Raises:
            ClipQuarantinedError: clip failed to start too often before
            CompositionSurfaceUnreadyError: the scene could not be prepared
        """
        if token is None:
            token = await self._claim()
        async with self._cond:
            if not self._owns(token):
                logger.info(f"Play of clip {clip.id} abandoned, session was stopped")
                return False
            if clip.id in self._quarantined:
                logger.warning(f"Refusing quarantined clip {clip.id}")
                self._transition(PlaybackState.IDLE)
                raise ClipQuarantinedError(clip.id)
            try:
                await self._start(clip, token)
            except ClipstageError:
                raise
            except Exception:
                logger.exception(f"Unexpected error while starting clip {clip.id}")
                await self._teardown_failed_start(clip, token)
                raise
            return True

    async def _start(self, clip: ClipDescriptor, token: CancellationToken) -> None:
        self._transition(PlaybackState.LOADING)
        self.session.current_clip = clip

        if not await self._adapter.ensure_ready():
            await self._abort(clip, "ensure_ready", surface_touched=False)
        self._host.host_clip(clip, await self._game_name(clip))
        if not await self._adapter.set_url(self._host.page_url):
            await self._abort(clip, "set_url")
        if not await self._adapter.show():
            await self._abort(clip, "show")

        self._transition(PlaybackState.PLAYING)
        self._failures.pop(clip.id, None)
        delay = clip.duration + self._setup_delay
        self.session.auto_stop_delay = delay
        self._spawn(self._auto_stop(token, delay, clip.id))
        logger.info(f"Now playing clip {clip.id} '{clip.title}', auto-stop in {delay:.1f}s")

        try:
            await self._state_store.set_last_clip_url(clip.url)
        except SQLAlchemyError as e:
            logger.error(f"Could not persist last clip URL {clip.url}: {e}")

    async def _abort(self, clip: ClipDescriptor, step: str, surface_touched: bool = True) -> None:
        """Undo a failed start and raise. Called with the lock held."""
        logger.error(f"Playback of clip {clip.id} aborted: {step} failed")
        self._host.revert_to_blank()
        if surface_touched:
            await self._adapter.hide()
        self.session.current_clip = None
        self._record_failure(clip)
        self._transition(PlaybackState.IDLE)
        raise CompositionSurfaceUnreadyError(step)

    async def _teardown_failed_start(self, clip: ClipDescriptor, token: CancellationToken) -> None:
        """Hide and blank after an unexpected error in ``_start``. Called with the lock held."""
        token.cancel()
        self.session.auto_stop_delay = None
        self._host.revert_to_blank()
        if not await self._adapter.hide():
            logger.error(f"Player could not be hidden after failed start of clip {clip.id}")
        self.session.current_clip = None
        self._record_failure(clip)
        self._transition(PlaybackState.IDLE)

    def _record_failure(self, clip: ClipDescriptor) -> None:
        count = self._failures.get(clip.id, 0) + 1
        self._failures[clip.id] = count
        if count >= self._max_failures:
            self._quarantined.add(clip.id)
            logger.warning(f"Clip {clip.id} quarantined after {count} failures")

    async def _game_name(self, clip: ClipDescriptor) -> str | None:
        if self._catalog is None or not clip.game_id:
            return None
        try:
            return await self._catalog.get_game_name(clip.game_id)
        except ClipstageError as e:
            logger.warning(f"Game name lookup for {clip.game_id} failed: {e}")
            return None

    async def _auto_stop(self, token: CancellationToken, delay: float, clip_id: str) -> None:
        if await token.wait(delay):
            return
        logger.info(f"Clip {clip_id} finished, stopping")
        await self._stop(token)

    # -------------------------------------------------------------------------
    # Stop
    # -------------------------------------------------------------------------

    async def stop(self) -> None:
        """Stop whatever is in progress. A no-op when already Idle."""
        await self._stop(None)

    async def _stop(self, expected: CancellationToken | None, *, cooldown: bool = True) -> None:
        async with self._cond:
            if self.session.state is PlaybackState.IDLE:
                return
            token = self.session.token
            if expected is not None and token is not expected:
                return
            if token is not None:
                token.cancel()
            self.session.auto_stop_delay = None

            if self.session.state in _CLAIMED_STATES:
                # Nothing is on screen yet
                self._transition(PlaybackState.IDLE)
                return

            self._transition(PlaybackState.COOLDOWN)
            clip = self.session.current_clip
            self._host.revert_to_blank()
            if not await self._adapter.hide():
                logger.error(f"Player could not be hidden after clip {clip.id if clip else 'unknown'}")
            self.session.current_clip = None
            if cooldown and self._cooldown > 0:
                await asyncio.sleep(self._cooldown)
            self._transition(PlaybackState.IDLE)
            logger.info("Playback stopped")

    # -------------------------------------------------------------------------
    # Command flows
    # -------------------------------------------------------------------------

    async def play_with_approval(self, clip: ClipDescriptor, requested_by: str | None = None) -> bool:
        token = await self._claim()
        if not await self._approve(clip, token, requested_by):
            return False
        return await self.play(clip, token)

    async def _approve(
        self, clip: ClipDescriptor, token: CancellationToken, requested_by: str | None
    ) -> bool:
        request: ApprovalRequest | None = None
        async with self._cond:
            if self._owns(token):
                self._transition(PlaybackState.AWAITING_APPROVAL)
                request = self._approvals.create(clip, requested_by)
        if request is None:
            return False

        await self._notifier.send(f"{messages.APPROVAL_WAITING_MESSAGE} (id {request.id})")
        decision = await self._approvals.wait_for_decision(request, token)

        if decision is ApprovalDecision.APPROVED and self._owns(token):
            await self._notifier.send(messages.APPROVAL_GRANTED_MESSAGE)
            return True
        if decision is ApprovalDecision.EXPIRED:
            await self._notifier.send(messages.APPROVAL_TIMEOUT_MESSAGE)
        elif not token.cancelled:
            await self._notifier.send(messages.APPROVAL_DENIED_MESSAGE)
        await self._release(token)
        return False

    async def resolve_last(self) -> ClipDescriptor:
        url = await self._state_store.get_last_clip_url()
        if not url:
            raise NoReplayAvailableError()
        clip = await self._resolver.resolve_by_url(url)
        if clip is None:
            raise ClipNotFoundError(url)
        return clip

    # -------------------------------------------------------------------------
    # Queue
    # -------------------------------------------------------------------------

    def enqueue(self, clip: ClipDescriptor) -> int:
        if clip.id in self._quarantined:
            raise ClipQuarantinedError(clip.id)
        self._queue.append(clip)
        logger.info(f"Enqueued clip {clip.id} '{clip.title}' ({len(self._queue)} queued)")
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._drain())
        return len(self._queue)

    def submit_with_approval(self, clip: ClipDescriptor, requested_by: str | None = None) -> asyncio.Task:
        return self._spawn(self._run_logged(self.play_with_approval(clip, requested_by), clip))

    async def _run_logged(self, flow: Awaitable[Any], clip: ClipDescriptor) -> None:
        try:
            await flow
        except ClipstageError as e:
            logger.warning(f"Clip {clip.id} not played: {e}")
        except Exception:
            logger.exception(f"Unexpected error while playing clip {clip.id}")

    async def _drain(self) -> None:
        while self._queue:
            token = await self._claim()
            clip = self._queue.popleft()
            await self._run_logged(self.play(clip, token), clip)

    async def shutdown(self) -> None:
        """Take the player off screen, then cancel queued and pending work."""
        await self._stop(None, cooldown=False)
        tasks = [t for t in (self._worker, *self._tasks) if t is not None and not t.done()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
