"""Idempotent preparation and control of the clip player's OBS scene.

The scene, the browser source inside it and the scene's attachment to the
live program scene are read from OBS on every operation. The operator can
change any of them at any time, so nothing is cached here.

Nothing in this module raises to the playback engine: every operation
reports success as a bool after reading the result back.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from clipstage.config import Settings
from clipstage.constants.messages import CONTENT_WARNING_INSTRUCTION
from clipstage.services.compositor import MONITOR_AND_OUTPUT, Compositor, CompositorResult

logger = logging.getLogger(__name__)

PLAYER_VOLUME_DB = 0.0
GAIN_FILTER = ("Gain", "gain_filter", {"db": 0.0})
COMPRESSOR_FILTER = (
    "Compressor",
    "compressor_filter",
    {
        "ratio": 4.0,
        "threshold": -15.0,
        "attack_time": 1.0,
        "release_time": 50.0,
        "output_gain": 0.0,
    },
)
AUDIO_FILTERS = (GAIN_FILTER, COMPRESSOR_FILTER)


class ContentWarningAutomation(Protocol):
    """Optional capability that clicks through a clip's content warning."""

    async def dismiss(self) -> bool: ...


class ObsContentWarningAutomation:
    """Reloads the player without cache, then toggles its visibility.

    Twitch remembers an acknowledged warning for the browser session, so a
    fresh load usually plays straight through.
    """

    def __init__(
        self,
        compositor: Compositor,
        scene: str,
        source: str,
        toggle_delay: float = 0.5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._compositor = compositor
        self._scene = scene
        self._source = source
        self._toggle_delay = toggle_delay
        self._sleep = sleep

    async def dismiss(self) -> bool:
        refreshed = await self._compositor.refresh_source(self._source)
        if not refreshed.ok:
            return False
        hidden = await self._compositor.set_source_visible(self._scene, self._source, False)
        await self._sleep(self._toggle_delay)
        shown = await self._compositor.set_source_visible(self._scene, self._source, True)
        visible = await self._compositor.get_source_visible(self._scene, self._source)
        return hidden.ok and shown.ok and visible.ok and visible.value is True


class SceneAdapter:
    def __init__(
        self,
        compositor: Compositor,
        settings: Settings,
        automation: ContentWarningAutomation | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._compositor = compositor
        self._settings = settings
        self._automation = automation
        self._sleep = sleep
        self.scene_name = settings.scene_name
        self.source_name = settings.player_source_name

    def browser_source_settings(self) -> dict[str, Any]:
        return {
            "url": self._settings.inactive_url,
            "width": self._settings.player_width,
            "height": self._settings.player_height,
            "fps": 60,
            "fps_custom": True,
            "reroute_audio": True,
            "restart_when_active": True,
            "shutdown": True,
            "webpage_control_level": 2,
        }

    # -------------------------------------------------------------------------
    # Setup
    # -------------------------------------------------------------------------

    async def ensure_ready(self) -> bool:
        """Make sure scene, player source and attachment exist and match.

        Safe to call before every clip: when everything is already in place
        only reads are issued.
        """
        steps = (
            ("scene", self._scene_present, self._create_scene),
            ("player source", self._player_ready, self._create_player),
            ("scene attachment", self._scene_attached, self._attach_scene),
        )
        try:
            for step_name, check, create in steps:
                if not await self._with_retries(step_name, check, create):
                    logger.error(f"Composition surface not ready: {step_name} step failed")
                    return False
        except Exception:
            logger.exception("Unexpected error while preparing the composition surface")
            return False
        return True

    async def _with_retries(
        self,
        step_name: str,
        check: Callable[[], Awaitable[CompositorResult[bool]]],
        create: Callable[[], Awaitable[bool]],
    ) -> bool:
        attempts = self._settings.setup_attempts
        for attempt in range(1, attempts + 1):
            present = await check()
            if present.ok and present.value:
                return True
            if present.ok and await create():
                confirmed = await check()
                if confirmed.ok and confirmed.value:
                    logger.info(f"Composition step '{step_name}' completed")
                    return True
            logger.warning(
                f"Composition step '{step_name}' attempt {attempt}/{attempts} failed: "
                f"{present.error or 'state did not match after creation'}"
            )
            if attempt < attempts:
                await self._sleep(self._settings.setup_retry_delay_seconds)
        return False

    async def _scene_present(self) -> CompositorResult[bool]:
        return await self._compositor.scene_exists(self.scene_name)

    async def _create_scene(self) -> bool:
        logger.info(f"Creating scene {self.scene_name}")
        return (await self._compositor.create_scene(self.scene_name)).ok

    async def _player_ready(self) -> CompositorResult[bool]:
        exists = await self._compositor.source_exists_in_scene(self.scene_name, self.source_name)
        if not exists.ok or not exists.value:
            return exists
        return CompositorResult.success(await self._audio_chain_matches())

    async def _create_player(self) -> bool:
        exists = await self._compositor.source_exists_in_scene(self.scene_name, self.source_name)
        if not exists.ok:
            return False
        if not exists.value:
            logger.info(f"Creating browser source {self.scene_name}/{self.source_name}")
            requested = self.browser_source_settings()
            created = await self._compositor.create_browser_source(self.scene_name, self.source_name, requested)
            if not created.ok:
                return False
            actual = await self._compositor.get_source_settings(self.source_name)
            if not actual.ok or any((actual.value or {}).get(k) != v for k, v in requested.items()):
                logger.warning(f"Browser source {self.source_name} settings did not match after creation")
                return False
        return await self._apply_audio_chain()

    async def _audio_chain_matches(self) -> bool:
        monitor = await self._compositor.get_audio_monitor_type(self.source_name)
        volume = await self._compositor.get_volume_db(self.source_name)
        filters = await self._compositor.list_filters(self.source_name)
        if not (monitor.ok and volume.ok and filters.ok):
            return False
        names = set(filters.value or [])
        return (
            monitor.value == MONITOR_AND_OUTPUT
            and abs((volume.value or 0.0) - PLAYER_VOLUME_DB) < 0.01
            and all(name in names for name, _, _ in AUDIO_FILTERS)
        )

    async def _apply_audio_chain(self) -> bool:
        source = self.source_name
        monitor = await self._compositor.get_audio_monitor_type(source)
        if not monitor.ok or monitor.value != MONITOR_AND_OUTPUT:
            await self._compositor.set_audio_monitor_type(source, MONITOR_AND_OUTPUT)

        volume = await self._compositor.get_volume_db(source)
        if not volume.ok or abs((volume.value or 0.0) - PLAYER_VOLUME_DB) >= 0.01:
            await self._compositor.set_volume_db(source, PLAYER_VOLUME_DB)

        filters = await self._compositor.list_filters(source)
        existing = set(filters.value or []) if filters.ok else set()
        for name, kind, filter_settings in AUDIO_FILTERS:
            if name not in existing:
                await self._compositor.create_filter(source, name, kind, filter_settings)

        matches = await self._audio_chain_matches()
        if not matches:
            logger.warning(f"Audio chain on {source} did not match after applying it")
        return matches

    async def _scene_attached(self) -> CompositorResult[bool]:
        current = await self._compositor.get_current_scene()
        if not current.ok:
            return CompositorResult.failure(current.error or "current scene unknown")
        if current.value == self.scene_name:
            # Operator is on the clip scene itself, nothing to nest
            return CompositorResult.success(True)
        return await self._compositor.source_exists_in_scene(current.value, self.scene_name)

    async def _attach_scene(self) -> bool:
        current = await self._compositor.get_current_scene()
        if not current.ok:
            return False
        logger.info(f"Adding scene {self.scene_name} to {current.value}")
        return (await self._compositor.add_scene_item(current.value, self.scene_name)).ok

    # -------------------------------------------------------------------------
    # Playback control
    # -------------------------------------------------------------------------

    async def show(self) -> bool:
        return await self._set_visibility(True)

    async def hide(self) -> bool:
        return await self._set_visibility(False)

    async def _set_visibility(self, visible: bool) -> bool:
        current = await self._compositor.get_current_scene()
        if not current.ok:
            logger.error(f"Cannot {'show' if visible else 'hide'} player: {current.error}")
            return False

        targets = [(self.scene_name, self.source_name)]
        if current.value != self.scene_name:
            targets.insert(0, (current.value, self.scene_name))

        confirmed = True
        for scene, source in targets:
            result = await self._compositor.set_source_visible(scene, source, visible)
            readback = await self._compositor.get_source_visible(scene, source)
            if not result.ok or not readback.ok or readback.value != visible:
                logger.error(
                    f"Visibility of {scene}/{source} not confirmed (wanted {visible}, "
                    f"read {readback.value}): {result.error or readback.error or 'mismatch'}"
                )
                confirmed = False
        return confirmed

    async def set_url(self, url: str) -> bool:
        pushed = await self._compositor.set_source_url(self.source_name, url)
        if not pushed.ok:
            logger.error(f"Failed to set URL on {self.source_name}: {pushed.error}")
            return False
        refreshed = await self._compositor.refresh_source(self.source_name)
        if not refreshed.ok:
            logger.warning(f"Refresh of {self.source_name} failed: {refreshed.error}")
        readback = await self._compositor.get_source_url(self.source_name)
        if not readback.ok or readback.value != url:
            logger.error(f"URL on {self.source_name} not confirmed: wanted {url}, read {readback.value}")
            return False
        return True

    async def handle_content_warning(self, detection_method: str) -> bool:
        """Try to dismiss a content warning. False means the operator must act."""
        if self._automation is None:
            logger.warning(f"Content warning ({detection_method}) needs manual action. {CONTENT_WARNING_INSTRUCTION}")
            return False
        try:
            dismissed = await self._automation.dismiss()
        except Exception:
            logger.exception("Content warning automation failed")
            dismissed = False
        if dismissed:
            logger.info(f"Content warning ({detection_method}) handled by automation")
            return True
        logger.warning(f"Content warning automation unavailable. {CONTENT_WARNING_INSTRUCTION}")
        return False
