"""Tests for scene preparation and player control against a fake OBS."""

import logging
from unittest.mock import AsyncMock

import pytest

from clipstage.services.compositor import MONITOR_AND_OUTPUT
from clipstage.services.scene_adapter import ObsContentWarningAutomation, SceneAdapter
from conftest import FakeCompositor, no_sleep


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def adapter(compositor, settings) -> SceneAdapter:
    return SceneAdapter(compositor, settings, sleep=no_sleep)


# =============================================================================
# ensure_ready
# =============================================================================


class TestEnsureReady:
    @pytest.mark.asyncio
    async def test_creates_missing_scene_source_and_attachment(self, adapter, compositor):
        assert await adapter.ensure_ready() is True

        assert compositor.scenes["Cliparino"] == ["Player"]
        assert "Cliparino" in compositor.scenes["Main"]
        assert compositor.settings["Player"]["url"] == "about:blank"
        assert compositor.settings["Player"]["width"] == 1920
        assert compositor.monitor["Player"] == MONITOR_AND_OUTPUT
        assert compositor.filters["Player"] == ["Gain", "Compressor"]

    @pytest.mark.asyncio
    async def test_second_call_only_reads(self, adapter, compositor):
        """Idempotent: a ready surface causes no further mutations."""
        await adapter.ensure_ready()
        mutations = list(compositor.mutations)

        assert await adapter.ensure_ready() is True
        assert compositor.mutations == mutations

    @pytest.mark.asyncio
    async def test_repairs_operator_changes(self, adapter, compositor):
        await adapter.ensure_ready()
        compositor.filters["Player"].remove("Compressor")
        compositor.monitor["Player"] = "OBS_MONITORING_TYPE_NONE"

        assert await adapter.ensure_ready() is True
        assert "Compressor" in compositor.filters["Player"]
        assert compositor.monitor["Player"] == MONITOR_AND_OUTPUT
        assert compositor.filters["Player"].count("Gain") == 1

    @pytest.mark.asyncio
    async def test_existing_scene_is_not_recreated(self, adapter, compositor):
        compositor.scenes["Cliparino"] = []

        assert await adapter.ensure_ready() is True
        assert "create_scene" not in compositor.calls

    @pytest.mark.asyncio
    async def test_operator_on_clip_scene_skips_attachment(self, settings):
        compositor = FakeCompositor(current_scene="Cliparino")
        adapter = SceneAdapter(compositor, settings, sleep=no_sleep)

        assert await adapter.ensure_ready() is True
        assert "add_scene_item" not in compositor.calls

    @pytest.mark.asyncio
    async def test_bounded_retries_then_false(self, compositor, settings, caplog):
        compositor.fail.add("create_scene")
        sleep = SleepRecorder()
        adapter = SceneAdapter(compositor, settings, sleep=sleep)

        with caplog.at_level(logging.WARNING):
            assert await adapter.ensure_ready() is False

        assert compositor.calls.count("create_scene") == settings.setup_attempts
        assert len(sleep.delays) == settings.setup_attempts - 1
        assert "create_browser_source" not in compositor.calls
        assert any("scene" in r.getMessage() for r in caplog.records if r.levelno == logging.WARNING)

    @pytest.mark.asyncio
    async def test_failed_reads_report_false(self, adapter, compositor):
        compositor.fail.add("scene_exists")
        assert await adapter.ensure_ready() is False

    @pytest.mark.asyncio
    async def test_never_raises(self, adapter, compositor):
        compositor.scene_exists = AsyncMock(side_effect=RuntimeError("socket closed"))
        assert await adapter.ensure_ready() is False

# =============================================================================
# Visibility and URL
# =============================================================================


class TestPlayerControl:
    @pytest.mark.asyncio
    async def test_show_and_hide_both_levels(self, adapter, compositor):
        await adapter.ensure_ready()

        assert await adapter.hide() is True
        assert compositor.visible[("Main", "Cliparino")] is False
        assert compositor.visible[("Cliparino", "Player")] is False

        assert await adapter.show() is True
        assert compositor.visible[("Main", "Cliparino")] is True
        assert compositor.visible[("Cliparino", "Player")] is True

    @pytest.mark.asyncio
    async def test_visibility_verified_by_readback(self, adapter, compositor):
        await adapter.ensure_ready()
        compositor.frozen_visibility = True

        assert await adapter.hide() is False

    @pytest.mark.asyncio
    async def test_visibility_fails_without_current_scene(self, adapter, compositor):
        await adapter.ensure_ready()
        compositor.fail.add("get_current_scene")

        assert await adapter.show() is False

    @pytest.mark.asyncio
    async def test_set_url_confirmed(self, adapter, compositor):
        await adapter.ensure_ready()

        assert await adapter.set_url("http://localhost:8080/index.html") is True
        assert compositor.settings["Player"]["url"] == "http://localhost:8080/index.html"
        assert "refresh_source" in compositor.calls

    @pytest.mark.asyncio
    async def test_set_url_refresh_failure_is_not_fatal(self, adapter, compositor):
        await adapter.ensure_ready()
        compositor.fail.add("refresh_source")

        assert await adapter.set_url("http://localhost:8080/index.html") is True

    @pytest.mark.asyncio
    async def test_set_url_failure(self, adapter, compositor):
        await adapter.ensure_ready()
        compositor.fail.add("set_source_url")

        assert await adapter.set_url("http://localhost:8080/index.html") is False

    @pytest.mark.asyncio
    async def test_set_url_readback_failure(self, adapter, compositor):
        await adapter.ensure_ready()
        compositor.fail.add("get_source_url")

        assert await adapter.set_url("http://localhost:8080/index.html") is False


# =============================================================================
# Content Warning
# =============================================================================


class TestContentWarning:
    @pytest.mark.asyncio
    async def test_without_automation_asks_operator(self, adapter, caplog):
        with caplog.at_level(logging.WARNING):
            assert await adapter.handle_content_warning("postMessage") is False

        assert any("Interact" in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_automation_dismisses(self, compositor, settings):
        automation = ObsContentWarningAutomation(compositor, "Cliparino", "Player", toggle_delay=0, sleep=no_sleep)
        adapter = SceneAdapter(compositor, settings, automation=automation, sleep=no_sleep)
        await adapter.ensure_ready()

        assert await adapter.handle_content_warning("overlay-detected") is True
        assert compositor.visible[("Cliparino", "Player")] is True

    @pytest.mark.asyncio
    async def test_automation_error_is_contained(self, compositor, settings):
        automation = AsyncMock()
        automation.dismiss.side_effect = RuntimeError("boom")
        adapter = SceneAdapter(compositor, settings, automation=automation, sleep=no_sleep)

        assert await adapter.handle_content_warning("postMessage") is False
        automation.dismiss.assert_awaited_once()
