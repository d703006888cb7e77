"""
Pytest fixtures for clipstage tests.

Upstream services are replaced by in-memory fakes:
- FakeCatalog: Twitch Helix clip catalog with cursor pagination
- FakeCompositor: OBS scene graph with scenes, sources, visibility and audio
- FakeStateStore: durable key/value state kept in a dict
"""

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from clipstage.config import Settings
from clipstage.schemas.clip import ClipDescriptor, ClipPage
from clipstage.services.compositor import CompositorResult


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "slow: mark test as waiting on real (sub-second) timers"
    )


def make_clip(
    clip_id: str = "AbCdEf123",
    title: str = "pog moment",
    duration: float = 30.0,
    featured: bool = False,
    age_days: float = 0.5,
    broadcaster_id: str = "1001",
) -> ClipDescriptor:
    return ClipDescriptor(
        id=clip_id,
        url=f"https://clips.twitch.tv/{clip_id}",
        title=title,
        broadcaster_name="channelX",
        broadcaster_id=broadcaster_id,
        creator_name="viewer42",
        game_id="509658",
        duration=duration,
        is_featured=featured,
        created_at=datetime.now(timezone.utc) - timedelta(days=age_days),
        thumbnail_url=f"https://clips-media-assets2.twitch.tv/{clip_id}-preview.jpg",
    )


class FakeCatalog:
    """In-memory clip catalog. Pages hold ``page_size`` clips."""

    def __init__(self, clips: list[ClipDescriptor] | None = None, page_size: int = 2) -> None:
        self.clips = list(clips or [])
        self.page_size = page_size
        self.broadcasters = {"channelx": "1001"}
        self.games = {"509658": "Just Chatting"}
        self.list_calls: list[dict[str, Any]] = []
        self.get_calls: list[str] = []
        self.error: Exception | None = None

    async def get_clip(self, clip_id: str) -> ClipDescriptor | None:
        self.get_calls.append(clip_id)
        if self.error is not None:
            raise self.error
        return next((c for c in self.clips if c.id == clip_id), None)

    async def get_broadcaster_id(self, login: str) -> str | None:
        if self.error is not None:
            raise self.error
        return self.broadcasters.get(login)

    async def list_clips(
        self,
        broadcaster_id: str,
        started_at: datetime | None = None,
        ended_at: datetime | None = None,
        cursor: str | None = None,
    ) -> ClipPage:
        self.list_calls.append({"broadcaster_id": broadcaster_id, "started_at": started_at, "cursor": cursor})
        matching = [
            c
            for c in self.clips
            if c.broadcaster_id == broadcaster_id
            and (started_at is None or (c.created_at is not None and c.created_at >= started_at))
        ]
        start = int(cursor or 0)
        end = start + self.page_size
        return ClipPage(clips=matching[start:end], cursor=str(end) if end < len(matching) else None)

    async def get_game_name(self, game_id: str) -> str | None:
        return self.games.get(game_id)


class FakeCompositor:
    """In-memory OBS. ``fail`` names operations that should report failure,
    ``frozen_visibility`` makes visibility changes silently not stick."""

    def __init__(self, current_scene: str = "Main") -> None:
        self.scenes: dict[str, list[str]] = {current_scene: []}
        self.current_scene = current_scene
        self.visible: dict[tuple[str, str], bool] = {}
        self.settings: dict[str, dict[str, Any]] = {}
        self.monitor: dict[str, str] = {}
        self.volume: dict[str, float] = {}
        self.filters: dict[str, list[str]] = {}
        self.calls: list[str] = []
        self.fail: set[str] = set()
        self.frozen_visibility = False

    def _call(self, op: str) -> bool:
        self.calls.append(op)
        return op not in self.fail

    @property
    def mutations(self) -> list[str]:
        return [c for c in self.calls if c.startswith(("create", "add", "set"))]

    async def scene_exists(self, scene):
        if not self._call("scene_exists"):
            return CompositorResult.failure("scene_exists failed")
        return CompositorResult.success(scene in self.scenes)

    async def create_scene(self, scene):
        if not self._call("create_scene"):
            return CompositorResult.failure("create_scene failed")
        self.scenes.setdefault(scene, [])
        return CompositorResult.success()

    async def get_current_scene(self):
        if not self._call("get_current_scene"):
            return CompositorResult.failure("get_current_scene failed")
        return CompositorResult.success(self.current_scene)

    async def source_exists_in_scene(self, scene, source):
        if not self._call("source_exists_in_scene"):
            return CompositorResult.failure("source_exists_in_scene failed")
        return CompositorResult.success(source in self.scenes.get(scene, []))

    async def add_scene_item(self, scene, source):
        if not self._call("add_scene_item"):
            return CompositorResult.failure("add_scene_item failed")
        self.scenes[scene].append(source)
        self.visible[(scene, source)] = True
        return CompositorResult.success()

    async def create_browser_source(self, scene, source, settings):
        if not self._call("create_browser_source"):
            return CompositorResult.failure("create_browser_source failed")
        self.scenes[scene].append(source)
        self.settings[source] = dict(settings)
        self.visible[(scene, source)] = True
        self.monitor[source] = "OBS_MONITORING_TYPE_NONE"
        self.volume[source] = 0.0
        self.filters[source] = []
        return CompositorResult.success()

    async def get_source_settings(self, source):
        if not self._call("get_source_settings"):
            return CompositorResult.failure("get_source_settings failed")
        return CompositorResult.success(dict(self.settings.get(source, {})))

    async def get_source_visible(self, scene, source):
        if not self._call("get_source_visible") or (scene, source) not in self.visible:
            return CompositorResult.failure("get_source_visible failed")
        return CompositorResult.success(self.visible[(scene, source)])

    async def set_source_visible(self, scene, source, visible):
        if not self._call("set_source_visible") or (scene, source) not in self.visible:
            return CompositorResult.failure("set_source_visible failed")
        if not self.frozen_visibility:
            self.visible[(scene, source)] = visible
        return CompositorResult.success()

    async def get_source_url(self, source):
        if not self._call("get_source_url"):
            return CompositorResult.failure("get_source_url failed")
        return CompositorResult.success(self.settings.get(source, {}).get("url", ""))

    async def set_source_url(self, source, url):
        if not self._call("set_source_url"):
            return CompositorResult.failure("set_source_url failed")
        self.settings.setdefault(source, {})["url"] = url
        return CompositorResult.success()

    async def refresh_source(self, source):
        if not self._call("refresh_source"):
            return CompositorResult.failure("refresh_source failed")
        return CompositorResult.success()

    async def get_audio_monitor_type(self, source):
        if not self._call("get_audio_monitor_type"):
            return CompositorResult.failure("get_audio_monitor_type failed")
        return CompositorResult.success(self.monitor.get(source, "OBS_MONITORING_TYPE_NONE"))

    async def set_audio_monitor_type(self, source, monitor_type):
        if not self._call("set_audio_monitor_type"):
            return CompositorResult.failure("set_audio_monitor_type failed")
        self.monitor[source] = monitor_type
        return CompositorResult.success()

    async def get_volume_db(self, source):
        if not self._call("get_volume_db"):
            return CompositorResult.failure("get_volume_db failed")
        return CompositorResult.success(self.volume.get(source, 0.0))

    async def set_volume_db(self, source, volume_db):
        if not self._call("set_volume_db"):
            return CompositorResult.failure("set_volume_db failed")
        self.volume[source] = volume_db
        return CompositorResult.success()

    async def list_filters(self, source):
        if not self._call("list_filters"):
            return CompositorResult.failure("list_filters failed")
        return CompositorResult.success(list(self.filters.get(source, [])))

    async def create_filter(self, source, name, kind, settings):
        if not self._call("create_filter"):
            return CompositorResult.failure("create_filter failed")
        self.filters.setdefault(source, []).append(name)
        return CompositorResult.success()


class FakeStateStore:
    def __init__(self) -> None:
        self.values: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self.values.get(key)

    async def set(self, key: str, value: str) -> None:
        self.values[key] = value

    async def get_last_clip_url(self) -> str | None:
        return self.values.get("last_clip_url")

    async def set_last_clip_url(self, url: str) -> None:
        self.values["last_clip_url"] = url


class RecordingNotifier:
    def __init__(self) -> None:
        self.messages: list[str] = []

    async def send(self, message: str) -> None:
        self.messages.append(message)


async def no_sleep(_seconds: float) -> None:
    return None


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings with fast timings and a throwaway state database."""
    return Settings(
        _env_file=None,
        state_database_url=f"sqlite+aiosqlite:///{tmp_path / 'state.db'}",
        setup_retry_delay_seconds=0.0,
        setup_delay_seconds=3.0,
        cooldown_seconds=0.0,
        approval_timeout_seconds=0.2,
        approval_poll_interval_seconds=0.01,
        retry_base_delay_seconds=0.0,
        retry_jitter=0.0,
        twitch_client_id="client-id",
        twitch_access_token="token-1",
        twitch_refresh_token="refresh-1",
    )


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog([make_clip()])


@pytest.fixture
def compositor() -> FakeCompositor:
    return FakeCompositor()
