"""Scene compositor capability and its OBS implementation.

Every operation returns a ``CompositorResult`` instead of raising, so callers
can discriminate success from failure without inspecting untyped payloads.
All operations are non-atomic; callers verify by reading state back.
"""

import asyncio
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeVar

import obsws_python as obs
from obsws_python.error import OBSSDKRequestError

from clipstage.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

BROWSER_SOURCE_KIND = "browser_source"
MONITOR_AND_OUTPUT = "OBS_MONITORING_TYPE_MONITOR_AND_OUTPUT"
REFRESH_BUTTON = "refreshnocache"


@dataclass(frozen=True)
class CompositorResult(Generic[T]):
    ok: bool
    value: T | None = None
    error: str | None = None

    @classmethod
    def success(cls, value: T | None = None) -> "CompositorResult[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str) -> "CompositorResult[T]":
        return cls(ok=False, error=error)


class Compositor(Protocol):
    async def scene_exists(self, scene: str) -> CompositorResult[bool]: ...

    async def create_scene(self, scene: str) -> CompositorResult[None]: ...

    async def get_current_scene(self) -> CompositorResult[str]: ...

    async def source_exists_in_scene(self, scene: str, source: str) -> CompositorResult[bool]: ...

    async def add_scene_item(self, scene: str, source: str) -> CompositorResult[None]: ...

    async def create_browser_source(
        self, scene: str, source: str, settings: dict[str, Any]
    ) -> CompositorResult[None]: ...

    async def get_source_settings(self, source: str) -> CompositorResult[dict[str, Any]]: ...

    async def get_source_visible(self, scene: str, source: str) -> CompositorResult[bool]: ...

    async def set_source_visible(self, scene: str, source: str, visible: bool) -> CompositorResult[None]: ...

    async def get_source_url(self, source: str) -> CompositorResult[str]: ...

    async def set_source_url(self, source: str, url: str) -> CompositorResult[None]: ...

    async def refresh_source(self, source: str) -> CompositorResult[None]: ...

    async def get_audio_monitor_type(self, source: str) -> CompositorResult[str]: ...

    async def set_audio_monitor_type(self, source: str, monitor_type: str) -> CompositorResult[None]: ...

    async def get_volume_db(self, source: str) -> CompositorResult[float]: ...

    async def set_volume_db(self, source: str, volume_db: float) -> CompositorResult[None]: ...

    async def list_filters(self, source: str) -> CompositorResult[list[str]]: ...

    async def create_filter(
        self, source: str, name: str, kind: str, settings: dict[str, Any]
    ) -> CompositorResult[None]: ...


class ObsCompositor:
    """``Compositor`` backed by obs-websocket v5 through obsws-python.

    The request client is blocking and not thread-safe: calls run one at a
    time in a worker thread. The connection is opened lazily and dropped after
    any connection-level fault so the next call reconnects.
    """

    def __init__(self, settings: Settings, client_factory: Callable[[], Any] | None = None) -> None:
        self._settings = settings
        self._client_factory = client_factory or self._default_client
        self._client: Any = None
        self._lock = threading.Lock()

    def _default_client(self) -> obs.ReqClient:
        return obs.ReqClient(
            host=self._settings.obs_host,
            port=self._settings.obs_port,
            password=self._settings.obs_password,
            timeout=self._settings.obs_timeout_seconds,
        )

    def _drop_client(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            try:
                client.disconnect()
            except Exception as e:
                logger.debug(f"Ignoring error while closing OBS connection: {e}")

    def close(self) -> None:
        with self._lock:
            self._drop_client()

    async def _call(self, op_name: str, fn: Callable[[Any], T]) -> CompositorResult[T]:
        def run() -> T:
            with self._lock:
                if self._client is None:
                    self._client = self._client_factory()
                    logger.info(f"Connected to OBS at {self._settings.obs_host}:{self._settings.obs_port}")
                try:
                    return fn(self._client)
                except OBSSDKRequestError:
                    raise
                except Exception:
                    self._drop_client()
                    raise

        try:
            return CompositorResult.success(await asyncio.to_thread(run))
        except OBSSDKRequestError as e:
            logger.warning(f"OBS {op_name} rejected (code {e.code}): {e}")
            return CompositorResult.failure(f"{op_name} rejected with code {e.code}")
        except Exception as e:
            logger.warning(f"OBS {op_name} failed: {e}")
            return CompositorResult.failure(f"{op_name} failed: {e}")

    async def _scene_item_id(self, scene: str, source: str) -> CompositorResult[int]:
        return await self._call(
            f"get_scene_item_id({scene}/{source})",
            lambda c: c.get_scene_item_id(scene, source).scene_item_id,
        )

    async def scene_exists(self, scene: str) -> CompositorResult[bool]:
        return await self._call(
            f"scene_exists({scene})",
            lambda c: any(s.get("sceneName") == scene for s in c.get_scene_list().scenes),
        )

    async def create_scene(self, scene: str) -> CompositorResult[None]:
        return await self._call(f"create_scene({scene})", lambda c: c.create_scene(scene))

    async def get_current_scene(self) -> CompositorResult[str]:
        return await self._call(
            "get_current_scene",
            lambda c: c.get_current_program_scene().current_program_scene_name,
        )

    async def source_exists_in_scene(self, scene: str, source: str) -> CompositorResult[bool]:
        return await self._call(
            f"source_exists_in_scene({scene}/{source})",
            lambda c: any(i.get("sourceName") == source for i in c.get_scene_item_list(scene).scene_items),
        )

    async def add_scene_item(self, scene: str, source: str) -> CompositorResult[None]:
        return await self._call(
            f"add_scene_item({scene}/{source})",
            lambda c: c.create_scene_item(scene, source, True),
        )

    async def create_browser_source(
        self, scene: str, source: str, settings: dict[str, Any]
    ) -> CompositorResult[None]:
        return await self._call(
            f"create_browser_source({scene}/{source})",
            lambda c: c.create_input(scene, source, BROWSER_SOURCE_KIND, settings, True),
        )

    async def get_source_settings(self, source: str) -> CompositorResult[dict[str, Any]]:
        return await self._call(
            f"get_source_settings({source})",
            lambda c: dict(c.get_input_settings(source).input_settings),
        )

    async def get_source_visible(self, scene: str, source: str) -> CompositorResult[bool]:
        item = await self._scene_item_id(scene, source)
        if not item.ok:
            return CompositorResult.failure(item.error or "scene item lookup failed")
        return await self._call(
            f"get_source_visible({scene}/{source})",
            lambda c: bool(c.get_scene_item_enabled(scene, item.value).scene_item_enabled),
        )

    async def set_source_visible(self, scene: str, source: str, visible: bool) -> CompositorResult[None]:
        item = await self._scene_item_id(scene, source)
        if not item.ok:
            return CompositorResult.failure(item.error or "scene item lookup failed")
        return await self._call(
            f"set_source_visible({scene}/{source}, {visible})",
            lambda c: c.set_scene_item_enabled(scene, item.value, visible),
        )

    async def get_source_url(self, source: str) -> CompositorResult[str]:
        settings = await self.get_source_settings(source)
        if not settings.ok:
            return CompositorResult.failure(settings.error or "settings lookup failed")
        return CompositorResult.success(str((settings.value or {}).get("url", "")))

    async def set_source_url(self, source: str, url: str) -> CompositorResult[None]:
        return await self._call(
            f"set_source_url({source})",
            lambda c: c.set_input_settings(source, {"url": url}, True),
        )

    async def refresh_source(self, source: str) -> CompositorResult[None]:
        return await self._call(
            f"refresh_source({source})",
            lambda c: c.press_input_properties_button(source, REFRESH_BUTTON),
        )

    async def get_audio_monitor_type(self, source: str) -> CompositorResult[str]:
        return await self._call(
            f"get_audio_monitor_type({source})",
            lambda c: c.get_input_audio_monitor_type(source).monitor_type,
        )

    async def set_audio_monitor_type(self, source: str, monitor_type: str) -> CompositorResult[None]:
        return await self._call(
            f"set_audio_monitor_type({source})",
            lambda c: c.set_input_audio_monitor_type(source, monitor_type),
        )

    async def get_volume_db(self, source: str) -> CompositorResult[float]:
        return await self._call(
            f"get_volume_db({source})",
            lambda c: float(c.get_input_volume(source).input_volume_db),
        )

    async def set_volume_db(self, source: str, volume_db: float) -> CompositorResult[None]:
        return await self._call(
            f"set_volume_db({source})",
            lambda c: c.set_input_volume(source, vol_db=volume_db),
        )

    async def list_filters(self, source: str) -> CompositorResult[list[str]]:
        return await self._call(
            f"list_filters({source})",
            lambda c: [f.get("filterName", "") for f in c.get_source_filter_list(source).filters],
        )

    async def create_filter(
        self, source: str, name: str, kind: str, settings: dict[str, Any]
    ) -> CompositorResult[None]:
        return await self._call(
            f"create_filter({source}/{name})",
            lambda c: c.create_source_filter(source, name, kind, settings),
        )
