"""Tests for the obsws-python backed compositor with a mocked request client."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from obsws_python.error import OBSSDKRequestError

from clipstage.services.compositor import MONITOR_AND_OUTPUT, ObsCompositor


class ClientFactory:
    def __init__(self, *clients) -> None:
        self.clients = list(clients)
        self.created = 0

    def __call__(self):
        client = self.clients[min(self.created, len(self.clients) - 1)]
        self.created += 1
        return client


class TestObsCompositor:
    @pytest.mark.asyncio
    async def test_reads_map_to_results(self, settings):
        client = MagicMock()
        client.get_scene_list.return_value = SimpleNamespace(scenes=[{"sceneName": "Main"}, {"sceneName": "Cliparino"}])
        client.get_current_program_scene.return_value = SimpleNamespace(current_program_scene_name="Main")
        client.get_input_audio_monitor_type.return_value = SimpleNamespace(monitor_type=MONITOR_AND_OUTPUT)
        client.get_source_filter_list.return_value = SimpleNamespace(
            filters=[{"filterName": "Gain"}, {"filterName": "Compressor"}]
        )
        compositor = ObsCompositor(settings, client_factory=ClientFactory(client))

        assert (await compositor.scene_exists("Cliparino")).value is True
        assert (await compositor.scene_exists("Other")).value is False
        assert (await compositor.get_current_scene()).value == "Main"
        assert (await compositor.get_audio_monitor_type("Player")).value == MONITOR_AND_OUTPUT
        assert (await compositor.list_filters("Player")).value == ["Gain", "Compressor"]

    @pytest.mark.asyncio
    async def test_visibility_uses_scene_item_id(self, settings):
        client = MagicMock()
        client.get_scene_item_id.return_value = SimpleNamespace(scene_item_id=7)
        compositor = ObsCompositor(settings, client_factory=ClientFactory(client))

        result = await compositor.set_source_visible("Cliparino", "Player", False)

        assert result.ok
        client.set_scene_item_enabled.assert_called_once_with("Cliparino", 7, False)

    @pytest.mark.asyncio
    async def test_request_error_is_failure_result(self, settings):
        client = MagicMock()
        client.get_scene_item_id.side_effect = OBSSDKRequestError("GetSceneItemId", 600, "No scene items were found")
        factory = ClientFactory(client)
        compositor = ObsCompositor(settings, client_factory=factory)

        result = await compositor.get_source_visible("Cliparino", "Player")

        assert not result.ok
        assert "600" in result.error
        client.disconnect.assert_not_called()
        assert factory.created == 1

    @pytest.mark.asyncio
    async def test_connection_fault_reconnects(self, settings):
        broken = MagicMock()
        broken.get_current_program_scene.side_effect = ConnectionResetError("socket closed")
        healthy = MagicMock()
        healthy.get_current_program_scene.return_value = SimpleNamespace(current_program_scene_name="Main")
        factory = ClientFactory(broken, healthy)
        compositor = ObsCompositor(settings, client_factory=factory)

        first = await compositor.get_current_scene()
        second = await compositor.get_current_scene()

        assert not first.ok
        broken.disconnect.assert_called_once()
        assert second.ok and second.value == "Main"
        assert factory.created == 2

    @pytest.mark.asyncio
    async def test_unreachable_obs(self, settings):
        def refuse():
            raise ConnectionRefusedError("OBS not running")

        compositor = ObsCompositor(settings, client_factory=refuse)

        result = await compositor.scene_exists("Cliparino")

        assert not result.ok
        assert "OBS not running" in result.error

    @pytest.mark.asyncio
    async def test_set_url_overlays_settings(self, settings):
        client = MagicMock()
        compositor = ObsCompositor(settings, client_factory=ClientFactory(client))

        await compositor.set_source_url("Player", "http://localhost:8080/index.html")

        client.set_input_settings.assert_called_once_with("Player", {"url": "http://localhost:8080/index.html"}, True)
