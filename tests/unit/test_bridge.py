"""Tests for ZWayMQTTBridge: startup, dispatch and the full set -> get path."""

from __future__ import annotations

import asyncio
import contextlib
import threading
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from zway_mqtt.bridge import ZWayMQTTBridge
from zway_mqtt.exceptions import ControllerFailureError
from zway_mqtt.structs import DataChangeType, DataEvent, DataType, InboundMessage

LEVEL_PATH = "devices.2.instances.0.commandClasses.37.data.level"
LEVEL_SET_TOPIC = "zwave/set/devices/2/instances/0/commandClasses/37/data/level"
LEVEL_GET_TOPIC = "zwave/get/devices/2/instances/0/commandClasses/37/data/level"


@pytest.fixture
def bridge(sim_context):
    return ZWayMQTTBridge(sim_context)


class TestStart:
    @pytest.mark.asyncio
    async def test_start_walks_tree_and_registers_devices(self, bridge, zway, sim_context):
        await bridge.start()

        assert zway.running is True
        assert zway.discovered is True
        assert sim_context.loop is asyncio.get_running_loop()
        assert LEVEL_PATH in sim_context.subscriptions
        assert all(node.callback_count == 1 for node in zway.data_root().walk())

    @pytest.mark.asyncio
    async def test_replayed_command_classes_add_nothing_new(self, bridge, zway, sim_context):
        """ENUMERATE_EXISTING replays classes the startup walk already covered."""
        await bridge.start()
        observed = len(sim_context.subscriptions)

        await bridge.drain()

        assert len(sim_context.subscriptions) == observed
        assert all(node.callback_count == 1 for node in zway.data_root().walk())

    @pytest.mark.asyncio
    async def test_without_walk_only_command_classes_observed(self, sim_context, zway):
        sim_context.settings = sim_context.settings.model_copy(update={"walk_on_start": False})
        bridge = ZWayMQTTBridge(sim_context)

        await bridge.start()
        await bridge.drain()

        assert LEVEL_PATH in sim_context.subscriptions
        assert "devices" not in sim_context.subscriptions

    @pytest.mark.asyncio
    async def test_controller_start_failure(self, sim_context, zway):
        zway.start = MagicMock(side_effect=OSError("/dev/ttyAMA0: no such device"))
        bridge = ZWayMQTTBridge(sim_context)

        with pytest.raises(ControllerFailureError) as exc_info:
            await bridge.start()
        assert exc_info.value.stage == "start"

    @pytest.mark.asyncio
    async def test_default_transport_is_mqtt_client(self, settings, zway):
        from zway_mqtt.mqtt.client import MQTTClient
        from zway_mqtt.structs import BridgeContext

        context = BridgeContext(settings=settings, controller=zway)
        bridge = ZWayMQTTBridge(context)
        assert isinstance(context.transport, MQTTClient)

        with patch.object(MQTTClient, "start", new=AsyncMock()):
            await bridge.start()
            assert bridge.mqtt_client is not None
            assert bridge.mqtt_client.start_task is not None
            await bridge.mqtt_client.start_task


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_set_level_publishes_retained_value(self, bridge, sim_context, mock_transport):
        await bridge.start()
        await bridge.drain()
        mock_transport.publish.reset_mock()

        sim_context.post_event(InboundMessage(topic=LEVEL_SET_TOPIC, payload=b"\x01\x01"))
        await bridge.drain()

        mock_transport.publish.assert_awaited_once_with(LEVEL_GET_TOPIC, b"\x01\x01", qos=0, retain=True)

    @pytest.mark.asyncio
    async def test_configuration_parameter_created_at_runtime(self, bridge, zway, sim_context, mock_transport):
        zway.add_command_class(2, 0, 112)
        await bridge.start()
        await bridge.drain()

        sim_context.post_event(
            InboundMessage(
                topic="zwave/set/devices/2/instances/0/commandClasses/112/data/9/val",
                payload=b"\x02\x00\x00\x00\x05",
            ),
        )
        await bridge.drain()
        assert "devices.2.instances.0.commandClasses.112.data.9.val" in sim_context.subscriptions

        mock_transport.publish.reset_mock()
        sim_context.post_event(
            InboundMessage(
                topic="zwave/set/devices/2/instances/0/commandClasses/112/data/9/val",
                payload=b"\x02\x00\x00\x00\x06",
            ),
        )
        await bridge.drain()
        mock_transport.publish.assert_awaited_once_with(
            "zwave/get/devices/2/instances/0/commandClasses/112/data/9/val",
            b"\x02\x00\x00\x00\x06",
            qos=0,
            retain=True,
        )

    @pytest.mark.asyncio
    async def test_new_device_at_runtime(self, bridge, zway, sim_context, mock_transport):
        await bridge.start()
        await bridge.drain()

        zway.add_command_class(6, 0, 37)
        await bridge.drain()
        assert "devices.6.instances.0.commandClasses.37.data.level" in sim_context.subscriptions

        mock_transport.publish.reset_mock()
        zway.switch_binary_set(6, 0, True)
        await bridge.drain()
        mock_transport.publish.assert_awaited_once_with(
            "zwave/get/devices/6/instances/0/commandClasses/37/data/level",
            b"\x01\x01",
            qos=0,
            retain=True,
        )

    @pytest.mark.asyncio
    async def test_bad_message_does_not_stop_dispatch(self, bridge, sim_context, mock_transport):
        await bridge.start()
        await bridge.drain()
        mock_transport.publish.reset_mock()

        sim_context.post_event(InboundMessage(topic="not/a/zwave/topic", payload=b"\x01\x01"))
        sim_context.post_event(InboundMessage(topic=LEVEL_SET_TOPIC, payload=b"\x01"))
        sim_context.post_event(InboundMessage(topic=LEVEL_SET_TOPIC, payload=b"\x01\x01"))
        await bridge.drain()

        mock_transport.publish.assert_awaited_once()


class TestDispatch:
    @pytest.mark.asyncio
    async def test_handler_exception_is_logged(self, bridge, caplog):
        bridge.router.handle_message = MagicMock(side_effect=RuntimeError("boom"))

        with caplog.at_level("ERROR", logger="zway_mqtt.bridge"):
            await bridge.dispatch(InboundMessage(topic=LEVEL_SET_TOPIC, payload=b"\x01\x01"))

        assert "Error while handling InboundMessage" in caplog.text

    @pytest.mark.asyncio
    async def test_deleted_and_invalidated_are_ignored(self, bridge, mock_transport, zway):
        node = zway.data_root().find(LEVEL_PATH)
        await bridge.dispatch(DataEvent(change=DataChangeType.DELETED | DataChangeType.INVALIDATED, node=node))
        mock_transport.publish.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_each_event_has_own_correlation_id(self, bridge):
        from zway_mqtt.correlation import get_correlation_id

        seen: list[str | None] = []
        bridge.router.handle_message = MagicMock(side_effect=lambda *_: seen.append(get_correlation_id()))

        await bridge.dispatch(InboundMessage(topic="a", payload=b"\x00"))
        await bridge.dispatch(InboundMessage(topic="b", payload=b"\x00"))

        assert None not in seen
        assert seen[0] != seen[1]

    @pytest.mark.asyncio
    async def test_events_from_driver_thread(self, bridge, zway, sim_context, mock_transport):
        """Callbacks fired on another thread reach the dispatcher through the loop."""
        await bridge.start()
        await bridge.drain()
        mock_transport.publish.reset_mock()
        run_task = asyncio.create_task(bridge.run())

        node = zway.data_root().find("devices.2.instances.0.commandClasses.37.data.supported")
        worker = threading.Thread(target=node.set_value, args=(False,))
        worker.start()
        worker.join()

        for _ in range(50):
            if mock_transport.publish.await_count:
                break
            await asyncio.sleep(0.01)
        run_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await run_task

        mock_transport.publish.assert_awaited_once_with(
            "zwave/get/devices/2/instances/0/commandClasses/37/data/supported",
            b"\x01\x00",
            qos=0,
            retain=True,
        )


class TestStop:
    @pytest.mark.asyncio
    async def test_stop_stops_controller(self, bridge, zway):
        await bridge.start()
        await bridge.stop()
        assert zway.running is False
        assert bridge.running is False

    @pytest.mark.asyncio
    async def test_string_update_published(self, bridge, sim_context, mock_transport):
        from zway_mqtt.zway.simulated import DataHolder

        node = DataHolder("x", DataType.STRING, "on")
        await bridge.dispatch(DataEvent(change=DataChangeType.UPDATED, node=node))
        mock_transport.publish.assert_awaited_once_with("zwave/get/", b"\x04on\x00", qos=0, retain=True)
