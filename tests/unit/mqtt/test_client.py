"""Tests for the aiomqtt-backed MQTT transport."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import aiomqtt
import pytest

from zway_mqtt.exceptions import TransportFailureError
from zway_mqtt.mqtt.client import MQTTClient
from zway_mqtt.structs import BridgeContext, InboundMessage


def _message(topic: str, payload: bytes | None):
    return SimpleNamespace(topic=SimpleNamespace(value=topic), payload=payload)


async def _iterate(messages):
    for message in messages:
        yield message


@pytest.fixture
def client_context(settings, mock_controller):
    return BridgeContext(settings=settings, controller=mock_controller)


@pytest.fixture
def fake_aiomqtt_client():
    client = MagicMock()
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=None)
    client.subscribe = AsyncMock()
    client.publish = AsyncMock()
    return client


class TestConnect:
    @pytest.mark.asyncio
    async def test_connect_uses_settings(self, client_context, fake_aiomqtt_client):
        with patch("zway_mqtt.mqtt.client.aiomqtt.Client", return_value=fake_aiomqtt_client) as client_cls:
            mqtt = MQTTClient(client_context)
            assert await mqtt.connect() is True

        kwargs = client_cls.call_args.kwargs
        assert kwargs["hostname"] == "broker.test"
        assert kwargs["port"] == 1883
        assert kwargs["identifier"] == "z-way"
        assert kwargs["keepalive"] == 300
        assert mqtt.is_connected is True

    @pytest.mark.asyncio
    async def test_connect_failure(self, client_context, fake_aiomqtt_client):
        fake_aiomqtt_client.__aenter__ = AsyncMock(side_effect=aiomqtt.MqttError("[Errno 111] Connection refused"))
        with (
            patch("zway_mqtt.mqtt.client.aiomqtt.Client", return_value=fake_aiomqtt_client),
            patch("zway_mqtt.mqtt.client.send_sigterm") as sigterm,
        ):
            mqtt = MQTTClient(client_context)
            assert await mqtt.connect() is False

        sigterm.assert_not_called()
        assert mqtt.is_connected is False

    @pytest.mark.asyncio
    async def test_bad_credentials_terminate(self, client_context, fake_aiomqtt_client):
        fake_aiomqtt_client.__aenter__ = AsyncMock(
            side_effect=aiomqtt.MqttError("[code:134] Bad user name or password"),
        )
        with (
            patch("zway_mqtt.mqtt.client.aiomqtt.Client", return_value=fake_aiomqtt_client),
            patch("zway_mqtt.mqtt.client.send_sigterm") as sigterm,
        ):
            mqtt = MQTTClient(client_context)
            assert await mqtt.connect() is False

        sigterm.assert_called_once()

    def test_connection_delay_fallback(self, settings, mock_controller):
        context = BridgeContext(settings=settings.model_copy(update={"mqtt_conn_delay": 0}), controller=mock_controller)
        assert MQTTClient(context)._get_connection_delay("test:") == 5


class TestReceiver:
    @pytest.mark.asyncio
    async def test_subscribes_and_posts_messages(self, client_context, fake_aiomqtt_client):
        fake_aiomqtt_client.messages = _iterate(
            [
                _message("zwave/set/devices/2/instances/0/commandClasses/37/data/level", b"\x01\x01"),
                _message("zwave/control/add_node", b""),
                _message("zwave/control/add_node", bytearray(b"\x01\x01")),
            ],
        )
        mqtt = MQTTClient(client_context)
        mqtt.client = fake_aiomqtt_client

        await mqtt._start_receiver("test:")

        subscribed = [c.args[0] for c in fake_aiomqtt_client.subscribe.await_args_list]
        assert subscribed == ["zwave/set/#", "zwave/control/#"]

        events = client_context.events
        assert events.qsize() == 2
        assert events.get_nowait() == InboundMessage(
            topic="zwave/set/devices/2/instances/0/commandClasses/37/data/level",
            payload=b"\x01\x01",
        )
        assert events.get_nowait() == InboundMessage(topic="zwave/control/add_node", payload=b"\x01\x01")


class TestPublish:
    @pytest.mark.asyncio
    async def test_not_connected_returns_false(self, client_context):
        mqtt = MQTTClient(client_context)
        assert await mqtt.publish("zwave/get/x", b"\x00") is False

    @pytest.mark.asyncio
    async def test_publish_passes_qos_and_retain(self, client_context, fake_aiomqtt_client):
        mqtt = MQTTClient(client_context)
        mqtt.client = fake_aiomqtt_client
        mqtt._connected = True

        assert await mqtt.publish("zwave/get/x", b"\x01\x01", qos=0, retain=True) is True
        fake_aiomqtt_client.publish.assert_awaited_once_with("zwave/get/x", b"\x01\x01", qos=0, retain=True)

    @pytest.mark.asyncio
    async def test_code_error_carries_rc(self, client_context, fake_aiomqtt_client):
        fake_aiomqtt_client.publish = AsyncMock(side_effect=aiomqtt.MqttCodeError(4, "Could not publish message"))
        mqtt = MQTTClient(client_context)
        mqtt.client = fake_aiomqtt_client
        mqtt._connected = True

        with pytest.raises(TransportFailureError) as exc_info:
            await mqtt.publish("zwave/get/x", b"\x01\x01", retain=True)

        assert exc_info.value.rc == 4
        assert mqtt.is_connected is False

    @pytest.mark.asyncio
    async def test_mqtt_error(self, client_context, fake_aiomqtt_client):
        fake_aiomqtt_client.publish = AsyncMock(side_effect=aiomqtt.MqttError("Disconnected"))
        mqtt = MQTTClient(client_context)
        mqtt.client = fake_aiomqtt_client
        mqtt._connected = True

        with pytest.raises(TransportFailureError) as exc_info:
            await mqtt.publish("zwave/get/x", b"\x00")
        assert exc_info.value.rc is None


class TestStop:
    @pytest.mark.asyncio
    async def test_stop_disconnects(self, client_context, fake_aiomqtt_client):
        mqtt = MQTTClient(client_context)
        mqtt.client = fake_aiomqtt_client
        mqtt._connected = True

        await mqtt.stop()

        fake_aiomqtt_client.__aexit__.assert_awaited_once_with(None, None, None)
        assert mqtt.is_connected is False
