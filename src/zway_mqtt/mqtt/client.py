"""MQTT transport for the bridge.

Owns the aiomqtt client: connection with retry, the ``zwave/set/#`` and
``zwave/control/#`` subscriptions, and publishing. Received messages are not
handled here; they are posted to the bridge event queue.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, cast

import aiomqtt

from zway_mqtt.const import SUBSCRIBE_TOPICS
from zway_mqtt.exceptions import TransportFailureError
from zway_mqtt.logging_abstraction import get_logger
from zway_mqtt.structs import InboundMessage
from zway_mqtt.utils import send_sigterm

if TYPE_CHECKING:
    from zway_mqtt.structs import BridgeContext

__all__ = ["MQTTClient"]

logger = get_logger(__name__)


class MQTTClient:
    """aiomqtt-backed implementation of ``MQTTTransportProtocol``."""

    lp: str = "mqtt:"

    def __init__(self, context: BridgeContext) -> None:
        self.context = context
        self.client: aiomqtt.Client | None = None
        self._connected = False
        self.start_task: asyncio.Task[None] | None = None

    @property
    def is_connected(self) -> bool:
        return self._connected

    def _new_client(self) -> aiomqtt.Client:
        settings = self.context.settings
        return aiomqtt.Client(
            hostname=settings.mqtt_host,
            port=settings.mqtt_port,
            username=settings.mqtt_user,
            password=settings.mqtt_pass,
            identifier=settings.mqtt_client_id,
            keepalive=settings.mqtt_keepalive,
        )

    def _get_connection_delay(self, lp: str) -> int:
        """Get connection retry delay, defaulting to 5 seconds."""
        delay = self.context.settings.mqtt_conn_delay
        if delay <= 0:
            logger.debug(
                "%s MQTT connection delay is less than or equal to 0, which is probably a typo, setting to 5...",
                lp,
            )
            return 5
        return delay

    async def start(self) -> None:
        """Connect, subscribe and receive until cancelled, reconnecting on errors."""
        lp = f"{self.lp}start:"
        try:
            while True:
                if await self.connect():
                    try:
                        await self._start_receiver(lp)
                    except (aiomqtt.MqttError, aiomqtt.MqttCodeError):
                        self._connected = False
                        continue
                else:
                    delay = self._get_connection_delay(lp)
                    logger.info(
                        "%s connecting to MQTT broker failed, sleeping for %s seconds before re-trying...",
                        lp,
                        delay,
                    )
                    await asyncio.sleep(delay)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("%s MQTT start() EXCEPTION", lp)

    async def connect(self) -> bool:
        lp = f"{self.lp}connect:"
        self._connected = False
        settings = self.context.settings
        logger.debug("%s Connecting to MQTT broker %s:%s...", lp, settings.mqtt_host, settings.mqtt_port)
        self.client = self._new_client()
        try:
            _ = await self.client.__aenter__()
        except aiomqtt.MqttError as mqtt_err_exc:
            # -> [Errno 111] Connection refused
            # [code:134] Bad user name or password
            logger.error("%s Connection failed [MqttError]: %s", lp, mqtt_err_exc)
            if "code:134" in str(mqtt_err_exc):
                logger.critical(
                    "%s Bad username or password, check your MQTT credentials (username: %s)",
                    lp,
                    settings.mqtt_user,
                )
                send_sigterm()
            return False

        self._connected = True
        logger.info("%s Connected to MQTT broker: %s port: %s", lp, settings.mqtt_host, settings.mqtt_port)
        return True

    async def _start_receiver(self, lp: str) -> None:
        """Subscribe and feed received messages to the event queue."""
        rcv_lp = f"{self.lp}rcv:"
        assert self.client is not None, "client must be initialized"
        for topic in SUBSCRIBE_TOPICS:
            await self.client.subscribe(topic, qos=0)
        logger.info("%s Subscribed to MQTT topics: %s. Waiting for MQTT messages...", lp, list(SUBSCRIBE_TOPICS))
        try:
            async for message in self.client.messages:
                msg: Any = cast("Any", message)
                topic = msg.topic.value
                payload = msg.payload
                if not payload:
                    logger.debug("%s Received empty payload for topic: %s , skipping...", rcv_lp, topic)
                    continue
                if not isinstance(payload, (bytes, bytearray)):
                    payload = str(payload).encode()
                logger.debug("%s %s -> %s", rcv_lp, topic, bytes(payload).hex(" "))
                self.context.post_event(InboundMessage(topic=topic, payload=bytes(payload)))
        except asyncio.CancelledError:
            logger.debug("%s MQTT receiver task cancelled, propagating...", rcv_lp)
            raise
        except (aiomqtt.MqttError, aiomqtt.MqttCodeError) as msg_err:
            logger.warning("%s MQTT error: %s", rcv_lp, msg_err)
            raise

    async def publish(self, topic: str, payload: bytes, *, qos: int = 0, retain: bool = False) -> bool:
        """Publish a message to the MQTT broker.

        Returns:
            True once handed to the client, False while not connected

        Raises:
            TransportFailureError: The client rejected the publish

        """
        if not self._connected or self.client is None:
            return False
        try:
            _ = await self.client.publish(topic, payload, qos=qos, retain=retain)
        except aiomqtt.MqttCodeError as mqtt_code_exc:
            self._connected = False
            raise TransportFailureError(str(mqtt_code_exc), rc=cast("Any", mqtt_code_exc).rc) from mqtt_code_exc
        except aiomqtt.MqttError as mqtt_err:
            self._connected = False
            raise TransportFailureError(str(mqtt_err)) from mqtt_err
        return True

    async def stop(self) -> None:
        lp = f"{self.lp}stop:"
        try:
            if self.client is not None and self._connected:
                logger.debug("%s Disconnecting from broker...", lp)
                await self.client.__aexit__(None, None, None)
        except aiomqtt.MqttError as ce:
            logger.warning("%s MQTT disconnect failed: %s", lp, ce)
        else:
            logger.info("%s Disconnected from MQTT broker", lp)
        finally:
            self._connected = False
            if self.start_task and not self.start_task.done():
                logger.debug("%s FINISHING: Cancelling start task", lp)
                _ = self.start_task.cancel()
