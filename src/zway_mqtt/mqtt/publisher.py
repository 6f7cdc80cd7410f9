"""Outbound value publishing: data node -> retained ``zwave/get/...`` message."""

from __future__ import annotations

from typing import TYPE_CHECKING

from zway_mqtt import metrics
from zway_mqtt.exceptions import InvalidTypeError, TransportFailureError
from zway_mqtt.logging_abstraction import get_logger
from zway_mqtt.protocol import PathTopicMapper, TypeCodec

if TYPE_CHECKING:
    from zway_mqtt.structs import BridgeContext, DataNodeProtocol

__all__ = ["Publisher"]

logger = get_logger(__name__)


class Publisher:
    lp: str = "publisher:"

    def __init__(self, context: BridgeContext) -> None:
        self.context = context

    async def publish_node(self, node: DataNodeProtocol) -> bool:
        """Publish the current value of ``node``, retained, QoS 0.

        Failures are logged and counted, never retried.

        Returns:
            True when the transport accepted the message

        """
        lp = f"{self.lp}publish_node:"
        path = node.path
        topic = PathTopicMapper.path_to_get_topic(path)
        try:
            payload = TypeCodec.encode(node.type, node.value)
        except InvalidTypeError as exc:
            logger.error("%s Cannot encode %s (%s): %s", lp, path, node.type, exc, extra={"path": path})
            metrics.record_publish("encode_error")
            return False

        transport = self.context.transport
        if transport is None:
            logger.error("%s Failed to publish %s len=%d to MQTT: no transport", lp, path, len(payload))
            metrics.record_publish("transport_error")
            return False

        try:
            published = await transport.publish(topic, payload, qos=0, retain=True)
        except TransportFailureError as exc:
            logger.error(
                "%s Failed to publish %s len=%d to MQTT: %s",
                lp,
                path,
                len(payload),
                exc.rc if exc.rc is not None else exc.reason,
                extra={"path": path, "rc": exc.rc},
            )
            metrics.record_publish("transport_error")
            return False

        if not published:
            logger.error("%s Failed to publish %s len=%d to MQTT: not connected", lp, path, len(payload))
            metrics.record_publish("transport_error")
            return False

        logger.debug("%s %s <- %s", lp, topic, payload.hex(" "))
        metrics.record_publish("success")
        return True
