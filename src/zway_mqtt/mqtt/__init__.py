"""MQTT side of the bridge: transport, outbound publishing, inbound routing."""

from zway_mqtt.mqtt.client import MQTTClient
from zway_mqtt.mqtt.command_routing import CommandRouter
from zway_mqtt.mqtt.publisher import Publisher

__all__ = [
    "CommandRouter",
    "MQTTClient",
    "Publisher",
]
