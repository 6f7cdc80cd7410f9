"""Core data structures and typing protocols for the Z-Way MQTT bridge."""

from __future__ import annotations

import asyncio
import os
from collections.abc import Callable, Sequence
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from enum import IntEnum, IntFlag, StrEnum
from typing import TYPE_CHECKING, Any, NamedTuple, Protocol

from pydantic import BaseModel, ConfigDict

from zway_mqtt.const import (
    ZWAY_CONFIG_DIR,
    ZWAY_MQTT_CLIENT_ID,
    ZWAY_MQTT_CONN_DELAY,
    ZWAY_MQTT_CONTROLLER_FACTORY,
    ZWAY_MQTT_CONTROLLER_NODE_ID,
    ZWAY_MQTT_HOST,
    ZWAY_MQTT_KEEPALIVE,
    ZWAY_MQTT_METRICS_PORT,
    ZWAY_MQTT_PASS,
    ZWAY_MQTT_PORT,
    ZWAY_MQTT_USER,
    ZWAY_MQTT_WALK_ON_START,
    ZWAY_PORT,
    ZWAY_TRANSLATIONS_DIR,
    ZWAY_ZDDX_DIR,
    bool_env,
    int_env,
)

if TYPE_CHECKING:
    from zway_mqtt.subscriptions import SubscriptionSet


class DataType(IntEnum):
    """Z-Way data holder types. The value is the tag byte on the wire."""

    EMPTY = 0
    BOOLEAN = 1
    INTEGER = 2
    FLOAT = 3
    STRING = 4
    BINARY = 5
    ARRAY_OF_INTEGER = 6
    ARRAY_OF_FLOAT = 7
    ARRAY_OF_STRING = 8

    @property
    def is_array(self) -> bool:
        return self in (DataType.ARRAY_OF_INTEGER, DataType.ARRAY_OF_FLOAT, DataType.ARRAY_OF_STRING)


class DataChangeType(IntFlag):
    """Classification of a data holder notification. Several flags may be set at once."""

    UPDATED = 0x01
    INVALIDATED = 0x02
    DELETED = 0x04
    CHILD_CREATED = 0x08


class DeviceChangeType(IntFlag):
    """Device lifecycle notifications, also used as the registration mask."""

    DEVICE_ADDED = 0x01
    DEVICE_REMOVED = 0x02
    INSTANCE_ADDED = 0x04
    INSTANCE_REMOVED = 0x08
    COMMAND_ADDED = 0x10
    COMMAND_REMOVED = 0x20
    ENUMERATE_EXISTING = 0x40

    @classmethod
    def all_events(cls) -> DeviceChangeType:
        return (
            cls.DEVICE_ADDED
            | cls.DEVICE_REMOVED
            | cls.INSTANCE_ADDED
            | cls.INSTANCE_REMOVED
            | cls.COMMAND_ADDED
            | cls.COMMAND_REMOVED
            | cls.ENUMERATE_EXISTING
        )


class ControlCommand(StrEnum):
    """Network management actions exposed under ``zwave/control/``."""

    ADD_NODE = "add_node"
    REMOVE_NODE = "remove_node"


class ErrorKind(StrEnum):
    """Outcome classification for a dropped message or failed operation."""

    UNRECOGNIZED_TOPIC = "UnrecognizedTopic"
    INVALID_TYPE = "InvalidType"
    INVALID_OPERATION = "InvalidOperation"
    MALFORMED_PAYLOAD = "MalformedPayload"
    TRANSPORT_FAILURE = "TransportFailure"
    COMMAND_REJECTED = "CommandRejected"
    CONTROLLER_FAILURE = "ControllerFailure"


class TaggedValue(NamedTuple):
    """A decoded payload: its type tag and the Python value."""

    type: DataType
    value: Any


class CommandTarget(BaseModel):
    """Destination of a ``zwave/set/...`` message.

    ``data_path`` is everything after ``data/``, still slash separated, so each
    command class handler can interpret it (``level``, ``5/val``, ...).
    """

    model_config = ConfigDict(frozen=True)

    device_id: int
    instance_id: int
    command_class_id: int
    data_path: str


class BridgeSettings(BaseModel):
    """Runtime settings, seeded from ZWAY_* environment variables."""

    mqtt_host: str = ZWAY_MQTT_HOST
    mqtt_port: int = ZWAY_MQTT_PORT
    mqtt_user: str | None = ZWAY_MQTT_USER
    mqtt_pass: str | None = ZWAY_MQTT_PASS
    mqtt_client_id: str = ZWAY_MQTT_CLIENT_ID
    mqtt_keepalive: int = ZWAY_MQTT_KEEPALIVE
    mqtt_conn_delay: int = ZWAY_MQTT_CONN_DELAY
    zway_port: str = ZWAY_PORT
    zway_config_dir: str = ZWAY_CONFIG_DIR
    zway_translations_dir: str = ZWAY_TRANSLATIONS_DIR
    zway_zddx_dir: str = ZWAY_ZDDX_DIR
    controller_factory: str | None = ZWAY_MQTT_CONTROLLER_FACTORY
    controller_node_id: int = ZWAY_MQTT_CONTROLLER_NODE_ID
    walk_on_start: bool = ZWAY_MQTT_WALK_ON_START
    metrics_port: int = ZWAY_MQTT_METRICS_PORT

    @classmethod
    def from_env(cls) -> BridgeSettings:
        """Re-read the environment (e.g. after loading a .env file)."""
        env = os.environ
        values: dict[str, Any] = {
            "mqtt_host": env.get("ZWAY_MQTT_HOST", ZWAY_MQTT_HOST),
            "mqtt_port": int_env("ZWAY_MQTT_PORT", ZWAY_MQTT_PORT),
            "mqtt_user": env.get("ZWAY_MQTT_USER") or None,
            "mqtt_pass": env.get("ZWAY_MQTT_PASS") or None,
            "mqtt_client_id": env.get("ZWAY_MQTT_CLIENT_ID", ZWAY_MQTT_CLIENT_ID),
            "mqtt_keepalive": int_env("ZWAY_MQTT_KEEPALIVE", ZWAY_MQTT_KEEPALIVE),
            "mqtt_conn_delay": int_env("ZWAY_MQTT_CONN_DELAY", ZWAY_MQTT_CONN_DELAY),
            "zway_port": env.get("ZWAY_PORT", ZWAY_PORT),
            "zway_config_dir": env.get("ZWAY_CONFIG_DIR", ZWAY_CONFIG_DIR),
            "zway_translations_dir": env.get("ZWAY_TRANSLATIONS_DIR", ZWAY_TRANSLATIONS_DIR),
            "zway_zddx_dir": env.get("ZWAY_ZDDX_DIR", ZWAY_ZDDX_DIR),
            "controller_factory": env.get("ZWAY_MQTT_CONTROLLER_FACTORY") or None,
            "controller_node_id": int_env("ZWAY_MQTT_CONTROLLER_NODE_ID", ZWAY_MQTT_CONTROLLER_NODE_ID),
            "metrics_port": int_env("ZWAY_MQTT_METRICS_PORT", ZWAY_MQTT_METRICS_PORT),
            "walk_on_start": bool_env("ZWAY_MQTT_WALK_ON_START", ZWAY_MQTT_WALK_ON_START),
        }
        return cls.model_validate(values)


# Callback signatures used by the controller interface
type DataCallback = Callable[[DataChangeType, DataNodeProtocol], None]
type DeviceCallback = Callable[[DeviceChangeType, int, int, int], None]


class DataNodeProtocol(Protocol):
    """A node of the controller's data tree."""

    @property
    def path(self) -> str: ...

    @property
    def type(self) -> DataType: ...

    @property
    def value(self) -> Any: ...

    @property
    def children(self) -> Sequence[DataNodeProtocol]: ...


class ZWayControllerProtocol(Protocol):
    """What the bridge needs from a Z-Way controller binding.

    Setter calls are asynchronous on the controller side: they queue the
    command and return. Their effect shows up later as data tree updates.
    Rejections are reported by raising ``CommandRejectedError``.
    """

    def data_root(self) -> DataNodeProtocol: ...

    def find_command_class_data(
        self,
        device_id: int,
        instance_id: int,
        command_class_id: int,
    ) -> DataNodeProtocol | None: ...

    def data_lock(self) -> AbstractContextManager[Any]: ...

    def add_data_callback(self, node: DataNodeProtocol, callback: DataCallback) -> None: ...

    def add_device_callback(self, mask: DeviceChangeType, callback: DeviceCallback) -> None: ...

    def switch_binary_set(self, device_id: int, instance_id: int, value: bool) -> None: ...

    def configuration_set(
        self,
        device_id: int,
        instance_id: int,
        parameter: int,
        value: int,
        size: int = 0,
    ) -> None: ...

    def add_node_to_network(self, start: bool, high_power: bool = True) -> None: ...

    def remove_node_from_network(self, start: bool, high_power: bool = True) -> None: ...

    def start(self) -> None: ...

    def discover(self) -> None: ...

    def stop(self) -> None: ...


class MQTTTransportProtocol(Protocol):
    async def publish(self, topic: str, payload: bytes, *, qos: int = 0, retain: bool = False) -> bool: ...


@dataclass(frozen=True)
class DataEvent:
    """A data holder notification from the controller."""

    change: DataChangeType
    node: DataNodeProtocol


@dataclass(frozen=True)
class DeviceEvent:
    """A device lifecycle notification from the controller."""

    change: DeviceChangeType
    device_id: int
    instance_id: int = 0
    command_class_id: int = 0


@dataclass(frozen=True)
class InboundMessage:
    """An MQTT message received on one of the bridge's subscriptions."""

    topic: str
    payload: bytes


type BridgeEvent = DataEvent | DeviceEvent | InboundMessage


@dataclass
class BridgeContext:
    """Process-wide state shared by every bridge component.

    Built once at startup. Events may be posted from any thread;
    ``post_event`` hands them to the loop that owns the queue.
    """

    settings: BridgeSettings
    controller: ZWayControllerProtocol
    subscriptions: SubscriptionSet = field(default_factory=lambda: _new_subscription_set())
    transport: MQTTTransportProtocol | None = None
    events: asyncio.Queue[BridgeEvent] = field(default_factory=asyncio.Queue)
    loop: asyncio.AbstractEventLoop | None = None

    def post_event(self, event: BridgeEvent) -> None:
        loop = self.loop
        if loop is None or loop.is_closed():
            self.events.put_nowait(event)
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self.events.put_nowait(event)
        else:
            _ = loop.call_soon_threadsafe(self.events.put_nowait, event)


def _new_subscription_set() -> SubscriptionSet:
    from zway_mqtt.subscriptions import SubscriptionSet

    return SubscriptionSet()
