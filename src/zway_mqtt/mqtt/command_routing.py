"""MQTT command routing for inbound messages.

Turns ``zwave/set/...`` and ``zwave/control/...`` messages into controller
calls. Every handler returns ``None`` on success or the ``ErrorKind`` the
message was dropped with; nothing is raised back to the dispatcher for a bad
message.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from typing import TYPE_CHECKING

from zway_mqtt import metrics
from zway_mqtt.const import (
    COMMAND_CLASS_CONFIGURATION,
    COMMAND_CLASS_SWITCH_BINARY,
    CONTROL_TOPIC_PREFIX,
    SET_TOPIC_PREFIX,
)
from zway_mqtt.exceptions import (
    InvalidOperationError,
    InvalidTypeError,
    MalformedPayloadError,
    UnrecognizedTopicError,
    ZWayMQTTError,
)
from zway_mqtt.logging_abstraction import get_logger
from zway_mqtt.protocol import PathTopicMapper, TypeCodec
from zway_mqtt.structs import CommandTarget, ControlCommand, DataType, ErrorKind, TaggedValue

if TYPE_CHECKING:
    from zway_mqtt.structs import BridgeContext, ZWayControllerProtocol

__all__ = ["CommandRouter", "SetterHandler"]

logger = get_logger(__name__)

# Handlers raise InvalidTypeError on a path or type mismatch and let
# CommandRejectedError from the controller through.
type SetterHandler = Callable[[ZWayControllerProtocol, CommandTarget, TaggedValue], None]

CONFIGURATION_PATH_PATTERN = re.compile(r"^(?P<parameter>\d+)/val$")


def set_switch_binary(controller: ZWayControllerProtocol, target: CommandTarget, value: TaggedValue) -> None:
    """``.../commandClasses/37/data/level`` with a Boolean payload."""
    if target.data_path != "level" or value.type is not DataType.BOOLEAN:
        msg = f"Invalid type or path for class {target.command_class_id}"
        raise InvalidTypeError(msg)
    controller.switch_binary_set(target.device_id, target.instance_id, bool(value.value))


def set_configuration(controller: ZWayControllerProtocol, target: CommandTarget, value: TaggedValue) -> None:
    """``.../commandClasses/112/data/<parameter>/val`` with an Integer payload."""
    match = CONFIGURATION_PATH_PATTERN.match(target.data_path)
    if match is None or value.type is not DataType.INTEGER:
        msg = f"Invalid type or path for class {target.command_class_id}"
        raise InvalidTypeError(msg)
    controller.configuration_set(
        target.device_id,
        target.instance_id,
        int(match["parameter"]),
        value.value,
        size=0,
    )


class CommandRouter:
    """Routes inbound MQTT messages to controller setters."""

    lp: str = "router:"

    def __init__(self, context: BridgeContext) -> None:
        self.context = context
        self.setters: dict[int, SetterHandler] = {
            COMMAND_CLASS_SWITCH_BINARY: set_switch_binary,
            COMMAND_CLASS_CONFIGURATION: set_configuration,
        }

    def register_setter(self, command_class_id: int, handler: SetterHandler) -> None:
        """Add or replace the setter for a command class."""
        logger.debug("%s Registering setter for command class %d", self.lp, command_class_id)
        self.setters[command_class_id] = handler

    def handle_message(self, topic: str, payload: bytes) -> ErrorKind | None:
        lp = f"{self.lp}handle_message:"
        if topic.startswith(SET_TOPIC_PREFIX):
            return self.handle_set_topic(topic, payload)
        if topic.startswith(CONTROL_TOPIC_PREFIX):
            return self.handle_control_topic(topic, payload)

        logger.error("%s %s: %s", lp, ErrorKind.UNRECOGNIZED_TOPIC, topic, extra={"topic": topic})
        metrics.record_command("unknown", "", ErrorKind.UNRECOGNIZED_TOPIC)
        return ErrorKind.UNRECOGNIZED_TOPIC

    def handle_set_topic(self, topic: str, payload: bytes) -> ErrorKind | None:
        """Apply a ``zwave/set/devices/...`` message.

        The controller's data lock is held from parsing until the setter call
        returns.

        Returns:
            None on success, otherwise why the message was dropped

        """
        lp = f"{self.lp}set:"
        with self.context.controller.data_lock():
            command_class, result = self._apply_set(topic, payload)

        self._log_outcome(lp, topic, result)
        metrics.record_command("set", command_class, result or "success")
        return result

    def _apply_set(self, topic: str, payload: bytes) -> tuple[int | str, ErrorKind | None]:
        lp = f"{self.lp}set:"
        cc_id: int | str = ""
        try:
            target = PathTopicMapper.topic_to_set_command(topic)
            if isinstance(target, ErrorKind):
                raise UnrecognizedTopicError(topic)

            cc_id = target.command_class_id
            handler = self.setters.get(cc_id)
            if handler is None:
                msg = f"Cannot set data for unknown class {cc_id}"
                raise InvalidOperationError(msg)

            handler(self.context.controller, target, self._decode_exact(payload))
        except MalformedPayloadError as exc:
            logger.error("%s Malformed payload (%s): %s", lp, exc.reason, exc.data_preview.hex(" "))
            return cc_id, exc.kind
        except ZWayMQTTError as exc:
            logger.error("%s %s", lp, exc)
            return cc_id, exc.kind
        return cc_id, None

    @staticmethod
    def _decode_exact(payload: bytes) -> TaggedValue:
        """Decode ``payload``, refusing a fixed-width value with extra bytes as a type mismatch."""
        value = TypeCodec.decode(payload)
        if not TypeCodec.has_exact_length(payload):
            msg = f"{len(payload)} bytes is the wrong length for a {value.type.name} payload"
            raise InvalidTypeError(msg)
        return value

    def handle_control_topic(self, topic: str, payload: bytes) -> ErrorKind | None:
        """Apply a ``zwave/control/<action>`` message (Boolean start/stop)."""
        lp = f"{self.lp}control:"
        with self.context.controller.data_lock():
            result = self._apply_control(topic, payload)

        self._log_outcome(lp, topic, result)
        metrics.record_command("control", "", result or "success")
        return result

    def _apply_control(self, topic: str, payload: bytes) -> ErrorKind | None:
        lp = f"{self.lp}control:"
        try:
            command = PathTopicMapper.topic_to_control_command(topic)
            if isinstance(command, ErrorKind):
                # zwave/control/ itself is well formed, only the action is unknown
                msg = f"Unsupported control action in {topic}"
                raise InvalidOperationError(msg)

            value = self._decode_exact(payload)
            if value.type is not DataType.BOOLEAN:
                msg = f"{command} expects a Boolean payload, got {value.type.name}"
                raise InvalidTypeError(msg)

            controller = self.context.controller
            if command is ControlCommand.ADD_NODE:
                controller.add_node_to_network(bool(value.value), high_power=True)
            else:
                controller.remove_node_from_network(bool(value.value), high_power=True)
        except MalformedPayloadError as exc:
            logger.error("%s Malformed payload (%s): %s", lp, exc.reason, exc.data_preview.hex(" "))
            return exc.kind
        except ZWayMQTTError as exc:
            logger.error("%s %s", lp, exc)
            return exc.kind
        return None

    @staticmethod
    def _log_outcome(lp: str, topic: str, result: ErrorKind | None) -> None:
        if result is None:
            logger.info("%s Successfully applied %s", lp, topic, extra={"topic": topic})
        else:
            logger.error("%s Failed to apply %s: %s", lp, topic, result, extra={"topic": topic, "error": str(result)})
