"""Mapping between Z-Way data paths and MQTT topics.

Outbound: ``devices.3.instances.0.commandClasses.37.data.level`` is published
on ``zwave/get/devices/3/instances/0/commandClasses/37/data/level``.

Inbound: ``zwave/set/devices/<id>/instances/<id>/commandClasses/<id>/data/<rest>``
and ``zwave/control/<action>``. Parsing never raises; a topic that does not
fit is reported as ``ErrorKind.UNRECOGNIZED_TOPIC`` so the caller can drop the
message and move on.
"""

from __future__ import annotations

import re
from collections.abc import Sequence

from zway_mqtt.const import CONTROL_TOPIC_PREFIX, GET_TOPIC_PREFIX, SET_TOPIC_PREFIX
from zway_mqtt.logging_abstraction import get_logger
from zway_mqtt.structs import CommandTarget, ControlCommand, ErrorKind

__all__ = ["PathTopicMapper"]

logger = get_logger(__name__)

SET_TOPIC_PATTERN = re.compile(
    r"^devices/(?P<device>\d+)/instances/(?P<instance>\d+)/commandClasses/(?P<cc>\d+)/data/(?P<rest>.+)$",
)
CONTROL_TOPICS: dict[str, ControlCommand] = {
    f"{CONTROL_TOPIC_PREFIX}{command.value}": command for command in ControlCommand
}


class PathTopicMapper:
    """Bidirectional transform between tree paths and topic strings."""

    lp: str = "topics:"

    @staticmethod
    def path_to_get_topic(path: str | Sequence[str | int]) -> str:
        """Render a dotted data path (or its segments) as a ``zwave/get/...`` topic."""
        if not isinstance(path, str):
            path = ".".join(str(segment) for segment in path)
        return f"{GET_TOPIC_PREFIX}{path.replace('.', '/')}"

    @classmethod
    def topic_to_set_command(cls, topic: str) -> CommandTarget | ErrorKind:
        """Parse a ``zwave/set/devices/...`` topic into its command target.

        Returns:
            The parsed CommandTarget, or ErrorKind.UNRECOGNIZED_TOPIC when the
            prefix or the structure does not match

        """
        lp = f"{cls.lp}set:"
        if not topic.startswith(SET_TOPIC_PREFIX):
            logger.error("%s invalid topic prefix: %s", lp, topic)
            return ErrorKind.UNRECOGNIZED_TOPIC

        # keep the "devices/" segment, the pattern anchors on it
        remainder = topic[len(SET_TOPIC_PREFIX) - len("devices/") :]
        match = SET_TOPIC_PATTERN.match(remainder)
        if match is None:
            logger.error("%s Cannot parse %s", lp, topic)
            return ErrorKind.UNRECOGNIZED_TOPIC

        return CommandTarget(
            device_id=int(match["device"]),
            instance_id=int(match["instance"]),
            command_class_id=int(match["cc"]),
            data_path=match["rest"],
        )

    @classmethod
    def topic_to_control_command(cls, topic: str) -> ControlCommand | ErrorKind:
        command = CONTROL_TOPICS.get(topic)
        if command is None:
            logger.error("%s unknown control topic: %s", f"{cls.lp}control:", topic)
            return ErrorKind.UNRECOGNIZED_TOPIC
        return command
