"""Exception hierarchy for the Z-Way MQTT bridge.

Every exception carries the ``ErrorKind`` it is reported as, so the router
and publisher can log and count failures uniformly. Only
``ControllerFailureError`` is fatal; the rest are handled per message.
"""

from __future__ import annotations

from typing import ClassVar

from zway_mqtt.structs import ErrorKind

__all__ = [
    "CommandRejectedError",
    "ControllerFailureError",
    "InvalidOperationError",
    "InvalidTypeError",
    "MalformedPayloadError",
    "TransportFailureError",
    "UnrecognizedTopicError",
    "ZWayMQTTError",
]


class ZWayMQTTError(Exception):
    """Base exception for all bridge errors."""

    kind: ClassVar[ErrorKind]


class UnrecognizedTopicError(ZWayMQTTError):
    """Topic does not match any known pattern."""

    kind = ErrorKind.UNRECOGNIZED_TOPIC

    def __init__(self, topic: str) -> None:
        self.topic: str = topic
        super().__init__(f"Unrecognized topic: {topic}")


class InvalidTypeError(ZWayMQTTError):
    """Value or payload type does not match what the target expects."""

    kind = ErrorKind.INVALID_TYPE


class InvalidOperationError(ZWayMQTTError):
    """Well-formed target, but the operation is not supported."""

    kind = ErrorKind.INVALID_OPERATION


class MalformedPayloadError(ZWayMQTTError):
    """Payload cannot be decoded.

    Attributes:
        reason: Specific failure reason (e.g. "too_short", "unknown_tag")
        data_preview: First 16 bytes of the payload

    """

    kind = ErrorKind.MALFORMED_PAYLOAD

    def __init__(self, reason: str, data: bytes = b"") -> None:
        self.reason: str = reason
        self.data_preview: bytes = bytes(data[:16]) if data else b""
        super().__init__(f"Payload decode failed: {reason}")


class TransportFailureError(ZWayMQTTError):
    """An MQTT publish or subscribe call failed.

    Attributes:
        rc: Return code reported by the client library, when there is one

    """

    kind = ErrorKind.TRANSPORT_FAILURE

    def __init__(self, reason: str, rc: int | None = None) -> None:
        self.reason: str = reason
        self.rc: int | None = rc
        super().__init__(f"MQTT transport failure: {reason} (rc={rc})")


class CommandRejectedError(ZWayMQTTError):
    """The controller refused a setter or control call."""

    kind = ErrorKind.COMMAND_REJECTED


class ControllerFailureError(ZWayMQTTError):
    """Controller bootstrap (load, init, start, discover) failed. Fatal."""

    kind = ErrorKind.CONTROLLER_FAILURE

    def __init__(self, stage: str, reason: str) -> None:
        self.stage: str = stage
        self.reason: str = reason
        super().__init__(f"Z-Way {stage} failed: {reason}")
