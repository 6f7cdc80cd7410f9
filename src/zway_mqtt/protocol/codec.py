"""Tagged value encoder/decoder.

Payload layout: byte 0 is the ``DataType`` tag, the rest depends on the tag.

- Empty: nothing
- Boolean: 1 byte, 0 or non-zero
- Integer: 4 bytes, big-endian signed 32-bit
- Float: 4 bytes, IEEE-754 single precision in the host's native byte order
- String: UTF-8 bytes followed by one NUL terminator
- Binary: raw bytes
- Array of integer/float/string: tag byte only, the value is not encoded
"""

from __future__ import annotations

import logging
import struct
from typing import Any

from zway_mqtt.exceptions import InvalidTypeError, MalformedPayloadError
from zway_mqtt.structs import DataType, TaggedValue

__all__ = ["TypeCodec"]

INT32_STRUCT = struct.Struct(">i")
# Float is not normalised to a fixed byte order.
FLOAT_STRUCT = struct.Struct("=f")
NUL = b"\x00"

# Smallest valid payload for each tag, tag byte included
MIN_PAYLOAD_LENGTH: dict[DataType, int] = {
    DataType.EMPTY: 1,
    DataType.BOOLEAN: 2,
    DataType.INTEGER: 1 + INT32_STRUCT.size,
    DataType.FLOAT: 1 + FLOAT_STRUCT.size,
    DataType.STRING: 2,
    DataType.BINARY: 1,
    DataType.ARRAY_OF_INTEGER: 1,
    DataType.ARRAY_OF_FLOAT: 1,
    DataType.ARRAY_OF_STRING: 1,
}
FIXED_WIDTH_TYPES = frozenset({DataType.EMPTY, DataType.BOOLEAN, DataType.INTEGER, DataType.FLOAT})

logger = logging.getLogger(__name__)


class TypeCodec:
    """Stateless codec between ``(DataType, value)`` pairs and payload bytes."""

    @staticmethod
    def encode(data_type: DataType | int, value: Any) -> bytes:
        """Encode a typed value into a tagged payload.

        Args:
            data_type: Type tag of the value
            value: Python value matching the tag (ignored for Empty and array tags)

        Returns:
            Payload bytes, tag first

        Raises:
            InvalidTypeError: Unknown tag, or a value that does not fit the tag

        Example:
            >>> TypeCodec.encode(DataType.INTEGER, -1).hex(" ")
            '02 ff ff ff ff'
            >>> TypeCodec.encode(DataType.STRING, "on")
            b'\\x04on\\x00'

        """
        try:
            tag = DataType(data_type)
        except ValueError as exc:
            msg = f"unknown type tag {data_type!r}"
            raise InvalidTypeError(msg) from exc

        header = bytes([tag])

        if tag is DataType.EMPTY or tag.is_array:
            return header

        if tag is DataType.BOOLEAN:
            return header + (b"\x01" if value else b"\x00")

        if tag is DataType.INTEGER:
            if isinstance(value, bool) or not isinstance(value, int):
                msg = f"expected int for {tag.name}, got {type(value).__name__}"
                raise InvalidTypeError(msg)
            try:
                return header + INT32_STRUCT.pack(value)
            except struct.error as exc:
                msg = f"integer {value} does not fit in 32 bits"
                raise InvalidTypeError(msg) from exc

        if tag is DataType.FLOAT:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                msg = f"expected float for {tag.name}, got {type(value).__name__}"
                raise InvalidTypeError(msg)
            try:
                return header + FLOAT_STRUCT.pack(value)
            except (struct.error, OverflowError) as exc:
                msg = f"float {value} does not fit in single precision"
                raise InvalidTypeError(msg) from exc

        if tag is DataType.STRING:
            if isinstance(value, str):
                raw = value.encode("utf-8")
            elif isinstance(value, (bytes, bytearray)):
                raw = bytes(value)
            else:
                msg = f"expected str for {tag.name}, got {type(value).__name__}"
                raise InvalidTypeError(msg)
            # Everything from the first NUL on is dropped, the wire value ends there.
            return header + raw.split(NUL, 1)[0] + NUL

        # DataType.BINARY
        if not isinstance(value, (bytes, bytearray, memoryview)):
            msg = f"expected bytes for {tag.name}, got {type(value).__name__}"
            raise InvalidTypeError(msg)
        return header + bytes(value)

    @staticmethod
    def decode(payload: bytes) -> TaggedValue:
        """Decode a tagged payload.

        Array tags decode to ``(tag, None)``: their values are not carried.
        Bytes past the end of a fixed-width value are ignored here; callers that
        need an exact size check ``has_exact_length``.

        Raises:
            MalformedPayloadError: Empty payload, unknown tag, payload shorter
                than the tag requires, or a string without terminator / not UTF-8

        Example:
            >>> TypeCodec.decode(b"\\x01\\x01")
            TaggedValue(type=<DataType.BOOLEAN: 1>, value=True)

        """
        if not payload:
            reason = "empty"
            raise MalformedPayloadError(reason, payload)

        try:
            tag = DataType(payload[0])
        except ValueError as exc:
            reason = "unknown_tag"
            raise MalformedPayloadError(reason, payload) from exc

        if len(payload) < MIN_PAYLOAD_LENGTH[tag]:
            reason = "too_short"
            raise MalformedPayloadError(reason, payload)

        body = bytes(payload[1:])
        if tag in FIXED_WIDTH_TYPES:
            body = body[: MIN_PAYLOAD_LENGTH[tag] - 1]

        if tag is DataType.EMPTY:
            return TaggedValue(tag, None)

        if tag is DataType.BOOLEAN:
            return TaggedValue(tag, body[0] != 0)

        if tag is DataType.INTEGER:
            return TaggedValue(tag, INT32_STRUCT.unpack(body)[0])

        if tag is DataType.FLOAT:
            return TaggedValue(tag, FLOAT_STRUCT.unpack(body)[0])

        if tag is DataType.STRING:
            if body[-1:] != NUL or NUL in body[:-1]:
                reason = "bad_terminator"
                raise MalformedPayloadError(reason, payload)
            try:
                return TaggedValue(tag, body[:-1].decode("utf-8"))
            except UnicodeDecodeError as exc:
                reason = "invalid_utf8"
                raise MalformedPayloadError(reason, payload) from exc

        if tag is DataType.BINARY:
            return TaggedValue(tag, body)

        if body:
            logger.debug("Ignoring %d value bytes for unsupported array type %s", len(body), tag.name)
        return TaggedValue(tag, None)

    @staticmethod
    def has_exact_length(payload: bytes) -> bool:
        """True unless ``payload`` carries bytes past the end of a fixed-width value.

        Example:
            >>> TypeCodec.has_exact_length(b"\\x01\\x01\\x00")
            False

        """
        if not payload:
            return False
        try:
            tag = DataType(payload[0])
        except ValueError:
            return False
        if tag not in FIXED_WIDTH_TYPES:
            return True
        return len(payload) == MIN_PAYLOAD_LENGTH[tag]
