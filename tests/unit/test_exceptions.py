"""Tests for the bridge exception hierarchy."""

import pytest

from zway_mqtt.exceptions import (
    CommandRejectedError,
    ControllerFailureError,
    InvalidOperationError,
    InvalidTypeError,
    MalformedPayloadError,
    TransportFailureError,
    UnrecognizedTopicError,
    ZWayMQTTError,
)
from zway_mqtt.structs import ErrorKind


class TestErrorKinds:
    @pytest.mark.parametrize(
        ("exc", "kind"),
        [
            (UnrecognizedTopicError("a/b"), ErrorKind.UNRECOGNIZED_TOPIC),
            (InvalidTypeError("x"), ErrorKind.INVALID_TYPE),
            (InvalidOperationError("x"), ErrorKind.INVALID_OPERATION),
            (MalformedPayloadError("too_short"), ErrorKind.MALFORMED_PAYLOAD),
            (TransportFailureError("down", rc=4), ErrorKind.TRANSPORT_FAILURE),
            (CommandRejectedError("busy"), ErrorKind.COMMAND_REJECTED),
            (ControllerFailureError("start", "no port"), ErrorKind.CONTROLLER_FAILURE),
        ],
    )
    def test_kind(self, exc, kind):
        assert isinstance(exc, ZWayMQTTError)
        assert exc.kind is kind


class TestMalformedPayloadError:
    def test_preview_limited_to_16_bytes(self):
        err = MalformedPayloadError("bad_terminator", bytes(range(32)))
        assert err.reason == "bad_terminator"
        assert err.data_preview == bytes(range(16))
        assert "bad_terminator" in str(err)

    def test_no_data(self):
        assert MalformedPayloadError("empty").data_preview == b""


class TestOtherDetails:
    def test_transport_failure_rc(self):
        err = TransportFailureError("publish failed", rc=7)
        assert err.rc == 7
        assert "rc=7" in str(err)

    def test_controller_failure_stage(self):
        err = ControllerFailureError("discover", "timeout")
        assert err.stage == "discover"
        assert str(err) == "Z-Way discover failed: timeout"

    def test_unrecognized_topic_keeps_topic(self):
        assert UnrecognizedTopicError("not/a/topic").topic == "not/a/topic"
