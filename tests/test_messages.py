"""Tests for message models."""

from types import SimpleNamespace

import pytest

from mqttsession.exceptions import InvalidArgument
from mqttsession.mqtt.messages import InboundMessage, OutboundMessage, decode_payload


class TestInboundMessage:
    """Tests for InboundMessage conversion."""

    def test_from_aiomqtt(self):
        """Test a regular message is converted."""
        raw = SimpleNamespace(topic="a/b", payload=b"on", qos=1, retain=True)

        message = InboundMessage.from_aiomqtt(raw)

        assert message.topic == "a/b"
        assert message.payload == "on"
        assert message.qos == 1
        assert message.retain is True

    @pytest.mark.parametrize("topic", ["", " ", "\t\n"])
    def test_blank_topic(self, topic):
        """Test blank topics yield no message."""
        raw = SimpleNamespace(topic=topic, payload=b"x", qos=0, retain=False)
        assert InboundMessage.from_aiomqtt(raw) is None


class TestDecodePayload:
    """Tests for payload decoding."""

    def test_utf8(self):
        assert decode_payload("température".encode("utf-8")) == "température"

    def test_invalid_utf8_replaced(self):
        """Test undecodable bytes do not raise."""
        assert decode_payload(b"ok\xff") == "ok�"

    def test_non_bytes(self):
        assert decode_payload(None) == ""
        assert decode_payload(42) == "42"
        assert decode_payload(1.5) == "1.5"
        assert decode_payload("text") == "text"


class TestOutboundMessage:
    """Tests for OutboundMessage construction."""

    def test_build(self):
        """Test defaults are exactly-once and retained."""
        message = OutboundMessage.build("payload", "a/b")

        assert message.qos == 2
        assert message.retain is True
        assert message.to_aiomqtt_args() == {
            "topic": "a/b",
            "payload": b"payload",
            "qos": 2,
            "retain": True,
        }

    @pytest.mark.parametrize("payload,topic", [
        ("", "a/b"),
        (None, "a/b"),
        ("payload", ""),
        ("payload", None),
    ])
    def test_build_rejects_empty(self, payload, topic):
        with pytest.raises(InvalidArgument):
            OutboundMessage.build(payload, topic)

    def test_invalid_argument_is_value_error(self):
        """Test InvalidArgument can be caught as ValueError."""
        with pytest.raises(ValueError):
            OutboundMessage.build("", "a/b")
