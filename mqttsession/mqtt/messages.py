"""Pydantic models for inbound and outbound application messages."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from ..exceptions import InvalidArgument


class InboundMessage(BaseModel):
    """An application message received on a subscribed topic."""

    topic: str = Field(
        ...,
        description="Topic the message was published to"
    )
    payload: str = Field(
        default="",
        description="Payload decoded as UTF-8 text"
    )
    qos: int = Field(
        default=0,
        ge=0,
        le=2,
        description="QoS the message was delivered with"
    )
    retain: bool = Field(
        default=False,
        description="Whether the broker delivered a retained message"
    )

    @classmethod
    def from_aiomqtt(cls, message: Any) -> Optional["InboundMessage"]:
        """Convert an aiomqtt message.

        Args:
            message: aiomqtt.Message (or anything with topic/payload attributes)

        Returns:
            InboundMessage, or None if the topic is blank
        """
        topic = str(message.topic)
        if not topic.strip():
            return None

        return cls(
            topic=topic,
            payload=decode_payload(message.payload),
            qos=getattr(message, "qos", 0) or 0,
            retain=bool(getattr(message, "retain", False)),
        )


class OutboundMessage(BaseModel):
    """An application message about to be published."""

    topic: str = Field(
        ...,
        description="Target topic"
    )
    payload: str = Field(
        ...,
        description="Payload text"
    )
    qos: int = Field(
        default=2,
        ge=0,
        le=2,
        description="Requested delivery guarantee"
    )
    retain: bool = Field(
        default=True,
        description="Ask the broker to keep this as the topic's last value"
    )

    @classmethod
    def build(
        cls,
        payload: Optional[str],
        topic: Optional[str],
        qos: int = 2,
        retain: bool = True,
    ) -> "OutboundMessage":
        """Build a message, rejecting empty payloads and topics.

        Raises:
            InvalidArgument: If payload or topic is empty
        """
        if not payload:
            raise InvalidArgument("payload must not be empty")
        if not topic:
            raise InvalidArgument("topic must not be empty")
        return cls(topic=topic, payload=payload, qos=qos, retain=retain)

    def to_aiomqtt_args(self) -> Dict[str, Any]:
        """Returns dict suitable for client.publish(**args)"""
        return {
            "topic": self.topic,
            "payload": self.payload.encode("utf-8"),
            "qos": self.qos,
            "retain": self.retain,
        }


def decode_payload(payload: Any) -> str:
    """Decode a received payload to text.

    aiomqtt hands over bytes for most messages, but may also pass
    str, int, float or None.
    """
    if payload is None:
        return ""
    if isinstance(payload, (bytes, bytearray)):
        return bytes(payload).decode("utf-8", errors="replace")
    return str(payload)
