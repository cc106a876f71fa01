"""MQTT session, events and message models."""

from .session import Session
from .events import SessionObserver, EventDispatcher
from .messages import InboundMessage, OutboundMessage

__all__ = [
    "Session",
    "SessionObserver",
    "EventDispatcher",
    "InboundMessage",
    "OutboundMessage",
]
