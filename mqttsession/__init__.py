"""Simplified publish/subscribe MQTT sessions on top of aiomqtt."""

__version__ = "0.1.0"

from .config import SessionConfig
from .exceptions import (
    MQTTSessionError,
    InvalidConfiguration,
    InvalidArgument,
    ConnectionFailed,
)
from .mqtt import Session, SessionObserver

__all__ = [
    "__version__",
    "SessionConfig",
    "Session",
    "SessionObserver",
    "MQTTSessionError",
    "InvalidConfiguration",
    "InvalidArgument",
    "ConnectionFailed",
]
