"""Exceptions raised by MQTT sessions."""


class MQTTSessionError(Exception):
    """Base class for all session errors."""


class InvalidConfiguration(MQTTSessionError, ValueError):
    """A required configuration field is missing or invalid."""


class InvalidArgument(MQTTSessionError, ValueError):
    """A publish argument (payload or topic) is empty."""


class ConnectionFailed(MQTTSessionError, ConnectionError):
    """The transport failed to connect or disconnect."""
