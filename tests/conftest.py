"""Pytest fixtures for mqtt-session.

The aiomqtt client is replaced with an in-memory fake so sessions can be
exercised without a broker.
"""

import asyncio
from types import SimpleNamespace
from typing import Any, List, Optional

import aiomqtt
import pytest

from mqttsession.config import SessionConfig


class FakeMqttClient:
    """Stands in for aiomqtt.Client and records what the session does."""

    def __init__(self, broker: "FakeBroker", hostname: str, port: int = 1883, **kwargs: Any):
        self.broker = broker
        self.hostname = hostname
        self.port = port
        self.kwargs = kwargs
        self.subscriptions: List[tuple] = []
        self.published: List[dict] = []
        self.entered = False
        self.exited = False
        self._queue: "asyncio.Queue[Any]" = asyncio.Queue()

    async def __aenter__(self) -> "FakeMqttClient":
        if self.broker.connect_gate is not None:
            await self.broker.connect_gate.wait()
        if self.broker.hang_on_connect:
            await asyncio.Event().wait()
        if self.broker.connect_error is not None:
            raise self.broker.connect_error
        self.entered = True
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.exited = True
        if self.broker.disconnect_error is not None:
            raise self.broker.disconnect_error

    async def subscribe(self, topic: str, qos: int = 0) -> None:
        self.subscriptions.append((topic, qos))

    async def publish(self, topic: str, payload: Any = None, qos: int = 0, retain: bool = False) -> None:
        if self.broker.publish_error is not None:
            raise self.broker.publish_error
        self.published.append(
            {"topic": topic, "payload": payload, "qos": qos, "retain": retain}
        )

    @property
    def messages(self):
        return self._iterate()

    async def _iterate(self):
        while True:
            item = await self._queue.get()
            if isinstance(item, Exception):
                raise item
            yield item

    def deliver(self, topic: str, payload: Any, qos: int = 2, retain: bool = False) -> None:
        """Queue an inbound message for the session."""
        self._queue.put_nowait(
            SimpleNamespace(topic=topic, payload=payload, qos=qos, retain=retain)
        )

    def drop(self, reason: str = "Disconnected during message iteration") -> None:
        """Simulate the broker connection going away."""
        self._queue.put_nowait(aiomqtt.MqttError(reason))


class FakeBroker:
    """Factory for fake clients; also controls their failure modes."""

    def __init__(self):
        self.clients: List[FakeMqttClient] = []
        self.connect_error: Optional[Exception] = None
        self.disconnect_error: Optional[Exception] = None
        self.publish_error: Optional[Exception] = None
        self.hang_on_connect = False
        self.connect_gate: Optional[asyncio.Event] = None

    def create_client(self, hostname: str, port: int = 1883, **kwargs: Any) -> FakeMqttClient:
        client = FakeMqttClient(self, hostname, port, **kwargs)
        self.clients.append(client)
        return client

    @property
    def client(self) -> FakeMqttClient:
        """The most recently created client."""
        return self.clients[-1]


@pytest.fixture
def broker(monkeypatch) -> FakeBroker:
    """Replace aiomqtt.Client with fake clients."""
    fake = FakeBroker()
    monkeypatch.setattr(aiomqtt, "Client", fake.create_client)
    return fake


@pytest.fixture
def session_config() -> SessionConfig:
    """A complete session configuration."""
    return SessionConfig(
        server="broker.example.com",
        port=1883,
        topic="test/topic",
        username="user",
        password="secret",
        client_id="test-client",
        connect_timeout=1.0,
    )


async def _settle(rounds: int = 10) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def settle():
    """Coroutine function that lets background tasks run for a few loop passes."""
    return _settle
