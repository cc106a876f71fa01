"""Publish/subscribe session on top of aiomqtt."""

import asyncio
import logging
import ssl
from typing import Any, Dict, Iterable, Mapping, Optional, Set, Union

import aiomqtt

from ..config import SessionConfig, parse_session_config
from ..exceptions import ConnectionFailed
from .events import (
    ConnectionCallback,
    EventDispatcher,
    MessageCallback,
    SessionObserver,
)
from .messages import InboundMessage, OutboundMessage

logger = logging.getLogger(__name__)


class Session:
    """A single MQTT session: one client identity, one connection, one topic.

    The session subscribes to the configured topic every time it connects
    and re-dispatches received messages to its observers. It never
    reconnects on its own; after a dropped connection ``connect()`` may be
    called again.

    Usage:
        async with Session(config, observers=[printer]) as session:
            session.publish("hello")
    """

    def __init__(
        self,
        config: Union[SessionConfig, Mapping[str, Any]],
        observers: Iterable[SessionObserver] = (),
    ):
        """Initialize the session. No network I/O happens here.

        Args:
            config: SessionConfig or mapping of session settings
            observers: Observers to register before connecting

        Raises:
            InvalidConfiguration: If a required setting is missing or invalid
        """
        self.config = parse_session_config(config)
        self._events = EventDispatcher()
        for observer in observers:
            self._events.add_observer(observer)

        self._client: aiomqtt.Client = self._create_client()
        self._entered = False
        self._connected = False
        self._closed = False
        self._subscribed_topic: Optional[str] = None
        self._message_task: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()

        self._stats = {
            "connects": 0,
            "disconnects": 0,
            "messages_received": 0,
            "messages_published": 0,
            "publishes_skipped": 0,
            "publishes_failed": 0,
        }

    @classmethod
    async def open(
        cls,
        config: Union[SessionConfig, Mapping[str, Any]],
        observers: Iterable[SessionObserver] = (),
        timeout: Optional[float] = None,
    ) -> "Session":
        """Create a session and connect it.

        Raises:
            InvalidConfiguration: If the configuration is invalid
            ConnectionFailed: If the broker cannot be reached
        """
        session = cls(config, observers=observers)
        await session.connect(timeout=timeout)
        return session

    async def __aenter__(self) -> "Session":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def connected(self) -> bool:
        """Check if connected to MQTT broker."""
        return self._connected

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def client_id(self) -> str:
        return self.config.client_id

    @property
    def topic(self) -> str:
        """The subscribed topic, also the default publish topic."""
        return self.config.topic

    @property
    def stats(self) -> Dict[str, int]:
        return dict(self._stats)

    def add_observer(self, observer: SessionObserver) -> None:
        self._events.add_observer(observer)

    def remove_observer(self, observer: SessionObserver) -> None:
        self._events.remove_observer(observer)

    def add_connected_callback(self, callback: ConnectionCallback):
        return self._events.add_connected_callback(callback)

    def add_disconnected_callback(self, callback: ConnectionCallback):
        return self._events.add_disconnected_callback(callback)

    def add_message_callback(self, callback: MessageCallback):
        return self._events.add_message_callback(callback)

    def _create_client(self) -> aiomqtt.Client:
        tls_context = ssl.create_default_context() if self.config.use_tls else None
        return aiomqtt.Client(
            hostname=self.config.server,
            port=self.config.port,
            username=self.config.username,
            password=self.config.password,
            identifier=self.config.client_id,
            clean_session=True,
            keepalive=self.config.keepalive,
            timeout=self.config.connect_timeout,
            tls_context=tls_context,
            tls_insecure=self.config.tls_insecure if self.config.use_tls else None,
        )

    async def connect(self, timeout: Optional[float] = None) -> None:
        """Connect to the broker, subscribe to the topic and start dispatching.

        Args:
            timeout: Seconds to wait for the handshake (default from config)

        Raises:
            ConnectionFailed: If the connection or subscription fails, times
                out, or the session is closed
        """
        if self._closed:
            raise ConnectionFailed("Session is closed")
        if self._connected:
            return

        if timeout is None:
            timeout = self.config.connect_timeout

        # A dropped connection leaves the old client entered; start fresh
        if self._entered:
            await self._release_client(timeout, strict=False)
            self._client = self._create_client()

        address = f"{self.config.server}:{self.config.port}"
        logger.info(
            f"Connecting to MQTT broker at {address} as {self.client_id}"
            f"{' (TLS)' if self.config.use_tls else ''}"
        )

        try:
            await asyncio.wait_for(self._client.__aenter__(), timeout=timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"Timed out connecting to MQTT broker at {address}")
            await self._abandon_client()
            raise ConnectionFailed(
                f"Timed out after {timeout}s connecting to {address}"
            ) from e
        except aiomqtt.MqttError as e:
            logger.error(f"Failed to connect to MQTT broker: {e}")
            self._client = self._create_client()
            raise ConnectionFailed(f"Failed to connect to {address}: {e}") from e

        self._entered = True
        if self._closed:
            # close() ran while the handshake was in flight
            await self._release_client(timeout, strict=False)
            raise ConnectionFailed("Session was closed while connecting")

        self._connected = True

        try:
            await self._subscribe()
        except aiomqtt.MqttError as e:
            logger.error(f"Failed to subscribe to {self.topic}: {e}")
            self._connected = False
            await self._release_client(timeout, strict=False)
            raise ConnectionFailed(f"Failed to subscribe to {self.topic}: {e}") from e

        if self._closed:
            raise ConnectionFailed("Session was closed while connecting")

        self._stats["connects"] += 1
        logger.info(f"Connected to MQTT broker, subscribed to {self.topic}")

        self._message_task = asyncio.create_task(self._message_loop())
        await self._events.connected()

    async def _abandon_client(self) -> None:
        """Best-effort release of a client whose handshake never finished."""
        client = self._client
        self._client = self._create_client()
        try:
            await asyncio.wait_for(client.__aexit__(None, None, None), timeout=1.0)
        except (aiomqtt.MqttError, asyncio.TimeoutError, RuntimeError) as e:
            logger.debug(f"Ignoring error releasing unfinished connection: {e!r}")

    async def _subscribe(self) -> None:
        """Subscribe to the configured topic unless already subscribed."""
        if self._subscribed_topic == self.topic:
            return
        await self._client.subscribe(self.topic, qos=self.config.qos)
        self._subscribed_topic = self.topic
        logger.debug(f"Subscribed to {self.topic} (qos={self.config.qos})")

    async def _message_loop(self) -> None:
        """Dispatch received messages until the connection goes away."""
        logger.debug("Starting MQTT message loop")

        try:
            async for message in self._client.messages:
                inbound = InboundMessage.from_aiomqtt(message)
                if inbound is None:
                    logger.debug("Ignoring message with blank topic")
                    continue

                self._stats["messages_received"] += 1
                logger.debug(f"Received message on {inbound.topic}: {inbound.payload[:100]}")
                await self._events.message(inbound.topic, inbound.payload)
        except aiomqtt.MqttError as e:
            logger.warning(f"MQTT connection lost: {e}")

        await self._mark_disconnected()

    async def _mark_disconnected(self) -> None:
        if not self._connected:
            return
        self._connected = False
        self._subscribed_topic = None
        self._stats["disconnects"] += 1
        logger.info("Disconnected from MQTT broker")
        await self._events.disconnected()

    def publish(self, payload: str, topic: Optional[str] = None) -> Optional[asyncio.Task]:
        """Publish a message without waiting for the broker.

        Must be called from the event loop the session runs on. QoS and
        retain come from the session configuration.

        Args:
            payload: Message text
            topic: Target topic (default: the session topic)

        Returns:
            The background publish task, or None if not connected

        Raises:
            InvalidArgument: If payload or topic is empty
        """
        target = self.topic if topic is None else topic
        message = OutboundMessage.build(
            payload,
            target,
            qos=self.config.qos,
            retain=self.config.retain,
        )

        if not self._connected:
            self._stats["publishes_skipped"] += 1
            logger.debug(f"Not connected, skipping publish to {message.topic}")
            return None

        task = asyncio.create_task(self._publish(message))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _publish(self, message: OutboundMessage) -> None:
        try:
            await self._client.publish(**message.to_aiomqtt_args())
        except aiomqtt.MqttError as e:
            self._stats["publishes_failed"] += 1
            logger.error(f"Failed to publish to {message.topic}: {e}")
            return

        self._stats["messages_published"] += 1
        logger.debug(f"Published to {message.topic}: {message.payload[:100]}")

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait for in-flight publishes.

        Returns:
            True if all publishes finished within the timeout
        """
        if not self._pending:
            return True
        _, pending = await asyncio.wait(set(self._pending), timeout=timeout)
        return not pending

    async def simulate_publish(self, count: int = 10, interval: float = 2.0) -> int:
        """Publish numbered test messages to the session topic.

        Attempts made while disconnected are skipped.

        Args:
            count: Number of messages
            interval: Seconds to sleep after each attempt

        Returns:
            Number of messages handed to the transport
        """
        sent = 0
        for counter in range(1, count + 1):
            if self.publish(f"Payload: Simulate {counter}") is not None:
                sent += 1
            await asyncio.sleep(interval)
        return sent

    async def close(self, timeout: Optional[float] = None) -> None:
        """Disconnect from the broker and release the client.

        Safe to call more than once; only the first call does anything.

        Args:
            timeout: Seconds allowed for draining and disconnecting

        Raises:
            ConnectionFailed: If an orderly disconnect fails
        """
        if self._closed:
            return
        self._closed = True

        if timeout is None:
            timeout = self.config.connect_timeout

        if not await self.drain(timeout):
            logger.warning(f"Cancelling {len(self._pending)} unfinished publish(es)")
            for task in list(self._pending):
                task.cancel()

        await self._stop_message_loop()

        try:
            await self._release_client(timeout, strict=self._connected)
        finally:
            await self._mark_disconnected()
            logger.info("MQTT session closed")

    async def _stop_message_loop(self) -> None:
        task = self._message_task
        self._message_task = None
        if task is None or task.done() or task is asyncio.current_task():
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            logger.debug("Message loop cancelled")

    async def _release_client(self, timeout: float, strict: bool) -> None:
        """Exit the client context.

        Args:
            timeout: Seconds to wait for the disconnect
            strict: Raise ConnectionFailed on errors instead of logging them
        """
        if not self._entered:
            return
        self._entered = False

        try:
            await asyncio.wait_for(
                self._client.__aexit__(None, None, None),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            if strict:
                raise ConnectionFailed(f"Timed out after {timeout}s disconnecting") from e
            logger.warning("Timed out releasing dropped MQTT connection")
        except aiomqtt.MqttError as e:
            if strict:
                raise ConnectionFailed(f"Failed to disconnect: {e}") from e
            logger.debug(f"Ignoring error from dropped connection: {e}")
