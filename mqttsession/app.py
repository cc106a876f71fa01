"""Listener application for mqtt-session."""

import asyncio
import logging
import signal
from datetime import datetime
from typing import Optional, Union

from .config import AppConfig, get_config
from .mqtt import Session, SessionObserver
from .utils.logging import setup_logging

logger = logging.getLogger(__name__)


class SessionApp(SessionObserver):
    """Main application class.

    Opens one session, logs every message received on the configured
    topic and optionally publishes simulated messages, until SIGINT or
    SIGTERM.
    """

    def __init__(
        self,
        config: Union[AppConfig, str, None] = None,
        simulate: int = 0,
        interval: float = 2.0,
    ):
        """Initialize the application.

        Args:
            config: AppConfig instance, path to YAML config file, or None for env/defaults
            simulate: Number of simulated messages to publish after connecting
            interval: Seconds between simulated messages
        """
        if isinstance(config, AppConfig):
            self.config = config
        elif isinstance(config, str):
            self.config = get_config(config)
        else:
            self.config = get_config()

        self.simulate = simulate
        self.interval = interval
        self.session: Optional[Session] = None
        self._shutdown_event = asyncio.Event()

        self._stats = {
            "messages": 0,
            "connected_events": 0,
            "disconnected_events": 0,
            "start_time": None,
        }

    def on_connected(self) -> None:
        self._stats["connected_events"] += 1
        logger.info("Session connected")

    def on_disconnected(self) -> None:
        self._stats["disconnected_events"] += 1
        logger.warning("Session disconnected")
        # No automatic reconnect; a dropped connection ends the run
        self._shutdown_event.set()

    def on_message(self, topic: str, payload: str) -> None:
        self._stats["messages"] += 1
        logger.info(f"{topic}: {payload}")

    async def start(self) -> None:
        """Start the application and run until shutdown.

        Raises:
            InvalidConfiguration: If the MQTT settings are incomplete
            ConnectionFailed: If the broker cannot be reached
        """
        setup_logging(self.config.logging)

        logger.info("Starting mqtt-session")
        self._stats["start_time"] = datetime.now()

        self.session = Session(self.config.mqtt, observers=[self])
        self._setup_signal_handlers()

        try:
            await self.session.connect()

            if self.simulate:
                await self._run_simulation()

            await self._shutdown_event.wait()

        except asyncio.CancelledError:
            logger.info("Application cancelled")
        finally:
            await self.stop()

    async def _run_simulation(self) -> None:
        """Publish simulated messages until done or shutdown is requested."""
        simulation = asyncio.create_task(
            self.session.simulate_publish(count=self.simulate, interval=self.interval)
        )
        shutdown = asyncio.create_task(self._shutdown_event.wait())

        try:
            await asyncio.wait(
                {simulation, shutdown},
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in (simulation, shutdown):
                if not task.done():
                    task.cancel()
            await asyncio.gather(simulation, shutdown, return_exceptions=True)

        if simulation.cancelled():
            logger.info("Simulation interrupted by shutdown")
        else:
            sent = simulation.result()
            logger.info(f"Simulation finished: {sent}/{self.simulate} messages sent")

    async def stop(self) -> None:
        """Stop the application gracefully."""
        logger.info("Stopping mqtt-session")
        self._shutdown_event.set()

        if self.session:
            try:
                await self.session.close()
            except Exception as e:
                logger.error(f"Error closing MQTT session: {e}")
            stats = self.session.stats
            logger.info(
                f"Statistics: received={stats['messages_received']}, "
                f"published={stats['messages_published']}, "
                f"skipped={stats['publishes_skipped']}, "
                f"failed={stats['publishes_failed']}"
            )
            self.session = None

        logger.info("mqtt-session stopped")

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    def _setup_signal_handlers(self) -> None:
        """Set up signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        def signal_handler(sig):
            logger.info(f"Received signal {sig.name}, initiating shutdown")
            self._shutdown_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))
            except (NotImplementedError, RuntimeError):
                # Not available on this platform or outside the main thread
                logger.debug(f"Cannot install handler for {sig.name}")

    @property
    def stats(self) -> dict:
        """Get application statistics."""
        return {
            **self._stats,
            "uptime": (
                str(datetime.now() - self._stats["start_time"])
                if self._stats["start_time"]
                else None
            ),
            "session": self.session.stats if self.session else None,
        }


async def run_app(
    config: Union[AppConfig, str, None] = None,
    simulate: int = 0,
    interval: float = 2.0,
) -> None:
    """Run the listener application.

    Args:
        config: AppConfig instance, path to config file, or None for env/defaults
        simulate: Number of simulated messages to publish
        interval: Seconds between simulated messages
    """
    app = SessionApp(config, simulate=simulate, interval=interval)
    await app.start()


async def publish_once(
    config: Union[AppConfig, str, None],
    payload: str,
    topic: Optional[str] = None,
) -> bool:
    """Connect, publish a single message, and disconnect.

    Returns:
        True if the message was handed to the broker
    """
    if not isinstance(config, AppConfig):
        config = get_config(config)

    setup_logging(config.logging)

    session = Session(config.mqtt)
    await session.connect()
    try:
        task = session.publish(payload, topic)
        await session.drain(config.mqtt.connect_timeout)
    finally:
        await session.close()

    return task is not None and session.stats["messages_published"] == 1
