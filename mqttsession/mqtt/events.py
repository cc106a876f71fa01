"""Session event observers and dispatch.

Observers are notified from the session's message loop task. Both plain
functions and coroutine functions are accepted; coroutines are awaited
before the next observer is called.
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, List, Optional, Union

logger = logging.getLogger(__name__)

# Type aliases for callbacks
ConnectionCallback = Callable[[], Union[None, Awaitable[None]]]
MessageCallback = Callable[[str, str], Union[None, Awaitable[None]]]


class SessionObserver:
    """Base class for session observers.

    Override any of the hooks; the defaults do nothing.
    """

    def on_connected(self) -> Union[None, Awaitable[None]]:
        """Called after the session connected and subscribed."""

    def on_disconnected(self) -> Union[None, Awaitable[None]]:
        """Called when the connection was lost or closed."""

    def on_message(self, topic: str, payload: str) -> Union[None, Awaitable[None]]:
        """Called for every received message with a non-blank topic."""


class EventDispatcher:
    """Fan session events out to registered observers and callbacks."""

    def __init__(self):
        self._observers: List[SessionObserver] = []
        self._connected_callbacks: List[ConnectionCallback] = []
        self._disconnected_callbacks: List[ConnectionCallback] = []
        self._message_callbacks: List[MessageCallback] = []

    def add_observer(self, observer: SessionObserver) -> None:
        if observer not in self._observers:
            self._observers.append(observer)

    def remove_observer(self, observer: SessionObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def add_connected_callback(self, callback: ConnectionCallback) -> Callable[[], None]:
        """Register a connected callback.

        Returns:
            Callable that removes the callback again
        """
        return self._add(self._connected_callbacks, callback)

    def add_disconnected_callback(self, callback: ConnectionCallback) -> Callable[[], None]:
        """Register a disconnected callback.

        Returns:
            Callable that removes the callback again
        """
        return self._add(self._disconnected_callbacks, callback)

    def add_message_callback(self, callback: MessageCallback) -> Callable[[], None]:
        """Register a message callback, called with (topic, payload).

        Returns:
            Callable that removes the callback again
        """
        return self._add(self._message_callbacks, callback)

    @staticmethod
    def _add(callbacks: list, callback: Callable) -> Callable[[], None]:
        callbacks.append(callback)

        def remove() -> None:
            if callback in callbacks:
                callbacks.remove(callback)

        return remove

    async def connected(self) -> None:
        for observer in list(self._observers):
            await self._invoke("connected", observer.on_connected)
        for callback in list(self._connected_callbacks):
            await self._invoke("connected", callback)

    async def disconnected(self) -> None:
        for observer in list(self._observers):
            await self._invoke("disconnected", observer.on_disconnected)
        for callback in list(self._disconnected_callbacks):
            await self._invoke("disconnected", callback)

    async def message(self, topic: str, payload: str) -> None:
        for observer in list(self._observers):
            await self._invoke("message", observer.on_message, topic, payload)
        for callback in list(self._message_callbacks):
            await self._invoke("message", callback, topic, payload)

    @staticmethod
    async def _invoke(event: str, callback: Callable, *args: Any) -> Optional[Any]:
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                result = await result
            return result
        except Exception as e:
            logger.error(f"Error in {event} handler {callback!r}: {e}", exc_info=True)
            return None
