"""
Routing of captured replies to the calls waiting for them.

The capture thread looks a routing key (identifier, source address) up in the
ReplyRouter and offers the observation to that call's ReplyChannel. Channels
are drained by their worker coroutine on the engine's event loop.
"""

import asyncio
import logging
import threading
from typing import Dict, Optional

from pingmux import logger_main
from .models import Observation, RoutingKey

logger = logging.getLogger(f"{logger_main}.{__name__.split('.')[-1]}")

DEFAULT_CHANNEL_CAPACITY = 1024


class ReplyChannel:
    """
    Bounded buffer of observations for a single call.

    `offer` may be called from any thread; the item is put on the queue from
    within the owning event loop. A None item is a wake-up without payload.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        key: RoutingKey,
        capacity: int = DEFAULT_CHANNEL_CAPACITY,
    ):
        self.key = key
        self.capacity = capacity
        self._loop = loop
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=capacity)
        self.dropped = 0

    def offer(self, observation: Optional[Observation]) -> None:
        self._loop.call_soon_threadsafe(self._put, observation)

    def wake(self) -> None:
        self.offer(None)

    def _put(self, observation: Optional[Observation]) -> None:
        try:
            self._queue.put_nowait(observation)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                f"Reply channel {self.key} is full ({self.capacity}), "
                f"dropping observation {observation}"
            )

    async def get(self) -> Optional[Observation]:
        return await self._queue.get()

    def qsize(self) -> int:
        return self._queue.qsize()


class ReplyRouter:
    """Map from routing key to the ReplyChannel of the call that owns it."""

    def __init__(self, capacity: int = DEFAULT_CHANNEL_CAPACITY):
        self.capacity = capacity
        self._lock = threading.Lock()
        self._channels: Dict[RoutingKey, ReplyChannel] = {}

    def register(
        self, key: RoutingKey, loop: asyncio.AbstractEventLoop
    ) -> ReplyChannel:
        """
        Create the channel a call will collect its replies from.

        Args:
            key (RoutingKey): (identifier, resolved address) of the call.
            loop (asyncio.AbstractEventLoop): Loop the worker runs on.

        Returns:
            ReplyChannel: The new channel.
        """
        channel = ReplyChannel(loop, key, self.capacity)
        with self._lock:
            self._channels[key] = channel
        return channel

    def unregister(self, key: RoutingKey) -> None:
        with self._lock:
            self._channels.pop(key, None)

    def route(self, key: RoutingKey, observation: Observation) -> bool:
        """
        Hand an observation to the call registered under `key`.

        Returns:
            bool: False if no call is registered under `key`.
        """
        with self._lock:
            channel = self._channels.get(key)
            if channel is None:
                return False
            channel.offer(observation)
            return True

    def wake_all(self) -> None:
        """Wake every registered channel so its worker re-checks the shutdown flag."""
        with self._lock:
            for channel in self._channels.values():
                channel.wake()

    def __len__(self) -> int:
        with self._lock:
            return len(self._channels)
