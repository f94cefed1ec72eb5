"""In-process message channel.

LocalBus connects several session participants living in one process. Each
participant gets a BusEndpoint implementing the MessageChannel interface.
Like a socket broadcast, an envelope sent by one endpoint is delivered to
every other connected endpoint, never back to the sender.

Envelopes are JSON-encoded on send and decoded per recipient, so handlers
only ever see plain JSON data. Delivery is asynchronous; ``drain`` waits for
everything in flight. ``duplicate_deliveries`` delivers every envelope twice,
which is useful for exercising receiver-side deduplication.
"""

from __future__ import annotations

import asyncio
import inspect
import json
from typing import Any

from arcane_warding.core.exceptions import ChannelError
from arcane_warding.core.logging import get_logger
from arcane_warding.engine.session import EnvelopeHandler


logger = get_logger(__name__)

DEFAULT_CHANNEL_NAME = "module.arcane-warding"


class BusEndpoint:
    """One participant's view of a LocalBus."""

    def __init__(self, bus: LocalBus, user_id: str) -> None:
        self._bus = bus
        self.user_id = user_id
        self._handlers: list[EnvelopeHandler] = []

    @property
    def handlers(self) -> list[EnvelopeHandler]:
        """Registered handlers, in subscription order."""
        return list(self._handlers)

    def send(self, message: dict[str, Any]) -> None:
        """Broadcast an envelope to every other endpoint."""
        self._bus.broadcast(self.user_id, message)

    def subscribe(self, handler: EnvelopeHandler) -> None:
        """Register a handler for incoming envelopes."""
        if handler not in self._handlers:
            self._handlers.append(handler)

    def unsubscribe(self, handler: EnvelopeHandler) -> None:
        """Remove a handler; unknown handlers are ignored."""
        if handler in self._handlers:
            self._handlers.remove(handler)

    def is_connected(self, user_id: str) -> bool:
        """True when the user has a connected endpoint on the bus."""
        return self._bus.is_connected(user_id)


class LocalBus:
    """Named broadcast channel between in-process participants."""

    def __init__(
        self,
        name: str = DEFAULT_CHANNEL_NAME,
        *,
        latency: float = 0.0,
        duplicate_deliveries: bool = False,
    ) -> None:
        """Initialize the bus.

        Args:
            name: Channel name, for logging.
            latency: Delay before each delivery, in seconds.
            duplicate_deliveries: Deliver every envelope twice.
        """
        self.name = name
        self.latency = latency
        self.duplicate_deliveries = duplicate_deliveries
        self._endpoints: dict[str, BusEndpoint] = {}
        self._in_flight: set[asyncio.Task[None]] = set()

    def connect(self, user_id: str) -> BusEndpoint:
        """Connect a user, returning their endpoint."""
        endpoint = self._endpoints.get(user_id)
        if endpoint is None:
            endpoint = self._endpoints[user_id] = BusEndpoint(self, user_id)
            logger.debug("User connected to channel", channel=self.name, user_id=user_id)
        return endpoint

    def disconnect(self, user_id: str) -> None:
        """Disconnect a user; envelopes are no longer delivered to them."""
        if self._endpoints.pop(user_id, None) is not None:
            logger.debug("User disconnected from channel", channel=self.name, user_id=user_id)

    def is_connected(self, user_id: str) -> bool:
        """True when the user has a connected endpoint."""
        return user_id in self._endpoints

    def connected_users(self) -> list[str]:
        """Connected users, in connection order."""
        return list(self._endpoints)

    def broadcast(self, sender: str, message: dict[str, Any]) -> None:
        """Schedule delivery of an envelope to every endpoint but the sender.

        Raises:
            ChannelError: If the envelope is not JSON serialisable.
        """
        try:
            encoded = json.dumps(message)
        except (TypeError, ValueError) as exc:
            raise ChannelError(
                "Envelope is not JSON serialisable",
                details={"channel": self.name, "error": str(exc)},
            ) from exc

        loop = asyncio.get_running_loop()
        copies = 2 if self.duplicate_deliveries else 1
        for user_id, endpoint in self._endpoints.items():
            if user_id == sender:
                continue
            for _ in range(copies):
                task = loop.create_task(self._deliver(endpoint, encoded))
                self._in_flight.add(task)
                task.add_done_callback(self._in_flight.discard)

    async def drain(self) -> None:
        """Wait until every scheduled delivery has run."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

    async def _deliver(self, endpoint: BusEndpoint, encoded: str) -> None:
        if self.latency:
            await asyncio.sleep(self.latency)
        if self._endpoints.get(endpoint.user_id) is not endpoint:
            return
        for handler in endpoint.handlers:
            try:
                result = handler(json.loads(encoded))
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "Channel handler failed",
                    channel=self.name,
                    user_id=endpoint.user_id,
                )


__all__ = [
    "DEFAULT_CHANNEL_NAME",
    "BusEndpoint",
    "LocalBus",
]
