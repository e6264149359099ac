from __future__ import annotations

from collections import deque
import logging
import threading
from typing import Iterator

from hostwatch.models import RealtimeData


class SubscriptionClosed(Exception):
    pass


class Subscription:
    """A subscriber's view of the hub.

    Holds at most ``capacity`` snapshots. When a slow reader lets the buffer
    fill, the oldest snapshot is discarded and counted in ``dropped``.
    """

    def __init__(self, hub: BroadcastHub, capacity: int) -> None:
        self._hub = hub
        self._buffer: deque[RealtimeData] = deque(maxlen=capacity)
        self._cond = threading.Condition()
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def _push(self, snapshot: RealtimeData) -> None:
        with self._cond:
            if len(self._buffer) == self._buffer.maxlen:
                self.dropped += 1
            self._buffer.append(snapshot)
            self._cond.notify()

    def get(self, timeout: float | None = None) -> RealtimeData | None:
        """Oldest buffered snapshot, waiting up to ``timeout`` seconds.

        Returns ``None`` on timeout. Raises ``SubscriptionClosed`` once the
        subscription is closed and drained.
        """
        with self._cond:
            if not self._cond.wait_for(lambda: self._buffer or self._closed, timeout):
                return None
            if self._buffer:
                return self._buffer.popleft()
            raise SubscriptionClosed()

    def latest(self) -> RealtimeData | None:
        """Drain the buffer and return only the newest snapshot, if any."""
        with self._cond:
            if not self._buffer:
                return None
            newest = self._buffer[-1]
            self._buffer.clear()
            return newest

    def pending(self) -> int:
        with self._cond:
            return len(self._buffer)

    def close(self) -> None:
        self._hub._unsubscribe(self)
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def __iter__(self) -> Iterator[RealtimeData]:
        while True:
            try:
                snapshot = self.get()
            except SubscriptionClosed:
                return
            if snapshot is not None:
                yield snapshot

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


class BroadcastHub:
    """Single-producer, many-consumer, lossy publish channel for snapshots."""

    def __init__(self, capacity: int = 100) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._subscribers: list[Subscription] = []
        self._lock = threading.Lock()
        self.logger = logging.getLogger(self.__class__.__name__)

    def subscribe(self) -> Subscription:
        subscription = Subscription(self, self.capacity)
        with self._lock:
            self._subscribers.append(subscription)
        self.logger.debug("Subscriber added (%s active).", self.receiver_count)
        return subscription

    def _unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscribers:
                self._subscribers.remove(subscription)

    @property
    def receiver_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, snapshot: RealtimeData) -> int:
        """Hand ``snapshot`` to every subscriber without blocking.

        Returns the number of subscribers reached; zero is not an error.
        """
        with self._lock:
            subscribers = list(self._subscribers)
        if not subscribers:
            self.logger.debug("No receivers for realtime data.")
            return 0
        for subscription in subscribers:
            subscription._push(snapshot)
        return len(subscribers)

    def close(self) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for subscription in subscribers:
            subscription.close()
