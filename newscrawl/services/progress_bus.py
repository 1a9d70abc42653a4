from __future__ import annotations

import logging
import queue
import threading
from typing import Iterator, List, Optional

from newscrawl.domain import ProgressEvent

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 100


class Subscription:
    """One observer's bounded view of the progress stream.

    Events published while the buffer is full are dropped for this
    subscriber only and counted in `dropped`.
    """

    def __init__(self, bus: "ProgressBus", maxsize: int):
        self._bus = bus
        self._queue: "queue.Queue[ProgressEvent]" = queue.Queue(maxsize=maxsize)
        self.dropped = 0
        self.closed = False

    def offer(self, event: ProgressEvent) -> bool:
        try:
            self._queue.put_nowait(event)
            return True
        except queue.Full:
            self.dropped += 1
            return False

    def get(self, timeout: Optional[float] = None) -> Optional[ProgressEvent]:
        """Return the next event, or None if nothing arrives within `timeout`."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def get_nowait(self) -> Optional[ProgressEvent]:
        try:
            return self._queue.get_nowait()
        except queue.Empty:
            return None

    def drain(self) -> List[ProgressEvent]:
        events = []
        while True:
            ev = self.get_nowait()
            if ev is None:
                return events
            events.append(ev)

    def __iter__(self) -> Iterator[ProgressEvent]:
        """Yield events until the subscription is closed."""
        while not self.closed:
            ev = self.get(timeout=0.5)
            if ev is not None:
                yield ev

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._bus.unsubscribe(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class ProgressBus:
    """Fan progress events out to every live subscriber without blocking the publisher."""

    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE):
        if queue_size < 1:
            raise ValueError("queue_size must be >= 1")
        self.queue_size = queue_size
        self._lock = threading.Lock()
        self._subscribers: List[Subscription] = []

    def subscribe(self) -> Subscription:
        sub = Subscription(self, self.queue_size)
        with self._lock:
            self._subscribers.append(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subscribers:
                self._subscribers.remove(sub)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event: ProgressEvent) -> int:
        """Deliver to every subscriber with room; returns how many accepted it."""
        with self._lock:
            subscribers = list(self._subscribers)
        delivered = 0
        for sub in subscribers:
            if sub.offer(event):
                delivered += 1
            else:
                logger.debug("Dropped %s event for slow subscriber", event.phase.value)
        return delivered
