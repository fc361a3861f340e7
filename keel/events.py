"""
Status broadcasting - live job status updates by topic.

Every status update is published on the topic `job.<name>`. Subscribers get a
Subscription they can iterate; iteration ends after a terminal status (the
job is done) or when the subscription is closed.

Publishing blocks until the update has been handed to every current
subscriber. Each subscriber has a bounded queue, so a slow subscriber limits
how far a publisher can run ahead of it. Delivery is not persistence: the
job store is written separately by the Service before publishing.
"""

import logging
import queue
import threading
from typing import Iterator, Optional

from keel.schemas import JobStatus

logger = logging.getLogger(__name__)

_CLOSED = object()

# How often a blocked publisher re-checks whether its subscriber went away
_PUT_POLL_SECONDS = 0.05


def topic_for(name: str) -> str:
    """Topic on which a job's status updates are published."""
    return f"job.{name}"


class Subscription:
    """
    A live feed of status updates for one job.

    Usage:
        with broadcaster.subscribe("widgets-01h...") as sub:
            for status in sub:
                print(status.phase)
    """

    def __init__(self, broadcaster: "StatusBroadcaster", topic: str, queue_size: int):
        self._broadcaster = broadcaster
        self._queue: queue.Queue = queue.Queue(maxsize=queue_size)
        self._closed = threading.Event()
        self.topic = topic

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def _deliver(self, status: JobStatus) -> bool:
        """Enqueue an update, blocking while the queue is full. False if closed meanwhile."""
        while not self._closed.is_set():
            try:
                self._queue.put(status, timeout=_PUT_POLL_SECONDS)
                # a put that only fit because close() drained the queue is lost
                return not self._closed.is_set()
            except queue.Full:
                continue
        return False

    def get(self, timeout: Optional[float] = None) -> Optional[JobStatus]:
        """
        Wait for the next update.

        Returns:
            The next JobStatus, or None once the subscription is closed

        Raises:
            queue.Empty: If the timeout passes without an update
        """
        if self._closed.is_set() and self._queue.empty():
            return None
        item = self._queue.get(timeout=timeout)
        if item is _CLOSED:
            return None
        return item

    def __iter__(self) -> Iterator[JobStatus]:
        while True:
            status = self.get()
            if status is None:
                return
            yield status
            if status.is_done:
                self.close()
                return

    def close(self) -> None:
        """Stop receiving updates and wake up any waiting reader."""
        if self._closed.is_set():
            return
        self._closed.set()
        self._broadcaster._unsubscribe(self)
        while True:
            try:
                self._queue.put_nowait(_CLOSED)
                return
            except queue.Full:
                try:
                    self._queue.get_nowait()
                except queue.Empty:
                    pass

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class StatusBroadcaster:
    """
    In-process publish/subscribe for JobStatus updates.

    Args:
        queue_size: Per-subscriber queue bound
    """

    def __init__(self, queue_size: int = 16):
        if queue_size < 1:
            raise ValueError("queue_size must be >= 1")
        self._queue_size = queue_size
        self._lock = threading.Lock()
        self._subscribers: dict[str, list[Subscription]] = {}

    def subscribe(self, name: str) -> Subscription:
        """Subscribe to status updates for a job."""
        topic = topic_for(name)
        subscription = Subscription(self, topic, self._queue_size)
        with self._lock:
            self._subscribers.setdefault(topic, []).append(subscription)
        return subscription

    def _unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            subs = self._subscribers.get(subscription.topic, [])
            if subscription in subs:
                subs.remove(subscription)
            if not subs:
                self._subscribers.pop(subscription.topic, None)

    def subscriber_count(self, name: str) -> int:
        with self._lock:
            return len(self._subscribers.get(topic_for(name), []))

    def publish(self, status: JobStatus) -> int:
        """
        Publish an update to every current subscriber of the job's topic.

        Blocks until each subscriber has accepted the update or gone away.

        Returns:
            Number of subscribers the update was delivered to
        """
        topic = topic_for(status.name)
        with self._lock:
            subscribers = list(self._subscribers.get(topic, []))

        delivered = 0
        for subscription in subscribers:
            if subscription._deliver(status):
                delivered += 1

        logger.debug(f"Published {status.phase.value} on {topic} to {delivered} subscriber(s)")
        return delivered
