"""
In-process broadcast of sync progress snapshots.

One producer publishes full SyncProgress snapshots; any number of
subscribers each receive every snapshot published after they attach,
starting with the latest one. publish() never suspends, so a snapshot is
always delivered whole.
"""

import asyncio

from app.features.concert_alerts.domain import SyncProgress
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

# Per subscriber; the oldest snapshot is dropped once full
SUBSCRIPTION_BUFFER_SIZE = 100

_CLOSED = object()


class ProgressSubscription:
    """Async iterator over snapshots; use as `async with broadcaster.subscribe() as sub`."""

    def __init__(self, broadcaster: "ProgressBroadcaster", maxsize: int = SUBSCRIPTION_BUFFER_SIZE):
        self._broadcaster = broadcaster
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.closed = False
        self.dropped = 0
        self._close_queued = False

    def _put_dropping_oldest(self, item) -> None:
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
        self._queue.put_nowait(item)

    def _deliver(self, snapshot: SyncProgress) -> None:
        self._put_dropping_oldest(snapshot)

    def get_nowait(self) -> SyncProgress:
        item = self._queue.get_nowait()
        if item is _CLOSED:
            self._close_queued = False
            raise asyncio.QueueEmpty
        return item

    def pending(self) -> int:
        """Snapshots waiting to be read."""
        return self._queue.qsize() - (1 if self._close_queued else 0)

    def close(self) -> None:
        """Detach and wake a consumer blocked in `async for`."""
        if self.closed:
            return
        self.closed = True
        self._broadcaster._detach(self)
        self._put_dropping_oldest(_CLOSED)
        self._close_queued = True

    def __aiter__(self):
        return self

    async def __anext__(self) -> SyncProgress:
        if self.closed:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            self._close_queued = False
            raise StopAsyncIteration
        return item

    async def __aenter__(self) -> "ProgressSubscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()


class ProgressBroadcaster:
    def __init__(self, initial: SyncProgress | None = None):
        self._latest = initial or SyncProgress()
        self._subscribers: list[ProgressSubscription] = []

    @property
    def latest(self) -> SyncProgress:
        return self._latest

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, snapshot: SyncProgress) -> None:
        self._latest = snapshot
        for subscriber in list(self._subscribers):
            subscriber._deliver(snapshot)

    def update(self, **changes) -> SyncProgress:
        """Publish the latest snapshot with `changes` applied and return it."""
        snapshot = self._latest.model_copy(update=changes)
        self.publish(snapshot)
        return snapshot

    def subscribe(self, maxsize: int = SUBSCRIPTION_BUFFER_SIZE) -> ProgressSubscription:
        subscription = ProgressSubscription(self, maxsize=maxsize)
        subscription._deliver(self._latest)
        self._subscribers.append(subscription)
        logger.debug("Progress subscriber attached", subscribers=len(self._subscribers))
        return subscription

    def _detach(self, subscription: ProgressSubscription) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)
            logger.debug("Progress subscriber detached", subscribers=len(self._subscribers))
