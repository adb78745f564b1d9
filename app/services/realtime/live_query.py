"""
Live Lists

A LiveQuery keeps a collection (one restaurant's orders, pending
registration requests, ...) in step with the store:

    1. subscribe to the change feed for the scope
    2. fetch the full collection and deliver it
    3. on every change notification, refetch and deliver again

Step 1 happens before step 2, so nothing written between the initial
fetch and the subscription is missed.

Bursts of notifications are coalesced: while a refetch is scheduled or
running, further notifications only mark the list dirty, and one more
refetch runs after the current one (trailing edge, after a short quiet
period). Every fetch carries a sequence number and a response older than
the last delivered one is dropped.

Usage:
    live = LiveQuery(feed, ChangeScope("orders", "restaurant_id", 7), fetch, on_change)
    await live.start()
    ...
    await live.close()

Version: 1.0.0
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Hashable, Iterable, Optional

from app.services.realtime.base import BaseChangeFeed, ChangeEvent, ChangeScope, Unsubscribe

logger = logging.getLogger(__name__)

FetchFn = Callable[[], Awaitable[list]]
DeliverFn = Callable[[list], Any]


class LiveQuery:
    """
    Fetch + subscribe + refetch-on-notify, with coalescing.

    Attributes:
        scope: Which changes trigger a refetch
        debounce: Quiet period (seconds) before a scheduled refetch runs
        deliveries: Number of snapshots handed to ``on_change``
    """

    def __init__(
        self,
        feed: BaseChangeFeed,
        scope: ChangeScope,
        fetch: FetchFn,
        on_change: DeliverFn,
        debounce: float = 0.0,
    ):
        self.feed = feed
        self.scope = scope
        self.fetch = fetch
        self.on_change = on_change
        self.debounce = debounce

        self.deliveries = 0
        self._unsubscribe: Optional[Unsubscribe] = None
        self._worker: Optional[asyncio.Task] = None
        self._dirty = False
        self._started = False
        self._closed = False
        self._issued_seq = 0
        self._delivered_seq = 0

    @property
    def is_active(self) -> bool:
        return self._started and not self._closed

    async def start(self) -> "LiveQuery":
        """
        Subscribe, then deliver the initial snapshot.

        If the initial fetch fails the subscription is released and the
        error propagates; the query cannot be started again.
        """
        if self._started:
            return self
        self._started = True

        self._unsubscribe = await self.feed.subscribe(self.scope, self._on_event)
        logger.debug(f"Live list started: {self.scope.channel_name}")

        try:
            await self._refetch()
        except BaseException:
            await self.close()
            raise

        # Changes that landed during the initial fetch
        if self._dirty:
            self._schedule()
        return self

    async def close(self) -> None:
        """Release the subscription and stop any pending refetch."""
        if self._closed:
            return
        self._closed = True

        if self._unsubscribe is not None:
            await self._unsubscribe()
            self._unsubscribe = None

        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        logger.debug(f"Live list closed: {self.scope.channel_name}")

    async def __aenter__(self) -> "LiveQuery":
        return await self.start()

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def refresh(self) -> None:
        """
        Refetch now, outside the coalescing loop (manual reload).

        Concurrent refreshes may finish out of order; only the newest
        snapshot is delivered.
        """
        if not self.is_active:
            return
        await self._refetch()

    async def wait_idle(self) -> None:
        """Wait until no refetch is scheduled or running."""
        while self._worker is not None and not self._worker.done():
            await asyncio.shield(self._worker)

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _on_event(self, event: ChangeEvent) -> None:
        if self._closed:
            return
        self._dirty = True
        # Until the initial snapshot is delivered, start() picks the flag up
        if self._delivered_seq > 0:
            self._schedule()

    def _schedule(self) -> None:
        if self._closed:
            return
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._drain())

    async def _drain(self) -> None:
        while self._dirty and not self._closed:
            if self.debounce:
                await asyncio.sleep(self.debounce)
            self._dirty = False
            try:
                await self._refetch()
            except Exception as e:
                # Keep the subscription alive; the next change retries
                logger.error(f"Live list refetch failed for {self.scope.channel_name}: {e}")

    async def _refetch(self) -> None:
        self._issued_seq += 1
        seq = self._issued_seq

        rows = await self.fetch()

        if self._closed:
            return
        if seq < self._delivered_seq:
            logger.debug(f"Dropping stale snapshot #{seq} for {self.scope.channel_name}")
            return

        self._delivered_seq = seq
        self.deliveries += 1
        result = self.on_change(rows)
        if asyncio.iscoroutine(result):
            await result


class NewArrivalDetector:
    """
    Decides when a refetched list contains new rows worth an alert.

    Compares row ids, not counts: an order accepted at the same moment a
    new one arrives keeps the pending count flat but is still one arrival.
    The first observation primes the detector without alerting.

    Usage:
        detector = NewArrivalDetector(lambda o: o.status == OrderStatus.PENDING)
        new_orders = detector.observe(orders)
        if new_orders:
            play_alert()
    """

    def __init__(
        self,
        predicate: Callable[[Any], bool] = lambda row: True,
        key: Callable[[Any], Hashable] = lambda row: row.id,
    ):
        self.predicate = predicate
        self.key = key
        self._seen: Optional[set] = None

    @property
    def primed(self) -> bool:
        return self._seen is not None

    def observe(self, rows: Iterable[Any]) -> list:
        """Return rows matching the predicate whose ids were never seen before."""
        matching = [row for row in rows if self.predicate(row)]

        if self._seen is None:
            self._seen = {self.key(row) for row in matching}
            return []

        arrivals = [row for row in matching if self.key(row) not in self._seen]
        self._seen.update(self.key(row) for row in arrivals)
        return arrivals
