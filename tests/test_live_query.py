import asyncio
from types import SimpleNamespace

import pytest

from app.models import OrderStatus
from app.services.cart import Cart, CustomerInfo, compose_order
from app.services import restaurant_service
from app.services.realtime import (
    ChangeEvent,
    ChangeScope,
    InMemoryChangeFeed,
    LiveQuery,
    NewArrivalDetector,
)
from app.database import async_session_maker


async def until(condition, attempts: int = 200):
    for _ in range(attempts):
        if condition():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


class GatedFetch:
    """Fetch stub that can be held open to simulate a slow store."""

    def __init__(self, rows=None):
        self.rows = list(rows or [])
        self.calls = 0
        self.gate = asyncio.Event()
        self.gate.set()
        self.entered = asyncio.Event()

    async def __call__(self):
        self.calls += 1
        snapshot = list(self.rows)
        self.entered.set()
        await self.gate.wait()
        return snapshot


def order_event(restaurant_id=7, action="insert", **values):
    return ChangeEvent(
        table="orders",
        action=action,
        row_id=1,
        values={"restaurant_id": restaurant_id, **values},
    )


# =============================================================================
# SCOPES
# =============================================================================

def test_scope_matches_on_filter_column():
    scope = ChangeScope("orders", "restaurant_id", 7)
    assert scope.matches(order_event(7))
    assert scope.matches(order_event("7"))
    assert not scope.matches(order_event(8))
    assert not scope.matches(ChangeEvent(table="menu_items", action="insert", values={"restaurant_id": 7}))


def test_scope_sees_rows_leaving_the_filter():
    scope = ChangeScope("registration_requests", "status", "pending")
    event = ChangeEvent(
        table="registration_requests",
        action="update",
        values={"status": "verified"},
        previous={"status": "pending"},
    )
    assert scope.matches(event)


def test_event_round_trips_through_dict():
    event = order_event(7, status="pending")
    assert ChangeEvent.from_dict(event.to_dict()) == event


# =============================================================================
# LIVE QUERY
# =============================================================================

async def test_initial_snapshot_is_delivered():
    feed = InMemoryChangeFeed()
    delivered = []
    fetch = GatedFetch(["a", "b", "c"])

    live = LiveQuery(feed, ChangeScope("orders", "restaurant_id", 7), fetch, delivered.append)
    await live.start()

    assert delivered == [["a", "b", "c"]]
    assert live.is_active
    assert feed.subscriber_count == 1
    await live.close()


async def test_change_triggers_refetch():
    feed = InMemoryChangeFeed()
    delivered = []
    fetch = GatedFetch(["a"])

    async with LiveQuery(feed, ChangeScope("orders", "restaurant_id", 7), fetch, delivered.append) as live:
        fetch.rows.append("b")
        await feed.publish(order_event(7))
        await until(lambda: live.deliveries == 2)
        await live.wait_idle()

    assert delivered == [["a"], ["a", "b"]]


async def test_events_outside_scope_are_ignored():
    feed = InMemoryChangeFeed()
    fetch = GatedFetch()

    async with LiveQuery(feed, ChangeScope("orders", "restaurant_id", 7), fetch, lambda rows: None) as live:
        await feed.publish(order_event(8))
        await asyncio.sleep(0)
        await live.wait_idle()

    assert fetch.calls == 1


async def test_burst_of_changes_is_coalesced():
    feed = InMemoryChangeFeed()
    fetch = GatedFetch()

    live = LiveQuery(feed, ChangeScope("orders", "restaurant_id", 7), fetch, lambda rows: None)
    await live.start()

    fetch.gate.clear()
    fetch.entered.clear()
    await feed.publish(order_event(7))
    await fetch.entered.wait()

    # The refetch is in flight; these only mark the list dirty
    for _ in range(5):
        await feed.publish(order_event(7, action="update"))

    fetch.gate.set()
    await until(lambda: fetch.calls == 3)
    await live.wait_idle()

    # initial + the in-flight one + one trailing refetch for the burst
    assert fetch.calls == 3
    assert live.deliveries == 3
    await live.close()


async def test_change_during_initial_fetch_is_not_missed():
    feed = InMemoryChangeFeed()
    fetch = GatedFetch(["a"])
    fetch.gate.clear()

    live = LiveQuery(feed, ChangeScope("orders", "restaurant_id", 7), fetch, lambda rows: None)
    starting = asyncio.create_task(live.start())
    await fetch.entered.wait()

    # Subscribed before the fetch started, so this write is seen
    await feed.publish(order_event(7))
    fetch.gate.set()
    await starting
    await until(lambda: fetch.calls == 2)
    await live.wait_idle()

    assert live.deliveries == 2
    await live.close()


async def test_stale_snapshot_is_dropped():
    feed = InMemoryChangeFeed()
    releases: dict[int, asyncio.Event] = {}
    delivered = []

    async def fetch():
        number = len(releases) + 1
        releases[number] = asyncio.Event()
        await releases[number].wait()
        return [f"snapshot-{number}"]

    live = LiveQuery(feed, ChangeScope("orders"), fetch, delivered.append)
    starting = asyncio.create_task(live.start())
    await until(lambda: 1 in releases)
    releases[1].set()
    await starting

    slow = asyncio.create_task(live.refresh())
    await until(lambda: 2 in releases)
    fast = asyncio.create_task(live.refresh())
    await until(lambda: 3 in releases)

    releases[3].set()
    await fast
    releases[2].set()
    await slow

    assert delivered == [["snapshot-1"], ["snapshot-3"]]
    await live.close()


async def test_close_releases_subscription():
    feed = InMemoryChangeFeed()
    fetch = GatedFetch()

    live = LiveQuery(feed, ChangeScope("orders", "restaurant_id", 7), fetch, lambda rows: None)
    await live.start()
    await live.close()

    assert feed.subscriber_count == 0
    assert not live.is_active

    await feed.publish(order_event(7))
    await asyncio.sleep(0)
    assert fetch.calls == 1


async def test_failed_refetch_keeps_list_alive():
    feed = InMemoryChangeFeed()
    calls = []

    async def fetch():
        calls.append(1)
        if len(calls) == 2:
            raise RuntimeError("store unavailable")
        return list(calls)

    delivered = []
    async with LiveQuery(feed, ChangeScope("orders"), fetch, delivered.append) as live:
        await feed.publish(order_event())
        await until(lambda: len(calls) == 2)
        await live.wait_idle()

        await feed.publish(order_event())
        await until(lambda: live.deliveries == 2)
        await live.wait_idle()

    assert delivered == [[1], [1, 1, 1]]


async def test_async_on_change_is_awaited():
    feed = InMemoryChangeFeed()
    queue: asyncio.Queue = asyncio.Queue()

    async with LiveQuery(feed, ChangeScope("orders"), GatedFetch(["a"]), queue.put):
        assert await queue.get() == ["a"]


async def test_failed_initial_fetch_releases_subscription():
    feed = InMemoryChangeFeed()

    async def fetch():
        raise RuntimeError("store unavailable")

    with pytest.raises(RuntimeError):
        async with LiveQuery(feed, ChangeScope("orders"), fetch, lambda rows: None):
            pass

    assert feed.subscriber_count == 0


# =============================================================================
# NEW ARRIVALS
# =============================================================================

def pending(order_id):
    return SimpleNamespace(id=order_id, status=OrderStatus.PENDING)


def test_first_observation_only_primes():
    detector = NewArrivalDetector(lambda o: o.status == OrderStatus.PENDING)
    assert detector.observe([pending(1), pending(2)]) == []
    assert detector.primed


def test_one_new_pending_order_is_one_alert():
    detector = NewArrivalDetector(lambda o: o.status == OrderStatus.PENDING)
    detector.observe([pending(1), pending(2), pending(3)])

    arrivals = detector.observe([pending(1), pending(2), pending(3), pending(4)])

    assert [o.id for o in arrivals] == [4]
    assert detector.observe([pending(1), pending(2), pending(3), pending(4)]) == []


def test_arrival_detected_when_count_stays_flat():
    detector = NewArrivalDetector(lambda o: o.status == OrderStatus.PENDING)
    detector.observe([pending(1), pending(2)])

    accepted = SimpleNamespace(id=1, status=OrderStatus.ACCEPTED)
    arrivals = detector.observe([accepted, pending(2), pending(3)])

    assert [o.id for o in arrivals] == [3]


async def test_orders_live_list_alerts_on_new_order(db, restaurant, feed):
    snapshots = []
    detector = NewArrivalDetector(lambda o: o.status == OrderStatus.PENDING)
    alerts = []

    def on_change(orders):
        snapshots.append(orders)
        alerts.extend(detector.observe(orders))

    async def place(name):
        cart = Cart()
        cart.add(SimpleNamespace(id=1, name="Chai", base_price=20.0, sizes=[], addons=[]))
        composed = compose_order(cart, CustomerInfo(name=name, phone="9876543210", table_number="T1"))
        return await restaurant_service.create_order(db, restaurant.id, composed)

    for name in ("A", "B", "C"):
        await place(name)

    live = restaurant_service.orders_live_query(async_session_maker, restaurant.id, on_change)
    await live.start()
    assert len(snapshots[0]) == 3

    await place("D")
    await until(lambda: live.deliveries == 2)
    await live.wait_idle()

    assert len(snapshots[-1]) == 4
    assert len(alerts) == 1
    assert alerts[0].customer_name == "D"
    await live.close()


# =============================================================================
# FEED FACTORY
# =============================================================================

def test_development_uses_in_memory_feed(feed):
    assert isinstance(feed, InMemoryChangeFeed)
    assert feed.provider_name == "memory"


def test_production_uses_redis_feed(monkeypatch):
    import app.services.realtime as realtime
    from app.core.config import Settings
    from app.services.realtime.redis_feed import RedisChangeFeed

    monkeypatch.setattr(
        realtime, "get_settings", lambda: Settings(env_mode="production", redis_url="redis://cache:6379/1")
    )

    selected = realtime.get_change_feed()

    assert isinstance(selected, RedisChangeFeed)
    assert selected.redis_url == "redis://cache:6379/1"
    assert RedisChangeFeed.channel_for("orders") == "changes:orders"


async def test_in_memory_feed_keeps_bounded_history():
    feed = InMemoryChangeFeed(history_size=3)

    for row_id in range(5):
        await feed.publish(ChangeEvent(table="orders", action="insert", row_id=row_id))

    assert [event.row_id for event in feed.published] == [2, 3, 4]
