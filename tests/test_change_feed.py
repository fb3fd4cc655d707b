"""Change-feed subscriptions over the in-process hub."""

import asyncio

from civicfeed.core.change_hub import ChangeHub
from civicfeed.services.change_feed import ChangeFeedClient
from tests.conftest import report_row


async def wait_for(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


def envelope(report_id, kind="INSERT"):
    row = report_row(report_id)
    row["created_at"] = row["created_at"].isoformat()
    row["updated_at"] = row["updated_at"].isoformat()
    return {"kind": kind, "table": "reports", "new": row, "old": None}


def test_events_are_delivered_in_order():
    hub = ChangeHub()
    received = []

    async def scenario():
        feed = ChangeFeedClient(hub, initial_delay=0.01)
        handle = feed.subscribe("reports", received.append)
        await wait_for(lambda: hub.subscriber_count("reports") == 1)
        hub.publish("reports", envelope("a"))
        hub.publish("reports", envelope("b", kind="UPDATE"))
        hub.publish("other", envelope("c"))
        await wait_for(lambda: len(received) == 2)
        handle.unsubscribe()

    asyncio.run(scenario())
    assert [(e.kind, e.entity_id) for e in received] == [("INSERT", "a"), ("UPDATE", "b")]


def test_unsubscribe_is_idempotent_and_stops_delivery():
    hub = ChangeHub()
    received = []

    async def scenario():
        feed = ChangeFeedClient(hub, initial_delay=0.01)
        handle = feed.subscribe("reports", received.append)
        await wait_for(lambda: hub.subscriber_count("reports") == 1)
        handle.unsubscribe()
        handle.unsubscribe()
        assert not handle.active
        hub.publish("reports", envelope("late"))
        await asyncio.sleep(0.05)

    asyncio.run(scenario())
    assert received == []
    assert hub.subscriber_count("reports") == 0


def test_malformed_events_are_skipped():
    hub = ChangeHub()
    received = []

    async def scenario():
        feed = ChangeFeedClient(hub, initial_delay=0.01)
        handle = feed.subscribe("reports", received.append)
        await wait_for(lambda: hub.subscriber_count("reports") == 1)
        hub.publish("reports", {"kind": "TRUNCATE", "table": "reports"})
        hub.publish("reports", {"kind": "DELETE", "table": "reports", "old": {}})
        hub.publish("reports", envelope("ok"))
        await wait_for(lambda: len(received) == 1)
        handle.unsubscribe()

    asyncio.run(scenario())
    assert received[0].entity_id == "ok"


def test_reconnect_requests_resync():
    hub = ChangeHub()
    received = []
    errors = []
    resyncs = []

    async def scenario():
        feed = ChangeFeedClient(hub, initial_delay=0.01)
        handle = feed.subscribe("reports", received.append, on_error=errors.append, on_resync=lambda: resyncs.append(1))
        await wait_for(lambda: hub.subscriber_count("reports") == 1)

        hub.drop_connections("reports")
        hub.publish("reports", envelope("lost"))
        await wait_for(lambda: resyncs and hub.subscriber_count("reports") == 1)

        hub.publish("reports", envelope("after"))
        await wait_for(lambda: len(received) == 1)
        assert handle.reconnects == 1
        handle.unsubscribe()

    asyncio.run(scenario())
    assert len(errors) == 1
    assert resyncs == [1]
    assert [e.entity_id for e in received] == ["after"]


def test_retries_until_transport_is_available():
    hub = ChangeHub()
    hub.available = False
    errors = []
    resyncs = []

    async def scenario():
        feed = ChangeFeedClient(hub, initial_delay=0.01, max_delay=0.02)
        handle = feed.subscribe("reports", lambda e: None, on_error=errors.append, on_resync=lambda: resyncs.append(1))
        await wait_for(lambda: len(errors) >= 2)
        assert not handle.connected
        hub.available = True
        await wait_for(lambda: handle.connected)
        handle.unsubscribe()

    asyncio.run(scenario())
    # first successful connect is not a reconnect
    assert resyncs == []


def test_failing_handler_does_not_end_subscription():
    hub = ChangeHub()
    received = []

    def handler(event):
        if event.entity_id == "bad":
            raise RuntimeError("handler blew up")
        received.append(event)

    async def scenario():
        feed = ChangeFeedClient(hub, initial_delay=0.01)
        handle = feed.subscribe("reports", handler)
        await wait_for(lambda: hub.subscriber_count("reports") == 1)
        hub.publish("reports", envelope("bad"))
        hub.publish("reports", envelope("good"))
        await wait_for(lambda: len(received) == 1)
        assert handle.active
        assert handle.connected
        handle.unsubscribe()

    asyncio.run(scenario())
    assert received[0].entity_id == "good"
