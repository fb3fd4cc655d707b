"""Live views wired to the database through change capture."""

import asyncio

from civicfeed.core.change_hub import change_hub
from civicfeed.core.errors import PermissionDeniedError, SnapshotUnavailableError
from civicfeed.core.feed_policies import REPORTS_CHANNEL
from civicfeed.core.visibility import ANONYMOUS_VIEWER, ViewerContext, ViewerRole
from civicfeed.schemas.common import Location
from civicfeed.schemas.notification import NotificationCreate
from civicfeed.schemas.report import ReportCreate
from civicfeed.services import comment_service, report_service
from civicfeed.services.change_feed import ChangeFeedClient
from civicfeed.services.feed_service import (
    FeedView,
    ViewStatus,
    subscribe_comments,
    subscribe_feed,
    subscribe_notifications,
)
from tests.conftest import make_profile, make_report


async def wait_for(predicate, timeout=3.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


def feed_client():
    return ChangeFeedClient(change_hub, initial_delay=0.01)


def _in_session(fn, *args):
    from tests.conftest import TestingSessionLocal

    db = TestingSessionLocal()
    try:
        return fn(db, *args)
    finally:
        db.close()


def _submit(db, owner_id, title, lat=None, lng=None):
    location = {"lat": lat, "lng": lng} if lat is not None else None
    return report_service.submit_report(db, owner_id, ReportCreate(title=title, location=location)).id


def _delete(db, report_id, actor):
    report_service.delete_report(db, report_id, actor)


def _comment(db, report_id, viewer, content):
    return comment_service.create_comment(db, report_id, viewer, content).id


class BrokenStore:
    def __init__(self, error):
        self.error = error
        self.calls = 0

    async def get_approved_reports(self):
        self.calls += 1
        raise self.error


class GatedStore:
    def __init__(self):
        self.release = asyncio.Event()

    async def get_approved_reports(self):
        await self.release.wait()
        return [make_report("late")]


def test_community_feed_follows_moderation(db, store):
    owner = make_profile(db)
    admin = ViewerContext(user_id=make_profile(db, role="admin").id, role=ViewerRole.ADMIN)

    async def scenario():
        view = await subscribe_feed(feed_client(), store, ANONYMOUS_VIEWER, retry_delay=0.01)
        assert view.status == ViewStatus.READY

        report_id = await asyncio.to_thread(_in_session, _submit, owner.id, "Pothole on Main")
        await asyncio.sleep(0.1)
        assert report_id not in view.reconciler

        await store.update_report_status(report_id, "approved", admin)
        await wait_for(lambda: report_id in view.reconciler)
        assert view.reconciler.get(report_id).status == "approved"

        await asyncio.to_thread(_in_session, _delete, report_id, admin)
        await wait_for(lambda: report_id not in view.reconciler)
        view.close()

    asyncio.run(scenario())


def test_owner_feed_shows_own_pending_report(db, store):
    owner = make_profile(db)
    viewer = ViewerContext(user_id=owner.id, role=ViewerRole.USER)

    async def scenario():
        view = await subscribe_feed(feed_client(), store, viewer)
        report_id = await asyncio.to_thread(_in_session, _submit, owner.id, "Streetlight out")
        await wait_for(lambda: report_id in view.reconciler)
        assert view.reconciler.get(report_id).status == "pending"
        view.close()

    asyncio.run(scenario())


def test_closest_ranking_on_live_feed(db, store):
    owner = make_profile(db)
    admin = ViewerContext(user_id=make_profile(db, role="admin").id, role=ViewerRole.ADMIN)

    async def scenario():
        near = await asyncio.to_thread(_in_session, _submit, owner.id, "near", 4.96, 8.34)
        far = await asyncio.to_thread(_in_session, _submit, owner.id, "far", 5.50, 8.90)
        for report_id in (near, far):
            await store.update_report_status(report_id, "approved", admin)

        view = await subscribe_feed(feed_client(), store, ANONYMOUS_VIEWER)
        view.set_origin(Location(lat=4.95, lng=8.33))
        ranked = [r.id for r in view.rank("", "closest")]
        assert ranked.index(near) < ranked.index(far)
        view.close()

    asyncio.run(scenario())


def test_reconnect_reloads_snapshot(db, store):
    owner = make_profile(db)
    admin = ViewerContext(user_id=make_profile(db, role="admin").id, role=ViewerRole.ADMIN)

    async def scenario():
        view = await subscribe_feed(feed_client(), store, ANONYMOUS_VIEWER)
        change_hub.drop_connections(REPORTS_CHANNEL)
        report_id = await asyncio.to_thread(_in_session, _submit, owner.id, "Fallen sign")
        await store.update_report_status(report_id, "approved", admin)

        await wait_for(lambda: view.handle.reconnects == 1)
        await wait_for(lambda: view.status == ViewStatus.READY and report_id in view.reconciler)
        view.close()

    asyncio.run(scenario())


def test_snapshot_failure_exhausts_retries():
    store = BrokenStore(ConnectionError("offline"))

    async def scenario():
        view = await subscribe_feed(feed_client(), store, ANONYMOUS_VIEWER, max_attempts=3, retry_delay=0.01)
        assert view.status == ViewStatus.ERROR
        assert isinstance(view.error, SnapshotUnavailableError)
        assert not view.reconciler.is_loading
        assert view.handle.active
        view.close()

    asyncio.run(scenario())
    assert store.calls == 3


def test_permission_denied_is_not_retried():
    store = BrokenStore(PermissionDeniedError("no"))

    async def scenario():
        view = await subscribe_feed(feed_client(), store, ANONYMOUS_VIEWER, retry_delay=0.01)
        assert view.status == ViewStatus.ERROR
        assert isinstance(view.error, PermissionDeniedError)
        view.close()

    asyncio.run(scenario())
    assert store.calls == 1


def test_snapshot_arriving_after_close_is_discarded():
    store = GatedStore()

    async def scenario():
        view = FeedView(feed_client(), store, ANONYMOUS_VIEWER)
        changes = []
        view.on_change(lambda: changes.append(1))
        starting = asyncio.create_task(view.start())
        await asyncio.sleep(0.02)

        view.close()
        view.close()
        store.release.set()
        await starting

        assert view.status == ViewStatus.CLOSED
        assert len(view.reconciler) == 0
        assert changes == []
        assert not view.handle.active

    asyncio.run(scenario())


def test_location_failure_disables_closest_only():
    async def denied():
        raise PermissionError("denied")

    async def scenario():
        view = FeedView(feed_client(), BrokenStore(ConnectionError()), ANONYMOUS_VIEWER)
        view.reconciler.load_snapshot([make_report("a", minutes=2), make_report("b", lat=1.0, lng=1.0, minutes=1)])

        assert await view.acquire_origin(denied, timeout=1) is None
        assert not view.closest_enabled
        assert [r.id for r in view.rank("", "closest")] == ["a", "b"]

        async def here():
            return Location(lat=1.0, lng=1.0)

        assert await view.acquire_origin(here, timeout=1) == Location(lat=1.0, lng=1.0)
        assert view.closest_enabled
        assert [r.id for r in view.rank("", "closest")] == ["b", "a"]

    asyncio.run(scenario())


def test_comment_thread_receives_new_comments(db, store):
    owner = make_profile(db)
    admin = ViewerContext(user_id=make_profile(db, role="admin").id, role=ViewerRole.ADMIN)
    commenter = ViewerContext(user_id=make_profile(db).id, role=ViewerRole.USER)

    async def scenario():
        report_id = await asyncio.to_thread(_in_session, _submit, owner.id, "Blocked drain")
        await store.update_report_status(report_id, "approved", admin)
        first = await asyncio.to_thread(_in_session, _comment, report_id, commenter, "Same here")

        view = await subscribe_comments(feed_client(), store, report_id, commenter)
        assert [c.id for c in view.items()] == [first]

        second = await asyncio.to_thread(_in_session, _comment, report_id, commenter, "Still blocked")
        await wait_for(lambda: len(view.items()) == 2)
        assert [c.id for c in view.items()] == [first, second]
        view.close()

    asyncio.run(scenario())


def test_notification_view_tracks_review_and_read(db, store):
    owner = make_profile(db)
    admin = ViewerContext(user_id=make_profile(db, role="admin").id, role=ViewerRole.ADMIN)

    async def scenario():
        report_id = await asyncio.to_thread(_in_session, _submit, owner.id, "Abandoned car")
        view = await subscribe_notifications(feed_client(), store, owner.id)
        assert view.unread_count == 0

        await store.update_report_status(report_id, "approved", admin)
        await wait_for(lambda: view.unread_count == 1)
        note = view.items()[0]
        assert note.type == "report_approved"
        assert note.data["report_id"] == report_id

        await view.mark_read(note.id)
        assert view.unread_count == 0
        assert view.reconciler.get(note.id).read is True
        view.close()

    asyncio.run(scenario())


def test_store_client_queries(db, store):
    owner = make_profile(db)
    admin = ViewerContext(user_id=make_profile(db, role="admin").id, role=ViewerRole.ADMIN)

    async def scenario():
        pending = await asyncio.to_thread(_in_session, _submit, owner.id, "Queued")
        approved = await asyncio.to_thread(_in_session, _submit, owner.id, "Visible")
        await store.update_report_status(approved, "approved", admin)

        pending_ids = {r.id for r in await store.get_pending_reports()}
        approved_ids = {r.id for r in await store.get_approved_reports()}
        owned = [r.id for r in await store.get_reports_owned_by(owner.id)]
        return pending, approved, pending_ids, approved_ids, owned

    pending, approved, pending_ids, approved_ids, owned = asyncio.run(scenario())
    assert pending in pending_ids and approved not in pending_ids
    assert approved in approved_ids and pending not in approved_ids
    assert owned == [approved, pending]


def test_created_notification_reaches_recipient_view(db, store):
    recipient = make_profile(db)

    async def scenario():
        view = await subscribe_notifications(feed_client(), store, recipient.id)
        created = await store.create_notification(
            NotificationCreate(user_id=recipient.id, title="Maintenance", message="Map tiles down tonight", type="system")
        )
        await wait_for(lambda: created.id in view.reconciler)
        assert view.unread_count == 1

        await view.delete(created.id)
        assert created.id not in view.reconciler
        assert view.unread_count == 0
        view.close()

    asyncio.run(scenario())


def test_location_arriving_after_close_is_discarded():
    async def scenario():
        view = FeedView(feed_client(), BrokenStore(ConnectionError()), ANONYMOUS_VIEWER)
        gate = asyncio.Event()

        async def slow_fix():
            await gate.wait()
            return Location(lat=1.0, lng=1.0)

        pending = asyncio.create_task(view.acquire_origin(slow_fix, timeout=1))
        await asyncio.sleep(0.01)
        view.close()
        gate.set()

        assert await pending is None
        assert view.origin is None
        assert not view.closest_enabled

    asyncio.run(scenario())
