import asyncio

from constants import CONNECTION_STATE_PENDING_SENT
from realtime import ChangeEvent, ChangeFeed, change_feed
from repositories import create_project
from services import (
    ConnectionMaterializer,
    ConnectionState,
    NO_CONNECTION,
    ProfileView,
    ProfileViewRegistry,
    accept_connection_request,
    load_profile_snapshot,
    send_connect_request,
)


class Recorder:
    def __init__(self):
        self.snapshots = []

    async def __call__(self, view, snapshot):
        self.snapshots.append(snapshot)


def _view(session_maker, *, viewer_id, username, feed=None, on_refresh=None):
    return ProfileView(
        viewer_id=viewer_id,
        username=username,
        session_maker=session_maker,
        feed=feed or ChangeFeed(),
        on_refresh=on_refresh,
    )


async def test_snapshot_includes_projects_and_status(session, alice_id, bob_id):
    await create_project(
        session,
        owner_id=bob_id,
        title="Link board",
        description="Доска для поиска команды",
        tech_stack=["Python"],
        contributors_needed=[],
    )

    snapshot = await load_profile_snapshot(session, viewer_id=alice_id, username="bob")

    assert snapshot.found
    assert snapshot.profile.id == bob_id
    assert [p.title for p in snapshot.projects] == ["Link board"]
    assert snapshot.status.is_none


async def test_snapshot_for_anonymous_or_own_profile_has_no_status(session, alice_id):
    anonymous = await load_profile_snapshot(session, viewer_id=None, username="alice")
    own = await load_profile_snapshot(session, viewer_id=alice_id, username="alice")

    assert anonymous.found and anonymous.status is None
    assert own.found and own.status is None


async def test_snapshot_not_found(session, alice_id):
    snapshot = await load_profile_snapshot(session, viewer_id=alice_id, username="ghost")
    assert not snapshot.found


async def test_open_subscribes_to_profile_requests_and_connections(
    session_maker, alice_id, bob_id
):
    feed = ChangeFeed()
    recorder = Recorder()
    view = _view(session_maker, viewer_id=alice_id, username="bob", feed=feed, on_refresh=recorder)

    snapshot = await view.open()

    assert snapshot.status.is_none
    assert view.subject_id == bob_id
    assert sorted(s.table for s in feed.subscriptions) == [
        "connection_requests",
        "connections",
        "profiles",
    ]
    assert recorder.snapshots == [snapshot]
    view.close()


async def test_own_profile_only_watches_profile_row(session_maker, alice_id):
    feed = ChangeFeed()
    view = _view(session_maker, viewer_id=alice_id, username="alice", feed=feed)

    await view.open()

    assert [s.table for s in feed.subscriptions] == ["profiles"]
    view.close()


async def test_missing_profile_opens_without_subscriptions(session_maker, alice_id):
    feed = ChangeFeed()
    view = _view(session_maker, viewer_id=alice_id, username="ghost", feed=feed)

    snapshot = await view.open()

    assert not snapshot.found
    assert feed.subscriptions == []


async def test_external_accept_reconciles_to_connected(
    session, session_maker, alice_id, bob_id
):
    view = _view(session_maker, viewer_id=alice_id, username="bob")
    req, _ = await send_connect_request(session, sender_id=alice_id, receiver_id=bob_id)
    request_id = req.id

    opened = await view.open()
    assert opened.status.kind == CONNECTION_STATE_PENDING_SENT

    # bob принимает заявку в другом чате
    await accept_connection_request(session, request_id=request_id, actor_id=bob_id)
    materializer = ConnectionMaterializer(session_maker, ChangeFeed())
    event = ChangeEvent(
        "connection_requests",
        "UPDATE",
        record={"id": request_id, "sender_id": alice_id, "receiver_id": bob_id, "status": "accepted"},
        old_record={"id": request_id, "sender_id": alice_id, "receiver_id": bob_id, "status": "pending"},
    )
    await materializer.handle(event)

    await view.handle_change(event)

    assert view.snapshot.status.is_connected
    view.close()


async def test_live_feed_moves_open_view_to_connected(
    session, session_maker, alice_id, bob_id, eventually
):
    recorder = Recorder()
    materializer = ConnectionMaterializer(session_maker, change_feed)
    materializer.start()

    req, _ = await send_connect_request(session, sender_id=alice_id, receiver_id=bob_id)
    request_id = req.id
    view = _view(
        session_maker,
        viewer_id=alice_id,
        username="bob",
        feed=change_feed,
        on_refresh=recorder,
    )
    await view.open()

    await accept_connection_request(session, request_id=request_id, actor_id=bob_id)

    async def connected():
        return view.snapshot.status.is_connected

    await eventually(connected)
    assert recorder.snapshots[-1].status.is_connected

    view.close()
    materializer.stop()


async def test_refresh_after_close_is_discarded(session_maker, alice_id, bob_id):
    feed = ChangeFeed()
    recorder = Recorder()
    view = _view(session_maker, viewer_id=alice_id, username="bob", feed=feed, on_refresh=recorder)
    await view.open()

    view.close()
    result = await view.refresh()

    assert result is None
    assert len(recorder.snapshots) == 1
    assert feed.subscriptions == []
    assert view.subscriptions == []


async def test_apply_local_changes_status_until_next_refresh(
    session_maker, alice_id, bob_id
):
    view = _view(session_maker, viewer_id=alice_id, username="bob")
    await view.open()

    assert view.apply_local(ConnectionState(CONNECTION_STATE_PENDING_SENT, 42))
    assert view.snapshot.status.request_id == 42

    await view.refresh()
    assert view.snapshot.status == NO_CONNECTION

    view.close()
    assert not view.apply_local(NO_CONNECTION)


async def test_registry_keeps_one_view_per_chat(session_maker, alice_id, bob_id):
    registry = ProfileViewRegistry()
    first = _view(session_maker, viewer_id=alice_id, username="bob")
    second = _view(session_maker, viewer_id=alice_id, username="alice")
    await first.open()

    registry.attach(100, first)
    registry.attach(100, second)

    assert first.closed
    assert registry.get(100) is second
    assert len(registry) == 1

    assert registry.detach(100) is second
    assert second.closed
    assert registry.get(100) is None


async def test_registry_close_all(session_maker, alice_id):
    registry = ProfileViewRegistry()
    views = [_view(session_maker, viewer_id=alice_id, username="alice") for _ in range(2)]
    registry.attach(1, views[0])
    registry.attach(2, views[1])

    registry.close_all()

    assert len(registry) == 0
    assert all(v.closed for v in views)


async def test_slow_older_refresh_does_not_overwrite_newer_snapshot(
    session, session_maker, alice_id, bob_id, monkeypatch
):
    view = _view(session_maker, viewer_id=alice_id, username="bob")
    await view.open()

    read_done = asyncio.Event()
    release = asyncio.Event()
    calls = 0

    async def slow_first_read(*args, **kwargs):
        nonlocal calls
        calls += 1
        snapshot = await load_profile_snapshot(*args, **kwargs)
        if calls == 1:
            read_done.set()
            await release.wait()
        return snapshot

    monkeypatch.setattr("services.profile_view.load_profile_snapshot", slow_first_read)

    older = asyncio.create_task(view.refresh())
    await read_done.wait()

    # пока первое чтение «висит», alice отправляет заявку
    await send_connect_request(session, sender_id=alice_id, receiver_id=bob_id)
    newer = asyncio.create_task(view.refresh())
    await asyncio.sleep(0.05)
    release.set()
    await asyncio.gather(older, newer)

    assert view.snapshot.status.kind == CONNECTION_STATE_PENDING_SENT
    view.close()


async def test_open_subscribes_before_first_read(
    session, session_maker, alice_id, bob_id, monkeypatch, eventually
):
    view = _view(session_maker, viewer_id=alice_id, username="bob", feed=change_feed)
    subscribed_at_read: list[int] = []

    async def read_then_commit(*args, **kwargs):
        subscribed_at_read.append(len(view.subscriptions))
        snapshot = await load_profile_snapshot(*args, **kwargs)
        if len(subscribed_at_read) == 1:
            # изменение успевает закоммититься между чтением и отрисовкой
            await send_connect_request(session, sender_id=alice_id, receiver_id=bob_id)
        return snapshot

    monkeypatch.setattr("services.profile_view.load_profile_snapshot", read_then_commit)

    opened = await view.open()

    assert subscribed_at_read[0] == 3
    assert opened.status.is_none

    async def pending_sent():
        return view.snapshot.status.kind == CONNECTION_STATE_PENDING_SENT

    await eventually(pending_sent)
    view.close()


async def test_open_with_known_subject_skips_username_lookup(
    session_maker, alice_id, bob_id
):
    feed = ChangeFeed()
    recorder = Recorder()
    view = ProfileView(
        viewer_id=alice_id,
        username="bob",
        session_maker=session_maker,
        feed=feed,
        on_refresh=recorder,
        subject_id=bob_id,
        message_id=77,
    )

    snapshot = await view.open()

    assert snapshot.profile.id == bob_id
    assert view.message_id == 77
    assert len(feed.subscriptions) == 3
    assert len(recorder.snapshots) == 1
    view.close()
