import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError

from constants import (
    CONNECTION_STATE_CONNECTED,
    CONNECTION_STATE_NONE,
    CONNECTION_STATE_PENDING_SENT,
    REQUEST_STATUS_ACCEPTED,
    REQUEST_STATUS_PENDING,
    REQUEST_STATUS_REJECTED,
)
from models import Connection, ConnectionRequest
from repositories import create_connection_half, get_pending_request_between
from services import (
    NO_CONNECTION,
    ConnectionMaterializer,
    accept_connection_request,
    get_connection_status,
    get_connections_overview,
    reject_connection_request,
    remove_connection,
    resolve_status,
    send_connect_request,
    withdraw_connection_request,
)
from realtime import change_feed


async def _all_requests(session) -> list[ConnectionRequest]:
    result = await session.execute(
        select(ConnectionRequest).execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def _all_connections(session) -> list[Connection]:
    result = await session.execute(select(Connection))
    return list(result.scalars().all())


async def _status(session, viewer_id: int, subject_id: int) -> str:
    state = await get_connection_status(
        session, viewer_id=viewer_id, subject_id=subject_id
    )
    return state.kind


# ===== чистая функция статуса =====


def test_resolve_status_without_rows_is_none():
    assert resolve_status([], [], 1, 2).is_none


def test_resolve_status_prefers_lowest_pending_id():
    requests = [
        ConnectionRequest(id=7, sender_id=1, receiver_id=2, status=REQUEST_STATUS_PENDING),
        ConnectionRequest(id=3, sender_id=1, receiver_id=2, status=REQUEST_STATUS_PENDING),
    ]
    state = resolve_status(requests, [], 1, 2)
    assert state.kind == CONNECTION_STATE_PENDING_SENT
    assert state.request_id == 3


def test_resolve_status_ignores_incoming_and_answered_requests():
    requests = [
        ConnectionRequest(id=1, sender_id=2, receiver_id=1, status=REQUEST_STATUS_PENDING),
        ConnectionRequest(id=2, sender_id=1, receiver_id=2, status=REQUEST_STATUS_REJECTED),
    ]
    assert resolve_status(requests, [], 1, 2).is_none


def test_resolve_status_connected_by_any_half():
    halves = [Connection(id=1, user_id=2, connected_user_id=1)]
    assert resolve_status([], halves, 1, 2).is_connected


async def test_status_for_same_identity_is_rejected(session, alice_id):
    with pytest.raises(ValueError):
        await get_connection_status(session, viewer_id=alice_id, subject_id=alice_id)


# ===== сценарии workflow =====


async def test_alice_bob_connect_and_withdraw(session, alice_id, bob_id):
    assert (alice_id, bob_id) == (1, 2)
    assert await _status(session, 1, 2) == CONNECTION_STATE_NONE

    req, reason = await send_connect_request(session, sender_id=1, receiver_id=2)
    assert reason == "ok"
    request_id = req.id
    assert (req.sender_id, req.receiver_id, req.status) == (1, 2, REQUEST_STATUS_PENDING)

    state = await get_connection_status(session, viewer_id=1, subject_id=2)
    assert state.kind == CONNECTION_STATE_PENDING_SENT
    assert state.request_id == request_id

    assert await withdraw_connection_request(
        session, request_id=request_id, actor_id=1
    ) == "ok"
    assert await _all_requests(session) == []
    assert await _status(session, 1, 2) == CONNECTION_STATE_NONE


async def test_connect_once_creates_single_pending_row(session, alice_id, bob_id):
    await send_connect_request(session, sender_id=alice_id, receiver_id=bob_id)

    rows = await _all_requests(session)
    assert len(rows) == 1
    assert rows[0].status == REQUEST_STATUS_PENDING


async def test_duplicate_connect_heals_to_exactly_one_pending_row(
    session, alice_id, bob_id
):
    first, first_reason = await send_connect_request(
        session, sender_id=alice_id, receiver_id=bob_id
    )
    first_id = first.id
    second, second_reason = await send_connect_request(
        session, sender_id=alice_id, receiver_id=bob_id
    )

    assert first_reason == "ok"
    assert second_reason == "healed"
    assert second.id != first_id

    pending = await get_pending_request_between(
        session, sender_id=alice_id, receiver_id=bob_id
    )
    assert [r.id for r in pending] == [second.id]
    assert len(await _all_requests(session)) == 1


async def test_connect_after_reject_replaces_history(session, alice_id, bob_id):
    req, _ = await send_connect_request(session, sender_id=alice_id, receiver_id=bob_id)
    await reject_connection_request(session, request_id=req.id, actor_id=bob_id)

    again, reason = await send_connect_request(
        session, sender_id=alice_id, receiver_id=bob_id
    )

    assert reason == "healed"
    rows = await _all_requests(session)
    assert [(r.id, r.status) for r in rows] == [(again.id, REQUEST_STATUS_PENDING)]


async def test_connect_to_self_is_refused(session, alice_id):
    req, reason = await send_connect_request(
        session, sender_id=alice_id, receiver_id=alice_id
    )
    assert req is None
    assert reason == "self"
    assert await _all_requests(session) == []


async def test_withdraw_by_receiver_keeps_row(session, alice_id, bob_id):
    req, _ = await send_connect_request(session, sender_id=alice_id, receiver_id=bob_id)
    request_id = req.id

    reason = await withdraw_connection_request(
        session, request_id=request_id, actor_id=bob_id
    )

    assert reason == "forbidden"
    rows = await _all_requests(session)
    assert [(r.id, r.status) for r in rows] == [(request_id, REQUEST_STATUS_PENDING)]
    assert await _status(session, alice_id, bob_id) == CONNECTION_STATE_PENDING_SENT


async def test_withdraw_missing_request(session, alice_id):
    assert await withdraw_connection_request(
        session, request_id=999, actor_id=alice_id
    ) == "not_found"


async def test_reject_keeps_row_and_resolves_to_none(session, alice_id, bob_id):
    req, _ = await send_connect_request(session, sender_id=alice_id, receiver_id=bob_id)
    request_id = req.id

    rejected, reason = await reject_connection_request(
        session, request_id=request_id, actor_id=bob_id
    )

    assert reason == "ok"
    assert rejected.status == REQUEST_STATUS_REJECTED
    assert rejected.responded_at is not None

    rows = await _all_requests(session)
    assert [(r.id, r.status) for r in rows] == [(request_id, REQUEST_STATUS_REJECTED)]
    assert await _status(session, alice_id, bob_id) == CONNECTION_STATE_NONE
    assert await _status(session, bob_id, alice_id) == CONNECTION_STATE_NONE


async def test_only_receiver_can_respond(session, alice_id, bob_id, carol_id):
    req, _ = await send_connect_request(session, sender_id=alice_id, receiver_id=bob_id)
    request_id = req.id

    _, by_sender = await accept_connection_request(
        session, request_id=request_id, actor_id=alice_id
    )
    _, by_stranger = await reject_connection_request(
        session, request_id=request_id, actor_id=carol_id
    )

    assert by_sender == "forbidden"
    assert by_stranger == "forbidden"
    rows = await _all_requests(session)
    assert rows[0].status == REQUEST_STATUS_PENDING


async def test_answered_request_cannot_be_answered_again(session, alice_id, bob_id):
    req, _ = await send_connect_request(session, sender_id=alice_id, receiver_id=bob_id)
    request_id = req.id
    await reject_connection_request(session, request_id=request_id, actor_id=bob_id)

    _, reason = await accept_connection_request(
        session, request_id=request_id, actor_id=bob_id
    )
    assert reason == "processed"

    assert await withdraw_connection_request(
        session, request_id=request_id, actor_id=alice_id
    ) == "processed"


async def test_accept_without_halves_is_not_connected_yet(session, alice_id, bob_id):
    req, _ = await send_connect_request(session, sender_id=alice_id, receiver_id=bob_id)

    accepted, reason = await accept_connection_request(
        session, request_id=req.id, actor_id=bob_id
    )

    assert reason == "ok"
    assert accepted.status == REQUEST_STATUS_ACCEPTED
    assert await _status(session, alice_id, bob_id) == CONNECTION_STATE_NONE

    await create_connection_half(session, user_id=alice_id, connected_user_id=bob_id)
    assert await _status(session, alice_id, bob_id) == CONNECTION_STATE_CONNECTED


async def test_accept_materializes_connection_for_both_sides(
    session, session_maker, alice_id, bob_id, eventually
):
    materializer = ConnectionMaterializer(session_maker, change_feed)
    materializer.start()

    req, _ = await send_connect_request(session, sender_id=alice_id, receiver_id=bob_id)
    await accept_connection_request(session, request_id=req.id, actor_id=bob_id)

    async def both_halves():
        return len(await _all_connections(session)) == 2

    await eventually(both_halves)
    materializer.stop()

    assert await _status(session, alice_id, bob_id) == CONNECTION_STATE_CONNECTED
    assert await _status(session, bob_id, alice_id) == CONNECTION_STATE_CONNECTED


async def test_remove_connection_deletes_both_halves(session, alice_id, bob_id):
    half = await create_connection_half(
        session, user_id=alice_id, connected_user_id=bob_id
    )
    half_id = half.id
    await create_connection_half(session, user_id=bob_id, connected_user_id=alice_id)

    reason = await remove_connection(session, connection_id=half_id, actor_id=bob_id)

    assert reason == "ok"
    assert await _all_connections(session) == []
    assert await _status(session, alice_id, bob_id) == CONNECTION_STATE_NONE
    assert await _status(session, bob_id, alice_id) == CONNECTION_STATE_NONE


async def test_remove_connection_by_stranger_is_forbidden(
    session, alice_id, bob_id, carol_id
):
    half = await create_connection_half(
        session, user_id=alice_id, connected_user_id=bob_id
    )

    reason = await remove_connection(session, connection_id=half.id, actor_id=carol_id)

    assert reason == "forbidden"
    assert len(await _all_connections(session)) == 1


async def test_remove_missing_connection(session, alice_id):
    assert await remove_connection(
        session, connection_id=404, actor_id=alice_id
    ) == "not_found"


async def test_connections_overview_lists(session, alice_id, bob_id, carol_id):
    await send_connect_request(session, sender_id=bob_id, receiver_id=alice_id)
    await send_connect_request(session, sender_id=alice_id, receiver_id=carol_id)
    await create_connection_half(session, user_id=alice_id, connected_user_id=bob_id)

    overview = await get_connections_overview(session, user_id=alice_id)

    assert [r.sender.username for r in overview.incoming] == ["bob"]
    assert [r.receiver.username for r in overview.outgoing] == ["carol"]
    assert [c.connected_user.username for c in overview.connections] == ["bob"]


# ===== id заявок и связей не переиспользуются =====


async def test_stale_request_id_does_not_reach_a_new_request(
    session, alice_id, bob_id, carol_id
):
    old, _ = await send_connect_request(session, sender_id=alice_id, receiver_id=bob_id)
    old_id = old.id
    await withdraw_connection_request(session, request_id=old_id, actor_id=alice_id)

    new, reason = await send_connect_request(
        session, sender_id=carol_id, receiver_id=bob_id
    )
    new_id = new.id
    assert reason == "ok"
    assert new_id != old_id

    # bob жмёт «Принять» в старом уведомлении от alice
    req, stale_reason = await accept_connection_request(
        session, request_id=old_id, actor_id=bob_id
    )

    assert req is None
    assert stale_reason == "not_found"
    rows = await _all_requests(session)
    assert [(r.id, r.sender_id, r.status) for r in rows] == [
        (new_id, carol_id, REQUEST_STATUS_PENDING)
    ]


async def test_connection_ids_are_not_reused_after_removal(session, alice_id, bob_id):
    half = await create_connection_half(
        session, user_id=alice_id, connected_user_id=bob_id
    )
    old_id = half.id
    await create_connection_half(session, user_id=bob_id, connected_user_id=alice_id)
    await remove_connection(session, connection_id=old_id, actor_id=alice_id)

    again = await create_connection_half(
        session, user_id=alice_id, connected_user_id=bob_id
    )

    assert again.id > old_id
    assert await remove_connection(
        session, connection_id=old_id, actor_id=alice_id
    ) == "not_found"
    assert len(await _all_connections(session)) == 1


# ===== ошибки хранилища =====


def _db_down(statement: str = "SELECT") -> OperationalError:
    return OperationalError(statement, {}, Exception("database is locked"))


async def test_status_falls_back_to_none_on_read_error(
    session, alice_id, bob_id, monkeypatch
):
    await send_connect_request(session, sender_id=alice_id, receiver_id=bob_id)

    async def broken(*args, **kwargs):
        raise _db_down()

    monkeypatch.setattr(
        "services.connections.get_pending_request_between", broken
    )

    state = await get_connection_status(session, viewer_id=alice_id, subject_id=bob_id)
    assert state == NO_CONNECTION


async def test_failed_retry_after_conflict_leaves_rows_unchanged(
    session, alice_id, bob_id, monkeypatch
):
    first, _ = await send_connect_request(
        session, sender_id=alice_id, receiver_id=bob_id
    )
    first_id = first.id

    real_commit = session.commit
    commits = 0

    async def commit():
        # первый коммит: настоящий конфликт вставки; второй: повтор тоже упал
        nonlocal commits
        commits += 1
        if commits == 2:
            raise IntegrityError(
                "INSERT INTO connection_requests", {}, Exception("UNIQUE constraint failed")
            )
        await real_commit()

    monkeypatch.setattr(session, "commit", commit)

    req, reason = await send_connect_request(
        session, sender_id=alice_id, receiver_id=bob_id
    )

    assert req is None
    assert reason == "failed"
    assert commits == 2
    rows = await _all_requests(session)
    assert [(r.id, r.status) for r in rows] == [(first_id, REQUEST_STATUS_PENDING)]


async def test_respond_and_withdraw_fail_without_changing_state(
    session, alice_id, bob_id, monkeypatch
):
    req, _ = await send_connect_request(session, sender_id=alice_id, receiver_id=bob_id)
    request_id = req.id

    async def broken(*args, **kwargs):
        raise _db_down("UPDATE connection_requests")

    monkeypatch.setattr(
        "services.connections.set_connection_request_status", broken
    )

    accepted, accept_reason = await accept_connection_request(
        session, request_id=request_id, actor_id=bob_id
    )
    rejected, reject_reason = await reject_connection_request(
        session, request_id=request_id, actor_id=bob_id
    )
    withdraw_reason = await withdraw_connection_request(
        session, request_id=request_id, actor_id=alice_id
    )

    assert (accepted, accept_reason) == (None, "failed")
    assert (rejected, reject_reason) == (None, "failed")
    assert withdraw_reason == "failed"

    monkeypatch.undo()
    rows = await _all_requests(session)
    assert [(r.id, r.status) for r in rows] == [(request_id, REQUEST_STATUS_PENDING)]
    assert await _status(session, alice_id, bob_id) == CONNECTION_STATE_PENDING_SENT


async def test_remove_fails_without_changing_state(
    session, alice_id, bob_id, monkeypatch
):
    half = await create_connection_half(
        session, user_id=alice_id, connected_user_id=bob_id
    )
    half_id = half.id
    await create_connection_half(session, user_id=bob_id, connected_user_id=alice_id)

    async def broken(*args, **kwargs):
        raise _db_down("DELETE FROM connections")

    monkeypatch.setattr("services.connections.delete_connections_between", broken)

    reason = await remove_connection(session, connection_id=half_id, actor_id=alice_id)

    assert reason == "failed"
    monkeypatch.undo()
    assert len(await _all_connections(session)) == 2
    assert await _status(session, alice_id, bob_id) == CONNECTION_STATE_CONNECTED
