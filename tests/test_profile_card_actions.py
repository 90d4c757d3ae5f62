from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from constants import CONNECTION_STATE_PENDING_SENT
from handlers.developers import _view_for, conn_connect_callback, conn_withdraw_callback
from realtime import ChangeFeed
from services import ProfileView, profile_views, send_connect_request

CHAT_ID = 500


class Recorder:
    def __init__(self):
        self.snapshots = []

    async def __call__(self, view, snapshot):
        self.snapshots.append(snapshot)


def _callback(data: str, *, message_id: int) -> MagicMock:
    callback = MagicMock()
    callback.data = data
    callback.answer = AsyncMock()
    callback.message.chat.id = CHAT_ID
    callback.message.message_id = message_id
    callback.message.html_text = "карточка"
    return callback


async def _open_card(session_maker, *, viewer_id, username, subject_id, message_id, on_refresh=None):
    view = ProfileView(
        viewer_id=viewer_id,
        username=username,
        session_maker=session_maker,
        feed=ChangeFeed(),
        subject_id=subject_id,
        message_id=message_id,
        on_refresh=on_refresh,
    )
    await view.open()
    profile_views.attach(CHAT_ID, view)
    return view


@pytest.fixture(autouse=True)
def clean_views():
    yield
    profile_views.detach(CHAT_ID)


async def test_view_for_matches_subject_only(session_maker, alice_id, bob_id, carol_id):
    view = await _open_card(
        session_maker, viewer_id=alice_id, username="carol", subject_id=carol_id, message_id=1
    )

    assert _view_for(CHAT_ID, carol_id) is view
    assert _view_for(CHAT_ID, bob_id) is None
    assert _view_for(CHAT_ID, None) is None


async def test_withdraw_from_old_card_keeps_other_open_card(
    session, session_maker, alice_id, bob_id, carol_id
):
    to_bob, _ = await send_connect_request(session, sender_id=alice_id, receiver_id=bob_id)
    to_bob_id = to_bob.id
    to_carol, _ = await send_connect_request(
        session, sender_id=alice_id, receiver_id=carol_id
    )
    to_carol_id = to_carol.id

    carol_card = await _open_card(
        session_maker, viewer_id=alice_id, username="carol", subject_id=carol_id, message_id=200
    )
    assert carol_card.snapshot.status.kind == CONNECTION_STATE_PENDING_SENT

    bot = AsyncMock()
    callback = _callback(f"conn_withdraw:{to_bob_id}", message_id=100)

    await conn_withdraw_callback(callback, session, bot, SimpleNamespace(id=alice_id))

    assert carol_card.snapshot.status.kind == CONNECTION_STATE_PENDING_SENT
    assert carol_card.snapshot.status.request_id == to_carol_id
    callback.answer.assert_awaited_with("Заявка отозвана")
    # старая карточка bob остаётся без «⏳»
    bot.edit_message_reply_markup.assert_awaited_with(
        chat_id=CHAT_ID, message_id=100, reply_markup=None
    )


async def test_withdraw_from_live_card_rerenders_it(
    session, session_maker, alice_id, bob_id
):
    req, _ = await send_connect_request(session, sender_id=alice_id, receiver_id=bob_id)
    request_id = req.id
    recorder = Recorder()
    card = await _open_card(
        session_maker,
        viewer_id=alice_id,
        username="bob",
        subject_id=bob_id,
        message_id=100,
        on_refresh=recorder,
    )

    bot = AsyncMock()
    callback = _callback(f"conn_withdraw:{request_id}", message_id=100)

    await conn_withdraw_callback(callback, session, bot, SimpleNamespace(id=alice_id))

    assert card.snapshot.status.is_none
    assert recorder.snapshots[-1].status.is_none
    bot.edit_message_reply_markup.assert_not_awaited()


async def test_failed_connect_without_open_card_clears_busy_keyboard(
    session, alice_id
):
    bot = AsyncMock()
    callback = _callback(f"conn_connect:{alice_id}", message_id=300)
    identity = SimpleNamespace(id=alice_id, name="Alice", username="alice")

    await conn_connect_callback(callback, session, bot, identity)

    callback.answer.assert_awaited_with(
        "Нельзя отправить заявку самому себе", show_alert=True
    )
    bot.edit_message_reply_markup.assert_awaited_with(
        chat_id=CHAT_ID, message_id=300, reply_markup=None
    )
