from datetime import datetime

from aiogram.types import Chat, Message

from handlers.connection_requests import _parse, build_overview_keyboard
from handlers.developers import build_profile_keyboard, command_args, split_query
from handlers.projects.feed import parse_feed_args
from models import ConnectionRequest, Profile
from services import NO_CONNECTION, ConnectionsOverview
from services.profile_view import ProfileSnapshot


def _message(text: str) -> Message:
    return Message(
        message_id=1,
        date=datetime(2026, 1, 1),
        chat=Chat(id=10, type="private"),
        text=text,
    )


def test_command_args():
    assert command_args(_message("/u @bob")) == "@bob"
    assert command_args(_message("/developers")) == ""
    assert command_args(_message("👥 Разработчики")) == ""


def test_split_query():
    assert split_query("react native #python #go") == ("react native", ["python", "go"])
    assert split_query("#") == ("#", [])
    assert split_query("") == (None, [])


def test_parse_feed_args():
    assert parse_feed_args("open chat #react") == ("open", "chat", ["react"])
    assert parse_feed_args("chat open") == ("all", "chat open", [])
    assert parse_feed_args("") == ("all", None, [])


def test_parse_callback_data():
    assert _parse("conn_accept:12:list") == (12, True)
    assert _parse("conn_accept:12") == (12, False)
    assert _parse("conn_accept:x") == (None, False)


def test_profile_keyboard():
    bob = Profile(id=2, username="bob", skills=[])
    other = build_profile_keyboard(ProfileSnapshot(profile=bob, status=NO_CONNECTION), viewer_id=1)
    own = build_profile_keyboard(ProfileSnapshot(profile=bob, status=None), viewer_id=2)
    anonymous = build_profile_keyboard(ProfileSnapshot(profile=bob, status=None), viewer_id=None)

    assert other.inline_keyboard[0][0].callback_data == "conn_connect:2"
    assert own.inline_keyboard[0][0].callback_data == "profile_edit"
    assert anonymous is None


def test_overview_keyboard_rows():
    carol = Profile(id=3, username="carol", skills=[])
    overview = ConnectionsOverview(
        incoming=[ConnectionRequest(id=7, sender_id=3, receiver_id=1, sender=carol)],
    )

    rows = build_overview_keyboard(overview).inline_keyboard

    assert [b.callback_data for b in rows[0]] == ["conn_accept:7:list", "conn_reject:7:list"]
    assert rows[-1][0].callback_data == "conn_refresh"
