import pytest

from constants import PROJECT_STATUS_CLOSED, PROJECT_STATUS_OPEN
from repositories import create_project
from services import create_user_project, get_project, get_projects_feed, get_user_projects


@pytest.fixture
async def projects(session, alice_id, bob_id):
    chat = await create_user_project(
        session,
        owner_id=alice_id,
        title="Team chat",
        description="Чат для команд",
        tech_stack=["React", "Node.js"],
        contributors_needed=["Designer"],
    )
    board = await create_project(
        session,
        owner_id=bob_id,
        title="Job board",
        description="Доска вакансий",
        tech_stack=["Python", "PostgreSQL"],
        contributors_needed=[],
        status=PROJECT_STATUS_CLOSED,
    )
    return chat.id, board.id


async def test_new_project_is_open(session, projects):
    chat_id, _ = projects
    project = await get_project(session, chat_id)

    assert project.status == PROJECT_STATUS_OPEN
    assert project.owner.username == "alice"
    assert project.contributors_needed == ["Designer"]


async def test_feed_status_filter(session, projects):
    chat_id, board_id = projects

    everything = await get_projects_feed(session)
    open_only = await get_projects_feed(session, status="open")
    closed_only = await get_projects_feed(session, status="closed")

    assert {p.id for p in everything} == {chat_id, board_id}
    assert [p.id for p in open_only] == [chat_id]
    assert [p.id for p in closed_only] == [board_id]


async def test_feed_term_and_tech(session, projects):
    chat_id, board_id = projects

    by_term = await get_projects_feed(session, term="вакансий")
    by_tech = await get_projects_feed(session, tech=["python", "go"])
    by_tech_in_term = await get_projects_feed(session, term="node")

    assert [p.id for p in by_term] == [board_id]
    assert [p.id for p in by_tech] == [board_id]
    assert [p.id for p in by_tech_in_term] == [chat_id]


async def test_feed_unknown_status(session):
    with pytest.raises(ValueError):
        await get_projects_feed(session, status="archived")


async def test_feed_limit_and_order(session, projects):
    chat_id, board_id = projects
    feed = await get_projects_feed(session, limit=1)
    assert [p.id for p in feed] == [board_id]


async def test_missing_project(session):
    assert await get_project(session, 12345) is None


async def test_user_projects(session, projects, alice_id):
    chat_id, _ = projects
    assert [p.id for p in await get_user_projects(session, alice_id)] == [chat_id]
