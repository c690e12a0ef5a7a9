import pytest

from datamind.config import settings
from datamind.database.connection import pwd_context
from datamind.database.storage import Storage

USER = settings.DEFAULT_USER_ID

CHART = {"data": [{"type": "bar", "x": ["a"], "y": [1]}], "layout": {}, "config": {}}

@pytest.fixture
def storage(db):
    return Storage(db)

async def _visualization(storage, session_id="s1"):
    await storage.create_chat_session(USER, "Revenue", session_id=session_id)
    message = await storage.create_message(session_id, "assistant", "Here is the chart")
    return await storage.create_visualization(
        message_id=message.id, user_id=USER, title="Revenue", chart_type="bar", chart_config=CHART
    )

@pytest.mark.asyncio
async def test_default_user_is_seeded(storage):
    user = await storage.get_user(USER)
    assert user is not None
    assert user.username == settings.DEFAULT_USERNAME

@pytest.mark.asyncio
async def test_created_user_password_is_bcrypt_hashed(storage):
    user = await storage.create_user("dana", "s3cret-pass")

    stored = await storage.get_user(user.id)
    assert stored.password_hash != "s3cret-pass"
    assert pwd_context.identify(stored.password_hash) == "bcrypt"
    assert pwd_context.verify("s3cret-pass", stored.password_hash)
    assert not pwd_context.verify("wrong", stored.password_hash)

@pytest.mark.asyncio
async def test_pin_then_unpin_leaves_pinned_count_unchanged(storage):
    visualization = await _visualization(storage)
    before = len(await storage.get_pinned_visualizations_by_user(USER))

    await storage.pin_visualization(USER, visualization.id)
    await storage.pin_visualization(USER, visualization.id)
    pinned = await storage.get_pinned_visualizations_by_user(USER)
    assert len(pinned) == before + 1
    assert pinned[0][1].id == visualization.id
    assert (await storage.get_visualization(visualization.id)).is_pinned is True

    assert await storage.unpin_visualization(USER, visualization.id) is True
    assert len(await storage.get_pinned_visualizations_by_user(USER)) == before
    assert (await storage.get_visualization(visualization.id)).is_pinned is False

@pytest.mark.asyncio
async def test_publish_flag(storage):
    visualization = await _visualization(storage)
    assert await storage.get_published_visualizations() == []

    await storage.update_visualization(visualization.id, {"is_published": True, "title": "ignored"})
    published = await storage.get_published_visualizations()
    assert [v.id for v in published] == [visualization.id]
    assert published[0].title == "Revenue"

@pytest.mark.asyncio
async def test_deleting_sessions_removes_messages_and_charts(storage):
    visualization = await _visualization(storage, "s1")
    await storage.pin_visualization(USER, visualization.id)
    await storage.create_chat_session(USER, "Other", session_id="s2")
    await storage.create_message("s2", "user", "hello")

    assert await storage.delete_chat_sessions(["s1", "s2"]) == 2

    assert await storage.get_messages_by_session("s1") == []
    assert await storage.get_messages_by_session("s2") == []
    assert await storage.get_visualization(visualization.id) is None
    assert await storage.get_pinned_visualizations_by_user(USER) == []
    assert await storage.delete_chat_session("s1") is False

@pytest.mark.asyncio
async def test_messages_come_back_in_order(storage):
    await storage.create_chat_session(USER, "Chat", session_id="s1")
    for text in ["first", "second", "third"]:
        await storage.create_message("s1", "user", text)

    messages = await storage.get_messages_by_session("s1")
    assert [m.content for m in messages] == ["first", "second", "third"]

@pytest.mark.asyncio
async def test_first_connection_becomes_default_and_default_can_move(storage):
    values = {"name": "A", "account": "acct", "username": "u", "password": "p"}
    first = await storage.create_snowflake_connection(USER, dict(values))
    second = await storage.create_snowflake_connection(USER, dict(values, name="B"))

    assert first.is_default is True
    assert second.is_default is False
    assert (await storage.get_default_snowflake_connection(USER)).id == first.id

    assert await storage.set_default_snowflake_connection(USER, second.id) is True
    connections = await storage.get_snowflake_connections(USER)
    assert [c.id for c in connections if c.is_default] == [second.id]
    assert connections[0].id == second.id

    await storage.update_snowflake_connection(second.id, {"is_active": False})
    assert await storage.get_default_snowflake_connection(USER) is None

@pytest.mark.asyncio
async def test_agent_configuration_is_overwritten(storage):
    await storage.save_agent_configuration(USER, {"tools": [], "agents": [], "prompts": [], "v": 1})
    await storage.save_agent_configuration(USER, {"tools": [], "agents": [], "prompts": [], "v": 2})

    saved = await storage.get_agent_configuration(USER)
    assert saved.config_data["v"] == 2
