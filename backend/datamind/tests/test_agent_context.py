import asyncio

import pytest

from datamind.agents.context import (
    AgentContext,
    AgentContextManager,
    InMemorySessionStore,
    SqlSessionStore,
)

@pytest.mark.asyncio
async def test_history_is_capped_at_fifty_entries():
    manager = AgentContextManager(InMemorySessionStore())
    context = await manager.get_context("s1", "user_1")

    for i in range(60):
        await manager.add_to_history(context, "user", f"message {i}")

    assert len(context.history) == 50
    assert context.history[0].content == "message 10"
    assert context.history[-1].content == "message 59"

@pytest.mark.asyncio
async def test_get_context_returns_same_context_and_swallows_connect_failure():
    attempts = []

    async def failing_connector(context):
        attempts.append(context.session_id)
        raise RuntimeError("warehouse unreachable")

    manager = AgentContextManager(InMemorySessionStore(), connector=failing_connector)
    first = await manager.get_context("s1", "user_1")
    second = await manager.get_context("s1", "user_1")

    assert first is second
    assert first.connection_id is None
    assert attempts == ["s1"]

@pytest.mark.asyncio
async def test_update_context_merges_and_rejects_unknown_fields():
    manager = AgentContextManager(InMemorySessionStore())
    context = await manager.get_context("s1", "user_1")

    await manager.update_context(context, current_database="SALES", tables=["ORDERS"])
    assert context.current_database == "SALES"
    assert context.tables == ["ORDERS"]

    with pytest.raises(AttributeError):
        await manager.update_context(context, warehouse="X")

def test_context_summary():
    context = AgentContext(session_id="s1", user_id="user_1")
    assert AgentContextManager.get_context_summary(context) == "No active context"

    context.connection_id = "c1"
    context.current_database = "SALES"
    context.current_schema = "PUBLIC"
    context.tables = ["A", "B"]
    context.last_query_results = [{"x": 1}]
    context.yaml_content = "name: m"
    summary = AgentContextManager.get_context_summary(context)
    assert summary == (
        "Connected to Snowflake | Database: SALES | Schema: PUBLIC | Tables loaded: 2 | "
        "Last query returned 1 rows | YAML dictionary loaded"
    )

@pytest.mark.asyncio
async def test_session_lock_serialises_work_on_one_session():
    manager = AgentContextManager(InMemorySessionStore())
    events = []

    async def turn(name):
        async with manager.session_lock("s1"):
            events.append(f"{name}-start")
            await asyncio.sleep(0.01)
            events.append(f"{name}-end")

    await asyncio.gather(turn("a"), turn("b"))

    assert events in (["a-start", "a-end", "b-start", "b-end"], ["b-start", "b-end", "a-start", "a-end"])
    assert manager.session_lock("s1") is manager.session_lock("s1")
    assert manager.session_lock("s1") is not manager.session_lock("s2")

@pytest.mark.asyncio
async def test_release_lock_drops_idle_locks_only():
    manager = AgentContextManager(InMemorySessionStore())
    idle = manager.session_lock("idle")
    busy = manager.session_lock("busy")

    async with busy:
        manager.release_lock("idle")
        manager.release_lock("busy")
        assert manager.session_lock("busy") is busy

    assert manager.session_lock("idle") is not idle
    manager.release_lock("never-seen")

@pytest.mark.asyncio
async def test_sql_store_persists_context_without_pending_chart(db):
    store = SqlSessionStore(db)
    manager = AgentContextManager(store)
    context = await manager.get_context("s1", "user_1")
    await manager.add_to_history(context, "user", "show tables")
    await manager.update_context(
        context,
        current_database="SALES",
        last_query_results=[{"REGION": "North", "TOTAL": 10}],
        pending_visualization={"title": "x"},
    )

    restored = await store.get("s1")
    assert restored is not context
    assert restored.current_database == "SALES"
    assert restored.history[0].content == "show tables"
    assert restored.last_query_results == [{"REGION": "North", "TOTAL": 10}]
    assert restored.pending_visualization is None

    await manager.clear_context("s1")
    assert await store.get("s1") is None
