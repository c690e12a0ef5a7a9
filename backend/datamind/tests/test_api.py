import pytest
from fastapi.testclient import TestClient

from datamind.agents.context import InMemorySessionStore
from datamind.api.routes import chat
from datamind.config import settings
from datamind.database.connection import DatabaseManager
from datamind.main import app
from datamind.services import container as container_module
from datamind.services.container import build_container

USER = settings.DEFAULT_USER_ID

CONNECTION = {
    "userId": USER,
    "name": "Primary",
    "account": "acme-xy123",
    "username": "analyst",
    "password": "secret",
    "database": "SALES",
    "schema": "PUBLIC",
    "warehouse": "COMPUTE_WH",
}

@pytest.fixture
def client(monkeypatch, snowflake, llm):
    # The app lifespan initialises the database inside the client's event loop
    services = build_container(
        db=DatabaseManager("sqlite+aiosqlite://"),
        snowflake=snowflake,
        llm=llm,
        store=InMemorySessionStore(),
    )
    monkeypatch.setattr(container_module, "_container", services)
    with TestClient(app) as test_client:
        yield test_client

def _receive_until(websocket, message_type):
    frames = []
    while True:
        frame = websocket.receive_json()
        frames.append(frame)
        if frame["type"] == message_type:
            return frames

def test_health_reports_llm_state(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["services"]["snowflake_connections"] == 0

def test_join_session(client):
    with client.websocket_connect("/ws") as websocket:
        websocket.send_json({"type": "join_session", "sessionId": "s-join"})
        assert websocket.receive_json() == {"type": "session_joined", "sessionId": "s-join"}
        assert "s-join" in chat.manager.active_sessions

    assert "s-join" not in chat.manager.active_sessions

def test_disconnect_releases_session_lock(client):
    contexts = container_module._container.contexts
    with client.websocket_connect("/ws") as websocket:
        websocket.send_json({"type": "chat_message", "sessionId": "s-lock", "content": "hello"})
        _receive_until(websocket, "agent_response")
        assert "s-lock" in contexts._locks

    assert "s-lock" not in contexts._locks

def test_bad_frames_get_error_and_socket_stays_open(client):
    with client.websocket_connect("/ws") as websocket:
        websocket.send_text("not json")
        error = websocket.receive_json()
        assert error["type"] == "error"
        assert error["message"] == "Invalid message format"

        websocket.send_json({"type": "dance", "sessionId": "s1"})
        assert websocket.receive_json()["type"] == "error"

        websocket.send_json({"type": "join_session", "sessionId": "s1"})
        assert websocket.receive_json()["type"] == "session_joined"

def test_chat_message_flow_with_sql(client):
    assert client.post("/api/snowflake/connections", json=CONNECTION).status_code == 201

    with client.websocket_connect("/ws") as websocket:
        websocket.send_json({
            "type": "chat_message",
            "sessionId": "s-sql",
            "content": "SELECT REGION, TOTAL FROM ORDERS",
            "agentType": "query",
        })
        frames = _receive_until(websocket, "visualization_created")

    assert [f["type"] for f in frames] == [
        "message_saved", "agent_typing", "agent_typing", "agent_response", "visualization_created",
    ]
    assert frames[0]["message"]["role"] == "user"
    assert frames[1]["isTyping"] is True
    assert frames[2]["isTyping"] is False

    reply = frames[3]["message"]
    assert reply["role"] == "assistant"
    assert reply["content"].startswith("Query executed successfully")
    assert reply["metadata"]["kind"] == "function_tool"
    assert reply["metadata"]["functionCall"] == "execute_sql"

    visualization = frames[4]["visualization"]
    assert visualization["messageId"] == reply["id"]
    assert visualization["chartType"] == "bar"
    assert visualization["sqlQuery"] == "SELECT REGION, TOTAL FROM ORDERS"

    sessions = client.get(f"/api/sessions/{USER}").json()
    assert [s["id"] for s in sessions] == ["s-sql"]
    assert sessions[0]["title"] == "SELECT REGION, TOTAL FROM ORDERS"

    messages = client.get("/api/sessions/s-sql/messages").json()
    assert [m["role"] for m in messages] == ["user", "assistant"]
    assert messages[1]["metadata"]["sql"] == "SELECT REGION, TOTAL FROM ORDERS"

    charts = client.get(f"/api/visualizations/{USER}").json()
    assert [c["id"] for c in charts] == [visualization["id"]]

def test_chat_without_llm_uses_fallback(client, llm):
    llm.fail = True
    with client.websocket_connect("/ws") as websocket:
        websocket.send_json({"type": "chat_message", "sessionId": "s-down", "content": "hello"})
        frames = _receive_until(websocket, "agent_response")

    assert frames[-1]["message"]["metadata"]["kind"] == "fallback"

def test_unknown_user_gets_error(client):
    with client.websocket_connect("/ws") as websocket:
        websocket.send_json({
            "type": "chat_message", "sessionId": "s-x", "content": "hi", "userId": "nobody",
        })
        error = websocket.receive_json()

    assert error == {"type": "error", "message": "Unknown user nobody", "details": None}

def test_agent_switch_updates_session(client):
    created = client.post("/api/sessions", json={"userId": USER, "title": "Models"}).json()

    with client.websocket_connect("/ws") as websocket:
        websocket.send_json({"type": "agent_switch", "sessionId": created["id"], "agentType": "yaml"})
        switched = websocket.receive_json()

    assert switched == {"type": "agent_switched", "sessionId": created["id"], "agentType": "ontology"}
    sessions = client.get(f"/api/sessions/{USER}").json()
    assert sessions[0]["agentType"] == "ontology"

def test_deleting_session_drops_live_socket_entry(client):
    with client.websocket_connect("/ws") as websocket:
        websocket.send_json({"type": "chat_message", "sessionId": "s-del", "content": "hello"})
        _receive_until(websocket, "agent_response")
        assert "s-del" in chat.manager.active_sessions

        response = client.delete("/api/sessions/s-del")
        assert response.json() == {"success": True}
        assert "s-del" not in chat.manager.active_sessions

    assert client.get("/api/sessions/s-del/messages").json() == []
    assert client.delete("/api/sessions/s-del").status_code == 404

def test_bulk_delete_requires_a_list(client):
    client.post("/api/sessions", json={"userId": USER, "title": "One"})

    response = client.request("DELETE", "/api/sessions", json={"sessionIds": "s1"})
    assert response.status_code == 400
    assert response.json()["message"] == "sessionIds must be a list"

    ids = [s["id"] for s in client.get(f"/api/sessions/{USER}").json()]
    response = client.request("DELETE", "/api/sessions", json={"sessionIds": ids})
    assert response.json() == {"success": True, "deleted": 1}

def test_connection_responses_hide_password(client):
    created = client.post("/api/snowflake/connections", json=CONNECTION).json()

    assert "password" not in created
    assert created["hasPassword"] is True
    assert created["isDefault"] is True
    assert created["schema"] == "PUBLIC"

    listed = client.get(f"/api/snowflake/connections/{USER}").json()
    assert all("password" not in c for c in listed)

    updated = client.put(f"/api/snowflake/connections/{created['id']}", json={"warehouse": "BIG_WH"}).json()
    assert updated["warehouse"] == "BIG_WH"
    assert "password" not in updated

def test_pin_and_unpin_through_api(client):
    client.post("/api/snowflake/connections", json=CONNECTION)
    with client.websocket_connect("/ws") as websocket:
        websocket.send_json({
            "type": "chat_message", "sessionId": "s-pin", "content": "SELECT REGION, TOTAL FROM ORDERS",
        })
        visualization = _receive_until(websocket, "visualization_created")[-1]["visualization"]

    pin = client.post("/api/pinned", json={"userId": USER, "visualizationId": visualization["id"]})
    assert pin.status_code == 201
    pinned = client.get(f"/api/pinned/{USER}").json()
    assert [p["visualization"]["id"] for p in pinned] == [visualization["id"]]
    assert pinned[0]["visualization"]["isPinned"] is True

    assert client.delete(f"/api/pinned/{USER}/{visualization['id']}").json() == {"success": True}
    assert client.get(f"/api/pinned/{USER}").json() == []

    missing = client.post("/api/pinned", json={"userId": USER, "visualizationId": "nope"})
    assert missing.status_code == 404

def test_agent_configuration_round_trip(client):
    document = client.get(f"/api/agent-config/{USER}").json()
    assert {a["type"] for a in document["agents"]} == {"query", "ontology", "dashboards", "general"}

    for tool in document["tools"]:
        if tool["name"] == "generate_summary":
            tool["enabled"] = False
    saved = client.put(f"/api/agent-config/{USER}", json=document).json()
    assert saved["lastSaved"] is not None

    reloaded = client.get(f"/api/agent-config/{USER}").json()
    disabled = {t["name"] for t in reloaded["tools"] if not t["enabled"]}
    assert disabled == {"generate_summary"}

def test_users(client):
    assert client.get(f"/api/users/{USER}").json()["username"] == settings.DEFAULT_USERNAME
    created = client.post("/api/users", json={"username": "ana", "password": "pw"})
    assert created.status_code == 201
    assert "password" not in created.json()
    assert client.post("/api/users", json={"username": "ana", "password": "pw"}).status_code == 409
    assert client.get("/api/users/missing").status_code == 404
