import uuid

from fastapi.testclient import TestClient

from orderflow.main import app


client = TestClient(app)


def test_conversation_lifecycle():
    conversation_id = f"lifecycle-{uuid.uuid4().hex[:8]}"
    chat = client.post("/chat", json={"conversation_id": conversation_id, "content": "hi"})
    assert chat.status_code == 200

    assert conversation_id in client.get("/conversations").json()

    detail = client.get(f"/conversations/{conversation_id}")
    assert detail.status_code == 200
    payload = detail.json()
    assert payload["state"] == "browsing_menu"
    assert payload["metadata"]["has_greeted"] is True
    assert [turn["role"] for turn in payload["history"]] == ["user", "assistant"]
    assert payload["cart"] == []

    deleted = client.delete(f"/conversations/{conversation_id}")
    assert deleted.status_code == 200
    assert deleted.json()["status"] == "deleted"
    assert client.get(f"/conversations/{conversation_id}").status_code == 404


def test_unknown_conversation_returns_404():
    response = client.get("/conversations/does-not-exist")

    assert response.status_code == 404


def test_health_and_ready():
    assert client.get("/health").json() == {"status": "ok"}

    ready = client.get("/ready").json()
    assert ready["status"] == "degraded"
    assert ready["components"]["conversations_db"]["ok"] is True
    assert ready["components"]["restaurant_profile"]["products"] > 0
    assert ready["components"]["llm"]["ok"] is False
