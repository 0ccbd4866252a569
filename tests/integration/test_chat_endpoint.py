import uuid

from fastapi.testclient import TestClient

from orderflow.core.errors import TurnInProgressError
from orderflow.main import app


client = TestClient(app)


def new_conversation() -> str:
    return f"conv-{uuid.uuid4().hex[:8]}"


def send(conversation_id: str, content: str) -> dict:
    response = client.post("/chat", json={"conversation_id": conversation_id, "content": content})
    assert response.status_code == 200
    return response.json()


def test_greeting_shows_menu():
    payload = send(new_conversation(), "hi")

    assert payload["previous_state"] == "greeting"
    assert payload["state"] == "browsing_menu"
    assert [intent["type"] for intent in payload["intents"]] == ["GREETING"]
    assert payload["capabilities"] == ["MENU"]
    assert payload["tool_success"] is True
    assert "cornergrill.example.com/menu" in payload["message"]

    metrics_response = client.get("/metrics")
    assert metrics_response.status_code == 200
    assert metrics_response.json()["total_turns"] >= 1


def test_order_and_pickup_in_one_message():
    conversation_id = new_conversation()
    send(conversation_id, "hi")

    payload = send(conversation_id, "two burgers and I'll pick up")

    assert payload["state"] == "building_order"
    assert [intent["type"] for intent in payload["intents"]] == ["ORDER", "LOGISTICS"]
    assert "Classic Burger" in payload["message"]
    assert payload["summary"] == "Classic Burger added | delivery: pickup"

    conversation = client.get(f"/conversations/{conversation_id}").json()
    assert conversation["items_count"] == 2
    assert conversation["cart_total"] == 17.0
    assert conversation["metadata"]["delivery_type"] == "pickup"
    assert conversation["metadata"]["last_capability"] == "LOGISTICS"


def test_checkout_with_empty_cart_asks_for_items():
    conversation_id = new_conversation()
    send(conversation_id, "hi")

    payload = send(conversation_id, "that's all, checkout please")

    assert payload["capabilities"] == ["SALES"]
    assert payload["state"] == "browsing_menu"
    assert "cart is empty" in payload["message"]


def test_full_order_reaches_order_placed_and_hands_off():
    conversation_id = new_conversation()
    send(conversation_id, "hi")
    send(conversation_id, "two burgers and I'll pick up")
    send(conversation_id, "I'll pay with cash")

    confirming = send(conversation_id, "that's all")
    assert confirming["state"] == "confirming_order"
    assert "confirm" in confirming["message"].lower()

    placed = send(conversation_id, "yes")
    assert placed["state"] == "order_placed"
    assert "is confirmed" in placed["message"]

    after = send(conversation_id, "can I add a cola?")
    assert after["state"] == "order_placed"
    assert after["previous_state"] == "order_placed"
    assert "team" in after["message"]


def test_chat_missing_content_returns_400():
    response = client.post("/chat", json={"conversation_id": "conv-err"})

    assert response.status_code == 400


def test_concurrent_turn_returns_409(monkeypatch):
    from orderflow import main as orderflow_main

    async def busy(inbound):
        raise TurnInProgressError(inbound.conversation_id, retry_after=5)

    monkeypatch.setattr(orderflow_main.orchestrator, "handle_turn", busy)

    response = client.post("/chat", json={"conversation_id": "conv-busy", "content": "hi"})

    assert response.status_code == 409
    assert response.headers["Retry-After"] == "5"
    assert response.json()["error"] == "turn_in_progress"
