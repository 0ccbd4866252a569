import uuid

from fastapi.testclient import TestClient

from orderflow.main import app


client = TestClient(app)


def test_list_tools_exposes_every_capability():
    response = client.get("/tools")

    assert response.status_code == 200
    tools = {tool["name"]: tool for tool in response.json()}
    assert tools["add_item_to_order"]["capability"] == "SALES"
    assert tools["add_item_to_order"]["mutates_cart"] is True
    assert "product_name" in tools["add_item_to_order"]["parameters"]["properties"]
    assert tools["create_order"]["capability"] == "CHECKOUT"
    assert tools["send_menu_link"]["capability"] == "MENU"
    assert tools["set_delivery_type"]["capability"] == "LOGISTICS"


def test_add_item_updates_conversation_cart():
    conversation_id = f"tools-{uuid.uuid4().hex[:8]}"

    response = client.post(
        "/tools/add_item_to_order",
        json={"conversation_id": conversation_id, "arguments": {"product_name": "cola", "quantity": 3}},
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["success"] is True
    assert payload["data"]["product_name"] == "Cola"
    assert payload["data"]["quantity"] == 3

    conversation = client.get(f"/conversations/{conversation_id}").json()
    assert conversation["items_count"] == 3
    assert conversation["cart_total"] == 7.5


def test_unknown_tool_returns_404():
    response = client.post("/tools/teleport", json={"conversation_id": "tools-x", "arguments": {}})

    assert response.status_code == 404


def test_invalid_arguments_return_400():
    response = client.post(
        "/tools/add_item_to_order",
        json={"conversation_id": "tools-bad", "arguments": {"product_name": "Cola", "quantity": 0}},
    )

    assert response.status_code == 400


def test_missing_conversation_id_returns_400():
    response = client.post("/tools/get_cart_summary", json={"arguments": {}})

    assert response.status_code == 400


def test_tool_called_from_wrong_capability_is_refused():
    response = client.post(
        "/tools/add_item_to_order",
        json={
            "conversation_id": "tools-guard",
            "capability": "menu",
            "arguments": {"product_name": "Cola"},
        },
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["success"] is False
    assert payload["error_code"] == "TOOL_NOT_ALLOWED"
