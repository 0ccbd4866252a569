from fastapi.testclient import TestClient

from orderflow.main import app


client = TestClient(app)


def test_openapi_lists_expected_paths():
    response = client.get("/openapi.json")
    assert response.status_code == 200

    paths = response.json()["paths"]
    expected_paths = [
        "/chat",
        "/tools",
        "/tools/{tool_name}",
        "/conversations",
        "/conversations/{conversation_id}",
        "/health",
        "/ready",
        "/metrics",
    ]
    for path in expected_paths:
        assert path in paths, f"Missing path {path} in OpenAPI schema"

    assert "post" in paths["/chat"]
    assert "delete" in paths["/conversations/{conversation_id}"]
