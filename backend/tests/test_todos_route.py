from unittest.mock import MagicMock

from botocore.exceptions import ClientError

from todo_api.config import settings
from todo_api.models.schemas import UsagePlan

from conftest import API_KEY, DISABLED_KEY, ORIGIN

AUTH = {"x-api-key": API_KEY}


def test_end_to_end_lifecycle(client):
    response = client.post("/todos", json={"todo": "buy milk"}, headers=AUTH)
    assert response.status_code == 201
    created = response.json()
    assert created["todo"] == "buy milk"
    assert created["completed"] is False
    assert created["id"]
    assert created["createdAt"]

    response = client.get(f"/todos/{created['id']}", headers=AUTH)
    assert response.status_code == 200
    assert response.json() == created

    response = client.put(f"/todos/{created['id']}", json={"todo": "buy milk", "completed": True}, headers=AUTH)
    assert response.status_code == 200
    assert response.json()["completed"] is True
    assert response.json()["createdAt"] == created["createdAt"]

    response = client.delete(f"/todos/{created['id']}", headers=AUTH)
    assert response.status_code == 204
    assert response.content == b""

    response = client.get(f"/todos/{created['id']}", headers=AUTH)
    assert response.status_code == 404


def test_list_returns_all_items(client):
    ids = {client.post("/todos", json={"todo": text}, headers=AUTH).json()["id"] for text in ("a", "b", "c")}

    response = client.get("/todos", headers=AUTH)
    assert response.status_code == 200
    assert {item["id"] for item in response.json()} == ids


def test_second_delete_is_404(client):
    item_id = client.post("/todos", json={"todo": "once"}, headers=AUTH).json()["id"]

    assert client.delete(f"/todos/{item_id}", headers=AUTH).status_code == 204
    assert client.delete(f"/todos/{item_id}", headers=AUTH).status_code == 404


def test_update_missing_item_is_404(client):
    response = client.put("/todos/nope", json={"todo": "x", "completed": False}, headers=AUTH)
    assert response.status_code == 404


def test_invalid_bodies_are_400(client):
    assert client.post("/todos", json={}, headers=AUTH).status_code == 400
    assert client.post("/todos", json={"todo": ""}, headers=AUTH).status_code == 400

    item_id = client.post("/todos", json={"todo": "x"}, headers=AUTH).json()["id"]
    # Update parcial: se rechaza, no se rellena con valores por defecto.
    response = client.put(f"/todos/{item_id}", json={"completed": True}, headers=AUTH)
    assert response.status_code == 400
    assert response.json() == {"detail": "Invalid request body"}
    response = client.put(f"/todos/{item_id}", json={"todo": "x"}, headers=AUTH)
    assert response.status_code == 400


def test_missing_invalid_or_disabled_key_is_403(client):
    assert client.get("/todos").status_code == 403
    assert client.get("/todos", headers={"x-api-key": "wrong"}).status_code == 403
    assert client.get("/todos", headers={"x-api-key": DISABLED_KEY}).status_code == 403
    assert client.post("/todos", json={}, headers={"x-api-key": "wrong"}).status_code == 403


def test_unmatched_routes_are_404(client):
    assert client.get("/nothing-here", headers=AUTH).status_code == 404
    assert client.patch("/todos/abc", json={}, headers=AUTH).status_code == 404


def test_token_bucket_returns_429(make_client):
    client = make_client(plan=UsagePlan(rate=1, burst=2, quota_limit=100))

    assert client.get("/todos", headers=AUTH).status_code == 200
    assert client.get("/todos", headers=AUTH).status_code == 200
    response = client.get("/todos", headers=AUTH)
    assert response.status_code == 429
    assert response.headers["retry-after"] == "1"


def test_quota_returns_429(make_client):
    client = make_client(plan=UsagePlan(rate=100, burst=100, quota_limit=3))

    for _ in range(3):
        assert client.get("/todos", headers=AUTH).status_code == 200
    assert client.get("/todos", headers=AUTH).status_code == 429


def test_failed_auth_does_not_consume_tokens(make_client):
    client = make_client(plan=UsagePlan(rate=1, burst=1, quota_limit=100))

    for _ in range(5):
        assert client.get("/todos", headers={"x-api-key": "wrong"}).status_code == 403
    assert client.get("/todos", headers=AUTH).status_code == 200


def test_attack_in_path_is_blocked_before_the_store(client, store):
    response = client.get("/todos/1%27%20OR%201%3D1", headers=AUTH)
    assert response.status_code == 403
    assert response.json() == {"detail": "Forbidden"}

    response = client.post("/todos", json={"todo": "x'; DROP TABLE todos;--"}, headers=AUTH)
    assert response.status_code == 403
    assert store.list() == []


def test_filter_runs_before_auth_and_rate_limit(make_client, store):
    client = make_client(plan=UsagePlan(rate=1, burst=1, quota_limit=100))

    # Bloqueada por el filtro aunque no tenga key.
    assert client.get("/todos?file=../../etc/passwd").status_code == 403
    # Con key valida tampoco consume la unica ficha del plan.
    assert client.get("/todos?file=../../etc/passwd", headers=AUTH).status_code == 403
    assert client.post("/todos", json={"todo": "fine"}, headers=AUTH).status_code == 201


def test_cors_preflight_skips_pipeline(make_client):
    client = make_client(plan=UsagePlan(rate=1, burst=1, quota_limit=100))
    preflight = {
        "Origin": ORIGIN,
        "Access-Control-Request-Method": "POST",
        "Access-Control-Request-Headers": "content-type,x-api-key",
    }

    for _ in range(3):
        response = client.options("/todos", headers=preflight)
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == ORIGIN
        assert "POST" in response.headers["access-control-allow-methods"]
        assert "x-api-key" in response.headers["access-control-allow-headers"].lower()

    # El preflight no consumio la unica ficha.
    assert client.get("/todos", headers=AUTH).status_code == 200


def test_storage_failure_is_opaque_500(client, store):
    store.table = MagicMock()
    store.table.scan.side_effect = ClientError(
        {"Error": {"Code": "ResourceNotFoundException", "Message": "table todo-items-test missing"}}, "Scan"
    )

    response = client.get("/todos", headers=AUTH)
    assert response.status_code == 500
    assert response.json() == {"detail": "Internal server error"}


def test_health_needs_no_key(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_malformed_body_without_key_is_403(client):
    response = client.post("/todos", content=b"{not json", headers={"content-type": "application/json"})
    assert response.status_code == 403

    response = client.put("/todos/abc", content=b"{not json", headers={"content-type": "application/json"})
    assert response.status_code == 403


def test_malformed_body_with_empty_bucket_is_429(make_client):
    client = make_client(plan=UsagePlan(rate=1, burst=1, quota_limit=100))
    assert client.get("/todos", headers=AUTH).status_code == 200

    response = client.post("/todos", content=b"{not json", headers={**AUTH, "content-type": "application/json"})
    assert response.status_code == 429


def test_malformed_body_with_valid_key_is_400(client, store):
    response = client.post("/todos", content=b"{not json", headers={**AUTH, "content-type": "application/json"})
    assert response.status_code == 400
    assert response.json() == {"detail": "Invalid request body"}
    assert store.list() == []


def test_preflight_from_unlisted_origin_gets_canned_200(make_client):
    client = make_client(plan=UsagePlan(rate=1, burst=1, quota_limit=100))

    response = client.options("/todos", headers={
        "Origin": "https://other.example",
        "Access-Control-Request-Method": "PATCH",
        "Access-Control-Request-Headers": "x-custom",
    })
    assert response.status_code == 200
    # Se anuncia el origen configurado, no el del atacante.
    assert response.headers["access-control-allow-origin"] == ORIGIN
    assert "x-api-key" in response.headers["access-control-allow-headers"].lower()

    assert client.get("/todos", headers=AUTH).status_code == 200


def test_bare_options_gets_canned_200(make_client):
    client = make_client(plan=UsagePlan(rate=1, burst=1, quota_limit=100))

    for path in ("/todos", "/todos/abc", "/nothing-here"):
        response = client.options(path)
        assert response.status_code == 200
        assert "GET" in response.headers["access-control-allow-methods"]

    # Ningun OPTIONS consumio la unica ficha.
    assert client.get("/todos", headers=AUTH).status_code == 200


def test_oversized_body_is_413_before_auth(client, store):
    huge = b'{"todo": "' + b"a" * (settings.MAX_BODY_BYTES + 1) + b'"}'

    response = client.post("/todos", content=huge, headers={"content-type": "application/json"})
    assert response.status_code == 413
    assert response.json() == {"detail": "Request body too large"}

    response = client.post("/todos", content=huge, headers={**AUTH, "content-type": "application/json"})
    assert response.status_code == 413
    assert store.list() == []
