"""Tests for the REST API."""

import pytest
from fastapi.testclient import TestClient

from tests.conftest import TEST_API_KEY, TEST_PASSWORD, TEST_USER
from white_duck.config import Settings
from white_duck.server import create_app


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


# Login


def test_login_returns_token_and_user(client):
    response = client.post("/api/auth/login", json={"username": TEST_USER, "password": TEST_PASSWORD})

    assert response.status_code == 200
    data = response.json()
    assert data["token"]
    assert data["user"] == {"username": TEST_USER}


def test_login_missing_field(client):
    response = client.post("/api/auth/login", json={"username": TEST_USER})
    assert response.status_code == 400
    assert response.json() == {"error": "Username and password required"}


def test_login_wrong_password(client):
    response = client.post("/api/auth/login", json={"username": TEST_USER, "password": "nope"})
    assert response.status_code == 401
    assert response.json() == {"error": "Invalid credentials"}


def test_login_non_json_body(client):
    response = client.post("/api/auth/login", content=b"not json", headers={"Content-Type": "application/json"})
    assert response.status_code == 400
    assert "error" in response.json()


# Authorization


def test_me_with_bearer(client, bearer_headers):
    response = client.get("/api/auth/me", headers=bearer_headers)
    assert response.status_code == 200
    assert response.json() == {"user": {"username": TEST_USER}}


def test_me_with_api_key_has_no_user(client, api_headers):
    response = client.get("/api/auth/me", headers=api_headers)
    assert response.status_code == 200
    assert response.json() == {"user": None}


def test_missing_credentials_rejected(client):
    response = client.get("/api/schemas")

    assert response.status_code == 401
    assert response.json() == {"error": "Authentication required"}
    assert response.headers["www-authenticate"] == "Bearer"


def test_wrong_api_key_rejected_even_with_valid_bearer(client, token):
    response = client.get(
        "/api/schemas",
        headers={"X-API-Key": "wrong", "Authorization": f"Bearer {token}"},
    )
    assert response.status_code == 401
    assert response.json() == {"error": "Invalid API key"}


def test_correct_api_key_ignores_bad_bearer(client):
    response = client.get(
        "/api/schemas",
        headers={"X-API-Key": TEST_API_KEY, "Authorization": "Bearer not-a-token"},
    )
    assert response.status_code == 200


def test_invalid_bearer_rejected(client):
    response = client.get("/api/schemas", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401
    assert response.json() == {"error": "Invalid or expired token"}


def test_token_of_replaced_principal_rejected(client, app, bearer_headers):
    app.state.gate.credentials.set_principal("someone-else", "pw")
    response = client.get("/api/auth/me", headers=bearer_headers)
    assert response.status_code == 401


def test_auth_disabled_allows_anonymous(settings):
    settings.auth_enabled = False
    with TestClient(create_app(settings)) as anonymous:
        response = anonymous.post("/api/query", json={"sql": "SELECT 1 AS x"})
    assert response.status_code == 200


def test_api_key_info_does_not_leak_key(client, api_headers):
    response = client.get("/api/auth/api-key", headers=api_headers)
    assert response.json() == {"hasApiKey": True}
    assert TEST_API_KEY not in response.text


# Query


def test_query_json(client, api_headers):
    response = client.post("/api/query", json={"sql": "SELECT 1 AS x"}, headers=api_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["columns"] == [{"name": "x", "type": "number"}]
    assert data["data"] == [[1]]
    assert data["rowCount"] == 1
    assert data["executionTime"] > 0


def test_query_with_bearer(client, bearer_headers):
    response = client.post("/api/query", json={"sql": "SELECT 'duck' AS bird"}, headers=bearer_headers)
    assert response.status_code == 200
    assert response.json()["data"] == [["duck"]]


def test_query_missing_sql(client, api_headers):
    response = client.post("/api/query", json={}, headers=api_headers)
    assert response.status_code == 400
    assert response.json() == {"error": "SQL query is required"}


def test_query_engine_error_passes_message_through(client, api_headers):
    response = client.post("/api/query", json={"sql": "SELECT * FROM missing_table"}, headers=api_headers)

    assert response.status_code == 400
    message = response.json()["error"]
    assert "missing_table" in message


def test_query_zero_rows(client, api_headers):
    client.post("/api/query", json={"sql": "CREATE TABLE empty_t (a INTEGER)"}, headers=api_headers)
    response = client.post("/api/query", json={"sql": "SELECT * FROM empty_t"}, headers=api_headers)

    assert response.status_code == 200
    assert response.json()["data"] == []
    assert response.json()["rowCount"] == 0


def test_query_csv(client, api_headers):
    response = client.post(
        "/api/query",
        json={"sql": "SELECT 1 AS a, 'x,y' AS b UNION ALL SELECT 2, 'plain' ORDER BY a", "format": "csv"},
        headers=api_headers,
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "query_result.csv" in response.headers["content-disposition"]
    assert response.text == 'a,b\n1,"x,y"\n2,plain\n'


# Schemas and tables


def test_schemas(client, api_headers):
    response = client.get("/api/schemas", headers=api_headers)
    assert response.status_code == 200
    assert "memory.main" in response.json()["schemas"]


def test_tables(client, api_headers):
    client.post("/api/query", json={"sql": "CREATE TABLE ducks (id INTEGER, name VARCHAR NOT NULL)"}, headers=api_headers)
    response = client.get("/api/tables/memory.main", headers=api_headers)

    assert response.status_code == 200
    assert response.json()["tables"] == [
        {
            "name": "ducks",
            "columns": [
                {"name": "id", "type": "INTEGER", "nullable": True},
                {"name": "name", "type": "VARCHAR", "nullable": False},
            ],
        }
    ]


# Saved queries


def test_saved_query_lifecycle(client, api_headers):
    created = client.post(
        "/api/queries", json={"name": "one", "sql": "SELECT 1", "tags": ["demo"]}, headers=api_headers
    )
    assert created.status_code == 200
    query = created.json()["query"]
    assert created.json()["success"] is True
    assert query["tags"] == ["demo"]

    listed = client.get("/api/queries", headers=api_headers).json()["queries"]
    assert [q["id"] for q in listed] == [query["id"]]

    fetched = client.get(f"/api/queries/{query['id']}", headers=api_headers)
    assert fetched.json() == {"query": query}

    deleted = client.delete(f"/api/queries/{query['id']}", headers=api_headers)
    assert deleted.json() == {"success": True}

    missing = client.get(f"/api/queries/{query['id']}", headers=api_headers)
    assert missing.status_code == 404
    assert missing.json() == {"error": "Query not found"}


def test_saved_query_requires_name_and_sql(client, api_headers):
    response = client.post("/api/queries", json={"name": "no sql"}, headers=api_headers)
    assert response.status_code == 400


def test_delete_unknown_saved_query(client, api_headers):
    response = client.delete("/api/queries/does-not-exist", headers=api_headers)
    assert response.status_code == 404


# Unexpected errors


def test_unexpected_error_is_generic(settings, api_headers):
    app = create_app(settings)

    def explode():
        raise RuntimeError("secret internal detail")

    app.state.engine.list_schemas = explode
    with TestClient(app, raise_server_exceptions=False) as failing:
        response = failing.get("/api/schemas", headers=api_headers)

    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error"}
    assert "secret" not in response.text


def test_production_requires_cors_origins():
    with pytest.raises(ValueError):
        create_app(Settings(duckdb_mode="memory", environment="production", log_dir=""))
