"""
Tests for the REST API.
"""

import pytest
from fastapi.testclient import TestClient

from config.settings import ConfigManager
from interface.schemaport_server import create_app

from conftest import blog_schema

pytestmark = pytest.mark.api


@pytest.fixture
def client():
    return TestClient(create_app())


def test_health_check(client):
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert "version" in data
    assert data["components"]["targets"] == 11


def test_liveness(client):
    response = client.get("/health/live")
    assert response.status_code == 200
    assert response.json()["status"] == "alive"


def test_metrics(client):
    client.get("/health/live")
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "schemaport_requests_total" in response.text


def test_dialects(client):
    data = client.get("/api/v1/dialects").json()
    assert "sqlserver" in data["dialects"]
    assert "mongodb" in data["dialects"]
    assert "prisma" in data["targets"]


def test_parse(client, users_script):
    response = client.post("/api/v1/parse", json={"script": users_script, "dialect": "sqlserver"})
    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert [e["name"] for e in data["ir"]["entities"]] == ["Users"]
    assert data["skipped"] == []


def test_parse_reports_skipped_statements(client):
    script = "CREATE TABLE good (id INT);\nCREATE TABLE bad id INT;"
    data = client.post("/api/v1/parse", json={"script": script, "dialect": "postgresql"}).json()
    assert data["skipped"] == ["Unsupported CREATE TABLE form for bad near 'id'"]


def test_convert(client, users_script):
    response = client.post("/api/v1/convert", json={
        "script": users_script,
        "source": "sqlserver",
        "target": "supabase",
        "options": {"withRLS": True},
    })
    assert response.status_code == 200
    data = response.json()
    assert data["target"] == "supabase"
    assert 'CREATE TABLE "Users"' in data["output"]
    assert "ENABLE ROW LEVEL SECURITY" in data["output"]


def test_unknown_dialect(client):
    response = client.post("/api/v1/parse", json={"script": "CREATE TABLE t (id INT)", "dialect": "db2"})
    assert response.status_code == 400
    data = response.json()
    assert data == {
        "success": False,
        "error": data["error"],
        "code": "UNSUPPORTED_DIALECT",
    }
    assert "db2" in data["error"]


def test_bad_option(client, users_script):
    response = client.post("/api/v1/convert", json={
        "script": users_script, "source": "sqlserver", "target": "mysql", "options": {"withRLS": "yes"},
    })
    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"


def test_no_tables(client):
    response = client.post("/api/v1/convert", json={
        "script": "SELECT 1;", "source": "postgresql", "target": "mysql",
    })
    assert response.status_code == 422
    assert response.json()["code"] == "SYNTAX_ERROR"


def test_missing_field(client):
    response = client.post("/api/v1/convert", json={"script": "CREATE TABLE t (id INT)"})
    assert response.status_code == 422


def test_diff(client):
    new = blog_schema()
    new.get_entity('posts').get_attribute('title').length = 100

    response = client.post("/api/v1/diff", json={"old": blog_schema().to_dict(), "new": new.to_dict()})

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert 'ALTER COLUMN "title" TYPE VARCHAR(100)' in data["sql"]
    assert data["summary"] == ["Tables to modify: posts", "  posts: modify column title (type)"]
    assert [w["kind"] for w in data["warnings"]] == ["type_narrowing"]
    assert data["report"]["counts"]["columns_modified"] == 1


def test_diff_with_inconsistent_schema(client):
    broken = blog_schema()
    broken.entities.remove(broken.get_entity('comments'))

    response = client.post("/api/v1/diff", json={"old": blog_schema().to_dict(), "new": broken.to_dict()})

    assert response.status_code == 409
    data = response.json()
    assert data["code"] == "DIFF_ERROR"
    assert data["error"] == "Invalid new schema: Relation source entity comments does not exist"


def test_diff_with_malformed_document(client):
    response = client.post("/api/v1/diff", json={"old": {"entities": "nope"}, "new": {}})
    assert response.status_code == 400


def test_script_size_limit(monkeypatch, users_script):
    monkeypatch.setenv('SCHEMAPORT_MAX_SCRIPT_BYTES', '16')
    ConfigManager.reset()
    client = TestClient(create_app())

    response = client.post("/api/v1/parse", json={"script": users_script, "dialect": "sqlserver"})

    assert response.status_code == 413
    assert response.json()["error"].endswith("the limit is 16 bytes")
