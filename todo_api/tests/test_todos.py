"""Tests for the todo endpoints behind the session guard."""
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import delete

from todo_api import config
from todo_api.database import SessionLocal, init_db
from todo_api.main import app
from todo_api.models import Todo
from todo_api.session import mint_session_token
from todo_auth.claims import IdentityClaims

USER = IdentityClaims(sub="user-1", email="ada@example.com", name="Ada Lovelace")


def _session_cookie(claims=USER, **kwargs) -> dict:
    token = mint_session_token(claims, secret=config.SESSION_SECRET, issuer=config.SESSION_ISSUER, **kwargs)
    return {"Cookie": f"{config.SESSION_COOKIE}={token}"}


@pytest.fixture
def client():
    init_db()
    with SessionLocal() as db:
        db.execute(delete(Todo))
        db.commit()
    return TestClient(app)


@pytest.fixture
def auth():
    return _session_cookie()


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "service": "todo_api", "auth_mode": "session"}


def test_list_without_credential(client):
    r = client.get("/api/todos")
    assert r.status_code == 401
    assert r.json() == {"error": "unauthorized"}


def test_create_without_credential_does_not_touch_store(client):
    r = client.post("/api/todos", json={"text": "Sneaky"})
    assert r.status_code == 401
    with SessionLocal() as db:
        assert db.query(Todo).count() == 0


def test_forged_session_cookie(client):
    forged = mint_session_token(USER, secret="not-the-server-secret-0123456789abcdef", issuer=config.SESSION_ISSUER)
    r = client.get("/api/todos", headers={"Cookie": f"session={forged}"})
    assert r.status_code == 401


def test_expired_session_cookie(client):
    past = datetime.now(timezone.utc) - timedelta(days=31)
    r = client.get("/api/todos", headers=_session_cookie(now=past, lifetime=timedelta(days=30)))
    assert r.status_code == 401


def test_create_todo(client, auth):
    r = client.post("/api/todos", json={"text": "  Buy milk  "}, headers=auth)
    assert r.status_code == 201
    data = r.json()
    assert data["text"] == "Buy milk"
    assert data["completed"] is False
    assert isinstance(data["id"], int)
    assert data["created_at"]


def test_create_todo_blank_text(client, auth):
    r = client.post("/api/todos", json={"text": "   "}, headers=auth)
    assert r.status_code == 400
    assert r.json() == {"error": "text is required"}


def test_create_todo_missing_text(client, auth):
    r = client.post("/api/todos", json={}, headers=auth)
    assert r.status_code == 400
    assert r.json() == {"error": "text is required"}


def test_create_todo_non_object_body(client, auth):
    r = client.post("/api/todos", json=["Buy milk"], headers=auth)
    assert r.status_code == 400


def test_list_newest_first(client, auth):
    for text in ("first", "second", "third"):
        assert client.post("/api/todos", json={"text": text}, headers=auth).status_code == 201
    r = client.get("/api/todos", headers=auth)
    assert r.status_code == 200
    assert [t["text"] for t in r.json()] == ["third", "second", "first"]


def test_list_is_shared_between_users(client, auth):
    client.post("/api/todos", json={"text": "Ada's item"}, headers=auth)
    other = _session_cookie(IdentityClaims(sub="user-2"))
    r = client.get("/api/todos", headers=other)
    assert [t["text"] for t in r.json()] == ["Ada's item"]


def test_update_todo(client, auth):
    todo_id = client.post("/api/todos", json={"text": "Buy milk"}, headers=auth).json()["id"]
    r = client.patch(f"/api/todos/{todo_id}", json={"completed": True}, headers=auth)
    assert r.status_code == 200
    assert r.json()["completed"] is True
    assert r.json()["text"] == "Buy milk"

    r = client.patch(f"/api/todos/{todo_id}", json={"text": " Buy oat milk "}, headers=auth)
    assert r.json()["text"] == "Buy oat milk"
    assert r.json()["completed"] is True


def test_update_todo_rejects_empty_patch(client, auth):
    todo_id = client.post("/api/todos", json={"text": "Buy milk"}, headers=auth).json()["id"]
    r = client.patch(f"/api/todos/{todo_id}", json={}, headers=auth)
    assert r.status_code == 400
    assert r.json() == {"error": "nothing to update"}


def test_update_todo_rejects_non_boolean(client, auth):
    todo_id = client.post("/api/todos", json={"text": "Buy milk"}, headers=auth).json()["id"]
    r = client.patch(f"/api/todos/{todo_id}", json={"completed": "yes"}, headers=auth)
    assert r.status_code == 400


def test_update_unknown_todo(client, auth):
    r = client.patch("/api/todos/999", json={"completed": True}, headers=auth)
    assert r.status_code == 404
    assert r.json() == {"error": "not found"}


def test_delete_todo(client, auth):
    todo_id = client.post("/api/todos", json={"text": "Buy milk"}, headers=auth).json()["id"]
    r = client.delete(f"/api/todos/{todo_id}", headers=auth)
    assert r.status_code == 200
    assert r.json() == {"ok": True}
    assert client.get("/api/todos", headers=auth).json() == []


def test_delete_unknown_todo(client, auth):
    r = client.delete("/api/todos/999", headers=auth)
    assert r.status_code == 404


def test_non_integer_id(client, auth):
    r = client.delete("/api/todos/abc", headers=auth)
    assert r.status_code == 400
    assert r.json() == {"error": "invalid request"}
