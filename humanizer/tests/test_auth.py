from datetime import datetime, timedelta, timezone

import jwt

from humanizer.core.config import settings

SECRET = "test-secret-that-is-at-least-32-bytes-long"


def _token(secret=SECRET, **claims):
    payload = {"sub": "jwt-user", "exp": datetime.now(timezone.utc) + timedelta(minutes=5)}
    payload.update(claims)
    return jwt.encode(payload, secret, algorithm="HS256")


def test_missing_credentials_is_401(client):
    resp = client.get("/credits")
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "unauthorized"


def test_bearer_token_resolves_user(client, monkeypatch):
    monkeypatch.setattr(settings, "JWT_SECRET", SECRET)
    resp = client.get("/credits", headers={"Authorization": f"Bearer {_token()}"})
    assert resp.status_code == 200
    assert resp.json()["userId"] == "jwt-user"


def test_bad_signature_is_401(client, monkeypatch):
    monkeypatch.setattr(settings, "JWT_SECRET", SECRET)
    resp = client.get("/credits", headers={"Authorization": f"Bearer {_token(secret='another-secret-that-is-32-bytes-long!!')}"})
    assert resp.status_code == 401


def test_expired_token_is_401(client, monkeypatch):
    monkeypatch.setattr(settings, "JWT_SECRET", SECRET)
    expired = _token(exp=datetime.now(timezone.utc) - timedelta(minutes=1))
    resp = client.get("/credits", headers={"Authorization": f"Bearer {expired}"})
    assert resp.status_code == 401
    assert resp.json()["message"] == "Token expired"


def test_bearer_rejected_without_secret(client, monkeypatch):
    monkeypatch.setattr(settings, "JWT_SECRET", None)
    resp = client.get("/credits", headers={"Authorization": f"Bearer {_token()}"})
    assert resp.status_code == 401


def test_user_id_header_disabled_in_production(client, monkeypatch):
    monkeypatch.setattr(settings, "ENV", "production")
    resp = client.get("/credits", headers={"X-User-Id": "sneaky"})
    assert resp.status_code == 401


def test_transform_requires_credentials(client):
    resp = client.post("/transform", json={"text": "hi"})
    assert resp.status_code == 401
