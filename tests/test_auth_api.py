"""
tests/test_auth_api.py -- Integration tests for the JSON auth endpoints.

Routes: POST /api/login, POST /api/logout, GET /api/user, GET /api/dashboard.

Covers:
  - The end-to-end scenario: login -> /api/user -> logout -> /api/user is 401
  - Error envelope and status for bad credentials, validation and missing auth
  - Identifier/secret aliases and XHR detection on /login
  - Rate limiting of login and the dashboard
  - Passwords are compared untrimmed; emails are trimmed
  - 503 (never 422) when the credential store is down
"""

from __future__ import annotations

import pytest
from sqlalchemy.exc import OperationalError

from auth.models import User
from auth.tokens import hash_password


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def test_login_logout_scenario(api_client) -> None:
    client = api_client.client
    resp = client.post("/api/login", json={"email": "test@example.com", "password": "password"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == "Login successful"
    assert body["user"] == {
        "id": api_client.user_ids["test@example.com"],
        "name": "Test User",
        "email": "test@example.com",
        "role": "owner",
        "role_display": "Owner",
        "role_color": "green",
    }
    assert resp.headers["cache-control"] == "no-store"
    token = body["token"]

    me = client.get("/api/user", headers=_auth(token))
    assert me.status_code == 200
    assert me.json() == body["user"]

    out = client.post("/api/logout", headers=_auth(token))
    assert out.status_code == 200
    assert out.json() == {"message": "Logout successful"}

    again = client.get("/api/user", headers=_auth(token))
    assert again.status_code == 401
    assert again.json()["error"]["code"] == "unauthenticated"
    assert again.headers["www-authenticate"] == "Bearer"


def test_wrong_password_and_unknown_email_look_the_same(api_client) -> None:
    client = api_client.client
    wrong = client.post("/api/login", json={"email": "test@example.com", "password": "nope"})
    unknown = client.post("/api/login", json={"email": "ghost@example.com", "password": "password"})
    assert wrong.status_code == unknown.status_code == 422
    assert wrong.json() == unknown.json()
    assert wrong.json()["error"]["code"] == "invalid_credentials"


def test_missing_fields_is_validation_error(api_client) -> None:
    resp = api_client.client.post("/api/login", json={"email": "test@example.com"})
    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "validation_error"


def test_identifier_secret_aliases(api_client) -> None:
    resp = api_client.client.post("/api/login", json={"identifier": "pm@example.com", "secret": "password"})
    assert resp.status_code == 200
    assert resp.json()["user"]["role"] == "pm"


def test_password_whitespace_is_significant(api_client) -> None:
    api_client.user_store.create_user(
        User(name="Spaced", email="spaced@example.com", role="user", hashed_password=hash_password(" pass word "))
    )
    client = api_client.client
    ok = client.post("/api/login", json={"email": "  Spaced@example.com ", "password": " pass word "})
    assert ok.status_code == 200
    assert ok.json()["user"]["email"] == "spaced@example.com"
    trimmed = client.post("/api/login", json={"email": "spaced@example.com", "password": "pass word"})
    assert trimmed.status_code == 422
    assert trimmed.json()["error"]["code"] == "invalid_credentials"


def test_xhr_to_login_gets_a_token(api_client) -> None:
    resp = api_client.client.post(
        "/login",
        data={"email": "frontend@example.com", "password": "password"},
        headers={"X-Requested-With": "XMLHttpRequest"},
    )
    assert resp.status_code == 200
    assert resp.json()["token"]


def test_logout_revokes_only_the_presented_token(api_client, login) -> None:
    client = api_client.client
    first, second = login(), login()
    assert client.post("/api/logout", headers=_auth(first)).status_code == 200
    assert client.get("/api/user", headers=_auth(first)).status_code == 401
    assert client.get("/api/user", headers=_auth(second)).status_code == 200


def test_logout_twice_is_401(api_client, login) -> None:
    token = login()
    assert api_client.client.post("/api/logout", headers=_auth(token)).status_code == 200
    assert api_client.client.post("/api/logout", headers=_auth(token)).status_code == 401


@pytest.mark.parametrize(
    "headers",
    [{}, {"Authorization": "Bearer 1|nonsense"}, {"Authorization": "Basic dGVzdDp0ZXN0"}, {"Authorization": "Bearer"}],
)
def test_user_requires_valid_token(api_client, headers) -> None:
    resp = api_client.client.get("/api/user", headers=headers)
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "unauthenticated"


def test_token_of_deactivated_user_stops_working(api_client, login) -> None:
    token = login("frontend@example.com")
    uid = api_client.user_ids["frontend@example.com"]
    api_client.user_store.update_user(uid, is_active=False)
    try:
        assert api_client.client.get("/api/user", headers=_auth(token)).status_code == 401
    finally:
        api_client.user_store.update_user(uid, is_active=True)


def test_dashboard(api_client, login) -> None:
    resp = api_client.client.get("/api/dashboard", headers=_auth(login()))
    assert resp.status_code == 200
    body = resp.json()
    assert body["greeting"] == "Welcome, Test User! Your role: Owner."
    assert body["role_access"].startswith("You have full access")
    assert body["user"]["email"] == "test@example.com"


def test_dashboard_requires_auth(api_client) -> None:
    assert api_client.client.get("/api/dashboard").status_code == 401


def test_dashboard_is_rate_limited(api_client, login) -> None:
    client = api_client.client
    headers = _auth(login())
    statuses = [client.get("/api/dashboard", headers=headers).status_code for _ in range(61)]
    assert statuses[:60] == [200] * 60
    assert statuses[60] == 429


def test_login_is_rate_limited(api_client) -> None:
    client = api_client.client
    statuses = [
        client.post("/api/login", json={"email": "test@example.com", "password": "nope"}).status_code
        for _ in range(6)
    ]
    assert statuses[:5] == [422] * 5
    assert statuses[5] == 429
    last = client.post("/api/login", json={"email": "test@example.com", "password": "password"})
    assert last.status_code == 429
    assert last.json()["error"]["code"] == "rate_limited"
    assert "retry-after" in last.headers


def test_store_outage_is_503(api_client, monkeypatch: pytest.MonkeyPatch) -> None:
    def _down(*args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("unable to open database file"))

    monkeypatch.setattr(api_client.user_store.engine, "connect", _down)
    resp = api_client.client.post("/api/login", json={"email": "test@example.com", "password": "password"})
    assert resp.status_code == 503
    assert resp.json()["error"]["code"] == "unavailable"
