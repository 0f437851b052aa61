"""
Authentication tests: registration, login, JWT refresh, password change
and the JWT middleware.
"""

from datetime import datetime, timedelta, timezone

import jwt as pyjwt

from defect_tracker.models.notification import EmailLog
from defect_tracker.services.jwt_service import (
    decode_access_token,
    generate_refresh_token,
)

# make_user hashes this password by default
PASSWORD = "Passw0rd!secure"


def _register(client, **overrides):
    body = {
        "first_name": "Grace",
        "last_name": "Hopper",
        "email": "Grace.Hopper@Example.com",
        "password": PASSWORD,
    }
    body.update(overrides)
    return client.post("/api/auth/register", json=body)


# ── Register ─────────────────────────────────────────────────────────────


def test_register_assigns_sequential_username(client):
    res = _register(client)
    assert res.status_code == 201
    data = res.get_json()["data"]
    assert data["user"]["username"] == "US0001"
    assert data["user"]["email"] == "grace.hopper@example.com"
    assert data["token_type"] == "Bearer"
    assert "password_hash" not in data["user"]

    second = _register(client, email="ada@example.com").get_json()["data"]
    assert second["user"]["username"] == "US0002"


def test_register_sends_welcome_email(client):
    _register(client)
    log = EmailLog.query.one()
    assert log.category == "USER_REGISTERED"
    assert log.status == "sent"
    assert log.subject == "[Defect Tracker] Welcome, Grace Hopper"


def test_register_duplicate_email_conflicts(client):
    _register(client)
    res = _register(client, email="grace.hopper@example.com")
    assert res.status_code == 409
    assert res.get_json()["code"] == "ERR_CONFLICT_DUPLICATE"


def test_register_validation(client):
    assert _register(client, email="not-an-email").status_code == 400
    assert _register(client, password="short").status_code == 400
    res = client.post("/api/auth/register", json={"email": "x@example.com"})
    assert res.status_code == 400


# ── Login ────────────────────────────────────────────────────────────────


def test_login_by_username_and_email(client, make_user):
    user = make_user("Linus", email="linus@example.com")

    by_name = client.post("/api/auth/login",
                          json={"username": user.username, "password": PASSWORD})
    assert by_name.status_code == 200
    token = by_name.get_json()["data"]["access_token"]
    assert decode_access_token(token)["sub"] == str(user.id)

    by_email = client.post("/api/auth/login",
                           json={"email": "LINUS@example.com", "password": PASSWORD})
    assert by_email.status_code == 200
    assert by_email.get_json()["data"]["user"]["id"] == user.id


def test_login_wrong_password(client, make_user):
    user = make_user()
    res = client.post("/api/auth/login", json={"username": user.username, "password": "nope-nope"})
    assert res.status_code == 401
    assert res.get_json()["code"] == "ERR_UNAUTHENTICATED"


def test_login_unknown_user_same_error(client):
    res = client.post("/api/auth/login", json={"username": "US9999", "password": PASSWORD})
    assert res.status_code == 401
    assert res.get_json()["error"] == "Invalid credentials"


def test_login_inactive_user_forbidden(client, make_user):
    user = make_user(is_active=False)
    res = client.post("/api/auth/login", json={"username": user.username, "password": PASSWORD})
    assert res.status_code == 403


def test_login_missing_fields(client):
    assert client.post("/api/auth/login", json={}).status_code == 400


# ── Tokens ───────────────────────────────────────────────────────────────


def test_refresh_token_issues_new_pair(client, make_user):
    user = make_user()
    res = client.post("/api/auth/refresh-token",
                      json={"refresh_token": generate_refresh_token(user.id)})
    assert res.status_code == 200
    assert res.get_json()["data"]["access_token"]


def test_access_token_is_not_a_refresh_token(client, make_user, auth_headers):
    user = make_user()
    access = auth_headers(user)["Authorization"].split(" ", 1)[1]
    res = client.post("/api/auth/refresh-token", json={"refresh_token": access})
    assert res.status_code == 401


def test_refresh_for_inactive_user_rejected(client, make_user):
    user = make_user(is_active=False)
    res = client.post("/api/auth/refresh-token",
                      json={"refresh_token": generate_refresh_token(user.id)})
    assert res.status_code == 401


def test_refresh_requires_token(client):
    res = client.post("/api/auth/refresh-token", json={})
    assert res.status_code == 400


def test_expired_access_token_rejected(app, client, make_user):
    user = make_user()
    now = datetime.now(timezone.utc)
    token = pyjwt.encode(
        {"sub": str(user.id), "type": "access", "iat": now - timedelta(hours=2),
         "exp": now - timedelta(hours=1)},
        app.config.get("JWT_SECRET_KEY") or app.config["SECRET_KEY"], algorithm="HS256",
    )
    res = client.get("/api/auth/verify-token", headers={"Authorization": f"Bearer {token}"})
    assert res.status_code == 401


def test_token_of_deactivated_user_rejected(client, make_user, auth_headers):
    from defect_tracker.models import db

    user = make_user()
    headers = auth_headers(user)
    user.is_active = False
    db.session.commit()
    assert client.get("/api/auth/profile", headers=headers).status_code == 401


def test_verify_token_and_profile(client, make_user, auth_headers):
    user = make_user("Margaret", "Hamilton")
    headers = auth_headers(user)

    verify = client.get("/api/auth/verify-token", headers=headers).get_json()["data"]
    assert verify == {"user_id": user.id, "username": user.username}

    profile = client.get("/api/auth/profile", headers=headers).get_json()["data"]
    assert profile["full_name"] == "Margaret Hamilton"


def test_logout_is_acknowledged(client, make_user, auth_headers):
    res = client.post("/api/auth/logout", headers=auth_headers(make_user()))
    assert res.status_code == 200
    assert res.get_json()["success"] is True


def test_health_needs_no_token(client):
    res = client.get("/api/health")
    assert res.status_code == 200
    assert res.get_json() == {"status": "ok"}


def test_health_live_checks_database(client):
    body = client.get("/api/health/live").get_json()
    assert body["status"] == "ok"
    assert body["checks"]["database"]["status"] == "ok"


# ── Passwords ────────────────────────────────────────────────────────────


def test_change_password(client, make_user, auth_headers):
    user = make_user()
    headers = auth_headers(user)

    wrong = client.post("/api/auth/change-password", headers=headers,
                        json={"current_password": "wrong-one", "new_password": "N3w-password!"})
    assert wrong.status_code == 401

    ok = client.post("/api/auth/change-password", headers=headers,
                     json={"current_password": PASSWORD, "new_password": "N3w-password!"})
    assert ok.status_code == 200

    old = client.post("/api/auth/login", json={"username": user.username, "password": PASSWORD})
    assert old.status_code == 401
    new = client.post("/api/auth/login", json={"username": user.username, "password": "N3w-password!"})
    assert new.status_code == 200


def test_change_password_enforces_length(client, make_user, auth_headers):
    user = make_user()
    res = client.post("/api/auth/change-password", headers=auth_headers(user),
                      json={"current_password": PASSWORD, "new_password": "short"})
    assert res.status_code == 400
