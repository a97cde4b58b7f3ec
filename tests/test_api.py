from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from account_identity.api import routes
from account_identity.domain.account import Role

REGISTRATION = {
    "email": "ada@example.com",
    "password": "correct-horse",
    "name": "Ada",
    "surname": "Lovelace",
    "age": 36,
    "birth_date": "1815-12-10",
}


@pytest.fixture
def api_client(service):
    """Provide a FastAPI test client with isolated state."""
    app = FastAPI()
    app.include_router(routes.router)
    app.state.account_service = service

    original_limiter = routes.rate_limiter
    routes.rate_limiter = routes.SlidingWindowRateLimiter(max_requests=20, window_seconds=60)

    with TestClient(app) as client:
        yield client

    routes.rate_limiter = original_limiter


@pytest.fixture
def admin_headers(api_client, make_account):
    make_account(email="root@example.com", password="admin-password", role=Role.admin)
    token = api_client.post(
        "/v1/auth/login", json={"email": "root@example.com", "password": "admin-password"}
    ).json()["access_token"]
    return {"Authorization": f"Bearer {token}"}


def _register_and_login(client, **overrides):
    payload = {**REGISTRATION, **overrides}
    registered = client.post("/v1/auth/register", json=payload)
    assert registered.status_code == 201
    token = client.post(
        "/v1/auth/login", json={"email": payload["email"], "password": payload["password"]}
    ).json()["access_token"]
    return registered.json(), {"Authorization": f"Bearer {token}"}


def test_register_login_and_read_own_profile(api_client):
    account, headers = _register_and_login(api_client)

    assert account["email"] == "ada@example.com"
    assert account["role"] == "user"
    assert "password" not in account and "password_hash" not in account

    me = api_client.get("/v1/users/me", headers=headers)
    assert me.status_code == 200
    assert me.json()["account_id"] == account["account_id"]
    assert me.json()["last_login_ip"] == "testclient"

    verified = api_client.get("/v1/auth/verify-token", headers=headers)
    assert verified.status_code == 200
    assert verified.json()["valid"] is True
    assert verified.json()["name"] == "Ada"


def test_register_rejects_duplicate_email_and_privileged_roles(api_client):
    api_client.post("/v1/auth/register", json=REGISTRATION)

    duplicate = api_client.post("/v1/auth/register", json={**REGISTRATION, "email": "ADA@example.com"})
    assert duplicate.status_code == 409

    escalation = api_client.post(
        "/v1/auth/register", json={**REGISTRATION, "email": "eve@example.com", "role": "admin"}
    )
    assert escalation.status_code == 403


def test_register_validates_input_shape(api_client):
    response = api_client.post("/v1/auth/register", json={**REGISTRATION, "age": -1, "password": "abc"})
    assert response.status_code == 422


def test_unknown_email_and_wrong_password_are_indistinguishable(api_client):
    api_client.post("/v1/auth/register", json=REGISTRATION)

    wrong = api_client.post("/v1/auth/login", json={"email": "ada@example.com", "password": "nope-nope"})
    unknown = api_client.post("/v1/auth/login", json={"email": "who@example.com", "password": "nope-nope"})

    assert wrong.status_code == unknown.status_code == 401
    assert wrong.json() == unknown.json() == {"detail": "invalid credentials"}


def test_lockout_reports_remaining_time(api_client):
    api_client.post("/v1/auth/register", json=REGISTRATION)
    for _ in range(5):
        response = api_client.post(
            "/v1/auth/login", json={"email": "ada@example.com", "password": "nope-nope"}
        )
        assert response.status_code == 401

    locked = api_client.post(
        "/v1/auth/login", json={"email": "ada@example.com", "password": "correct-horse"}
    )
    assert locked.status_code == 403
    assert locked.json()["detail"] == "account is locked, try again in 15 minutes"
    assert locked.headers["Retry-After"] == "900"


def test_deleted_account_login_looks_like_unknown_email(api_client):
    account, headers = _register_and_login(api_client)

    deleted = api_client.delete(f"/v1/users/{account['account_id']}", headers=headers)
    assert deleted.status_code == 200
    assert deleted.json()["deleted"] is True

    response = api_client.post(
        "/v1/auth/login", json={"email": "ada@example.com", "password": "correct-horse"}
    )
    assert response.status_code == 401
    assert response.json()["detail"] == "invalid credentials"
    assert api_client.get("/v1/users/me", headers=headers).status_code == 404


def test_admin_endpoints_require_admin_role(api_client):
    _, headers = _register_and_login(api_client)

    assert api_client.get("/v1/users").status_code == 401
    assert api_client.get("/v1/users", headers={"Authorization": "Bearer junk"}).status_code == 401
    assert api_client.get("/v1/users", headers=headers).status_code == 403
    assert api_client.get("/v1/users/stats", headers=headers).status_code == 403
    assert api_client.get("/v1/audit/logs", headers=headers).status_code == 403


def test_users_cannot_manage_other_accounts_or_roles(api_client):
    ada, ada_headers = _register_and_login(api_client)
    bob, _ = _register_and_login(api_client, email="bob@example.com")

    assert api_client.get(f"/v1/users/{bob['account_id']}", headers=ada_headers).status_code == 403
    assert api_client.delete(f"/v1/users/{bob['account_id']}", headers=ada_headers).status_code == 403
    promote = api_client.put(f"/v1/users/{ada['account_id']}", json={"role": "admin"}, headers=ada_headers)
    assert promote.status_code == 403

    renamed = api_client.put(f"/v1/users/{ada['account_id']}", json={"name": "Augusta"}, headers=ada_headers)
    assert renamed.status_code == 200
    assert renamed.json()["name"] == "Augusta"
    assert renamed.json()["modified_by"] == ada["account_id"]


def test_admin_block_restore_and_listings(api_client, admin_headers):
    account, _ = _register_and_login(api_client)
    account_id = account["account_id"]

    blocked = api_client.put(f"/v1/users/{account_id}/block", headers=admin_headers)
    assert blocked.status_code == 200
    assert blocked.json()["is_blocked"] is True

    login = api_client.post("/v1/auth/login", json={"email": "ada@example.com", "password": "correct-horse"})
    assert login.status_code == 401
    assert login.json()["detail"] == "account is blocked"

    listed = api_client.get("/v1/users/blocked", headers=admin_headers).json()
    assert [item["account_id"] for item in listed] == [account_id]

    # restore needs a deleted account, the block flag does not count
    assert api_client.put(f"/v1/users/{account_id}/restore", headers=admin_headers).status_code == 404

    assert api_client.delete(f"/v1/users/{account_id}", headers=admin_headers).status_code == 200
    assert account_id not in [item["account_id"] for item in api_client.get("/v1/users", headers=admin_headers).json()]
    deleted = api_client.get("/v1/users/deleted", headers=admin_headers).json()
    assert [item["account_id"] for item in deleted] == [account_id]

    restored = api_client.put(f"/v1/users/{account_id}/restore", headers=admin_headers)
    assert restored.status_code == 200
    assert restored.json()["deleted"] is False

    unblocked = api_client.put(f"/v1/users/{account_id}/unblock", headers=admin_headers)
    assert unblocked.json()["is_blocked"] is False
    login = api_client.post("/v1/auth/login", json={"email": "ada@example.com", "password": "correct-horse"})
    assert login.status_code == 200


def test_admin_creates_and_promotes_accounts(api_client, admin_headers):
    created = api_client.post(
        "/v1/users", json={**REGISTRATION, "email": "ops@example.com", "role": "basic"}, headers=admin_headers
    )
    assert created.status_code == 201
    account_id = created.json()["account_id"]

    promoted = api_client.put(f"/v1/users/{account_id}", json={"role": "admin"}, headers=admin_headers)
    assert promoted.status_code == 200
    assert promoted.json()["role"] == "admin"

    stats = api_client.get("/v1/users/stats", headers=admin_headers)
    assert stats.status_code == 200
    body = stats.json()
    assert body["total_users"] == 2
    assert body["admin_modifications"][0]["target_account_id"] == account_id
    assert body["admin_modifications"][0]["changes"]["before"]["role"] == "basic"

    missing = api_client.put("/v1/users/does-not-exist/block", headers=admin_headers)
    assert missing.status_code == 404


def test_audit_log_endpoint_returns_paginated_entries(api_client, admin_headers):
    account, _ = _register_and_login(api_client)
    for _ in range(3):
        api_client.put(f"/v1/users/{account['account_id']}/block", headers=admin_headers)

    resp = api_client.get(
        "/v1/audit/logs",
        params={"account_id": account["account_id"], "limit": 3},
        headers=admin_headers,
    )
    assert resp.status_code == 200
    body = resp.json()
    assert len(body["items"]) == 3
    assert body["next_cursor"]
    for entry in body["items"]:
        assert entry["target_account_id"] == account["account_id"]

    next_resp = api_client.get(
        "/v1/audit/logs",
        params={"account_id": account["account_id"], "cursor": body["next_cursor"], "limit": 3},
        headers=admin_headers,
    )
    assert next_resp.status_code == 200
    assert [entry["action"] for entry in next_resp.json()["items"]] == ["login", "create"]

    brute_force = api_client.get(
        "/v1/audit/logs", params={"action": "brute-force-attempt"}, headers=admin_headers
    )
    assert brute_force.json()["items"] == []


def test_audit_log_endpoint_rejects_bad_cursor(api_client, admin_headers):
    resp = api_client.get("/v1/audit/logs", params={"cursor": "not-valid"}, headers=admin_headers)
    assert resp.status_code == 400


def test_login_endpoint_respects_rate_limits(api_client):
    routes.rate_limiter = routes.SlidingWindowRateLimiter(max_requests=2, window_seconds=60)
    payload = {"email": "ada@example.com", "password": "correct-horse"}

    first = api_client.post("/v1/auth/login", json=payload)
    second = api_client.post("/v1/auth/login", json=payload)
    third = api_client.post("/v1/auth/login", json=payload)

    assert first.status_code == 401
    assert second.status_code == 401
    assert third.status_code == 429
    assert third.json()["detail"] == "rate limited"
    assert int(third.headers["Retry-After"]) >= 1
