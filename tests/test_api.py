"""End-to-end tests for the Chirpy HTTP API."""

from __future__ import annotations

from dataclasses import replace

import pytest
from fastapi.testclient import TestClient

from chirpy.api import create_app
from chirpy.application import Services, build_services

EMAIL = "walt@breakingbad.com"
PASSWORD = "04234-Heisenberg"


@pytest.fixture()
def client(services: Services):
    with TestClient(create_app(services)) as test_client:
        yield test_client


def _register(client: TestClient, email: str = EMAIL, password: str = PASSWORD) -> dict:
    response = client.post("/api/users", json={"email": email, "password": password})
    assert response.status_code == 201, response.text
    return response.json()


def _login(client: TestClient, email: str = EMAIL, password: str = PASSWORD) -> dict:
    response = client.post("/api/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response.json()


def _bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def test_healthcheck(client: TestClient) -> None:
    assert client.get("/api/healthz").json() == {"status": "ok"}


def test_register_user_hides_credentials(client: TestClient) -> None:
    payload = _register(client)

    assert payload["id"] == 1
    assert payload["email"] == EMAIL
    assert payload["is_chirpy_red"] is False
    assert "password" not in payload
    assert "password_hash" not in payload


def test_register_rejects_duplicates_and_bad_input(client: TestClient) -> None:
    _register(client)

    duplicate = client.post("/api/users", json={"email": EMAIL.upper(), "password": PASSWORD})
    assert duplicate.status_code == 409

    missing = client.post("/api/users", json={"password": PASSWORD})
    assert missing.status_code == 400
    assert missing.json() == {"error": "Email is required"}

    weak = client.post("/api/users", json={"email": "weak@x.com", "password": "password"})
    assert weak.status_code == 400
    assert "longer password" in weak.json()["error"]

    empty = client.post("/api/users", json={"email": "empty@x.com", "password": ""})
    assert empty.status_code == 400


def test_login_returns_tokens(client: TestClient, services: Services) -> None:
    user = _register(client)

    payload = _login(client)

    assert payload["id"] == user["id"]
    assert payload["token"]
    assert len(payload["refresh_token"]) == 64
    assert services.sessions.validate_access_token(payload["token"]) == user["id"]


def test_login_failures_share_one_response(client: TestClient) -> None:
    _register(client)

    wrong_password = client.post("/api/login", json={"email": EMAIL, "password": "wrong-password"})
    unknown_user = client.post("/api/login", json={"email": "who@x.com", "password": PASSWORD})

    assert wrong_password.status_code == unknown_user.status_code == 401
    assert wrong_password.json() == unknown_user.json()


def test_refresh_and_revoke(client: TestClient) -> None:
    _register(client)
    refresh_token = _login(client)["refresh_token"]

    refreshed = client.post("/api/refresh", headers=_bearer(refresh_token))
    assert refreshed.status_code == 200
    assert refreshed.json()["token"]

    assert client.post("/api/refresh").status_code == 401
    assert client.post("/api/refresh", headers=_bearer("unknown")).status_code == 401

    revoked = client.post("/api/revoke", headers=_bearer(refresh_token))
    assert revoked.status_code == 204

    assert client.post("/api/refresh", headers=_bearer(refresh_token)).status_code == 401
    assert client.post("/api/revoke", headers=_bearer("unknown")).status_code == 401


def test_access_token_is_not_a_refresh_token(client: TestClient) -> None:
    _register(client)
    access_token = _login(client)["token"]

    assert client.post("/api/refresh", headers=_bearer(access_token)).status_code == 401


def test_update_user_changes_email_and_password(client: TestClient) -> None:
    _register(client)
    token = _login(client)["token"]

    unauthenticated = client.put("/api/users", json={"email": "new@x.com", "password": "N3w-Passw0rd!"})
    assert unauthenticated.status_code == 401

    response = client.put(
        "/api/users",
        headers=_bearer(token),
        json={"email": "new@x.com", "password": "N3w-Passw0rd!"},
    )
    assert response.status_code == 200
    assert response.json()["email"] == "new@x.com"

    assert client.post("/api/login", json={"email": EMAIL, "password": PASSWORD}).status_code == 401
    _login(client, "new@x.com", "N3w-Passw0rd!")


def test_update_user_email_conflict(client: TestClient) -> None:
    _register(client)
    _register(client, "other@x.com")
    token = _login(client)["token"]

    response = client.put(
        "/api/users",
        headers=_bearer(token),
        json={"email": "other@x.com", "password": PASSWORD},
    )
    assert response.status_code == 409


def test_create_post_requires_valid_token(client: TestClient) -> None:
    assert client.post("/api/posts", json={"body": "hi"}).status_code == 401
    assert client.post("/api/posts", headers=_bearer("garbage"), json={"body": "hi"}).status_code == 401


def test_create_post_cleans_profanity_and_limits_length(client: TestClient) -> None:
    user = _register(client)
    token = _login(client)["token"]

    created = client.post(
        "/api/posts",
        headers=_bearer(token),
        json={"body": "I had something interesting for breakfast Kerfuffle"},
    )
    assert created.status_code == 201
    payload = created.json()
    assert payload["body"] == "I had something interesting for breakfast ****"
    assert payload["user_id"] == user["id"]

    too_long = client.post("/api/posts", headers=_bearer(token), json={"body": "x" * 141})
    assert too_long.status_code == 400
    assert too_long.json() == {"error": "Post is too long"}

    blank = client.post("/api/posts", headers=_bearer(token), json={"body": "   "})
    assert blank.status_code == 400


def test_list_and_read_posts(client: TestClient) -> None:
    alice = _register(client, "alice@x.com")
    bob = _register(client, "bob@x.com")
    alice_token = _login(client, "alice@x.com")["token"]
    bob_token = _login(client, "bob@x.com")["token"]

    first = client.post("/api/posts", headers=_bearer(alice_token), json={"body": "first"}).json()
    second = client.post("/api/posts", headers=_bearer(bob_token), json={"body": "second"}).json()
    third = client.post("/api/posts", headers=_bearer(alice_token), json={"body": "third"}).json()
    assert first["id"] < second["id"] < third["id"]

    ascending = client.get("/api/posts").json()
    assert [post["id"] for post in ascending] == [first["id"], second["id"], third["id"]]

    descending = client.get("/api/posts", params={"sort": "desc"}).json()
    assert [post["id"] for post in descending] == [third["id"], second["id"], first["id"]]

    by_alice = client.get("/api/posts", params={"author_id": alice["id"]}).json()
    assert [post["user_id"] for post in by_alice] == [alice["id"], alice["id"]]
    assert client.get("/api/posts", params={"author_id": bob["id"], "sort": "desc"}).json() == [second]

    assert client.get("/api/posts", params={"sort": "random"}).status_code == 400

    assert client.get(f"/api/posts/{second['id']}").json() == second
    assert client.get("/api/posts/999").status_code == 404


def test_delete_post_only_by_author(client: TestClient) -> None:
    _register(client, "alice@x.com")
    _register(client, "bob@x.com")
    alice_token = _login(client, "alice@x.com")["token"]
    bob_token = _login(client, "bob@x.com")["token"]
    post = client.post("/api/posts", headers=_bearer(alice_token), json={"body": "mine"}).json()

    assert client.delete(f"/api/posts/{post['id']}").status_code == 401
    assert client.delete(f"/api/posts/{post['id']}", headers=_bearer(bob_token)).status_code == 403
    assert client.delete(f"/api/posts/{post['id']}", headers=_bearer(alice_token)).status_code == 204
    assert client.delete(f"/api/posts/{post['id']}", headers=_bearer(alice_token)).status_code == 404
    assert client.get(f"/api/posts/{post['id']}").status_code == 404


def test_polka_webhook_upgrades_user(client: TestClient, services: Services) -> None:
    user = _register(client)
    headers = {"Authorization": f"ApiKey {services.config.polka_key}"}

    body = {"event": "user.upgraded", "data": {"user_id": user["id"]}}
    missing_key = client.post("/api/polka/webhooks", json=body)
    assert missing_key.status_code == 401

    wrong_key = client.post(
        "/api/polka/webhooks",
        headers={"Authorization": "ApiKey nope"},
        json={"event": "user.upgraded", "data": {"user_id": user["id"]}},
    )
    assert wrong_key.status_code == 401

    ignored = client.post(
        "/api/polka/webhooks",
        headers=headers,
        json={"event": "user.payment_failed", "data": {"user_id": user["id"]}},
    )
    assert ignored.status_code == 204
    assert services.users.get(user["id"]).is_chirpy_red is False

    upgraded = client.post(
        "/api/polka/webhooks",
        headers=headers,
        json={"event": "user.upgraded", "data": {"user_id": user["id"]}},
    )
    assert upgraded.status_code == 204
    assert services.users.get(user["id"]).is_chirpy_red is True
    assert _login(client)["is_chirpy_red"] is True

    unknown = client.post(
        "/api/polka/webhooks",
        headers=headers,
        json={"event": "user.upgraded", "data": {"user_id": 999}},
    )
    assert unknown.status_code == 404


def test_metrics_count_app_hits(client: TestClient) -> None:
    client.get("/app")
    client.get("/app")

    page = client.get("/admin/metrics")
    assert page.status_code == 200
    assert "Chirpy has been visited 2 times!" in page.text

    assert client.post("/admin/reset").status_code == 403


def test_reset_is_allowed_on_dev_platform(services: Services, clock) -> None:
    dev = build_services(replace(services.config, platform="dev"), clock=clock)
    with TestClient(create_app(dev)) as client:
        client.get("/app")
        assert client.post("/admin/reset").json() == {"hits": 0}
        assert "visited 0 times" in client.get("/admin/metrics").text


def test_corrupt_store_returns_generic_error(client: TestClient, services: Services) -> None:
    services.store.path.write_text("{broken", encoding="utf-8")

    response = client.get("/api/posts")

    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error"}
    assert services.store.path.read_text(encoding="utf-8") == "{broken"
