"""
tests/test_session_routes.py -- Integration tests for the GitHub sign-in flow.

These tests go through the real ASGI stack (SessionMiddleware included) with
the fake GitHub client from conftest.py, so the CSRF state really travels in
the signed session cookie between the two requests.

Coverage:
  - GET /session/authorize_url returns a url that embeds the issued state
  - callback with missing / wrong / replayed state -> 400 invalid_state,
    GitHub never called, no user created
  - successful callback returns {user, api_token} and sets a working session
  - a second sign-in for the same GitHub account updates the same user
  - a bad code -> 400 oauth_failed
  - DELETE /session signs the browser out
"""

from __future__ import annotations

from fastapi.testclient import TestClient

from auth.models import ExternalIdentity
from auth.store import UserStore


def _start(client: TestClient) -> str:
    resp = client.get("/api/v1/session/authorize_url")
    assert resp.status_code == 200
    return resp.json()["state"]


class TestAuthorizeUrl:
    def test_url_embeds_state(self, client: TestClient) -> None:
        resp = client.get("/api/v1/session/authorize_url")
        assert resp.status_code == 200
        data = resp.json()
        assert data["state"]
        assert data["state"] in data["url"]

    def test_each_request_issues_a_new_state(self, client: TestClient) -> None:
        assert _start(client) != _start(client)


class TestCallbackStateGuard:
    def test_callback_without_state_is_rejected(self, client: TestClient, github, user_store: UserStore) -> None:
        resp = client.get("/api/v1/session/authorize")
        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == "invalid_state"
        assert "invalid state" in error["message"]
        assert github.exchanged == []
        assert user_store.count_users() == 0

    def test_mismatched_state_is_rejected(self, client: TestClient, github, user_store: UserStore) -> None:
        github.identities["good-code"] = ExternalIdentity(gh_id=1, login="foo", access_token="gho_1")
        _start(client)
        resp = client.get("/api/v1/session/authorize", params={"code": "good-code", "state": "forged"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_state"
        assert github.exchanged == []
        assert user_store.count_users() == 0

    def test_state_cannot_be_replayed(self, client: TestClient, github) -> None:
        github.identities["good-code"] = ExternalIdentity(gh_id=1, login="foo", access_token="gho_1")
        state = _start(client)
        first = client.get("/api/v1/session/authorize", params={"code": "good-code", "state": state})
        assert first.status_code == 200
        replay = client.get("/api/v1/session/authorize", params={"code": "good-code", "state": state})
        assert replay.status_code == 400
        assert replay.json()["error"]["code"] == "invalid_state"


class TestCallbackSuccess:
    def test_sign_in_creates_user_and_session(self, client: TestClient, github, user_store: UserStore) -> None:
        github.identities["abc"] = ExternalIdentity(
            gh_id=101,
            login="foo",
            access_token="gho_foo",
            email="foo@example.com",
            avatar="https://avatars.example/foo.png",
            name="Foo",
        )
        state = _start(client)
        resp = client.get("/api/v1/session/authorize", params={"code": "abc", "state": state})
        assert resp.status_code == 200, resp.text
        assert resp.headers["cache-control"] == "no-store"
        data = resp.json()
        assert data["user"]["login"] == "foo"
        assert data["user"]["email"] == "foo@example.com"
        assert data["user"]["url"] == "https://github.com/foo"
        assert "gh_access_token" not in data["user"]

        stored = user_store.find_by_login("foo")
        assert data["api_token"] == stored.api_token
        assert stored.gh_access_token == "gho_foo"

        # The session cookie alone now authenticates.
        me = client.get("/api/v1/me")
        assert me.status_code == 200
        assert me.json()["user"]["id"] == stored.id

    def test_second_sign_in_updates_same_user(self, client: TestClient, github, user_store: UserStore) -> None:
        github.identities["one"] = ExternalIdentity(gh_id=5, login="old-name", access_token="gho_1")
        github.identities["two"] = ExternalIdentity(gh_id=5, login="new-name", access_token="gho_2")

        first = client.get("/api/v1/session/authorize", params={"code": "one", "state": _start(client)}).json()
        second = client.get("/api/v1/session/authorize", params={"code": "two", "state": _start(client)}).json()

        assert first["user"]["id"] == second["user"]["id"]
        assert first["api_token"] == second["api_token"]
        assert second["user"]["login"] == "new-name"
        assert user_store.count_users() == 1
        assert user_store.find_by_id(first["user"]["id"]).gh_access_token == "gho_2"

    def test_bad_code_is_reported(self, client: TestClient, user_store: UserStore) -> None:
        resp = client.get("/api/v1/session/authorize", params={"code": "expired", "state": _start(client)})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "oauth_failed"
        assert user_store.count_users() == 0

    def test_missing_code_names_the_parameter(self, client: TestClient) -> None:
        resp = client.get("/api/v1/session/authorize", params={"state": _start(client)})
        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == "validation_error"
        assert error["detail"] == "code"


class TestLogout:
    def test_logout_ends_session(self, client: TestClient, github) -> None:
        github.identities["abc"] = ExternalIdentity(gh_id=9, login="foo", access_token="gho")
        client.get("/api/v1/session/authorize", params={"code": "abc", "state": _start(client)})
        assert client.get("/api/v1/me").status_code == 200

        resp = client.delete("/api/v1/session")
        assert resp.status_code == 200
        assert resp.json() == {"ok": True}
        assert client.get("/api/v1/me").status_code == 403
