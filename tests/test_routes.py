"""Integration tests for the login routes and the gated application."""

# pylint: disable=redefined-outer-name

from __future__ import annotations

import time

from typing import Any
from unittest.mock import AsyncMock

import httpx
import pytest

from fastapi import FastAPI
from fastapi.testclient import TestClient

from oauthgate.app import create_app, describe_identity
from oauthgate.state import MemorySessionStore

from tests.conftest import FakeIdentityProvider, make_settings, query_of


# ── Helpers ──────────────────────────────────────────────────────────


def _create_test_app(
    idp: FakeIdentityProvider,
    store: Any = None,
    **session_overrides: Any,
) -> FastAPI:
    """Create the application wired to the fake identity provider."""
    return create_app(
        make_settings(**session_overrides),
        store=store or MemorySessionStore(),
        http_client=idp.client(),
    )


def _begin(client: TestClient, provider: str = "google") -> str:
    """Start a login and return the state sent to the provider."""
    resp = client.get(f"/login-initiate/{provider}")
    assert resp.status_code == 302
    return query_of(resp.headers["location"])["state"]


def _login(client: TestClient, provider: str = "google") -> httpx.Response:
    """Run a full login through the callback."""
    state = _begin(client, provider)
    return client.get(f"/callback/{provider}", params={"code": "auth-code", "state": state})


@pytest.fixture
def app(idp: FakeIdentityProvider) -> FastAPI:
    """Application with an in-memory store."""
    return _create_test_app(idp)


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    """Test client that does not follow redirects."""
    return TestClient(app, follow_redirects=False)


# ── Login initiate ───────────────────────────────────────────────────


class TestLoginInitiate:
    """Tests for GET /login-initiate/{provider}."""

    def test_google_redirect(self, client: TestClient) -> None:
        """Google login redirects to the Google consent page."""
        resp = client.get("/login-initiate/google")
        assert resp.status_code == 302
        location = resp.headers["location"]
        assert location.startswith("https://accounts.google.com/o/oauth2/v2/auth?")
        params = query_of(location)
        assert params["redirect_uri"] == "https://app.test/callback/google"
        assert "code_challenge" not in params

    def test_twitter_redirect_has_pkce(self, client: TestClient) -> None:
        """Twitter login carries a PKCE challenge."""
        resp = client.get("/login-initiate/twitter")
        params = query_of(resp.headers["location"])
        assert resp.headers["location"].startswith("https://twitter.com/i/oauth2/authorize?")
        assert params["code_challenge_method"] == "S256"
        assert params["code_challenge"]

    def test_unknown_provider(self, client: TestClient) -> None:
        """Unsupported providers get a 404."""
        resp = client.get("/login-initiate/github")
        assert resp.status_code == 404
        assert resp.json()["error"] == "unknown_provider"

    def test_unconfigured_provider(self, idp: FakeIdentityProvider) -> None:
        """A supported but unconfigured provider is unknown too."""
        app = create_app(make_settings(twitter=False), http_client=idp.client())
        client = TestClient(app, follow_redirects=False)
        assert client.get("/login-initiate/twitter").status_code == 404

    def test_login_page_lists_providers(self, client: TestClient) -> None:
        """The login entry point lists configured providers."""
        body = client.get("/login").json()
        assert [p["id"] for p in body["providers"]] == ["google", "twitter"]
        assert body["providers"][0]["login_url"] == "/login-initiate/google"


# ── Callback ─────────────────────────────────────────────────────────


class TestCallback:
    """Tests for GET /callback/{provider}."""

    def test_google_login_sets_cookie(self, client: TestClient) -> None:
        """A successful callback sets the session cookie and redirects."""
        resp = _login(client, "google")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/protected"

        header = resp.headers["set-cookie"]
        assert header.startswith("sid=")
        assert "HttpOnly" in header
        assert "Path=/" in header
        assert "samesite=lax" in header.lower()
        assert "Max-Age=7200" in header

        page = client.get("/protected")
        assert page.status_code == 200
        assert page.json()["identity"] == "alice@example.com"
        assert page.json()["provider"] == "Google"

    def test_twitter_login(self, client: TestClient, idp: FakeIdentityProvider) -> None:
        """Twitter logins resolve to the synthetic identity."""
        resp = _login(client, "twitter")
        assert resp.status_code == 302
        assert idp.last_token_form()["code_verifier"]

        profile = client.get("/protected/profile").json()
        assert profile["provider"] == "Twitter"
        assert profile["display_name"] == "bob"
        assert profile["identity"] == "bob@twitter.local"

    def test_default_max_age(self, client: TestClient, idp: FakeIdentityProvider) -> None:
        """Without expires_in the cookie lives one hour."""
        idp.token_payload = {"access_token": "at", "token_type": "bearer"}
        resp = _login(client)
        assert "Max-Age=3600" in resp.headers["set-cookie"]

    def test_secure_cookie(self, idp: FakeIdentityProvider) -> None:
        """The Secure flag follows configuration."""
        client = TestClient(_create_test_app(idp, cookie_secure=True), follow_redirects=False)
        resp = _login(client)
        assert "Secure" in resp.headers["set-cookie"]

    def test_replayed_callback(self, client: TestClient, idp: FakeIdentityProvider) -> None:
        """The same state cannot be used twice."""
        state = _begin(client)
        params = {"code": "auth-code", "state": state}
        assert client.get("/callback/google", params=params).status_code == 302
        resp = client.get("/callback/google", params=params)
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_state"
        assert len(idp.token_requests) == 1

    def test_unknown_state(self, client: TestClient, idp: FakeIdentityProvider) -> None:
        """A state that was never issued is rejected without a token request."""
        resp = client.get("/callback/google", params={"code": "c", "state": "forged"})
        assert resp.status_code == 400
        assert "set-cookie" not in resp.headers
        assert idp.token_requests == []

    def test_missing_state(self, client: TestClient) -> None:
        """A callback without state is rejected."""
        resp = client.get("/callback/google", params={"code": "c"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_state"

    def test_cross_provider_state(self, client: TestClient) -> None:
        """A Google state cannot complete a Twitter callback."""
        state = _begin(client, "google")
        resp = client.get("/callback/twitter", params={"code": "c", "state": state})
        assert resp.status_code == 400

    def test_concurrent_attempts(self, client: TestClient) -> None:
        """Two tabs can log in at the same time."""
        first = _begin(client, "twitter")
        second = _begin(client, "twitter")
        resp2 = client.get("/callback/twitter", params={"code": "c", "state": second})
        resp1 = client.get("/callback/twitter", params={"code": "c", "state": first})
        assert resp2.status_code == 302
        assert resp1.status_code == 302

    def test_provider_error(self, client: TestClient, idp: FakeIdentityProvider) -> None:
        """A denied consent returns a generic error and burns the state."""
        state = _begin(client)
        resp = client.get(
            "/callback/google",
            params={"error": "access_denied", "error_description": "user said no", "state": state},
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "provider_error"
        assert "user said no" not in resp.text
        assert idp.token_requests == []
        retry = client.get("/callback/google", params={"code": "c", "state": state})
        assert retry.status_code == 400

    def test_missing_code(self, client: TestClient) -> None:
        """A callback without code is a bad request."""
        state = _begin(client)
        resp = client.get("/callback/google", params={"state": state})
        assert resp.status_code == 400
        assert resp.json()["error"] == "missing_code"

    def test_rejected_code(self, client: TestClient, idp: FakeIdentityProvider) -> None:
        """A code rejected by the provider is a 401 with a generic message."""
        idp.token_status = 400
        idp.token_payload = {"error": "invalid_grant", "error_description": "Bad code xyz"}
        resp = _login(client)
        assert resp.status_code == 401
        assert resp.json()["error"] == "token_exchange_failed"
        assert "xyz" not in resp.text
        assert "set-cookie" not in resp.headers

    def test_provider_unreachable(self, client: TestClient, idp: FakeIdentityProvider) -> None:
        """Transport failures during the exchange are a 502."""
        state = _begin(client)
        idp.error = httpx.ConnectError("connection refused")
        resp = client.get("/callback/google", params={"code": "c", "state": state})
        assert resp.status_code == 502

    def test_malformed_identity(self, client: TestClient, idp: FakeIdentityProvider) -> None:
        """A profile without email fails the login."""
        idp.google_userinfo = {"sub": "1"}
        resp = _login(client)
        assert resp.status_code == 401
        assert resp.json()["error"] == "malformed_identity"
        assert "set-cookie" not in resp.headers

    def test_store_failure(self, idp: FakeIdentityProvider) -> None:
        """A store that rejects writes yields a 500 and no cookie."""
        store = AsyncMock()
        store.upsert_user.side_effect = RuntimeError("disk full")
        client = TestClient(_create_test_app(idp, store=store), follow_redirects=False)
        resp = _login(client)
        assert resp.status_code == 500
        assert resp.json()["error"] == "session_persistence_failed"
        assert "disk full" not in resp.text
        assert "set-cookie" not in resp.headers


# ── Gate ─────────────────────────────────────────────────────────────


class TestProtectedRoutes:
    """Tests for gated pages and APIs."""

    def test_redirect_without_cookie(self, client: TestClient) -> None:
        """Anonymous page requests go to the login page, cookie untouched."""
        resp = client.get("/protected")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/login"
        assert "set-cookie" not in resp.headers

    def test_api_without_cookie(self, client: TestClient) -> None:
        """Anonymous API requests get 401 JSON."""
        resp = client.get("/api/me")
        assert resp.status_code == 401
        assert resp.json()["error"] == "not_authenticated"

    def test_api_with_session(self, client: TestClient) -> None:
        """An authenticated API request sees the user."""
        _login(client)
        body = client.get("/api/me").json()
        assert body["identity"] == "alice@example.com"
        assert body["user_id"] == 1
        assert body["expires_at"] > time.time()

    def test_tampered_cookie_is_cleared(self, client: TestClient) -> None:
        """A forged cookie is rejected and removed."""
        client.cookies.set("sid", "tampered-value")
        resp = client.get("/protected")
        assert resp.status_code == 302
        assert "Max-Age=-1" in resp.headers["set-cookie"]

    def test_expired_session_is_cleared(self, app: FastAPI, client: TestClient) -> None:
        """Expired sessions are rejected and the cookie removed."""
        _login(client)
        for session in app.state.store._sessions.values():  # pylint: disable=protected-access
            session.expires_at = time.time() - 1

        resp = client.get("/protected")
        assert resp.status_code == 302
        assert "Max-Age=-1" in resp.headers["set-cookie"]

    def test_single_session_per_user(self, app: FastAPI, client: TestClient) -> None:
        """Logging in again invalidates the previous cookie."""
        first = _login(client).cookies["sid"]
        _login(client)
        assert client.get("/protected").status_code == 200

        stale = TestClient(app, follow_redirects=False)
        stale.cookies.set("sid", first)
        resp = stale.get("/protected")
        assert resp.status_code == 302
        assert "Max-Age=-1" in resp.headers["set-cookie"]

    def test_public_routes_are_open(self, client: TestClient) -> None:
        """Health and login are not gated."""
        assert client.get("/health").status_code == 200
        assert client.get("/login").status_code == 200


# ── Logout ───────────────────────────────────────────────────────────


class TestLogout:
    """Tests for GET /logout."""

    def test_logout_ends_session(self, client: TestClient) -> None:
        """Logout deletes the session and clears the cookie."""
        cookie = _login(client).cookies["sid"]
        resp = client.get("/logout")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/"
        assert "Max-Age=-1" in resp.headers["set-cookie"]

        client.cookies.set("sid", cookie)
        assert client.get("/protected").status_code == 302

    def test_logout_without_session(self, client: TestClient) -> None:
        """Logout is harmless without a cookie."""
        resp = client.get("/logout")
        assert resp.status_code == 302
        assert "Max-Age=-1" in resp.headers["set-cookie"]


# ── Health ───────────────────────────────────────────────────────────


class TestHealth:
    """Tests for GET /health."""

    def test_healthy(self, client: TestClient) -> None:
        """A reachable store reports healthy."""
        assert client.get("/health").json() == {"status": "healthy", "store": "connected"}

    def test_unhealthy(self, idp: FakeIdentityProvider) -> None:
        """An unreachable store reports 503."""
        store = AsyncMock()
        store.ping.return_value = False
        client = TestClient(_create_test_app(idp, store=store))
        resp = client.get("/health")
        assert resp.status_code == 503
        assert resp.json()["status"] == "unhealthy"


class TestDescribeIdentity:
    """Tests for identity display helpers."""

    def test_google(self) -> None:
        """Email identities are Google users."""
        assert describe_identity("alice@example.com") == {
            "provider": "Google",
            "display_name": "alice@example.com",
            "identity": "alice@example.com",
        }

    def test_twitter(self) -> None:
        """The Twitter suffix is stripped for display."""
        info = describe_identity("bob@twitter.local")
        assert info["provider"] == "Twitter"
        assert info["display_name"] == "bob"
