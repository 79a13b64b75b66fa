"""Pytest configuration and fixtures."""

from __future__ import annotations

import os

from base64 import urlsafe_b64encode
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from oauthgate.config import (
    FlowSettings,
    GoogleSettings,
    OAuthGateSettings,
    SessionSettings,
    TwitterSettings,
    clear_settings,
)


if TYPE_CHECKING:
    from collections.abc import Generator
    from pathlib import Path


FERNET_KEY = urlsafe_b64encode(b"oauthgate-test-cookie-key-32byte").decode("ascii")
BASE_URL = "https://app.test"


@pytest.fixture(autouse=True)
def _isolate_environment(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> Generator[None, None, None]:
    """Run every test without OAUTHGATE_* variables or config files."""
    for name in list(os.environ):
        if name.startswith("OAUTHGATE"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    clear_settings()
    yield
    clear_settings()


def make_settings(
    *,
    google: bool = True,
    twitter: bool = True,
    **session_overrides: Any,
) -> OAuthGateSettings:
    """Build settings with both providers configured and a fixed cookie key."""
    session = {"secret_key": FERNET_KEY, **session_overrides}
    return OAuthGateSettings(
        google=GoogleSettings(
            client_id="google-client" if google else "",
            client_secret="google-secret" if google else "",
        ),
        twitter=TwitterSettings(
            client_id="twitter-client" if twitter else "",
            client_secret="twitter-secret" if twitter else "",
        ),
        session=SessionSettings(**session),
        flow=FlowSettings(public_base_url=BASE_URL),
    )


class FakeIdentityProvider:
    """In-process stand-in for the Google and Twitter HTTP endpoints."""

    def __init__(self) -> None:
        self.token_status = 200
        self.token_payload: dict[str, Any] = {
            "access_token": "provider-access-token",
            "token_type": "bearer",
            "expires_in": 7200,
        }
        self.userinfo_status = 200
        self.google_userinfo: Any = {"sub": "1", "email": "alice@example.com"}
        self.twitter_userinfo: Any = {"data": {"id": "42", "username": "bob"}}
        self.error: Exception | None = None
        self.token_requests: list[httpx.Request] = []
        self.userinfo_requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        if self.error is not None:
            raise self.error
        path = request.url.path
        if path in ("/token", "/2/oauth2/token"):
            self.token_requests.append(request)
            return httpx.Response(self.token_status, json=self.token_payload)
        if request.url.host == "openidconnect.googleapis.com":
            self.userinfo_requests.append(request)
            return httpx.Response(self.userinfo_status, json=self.google_userinfo)
        if path == "/2/users/me":
            self.userinfo_requests.append(request)
            return httpx.Response(self.userinfo_status, json=self.twitter_userinfo)
        return httpx.Response(404, json={"error": "not_found"})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def last_token_form(self) -> dict[str, str]:
        """Decode the form body of the most recent token request."""
        body = parse_qs(self.token_requests[-1].content.decode("ascii"))
        return {k: v[0] for k, v in body.items()}


def query_of(url: str) -> dict[str, str]:
    """Return the query parameters of ``url`` as a flat dict."""
    return {k: v[0] for k, v in parse_qs(urlparse(url).query).items()}


@pytest.fixture
def idp() -> FakeIdentityProvider:
    """Fake identity provider endpoints."""
    return FakeIdentityProvider()


@pytest.fixture
def settings() -> OAuthGateSettings:
    """Settings with Google and Twitter configured."""
    return make_settings()
