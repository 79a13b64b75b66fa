"""FastAPI application factory.

Wires settings, session store, providers, login flow and the
authentication gate into one ASGI application.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import logging

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from .auth.cookies import CookieCodec
from .auth.flow import LoginFlow
from .auth.gate import AuthenticationGate, AuthGateMiddleware, current_user
from .auth.pkce import PKCEVerifierStore
from .auth.providers import TWITTER_IDENTITY_SUFFIX, ProviderRegistry
from .auth.routes import create_auth_router, error_response
from .auth.session import SessionIssuer
from .config import get_settings
from .exceptions import OAuthGateException
from .log import configure as configure_logging
from .state import create_session_store
from .state.types import AuthenticatedUser


if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    import httpx

    from .config import OAuthGateSettings
    from .state.base import SessionStore


logger = logging.getLogger("oauthgate")


def describe_identity(identity: str) -> dict[str, str]:
    """Split a canonical identity into provider and display name.

    Parameters
    ----------
    identity : str
        Canonical identity.

    Returns
    -------
    dict[str, str]
        ``provider`` ("Twitter" or "Google"), ``display_name`` and
        ``identity``.
    """
    if identity.endswith(TWITTER_IDENTITY_SUFFIX):
        return {
            "provider": "Twitter",
            "display_name": identity[: -len(TWITTER_IDENTITY_SUFFIX)],
            "identity": identity,
        }
    return {"provider": "Google", "display_name": identity, "identity": identity}


def create_app(
    settings: OAuthGateSettings | None = None,
    *,
    store: SessionStore | None = None,
    registry: ProviderRegistry | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """Build the application.

    Parameters
    ----------
    settings : OAuthGateSettings, optional
        Application settings; loaded from the environment when omitted.
    store : SessionStore, optional
        Session store to use instead of the configured backend.
    registry : ProviderRegistry, optional
        Provider registry to use instead of building one from settings.
    http_client : httpx.AsyncClient, optional
        Client handed to providers built from settings.

    Returns
    -------
    FastAPI
        The configured application. Shared components are exposed on
        ``app.state`` (``flow``, ``issuer``, ``gate``, ``store``).

    Raises
    ------
    ConfigurationError
        If the provider configuration or the cookie key is invalid.
    """
    settings = settings or get_settings()
    configure_logging(settings.log)

    codec = CookieCodec.from_settings(settings.session)
    registry = registry or ProviderRegistry.from_settings(settings, http_client=http_client)
    store = store or create_session_store(settings.store)
    verifiers = PKCEVerifierStore(
        max_pending=settings.flow.max_pending,
        max_age=settings.flow.state_ttl,
    )
    issuer = SessionIssuer(store, codec, default_ttl=settings.session.default_ttl)
    flow = LoginFlow(registry, verifiers, issuer)
    gate = AuthenticationGate(store, codec)

    @asynccontextmanager
    async def lifespan(
        app: FastAPI,  # pylint: disable=unused-argument
    ) -> AsyncIterator[None]:
        logger.info("Providers configured: %s", ", ".join(registry.ids))
        yield
        await registry.close()
        await store.close()

    app = FastAPI(title="oauthgate", lifespan=lifespan)
    app.state.settings = settings
    app.state.flow = flow
    app.state.issuer = issuer
    app.state.gate = gate
    app.state.store = store

    app.add_middleware(
        AuthGateMiddleware,
        gate=gate,
        protected_prefixes=settings.session.protected_prefixes,
        api_prefixes=settings.session.api_prefixes,
        login_path=settings.session.login_path,
    )

    @app.exception_handler(OAuthGateException)
    async def handle_oauthgate_error(
        request: Request,  # pylint: disable=unused-argument
        exc: OAuthGateException,
    ) -> JSONResponse:
        return error_response(exc)

    app.include_router(create_auth_router(flow, issuer, settings.session))

    @app.get("/health")
    async def health() -> JSONResponse:
        """Report whether the session store is reachable."""
        if await store.ping():
            return JSONResponse(content={"status": "healthy", "store": "connected"})
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "store": "disconnected"},
        )

    @app.get(settings.session.login_path)
    async def login_options() -> dict[str, Any]:
        """List the configured providers and their login entry points."""
        return {
            "providers": [
                {"id": pid, "login_url": f"/login-initiate/{pid}"} for pid in registry.ids
            ]
        }

    @app.get("/protected")
    async def protected(user: AuthenticatedUser = Depends(current_user)) -> dict[str, Any]:
        """Greet the authenticated user."""
        profile = describe_identity(user.identity)
        return {
            "message": f"Welcome, {profile['display_name']}",
            "identity": user.identity,
            "provider": profile["provider"],
        }

    @app.get("/protected/profile")
    async def profile(user: AuthenticatedUser = Depends(current_user)) -> dict[str, Any]:
        """Return the authenticated user's profile."""
        return {**describe_identity(user.identity), "session_expires_at": user.expires_at}

    @app.get("/api/me")
    async def me(user: AuthenticatedUser = Depends(current_user)) -> dict[str, Any]:
        """Return the authenticated user as JSON."""
        return {
            "identity": user.identity,
            "user_id": user.user_id,
            "expires_at": user.expires_at,
        }

    return app
