"""FastAPI routes for the OAuth2 login flow.

Provides login-initiate, callback and logout endpoints. Failures are
answered with a generic JSON error body; the details only go to the log.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import contextlib
import logging

from typing import TYPE_CHECKING

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from ..exceptions import MissingVerifier, OAuthGateException


if TYPE_CHECKING:
    from ..config import SessionSettings
    from .flow import LoginFlow
    from .session import SessionIssuer


logger = logging.getLogger("oauthgate.auth")


def error_response(exc: OAuthGateException) -> JSONResponse:
    """Log ``exc`` and build the client-facing error response.

    Parameters
    ----------
    exc : OAuthGateException
        The failure to report.

    Returns
    -------
    JSONResponse
        ``{"error": ..., "error_description": ...}`` with the exception's
        status code and generic public message.
    """
    if exc.status_code >= 500:
        logger.error("Login failed: %s", exc, exc_info=exc.__cause__ or exc)
    else:
        logger.warning("Login failed: %s", exc)
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.error_code,
            "error_description": exc.public_message,
        },
    )


def create_auth_router(
    flow: LoginFlow,
    issuer: SessionIssuer,
    session_settings: SessionSettings,
) -> APIRouter:
    """Create a FastAPI router with the login flow routes.

    Parameters
    ----------
    flow : LoginFlow
        Login flow orchestrator.
    issuer : SessionIssuer
        Session issuer, used for logout.
    session_settings : SessionSettings
        Cookie name and redirect targets.

    Returns
    -------
    APIRouter
        Router with ``/login-initiate/{provider}``, ``/callback/{provider}``
        and ``/logout``.
    """
    router = APIRouter(tags=["authentication"])

    @router.get("/login-initiate/{provider}")
    async def login_initiate(provider: str) -> Response:
        """Redirect the browser to the provider's authorization page."""
        try:
            auth_request = flow.build_authorization_url(provider)
        except OAuthGateException as exc:
            return error_response(exc)
        return RedirectResponse(url=auth_request.url, status_code=302)

    @router.get("/callback/{provider}")
    async def login_callback(
        provider: str,
        code: str | None = None,
        state: str | None = None,
        error: str | None = None,
        error_description: str | None = None,
    ) -> Response:
        """Handle the provider redirect back to the application.

        Consumes the pending attempt, exchanges the code, resolves the
        identity, stores the session and sets the session cookie.
        """
        if error:
            logger.warning(
                "Provider %s returned error %r: %s",
                provider,
                error,
                error_description or "-",
            )
            with contextlib.suppress(MissingVerifier):
                flow.verifiers.consume(state)
            return JSONResponse(
                status_code=400,
                content={
                    "error": "provider_error",
                    "error_description": "The identity provider did not complete the sign-in",
                },
            )

        if not code:
            return JSONResponse(
                status_code=400,
                content={
                    "error": "missing_code",
                    "error_description": "Authorization code not provided",
                },
            )

        try:
            result = await flow.complete(provider, code, state)
        except OAuthGateException as exc:
            return error_response(exc)

        response = RedirectResponse(url=session_settings.landing_path, status_code=302)
        return result.cookie.apply(response)

    @router.get("/logout")
    async def logout(request: Request) -> Response:
        """Delete the current session, if any, and clear the cookie."""
        cookie = await issuer.logout(request.cookies.get(session_settings.cookie_name))
        response = RedirectResponse(url=session_settings.logout_redirect, status_code=302)
        return cookie.apply(response)

    return router
