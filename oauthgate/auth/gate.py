"""Request-time authentication gate.

``AuthenticationGate`` decides whether a session cookie admits a request.
``AuthGateMiddleware`` applies that decision to protected path prefixes
and attaches the admitted user to ``request.state.user``.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import logging

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from fastapi import HTTPException, Request
from starlette.requests import HTTPConnection
from starlette.responses import JSONResponse, RedirectResponse

from ..log import mask_secret
from ..state.types import AuthenticatedUser


if TYPE_CHECKING:
    from collections.abc import Iterable

    from starlette.responses import Response

    from ..state.base import SessionStore
    from .cookies import CookieCodec


logger = logging.getLogger("oauthgate.auth")


@dataclass(frozen=True)
class GateDecision:
    """Outcome of checking one request's session cookie.

    Attributes
    ----------
    user : AuthenticatedUser or None
        The admitted user, None when denied.
    clear_cookie : bool
        Whether the response must remove the session cookie.
    reason : str
        Short reason for logs ("ok", "missing", "expired", ...).
    """

    user: AuthenticatedUser | None
    clear_cookie: bool = False
    reason: str = "ok"

    @property
    def admitted(self) -> bool:
        """True if the request may proceed."""
        return self.user is not None

    @classmethod
    def deny(cls, reason: str, *, clear_cookie: bool) -> GateDecision:
        """Build a denial."""
        return cls(user=None, clear_cookie=clear_cookie, reason=reason)


class AuthenticationGate:
    """Validate session cookies against the session store.

    Never raises for a bad session: every failure becomes a denial. Expiry
    is not extended on access.

    Parameters
    ----------
    store : SessionStore
        Session store to look sessions up in.
    codec : CookieCodec
        Decrypts the cookie value into a session id.
    """

    def __init__(self, store: SessionStore, codec: CookieCodec) -> None:
        self.store = store
        self.codec = codec

    async def authenticate(self, cookie_value: str | None) -> GateDecision:
        """Check a raw session cookie value.

        Parameters
        ----------
        cookie_value : str or None
            The session cookie as sent by the client.

        Returns
        -------
        GateDecision
            Admission with the user, or denial; a denial for a cookie that
            was present but invalid asks for the cookie to be cleared.
        """
        if not cookie_value:
            return GateDecision.deny("missing", clear_cookie=False)

        session_id = self.codec.decode(cookie_value)
        if session_id is None:
            return GateDecision.deny("undecryptable", clear_cookie=True)

        try:
            session = await self.store.find_session(session_id)
        except Exception:
            logger.exception("Session lookup failed for %s", mask_secret(session_id))
            return GateDecision.deny("store_error", clear_cookie=True)

        if session is None:
            return GateDecision.deny("unknown", clear_cookie=True)
        if session.is_expired():
            return GateDecision.deny("expired", clear_cookie=True)

        return GateDecision(user=AuthenticatedUser.from_session(session))


def _matches(path: str, prefixes: Iterable[str]) -> bool:
    for prefix in prefixes:
        base = prefix.rstrip("/")
        if path == base or path.startswith(base + "/"):
            return True
    return False


class AuthGateMiddleware:
    """ASGI middleware enforcing the authentication gate.

    Requests outside ``protected_prefixes`` and ``api_prefixes`` pass
    through untouched. Denied page requests are redirected to
    ``login_path``; denied API requests get a 401 JSON body.
    """

    def __init__(
        self,
        app: Any,
        gate: AuthenticationGate,
        protected_prefixes: Iterable[str] = ("/protected",),
        api_prefixes: Iterable[str] = ("/api",),
        login_path: str = "/login",
    ) -> None:
        """Initialize the middleware.

        Parameters
        ----------
        app : ASGI application
            The wrapped application.
        gate : AuthenticationGate
            Decides admission.
        protected_prefixes : Iterable[str]
            Page path prefixes that require a session.
        api_prefixes : Iterable[str]
            API path prefixes that require a session and answer 401.
        login_path : str
            Where denied page requests are redirected.
        """
        self.app = app
        self.gate = gate
        self.protected_prefixes = tuple(protected_prefixes)
        self.api_prefixes = tuple(api_prefixes)
        self.login_path = login_path

    def is_api(self, path: str) -> bool:
        """Whether ``path`` is an API route."""
        return _matches(path, self.api_prefixes)

    def is_protected(self, path: str) -> bool:
        """Whether ``path`` requires a session."""
        return self.is_api(path) or _matches(path, self.protected_prefixes)

    def deny_response(self, path: str, decision: GateDecision) -> Response:
        """Build the response for a denied request."""
        response: Response
        if self.is_api(path):
            response = JSONResponse(
                status_code=401,
                content={
                    "error": "not_authenticated",
                    "error_description": "Authentication required",
                },
            )
        else:
            response = RedirectResponse(url=self.login_path, status_code=302)
        if decision.clear_cookie:
            self.gate.codec.removal().apply(response)
        return response

    async def __call__(
        self,
        scope: dict[str, Any],
        receive: Any,
        send: Any,
    ) -> None:
        """Handle ASGI request."""
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        path = scope.get("path", "")
        if not self.is_protected(path):
            await self.app(scope, receive, send)
            return

        conn = HTTPConnection(scope)
        decision = await self.gate.authenticate(conn.cookies.get(self.gate.codec.cookie_name))
        if not decision.admitted:
            logger.debug("Denied %s (%s)", path, decision.reason)
            response = self.deny_response(path, decision)
            await response(scope, receive, send)
            return

        scope.setdefault("state", {})["user"] = decision.user
        await self.app(scope, receive, send)


def current_user(request: Request) -> AuthenticatedUser:
    """FastAPI dependency returning the user admitted by the gate.

    Raises
    ------
    HTTPException
        401 if the route is not behind the gate or the request was not
        admitted.
    """
    user = getattr(request.state, "user", None)
    if not isinstance(user, AuthenticatedUser):
        raise HTTPException(status_code=401, detail="Authentication required")
    return user
