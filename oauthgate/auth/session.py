"""Session issuance and logout.

Turns a resolved identity plus the provider's access token into a
server-side session and the cookie that references it.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import logging
import secrets
import time

from typing import TYPE_CHECKING

from ..exceptions import SessionPersistenceFailed
from ..log import mask_secret


if TYPE_CHECKING:
    from ..state.base import SessionStore
    from ..state.types import AccessToken, SessionRecord
    from .cookies import CookieCodec, SessionCookie


logger = logging.getLogger("oauthgate.auth")

DEFAULT_SESSION_TTL = 3600


def generate_session_id() -> str:
    """Generate an opaque, unguessable session id."""
    return secrets.token_urlsafe(32)


class SessionIssuer:
    """Create and destroy sessions in a ``SessionStore``.

    Parameters
    ----------
    store : SessionStore
        Where users and sessions are persisted.
    codec : CookieCodec
        Encrypts the session id into the cookie value.
    default_ttl : int
        Session lifetime when the provider reports no ``expires_in``.
    """

    def __init__(
        self,
        store: SessionStore,
        codec: CookieCodec,
        default_ttl: int = DEFAULT_SESSION_TTL,
    ) -> None:
        self.store = store
        self.codec = codec
        self.default_ttl = default_ttl

    async def issue_session(self, identity: str, token: AccessToken) -> SessionCookie:
        """Persist a session for ``identity`` and return its cookie.

        Any session the user already had is replaced. The session lives as
        long as the provider's token, or ``default_ttl`` seconds.

        Parameters
        ----------
        identity : str
            Canonical identity from the identity resolver.
        token : AccessToken
            The provider token; only ``expires_in`` is read.

        Returns
        -------
        SessionCookie
            The cookie to set on the response.

        Raises
        ------
        SessionPersistenceFailed
            If the store rejects the user or session write. No cookie is
            produced in that case.
        """
        ttl = token.expires_in or self.default_ttl
        session_id = generate_session_id()
        expires_at = time.time() + ttl

        try:
            user = await self.store.upsert_user(identity)
            session = await self.store.upsert_session(user, session_id, expires_at)
        except Exception as exc:
            msg = f"Could not persist session: {exc!r}"
            raise SessionPersistenceFailed(msg, identity=identity) from exc

        logger.info(
            "Issued session %s for user %s (ttl=%ss)",
            mask_secret(session.session_id),
            user.user_id,
            ttl,
        )
        return self.codec.issue(session.session_id, max_age=ttl)

    async def lookup(self, cookie_value: str | None) -> SessionRecord | None:
        """Resolve a cookie value to its stored session, valid or not.

        Store errors propagate to the caller.
        """
        session_id = self.codec.decode(cookie_value)
        if session_id is None:
            return None
        return await self.store.find_session(session_id)

    async def logout(self, cookie_value: str | None) -> SessionCookie:
        """Delete the session behind ``cookie_value`` and clear the cookie.

        Best effort: a missing, undecryptable or already deleted session
        still yields the removal cookie, and store errors are only logged.

        Parameters
        ----------
        cookie_value : str or None
            The raw session cookie from the request.

        Returns
        -------
        SessionCookie
            The removal cookie.
        """
        session_id = self.codec.decode(cookie_value)
        if session_id is not None:
            try:
                deleted = await self.store.delete_session(session_id)
            except Exception:
                logger.exception("Failed to delete session %s", mask_secret(session_id))
            else:
                logger.info(
                    "Logout for session %s (%s)",
                    mask_secret(session_id),
                    "deleted" if deleted else "already gone",
                )
        return self.codec.removal()
