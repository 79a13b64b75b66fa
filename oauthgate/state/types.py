"""Type definitions for oauthgate state management.

Shared types used across session store implementations and the login flow.
"""

from __future__ import annotations

import time

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol


class StateBackend(str, Enum):
    """Available session storage backends."""

    MEMORY = "memory"
    REDIS = "redis"


@dataclass
class UserRecord:
    """Durable local user keyed by canonical identity.

    Attributes
    ----------
    user_id : int
        Store-assigned numeric id.
    identity : str
        Canonical identity (email, or ``username@twitter.local``).
    created_at : float
        Unix timestamp of the first login.
    last_updated : float
        Unix timestamp of the most recent login.
    """

    user_id: int
    identity: str
    created_at: float = 0.0
    last_updated: float = 0.0


@dataclass
class SessionRecord:
    """Server-side session row.

    Attributes
    ----------
    session_id : str
        Opaque random session identifier.
    user_id : int
        Owning user id.
    identity : str
        Owning user's canonical identity.
    created_at : float
        Unix timestamp when the session was issued.
    expires_at : float
        Unix timestamp after which the session is invalid.
    """

    session_id: str
    user_id: int
    identity: str
    created_at: float = 0.0
    expires_at: float = 0.0

    def is_expired(self, now: float | None = None) -> bool:
        """Check whether the session is past its expiry."""
        now = time.time() if now is None else now
        return self.expires_at <= now


class AccessToken(Protocol):
    """The part of a provider token the session issuer relies on."""

    @property
    def access_token(self) -> str: ...

    @property
    def expires_in(self) -> int | None: ...


@dataclass
class OAuthTokenSet:
    """OAuth2 token set returned by a provider.

    Only held in memory for the duration of the callback request.

    Attributes
    ----------
    access_token : str
        The access token for API requests.
    token_type : str
        Token type, typically "Bearer".
    expires_in : int or None
        Token lifetime in seconds from issuance.
    scope : str
        Space-separated list of granted scopes.
    raw : dict[str, Any]
        The raw token response from the provider.
    """

    access_token: str
    token_type: str = "Bearer"  # noqa: S105
    expires_in: int | None = None
    scope: str = ""
    raw: dict[str, Any] = field(default_factory=dict)

    def __repr__(self) -> str:
        return (
            f"OAuthTokenSet(token_type={self.token_type!r}, "
            f"expires_in={self.expires_in!r}, scope={self.scope!r})"
        )


@dataclass(frozen=True)
class AuthenticatedUser:
    """Identity admitted by the authentication gate.

    Attributes
    ----------
    identity : str
        Canonical identity.
    user_id : int
        Local user id.
    session_id : str
        The session that authenticated the request.
    expires_at : float
        Session expiry timestamp.
    """

    identity: str
    user_id: int
    session_id: str
    expires_at: float

    @classmethod
    def from_session(cls, session: SessionRecord) -> AuthenticatedUser:
        """Build the admitted user view of a session row."""
        return cls(
            identity=session.identity,
            user_id=session.user_id,
            session_id=session.session_id,
            expires_at=session.expires_at,
        )

