"""Session storage for oauthgate.

Provides the abstract ``SessionStore`` plus in-memory and Redis backends.
"""

from __future__ import annotations

from ._factory import create_session_store, get_state_backend
from .base import SessionStore
from .memory import MemorySessionStore
from .types import (
    AccessToken,
    AuthenticatedUser,
    OAuthTokenSet,
    SessionRecord,
    StateBackend,
    UserRecord,
)


__all__ = [
    "AccessToken",
    "AuthenticatedUser",
    "MemorySessionStore",
    "OAuthTokenSet",
    "SessionRecord",
    "SessionStore",
    "StateBackend",
    "UserRecord",
    "create_session_store",
    "get_state_backend",
]
