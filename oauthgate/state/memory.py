"""In-memory session store.

Default backend for single-process deployments and development.
"""

from __future__ import annotations

import asyncio
import itertools
import time

from .base import SessionStore
from .types import SessionRecord, UserRecord


class MemorySessionStore(SessionStore):
    """In-memory session store for single-process deployments.

    Thread-safe implementation using asyncio locks. Users are keyed by
    identity, sessions by session id, with a user-to-session index that
    enforces the one-session-per-user rule.
    """

    def __init__(self) -> None:
        """Initialize the memory session store."""
        self._users: dict[str, UserRecord] = {}
        self._sessions: dict[str, SessionRecord] = {}
        self._user_session: dict[int, str] = {}
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()

    async def upsert_user(self, identity: str) -> UserRecord:
        """Create the user on first login, bump ``last_updated`` otherwise."""
        async with self._lock:
            now = time.time()
            user = self._users.get(identity)
            if user is None:
                user = UserRecord(
                    user_id=next(self._ids),
                    identity=identity,
                    created_at=now,
                    last_updated=now,
                )
                self._users[identity] = user
            else:
                user.last_updated = now
            return user

    async def get_user(self, identity: str) -> UserRecord | None:
        """Look up a user by canonical identity."""
        async with self._lock:
            return self._users.get(identity)

    async def upsert_session(
        self,
        user: UserRecord,
        session_id: str,
        expires_at: float,
    ) -> SessionRecord:
        """Store the user's session, replacing any previous one."""
        async with self._lock:
            previous = self._user_session.pop(user.user_id, None)
            if previous is not None:
                self._sessions.pop(previous, None)

            session = SessionRecord(
                session_id=session_id,
                user_id=user.user_id,
                identity=user.identity,
                created_at=time.time(),
                expires_at=expires_at,
            )
            self._sessions[session_id] = session
            self._user_session[user.user_id] = session_id
            return session

    async def find_session(self, session_id: str) -> SessionRecord | None:
        """Look up a session by id."""
        async with self._lock:
            return self._sessions.get(session_id)

    async def delete_session(self, session_id: str) -> bool:
        """Delete a session."""
        async with self._lock:
            session = self._sessions.pop(session_id, None)
            if session is None:
                return False
            if self._user_session.get(session.user_id) == session_id:
                del self._user_session[session.user_id]
            return True

    async def ping(self) -> bool:
        """Always reachable."""
        return True

    async def purge_expired(self) -> int:
        """Drop expired sessions. Returns the number removed."""
        async with self._lock:
            now = time.time()
            expired = [sid for sid, s in self._sessions.items() if s.is_expired(now)]
            for sid in expired:
                session = self._sessions.pop(sid)
                if self._user_session.get(session.user_id) == sid:
                    del self._user_session[session.user_id]
            return len(expired)
