"""Abstract base class for pluggable session storage.

The login flow and the authentication gate only talk to this interface,
so the backing store (memory, Redis, ...) can be swapped per deployment.
"""

# pylint: disable=unnecessary-ellipsis
# Ellipsis (...) is the standard Python idiom for abstract method bodies

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from .types import SessionRecord, UserRecord


class SessionStore(ABC):
    """Abstract user and session storage interface.

    Holds at most one session per user: ``upsert_session`` replaces
    whatever session the user had before. Implementations must be safe
    to call concurrently from many request handlers.
    """

    @abstractmethod
    async def upsert_user(self, identity: str) -> UserRecord:
        """Create the user on first login, bump ``last_updated`` otherwise.

        Parameters
        ----------
        identity : str
            Canonical identity of the user.

        Returns
        -------
        UserRecord
            The created or updated user.
        """
        ...

    @abstractmethod
    async def get_user(self, identity: str) -> UserRecord | None:
        """Look up a user by canonical identity.

        Parameters
        ----------
        identity : str
            Canonical identity of the user.

        Returns
        -------
        UserRecord or None
            The user if known, None otherwise.
        """
        ...

    @abstractmethod
    async def upsert_session(
        self,
        user: UserRecord,
        session_id: str,
        expires_at: float,
    ) -> SessionRecord:
        """Store the user's session, replacing any previous one.

        Parameters
        ----------
        user : UserRecord
            The owning user.
        session_id : str
            New opaque session identifier.
        expires_at : float
            Unix timestamp when the session expires.

        Returns
        -------
        SessionRecord
            The stored session.
        """
        ...

    @abstractmethod
    async def find_session(self, session_id: str) -> SessionRecord | None:
        """Look up a session by id.

        Expired rows may still be returned; callers decide validity
        with :meth:`SessionRecord.is_expired`.

        Parameters
        ----------
        session_id : str
            The session id.

        Returns
        -------
        SessionRecord or None
            The session if found, None otherwise.
        """
        ...

    @abstractmethod
    async def delete_session(self, session_id: str) -> bool:
        """Delete a session.

        Parameters
        ----------
        session_id : str
            The session id to delete.

        Returns
        -------
        bool
            True if a session was deleted, False if it did not exist.
        """
        ...

    @abstractmethod
    async def ping(self) -> bool:
        """Check that the store is reachable.

        Returns
        -------
        bool
            True if the backend answered.
        """
        ...

    async def close(self) -> None:  # noqa: B027
        """Release backend resources. Call from app shutdown lifecycle."""
