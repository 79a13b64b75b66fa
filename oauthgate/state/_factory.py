"""Internal factory for session stores.

Kept separate from ``__init__`` so the Redis client is only imported
when the Redis backend is selected.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .memory import MemorySessionStore
from .types import StateBackend


if TYPE_CHECKING:
    from ..config import StoreSettings
    from .base import SessionStore


def get_state_backend(settings: StoreSettings) -> StateBackend:
    """Get the configured state backend.

    Parameters
    ----------
    settings : StoreSettings
        The store section of the application settings.

    Returns
    -------
    StateBackend
        The configured backend (MEMORY or REDIS).
    """
    return StateBackend(settings.backend.lower())


def create_session_store(settings: StoreSettings) -> SessionStore:
    """Create the configured session store instance.

    Parameters
    ----------
    settings : StoreSettings
        The store section of the application settings.

    Returns
    -------
    SessionStore
        A new store; the caller owns it and must ``close()`` it.
    """
    if get_state_backend(settings) == StateBackend.REDIS:
        from .redis import RedisSessionStore

        return RedisSessionStore(
            redis_url=settings.redis_url,
            prefix=settings.redis_prefix,
        )

    return MemorySessionStore()
