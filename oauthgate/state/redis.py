"""Redis session store.

Production backend for multi-worker deployments.

Key layout (``prefix`` defaults to ``oauthgate``):

- ``{prefix}:users:seq`` counter for numeric user ids
- ``{prefix}:user:{identity}`` hash with the user record
- ``{prefix}:session:{session_id}`` hash with the session record
- ``{prefix}:user_session:{user_id}`` current session id of a user

Session keys expire at the session's own expiry timestamp.
"""

from __future__ import annotations

import logging
import math
import time

from typing import TYPE_CHECKING, Any

from redis.asyncio import Redis as RedisClient
from redis.exceptions import RedisError, WatchError

from .base import SessionStore
from .types import SessionRecord, UserRecord


if TYPE_CHECKING:
    from redis.asyncio import Redis


logger = logging.getLogger("oauthgate.state")


class RedisSessionStore(SessionStore):
    """Redis-backed user and session store.

    Uses Redis hashes for records, with a per-user pointer to the current
    session so a new login evicts the previous one.
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        prefix: str = "oauthgate",
        *,
        redis_client: Redis | None = None,
    ) -> None:
        """Initialize the Redis session store.

        Parameters
        ----------
        redis_url : str
            Redis connection URL.
        prefix : str
            Key prefix for Redis keys.
        redis_client : Redis, optional
            Pre-configured Redis client (for testing with fakeredis).
        """
        self._redis_url = redis_url
        self._prefix = prefix
        self._client = redis_client
        self._owns_client = redis_client is None

    def _user_seq_key(self) -> str:
        return f"{self._prefix}:users:seq"

    def _user_key(self, identity: str) -> str:
        """Get Redis key for a user record."""
        return f"{self._prefix}:user:{identity}"

    def _session_key(self, session_id: str) -> str:
        """Get Redis key for a session."""
        return f"{self._prefix}:session:{session_id}"

    def _user_session_key(self, user_id: int) -> str:
        """Get Redis key holding the user's current session id."""
        return f"{self._prefix}:user_session:{user_id}"

    async def _redis(self) -> Any:
        """Get the Redis connection, creating it on first use."""
        if self._client is None:
            self._client = RedisClient.from_url(
                self._redis_url,
                decode_responses=True,
            )
        return self._client

    @staticmethod
    def _to_user(data: dict[str, str]) -> UserRecord:
        return UserRecord(
            user_id=int(data["user_id"]),
            identity=data.get("identity", ""),
            created_at=float(data.get("created_at", 0)),
            last_updated=float(data.get("last_updated", 0)),
        )

    async def upsert_user(self, identity: str) -> UserRecord:
        """Create the user on first login, bump ``last_updated`` otherwise."""
        r = await self._redis()
        key = self._user_key(identity)
        now = str(time.time())

        if not await r.hexists(key, "user_id"):
            candidate = await r.incr(self._user_seq_key())
            # Concurrent first logins race here; the first writer wins.
            await r.hsetnx(key, "user_id", candidate)
            await r.hsetnx(key, "created_at", now)

        await r.hset(key, mapping={"identity": identity, "last_updated": now})
        data = await r.hgetall(key)
        return self._to_user(data)

    async def get_user(self, identity: str) -> UserRecord | None:
        """Look up a user by canonical identity."""
        r = await self._redis()
        data = await r.hgetall(self._user_key(identity))
        if not data:
            return None
        return self._to_user(data)

    async def upsert_session(
        self,
        user: UserRecord,
        session_id: str,
        expires_at: float,
    ) -> SessionRecord:
        """Store the user's session, replacing any previous one."""
        r = await self._redis()
        now = time.time()
        session = SessionRecord(
            session_id=session_id,
            user_id=user.user_id,
            identity=user.identity,
            created_at=now,
            expires_at=expires_at,
        )

        key = self._session_key(session_id)
        pointer = self._user_session_key(user.user_id)
        expire_ts = math.ceil(expires_at)
        data = {
            "user_id": str(user.user_id),
            "identity": user.identity,
            "created_at": str(now),
            "expires_at": str(expires_at),
        }

        async with r.pipeline() as pipe:
            await pipe.hset(key, mapping=data)
            await pipe.expireat(key, expire_ts)
            await pipe.getset(pointer, session_id)
            await pipe.expireat(pointer, expire_ts)
            results = await pipe.execute()

        previous = results[2]
        if previous and previous != session_id:
            await r.delete(self._session_key(previous))
            logger.debug("Replaced previous session of user %s", user.user_id)

        return session

    async def find_session(self, session_id: str) -> SessionRecord | None:
        """Look up a session by id."""
        r = await self._redis()
        data = await r.hgetall(self._session_key(session_id))
        if not data:
            return None

        return SessionRecord(
            session_id=session_id,
            user_id=int(data.get("user_id", 0)),
            identity=data.get("identity", ""),
            created_at=float(data.get("created_at", 0)),
            expires_at=float(data.get("expires_at", 0)),
        )

    async def delete_session(self, session_id: str) -> bool:
        """Delete a session.

        The user's current-session pointer is removed only while it still
        names this session. The pointer is watched and the transaction retried
        when a concurrent login moves it.
        """
        r = await self._redis()
        key = self._session_key(session_id)

        user_id = await r.hget(key, "user_id")
        if not user_id:
            return False

        pointer = self._user_session_key(int(user_id))
        async with r.pipeline() as pipe:
            while True:
                try:
                    await pipe.watch(pointer)
                    current = await pipe.get(pointer)
                    pipe.multi()
                    pipe.delete(key)
                    if current == session_id:
                        pipe.delete(pointer)
                    await pipe.execute()
                    break
                except WatchError:
                    logger.debug("Session pointer of user %s changed, retrying", user_id)
        return True

    async def ping(self) -> bool:
        """Check that Redis answers a PING."""
        try:
            r = await self._redis()
            return bool(await r.ping())
        except RedisError as exc:
            logger.warning("Redis ping failed: %s", exc)
            return False

    async def close(self) -> None:
        """Close the Redis connection if this store created it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
