"""PKCE (Proof Key for Code Exchange) implementation.

RFC 7636 - Proof Key for Code Exchange for OAuth 2.0 public clients.
Uses S256 challenge method (SHA-256 hash of the code verifier).

``PKCEVerifierStore`` keeps one entry per login attempt, keyed by the
random value sent to the provider as ``state``. Entries are single-use.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
import threading
import time

from base64 import urlsafe_b64encode
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ..exceptions import MissingVerifier
from ..log import mask_secret


if TYPE_CHECKING:
    from collections.abc import Callable


logger = logging.getLogger("oauthgate.auth")


@dataclass(frozen=True)
class PKCEChallenge:
    """PKCE code verifier and challenge pair.

    Attributes
    ----------
    verifier : str
        The code verifier (high-entropy random string).
    challenge : str
        The code challenge (base64url-encoded SHA-256 hash of verifier).
    method : str
        The challenge method, always "S256".
    """

    verifier: str
    challenge: str
    method: str = "S256"

    @classmethod
    def generate(cls, length: int = 64) -> PKCEChallenge:
        """Generate a new PKCE code verifier and challenge.

        Parameters
        ----------
        length : int
            Number of bytes for the random verifier (default 64).
            The encoded verifier must stay within RFC 7636's 43-128 chars.

        Returns
        -------
        PKCEChallenge
            A new PKCE challenge pair.
        """
        verifier = secrets.token_urlsafe(length)
        return cls(verifier=verifier, challenge=cls.challenge_for(verifier))

    @staticmethod
    def challenge_for(verifier: str) -> str:
        """Compute the S256 challenge for a verifier."""
        digest = hashlib.sha256(verifier.encode("ascii")).digest()
        return urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")

    def __repr__(self) -> str:
        return f"PKCEChallenge(challenge={self.challenge!r}, method={self.method!r})"


@dataclass(frozen=True)
class PendingAuthorization:
    """One in-flight login attempt.

    Attributes
    ----------
    provider : str
        Provider id the attempt was started for.
    verifier : str or None
        PKCE code verifier, None for providers without PKCE.
    created_at : float
        Monotonic timestamp of creation.
    """

    provider: str
    verifier: str | None = field(default=None, repr=False)
    created_at: float = 0.0


class PKCEVerifierStore:
    """Bounded, TTL-enforced store of pending login attempts.

    Thread-safe via ``threading.Lock``. Every mutation is a single
    critical section with no I/O inside it. Expired entries are evicted
    on every write and a hard capacity limit evicts the oldest attempt.

    Parameters
    ----------
    max_pending : int
        Maximum number of concurrent pending attempts.
    max_age : float
        Maximum age of a pending attempt in seconds.
    verifier_length : int
        Random bytes per PKCE verifier.
    clock : Callable[[], float]
        Monotonic time source.
    """

    def __init__(
        self,
        max_pending: int = 1000,
        max_age: float = 600.0,
        verifier_length: int = 64,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._store: dict[str, PendingAuthorization] = {}
        self._lock = threading.Lock()
        self._max_pending = max_pending
        self._max_age = max_age
        self._verifier_length = verifier_length

    @staticmethod
    def _new_key() -> str:
        return secrets.token_urlsafe(32)

    def _put(self, entry: PendingAuthorization) -> str:
        key = self._new_key()
        with self._lock:
            self._evict_expired()
            if len(self._store) >= self._max_pending:
                oldest_key = min(self._store, key=lambda k: self._store[k].created_at)
                del self._store[oldest_key]
                logger.warning("Pending login capacity reached, evicted oldest attempt")
            self._store[key] = entry
        return key

    def begin_pkce(self, provider: str) -> tuple[PKCEChallenge, str]:
        """Start a PKCE attempt.

        Parameters
        ----------
        provider : str
            Provider id the attempt belongs to.

        Returns
        -------
        tuple[PKCEChallenge, str]
            The challenge to embed in the authorization URL and the
            attempt key to send as ``state``.
        """
        pkce = PKCEChallenge.generate(self._verifier_length)
        key = self._put(
            PendingAuthorization(provider=provider, verifier=pkce.verifier, created_at=self._clock())
        )
        logger.debug("Stored PKCE verifier for %s attempt %s", provider, mask_secret(key))
        return pkce, key

    def begin_state(self, provider: str) -> str:
        """Start an attempt for a provider that does not use PKCE.

        Returns
        -------
        str
            The attempt key to send as ``state``.
        """
        key = self._put(PendingAuthorization(provider=provider, created_at=self._clock()))
        logger.debug("Stored state for %s attempt %s", provider, mask_secret(key))
        return key

    def consume(self, attempt_key: str | None, provider: str | None = None) -> PendingAuthorization:
        """Atomically remove and return a pending attempt.

        Parameters
        ----------
        attempt_key : str or None
            The ``state`` value echoed back by the provider.
        provider : str, optional
            When given, the attempt must have been started for this provider.

        Returns
        -------
        PendingAuthorization
            The removed attempt.

        Raises
        ------
        MissingVerifier
            If the key is empty, unknown, expired, already consumed, or was
            issued for a different provider.
        """
        if not attempt_key:
            msg = "Callback carried no state"
            raise MissingVerifier(msg, provider=provider)

        with self._lock:
            self._evict_expired()
            entry = self._store.pop(attempt_key, None)

        if entry is None:
            msg = "No pending login attempt for state"
            raise MissingVerifier(msg, provider=provider, state=mask_secret(attempt_key))
        if provider is not None and entry.provider != provider:
            msg = f"Login attempt was started for {entry.provider}"
            raise MissingVerifier(msg, provider=provider, state=mask_secret(attempt_key))
        return entry

    def consume_pkce(self, attempt_key: str | None, provider: str | None = None) -> str:
        """Atomically remove and return the verifier of a PKCE attempt.

        Raises
        ------
        MissingVerifier
            If no verifier is stored under the key.
        """
        entry = self.consume(attempt_key, provider)
        if entry.verifier is None:
            msg = "Login attempt has no PKCE verifier"
            raise MissingVerifier(msg, provider=provider, state=mask_secret(attempt_key))
        return entry.verifier

    def _evict_expired(self) -> None:
        """Remove all expired entries (caller must hold lock)."""
        cutoff = self._clock() - self._max_age
        expired = [k for k, v in self._store.items() if v.created_at < cutoff]
        for k in expired:
            del self._store[k]

    def cleanup(self) -> int:
        """Explicitly clean up expired attempts. Returns count removed."""
        with self._lock:
            before = len(self._store)
            self._evict_expired()
            return before - len(self._store)

    def size(self) -> int:
        """Return current number of pending attempts."""
        with self._lock:
            return len(self._store)

    def __contains__(self, attempt_key: object) -> bool:
        with self._lock:
            return attempt_key in self._store
