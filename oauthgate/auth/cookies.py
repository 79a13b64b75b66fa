"""Session cookie value type and codec.

The cookie carries only the session id, encrypted and authenticated with
Fernet under a server-held key so clients can neither read nor forge it.
"""

from __future__ import annotations

import logging

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal

from cryptography.fernet import Fernet, InvalidToken

from ..exceptions import ConfigurationError


if TYPE_CHECKING:
    from starlette.responses import Response

    from ..config import SessionSettings


logger = logging.getLogger("oauthgate.auth")


@dataclass(frozen=True)
class SessionCookie:
    """A ``Set-Cookie`` instruction for the session cookie.

    Attributes
    ----------
    name : str
        Cookie name.
    value : str
        Encrypted session id, or empty for a removal cookie.
    max_age : int
        Lifetime in seconds; negative for a removal cookie.
    secure : bool
        Whether to set the Secure flag.
    path : str
        Cookie path, always ``/``.
    http_only : bool
        Always True.
    same_site : str
        Always ``lax``.
    """

    name: str
    value: str = field(repr=False)
    max_age: int
    secure: bool = False
    path: str = "/"
    http_only: bool = True
    same_site: Literal["lax", "strict", "none"] = "lax"

    @classmethod
    def removal(cls, name: str, secure: bool = False) -> SessionCookie:
        """Build the cookie that clears the session on the client."""
        return cls(name=name, value="", max_age=-1, secure=secure)

    @property
    def is_removal(self) -> bool:
        """True if this cookie deletes the session cookie."""
        return self.max_age < 0

    def apply(self, response: Response) -> Response:
        """Add this cookie to ``response`` and return it."""
        response.set_cookie(
            key=self.name,
            value=self.value,
            max_age=self.max_age,
            path=self.path,
            secure=self.secure,
            httponly=self.http_only,
            samesite=self.same_site,
        )
        return response


class CookieCodec:
    """Encrypt and decrypt session ids for the session cookie.

    Parameters
    ----------
    secret_key : str or bytes, optional
        URL-safe base64 Fernet key. When empty, a random key is generated
        and every cookie becomes unreadable after a restart.
    cookie_name : str
        Name of the session cookie.
    secure : bool
        Whether issued cookies carry the Secure flag.

    Raises
    ------
    ConfigurationError
        If ``secret_key`` is not a valid Fernet key.
    """

    def __init__(
        self,
        secret_key: str | bytes | None = None,
        cookie_name: str = "sid",
        secure: bool = False,
    ) -> None:
        if not secret_key:
            logger.warning(
                "No session secret key configured; generated a temporary key. "
                "Sessions will not survive a restart."
            )
            secret_key = Fernet.generate_key()
        try:
            key = secret_key.encode("ascii") if isinstance(secret_key, str) else secret_key
            self._fernet = Fernet(key)
        except ValueError as exc:
            msg = "Session secret key must be a 32-byte url-safe base64 Fernet key"
            raise ConfigurationError(msg) from exc
        self.cookie_name = cookie_name
        self.secure = secure

    @classmethod
    def from_settings(cls, settings: SessionSettings) -> CookieCodec:
        """Build the codec from the session settings section."""
        return cls(
            secret_key=settings.secret_key,
            cookie_name=settings.cookie_name,
            secure=settings.cookie_secure,
        )

    def encode(self, session_id: str) -> str:
        """Encrypt a session id for the cookie value.

        Base64 padding is stripped so the value never needs cookie quoting.
        """
        token = self._fernet.encrypt(session_id.encode("utf-8")).decode("ascii")
        return token.rstrip("=")

    def decode(self, value: str | None) -> str | None:
        """Decrypt a cookie value.

        Returns
        -------
        str or None
            The session id, or None if the value is empty, tampered with,
            or was encrypted under another key.
        """
        if not value:
            return None
        padded = value + "=" * (-len(value) % 4)
        try:
            return self._fernet.decrypt(padded.encode("ascii")).decode("utf-8")
        except (InvalidToken, UnicodeError):
            return None

    def issue(self, session_id: str, max_age: int) -> SessionCookie:
        """Build the cookie carrying ``session_id``."""
        return SessionCookie(
            name=self.cookie_name,
            value=self.encode(session_id),
            max_age=max_age,
            secure=self.secure,
        )

    def removal(self) -> SessionCookie:
        """Build the removal cookie with this codec's name and flags."""
        return SessionCookie.removal(self.cookie_name, secure=self.secure)
