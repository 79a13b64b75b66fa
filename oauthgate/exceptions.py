"""oauthgate exception hierarchy.

All oauthgate-specific exceptions inherit from OAuthGateException, enabling
catch-all handling while supporting specific error types.

Errors raised while serving a request carry an HTTP ``status_code``, a short
machine-readable ``error_code`` and a generic ``public_message``. The full
``message`` and ``context`` are meant for server-side logs only.
"""

from __future__ import annotations

from typing import Any


class OAuthGateException(Exception):
    """Base exception for all oauthgate errors."""

    status_code: int = 500
    error_code: str = "internal_error"
    public_message: str = "An internal error occurred"

    def __init__(self, message: str, **context: Any) -> None:
        """Initialize oauthgate exception.

        Parameters
        ----------
        message : str
            Human-readable error message (never shown to the client).
        **context : Any
            Additional context (provider, attempt key, etc.).
        """
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        """Format exception with context."""
        if self.context:
            ctx = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx})"
        return self.message


class ConfigurationError(OAuthGateException):
    """Settings are unusable; raised while the application starts."""


class ProviderConfigurationError(ConfigurationError):
    """Provider configuration is invalid.

    Raised at startup when a configured provider has an empty client
    credential or an endpoint that does not parse as an absolute URL.
    """

    def __init__(self, message: str, provider: str | None = None, **context: Any) -> None:
        """Initialize configuration error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        provider : str, optional
            The provider whose configuration is invalid.
        **context : Any
            Additional context.
        """
        super().__init__(message, provider=provider, **context)
        self.provider = provider


class UnknownProvider(OAuthGateException):
    """The requested provider is not configured."""

    status_code = 404
    error_code = "unknown_provider"
    public_message = "Unknown identity provider"

    def __init__(self, message: str, provider: str | None = None, **context: Any) -> None:
        """Initialize unknown provider error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        provider : str, optional
            The provider id that was requested.
        **context : Any
            Additional context.
        """
        super().__init__(message, provider=provider, **context)
        self.provider = provider


class AuthenticationError(OAuthGateException):
    """Base exception for all login flow failures."""

    status_code = 401
    error_code = "authentication_failed"
    public_message = "Authentication failed"

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize authentication error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        provider : str, optional
            The OAuth2 provider name (e.g., "google", "twitter").
        **context : Any
            Additional context.
        """
        super().__init__(message, provider=provider, **context)
        self.provider = provider


class MissingVerifier(AuthenticationError):
    """No pending authorization attempt matches the callback.

    Raised when the ``state`` value is unknown, expired, already
    consumed, or belongs to another provider.
    """

    status_code = 400
    error_code = "invalid_state"
    public_message = "Invalid or expired login attempt"


class TokenExchangeFailed(AuthenticationError):
    """Exchanging the authorization code for a token failed.

    ``upstream_unavailable`` distinguishes transport failures and
    timeouts (502) from codes rejected by the provider (401).
    """

    error_code = "token_exchange_failed"
    public_message = "Could not complete sign-in with the identity provider"

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        *,
        upstream_unavailable: bool = False,
        **context: Any,
    ) -> None:
        """Initialize token exchange error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        provider : str, optional
            The OAuth2 provider name.
        upstream_unavailable : bool
            True when the provider could not be reached or timed out.
        **context : Any
            Additional context.
        """
        super().__init__(message, provider=provider, **context)
        self.upstream_unavailable = upstream_unavailable
        self.status_code = 502 if upstream_unavailable else 401


class IdentityFetchFailed(AuthenticationError):
    """The provider's user-info endpoint failed or returned garbage."""

    error_code = "identity_fetch_failed"
    public_message = "Could not read your profile from the identity provider"


class MalformedIdentity(IdentityFetchFailed):
    """The user-info payload lacks a usable identity."""

    error_code = "malformed_identity"


class SessionPersistenceFailed(AuthenticationError):
    """The session store rejected a user or session write."""

    status_code = 500
    error_code = "session_persistence_failed"
    public_message = "An internal error occurred"
