"""oauthgate - OAuth2 login with cookie sessions for FastAPI applications.

Authenticates users against Google or Twitter with the authorization code
flow (PKCE where the provider requires it), stores a server-side session
and guards protected routes with an encrypted session cookie.
"""

from __future__ import annotations

from .app import create_app, describe_identity
from .auth import (
    AuthenticationGate,
    AuthGateMiddleware,
    CookieCodec,
    LoginFlow,
    PKCEVerifierStore,
    ProviderId,
    ProviderRegistry,
    SessionCookie,
    SessionIssuer,
    current_user,
)
from .config import OAuthGateSettings, get_settings
from .exceptions import (
    AuthenticationError,
    ConfigurationError,
    IdentityFetchFailed,
    MalformedIdentity,
    MissingVerifier,
    OAuthGateException,
    ProviderConfigurationError,
    SessionPersistenceFailed,
    TokenExchangeFailed,
    UnknownProvider,
)
from .state import MemorySessionStore, SessionStore


__version__ = "0.1.0"

__all__ = [
    "AuthGateMiddleware",
    "AuthenticationError",
    "AuthenticationGate",
    "ConfigurationError",
    "CookieCodec",
    "IdentityFetchFailed",
    "LoginFlow",
    "MalformedIdentity",
    "MemorySessionStore",
    "MissingVerifier",
    "OAuthGateException",
    "OAuthGateSettings",
    "PKCEVerifierStore",
    "ProviderConfigurationError",
    "ProviderId",
    "ProviderRegistry",
    "SessionCookie",
    "SessionIssuer",
    "SessionPersistenceFailed",
    "SessionStore",
    "TokenExchangeFailed",
    "UnknownProvider",
    "__version__",
    "create_app",
    "current_user",
    "describe_identity",
    "get_settings",
]
