"""OAuth2 login for oauthgate.

Provides provider abstractions, PKCE attempt tracking, the login flow,
session issuance, the session cookie codec and the authentication gate.
"""

from __future__ import annotations

from .cookies import CookieCodec, SessionCookie
from .flow import AuthorizationRequest, LoginFlow, LoginResult
from .gate import AuthenticationGate, AuthGateMiddleware, GateDecision, current_user
from .pkce import PendingAuthorization, PKCEChallenge, PKCEVerifierStore
from .providers import (
    TWITTER_IDENTITY_SUFFIX,
    GoogleProvider,
    OAuthProvider,
    ProviderConfig,
    ProviderId,
    ProviderRegistry,
    TwitterProvider,
)
from .routes import create_auth_router, error_response
from .session import DEFAULT_SESSION_TTL, SessionIssuer, generate_session_id


__all__ = [
    "DEFAULT_SESSION_TTL",
    "TWITTER_IDENTITY_SUFFIX",
    "AuthGateMiddleware",
    "AuthenticationGate",
    "AuthorizationRequest",
    "CookieCodec",
    "GateDecision",
    "GoogleProvider",
    "LoginFlow",
    "LoginResult",
    "OAuthProvider",
    "PKCEChallenge",
    "PKCEVerifierStore",
    "PendingAuthorization",
    "ProviderConfig",
    "ProviderId",
    "ProviderRegistry",
    "SessionCookie",
    "SessionIssuer",
    "TwitterProvider",
    "create_auth_router",
    "current_user",
    "error_response",
    "generate_session_id",
]
