"""Login flow orchestration.

``LoginFlow`` ties the provider registry, the pending-attempt store and
the session issuer together: one code path serves every provider, with
PKCE switched on by the provider's ``requires_pkce`` flag.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import logging

from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..log import mask_secret


if TYPE_CHECKING:
    from ..state.types import OAuthTokenSet
    from .cookies import SessionCookie
    from .pkce import PKCEVerifierStore
    from .providers import OAuthProvider, ProviderId, ProviderRegistry
    from .session import SessionIssuer


logger = logging.getLogger("oauthgate.auth")


@dataclass(frozen=True)
class AuthorizationRequest:
    """Where to send the browser to start a login.

    Attributes
    ----------
    url : str
        The provider authorization URL.
    attempt_key : str
        The ``state`` value embedded in ``url``.
    provider : str
        Provider id.
    """

    url: str
    attempt_key: str
    provider: str


@dataclass(frozen=True)
class LoginResult:
    """A completed login.

    Attributes
    ----------
    identity : str
        Canonical identity of the user.
    provider : str
        Provider id.
    cookie : SessionCookie
        Cookie referencing the new session.
    """

    identity: str
    provider: str
    cookie: SessionCookie


class LoginFlow:
    """Run the OAuth2 authorization code flow for any configured provider.

    Parameters
    ----------
    registry : ProviderRegistry
        Configured providers.
    verifiers : PKCEVerifierStore
        Pending login attempts.
    issuer : SessionIssuer
        Creates the session once the identity is known.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        verifiers: PKCEVerifierStore,
        issuer: SessionIssuer,
    ) -> None:
        self.registry = registry
        self.verifiers = verifiers
        self.issuer = issuer

    def build_authorization_url(self, provider_id: str | ProviderId) -> AuthorizationRequest:
        """Start a login attempt.

        Parameters
        ----------
        provider_id : str or ProviderId
            Which provider to log in with.

        Returns
        -------
        AuthorizationRequest
            The provider URL to redirect to and its attempt key.

        Raises
        ------
        UnknownProvider
            If the provider is not configured.
        """
        provider = self.registry.get(provider_id)
        if provider.requires_pkce:
            pkce, key = self.verifiers.begin_pkce(provider.name)
            url = provider.build_authorize_url(state=key, pkce=pkce)
        else:
            key = self.verifiers.begin_state(provider.name)
            url = provider.build_authorize_url(state=key)
        logger.debug("Starting %s login, attempt %s", provider.name, mask_secret(key))
        return AuthorizationRequest(url=url, attempt_key=key, provider=provider.name)

    async def exchange(
        self,
        provider_id: str | ProviderId,
        code: str,
        verifier: str | None = None,
    ) -> OAuthTokenSet:
        """Exchange an authorization code with the named provider."""
        return await self.registry.get(provider_id).exchange_code(code, verifier)

    async def resolve(self, provider_id: str | ProviderId, token: OAuthTokenSet) -> str:
        """Resolve the canonical identity behind ``token``."""
        return await self.registry.get(provider_id).resolve_identity(token.access_token)

    async def complete(
        self,
        provider_id: str | ProviderId,
        code: str,
        state: str | None,
    ) -> LoginResult:
        """Finish a login from the provider callback.

        The pending attempt is consumed before any network call, so a
        replayed callback fails even if the first one is still running.

        Parameters
        ----------
        provider_id : str or ProviderId
            Provider named in the callback path.
        code : str
            Authorization code from the callback.
        state : str or None
            Attempt key echoed back by the provider.

        Returns
        -------
        LoginResult
            Identity and session cookie.

        Raises
        ------
        UnknownProvider
            If the provider is not configured.
        MissingVerifier
            If ``state`` matches no pending attempt for this provider.
        TokenExchangeFailed
            If the code exchange fails.
        IdentityFetchFailed
            If user-info cannot be read or lacks an identity.
        SessionPersistenceFailed
            If the session cannot be stored.
        """
        provider: OAuthProvider = self.registry.get(provider_id)
        verifier: str | None = None
        if provider.requires_pkce:
            verifier = self.verifiers.consume_pkce(state, provider.name)
        else:
            self.verifiers.consume(state, provider.name)

        token = await provider.exchange_code(code, verifier)
        identity = await provider.resolve_identity(token.access_token)
        cookie = await self.issuer.issue_session(identity, token)
        logger.info("User authenticated via %s", provider.name)
        return LoginResult(identity=identity, provider=provider.name, cookie=cookie)
