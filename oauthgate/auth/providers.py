"""OAuth2 provider abstractions.

Defines the ``OAuthProvider`` ABC, the Google and Twitter providers, and
the ``ProviderRegistry`` that resolves a provider id to a configured
provider instance.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import logging

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any
from urllib.parse import urlencode, urlparse

import httpx

from ..exceptions import (
    IdentityFetchFailed,
    MalformedIdentity,
    ProviderConfigurationError,
    TokenExchangeFailed,
    UnknownProvider,
)
from ..log import redact_sensitive_data
from ..state.types import OAuthTokenSet


if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from ..config import OAuthGateSettings
    from .pkce import PKCEChallenge

logger = logging.getLogger("oauthgate.auth")

TWITTER_IDENTITY_SUFFIX = "@twitter.local"


class ProviderId(str, Enum):
    """Supported identity providers."""

    GOOGLE = "google"
    TWITTER = "twitter"

    @classmethod
    def parse(cls, value: str | ProviderId) -> ProviderId:
        """Normalise a provider id from a path segment.

        Raises
        ------
        UnknownProvider
            If the value names no supported provider.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            msg = f"Unsupported provider: {value!r}"
            raise UnknownProvider(msg, provider=str(value)) from None


@dataclass(frozen=True)
class ProviderConfig:
    """Immutable client configuration of one provider.

    Attributes
    ----------
    provider_id : ProviderId
        Which provider this configures.
    client_id : str
        OAuth2 client ID.
    client_secret : str
        OAuth2 client secret.
    authorize_url : str
        Authorization endpoint.
    token_url : str
        Token endpoint.
    userinfo_url : str
        User-info endpoint.
    redirect_url : str
        Callback URL registered with the provider.
    scopes : tuple[str, ...]
        Scopes requested on every login.
    requires_pkce : bool
        Whether the authorization request carries a PKCE challenge.
    """

    provider_id: ProviderId
    client_id: str
    client_secret: str
    authorize_url: str
    token_url: str
    userinfo_url: str
    redirect_url: str
    scopes: tuple[str, ...] = ()
    requires_pkce: bool = False

    def __repr__(self) -> str:
        return (
            f"ProviderConfig(provider_id={self.provider_id.value!r}, "
            f"client_id={self.client_id!r}, redirect_url={self.redirect_url!r})"
        )

    def validate(self) -> None:
        """Check credentials and endpoints.

        Raises
        ------
        ProviderConfigurationError
            If a credential is empty or an endpoint is not an absolute
            http(s) URL.
        """
        name = self.provider_id.value
        if not self.client_id.strip():
            msg = "client_id must not be empty"
            raise ProviderConfigurationError(msg, provider=name)
        if not self.client_secret.strip():
            msg = "client_secret must not be empty"
            raise ProviderConfigurationError(msg, provider=name)
        for attr in ("authorize_url", "token_url", "userinfo_url", "redirect_url"):
            value = getattr(self, attr)
            parsed = urlparse(value)
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                msg = f"{attr} is not an absolute http(s) URL: {value!r}"
                raise ProviderConfigurationError(msg, provider=name, field=attr)


class OAuthProvider(ABC):
    """Abstract base class for OAuth2 providers.

    Parameters
    ----------
    config : ProviderConfig
        The provider's client configuration.
    timeout : float
        Timeout in seconds for token and user-info requests.
    http_client : httpx.AsyncClient, optional
        Pre-configured client (for testing with ``httpx.MockTransport``).
    """

    def __init__(
        self,
        config: ProviderConfig,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize OAuth provider."""
        config.validate()
        self.config = config
        self.timeout = timeout
        self._http_client = http_client

    @property
    def name(self) -> str:
        """Provider id as used in URLs and logs."""
        return self.config.provider_id.value

    @property
    def requires_pkce(self) -> bool:
        """Whether logins with this provider use PKCE."""
        return self.config.requires_pkce

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the shared HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def close(self) -> None:
        """Close the shared HTTP client. Call from app shutdown lifecycle."""
        if self._http_client is not None and not self._http_client.is_closed:
            await self._http_client.aclose()
            self._http_client = None

    def build_authorize_url(
        self,
        state: str,
        pkce: PKCEChallenge | None = None,
        extra_params: dict[str, str] | None = None,
    ) -> str:
        """Build the full authorization URL.

        Parameters
        ----------
        state : str
            Attempt key, validated again on callback.
        pkce : PKCEChallenge, optional
            PKCE challenge; required when the provider uses PKCE.
        extra_params : dict, optional
            Additional query parameters.

        Returns
        -------
        str
            The full authorization URL.
        """
        params: dict[str, str] = {
            "response_type": "code",
            "client_id": self.config.client_id,
            "redirect_uri": self.config.redirect_url,
            "state": state,
            "scope": " ".join(self.config.scopes),
        }
        if pkce:
            params["code_challenge"] = pkce.challenge
            params["code_challenge_method"] = pkce.method
        if extra_params:
            params.update(extra_params)
        return f"{self.config.authorize_url}?{urlencode(params)}"

    async def exchange_code(self, code: str, verifier: str | None = None) -> OAuthTokenSet:
        """Exchange an authorization code for an access token.

        The client authenticates with HTTP Basic credentials. No retries:
        an authorization code is single-use at the provider.

        Parameters
        ----------
        code : str
            The authorization code from the callback.
        verifier : str, optional
            The PKCE code verifier if PKCE was used.

        Returns
        -------
        OAuthTokenSet
            The token set from the provider.

        Raises
        ------
        TokenExchangeFailed
            If the provider is unreachable, times out, or rejects the code.
        """
        data: dict[str, str] = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.config.redirect_url,
            "client_id": self.config.client_id,
        }
        if verifier:
            data["code_verifier"] = verifier

        try:
            client = await self._get_client()
            resp = await client.post(
                self.config.token_url,
                data=data,
                auth=(self.config.client_id, self.config.client_secret),
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            msg = f"Token request failed: {exc!r}"
            raise TokenExchangeFailed(msg, provider=self.name, upstream_unavailable=True) from exc

        if resp.status_code >= 500:
            msg = f"Token endpoint returned {resp.status_code}"
            raise TokenExchangeFailed(msg, provider=self.name, upstream_unavailable=True)

        try:
            raw = resp.json()
        except ValueError as exc:
            msg = f"Token endpoint returned non-JSON body ({resp.status_code})"
            raise TokenExchangeFailed(
                msg, provider=self.name, upstream_unavailable=not resp.is_error
            ) from exc

        if not isinstance(raw, dict):
            msg = f"Token endpoint returned unexpected payload ({resp.status_code})"
            raise TokenExchangeFailed(
                msg, provider=self.name, upstream_unavailable=not resp.is_error
            )

        if resp.is_error or "error" in raw:
            msg = (
                f"Token exchange rejected ({resp.status_code}): "
                f"{raw.get('error_description') or raw.get('error', 'unknown error')}"
            )
            raise TokenExchangeFailed(msg, provider=self.name)

        access_token = raw.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            msg = "Token response has no access_token"
            raise TokenExchangeFailed(msg, provider=self.name, payload=redact_sensitive_data(raw))

        return OAuthTokenSet(
            access_token=access_token,
            token_type=raw.get("token_type", "Bearer"),
            expires_in=_parse_expires_in(raw.get("expires_in")),
            scope=raw.get("scope", ""),
            raw=raw,
        )

    async def fetch_userinfo(self, access_token: str) -> dict[str, Any]:
        """Fetch user profile information from the provider.

        Parameters
        ----------
        access_token : str
            A valid access token.

        Returns
        -------
        dict[str, Any]
            User profile data from the provider.

        Raises
        ------
        IdentityFetchFailed
            On transport errors, non-2xx answers, or a non-object body.
        """
        try:
            client = await self._get_client()
            resp = await client.get(
                self.config.userinfo_url,
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Accept": "application/json",
                },
                timeout=self.timeout,
            )
            resp.raise_for_status()
            payload = resp.json()
        except httpx.HTTPStatusError as exc:
            msg = f"User-info request failed: {exc.response.status_code}"
            raise IdentityFetchFailed(msg, provider=self.name) from exc
        except httpx.HTTPError as exc:
            msg = f"User-info request failed: {exc!r}"
            raise IdentityFetchFailed(msg, provider=self.name) from exc
        except ValueError as exc:
            msg = "User-info response is not JSON"
            raise IdentityFetchFailed(msg, provider=self.name) from exc

        if not isinstance(payload, dict):
            msg = "User-info response is not a JSON object"
            raise IdentityFetchFailed(msg, provider=self.name)
        return payload

    @abstractmethod
    def normalize_identity(self, payload: dict[str, Any]) -> str:
        """Map a user-info payload to the canonical identity.

        Parameters
        ----------
        payload : dict[str, Any]
            The provider's user-info response.

        Returns
        -------
        str
            The canonical identity.

        Raises
        ------
        MalformedIdentity
            If the payload lacks the identifying field.
        """

    async def resolve_identity(self, access_token: str) -> str:
        """Fetch user-info and return the canonical identity."""
        payload = await self.fetch_userinfo(access_token)
        identity = self.normalize_identity(payload)
        logger.debug("Resolved %s identity from %s", self.name, redact_sensitive_data(payload))
        return identity


def _parse_expires_in(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        seconds = int(value)
    except (TypeError, ValueError):
        return None
    return seconds if seconds > 0 else None


class GoogleProvider(OAuthProvider):
    """Google OAuth2 provider.

    The canonical identity is the ``email`` claim, verbatim.
    """

    def normalize_identity(self, payload: dict[str, Any]) -> str:
        """Return the user's email address."""
        email = payload.get("email")
        if not isinstance(email, str) or not email.strip():
            msg = "Google user-info has no email"
            raise MalformedIdentity(msg, provider=self.name, fields=sorted(payload))
        return email


class TwitterProvider(OAuthProvider):
    """Twitter OAuth2 provider (PKCE).

    Twitter's default scopes expose no email, so the canonical identity is
    synthesised as ``username@twitter.local``. A renamed account therefore
    becomes a new local user.
    """

    def normalize_identity(self, payload: dict[str, Any]) -> str:
        """Return ``data.username`` with the Twitter suffix."""
        data = payload.get("data")
        username = data.get("username") if isinstance(data, dict) else None
        if not isinstance(username, str) or not username.strip():
            msg = "Twitter user-info has no username"
            raise MalformedIdentity(msg, provider=self.name)
        return f"{username}{TWITTER_IDENTITY_SUFFIX}"


_PROVIDER_CLASSES: dict[ProviderId, type[OAuthProvider]] = {
    ProviderId.GOOGLE: GoogleProvider,
    ProviderId.TWITTER: TwitterProvider,
}


class ProviderRegistry:
    """Resolve provider ids to configured providers.

    Parameters
    ----------
    providers : Iterable[OAuthProvider]
        The configured providers; at least one is required.

    Raises
    ------
    ProviderConfigurationError
        If no provider is configured or an id is registered twice.
    """

    def __init__(self, providers: Iterable[OAuthProvider]) -> None:
        self._providers: dict[ProviderId, OAuthProvider] = {}
        for provider in providers:
            pid = provider.config.provider_id
            if pid in self._providers:
                msg = "Provider configured twice"
                raise ProviderConfigurationError(msg, provider=pid.value)
            self._providers[pid] = provider
        if not self._providers:
            msg = "No identity provider is configured"
            raise ProviderConfigurationError(msg)

    @classmethod
    def from_settings(
        cls,
        settings: OAuthGateSettings,
        http_client: httpx.AsyncClient | None = None,
    ) -> ProviderRegistry:
        """Build the registry from application settings.

        A provider section without ``client_id`` is skipped.

        Parameters
        ----------
        settings : OAuthGateSettings
            Application settings.
        http_client : httpx.AsyncClient, optional
            Client shared by all providers (tests inject a mock transport).

        Returns
        -------
        ProviderRegistry
            A validated registry.
        """
        base_url = settings.flow.public_base_url.rstrip("/")
        sections = {
            ProviderId.GOOGLE: (settings.google, False),
            ProviderId.TWITTER: (settings.twitter, True),
        }
        providers: list[OAuthProvider] = []
        for pid, (section, requires_pkce) in sections.items():
            if not section.client_id:
                logger.info("Provider %s not configured, skipping", pid.value)
                continue
            config = ProviderConfig(
                provider_id=pid,
                client_id=section.client_id,
                client_secret=section.client_secret,
                authorize_url=section.authorize_url,
                token_url=section.token_url,
                userinfo_url=section.userinfo_url,
                redirect_url=section.redirect_url or f"{base_url}/callback/{pid.value}",
                scopes=tuple(section.scopes.split()),
                requires_pkce=requires_pkce,
            )
            providers.append(
                _PROVIDER_CLASSES[pid](
                    config,
                    timeout=settings.flow.http_timeout,
                    http_client=http_client,
                )
            )
        return cls(providers)

    def get(self, provider_id: str | ProviderId) -> OAuthProvider:
        """Return the provider registered under ``provider_id``.

        Raises
        ------
        UnknownProvider
            If the id is unsupported or not configured.
        """
        pid = ProviderId.parse(provider_id)
        provider = self._providers.get(pid)
        if provider is None:
            msg = f"Provider {pid.value!r} is not configured"
            raise UnknownProvider(msg, provider=pid.value)
        return provider

    def __contains__(self, provider_id: object) -> bool:
        try:
            self.get(provider_id)  # type: ignore[arg-type]
        except UnknownProvider:
            return False
        return True

    def __iter__(self) -> Iterator[OAuthProvider]:
        return iter(self._providers.values())

    @property
    def ids(self) -> list[str]:
        """Configured provider ids."""
        return [pid.value for pid in self._providers]

    async def close(self) -> None:
        """Close every provider's HTTP client."""
        for provider in self._providers.values():
            await provider.close()
