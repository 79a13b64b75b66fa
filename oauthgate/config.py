"""Configuration system for oauthgate using pydantic-settings.

Supports layered configuration:
1. Built-in defaults (lowest priority)
2. pyproject.toml [tool.oauthgate] section (project-level)
3. ./oauthgate.toml (project-level, explicit)
4. File named by OAUTHGATE_CONFIG_FILE
5. Environment variables (highest priority)

Environment variables use OAUTHGATE_ prefix with nested delimiter __.
Example: OAUTHGATE_GOOGLE__CLIENT_ID, OAUTHGATE_SESSION__SECRET_KEY
"""

from __future__ import annotations

import os
import sys

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib


def _find_config_files() -> list[Path]:
    """Find all configuration files in order of precedence (lowest first)."""
    files = []

    pyproject = Path("pyproject.toml")
    if pyproject.exists():
        files.append(pyproject)

    local_toml = Path("oauthgate.toml")
    if local_toml.exists():
        files.append(local_toml)

    env_config = os.environ.get("OAUTHGATE_CONFIG_FILE")
    if env_config:
        env_path = Path(env_config)
        if env_path.exists():
            files.append(env_path)

    return files


def _load_toml_config() -> dict[str, Any]:
    """Load and merge all TOML configuration files."""
    merged: dict[str, Any] = {}

    for config_file in _find_config_files():
        try:
            data = tomllib.loads(config_file.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError):
            continue

        if config_file.name == "pyproject.toml":
            data = data.get("tool", {}).get("oauthgate", {})

        merged = _deep_merge(merged, data)

    return merged


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _split_list(v: Any) -> list[str]:
    if isinstance(v, str):
        return [s.strip() for s in v.split(",") if s.strip()]
    return list(v or [])


class GoogleSettings(BaseSettings):
    """Google OAuth2 client configuration.

    The provider is registered only when ``client_id`` is set.

    Environment prefix: OAUTHGATE_GOOGLE__
    Example: OAUTHGATE_GOOGLE__CLIENT_ID=1234.apps.googleusercontent.com
    """

    model_config = SettingsConfigDict(
        env_prefix="OAUTHGATE_GOOGLE__",
        extra="ignore",
    )

    client_id: str = Field(default="", description="OAuth2 client ID from Google")
    client_secret: str = Field(default="", description="OAuth2 client secret from Google")
    scopes: str = Field(
        default="openid profile email",
        description="Space-separated OAuth2 scopes to request",
    )
    authorize_url: str = "https://accounts.google.com/o/oauth2/v2/auth"
    token_url: str = "https://oauth2.googleapis.com/token"  # noqa: S105
    userinfo_url: str = "https://openidconnect.googleapis.com/v1/userinfo"
    redirect_url: str = Field(
        default="",
        description="Callback URL registered with Google (derived from public_base_url if empty)",
    )


class TwitterSettings(BaseSettings):
    """Twitter OAuth2 client configuration (always uses PKCE).

    Environment prefix: OAUTHGATE_TWITTER__
    Example: OAUTHGATE_TWITTER__CLIENT_SECRET=...
    """

    model_config = SettingsConfigDict(
        env_prefix="OAUTHGATE_TWITTER__",
        extra="ignore",
    )

    client_id: str = Field(default="", description="OAuth2 client ID from Twitter")
    client_secret: str = Field(default="", description="OAuth2 client secret from Twitter")
    scopes: str = Field(
        default="tweet.read users.read",
        description="Space-separated OAuth2 scopes to request",
    )
    authorize_url: str = "https://twitter.com/i/oauth2/authorize"
    token_url: str = "https://api.twitter.com/2/oauth2/token"  # noqa: S105
    userinfo_url: str = "https://api.twitter.com/2/users/me"
    redirect_url: str = Field(
        default="",
        description="Callback URL registered with Twitter (derived from public_base_url if empty)",
    )


class SessionSettings(BaseSettings):
    """Session cookie and gate settings.

    Environment prefix: OAUTHGATE_SESSION__
    Example: OAUTHGATE_SESSION__COOKIE_SECURE=true
    """

    model_config = SettingsConfigDict(
        env_prefix="OAUTHGATE_SESSION__",
        extra="ignore",
    )

    cookie_name: str = Field(default="sid", description="Name of the session cookie")
    secret_key: str = Field(
        default="",
        description=(
            "Fernet key used to encrypt the session cookie. Must be stable across "
            "restarts; a throwaway key is generated when empty (development only)."
        ),
    )
    cookie_secure: bool = Field(
        default=False,
        description="Set the Secure flag on session cookies (enable behind HTTPS)",
    )
    default_ttl: int = Field(
        default=3600,
        ge=1,
        description="Session lifetime when the provider does not report expires_in",
    )
    landing_path: str = Field(
        default="/protected",
        description="Where the browser is sent after a successful login",
    )
    login_path: str = Field(
        default="/login",
        description="Login entry point for unauthenticated page requests",
    )
    logout_redirect: str = Field(default="/", description="Where /logout redirects to")
    protected_prefixes: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["/protected"],
        description="Path prefixes guarded by the authentication gate",
    )
    api_prefixes: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["/api"],
        description="Guarded prefixes that answer 401 instead of redirecting",
    )

    @field_validator("protected_prefixes", "api_prefixes", mode="before")
    @classmethod
    def parse_comma_separated(cls, v: Any) -> list[str]:
        """Parse comma-separated strings from env vars."""
        return _split_list(v)

    @field_validator("protected_prefixes", "api_prefixes")
    @classmethod
    def require_leading_slash(cls, v: list[str]) -> list[str]:
        """Reject prefixes that cannot match a request path."""
        for prefix in v:
            if not prefix.startswith("/"):
                msg = f"Path prefix must start with '/': {prefix!r}"
                raise ValueError(msg)
        return v


class FlowSettings(BaseSettings):
    """Login flow settings.

    Environment prefix: OAUTHGATE_FLOW__
    Example: OAUTHGATE_FLOW__PUBLIC_BASE_URL=https://app.example.com
    """

    model_config = SettingsConfigDict(
        env_prefix="OAUTHGATE_FLOW__",
        extra="ignore",
    )

    public_base_url: str = Field(
        default="http://localhost:8000",
        description="External base URL used to derive provider redirect URLs",
    )
    http_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Timeout in seconds for token and user-info requests",
    )
    state_ttl: float = Field(
        default=600.0,
        gt=0,
        description="Seconds a pending login attempt stays valid",
    )
    max_pending: int = Field(
        default=1000,
        ge=1,
        description="Maximum number of concurrent pending login attempts",
    )


class StoreSettings(BaseSettings):
    """Session store backend settings.

    Environment prefix: OAUTHGATE_STORE__
    Example: OAUTHGATE_STORE__BACKEND=redis
    """

    model_config = SettingsConfigDict(
        env_prefix="OAUTHGATE_STORE__",
        extra="ignore",
    )

    backend: Literal["memory", "redis"] = Field(
        default="memory",
        description="Session storage backend: 'memory' (single process) or 'redis'",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )
    redis_prefix: str = Field(
        default="oauthgate",
        description="Key prefix for all Redis keys (namespace isolation)",
    )


class LogSettings(BaseSettings):
    """Logging settings.

    Environment prefix: OAUTHGATE_LOG__
    Example: OAUTHGATE_LOG__LEVEL=DEBUG
    """

    model_config = SettingsConfigDict(
        env_prefix="OAUTHGATE_LOG__",
        extra="ignore",
    )

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"
    format: str = "%(name)s - %(levelname)s - %(message)s"


class OAuthGateSettings(BaseSettings):
    """Main settings aggregating all configuration sections.

    Environment prefix: OAUTHGATE__

    Configuration sources (in order of precedence):
    1. Built-in defaults
    2. pyproject.toml [tool.oauthgate] section
    3. ./oauthgate.toml (project-level)
    4. OAUTHGATE_CONFIG_FILE
    5. Environment variables (highest priority)
    """

    model_config = SettingsConfigDict(
        env_prefix="OAUTHGATE__",
        env_nested_delimiter="__",
        extra="ignore",
    )

    google: GoogleSettings = Field(default_factory=GoogleSettings)
    twitter: TwitterSettings = Field(default_factory=TwitterSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    flow: FlowSettings = Field(default_factory=FlowSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    def __init__(self, **data: Any) -> None:
        toml_config = _load_toml_config()
        merged = _deep_merge(toml_config, data)
        super().__init__(**merged)


@lru_cache(maxsize=1)
def get_settings() -> OAuthGateSettings:
    """Get the global settings instance (cached).

    Call clear_settings() to reload configuration.
    """
    return OAuthGateSettings()


def clear_settings() -> None:
    """Clear the cached settings to force reload."""
    get_settings.cache_clear()


def reload_settings() -> OAuthGateSettings:
    """Reload settings from all sources."""
    clear_settings()
    return get_settings()
