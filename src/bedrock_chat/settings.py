"""Host-side authentication settings and secret storage.

Hosts keep non-secret auth settings (method, region, profile) in their own
configuration and secrets in a ``SecretStore``. ``build_auth_config`` turns
both into the ``AuthConfig`` an invocation receives. The invocation core never
reads or writes the store itself.
"""

from __future__ import annotations

from typing import Any, Literal, Protocol, runtime_checkable

from pydantic import BaseModel, Field, ValidationError, field_validator

from bedrock_chat.auth import (
    AuthConfig,
    BearerToken,
    DefaultChain,
    ExplicitKeys,
    Profile,
)
from bedrock_chat.errors import ConfigurationError

AuthMethodSetting = Literal["api-key", "access-keys", "profile", "default"]

# Well-known secret names.
API_KEY_SECRET = "bedrock-chat.apiKey"
ACCESS_KEY_ID_SECRET = "bedrock-chat.accessKeyId"
SECRET_ACCESS_KEY_SECRET = "bedrock-chat.secretAccessKey"
SESSION_TOKEN_SECRET = "bedrock-chat.sessionToken"

_ALL_SECRETS = (
    API_KEY_SECRET,
    ACCESS_KEY_ID_SECRET,
    SECRET_ACCESS_KEY_SECRET,
    SESSION_TOKEN_SECRET,
)


@runtime_checkable
class SecretStore(Protocol):
    """Opaque key-value secret storage provided by the host."""

    def get(self, name: str) -> str | None: ...  # noqa: D102
    def set(self, name: str, value: str) -> None: ...  # noqa: D102
    def delete(self, name: str) -> None: ...  # noqa: D102


class InMemorySecretStore:
    """Dictionary-backed ``SecretStore`` for tests and scripts."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._values: dict[str, str] = dict(initial or {})

    def get(self, name: str) -> str | None:
        return self._values.get(name)

    def set(self, name: str, value: str) -> None:
        self._values[name] = value

    def delete(self, name: str) -> None:
        self._values.pop(name, None)

    def __contains__(self, name: object) -> bool:
        return name in self._values


class AuthSettings(BaseModel):
    """Non-secret authentication settings."""

    method: AuthMethodSetting = Field(default="default")
    region: str | None = Field(default=None)
    profile_name: str | None = Field(default=None)

    model_config = {"frozen": True}

    @field_validator("method", mode="before")
    @classmethod
    def normalize_method(cls, v: Any) -> Any:
        """Accept surrounding whitespace and mixed case."""
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("region", "profile_name", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        """Trim whitespace and map empty strings to None."""
        if isinstance(v, str):
            return v.strip() or None
        return v


def load_auth_settings(raw: dict[str, Any]) -> AuthSettings:
    """Validate raw host settings, raising ``ConfigurationError`` on bad input."""
    try:
        return AuthSettings.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid auth settings: {e.errors()[0].get('msg', e)}",
            hint="method must be one of: api-key, access-keys, profile, default.",
        ) from e


def build_auth_config(settings: AuthSettings, store: SecretStore) -> AuthConfig:
    """Build the ``AuthConfig`` for *settings*, reading secrets from *store*.

    Missing secrets become empty strings so the resolver reports them as
    ``AuthError(MISSING_FIELD)`` at invocation time.
    """
    if settings.method == "api-key":
        return BearerToken(
            api_key=store.get(API_KEY_SECRET) or "", region=settings.region
        )
    if settings.method == "access-keys":
        return ExplicitKeys(
            access_key_id=store.get(ACCESS_KEY_ID_SECRET) or "",
            secret_access_key=store.get(SECRET_ACCESS_KEY_SECRET) or "",
            session_token=store.get(SESSION_TOKEN_SECRET),
            region=settings.region,
        )
    if settings.method == "profile":
        return Profile(profile_name=settings.profile_name or "", region=settings.region)
    return DefaultChain(region=settings.region)


def save_api_key(store: SecretStore, api_key: str) -> None:
    """Store a Bedrock API key, replacing any stored access keys."""
    if not api_key.strip():
        raise ConfigurationError("API key must not be empty")
    clear_credentials(store)
    store.set(API_KEY_SECRET, api_key.strip())


def save_access_keys(
    store: SecretStore,
    access_key_id: str,
    secret_access_key: str,
    session_token: str | None = None,
) -> None:
    """Store IAM access keys, replacing any stored API key."""
    if not access_key_id.strip() or not secret_access_key.strip():
        raise ConfigurationError(
            "access_key_id and secret_access_key must not be empty",
            hint="Both halves of the key pair are required.",
        )
    clear_credentials(store)
    store.set(ACCESS_KEY_ID_SECRET, access_key_id.strip())
    store.set(SECRET_ACCESS_KEY_SECRET, secret_access_key.strip())
    if session_token and session_token.strip():
        store.set(SESSION_TOKEN_SECRET, session_token.strip())


def clear_credentials(store: SecretStore) -> None:
    """Delete every stored credential."""
    for name in _ALL_SECRETS:
        store.delete(name)
