"""Credential resolution: tagged auth configs into request-scoped contexts.

Exactly one ``AuthConfig`` variant is active per invocation. ``resolve()``
turns it into a ``CredentialContext`` that lives only as long as that
invocation and is released on every exit path. Nothing here writes to the
process environment or any other shared location.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
import logging
import os
from typing import TYPE_CHECKING

from bedrock_chat.errors import AuthError, AuthErrorKind, InternalError
from bedrock_chat.profiles import SharedConfigProfileSource

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping
    from types import TracebackType

    from bedrock_chat.profiles import ProfileSource

logger = logging.getLogger(__name__)

_REGION_ENV_VARS = ("AWS_REGION", "AWS_DEFAULT_REGION")


@dataclass(frozen=True)
class BearerToken:
    """Bedrock API key sent as an HTTP bearer token."""

    api_key: str
    region: str | None = None

    def __repr__(self) -> str:
        return f"BearerToken(api_key='[REDACTED]', region={self.region!r})"


@dataclass(frozen=True)
class ExplicitKeys:
    """Static IAM access keys, optionally with a session token."""

    access_key_id: str
    secret_access_key: str
    region: str | None = None
    session_token: str | None = None

    def __repr__(self) -> str:
        return (
            f"ExplicitKeys(access_key_id={_mask(self.access_key_id)!r}, "
            f"secret_access_key='[REDACTED]', region={self.region!r}, "
            f"session_token={'[REDACTED]' if self.session_token else None})"
        )


@dataclass(frozen=True)
class Profile:
    """A named profile from the shared AWS config files."""

    profile_name: str
    region: str | None = None


@dataclass(frozen=True)
class DefaultChain:
    """Ambient credentials already configured in the environment."""

    region: str | None = None


AuthConfig = BearerToken | ExplicitKeys | Profile | DefaultChain


class AuthMethod(StrEnum):
    BEARER_TOKEN = "bearer_token"
    EXPLICIT_KEYS = "explicit_keys"
    PROFILE = "profile"
    DEFAULT_CHAIN = "default_chain"


class CredentialContext:
    """Resolved credential material for exactly one invocation.

    Use as a context manager (or call ``release()``) so the material is
    dropped on success, error, and cancellation alike. ``release()`` is
    idempotent; release callbacks run once, in reverse registration order.
    """

    def __init__(
        self,
        method: AuthMethod,
        region: str,
        *,
        bearer_token: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        session_token: str | None = None,
        profile_name: str | None = None,
    ) -> None:
        self.method = method
        self.region = region
        self._bearer_token = bearer_token
        self._access_key_id = access_key_id
        self._secret_access_key = secret_access_key
        self._session_token = session_token
        self._profile_name = profile_name
        self._release_callbacks: list[Callable[[], object]] = []
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    @property
    def bearer_token(self) -> str | None:
        self._check_live()
        return self._bearer_token

    @property
    def access_key_id(self) -> str | None:
        self._check_live()
        return self._access_key_id

    @property
    def secret_access_key(self) -> str | None:
        self._check_live()
        return self._secret_access_key

    @property
    def session_token(self) -> str | None:
        self._check_live()
        return self._session_token

    @property
    def profile_name(self) -> str | None:
        self._check_live()
        return self._profile_name

    def add_release_callback(self, callback: Callable[[], object]) -> None:
        """Run *callback* when the context is released (e.g. closing a client)."""
        self._check_live()
        self._release_callbacks.append(callback)

    def release(self) -> None:
        """Drop the credential material and run release callbacks once."""
        if self._released:
            return
        self._released = True
        self._bearer_token = None
        self._access_key_id = None
        self._secret_access_key = None
        self._session_token = None
        callbacks, self._release_callbacks = self._release_callbacks, []
        for callback in reversed(callbacks):
            try:
                callback()
            except Exception:
                logger.debug("Credential release callback failed", exc_info=True)
        logger.debug("Released %s credential context", self.method.value)

    def __enter__(self) -> CredentialContext:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()

    def __repr__(self) -> str:
        state = "released" if self._released else "live"
        return (
            f"CredentialContext(method={self.method.value!r}, "
            f"region={self.region!r}, {state})"
        )

    def _check_live(self) -> None:
        if self._released:
            raise InternalError(
                "Credential context used after release",
                hint="Credentials are scoped to a single invocation.",
            )


def resolve(
    config: AuthConfig,
    *,
    profiles: ProfileSource | None = None,
    environ: Mapping[str, str] | None = None,
) -> CredentialContext:
    """Resolve *config* into a fresh ``CredentialContext``.

    No network calls are made. Raises ``AuthError`` on missing fields or an
    unknown profile; no context is created in that case.
    """
    env = os.environ if environ is None else environ

    if isinstance(config, BearerToken):
        token = _require(config.api_key, "api_key", hint="Set a Bedrock API key.")
        return CredentialContext(
            AuthMethod.BEARER_TOKEN,
            _resolve_region(config.region, env),
            bearer_token=token,
        )

    if isinstance(config, ExplicitKeys):
        _require(config.access_key_id, "access_key_id")
        _require(config.secret_access_key, "secret_access_key")
        # Keys are passed through verbatim.
        return CredentialContext(
            AuthMethod.EXPLICIT_KEYS,
            _resolve_region(config.region, env),
            access_key_id=config.access_key_id,
            secret_access_key=config.secret_access_key,
            session_token=config.session_token or None,
        )

    if isinstance(config, Profile):
        name = _require(config.profile_name, "profile_name").strip()
        source = profiles if profiles is not None else SharedConfigProfileSource()
        entry = next((p for p in source.load_profiles() if p.name == name), None)
        if entry is None:
            raise AuthError(
                AuthErrorKind.PROFILE_NOT_FOUND,
                f"Profile {name!r} not found in shared AWS config",
                field="profile_name",
                hint="Check ~/.aws/config or run `aws configure --profile NAME`.",
            )
        return CredentialContext(
            AuthMethod.PROFILE,
            _resolve_region(config.region or entry.region, env),
            profile_name=name,
        )

    if isinstance(config, DefaultChain):
        return CredentialContext(
            AuthMethod.DEFAULT_CHAIN, _resolve_region(config.region, env)
        )

    raise InternalError(f"Unsupported auth config: {type(config).__name__}")


def _require(value: str | None, field: str, *, hint: str | None = None) -> str:
    if value is None or not value.strip():
        raise AuthError(
            AuthErrorKind.MISSING_FIELD,
            f"{field} is required",
            field=field,
            hint=hint,
        )
    return value


def _resolve_region(region: str | None, env: Mapping[str, str]) -> str:
    if region and region.strip():
        return region.strip()
    for name in _REGION_ENV_VARS:
        value = env.get(name, "").strip()
        if value:
            return value
    raise AuthError(
        AuthErrorKind.MISSING_FIELD,
        "region is required",
        field="region",
        hint="Pass region=... or set AWS_REGION.",
    )


def _mask(value: str) -> str:
    if len(value) <= 4:
        return "****"
    return f"{'*' * (len(value) - 4)}{value[-4:]}"
