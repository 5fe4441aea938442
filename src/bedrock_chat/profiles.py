"""Shared AWS profile configuration.

Reads the named profiles from the shared config and credentials files. Any
failure (missing files, parse errors) yields an empty result; the resolver
turns an absent profile into ``AuthError``.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import botocore.session
from botocore.exceptions import BotoCoreError

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProfileEntry:
    """A named profile and its configured region, if any."""

    name: str
    region: str | None = None


@runtime_checkable
class ProfileSource(Protocol):
    """Collaborator that lists configured profiles."""

    def load_profiles(self) -> Sequence[ProfileEntry]: ...  # noqa: D102


class SharedConfigProfileSource:
    """Profiles from ``~/.aws/config`` and ``~/.aws/credentials``.

    Paths default to botocore's resolution (``AWS_CONFIG_FILE`` and
    ``AWS_SHARED_CREDENTIALS_FILE`` are honoured).
    """

    def __init__(
        self,
        *,
        config_file: str | None = None,
        credentials_file: str | None = None,
    ) -> None:
        self.config_file = config_file
        self.credentials_file = credentials_file

    def load_profiles(self) -> Sequence[ProfileEntry]:
        """Return profiles in file order, or ``()`` on any failure."""
        try:
            session = botocore.session.Session()
            if self.config_file is not None:
                session.set_config_variable("config_file", self.config_file)
            if self.credentials_file is not None:
                session.set_config_variable("credentials_file", self.credentials_file)
            raw_profiles: Any = session.full_config.get("profiles", {})
        except (BotoCoreError, OSError, ValueError) as exc:
            logger.debug("Shared profile config unavailable: %s", exc)
            return ()

        if not isinstance(raw_profiles, dict):
            return ()

        entries: list[ProfileEntry] = []
        for name, values in raw_profiles.items():
            if not isinstance(name, str) or not isinstance(values, dict):
                logger.debug("Skipping malformed profile entry %r", name)
                continue
            region = values.get("region")
            if not isinstance(region, str) or not region.strip():
                region = None
            entries.append(ProfileEntry(name=name, region=region and region.strip()))
        return tuple(entries)


@dataclass(frozen=True)
class StaticProfileSource:
    """Fixed profile list, for hosts that manage profiles themselves."""

    profiles: tuple[ProfileEntry, ...] = ()

    def load_profiles(self) -> Sequence[ProfileEntry]:
        """Return the configured profiles."""
        return self.profiles
