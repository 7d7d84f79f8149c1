"""Process-wide settings, read once from the environment at startup."""

import os
from dataclasses import dataclass
from typing import Mapping

from dotenv import load_dotenv

from .exceptions import ConfigurationError
from .permissions import WILDCARD, PermissionLevel

DEFAULT_BASE_URL = "https://api.picaos.com"
IDENTITY_TYPES = ("user", "team", "organization", "project")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _parse_list(raw: str | None) -> tuple[str, ...]:
    """Comma-separated list; unset means wildcard, set-but-empty means nothing."""
    if raw is None:
        return (WILDCARD,)
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    secret: str
    base_url: str = DEFAULT_BASE_URL
    identity: str | None = None
    identity_type: str | None = None
    permission_level: PermissionLevel = PermissionLevel.ADMIN
    connection_keys: tuple[str, ...] = (WILDCARD,)
    action_ids: tuple[str, ...] = (WILDCARD,)
    knowledge_agent: bool = False
    log_level: str = "INFO"
    timeout: float = 30.0

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from ``environ`` (defaults to ``os.environ`` after loading ``.env``)."""
        if environ is None:
            load_dotenv()
            environ = os.environ

        secret = (environ.get("PICA_SECRET") or "").strip()
        if not secret:
            raise ConfigurationError("PICA_SECRET environment variable is required")

        raw_level = (environ.get("PICA_PERMISSIONS") or PermissionLevel.ADMIN.value).strip().lower()
        try:
            permission_level = PermissionLevel(raw_level)
        except ValueError:
            raise ConfigurationError(
                f"Invalid PICA_PERMISSIONS value '{raw_level}'. "
                "Expected one of: read, write, admin"
            )

        identity_type = environ.get("PICA_IDENTITY_TYPE") or None
        if identity_type is not None and identity_type not in IDENTITY_TYPES:
            raise ConfigurationError(
                f"Invalid PICA_IDENTITY_TYPE value '{identity_type}'. "
                f"Expected one of: {', '.join(IDENTITY_TYPES)}"
            )

        log_level = environ.get("PICA_LOG_LEVEL", "INFO").strip().upper()
        if log_level not in LOG_LEVELS:
            raise ConfigurationError(
                f"Invalid PICA_LOG_LEVEL value '{log_level}'. "
                f"Expected one of: {', '.join(LOG_LEVELS)}"
            )

        return cls(
            secret=secret,
            base_url=(environ.get("PICA_BASE_URL") or DEFAULT_BASE_URL).rstrip("/"),
            identity=environ.get("PICA_IDENTITY") or None,
            identity_type=identity_type,
            permission_level=permission_level,
            connection_keys=_parse_list(environ.get("PICA_CONNECTION_KEYS")),
            action_ids=_parse_list(environ.get("PICA_ACTION_IDS")),
            knowledge_agent=environ.get("PICA_KNOWLEDGE_AGENT", "false").lower() == "true",
            log_level=log_level,
        )
