"""Runtime configuration, read once from the environment at startup."""

import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .errors import ConfigurationError
from .stores.goingelectric import DEFAULT_DELAY_MS
from .stores.record_store import DEFAULT_MAX_REQUEST_SIZE

DEFAULT_DB_PATH = "plugsync.db"
DEFAULT_USER = "_plugsync"


def _int_setting(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e
    if value < 0:
        raise ConfigurationError(f"{name} must not be negative")
    return value


@dataclass(frozen=True)
class SyncConfig:
    """Everything the sync needs to reach the chargEV DB, registry and record store."""

    chargev_db_url: str
    chargev_db_jwt: str
    ge_api_key: str
    ge_api_url: Optional[str] = None
    ge_api_delay_ms: int = DEFAULT_DELAY_MS
    db_path: str = DEFAULT_DB_PATH
    user_record_name: str = DEFAULT_USER
    max_request_size: int = DEFAULT_MAX_REQUEST_SIZE

    def __post_init__(self):
        if self.max_request_size < 1:
            raise ConfigurationError("PLUGSYNC_MAX_REQUEST_SIZE must be at least 1")

    @classmethod
    def from_env(
        cls, env: Mapping[str, str] | None = None, dotenv: bool = True
    ) -> "SyncConfig":
        """
        Build the configuration from environment variables.

        Loads a .env file first (without overriding variables that are
        already set) unless ``env`` is given explicitly.
        """
        if env is None:
            if dotenv:
                load_dotenv()
            env = os.environ

        url = env.get("CHARGEV_DB_API_URL")
        jwt = env.get("CHARGEV_DB_API_JWT")
        if not url or not jwt:
            raise ConfigurationError("CHARGEV_DB_API_URL and/or CHARGEV_DB_API_JWT not configured")

        api_key = env.get("GE_API_KEY")
        if not api_key:
            raise ConfigurationError("GE API Key not configured")

        return cls(
            chargev_db_url=url,
            chargev_db_jwt=jwt,
            ge_api_key=api_key,
            ge_api_url=env.get("GE_API_URL") or None,
            ge_api_delay_ms=_int_setting(env, "GE_API_DELAY_MS", DEFAULT_DELAY_MS),
            db_path=env.get("PLUGSYNC_DB") or DEFAULT_DB_PATH,
            user_record_name=env.get("PLUGSYNC_USER") or DEFAULT_USER,
            max_request_size=_int_setting(
                env, "PLUGSYNC_MAX_REQUEST_SIZE", DEFAULT_MAX_REQUEST_SIZE
            ),
        )
