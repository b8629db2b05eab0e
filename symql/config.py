"""Session configuration for symql connections.

Settings are immutable; use :func:`dataclasses.replace` to derive a
variant. :func:`load_config_from_env` reads ``SYMQL_*`` variables for
deployments that configure through the environment.
"""

import os
from dataclasses import dataclass
from typing import Final, Literal

from symql.exceptions import SymqlError
from symql.utils.logging import get_logger

__all__ = (
    "DEFAULT_POLL_INTERVAL",
    "ConnectionConfig",
    "IsolationLevel",
    "create_default_config",
    "load_config_from_env",
    "validate_config",
)

logger = get_logger("symql.config")

IsolationLevel = Literal["serializable", "read-uncommitted"]

DEFAULT_POLL_INTERVAL: Final = 0.05
_ISOLATION_LEVELS: Final = ("serializable", "read-uncommitted")


@dataclass(frozen=True)
class ConnectionConfig:
    """Settings applied to a backend session when it is opened.

    The defaults give serializable isolation, autocommit and enforced
    foreign keys. Callers may still change them later with a statement.
    """

    isolation: IsolationLevel = "serializable"
    autocommit: bool = True
    foreign_keys: bool = True
    busy_timeout: float = 5.0
    poll_interval: float = DEFAULT_POLL_INTERVAL


def create_default_config() -> ConnectionConfig:
    return ConnectionConfig()


def validate_config(config: ConnectionConfig) -> "list[str]":
    """Return the list of problems with ``config``; empty when it is usable."""
    problems: list[str] = []
    if config.isolation not in _ISOLATION_LEVELS:
        problems.append(f"isolation must be one of {_ISOLATION_LEVELS}, got {config.isolation!r}")
    if config.busy_timeout < 0:
        problems.append("busy_timeout must not be negative")
    if config.poll_interval <= 0:
        problems.append("poll_interval must be positive")
    return problems


def load_config_from_env() -> ConnectionConfig:
    """Load connection settings from environment variables.

    Environment Variables Supported:
    - SYMQL_ISOLATION: ``serializable`` or ``read-uncommitted``
    - SYMQL_AUTOCOMMIT: Enable/disable autocommit (true/false)
    - SYMQL_FOREIGN_KEYS: Enable/disable foreign key enforcement (true/false)
    - SYMQL_BUSY_TIMEOUT: Seconds the backend waits on a locked database (float)
    - SYMQL_POLL_INTERVAL: Seconds between reply readiness checks (float)

    Returns:
        ConnectionConfig built from the environment

    Raises:
        SymqlError: If the resulting settings are invalid.
    """
    config = ConnectionConfig(
        isolation=os.getenv("SYMQL_ISOLATION", "serializable"),  # type: ignore[arg-type]
        autocommit=_env_bool("SYMQL_AUTOCOMMIT", True),
        foreign_keys=_env_bool("SYMQL_FOREIGN_KEYS", True),
        busy_timeout=_env_float("SYMQL_BUSY_TIMEOUT", 5.0),
        poll_interval=_env_float("SYMQL_POLL_INTERVAL", DEFAULT_POLL_INTERVAL),
    )
    problems = validate_config(config)
    if problems:
        msg = "Invalid connection configuration: " + "; ".join(problems)
        raise SymqlError(msg)
    return config


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.lower() in {"true", "1", "yes", "on"}


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning("Invalid float value for %s: %s, using default %s", key, value, default)
        return default
