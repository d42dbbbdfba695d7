"""
YAML loader for workflow settings.

Responsibility:
    Parse a settings YAML file into ``commission_config.schema`` dataclasses
    and apply environment overrides.  Internal to the package; callers use
    ``commission_config.get_active_config()``.

Failure modes:
    * Missing file -> ``FileNotFoundError`` propagates.
    * Malformed YAML -> ``yaml.YAMLError`` propagates.
    * Wrong types or out-of-range values -> ``ConfigurationError``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import replace
from pathlib import Path
from typing import Any

import yaml
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from commission_config.schema import (
    ConfigurationError,
    DatabaseSettings,
    LoggingSettings,
    NotificationSettings,
    WorkflowSettings,
)

ENV_DATABASE_URL = "COMMISSION_DATABASE_URL"
ENV_LOG_LEVEL = "COMMISSION_LOG_LEVEL"
ENV_WEBHOOK_URL = "COMMISSION_NOTIFICATION_WEBHOOK_URL"
ENV_CONFIG_PATH = "COMMISSION_CONFIG"

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ConfigurationError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top level must be a mapping")
    return data


def _section(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, Mapping):
        raise ConfigurationError(key, "must be a mapping")
    return value


def _bool(data: Mapping[str, Any], key: str, default: bool, prefix: str) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ConfigurationError(f"{prefix}.{key}", f"expected true/false, got {value!r}")
    return value


def _int(data: Mapping[str, Any], key: str, default: int, prefix: str, minimum: int = 0) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{prefix}.{key}", f"expected an integer, got {value!r}")
    if value < minimum:
        raise ConfigurationError(f"{prefix}.{key}", f"must be at least {minimum}")
    return value


def _number(data: Mapping[str, Any], key: str, default: float, prefix: str) -> float:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"{prefix}.{key}", f"expected a number, got {value!r}")
    if value <= 0:
        raise ConfigurationError(f"{prefix}.{key}", "must be positive")
    return float(value)


def parse_database(data: Mapping[str, Any]) -> DatabaseSettings:
    defaults = DatabaseSettings()
    url = data.get("url", defaults.url)
    validate_database_url(url, "database.url")
    return DatabaseSettings(
        url=url,
        echo=_bool(data, "echo", defaults.echo, "database"),
        pool_size=_int(data, "pool_size", defaults.pool_size, "database", minimum=1),
        max_overflow=_int(data, "max_overflow", defaults.max_overflow, "database"),
        pool_timeout=_int(data, "pool_timeout", defaults.pool_timeout, "database", minimum=1),
        busy_timeout_seconds=_number(
            data, "busy_timeout_seconds", defaults.busy_timeout_seconds, "database",
        ),
    )


def parse_logging(data: Mapping[str, Any]) -> LoggingSettings:
    level = data.get("level", LoggingSettings().level)
    return LoggingSettings(level=validate_log_level(level, "logging.level"))


def parse_notifications(data: Mapping[str, Any]) -> NotificationSettings:
    defaults = NotificationSettings()
    webhook_url = data.get("webhook_url", defaults.webhook_url)
    if webhook_url is not None:
        webhook_url = validate_webhook_url(webhook_url, "notifications.webhook_url")

    backoff = data.get("backoff_seconds", list(defaults.backoff_seconds))
    if (
        not isinstance(backoff, list)
        or not backoff
        or any(isinstance(b, bool) or not isinstance(b, int) or b < 0 for b in backoff)
    ):
        raise ConfigurationError(
            "notifications.backoff_seconds",
            "expected a non-empty list of non-negative integers",
        )

    return NotificationSettings(
        enabled=_bool(data, "enabled", defaults.enabled, "notifications"),
        webhook_url=webhook_url,
        timeout_seconds=_number(
            data, "timeout_seconds", defaults.timeout_seconds, "notifications",
        ),
        max_attempts=_int(
            data, "max_attempts", defaults.max_attempts, "notifications", minimum=1,
        ),
        backoff_seconds=tuple(backoff),
    )


def parse_settings(data: Mapping[str, Any]) -> WorkflowSettings:
    """Parse a whole settings document."""
    name = data.get("name", "default")
    if not isinstance(name, str) or not name:
        raise ConfigurationError("name", "must be a non-empty string")
    return WorkflowSettings(
        name=name,
        database=parse_database(_section(data, "database")),
        logging=parse_logging(_section(data, "logging")),
        notifications=parse_notifications(_section(data, "notifications")),
    )


def validate_database_url(url: Any, key: str) -> str:
    if not isinstance(url, str) or not url:
        raise ConfigurationError(key, "must be a non-empty SQLAlchemy URL")
    try:
        make_url(url)
    except ArgumentError as exc:
        raise ConfigurationError(key, str(exc)) from exc
    return url


def validate_log_level(level: Any, key: str) -> str:
    if not isinstance(level, str) or level.upper() not in _LOG_LEVELS:
        raise ConfigurationError(key, f"unknown log level {level!r}")
    return level.upper()


def validate_webhook_url(url: Any, key: str) -> str:
    if not isinstance(url, str) or not url.startswith(("http://", "https://")):
        raise ConfigurationError(key, f"expected an http(s) URL, got {url!r}")
    return url


def apply_environment(
    settings: WorkflowSettings, environ: Mapping[str, str],
) -> WorkflowSettings:
    """Overlay ``COMMISSION_*`` environment variables."""
    database = settings.database
    if environ.get(ENV_DATABASE_URL):
        database = replace(
            database,
            url=validate_database_url(environ[ENV_DATABASE_URL], ENV_DATABASE_URL),
        )

    log_settings = settings.logging
    if environ.get(ENV_LOG_LEVEL):
        log_settings = replace(
            log_settings,
            level=validate_log_level(environ[ENV_LOG_LEVEL], ENV_LOG_LEVEL),
        )

    notifications = settings.notifications
    if environ.get(ENV_WEBHOOK_URL):
        notifications = replace(
            notifications,
            webhook_url=validate_webhook_url(environ[ENV_WEBHOOK_URL], ENV_WEBHOOK_URL),
        )

    return replace(
        settings,
        database=database,
        logging=log_settings,
        notifications=notifications,
    )
