"""
Workflow settings schema.

Frozen dataclasses parsed from ``sets/*.yaml`` by ``loader.py``.  The
runtime only ever sees a ``WorkflowSettings`` returned by
``commission_config.get_active_config()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field


class ConfigurationError(ValueError):
    """A configuration value is missing or invalid."""

    code: str = "INVALID_CONFIGURATION"

    def __init__(self, key: str, detail: str):
        self.key = key
        self.detail = detail
        super().__init__(f"Invalid configuration for {key}: {detail}")


@dataclass(frozen=True)
class DatabaseSettings:
    url: str = "sqlite:///commission_workflow.db"
    echo: bool = False
    pool_size: int = 10
    max_overflow: int = 5
    pool_timeout: int = 30
    busy_timeout_seconds: float = 30.0


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class NotificationSettings:
    """Outbox relay and dispatcher settings.

    With ``enabled`` false or no ``webhook_url`` the runtime falls back to
    the logging dispatcher; events are still written to the outbox.
    """

    enabled: bool = True
    webhook_url: str | None = None
    timeout_seconds: float = 10.0
    max_attempts: int = 5
    backoff_seconds: tuple[int, ...] = (30, 120, 600, 3600)


@dataclass(frozen=True)
class WorkflowSettings:
    """Everything the runtime needs to assemble the workflow."""

    name: str = "default"
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    notifications: NotificationSettings = field(default_factory=NotificationSettings)
