"""
commission_config -- single public entrypoint for workflow configuration.

Responsibility:
    ``get_active_config()`` is the ONLY way to obtain configuration at
    runtime.  No other component reads settings files or ``COMMISSION_*``
    environment variables directly.

Architecture position:
    Configuration.  Sits beside ``commission_kernel``; the kernel MUST
    NEVER import from ``commission_config``.  ``commission_services.runtime``
    translates the returned settings into kernel constructor arguments.

Resolution order:
    1. ``config_path`` argument, else ``COMMISSION_CONFIG``, else
       ``sets/default.yaml`` shipped with the package.
    2. ``COMMISSION_DATABASE_URL``, ``COMMISSION_LOG_LEVEL`` and
       ``COMMISSION_NOTIFICATION_WEBHOOK_URL`` override the file.

Failure modes:
    - ``FileNotFoundError`` -- the selected settings file does not exist.
    - ``ConfigurationError`` (a ``ValueError``) -- invalid value.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

from commission_config.loader import (
    ENV_CONFIG_PATH,
    apply_environment,
    load_yaml_file,
    parse_settings,
)
from commission_config.schema import (
    ConfigurationError,
    DatabaseSettings,
    LoggingSettings,
    NotificationSettings,
    WorkflowSettings,
)

_logger = logging.getLogger("commission_kernel.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(
    config_path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> WorkflowSettings:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Settings YAML to load.  Defaults to ``COMMISSION_CONFIG``
            or the packaged ``sets/default.yaml``.
        environ: Environment mapping; defaults to ``os.environ``.  Tests
            pass a dict.

    Returns:
        Frozen ``WorkflowSettings``.
    """
    env = os.environ if environ is None else environ

    if config_path is not None:
        path = Path(config_path)
    elif env.get(ENV_CONFIG_PATH):
        path = Path(env[ENV_CONFIG_PATH])
    else:
        path = _DEFAULT_CONFIG_PATH

    settings = apply_environment(parse_settings(load_yaml_file(path)), env)

    _logger.info(
        "COMMISSION_CONFIG_TRACE",
        extra={
            "config_name": settings.name,
            "config_path": str(path),
            "database_dialect": settings.database.url.split(":", 1)[0],
            "notifications_enabled": settings.notifications.enabled,
            "webhook_configured": settings.notifications.webhook_url is not None,
        },
    )
    return settings


__all__ = [
    "get_active_config",
    "ConfigurationError",
    "DatabaseSettings",
    "LoggingSettings",
    "NotificationSettings",
    "WorkflowSettings",
]
