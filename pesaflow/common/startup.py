"""Startup snapshot of the environment keys named in `STARTUP_CONFIG_KEYS`."""

import os
from collections.abc import Mapping
from urllib.parse import urlsplit, urlunsplit

from pesaflow.common.config import settings
from pesaflow.common.logging import logger

SECRET_MARKERS = ("KEY", "SECRET", "PASSWORD", "TOKEN")


def redact(name: str, value: str | None) -> str:
    """Hide credential values; URLs keep their host but lose any password."""

    if value is None:
        return "<unset>"
    if any(marker in name.upper() for marker in SECRET_MARKERS):
        return "<redacted>"
    parts = urlsplit(value)
    if parts.password:
        netloc = f"{parts.username or ''}:<redacted>@{parts.hostname or ''}"
        if parts.port:
            netloc += f":{parts.port}"
        return urlunsplit(parts._replace(netloc=netloc))
    return value


def log_startup_config(
    service_name: str,
    keys: list[str] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, str]:
    environ = os.environ if environ is None else environ
    snapshot = {"service": service_name}
    for key in settings.startup_config_keys if keys is None else keys:
        snapshot[key] = redact(key, environ.get(key))
    logger.info("startup_config=%s", snapshot)
    return snapshot
