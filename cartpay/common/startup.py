"""Startup-time helpers for safe config logging."""

from cartpay.common.config import settings
from cartpay.common.logging import logger

SECRET_MARKERS = ("key", "secret", "password", "sasl")


def _safe_value(name: str) -> str:
    """Return the resolved setting, redacted when the name looks secret."""

    value = getattr(settings, name, None)
    if value is None:
        return "<unset>"
    if any(marker in name.lower() for marker in SECRET_MARKERS):
        return "<redacted>"
    return str(value)


def log_startup_config(service_name: str, fields: list[str]) -> None:
    """Log selected settings (after env and .env resolution) for troubleshooting."""

    config = {"service": service_name}
    for name in fields:
        config[name] = _safe_value(name)
    logger.info("startup_config=%s", config)
