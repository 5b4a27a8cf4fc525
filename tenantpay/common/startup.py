"""Startup-time helpers for safe config logging."""

from tenantpay.common.config import settings
from tenantpay.common.logging import logger

_SECRET_MARKERS = ("key", "secret", "password", "token")


def _safe_value(name: str, value: object) -> object:
    """Return a settings value, redacting secret-like field names."""

    if any(marker in name.lower() for marker in _SECRET_MARKERS):
        return "<redacted>" if value else "<unset>"
    return value


def log_startup_config(fields: list[str], **extra: object) -> None:
    """Log selected settings fields (plus fixed runtime constants) once at startup."""

    values = settings.model_dump()
    config: dict[str, object] = {"service": settings.service_name}
    for name in fields:
        config[name] = _safe_value(name, values.get(name))
    config.update(extra)
    logger.info("startup_config=%s", config)
