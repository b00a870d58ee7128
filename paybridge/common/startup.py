"""Startup-time config snapshot with secrets redacted."""

from paybridge.common.config import CommonSettings
from paybridge.common.logging import logger

SECRET_MARKERS = ("key", "secret", "password", "token", "dsn", "database_url")


def _display(field: str, value: object) -> str:
    if value in ("", None):
        return "<empty>"
    if any(marker in field for marker in SECRET_MARKERS):
        return "<redacted>"
    return str(value)


def log_startup_config(cfg: CommonSettings, fields: list[str]) -> dict[str, str]:
    """Log selected settings for troubleshooting and return what was logged.

    Missing gateway credentials only produce a warning here; the first token
    exchange raises `ConfigurationError`.
    """

    config = {"service": cfg.service_name}
    for field in fields:
        config[field] = _display(field, getattr(cfg, field))
    logger.info("startup_config=%s", config)
    if not cfg.phonepe_client_id or not cfg.phonepe_client_secret:
        logger.warning("gateway credentials are not configured; order creation will fail")
    return config
