import logging
from typing import Any

import sentry_sdk
from sentry_sdk.integrations.logging import LoggingIntegration

from loggers import get_logger
from src.main.config import config

logger = get_logger(__name__)

_sentry_initialized = False

# Request headers that carry credentials and must never leave the process.
SCRUBBED_HEADERS = {"authorization", "cookie", "set-cookie"}


def scrub_credentials(event: dict[str, Any], hint: dict[str, Any]) -> dict[str, Any]:
    """
    Sentry ``before_send`` hook: drop bearer tokens and refresh cookies from events.
    """
    request = event.get("request") or {}
    headers = request.get("headers")
    if isinstance(headers, dict):
        request["headers"] = {
            key: ("[Filtered]" if key.lower() in SCRUBBED_HEADERS else value)
            for key, value in headers.items()
        }
    if "cookies" in request:
        request["cookies"] = "[Filtered]"
    return event


def init_sentry() -> None:
    """
    Initialize the Sentry client once using environment variables.
    """
    global _sentry_initialized

    if _sentry_initialized:
        return

    if config.app.DEBUG or getattr(config.app, "TESTING", False):
        logger.info("DEBUG/TESTING enabled. Skipping Sentry initialization.")
        return

    if not config.sentry.SENTRY_ENABLED or not config.sentry.SENTRY_DSN:
        logger.info("Sentry disabled or DSN empty. Skipping Sentry initialization.")
        return

    sentry_sdk.init(
        dsn=config.sentry.SENTRY_DSN,
        environment=config.sentry.SENTRY_ENV,
        release=config.app.VERSION,
        send_default_pii=False,
        before_send=scrub_credentials,  # type: ignore[arg-type]
        integrations=[
            LoggingIntegration(
                level=logging.INFO,  # breadcrumbs from INFO and up
                event_level=logging.CRITICAL,  # security events are sent explicitly
            ),
        ],
    )
    _sentry_initialized = True
    logger.info("Sentry initialized.")
