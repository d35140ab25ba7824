"""
Refresh-token cookie handling.

The refresh token only ever travels in an HTTP-only, ``SameSite=strict``
cookie scoped to the rotation endpoint. Clearing must repeat the exact
attributes used when setting, otherwise browsers keep the old cookie.
"""

from typing import Any

from fastapi import Request
from starlette.responses import Response

from loggers import get_logger
from src.main.config import CookieConfig, config

logger = get_logger(__name__)


def _cookie_attributes(settings: CookieConfig) -> dict[str, Any]:
    return {
        "path": settings.REFRESH_COOKIE_PATH,
        "domain": settings.REFRESH_COOKIE_DOMAIN,
        "secure": settings.REFRESH_COOKIE_SECURE,
        "httponly": True,
        "samesite": "strict",
    }


def set_refresh_cookie(
    response: Response, refresh_token: str, settings: CookieConfig | None = None
) -> None:
    settings = settings or config.cookie
    response.set_cookie(
        settings.REFRESH_COOKIE_NAME,
        refresh_token,
        max_age=settings.REFRESH_COOKIE_MAX_AGE_SECONDS,
        **_cookie_attributes(settings),
    )


def clear_refresh_cookie(response: Response, settings: CookieConfig | None = None) -> None:
    settings = settings or config.cookie
    response.delete_cookie(settings.REFRESH_COOKIE_NAME, **_cookie_attributes(settings))
    logger.debug("Refresh token cookie cleared")


def get_refresh_cookie(request: Request, settings: CookieConfig | None = None) -> str | None:
    settings = settings or config.cookie
    return request.cookies.get(settings.REFRESH_COOKIE_NAME) or None
