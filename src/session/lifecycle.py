from fastapi import FastAPI

from loggers import get_logger
from src.main.config import Config
from src.session.scheduler import CleanupScheduler
from src.session.service import TokenService

logger = get_logger(__name__)


async def on_session_startup(app: FastAPI, settings: Config) -> None:
    """
    Build the token service, check its secrets and start the cleanup loop.

    A ``ConfigError`` here aborts startup: the service must not accept
    requests with missing or weak signing secrets.
    """
    token_service = TokenService.from_config(settings)
    token_service.codec.validate_secrets()

    scheduler = CleanupScheduler(
        token_service, interval_seconds=settings.session.CLEANUP_INTERVAL_SECONDS
    )
    await scheduler.start()

    app.state.token_service = token_service
    app.state.cleanup_scheduler = scheduler
    logger.info("Session engine initialized.")


async def on_session_shutdown(app: FastAPI) -> None:
    scheduler: CleanupScheduler | None = getattr(app.state, "cleanup_scheduler", None)
    if scheduler:
        logger.info("Stopping token cleanup scheduler...")
        await scheduler.stop()
