from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from src.main.config import config
from src.main.sentry import init_sentry
from src.session.lifecycle import on_session_shutdown, on_session_startup


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    init_sentry()
    await on_session_startup(app, config)

    yield

    await on_session_shutdown(app)
