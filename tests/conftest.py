from collections.abc import AsyncGenerator, Generator
from datetime import timedelta
import os

# Settings are read once at import time, so the test environment must be in
# place before anything under ``src`` is imported.
os.environ.setdefault("TESTING", "true")
os.environ.setdefault("JWT_ACCESS_SECRET_KEY", "test-access-secret-0123456789abcdef")
os.environ.setdefault("JWT_REFRESH_SECRET_KEY", "test-refresh-secret-0123456789abcdef")

from fastapi import FastAPI  # noqa: E402
import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from src.main.config import Config, get_settings  # noqa: E402
from src.main.web import get_application  # noqa: E402
from src.session.codec import TokenCodec  # noqa: E402
from src.session.families import FamilyRegistry  # noqa: E402
from src.session.fingerprint import compute_fingerprint  # noqa: E402
from src.session.invalidation import InvalidationStore  # noqa: E402
from src.session.service import TokenService  # noqa: E402
from tests.fakes.clock import FakeClock  # noqa: E402
from tests.helpers.overrides import DependencyOverrides  # noqa: E402

TEST_CLIENT_IP = "127.0.0.1"
TEST_USER_AGENT = "session-tests/1.0"


@pytest.fixture(scope="session")
def settings() -> Config:
    get_settings.cache_clear()
    return get_settings()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def codec(settings: Config, clock: FakeClock) -> TokenCodec:
    return TokenCodec(settings.jwt, clock=clock)


@pytest.fixture
def token_service(codec: TokenCodec, clock: FakeClock) -> TokenService:
    return TokenService(
        codec=codec,
        families=FamilyRegistry(max_lifetime=timedelta(days=30), clock=clock),
        invalidated=InvalidationStore(),
        access_ttl=timedelta(minutes=15),
        refresh_ttl=timedelta(days=7),
        max_active_sessions=5,
        clock=clock,
    )


@pytest.fixture
def client_fingerprint() -> str:
    return compute_fingerprint(TEST_CLIENT_IP, TEST_USER_AGENT)


@pytest.fixture
def app(token_service: TokenService) -> FastAPI:
    application = get_application()
    # ASGITransport does not run the lifespan; attach the engine directly.
    application.state.token_service = token_service
    return application


@pytest.fixture
def dependency_overrides(app: FastAPI) -> Generator[DependencyOverrides]:
    overrides = DependencyOverrides(app)
    yield overrides
    overrides.reset()


@pytest_asyncio.fixture
async def async_client(app: FastAPI) -> AsyncGenerator[httpx.AsyncClient]:
    transport = httpx.ASGITransport(app=app, client=(TEST_CLIENT_IP, 50000))
    async with httpx.AsyncClient(
        transport=transport,
        base_url="http://testserver",
        headers={"User-Agent": TEST_USER_AGENT},
    ) as client:
        yield client
