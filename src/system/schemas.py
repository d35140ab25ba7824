from typing import Literal

from src.core.schemas import Base


class SessionStoreStats(Base):
    invalidated_tokens: int
    families: dict[str, int]
    cleanup_running: bool
    cleanup_runs: int


class HealthCheckResponse(Base):
    status: Literal["ok"] = "ok"
    sessions: SessionStoreStats
