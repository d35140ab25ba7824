from loggers import get_logger
from src.core.errors.exceptions import InfrastructureException
from src.session.scheduler import CleanupScheduler
from src.session.service import TokenService
from src.system.schemas import HealthCheckResponse, SessionStoreStats


class HealthService:
    def __init__(self, token_service: TokenService, scheduler: CleanupScheduler | None) -> None:
        self.token_service = token_service
        self.scheduler = scheduler
        self.logger = get_logger(__name__)

    async def get_status(self) -> HealthCheckResponse:
        cleanup_running = self.scheduler is not None and self.scheduler.is_running
        if not cleanup_running:
            self.logger.error("Token cleanup scheduler is not running")
            raise InfrastructureException(
                "System health check failed",
                additional_info={"cleanup_running": cleanup_running},
            )
        return HealthCheckResponse(
            status="ok",
            sessions=SessionStoreStats(
                invalidated_tokens=len(self.token_service.invalidated),
                families=self.token_service.families.stats(),
                cleanup_running=cleanup_running,
                cleanup_runs=self.scheduler.runs if self.scheduler else 0,
            ),
        )
