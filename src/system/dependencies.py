from fastapi import Depends, Request

from src.session.dependencies import get_token_service
from src.session.service import TokenService
from src.system.services import HealthService


async def get_health_service(
    request: Request,
    token_service: TokenService = Depends(get_token_service),
) -> HealthService:
    return HealthService(
        token_service=token_service,
        scheduler=getattr(request.app.state, "cleanup_scheduler", None),
    )
