from fastapi import Depends
from starlette.responses import Response

from loggers import get_logger
from src.core.schemas import SuccessResponse
from src.session.cookies import clear_refresh_cookie
from src.session.dependencies import get_token_service
from src.session.jwt_payload_schema import TokenClaims
from src.session.schemas import SessionsTerminatedResponse
from src.session.service import TokenService

logger = get_logger(__name__)


class LogoutUseCase:
    """Use case for ending the current session or every session of a user."""

    def __init__(self, token_service: TokenService) -> None:
        self.token_service = token_service

    async def execute(
        self,
        access_claims: TokenClaims,
        refresh_token: str | None,
        response: Response,
    ) -> SuccessResponse:
        self.token_service.logout(access_claims, refresh_token)
        clear_refresh_cookie(response)

        logger.info("[Logout] User '%s' logged out", access_claims.subject)
        return SuccessResponse(success=True)

    async def execute_with_refresh_token(
        self, refresh_token: str, response: Response
    ) -> SuccessResponse:
        claims = self.token_service.revoke_refresh(refresh_token)
        clear_refresh_cookie(response)

        logger.info("[Logout] User '%s' logged out with refresh token", claims.subject)
        return SuccessResponse(success=True)

    async def execute_everywhere(self, user_id: str) -> SessionsTerminatedResponse:
        terminated = self.token_service.logout_everywhere(user_id)
        return SessionsTerminatedResponse(terminated=terminated)


def get_logout_use_case(
    token_service: TokenService = Depends(get_token_service),
) -> LogoutUseCase:
    return LogoutUseCase(token_service=token_service)
