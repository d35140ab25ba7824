from fastapi import Depends
from starlette.responses import Response

from loggers import get_logger
from src.session.cookies import set_refresh_cookie
from src.session.dependencies import get_token_service
from src.session.schemas import AccessTokenResponse
from src.session.service import TokenService

logger = get_logger(__name__)


class RotateSessionUseCase:
    """Use case for exchanging the refresh cookie for a new token pair."""

    def __init__(self, token_service: TokenService) -> None:
        self.token_service = token_service

    async def execute(
        self,
        refresh_token: str,
        fingerprint: str,
        response: Response,
    ) -> AccessTokenResponse:
        pair = self.token_service.rotate(refresh_token, fingerprint)
        set_refresh_cookie(response, pair.refresh_token)

        logger.debug(
            "[RotateSession] Tokens refreshed for user '%s'", pair.access_claims.subject
        )
        return AccessTokenResponse(
            access_token=pair.access_token,
            expires_in=int(
                (pair.access_claims.expires_at - pair.access_claims.issued_at).total_seconds()
            ),
        )


def get_rotate_session_use_case(
    token_service: TokenService = Depends(get_token_service),
) -> RotateSessionUseCase:
    return RotateSessionUseCase(token_service=token_service)
