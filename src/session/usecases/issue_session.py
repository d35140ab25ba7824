from fastapi import Depends
from starlette.responses import Response

from loggers import get_logger
from src.session.cookies import set_refresh_cookie
from src.session.dependencies import get_token_service
from src.session.enums import UserRole
from src.session.schemas import AccessTokenResponse
from src.session.service import TokenService

logger = get_logger(__name__)


class IssueSessionUseCase:
    """
    Use case for starting a session once the caller has verified credentials.

    The refresh token is written to the HTTP-only cookie; only the access
    token is returned in the body.
    """

    def __init__(self, token_service: TokenService) -> None:
        self.token_service = token_service

    async def execute(
        self,
        user_id: str,
        fingerprint: str,
        response: Response,
        role: str = UserRole.USER,
    ) -> AccessTokenResponse:
        pair = self.token_service.issue_initial_tokens(user_id, fingerprint, role=role)
        set_refresh_cookie(response, pair.refresh_token)

        logger.info("[IssueSession] User '%s' logged in", user_id)
        return AccessTokenResponse(
            access_token=pair.access_token,
            expires_in=int(
                (pair.access_claims.expires_at - pair.access_claims.issued_at).total_seconds()
            ),
        )


def get_issue_session_use_case(
    token_service: TokenService = Depends(get_token_service),
) -> IssueSessionUseCase:
    return IssueSessionUseCase(token_service=token_service)
