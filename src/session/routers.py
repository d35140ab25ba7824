from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response

from src.core.schemas import ErrorResponse, SuccessResponse
from src.session.cookies import get_refresh_cookie
from src.session.dependencies import (
    get_current_identity,
    get_optional_identity,
    require_role,
)
from src.session.enums import UserRole
from src.session.errors import NoTokenProvided
from src.session.fingerprint import get_request_fingerprint
from src.session.schemas import (
    AccessTokenResponse,
    Identity,
    SessionsTerminatedResponse,
)
from src.session.usecases.logout import LogoutUseCase, get_logout_use_case
from src.session.usecases.rotate_session import (
    RotateSessionUseCase,
    get_rotate_session_use_case,
)

router = APIRouter(responses={401: {"model": ErrorResponse}})


@router.post("/refresh-token", status_code=200, response_model=AccessTokenResponse)
async def refresh_tokens(
    request: Request,
    response: Response,
    fingerprint: Annotated[str, Depends(get_request_fingerprint)],
    use_case: Annotated[RotateSessionUseCase, Depends(get_rotate_session_use_case)],
) -> AccessTokenResponse:
    """
    Rotate the refresh cookie and return a fresh access token.
    """
    refresh_token = get_refresh_cookie(request)
    if refresh_token is None:
        raise NoTokenProvided("Refresh token not found")
    return await use_case.execute(
        refresh_token=refresh_token, fingerprint=fingerprint, response=response
    )


@router.delete("/refresh-token", status_code=200, response_model=SuccessResponse)
async def logout(
    request: Request,
    response: Response,
    identity: Annotated[Identity | None, Depends(get_optional_identity)],
    use_case: Annotated[LogoutUseCase, Depends(get_logout_use_case)],
) -> SuccessResponse:
    """
    End the current session: revoke the access token, the refresh cookie and its family.

    Without an Authorization header the refresh cookie alone is enough, so a
    client whose access token expired can still close its session.
    """
    refresh_token = get_refresh_cookie(request)
    if identity is None:
        if refresh_token is None:
            raise NoTokenProvided("Authentication token not found")
        return await use_case.execute_with_refresh_token(
            refresh_token=refresh_token, response=response
        )

    return await use_case.execute(
        access_claims=request.state.token_claims,
        refresh_token=refresh_token,
        response=response,
    )


@router.delete(
    "/sessions", status_code=200, response_model=SessionsTerminatedResponse
)
async def logout_everywhere(
    identity: Annotated[Identity, Depends(get_current_identity)],
    use_case: Annotated[LogoutUseCase, Depends(get_logout_use_case)],
) -> SessionsTerminatedResponse:
    """
    Terminate every active session of the current user.
    """
    return await use_case.execute_everywhere(identity.user_id)


@router.delete(
    "/users/{user_id}/sessions",
    status_code=200,
    response_model=SessionsTerminatedResponse,
)
async def terminate_user_sessions(
    user_id: str,
    _admin: Annotated[Identity, Depends(require_role(UserRole.ADMIN))],
    use_case: Annotated[LogoutUseCase, Depends(get_logout_use_case)],
) -> SessionsTerminatedResponse:
    """
    Terminate every active session of another user. Admin only.
    """
    return await use_case.execute_everywhere(user_id)


@router.get("/me", status_code=200, response_model=Identity)
async def get_me(
    identity: Annotated[Identity, Depends(get_current_identity)],
) -> Identity:
    return identity
