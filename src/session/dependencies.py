from collections.abc import Callable
from typing import Annotated, cast

from fastapi import Depends, Request, Security
from fastapi.security.api_key import APIKeyHeader

from loggers import get_logger
from src.core.errors.exceptions import PermissionDeniedException
from src.main.config import config
from src.session.errors import NoTokenProvided
from src.session.fingerprint import get_request_fingerprint
from src.session.schemas import Identity
from src.session.service import TokenService

logger = get_logger(__name__)

access_token_header = APIKeyHeader(
    name="Authorization", scheme_name="access-token", auto_error=False
)


async def get_token_service(request: Request) -> TokenService:
    """
    Provide the process-wide token service stored on app.state.
    """
    token_service = getattr(request.app.state, "token_service", None)
    if token_service is None:
        raise RuntimeError(
            "Token service is not initialized. Ensure startup lifecycle ran."
        )
    return cast(TokenService, token_service)


def extract_bearer_token(authorization: str | None) -> str:
    """
    Pull the token out of an ``Authorization: Bearer <token>`` header value.

    Raises:
        NoTokenProvided: the header is absent or not a bearer credential
    """
    if not authorization:
        raise NoTokenProvided("Authentication token not found")

    scheme, _, token = authorization.strip().partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token or " " in token:
        raise NoTokenProvided("Malformed authorization header")
    return token


async def get_current_identity(
    request: Request,
    authorization: str | None = Security(access_token_header),
    token_service: TokenService = Depends(get_token_service),
) -> Identity:
    """
    Authenticate the request from its bearer access token.

    On success the identity and the verified claims are attached to
    ``request.state`` for downstream handlers.
    """
    token = extract_bearer_token(authorization)

    fingerprint = None
    if config.session.BIND_ACCESS_TO_FINGERPRINT:
        fingerprint = await get_request_fingerprint(request)

    claims = token_service.verify_access(token, fingerprint)

    identity = Identity(
        user_id=claims.subject,
        token_id=claims.token_id,
        role=claims.role,
        family_id=claims.family_id,
    )
    request.state.identity = identity
    request.state.token_claims = claims
    return identity


async def get_optional_identity(
    request: Request,
    authorization: str | None = Security(access_token_header),
    token_service: TokenService = Depends(get_token_service),
) -> Identity | None:
    """
    Same as ``get_current_identity`` but yields None when no Authorization
    header is sent. A header that is present must still verify.
    """
    if authorization is None:
        return None
    return await get_current_identity(request, authorization, token_service)


def require_role(
    *roles: str,
) -> Callable[..., Identity]:
    def checker(
        identity: Annotated[Identity, Depends(get_current_identity)],
    ) -> Identity:
        if identity.role not in roles:
            logger.info(
                "[RBAC] User '%s' with role '%s' denied, requires %s",
                identity.user_id,
                identity.role,
                roles,
            )
            raise PermissionDeniedException("Permission denied")
        return identity

    return checker
