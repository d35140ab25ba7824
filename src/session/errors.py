"""
Failure kinds raised by the session engine.

Every per-request kind is an ``UnauthorizedException`` carrying a stable
machine-readable ``tag``; the exception handler turns them into a uniform 401
response so clients cannot tell an expired token from a revoked one.
"""

from typing import Any, ClassVar

from src.core.errors.exceptions import InfrastructureException, UnauthorizedException

UNIFORM_TOKEN_ERROR_MESSAGE = "Invalid or expired token"


class TokenError(UnauthorizedException):
    tag: ClassVar[str] = "INVALID_TOKEN"
    status_code: ClassVar[int] = 401
    # Logged at WARNING and reported as a security signal.
    security_event: ClassVar[bool] = False
    # The client must drop its refresh cookie and re-authenticate.
    terminates_session: ClassVar[bool] = False

    def __init__(
        self, message: str | None = None, additional_info: dict[str, Any] | None = None
    ):
        super().__init__(message or self.tag, additional_info)


class NoTokenProvided(TokenError):
    tag = "NO_TOKEN_PROVIDED"


class MalformedToken(TokenError):
    tag = "MALFORMED_TOKEN"


class ExpiredToken(TokenError):
    tag = "TOKEN_EXPIRED"


class WrongTokenType(TokenError):
    tag = "WRONG_TOKEN_TYPE"


class TokenRevoked(TokenError):
    tag = "TOKEN_REVOKED"


class FingerprintMismatch(TokenError):
    tag = "FINGERPRINT_MISMATCH"
    security_event = True


class InvalidTokenFamily(TokenError):
    tag = "INVALID_TOKEN_FAMILY"


class FamilyCompromised(TokenError):
    tag = "TOKEN_FAMILY_COMPROMISED"
    security_event = True
    terminates_session = True


class FamilyExpired(TokenError):
    tag = "TOKEN_FAMILY_EXPIRED"
    terminates_session = True


class ConfigError(InfrastructureException):
    tag: ClassVar[str] = "CONFIG_ERROR"
