"""
Signed token codec.

Access and refresh tokens are HMAC-signed JWTs with distinct secrets. The
signing algorithm is fixed by configuration; a token whose header asserts any
other algorithm is rejected before signature verification.
"""

from datetime import timedelta
from typing import cast

import jwt

from loggers import get_logger
from src.core.utils.datetime_utils import Clock, from_timestamp, get_utc_now
from src.main.config import JWTConfig
from src.session.enums import TokenType
from src.session.errors import (
    ConfigError,
    ExpiredToken,
    MalformedToken,
    WrongTokenType,
)
from src.session.jwt_payload_schema import IssuedToken, JWTPayload, TokenClaims

logger = get_logger(__name__)

REQUIRED_CLAIMS = ["sub", "jti", "type", "family", "fingerprint", "iat", "exp"]


class TokenCodec:
    def __init__(self, settings: JWTConfig, clock: Clock = get_utc_now) -> None:
        self._settings = settings
        self._clock = clock

    @property
    def algorithm(self) -> str:
        return self._settings.ALGORITHM

    def secret_for(self, token_type: TokenType) -> str:
        if token_type is TokenType.ACCESS:
            secret = self._settings.JWT_ACCESS_SECRET_KEY
        else:
            secret = self._settings.JWT_REFRESH_SECRET_KEY
        if not secret:
            raise ConfigError(f"Signing secret for {token_type} tokens is not configured")
        return secret

    def validate_secrets(self) -> None:
        """
        Fail fast when the signing secrets are unusable.

        Raises:
            ConfigError: a secret is missing, shorter than the configured
                minimum, or both token types share the same secret.
        """
        access_secret = self.secret_for(TokenType.ACCESS)
        refresh_secret = self.secret_for(TokenType.REFRESH)
        min_length = self._settings.JWT_SECRET_MIN_LENGTH

        for token_type, secret in (
            (TokenType.ACCESS, access_secret),
            (TokenType.REFRESH, refresh_secret),
        ):
            if len(secret) < min_length:
                raise ConfigError(
                    f"Signing secret for {token_type} tokens must be at least "
                    f"{min_length} characters long"
                )

        if access_secret == refresh_secret:
            raise ConfigError("Access and refresh tokens must use distinct secrets")

    def issue(
        self,
        *,
        subject: str,
        token_type: TokenType,
        token_id: str,
        family_id: str,
        fingerprint: str,
        role: str,
        ttl: timedelta,
    ) -> IssuedToken:
        """
        Sign a new token of ``token_type`` valid for ``ttl`` from now.

        Returns:
            IssuedToken: the encoded token and the claims it carries

        Raises:
            ConfigError: the secret for ``token_type`` is not configured
        """
        secret = self.secret_for(token_type)
        issued_at = int(self._clock().timestamp())

        payload: JWTPayload = {
            "sub": subject,
            "jti": token_id,
            "type": token_type.value,
            "family": family_id,
            "fingerprint": fingerprint,
            "role": role,
            "iat": issued_at,
            "exp": issued_at + int(ttl.total_seconds()),
            "iss": self._settings.ISSUER,
            "aud": self._settings.AUDIENCE,
        }

        encoded_jwt = jwt.encode(dict(payload), secret, algorithm=self.algorithm)
        return IssuedToken(token=str(encoded_jwt), claims=self._to_claims(payload))

    def decode(self, token: str, expected_type: TokenType) -> TokenClaims:
        """
        Verify ``token`` and return its claims.

        The secret is chosen from the type the token declares, so a genuine
        token presented at the wrong use-site is reported as
        ``WrongTokenType`` rather than as a bad signature.

        Raises:
            MalformedToken: unparseable, wrong algorithm, bad signature, wrong
                issuer/audience or missing claims
            ExpiredToken: the clock is at or past ``exp``
            WrongTokenType: the declared type differs from ``expected_type``
            ConfigError: the secret for the declared type is not configured
        """
        declared_type = self._peek_type(token)

        try:
            payload = jwt.decode(
                token,
                self.secret_for(declared_type),
                algorithms=[self.algorithm],
                audience=self._settings.AUDIENCE,
                issuer=self._settings.ISSUER,
                options={
                    # Time-based checks run against the injected clock below.
                    "verify_exp": False,
                    "verify_iat": False,
                    "verify_nbf": False,
                    "require": REQUIRED_CLAIMS,
                },
            )
        except jwt.PyJWTError as exc:
            logger.debug("Token verification failed: %s", exc)
            raise MalformedToken("Token verification failed") from exc

        claims = self._to_claims(cast(JWTPayload, payload))

        if self._clock() >= claims.expires_at:
            raise ExpiredToken("Token expired")

        if claims.token_type is not expected_type:
            raise WrongTokenType(
                f"Expected {expected_type} token, got {claims.token_type}"
            )

        return claims

    def _peek_type(self, token: str) -> TokenType:
        try:
            header = jwt.get_unverified_header(token)
            unverified = jwt.decode(token, options={"verify_signature": False})
        except jwt.PyJWTError as exc:
            raise MalformedToken("Token could not be parsed") from exc

        if header.get("alg") != self.algorithm:
            logger.warning(
                "Rejected token signed with unexpected algorithm %r", header.get("alg")
            )
            raise MalformedToken("Unexpected token algorithm")

        try:
            return TokenType(unverified.get("type"))
        except ValueError as exc:
            raise MalformedToken("Unknown token type") from exc

    @staticmethod
    def _to_claims(payload: JWTPayload) -> TokenClaims:
        try:
            return TokenClaims(
                subject=str(payload["sub"]),
                token_id=str(payload["jti"]),
                token_type=TokenType(payload["type"]),
                family_id=str(payload["family"]),
                fingerprint=str(payload["fingerprint"]),
                role=str(payload.get("role", "user")),
                issued_at=from_timestamp(int(payload["iat"])),
                expires_at=from_timestamp(int(payload["exp"])),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise MalformedToken("Invalid token structure") from exc
