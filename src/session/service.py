"""
Token service: issuance, verification, rotation and revocation.

Composes the codec, the family registry and the invalidation store behind a
single contract so the replay guard (revoked ids) and the rotation chain
(current id per family) can never disagree about whether a token is usable.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
import hmac
from uuid import uuid4

from loggers import get_logger
from src.core.errors.exceptions import PermissionDeniedException
from src.core.utils.datetime_utils import Clock, get_utc_now
from src.main.config import Config
from src.session.codec import TokenCodec
from src.session.enums import FamilyState, RotationOutcome, TokenType, UserRole
from src.session.errors import (
    FamilyCompromised,
    FamilyExpired,
    FingerprintMismatch,
    InvalidTokenFamily,
    TokenError,
    TokenRevoked,
)
from src.session.families import FamilyRegistry
from src.session.invalidation import InvalidationStore
from src.session.jwt_payload_schema import TokenClaims, TokenPair

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class SweepReport:
    invalidated_removed: int
    families_removed: int
    invalidated_remaining: int
    families_remaining: dict[str, int]


class TokenService:
    def __init__(
        self,
        codec: TokenCodec,
        families: FamilyRegistry,
        invalidated: InvalidationStore,
        *,
        access_ttl: timedelta,
        refresh_ttl: timedelta,
        max_active_sessions: int = 0,
        clock: Clock = get_utc_now,
    ) -> None:
        self.codec = codec
        self.families = families
        self.invalidated = invalidated
        self._access_ttl = access_ttl
        self._refresh_ttl = refresh_ttl
        self._max_active_sessions = max_active_sessions
        self._clock = clock

    @classmethod
    def from_config(cls, settings: Config, clock: Clock = get_utc_now) -> "TokenService":
        return cls(
            codec=TokenCodec(settings.jwt, clock=clock),
            families=FamilyRegistry(
                max_lifetime=timedelta(days=settings.jwt.FAMILY_MAX_LIFETIME_DAYS),
                clock=clock,
                max_rotations_per_window=settings.session.MAX_ROTATIONS_PER_WINDOW,
                rotation_window=timedelta(
                    seconds=settings.session.ROTATION_WINDOW_SECONDS
                ),
            ),
            invalidated=InvalidationStore(),
            access_ttl=timedelta(minutes=settings.jwt.ACCESS_TOKEN_EXPIRE_MINUTES),
            refresh_ttl=timedelta(minutes=settings.jwt.REFRESH_TOKEN_EXPIRE_MINUTES),
            max_active_sessions=settings.session.MAX_ACTIVE_SESSIONS,
            clock=clock,
        )

    def issue_initial_tokens(
        self, user_id: str, fingerprint: str, role: str = UserRole.USER
    ) -> TokenPair:
        """
        Start a new family for ``user_id`` and issue its first access/refresh pair.

        Raises:
            PermissionDeniedException: the user already holds the maximum
                number of active sessions
            ConfigError: a signing secret is missing
        """
        try:
            family_id, refresh_token_id = self.families.create_family(
                user_id, fingerprint, max_active=self._max_active_sessions
            )
        except PermissionDeniedException:
            logger.info("[IssueTokens] User '%s' hit the active session limit", user_id)
            raise

        try:
            pair = self._issue_pair(
                user_id=user_id,
                role=role,
                family_id=family_id,
                fingerprint=fingerprint,
                refresh_token_id=refresh_token_id,
            )
        except Exception:
            self.families.terminate(family_id)
            raise

        logger.info("[IssueTokens] New session family %s for user '%s'", family_id, user_id)
        return pair

    def verify_access(self, token: str, fingerprint: str | None = None) -> TokenClaims:
        """
        Authenticate an access token.

        Raises:
            MalformedToken, ExpiredToken, WrongTokenType: from the codec
            TokenRevoked: the token was revoked or its session logged out
            InvalidTokenFamily: the token's family is unknown
            FamilyCompromised: the token's family was poisoned by reuse
            FingerprintMismatch: ``fingerprint`` differs from the issuing request
        """
        claims = self.codec.decode(token, TokenType.ACCESS)

        if self.invalidated.is_invalidated(claims.token_id):
            raise TokenRevoked("Access token has been revoked")

        family = self.families.get(claims.family_id)
        if family is None:
            raise InvalidTokenFamily("Unknown token family")
        if family.state is FamilyState.COMPROMISED:
            raise FamilyCompromised("Token family compromised")
        if family.state is FamilyState.TERMINATED:
            raise TokenRevoked("Session has been terminated")

        if fingerprint is not None and not hmac.compare_digest(
            claims.fingerprint.encode(), fingerprint.encode()
        ):
            logger.warning(
                "[VerifyAccess] Fingerprint mismatch for user '%s', family %s",
                claims.subject,
                claims.family_id,
            )
            raise FingerprintMismatch("Access token presented from a different client")

        return claims

    def rotate(self, refresh_token: str, fingerprint: str) -> TokenPair:
        """
        Exchange the current refresh token of a family for a fresh pair.

        Presenting a refresh token that was already superseded poisons the
        family: every token bearing its id fails from then on.

        Raises:
            MalformedToken, ExpiredToken, WrongTokenType: from the codec
            TokenRevoked: the refresh token was revoked by logout
            InvalidTokenFamily: the family is unknown or already closed
            FingerprintMismatch: the request comes from a different client
                than the one that created the family
            FamilyCompromised: reuse of a superseded token was detected, or
                the family rotated faster than the configured window allows
            FamilyExpired: the family outlived its absolute lifetime
        """
        claims = self.codec.decode(refresh_token, TokenType.REFRESH)

        if self.invalidated.is_invalidated(claims.token_id):
            if self.families.flag_reuse(claims.family_id, claims.token_id):
                raise FamilyCompromised("Refresh token reuse detected")
            family = self.families.get(claims.family_id)
            if family is not None and family.state is FamilyState.COMPROMISED:
                raise FamilyCompromised("Token family compromised")
            raise TokenRevoked("Refresh token has been revoked")

        family = self.families.get(claims.family_id)
        if family is None:
            raise InvalidTokenFamily("Unknown token family")
        if family.state is FamilyState.COMPROMISED:
            raise FamilyCompromised("Token family compromised")

        if not self.families.check_fingerprint(claims.family_id, fingerprint):
            # Request-level rejection only; the family itself stays usable.
            logger.warning(
                "[RotateTokens] Fingerprint mismatch for user '%s', family %s",
                claims.subject,
                claims.family_id,
            )
            raise FingerprintMismatch("Refresh token presented from a different client")

        # Sign first so a signing failure can never advance the family.
        new_refresh_token_id = str(uuid4())
        pair = self._issue_pair(
            user_id=claims.subject,
            role=claims.role,
            family_id=claims.family_id,
            fingerprint=family.fingerprint,
            refresh_token_id=new_refresh_token_id,
        )

        outcome = self.families.rotate(
            claims.family_id, claims.token_id, new_refresh_token_id
        )
        if outcome is RotationOutcome.STALE:
            raise InvalidTokenFamily("Token family is no longer active")
        if outcome is RotationOutcome.EXPIRED:
            raise FamilyExpired("Token family exceeded its maximum lifetime")
        if outcome is RotationOutcome.COMPROMISED:
            raise FamilyCompromised("Token family compromised")

        self.invalidated.invalidate(claims.token_id, claims.expires_at)
        logger.debug(
            "[RotateTokens] Family %s advanced for user '%s'",
            claims.family_id,
            claims.subject,
        )
        return pair

    def invalidate(
        self, token_id: str, expires_at: datetime, family_id: str | None = None
    ) -> None:
        self.invalidated.invalidate(token_id, expires_at)
        if family_id is not None:
            self.families.terminate(family_id)

    def logout(self, access_claims: TokenClaims, refresh_token: str | None = None) -> None:
        """
        Revoke the presented access token, the refresh token if it still
        decodes, and close their family.
        """
        self.invalidate(
            access_claims.token_id, access_claims.expires_at, access_claims.family_id
        )

        if not refresh_token:
            return

        try:
            refresh_claims = self.codec.decode(refresh_token, TokenType.REFRESH)
        except TokenError as exc:
            logger.info(
                "[Logout] Ignoring unusable refresh token for user '%s': %s",
                access_claims.subject,
                exc.tag,
            )
            return

        self.invalidate(
            refresh_claims.token_id, refresh_claims.expires_at, refresh_claims.family_id
        )

    def revoke_refresh(self, refresh_token: str) -> TokenClaims:
        """
        Logout driven by the refresh token alone, for clients whose access
        token already expired.

        Raises:
            MalformedToken, ExpiredToken, WrongTokenType: from the codec
            TokenRevoked: the refresh token was already revoked or superseded
            InvalidTokenFamily: the token is not the current one of a known family
        """
        claims = self.codec.decode(refresh_token, TokenType.REFRESH)
        if self.invalidated.is_invalidated(claims.token_id):
            raise TokenRevoked("Refresh token has been revoked")

        family = self.families.get(claims.family_id)
        if family is None or family.current_token_id != claims.token_id:
            raise InvalidTokenFamily("Token family is no longer active")

        self.invalidate(claims.token_id, claims.expires_at, claims.family_id)
        return claims

    def logout_everywhere(self, user_id: str) -> int:
        terminated = self.families.terminate_user(user_id)
        logger.info(
            "[Logout] Terminated %s session families for user '%s'", terminated, user_id
        )
        return terminated

    def sweep(self, now: datetime | None = None) -> SweepReport:
        now = now or self._clock()
        invalidated_removed = self.invalidated.sweep(now)
        families_removed = self.families.purge_expired(now)
        return SweepReport(
            invalidated_removed=invalidated_removed,
            families_removed=families_removed,
            invalidated_remaining=len(self.invalidated),
            families_remaining=self.families.stats(),
        )

    def _issue_pair(
        self,
        *,
        user_id: str,
        role: str,
        family_id: str,
        fingerprint: str,
        refresh_token_id: str,
    ) -> TokenPair:
        access = self.codec.issue(
            subject=user_id,
            token_type=TokenType.ACCESS,
            token_id=str(uuid4()),
            family_id=family_id,
            fingerprint=fingerprint,
            role=role,
            ttl=self._access_ttl,
        )
        refresh = self.codec.issue(
            subject=user_id,
            token_type=TokenType.REFRESH,
            token_id=refresh_token_id,
            family_id=family_id,
            fingerprint=fingerprint,
            role=role,
            ttl=self._refresh_ttl,
        )
        return TokenPair(
            access_token=access.token,
            refresh_token=refresh.token,
            access_claims=access.claims,
            refresh_claims=refresh.claims,
        )
