from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from src.core.errors.exceptions import PermissionDeniedException
from src.main.config import Config
from src.session.enums import FamilyState, TokenType
from src.session.errors import (
    ExpiredToken,
    FamilyCompromised,
    FamilyExpired,
    FingerprintMismatch,
    InvalidTokenFamily,
    TokenError,
    TokenRevoked,
    WrongTokenType,
)
from src.session.service import TokenService
from tests.fakes.clock import FakeClock

FINGERPRINT = "fingerprint-of-legit-client"


def test_issue_initial_tokens_creates_family(token_service: TokenService) -> None:
    pair = token_service.issue_initial_tokens("user-1", FINGERPRINT, role="admin")

    assert pair.access_claims.token_type is TokenType.ACCESS
    assert pair.refresh_claims.token_type is TokenType.REFRESH
    assert pair.access_claims.family_id == pair.refresh_claims.family_id
    assert pair.access_claims.token_id != pair.refresh_claims.token_id
    assert pair.access_claims.role == "admin"

    family = token_service.families.get(pair.refresh_claims.family_id)
    assert family is not None
    assert family.current_token_id == pair.refresh_claims.token_id
    assert family.fingerprint == FINGERPRINT


def test_verify_access_returns_claims(token_service: TokenService) -> None:
    pair = token_service.issue_initial_tokens("user-1", FINGERPRINT)

    claims = token_service.verify_access(pair.access_token)

    assert claims == pair.access_claims


def test_refresh_token_presented_to_verify_access_is_wrong_type(
    token_service: TokenService,
) -> None:
    pair = token_service.issue_initial_tokens("user-1", FINGERPRINT)

    with pytest.raises(WrongTokenType):
        token_service.verify_access(pair.refresh_token)


def test_access_token_presented_to_rotate_is_wrong_type(
    token_service: TokenService,
) -> None:
    pair = token_service.issue_initial_tokens("user-1", FINGERPRINT)

    with pytest.raises(WrongTokenType):
        token_service.rotate(pair.access_token, FINGERPRINT)


def test_verify_access_after_ttl_is_expired(
    token_service: TokenService, clock: FakeClock
) -> None:
    pair = token_service.issue_initial_tokens("user-1", FINGERPRINT)
    clock.advance(minutes=15)

    with pytest.raises(ExpiredToken):
        token_service.verify_access(pair.access_token)


def test_verify_access_with_invalidated_token_is_revoked(
    token_service: TokenService,
) -> None:
    pair = token_service.issue_initial_tokens("user-1", FINGERPRINT)
    token_service.invalidate(pair.access_claims.token_id, pair.access_claims.expires_at)

    with pytest.raises(TokenRevoked):
        token_service.verify_access(pair.access_token)


def test_verify_access_checks_fingerprint_when_given(
    token_service: TokenService,
) -> None:
    pair = token_service.issue_initial_tokens("user-1", FINGERPRINT)

    assert token_service.verify_access(pair.access_token, FINGERPRINT)
    with pytest.raises(FingerprintMismatch):
        token_service.verify_access(pair.access_token, "other-client")


def test_rotate_issues_new_pair_in_same_family(token_service: TokenService) -> None:
    first = token_service.issue_initial_tokens("user-1", FINGERPRINT)

    second = token_service.rotate(first.refresh_token, FINGERPRINT)

    family_id = first.refresh_claims.family_id
    assert second.refresh_claims.family_id == family_id
    assert second.refresh_claims.token_id != first.refresh_claims.token_id
    assert token_service.invalidated.is_invalidated(first.refresh_claims.token_id)
    family = token_service.families.get(family_id)
    assert family is not None
    assert family.generation == 2
    assert family.current_token_id == second.refresh_claims.token_id


def test_only_one_refresh_token_is_valid_at_a_time(
    token_service: TokenService,
) -> None:
    pair = token_service.issue_initial_tokens("user-1", FINGERPRINT)

    for _ in range(5):
        pair = token_service.rotate(pair.refresh_token, FINGERPRINT)

    family = token_service.families.get(pair.refresh_claims.family_id)
    assert family is not None
    assert family.generation == 6
    assert family.current_token_id == pair.refresh_claims.token_id


def test_replay_of_superseded_refresh_token_compromises_family(
    token_service: TokenService,
) -> None:
    a1_r1 = token_service.issue_initial_tokens("user-1", FINGERPRINT)
    a2_r2 = token_service.rotate(a1_r1.refresh_token, FINGERPRINT)
    family_id = a1_r1.refresh_claims.family_id

    family = token_service.families.get(family_id)
    assert family is not None
    assert family.generation == 2

    # Attacker replays R1.
    with pytest.raises(FamilyCompromised):
        token_service.rotate(a1_r1.refresh_token, FINGERPRINT)

    # The legitimate holder is locked out as well.
    with pytest.raises(FamilyCompromised):
        token_service.rotate(a2_r2.refresh_token, FINGERPRINT)
    with pytest.raises(FamilyCompromised):
        token_service.verify_access(a2_r2.access_token)

    family = token_service.families.get(family_id)
    assert family is not None
    assert family.state is FamilyState.COMPROMISED


def test_repeated_replay_keeps_reporting_compromise(
    token_service: TokenService,
) -> None:
    pair = token_service.issue_initial_tokens("user-1", FINGERPRINT)
    token_service.rotate(pair.refresh_token, FINGERPRINT)

    for _ in range(3):
        with pytest.raises(FamilyCompromised):
            token_service.rotate(pair.refresh_token, FINGERPRINT)


def test_rotate_with_other_fingerprint_fails_without_terminating_family(
    token_service: TokenService,
) -> None:
    pair = token_service.issue_initial_tokens("user-1", FINGERPRINT)

    with pytest.raises(FingerprintMismatch) as exc_info:
        token_service.rotate(pair.refresh_token, "stolen-cookie-client")

    assert exc_info.value.security_event is True
    family = token_service.families.get(pair.refresh_claims.family_id)
    assert family is not None
    assert family.state is FamilyState.ACTIVE
    assert family.generation == 1

    rotated = token_service.rotate(pair.refresh_token, FINGERPRINT)
    assert rotated.refresh_claims.family_id == pair.refresh_claims.family_id


def test_rotate_after_family_deadline_is_family_expired(
    token_service: TokenService, clock: FakeClock
) -> None:
    pair = token_service.issue_initial_tokens("user-1", FINGERPRINT)

    # Keep the chain alive through rotation until the absolute cap is hit.
    for _ in range(5):
        clock.advance(days=5)
        pair = token_service.rotate(pair.refresh_token, FINGERPRINT)

    clock.advance(days=5)
    with pytest.raises(FamilyExpired):
        token_service.rotate(pair.refresh_token, FINGERPRINT)


def test_rotate_expired_refresh_token(
    token_service: TokenService, clock: FakeClock
) -> None:
    pair = token_service.issue_initial_tokens("user-1", FINGERPRINT)
    clock.advance(days=7)

    with pytest.raises(ExpiredToken):
        token_service.rotate(pair.refresh_token, FINGERPRINT)


def test_rotate_after_logout_is_revoked(token_service: TokenService) -> None:
    pair = token_service.issue_initial_tokens("user-1", FINGERPRINT)

    token_service.logout(pair.access_claims, pair.refresh_token)

    with pytest.raises(TokenRevoked):
        token_service.rotate(pair.refresh_token, FINGERPRINT)
    with pytest.raises(TokenRevoked):
        token_service.verify_access(pair.access_token)
    family = token_service.families.get(pair.refresh_claims.family_id)
    assert family is not None
    assert family.state is FamilyState.TERMINATED


def test_logout_ignores_unusable_refresh_token(token_service: TokenService) -> None:
    pair = token_service.issue_initial_tokens("user-1", FINGERPRINT)

    token_service.logout(pair.access_claims, "not-a-token")

    assert token_service.invalidated.is_invalidated(pair.access_claims.token_id)
    assert len(token_service.invalidated) == 1


def test_rotate_unknown_family_is_invalid(token_service: TokenService) -> None:
    pair = token_service.issue_initial_tokens("user-1", FINGERPRINT)
    token_service.families.purge_expired(
        pair.refresh_claims.issued_at + timedelta(days=31)
    )

    with pytest.raises(InvalidTokenFamily):
        token_service.rotate(pair.refresh_token, FINGERPRINT)
    with pytest.raises(InvalidTokenFamily):
        token_service.verify_access(pair.access_token)


def test_logout_everywhere_terminates_all_user_families(
    token_service: TokenService,
) -> None:
    first = token_service.issue_initial_tokens("user-1", FINGERPRINT)
    second = token_service.issue_initial_tokens("user-1", FINGERPRINT)
    other = token_service.issue_initial_tokens("user-2", FINGERPRINT)

    assert token_service.logout_everywhere("user-1") == 2

    for pair in (first, second):
        with pytest.raises(TokenRevoked):
            token_service.verify_access(pair.access_token)
        with pytest.raises(InvalidTokenFamily):
            token_service.rotate(pair.refresh_token, FINGERPRINT)
    assert token_service.verify_access(other.access_token)


def test_active_session_limit(token_service: TokenService) -> None:
    for _ in range(5):
        token_service.issue_initial_tokens("user-1", FINGERPRINT)

    with pytest.raises(PermissionDeniedException):
        token_service.issue_initial_tokens("user-1", FINGERPRINT)

    token_service.logout_everywhere("user-1")
    token_service.issue_initial_tokens("user-1", FINGERPRINT)


def test_sweep_returns_memory_to_baseline(
    token_service: TokenService, clock: FakeClock
) -> None:
    pair = token_service.issue_initial_tokens("user-1", FINGERPRINT)
    token_service.rotate(pair.refresh_token, FINGERPRINT)
    assert len(token_service.invalidated) == 1

    clock.advance(days=7)
    report = token_service.sweep()
    assert report.invalidated_removed == 1
    assert report.invalidated_remaining == 0
    assert report.families_removed == 0

    clock.advance(days=23)
    report = token_service.sweep()
    assert report.families_removed == 1
    assert len(token_service.families) == 0


def test_concurrent_rotation_with_same_token_succeeds_at_most_once(
    token_service: TokenService,
) -> None:
    pair = token_service.issue_initial_tokens("user-1", FINGERPRINT)

    def attempt(_: int) -> str:
        try:
            token_service.rotate(pair.refresh_token, FINGERPRINT)
        except TokenError as exc:
            return exc.tag
        return "OK"

    with ThreadPoolExecutor(max_workers=16) as executor:
        results = list(executor.map(attempt, range(32)))

    assert results.count("OK") <= 1
    assert set(results) <= {
        "OK",
        "TOKEN_FAMILY_COMPROMISED",
        "INVALID_TOKEN_FAMILY",
        "TOKEN_REVOKED",
    }


def test_concurrent_replays_of_superseded_token_all_report_compromise(
    token_service: TokenService,
) -> None:
    stale = token_service.issue_initial_tokens("user-1", FINGERPRINT)
    current = token_service.rotate(stale.refresh_token, FINGERPRINT)

    def attempt(_: int) -> str:
        try:
            token_service.rotate(stale.refresh_token, FINGERPRINT)
        except TokenError as exc:
            return exc.tag
        return "OK"

    with ThreadPoolExecutor(max_workers=16) as executor:
        results = list(executor.map(attempt, range(32)))

    assert set(results) == {"TOKEN_FAMILY_COMPROMISED"}
    family = token_service.families.get(stale.refresh_claims.family_id)
    assert family is not None
    assert family.state is FamilyState.COMPROMISED
    with pytest.raises(FamilyCompromised):
        token_service.rotate(current.refresh_token, FINGERPRINT)


def test_concurrent_logins_respect_active_session_limit(
    token_service: TokenService,
) -> None:
    def attempt(_: int) -> bool:
        try:
            token_service.issue_initial_tokens("user-1", FINGERPRINT)
        except PermissionDeniedException:
            return False
        return True

    with ThreadPoolExecutor(max_workers=16) as executor:
        results = list(executor.map(attempt, range(32)))

    assert results.count(True) == 5
    assert token_service.families.active_count_for_user("user-1") == 5


def test_revoke_refresh_closes_session_without_access_token(
    token_service: TokenService,
) -> None:
    pair = token_service.issue_initial_tokens("user-1", FINGERPRINT)

    claims = token_service.revoke_refresh(pair.refresh_token)

    assert claims == pair.refresh_claims
    with pytest.raises(TokenRevoked):
        token_service.rotate(pair.refresh_token, FINGERPRINT)
    with pytest.raises(TokenRevoked):
        token_service.verify_access(pair.access_token)
    with pytest.raises(TokenRevoked):
        token_service.revoke_refresh(pair.refresh_token)


def test_revoke_refresh_leaves_family_alone_for_superseded_token(
    token_service: TokenService,
) -> None:
    stale = token_service.issue_initial_tokens("user-1", FINGERPRINT)
    current = token_service.rotate(stale.refresh_token, FINGERPRINT)

    with pytest.raises(TokenRevoked):
        token_service.revoke_refresh(stale.refresh_token)

    assert token_service.verify_access(current.access_token)


def test_revoke_refresh_rejects_access_token(token_service: TokenService) -> None:
    pair = token_service.issue_initial_tokens("user-1", FINGERPRINT)

    with pytest.raises(WrongTokenType):
        token_service.revoke_refresh(pair.access_token)


def test_from_config_uses_configured_lifetimes(settings: Config) -> None:
    clock = FakeClock()
    service = TokenService.from_config(settings, clock=clock)

    pair = service.issue_initial_tokens("user-1", FINGERPRINT)

    assert pair.access_claims.expires_at - pair.access_claims.issued_at == timedelta(
        minutes=settings.jwt.ACCESS_TOKEN_EXPIRE_MINUTES
    )
    assert pair.refresh_claims.expires_at - pair.refresh_claims.issued_at == timedelta(
        minutes=settings.jwt.REFRESH_TOKEN_EXPIRE_MINUTES
    )


def test_from_config_compromises_family_that_rotates_too_fast(
    settings: Config,
) -> None:
    service = TokenService.from_config(settings, clock=FakeClock())
    pair = service.issue_initial_tokens("user-1", FINGERPRINT)

    for _ in range(settings.session.MAX_ROTATIONS_PER_WINDOW):
        pair = service.rotate(pair.refresh_token, FINGERPRINT)

    with pytest.raises(FamilyCompromised):
        service.rotate(pair.refresh_token, FINGERPRINT)
    with pytest.raises(FamilyCompromised):
        service.verify_access(pair.access_token)
