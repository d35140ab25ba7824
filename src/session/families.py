"""
Refresh-token family registry.

A family is the lineage of refresh tokens descended from one login. Exactly
one token id is current per family; presenting any other id of a live family
is treated as reuse of a stolen copy and poisons the whole family.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
import hmac
import threading
from uuid import uuid4

from loggers import get_logger
from src.core.errors.exceptions import PermissionDeniedException
from src.core.utils.datetime_utils import Clock, get_utc_now
from src.session.enums import FamilyState, RotationOutcome

logger = get_logger(__name__)


@dataclass(slots=True)
class FamilyRecord:
    family_id: str
    user_id: str
    current_token_id: str
    fingerprint: str
    created_at: datetime
    max_lifetime_deadline: datetime
    rotation_window_started_at: datetime
    rotations_in_window: int = 0
    generation: int = 1
    state: FamilyState = FamilyState.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.state is FamilyState.ACTIVE


class FamilyRegistry:
    def __init__(
        self,
        max_lifetime: timedelta,
        clock: Clock = get_utc_now,
        *,
        max_rotations_per_window: int = 0,
        rotation_window: timedelta = timedelta(minutes=5),
    ) -> None:
        self._max_lifetime = max_lifetime
        self._clock = clock
        self._max_rotations_per_window = max_rotations_per_window
        self._rotation_window = rotation_window
        self._families: dict[str, FamilyRecord] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._families)

    def create_family(
        self, user_id: str, fingerprint: str, max_active: int = 0
    ) -> tuple[str, str]:
        """
        Allocate a new family and the id of its first refresh token.

        With ``max_active`` > 0 the user's live families are counted under the
        same lock as the insert.

        Raises:
            PermissionDeniedException: the user already holds ``max_active``
                active families
        """
        now = self._clock()
        family_id = str(uuid4())
        token_id = str(uuid4())
        record = FamilyRecord(
            family_id=family_id,
            user_id=user_id,
            current_token_id=token_id,
            fingerprint=fingerprint,
            created_at=now,
            max_lifetime_deadline=now + self._max_lifetime,
            rotation_window_started_at=now,
        )
        with self._lock:
            if max_active and self._count_active(user_id, now) >= max_active:
                raise PermissionDeniedException("Maximum active sessions reached")
            self._families[family_id] = record
        logger.debug("[Families] Created family %s for user %s", family_id, user_id)
        return family_id, token_id

    def get(self, family_id: str) -> FamilyRecord | None:
        """Return a snapshot of the family, never the live record."""
        with self._lock:
            record = self._families.get(family_id)
            return replace(record) if record else None

    def rotate(
        self, family_id: str, presented_token_id: str, new_token_id: str
    ) -> RotationOutcome:
        """
        Advance the family to ``new_token_id`` if ``presented_token_id`` is current.

        Returns:
            RotationOutcome.ROTATED: the family now points at ``new_token_id``
            RotationOutcome.STALE: the family is unknown or already terminal
            RotationOutcome.EXPIRED: the family outlived its absolute deadline
            RotationOutcome.COMPROMISED: a superseded token was presented, or
                the family rotated more often than the window allows; the
                family is now terminal
        """
        now = self._clock()
        with self._lock:
            record = self._families.get(family_id)
            if record is None or not record.is_active:
                return RotationOutcome.STALE

            if now >= record.max_lifetime_deadline:
                return RotationOutcome.EXPIRED

            if record.current_token_id != presented_token_id:
                record.state = FamilyState.COMPROMISED
                logger.warning(
                    "[Families] Reuse of superseded token detected, family %s "
                    "(user %s, generation %s) marked compromised",
                    family_id,
                    record.user_id,
                    record.generation,
                )
                return RotationOutcome.COMPROMISED

            if now - record.rotation_window_started_at >= self._rotation_window:
                record.rotation_window_started_at = now
                record.rotations_in_window = 0
            record.rotations_in_window += 1
            if (
                self._max_rotations_per_window
                and record.rotations_in_window > self._max_rotations_per_window
            ):
                record.state = FamilyState.COMPROMISED
                logger.warning(
                    "[Families] Family %s (user %s) rotated %s times within %s, "
                    "marked compromised",
                    family_id,
                    record.user_id,
                    record.rotations_in_window,
                    self._rotation_window,
                )
                return RotationOutcome.COMPROMISED

            record.current_token_id = new_token_id
            record.generation += 1
            return RotationOutcome.ROTATED

    def flag_reuse(self, family_id: str, token_id: str) -> bool:
        """
        Mark a live family compromised when ``token_id`` is not its current token.

        Returns True when the family was poisoned by this call.
        """
        with self._lock:
            record = self._families.get(family_id)
            if record is None or not record.is_active:
                return False
            if record.current_token_id == token_id:
                return False
            record.state = FamilyState.COMPROMISED
        logger.warning(
            "[Families] Revoked token %s replayed, family %s marked compromised",
            token_id,
            family_id,
        )
        return True

    def check_fingerprint(self, family_id: str, presented: str) -> bool:
        with self._lock:
            record = self._families.get(family_id)
            stored = record.fingerprint if record else None
        if stored is None:
            return False
        return hmac.compare_digest(stored.encode(), presented.encode())

    def terminate(self, family_id: str) -> bool:
        """Close a family on logout. Compromised families stay compromised."""
        with self._lock:
            record = self._families.get(family_id)
            if record is None or not record.is_active:
                return False
            record.state = FamilyState.TERMINATED
        logger.debug("[Families] Terminated family %s", family_id)
        return True

    def terminate_user(self, user_id: str) -> int:
        terminated = 0
        with self._lock:
            for record in self._families.values():
                if record.user_id == user_id and record.is_active:
                    record.state = FamilyState.TERMINATED
                    terminated += 1
        return terminated

    def active_count_for_user(self, user_id: str) -> int:
        now = self._clock()
        with self._lock:
            return self._count_active(user_id, now)

    def _count_active(self, user_id: str, now: datetime) -> int:
        # Caller holds the lock.
        return sum(
            1
            for record in self._families.values()
            if record.user_id == user_id
            and record.is_active
            and record.max_lifetime_deadline > now
        )

    def purge_expired(self, now: datetime) -> int:
        """Drop every family, terminal or not, whose deadline has passed."""
        with self._lock:
            expired = [
                family_id
                for family_id, record in self._families.items()
                if record.max_lifetime_deadline <= now
            ]
            for family_id in expired:
                del self._families[family_id]
        return len(expired)

    def stats(self) -> dict[str, int]:
        counts = {state.value: 0 for state in FamilyState}
        with self._lock:
            for record in self._families.values():
                counts[record.state.value] += 1
        return counts
