from datetime import datetime
import threading


class InvalidationStore:
    """
    Time-indexed set of revoked token ids.

    An entry only needs to outlive the token it revokes: once ``expires_at``
    has passed, signature-expiry checks reject the token on their own, so
    ``sweep`` may drop it.
    """

    def __init__(self) -> None:
        self._entries: dict[str, datetime] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def invalidate(self, token_id: str, expires_at: datetime) -> None:
        with self._lock:
            current = self._entries.get(token_id)
            if current is None or expires_at > current:
                self._entries[token_id] = expires_at

    def is_invalidated(self, token_id: str) -> bool:
        with self._lock:
            return token_id in self._entries

    def sweep(self, now: datetime) -> int:
        with self._lock:
            expired = [
                token_id
                for token_id, expires_at in self._entries.items()
                if expires_at <= now
            ]
            for token_id in expired:
                del self._entries[token_id]
        return len(expired)
