from enum import StrEnum


class TokenType(StrEnum):
    ACCESS = "access"
    REFRESH = "refresh"


class UserRole(StrEnum):
    USER = "user"
    ADMIN = "admin"


class FamilyState(StrEnum):
    ACTIVE = "active"
    COMPROMISED = "compromised"  # Reuse detected; terminal
    TERMINATED = "terminated"  # Logged out; terminal


class RotationOutcome(StrEnum):
    ROTATED = "rotated"
    STALE = "stale"
    COMPROMISED = "compromised"
    EXPIRED = "expired"
