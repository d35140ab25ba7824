from dataclasses import dataclass
from datetime import datetime
from typing import TypedDict

from src.session.enums import TokenType


class JWTPayload(TypedDict):
    """Type definition for the signed token payload"""

    sub: str  # User ID
    jti: str  # Unique token ID, never reused
    type: str  # "access" | "refresh"
    family: str  # Refresh-token family, shared by the whole rotation chain
    fingerprint: str  # Hash of IP + user-agent of the issuing request
    role: str
    iat: int
    exp: int
    iss: str
    aud: str


@dataclass(frozen=True, slots=True)
class TokenClaims:
    subject: str
    token_id: str
    token_type: TokenType
    family_id: str
    fingerprint: str
    role: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True, slots=True)
class IssuedToken:
    token: str
    claims: TokenClaims


@dataclass(frozen=True, slots=True)
class TokenPair:
    access_token: str
    refresh_token: str
    access_claims: TokenClaims
    refresh_claims: TokenClaims
