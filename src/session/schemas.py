from src.core.schemas import Base


class AccessTokenResponse(Base):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class Identity(Base):
    user_id: str
    token_id: str
    role: str
    family_id: str


class SessionsTerminatedResponse(Base):
    terminated: int
