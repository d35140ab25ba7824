from functools import lru_cache
import json
import os
from typing import Any, Literal

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator


class SentryConfig(BaseModel):
    SENTRY_DSN: str | None = None
    SENTRY_ENV: str = "development"
    SENTRY_ENABLED: bool = False

    model_config = ConfigDict(extra="ignore")


class JWTConfig(BaseModel):
    # Secrets stay optional here so that a missing one surfaces as ConfigError
    # from the token codec at startup instead of a pydantic error at import.
    JWT_ACCESS_SECRET_KEY: str | None = None
    JWT_REFRESH_SECRET_KEY: str | None = None
    JWT_SECRET_MIN_LENGTH: int = Field(32, gt=0)

    ALGORITHM: Literal["HS256", "HS384", "HS512"] = "HS256"
    ISSUER: str = "session-api"
    AUDIENCE: str = "session-api"

    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(15, gt=0)
    REFRESH_TOKEN_EXPIRE_MINUTES: int = Field(7 * 24 * 60, gt=0)
    FAMILY_MAX_LIFETIME_DAYS: int = Field(30, gt=0)

    model_config = ConfigDict(extra="ignore")


class CookieConfig(BaseModel):
    REFRESH_COOKIE_NAME: str = "refreshToken"
    REFRESH_COOKIE_PATH: str = "/v1/auth/refresh-token"
    REFRESH_COOKIE_DOMAIN: str | None = "localhost"
    REFRESH_COOKIE_SECURE: bool = True
    REFRESH_COOKIE_MAX_AGE_SECONDS: int = Field(7 * 24 * 60 * 60, gt=0)

    model_config = ConfigDict(extra="ignore")


class SessionConfig(BaseModel):
    CLEANUP_INTERVAL_SECONDS: float = Field(300, gt=0)
    MAX_ACTIVE_SESSIONS: int = Field(5, ge=0)
    MAX_ROTATIONS_PER_WINDOW: int = Field(10, ge=0)
    ROTATION_WINDOW_SECONDS: float = Field(300, gt=0)
    BIND_ACCESS_TO_FINGERPRINT: bool = False

    model_config = ConfigDict(extra="ignore")


class AppConfig(BaseModel):
    VERSION: str = "0.1.0"
    DEBUG: bool = False
    TESTING: bool = False

    LOG_LEVEL: str = "INFO"
    LOG_LEVEL_FILE: str = "WARNING"

    CORS_ALLOWED_ORIGINS: list[str] = Field(["*"])
    CORS_ALLOW_CREDENTIALS: bool = True
    CORS_ALLOWED_METHODS: list[str] = Field(["*"])
    CORS_ALLOWED_HEADERS: list[str] = Field(["*"])
    CORS_EXPOSE_HEADERS: list[str] = Field(["*"])

    TRUSTED_PROXY_HOSTS: list[str] = Field([])

    PROJECT_NAME: str = "session-api"

    model_config = ConfigDict(extra="ignore")

    @field_validator(
        "CORS_ALLOWED_ORIGINS",
        "CORS_ALLOWED_METHODS",
        "CORS_ALLOWED_HEADERS",
        "CORS_EXPOSE_HEADERS",
        "TRUSTED_PROXY_HOSTS",
        mode="before",
    )
    @classmethod
    def parse_str_list(cls, v: Any) -> list[str]:
        if isinstance(v, list):
            return v
        if isinstance(v, str) and v.strip().startswith("[") and v.strip().endswith("]"):
            try:
                parsed = json.loads(v)
                if isinstance(parsed, list):
                    return [str(item) for item in parsed]
            except json.JSONDecodeError:
                pass
        sep = "," if "," in v else ";"
        return [item.strip() for item in v.split(sep) if item.strip()]


class Config(BaseModel):
    app: AppConfig
    jwt: JWTConfig
    cookie: CookieConfig
    session: SessionConfig
    sentry: SentryConfig

    model_config = ConfigDict(extra="ignore")


@lru_cache
def get_settings() -> Config:
    """
    Cached settings factory. Override in tests via monkeypatching or dependency overrides.
    """
    env_filename = ".env.test" if os.getenv("TESTING") == "true" else ".env"
    env_file_values = dotenv_values(env_filename)
    merged_env: dict[str, Any] = {
        k: v
        for k, v in {**env_file_values, **dict(os.environ)}.items()
        if v is not None
    }

    return Config(
        app=AppConfig(**merged_env),
        jwt=JWTConfig(**merged_env),
        cookie=CookieConfig(**merged_env),
        session=SessionConfig(**merged_env),
        sentry=SentryConfig(**merged_env),
    )


config = get_settings()
