from __future__ import annotations

import sys
from functools import lru_cache
from typing import List

from pydantic import field_validator
from pydantic_settings import BaseSettings


_DEFAULT_JWT_SECRET = "change-me-in-production-use-long-random-string"


class Settings(BaseSettings):
    # Database
    database_url: str = "sqlite:///./exhibit.db"
    log_sql: bool = False

    # Server
    environment: str = "development"
    log_level: str = "info"
    log_format: str = "json"  # json | text
    allow_cors_origins: List[str] = ["*"]

    # Auth
    jwt_secret: str = _DEFAULT_JWT_SECRET
    jwt_expire_minutes: int = 60
    bcrypt_rounds: int = 12
    registration_enabled: bool = True

    # Credential lifetimes
    verification_code_ttl_minutes: int = 60
    reset_token_ttl_minutes: int = 10

    # Rate limiting (per client identity, TTL window)
    signin_window_ms: int = 60_000
    signin_max: int = 5
    signup_window_ms: int = 60_000
    signup_max: int = 5
    password_reset_window_ms: int = 60_000
    password_reset_max: int = 10
    verification_window_ms: int = 60_000
    verification_max: int = 10
    rate_limit_capacity: int = 500
    trust_forwarded_for: bool = True
    anonymous_client_policy: str = "reject"  # reject | shared

    # slowapi limits for non-credential endpoints
    feedback_rate_limit: str = "20/minute"

    # Mail
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    mail_from: str = "noreply@example.com"
    public_base_url: str = "http://localhost:3000"

    # Profile
    default_profile_picture: str = "/placeholder-user.jpg"

    @field_validator("jwt_secret")
    @classmethod
    def validate_jwt_secret(cls, v: str, info) -> str:
        """Refuse to start in production with the default JWT secret."""
        env = info.data.get("environment", "development")
        if env != "development" and v == _DEFAULT_JWT_SECRET:
            print(
                "\nFATAL: EXHIBIT_JWT_SECRET is set to the default value.\n"
                "   Set EXHIBIT_JWT_SECRET to a strong random string before "
                "running in production.\n"
                "   Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(48))\"\n",
                file=sys.stderr,
            )
            raise ValueError(
                "JWT secret must be changed from default in non-development environments. "
                "Set EXHIBIT_JWT_SECRET env var."
            )
        return v

    @field_validator("bcrypt_rounds")
    @classmethod
    def validate_bcrypt_rounds(cls, v: int) -> int:
        # bcrypt accepts 4..31
        if not 4 <= v <= 31:
            raise ValueError("bcrypt_rounds must be between 4 and 31.")
        return v

    @field_validator("anonymous_client_policy")
    @classmethod
    def validate_anonymous_policy(cls, v: str) -> str:
        if v not in ("reject", "shared"):
            raise ValueError("anonymous_client_policy must be 'reject' or 'shared'.")
        return v

    @property
    def smtp_enabled(self) -> bool:
        return bool(self.smtp_host)

    class Config:
        env_prefix = "EXHIBIT_"


@lru_cache
def get_settings() -> Settings:
    return Settings()


# Module-level singleton for convenience
settings = get_settings()
