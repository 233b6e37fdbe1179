"""
Application configuration using Pydantic settings.

Usage:
    from core.config import get_settings
    settings = get_settings()
"""

import warnings
from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Known placeholder secrets that must never reach production
FORBIDDEN_SECRETS = [
    "CHANGE_ME",
    "CHANGE_ME_REFRESH",
    "changeme",
    "secret",
    "your-secret-key",
    "jwt-secret",
    "supersecret",
    "development",
    "test",
]


class Settings(BaseSettings):
    """
    Unified application settings loaded from environment variables and .env file.

    Required for production:
        - JWT_SECRET_KEY / REFRESH_TOKEN_SECRET_KEY (min 32 chars, distinct)
        - GITHUB_CLIENT_ID / GITHUB_CLIENT_SECRET (for OAuth)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # App settings
    app_name: str = "Code Tutor"
    api_prefix: str = Field(default="/api", validation_alias="API_PREFIX")
    env: str = Field(default="development", validation_alias="ENV")
    debug: bool = Field(default=False, validation_alias="DEBUG")

    # Database
    database_url: str = Field(default="sqlite:///code_tutor.db", validation_alias="DATABASE_URL")
    db_pool_size: int = Field(default=10, validation_alias="DB_POOL_SIZE")
    db_max_overflow: int = Field(default=20, validation_alias="DB_MAX_OVERFLOW")
    db_pool_pre_ping: bool = Field(default=True, validation_alias="DB_POOL_PRE_PING")

    # JWT / Authentication
    jwt_secret_key: str = Field(default="CHANGE_ME", validation_alias="JWT_SECRET_KEY")
    refresh_token_secret_key: str = Field(
        default="CHANGE_ME_REFRESH", validation_alias="REFRESH_TOKEN_SECRET_KEY"
    )
    jwt_algorithm: Literal["HS256"] = Field(default="HS256", validation_alias="JWT_ALGORITHM")
    jwt_audience: str = Field(default="code-tutor-api", validation_alias="JWT_AUDIENCE")
    jwt_issuer: str = Field(default="code-tutor", validation_alias="JWT_ISSUER")
    access_token_expire_minutes: int = Field(default=60, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES")
    refresh_token_expire_days: int = Field(default=7, validation_alias="REFRESH_TOKEN_EXPIRE_DAYS")
    jwt_leeway_seconds: int = Field(default=0, ge=0, validation_alias="JWT_LEEWAY_SECONDS")
    refresh_token_rotation: bool = Field(default=False, validation_alias="REFRESH_TOKEN_ROTATION")
    token_expiry_warning_seconds: int = Field(default=300, validation_alias="TOKEN_EXPIRY_WARNING_SECONDS")

    # Revocation list
    revocation_backend: Literal["memory", "redis"] = Field(
        default="memory", validation_alias="REVOCATION_BACKEND"
    )
    revocation_prune_interval_seconds: int = Field(
        default=3600, validation_alias="REVOCATION_PRUNE_INTERVAL_SECONDS"
    )

    # Passwords and lockout
    bcrypt_rounds: int = Field(default=12, ge=10, le=16, validation_alias="BCRYPT_ROUNDS")
    max_failed_logins: int = Field(default=5, validation_alias="MAX_FAILED_LOGINS")
    lockout_minutes: int = Field(default=15, validation_alias="LOCKOUT_MINUTES")
    failed_login_window_minutes: int = Field(default=15, validation_alias="FAILED_LOGIN_WINDOW_MINUTES")

    # GitHub OAuth
    github_client_id: str = Field(default="", validation_alias="GITHUB_CLIENT_ID")
    github_client_secret: str = Field(default="", validation_alias="GITHUB_CLIENT_SECRET")
    github_callback_url: Optional[str] = Field(default=None, validation_alias="GITHUB_CALLBACK_URL")
    github_scope: str = Field(default="read:user user:email", validation_alias="GITHUB_SCOPE")
    github_email_link_policy: Literal["reject", "link_verified"] = Field(
        default="reject", validation_alias="GITHUB_EMAIL_LINK_POLICY"
    )
    github_http_timeout: float = Field(default=10.0, validation_alias="GITHUB_HTTP_TIMEOUT")
    oauth_flow_timeout_seconds: int = Field(default=300, validation_alias="OAUTH_FLOW_TIMEOUT_SECONDS")
    oauth_default_return_to: str = Field(default="/playground")

    # Frontend / CORS
    frontend_url: str = Field(default="http://localhost:5173", validation_alias="FRONTEND_URL")
    cors_allowed_origins: str = Field(
        default="http://localhost:5173", validation_alias="CORS_ALLOWED_ORIGINS"
    )

    # Sessions
    session_backend: Literal["memory", "redis"] = Field(default="memory", validation_alias="SESSION_BACKEND")
    session_cookie_name: str = Field(default="code_tutor.sid", validation_alias="SESSION_COOKIE_NAME")
    session_max_age_seconds: int = Field(default=86400, validation_alias="SESSION_MAX_AGE_SECONDS")
    refresh_cookie_name: str = Field(default="refreshToken")

    # Token encryption for GitHub tokens at rest
    # Generate with: python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"
    token_encryption_key: Optional[str] = Field(default=None, validation_alias="TOKEN_ENCRYPTION_KEY")
    require_encryption: bool = Field(default=False, validation_alias="REQUIRE_ENCRYPTION")
    strict_security: bool = Field(default=False, validation_alias="STRICT_SECURITY")

    # Redis
    redis_host: str = Field(default="localhost", validation_alias="REDIS_HOST")
    redis_port: int = Field(default=6379, validation_alias="REDIS_PORT")
    redis_db: int = Field(default=0, validation_alias="REDIS_DB")
    redis_password: Optional[str] = Field(default=None, validation_alias="REDIS_PASSWORD")

    @property
    def redis_url(self) -> str:
        """Construct Redis URL from components."""
        auth = f":{self.redis_password}@" if self.redis_password else ""
        return f"redis://{auth}{self.redis_host}:{self.redis_port}/{self.redis_db}"

    # Scheduler
    enable_scheduler: bool = Field(default=True, validation_alias="ENABLE_SCHEDULER")

    @field_validator("jwt_secret_key", "refresh_token_secret_key")
    @classmethod
    def reject_weak_secret_in_production(cls, v: str, info: ValidationInfo) -> str:
        """Production refuses placeholder or short signing secrets; elsewhere it only warns."""
        weak = v.lower() in {s.lower() for s in FORBIDDEN_SECRETS} or len(v) < 32
        if not weak:
            return v
        if str(info.data.get("env", "")).lower() in ("production", "prod"):
            raise ValueError(f"{info.field_name} must be a random value of at least 32 characters")
        warnings.warn(
            f"{info.field_name} is a placeholder or shorter than 32 characters",
            UserWarning,
            stacklevel=2,
        )
        return v

    @property
    def is_production(self) -> bool:
        return self.env.lower() in ("production", "prod")

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_allowed_origins.split(",") if origin.strip()]

    @property
    def access_token_ttl_seconds(self) -> int:
        return self.access_token_expire_minutes * 60

    @property
    def refresh_token_ttl_seconds(self) -> int:
        return self.refresh_token_expire_days * 24 * 60 * 60

    def validate_production_config(self) -> tuple[List[str], List[str]]:
        """
        Validate configuration for production deployment.

        Returns:
            Tuple of (errors, warnings) - errors are fatal, warnings are advisory
        """
        errors = []
        warnings_ = []

        if self.jwt_secret_key == self.refresh_token_secret_key:
            errors.append("JWT_SECRET_KEY and REFRESH_TOKEN_SECRET_KEY must differ")

        if not self.github_client_id:
            errors.append("GITHUB_CLIENT_ID is required for OAuth")
        if not self.github_client_secret:
            errors.append("GITHUB_CLIENT_SECRET is required for OAuth")

        if not self.token_encryption_key:
            warnings_.append(
                "TOKEN_ENCRYPTION_KEY not set - GitHub access tokens will be stored "
                "in plaintext. Set this key to encrypt tokens at rest."
            )

        if self.revocation_backend == "memory" or self.session_backend == "memory":
            warnings_.append(
                "Revocation list or session store is process-local. "
                "Use the redis backend when running more than one instance."
            )

        if self.strict_security:
            if not self.token_encryption_key:
                errors.append("TOKEN_ENCRYPTION_KEY required when STRICT_SECURITY=true")
            if "localhost" in self.cors_allowed_origins:
                errors.append("CORS should not allow localhost in strict security mode")

        return errors, warnings_


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()


__all__ = ["Settings", "get_settings"]
