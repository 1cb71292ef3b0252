# ertha_exchange/config.py
"""Runtime settings, read once from the environment (and `.env`)."""

import os
from functools import lru_cache
from typing import List

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

load_dotenv()

APP_NAME = "ErthaExchange API"
APP_VERSION = "1.0.0"

_DEV_JWT_SECRET = "dev-secret-change-me"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if raw is None:
        return list(default)
    return [part.strip() for part in raw.split(",") if part.strip()]


class Settings(BaseModel):
    """Typed application configuration."""

    model_config = ConfigDict(extra="ignore")

    app_env: str = "development"
    host: str = "0.0.0.0"
    port: int = 5000
    api_prefix: str = "/api/v1"
    log_level: str = "INFO"

    database_url: str = "sqlite:///./ertha_exchange.db"
    sqlalchemy_echo: bool = False

    jwt_secret: str = ""
    jwt_algo: str = "HS256"
    jwt_expires_minutes: int = 7 * 24 * 60
    jwt_issuer: str = ""
    jwt_audience: str = ""
    reset_token_minutes: int = 60

    supabase_url: str = ""
    supabase_service_role_key: str = ""

    razorpay_key_id: str = ""
    razorpay_key_secret: str = ""
    razorpay_webhook_secret: str = ""
    payment_currency: str = "INR"
    min_payment_amount: int = 10
    max_payment_amount: int = 1_000_000
    gateway_timeout_seconds: int = 15

    frontend_url: str = "http://localhost:5173"
    cors_origins: List[str] = Field(default_factory=list)

    rate_limit_window_ms: int = 900_000
    rate_limit_max_requests: int = 100
    trusted_proxies: List[str] = Field(default_factory=list)

    @field_validator("api_prefix")
    @classmethod
    def validate_api_prefix(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError("API_PREFIX must start with '/'")
        return value.rstrip("/")

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"

    @property
    def signing_secret(self) -> str:
        """JWT key; the development fallback is never used in production."""
        if self.jwt_secret:
            return self.jwt_secret
        if self.is_production:
            raise RuntimeError("JWT_SECRET missing – add it to .env")
        return _DEV_JWT_SECRET

    @property
    def gateway_configured(self) -> bool:
        return bool(self.razorpay_key_id and self.razorpay_key_secret)

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_role_key)

    def missing_critical(self) -> List[str]:
        """Names of settings the server refuses to start without (production only)."""
        if not self.is_production:
            return []
        missing = []
        if not self.jwt_secret:
            missing.append("JWT_SECRET")
        if not os.getenv("DATABASE_URL"):
            missing.append("DATABASE_URL")
        return missing


def load_settings() -> Settings:
    frontend_url = os.getenv("FRONTEND_URL", "http://localhost:5173")
    return Settings(
        app_env=os.getenv("APP_ENV", os.getenv("NODE_ENV", "development")),
        host=os.getenv("HOST", "0.0.0.0"),
        port=_env_int("PORT", 5000),
        api_prefix=os.getenv("API_PREFIX", "/api/v1"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        database_url=os.getenv("DATABASE_URL", "sqlite:///./ertha_exchange.db"),
        sqlalchemy_echo=_env_bool("SQLALCHEMY_ECHO", False),
        jwt_secret=os.getenv("JWT_SECRET", ""),
        jwt_algo=os.getenv("JWT_ALGO", "HS256"),
        jwt_expires_minutes=_env_int("JWT_EXPIRES_MINUTES", 7 * 24 * 60),
        jwt_issuer=os.getenv("JWT_ISS", ""),
        jwt_audience=os.getenv("JWT_AUD", ""),
        reset_token_minutes=_env_int("RESET_TOKEN_MINUTES", 60),
        supabase_url=os.getenv("SUPABASE_URL", ""),
        supabase_service_role_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY", ""),
        razorpay_key_id=os.getenv("RAZORPAY_KEY_ID", ""),
        razorpay_key_secret=os.getenv("RAZORPAY_KEY_SECRET", ""),
        razorpay_webhook_secret=os.getenv("RAZORPAY_WEBHOOK_SECRET", ""),
        payment_currency=os.getenv("PAYMENT_CURRENCY", "INR"),
        min_payment_amount=_env_int("MIN_PAYMENT_AMOUNT", 10),
        max_payment_amount=_env_int("MAX_PAYMENT_AMOUNT", 1_000_000),
        gateway_timeout_seconds=_env_int("GATEWAY_TIMEOUT_SECONDS", 15),
        frontend_url=frontend_url,
        cors_origins=_env_list("CORS_ORIGINS", [frontend_url]),
        rate_limit_window_ms=_env_int("RATE_LIMIT_WINDOW_MS", 900_000),
        rate_limit_max_requests=_env_int("RATE_LIMIT_MAX_REQUESTS", 100),
        trusted_proxies=_env_list("TRUSTED_PROXIES", []),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
