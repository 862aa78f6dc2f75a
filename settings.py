"""
Application settings for the SafeStay API, read from the environment / .env
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "SafeStay API"
    service_name: str = "safestay-api"
    environment: str = Field("production", validation_alias=AliasChoices("ENV", "APP_ENV", "ENVIRONMENT"))

    # MongoDB
    database_url: Optional[str] = Field("mongodb://localhost:27017", validation_alias=AliasChoices("DATABASE_URL", "MONGO_URI"))
    database_name: str = Field("safestay", validation_alias=AliasChoices("DATABASE_NAME"))

    # Tokens
    jwt_secret: str = Field("dev-secret-change", validation_alias=AliasChoices("JWT_SECRET"))
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60 * 24 * 7  # 7 days

    # Logging
    log_level: str = Field("INFO", validation_alias=AliasChoices("LOG_LEVEL"))

    # CORS - comma separated
    allowed_origins: str = "*"

    # Email/SMTP (optional, OTP codes are only logged without it)
    smtp_host: Optional[str] = None
    smtp_port: Optional[int] = None
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_from_email: Optional[str] = None

    otp_expire_minutes: int = 10

    @property
    def debug(self) -> bool:
        return self.environment.lower() in ("dev", "development", "test")

    def get_allowed_origins(self) -> List[str]:
        """Parse CORS origins from comma-separated string"""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
