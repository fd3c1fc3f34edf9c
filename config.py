from typing import List, Optional, Union
import logging

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(case_sensitive=True, env_file=".env")

    PROJECT_NAME: str = "Transport Entries API"
    API_PREFIX: str = "/api"
    # development exposes error detail in 500 responses
    ENVIRONMENT: str = "development"

    DATABASE_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "transport_entries"

    # must be overridden through .env or the environment in production
    JWT_SECRET: str = "dev-only-secret-please-change"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRE_MINUTES: int = 60 * 24 * 7  # 7 days

    BCRYPT_ROUNDS: int = 12
    PASSWORD_RESET_EXPIRE_MINUTES: int = 60

    # required outside development and test
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_FROM: str = "no-reply@transport-entries.app"
    SMTP_USE_TLS: bool = True

    CORS_ORIGINS: Union[List[str], str] = ["http://localhost:3000"]

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",") if i.strip()]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_WINDOW_SECONDS: int = 15 * 60
    RATE_LIMIT_MAX_REQUESTS: int = 100
    AUTH_RATE_LIMIT_MAX_REQUESTS: int = 10

    # false falls back to the read-max-then-increment scan, which can race
    ENTRY_ID_ATOMIC: bool = True

    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"


def get_settings() -> Settings:
    settings = Settings()
    logger.info(f"Loaded settings: ENVIRONMENT={settings.ENVIRONMENT}, DATABASE_NAME={settings.DATABASE_NAME}")
    return settings
