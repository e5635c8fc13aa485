from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # "json" or "console"

    # Database
    DATABASE_URL: str = "postgresql://localhost:5432/slotdesk"
    DB_AUTO_MIGRATE: bool = False

    # Auth tokens
    JWT_SECRET: str = "change-me-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRES_DAYS: int = 7
    PASSWORD_MIN_LENGTH: int = 6

    # Most privileged level a self-registered account may name as parent
    # (1 = anyone, 3 = agencies and users only)
    REGISTER_MIN_PARENT_LEVEL: int = 1

    # Bootstrap admin account (created by apply_schema when missing)
    ADMIN_USER_CODE: str = "ADMIN001"
    ADMIN_EMAIL: str | None = None
    ADMIN_PASSWORD: str | None = None

    # Frontend origin allowed by CORS
    FRONTEND_URL: str = "http://localhost:5173"

    # Client IP extraction behind a load balancer
    TRUST_X_FORWARDED_FOR: bool = False
    TRUSTED_PROXY_IPS: list[str] = []

    # Pagination
    DEFAULT_PAGE_SIZE: int = 10
    MAX_PAGE_SIZE: int = 100

    # =================================================================
    # DATABASE POOL SETTINGS
    # =================================================================
    DB_POOL_MIN_SIZE: int = 3
    DB_POOL_MAX_SIZE: int = 20
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 600.0  # 10 minutes
    DB_POOL_MAX_LIFETIME: float = 3600.0  # 1 hour
    DB_STATEMENT_TIMEOUT: str = "60s"

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def allowed_origins(self) -> list[str]:
        """FRONTEND_URL may hold several comma-separated origins."""
        return [origin.strip() for origin in self.FRONTEND_URL.split(",") if origin.strip()]

    def get_db_pool_config(self) -> dict:
        """
        Get database pool configuration.
        Adjust environment-specific settings based on self.environment.
        """
        config = {
            "min_size": self.DB_POOL_MIN_SIZE,
            "max_size": self.DB_POOL_MAX_SIZE,
            "timeout": self.DB_POOL_TIMEOUT,
            "max_idle": self.DB_POOL_MAX_IDLE,
            "max_lifetime": self.DB_POOL_MAX_LIFETIME,
        }

        if self.environment == "development":
            config.update(
                {
                    "min_size": 2,
                    "max_size": 8,
                    "timeout": 15.0,
                }
            )

        return config


settings = Settings()
