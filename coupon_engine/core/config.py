from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "Coupon Engine"
    version: str = "0.1.0"
    DEBUG: bool = False
    APP_DOMAIN: str = "example.com"
    APP_DATABASE_DSN: str = "sqlite:////tmp/coupon_engine.db"

    # Upper bound for a single store lookup, in milliseconds
    STORE_TIMEOUT_MS: int = 500

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    LOG_LEVEL: str = "INFO"

    # Admin-side coupon code format
    COUPON_CODE_MIN_LENGTH: int = 3
    COUPON_CODE_MAX_LENGTH: int = 20

    @property
    def store_timeout_seconds(self) -> float:
        return self.STORE_TIMEOUT_MS / 1000


settings = Settings()
