from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "postgresql+asyncpg://repairbid:repairbid_dev@db:5432/repairbid"

    # Redis
    REDIS_URL: str = "redis://redis:6379/0"

    # Marketplace
    COMMISSION_RATE: float = 0.10
    BIDDING_WINDOW_HOURS: int = 48
    DEFAULT_MATCH_RADIUS_KM: float = 30.0
    OFFER_RESULT_LIMIT: int = 12

    # App
    APP_ENV: str = "development"
    ALLOWED_ORIGINS: str = "*"
    LOG_LEVEL: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
