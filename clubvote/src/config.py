from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Storage, must be set in .env
    DATABASE_URL: str  # postgresql+asyncpg://... | sqlite+aiosqlite:///club.db
    DB_ECHO: bool = False

    # Shared secret presented by the authenticating gateway
    GATEWAY_SECRET: str

    APP_NAME: str = "Club Vote"
    ALLOWED_ORIGINS: list[str] = ["http://gateway:3000"]
    RATE_LIMIT_PER_MINUTE: int = 30
    GUEST_NAME_MAX_LENGTH: int = 100

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
