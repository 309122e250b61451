from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    app_name: str = "Creator Match Engine"
    database_url: str = "sqlite+aiosqlite:///./creator_match.db"

    cors_origins: list[str] = ["http://localhost:3000"]
    log_level: str = "INFO"

    host: str = "0.0.0.0"
    port: int = 8000

    # Campaign browsing pagination
    default_page_size: int = 20
    max_page_size: int = 100

    # Outbound event dispatch (notification/email service lives elsewhere)
    event_webhook_url: str = ""
    event_webhook_timeout: float = 10.0

    class Config:
        env_file = ".env"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
