from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str = "sqlite+aiosqlite:///./taskboard.db"

    redis_dsn: str = "redis://localhost:6379/0"
    redis_pool_size: int = 5
    l1_maxsize: int = 2048
    l1_ttl_seconds: int = 5  # keep below the shortest L2 TTL
    cache_namespace: str = "taskboard:"

    project_cache_ttl: int = 60
    list_cache_ttl: int = 60  # sidebar lists (projects, teams)
    unread_cache_ttl: int = 15  # unread counts change most often

    app_url: str = "http://localhost:3000"
    google_calendar_api: str = "https://www.googleapis.com/calendar/v3"
    invite_ttl_days: int = 7

    log_level: str = "INFO"

    server_host: str = "127.0.0.1"
    server_port: int = 8000
    server_reload: bool = False


@lru_cache
def get_settings() -> Settings:
    return Settings()
