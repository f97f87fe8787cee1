from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite+aiosqlite:///./wiki.db"
    SQL_ECHO: bool = False
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Web UI sessions are signed cookies
    SESSION_SECRET: str = "change-me"

    # The pool is the one shared resource: callers past DB_POOL_SIZE wait
    DB_POOL_SIZE: int = 4
    DB_POOL_TIMEOUT: float = 30.0
    SQL_QUERIES_FILE: Optional[str] = None

    # Request/reply channel between the web handlers and the database worker
    WIKIDB_QUEUE: str = "wikidb.queue"
    PROXY_TIMEOUT_SECONDS: float = 10.0

    BACKUP_URL: str = "https://api.github.com/gists"
    BACKUP_TOKEN: Optional[str] = None
    BACKUP_USER_AGENT: str = "wiki-backup"

    LOG_LEVEL: str = "INFO"

    # This tells Pydantic to read from the .env file
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Create a single instance of the settings to use everywhere
settings = Settings()
