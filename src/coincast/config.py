from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


@dataclass(frozen=True)
class DatabaseConfig:
    host: str
    port: int
    database: str
    user: str
    password: str

    @property
    def dsn(self) -> str:
        return f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.database}"


@dataclass(frozen=True)
class AppConfig:
    db_dsn: str
    auth_secret_key: str = ""
    auth_token_expiry_hours: int = 168
    internal_api_token: str = ""
    coingecko_api_key: str = ""
    coingecko_base_url: str = "https://api.coingecko.com/api/v3"
    market_cache_seconds: int = 300
    snapshot_poll_seconds: float = 2.0
    vote_retry_limit: int = 1


def load_config() -> AppConfig:
    """Load application config from environment variables.

    Loads .env file if present in the current directory.
    """
    env_path = Path(".env")
    if env_path.exists():
        load_dotenv(env_path)

    db_dsn = os.environ.get("DATABASE_URL", "")
    if not db_dsn and os.environ.get("PGHOST"):
        db_dsn = DatabaseConfig(
            host=os.environ["PGHOST"],
            port=int(os.environ.get("PGPORT", "5432")),
            database=os.environ.get("PGDATABASE", "coincast"),
            user=os.environ.get("PGUSER", "postgres"),
            password=os.environ.get("PGPASSWORD", ""),
        ).dsn

    return AppConfig(
        db_dsn=db_dsn,
        auth_secret_key=os.environ.get("AUTH_SECRET_KEY", ""),
        auth_token_expiry_hours=int(os.environ.get("AUTH_TOKEN_EXPIRY_HOURS", "168")),
        internal_api_token=os.environ.get("INTERNAL_API_TOKEN", ""),
        coingecko_api_key=os.environ.get("COINGECKO_API_KEY", ""),
        coingecko_base_url=os.environ.get(
            "COINGECKO_BASE_URL", "https://api.coingecko.com/api/v3"
        ).rstrip("/"),
        market_cache_seconds=int(os.environ.get("MARKET_CACHE_SECONDS", "300")),
        snapshot_poll_seconds=float(os.environ.get("SNAPSHOT_POLL_SECONDS", "2.0")),
        vote_retry_limit=int(os.environ.get("VOTE_RETRY_LIMIT", "1")),
    )
