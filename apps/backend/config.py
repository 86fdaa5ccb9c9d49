"""Application configuration."""
import logging
from functools import lru_cache
from pydantic_settings import BaseSettings
from pydantic import ConfigDict


class Settings(BaseSettings):
    model_config = ConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")
    app_env: str = "development"
    log_level: str = "INFO"
    public_base_url: str = "http://localhost:3000"

    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "helpdesk"
    postgres_user: str = "helpdesk"
    postgres_password: str = "changeme"

    redis_host: str = "localhost"
    redis_port: int = 6379

    # Shared secret for the scheduler trigger (Bearer or X-Cron-Secret).
    cron_secret: str = ""

    jwt_secret: str = "your-jwt-secret-min-32-chars"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60

    outbox_batch_size: int = 10
    outbox_max_per_run: int = 50
    outbox_max_attempts: int = 3
    outbox_default_priority: int = 5
    outbox_backoff_base_minutes: int = 1
    outbox_lock_enabled: bool = True
    outbox_lock_ttl_seconds: int = 55
    outbox_stuck_seconds: int = 600
    rq_outbox_queue_name: str = "outbox"

    notify_timeout_seconds: int = 10

    slack_bot_token: str = ""
    slack_default_channel: str = "#tickets"

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_secure: str = "tls"  # tls | ssl | none
    email_from: str = ""
    email_from_name: str = "Ticketing System"


@lru_cache
def get_settings() -> Settings:
    return Settings()


def configure_logging(settings: Settings | None = None) -> None:
    s = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, (s.log_level or "INFO").upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
