import os
import logging

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings

logger = logging.getLogger("datapusher.config")


class Settings(BaseSettings):
    app_name: str = "Data Pusher"

    database_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("DATABASE_URL", "DATABASE_PUBLIC_URL"),
    )
    port: int = 8000
    log_level: str = "INFO"
    create_tables_on_startup: bool = True

    # Inbound admission gate: max requests per client per window
    rate_limit_window_seconds: float = 1.0
    rate_limit_max_requests: int = 5

    max_payload_bytes: int = 1024 * 1024

    token_header: str = "cl-x-token"
    event_id_header: str = "cl-x-event-id"

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()

DATABASE_URL = settings.database_url

if DATABASE_URL:
    logger.info(
        f"Database URL configured (target: {DATABASE_URL.split('@')[-1] if '@' in DATABASE_URL else 'local'})"
    )
else:
    logger.warning(
        "No DATABASE_URL or DATABASE_PUBLIC_URL provided. Storage calls will fail until one is set."
    )

PORT = settings.port
TOKEN_HEADER = settings.token_header
EVENT_ID_HEADER = settings.event_id_header


def log_environment_status():
    """Logs the presence of critical environment variables without leaking secrets."""
    logger.info("--- DATAPUSHER ENVIRONMENT STATUS ---")
    vars_to_check = [
        "DATABASE_URL",
        "DATABASE_PUBLIC_URL",
        "PORT",
        "LOG_LEVEL",
        "RATE_LIMIT_WINDOW_SECONDS",
        "RATE_LIMIT_MAX_REQUESTS",
        "MAX_PAYLOAD_BYTES",
    ]
    for var in vars_to_check:
        val = os.environ.get(var)
        status = "SET (Length: " + str(len(val)) + ")" if val else "NOT SET / DEFAULT"
        logger.info(f"{var}: {status}")
    logger.info("-------------------------------------")
