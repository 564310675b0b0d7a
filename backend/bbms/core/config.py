import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    environment: str = os.getenv("ENVIRONMENT", "development")
    debug: bool = os.getenv("DEBUG", "true").lower() == "true"
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "8000"))
    cors_origins_raw: str = os.getenv("CORS_ORIGINS", "http://localhost:8081")
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./bbms.db")
    ledger_base_url: str = os.getenv("LEDGER_BASE_URL", "http://localhost:3000/api")
    ledger_timeout: float = float(os.getenv("LEDGER_TIMEOUT", "30"))
    ledger_token: str = os.getenv("LEDGER_TOKEN", "")
    ledger_max_attempts: int = int(os.getenv("LEDGER_MAX_ATTEMPTS", "3"))
    ledger_backoff_base: float = float(os.getenv("LEDGER_BACKOFF_BASE", "0.5"))
    poll_interval: float = float(os.getenv("POLL_INTERVAL", "30"))
    default_limit: float = float(os.getenv("DEFAULT_LIMIT", "40.0"))
    min_limit: float = float(os.getenv("MIN_LIMIT", "1"))
    max_limit: float = float(os.getenv("MAX_LIMIT", "100"))
    critical_offset: float = float(os.getenv("CRITICAL_OFFSET", "10.0"))
    notification_cooldown: float = float(os.getenv("NOTIFICATION_COOLDOWN", "300"))
    history_reload_window: float = float(os.getenv("HISTORY_RELOAD_WINDOW", "2.0"))
    notification_webhook_url: str = os.getenv("NOTIFICATION_WEBHOOK_URL", "")
    device_feed_url: str = os.getenv("DEVICE_FEED_URL", "")
    device_feed_timeout: float = float(os.getenv("DEVICE_FEED_TIMEOUT", "10"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_file: str = os.getenv("LOG_FILE", "")

    @property
    def cors_origins(self) -> list[str]:
        return [item.strip() for item in self.cors_origins_raw.split(",") if item.strip()]


settings = Settings()
