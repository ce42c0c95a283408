from pathlib import Path
from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

# Load .env from repo root for local development and scripts.
ENV_PATH = Path(__file__).resolve().parents[1] / ".env"
load_dotenv(dotenv_path=ENV_PATH)

class Settings(BaseSettings):
    model_config = SettingsConfigDict(case_sensitive=True)
    db_path: str = Field(default="./data/metrics.db", alias="DB_PATH")
    local_tz: str = Field(default="America/Sao_Paulo", alias="LOCAL_TZ")
    write_max_attempts: int = Field(default=5, alias="WRITE_MAX_ATTEMPTS")
    write_backoff_seconds: float = Field(default=0.2, alias="WRITE_BACKOFF_SECONDS")
    backfill_lookback_days: int = Field(default=7, alias="BACKFILL_LOOKBACK_DAYS")
    report_default_days: int = Field(default=7, alias="REPORT_DEFAULT_DAYS")
    report_max_days: int = Field(default=366, alias="REPORT_MAX_DAYS")
    scheduler_enabled: bool = Field(default=False, alias="SCHEDULER_ENABLED")
    refresh_interval_minutes: int = Field(default=15, alias="REFRESH_INTERVAL_MINUTES")
    day_open_hour: int = Field(default=0, alias="DAY_OPEN_HOUR")
    day_open_minute: int = Field(default=1, alias="DAY_OPEN_MINUTE")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_error_file: str = Field(default="", alias="LOG_ERROR_FILE")

settings = Settings()
