import os
import logging
from pydantic import BaseModel, Field
from dotenv import load_dotenv

load_dotenv()


class SchedulingSettings(BaseModel):
    # Eligibility window
    min_lead_days: int = Field(default=int(os.getenv("MIN_LEAD_DAYS", "2")))
    max_horizon_months: int = Field(default=int(os.getenv("MAX_HORIZON_MONTHS", "6")))

    # Allotment availability
    limited_threshold: float = Field(default=float(os.getenv("LIMITED_THRESHOLD", "0.7")))

    # Client-side allotment store
    allotment_debounce_seconds: float = Field(default=float(os.getenv("ALLOTMENT_DEBOUNCE_SECONDS", "0.3")))
    read_retry_attempts: int = Field(default=int(os.getenv("READ_RETRY_ATTEMPTS", "2")))
    read_retry_delay_seconds: float = Field(default=float(os.getenv("READ_RETRY_DELAY_SECONDS", "0.25")))

    # Administrative limits
    max_sdv_entitlement: int = Field(default=int(os.getenv("MAX_SDV_ENTITLEMENT", "12")))


class Config(BaseModel):
    app_name: str = "PLD/SDV Scheduler"
    environment: str = os.getenv("APP_ENV", "development")
    api_prefix: str = "/api"
    version: str = "1.0.0"
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./scheduler.db")

    # Identity is asserted upstream; the gateway forwards the member id in this header
    member_id_header: str = os.getenv("MEMBER_ID_HEADER", "X-Member-ID")
    request_id_header: str = "X-Request-ID"

    # Rate limiting
    rate_limit_enabled: bool = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
    submit_rate_limit: str = os.getenv("SUBMIT_RATE_LIMIT", "30/minute")

    scheduling: SchedulingSettings = SchedulingSettings()


settings = Config()

_logger = logging.getLogger(__name__)
if settings.environment == "development" and settings.database_url.startswith("sqlite:///./"):
    _logger.info("Using local SQLite database at %s", settings.database_url)
