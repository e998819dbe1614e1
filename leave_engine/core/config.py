import os
import logging
from pydantic import BaseModel, Field, field_validator
from dotenv import load_dotenv

load_dotenv()

REJECTION_MODES = ("leave_pending", "skip_remaining")
APPROVAL_CHAIN_MODES = ("allow_partial", "require_full")


class CompOffSettings(BaseModel):
    staleness_days: int = Field(default=int(os.getenv("COMP_OFF_STALENESS_DAYS", "30")))
    expiry_months: int = Field(default=int(os.getenv("COMP_OFF_EXPIRY_MONTHS", "3")))


class NotificationSettings(BaseModel):
    retry_limit: int = Field(default=int(os.getenv("NOTIFICATION_RETRY_LIMIT", "100")))
    retry_backoff_seconds: int = Field(default=int(os.getenv("NOTIFICATION_RETRY_BACKOFF_SECONDS", "30")))
    max_attempts: int = Field(default=int(os.getenv("NOTIFICATION_MAX_ATTEMPTS", "5")))
    retry_backoff_max_seconds: int = Field(default=int(os.getenv("NOTIFICATION_RETRY_BACKOFF_MAX_SECONDS", "3600")))


class Config(BaseModel):
    app_name: str = "Leave Governance Engine"
    environment: str = os.getenv("APP_ENV", "development")
    api_prefix: str = "/api"
    version: str = "1.0.0"
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    request_id_header: str = "X-Request-ID"

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./leave_engine.db")

    # Approval workflow
    # leave_pending: other PENDING levels stay PENDING after a rejection.
    # skip_remaining: they are marked SKIPPED in the rejecting transaction.
    rejection_mode: str = os.getenv("REJECTION_MODE", "leave_pending")
    # allow_partial: levels without a resolvable approver are omitted.
    # require_full: an omitted level fails chain construction.
    approval_chain_mode: str = os.getenv("APPROVAL_CHAIN_MODE", "allow_partial")
    max_hierarchy_depth: int = int(os.getenv("MAX_HIERARCHY_DEPTH", "8"))

    # Batch jobs
    batch_lease_seconds: int = int(os.getenv("BATCH_LEASE_SECONDS", "3600"))

    comp_off: CompOffSettings = CompOffSettings()
    notifications: NotificationSettings = NotificationSettings()

    @field_validator("rejection_mode")
    @classmethod
    def _check_rejection_mode(cls, value: str) -> str:
        if value not in REJECTION_MODES:
            raise ValueError(f"REJECTION_MODE must be one of {', '.join(REJECTION_MODES)}")
        return value

    @field_validator("approval_chain_mode")
    @classmethod
    def _check_chain_mode(cls, value: str) -> str:
        if value not in APPROVAL_CHAIN_MODES:
            raise ValueError(f"APPROVAL_CHAIN_MODE must be one of {', '.join(APPROVAL_CHAIN_MODES)}")
        return value


settings = Config()

_logger = logging.getLogger(__name__)
if settings.environment == "development" and settings.database_url.startswith("sqlite"):
    _logger.warning("Using SQLite database; row locks are not enforced by this backend.")
