import yaml
import os
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
from pydantic import BaseModel, Field, field_validator


class DatabaseConfig(BaseModel):
    url: str


class SqsConfig(BaseModel):
    """Inbound stock notification queue (AWS SQS FIFO)."""
    enabled: bool = True
    queue_url: Optional[str] = None
    region: str = "ap-south-1"
    endpoint_url: Optional[str] = None  # localstack / custom endpoint
    max_messages: int = 10
    wait_time_seconds: int = 20  # long-poll wait
    visibility_timeout_seconds: int = 30
    polling_interval_seconds: float = 5.0  # back-off after a failed receive


class CleverTapConfig(BaseModel):
    """Campaign-trigger API credentials."""
    account_id: Optional[str] = None
    passcode: Optional[str] = None
    region: str = "in1"
    base_url: Optional[str] = None  # derived from region when not set
    timeout_seconds: int = 30

    @property
    def resolved_base_url(self) -> str:
        return self.base_url or f"https://{self.region}.api.clevertap.com"


class StockNotificationConfig(BaseModel):
    """
    Stock notification behaviour.

    `timezone` defines the calendar used for "one notification per
    recipient and SKU per day" and for the default processing date.
    """
    timezone: str = "Asia/Kolkata"

    @field_validator('timezone')
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown time zone: {value}")
        return value

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


class SchedulerConfig(BaseModel):
    """Redis queue used to trigger the daily batch."""
    redis_url: str = "redis://localhost:6379/0"
    queue_name: str = "stock-notifications"
    job_timeout: str = "30m"
    result_ttl_seconds: int = 86400


class AppConfig(BaseModel):
    database: DatabaseConfig
    sqs: SqsConfig = Field(default_factory=SqsConfig)
    clevertap: CleverTapConfig = Field(default_factory=CleverTapConfig)
    stock: StockNotificationConfig = Field(default_factory=StockNotificationConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)


# Environment variable -> (section, key)
ENV_OVERRIDES = {
    "DATABASE_URL": ("database", "url"),
    "SQS_QUEUE_URL": ("sqs", "queue_url"),
    "AWS_REGION": ("sqs", "region"),
    "SQS_ENDPOINT_URL": ("sqs", "endpoint_url"),
    "CLEVERTAP_ACCOUNT_ID": ("clevertap", "account_id"),
    "CLEVERTAP_PASSCODE": ("clevertap", "passcode"),
    "CLEVERTAP_BASE_URL": ("clevertap", "base_url"),
    "REDIS_URL": ("scheduler", "redis_url"),
    "STOCK_NOTIFICATION_TIMEZONE": ("stock", "timezone"),
}


def load_config(config_path: str = "config.yaml") -> AppConfig:
    # If not found at relative path (e.g. running from root), try the project root
    if not os.path.exists(config_path):
        base_dir = os.path.dirname(os.path.abspath(__file__))
        config_path = os.path.join(base_dir, "..", "config.yaml")

    with open(config_path, "r") as f:
        data = yaml.safe_load(f) or {}

    # Allow env var overrides (secrets and deployment-specific endpoints)
    for env_name, (section, key) in ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            if section not in data or data[section] is None:
                data[section] = {}
            data[section][key] = value

    return AppConfig(**data)
