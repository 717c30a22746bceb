"""Configuration management using Pydantic Settings."""

import os
import re
from typing import Annotated

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        # Only load .env file in development (not Lambda/production)
        env_file=".env" if os.getenv("AWS_EXECUTION_ENV") is None else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # AWS Configuration
    aws_region: str = "us-east-2"
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None
    aws_session_token: str | None = None

    @field_validator(
        "aws_access_key_id",
        "aws_secret_access_key",
        "aws_session_token",
        mode="before",
    )
    @classmethod
    def convert_empty_string_to_none(cls, v):
        """Convert empty strings to None so boto3 can use IAM role in Lambda."""
        if v is None:
            return None
        if isinstance(v, str) and v.strip() == "":
            return None
        return v

    # DynamoDB Configuration
    dynamodb_endpoint_url: str | None = None
    dynamodb_table_queue: str = "analytics-event-queue"

    # Application Configuration
    log_level: str = "INFO"
    api_title: str = "Server-Side Analytics Collector"
    api_version: str = "1.0.0"
    api_description: str = (
        "Receives browser analytics events, filters bots, applies consent "
        "and forwards them to the GA4 Measurement Protocol"
    )

    # Upstream (GA4 Measurement Protocol)
    ga4_measurement_id: str = ""
    ga4_api_secret: str = ""
    ga4_endpoint_url: str = "https://www.google-analytics.com/mp/collect"
    delivery_timeout_seconds: float = 10.0
    delivery_user_agent: str = "GA4-Server-Side-Collector/1.0.0"

    # Intake
    max_request_size_bytes: int = 512 * 1024  # 512KB
    allowed_origins: Annotated[list[str], NoDecode] = []
    immediate_delivery: bool = False

    # Rate Limiting (per client IP)
    rate_limit_per_minute: int = 100
    rate_limit_window_seconds: int = 60

    # Bot Detection
    bot_detection_enabled: bool = True
    bot_signal_threshold: int = 2
    bot_header_anomaly_threshold: int = 2
    bot_telemetry_anomaly_threshold: int = 2
    bot_behavior_anomaly_threshold: int = 2
    bot_threat_score_threshold: int = 30

    # Transport Security
    encryption_enabled: bool = False
    encryption_key: str = ""
    token_ttl_seconds: int = 300
    time_key_enabled: bool = False
    time_key_auth: str = ""
    time_key_salt: str = ""
    time_key_slot_seconds: int = 300
    site_url: str = ""

    # Attribution
    session_timeout_seconds: int = 1800
    internal_domains: Annotated[list[str], NoDecode] = []

    # Durable Queue
    queue_batch_size: int = 1000
    queue_retry_ceiling: int = 3
    queue_interval_seconds: int = 300
    queue_retention_days: int = 7
    queue_failed_retention_days: int = 30
    queue_max_completed: int = 10000
    queue_scheduler_enabled: bool = False
    queue_worker_concurrency: int = 1

    @field_validator("allowed_origins", "internal_domains", mode="before")
    @classmethod
    def split_comma_separated(cls, v):
        """Accept comma separated strings for list settings."""
        if v is None:
            return []
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @field_validator("encryption_key")
    @classmethod
    def validate_encryption_key(cls, v: str) -> str:
        """Require a 64 character hex key (32 bytes) when one is set."""
        v = v.strip()
        if v and not re.fullmatch(r"[0-9a-fA-F]{64}", v):
            raise ValueError("encryption_key must be 64 hex characters")
        return v


# Global settings instance
settings = Settings()
