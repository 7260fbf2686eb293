# Copyright (c) 2025-2026 OptimNow. All Rights Reserved.
# Licensed under the Apache License, Version 2.0.
# See LICENSE file in the project root for full license information.

"""Configuration management for the usage tally engine.

This module handles loading and validating configuration from environment
variables with sensible defaults.
"""

from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings have sensible defaults for local development.
    In production, these should be set via environment variables
    or a .env file.
    """

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
        validation_alias="LOG_LEVEL",
    )
    environment: str = Field(
        default="development",
        description="Environment name (development, staging, production)",
        validation_alias=AliasChoices("ENVIRONMENT", "ENV"),
    )

    # Storage
    database_path: str = Field(
        default="usage_tally.db",
        description="Path to the SQLite database holding events, inventories and snapshots",
        validation_alias=AliasChoices("DATABASE_PATH", "TALLY_DB_PATH"),
    )
    tag_profile_path: str = Field(
        default="config/tag_profile.yaml",
        description="Path to the tag profile YAML file",
        validation_alias="TAG_PROFILE_PATH",
    )

    # Redis
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL (dedupe cache and message streams)",
        validation_alias="REDIS_URL",
    )
    billing_dedupe_ttl: int = Field(
        default=86400,
        ge=1,
        description="How long a delivered billable usage fingerprint is remembered, in seconds",
        validation_alias="BILLING_DEDUPE_TTL",
    )

    # Billing producer retry
    billing_producer_max_attempts: int = Field(
        default=5,
        ge=1,
        description="Maximum publish attempts per billable usage message",
        validation_alias="BILLING_PRODUCER_MAX_ATTEMPTS",
    )
    billing_producer_back_off_initial_interval: float = Field(
        default=1.0,
        ge=0.0,
        description="Initial retry delay in seconds",
        validation_alias="BILLING_PRODUCER_BACK_OFF_INITIAL_INTERVAL",
    )
    billing_producer_back_off_multiplier: float = Field(
        default=2.0,
        ge=1.0,
        description="Multiplier applied to the retry delay after each attempt",
        validation_alias="BILLING_PRODUCER_BACK_OFF_MULTIPLIER",
    )
    billing_producer_back_off_max_interval: float = Field(
        default=60.0,
        ge=0.0,
        description="Upper bound for a single retry delay in seconds",
        validation_alias="BILLING_PRODUCER_BACK_OFF_MAX_INTERVAL",
    )

    # Topics
    tally_summary_topic: str = Field(
        default="usage.tally-summary",
        description="Stream carrying tally summaries produced by the tally pipeline",
        validation_alias="TALLY_SUMMARY_TOPIC",
    )
    billable_usage_topic: str = Field(
        default="usage.billable-usage",
        description="Stream carrying billable usage for the downstream billing consumer",
        validation_alias="BILLABLE_USAGE_TOPIC",
    )
    billing_consumer_concurrency: int = Field(
        default=3,
        ge=1,
        description="Maximum tally summaries processed concurrently by the billing consumer",
        validation_alias="BILLING_CONSUMER_CONCURRENCY",
    )

    # CloudWatch Configuration
    aws_region: str = Field(
        default="us-east-1",
        description="AWS region used for CloudWatch logging",
        validation_alias=AliasChoices("AWS_REGION", "AWS_DEFAULT_REGION"),
    )
    cloudwatch_enabled: bool = Field(
        default=False,
        description="Enable CloudWatch logging",
        validation_alias="CLOUDWATCH_ENABLED",
    )
    cloudwatch_log_group: str = Field(
        default="/usage/tally-engine",
        description="CloudWatch log group name",
        validation_alias="CLOUDWATCH_LOG_GROUP",
    )
    cloudwatch_log_stream: Optional[str] = Field(
        default=None,
        description="CloudWatch log stream name (auto-generated if not set)",
        validation_alias="CLOUDWATCH_LOG_STREAM",
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
    )


def get_settings() -> Settings:
    """
    Get application settings.

    Loads settings from environment variables and .env file.

    Returns:
        Settings instance with all configuration values
    """
    return Settings()


# Global settings instance (lazy loaded)
_settings: Optional[Settings] = None


def settings() -> Settings:
    """
    Get the global settings instance.

    Creates the settings instance on first call and caches it.

    Returns:
        Global Settings instance
    """
    global _settings
    if _settings is None:
        _settings = get_settings()
    return _settings
