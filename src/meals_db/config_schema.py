"""Unified configuration schema for meals_db.

Defines Pydantic models for the unified config structure with dedicated
sections for the Meals DB database, WordPress, encryption, reconciliation
and logging. ``yaml_fallbacks`` flattens it for ``load_config``.

Usage:
    from meals_db.config_schema import (
        UnifiedConfig, build_config, yaml_fallbacks,
    )

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = load_config(yaml_fallbacks=yaml_fallbacks(unified))
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class DatabaseConfig(BaseModel):
    """Meals DB relational store settings.

    All fields are optional to support zero-config: env vars and CLI args
    can supply them at runtime instead.
    """

    url: str | None = Field(
        default=None, description="SQLAlchemy URL of the Meals DB database"
    )
    connect_timeout: int = Field(
        default=10,
        ge=1,
        le=300,
        description="Seconds to wait for a pooled connection (1-300)",
    )

    model_config = {"frozen": True}


class WordPressConfig(BaseModel):
    """WordPress / WooCommerce REST API settings."""

    url: str | None = Field(default=None, description="WordPress site URL")
    username: str | None = Field(
        default=None, description="WordPress username"
    )
    app_password: str | None = Field(
        default=None, description="WordPress application password"
    )
    insecure: bool = Field(
        default=False,
        description="Disable SSL verification (development only)",
    )
    request_timeout: int = Field(
        default=60,
        ge=1,
        le=600,
        description="Read timeout for REST requests in seconds (1-600)",
    )

    model_config = {"frozen": True}


class EncryptionConfig(BaseModel):
    """Field encryption settings."""

    key: str | None = Field(
        default=None,
        description="AES-256 key in 'base64:<payload>' form",
    )

    model_config = {"frozen": True}


class SyncSettings(BaseModel):
    """Reconciliation behaviour.

    Attributes:
        batch_size: Rows or users fetched per round trip.
        max_parallel_requests: Concurrent tool calls allowed to hit the stores.
        case_insensitive: Compare field values case-insensitively.
        actor_id: Operator id recorded in audit entries.
    """

    batch_size: int = Field(
        default=500,
        ge=1,
        le=5000,
        description="Rows/users fetched per batch (1-5000)",
    )
    max_parallel_requests: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Maximum concurrent store operations (1-100)",
    )
    case_insensitive: bool = Field(
        default=False,
        description="Ignore letter case when comparing field values",
    )
    actor_id: int = Field(
        default=0,
        ge=0,
        description="Operator id recorded in the audit log",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
        debug: Enable debug mode.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Aggregates all config sections. Every section has sensible defaults,
    so ``UnifiedConfig()`` (zero-config) is always valid.
    """

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    wordpress: WordPressConfig = Field(default_factory=WordPressConfig)
    encryption: EncryptionConfig = Field(default_factory=EncryptionConfig)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully: anything absent gets defaults.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


def yaml_fallbacks(unified: UnifiedConfig) -> dict[str, Any]:
    """Flatten a ``UnifiedConfig`` into the fallback dict ``load_config`` expects.

    ``None`` values are dropped so they never mask a built-in default.
    """
    flat = {
        "database_url": unified.database.url,
        "connect_timeout": unified.database.connect_timeout,
        "wordpress_url": unified.wordpress.url,
        "username": unified.wordpress.username,
        "app_password": unified.wordpress.app_password,
        "insecure": unified.wordpress.insecure,
        "request_timeout": unified.wordpress.request_timeout,
        "aes_key": unified.encryption.key,
        "batch_size": unified.sync.batch_size,
        "max_parallel_requests": unified.sync.max_parallel_requests,
        "case_insensitive": unified.sync.case_insensitive,
        "actor_id": unified.sync.actor_id,
        "debug": unified.logging.debug,
    }
    return {k: v for k, v in flat.items() if v is not None}
