"""Lifespan management for MCP server startup and shutdown."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from dotenv import load_dotenv

from ..config import Config, load_config
from ..config_loader import (
    discover_config_files,
    load_hierarchical_config,
)
from ..config_schema import build_config, yaml_fallbacks
from ..core.async_utils import init_semaphore, run_sync
from ..core.client import WordPressClient
from ..crypto import FieldCipher
from ..store.database import check_connection, create_db_engine
from ..sync.engine import SyncEngine

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


def load_server_config(config_overrides: dict[str, Any] | None = None) -> Config:
    """Merge CLI overrides, environment, .env and YAML into a ``Config``.

    Raises:
        ValueError: If required settings are missing or invalid.
    """
    # .env first so ${VAR} interpolation in YAML can use its values
    load_dotenv()

    fallbacks: dict[str, Any] | None = None
    if discover_config_files():
        fallbacks = yaml_fallbacks(build_config(load_hierarchical_config()))

    overrides = config_overrides or {}
    return load_config(
        database_url=overrides.get("database_url"),
        wordpress_url=overrides.get("wp_url"),
        username=overrides.get("wp_username"),
        password=overrides.get("wp_password"),
        aes_key=overrides.get("aes_key"),
        insecure=overrides.get("insecure", False),
        debug=overrides.get("debug", False),
        yaml_fallbacks=fallbacks,
    )


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Load .env, YAML fallbacks and CLI overrides into one Config
    - Build the SQLAlchemy engine, field cipher and WordPress client
    - Verify both stores answer
    - Fail fast if either is unreachable

    On shutdown:
    - Dispose of the connection pool

    Args:
        config_overrides: Optional dict with config values from CLI
            (database_url, wp_url, wp_username, wp_password, insecure)

    Yields:
        Dict with 'engine' key containing the initialized SyncEngine

    Raises:
        RuntimeError: If configuration is invalid or a store is unreachable.
    """
    logger.info("MCP server starting...")
    _stderr_print("Meals DB MCP Server starting...")

    try:
        config = load_server_config(config_overrides)
        logger.info("WordPress URL: %s", config.wordpress_url)
        _stderr_print(f"  WordPress URL: {config.wordpress_url}")
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        _stderr_print(
            "  Ensure MEALSDB_DATABASE_URL, WP_URL, WP_USERNAME, "
            "WP_APP_PASSWORD and PLUGIN_AES_KEY are set."
        )
        raise RuntimeError(f"Configuration error: {e}") from e

    db_engine = create_db_engine(
        config.database_url, config.connect_timeout, config.request_timeout
    )

    logger.info("Validating Meals DB connection...")
    _stderr_print("  Validating Meals DB connection...")
    try:
        dialect = await run_sync(check_connection, db_engine)
        _stderr_print(f"  Connected to Meals DB ({dialect})")
    except Exception as e:
        db_engine.dispose()
        logger.error("Failed to connect to the Meals DB: %s", e)
        _stderr_print("ERROR: Meals DB connection failed.")
        _stderr_print("  Check MEALSDB_DATABASE_URL and that the server is running.")
        raise RuntimeError(
            "Meals DB connection failed. Check MEALSDB_DATABASE_URL."
        ) from e

    logger.info("Validating WordPress connection...")
    _stderr_print("  Validating WordPress connection...")
    try:
        wp_client = WordPressClient(config)
        wp_user = await run_sync(wp_client.validate_connection)
        logger.info("Authenticated to WordPress as %s", wp_user)
        _stderr_print(f"  Authenticated to WordPress as {wp_user}")
    except Exception as e:
        db_engine.dispose()
        logger.error("Failed to connect to WordPress: %s", e)
        _stderr_print("ERROR: WordPress connection failed.")
        _stderr_print(f"  {e}")
        _stderr_print("  Check WP_URL, WP_USERNAME, WP_APP_PASSWORD.")
        raise RuntimeError(
            f"WordPress connection failed: {e}. Check WP_URL, WP_USERNAME, WP_APP_PASSWORD."
        ) from e

    engine = SyncEngine.build(
        db_engine,
        FieldCipher.from_setting(config.aes_key),
        wp_client,
        batch_size=config.batch_size,
        case_insensitive=config.case_insensitive,
        actor_id=config.actor_id,
    )
    init_semaphore(config.max_parallel_requests)
    _stderr_print(f"  Parallel requests: {config.max_parallel_requests}")
    _stderr_print("Server ready. Waiting for MCP client connection...")

    try:
        yield {"engine": engine}
    finally:
        db_engine.dispose()
        logger.info("MCP server shutting down")
        _stderr_print("Meals DB MCP Server shutting down.")
