"""MCP Server for Meals DB / WordPress reconciliation using stdio transport.

This module implements the Model Context Protocol server that lets
operators (through an AI agent) review and resolve divergence between
Meals DB client records and their WordPress accounts.

Transport: stdio
Protocol: JSON-RPC 2.0 over MCP
"""

import argparse
import asyncio
import logging
import sys

import mcp.server.stdio
import mcp.types as types
from dotenv import load_dotenv
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions
from sqlalchemy.exc import SQLAlchemyError

from .. import __version__
from ..config import resolve_database_url
from ..config_loader import (
    discover_config_files,
    ensure_config,
    load_hierarchical_config,
)
from ..config_schema import build_config, yaml_fallbacks
from ..core.async_utils import run_sync
from ..logger import DEFAULT_LOG_FILE, setup_logging
from ..store.database import create_db_engine
from ..store.schema import install_schema
from ..sync.engine import SyncEngine
from ..version import check_version_consistency
from .lifespan import server_lifespan
from .tools import (
    ALL_SPECS,
    ToolRegistry,
    build_error_response,
    load_permissions_file,
)
from .tools.registry import ToolSpec

logger = logging.getLogger(__name__)

# Initialize server instance
server = Server("meals-db-mcp")

# Global engine instance (initialized in lifespan)
_sync_engine: SyncEngine | None = None

# Global registry instance (initialized in main)
_registry: ToolRegistry | None = None


# ---------------------------------------------------------------------------
# Ping tool (always available, no permission required)
# ---------------------------------------------------------------------------


async def _handle_ping(
    engine: SyncEngine, args: dict
) -> types.CallToolResult:
    """Handle ping tool -- test connectivity to both stores."""
    try:
        dialect, wp_user = await run_sync(engine.ping)
        return types.CallToolResult(
            content=[
                types.TextContent(
                    type="text",
                    text=(
                        f"Meals DB MCP server connected. Database: {dialect}. "
                        f"WordPress user: {wp_user}"
                    ),
                )
            ]
        )
    except Exception as e:
        logger.error("Ping failed: %s", e)
        store = "Meals DB" if isinstance(e, SQLAlchemyError) else "WordPress"
        return types.CallToolResult(
            content=[
                types.TextContent(
                    type="text",
                    text=(
                        f"{store} connection failed. Check MEALSDB_DATABASE_URL, "
                        "WP_URL, WP_USERNAME, WP_APP_PASSWORD."
                    ),
                )
            ],
            isError=True,
        )


PING_SPEC = ToolSpec(
    tool=types.Tool(
        name="ping",
        description="Test connectivity to the Meals DB database and WordPress",
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
    permissions=frozenset(),
    handler=_handle_ping,
)


# ---------------------------------------------------------------------------
# Global accessors
# ---------------------------------------------------------------------------


def get_engine() -> SyncEngine:
    """Get the global SyncEngine instance.

    Raises:
        RuntimeError: If the engine is not initialized
    """
    if _sync_engine is None:
        raise RuntimeError(
            "SyncEngine not initialized. Server lifespan not started."
        )
    return _sync_engine


def set_engine(engine: SyncEngine | None) -> None:
    """Set the global SyncEngine instance (None to clear)."""
    global _sync_engine
    _sync_engine = engine


def get_registry() -> ToolRegistry:
    """Get the global ToolRegistry instance.

    Raises:
        RuntimeError: If registry is not initialized
    """
    if _registry is None:
        raise RuntimeError("ToolRegistry not initialized.")
    return _registry


def set_registry(registry: ToolRegistry | None) -> None:
    """Set the global ToolRegistry instance (None to clear)."""
    global _registry
    _registry = registry


# ---------------------------------------------------------------------------
# MCP protocol handlers
# ---------------------------------------------------------------------------


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    """List available tools.

    Returns all registered (and permitted) tools from the ToolRegistry.
    """
    return get_registry().list_tools()


@server.call_tool()
async def handle_call_tool(
    name: str, arguments: dict | None
) -> types.CallToolResult:
    """Handle tool execution via ToolRegistry dispatch.

    Args:
        name: The name of the tool to execute.
        arguments: Tool arguments (optional).

    Returns:
        CallToolResult with tool output content and optional isError flag.
    """
    engine = get_engine()
    try:
        return await get_registry().call_tool(name, arguments, engine)
    except ValueError as e:
        # Unknown or filtered-out tool name
        return build_error_response(
            "unknown_tool",
            str(e),
            "Use list_tools to see available tools.",
        )


# ---------------------------------------------------------------------------
# Server lifecycle
# ---------------------------------------------------------------------------


def build_registry(permissions_file: str | None = None) -> ToolRegistry:
    """Build the ToolRegistry, filtered by an optional permissions file."""
    allowed_permissions = None
    if permissions_file:
        allowed_permissions = load_permissions_file(permissions_file)
        logger.info(
            "Loaded %d permissions from %s",
            len(allowed_permissions),
            permissions_file,
        )

    all_specs = [PING_SPEC] + ALL_SPECS
    registry = ToolRegistry(all_specs, allowed_permissions)
    logger.info(
        "Registered %d tools (of %d total)",
        registry.tool_count(),
        len(all_specs),
    )
    if permissions_file:
        print(
            f"Permissions file: {permissions_file} "
            f"({registry.tool_count()} of {len(all_specs)} tools enabled)",
            file=sys.stderr,
        )
    return registry


async def main(config_overrides: dict | None = None):
    """Run the MCP server with stdio transport.

    Sets up logging for MCP mode (file only, never stdout), validates
    both stores via the lifespan manager, and starts the server with
    stdio transport for JSON-RPC communication.

    Args:
        config_overrides: Optional dict with config values to override
            (database_url, wp_url, wp_username, wp_password, insecure,
            log_file, permissions_file)
    """
    overrides = config_overrides or {}

    # Must run before stdio_server so nothing reaches stdout
    setup_logging(mode="mcp", log_file=overrides.get("log_file"))

    is_consistent, message = check_version_consistency()
    if not is_consistent:
        logger.warning(message)
        sys.stderr.write(f"Warning: {message}\n")
    else:
        logger.info(message)

    set_registry(build_registry(overrides.get("permissions_file")))

    # set_engine is called here, not in the lifespan, so that running this
    # file as __main__ does not install the engine into a second copy of
    # the module
    async with server_lifespan(config_overrides=overrides) as ctx:
        set_engine(ctx["engine"])
        try:
            async with mcp.server.stdio.stdio_server() as (
                read_stream,
                write_stream,
            ):
                init_options = InitializationOptions(
                    server_name="meals-db-mcp",
                    server_version=__version__,
                    capabilities=server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                )
                await server.run(
                    read_stream, write_stream, init_options
                )
        finally:
            set_engine(None)
            set_registry(None)


def install(database_url: str | None = None) -> int:
    """Create the Meals DB tables that do not exist yet.

    Returns:
        Process exit code.
    """
    setup_logging(mode="cli")
    load_dotenv()
    fallbacks = None
    if discover_config_files():
        fallbacks = yaml_fallbacks(build_config(load_hierarchical_config()))
    try:
        url = resolve_database_url(database_url, fallbacks)
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    engine = create_db_engine(url)
    try:
        install_schema(engine)
    except SQLAlchemyError as e:
        logger.error("Schema installation failed: %s", e)
        print("ERROR: Schema installation failed. See log for details.", file=sys.stderr)
        return 1
    finally:
        engine.dispose()
    print("Meals DB schema installed.", file=sys.stderr)
    return 0


def run() -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    parser = argparse.ArgumentParser(
        description="Meals DB MCP Server - reconcile Meals DB clients with WordPress accounts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with default config (from .env or config.yml)
  meals-db-mcp

  # Create the tables and exit
  meals-db-mcp --install-schema --database-url mysql+pymysql://meals:secret@db/meals

  # Write a starter config file
  meals-db-mcp --init-config

  # Override WordPress connection settings
  meals-db-mcp --wp-url https://shop.example.com --wp-username admin

  # Restrict tools by permission
  meals-db-mcp --permissions-file /etc/meals-db/read-only.permissions

Note: This server uses stdio transport for JSON-RPC communication with MCP clients.
All user-facing messages are written to stderr.
        """,
    )

    parser.add_argument(
        "--database-url",
        help="Override Meals DB SQLAlchemy URL (takes precedence over MEALSDB_DATABASE_URL and config files)",
    )
    parser.add_argument(
        "--wp-url",
        help="Override WordPress site URL (takes precedence over WP_URL and config files)",
    )
    parser.add_argument(
        "--wp-username",
        help="Override WordPress username (takes precedence over WP_USERNAME and config files)",
    )
    parser.add_argument(
        "--wp-password",
        help="Override WordPress application password"
        " (visible in process list -- prefer WP_APP_PASSWORD env var)",
    )
    parser.add_argument(
        "--insecure",
        action="store_true",
        help="Skip SSL certificate verification (use only for development)",
    )
    parser.add_argument(
        "--log-file",
        default=DEFAULT_LOG_FILE,
        help=f"Log file path (default: {DEFAULT_LOG_FILE})",
    )
    parser.add_argument(
        "--permissions-file",
        help="Path to permissions file restricting available tools. "
        "Format: one permission per line (SYNC_VIEW, SYNC_WRITE, SYNC_ADMIN), # for comments. "
        "If not specified, all tools are available.",
    )
    parser.add_argument(
        "--install-schema",
        action="store_true",
        help="Create missing Meals DB tables and exit",
    )
    parser.add_argument(
        "--init-config",
        action="store_true",
        help="Write a commented starter .meals_db/config.yml (unless one exists) and exit",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"meals-db-mcp version {__version__}",
    )

    args = parser.parse_args()

    if args.install_schema:
        sys.exit(install(args.database_url))

    if args.init_config:
        print(f"Config file: {ensure_config()}", file=sys.stderr)
        sys.exit(0)

    config_overrides = {}
    if args.database_url:
        config_overrides["database_url"] = args.database_url
    if args.wp_url:
        config_overrides["wp_url"] = args.wp_url
    if args.wp_username:
        config_overrides["wp_username"] = args.wp_username
    if args.wp_password:
        config_overrides["wp_password"] = args.wp_password
    if args.insecure:
        config_overrides["insecure"] = True
    if args.log_file:
        config_overrides["log_file"] = args.log_file
    if args.permissions_file:
        config_overrides["permissions_file"] = args.permissions_file

    if config_overrides:
        override_keys = [
            k
            for k in config_overrides
            if k not in ("wp_password", "database_url")
        ]
        print(
            f"Config overrides from CLI: {', '.join(override_keys)}",
            file=sys.stderr,
        )

    try:
        asyncio.run(main(config_overrides=config_overrides or None))
    except RuntimeError:
        # Error already printed to stderr by lifespan manager
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
