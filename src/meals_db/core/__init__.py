"""Connection-level helpers shared by the stores and the MCP server."""

from .async_utils import run_sync, run_sync_limited
from .client import WordPressClient

__all__ = ["WordPressClient", "run_sync", "run_sync_limited"]
