"""MCP tool handlers for Meals DB / WordPress reconciliation.

Defines eight tools:

- ``sync_mismatches`` -- current mismatches (optionally the full report).
- ``sync_push_field`` -- write a value into a WordPress user.
- ``sync_pull_field`` -- write a value into a Meals DB client.
- ``sync_set_ignored`` -- ignore or un-ignore an exact value pair.
- ``sync_link_client`` -- link a client to a WordPress user.
- ``sync_link_candidates`` -- likely WordPress accounts for a client.
- ``sync_resolve`` -- apply ignore/accept/sync to one field or a whole pair.
- ``sync_audit_log`` -- recent audit entries.

Every handler runs the blocking engine call through ``run_sync_limited``.
"""

from __future__ import annotations

import logging
from typing import Any

import mcp.types as types

from ...core.async_utils import run_sync_limited
from ...sync.engine import SyncEngine
from ...sync.models import OperationResult, SyncFailure
from ...sync.reporter import (
    format_audit_log,
    format_candidates,
    format_mismatch_report,
    format_mismatches,
    format_resolution_report,
    report_to_json,
    resolution_to_json,
)
from ...sync.resolver import STRATEGIES
from .errors import build_error_response, failure_to_response
from .registry import SYNC_ADMIN, SYNC_VIEW, SYNC_WRITE, ToolSpec

logger = logging.getLogger(__name__)

_FIELD_DESCRIPTION = (
    "Field name: first_name, last_name, email, phone or postal_code "
    "(client_email, phone_primary, billing_phone, address_postal also accepted)"
)


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


SYNC_TOOLS: list[types.Tool] = [
    types.Tool(
        name="sync_mismatches",
        description=(
            "List field mismatches between Meals DB clients and their linked "
            "WordPress accounts. Ignored mismatches are hidden. With "
            "details=true, also lists unlinked clients, clients linked to "
            "missing accounts, and WordPress users without a client."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "details": {
                    "type": "boolean",
                    "default": False,
                    "description": "Include the full reconciliation report",
                },
            },
            "required": [],
        },
    ),
    types.Tool(
        name="sync_push_field",
        description=(
            "Overwrite one field of a WordPress user with the given value. "
            "The change is recorded in the audit log."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=True,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "wp_user_id": {
                    "type": "integer",
                    "minimum": 1,
                    "description": "WordPress user id",
                },
                "field": {"type": "string", "description": _FIELD_DESCRIPTION},
                "value": {"type": "string", "description": "New value"},
            },
            "required": ["wp_user_id", "field", "value"],
        },
    ),
    types.Tool(
        name="sync_pull_field",
        description=(
            "Overwrite one field of a Meals DB client with the given value "
            "(usually the WordPress value). The change is recorded in the "
            "audit log."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=True,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "client_id": {
                    "type": "integer",
                    "minimum": 1,
                    "description": "Meals DB client id",
                },
                "field": {"type": "string", "description": _FIELD_DESCRIPTION},
                "value": {"type": "string", "description": "New value"},
            },
            "required": ["client_id", "field", "value"],
        },
    ),
    types.Tool(
        name="sync_set_ignored",
        description=(
            "Ignore (or stop ignoring) a mismatch. The rule matches the exact "
            "Meals DB and WordPress values; it stops applying as soon as "
            "either value changes."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "field": {"type": "string", "description": _FIELD_DESCRIPTION},
                "source_value": {
                    "type": "string",
                    "description": "Meals DB value, exactly as reported",
                },
                "target_value": {
                    "type": "string",
                    "description": "WordPress value, exactly as reported",
                },
                "ignored": {
                    "type": "boolean",
                    "default": True,
                    "description": "true to ignore, false to un-ignore",
                },
            },
            "required": ["field", "source_value", "target_value"],
        },
    ),
    types.Tool(
        name="sync_link_client",
        description=(
            "Link a Meals DB client to a WordPress user, replacing any "
            "previous link. A WordPress user can be linked to one client only."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=True,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "client_id": {
                    "type": "integer",
                    "minimum": 1,
                    "description": "Meals DB client id",
                },
                "wp_user_id": {
                    "type": "integer",
                    "minimum": 1,
                    "description": "WordPress user id",
                },
            },
            "required": ["client_id", "wp_user_id"],
        },
    ),
    types.Tool(
        name="sync_link_candidates",
        description=(
            "Suggest up to five WordPress accounts that probably belong to a "
            "client, scored on name, phone and email similarity."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "client_id": {
                    "type": "integer",
                    "minimum": 1,
                    "description": "Meals DB client id",
                },
            },
            "required": ["client_id"],
        },
    ),
    types.Tool(
        name="sync_resolve",
        description=(
            "Resolve the current mismatches of one client. Strategy 'ignore' "
            "stores ignore rules, 'accept' copies WordPress values into the "
            "client, 'sync' pushes client values to WordPress. Limit to one "
            "field with 'field'."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=True,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "client_id": {
                    "type": "integer",
                    "minimum": 1,
                    "description": "Meals DB client id",
                },
                "strategy": {
                    "type": "string",
                    "enum": list(STRATEGIES),
                    "description": "Resolution strategy",
                },
                "field": {
                    "type": "string",
                    "description": "Only resolve this field (default: all)",
                },
            },
            "required": ["client_id", "strategy"],
        },
    ),
    types.Tool(
        name="sync_audit_log",
        description="Show the most recent audit log entries, newest first.",
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "limit": {
                    "type": "integer",
                    "minimum": 1,
                    "maximum": 500,
                    "default": 50,
                    "description": "Number of entries",
                },
            },
            "required": [],
        },
    ),
]


# ---------------------------------------------------------------------------
# Argument helpers
# ---------------------------------------------------------------------------


def _positive_int(args: dict[str, Any], key: str) -> int:
    value = args.get(key)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"{key} must be a positive integer")
    return value


def _text(args: dict[str, Any], key: str, required: bool = True) -> str:
    value = args.get(key)
    if value is None:
        if required:
            raise ValueError(f"{key} is required")
        return ""
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string")
    return value


def _flag(args: dict[str, Any], key: str, default: bool) -> bool:
    value = args.get(key, default)
    if not isinstance(value, bool):
        raise ValueError(f"{key} must be a boolean")
    return value


def _result_response(
    result: OperationResult, text: str, extra: dict[str, Any] | None = None
) -> types.CallToolResult:
    if not result.success:
        return failure_to_response(result.failure)
    if not result.audit_logged:
        text += " (warning: the audit entry could not be written)"
    elif result.detail:
        text += f" ({result.detail})"
    structured = {
        "success": True,
        "audit_logged": result.audit_logged,
        "detail": result.detail,
        **(extra or {}),
    }
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=structured,
    )


# ---------------------------------------------------------------------------
# Individual handlers
# ---------------------------------------------------------------------------


async def _handle_mismatches(
    engine: SyncEngine, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``sync_mismatches`` tool."""
    if args.get("details", False):
        report = await run_sync_limited(engine.reconcile)
        if isinstance(report, SyncFailure):
            return failure_to_response(report)
        return types.CallToolResult(
            content=[
                types.TextContent(type="text", text=format_mismatch_report(report))
            ],
            structuredContent=report_to_json(report),
        )

    mismatches = await run_sync_limited(engine.get_mismatches)
    if isinstance(mismatches, SyncFailure):
        return failure_to_response(mismatches)
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=format_mismatches(mismatches))],
        structuredContent={
            "count": len(mismatches),
            "mismatches": [m.model_dump() for m in mismatches],
        },
    )


async def _handle_push_field(
    engine: SyncEngine, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``sync_push_field`` tool."""
    wp_user_id = _positive_int(args, "wp_user_id")
    field = _text(args, "field")
    value = _text(args, "value")
    result = await run_sync_limited(engine.push_field, wp_user_id, field, value)
    return _result_response(
        result,
        f"Updated {field} of WordPress user {wp_user_id}.",
        {"wp_user_id": wp_user_id, "field": field},
    )


async def _handle_pull_field(
    engine: SyncEngine, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``sync_pull_field`` tool."""
    client_id = _positive_int(args, "client_id")
    field = _text(args, "field")
    value = _text(args, "value")
    result = await run_sync_limited(engine.pull_field, client_id, field, value)
    return _result_response(
        result,
        f"Updated {field} of client {client_id}.",
        {"client_id": client_id, "field": field},
    )


async def _handle_set_ignored(
    engine: SyncEngine, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``sync_set_ignored`` tool."""
    field = _text(args, "field")
    source_value = _text(args, "source_value")
    target_value = _text(args, "target_value")
    ignored = _flag(args, "ignored", True)
    result = await run_sync_limited(
        engine.set_ignored, field, source_value, target_value, ignored
    )
    verb = "Ignoring" if ignored else "No longer ignoring"
    return _result_response(
        result,
        f"{verb} {field} mismatch {source_value!r} / {target_value!r}.",
        {"field": field, "ignored": ignored},
    )


async def _handle_link_client(
    engine: SyncEngine, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``sync_link_client`` tool."""
    client_id = _positive_int(args, "client_id")
    wp_user_id = _positive_int(args, "wp_user_id")
    result = await run_sync_limited(
        engine.link_client_to_user, client_id, wp_user_id
    )
    return _result_response(
        result,
        f"Client {client_id} linked to WordPress user {wp_user_id}.",
        {"client_id": client_id, "wp_user_id": wp_user_id},
    )


async def _handle_link_candidates(
    engine: SyncEngine, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``sync_link_candidates`` tool."""
    client_id = _positive_int(args, "client_id")
    candidates = await run_sync_limited(engine.link_candidates, client_id)
    if isinstance(candidates, SyncFailure):
        return failure_to_response(candidates)
    return types.CallToolResult(
        content=[
            types.TextContent(type="text", text=format_candidates(client_id, candidates))
        ],
        structuredContent={
            "client_id": client_id,
            "candidates": [c.model_dump() for c in candidates],
        },
    )


async def _handle_resolve(
    engine: SyncEngine, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``sync_resolve`` tool."""
    client_id = _positive_int(args, "client_id")
    strategy = _text(args, "strategy")
    if strategy not in STRATEGIES:
        raise ValueError(
            f"strategy must be one of {', '.join(STRATEGIES)}, got {strategy!r}"
        )
    field = _text(args, "field", required=False)

    if not field:
        report = await run_sync_limited(engine.sync_all, client_id, strategy)
        if isinstance(report, SyncFailure):
            return failure_to_response(report)
        return types.CallToolResult(
            content=[
                types.TextContent(type="text", text=format_resolution_report(report))
            ],
            structuredContent=resolution_to_json(report),
            isError=bool(report.failed),
        )

    outcome = await run_sync_limited(engine.pair_mismatches, client_id)
    if isinstance(outcome, SyncFailure):
        return failure_to_response(outcome)
    wp_user_id, mismatches = outcome
    canonical = engine.query.mapper.resolve(field)
    name = canonical.name if canonical is not None else field
    mismatch = next((m for m in mismatches if m.field_name == name), None)
    if mismatch is None:
        return build_error_response(
            "not_found",
            f"Client {client_id} has no current {field} mismatch.",
            "Use sync_mismatches to list current mismatches.",
        )
    result = await run_sync_limited(engine.resolve, mismatch, strategy)
    return _result_response(
        result,
        f"Applied '{strategy}' to {name} of client {client_id}.",
        {"client_id": client_id, "wp_user_id": wp_user_id, "field": name},
    )


async def _handle_audit_log(
    engine: SyncEngine, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``sync_audit_log`` tool."""
    limit = args.get("limit", 50)
    if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= 500:
        raise ValueError("limit must be an integer between 1 and 500")
    entries = await run_sync_limited(engine.audit_log, limit)
    if isinstance(entries, SyncFailure):
        return failure_to_response(entries)
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=format_audit_log(entries))],
        structuredContent={
            "entries": [e.model_dump(mode="json") for e in entries],
        },
    )


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

_HANDLERS = {
    "sync_mismatches": _handle_mismatches,
    "sync_push_field": _handle_push_field,
    "sync_pull_field": _handle_pull_field,
    "sync_set_ignored": _handle_set_ignored,
    "sync_link_client": _handle_link_client,
    "sync_link_candidates": _handle_link_candidates,
    "sync_resolve": _handle_resolve,
    "sync_audit_log": _handle_audit_log,
}

_PERMISSIONS = {
    "sync_mismatches": frozenset({SYNC_VIEW}),
    "sync_push_field": frozenset({SYNC_WRITE}),
    "sync_pull_field": frozenset({SYNC_WRITE}),
    "sync_set_ignored": frozenset({SYNC_WRITE}),
    "sync_link_client": frozenset({SYNC_ADMIN}),
    "sync_link_candidates": frozenset({SYNC_VIEW}),
    "sync_resolve": frozenset({SYNC_WRITE}),
    "sync_audit_log": frozenset({SYNC_VIEW}),
}

SYNC_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=tool,
        permissions=_PERMISSIONS[tool.name],
        handler=_HANDLERS[tool.name],
    )
    for tool in SYNC_TOOLS
]


async def handle_sync_tool(
    name: str,
    arguments: dict[str, Any] | None,
    engine: SyncEngine,
) -> types.CallToolResult:
    """Dispatch and execute a sync tool.

    Args:
        name: Tool name (``sync_mismatches``, ``sync_push_field``, ...).
        arguments: Tool arguments dict.
        engine: Initialized SyncEngine.

    Returns:
        ``CallToolResult`` with tool output or error details.
    """
    args = arguments or {}

    try:
        handler = _HANDLERS.get(name)
        if handler is None:
            raise ValueError(f"Unknown sync tool: {name}")
        return await handler(engine, args)

    except ValueError as exc:
        return build_error_response(
            "validation_error",
            str(exc),
            "Check parameter values and retry.",
        )
    except Exception as exc:
        logger.exception("Sync tool error: %s", exc)
        return build_error_response(
            "server_error",
            f"Tool {name} failed unexpectedly.",
            "Check the server log and store connectivity, then retry.",
        )
