"""Error response builders for MCP tool handlers.

This module provides structured error responses with corrective actions
to help AI agents recover from errors without human intervention. Sync
failures carry a ``FailureCode``; each code maps to an error type and a
suggested next step.
"""

import mcp.types as types

from ...sync.models import FailureCode, SyncFailure


def build_error_response(
    error_type: str, message: str, corrective_action: str
) -> types.CallToolResult:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (not_found, validation_error, conflict,
            unavailable, server_error)
        message: Human-readable error description
        corrective_action: Specific action the agent can take to resolve the error

    Returns:
        CallToolResult with isError=True

    Examples:
        >>> build_error_response("not_found", "Client 12 not found", "Use sync_mismatches to list linked clients.")
        CallToolResult(content=[TextContent(...)], isError=True)
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        isError=True,
    )


# ---------------------------------------------------------------------------
# Failure code translation
# ---------------------------------------------------------------------------

_FAILURE_RESPONSES: dict[FailureCode, tuple[str, str]] = {
    FailureCode.STORE_UNAVAILABLE: (
        "unavailable",
        "Retry later. If the problem persists, check the Meals DB and WordPress connection settings.",
    ),
    FailureCode.CLIENT_NOT_FOUND: (
        "not_found",
        "Use sync_mismatches to list current client ids, then retry.",
    ),
    FailureCode.USER_NOT_FOUND: (
        "not_found",
        "Use sync_link_candidates to find an existing WordPress account for this client.",
    ),
    FailureCode.INVALID_REQUEST: (
        "validation_error",
        "Check parameter values and retry.",
    ),
    FailureCode.UNSUPPORTED_FIELD: (
        "validation_error",
        "Use one of: first_name, last_name, email, phone, postal_code.",
    ),
    FailureCode.ALREADY_LINKED: (
        "conflict",
        "Unlink the other client first, or pick a different WordPress user.",
    ),
    FailureCode.UPDATE_FAILED: (
        "server_error",
        "Run sync_mismatches to confirm the current values, then retry.",
    ),
}


def failure_to_response(failure: SyncFailure) -> types.CallToolResult:
    """Translate a sync failure into a structured error response.

    The failure message is already operator-safe and is shown as is.
    """
    error_type, action = _FAILURE_RESPONSES.get(
        failure.code, ("server_error", "Retry later.")
    )
    return types.CallToolResult(
        content=[
            types.TextContent(
                type="text",
                text=f"Error ({error_type}): {failure.message}\n\nAction: {action}",
            )
        ],
        structuredContent={
            "error": {
                "type": error_type,
                "code": failure.code.value,
                "message": failure.message,
            }
        },
        isError=True,
    )
