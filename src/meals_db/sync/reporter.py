"""Report formatting functions.

Provides human-readable and machine-readable output for reconciliation:

- ``format_mismatch_report`` -- full reconciliation view grouped by pair.
- ``format_resolution_report`` -- per-field outcome of a bulk resolution.
- ``format_candidates`` -- ranked link suggestions for one client.
- ``format_audit_log`` -- recent audit entries.
- ``report_to_json`` / ``resolution_to_json`` -- structured dicts for MCP
  tool output.
"""

from __future__ import annotations

from itertools import groupby
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import (
        AuditLogEntry,
        LinkCandidate,
        Mismatch,
        ReconciliationReport,
        ResolutionReport,
    )

from .mapper import COMPARABLE_FIELDS

_LABELS = {f.name: f.label for f in COMPARABLE_FIELDS}


def _label(field_name: str) -> str:
    return _LABELS.get(field_name, field_name)


def _shown(value: str) -> str:
    return repr(value) if value else "(empty)"


# ------------------------------------------------------------------
# Human-readable reports
# ------------------------------------------------------------------


def format_mismatches(mismatches: list[Mismatch]) -> str:
    """Format mismatches grouped by client / WordPress user pair.

    Args:
        mismatches: Mismatches in detector order.

    Returns:
        Multi-line formatted string.
    """
    if not mismatches:
        return "No mismatches."

    lines: list[str] = []
    for (client_id, wp_user_id), group in groupby(
        mismatches, key=lambda m: (m.client_id, m.wp_user_id)
    ):
        lines.append(f"Client {client_id} <-> WordPress user {wp_user_id}:")
        for m in group:
            lines.append(
                f"  {_label(m.field_name)}: "
                f"Meals DB {_shown(m.value_from_client)} / "
                f"WordPress {_shown(m.value_from_wp)}"
            )
    return "\n".join(lines)


def format_mismatch_report(report: ReconciliationReport) -> str:
    """Format a complete reconciliation report.

    Sections other than the mismatches are only included when they
    contain at least one record.

    Args:
        report: The completed reconciliation report.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = [report.summary(), ""]
    lines.append(format_mismatches(report.mismatches))
    lines.append("")

    if report.orphaned_links:
        lines.append("Linked to missing WordPress users:")
        for c in report.orphaned_links:
            lines.append(
                f"  client {c.id} ({c.first_name} {c.last_name}) -> "
                f"user {c.wordpress_user_id}"
            )
        lines.append("")

    if report.unlinked_clients:
        lines.append("Clients without a WordPress account:")
        for c in report.unlinked_clients:
            lines.append(f"  client {c.id}: {c.first_name} {c.last_name}".rstrip())
        lines.append("")

    if report.unmatched_users:
        lines.append("WordPress users without a client:")
        for u in report.unmatched_users:
            lines.append(f"  user {u.id}: {u.display_name}".rstrip())
        lines.append("")

    return "\n".join(lines).rstrip()


def format_resolution_report(report: ResolutionReport) -> str:
    """Format the outcome of applying one strategy to a pair."""
    lines = [
        f"Applied '{report.strategy}' to client {report.client_id} "
        f"<-> WordPress user {report.wp_user_id}"
    ]
    if not report.results:
        lines.append("Nothing to resolve.")
        return "\n".join(lines)

    lines.append(
        f"{len(report.resolved)} resolved, {len(report.failed)} failed"
    )
    for r in report.results:
        if r.result.success:
            note = "ok"
            if not r.result.audit_logged:
                note += " (audit entry not written)"
        else:
            note = f"FAILED: {r.result.failure.message}"
        lines.append(f"  {_label(r.field_name)}: {note}")
    return "\n".join(lines)


def format_candidates(client_id: int, candidates: list[LinkCandidate]) -> str:
    if not candidates:
        return f"No likely WordPress accounts for client {client_id}."
    lines = [f"Likely WordPress accounts for client {client_id}:"]
    for c in candidates:
        contact = ", ".join(part for part in (c.email, c.phone) if part)
        lines.append(
            f"  user {c.wp_user_id} (score {c.score}): {c.display_name}"
            + (f" <{contact}>" if contact else "")
        )
    return "\n".join(lines)


def format_audit_log(entries: list[AuditLogEntry]) -> str:
    if not entries:
        return "Audit log is empty."
    lines = []
    for e in entries:
        when = e.created_at.isoformat(sep=" ") if e.created_at else "-"
        change = ""
        if e.field:
            change = f" {e.field}: {e.old_value!r} -> {e.new_value!r}"
        lines.append(
            f"{when} actor {e.actor} {e.action} #{e.target_id} [{e.source}]{change}"
        )
    return "\n".join(lines)


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: ReconciliationReport) -> dict:
    """Convert a reconciliation report to a structured dict.

    Suitable for MCP ``structuredContent`` output.

    Args:
        report: The reconciliation report.

    Returns:
        Dict with timestamps, counts, and per-record details.
    """
    return {
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "counts": {
            "mismatches": len(report.mismatches),
            "pairs": len(report.pairs_with_mismatches),
            "ignored": report.ignored_count,
            "unlinked_clients": len(report.unlinked_clients),
            "orphaned_links": len(report.orphaned_links),
            "unmatched_users": len(report.unmatched_users),
        },
        "mismatches": [m.model_dump() for m in report.mismatches],
        "unlinked_clients": [
            c.model_dump(include={"id", "first_name", "last_name", "email"})
            for c in report.unlinked_clients
        ],
        "orphaned_links": [
            c.model_dump(include={"id", "wordpress_user_id"})
            for c in report.orphaned_links
        ],
        "unmatched_users": [
            u.model_dump(include={"id", "display_name", "email"})
            for u in report.unmatched_users
        ],
    }


def resolution_to_json(report: ResolutionReport) -> dict:
    results_list = []
    for r in report.results:
        entry: dict = {
            "field_name": r.field_name,
            "success": r.result.success,
            "audit_logged": r.result.audit_logged,
        }
        if r.result.failure is not None:
            entry["error"] = r.result.failure.model_dump(mode="json")
        results_list.append(entry)

    return {
        "client_id": report.client_id,
        "wp_user_id": report.wp_user_id,
        "strategy": report.strategy,
        "counts": {
            "resolved": len(report.resolved),
            "failed": len(report.failed),
        },
        "results": results_list,
    }
