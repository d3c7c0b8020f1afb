"""Append-only audit trail of mutations made through the service."""

from __future__ import annotations

import logging
from datetime import datetime

from pydantic import BaseModel
from sqlalchemy import Engine, insert, select

from .schema import audit_log

logger = logging.getLogger(__name__)


class AuditLogEntry(BaseModel):
    """One append-only audit record.

    Attributes:
        actor: Operator id (0 when unattended).
        action: ``sync_override``, ``link_client``, ...
        target_id: Id of the record written (WordPress user or client).
        field: Field that changed, if any.
        old_value: Value before the write.
        new_value: Value after the write.
        source: Where the new value came from (``mealsdb``, ``wordpress``,
            ``operator``).
    """

    actor: int
    action: str
    target_id: int
    field: str | None = None
    old_value: str | None = None
    new_value: str | None = None
    source: str
    created_at: datetime | None = None

    model_config = {"frozen": True}


class AuditLog:
    """Access to ``meals_audit_log``.

    ``append`` raises on failure; whether a failed audit write matters is
    the caller's decision.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def append(self, entry: AuditLogEntry) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                insert(audit_log).values(
                    user_id=entry.actor,
                    action=entry.action,
                    target_id=entry.target_id,
                    field_changed=entry.field,
                    old_value=entry.old_value,
                    new_value=entry.new_value,
                    source=entry.source,
                )
            )

    def recent(self, limit: int = 50) -> list[AuditLogEntry]:
        """Most recent entries first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(audit_log)
                .order_by(audit_log.c.created_at.desc(), audit_log.c.id.desc())
                .limit(limit)
            ).all()
        return [
            AuditLogEntry(
                actor=r.user_id,
                action=r.action,
                target_id=r.target_id,
                field=r.field_changed,
                old_value=r.old_value,
                new_value=r.new_value,
                source=r.source,
                created_at=r.created_at,
            )
            for r in rows
        ]
