"""Persistence for ignore rules.

Each rule is identified by its exact ``(field_name, source_value,
target_value)`` triple. The table keeps a hash of the triple under a UNIQUE
constraint, so inserting an existing rule is rejected by the database and
reported here as "already present" rather than as an error.
"""

from __future__ import annotations

import hashlib
import json
import logging
from datetime import datetime

from pydantic import BaseModel
from sqlalchemy import Engine, delete, insert, select
from sqlalchemy.exc import IntegrityError

from .schema import ignored_conflicts

logger = logging.getLogger(__name__)


class IgnoreRule(BaseModel):
    """An operator's decision to stop reporting one exact value pair.

    ``source_value`` is the Meals DB value and ``target_value`` the
    WordPress value at the time the rule was created.
    """

    field_name: str
    source_value: str
    target_value: str
    ignored_by: int = 0
    created_at: datetime | None = None

    model_config = {"frozen": True}

    def matches(self, field_name: str, source_value: str, target_value: str) -> bool:
        """Exact string match on the value triple, no normalization."""
        return (
            self.field_name == field_name
            and self.source_value == source_value
            and self.target_value == target_value
        )


def rule_hash(field_name: str, source_value: str, target_value: str) -> str:
    """Stable identity of a rule triple.

    JSON encoding keeps the parts unambiguous whatever characters the
    values contain.
    """
    encoded = json.dumps([field_name, source_value, target_value])
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


class IgnoreRuleStore:
    """Access to ``meals_ignored_conflicts``."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def list_rules(self) -> list[IgnoreRule]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(ignored_conflicts).order_by(ignored_conflicts.c.id)
            ).all()
        return [
            IgnoreRule(
                field_name=r.field_name,
                source_value=r.source_value,
                target_value=r.target_value,
                ignored_by=r.ignored_by,
                created_at=r.created_at,
            )
            for r in rows
        ]

    def add(
        self,
        field_name: str,
        source_value: str,
        target_value: str,
        ignored_by: int = 0,
    ) -> bool:
        """Store a rule.

        Returns:
            True if the rule was inserted, False if it already existed.
        """
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    insert(ignored_conflicts).values(
                        field_name=field_name,
                        source_value=source_value,
                        target_value=target_value,
                        rule_hash=rule_hash(field_name, source_value, target_value),
                        ignored_by=ignored_by,
                    )
                )
        except IntegrityError:
            logger.debug("Ignore rule for %s already present", field_name)
            return False
        return True

    def remove(self, field_name: str, source_value: str, target_value: str) -> int:
        """Delete the rule for the exact triple and return how many rows went.

        Matches on ``rule_hash``, never on the collated text columns.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                delete(ignored_conflicts).where(
                    ignored_conflicts.c.rule_hash
                    == rule_hash(field_name, source_value, target_value)
                )
            )
        return result.rowcount
