"""Mutation gateway: apply operator-approved values to one side.

Each write re-reads the target first (so a vanished record is reported,
not silently "updated"), captures the previous value, performs the write,
then appends one audit entry. The write is authoritative: if the audit
entry cannot be stored the result is still a success, flagged with
``audit_logged=False``.
"""

from __future__ import annotations

import logging

import requests
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from ..core.client import WordPressClient
from ..store.audit import AuditLog, AuditLogEntry
from ..store.clients import ClientRepository
from ..store.ignored import IgnoreRuleStore
from .linker import Linker, record_audit
from .mapper import ComparableField, FieldMapper
from .models import FailureCode, OperationResult
from .query import db_unavailable, wp_unavailable

logger = logging.getLogger(__name__)

SYNC_ACTION = "sync_override"
SOURCE_MEALSDB = "mealsdb"
SOURCE_WORDPRESS = "wordpress"


class SyncMutate:
    """Write single fields and ignore rules.

    Args:
        clients: Client repository.
        wp_client: WooCommerce REST client.
        ignore_rules: Ignore rule store.
        audit: Audit log sink.
        mapper: Field mapper.
        linker: Linker used by ``link``; built from the other parts when
            omitted.
    """

    def __init__(
        self,
        clients: ClientRepository,
        wp_client: WordPressClient,
        ignore_rules: IgnoreRuleStore,
        audit: AuditLog,
        mapper: FieldMapper | None = None,
        linker: Linker | None = None,
    ) -> None:
        self.clients = clients
        self.wp_client = wp_client
        self.ignore_rules = ignore_rules
        self.audit = audit
        self.mapper = mapper or FieldMapper()
        self.linker = linker or Linker(clients, wp_client, audit)

    def _field(self, name: str) -> ComparableField | OperationResult:
        field = self.mapper.resolve(name) if name else None
        if field is None:
            return OperationResult.fail(
                FailureCode.UNSUPPORTED_FIELD,
                f"The field '{name}' cannot be synchronized. "
                f"Supported fields: {', '.join(self.mapper.field_names)}.",
            )
        return field

    # ------------------------------------------------------------------
    # Field pushes
    # ------------------------------------------------------------------

    def push_to_wordpress(
        self, wp_user_id: int, field: str, value: str, actor: int = 0
    ) -> OperationResult:
        """Overwrite one field of a WordPress user with *value*."""
        if wp_user_id <= 0:
            return OperationResult.fail(
                FailureCode.INVALID_REQUEST,
                "A valid WordPress user ID is required to sync this field.",
            )
        resolved = self._field(field)
        if isinstance(resolved, OperationResult):
            return resolved

        try:
            user = self.wp_client.get_user(wp_user_id)
        except (requests.RequestException, ValueError) as e:
            logger.error("WordPress lookup of user %s failed: %s", wp_user_id, e)
            return OperationResult.from_failure(wp_unavailable())
        if user is None:
            return OperationResult.fail(
                FailureCode.USER_NOT_FOUND,
                f"WordPress user {wp_user_id} could not be found.",
            )

        old = self.mapper.wordpress_user(user)
        old_value = getattr(old, resolved.name)

        try:
            self.wp_client.update_user(
                wp_user_id, self.mapper.wp_payload(resolved, value)
            )
        except (requests.RequestException, ValueError) as e:
            logger.error(
                "Updating %s of WordPress user %s failed: %s",
                resolved.name,
                wp_user_id,
                e,
            )
            return OperationResult.fail(
                FailureCode.UPDATE_FAILED,
                f"Unable to update the {resolved.label.lower()} of WordPress user {wp_user_id}.",
            )

        logger.info(
            "Pushed %s to WordPress user %s", resolved.name, wp_user_id
        )
        audit_logged = record_audit(
            self.audit,
            AuditLogEntry(
                actor=actor,
                action=SYNC_ACTION,
                target_id=wp_user_id,
                field=resolved.name,
                old_value=old_value,
                new_value=value,
                source=SOURCE_MEALSDB,
            ),
        )
        return OperationResult.ok(audit_logged=audit_logged)

    def push_to_client(
        self, client_id: int, field: str, value: str, actor: int = 0
    ) -> OperationResult:
        """Overwrite one field of a Meals DB client with *value*."""
        if client_id <= 0:
            return OperationResult.fail(
                FailureCode.INVALID_REQUEST,
                "A valid Meals DB client is required to sync this field.",
            )
        resolved = self._field(field)
        if isinstance(resolved, OperationResult):
            return resolved

        try:
            old_value = self.clients.get_field(client_id, resolved.client_column)
        except SQLAlchemyError as e:
            logger.error("Lookup of client %s failed: %s", client_id, e)
            return OperationResult.from_failure(db_unavailable())
        if old_value is None:
            return OperationResult.fail(
                FailureCode.CLIENT_NOT_FOUND,
                f"Meals DB client {client_id} could not be found.",
            )

        try:
            updated = self.clients.update_fields(
                client_id, {resolved.client_column: value}
            )
        except OperationalError as e:
            logger.error("Updating client %s failed: %s", client_id, e)
            return OperationResult.from_failure(db_unavailable())
        except SQLAlchemyError as e:
            logger.error(
                "Updating %s of client %s failed: %s", resolved.name, client_id, e
            )
            return OperationResult.fail(
                FailureCode.UPDATE_FAILED,
                "Unable to update the Meals DB client record.",
            )
        if not updated:
            return OperationResult.fail(
                FailureCode.CLIENT_NOT_FOUND,
                f"Meals DB client {client_id} could not be found.",
            )

        logger.info("Pulled %s into client %s", resolved.name, client_id)
        audit_logged = record_audit(
            self.audit,
            AuditLogEntry(
                actor=actor,
                action=SYNC_ACTION,
                target_id=client_id,
                field=resolved.name,
                old_value=old_value,
                new_value=value,
                source=SOURCE_WORDPRESS,
            ),
        )
        return OperationResult.ok(audit_logged=audit_logged)

    # ------------------------------------------------------------------
    # Ignore rules and links
    # ------------------------------------------------------------------

    def set_ignored(
        self,
        field: str,
        source_value: str,
        target_value: str,
        ignored: bool,
        actor: int = 0,
    ) -> OperationResult:
        """Add or remove the ignore rule for an exact value triple.

        Both directions are idempotent: adding an existing rule and
        removing an absent one are successes. Known aliases are stored
        under the canonical field name so the rule matches detector
        output.
        """
        resolved = self.mapper.resolve(field) if field else None
        name = resolved.name if resolved is not None else field

        try:
            if ignored:
                inserted = self.ignore_rules.add(
                    name, source_value, target_value, ignored_by=actor
                )
                detail = None if inserted else "already ignored"
            else:
                removed = self.ignore_rules.remove(name, source_value, target_value)
                detail = None if removed else "no matching rule"
        except SQLAlchemyError as e:
            logger.error("Ignore rule update for %s failed: %s", name, e)
            return OperationResult.from_failure(db_unavailable())

        logger.info(
            "%s %s mismatch", "Ignored" if ignored else "Unignored", name
        )
        return OperationResult.ok(detail=detail)

    def link(self, client_id: int, wp_user_id: int, actor: int = 0) -> OperationResult:
        return self.linker.link(client_id, wp_user_id, actor)
