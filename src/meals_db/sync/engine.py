"""Reconciliation facade: the single entry point for callers.

The ``SyncEngine`` ties together the record adapters, the detector, the
ignore filter and the mutation gateway. A reconciliation pass:

1. Reads all clients, split into linked and unlinked.
2. Reads the ignore rules.
3. Reads the WordPress ids that belong to staff.
4. Reads every WordPress user.
5. Detects field mismatches of linked pairs.
6. Drops mismatches covered by an ignore rule.

Any read failure ends the pass and is returned as is; a partial view is
never presented as complete. Mutations go through the gateway and return
``OperationResult`` values. Nothing here raises for store errors.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import requests
from sqlalchemy import Engine
from sqlalchemy.exc import SQLAlchemyError

from ..core.client import WordPressClient
from ..crypto import FieldCipher
from ..store.audit import AuditLog
from ..store.clients import ClientRepository
from ..store.database import check_connection
from ..store.ignored import IgnoreRuleStore
from ..store.staff import StaffRepository
from .compare import detect_mismatches, filter_ignored, find_probable_matches
from .mapper import FieldMapper
from .models import (
    AuditLogEntry,
    DetectionResult,
    FailureCode,
    FieldResolution,
    LinkCandidate,
    Mismatch,
    OperationResult,
    ReconciliationReport,
    ResolutionReport,
    SyncFailure,
)
from .mutate import SyncMutate
from .query import SyncQuery, db_unavailable, wp_unavailable
from .resolver import create_resolver

logger = logging.getLogger(__name__)


class SyncEngine:
    """Orchestrate reconciliation between the Meals DB and WordPress.

    Args:
        query: Record source adapters.
        mutate: Mutation gateway.
        case_insensitive: Ignore case differences when detecting.
        actor_id: Operator id recorded in audit entries and ignore rules.
    """

    def __init__(
        self,
        query: SyncQuery,
        mutate: SyncMutate,
        case_insensitive: bool = False,
        actor_id: int = 0,
    ) -> None:
        self.query = query
        self.mutate = mutate
        self.case_insensitive = case_insensitive
        self.actor_id = actor_id

    @classmethod
    def build(
        cls,
        db_engine: Engine,
        cipher: FieldCipher,
        wp_client: WordPressClient,
        *,
        batch_size: int = 500,
        case_insensitive: bool = False,
        actor_id: int = 0,
    ) -> SyncEngine:
        """Wire the stores, adapters and gateway around shared handles.

        Args:
            db_engine: SQLAlchemy engine (connection pool) for the Meals DB.
            cipher: Cipher for encrypted client columns.
            wp_client: WooCommerce REST client.
            batch_size: Rows per round trip when reading.
            case_insensitive: Ignore case differences when detecting.
            actor_id: Operator id recorded in audit entries.
        """
        mapper = FieldMapper()
        clients = ClientRepository(db_engine, cipher)
        ignore_rules = IgnoreRuleStore(db_engine)
        audit = AuditLog(db_engine)
        query = SyncQuery(
            clients,
            StaffRepository(db_engine),
            ignore_rules,
            wp_client,
            mapper=mapper,
            batch_size=batch_size,
        )
        mutate = SyncMutate(clients, wp_client, ignore_rules, audit, mapper=mapper)
        return cls(
            query, mutate, case_insensitive=case_insensitive, actor_id=actor_id
        )

    # ------------------------------------------------------------------
    # Reconciliation pass
    # ------------------------------------------------------------------

    def _detect(self) -> tuple[DetectionResult, int] | SyncFailure:
        """Run one full pass; return the filtered result and ignored count."""
        partition = self.query.get_clients()
        if isinstance(partition, SyncFailure):
            return partition
        rules = self.query.get_ignore_rules()
        if isinstance(rules, SyncFailure):
            return rules
        staff_ids = self.query.get_staff_wordpress_ids()
        if isinstance(staff_ids, SyncFailure):
            return staff_ids
        wp_users = self.query.get_wp_users()
        if isinstance(wp_users, SyncFailure):
            return wp_users

        detected = detect_mismatches(
            wp_users,
            partition.linked,
            partition.unlinked,
            staff_ids,
            casefold=self.case_insensitive,
            mapper=self.query.mapper,
        )
        kept = filter_ignored(detected.mismatches, rules)
        ignored = len(detected.mismatches) - len(kept)
        return detected.model_copy(update={"mismatches": kept}), ignored

    def get_mismatches(self) -> list[Mismatch] | SyncFailure:
        """Current, non-ignored mismatches of every linked pair."""
        outcome = self._detect()
        if isinstance(outcome, SyncFailure):
            logger.warning("Mismatch detection aborted: %s", outcome.code.value)
            return outcome
        detected, _ = outcome
        return detected.mismatches

    def reconcile(self) -> ReconciliationReport | SyncFailure:
        """Full pass with unlinked, orphaned and unmatched records."""
        started_at = datetime.now(timezone.utc).isoformat()
        outcome = self._detect()
        if isinstance(outcome, SyncFailure):
            logger.warning("Reconciliation aborted: %s", outcome.code.value)
            return outcome
        detected, ignored = outcome
        report = ReconciliationReport(
            mismatches=detected.mismatches,
            unlinked_clients=detected.unlinked_clients,
            orphaned_links=detected.orphaned_links,
            unmatched_users=detected.unmatched_users,
            ignored_count=ignored,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc).isoformat(),
        )
        logger.info(
            "Reconciliation found %d mismatches (%d ignored)",
            len(report.mismatches),
            ignored,
        )
        return report

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def push_field(
        self, target_user_id: int, field: str, value: str
    ) -> OperationResult:
        """Write *value* into one field of a WordPress user."""
        return self.mutate.push_to_wordpress(
            target_user_id, field, value, self.actor_id
        )

    def pull_field(self, client_id: int, field: str, value: str) -> OperationResult:
        """Write *value* into one field of a Meals DB client."""
        return self.mutate.push_to_client(client_id, field, value, self.actor_id)

    def set_ignored(
        self, field: str, source_value: str, target_value: str, ignored: bool
    ) -> OperationResult:
        return self.mutate.set_ignored(
            field, source_value, target_value, ignored, self.actor_id
        )

    def link_client_to_user(self, client_id: int, wp_user_id: int) -> OperationResult:
        return self.mutate.link(client_id, wp_user_id, self.actor_id)

    # ------------------------------------------------------------------
    # Resolution workflow
    # ------------------------------------------------------------------

    def resolve(self, mismatch: Mismatch, strategy: str) -> OperationResult:
        """Apply one strategy (``ignore``, ``accept``, ``sync``) to a mismatch."""
        try:
            resolver = create_resolver(strategy)
        except ValueError as e:
            return OperationResult.fail(FailureCode.INVALID_REQUEST, str(e))
        return resolver.apply(mismatch, self.mutate, self.actor_id)

    def pair_mismatches(self, client_id: int) -> tuple[int, list[Mismatch]] | SyncFailure:
        """Current, non-ignored mismatches of one client and its user.

        Returns:
            ``(wp_user_id, mismatches)`` or a failure when the client is
            missing, unlinked, or either store cannot be read.
        """
        try:
            row = self.query.clients.get(client_id)
        except SQLAlchemyError as e:
            logger.error("Lookup of client %s failed: %s", client_id, e)
            return db_unavailable()
        if row is None:
            return SyncFailure(
                code=FailureCode.CLIENT_NOT_FOUND,
                message=f"Meals DB client {client_id} could not be found.",
            )
        client = self.query.mapper.client_snapshot(row)
        if not client.is_linked:
            return SyncFailure(
                code=FailureCode.INVALID_REQUEST,
                message=f"Meals DB client {client_id} is not linked to a WordPress user.",
            )

        try:
            data = self.query.wp_client.get_user(client.wordpress_user_id)
        except (requests.RequestException, ValueError) as e:
            logger.error(
                "WordPress lookup of user %s failed: %s", client.wordpress_user_id, e
            )
            return wp_unavailable()
        if data is None:
            return SyncFailure(
                code=FailureCode.USER_NOT_FOUND,
                message=f"WordPress user {client.wordpress_user_id} could not be found.",
            )

        rules = self.query.get_ignore_rules()
        if isinstance(rules, SyncFailure):
            return rules
        staff_ids = self.query.get_staff_wordpress_ids()
        if isinstance(staff_ids, SyncFailure):
            return staff_ids

        # Staff accounts are never diffed, so a staff pair has nothing to resolve
        user = self.query.mapper.wordpress_user(data)
        detected = detect_mismatches(
            [user],
            {user.id: [client]},
            [],
            staff_ids,
            casefold=self.case_insensitive,
            mapper=self.query.mapper,
        )
        return user.id, filter_ignored(detected.mismatches, rules)

    def sync_all(self, client_id: int, strategy: str) -> ResolutionReport | SyncFailure:
        """Apply *strategy* to every current mismatch of one client.

        A failed field does not stop the remaining ones.
        """
        try:
            resolver = create_resolver(strategy)
        except ValueError as e:
            return SyncFailure(code=FailureCode.INVALID_REQUEST, message=str(e))

        outcome = self.pair_mismatches(client_id)
        if isinstance(outcome, SyncFailure):
            return outcome
        wp_user_id, mismatches = outcome

        results = [
            FieldResolution(
                field_name=m.field_name,
                result=resolver.apply(m, self.mutate, self.actor_id),
            )
            for m in mismatches
        ]
        report = ResolutionReport(
            client_id=client_id,
            wp_user_id=wp_user_id,
            strategy=resolver.name,
            results=results,
        )
        logger.info(
            "Applied %s to client %s: %d resolved, %d failed",
            resolver.name,
            client_id,
            len(report.resolved),
            len(report.failed),
        )
        return report

    # ------------------------------------------------------------------
    # Linking help and history
    # ------------------------------------------------------------------

    def link_candidates(self, client_id: int) -> list[LinkCandidate] | SyncFailure:
        """Suggest WordPress users for a client, best first.

        Staff accounts and users already linked to another client are
        never suggested.
        """
        if client_id <= 0:
            return SyncFailure(
                code=FailureCode.INVALID_REQUEST,
                message="A valid Meals DB client ID is required.",
            )
        partition = self.query.get_clients()
        if isinstance(partition, SyncFailure):
            return partition
        staff_ids = self.query.get_staff_wordpress_ids()
        if isinstance(staff_ids, SyncFailure):
            return staff_ids
        wp_users = self.query.get_wp_users()
        if isinstance(wp_users, SyncFailure):
            return wp_users

        client = next(
            (c for c in partition.unlinked if c.id == client_id), None
        )
        if client is None:
            client = next(
                (
                    c
                    for linked in partition.linked.values()
                    for c in linked
                    if c.id == client_id
                ),
                None,
            )
        if client is None:
            return SyncFailure(
                code=FailureCode.CLIENT_NOT_FOUND,
                message=f"Meals DB client {client_id} could not be found.",
            )

        taken = {
            wp_id
            for wp_id, linked in partition.linked.items()
            if any(c.id != client_id for c in linked)
        }
        return find_probable_matches(client, wp_users, exclude_ids=staff_ids | taken)

    def ping(self) -> tuple[str, str]:
        """Round-trip both stores.

        Returns:
            ``(database dialect, WordPress user name)``.

        Raises:
            SQLAlchemyError: If the database cannot be reached.
            requests.RequestException: If WordPress cannot be reached.
        """
        dialect = check_connection(self.query.clients.engine)
        username = self.query.wp_client.validate_connection()
        return dialect, username

    def audit_log(self, limit: int = 50) -> list[AuditLogEntry] | SyncFailure:
        """Most recent audit entries first."""
        try:
            return self.mutate.audit.recent(limit)
        except SQLAlchemyError as e:
            logger.error("Audit log query failed: %s", e)
            return db_unavailable()
