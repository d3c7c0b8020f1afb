"""Record source adapters: read both stores into comparable snapshots.

Every read returns either its data or a ``SyncFailure``; nothing raises
across this boundary. Raw driver and HTTP errors are logged here and
replaced by an operator-safe message.
"""

from __future__ import annotations

import logging

import requests
from sqlalchemy.exc import SQLAlchemyError

from ..core.client import MAX_PAGE_SIZE, WordPressClient
from ..store.clients import ClientRepository
from ..store.ignored import IgnoreRuleStore
from ..store.staff import StaffRepository
from .mapper import FieldMapper
from .models import (
    ClientPartition,
    ClientSnapshot,
    FailureCode,
    IgnoreRule,
    SyncFailure,
    WordPressUser,
)

logger = logging.getLogger(__name__)

DB_UNAVAILABLE_MESSAGE = (
    "Unable to connect to the Meals DB database. Please try again later."
)
WP_UNAVAILABLE_MESSAGE = "Unable to reach WordPress. Please try again later."


def db_unavailable() -> SyncFailure:
    return SyncFailure(
        code=FailureCode.STORE_UNAVAILABLE, message=DB_UNAVAILABLE_MESSAGE
    )


def wp_unavailable() -> SyncFailure:
    return SyncFailure(
        code=FailureCode.STORE_UNAVAILABLE, message=WP_UNAVAILABLE_MESSAGE
    )


class SyncQuery:
    """Read clients, ignore rules, staff links and WordPress users.

    Args:
        clients: Client repository.
        staff: Staff repository.
        ignore_rules: Ignore rule store.
        wp_client: WooCommerce REST client.
        mapper: Field mapper used to normalize both sides.
        batch_size: Rows (or users) fetched per round trip.
    """

    def __init__(
        self,
        clients: ClientRepository,
        staff: StaffRepository,
        ignore_rules: IgnoreRuleStore,
        wp_client: WordPressClient,
        mapper: FieldMapper | None = None,
        batch_size: int = 500,
    ) -> None:
        self.clients = clients
        self.staff = staff
        self.ignore_rules = ignore_rules
        self.wp_client = wp_client
        self.mapper = mapper or FieldMapper()
        self.batch_size = batch_size

    def get_clients(self) -> ClientPartition | SyncFailure:
        """Read every client and split by WordPress link."""
        linked: dict[int, list[ClientSnapshot]] = {}
        unlinked: list[ClientSnapshot] = []
        try:
            for batch in self.clients.iter_batches(self.batch_size):
                for row in batch:
                    snapshot = self.mapper.client_snapshot(row)
                    if snapshot.is_linked:
                        linked.setdefault(snapshot.wordpress_user_id, []).append(
                            snapshot
                        )
                    else:
                        unlinked.append(snapshot)
        except SQLAlchemyError as e:
            logger.error("Meals DB client query failed: %s", e)
            return db_unavailable()

        logger.debug(
            "Read %d linked and %d unlinked clients",
            sum(len(v) for v in linked.values()),
            len(unlinked),
        )
        return ClientPartition(linked=linked, unlinked=unlinked)

    def get_ignore_rules(self) -> list[IgnoreRule] | SyncFailure:
        try:
            return self.ignore_rules.list_rules()
        except SQLAlchemyError as e:
            logger.error("Ignore rule query failed: %s", e)
            return db_unavailable()

    def get_staff_wordpress_ids(self) -> frozenset[int] | SyncFailure:
        try:
            return self.staff.list_wordpress_ids()
        except SQLAlchemyError as e:
            logger.error("Staff query failed: %s", e)
            return db_unavailable()

    def get_wp_users(self) -> list[WordPressUser] | SyncFailure:
        """Page through every WordPress account."""
        per_page = min(self.batch_size, MAX_PAGE_SIZE)
        users: list[WordPressUser] = []
        page = 1
        try:
            while True:
                batch = self.wp_client.list_users(page=page, per_page=per_page)
                users.extend(self.mapper.wordpress_user(u) for u in batch)
                if len(batch) < per_page:
                    break
                page += 1
        except (requests.RequestException, ValueError, KeyError) as e:
            logger.error("WordPress user listing failed on page %d: %s", page, e)
            return wp_unavailable()

        logger.debug("Read %d WordPress users", len(users))
        return users
