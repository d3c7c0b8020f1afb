"""Establish the client to WordPress user correlation.

A link is what makes a client and a WordPress user comparable. Rules:

- Both ids must be positive.
- The client and the WordPress user must both exist.
- A WordPress user belongs to at most one client. Linking a user that is
  already linked to another client fails with ``ALREADY_LINKED``; the
  operator must unlink the other client first.
- Relinking a client to the user it already points at succeeds without
  writing anything.
- Otherwise the previous link is overwritten and one audit entry records
  the previous user id as the old value.
"""

from __future__ import annotations

import logging

import requests
from sqlalchemy.exc import SQLAlchemyError

from ..core.client import WordPressClient
from ..store.audit import AuditLog, AuditLogEntry
from ..store.clients import ClientRepository
from .models import FailureCode, OperationResult
from .query import db_unavailable, wp_unavailable

logger = logging.getLogger(__name__)

LINK_ACTION = "link_client"


class Linker:
    """Create or move client links.

    Args:
        clients: Client repository.
        wp_client: WooCommerce REST client, used to confirm the user exists.
        audit: Audit log sink.
    """

    def __init__(
        self,
        clients: ClientRepository,
        wp_client: WordPressClient,
        audit: AuditLog,
    ) -> None:
        self.clients = clients
        self.wp_client = wp_client
        self.audit = audit

    def link(self, client_id: int, wp_user_id: int, actor: int = 0) -> OperationResult:
        """Point *client_id* at *wp_user_id*.

        Returns:
            OperationResult; never raises for store errors.
        """
        if client_id <= 0 or wp_user_id <= 0:
            return OperationResult.fail(
                FailureCode.INVALID_REQUEST,
                "A valid client ID and WordPress user ID are required to create a link.",
            )

        try:
            row = self.clients.get(client_id)
            if row is None:
                return OperationResult.fail(
                    FailureCode.CLIENT_NOT_FOUND,
                    f"Meals DB client {client_id} could not be found.",
                )
            current = int(row.get("wordpress_user_id") or 0) or None
            if current == wp_user_id:
                return OperationResult.ok(detail="already linked")

            others = [
                cid
                for cid in self.clients.find_linked_to_user(wp_user_id)
                if cid != client_id
            ]
        except SQLAlchemyError as e:
            logger.error("Link lookup failed for client %s: %s", client_id, e)
            return OperationResult.from_failure(db_unavailable())

        if others:
            return OperationResult.fail(
                FailureCode.ALREADY_LINKED,
                f"WordPress user {wp_user_id} is already linked to client {others[0]}.",
            )

        try:
            user = self.wp_client.get_user(wp_user_id)
        except (requests.RequestException, ValueError) as e:
            logger.error("WordPress lookup of user %s failed: %s", wp_user_id, e)
            return OperationResult.from_failure(wp_unavailable())
        if user is None:
            return OperationResult.fail(
                FailureCode.USER_NOT_FOUND,
                f"Unable to locate WordPress user {wp_user_id}.",
            )

        try:
            updated = self.clients.set_link(client_id, wp_user_id)
        except SQLAlchemyError as e:
            logger.error("Linking client %s failed: %s", client_id, e)
            return OperationResult.from_failure(db_unavailable())
        if not updated:
            # Deleted between the lookup and the write
            return OperationResult.fail(
                FailureCode.CLIENT_NOT_FOUND,
                f"Meals DB client {client_id} could not be found.",
            )

        logger.info(
            "Linked client %s to WordPress user %s (was %s)",
            client_id,
            wp_user_id,
            current,
        )
        audit_logged = record_audit(
            self.audit,
            AuditLogEntry(
                actor=actor,
                action=LINK_ACTION,
                target_id=client_id,
                field="wordpress_user_id",
                old_value=None if current is None else str(current),
                new_value=str(wp_user_id),
                source="operator",
            ),
        )
        return OperationResult.ok(audit_logged=audit_logged)


def record_audit(audit: AuditLog, entry: AuditLogEntry) -> bool:
    """Append *entry*, logging instead of raising on failure.

    Returns:
        True if the entry was written.
    """
    try:
        audit.append(entry)
    except SQLAlchemyError as e:
        logger.error(
            "Audit entry for %s on %s %s was not written: %s",
            entry.action,
            entry.target_id,
            entry.field,
            e,
        )
        return False
    return True
