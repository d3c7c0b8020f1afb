"""Pydantic models for the reconciliation subsystem.

Defines the data contracts shared by the adapters, detector, gateway and
facade:

- ``FailureCode`` / ``SyncFailure``: typed failure values returned (never
  raised) across the subsystem boundary.
- ``OperationResult``: outcome of a single mutation.
- ``ClientSnapshot`` / ``WordPressUser``: normalized views of each side.
- ``Mismatch``: one divergent field of one linked pair.
- ``IgnoreRule``, ``AuditLogEntry``: persisted records, defined next to
  their tables in ``meals_db.store`` and re-exported here.
- ``DetectionResult`` / ``ReconciliationReport``: output of a full pass.
- ``LinkCandidate``, ``ResolutionReport``: link suggestions and bulk
  resolution outcomes.

All models are frozen (immutable).
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel

from ..store.audit import AuditLogEntry  # noqa: F401
from ..store.ignored import IgnoreRule  # noqa: F401


class FailureCode(str, Enum):
    """Why an operation did not happen."""

    STORE_UNAVAILABLE = "store_unavailable"
    CLIENT_NOT_FOUND = "client_not_found"
    USER_NOT_FOUND = "user_not_found"
    INVALID_REQUEST = "invalid_request"
    UNSUPPORTED_FIELD = "unsupported_field"
    ALREADY_LINKED = "already_linked"
    UPDATE_FAILED = "update_failed"


class SyncFailure(BaseModel):
    """Operator-safe description of a failed read or write.

    Attributes:
        code: Failure category.
        message: Human-readable message. Never contains driver or HTTP
            error text; those go to the operational log only.
    """

    code: FailureCode
    message: str

    model_config = {"frozen": True}


class OperationResult(BaseModel):
    """Outcome of one mutation.

    Attributes:
        success: Whether the mutation was applied (or was a no-op).
        failure: Failure details when ``success`` is False.
        audit_logged: False when the mutation succeeded but its audit entry
            could not be written.
        detail: Optional note for the operator (e.g. "already linked").
    """

    success: bool
    failure: SyncFailure | None = None
    audit_logged: bool = True
    detail: str | None = None

    model_config = {"frozen": True}

    @classmethod
    def ok(
        cls, *, audit_logged: bool = True, detail: str | None = None
    ) -> OperationResult:
        return cls(success=True, audit_logged=audit_logged, detail=detail)

    @classmethod
    def fail(cls, code: FailureCode, message: str) -> OperationResult:
        return cls(
            success=False, failure=SyncFailure(code=code, message=message)
        )

    @classmethod
    def from_failure(cls, failure: SyncFailure) -> OperationResult:
        return cls(success=False, failure=failure)


# ---------------------------------------------------------------------------
# Record snapshots
# ---------------------------------------------------------------------------


class ClientSnapshot(BaseModel):
    """The comparable view of one Meals DB client row.

    Values are strings, never ``None``; an absent value is ``""``.
    """

    id: int
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    postal_code: str = ""
    individual_id: str = ""
    wordpress_user_id: int = 0

    model_config = {"frozen": True}

    @property
    def is_linked(self) -> bool:
        return self.wordpress_user_id > 0


class WordPressUser(BaseModel):
    """The comparable view of one WordPress/WooCommerce account."""

    id: int
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    postal_code: str = ""
    username: str = ""
    display_name: str = ""

    model_config = {"frozen": True}


class ClientPartition(BaseModel):
    """Clients split by whether they carry a WordPress link.

    Attributes:
        linked: WordPress user id to the clients linked to it.
        unlinked: Clients without a link.
    """

    linked: dict[int, list[ClientSnapshot]] = {}
    unlinked: list[ClientSnapshot] = []

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Divergence and decisions
# ---------------------------------------------------------------------------


class Mismatch(BaseModel):
    """One field that differs between a client and its linked user.

    ``value_from_client`` and ``value_from_wp`` are the raw stored values,
    not the trimmed values used for comparison.
    """

    client_id: int
    wp_user_id: int
    field_name: str
    value_from_client: str
    value_from_wp: str

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Pass results
# ---------------------------------------------------------------------------


class DetectionResult(BaseModel):
    """Everything a detection pass learns about the two stores.

    Attributes:
        mismatches: Field-level differences of linked pairs, ordered by
            client id then declared field order.
        unlinked_clients: Clients without a WordPress link.
        orphaned_links: Clients linked to a WordPress id that no longer exists.
        unmatched_users: Non-staff WordPress users no client links to.
    """

    mismatches: list[Mismatch] = []
    unlinked_clients: list[ClientSnapshot] = []
    orphaned_links: list[ClientSnapshot] = []
    unmatched_users: list[WordPressUser] = []

    model_config = {"frozen": True}


class ReconciliationReport(BaseModel):
    """Aggregate report for a full reconciliation pass."""

    mismatches: list[Mismatch] = []
    unlinked_clients: list[ClientSnapshot] = []
    orphaned_links: list[ClientSnapshot] = []
    unmatched_users: list[WordPressUser] = []
    ignored_count: int = 0
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    @property
    def pairs_with_mismatches(self) -> list[tuple[int, int]]:
        """Distinct (client_id, wp_user_id) pairs, in mismatch order."""
        seen: dict[tuple[int, int], None] = {}
        for m in self.mismatches:
            seen.setdefault((m.client_id, m.wp_user_id), None)
        return list(seen)

    def summary(self) -> str:
        """Format a human-readable summary of the pass.

        Returns:
            Multi-line summary string with counts by category.
        """
        lines = [
            "Reconciliation report",
            f"  Mismatched fields: {len(self.mismatches)}",
            f"  Pairs affected:    {len(self.pairs_with_mismatches)}",
            f"  Ignored:           {self.ignored_count}",
            f"  Unlinked clients:  {len(self.unlinked_clients)}",
            f"  Orphaned links:    {len(self.orphaned_links)}",
            f"  Unmatched users:   {len(self.unmatched_users)}",
        ]
        return "\n".join(lines)


class LinkCandidate(BaseModel):
    """A WordPress user that probably belongs to an unlinked client."""

    wp_user_id: int
    score: int
    display_name: str = ""
    email: str = ""
    phone: str = ""

    model_config = {"frozen": True}


class FieldResolution(BaseModel):
    """Outcome of resolving one field of a pair."""

    field_name: str
    result: OperationResult

    model_config = {"frozen": True}


class ResolutionReport(BaseModel):
    """Outcome of applying one strategy to every mismatch of a pair."""

    client_id: int
    wp_user_id: int
    strategy: str
    results: list[FieldResolution] = []

    model_config = {"frozen": True}

    @property
    def resolved(self) -> list[FieldResolution]:
        return [r for r in self.results if r.result.success]

    @property
    def failed(self) -> list[FieldResolution]:
        return [r for r in self.results if not r.result.success]
