"""Two-way reconciliation between the Meals DB and WordPress.

Public API for detecting divergence between Meals DB client records and
the WordPress/WooCommerce accounts they are linked to, and for resolving
it one field at a time.

Architecture
------------
The two stores are independent and both authoritative. A link
(``meals_clients.wordpress_user_id``) makes a client and a WordPress user
comparable. Every pass is a fresh read: nothing is cached and there is no
persisted "resolved" marker. Operator decisions survive only as ignore
rules, keyed by the exact values they were made against.

Modules:

- ``engine``   -- ``SyncEngine``: the facade every caller uses.
- ``query``    -- ``SyncQuery``: fail-closed readers for both stores.
- ``compare``  -- mismatch detection, ignore filtering, link candidates.
- ``mutate``   -- ``SyncMutate``: audited single-field writes, ignore rules.
- ``linker``   -- ``Linker``: client to WordPress user links.
- ``mapper``   -- ``FieldMapper``: the comparable field table.
- ``models``   -- pydantic data contracts.
- ``resolver`` -- resolution strategies (ignore, accept, sync).
- ``reporter`` -- human-readable and JSON report formatting.

Usage example
-------------
::

    from meals_db.sync import SyncEngine, format_mismatch_report

    engine = SyncEngine.build(db_engine, cipher, wp_client)

    report = engine.reconcile()
    if isinstance(report, SyncFailure):
        print(report.message)
    else:
        print(format_mismatch_report(report))

    engine.resolve(report.mismatches[0], "sync")
"""

from .compare import detect, detect_mismatches, filter_ignored, find_probable_matches
from .engine import SyncEngine
from .linker import Linker
from .mapper import COMPARABLE_FIELDS, FieldMapper
from .models import (
    FailureCode,
    LinkCandidate,
    Mismatch,
    OperationResult,
    ReconciliationReport,
    ResolutionReport,
    SyncFailure,
)
from .mutate import SyncMutate
from .query import SyncQuery
from .reporter import format_mismatch_report, format_resolution_report, report_to_json

__all__ = [
    "COMPARABLE_FIELDS",
    "FailureCode",
    "FieldMapper",
    "LinkCandidate",
    "Linker",
    "Mismatch",
    "OperationResult",
    "ReconciliationReport",
    "ResolutionReport",
    "SyncEngine",
    "SyncFailure",
    "SyncMutate",
    "SyncQuery",
    "detect",
    "detect_mismatches",
    "filter_ignored",
    "find_probable_matches",
    "format_mismatch_report",
    "format_resolution_report",
    "report_to_json",
]
