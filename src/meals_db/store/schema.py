"""Table definitions for the Meals DB relational store.

The tables mirror the schema the WordPress plugin installs, so the
service can run against an existing Meals DB database:

- ``meals_clients``: client records. Sensitive columns hold ciphertext;
  unique columns carry a ``<field>_index`` deterministic hash.
- ``meals_staff``: staff members, optionally linked to a WordPress user.
- ``meals_ignored_conflicts``: ignore rules keyed by their value triple.
- ``meals_audit_log``: append-only audit trail.
"""

from __future__ import annotations

import logging

from sqlalchemy import (
    Column,
    DateTime,
    Engine,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    func,
)

logger = logging.getLogger(__name__)

metadata = MetaData()

HASH_LENGTH = 64


def _hash_column(name: str) -> Column:
    return Column(f"{name}_index", String(HASH_LENGTH), unique=True, nullable=True)


clients = Table(
    "meals_clients",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    # Identity (encrypted and/or hash-indexed)
    Column("individual_id", Text),
    _hash_column("individual_id"),
    Column("requisition_id", Text),
    _hash_column("requisition_id"),
    Column("vet_health_card", String(50)),
    _hash_column("vet_health_card"),
    Column("delivery_initials", String(10)),
    _hash_column("delivery_initials"),
    # Comparable with WordPress
    Column("first_name", String(100), nullable=False, server_default=""),
    Column("last_name", String(100), nullable=False, server_default=""),
    Column("client_email", String(255), nullable=False, server_default=""),
    Column("phone_primary", String(20), nullable=False, server_default=""),
    Column("address_postal", String(10), nullable=False, server_default=""),
    # Profile
    Column("customer_type", String(20), nullable=False),
    Column("phone_secondary", String(20)),
    Column("address_street_number", String(20)),
    Column("address_street_name", String(255)),
    Column("address_unit", String(20)),
    Column("address_city", String(100)),
    Column("address_province", String(2)),
    Column("payment_method", String(50)),
    Column("rate", String(20)),
    Column("units", Integer),
    Column("per_sdnb_req", String(50)),
    Column("service_center", String(100)),
    Column("service_zone", String(50)),
    Column("service_course", String(50)),
    # Delivery
    Column("delivery_day", String(20)),
    Column("delivery_area_name", String(100)),
    Column("delivery_area_zone", String(50)),
    Column("ordering_frequency", String(50)),
    Column("ordering_contact_method", String(50)),
    Column("delivery_frequency", String(50)),
    # Free text (encrypted)
    Column("diet_concerns", Text),
    Column("client_comments", Text),
    # Dates
    Column("birth_date", String(10)),
    Column("open_date", String(10)),
    Column("required_start_date", String(10)),
    # Link and lifecycle
    Column("wordpress_user_id", Integer, nullable=True, index=True),
    Column("status", String(20), nullable=False, server_default="active"),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
    Column("updated_at", DateTime, nullable=False, server_default=func.now()),
)

staff = Table(
    "meals_staff",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("first_name", String(100), nullable=False),
    Column("last_name", String(100), nullable=False),
    Column("email", String(255)),
    Column("phone", String(20)),
    Column("wordpress_user_id", Integer, nullable=True, index=True),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

ignored_conflicts = Table(
    "meals_ignored_conflicts",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("field_name", String(50), nullable=False),
    Column("source_value", Text, nullable=False),
    Column("target_value", Text, nullable=False),
    # SHA-256 of the value triple; the UNIQUE constraint makes inserts idempotent
    Column("rule_hash", String(HASH_LENGTH), nullable=False, unique=True),
    Column("ignored_by", Integer, nullable=False, server_default="0"),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

audit_log = Table(
    "meals_audit_log",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False, server_default="0"),
    Column("action", String(50), nullable=False),
    Column("target_id", Integer, nullable=False),
    Column("field_changed", String(50)),
    Column("old_value", Text),
    Column("new_value", Text),
    Column("source", String(20), nullable=False),
    Column("created_at", DateTime, nullable=False, server_default=func.now(), index=True),
)


def install_schema(engine: Engine) -> None:
    """Create any missing tables. Existing tables are left untouched."""
    metadata.create_all(engine)
    logger.info("Meals DB schema installed (%d tables)", len(metadata.tables))
