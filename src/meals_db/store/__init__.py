"""Relational storage for clients, staff, ignore rules and the audit log."""

from .audit import AuditLog, AuditLogEntry
from .clients import ClientRepository
from .database import check_connection, create_db_engine
from .ignored import IgnoreRule, IgnoreRuleStore
from .schema import install_schema
from .staff import StaffRepository

__all__ = [
    "AuditLog",
    "AuditLogEntry",
    "ClientRepository",
    "IgnoreRule",
    "IgnoreRuleStore",
    "StaffRepository",
    "check_connection",
    "create_db_engine",
    "install_schema",
]
