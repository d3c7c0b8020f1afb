"""
Input validation for Meals DB client records.

Provides format checks for postal codes, phone numbers, email addresses
and dates, and ``validate_client`` which collects every problem with a
client payload before anything is written.
"""

from __future__ import annotations

import re
from datetime import date
from typing import TYPE_CHECKING, Any

from .clients.models import (
    CLIENT_FIELDS,
    UNIQUE_FIELDS,
    CustomerType,
    required_fields,
)

if TYPE_CHECKING:
    from .store.clients import ClientRepository

_POSTAL_RE = re.compile(r"^[A-Z]\d[A-Z] ?\d[A-Z]\d$", re.IGNORECASE)
_PHONE_RE = re.compile(r"^\(\d{3}\)-\d{3}-\d{4}$")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

_DATE_FIELDS = ("birth_date", "open_date", "required_start_date")


class ClientValidationError(ValueError):
    """Raised when a client payload fails validation.

    Attributes:
        errors: Every problem found, one message each.
    """

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__("; ".join(errors))


# ---------------------------------------------------------------------------
# Error message formatting helpers
# ---------------------------------------------------------------------------


def format_validation_error(field_name: str, reason: str) -> str:
    """
    Generate consistent error message for validation failures.

    Args:
        field_name: Field key (e.g., "address_postal")
        reason: Description of validation failure (e.g., "is required")

    Returns:
        Formatted error message string
    """
    return f"{field_name} {reason}"


# ---------------------------------------------------------------------------
# Format checks
# ---------------------------------------------------------------------------


def validate_postal_code(value: str) -> tuple[bool, str]:
    """
    Validate a Canadian postal code (``A1A 1A1``, space optional).

    Returns:
        Tuple of (is_valid, error_message).
    """
    if not _POSTAL_RE.match(value.strip()):
        return (
            False,
            format_validation_error(
                "address_postal", "must look like A1A 1A1"
            ),
        )
    return (True, "")


def validate_phone(value: str, field_name: str = "phone_primary") -> tuple[bool, str]:
    """
    Validate a phone number in ``(###)-###-####`` form.

    Returns:
        Tuple of (is_valid, error_message).
    """
    if not _PHONE_RE.match(value.strip()):
        return (
            False,
            format_validation_error(field_name, "must look like (123)-456-7890"),
        )
    return (True, "")


def validate_email(value: str) -> tuple[bool, str]:
    """
    Validate email address syntax.

    Returns:
        Tuple of (is_valid, error_message).
    """
    if not _EMAIL_RE.match(value.strip()):
        return (
            False,
            format_validation_error("client_email", "is not a valid email address"),
        )
    return (True, "")


def validate_date(value: str, field_name: str) -> tuple[bool, str]:
    """
    Validate an ISO ``YYYY-MM-DD`` date.

    Returns:
        Tuple of (is_valid, error_message).
    """
    try:
        date.fromisoformat(value.strip())
    except ValueError:
        return (
            False,
            format_validation_error(field_name, "must be a date (YYYY-MM-DD)"),
        )
    return (True, "")


# ---------------------------------------------------------------------------
# Whole-record validation
# ---------------------------------------------------------------------------


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_client(
    payload: dict[str, Any],
    repository: ClientRepository | None = None,
    exclude_id: int | None = None,
) -> list[str]:
    """
    Collect every problem with a client payload.

    Args:
        payload: Field name to plaintext value.
        repository: When given, unique fields are checked against existing
            clients through their hash index.
        exclude_id: Client id to ignore in uniqueness checks (updates).

    Returns:
        List of error messages; empty when the payload is valid.

    Validation rules:
        - No keys outside the client schema
        - customer_type is one of Private, SDNB, Veteran, Staff
        - Every field required by the customer type is present and non-blank
        - Postal code, phone, email and date formats
        - units between 1 and 31
        - Unique fields not already used by another client
    """
    errors: list[str] = []

    unknown = sorted(set(payload) - CLIENT_FIELDS)
    for key in unknown:
        errors.append(format_validation_error(key, "is not a known client field"))

    raw_type = payload.get("customer_type")
    try:
        customer_type = CustomerType(raw_type)
    except ValueError:
        errors.append(
            format_validation_error(
                "customer_type",
                f"must be one of {[t.value for t in CustomerType]}",
            )
        )
        customer_type = None

    if customer_type is not None:
        for field in sorted(required_fields(customer_type) - {"customer_type"}):
            if _is_blank(payload.get(field)):
                errors.append(format_validation_error(field, "is required"))

    checks: list[tuple[bool, str]] = []
    if not _is_blank(payload.get("address_postal")):
        checks.append(validate_postal_code(payload["address_postal"]))
    for phone_field in ("phone_primary", "phone_secondary"):
        if not _is_blank(payload.get(phone_field)):
            checks.append(validate_phone(payload[phone_field], phone_field))
    if not _is_blank(payload.get("client_email")):
        checks.append(validate_email(payload["client_email"]))
    for date_field in _DATE_FIELDS:
        if not _is_blank(payload.get(date_field)):
            checks.append(validate_date(str(payload[date_field]), date_field))
    errors.extend(msg for ok, msg in checks if not ok)

    units = payload.get("units")
    if not _is_blank(units):
        try:
            units_ok = 1 <= int(units) <= 31
        except (TypeError, ValueError):
            units_ok = False
        if not units_ok:
            errors.append(
                format_validation_error("units", "must be a number between 1 and 31")
            )

    if repository is not None:
        for field in UNIQUE_FIELDS:
            value = payload.get(field)
            if _is_blank(value):
                continue
            existing = repository.find_by_unique(field, str(value))
            if existing is not None and existing != exclude_id:
                errors.append(
                    format_validation_error(field, "is already used by another client")
                )

    return errors
