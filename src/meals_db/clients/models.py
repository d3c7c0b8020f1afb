"""Typed schema for Meals DB client records.

``ClientRecord`` declares every persisted client column; unknown keys are
rejected (``extra="forbid"``). ``CustomerType`` is the closed set of client
variants and ``required_fields()`` gives the fields each variant must fill.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class CustomerType(str, Enum):
    """Client variants served by the meals program."""

    PRIVATE = "Private"
    SDNB = "SDNB"
    VETERAN = "Veteran"
    STAFF = "Staff"


# Stored as ciphertext
ENCRYPTED_FIELDS: tuple[str, ...] = (
    "individual_id",
    "requisition_id",
    "diet_concerns",
    "client_comments",
)

# Carry a <field>_index deterministic hash with a UNIQUE constraint
UNIQUE_FIELDS: tuple[str, ...] = (
    "individual_id",
    "requisition_id",
    "vet_health_card",
    "delivery_initials",
)

BASE_REQUIRED: frozenset[str] = frozenset(
    {
        "customer_type",
        "first_name",
        "last_name",
        "client_email",
        "phone_primary",
    }
)

# Everyone but staff receives deliveries and is billed
DELIVERY_REQUIRED: frozenset[str] = frozenset(
    {
        "address_street_number",
        "address_street_name",
        "address_city",
        "address_province",
        "address_postal",
        "payment_method",
        "required_start_date",
        "rate",
        "delivery_initials",
        "delivery_day",
        "delivery_area_name",
        "delivery_area_zone",
        "ordering_frequency",
        "ordering_contact_method",
        "delivery_frequency",
    }
)

# Funded programs track an open date and authorized units
FUNDED_REQUIRED: frozenset[str] = frozenset({"open_date", "units"})

_REQUIRED_BY_TYPE: dict[CustomerType, frozenset[str]] = {
    CustomerType.STAFF: BASE_REQUIRED,
    CustomerType.PRIVATE: BASE_REQUIRED | DELIVERY_REQUIRED,
    CustomerType.SDNB: BASE_REQUIRED | DELIVERY_REQUIRED | FUNDED_REQUIRED,
    CustomerType.VETERAN: BASE_REQUIRED
    | DELIVERY_REQUIRED
    | FUNDED_REQUIRED
    | {"vet_health_card"},
}


def required_fields(customer_type: CustomerType) -> frozenset[str]:
    """Return the fields a client of *customer_type* must provide."""
    return _REQUIRED_BY_TYPE[customer_type]


class ClientRecord(BaseModel):
    """A client row as accepted from an operator or another system.

    Values are plaintext; encryption and hash indexing happen in the
    repository. Format and per-variant checks live in
    ``meals_db.validators.validate_client``.
    """

    customer_type: CustomerType
    first_name: str
    last_name: str
    client_email: str
    phone_primary: str

    # Identity
    individual_id: str | None = None
    requisition_id: str | None = None
    vet_health_card: str | None = None
    delivery_initials: str | None = None

    # Contact and address
    phone_secondary: str | None = None
    address_street_number: str | None = None
    address_street_name: str | None = None
    address_unit: str | None = None
    address_city: str | None = None
    address_province: str | None = None
    address_postal: str | None = None

    # Program
    payment_method: str | None = None
    rate: str | None = None
    units: int | None = Field(default=None, ge=1, le=31)
    per_sdnb_req: str | None = None
    service_center: str | None = None
    service_zone: str | None = None
    service_course: str | None = None

    # Delivery
    delivery_day: str | None = None
    delivery_area_name: str | None = None
    delivery_area_zone: str | None = None
    ordering_frequency: str | None = None
    ordering_contact_method: str | None = None
    delivery_frequency: str | None = None

    # Free text
    diet_concerns: str | None = None
    client_comments: str | None = None

    # Dates (YYYY-MM-DD)
    birth_date: str | None = None
    open_date: str | None = None
    required_start_date: str | None = None

    wordpress_user_id: int | None = Field(default=None, ge=1)

    model_config = {"frozen": True, "extra": "forbid"}


CLIENT_FIELDS: frozenset[str] = frozenset(ClientRecord.model_fields)
