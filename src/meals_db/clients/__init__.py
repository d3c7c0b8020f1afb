"""Client record schema: customer types, required fields and sensitive columns."""

from .models import (
    CLIENT_FIELDS,
    ENCRYPTED_FIELDS,
    UNIQUE_FIELDS,
    ClientRecord,
    CustomerType,
    required_fields,
)

__all__ = [
    "CLIENT_FIELDS",
    "ENCRYPTED_FIELDS",
    "UNIQUE_FIELDS",
    "ClientRecord",
    "CustomerType",
    "required_fields",
]
