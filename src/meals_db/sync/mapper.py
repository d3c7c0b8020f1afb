"""Field mapping between Meals DB client rows and WordPress accounts.

The comparable fields are declared once, in order. Each entry ties a
canonical field name to the client column that stores it and the path of
the matching attribute in a WooCommerce customer resource:

============  ================  ====================
Field         Client column     WooCommerce path
============  ================  ====================
first_name    first_name        first_name
last_name     last_name         last_name
email         client_email      email
phone         phone_primary     billing.phone
postal_code   address_postal    billing.postcode
============  ================  ====================

Operators may use the canonical name, the client column, or the legacy
WordPress meta key (``billing_phone``, ``user_email``, ...) to refer to a
field; ``FieldMapper.resolve`` accepts all of them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .models import ClientSnapshot, WordPressUser


@dataclass(frozen=True, slots=True)
class ComparableField:
    """One field compared between the two stores.

    Attributes:
        name: Canonical field name used in mismatches and ignore rules.
        label: Human-readable label.
        client_column: Column in ``meals_clients``.
        wp_path: Keys leading to the value in a WooCommerce customer.
        aliases: Other names accepted for this field.
    """

    name: str
    label: str
    client_column: str
    wp_path: tuple[str, ...]
    aliases: tuple[str, ...] = ()


COMPARABLE_FIELDS: tuple[ComparableField, ...] = (
    ComparableField("first_name", "First name", "first_name", ("first_name",)),
    ComparableField("last_name", "Last name", "last_name", ("last_name",)),
    ComparableField(
        "email",
        "Email",
        "client_email",
        ("email",),
        aliases=("client_email", "user_email"),
    ),
    ComparableField(
        "phone",
        "Phone",
        "phone_primary",
        ("billing", "phone"),
        aliases=("phone_primary", "billing_phone"),
    ),
    ComparableField(
        "postal_code",
        "Postal code",
        "address_postal",
        ("billing", "postcode"),
        aliases=("address_postal", "billing_postcode", "postcode"),
    ),
)


def _as_text(value: Any) -> str:
    return "" if value is None else str(value)


def _as_user_id(value: Any) -> int:
    """Coerce a stored link to a non-negative int (0 means unlinked)."""
    try:
        number = int(value or 0)
    except (TypeError, ValueError):
        return 0
    return max(number, 0)


class FieldMapper:
    """Translate comparable fields between client rows and WordPress data.

    Args:
        fields: Ordered comparable fields. Defaults to ``COMPARABLE_FIELDS``.
    """

    def __init__(
        self, fields: tuple[ComparableField, ...] = COMPARABLE_FIELDS
    ) -> None:
        self.fields = fields
        self._lookup: dict[str, ComparableField] = {}
        for field in fields:
            for key in (field.name, *field.aliases):
                self._lookup[key] = field

    @property
    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]

    def resolve(self, name: str) -> ComparableField | None:
        """Find a field by canonical name or alias (case-insensitive)."""
        return self._lookup.get(name.strip().lower())

    def order_of(self, name: str) -> int:
        """Position of a canonical field in the declared order."""
        return self.field_names.index(name)

    # ------------------------------------------------------------------
    # Client side
    # ------------------------------------------------------------------

    def client_snapshot(self, row: dict[str, Any]) -> ClientSnapshot:
        """Build the comparable view of a decoded client row."""
        values = {
            f.name: _as_text(row.get(f.client_column)) for f in self.fields
        }
        return ClientSnapshot(
            id=int(row["id"]),
            individual_id=_as_text(row.get("individual_id")),
            wordpress_user_id=_as_user_id(row.get("wordpress_user_id")),
            **values,
        )

    # ------------------------------------------------------------------
    # WordPress side
    # ------------------------------------------------------------------

    @staticmethod
    def _dig(data: dict[str, Any], path: tuple[str, ...]) -> Any:
        current: Any = data
        for key in path:
            if not isinstance(current, dict):
                return None
            current = current.get(key)
        return current

    def wordpress_user(self, data: dict[str, Any]) -> WordPressUser:
        """Build the comparable view of a WooCommerce customer resource."""
        values = {
            f.name: _as_text(self._dig(data, f.wp_path)) for f in self.fields
        }
        first, last = values["first_name"], values["last_name"]
        display = " ".join(part for part in (first, last) if part)
        return WordPressUser(
            id=int(data["id"]),
            username=_as_text(data.get("username")),
            display_name=display or _as_text(data.get("username")),
            **values,
        )

    @staticmethod
    def wp_payload(field: ComparableField, value: str) -> dict[str, Any]:
        """Build the partial update body that sets *field* to *value*.

        Example: ``phone`` becomes ``{"billing": {"phone": value}}``.
        """
        payload: dict[str, Any] = {field.wp_path[-1]: value}
        for key in reversed(field.wp_path[:-1]):
            payload = {key: payload}
        return payload
