"""Repository for Meals DB client records.

Handles the storage-side concerns of client rows: encrypting sensitive
columns, maintaining the deterministic hash index of unique columns, and
reading rows back in batches. Database errors propagate as
``SQLAlchemyError``; callers at the subsystem edge turn them into failures.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Any

from sqlalchemy import Engine, delete, func, insert, select, update

from ..clients.models import (
    CLIENT_FIELDS,
    ENCRYPTED_FIELDS,
    UNIQUE_FIELDS,
    ClientRecord,
)
from ..crypto import DecryptionError, FieldCipher, deterministic_hash
from ..validators import ClientValidationError, validate_client
from .schema import clients

logger = logging.getLogger(__name__)

_INDEX_COLUMNS = frozenset(f"{f}_index" for f in UNIQUE_FIELDS)


class ClientRepository:
    """Read and write client rows.

    Args:
        engine: SQLAlchemy engine for the Meals DB database.
        cipher: Cipher for the encrypted columns.
    """

    def __init__(self, engine: Engine, cipher: FieldCipher) -> None:
        self.engine = engine
        self.cipher = cipher

    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------

    def _encode(self, values: dict[str, Any]) -> dict[str, Any]:
        """Turn plaintext values into column values (ciphertext + hashes)."""
        row = dict(values)
        for field in UNIQUE_FIELDS:
            if field not in values:
                continue
            plain = values[field]
            if plain is None or not str(plain).strip():
                row[f"{field}_index"] = None
            else:
                row[f"{field}_index"] = deterministic_hash(str(plain))
        for field in ENCRYPTED_FIELDS:
            plain = values.get(field)
            if plain:
                row[field] = self.cipher.encrypt(str(plain))
        return row

    def decode(self, row: Any) -> dict[str, Any]:
        """Turn a result row into plaintext values.

        A value that cannot be decrypted is logged and read as ``""``; the
        rest of the row is still returned.
        """
        data = {
            k: v for k, v in row._mapping.items() if k not in _INDEX_COLUMNS
        }
        for field in ENCRYPTED_FIELDS:
            stored = data.get(field)
            if not stored:
                continue
            try:
                data[field] = self.cipher.decrypt(stored)
            except DecryptionError as e:
                logger.warning(
                    "Could not decrypt %s for client %s: %s",
                    field,
                    data.get("id"),
                    e,
                )
                data[field] = ""
        return data

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, client_id: int) -> dict[str, Any] | None:
        """Return the decoded client, or None if no such client exists."""
        with self.engine.connect() as conn:
            row = conn.execute(
                select(clients).where(clients.c.id == client_id)
            ).first()
        return self.decode(row) if row is not None else None

    def get_field(self, client_id: int, field: str) -> str | None:
        """Return one decoded field as text, or None if the client is missing.

        Raises:
            ValueError: If *field* is not a client field.
        """
        if field not in CLIENT_FIELDS:
            raise ValueError(f"Unknown client field: {field}")
        row = self.get(client_id)
        if row is None:
            return None
        value = row.get(field)
        return "" if value is None else str(value)

    def exists(self, client_id: int) -> bool:
        with self.engine.connect() as conn:
            found = conn.execute(
                select(clients.c.id).where(clients.c.id == client_id)
            ).first()
        return found is not None

    def iter_batches(self, batch_size: int = 500) -> Iterator[list[dict[str, Any]]]:
        """Yield decoded clients in id order, *batch_size* rows at a time.

        Uses keyset pagination, so rows inserted mid-iteration with a lower
        id are not revisited. Stops after the first short batch.
        """
        last_id = 0
        while True:
            with self.engine.connect() as conn:
                rows = conn.execute(
                    select(clients)
                    .where(clients.c.id > last_id)
                    .order_by(clients.c.id)
                    .limit(batch_size)
                ).all()
            if not rows:
                return
            batch = [self.decode(r) for r in rows]
            yield batch
            if len(rows) < batch_size:
                return
            last_id = batch[-1]["id"]

    def find_by_unique(self, field: str, value: str) -> int | None:
        """Find the client holding *value* in a unique field via its hash.

        Raises:
            ValueError: If *field* is not a unique field.
        """
        if field not in UNIQUE_FIELDS:
            raise ValueError(f"{field} is not a unique client field")
        column = clients.c[f"{field}_index"]
        with self.engine.connect() as conn:
            found = conn.execute(
                select(clients.c.id).where(column == deterministic_hash(value))
            ).first()
        return found.id if found is not None else None

    def find_linked_to_user(self, wp_user_id: int) -> list[int]:
        """Ids of every client linked to *wp_user_id*."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(clients.c.id)
                .where(clients.c.wordpress_user_id == wp_user_id)
                .order_by(clients.c.id)
            ).all()
        return [r.id for r in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, payload: dict[str, Any]) -> int:
        """Validate and insert a new client.

        Raises:
            ClientValidationError: If the payload fails any check.

        Returns:
            The new client id.
        """
        errors = validate_client(payload, self)
        if errors:
            raise ClientValidationError(errors)

        record = ClientRecord.model_validate(payload)
        row = self._encode(record.model_dump(mode="json", exclude_none=True))
        with self.engine.begin() as conn:
            result = conn.execute(insert(clients).values(**row))
        client_id = result.inserted_primary_key[0]
        logger.info(
            "Created %s client %s", record.customer_type.value, client_id
        )
        return client_id

    def update_fields(self, client_id: int, values: dict[str, Any]) -> int:
        """Overwrite the given plaintext fields of one client.

        Encrypted columns are re-encrypted and hash indexes recomputed.

        Raises:
            ValueError: If a key is not a client field.

        Returns:
            Number of rows matched (0 when the client does not exist).
        """
        unknown = sorted(set(values) - CLIENT_FIELDS)
        if unknown:
            raise ValueError(f"Unknown client fields: {unknown}")
        row = self._encode(values)
        with self.engine.begin() as conn:
            result = conn.execute(
                update(clients)
                .where(clients.c.id == client_id)
                .values(**row, updated_at=func.now())
            )
        return result.rowcount

    def set_link(self, client_id: int, wp_user_id: int | None) -> int:
        """Point a client at a WordPress user (or clear the link)."""
        return self.update_fields(client_id, {"wordpress_user_id": wp_user_id})

    def set_active(self, client_id: int, active: bool) -> int:
        """Activate or deactivate a client."""
        with self.engine.begin() as conn:
            result = conn.execute(
                update(clients)
                .where(clients.c.id == client_id)
                .values(
                    status="active" if active else "inactive",
                    updated_at=func.now(),
                )
            )
        return result.rowcount

    def delete(self, client_id: int) -> int:
        """Permanently delete a client."""
        with self.engine.begin() as conn:
            result = conn.execute(delete(clients).where(clients.c.id == client_id))
        if result.rowcount:
            logger.info("Deleted client %s", client_id)
        return result.rowcount
