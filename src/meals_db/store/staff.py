"""Staff members and the WordPress accounts they use."""

from __future__ import annotations

import logging

from sqlalchemy import Engine, insert, select

from .schema import staff

logger = logging.getLogger(__name__)


class StaffRepository:
    """Access to ``meals_staff``."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def list_wordpress_ids(self) -> frozenset[int]:
        """WordPress user ids that belong to staff members."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(staff.c.wordpress_user_id).where(
                    staff.c.wordpress_user_id > 0
                )
            ).all()
        return frozenset(int(r.wordpress_user_id) for r in rows)

    def add(
        self,
        first_name: str,
        last_name: str,
        email: str | None = None,
        phone: str | None = None,
        wordpress_user_id: int | None = None,
    ) -> int:
        """Insert a staff member and return its id."""
        with self.engine.begin() as conn:
            result = conn.execute(
                insert(staff).values(
                    first_name=first_name,
                    last_name=last_name,
                    email=email,
                    phone=phone,
                    wordpress_user_id=wordpress_user_id,
                )
            )
        return result.inserted_primary_key[0]
