"""Shared pytest fixtures for meals-db-sync tests."""

from __future__ import annotations

import copy
from typing import Any

import pytest
import requests
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from meals_db.config import Config
from meals_db.crypto import FieldCipher, generate_key_setting
from meals_db.store import (
    AuditLog,
    ClientRepository,
    IgnoreRuleStore,
    StaffRepository,
    install_schema,
)
from meals_db.sync.engine import SyncEngine


class FakeWordPressClient:
    """In-memory stand-in for ``WordPressClient``.

    Users are stored as WooCommerce customer resources. Set an entry in
    ``errors`` (method name to exception) to make that method fail.
    """

    def __init__(self) -> None:
        self.users: dict[int, dict[str, Any]] = {}
        self.errors: dict[str, Exception] = {}
        self.updates: list[tuple[int, dict[str, Any]]] = []

    def add_user(
        self,
        user_id: int,
        first_name: str = "",
        last_name: str = "",
        email: str = "",
        phone: str = "",
        postcode: str = "",
        username: str | None = None,
    ) -> dict[str, Any]:
        self.users[user_id] = {
            "id": user_id,
            "username": username or f"user{user_id}",
            "first_name": first_name,
            "last_name": last_name,
            "email": email,
            "billing": {"phone": phone, "postcode": postcode},
        }
        return self.users[user_id]

    def _maybe_fail(self, method: str) -> None:
        if method in self.errors:
            raise self.errors[method]

    def list_users(self, page: int = 1, per_page: int = 100) -> list[dict[str, Any]]:
        self._maybe_fail("list_users")
        ordered = [self.users[k] for k in sorted(self.users)]
        start = (page - 1) * per_page
        return copy.deepcopy(ordered[start : start + per_page])

    def get_user(self, user_id: int) -> dict[str, Any] | None:
        self._maybe_fail("get_user")
        user = self.users.get(user_id)
        return copy.deepcopy(user) if user is not None else None

    def update_user(self, user_id: int, payload: dict[str, Any]) -> dict[str, Any]:
        self._maybe_fail("update_user")
        if user_id not in self.users:
            raise requests.HTTPError(f"404 Client Error for customer {user_id}")
        self.updates.append((user_id, copy.deepcopy(payload)))
        user = self.users[user_id]
        for key, value in payload.items():
            if isinstance(value, dict):
                user.setdefault(key, {}).update(value)
            else:
                user[key] = value
        return copy.deepcopy(user)

    def validate_connection(self) -> str:
        self._maybe_fail("validate_connection")
        return "sync-bot"


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@pytest.fixture
def aes_key_setting():
    return generate_key_setting()


@pytest.fixture
def mock_config(aes_key_setting):
    """Create a valid Config instance for testing."""
    return Config(
        database_url="sqlite://",
        wordpress_url="https://shop.example.com",
        wordpress_username="testuser",
        wordpress_password="abcd efgh ijkl mnop",
        aes_key=aes_key_setting,
    )


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


@pytest.fixture
def db_engine():
    """In-memory SQLite engine with the Meals DB schema installed."""
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    install_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def cipher(aes_key_setting):
    return FieldCipher.from_setting(aes_key_setting)


@pytest.fixture
def client_repo(db_engine, cipher):
    return ClientRepository(db_engine, cipher)


@pytest.fixture
def staff_repo(db_engine):
    return StaffRepository(db_engine)


@pytest.fixture
def ignore_store(db_engine):
    return IgnoreRuleStore(db_engine)


@pytest.fixture
def audit_log(db_engine):
    return AuditLog(db_engine)


@pytest.fixture
def wp_client():
    return FakeWordPressClient()


@pytest.fixture
def make_client(client_repo):
    """Factory inserting a minimal valid (Staff-type) client.

    Returns the new client id.
    """

    def _make(**overrides: Any) -> int:
        payload = {
            "customer_type": "Staff",
            "first_name": "Sam",
            "last_name": "Lee",
            "client_email": "a@x.com",
            "phone_primary": "(506)-555-1234",
        }
        payload.update(overrides)
        return client_repo.create(payload)

    return _make


@pytest.fixture
def sync_engine(db_engine, cipher, wp_client):
    """SyncEngine wired to the SQLite store and the fake WordPress client."""
    return SyncEngine.build(db_engine, cipher, wp_client, batch_size=2, actor_id=7)
