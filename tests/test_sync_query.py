"""Tests for the record source adapters (meals_db.sync.query)."""

from unittest.mock import MagicMock

import requests
from sqlalchemy.exc import OperationalError

from meals_db.sync.models import ClientPartition, FailureCode, SyncFailure
from meals_db.sync.query import DB_UNAVAILABLE_MESSAGE, SyncQuery


def _query(client_repo, staff_repo, ignore_store, wp_client, batch_size=2):
    return SyncQuery(
        client_repo, staff_repo, ignore_store, wp_client, batch_size=batch_size
    )


def _broken(method: str) -> MagicMock:
    store = MagicMock()
    getattr(store, method).side_effect = OperationalError(
        "SELECT", {}, Exception("Access denied for user 'meals'@'10.0.0.9'")
    )
    return store


class TestGetClients:
    def test_partition_by_link(
        self, client_repo, staff_repo, ignore_store, wp_client, make_client
    ):
        a = make_client(wordpress_user_id=42)
        b = make_client(first_name="Kim", wordpress_user_id=42)
        c = make_client(first_name="Ana")

        result = _query(client_repo, staff_repo, ignore_store, wp_client).get_clients()

        assert isinstance(result, ClientPartition)
        assert [s.id for s in result.linked[42]] == [a, b]
        assert [s.id for s in result.unlinked] == [c]

    def test_snapshot_uses_comparable_columns(
        self, client_repo, staff_repo, ignore_store, wp_client, make_client
    ):
        make_client(address_postal="E1A 1A1", individual_id="123456789")

        result = _query(client_repo, staff_repo, ignore_store, wp_client).get_clients()

        (snapshot,) = result.unlinked
        assert snapshot.email == "a@x.com"
        assert snapshot.phone == "(506)-555-1234"
        assert snapshot.postal_code == "E1A 1A1"
        assert snapshot.individual_id == "123456789"

    def test_failure_hides_driver_text(self, staff_repo, ignore_store, wp_client):
        query = SyncQuery(_broken("iter_batches"), staff_repo, ignore_store, wp_client)

        result = query.get_clients()

        assert isinstance(result, SyncFailure)
        assert result.code == FailureCode.STORE_UNAVAILABLE
        assert result.message == DB_UNAVAILABLE_MESSAGE


class TestOtherReads:
    def test_staff_ids(self, client_repo, staff_repo, ignore_store, wp_client):
        staff_repo.add("Pat", "Kay", wordpress_user_id=5)
        staff_repo.add("Lou", "Ray")

        result = _query(
            client_repo, staff_repo, ignore_store, wp_client
        ).get_staff_wordpress_ids()

        assert result == frozenset({5})

    def test_staff_failure(self, client_repo, ignore_store, wp_client):
        query = SyncQuery(client_repo, _broken("list_wordpress_ids"), ignore_store, wp_client)
        assert query.get_staff_wordpress_ids().code == FailureCode.STORE_UNAVAILABLE

    def test_ignore_rules(self, client_repo, staff_repo, ignore_store, wp_client):
        ignore_store.add("email", "a@x.com", "b@x.com")
        rules = _query(client_repo, staff_repo, ignore_store, wp_client).get_ignore_rules()
        assert [(r.field_name, r.source_value, r.target_value) for r in rules] == [
            ("email", "a@x.com", "b@x.com")
        ]

    def test_ignore_rule_failure(self, client_repo, staff_repo, wp_client):
        query = SyncQuery(client_repo, staff_repo, _broken("list_rules"), wp_client)
        assert query.get_ignore_rules().code == FailureCode.STORE_UNAVAILABLE


class TestGetWpUsers:
    def test_pages_until_short_page(
        self, client_repo, staff_repo, ignore_store, wp_client
    ):
        for wp_id in range(1, 5):
            wp_client.add_user(wp_id, "Sam", f"Lee{wp_id}", postcode="E1A 1A1")

        users = _query(client_repo, staff_repo, ignore_store, wp_client).get_wp_users()

        assert [u.id for u in users] == [1, 2, 3, 4]
        assert users[0].postal_code == "E1A 1A1"
        assert users[0].display_name == "Sam Lee1"

    def test_display_name_falls_back_to_username(
        self, client_repo, staff_repo, ignore_store, wp_client
    ):
        wp_client.add_user(9, username="kiosk")
        (user,) = _query(client_repo, staff_repo, ignore_store, wp_client).get_wp_users()
        assert user.display_name == "kiosk"

    def test_http_error_is_unavailable(
        self, client_repo, staff_repo, ignore_store, wp_client
    ):
        wp_client.errors["list_users"] = requests.HTTPError("401 Unauthorized")

        result = _query(client_repo, staff_repo, ignore_store, wp_client).get_wp_users()

        assert result.code == FailureCode.STORE_UNAVAILABLE
        assert "401" not in result.message

    def test_page_size_capped(self, client_repo, staff_repo, ignore_store):
        wp = MagicMock()
        wp.list_users.return_value = []

        _query(client_repo, staff_repo, ignore_store, wp, batch_size=500).get_wp_users()

        wp.list_users.assert_called_once_with(page=1, per_page=100)
