"""Tests for meals_db.sync.mutate.SyncMutate."""

from unittest.mock import patch

import requests
from sqlalchemy.exc import IntegrityError, OperationalError

from meals_db.store.audit import AuditLog
from meals_db.sync.models import FailureCode
from meals_db.sync.mutate import SOURCE_MEALSDB, SOURCE_WORDPRESS, SYNC_ACTION, SyncMutate


def _gateway(client_repo, wp_client, ignore_store, audit_log):
    return SyncMutate(client_repo, wp_client, ignore_store, audit_log)


class TestPushToWordPress:
    def test_writes_value_and_one_audit_entry(
        self, client_repo, wp_client, ignore_store, audit_log
    ):
        wp_client.add_user(42, "Samuel", "Lee", "old@x.com", "(506)-555-1234")
        gateway = _gateway(client_repo, wp_client, ignore_store, audit_log)

        result = gateway.push_to_wordpress(42, "email", "a@x.com", actor=3)

        assert result.success is True
        assert result.audit_logged is True
        assert wp_client.users[42]["email"] == "a@x.com"
        entries = audit_log.recent()
        assert len(entries) == 1
        entry = entries[0]
        assert entry.action == SYNC_ACTION
        assert entry.target_id == 42
        assert entry.field == "email"
        assert entry.old_value == "old@x.com"
        assert entry.new_value == "a@x.com"
        assert entry.source == SOURCE_MEALSDB
        assert entry.actor == 3

    def test_nested_field_sent_as_partial_payload(
        self, client_repo, wp_client, ignore_store, audit_log
    ):
        wp_client.add_user(42, phone="111", postcode="E1A 1A1")
        gateway = _gateway(client_repo, wp_client, ignore_store, audit_log)

        result = gateway.push_to_wordpress(42, "billing_phone", "(506)-555-1234")

        assert result.success is True
        assert wp_client.updates == [(42, {"billing": {"phone": "(506)-555-1234"}})]
        assert wp_client.users[42]["billing"]["postcode"] == "E1A 1A1"
        assert audit_log.recent()[0].field == "phone"

    def test_missing_user(self, client_repo, wp_client, ignore_store, audit_log):
        gateway = _gateway(client_repo, wp_client, ignore_store, audit_log)

        result = gateway.push_to_wordpress(999, "email", "a@x.com")

        assert result.success is False
        assert result.failure.code == FailureCode.USER_NOT_FOUND
        assert audit_log.recent() == []
        assert wp_client.updates == []

    def test_invalid_user_id(self, client_repo, wp_client, ignore_store, audit_log):
        gateway = _gateway(client_repo, wp_client, ignore_store, audit_log)
        result = gateway.push_to_wordpress(0, "email", "a@x.com")
        assert result.failure.code == FailureCode.INVALID_REQUEST

    def test_unsupported_field(self, client_repo, wp_client, ignore_store, audit_log):
        wp_client.add_user(42)
        gateway = _gateway(client_repo, wp_client, ignore_store, audit_log)

        result = gateway.push_to_wordpress(42, "nickname", "x")

        assert result.failure.code == FailureCode.UNSUPPORTED_FIELD
        assert "first_name" in result.failure.message

    def test_lookup_error_is_unavailable(
        self, client_repo, wp_client, ignore_store, audit_log
    ):
        wp_client.errors["get_user"] = requests.ConnectionError("refused at 10.0.0.5")
        gateway = _gateway(client_repo, wp_client, ignore_store, audit_log)

        result = gateway.push_to_wordpress(42, "email", "a@x.com")

        assert result.failure.code == FailureCode.STORE_UNAVAILABLE
        assert "10.0.0.5" not in result.failure.message

    def test_update_error_is_update_failed(
        self, client_repo, wp_client, ignore_store, audit_log
    ):
        wp_client.add_user(42, email="old@x.com")
        wp_client.errors["update_user"] = requests.HTTPError("500 Server Error")
        gateway = _gateway(client_repo, wp_client, ignore_store, audit_log)

        result = gateway.push_to_wordpress(42, "email", "a@x.com")

        assert result.failure.code == FailureCode.UPDATE_FAILED
        assert audit_log.recent() == []

    def test_audit_failure_keeps_the_write(
        self, client_repo, wp_client, ignore_store, audit_log
    ):
        wp_client.add_user(42, email="old@x.com")
        gateway = _gateway(client_repo, wp_client, ignore_store, audit_log)

        with patch.object(
            AuditLog, "append", side_effect=OperationalError("INSERT", {}, Exception("gone"))
        ):
            result = gateway.push_to_wordpress(42, "email", "a@x.com")

        assert result.success is True
        assert result.audit_logged is False
        assert wp_client.users[42]["email"] == "a@x.com"


class TestPushToClient:
    def test_writes_value_and_audit(
        self, client_repo, wp_client, ignore_store, audit_log, make_client
    ):
        client_id = make_client(first_name="Sam")
        gateway = _gateway(client_repo, wp_client, ignore_store, audit_log)

        result = gateway.push_to_client(client_id, "first_name", "Samuel", actor=5)

        assert result.success is True
        assert client_repo.get(client_id)["first_name"] == "Samuel"
        (entry,) = audit_log.recent()
        assert entry.target_id == client_id
        assert entry.old_value == "Sam"
        assert entry.new_value == "Samuel"
        assert entry.source == SOURCE_WORDPRESS

    def test_alias_maps_to_client_column(
        self, client_repo, wp_client, ignore_store, audit_log, make_client
    ):
        client_id = make_client()
        gateway = _gateway(client_repo, wp_client, ignore_store, audit_log)

        result = gateway.push_to_client(client_id, "postcode", "E1A 1A1")

        assert result.success is True
        assert client_repo.get(client_id)["address_postal"] == "E1A 1A1"
        assert audit_log.recent()[0].old_value == ""

    def test_missing_client(self, client_repo, wp_client, ignore_store, audit_log):
        gateway = _gateway(client_repo, wp_client, ignore_store, audit_log)
        result = gateway.push_to_client(404, "first_name", "X")
        assert result.failure.code == FailureCode.CLIENT_NOT_FOUND
        assert audit_log.recent() == []

    def test_connection_loss_is_unavailable(
        self, client_repo, wp_client, ignore_store, audit_log, make_client
    ):
        client_id = make_client()
        gateway = _gateway(client_repo, wp_client, ignore_store, audit_log)

        with patch.object(
            type(client_repo),
            "update_fields",
            side_effect=OperationalError("UPDATE", {}, Exception("lost")),
        ):
            result = gateway.push_to_client(client_id, "first_name", "X")

        assert result.failure.code == FailureCode.STORE_UNAVAILABLE

    def test_rejected_write_is_update_failed(
        self, client_repo, wp_client, ignore_store, audit_log, make_client
    ):
        client_id = make_client()
        gateway = _gateway(client_repo, wp_client, ignore_store, audit_log)

        with patch.object(
            type(client_repo),
            "update_fields",
            side_effect=IntegrityError("UPDATE", {}, Exception("constraint")),
        ):
            result = gateway.push_to_client(client_id, "first_name", "X")

        assert result.failure.code == FailureCode.UPDATE_FAILED
        assert "constraint" not in result.failure.message


class TestSetIgnored:
    def test_add_is_idempotent(self, client_repo, wp_client, ignore_store, audit_log):
        gateway = _gateway(client_repo, wp_client, ignore_store, audit_log)

        first = gateway.set_ignored("first_name", "Sam", "Samuel", True, actor=2)
        second = gateway.set_ignored("first_name", "Sam", "Samuel", True, actor=2)

        assert first.success and first.detail is None
        assert second.success and second.detail == "already ignored"
        rules = ignore_store.list_rules()
        assert len(rules) == 1
        assert rules[0].ignored_by == 2

    def test_remove_absent_rule_succeeds(
        self, client_repo, wp_client, ignore_store, audit_log
    ):
        gateway = _gateway(client_repo, wp_client, ignore_store, audit_log)
        result = gateway.set_ignored("first_name", "Sam", "Samuel", False)
        assert result.success is True
        assert result.detail == "no matching rule"

    def test_add_then_remove(self, client_repo, wp_client, ignore_store, audit_log):
        gateway = _gateway(client_repo, wp_client, ignore_store, audit_log)
        gateway.set_ignored("email", "a@x.com", "b@x.com", True)

        result = gateway.set_ignored("email", "a@x.com", "b@x.com", False)

        assert result.success is True
        assert result.detail is None
        assert ignore_store.list_rules() == []

    def test_alias_stored_under_canonical_name(
        self, client_repo, wp_client, ignore_store, audit_log
    ):
        gateway = _gateway(client_repo, wp_client, ignore_store, audit_log)
        gateway.set_ignored("billing_phone", "1", "2", True)
        assert ignore_store.list_rules()[0].field_name == "phone"

    def test_writes_no_audit_entry(
        self, client_repo, wp_client, ignore_store, audit_log
    ):
        gateway = _gateway(client_repo, wp_client, ignore_store, audit_log)
        gateway.set_ignored("first_name", "Sam", "Samuel", True)
        assert audit_log.recent() == []
