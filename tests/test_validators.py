"""Tests for client payload validation."""

import pytest

from meals_db.clients import CustomerType, required_fields
from meals_db.validators import (
    validate_client,
    validate_date,
    validate_email,
    validate_phone,
    validate_postal_code,
)


def _private_payload(**overrides):
    payload = {
        "customer_type": "Private",
        "first_name": "Sam",
        "last_name": "Lee",
        "client_email": "a@x.com",
        "phone_primary": "(506)-555-1234",
        "address_street_number": "12",
        "address_street_name": "Main St",
        "address_city": "Moncton",
        "address_province": "NB",
        "address_postal": "E1A 1A1",
        "payment_method": "Cheque",
        "required_start_date": "2026-02-01",
        "rate": "10.50",
        "delivery_initials": "SL",
        "delivery_day": "Monday",
        "delivery_area_name": "North",
        "delivery_area_zone": "N1",
        "ordering_frequency": "Weekly",
        "ordering_contact_method": "Phone",
        "delivery_frequency": "Weekly",
    }
    payload.update(overrides)
    return payload


class TestFormatChecks:
    @pytest.mark.parametrize("value", ["E1A 1A1", "e1a1a1", " E1A1A1 "])
    def test_valid_postal_codes(self, value):
        assert validate_postal_code(value) == (True, "")

    @pytest.mark.parametrize("value", ["12345", "E1A-1A1", "EEA 1A1"])
    def test_invalid_postal_codes(self, value):
        ok, msg = validate_postal_code(value)
        assert not ok
        assert msg.startswith("address_postal")

    def test_phone(self):
        assert validate_phone("(506)-555-1234")[0]
        ok, msg = validate_phone("506-555-1234", "phone_secondary")
        assert not ok
        assert msg.startswith("phone_secondary")

    def test_email(self):
        assert validate_email("a@x.com")[0]
        assert not validate_email("a@x")[0]
        assert not validate_email("a b@x.com")[0]

    def test_date(self):
        assert validate_date("2026-02-28", "open_date")[0]
        assert not validate_date("2026-02-30", "open_date")[0]
        assert not validate_date("02/01/2026", "open_date")[0]


class TestRequiredFields:
    def test_staff_needs_only_base_fields(self):
        assert required_fields(CustomerType.STAFF) == {
            "customer_type",
            "first_name",
            "last_name",
            "client_email",
            "phone_primary",
        }

    def test_variants_nest(self):
        private = required_fields(CustomerType.PRIVATE)
        sdnb = required_fields(CustomerType.SDNB)
        veteran = required_fields(CustomerType.VETERAN)
        assert private < sdnb < veteran
        assert {"open_date", "units"} <= sdnb
        assert "vet_health_card" in veteran


class TestValidateClient:
    def test_valid_private_client(self):
        assert validate_client(_private_payload()) == []

    def test_collects_every_problem(self):
        errors = validate_client(
            _private_payload(
                address_postal="nope",
                client_email="bad",
                delivery_day="",
                nickname="S",
            )
        )
        assert "nickname is not a known client field" in errors
        assert "delivery_day is required" in errors
        assert "address_postal must look like A1A 1A1" in errors
        assert "client_email is not a valid email address" in errors

    def test_unknown_customer_type(self):
        errors = validate_client(_private_payload(customer_type="VIP"))
        assert any(e.startswith("customer_type must be one of") for e in errors)

    def test_sdnb_requires_funding_fields(self):
        errors = validate_client(_private_payload(customer_type="SDNB"))
        assert "open_date is required" in errors
        assert "units is required" in errors

    @pytest.mark.parametrize("units", [0, 32, "many"])
    def test_units_range(self, units):
        errors = validate_client(
            _private_payload(customer_type="SDNB", open_date="2026-01-01", units=units)
        )
        assert errors == ["units must be a number between 1 and 31"]
