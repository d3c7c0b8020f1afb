"""Tests for field-level encryption (meals_db.crypto)."""

import base64

import pytest

from meals_db.crypto import (
    IV_SIZE,
    DecryptionError,
    FieldCipher,
    deterministic_hash,
    generate_key_setting,
    load_key,
)


class TestLoadKey:
    def test_generated_setting_loads(self):
        key = load_key(generate_key_setting())
        assert len(key) == 32

    @pytest.mark.parametrize(
        "setting, message",
        [
            ("", "must start with 'base64:'"),
            ("a2V5", "must start with 'base64:'"),
            ("base64:not base64!", "not valid base64"),
            ("base64:" + base64.b64encode(b"short").decode(), "expected 32 bytes"),
        ],
    )
    def test_invalid_settings(self, setting, message):
        with pytest.raises(ValueError, match=message):
            load_key(setting)


class TestFieldCipher:
    def test_round_trip_unicode(self, cipher):
        assert cipher.decrypt(cipher.encrypt("Zoë, allergic to peanuts")) == (
            "Zoë, allergic to peanuts"
        )

    def test_random_iv_per_value(self, cipher):
        a = cipher.encrypt("123456789")
        b = cipher.encrypt("123456789")
        assert a != b
        assert base64.b64decode(a)[:IV_SIZE] != base64.b64decode(b)[:IV_SIZE]

    def test_payload_layout(self, cipher):
        data = base64.b64decode(cipher.encrypt("x" * 16))
        # 16 bytes of plaintext pad to two blocks
        assert len(data) == IV_SIZE + 32

    def test_wrong_key_fails(self, cipher):
        payload = cipher.encrypt("secret value")
        other = FieldCipher.from_setting(generate_key_setting())
        with pytest.raises(DecryptionError):
            other.decrypt(payload)

    @pytest.mark.parametrize(
        "payload",
        ["not base64!", base64.b64encode(b"tooshort").decode(), base64.b64encode(b"x" * 20).decode()],
    )
    def test_malformed_payload(self, cipher, payload):
        with pytest.raises(DecryptionError, match="Invalid encrypted payload"):
            cipher.decrypt(payload)

    def test_rejects_short_key(self):
        with pytest.raises(ValueError):
            FieldCipher(b"0" * 16)


class TestDeterministicHash:
    def test_ignores_case_and_whitespace(self):
        assert deterministic_hash(" AbC ") == deterministic_hash("abc")

    def test_is_hex_sha256(self):
        digest = deterministic_hash("abc")
        assert len(digest) == 64
        int(digest, 16)
