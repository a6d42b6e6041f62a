"""
Tests du service HMAC (signature des webhooks sortants).
"""

import hashlib
import hmac
import json

import pytest

from formrelay.services.hmac_service import (
    HMACService,
    canonical_json,
    sign_payload,
    verify_signature,
)

SECRET = "test_integration_secret_for_hmac"


@pytest.fixture
def payload():
    return {
        "sheetName": "Leads",
        "applicationId": "app_1",
        "formId": "form_contact",
        "hostname": "www.example.com",
        "path": "/blog/my-post",
        "createdAt": "2024-01-15T10:30:00.000Z",
        "payload": {"email": "jean@example.com", "message": "Crème brûlée"},
    }


class TestCanonicalJson:
    """Sérialisation identique à JSON.stringify."""

    def test_compact_and_ordered(self):
        assert canonical_json({"b": 1, "a": [1, 2]}) == '{"b":1,"a":[1,2]}'

    def test_non_ascii_kept(self):
        assert canonical_json({"m": "é"}) == '{"m":"é"}'

    def test_integral_floats_written_as_integers(self):
        parsed = json.loads('{"n":1.0,"m":1e3,"nested":[2.0,{"k":-0.0}]}')

        assert canonical_json(parsed) == '{"n":1,"m":1000,"nested":[2,{"k":0}]}'

    def test_fractional_floats_unchanged(self):
        assert canonical_json({"price": 19.99}) == '{"price":19.99}'

    def test_booleans_unchanged(self):
        assert canonical_json({"ok": True}) == '{"ok":true}'

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_numbers_rejected(self, value):
        with pytest.raises(ValueError):
            canonical_json({"n": value})


class TestHMACService:
    """Tests du service HMAC."""

    def test_signature_generation(self):
        """Les signatures sont des hex SHA256."""
        signature = HMACService().sign(SECRET, "test_data")

        assert len(signature) == 64
        assert signature == hmac.new(
            SECRET.encode(), b"test_data", hashlib.sha256
        ).hexdigest()

    def test_sign_payload_prefix(self, payload):
        signature = sign_payload(SECRET, payload)

        assert signature.startswith("sha256=")
        assert len(signature) == len("sha256=") + 64

    def test_different_secrets_differ(self, payload):
        assert sign_payload(SECRET, payload) != sign_payload("other_secret", payload)

    def test_attach_signature_is_last_field(self, payload):
        signed = HMACService().attach_signature(SECRET, payload)

        assert list(signed)[-1] == "signature"
        assert "signature" not in payload

    def test_verify_signed_body(self, payload):
        signed = HMACService().attach_signature(SECRET, payload)

        assert verify_signature(SECRET, signed) is True

    def test_verify_after_wire_round_trip(self, payload):
        """Le destinataire parse le body reçu puis vérifie."""
        signed = HMACService().attach_signature(SECRET, payload)
        received = json.loads(canonical_json(signed).encode("utf-8"))

        assert verify_signature(SECRET, received) is True

    @pytest.mark.security
    def test_mutated_byte_fails(self, payload):
        signed = HMACService().attach_signature(SECRET, payload)
        body = canonical_json(signed)
        tampered = json.loads(body.replace("/blog/my-post", "/blog/my-posT"))

        assert verify_signature(SECRET, tampered) is False

    @pytest.mark.security
    def test_wrong_secret_fails(self, payload):
        signed = HMACService().attach_signature(SECRET, payload)

        assert verify_signature("wrong_secret", signed) is False

    @pytest.mark.security
    def test_missing_signature_fails(self, payload):
        assert verify_signature(SECRET, payload) is False
        assert HMACService().verify_payload(SECRET, payload, "") is False
