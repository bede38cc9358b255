"""Tests for delivery error classification."""

from glintup.core.errors import (
    PermanentDeliveryError,
    TransientDeliveryError,
    ValidationError,
    classify_status_code,
    is_transient_status,
)
from glintup.core.security import sign_webhook_payload, verify_webhook_signature


class TestClassifyStatusCode:
    """Tests for classify_status_code."""

    def test_rate_limit_is_transient(self):
        error = classify_status_code(429, "slow down", provider="whatsapp")
        assert isinstance(error, TransientDeliveryError)
        assert error.reason == "rate-limited"
        assert error.transient is True

    def test_server_error_is_transient(self):
        error = classify_status_code(503, "unavailable", provider="email")
        assert isinstance(error, TransientDeliveryError)
        assert error.reason == "provider-unavailable"

    def test_client_error_is_permanent(self):
        error = classify_status_code(400, "bad recipient", provider="whatsapp")
        assert isinstance(error, PermanentDeliveryError)
        assert error.reason == "provider-rejected"
        assert error.transient is False

    def test_is_transient_status(self):
        assert is_transient_status(500)
        assert is_transient_status(429)
        assert not is_transient_status(404)

    def test_describe_includes_code(self):
        error = classify_status_code(401, "bad token", provider="whatsapp")
        assert error.describe() == "whatsapp:provider-rejected (401): bad token"


class TestValidationError:
    def test_carries_field(self):
        error = ValidationError("bad time", field="custom_times")
        assert error.field == "custom_times"
        assert str(error) == "bad time"


class TestWebhookSignature:
    def test_valid_signature(self):
        body = b'{"entry": []}'
        signature = sign_webhook_payload("secret", body)
        assert signature.startswith("sha256=")
        assert verify_webhook_signature("secret", body, signature)

    def test_tampered_body(self):
        signature = sign_webhook_payload("secret", b"original")
        assert not verify_webhook_signature("secret", b"tampered", signature)

    def test_missing_signature(self):
        assert not verify_webhook_signature("secret", b"body", None)
