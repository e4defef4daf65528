"""
Tests for exception classes.

Covers attributes, messages and the hierarchy.
"""

from uuid import uuid4

import pytest

from app.exceptions import (
    AccountNotFoundError,
    AuthenticationError,
    ConfigurationMissingError,
    DataIntegrityError,
    EntitlementError,
    InvalidRequestError,
    LLMProviderError,
    LLMTimeoutError,
    PaymentProviderError,
    PaymentVerificationError,
    PersonaNotFoundError,
    QuotaExceededError,
    SubscriptionStateError,
    WriteVerificationError,
)


class TestHierarchy:
    @pytest.mark.parametrize(
        "exc",
        [
            AccountNotFoundError("a@example.com"),
            PersonaNotFoundError(uuid4()),
            InvalidRequestError("bad"),
            QuotaExceededError(uuid4(), 1, 1),
            SubscriptionStateError(uuid4(), "nope"),
            WriteVerificationError("gone"),
            DataIntegrityError("mismatch"),
            ConfigurationMissingError("LLM service"),
            PaymentProviderError("down"),
            PaymentVerificationError("forged"),
            LLMProviderError("down"),
            LLMTimeoutError(45),
            AuthenticationError("expired"),
        ],
    )
    def test_all_are_entitlement_errors(self, exc):
        assert isinstance(exc, EntitlementError)

    def test_timeout_is_provider_error(self):
        assert issubclass(LLMTimeoutError, LLMProviderError)


class TestMessages:
    def test_account_not_found(self):
        exc = AccountNotFoundError("ghost@example.com")
        assert exc.identifier == "ghost@example.com"
        assert "ghost@example.com" in str(exc)

    def test_quota_exceeded(self):
        account_id = uuid4()
        exc = QuotaExceededError(account_id, 5_200, 5_000)
        assert exc.account_id == account_id
        assert exc.monthly_usage == 5_200
        assert exc.monthly_credits == 5_000
        assert "5200" in str(exc)

    def test_configuration_missing(self):
        assert str(ConfigurationMissingError("Payment service")) == (
            "Payment service is not configured"
        )

    def test_llm_timeout(self):
        exc = LLMTimeoutError(45.0)
        assert exc.timeout_seconds == 45.0
        assert "45s" in str(exc)


class TestPaymentProviderError:
    def test_already_cancelled_detection(self):
        exc = PaymentProviderError(
            "x", code="BAD_REQUEST_ERROR", description="Subscription is already Cancelled"
        )
        assert exc.is_already_cancelled is True

    def test_other_bad_request_is_not_cancelled(self):
        exc = PaymentProviderError("x", code="BAD_REQUEST_ERROR", description="invalid plan")
        assert exc.is_already_cancelled is False

    def test_server_error_is_not_cancelled(self):
        exc = PaymentProviderError(
            "x", code="SERVER_ERROR", description="cancelled by gateway", status_code=500
        )
        assert exc.is_already_cancelled is False
