"""
Tests for SubscriptionService.

The ledger and billing provider are mocked; the service only orchestrates.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import make_account_data

from app.exceptions import (
    ConfigurationMissingError,
    PaymentProviderError,
    PaymentVerificationError,
    SubscriptionStateError,
)
from app.models.pricing import PRO_MONTHLY_TOKENS
from app.services.billing_provider import ProviderPayment, ProviderSubscription
from app.services.subscriptions import SubscriptionService


@pytest.fixture
def ledger() -> MagicMock:
    ledger = MagicMock()
    ledger.debit = AsyncMock()
    ledger.cancel_subscription = AsyncMock()
    return ledger


@pytest.fixture
def provider() -> MagicMock:
    provider = MagicMock()
    provider.create_subscription = AsyncMock(
        return_value=ProviderSubscription(subscription_id="sub_new", status="created")
    )
    provider.fetch_payment = AsyncMock(
        return_value=ProviderPayment(payment_id="pay_1", status="captured")
    )
    provider.fetch_subscription = AsyncMock()
    provider.cancel_subscription = AsyncMock(
        return_value=ProviderSubscription(subscription_id="sub_1", status="cancelled")
    )
    provider.verify_subscription_signature = MagicMock(return_value=True)
    return provider


@pytest.fixture
def service(ledger, provider) -> SubscriptionService:
    return SubscriptionService(ledger, provider, plan_id="plan_pro", total_count=12)


# ============================================================================
# Create
# ============================================================================


class TestCreateSubscription:
    async def test_returns_handle_without_touching_ledger(self, service, ledger, provider):
        account = make_account_data()

        handle = await service.create_subscription(account)

        assert handle.subscription_id == "sub_new"
        assert handle.plan_id == "plan_pro"
        assert handle.status == "created"
        intent = provider.create_subscription.call_args[0][0]
        assert intent.plan_id == "plan_pro"
        assert intent.total_count == 12
        assert intent.account_id == str(account.account_id)
        assert intent.email == account.email
        ledger.debit.assert_not_called()

    async def test_existing_subscription_rejected(self, service, provider):
        with pytest.raises(SubscriptionStateError):
            await service.create_subscription(make_account_data(subscription_id="sub_old"))
        provider.create_subscription.assert_not_called()

    async def test_unconfigured_provider(self, ledger):
        service = SubscriptionService(ledger, None, plan_id="plan_pro")
        with pytest.raises(ConfigurationMissingError):
            await service.create_subscription(make_account_data())

    async def test_missing_plan_id(self, ledger, provider):
        service = SubscriptionService(ledger, provider, plan_id="")
        with pytest.raises(ConfigurationMissingError):
            await service.create_subscription(make_account_data())

    async def test_provider_error_propagates(self, service, provider):
        provider.create_subscription.side_effect = PaymentProviderError("boom")
        with pytest.raises(PaymentProviderError):
            await service.create_subscription(make_account_data())


# ============================================================================
# Verify
# ============================================================================


class TestVerifyPayment:
    async def test_activates_pro(self, service, ledger, provider):
        account = make_account_data()
        provider.fetch_subscription.return_value = ProviderSubscription(
            subscription_id="sub_1", status="active", notes_account_id=str(account.account_id)
        )
        upgraded = make_account_data(
            account_id=account.account_id,
            monthly_credits=PRO_MONTHLY_TOKENS,
            subscription_id="sub_1",
        )
        ledger.debit.return_value = upgraded

        result = await service.verify_payment(account, "pay_1", "sub_1", "sig")

        assert result == upgraded
        provider.verify_subscription_signature.assert_called_once_with("sub_1", "pay_1", "sig")
        ledger.debit.assert_awaited_once_with(account.account_id, 0, subscription_id="sub_1")

    async def test_replayed_callback_keeps_balance(self, service, ledger, provider):
        account = make_account_data(
            credits=40_000,
            monthly_credits=PRO_MONTHLY_TOKENS,
            monthly_usage=60_000,
            subscription_id="sub_1",
        )

        result = await service.verify_payment(account, "pay_1", "sub_1", "sig")

        assert result == account
        assert result.credits == 40_000
        provider.fetch_payment.assert_not_called()
        ledger.debit.assert_not_called()

    async def test_replayed_callback_with_bad_signature_rejected(self, service, ledger, provider):
        provider.verify_subscription_signature.return_value = False
        account = make_account_data(monthly_credits=PRO_MONTHLY_TOKENS, subscription_id="sub_1")

        with pytest.raises(PaymentVerificationError):
            await service.verify_payment(account, "pay_1", "sub_1", "forged")
        ledger.debit.assert_not_called()

    async def test_signature_mismatch_rejected(self, service, ledger, provider):
        provider.verify_subscription_signature.return_value = False

        with pytest.raises(PaymentVerificationError):
            await service.verify_payment(make_account_data(), "pay_1", "sub_1", "forged")

        provider.fetch_payment.assert_not_called()
        ledger.debit.assert_not_called()

    @pytest.mark.parametrize(
        ("payment_id", "subscription_id", "signature"),
        [("", "sub_1", "sig"), ("pay_1", "", "sig"), ("pay_1", "sub_1", "")],
    )
    async def test_missing_fields_rejected(self, service, payment_id, subscription_id, signature):
        with pytest.raises(PaymentVerificationError):
            await service.verify_payment(make_account_data(), payment_id, subscription_id, signature)

    async def test_uncaptured_payment_rejected(self, service, ledger, provider):
        provider.fetch_payment.return_value = ProviderPayment(payment_id="pay_1", status="failed")
        provider.fetch_subscription.return_value = ProviderSubscription(
            subscription_id="sub_1", status="active"
        )

        with pytest.raises(PaymentVerificationError):
            await service.verify_payment(make_account_data(), "pay_1", "sub_1", "sig")
        ledger.debit.assert_not_called()

    async def test_inactive_subscription_rejected(self, service, ledger, provider):
        provider.fetch_subscription.return_value = ProviderSubscription(
            subscription_id="sub_1", status="created"
        )

        with pytest.raises(PaymentVerificationError):
            await service.verify_payment(make_account_data(), "pay_1", "sub_1", "sig")
        ledger.debit.assert_not_called()

    async def test_subscription_of_other_account_rejected(self, service, ledger, provider):
        provider.fetch_subscription.return_value = ProviderSubscription(
            subscription_id="sub_1", status="active", notes_account_id="someone-else"
        )

        with pytest.raises(PaymentVerificationError):
            await service.verify_payment(make_account_data(), "pay_1", "sub_1", "sig")
        ledger.debit.assert_not_called()

    async def test_provider_lookup_failure_is_verification_failure(self, service, provider):
        provider.fetch_payment.side_effect = PaymentProviderError("not found", status_code=404)

        with pytest.raises(PaymentVerificationError):
            await service.verify_payment(make_account_data(), "pay_1", "sub_1", "sig")


# ============================================================================
# Cancel
# ============================================================================


class TestCancelSubscription:
    async def test_cancels_with_provider_then_ledger(self, service, ledger, provider):
        account = make_account_data(subscription_id="sub_1")
        downgraded = make_account_data(account_id=account.account_id)
        ledger.cancel_subscription.return_value = downgraded

        result = await service.cancel_subscription(account)

        assert result == downgraded
        provider.cancel_subscription.assert_awaited_once_with("sub_1")
        ledger.cancel_subscription.assert_awaited_once_with(account.account_id)

    async def test_no_subscription_rejected(self, service, provider):
        with pytest.raises(SubscriptionStateError) as exc_info:
            await service.cancel_subscription(make_account_data())
        assert exc_info.value.message == "No active subscription found"
        provider.cancel_subscription.assert_not_called()

    async def test_already_cancelled_still_resets(self, service, ledger, provider):
        provider.cancel_subscription.side_effect = PaymentProviderError(
            "cannot cancel",
            code="BAD_REQUEST_ERROR",
            description="Subscription is already cancelled",
            status_code=400,
        )

        await service.cancel_subscription(make_account_data(subscription_id="sub_1"))

        ledger.cancel_subscription.assert_awaited_once()

    async def test_other_provider_error_leaves_ledger_alone(self, service, ledger, provider):
        provider.cancel_subscription.side_effect = PaymentProviderError(
            "gateway down", status_code=502
        )

        with pytest.raises(PaymentProviderError):
            await service.cancel_subscription(make_account_data(subscription_id="sub_1"))
        ledger.cancel_subscription.assert_not_called()
