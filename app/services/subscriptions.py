"""
Subscription Lifecycle Controller - Upgrade, verify and cancel PRO plans.

NO DICTIONARIES - All operations use strongly typed domain models.

The ledger is only touched after the billing provider has confirmed the
change; provider calls are never retried.

    FREE --create--> PENDING_UPGRADE --verify--> PRO
    PRO  --cancel--> PENDING_CANCEL  --ledger--> FREE
"""

from app.exceptions import (
    ConfigurationMissingError,
    PaymentProviderError,
    PaymentVerificationError,
    SubscriptionStateError,
)
from app.models.domain import AccountData, SubscriptionHandle, SubscriptionState
from app.observability.logging import get_logger
from app.observability.metrics import metrics
from app.services.billing_provider import BillingProvider, SubscriptionIntent
from app.services.ledger import EntitlementLedger

logger = get_logger(__name__)


class SubscriptionService:
    """Drives the subscription state machine against a billing provider."""

    def __init__(
        self,
        ledger: EntitlementLedger,
        provider: BillingProvider | None,
        plan_id: str,
        total_count: int = 12,
    ) -> None:
        """
        Args:
            ledger: Ledger bound to the request's session
            provider: Billing provider, None when credentials are not configured
            plan_id: Provider plan id for the PRO tier
            total_count: Billing cycles per subscription
        """
        self.ledger = ledger
        self.provider = provider
        self.plan_id = plan_id
        self.total_count = total_count

    def _require_provider(self) -> BillingProvider:
        if self.provider is None or not self.plan_id:
            raise ConfigurationMissingError("Payment service")
        return self.provider

    async def create_subscription(self, account: AccountData) -> SubscriptionHandle:
        """
        Start a PRO subscription. The ledger is untouched until payment is verified.

        Raises:
            SubscriptionStateError: Account already has a subscription
            ConfigurationMissingError: Provider credentials or plan id missing
            PaymentProviderError: Provider rejected the request
        """
        if account.subscription_id:
            metrics.record_subscription_event("create", "rejected")
            raise SubscriptionStateError(
                account.account_id, "Account already has an active subscription"
            )

        provider = self._require_provider()
        logger.info(
            "subscription_state_changing",
            account_id=str(account.account_id),
            state=SubscriptionState.PENDING_UPGRADE.value,
        )

        try:
            subscription = await provider.create_subscription(
                SubscriptionIntent(
                    plan_id=self.plan_id,
                    total_count=self.total_count,
                    account_id=str(account.account_id),
                    email=account.email,
                )
            )
        except PaymentProviderError:
            metrics.record_subscription_event("create", "provider_error")
            raise

        metrics.record_subscription_event("create", "success")
        logger.info(
            "subscription_created",
            account_id=str(account.account_id),
            subscription_id=subscription.subscription_id,
        )
        return SubscriptionHandle(
            subscription_id=subscription.subscription_id,
            plan_id=self.plan_id,
            status=subscription.status,
        )

    async def verify_payment(
        self,
        account: AccountData,
        payment_id: str,
        subscription_id: str,
        signature: str,
    ) -> AccountData:
        """
        Verify the checkout callback and activate PRO.

        Raises:
            PaymentVerificationError: Signature, status or ownership check failed
            ConfigurationMissingError: Provider credentials missing
        """
        if not payment_id or not subscription_id or not signature:
            raise PaymentVerificationError("payment id, subscription id and signature are required")

        provider = self._require_provider()

        if not provider.verify_subscription_signature(subscription_id, payment_id, signature):
            metrics.record_subscription_event("verify", "bad_signature")
            logger.warning(
                "payment_signature_mismatch",
                account_id=str(account.account_id),
                subscription_id=subscription_id,
                payment_id=payment_id,
            )
            raise PaymentVerificationError("signature mismatch")

        if account.subscription_id == subscription_id:
            # Replayed callback: the plan is already active, keep the current balance.
            metrics.record_subscription_event("verify", "already_active")
            logger.info(
                "subscription_already_active",
                account_id=str(account.account_id),
                subscription_id=subscription_id,
            )
            return account

        try:
            payment = await provider.fetch_payment(payment_id)
            subscription = await provider.fetch_subscription(subscription_id)
        except PaymentProviderError as exc:
            metrics.record_subscription_event("verify", "provider_error")
            logger.error(
                "payment_verification_lookup_failed",
                account_id=str(account.account_id),
                error=exc.message,
            )
            raise PaymentVerificationError("could not confirm payment with provider") from exc

        if not payment.is_captured or not subscription.is_active:
            metrics.record_subscription_event("verify", "status_mismatch")
            logger.error(
                "payment_not_in_expected_state",
                account_id=str(account.account_id),
                payment_status=payment.status,
                subscription_status=subscription.status,
            )
            raise PaymentVerificationError(
                f"payment {payment.status}, subscription {subscription.status}"
            )

        if (
            subscription.notes_account_id is not None
            and subscription.notes_account_id != str(account.account_id)
        ):
            metrics.record_subscription_event("verify", "owner_mismatch")
            logger.error(
                "subscription_owner_mismatch",
                account_id=str(account.account_id),
                subscription_id=subscription_id,
            )
            raise PaymentVerificationError("subscription belongs to another account")

        updated = await self.ledger.debit(account.account_id, 0, subscription_id=subscription_id)

        metrics.record_subscription_event("verify", "success")
        logger.info(
            "subscription_activated",
            account_id=str(account.account_id),
            subscription_id=subscription_id,
            payment_id=payment_id,
            monthly_credits=updated.monthly_credits,
        )
        return updated

    async def cancel_subscription(self, account: AccountData) -> AccountData:
        """
        Cancel at cycle end with the provider, then drop the account to FREE.

        A provider answer that the subscription is already cancelled still
        resets the account.

        Raises:
            SubscriptionStateError: Account has no subscription
            PaymentProviderError: Provider rejected the cancellation
        """
        if not account.subscription_id:
            metrics.record_subscription_event("cancel", "rejected")
            raise SubscriptionStateError(account.account_id, "No active subscription found")

        provider = self._require_provider()
        logger.info(
            "subscription_state_changing",
            account_id=str(account.account_id),
            state=SubscriptionState.PENDING_CANCEL.value,
        )

        try:
            await provider.cancel_subscription(account.subscription_id)
        except PaymentProviderError as exc:
            if not exc.is_already_cancelled:
                metrics.record_subscription_event("cancel", "provider_error")
                raise
            logger.info(
                "subscription_already_cancelled",
                account_id=str(account.account_id),
                subscription_id=account.subscription_id,
            )

        updated = await self.ledger.cancel_subscription(account.account_id)

        metrics.record_subscription_event("cancel", "success")
        logger.info(
            "subscription_cancelled",
            account_id=str(account.account_id),
            subscription_id=account.subscription_id,
        )
        return updated
