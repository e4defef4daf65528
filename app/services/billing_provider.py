"""
Billing Provider Protocol - Provider-agnostic subscription interface.

NO DICTIONARIES - All data uses strongly typed models.
"""

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class SubscriptionIntent:
    """Request to start a recurring plan instance for an account."""

    plan_id: str
    total_count: int
    account_id: str
    email: str
    customer_notify: bool = True

    def __post_init__(self) -> None:
        """Validate intent constraints."""
        if not self.plan_id:
            raise ValueError("plan_id is required")
        if self.total_count <= 0:
            raise ValueError(f"total_count must be positive: {self.total_count}")


@dataclass(frozen=True)
class ProviderSubscription:
    """Subscription state as reported by the provider."""

    subscription_id: str
    status: str
    plan_id: str | None = None
    notes_account_id: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == "active"


@dataclass(frozen=True)
class ProviderPayment:
    """Payment state as reported by the provider."""

    payment_id: str
    status: str
    amount_minor: int | None = None
    currency: str | None = None

    @property
    def is_captured(self) -> bool:
        return self.status == "captured"


class BillingProvider(Protocol):
    """
    Billing provider protocol.

    Any recurring-billing provider must implement this interface so the
    subscription controller stays provider-agnostic.
    """

    async def create_subscription(self, intent: SubscriptionIntent) -> ProviderSubscription:
        """
        Create a subscription awaiting the customer's first payment.

        Raises:
            PaymentProviderError: If creation fails
        """
        ...

    async def fetch_payment(self, payment_id: str) -> ProviderPayment:
        """
        Raises:
            PaymentProviderError: If lookup fails
        """
        ...

    async def fetch_subscription(self, subscription_id: str) -> ProviderSubscription:
        """
        Raises:
            PaymentProviderError: If lookup fails
        """
        ...

    async def cancel_subscription(self, subscription_id: str) -> ProviderSubscription:
        """
        Cancel at the end of the current billing cycle.

        Raises:
            PaymentProviderError: If cancellation fails
        """
        ...

    def verify_subscription_signature(
        self, subscription_id: str, payment_id: str, signature: str
    ) -> bool:
        """Check the checkout callback signature."""
        ...
