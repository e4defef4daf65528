"""
Razorpay Provider Implementation.

NO DICTIONARIES - All data uses strongly typed models.

Wraps the official razorpay SDK. The SDK is synchronous (requests), so every
call runs in a worker thread to keep the event loop free.
https://razorpay.com/docs/api/payments/subscriptions/
"""

import asyncio
from typing import Any

import razorpay
import requests
from razorpay.errors import (
    BadRequestError,
    GatewayError,
    ServerError,
    SignatureVerificationError,
)
from structlog import get_logger

from app.exceptions import PaymentProviderError
from app.services.billing_provider import (
    ProviderPayment,
    ProviderSubscription,
    SubscriptionIntent,
)

logger = get_logger(__name__)

# The SDK encodes the API error code in the exception class.
SDK_ERROR_CODES: dict[type[Exception], tuple[str, int]] = {
    BadRequestError: ("BAD_REQUEST_ERROR", 400),
    GatewayError: ("GATEWAY_ERROR", 502),
    ServerError: ("SERVER_ERROR", 500),
}


class RazorpayProvider:
    """
    Razorpay subscriptions provider.

    Handles subscription creation, payment and subscription lookup, and
    cancellation. Calls are never retried.
    """

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        client: razorpay.Client | None = None,
    ) -> None:
        """
        Initialize Razorpay provider.

        Args:
            key_id: API key id
            key_secret: API key secret, also the signature secret
            client: Preconfigured SDK client; one is created when omitted
        """
        self.key_id = key_id
        self.client = client or razorpay.Client(auth=(key_id, key_secret))

        logger.info("razorpay_provider_initialized", key_id=key_id)

    async def aclose(self) -> None:
        """Release the SDK's pooled HTTP session."""
        self.client.session.close()

    async def _call(self, operation: str, func: Any, *args: Any) -> dict[str, Any]:
        """Run a blocking SDK call and translate its errors."""
        try:
            result: dict[str, Any] = await asyncio.to_thread(func, *args)
        except (BadRequestError, GatewayError, ServerError) as exc:
            code, status_code = next(
                value for error_type, value in SDK_ERROR_CODES.items() if isinstance(exc, error_type)
            )
            description = str(exc) or None
            logger.error(
                "razorpay_api_error",
                operation=operation,
                code=code,
                description=description,
            )
            raise PaymentProviderError(
                description or f"{operation} failed",
                code=code,
                description=description,
                status_code=status_code,
            ) from exc
        except (requests.RequestException, ValueError) as exc:
            logger.error("razorpay_request_failed", operation=operation, error=str(exc))
            raise PaymentProviderError(f"Request to Razorpay failed: {exc}") from exc

        if not isinstance(result, dict):
            raise PaymentProviderError(f"Unexpected Razorpay response for {operation}")
        return result

    async def create_subscription(self, intent: SubscriptionIntent) -> ProviderSubscription:
        """Create a subscription for the plan, tagged with the account for reconciliation."""
        logger.info(
            "creating_razorpay_subscription",
            plan_id=intent.plan_id,
            account_id=intent.account_id,
            total_count=intent.total_count,
        )
        result = await self._call(
            "create_subscription",
            self.client.subscription.create,
            {
                "plan_id": intent.plan_id,
                "total_count": intent.total_count,
                "customer_notify": 1 if intent.customer_notify else 0,
                "notes": {"account_id": intent.account_id, "email": intent.email},
            },
        )
        subscription = self._parse_subscription(result)
        logger.info(
            "razorpay_subscription_created",
            subscription_id=subscription.subscription_id,
            status=subscription.status,
        )
        return subscription

    async def fetch_payment(self, payment_id: str) -> ProviderPayment:
        result = await self._call("fetch_payment", self.client.payment.fetch, payment_id)
        if not result.get("id") or not result.get("status"):
            raise PaymentProviderError("Incomplete payment in Razorpay response")
        amount = result.get("amount")
        return ProviderPayment(
            payment_id=str(result["id"]),
            status=str(result["status"]),
            amount_minor=int(amount) if amount is not None else None,
            currency=result.get("currency"),
        )

    async def fetch_subscription(self, subscription_id: str) -> ProviderSubscription:
        result = await self._call(
            "fetch_subscription", self.client.subscription.fetch, subscription_id
        )
        return self._parse_subscription(result)

    async def cancel_subscription(self, subscription_id: str) -> ProviderSubscription:
        logger.info("cancelling_razorpay_subscription", subscription_id=subscription_id)
        result = await self._call(
            "cancel_subscription",
            self.client.subscription.cancel,
            subscription_id,
            {"cancel_at_cycle_end": 1},
        )
        return self._parse_subscription(result)

    def verify_subscription_signature(
        self, subscription_id: str, payment_id: str, signature: str
    ) -> bool:
        """Check the checkout callback signature with the SDK utility."""
        if not signature:
            return False
        try:
            self.client.utility.verify_subscription_payment_signature(
                {
                    "razorpay_subscription_id": subscription_id,
                    "razorpay_payment_id": payment_id,
                    "razorpay_signature": signature,
                }
            )
        except SignatureVerificationError:
            return False
        return True

    @staticmethod
    def _parse_subscription(result: dict[str, Any]) -> ProviderSubscription:
        if not result.get("id") or not result.get("status"):
            raise PaymentProviderError("Incomplete subscription in Razorpay response")
        notes = result.get("notes")
        notes_account_id = notes.get("account_id") if isinstance(notes, dict) else None
        return ProviderSubscription(
            subscription_id=str(result["id"]),
            status=str(result["status"]),
            plan_id=result.get("plan_id"),
            notes_account_id=notes_account_id,
        )
