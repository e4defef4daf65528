"""
Subscription Routes - Upgrade to PRO, verify the checkout, cancel.

NO DICTIONARIES - All requests/responses use Pydantic models.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.dependencies import get_billing_provider, get_current_account, get_ledger
from app.config import settings
from app.exceptions import (
    ConfigurationMissingError,
    DataIntegrityError,
    PaymentProviderError,
    PaymentVerificationError,
    SubscriptionStateError,
    WriteVerificationError,
)
from app.models.api import (
    AccountResponse,
    CreateSubscriptionResponse,
    SubscriptionActionResponse,
    VerifyPaymentRequest,
)
from app.models.domain import AccountData
from app.services.billing_provider import BillingProvider
from app.services.ledger import EntitlementLedger
from app.services.subscriptions import SubscriptionService

router = APIRouter(prefix="/v1/subscriptions", tags=["subscriptions"])


def get_subscription_service(
    ledger: EntitlementLedger = Depends(get_ledger),
    provider: BillingProvider | None = Depends(get_billing_provider),
) -> SubscriptionService:
    return SubscriptionService(
        ledger,
        provider,
        plan_id=settings.razorpay_plan_id,
        total_count=settings.subscription_total_count,
    )


@router.post("", response_model=CreateSubscriptionResponse)
async def create_subscription(
    account: AccountData = Depends(get_current_account),
    service: SubscriptionService = Depends(get_subscription_service),
) -> CreateSubscriptionResponse:
    """
    Start a PRO subscription checkout.

    The account stays FREE until the payment is verified.
    """
    try:
        handle = await service.create_subscription(account)
    except SubscriptionStateError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=exc.message,
        ) from exc
    except ConfigurationMissingError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Payment service configuration error",
        ) from exc
    except PaymentProviderError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to create subscription. Please try again.",
        ) from exc

    return CreateSubscriptionResponse(
        subscription_id=handle.subscription_id,
        plan_id=handle.plan_id,
    )


@router.post("/verify", response_model=SubscriptionActionResponse)
async def verify_payment(
    request: VerifyPaymentRequest,
    account: AccountData = Depends(get_current_account),
    service: SubscriptionService = Depends(get_subscription_service),
) -> SubscriptionActionResponse:
    """Verify the checkout signature and provider state, then activate PRO."""
    try:
        updated = await service.verify_payment(
            account,
            payment_id=request.payment_id,
            subscription_id=request.subscription_id,
            signature=request.signature,
        )
    except PaymentVerificationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Payment verification failed",
        ) from exc
    except ConfigurationMissingError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Payment service configuration error",
        ) from exc
    except (WriteVerificationError, DataIntegrityError) as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to activate Pro plan",
        ) from exc

    return SubscriptionActionResponse(
        message="Pro plan activated successfully!",
        account=AccountResponse.from_domain(updated),
    )


@router.post("/cancel", response_model=SubscriptionActionResponse)
async def cancel_subscription(
    account: AccountData = Depends(get_current_account),
    service: SubscriptionService = Depends(get_subscription_service),
) -> SubscriptionActionResponse:
    """Cancel at the end of the billing cycle and return the account to FREE."""
    try:
        updated = await service.cancel_subscription(account)
    except SubscriptionStateError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=exc.message,
        ) from exc
    except ConfigurationMissingError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Payment service configuration error",
        ) from exc
    except PaymentProviderError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to cancel subscription",
        ) from exc
    except (WriteVerificationError, DataIntegrityError) as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to cancel subscription",
        ) from exc

    return SubscriptionActionResponse(
        message="Subscription cancelled. Your account is now on the free plan.",
        account=AccountResponse.from_domain(updated),
    )
