"""
FastAPI Dependencies - Authentication and service wiring.

NO DICTIONARIES - All dependencies return typed objects.
"""

import hmac

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.config import settings
from app.db.session import get_read_db, get_write_db
from app.exceptions import AuthenticationError, InvalidRequestError, WriteVerificationError
from app.models.domain import AccountData, OAuthUser
from app.services.billing_provider import BillingProvider
from app.services.cache import AccountCache
from app.services.google_auth import GoogleUserInfoClient
from app.services.ledger import EntitlementLedger
from app.services.llm_client import OpenRouterClient

logger = get_logger(__name__)

# Bearer token scheme for Google access tokens
bearer_scheme = HTTPBearer(auto_error=False)


# ============================================================================
# Application-scoped collaborators (created in the lifespan)
# ============================================================================


def get_account_cache(request: Request) -> AccountCache:
    """The process-wide account cache owned by the app instance."""
    cache: AccountCache = request.app.state.account_cache
    return cache


def get_user_info_client(request: Request) -> GoogleUserInfoClient:
    client: GoogleUserInfoClient = request.app.state.user_info_client
    return client


def get_llm_client(request: Request) -> OpenRouterClient:
    client: OpenRouterClient = request.app.state.llm_client
    return client


def get_billing_provider(request: Request) -> BillingProvider | None:
    """Configured billing provider, or None when credentials are missing."""
    provider: BillingProvider | None = request.app.state.billing_provider
    return provider


def get_ledger(
    db: AsyncSession = Depends(get_write_db),
    cache: AccountCache = Depends(get_account_cache),
) -> EntitlementLedger:
    """Ledger bound to the request's write session and the shared cache."""
    return EntitlementLedger(db, cache)


def get_read_ledger(
    db: AsyncSession = Depends(get_read_db),
    cache: AccountCache = Depends(get_account_cache),
) -> EntitlementLedger:
    """Ledger for lookups, served from the replica."""
    return EntitlementLedger(db, cache)


# ============================================================================
# End-user authentication (Google access token)
# ============================================================================


async def get_oauth_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    client: GoogleUserInfoClient = Depends(get_user_info_client),
) -> OAuthUser:
    """
    Resolve the Authorization: Bearer {google_access_token} header to a user.

    Raises:
        HTTPException 401 if no token or invalid token
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized. Please sign in.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return await client.get_user_info(credentials.credentials)
    except AuthenticationError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc


async def get_current_account(
    user: OAuthUser = Depends(get_oauth_user),
    ledger: EntitlementLedger = Depends(get_ledger),
) -> AccountData:
    """
    The caller's account, created with FREE defaults on first sign-in.

    Usage:
        @router.get("/v1/me")
        async def me(account: AccountData = Depends(get_current_account)):
            ...
    """
    try:
        return await ledger.get_or_create(user.email, user.name, user.picture)
    except InvalidRequestError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Signed-in profile has no usable email",
        ) from exc
    except WriteVerificationError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Database integrity error",
        ) from exc


# ============================================================================
# Service-to-service authentication (ledger endpoints)
# ============================================================================


async def require_internal_api_key(
    x_api_key: str | None = Header(None, description="Internal service key"),
) -> None:
    """
    Guard the ledger endpoints with INTERNAL_API_KEY when it is configured.

    Raises:
        HTTPException 401 if the key is missing or wrong
    """
    expected = settings.internal_api_key
    if not expected:
        return

    if not x_api_key or not hmac.compare_digest(x_api_key, expected):
        logger.warning("internal_api_key_rejected", provided=bool(x_api_key))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )
