"""
API Routes - FastAPI endpoints for the ledger, personas, history and chat.

NO DICTIONARIES - All requests/responses use Pydantic models.
"""

from datetime import UTC, datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import (
    get_current_account,
    get_ledger,
    get_llm_client,
    get_read_ledger,
    require_internal_api_key,
)
from app.db.session import get_read_db, get_write_db, ping_database
from app.exceptions import (
    AccountNotFoundError,
    ConfigurationMissingError,
    DataIntegrityError,
    InvalidRequestError,
    LLMProviderError,
    LLMTimeoutError,
    PersonaNotFoundError,
    QuotaExceededError,
    WriteVerificationError,
)
from app.models.api import (
    AccountResponse,
    ChatRequest,
    ChatResponse,
    CreateAccountRequest,
    DebitTokensRequest,
    DeleteMessagesResponse,
    HealthResponse,
    InsertPersonasRequest,
    MessageListResponse,
    MessageResponse,
    PersonaListResponse,
    PersonaResponse,
    UpdatePersonaRequest,
)
from app.models.domain import AccountData
from app.services.ledger import EntitlementLedger
from app.services.llm_client import OpenRouterClient
from app.services.messages import DEFAULT_HISTORY_LIMIT, DEFAULT_RECENT_LIMIT, MessageService
from app.services.personas import PersonaService
from app.services.relay import ConversationRelay

router = APIRouter()

# Ledger endpoints are service-to-service; guarded by X-API-Key when configured
ledger_router = APIRouter(dependencies=[Depends(require_internal_api_key)])


def quota_exceeded_exception(exc: QuotaExceededError) -> HTTPException:
    """402 with a machine-readable code so clients can prompt an upgrade."""
    return HTTPException(
        status_code=status.HTTP_402_PAYMENT_REQUIRED,
        detail={
            "code": "quota_exceeded",
            "message": "Monthly token limit reached. Upgrade to continue.",
            "monthlyUsage": exc.monthly_usage,
            "monthlyCredits": exc.monthly_credits,
        },
    )


# =============================================================================
# Ledger Endpoints
# =============================================================================


@ledger_router.get("/v1/accounts", response_model=AccountResponse)
async def get_account_by_email(
    email: str = Query(..., min_length=3),
    ledger: EntitlementLedger = Depends(get_read_ledger),
) -> AccountResponse:
    """
    Get account by email.

    Read operation - served from the account cache or the replica.
    """
    try:
        account = await ledger.get_by_email(email)
    except AccountNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Account not found",
        ) from exc
    return AccountResponse.from_domain(account)


@ledger_router.get("/v1/accounts/{account_id}", response_model=AccountResponse)
async def get_account(
    account_id: UUID,
    ledger: EntitlementLedger = Depends(get_read_ledger),
) -> AccountResponse:
    """Get account by id."""
    try:
        account = await ledger.get_by_id(account_id)
    except AccountNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Account not found",
        ) from exc
    return AccountResponse.from_domain(account)


@ledger_router.post("/v1/accounts", response_model=AccountResponse)
async def create_account(
    request: CreateAccountRequest,
    ledger: EntitlementLedger = Depends(get_ledger),
) -> AccountResponse:
    """
    Create account or get existing one (idempotent).

    Write operation - requires primary database.
    """
    try:
        account = await ledger.get_or_create(request.email, request.name, request.avatar)
    except InvalidRequestError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=exc.message,
        ) from exc
    except WriteVerificationError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Database integrity error",
        ) from exc
    return AccountResponse.from_domain(account)


@ledger_router.patch("/v1/accounts/{account_id}/tokens", response_model=AccountResponse)
async def debit_tokens(
    account_id: UUID,
    request: DebitTokensRequest,
    ledger: EntitlementLedger = Depends(get_ledger),
) -> AccountResponse:
    """
    Debit tokens, rolling the month over first when due.

    A zero-token call with subscriptionId activates PRO.
    """
    try:
        account = await ledger.debit(
            account_id,
            request.tokens_used,
            subscription_id=request.subscription_id,
            model_id=request.model_id,
        )
    except AccountNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Account not found",
        ) from exc
    except InvalidRequestError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=exc.message,
        ) from exc
    except (WriteVerificationError, DataIntegrityError) as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Database integrity error",
        ) from exc
    return AccountResponse.from_domain(account)


@ledger_router.patch(
    "/v1/accounts/{account_id}/cancel-subscription", response_model=AccountResponse
)
async def cancel_account_subscription(
    account_id: UUID,
    ledger: EntitlementLedger = Depends(get_ledger),
) -> AccountResponse:
    """Drop the account to FREE immediately (no provider call)."""
    try:
        account = await ledger.cancel_subscription(account_id)
    except AccountNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Account not found",
        ) from exc
    except (WriteVerificationError, DataIntegrityError) as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Database integrity error",
        ) from exc
    return AccountResponse.from_domain(account)


# =============================================================================
# User-Facing Endpoints (Google access token)
# =============================================================================


@router.get("/v1/me", response_model=AccountResponse)
async def get_me(
    account: AccountData = Depends(get_current_account),
    ledger: EntitlementLedger = Depends(get_ledger),
) -> AccountResponse:
    """The caller's account and entitlement, with the tokens left this month."""
    return AccountResponse.from_domain(account, admission=ledger.check_admission(account))


@router.post("/v1/chat", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    account: AccountData = Depends(get_current_account),
    db: AsyncSession = Depends(get_write_db),
    ledger: EntitlementLedger = Depends(get_ledger),
    llm: OpenRouterClient = Depends(get_llm_client),
) -> ChatResponse:
    """
    Send one message to a persona.

    402 when the monthly allowance is used up; the reply carries the
    updated account for the client to mirror.
    """
    relay = ConversationRelay(db, ledger, llm)
    try:
        reply = await relay.send(account.account_id, request.persona_id, request.message)
    except QuotaExceededError as exc:
        raise quota_exceeded_exception(exc) from exc
    except InvalidRequestError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=exc.message,
        ) from exc
    except (AccountNotFoundError, PersonaNotFoundError) as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except LLMTimeoutError as exc:
        raise HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            detail="AI model is taking too long to respond. Please try again.",
        ) from exc
    except LLMProviderError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to get AI response",
        ) from exc
    except ConfigurationMissingError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server configuration error. Please contact support.",
        ) from exc
    return ChatResponse.from_domain(reply)


@router.get("/v1/personas", response_model=PersonaListResponse)
async def list_personas(
    account: AccountData = Depends(get_current_account),
    db: AsyncSession = Depends(get_write_db),
) -> PersonaListResponse:
    """The caller's personas, newest first."""
    personas = await PersonaService(db).list_personas(account.account_id)
    return PersonaListResponse(personas=[PersonaResponse.from_domain(p) for p in personas])


@router.post(
    "/v1/personas",
    response_model=PersonaListResponse,
    status_code=status.HTTP_201_CREATED,
)
async def insert_personas(
    request: InsertPersonasRequest,
    account: AccountData = Depends(get_current_account),
    db: AsyncSession = Depends(get_write_db),
) -> PersonaListResponse:
    """Add catalog assistants to the caller's workspace."""
    try:
        drafts = [record.to_draft() for record in request.records]
        personas = await PersonaService(db).insert_personas(account.account_id, drafts)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except InvalidRequestError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=exc.message,
        ) from exc
    return PersonaListResponse(personas=[PersonaResponse.from_domain(p) for p in personas])


@router.patch("/v1/personas/{persona_id}", response_model=PersonaResponse)
async def update_persona(
    persona_id: UUID,
    request: UpdatePersonaRequest,
    account: AccountData = Depends(get_current_account),
    db: AsyncSession = Depends(get_write_db),
) -> PersonaResponse:
    """Change a persona's user instruction or model."""
    try:
        persona = await PersonaService(db).update_persona(
            account.account_id,
            persona_id,
            user_instruction=request.user_instruction,
            model_id=request.model_id,
        )
    except PersonaNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Persona not found",
        ) from exc
    except InvalidRequestError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=exc.message,
        ) from exc
    return PersonaResponse.from_domain(persona)


@router.delete("/v1/personas/{persona_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_persona(
    persona_id: UUID,
    account: AccountData = Depends(get_current_account),
    db: AsyncSession = Depends(get_write_db),
) -> None:
    """Delete a persona and its conversation."""
    try:
        await PersonaService(db).delete_persona(account.account_id, persona_id)
    except PersonaNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Persona not found",
        ) from exc


@router.get("/v1/personas/{persona_id}/messages", response_model=MessageListResponse)
async def list_persona_messages(
    persona_id: UUID,
    limit: int = Query(DEFAULT_HISTORY_LIMIT, ge=1, le=200),
    account: AccountData = Depends(get_current_account),
    db: AsyncSession = Depends(get_write_db),
) -> MessageListResponse:
    """Conversation with one persona, oldest first."""
    messages = await MessageService(db).list_for_persona(account.account_id, persona_id, limit)
    return MessageListResponse(messages=[MessageResponse.from_domain(m) for m in messages])


@router.delete("/v1/personas/{persona_id}/messages", response_model=DeleteMessagesResponse)
async def delete_persona_messages(
    persona_id: UUID,
    account: AccountData = Depends(get_current_account),
    db: AsyncSession = Depends(get_write_db),
) -> DeleteMessagesResponse:
    """Clear the conversation with one persona."""
    deleted = await MessageService(db).delete_for_persona(account.account_id, persona_id)
    return DeleteMessagesResponse(deleted=deleted)


@router.get("/v1/messages/recent", response_model=MessageListResponse)
async def list_recent_messages(
    limit: int = Query(DEFAULT_RECENT_LIMIT, ge=1, le=100),
    account: AccountData = Depends(get_current_account),
    db: AsyncSession = Depends(get_write_db),
) -> MessageListResponse:
    """Newest messages across all personas."""
    messages = await MessageService(db).list_recent(account.account_id, limit)
    return MessageListResponse(messages=[MessageResponse.from_domain(m) for m in messages])


# =============================================================================
# Operational
# =============================================================================


@router.get("/health", response_model=HealthResponse)
async def health_check(db: AsyncSession = Depends(get_read_db)) -> HealthResponse:
    """
    Health check for load balancer.

    Verifies database connectivity.
    """
    try:
        await ping_database(db)
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "status": "unhealthy",
                "database": "disconnected",
                "error": str(exc),
                "timestamp": datetime.now(UTC).isoformat(),
            },
        ) from exc

    return HealthResponse(
        status="healthy",
        database="connected",
        timestamp=datetime.now(UTC).isoformat(),
    )
