"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.

JSON field names are camelCase on the wire; Python attributes stay
snake_case. Either form is accepted on input.
"""

from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.models.domain import (
    AccountData,
    AdmissionDecision,
    ChatReply,
    MessageData,
    PersonaData,
    PersonaDraft,
)
from app.services.usage import cost_per_1k_tokens


class CamelModel(BaseModel):
    """Base model serializing to camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Account Models
# ============================================================================


class CreateAccountRequest(CamelModel):
    """POST /v1/accounts request body."""

    email: str = Field(..., min_length=3, max_length=320)
    name: str | None = Field(None, max_length=255)
    avatar: str | None = Field(None, max_length=2048)


class DebitTokensRequest(CamelModel):
    """PATCH /v1/accounts/{id}/tokens request body."""

    tokens_used: int = Field(..., ge=0, description="Tokens consumed; 0 for an activation call")
    subscription_id: str | None = Field(
        None, min_length=1, max_length=255, description="Set to activate PRO"
    )
    model_id: str | None = Field(None, max_length=255)


class AccountResponse(CamelModel):
    """Account with its entitlement snapshot."""

    account_id: UUID
    email: str
    name: str
    avatar: str | None
    credits: int
    monthly_credits: int
    monthly_usage: int
    total_usage: int
    last_reset_date: str
    subscription_id: str | None
    plan: str
    subscription_state: str
    created_at: str
    updated_at: str
    remaining_tokens: int | None = None

    @classmethod
    def from_domain(
        cls, account: AccountData, admission: AdmissionDecision | None = None
    ) -> "AccountResponse":
        return cls(
            account_id=account.account_id,
            email=account.email,
            name=account.name,
            avatar=account.avatar,
            credits=account.credits,
            monthly_credits=account.monthly_credits,
            monthly_usage=account.monthly_usage,
            total_usage=account.total_usage,
            last_reset_date=account.last_reset_date.isoformat(),
            subscription_id=account.subscription_id,
            plan=account.tier.value,
            subscription_state=account.subscription_state.value,
            created_at=account.created_at.isoformat(),
            updated_at=account.updated_at.isoformat(),
            remaining_tokens=admission.remaining if admission is not None else None,
        )


# ============================================================================
# Subscription Models
# ============================================================================


class CreateSubscriptionResponse(CamelModel):
    """POST /v1/subscriptions response."""

    success: bool = True
    subscription_id: str
    plan_id: str


class VerifyPaymentRequest(CamelModel):
    """POST /v1/subscriptions/verify request body (checkout callback fields)."""

    payment_id: str = Field(
        ...,
        min_length=1,
        max_length=255,
        validation_alias=AliasChoices("paymentId", "payment_id", "razorpay_payment_id"),
    )
    subscription_id: str = Field(
        ...,
        min_length=1,
        max_length=255,
        validation_alias=AliasChoices(
            "subscriptionId", "subscription_id", "razorpay_subscription_id"
        ),
    )
    signature: str = Field(
        ...,
        min_length=1,
        max_length=512,
        validation_alias=AliasChoices("signature", "razorpay_signature"),
    )


class SubscriptionActionResponse(CamelModel):
    """Verify / cancel response."""

    success: bool = True
    message: str
    account: AccountResponse


# ============================================================================
# Persona Models
# ============================================================================


class PersonaCreateItem(CamelModel):
    """One catalog pick to add to the account."""

    catalog_id: int = Field(..., validation_alias=AliasChoices("catalogId", "catalog_id", "id"))
    name: str = Field(..., min_length=1, max_length=255)
    title: str = Field("", max_length=255)
    image: str = Field("", max_length=2048)
    instruction: str = ""
    user_instruction: str = ""
    sample_questions: list[str] = Field(default_factory=list)
    model_id: str | None = Field(
        None, validation_alias=AliasChoices("modelId", "model_id", "aiModelId")
    )

    def to_draft(self) -> PersonaDraft:
        return PersonaDraft(
            catalog_id=self.catalog_id,
            name=self.name,
            title=self.title,
            image=self.image,
            instruction=self.instruction,
            user_instruction=self.user_instruction,
            sample_questions=tuple(self.sample_questions),
            model_id=self.model_id,
        )


class InsertPersonasRequest(CamelModel):
    """POST /v1/personas request body."""

    records: list[PersonaCreateItem] = Field(..., min_length=1, max_length=100)


class UpdatePersonaRequest(CamelModel):
    """PATCH /v1/personas/{id} request body."""

    user_instruction: str | None = None
    model_id: str | None = Field(
        None, validation_alias=AliasChoices("modelId", "model_id", "aiModelId")
    )


class PersonaResponse(CamelModel):
    """A persona owned by the caller."""

    persona_id: UUID
    catalog_id: int
    name: str
    title: str
    image: str
    instruction: str
    user_instruction: str
    sample_questions: list[str]
    model_id: str
    cost_per_1k_tokens: float
    created_at: str | None
    updated_at: str | None

    @classmethod
    def from_domain(cls, persona: PersonaData) -> "PersonaResponse":
        return cls(
            persona_id=persona.persona_id,
            catalog_id=persona.catalog_id,
            name=persona.name,
            title=persona.title,
            image=persona.image,
            instruction=persona.instruction,
            user_instruction=persona.user_instruction,
            sample_questions=list(persona.sample_questions),
            model_id=persona.model_id,
            cost_per_1k_tokens=cost_per_1k_tokens(persona.model_id),
            created_at=persona.created_at.isoformat() if persona.created_at else None,
            updated_at=persona.updated_at.isoformat() if persona.updated_at else None,
        )


class PersonaListResponse(CamelModel):
    personas: list[PersonaResponse]


# ============================================================================
# Message Models
# ============================================================================


class MessageResponse(CamelModel):
    message_id: UUID
    persona_id: UUID
    role: str
    content: str
    tokens_used: int
    model_used: str | None
    created_at: str | None

    @classmethod
    def from_domain(cls, message: MessageData) -> "MessageResponse":
        return cls(
            message_id=message.message_id,
            persona_id=message.persona_id,
            role=message.role.value,
            content=message.content,
            tokens_used=message.tokens_used,
            model_used=message.model_used,
            created_at=message.created_at.isoformat() if message.created_at else None,
        )


class MessageListResponse(CamelModel):
    messages: list[MessageResponse]


class DeleteMessagesResponse(CamelModel):
    deleted: int


# ============================================================================
# Chat Models
# ============================================================================


class ChatRequest(CamelModel):
    """POST /v1/chat request body."""

    persona_id: UUID
    message: str = Field(..., min_length=1, max_length=20000)


class ChatResponse(CamelModel):
    """Assistant reply plus the updated entitlement for the client to mirror."""

    content: str
    tokens_used: int
    model_used: str | None
    degraded: bool
    tokens_estimated: bool
    account: AccountResponse | None

    @classmethod
    def from_domain(cls, reply: ChatReply) -> "ChatResponse":
        return cls(
            content=reply.content,
            tokens_used=reply.tokens_used,
            model_used=reply.model_used,
            degraded=reply.degraded,
            tokens_estimated=reply.tokens_estimated,
            account=AccountResponse.from_domain(reply.account) if reply.account else None,
        )


# ============================================================================
# Health Check Models
# ============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    database: str
    timestamp: str
