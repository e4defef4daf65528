"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID

from app.models.pricing import PlanTier, allowance_for, tier_for_subscription


class SubscriptionState(str, Enum):
    """Subscription lifecycle states for an account."""

    FREE = "free"
    PENDING_UPGRADE = "pending_upgrade"
    PRO = "pro"
    PENDING_CANCEL = "pending_cancel"


class MessageRole(str, Enum):
    """Conversation message author."""

    USER = "user"
    ASSISTANT = "assistant"


class UsageSource(str, Enum):
    """Where a usage debit originated."""

    CHAT = "chat"
    MANUAL = "manual"


@dataclass(frozen=True)
class EntitlementState:
    """Quota fields of an account - the state the ledger transitions operate on."""

    credits: int
    monthly_credits: int
    monthly_usage: int
    total_usage: int
    last_reset_date: datetime
    subscription_id: str | None

    def __post_init__(self) -> None:
        """Validate quota invariants."""
        if self.credits < 0:
            raise ValueError(f"Credits cannot be negative: {self.credits}")
        if self.monthly_credits <= 0:
            raise ValueError(f"Monthly credits must be positive: {self.monthly_credits}")
        if self.monthly_usage < 0 or self.total_usage < 0:
            raise ValueError("Usage counters cannot be negative")

    @property
    def tier(self) -> PlanTier:
        return tier_for_subscription(self.subscription_id)

    @classmethod
    def fresh(cls, now: datetime) -> "EntitlementState":
        """FREE-tier defaults for a brand new account."""
        allowance = allowance_for(PlanTier.FREE)
        return cls(
            credits=allowance,
            monthly_credits=allowance,
            monthly_usage=0,
            total_usage=0,
            last_reset_date=now,
            subscription_id=None,
        )


@dataclass(frozen=True)
class AccountData:
    """Immutable account data snapshot."""

    account_id: UUID
    email: str
    name: str
    avatar: str | None
    credits: int
    monthly_credits: int
    monthly_usage: int
    total_usage: int
    last_reset_date: datetime
    subscription_id: str | None
    created_at: datetime
    updated_at: datetime

    @property
    def tier(self) -> PlanTier:
        return tier_for_subscription(self.subscription_id)

    @property
    def subscription_state(self) -> SubscriptionState:
        return SubscriptionState.PRO if self.subscription_id else SubscriptionState.FREE

    def to_state(self) -> EntitlementState:
        """Extract the quota fields."""
        return EntitlementState(
            credits=self.credits,
            monthly_credits=self.monthly_credits,
            monthly_usage=self.monthly_usage,
            total_usage=self.total_usage,
            last_reset_date=self.last_reset_date,
            subscription_id=self.subscription_id,
        )


@dataclass(frozen=True)
class DebitIntent:
    """Domain model for a ledger debit before persistence - immutable intent."""

    account_id: UUID
    tokens: int
    subscription_id: str | None = None
    model_id: str | None = None
    source: UsageSource = UsageSource.MANUAL

    def __post_init__(self) -> None:
        """Validate debit constraints."""
        if self.tokens < 0:
            raise ValueError(f"Token amount cannot be negative: {self.tokens}")
        if self.subscription_id is not None and not self.subscription_id.strip():
            raise ValueError("Subscription id cannot be blank")


@dataclass(frozen=True)
class AdmissionDecision:
    """Result of the pre-flight quota check."""

    allowed: bool
    monthly_usage: int
    monthly_credits: int
    reason: str | None = None

    @property
    def remaining(self) -> int:
        return max(0, self.monthly_credits - self.monthly_usage)


@dataclass(frozen=True)
class UsageEstimate:
    """Estimated token usage and cost for one chat turn."""

    input_tokens: int
    output_tokens: int
    total_tokens: int
    estimated_cost: float


@dataclass(frozen=True)
class SubscriptionHandle:
    """Provider subscription created for an account, awaiting payment."""

    subscription_id: str
    plan_id: str
    status: str


@dataclass(frozen=True)
class PersonaDraft:
    """Persona fields supplied when picking an assistant from the catalog."""

    catalog_id: int
    name: str
    title: str = ""
    image: str = ""
    instruction: str = ""
    user_instruction: str = ""
    sample_questions: tuple[str, ...] = ()
    model_id: str | None = None

    def __post_init__(self) -> None:
        """Validate persona constraints."""
        if not self.name.strip():
            raise ValueError("Persona name cannot be empty")


@dataclass(frozen=True)
class PersonaData:
    """Immutable persona snapshot."""

    persona_id: UUID
    account_id: UUID
    catalog_id: int
    name: str
    title: str
    image: str
    instruction: str
    user_instruction: str
    sample_questions: tuple[str, ...]
    model_id: str
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class MessageData:
    """Immutable conversation message snapshot."""

    message_id: UUID
    account_id: UUID
    persona_id: UUID
    role: MessageRole
    content: str
    tokens_used: int
    model_used: str | None
    created_at: datetime


@dataclass(frozen=True)
class ChatReply:
    """Outcome of one relayed chat turn."""

    content: str
    tokens_used: int
    model_used: str | None
    degraded: bool = False
    tokens_estimated: bool = False
    account: AccountData | None = None


# ============================================================================
# OAuth Models (bearer token verification)
# ============================================================================


@dataclass(frozen=True)
class OAuthUser:
    """OAuth user information."""

    id: str
    email: str
    name: str | None = None
    picture: str | None = None

    def __post_init__(self) -> None:
        """Validate user has an email."""
        if not self.email:
            raise ValueError("OAuth user has no email")
