"""
Database Models - SQLAlchemy ORM models with strict typing.

NO DICTIONARIES - All columns use Mapped[] type annotations.
"""

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    ARRAY,
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from app.models.pricing import FREE_MONTHLY_TOKENS


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class Account(Base):
    """
    ORM model for accounts table.

    One row per end user, holding the monthly token entitlement.
    """

    __tablename__ = "accounts"

    # Primary Key
    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)

    # Identity fields
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    avatar: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Entitlement
    credits: Mapped[int] = mapped_column(BigInteger, nullable=False, default=FREE_MONTHLY_TOKENS)
    monthly_credits: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=FREE_MONTHLY_TOKENS
    )
    monthly_usage: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_usage: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    last_reset_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    # Present exactly when the account is on the PRO tier
    subscription_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Audit timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("credits >= 0", name="ck_credits_non_negative"),
        CheckConstraint("monthly_credits > 0", name="ck_monthly_credits_positive"),
        CheckConstraint("monthly_usage >= 0", name="ck_monthly_usage_non_negative"),
        CheckConstraint("total_usage >= 0", name="ck_total_usage_non_negative"),
        Index(
            "idx_accounts_subscription_id",
            "subscription_id",
            postgresql_where=(subscription_id.isnot(None)),
        ),
        Index("idx_accounts_updated_at", "updated_at"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<Account(id={self.id}, email={self.email}, credits={self.credits}, "
            f"monthly_usage={self.monthly_usage}/{self.monthly_credits})>"
        )


class UsageEvent(Base):
    """
    ORM model for usage_events table.

    Immutable ledger of token debits.
    """

    __tablename__ = "usage_events"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    account_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("accounts.id"), nullable=False, index=True
    )
    tokens: Mapped[int] = mapped_column(BigInteger, nullable=False)
    model_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    source: Mapped[str] = mapped_column(String(20), nullable=False, default="manual")

    # Snapshots (denormalized for auditing)
    credits_before: Mapped[int] = mapped_column(BigInteger, nullable=False)
    credits_after: Mapped[int] = mapped_column(BigInteger, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("tokens > 0", name="ck_usage_tokens_positive"),
        CheckConstraint("source IN ('chat', 'manual')", name="ck_usage_source"),
        Index("idx_usage_events_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<UsageEvent(id={self.id}, account_id={self.account_id}, tokens={self.tokens})>"


class Persona(Base):
    """
    ORM model for personas table.

    User-owned assistant personas picked from the assistant catalog.
    """

    __tablename__ = "personas"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    account_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("accounts.id"), nullable=False
    )
    catalog_id: Mapped[int] = mapped_column(Integer, nullable=False)

    # Display metadata
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    image: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Behaviour
    instruction: Mapped[str] = mapped_column(Text, nullable=False, default="")
    user_instruction: Mapped[str] = mapped_column(Text, nullable=False, default="")
    sample_questions: Mapped[list[str]] = mapped_column(
        ARRAY(String), nullable=False, default=list
    )
    model_id: Mapped[str] = mapped_column(String(255), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (Index("idx_personas_account_created", "account_id", "created_at"),)

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<Persona(id={self.id}, account_id={self.account_id}, name={self.name})>"


class Message(Base):
    """
    ORM model for messages table.

    Conversation history between an account and one of its personas.
    """

    __tablename__ = "messages"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    account_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("accounts.id"), nullable=False
    )
    persona_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("personas.id"), nullable=False
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    tokens_used: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    model_used: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("role IN ('user', 'assistant')", name="ck_message_role"),
        CheckConstraint("tokens_used >= 0", name="ck_message_tokens_non_negative"),
        Index("idx_messages_account_persona_created", "account_id", "persona_id", "created_at"),
        Index("idx_messages_account_created", "account_id", "created_at"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<Message(id={self.id}, persona_id={self.persona_id}, role={self.role})>"
