"""
Entitlement Ledger - Per-account token quota with write verification.

NO DICTIONARIES - All operations use strongly typed domain models.

Every mutation runs inside one transaction on a row locked with
SELECT ... FOR UPDATE, so concurrent debits for the same account
serialize and cumulate. The state change itself is planned as a sequence
of transitions (see app.services.transitions) and applied in one step.
"""

from collections.abc import Callable
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import Account, UsageEvent, utc_now
from app.exceptions import (
    AccountNotFoundError,
    DataIntegrityError,
    InvalidRequestError,
    QuotaExceededError,
    WriteVerificationError,
)
from app.models.domain import (
    AccountData,
    AdmissionDecision,
    DebitIntent,
    EntitlementState,
    UsageSource,
)
from app.observability.logging import get_logger
from app.observability.metrics import metrics
from app.services.cache import AccountCache
from app.services.transitions import (
    CancelDowngrade,
    MonthlyReset,
    Transition,
    apply_transitions,
    is_rollover_due,
    plan_debit,
    transition_names,
)

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def normalize_email(email: str) -> str:
    """Emails are stored and looked up trimmed and lowercased."""
    return email.strip().lower()


class EntitlementLedger:
    """
    Entitlement ledger with write verification.

    All write operations follow the pattern:
    1. Lock the account row
    2. Plan and apply transitions
    3. Flush, read back and verify
    4. Commit, then invalidate the cached snapshot
    """

    def __init__(
        self,
        session: AsyncSession,
        cache: AccountCache | None = None,
        clock: Clock = utc_now,
    ) -> None:
        """Initialize ledger with database session, optional read cache and clock."""
        self.session = session
        self.cache = cache
        self._clock = clock

    # ========================================================================
    # Reads
    # ========================================================================

    async def get_or_create(
        self, email: str, name: str | None = None, avatar: str | None = None
    ) -> AccountData:
        """
        Get existing account or create a FREE-tier one (upsert).

        An existing account is returned unchanged.
        """
        if not email or not email.strip():
            raise InvalidRequestError("email is required")
        email = normalize_email(email)

        account = await self._find_by_email(email)
        if account is not None:
            return self._remember(self._account_to_domain(account))

        fresh = EntitlementState.fresh(self._clock())
        new_account = Account(
            email=email,
            name=(name or "").strip() or email.split("@")[0],
            avatar=avatar,
            credits=fresh.credits,
            monthly_credits=fresh.monthly_credits,
            monthly_usage=fresh.monthly_usage,
            total_usage=fresh.total_usage,
            last_reset_date=fresh.last_reset_date,
            subscription_id=None,
        )
        self.session.add(new_account)

        try:
            await self.session.flush()
        except IntegrityError:
            # Race condition - account created by another request
            await self.session.rollback()
            account = await self._find_by_email(email)
            if account is None:
                raise WriteVerificationError("Account creation failed due to race condition")
            logger.info("account_create_race_resolved", email=email, account_id=str(account.id))
            return self._remember(self._account_to_domain(account))

        verified_account = await self.session.get(Account, new_account.id)
        if verified_account is None:
            raise WriteVerificationError(f"Account {new_account.id} not found after insert")

        await self.session.commit()

        metrics.accounts_created_total.inc()
        logger.info("account_created", account_id=str(verified_account.id), email=email)
        return self._remember(self._account_to_domain(verified_account))

    async def get_by_email(self, email: str) -> AccountData:
        """
        Get account by email, served from the read cache when fresh.

        Raises:
            AccountNotFoundError: Account doesn't exist
        """
        email = normalize_email(email)
        if self.cache is not None:
            cached = self.cache.get(email)
            if cached is not None:
                return cached

        account = await self._find_by_email(email)
        if account is None:
            raise AccountNotFoundError(email)
        return self._remember(self._account_to_domain(account))

    async def get_by_id(self, account_id: UUID) -> AccountData:
        """
        Get account by id.

        Raises:
            AccountNotFoundError: Account doesn't exist
        """
        stmt = select(Account).where(Account.id == account_id)
        result = await self.session.execute(stmt)
        account = result.scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(account_id)
        return self._account_to_domain(account)

    async def get(self, identifier: UUID | str) -> AccountData:
        """Look up an account by UUID account id or by email."""
        if isinstance(identifier, UUID):
            return await self.get_by_id(identifier)
        try:
            account_id = UUID(identifier)
        except ValueError:
            return await self.get_by_email(identifier)
        return await self.get_by_id(account_id)

    # ========================================================================
    # Writes
    # ========================================================================

    async def debit(
        self,
        account_id: UUID,
        tokens: int,
        subscription_id: str | None = None,
        model_id: str | None = None,
        source: UsageSource = UsageSource.MANUAL,
    ) -> AccountData:
        """
        Apply one debit: monthly rollover, upgrade activation, token usage.

        A zero-token call with a subscription id is an upgrade activation.

        Raises:
            InvalidRequestError: Negative token amount or blank subscription id
            AccountNotFoundError: Account doesn't exist
            DataIntegrityError: Read-back did not match the planned state
        """
        try:
            intent = DebitIntent(
                account_id=account_id,
                tokens=tokens,
                subscription_id=subscription_id,
                model_id=model_id,
                source=source,
            )
        except ValueError as exc:
            raise InvalidRequestError(str(exc)) from exc

        try:
            account = await self._lock_account_for_update(intent.account_id)
            if account is None:
                raise AccountNotFoundError(intent.account_id)

            before = self._state_of(account)
            steps = plan_debit(before, self._clock(), intent.tokens, intent.subscription_id)
            after = apply_transitions(before, steps)
            self._assign_state(account, after)

            if intent.tokens > 0:
                self.session.add(
                    UsageEvent(
                        account_id=account.id,
                        tokens=intent.tokens,
                        model_id=intent.model_id,
                        source=intent.source.value,
                        credits_before=before.credits,
                        credits_after=after.credits,
                    )
                )

            await self.session.flush()
            verified_account = await self._verify_state(account.id, after)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            metrics.record_debit(intent.source.value, False, intent.tokens)
            raise

        self._invalidate(verified_account.email)

        if any(isinstance(step, MonthlyReset) for step in steps):
            metrics.monthly_resets_total.inc()
        metrics.record_debit(intent.source.value, True, intent.tokens)
        logger.info(
            "account_debited",
            account_id=str(verified_account.id),
            tokens=intent.tokens,
            source=intent.source.value,
            model_id=intent.model_id,
            transitions=transition_names(steps),
            monthly_usage=after.monthly_usage,
            monthly_credits=after.monthly_credits,
            credits=after.credits,
        )
        return self._account_to_domain(verified_account)

    async def cancel_subscription(self, account_id: UUID) -> AccountData:
        """
        Drop the account to FREE immediately. Usage counters are kept.

        Raises:
            AccountNotFoundError: Account doesn't exist
        """
        steps: tuple[Transition, ...] = (CancelDowngrade(),)
        try:
            account = await self._lock_account_for_update(account_id)
            if account is None:
                raise AccountNotFoundError(account_id)

            previous_subscription = account.subscription_id
            after = apply_transitions(self._state_of(account), steps)
            self._assign_state(account, after)

            await self.session.flush()
            verified_account = await self._verify_state(account.id, after)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        self._invalidate(verified_account.email)
        logger.info(
            "account_subscription_cancelled",
            account_id=str(verified_account.id),
            previous_subscription_id=previous_subscription,
        )
        return self._account_to_domain(verified_account)

    # ========================================================================
    # Admission
    # ========================================================================

    def check_admission(self, account: AccountData) -> AdmissionDecision:
        """
        Pre-flight quota check. Advisory: nothing is reserved.

        An account whose month has rolled over is judged on its next-cycle
        allowance, since the next debit resets it first.
        """
        state = account.to_state()
        if is_rollover_due(state.last_reset_date, self._clock()):
            state = MonthlyReset(now=self._clock()).apply(state)

        allowed = state.monthly_credits > 0 and state.monthly_usage < state.monthly_credits
        metrics.record_admission(allowed)
        return AdmissionDecision(
            allowed=allowed,
            monthly_usage=state.monthly_usage,
            monthly_credits=state.monthly_credits,
            reason=None if allowed else "Monthly token quota exceeded",
        )

    def require_admission(self, account: AccountData) -> AdmissionDecision:
        """
        Raises:
            QuotaExceededError: Monthly allowance is used up
        """
        decision = self.check_admission(account)
        if not decision.allowed:
            logger.info(
                "admission_denied",
                account_id=str(account.account_id),
                monthly_usage=decision.monthly_usage,
                monthly_credits=decision.monthly_credits,
            )
            raise QuotaExceededError(
                account.account_id, decision.monthly_usage, decision.monthly_credits
            )
        return decision

    # ========================================================================
    # Private Helper Methods
    # ========================================================================

    async def _find_by_email(self, email: str) -> Account | None:
        stmt = select(Account).where(Account.email == email)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _lock_account_for_update(self, account_id: UUID) -> Account | None:
        """Lock account row for update (SELECT FOR UPDATE)."""
        stmt = select(Account).where(Account.id == account_id).with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _verify_state(self, account_id: UUID, expected: EntitlementState) -> Account:
        """Read the account back and check every quota field was written."""
        verified_account = await self.session.get(Account, account_id)
        if verified_account is None:
            metrics.db_write_verifications_total.labels(success="False").inc()
            raise WriteVerificationError(f"Account {account_id} disappeared after update")

        actual = self._state_of(verified_account)
        for field_name in (
            "credits",
            "monthly_credits",
            "monthly_usage",
            "total_usage",
            "subscription_id",
        ):
            want = getattr(expected, field_name)
            got = getattr(actual, field_name)
            if want != got:
                metrics.db_write_verifications_total.labels(success="False").inc()
                raise DataIntegrityError(
                    f"{field_name} mismatch: expected {want}, got {got}"
                )

        metrics.db_write_verifications_total.labels(success="True").inc()
        return verified_account

    @staticmethod
    def _state_of(account: Account) -> EntitlementState:
        return EntitlementState(
            credits=account.credits,
            monthly_credits=account.monthly_credits,
            monthly_usage=account.monthly_usage,
            total_usage=account.total_usage,
            last_reset_date=account.last_reset_date,
            subscription_id=account.subscription_id,
        )

    @staticmethod
    def _assign_state(account: Account, state: EntitlementState) -> None:
        account.credits = state.credits
        account.monthly_credits = state.monthly_credits
        account.monthly_usage = state.monthly_usage
        account.total_usage = state.total_usage
        account.last_reset_date = state.last_reset_date
        account.subscription_id = state.subscription_id

    def _remember(self, account: AccountData) -> AccountData:
        if self.cache is not None:
            self.cache.set(account)
        return account

    def _invalidate(self, email: str) -> None:
        if self.cache is not None:
            self.cache.invalidate(email)

    def _account_to_domain(self, account: Account) -> AccountData:
        """Convert ORM account to domain model."""
        return AccountData(
            account_id=account.id,
            email=account.email,
            name=account.name,
            avatar=account.avatar,
            credits=account.credits,
            monthly_credits=account.monthly_credits,
            monthly_usage=account.monthly_usage,
            total_usage=account.total_usage,
            last_reset_date=account.last_reset_date,
            subscription_id=account.subscription_id,
            created_at=account.created_at,
            updated_at=account.updated_at,
        )
