"""
Entitlement Transitions - Pure state transitions applied by the ledger.

Each transition is a tagged, immutable value with its own effect. The ledger
plans a sequence of transitions for a call and applies them in one atomic
step, so reset, upgrade, debit and cancel are independently testable.
"""

from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Protocol

from app.models.domain import EntitlementState
from app.models.pricing import PlanTier, allowance_for


class Transition(Protocol):
    """A single entitlement state change."""

    def apply(self, state: EntitlementState) -> EntitlementState: ...


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def is_rollover_due(last_reset_date: datetime, now: datetime) -> bool:
    """A reset is due when the UTC calendar month or year differs."""
    last = _as_utc(last_reset_date)
    current = _as_utc(now)
    return (last.year, last.month) != (current.year, current.month)


@dataclass(frozen=True)
class MonthlyReset:
    """Start a new cycle at the allowance of the account's current tier."""

    now: datetime

    def apply(self, state: EntitlementState) -> EntitlementState:
        allowance = allowance_for(state.tier)
        return replace(
            state,
            monthly_credits=allowance,
            monthly_usage=0,
            credits=allowance,
            last_reset_date=self.now,
        )


@dataclass(frozen=True)
class UpgradeActivate:
    """Move the account to PRO after a verified subscription payment."""

    subscription_id: str

    def __post_init__(self) -> None:
        if not self.subscription_id:
            raise ValueError("UpgradeActivate requires a subscription id")

    def apply(self, state: EntitlementState) -> EntitlementState:
        allowance = allowance_for(PlanTier.PRO)
        return replace(
            state,
            monthly_credits=allowance,
            credits=allowance,
            subscription_id=self.subscription_id,
        )


@dataclass(frozen=True)
class PlainDebit:
    """Record consumed tokens. Spendable credits clamp at zero; usage does not."""

    tokens: int

    def __post_init__(self) -> None:
        if self.tokens <= 0:
            raise ValueError(f"PlainDebit requires a positive token amount: {self.tokens}")

    def apply(self, state: EntitlementState) -> EntitlementState:
        return replace(
            state,
            monthly_usage=state.monthly_usage + self.tokens,
            total_usage=state.total_usage + self.tokens,
            credits=max(0, state.credits - self.tokens),
        )


@dataclass(frozen=True)
class CancelDowngrade:
    """Drop to FREE immediately. Usage counters are kept."""

    def apply(self, state: EntitlementState) -> EntitlementState:
        allowance = allowance_for(PlanTier.FREE)
        return replace(
            state,
            subscription_id=None,
            credits=allowance,
            monthly_credits=allowance,
        )


def plan_debit(
    state: EntitlementState,
    now: datetime,
    tokens: int,
    subscription_id: str | None = None,
) -> tuple[Transition, ...]:
    """
    Plan the transitions for one Debit call.

    Order: rollover reset, then upgrade activation, then the debit itself.
    """
    if tokens < 0:
        raise ValueError(f"Token amount cannot be negative: {tokens}")

    steps: list[Transition] = []
    if is_rollover_due(state.last_reset_date, now):
        steps.append(MonthlyReset(now=now))
    if subscription_id:
        steps.append(UpgradeActivate(subscription_id=subscription_id))
    if tokens > 0:
        steps.append(PlainDebit(tokens=tokens))
    return tuple(steps)


def apply_transitions(
    state: EntitlementState, transitions: tuple[Transition, ...]
) -> EntitlementState:
    """Fold transitions over a state."""
    for transition in transitions:
        state = transition.apply(state)
    return state


def transition_names(transitions: tuple[Transition, ...]) -> list[str]:
    """Tag names for logging."""
    return [type(t).__name__ for t in transitions]
