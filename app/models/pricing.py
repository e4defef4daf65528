"""
Pricing Table - Plan allowances and per-model token pricing.

Pure data. Model identifiers are a closed enumeration; unknown ids resolve
to DEFAULT_MODEL explicitly instead of falling through a dict lookup.
"""

from dataclasses import dataclass
from enum import Enum


class PlanTier(str, Enum):
    """Subscription tier enumeration."""

    FREE = "free"
    PRO = "pro"


FREE_MONTHLY_TOKENS = 5_000
PRO_MONTHLY_TOKENS = 100_000

PLAN_ALLOWANCES: dict[PlanTier, int] = {
    PlanTier.FREE: FREE_MONTHLY_TOKENS,
    PlanTier.PRO: PRO_MONTHLY_TOKENS,
}


def allowance_for(tier: PlanTier) -> int:
    """Monthly token allowance for a tier."""
    return PLAN_ALLOWANCES[tier]


def tier_for_subscription(subscription_id: str | None) -> PlanTier:
    """Tier is PRO exactly when a subscription id is held."""
    return PlanTier.PRO if subscription_id else PlanTier.FREE


class ModelId(str, Enum):
    """OpenRouter model identifiers offered to personas."""

    GPT_35_TURBO = "openai/gpt-3.5-turbo"
    GPT_4O_MINI = "openai/gpt-4o-mini"
    GEMINI_20_FLASH_LITE = "google/gemini-2.0-flash-lite-001"
    GEMINI_25_FLASH_LITE = "google/gemini-2.5-flash-lite"
    MISTRAL_SABA = "mistralai/mistral-saba"
    CLAUDE_35_HAIKU = "anthropic/claude-3-5-haiku"
    DEEPSEEK_CODER = "deepseek/deepseek-coder-33b-instruct"


DEFAULT_MODEL = ModelId.GPT_35_TURBO
FALLBACK_MODEL = ModelId.GPT_35_TURBO
DEFAULT_PERSONA_MODEL = ModelId.DEEPSEEK_CODER


@dataclass(frozen=True)
class ModelPricing:
    """USD cost per 1000 tokens."""

    input_cost_per_1k: float
    output_cost_per_1k: float

    def __post_init__(self) -> None:
        """Validate rates."""
        if self.input_cost_per_1k < 0 or self.output_cost_per_1k < 0:
            raise ValueError("Token rates cannot be negative")

    @property
    def combined_cost_per_1k(self) -> float:
        return self.input_cost_per_1k + self.output_cost_per_1k


MODEL_PRICING: dict[ModelId, ModelPricing] = {
    ModelId.GEMINI_20_FLASH_LITE: ModelPricing(0.000075, 0.0003),
    ModelId.GPT_4O_MINI: ModelPricing(0.00015, 0.0006),
    ModelId.GPT_35_TURBO: ModelPricing(0.0005, 0.0015),
    ModelId.MISTRAL_SABA: ModelPricing(0.00014, 0.00042),
    ModelId.CLAUDE_35_HAIKU: ModelPricing(0.00025, 0.00125),
    ModelId.DEEPSEEK_CODER: ModelPricing(0.00007, 0.00014),
    ModelId.GEMINI_25_FLASH_LITE: ModelPricing(0.000075, 0.0003),
}


def resolve_model(model_id: str | ModelId | None) -> ModelId:
    """Map a raw model id onto the closed set, falling back to DEFAULT_MODEL."""
    if isinstance(model_id, ModelId):
        return model_id
    if not model_id:
        return DEFAULT_MODEL
    try:
        return ModelId(model_id)
    except ValueError:
        return DEFAULT_MODEL


def is_known_model(model_id: str) -> bool:
    """Check whether a raw model id is in the catalog."""
    return model_id in {m.value for m in ModelId}


def pricing_for(model_id: str | ModelId | None) -> ModelPricing:
    """Pricing for a model id (default model pricing for unknown ids)."""
    return MODEL_PRICING[resolve_model(model_id)]
