import uuid
from typing import Literal

from pydantic import BaseModel
from sqlmodel import Session

from app import crud
from app.core.config import settings

Tier = Literal["foundational", "professional", "institutional"]
CallType = Literal["extraction", "narrative"]

DEFAULT_TIER = "foundational"

TEMPERATURES: dict[CallType, dict[str, float]] = {
    "extraction": {"foundational": 0, "professional": 0, "institutional": 0},
    "narrative": {"foundational": 0.15, "professional": 0.2, "institutional": 0.25},
}

MAX_TOKENS: dict[CallType, dict[str, int]] = {
    "extraction": {"foundational": 2500, "professional": 4000, "institutional": 6000},
    "narrative": {"foundational": 8000, "professional": 20000, "institutional": 30000},
}

# (min sentences, max sentences, max paragraphs) per tier, with per-section overrides
SECTION_LENGTH: dict[str, dict[str, tuple[int, int, int]]] = {
    "foundational": {
        "default": (2, 3, 1),
    },
    "professional": {
        "default": (3, 5, 2),
        "executive_summary": (3, 4, 1),
    },
    "institutional": {
        "default": (4, 7, 3),
        "executive_summary": (3, 5, 2),
        "lease_analysis": (3, 5, 2),
        "leasing_activity": (3, 5, 2),
        "capex_needs": (3, 5, 2),
    },
}

CHART_ACCESS: dict[str, list[str]] = {
    "foundational": [],
    "professional": [
        "report_header",
        "budget_variance_table",
        "revenue_waterfall",
        "expense_horizontal_bars",
        "occupancy_gauge",
        "noi_trend_bars",
        "rent_roll_table",
        "risk_cards",
        "move_in_out_bars",
    ],
    "institutional": [
        "report_header",
        "budget_variance_table",
        "revenue_waterfall",
        "expense_horizontal_bars",
        "occupancy_gauge",
        "noi_trend_bars",
        "rent_roll_table",
        "risk_cards",
        "move_in_out_bars",
        "comparison_table",
    ],
}


class ModelConfig(BaseModel):
    model: str
    temperature: float
    max_tokens: int


def normalize_tier(tier: str | None) -> str:
    return tier if tier in TEMPERATURES["narrative"] else DEFAULT_TIER


def get_model_config(tier: str | None, call_type: CallType) -> ModelConfig:
    tier = normalize_tier(tier)
    return ModelConfig(
        model=settings.MODEL_DEFAULT,
        temperature=TEMPERATURES[call_type][tier],
        max_tokens=MAX_TOKENS[call_type][tier],
    )


def section_length_instruction(section_id: str, tier: str | None) -> str:
    lengths = SECTION_LENGTH[normalize_tier(tier)]
    low, high, paragraphs = lengths.get(section_id, lengths["default"])
    if paragraphs == 1:
        return f"Write {low}-{high} sentences in a single paragraph."
    return f"Write {low}-{high} sentences across 1-{paragraphs} paragraphs."


def charts_for_section(visualizations: list[str], tier: str | None) -> list[str]:
    available = CHART_ACCESS[normalize_tier(tier)]
    return [chart for chart in visualizations if chart in available]


def get_user_tier(*, session: Session, user_id: uuid.UUID) -> str:
    """Plan tier of the user's active subscription, ``foundational`` otherwise."""
    subscription = crud.get_subscription(session=session, user_id=user_id)
    if subscription and subscription.status == "active":
        return normalize_tier(subscription.plan_tier)
    return DEFAULT_TIER
