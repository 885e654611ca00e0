from unittest.mock import patch

from app.agent.artifacts import BrandColors
from app.agent.generation_config import (
    charts_for_section,
    get_model_config,
    normalize_tier,
    section_length_instruction,
)
from app.agent.sections import TIER_SECTIONS, get_sections_for_tier
from app.billing.plans import PLAN_LIMITS, UNLIMITED, monthly_equivalent, plan_limits, price_id_for
from app.core.config import settings
from app.models import UserSettings


def test_section_count_matches_plan_limits():
    for tier, limits in PLAN_LIMITS.items():
        assert len(TIER_SECTIONS[tier]) == limits.sections


def test_template_is_filtered_to_tier():
    sections = get_sections_for_tier("foundational", ["market_analysis", "outlook"])

    assert [s.id for s in sections] == ["outlook"]


def test_template_outside_tier_falls_back_to_defaults():
    sections = get_sections_for_tier("foundational", ["market_analysis"])

    assert [s.id for s in sections] == TIER_SECTIONS["foundational"]


def test_unknown_tier_is_foundational():
    assert normalize_tier("enterprise") == "foundational"
    assert [s.id for s in get_sections_for_tier("enterprise")] == TIER_SECTIONS["foundational"]


def test_model_config_per_call_type():
    extraction = get_model_config("institutional", "extraction")
    narrative = get_model_config("institutional", "narrative")

    assert extraction.temperature == 0
    assert extraction.max_tokens == 6000
    assert narrative.temperature == 0.25
    assert narrative.max_tokens == 30000
    assert narrative.model == settings.MODEL_DEFAULT


def test_section_length_instruction_overrides():
    assert section_length_instruction("outlook", "foundational") == (
        "Write 2-3 sentences in a single paragraph."
    )
    assert section_length_instruction("executive_summary", "institutional") == (
        "Write 3-5 sentences across 1-2 paragraphs."
    )


def test_foundational_has_no_charts():
    assert charts_for_section(["occupancy_gauge"], "foundational") == []
    assert charts_for_section(["occupancy_gauge", "kpi_strip"], "professional") == ["occupancy_gauge"]


def test_plan_limits_and_prices():
    assert plan_limits("professional").max_reports_per_property == UNLIMITED
    assert plan_limits(None).max_reports_per_property == 1
    assert monthly_equivalent("foundational", "yearly") == 62.25
    with patch.object(settings, "STRIPE_PRICE_PROFESSIONAL_QUARTERLY", "price_pro_q"):
        assert price_id_for("professional", "quarterly") == "price_pro_q"


def test_brand_colors_from_settings():
    user_settings = UserSettings(accent_color="#101010", secondary_color="#F0F0F0", report_accent_color="")

    colors = BrandColors.from_user_settings(user_settings)

    assert colors.primary == "#101010"
    assert colors.secondary == "#F0F0F0"
    assert colors.accent == "#101010"
    assert BrandColors.from_user_settings(None) == BrandColors()
