import json
from unittest.mock import AsyncMock, patch

import pytest

from app.agent.artifacts import (
    ExtractedFinancialData,
    GeneratedSection,
    NarrativeInput,
    NarrativeResponse,
    SectionRegenerateInput,
)
from app.agent.narrative_agent import (
    RAW_TEXT_NOTE,
    TRUNCATED_NOTE,
    NarrativeAgent,
    finalize_sections,
    parse_narrative_response,
)
from app.agent.section_agent import SectionAgent, parse_regenerated_section


def _input(section_ids, sections_to_skip=()) -> NarrativeInput:
    return NarrativeInput(
        tier="professional",
        month=9,
        year=2026,
        property_name="Maple Court",
        unit_count=48,
        section_ids=list(section_ids),
        sections_to_skip=list(sections_to_skip),
        extracted_data=ExtractedFinancialData.model_validate(
            {"data_quality": {"t12_found": True, "rent_roll_found": False}}
        ),
    )


def test_parse_narrative_response_reads_fenced_json():
    payload = {
        "sections": [
            {
                "id": "executive_summary",
                "title": "Executive Summary",
                "content": "NOI reached $58,000.",
                "metrics": [{"label": "NOI", "value": "$58,000", "changeDirection": "up"}],
                "skipReason": None,
            }
        ],
        "analysisSummary": {"overall_sentiment": "positive", "key_findings": ["NOI up"]},
    }
    text = f"Here is the report:\n```json\n{json.dumps(payload)}\n```"

    response = parse_narrative_response(text)

    assert response.sections[0].metrics[0].change_direction == "up"
    assert response.analysis_summary.overall_sentiment == "positive"


def test_parse_narrative_response_recovers_truncated_output():
    text = (
        '{"sections": ['
        '{"id": "executive_summary", "title": "Executive Summary", "content": "Strong month.", "included": true},'
        '{"id": "outlook", "title": "Outlook", "content": "Expect stable \\"occupancy\\" into Q4'
    )

    response = parse_narrative_response(text)

    assert [s.id for s in response.sections] == ["executive_summary"]
    assert response.sections[0].content == "Strong month."
    assert response.analysis_summary.data_quality_notes == [TRUNCATED_NOTE]


def test_parse_narrative_response_keeps_raw_text():
    response = parse_narrative_response("The property performed well this month.")

    assert len(response.sections) == 1
    assert response.sections[0].title == "Report"
    assert response.sections[0].content == "The property performed well this month."
    assert response.analysis_summary.data_quality_notes == [RAW_TEXT_NOTE]


def test_finalize_sections_orders_and_marks_skipped():
    response = NarrativeResponse(
        sections=[
            GeneratedSection(id="outlook", title="Outlook", content="Stable."),
            GeneratedSection(id="executive_summary", title="Executive Summary", content="Good."),
        ]
    )

    final = finalize_sections(
        response,
        _input(["executive_summary", "lease_analysis", "outlook"], sections_to_skip=["lease_analysis"]),
    )

    assert [s.id for s in final.sections] == ["executive_summary", "lease_analysis", "outlook"]
    skipped = final.sections[1]
    assert skipped.included is False
    assert skipped.title == "Lease Expiration & Renewal Analysis"
    assert skipped.skip_reason.startswith("Rent roll not uploaded")


def test_narrative_prompts_include_sections_and_skip_reasons():
    with patch("app.agent.llm_client.AsyncOpenAI"):
        agent = NarrativeAgent(model_name="test-model")

    system_prompt, user_prompt = agent.build_prompts(
        _input(["executive_summary", "lease_analysis"], sections_to_skip=["lease_analysis"])
    )

    assert "Maple Court" in system_prompt
    assert "executive_summary" in user_prompt
    assert "Rent roll not uploaded" in user_prompt


@pytest.mark.asyncio
async def test_narrative_agent_run_joins_stream():
    async def fake_stream(*args, **kwargs):
        yield '{"sections": [{"id": "outlook", '
        yield '"title": "Outlook", "content": "Stable."}]}'

    with patch("app.agent.llm_client.AsyncOpenAI"):
        agent = NarrativeAgent(model_name="test-model")
    agent.llm.stream_text = fake_stream

    response = await agent.run(_input(["outlook"]))

    assert [s.content for s in response.sections] == ["Stable."]


def test_parse_regenerated_section_falls_back_to_raw_text():
    fallback = GeneratedSection(id="outlook", title="Outlook")

    section = parse_regenerated_section("Occupancy should stay near 95%.", fallback)

    assert section.id == "outlook"
    assert section.content == "Occupancy should stay near 95%."


@pytest.mark.asyncio
async def test_section_agent_keeps_requested_id():
    with patch("app.agent.llm_client.AsyncOpenAI"):
        agent = SectionAgent(model_name="test-model")
    agent.llm.generate_text = AsyncMock(
        return_value='{"id": "summary", "title": "Outlook", "content": "Revised.", "included": false}'
    )

    section = await agent.run(
        SectionRegenerateInput(
            section_id="outlook",
            section_title="Outlook",
            current_content="Old.",
            user_notes="Shorter",
            section_guidance="Forward-looking outlook",
            tier="institutional",
        )
    )

    assert section.id == "outlook"
    assert section.included is True
    assert section.content == "Revised."
    prompt = agent.llm.generate_text.await_args.args[1]
    assert "Shorter" in prompt
    assert agent.llm.generate_text.await_args.kwargs["temperature"] == 0.25
