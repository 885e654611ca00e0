import json
import logging
import re
from collections.abc import AsyncIterator

from pydantic import ValidationError

from app.agent.artifacts import AnalysisSummary, GeneratedSection, NarrativeInput, NarrativeResponse
from app.agent.base import BaseAgent
from app.agent.data_validator import get_skip_reason
from app.agent.llm_client import balanced_json_span, json_text_candidates
from app.agent.prompts.narrative import build_narrative_system_prompt, build_narrative_user_prompt
from app.agent.sections import ALL_SECTIONS

logger = logging.getLogger(__name__)

_SECTION_START = re.compile(r'\{\s*"id"\s*:\s*"([^"]+)"\s*,\s*"title"\s*:\s*"([^"]+)"')
_CONTENT_FIELD = re.compile(r'"content"\s*:\s*"((?:[^"\\]|\\.)*)"')

TRUNCATED_NOTE = "Response JSON was truncated, recovered sections from partial output"
RAW_TEXT_NOTE = "Response was not valid JSON, raw content preserved"


def _recover_sections(text: str) -> list[GeneratedSection]:
    """Pull complete section objects out of a truncated narrative response."""
    sections: list[GeneratedSection] = []
    for match in _SECTION_START.finditer(text):
        span = balanced_json_span(text[match.start():])
        if span:
            try:
                sections.append(GeneratedSection.model_validate(json.loads(span, strict=False)))
                continue
            except (json.JSONDecodeError, ValidationError):
                pass
        content_match = _CONTENT_FIELD.search(text, match.end())
        if not content_match:
            continue
        try:
            content = json.loads(f'"{content_match.group(1)}"', strict=False)
        except json.JSONDecodeError:
            content = content_match.group(1)
        sections.append(GeneratedSection(id=match.group(1), title=match.group(2), content=content))
    return sections


def parse_narrative_response(text: str) -> NarrativeResponse:
    """Parse the narrative call's output, degrading instead of failing.

    Tries the JSON candidates first, then section-level recovery for truncated
    output, and finally keeps the raw text as a single "Report" section.
    """
    for candidate in json_text_candidates(text):
        try:
            parsed = json.loads(candidate, strict=False)
        except json.JSONDecodeError:
            continue
        if not isinstance(parsed, dict):
            continue
        if not (parsed.get("sections") or parsed.get("analysis_summary") or parsed.get("analysisSummary")):
            continue
        try:
            return NarrativeResponse.model_validate(parsed)
        except ValidationError as e:
            logger.warning("Narrative JSON did not match the expected shape: %s", e)

    recovered = _recover_sections(text)
    if recovered:
        logger.warning("Recovered %s sections from a truncated narrative response", len(recovered))
        return NarrativeResponse(
            sections=recovered,
            analysis_summary=AnalysisSummary(data_quality_notes=[TRUNCATED_NOTE]),
        )

    logger.warning("Narrative response was not JSON; storing raw text")
    return NarrativeResponse(
        sections=[GeneratedSection(id="executive_summary", title="Report", content=text)],
        analysis_summary=AnalysisSummary(data_quality_notes=[RAW_TEXT_NOTE]),
    )


class NarrativeAgent(BaseAgent[NarrativeInput, NarrativeResponse]):
    """
    Second call of the report pipeline: writes the sections from the validated
    extraction. Streams text so the caller can relay progress.
    """

    def build_prompts(self, input_data: NarrativeInput) -> tuple[str, str]:
        sections = [ALL_SECTIONS[section_id] for section_id in input_data.section_ids]
        system_prompt = build_narrative_system_prompt(
            tier=input_data.tier,
            property_name=input_data.property_name,
            property_address=input_data.property_address,
            unit_count=input_data.unit_count,
            investment_strategy=input_data.investment_strategy,
            historical_context=input_data.historical_context,
            company_name=input_data.company_name,
            logo_url=input_data.logo_url,
            ai_tone=input_data.ai_tone,
            sections=sections,
        )
        skip_reasons = {
            section_id: get_skip_reason(section_id, input_data.extracted_data) or ""
            for section_id in input_data.sections_to_skip
        }
        user_prompt = build_narrative_user_prompt(
            extracted_data_json=input_data.extracted_data.model_dump_json(indent=2),
            sections=sections,
            sections_to_skip=input_data.sections_to_skip,
            month=input_data.month,
            year=input_data.year,
            brand_colors=input_data.brand_colors,
            questionnaire=input_data.questionnaire,
            freeform_narrative=input_data.freeform_narrative,
            distribution_status=input_data.distribution_status,
            distribution_note=input_data.distribution_note,
            skip_reasons={k: v for k, v in skip_reasons.items() if v},
        )
        return system_prompt, user_prompt

    async def stream(self, input_data: NarrativeInput) -> AsyncIterator[str]:
        system_prompt, user_prompt = self.build_prompts(input_data)
        async for delta in self.llm.stream_text(
            system_prompt,
            user_prompt,
            temperature=input_data.temperature,
            max_tokens=input_data.max_tokens,
        ):
            yield delta

    async def run(self, input_data: NarrativeInput) -> NarrativeResponse:
        chunks = [delta async for delta in self.stream(input_data)]
        return finalize_sections(parse_narrative_response("".join(chunks)), input_data)


def finalize_sections(response: NarrativeResponse, input_data: NarrativeInput) -> NarrativeResponse:
    """Order sections as requested and make sure pre-skipped ones are present and excluded."""
    by_id = {section.id: section for section in response.sections}
    ordered: list[GeneratedSection] = []
    for section_id in input_data.section_ids:
        section = by_id.pop(section_id, None)
        if section_id in input_data.sections_to_skip:
            definition = ALL_SECTIONS[section_id]
            ordered.append(
                GeneratedSection(
                    id=section_id,
                    title=section.title if section else definition.title,
                    included=False,
                    skip_reason=get_skip_reason(section_id, input_data.extracted_data)
                    or "Insufficient data for this section",
                )
            )
        elif section is not None:
            ordered.append(section)
    # Sections the model returned under ids we did not ask for (e.g. the raw-text fallback)
    ordered.extend(by_id.values())
    return NarrativeResponse(sections=ordered, analysis_summary=response.analysis_summary)
