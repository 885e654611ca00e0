import json
import logging

from pydantic import ValidationError

from app.agent.artifacts import GeneratedSection, SectionRegenerateInput
from app.agent.base import BaseAgent
from app.agent.generation_config import get_model_config
from app.agent.llm_client import json_text_candidates
from app.agent.prompts.section import (
    SECTION_REGENERATE_SYSTEM_PROMPT,
    build_section_regenerate_prompt,
)

logger = logging.getLogger(__name__)


def parse_regenerated_section(text: str, fallback: GeneratedSection) -> GeneratedSection:
    for candidate in json_text_candidates(text):
        try:
            parsed = json.loads(candidate, strict=False)
            if isinstance(parsed, dict) and parsed.get("id") and parsed.get("title"):
                return GeneratedSection.model_validate(parsed)
        except (json.JSONDecodeError, ValidationError):
            continue
    logger.warning("Regenerated section %s was not JSON; keeping raw text as content", fallback.id)
    return fallback.model_copy(update={"content": text})


class SectionAgent(BaseAgent[SectionRegenerateInput, GeneratedSection]):
    """Rewrites a single report section from the asset manager's feedback."""

    async def run(self, input_data: SectionRegenerateInput) -> GeneratedSection:
        config = get_model_config(input_data.tier, "narrative")
        text = await self.llm.generate_text(
            SECTION_REGENERATE_SYSTEM_PROMPT,
            build_section_regenerate_prompt(
                section_id=input_data.section_id,
                section_title=input_data.section_title,
                current_content=input_data.current_content,
                user_notes=input_data.user_notes,
                section_guidance=input_data.section_guidance,
            ),
            temperature=config.temperature,
            max_tokens=config.max_tokens,
        )
        fallback = GeneratedSection(id=input_data.section_id, title=input_data.section_title)
        section = parse_regenerated_section(text, fallback)
        # The model may not rename or re-key the section it was asked to rewrite
        return section.model_copy(update={"id": input_data.section_id, "included": True})
