from app.agent.artifacts import ExtractedFinancialData, ExtractionInput
from app.agent.base import BaseAgent
from app.agent.prompts.extraction import (
    build_extraction_system_prompt,
    build_extraction_user_prompt,
)


class ExtractionAgent(BaseAgent[ExtractionInput, ExtractedFinancialData]):
    """
    First call of the report pipeline: reads the parsed documents and returns
    every figure the narrative may use as an ExtractedFinancialData artifact.
    """

    async def run(self, input_data: ExtractionInput) -> ExtractedFinancialData:
        system_prompt = build_extraction_system_prompt(
            property_name=input_data.property_name,
            property_address=input_data.property_address,
            unit_count=input_data.unit_count,
            month=input_data.month,
            year=input_data.year,
        )
        user_prompt = build_extraction_user_prompt(
            file_contents=input_data.file_contents,
            month=input_data.month,
            year=input_data.year,
        )
        return await self.llm.generate_structured(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            response_schema=ExtractedFinancialData,
            temperature=input_data.temperature,
            max_tokens=input_data.max_tokens,
        )
