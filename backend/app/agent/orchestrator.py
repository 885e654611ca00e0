import json
import logging
import uuid

from sqlmodel import Session

from app import crud
from app.agent.artifacts import (
    BrandColors,
    ExtractionInput,
    GeneratedSection,
    NarrativeInput,
    SectionRegenerateInput,
)
from app.agent.data_validator import validate_extracted_data
from app.agent.extraction_agent import ExtractionAgent
from app.agent.generation_config import get_model_config, get_user_tier, normalize_tier
from app.agent.llm_client import LLMUsage
from app.agent.narrative_agent import NarrativeAgent, finalize_sections, parse_narrative_response
from app.agent.section_agent import SectionAgent
from app.agent.sections import ALL_SECTIONS, get_sections_for_tier
from app.core.config import settings
from app.file_parser import parse_uploaded_file, validate_t12_month
from app.models import Property, Report, User, get_datetime_utc
from app.storage import StorageClient, StorageError

logger = logging.getLogger(__name__)

PIPELINE_NAME = "core"
T12_REQUIRED_MESSAGE = "A T-12 operating statement is required to generate a report"


class PipelineError(Exception):
    """A report cannot be generated from the current inputs."""


class InvalidSectionError(ValueError):
    pass


class SectionNotFoundError(LookupError):
    pass


def _event(event_type: str, **payload) -> str:
    return json.dumps({"type": event_type, **payload})


def _rollback_session_safely(session: Session) -> None:
    try:
        session.rollback()
    except Exception as exc:
        logger.warning("Session rollback failed: %s", exc)


def _update_report_status_safely(session: Session, report_id: uuid.UUID, status: str) -> None:
    try:
        report = session.get(Report, report_id)
        if report is None:
            return
        crud.update_report(
            session=session,
            db_report=report,
            report_in={"status": status, "generation_status": status},
        )
    except Exception as exc:
        logger.warning("Failed to update report %s to %s: %s", report_id, status, exc)


def load_report_documents(
    *, session: Session, storage: StorageClient, report: Report, property: Property
) -> dict[str, str]:
    """Download and parse every file attached to the report, keyed by file type.

    Files that cannot be downloaded or parsed are skipped with a warning. When
    the report has no budget of its own, the property's budget is used.
    """
    file_contents: dict[str, str] = {}
    for report_file in crud.get_report_files(session=session, report_id=report.id):
        try:
            data = storage.download(settings.REPORT_FILES_BUCKET, report_file.storage_path)
        except StorageError as exc:
            logger.warning("Skipping %s for report %s: %s", report_file.file_name, report.id, exc)
            continue
        parsed = parse_uploaded_file(data, report_file.file_name)
        if parsed.success:
            file_contents[report_file.file_type] = parsed.content
        else:
            logger.warning("Could not parse %s: %s", report_file.file_name, parsed.error)

    if not file_contents.get("budget") and property.budget_file_path:
        try:
            data = storage.download(settings.REPORT_FILES_BUCKET, property.budget_file_path)
        except StorageError as exc:
            logger.warning("Property budget for %s unavailable: %s", property.id, exc)
        else:
            parsed = parse_uploaded_file(data, property.budget_file_name or "budget.xlsx")
            if parsed.success:
                file_contents["budget"] = parsed.content
    return file_contents


def build_historical_context(*, session: Session, report: Report) -> str | None:
    prior = crud.get_prior_complete_report(
        session=session, property_id=report.property_id, month=report.month, year=report.year
    )
    if prior is None or not prior.generated_sections:
        return None
    lines = [
        f"{metric.get('label')}: {metric.get('value')}"
        for section in prior.generated_sections
        if isinstance(section, dict)
        for metric in section.get("metrics") or []
        if isinstance(metric, dict)
    ]
    if not lines:
        return None
    return f"Prior month ({prior.month}/{prior.year}) key metrics:\n" + "\n".join(lines)


def rebuild_narrative(sections: list[GeneratedSection] | list[dict]) -> str:
    """Flatten the included sections into the markdown narrative stored on the report."""
    blocks = []
    for section in sections:
        if isinstance(section, dict):
            section = GeneratedSection.model_validate(section)
        if section.included:
            blocks.append(f"## {section.title}\n\n{section.content}")
    return "\n\n".join(blocks)


async def run_report_pipeline(
    session: Session,
    storage: StorageClient,
    report: Report,
    user: User,
):
    """
    Runs extraction, validation and the narrative call for one report,
    persisting the result and yielding SSE events for the frontend.
    """
    report_id = report.id
    try:
        crud.update_report(
            session=session,
            db_report=report,
            report_in={
                "status": "generating",
                "generation_status": "generating",
                "generation_started_at": get_datetime_utc(),
            },
        )
        yield _event("status", message="Preparing documents...")

        property = session.get(Property, report.property_id)
        if property is None:
            raise PipelineError("Property not found")
        user_settings = crud.get_or_create_user_settings(session=session, user_id=user.id)
        tier = get_user_tier(session=session, user_id=user.id)
        sections = get_sections_for_tier(tier, user_settings.report_template)

        file_contents = load_report_documents(
            session=session, storage=storage, report=report, property=property
        )
        if not file_contents.get("t12"):
            raise PipelineError(T12_REQUIRED_MESSAGE)
        month_ok, month_message = validate_t12_month(file_contents["t12"], report.month, report.year)
        if not month_ok:
            raise PipelineError(month_message)

        # Call 1: extraction
        yield _event("status", message="Extracting financial data...")
        extraction_config = get_model_config(tier, "extraction")
        extraction_agent = ExtractionAgent(model_name=extraction_config.model)
        extracted = await extraction_agent.run(
            ExtractionInput(
                property_name=property.name,
                property_address=property.address,
                unit_count=property.units,
                month=report.month,
                year=report.year,
                file_contents=file_contents,
                temperature=extraction_config.temperature,
                max_tokens=extraction_config.max_tokens,
            )
        )
        extraction_usage = extraction_agent.usage

        section_ids = [section.id for section in sections]
        validation = validate_extracted_data(extracted, section_ids, expected_units=property.units)
        if not validation.valid:
            raise PipelineError(f"Data validation failed: {'; '.join(validation.errors)}")
        for warning in validation.warnings:
            logger.info("Report %s validation: %s", report_id, warning)

        narrative_config = get_model_config(tier, "narrative")
        raw_analysis = {
            "extraction": validation.corrected.model_dump(),
            "validation_warnings": validation.warnings,
            "sections_skipped": validation.sections_to_skip,
            "pipeline": PIPELINE_NAME,
            "extraction_model": extraction_config.model,
            "narrative_model": narrative_config.model,
            "extraction_tokens": extraction_usage.model_dump(),
        }
        crud.update_report(
            session=session,
            db_report=report,
            report_in={"financial_data": validation.corrected.model_dump(), "raw_analysis": raw_analysis},
        )

        # Call 2: narrative
        yield _event("status", message="Writing report...")
        narrative_input = NarrativeInput(
            tier=tier,
            month=report.month,
            year=report.year,
            property_name=property.name,
            property_address=property.address,
            unit_count=property.units,
            investment_strategy=property.investment_strategy,
            company_name=user_settings.company_name,
            logo_url=user_settings.company_logo_url,
            ai_tone=user_settings.ai_tone or "balanced",
            historical_context=build_historical_context(session=session, report=report),
            section_ids=section_ids,
            sections_to_skip=validation.sections_to_skip,
            extracted_data=validation.corrected,
            questionnaire=report.questionnaire or {},
            freeform_narrative=report.freeform_narrative,
            distribution_status=report.distribution_status,
            distribution_note=report.distribution_note,
            brand_colors=BrandColors.from_user_settings(user_settings),
            temperature=narrative_config.temperature,
            max_tokens=narrative_config.max_tokens,
        )
        narrative_agent = NarrativeAgent(model_name=narrative_config.model)
        chunks: list[str] = []
        async for delta in narrative_agent.stream(narrative_input):
            chunks.append(delta)
            yield _event("text", text=delta)

        response = finalize_sections(parse_narrative_response("".join(chunks)), narrative_input)
        usage = extraction_usage.add(narrative_agent.usage)
        generated_sections = [section.model_dump() for section in response.sections]

        crud.update_report(
            session=session,
            db_report=report,
            report_in={
                "status": "complete",
                "generation_status": "completed",
                "generation_completed_at": get_datetime_utc(),
                "generated_sections": generated_sections,
                "narrative": rebuild_narrative(response.sections),
                "raw_analysis": {
                    **raw_analysis,
                    "analysis_summary": response.analysis_summary.model_dump(),
                },
                "generation_config": {
                    "tier": tier,
                    "model": narrative_config.model,
                    "pipeline": PIPELINE_NAME,
                    "usage": usage.model_dump(),
                    "files_used": sorted(file_contents),
                },
            },
        )
        logger.info(
            "Report %s generated: %s sections, %s input / %s output tokens",
            report_id,
            len(generated_sections),
            usage.input_tokens,
            usage.output_tokens,
        )
        yield _event("usage", input_tokens=usage.input_tokens, output_tokens=usage.output_tokens)
        yield _event("done", report_id=str(report_id), sections=generated_sections)

    except Exception as e:
        logger.error(f"Pipeline error: {e}", exc_info=True)
        _rollback_session_safely(session)
        yield _event("error", message=str(e))
        _update_report_status_safely(session=session, report_id=report_id, status="error")


async def regenerate_report_section(
    *,
    session: Session,
    report: Report,
    section_id: str,
    user_notes: str,
) -> GeneratedSection:
    """Rewrite one generated section in place and refresh the stored narrative.

    Raises ``InvalidSectionError`` for ids that are not report sections and
    ``SectionNotFoundError`` when the report has no such section yet.
    """
    definition = ALL_SECTIONS.get(section_id)
    if definition is None:
        raise InvalidSectionError("Invalid section ID")
    current_sections = [
        GeneratedSection.model_validate(section) for section in report.generated_sections or []
    ]
    current = next((section for section in current_sections if section.id == section_id), None)
    if current is None:
        raise SectionNotFoundError("Section not found")

    tier = normalize_tier((report.generation_config or {}).get("tier"))
    config = get_model_config(tier, "narrative")
    agent = SectionAgent(model_name=config.model)
    regenerated = await agent.run(
        SectionRegenerateInput(
            section_id=section_id,
            section_title=definition.title,
            current_content=current.content,
            user_notes=user_notes,
            section_guidance=definition.prompt_guidance,
            tier=tier,
        )
    )

    updated = [regenerated if section.id == section_id else section for section in current_sections]
    crud.update_report(
        session=session,
        db_report=report,
        report_in={
            "generated_sections": [section.model_dump() for section in updated],
            "narrative": rebuild_narrative(updated),
        },
    )
    return regenerated
