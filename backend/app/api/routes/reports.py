import logging
import uuid
from typing import Any

from fastapi import APIRouter, HTTPException
from sqlalchemy.exc import OperationalError
from sse_starlette.sse import EventSourceResponse

from app import crud
from app.agent.artifacts import GeneratedSection
from app.agent.generation_config import get_user_tier
from app.agent.orchestrator import (
    InvalidSectionError,
    SectionNotFoundError,
    regenerate_report_section,
    run_report_pipeline,
)
from app.agent.sections import SectionDefinition, get_sections_for_tier
from app.api.deps import (
    CurrentUser,
    SessionDep,
    StorageDep,
    get_owned_property,
    get_owned_report,
)
from app.billing.plans import UNLIMITED, plan_limits
from app.core.config import settings
from app.models import (
    REVIEW_STATUSES,
    Message,
    PropertyPublic,
    RegenerateSectionRequest,
    ReportCreate,
    ReportGenerationStatus,
    ReportListItem,
    ReportPeriod,
    ReportPublic,
    ReportsPublic,
    ReportStats,
    ReportUpdate,
    ReportWithProperty,
    ReviewStatusUpdate,
    get_datetime_utc,
)
from app.storage import remove_quietly

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/", response_model=ReportsPublic)
def read_reports(
    session: SessionDep,
    current_user: CurrentUser,
    property_id: uuid.UUID | None = None,
) -> Any:
    reports = crud.get_user_reports(
        session=session, user_id=current_user.id, property_id=property_id
    )
    property_names = {
        p.id: p.name
        for p in crud.get_user_properties(session=session, user_id=current_user.id)
    }
    now = get_datetime_utc()
    stats = ReportStats(total=len(reports))
    for report in reports:
        if report.status in ("complete", "draft", "generating", "error"):
            setattr(stats, report.status, getattr(stats, report.status) + 1)
        created = report.created_at
        if created and created.year == now.year and created.month == now.month:
            stats.this_month += 1
    month, year = crud.current_report_period()
    data = [
        ReportListItem.model_validate(
            report, update={"property_name": property_names.get(report.property_id)}
        )
        for report in reports
    ]
    return ReportsPublic(
        data=data,
        count=len(data),
        stats=stats,
        current_period=ReportPeriod(month=month, year=year),
    )


@router.post("/", response_model=ReportPublic)
def create_report(
    *, session: SessionDep, current_user: CurrentUser, report_in: ReportCreate
) -> Any:
    """
    Create a draft report for one property and period, within the plan's per-period limit.
    """
    get_owned_property(session, report_in.property_id, current_user)
    tier = get_user_tier(session=session, user_id=current_user.id)
    limit = plan_limits(tier).max_reports_per_property
    if limit != UNLIMITED:
        existing = crud.count_period_reports(
            session=session,
            property_id=report_in.property_id,
            month=report_in.month,
            year=report_in.year,
        )
        if existing >= limit:
            raise HTTPException(
                status_code=403,
                detail=(
                    f"Your {tier} plan allows {limit} report per property per month. "
                    "Upgrade to create more."
                ),
            )
    return crud.create_report(session=session, report_in=report_in, user_id=current_user.id)


@router.get("/{id}", response_model=ReportWithProperty)
def read_report(id: uuid.UUID, session: SessionDep, current_user: CurrentUser) -> Any:
    report = get_owned_report(session, id, current_user)
    db_property = get_owned_property(session, report.property_id, current_user)
    return ReportWithProperty.model_validate(
        report, update={"property": PropertyPublic.model_validate(db_property)}
    )


@router.patch("/{id}", response_model=ReportPublic)
def update_report(
    *,
    id: uuid.UUID,
    session: SessionDep,
    current_user: CurrentUser,
    report_in: ReportUpdate,
) -> Any:
    report = get_owned_report(session, id, current_user)
    return crud.update_report(session=session, db_report=report, report_in=report_in)


@router.delete("/{id}", response_model=Message)
def delete_report(
    id: uuid.UUID, session: SessionDep, current_user: CurrentUser, storage: StorageDep
) -> Any:
    report = get_owned_report(session, id, current_user)
    paths = [f.storage_path for f in crud.get_report_files(session=session, report_id=id)]
    if paths:
        remove_quietly(storage, settings.REPORT_FILES_BUCKET, paths)
    session.delete(report)
    session.commit()
    return Message(message="Report deleted successfully")


@router.get("/{id}/status", response_model=ReportGenerationStatus)
def read_report_status(id: uuid.UUID, session: SessionDep, current_user: CurrentUser) -> Any:
    return get_owned_report(session, id, current_user)


@router.patch("/{id}/review-status", response_model=ReportPublic)
def update_review_status(
    *,
    id: uuid.UUID,
    session: SessionDep,
    current_user: CurrentUser,
    body: ReviewStatusUpdate,
) -> Any:
    if body.review_status not in REVIEW_STATUSES:
        raise HTTPException(status_code=400, detail="Invalid review status")
    report = get_owned_report(session, id, current_user)
    return crud.update_report(
        session=session, db_report=report, report_in={"review_status": body.review_status}
    )


@router.get("/{id}/sections", response_model=list[SectionDefinition])
def read_report_sections(id: uuid.UUID, session: SessionDep, current_user: CurrentUser) -> Any:
    get_owned_report(session, id, current_user)
    tier = get_user_tier(session=session, user_id=current_user.id)
    user_settings = crud.get_or_create_user_settings(session=session, user_id=current_user.id)
    return get_sections_for_tier(tier, user_settings.report_template)


@router.post("/{id}/generate")
async def generate_report(
    id: uuid.UUID,
    session: SessionDep,
    current_user: CurrentUser,
    storage: StorageDep,
):
    """Run the two-call generation pipeline and stream progress via SSE."""
    try:
        report = get_owned_report(session, id, current_user)
    except OperationalError as exc:
        logger.error("DB unavailable while starting report generation: %s", exc)
        raise HTTPException(
            status_code=503,
            detail="Database connection unavailable. Please retry in a moment.",
        ) from exc
    if report.status == "generating":
        raise HTTPException(status_code=409, detail="Report is already generating")
    return EventSourceResponse(run_report_pipeline(session, storage, report, current_user))


@router.post("/{id}/regenerate-section", response_model=GeneratedSection)
async def regenerate_section(
    *,
    id: uuid.UUID,
    session: SessionDep,
    current_user: CurrentUser,
    body: RegenerateSectionRequest,
) -> Any:
    report = get_owned_report(session, id, current_user)
    try:
        return await regenerate_report_section(
            session=session,
            report=report,
            section_id=body.section_id,
            user_notes=body.user_notes or "Improve this section",
        )
    except InvalidSectionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SectionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Section regeneration failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))
