from typing import Any

from fastapi import APIRouter

from app import crud
from app.api.deps import CurrentUser, SessionDep
from app.models import (
    DashboardPublic,
    DashboardStats,
    PropertyPublic,
    ReportListItem,
    ReportPeriod,
    get_datetime_utc,
)

router = APIRouter()

RECENT_LIMIT = 5
NEEDING_REPORTS_LIMIT = 3


@router.get("/", response_model=DashboardPublic)
def read_dashboard(session: SessionDep, current_user: CurrentUser) -> Any:
    """
    Portfolio overview: counts, recent activity and properties still missing
    a report for the current reporting period.
    """
    properties = crud.get_user_properties(session=session, user_id=current_user.id)
    reports = crud.get_user_reports(session=session, user_id=current_user.id)
    names = {p.id: p.name for p in properties}

    now = get_datetime_utc()
    month, year = crud.current_report_period()
    reported = {r.property_id for r in reports if r.month == month and r.year == year}
    needing = [p for p in properties if p.id not in reported]

    stats = DashboardStats(
        total_properties=len(properties),
        total_units=sum(p.units or 0 for p in properties),
        reports_this_month=sum(
            1
            for r in reports
            if r.created_at and r.created_at.year == now.year and r.created_at.month == now.month
        ),
        completed_reports=sum(1 for r in reports if r.status == "complete"),
        pending_reports=sum(1 for r in reports if r.status in ("draft", "generating")),
        properties_needing_reports=len(needing),
    )
    return DashboardPublic(
        stats=stats,
        current_period=ReportPeriod(month=month, year=year),
        properties=[PropertyPublic.model_validate(p) for p in properties[:RECENT_LIMIT]],
        recent_reports=[
            ReportListItem.model_validate(r, update={"property_name": names.get(r.property_id)})
            for r in reports[:RECENT_LIMIT]
        ],
        properties_needing_reports=[
            PropertyPublic.model_validate(p) for p in needing[:NEEDING_REPORTS_LIMIT]
        ],
    )
