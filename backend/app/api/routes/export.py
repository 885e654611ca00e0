import logging
import re
import uuid
from typing import Any

from fastapi import APIRouter, HTTPException
from fastapi.responses import HTMLResponse, Response

from app import crud
from app.api.deps import CurrentUser, SessionDep, get_owned_property, get_owned_report
from app.export.html import build_print_html, build_report_html, report_title
from app.export.pdf import PdfRenderError, render_pdf
from app.models import PdfExportRequest

router = APIRouter()
logger = logging.getLogger(__name__)


def _safe_file_name(name: str) -> str:
    stem = re.sub(r"[^A-Za-z0-9._-]+", "_", name).strip("_") or "report"
    return stem if stem.lower().endswith(".pdf") else f"{stem}.pdf"


def _render_stored_report(session, report_id: uuid.UUID, current_user) -> tuple[str, str]:
    report = get_owned_report(session, report_id, current_user)
    db_property = get_owned_property(session, report.property_id, current_user)
    user_settings = crud.get_or_create_user_settings(session=session, user_id=current_user.id)
    title = report_title(report, db_property)
    return build_print_html(build_report_html(report, db_property, user_settings), title), title


@router.post("/pdf")
async def export_pdf(
    *, session: SessionDep, current_user: CurrentUser, body: PdfExportRequest
) -> Any:
    """
    Print HTML to PDF with headless Chromium. Either pass ``html`` directly or
    a ``report_id`` to render the stored report.
    """
    title = body.title or "Investor Report"
    if body.html and body.html.strip():
        html = body.html
        if "<html" not in html.lower():
            html = build_print_html(html, title)
    elif body.report_id:
        html, title = _render_stored_report(session, body.report_id, current_user)
    else:
        raise HTTPException(status_code=400, detail="HTML content is required")

    try:
        pdf_bytes = await render_pdf(html)
    except PdfRenderError:
        raise HTTPException(status_code=500, detail="Failed to generate PDF")

    file_name = _safe_file_name(body.file_name or title)
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{file_name}"'},
    )


@router.get("/reports/{id}/html", response_class=HTMLResponse)
def export_report_html(id: uuid.UUID, session: SessionDep, current_user: CurrentUser) -> Any:
    html, _ = _render_stored_report(session, id, current_user)
    return HTMLResponse(content=html)
