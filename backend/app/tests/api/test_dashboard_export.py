from unittest.mock import AsyncMock, patch

from app import crud
from app.core.config import settings
from app.export.pdf import PdfRenderError
from app.models import Property, Report

API = settings.API_V1_STR


def test_dashboard_lists_properties_needing_reports(client, headers, session, user, property_):
    month, year = crud.current_report_period()
    reported = Property(name="Birch Flats", units=30, user_id=user.id)
    session.add(reported)
    session.commit()
    session.add(
        Report(property_id=reported.id, user_id=user.id, month=month, year=year, status="complete")
    )
    session.commit()

    response = client.get(f"{API}/dashboard/", headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["stats"]["total_properties"] == 2
    assert body["stats"]["total_units"] == 78
    assert body["stats"]["completed_reports"] == 1
    assert body["stats"]["properties_needing_reports"] == 1
    assert [p["name"] for p in body["properties_needing_reports"]] == ["Maple Court"]
    assert body["current_period"] == {"month": month, "year": year}
    assert body["recent_reports"][0]["property_name"] == "Birch Flats"


def test_report_html_uses_branding(client, headers, session, user, report):
    crud.update_user_settings(
        session=session,
        user_id=user.id,
        settings_in={"company_name": "Harbor Capital", "report_accent_color": "#112233"},
    )
    report.generated_sections = [
        {"id": "executive_summary", "title": "Executive Summary", "content": "NOI rose **4%**."},
        {"id": "outlook", "title": "Outlook", "content": "", "included": False},
    ]
    session.add(report)
    session.commit()

    response = client.get(f"{API}/export/reports/{report.id}/html", headers=headers)

    assert response.status_code == 200
    assert "Harbor Capital" in response.text
    assert "#112233" in response.text
    assert "<strong>4%</strong>" in response.text
    assert "Outlook" not in response.text


def test_pdf_export_from_html(client, headers):
    with patch(
        "app.api.routes.export.render_pdf", new=AsyncMock(return_value=b"%PDF-1.7")
    ) as render:
        response = client.post(
            f"{API}/export/pdf",
            headers=headers,
            json={"html": "<h1>September</h1>", "file_name": "Maple Court Sep 2026"},
        )

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert response.headers["content-disposition"] == 'attachment; filename="Maple_Court_Sep_2026.pdf"'
    assert response.content == b"%PDF-1.7"
    html = render.await_args.args[0]
    assert html.lower().startswith("<!doctype html>")
    assert "<h1>September</h1>" in html


def test_pdf_export_requires_content(client, headers):
    response = client.post(f"{API}/export/pdf", headers=headers, json={"html": "   "})

    assert response.status_code == 400
    assert response.json()["detail"] == "HTML content is required"


def test_pdf_export_render_failure(client, headers, report):
    with patch(
        "app.api.routes.export.render_pdf",
        new=AsyncMock(side_effect=PdfRenderError("browser crashed")),
    ):
        response = client.post(
            f"{API}/export/pdf", headers=headers, json={"report_id": str(report.id)}
        )

    assert response.status_code == 500
    assert response.json()["detail"] == "Failed to generate PDF"
