from unittest.mock import patch

from app.core.config import settings
from app.models import Property
from app.storage import StorageError
from app.tests.conftest import auth_headers, make_user

API = settings.API_V1_STR


def test_create_property_requires_active_subscription(client, headers):
    response = client.post(f"{API}/properties/", headers=headers, json={"name": "Oak Ridge"})

    assert response.status_code == 403
    assert response.json()["detail"] == "Please subscribe to a plan to add properties"


def test_create_property_within_slots(client, headers, subscribed_user):
    response = client.post(
        f"{API}/properties/",
        headers=headers,
        json={"name": "Oak Ridge", "city": "Dallas", "state": "TX", "units": 120},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["name"] == "Oak Ridge"
    assert body["user_id"] == str(subscribed_user.id)
    assert body["units"] == 120


def test_create_property_rejected_when_slots_used(client, headers, subscribed_user):
    for name in ("One", "Two"):
        assert client.post(f"{API}/properties/", headers=headers, json={"name": name}).status_code == 200

    response = client.post(f"{API}/properties/", headers=headers, json={"name": "Three"})

    assert response.status_code == 403
    assert "used all 2 property slots" in response.json()["detail"]


def test_list_properties_includes_stats_and_last_report(client, headers, report, property_):
    response = client.get(f"{API}/properties/", headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 1
    assert body["stats"] == {"total_properties": 1, "total_units": 48}
    assert body["data"][0]["last_report"]["id"] == str(report.id)


def test_read_property_of_another_user_is_not_found(client, session, property_):
    stranger = make_user(session, "stranger@example.com")

    response = client.get(f"{API}/properties/{property_.id}", headers=auth_headers(stranger))

    assert response.status_code == 404
    assert response.json()["detail"] == "Property not found"


def test_read_property_reports_has_reports(client, headers, property_, report):
    response = client.get(f"{API}/properties/{property_.id}", headers=headers)

    assert response.status_code == 200
    assert response.json()["has_reports"] is True


def test_update_property_name_locked_after_reports(client, headers, property_, report):
    response = client.patch(
        f"{API}/properties/{property_.id}", headers=headers, json={"name": "Renamed"}
    )

    assert response.status_code == 400
    assert "cannot be changed" in response.json()["detail"]


def test_update_property_other_fields_after_reports(client, headers, property_, report):
    response = client.patch(
        f"{API}/properties/{property_.id}", headers=headers, json={"units": 50}
    )

    assert response.status_code == 200
    assert response.json()["units"] == 50


def test_update_property_with_empty_body(client, headers, property_):
    response = client.patch(f"{API}/properties/{property_.id}", headers=headers, json={})

    assert response.status_code == 400
    assert response.json()["detail"] == "No valid fields to update"


def test_update_property_rejects_null_name(client, headers, session, property_):
    response = client.patch(
        f"{API}/properties/{property_.id}", headers=headers, json={"name": None}
    )

    assert response.status_code == 422
    session.refresh(property_)
    assert property_.name == "Maple Court"


def test_update_property_clears_nullable_field(client, headers, property_):
    response = client.patch(
        f"{API}/properties/{property_.id}", headers=headers, json={"address": None}
    )

    assert response.status_code == 200
    assert response.json()["address"] is None


def test_delete_property_with_reports_is_rejected(client, headers, property_, report):
    response = client.delete(f"{API}/properties/{property_.id}", headers=headers)

    assert response.status_code == 400


def test_delete_property_removes_budget(client, headers, session, property_, storage):
    property_.budget_file_path = "owner/budgets/budget.csv"
    session.add(property_)
    session.commit()

    response = client.delete(f"{API}/properties/{property_.id}", headers=headers)

    assert response.status_code == 200
    assert (settings.REPORT_FILES_BUCKET, "owner/budgets/budget.csv") in storage.removed
    assert session.get(Property, property_.id) is None


def test_upload_budget_replaces_previous_file(client, headers, session, property_, storage):
    first = client.post(
        f"{API}/properties/{property_.id}/budget",
        headers=headers,
        files={"file": ("budget.csv", b"Category,Budget\nRent,1000\n", "text/csv")},
    )
    assert first.status_code == 200
    first_path = first.json()["budget_file_path"]

    second = client.post(
        f"{API}/properties/{property_.id}/budget",
        headers=headers,
        files={"file": ("budget-2026.csv", b"Category,Budget\nRent,1100\n", "text/csv")},
    )

    assert second.status_code == 200
    body = second.json()
    assert body["budget_file_name"] == "budget-2026.csv"
    assert (settings.REPORT_FILES_BUCKET, first_path) in storage.removed
    assert (settings.REPORT_FILES_BUCKET, body["budget_file_path"]) in storage.objects


def test_failed_budget_upload_keeps_previous_file(client, headers, session, property_, storage):
    first = client.post(
        f"{API}/properties/{property_.id}/budget",
        headers=headers,
        files={"file": ("budget.csv", b"Category,Budget\nRent,1000\n", "text/csv")},
    ).json()

    with patch.object(storage, "upload", side_effect=StorageError("bucket unavailable")):
        response = client.post(
            f"{API}/properties/{property_.id}/budget",
            headers=headers,
            files={"file": ("budget-2026.csv", b"Category,Budget\nRent,1100\n", "text/csv")},
        )

    assert response.status_code == 500
    session.refresh(property_)
    assert property_.budget_file_path == first["budget_file_path"]
    assert (settings.REPORT_FILES_BUCKET, first["budget_file_path"]) in storage.objects


def test_upload_budget_rejects_pdf(client, headers, property_):
    response = client.post(
        f"{API}/properties/{property_.id}/budget",
        headers=headers,
        files={"file": ("budget.pdf", b"%PDF", "application/pdf")},
    )

    assert response.status_code == 400


def test_delete_budget_clears_fields(client, headers, session, property_):
    property_.budget_file_path = "owner/budgets/budget.csv"
    property_.budget_file_name = "budget.csv"
    session.add(property_)
    session.commit()

    response = client.delete(f"{API}/properties/{property_.id}/budget", headers=headers)

    assert response.status_code == 200
    assert response.json()["budget_file_path"] is None
    assert response.json()["budget_file_name"] is None
