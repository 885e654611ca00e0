from app.core.config import settings

API = settings.API_V1_STR


def test_read_settings_creates_defaults(client, headers, user):
    response = client.get(f"{API}/settings/", headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["user_id"] == str(user.id)
    assert body["accent_color"] == "#27272A"
    assert body["ai_tone"] == "balanced"


def test_update_settings_partial(client, headers):
    response = client.put(
        f"{API}/settings/",
        headers=headers,
        json={"company_name": "Harbor Capital", "report_accent_color": "#112233"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["company_name"] == "Harbor Capital"
    assert body["report_accent_color"] == "#112233"
    assert body["secondary_color"] == "#EFF6FF"


def test_update_settings_rejects_bad_color(client, headers):
    response = client.put(f"{API}/settings/", headers=headers, json={"accent_color": "blue"})

    assert response.status_code == 422


def test_upload_logo_sets_public_url(client, headers, user, storage):
    response = client.post(
        f"{API}/settings/logo",
        headers=headers,
        files={"file": ("logo.png", b"\x89PNG", "image/png")},
    )

    assert response.status_code == 200
    url = response.json()["company_logo_url"]
    assert url.startswith(f"https://storage.test/{settings.COMPANY_ASSETS_BUCKET}/{user.id}/logo-")


def test_upload_logo_rejects_non_image(client, headers):
    response = client.post(
        f"{API}/settings/logo",
        headers=headers,
        files={"file": ("logo.gif", b"GIF89a", "image/gif")},
    )

    assert response.status_code == 400


def test_settings_require_authentication(client):
    response = client.get(f"{API}/settings/")

    assert response.status_code == 401
