from typing import Any

from fastapi import APIRouter, File, HTTPException, UploadFile

from app import crud
from app.api.deps import CurrentUser, SessionDep, StorageDep
from app.core.config import settings
from app.models import UserSettingsPublic, UserSettingsUpdate
from app.storage import StorageError, file_extension, logo_file_path

router = APIRouter()

LOGO_EXTENSIONS = ("png", "jpg", "jpeg", "svg", "webp")
MAX_LOGO_SIZE = 2 * 1024 * 1024


@router.get("/", response_model=UserSettingsPublic)
def read_settings(session: SessionDep, current_user: CurrentUser) -> Any:
    return crud.get_or_create_user_settings(session=session, user_id=current_user.id)


@router.put("/", response_model=UserSettingsPublic)
def update_settings(
    *, session: SessionDep, current_user: CurrentUser, settings_in: UserSettingsUpdate
) -> Any:
    return crud.update_user_settings(
        session=session, user_id=current_user.id, settings_in=settings_in
    )


@router.post("/logo", response_model=UserSettingsPublic)
async def upload_logo(
    *,
    session: SessionDep,
    current_user: CurrentUser,
    storage: StorageDep,
    file: UploadFile = File(...),
) -> Any:
    ext = file_extension(file.filename)
    if ext not in LOGO_EXTENSIONS:
        raise HTTPException(
            status_code=400, detail="Logo must be a PNG, JPG, SVG or WebP image"
        )
    content = await file.read()
    if len(content) > MAX_LOGO_SIZE:
        raise HTTPException(status_code=400, detail="Logo too large (2MB max)")

    path = logo_file_path(current_user.id, ext)
    try:
        storage.upload(settings.COMPANY_ASSETS_BUCKET, path, content, file.content_type)
        url = storage.public_url(settings.COMPANY_ASSETS_BUCKET, path)
    except StorageError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return crud.update_user_settings(
        session=session, user_id=current_user.id, settings_in={"company_logo_url": url}
    )
