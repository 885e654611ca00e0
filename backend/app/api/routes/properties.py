import logging
import uuid
from typing import Any

from fastapi import APIRouter, File, HTTPException, UploadFile

from app import crud
from app.api.deps import CurrentUser, SessionDep, StorageDep, get_owned_property
from app.core.config import settings
from app.models import (
    Message,
    PropertiesPublic,
    PropertyCreate,
    PropertyDetail,
    PropertyPublic,
    PropertyStats,
    PropertyUpdate,
    PropertyWithLastReport,
    ReportSummary,
    get_datetime_utc,
)
from app.storage import StorageError, budget_file_path, file_extension, remove_quietly

router = APIRouter()
logger = logging.getLogger(__name__)

BUDGET_EXTENSIONS = ("csv", "xlsx", "xls")


@router.get("/", response_model=PropertiesPublic)
def read_properties(session: SessionDep, current_user: CurrentUser) -> Any:
    properties = crud.get_user_properties(session=session, user_id=current_user.id)
    data = []
    for db_property in properties:
        latest = crud.get_latest_report(session=session, property_id=db_property.id)
        data.append(
            PropertyWithLastReport.model_validate(
                db_property,
                update={
                    "last_report": ReportSummary.model_validate(latest) if latest else None
                },
            )
        )
    stats = PropertyStats(
        total_properties=len(properties),
        total_units=sum(p.units or 0 for p in properties),
    )
    return PropertiesPublic(data=data, count=len(data), stats=stats)


@router.post("/", response_model=PropertyPublic)
def create_property(
    *, session: SessionDep, current_user: CurrentUser, property_in: PropertyCreate
) -> Any:
    """
    Create a property. Each property uses one paid slot of the user's subscription.
    """
    subscription = crud.get_subscription(session=session, user_id=current_user.id)
    if not subscription or subscription.status != "active":
        raise HTTPException(
            status_code=403, detail="Please subscribe to a plan to add properties"
        )
    used = crud.count_user_properties(session=session, user_id=current_user.id)
    if used >= subscription.property_slots:
        raise HTTPException(
            status_code=403,
            detail=(
                f"You've used all {subscription.property_slots} property slots. "
                "Please upgrade to add more."
            ),
        )
    return crud.create_property(
        session=session, property_in=property_in, user_id=current_user.id
    )


@router.get("/{id}", response_model=PropertyDetail)
def read_property(id: uuid.UUID, session: SessionDep, current_user: CurrentUser) -> Any:
    db_property = get_owned_property(session, id, current_user)
    has_reports = crud.property_has_reports(session=session, property_id=id)
    return PropertyDetail.model_validate(db_property, update={"has_reports": has_reports})


@router.patch("/{id}", response_model=PropertyPublic)
def update_property(
    *,
    id: uuid.UUID,
    session: SessionDep,
    current_user: CurrentUser,
    property_in: PropertyUpdate,
) -> Any:
    db_property = get_owned_property(session, id, current_user)
    update_data = property_in.model_dump(exclude_unset=True)
    if not update_data:
        raise HTTPException(status_code=400, detail="No valid fields to update")
    if (
        "name" in update_data
        and update_data["name"] != db_property.name
        and crud.property_has_reports(session=session, property_id=id)
    ):
        raise HTTPException(
            status_code=400,
            detail="Property name cannot be changed after reports have been created",
        )
    return crud.update_property(
        session=session, db_property=db_property, property_in=property_in
    )


@router.delete("/{id}", response_model=Message)
def delete_property(
    id: uuid.UUID, session: SessionDep, current_user: CurrentUser, storage: StorageDep
) -> Any:
    db_property = get_owned_property(session, id, current_user)
    if crud.property_has_reports(session=session, property_id=id):
        raise HTTPException(
            status_code=400, detail="Cannot delete a property that has reports"
        )
    if db_property.budget_file_path:
        remove_quietly(storage, settings.REPORT_FILES_BUCKET, [db_property.budget_file_path])
    session.delete(db_property)
    session.commit()
    return Message(message="Property deleted successfully")


@router.post("/{id}/budget", response_model=PropertyPublic)
async def upload_budget(
    *,
    id: uuid.UUID,
    session: SessionDep,
    current_user: CurrentUser,
    storage: StorageDep,
    file: UploadFile = File(...),
) -> Any:
    """
    Attach an annual budget to the property. It is used by every report that has no budget of its own.
    """
    db_property = get_owned_property(session, id, current_user)
    ext = file_extension(file.filename)
    if ext not in BUDGET_EXTENSIONS:
        raise HTTPException(
            status_code=400, detail="Budget must be CSV (.csv) or Excel (.xlsx)"
        )
    content = await file.read()

    path = budget_file_path(current_user.id, id, ext)
    try:
        storage.upload(settings.REPORT_FILES_BUCKET, path, content, file.content_type)
    except StorageError as e:
        raise HTTPException(status_code=500, detail=str(e))

    previous = db_property.budget_file_path
    if previous and previous != path:
        remove_quietly(storage, settings.REPORT_FILES_BUCKET, [previous])

    db_property.sqlmodel_update(
        {
            "budget_file_path": path,
            "budget_file_name": file.filename,
            "budget_uploaded_at": get_datetime_utc(),
            "updated_at": get_datetime_utc(),
        }
    )
    session.add(db_property)
    session.commit()
    session.refresh(db_property)
    return db_property


@router.delete("/{id}/budget", response_model=PropertyPublic)
def delete_budget(
    id: uuid.UUID, session: SessionDep, current_user: CurrentUser, storage: StorageDep
) -> Any:
    db_property = get_owned_property(session, id, current_user)
    if db_property.budget_file_path:
        remove_quietly(storage, settings.REPORT_FILES_BUCKET, [db_property.budget_file_path])
    db_property.sqlmodel_update(
        {
            "budget_file_path": None,
            "budget_file_name": None,
            "budget_uploaded_at": None,
            "updated_at": get_datetime_utc(),
        }
    )
    session.add(db_property)
    session.commit()
    session.refresh(db_property)
    return db_property
