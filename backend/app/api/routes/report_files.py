import uuid
from typing import Any

from fastapi import APIRouter, File, Form, HTTPException, UploadFile

from app import crud
from app.api.deps import CurrentUser, SessionDep, StorageDep, get_owned_report
from app.core.config import settings
from app.models import FILE_TYPES, Message, ReportFile, ReportFileCreate, ReportFilePublic
from app.storage import StorageError, file_extension, remove_quietly, report_file_path

router = APIRouter()

ALLOWED_EXTENSIONS = ("xlsx", "xls", "csv", "pdf", "txt", "doc", "docx")
MAX_FILE_SIZE = 10 * 1024 * 1024


@router.get("/{id}/files", response_model=list[ReportFilePublic])
def read_report_files(id: uuid.UUID, session: SessionDep, current_user: CurrentUser) -> Any:
    get_owned_report(session, id, current_user)
    return crud.get_report_files(session=session, report_id=id)


@router.post("/{id}/files", response_model=ReportFilePublic)
async def upload_report_file(
    *,
    id: uuid.UUID,
    session: SessionDep,
    current_user: CurrentUser,
    storage: StorageDep,
    file: UploadFile = File(...),
    file_type: str = Form(...),
) -> Any:
    """
    Upload a source document. Every type except ``additional`` holds a single file,
    so a new upload replaces the previous one.
    """
    get_owned_report(session, id, current_user)
    if file_type not in FILE_TYPES:
        raise HTTPException(status_code=400, detail="Invalid file type")
    ext = file_extension(file.filename)
    if ext not in ALLOWED_EXTENSIONS:
        raise HTTPException(
            status_code=400,
            detail="Unsupported format. Use .xlsx, .csv, .pdf, .doc, or .txt",
        )
    content = await file.read()
    if len(content) > MAX_FILE_SIZE:
        raise HTTPException(status_code=400, detail="File too large (10MB max)")

    path = report_file_path(current_user.id, id, file_type, ext)
    try:
        storage.upload(settings.REPORT_FILES_BUCKET, path, content, file.content_type)
    except StorageError as e:
        raise HTTPException(status_code=500, detail=str(e))

    # The previous file goes only once the new object is stored
    if file_type != "additional":
        existing = crud.get_report_file_by_type(session=session, report_id=id, file_type=file_type)
        if existing:
            if existing.storage_path != path:
                remove_quietly(storage, settings.REPORT_FILES_BUCKET, [existing.storage_path])
            session.delete(existing)
            session.commit()

    return crud.create_report_file(
        session=session,
        file_in=ReportFileCreate(
            report_id=id,
            file_type=file_type,
            file_name=file.filename or f"{file_type}.{ext}",
            file_size=len(content),
            storage_path=path,
        ),
        user_id=current_user.id,
    )


@router.delete("/{id}/files/{file_id}", response_model=Message)
def delete_report_file(
    id: uuid.UUID,
    file_id: uuid.UUID,
    session: SessionDep,
    current_user: CurrentUser,
    storage: StorageDep,
) -> Any:
    get_owned_report(session, id, current_user)
    report_file = session.get(ReportFile, file_id)
    if not report_file or report_file.report_id != id:
        raise HTTPException(status_code=404, detail="File not found")
    remove_quietly(storage, settings.REPORT_FILES_BUCKET, [report_file.storage_path])
    session.delete(report_file)
    session.commit()
    return Message(message="File deleted successfully")
