from typing import List

from fastapi import APIRouter, Depends, File, UploadFile, status
from sqlalchemy.orm import Session

from meetinghub.auth.rules import Actor
from meetinghub.auth.utils import get_current_actor
from meetinghub.core.db import get_db
from meetinghub.schemas.meeting import DownloadUrlResponse, MeetingFileResponse
from meetinghub.services import meeting_file_service
from meetinghub.storage.object_store import ObjectStore, from_upload_file, get_object_store

router = APIRouter()


@router.get("/meetings/{meeting_id}/files", response_model=List[MeetingFileResponse])
def list_files(meeting_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    return meeting_file_service.list_files(db, actor, meeting_id)


@router.post(
    "/meetings/{meeting_id}/files",
    response_model=List[MeetingFileResponse],
    status_code=status.HTTP_201_CREATED,
)
def upload_files(
    meeting_id: str,
    files: List[UploadFile] = File(...),
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
    actor: Actor = Depends(get_current_actor),
):
    uploads = [from_upload_file(f) for f in files]
    return meeting_file_service.upload_files(db, store, actor, meeting_id, uploads)


@router.get("/meetings/{meeting_id}/files/{file_id}/download-url", response_model=DownloadUrlResponse)
def download_url(
    meeting_id: str,
    file_id: str,
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
    actor: Actor = Depends(get_current_actor),
):
    url = meeting_file_service.file_download_url(db, store, actor, meeting_id, file_id)
    return DownloadUrlResponse(url=url, expires_in=meeting_file_service.DOWNLOAD_URL_EXPIRY_SECONDS)


@router.delete("/meetings/{meeting_id}/files/{file_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_file(
    meeting_id: str,
    file_id: str,
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
    actor: Actor = Depends(get_current_actor),
):
    meeting_file_service.remove_file(db, store, actor, meeting_id, file_id)
