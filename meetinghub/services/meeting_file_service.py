import logging
import os
import uuid
from typing import Iterable, List

from sqlalchemy.orm import Session

from meetinghub.auth.rules import Actor, can_delete_file, can_upload_file, can_view_meeting
from meetinghub.core.config import MAX_FILE_SIZE, MINIO_MEETING_BUCKET
from meetinghub.core.errors import (
    DependencyFailureError,
    FileTooLargeError,
    ForbiddenError,
    NotFoundError,
    ValidationFailedError,
)
from meetinghub.models.meeting import Meeting, MeetingFile
from meetinghub.storage.object_store import ObjectStore, UploadedFile

logger = logging.getLogger(__name__)

DOWNLOAD_URL_EXPIRY_SECONDS = 300


def build_object_key(meeting_id: str, filename: str) -> str:
    """Unique per upload even when two files share a name."""
    safe_name = os.path.basename(filename.replace("\\", "/")) or "file"
    return f"{meeting_id}/{uuid.uuid4().hex}-{safe_name}"


def remove_objects(store: ObjectStore, bucket: str, keys: Iterable[str]) -> List[str]:
    """Best-effort deletion of objects whose rows are already gone. Returns the keys left behind."""
    orphaned = []
    for key in keys:
        try:
            store.delete(bucket, key)
        except DependencyFailureError:
            logger.warning("consistency: orphaned object %s left in bucket %s", key, bucket)
            orphaned.append(key)
    return orphaned


def _load_meeting_for_member(db: Session, actor: Actor, meeting_id: str) -> Meeting:
    meeting = db.get(Meeting, meeting_id)
    if meeting is None:
        raise NotFoundError("Meeting not found.")
    if not can_view_meeting(actor, meeting, {p.user_id for p in meeting.participants}):
        raise ForbiddenError("User is not a participant of this meeting.")
    return meeting


def _load_file(db: Session, meeting_id: str, file_id: str) -> MeetingFile:
    meeting_file = db.get(MeetingFile, file_id)
    if meeting_file is None or meeting_file.meeting_id != meeting_id:
        logger.warning("File %s not found in meeting %s.", file_id, meeting_id)
        raise NotFoundError("File not found.")
    return meeting_file


def list_files(db: Session, actor: Actor, meeting_id: str) -> List[MeetingFile]:
    return list(_load_meeting_for_member(db, actor, meeting_id).files)


def upload_files(
    db: Session,
    store: ObjectStore,
    actor: Actor,
    meeting_id: str,
    files: List[UploadedFile],
    max_file_size: int = MAX_FILE_SIZE,
) -> List[MeetingFile]:
    """
    Store a batch of files for a meeting.

    Objects are written one by one and the metadata rows are committed together,
    so either every file of the batch is recorded or none is. Objects already
    written for a failed batch are removed again on a best-effort basis.
    """
    meeting = db.get(Meeting, meeting_id)
    if meeting is None:
        logger.warning("Upload failed: Meeting %s not found.", meeting_id)
        raise NotFoundError("Meeting not found.")
    if not can_upload_file(actor, meeting, {p.user_id for p in meeting.participants}):
        logger.warning("Upload failed: User %s is not a participant of meeting %s.", actor.id, meeting_id)
        raise ForbiddenError("User is not a participant of this meeting.")

    if not files:
        raise ValidationFailedError("No files were provided.")
    for upload in files:
        if upload.size > max_file_size:
            raise FileTooLargeError(f"'{upload.filename}' exceeds the {max_file_size} byte upload limit.")

    written = []
    try:
        rows = []
        for upload in files:
            key = build_object_key(meeting.id, upload.filename)
            store.put(MINIO_MEETING_BUCKET, key, upload, allow_compression=True)
            written.append(key)
            rows.append(MeetingFile(
                meeting_id=meeting.id,
                file_name=upload.filename,
                content_type=upload.content_type or "application/octet-stream",
                size_bytes=upload.size,
                object_key=key,
                uploaded_by_user_id=actor.id,
            ))
        db.add_all(rows)
        db.commit()
    except Exception:
        logger.exception("Failed to complete file upload for meeting %s. Rolling back.", meeting_id)
        db.rollback()
        remove_objects(store, MINIO_MEETING_BUCKET, written)
        raise

    logger.info("User %s uploaded %d files to meeting %s", actor.id, len(rows), meeting_id)
    return rows


def remove_file(db: Session, store: ObjectStore, actor: Actor, meeting_id: str, file_id: str) -> None:
    """
    Delete a file row, then its object. A failed object delete is only logged:
    the row is gone, so nothing can point at a missing object.
    """
    meeting_file = _load_file(db, meeting_id, file_id)
    if not can_delete_file(actor, meeting_file.meeting, meeting_file):
        logger.warning("Remove file failed: User %s is not authorized to delete file %s.", actor.id, file_id)
        raise ForbiddenError("User is not authorized to delete this file.")

    key = meeting_file.object_key
    db.delete(meeting_file)
    db.commit()

    remove_objects(store, MINIO_MEETING_BUCKET, [key])
    logger.info("User %s removed file %s from meeting %s", actor.id, file_id, meeting_id)


def file_download_url(db: Session, store: ObjectStore, actor: Actor, meeting_id: str, file_id: str) -> str:
    _load_meeting_for_member(db, actor, meeting_id)
    meeting_file = _load_file(db, meeting_id, file_id)
    return store.presigned_get_url(MINIO_MEETING_BUCKET, meeting_file.object_key, DOWNLOAD_URL_EXPIRY_SECONDS)
