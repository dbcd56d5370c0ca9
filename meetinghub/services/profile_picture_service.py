import logging
import uuid
from typing import Optional

from sqlalchemy.orm import Session

from meetinghub.core.config import MAX_FILE_SIZE, MINIO_PROFILE_BUCKET
from meetinghub.core.errors import FileTooLargeError, NotFoundError
from meetinghub.models.user import User
from meetinghub.services.meeting_file_service import remove_objects
from meetinghub.storage.object_store import ObjectStore, UploadedFile

logger = logging.getLogger(__name__)

PROFILE_URL_EXPIRY_SECONDS = 24 * 60 * 60


def set_profile_picture(
    db: Session,
    store: ObjectStore,
    user: User,
    upload: UploadedFile,
    max_file_size: int = MAX_FILE_SIZE,
) -> str:
    if upload.size > max_file_size:
        logger.warning("Profile picture for user %s rejected: %d bytes.", user.id, upload.size)
        raise FileTooLargeError(f"'{upload.filename}' exceeds the {max_file_size} byte upload limit.")

    new_key = f"{user.id}-{uuid.uuid4()}-{upload.filename}"
    store.put(MINIO_PROFILE_BUCKET, new_key, upload, allow_compression=False)

    old_key = user.profile_picture_key
    user.profile_picture_key = new_key
    try:
        db.commit()
    except Exception:
        logger.exception("Failed to save profile picture for user %s. Rolling back.", user.id)
        db.rollback()
        remove_objects(store, MINIO_PROFILE_BUCKET, [new_key])
        raise

    if old_key:
        remove_objects(store, MINIO_PROFILE_BUCKET, [old_key])
    return new_key


def remove_profile_picture(db: Session, store: ObjectStore, user: User) -> None:
    if not user.profile_picture_key:
        logger.warning("Remove profile picture failed: User %s has no profile picture to remove.", user.id)
        raise NotFoundError("User does not have a profile picture.")

    key = user.profile_picture_key
    user.profile_picture_key = None
    db.commit()
    remove_objects(store, MINIO_PROFILE_BUCKET, [key])


def profile_picture_url(store: ObjectStore, user: User) -> Optional[str]:
    if not user.profile_picture_key:
        return None
    return store.presigned_get_url(MINIO_PROFILE_BUCKET, user.profile_picture_key, PROFILE_URL_EXPIRY_SECONDS)
