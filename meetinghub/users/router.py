from fastapi import APIRouter, Depends, File, UploadFile, status
from sqlalchemy.orm import Session

from meetinghub.auth.schemas import ProfilePictureResponse, ProfileUpdate, UserResponse
from meetinghub.auth.utils import get_current_user
from meetinghub.core.db import get_db
from meetinghub.core.errors import NotFoundError
from meetinghub.models.user import User
from meetinghub.services import identity_service, profile_picture_service
from meetinghub.storage.object_store import ObjectStore, from_upload_file, get_object_store

router = APIRouter()


@router.put("/users/me", response_model=UserResponse)
def update_profile(
    payload: ProfileUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    user = identity_service.update_profile(db, user, payload.name, payload.phone)
    return UserResponse(
        id=user.id,
        name=user.name,
        email=user.email,
        phone=user.phone,
        created_at=user.created_at,
        roles=identity_service.role_names(user),
    )


@router.get("/users/me/profile-picture", response_model=ProfilePictureResponse)
def get_profile_picture(user: User = Depends(get_current_user), store: ObjectStore = Depends(get_object_store)):
    return ProfilePictureResponse(url=profile_picture_service.profile_picture_url(store, user))


@router.put("/users/me/profile-picture", response_model=ProfilePictureResponse)
def set_profile_picture(
    picture: UploadFile = File(...),
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
    user: User = Depends(get_current_user),
):
    profile_picture_service.set_profile_picture(db, store, user, from_upload_file(picture))
    return ProfilePictureResponse(url=profile_picture_service.profile_picture_url(store, user))


@router.delete("/users/me/profile-picture", status_code=status.HTTP_204_NO_CONTENT)
def remove_profile_picture(
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
    user: User = Depends(get_current_user),
):
    profile_picture_service.remove_profile_picture(db, store, user)


# Public: no token required
@router.get("/users/{user_id}/profile-picture", response_model=ProfilePictureResponse)
def get_user_profile_picture(
    user_id: str,
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
):
    user = db.get(User, user_id)
    url = profile_picture_service.profile_picture_url(store, user) if user is not None else None
    if url is None:
        raise NotFoundError("Profile picture not found.")
    return ProfilePictureResponse(url=url)
