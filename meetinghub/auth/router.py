import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import EmailStr
from sqlalchemy.orm import Session

from meetinghub.auth.schemas import Token, UserResponse
from meetinghub.auth.utils import create_access_token, get_current_user, get_token_payload
from meetinghub.core.db import get_db
from meetinghub.email.utils import send_welcome_email
from meetinghub.models.user import User
from meetinghub.services import identity_service
from meetinghub.storage.object_store import ObjectStore, from_upload_file, get_object_store

logger = logging.getLogger(__name__)

router = APIRouter()


def _user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        name=user.name,
        email=user.email,
        phone=user.phone,
        created_at=user.created_at,
        roles=identity_service.role_names(user),
    )


# -------------------------
# Register
# -------------------------
@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def register(
    background_tasks: BackgroundTasks,
    name: str = Form(...),
    email: EmailStr = Form(...),
    password: str = Form(...),
    phone: Optional[str] = Form(None),
    profile_picture: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
):
    picture = from_upload_file(profile_picture) if profile_picture is not None else None
    user = identity_service.register_user(db, store, name, email, password, phone=phone, profile_picture=picture)
    background_tasks.add_task(send_welcome_email, user.email, user.name)
    return _user_response(user)


# -------------------------
# Login
# -------------------------
@router.post("/login", response_model=Token)
def login(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
    user = identity_service.authenticate_user(db, form_data.username, form_data.password)
    if user is None:
        logger.warning("Failed login attempt for %s", form_data.username)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = create_access_token(user.id, user.email, identity_service.role_names(user))
    return {"access_token": token, "token_type": "bearer"}


# -------------------------
# Logout
# -------------------------
@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(payload: dict = Depends(get_token_payload), db: Session = Depends(get_db)):
    identity_service.revoke_token(db, payload["jti"])
    logger.info("User %s logged out", payload["sub"])


@router.get("/me", response_model=UserResponse)
def me(user: User = Depends(get_current_user)):
    return _user_response(user)
