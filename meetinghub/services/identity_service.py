import logging
import uuid
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from meetinghub.auth.rules import Actor, ADMIN_ROLE, USER_ROLE, DEFAULT_ROLES
from meetinghub.auth.utils import get_password_hash, verify_password, is_password_too_long, MAX_PASSWORD_BYTES
from meetinghub.core import config
from meetinghub.core.errors import (
    ConflictError,
    DependencyFailureError,
    FileTooLargeError,
    NotFoundError,
    ValidationFailedError,
)
from meetinghub.models.user import User, Role, UserRole, RevokedToken, new_id
from meetinghub.services.meeting_file_service import remove_objects
from meetinghub.storage.object_store import ObjectStore, UploadedFile

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def find_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(func.lower(User.email) == normalize_email(email)).first()


def role_names(user: User) -> List[str]:
    return sorted(ur.role.name for ur in user.roles)


# -------------------------
# Role catalog
# -------------------------
def ensure_roles_exist(db: Session, names: Iterable[str] = DEFAULT_ROLES) -> Dict[str, Role]:
    """Create any missing role. Safe to run on every startup."""
    roles = {}
    for name in names:
        role = db.query(Role).filter(Role.name == name).first()
        if role is None:
            logger.info("Seeding role: %s", name)
            role = Role(name=name)
            db.add(role)
        roles[name] = role
    db.commit()
    return roles


def ensure_default_admin(db: Session) -> Optional[User]:
    """
    Create the configured admin account when nobody holds the Admin role yet.
    Skipped without ADMIN_PASSWORD so no account ever gets a default password.
    """
    has_admin = (
        db.query(UserRole).join(Role).filter(Role.name == ADMIN_ROLE).first() is not None
    )
    if has_admin:
        return None
    if not config.ADMIN_PASSWORD:
        logger.warning("No admin present, but ADMIN_PASSWORD not set -> skip creating default admin.")
        return None

    roles = ensure_roles_exist(db)
    user = find_user_by_email(db, config.ADMIN_EMAIL)
    if user is None:
        user = User(
            id=new_id(),
            name=config.ADMIN_NAME,
            email=normalize_email(config.ADMIN_EMAIL),
            hashed_password=get_password_hash(config.ADMIN_PASSWORD),
        )
        db.add(user)
        user.roles.append(UserRole(role=roles[USER_ROLE]))
    user.roles.append(UserRole(role=roles[ADMIN_ROLE]))
    db.commit()
    logger.warning("Created default admin -> email=%s id=%s", user.email, user.id)
    return user


# -------------------------
# Registration & login
# -------------------------
def register_user(
    db: Session,
    store: ObjectStore,
    name: str,
    email: str,
    password: str,
    phone: Optional[str] = None,
    profile_picture: Optional[UploadedFile] = None,
) -> User:
    if not name.strip():
        raise ValidationFailedError("Name is required.")
    if is_password_too_long(password):
        raise ValidationFailedError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes when encoded in UTF-8.")
    if profile_picture is not None and profile_picture.size > config.MAX_FILE_SIZE:
        raise FileTooLargeError(
            f"'{profile_picture.filename}' exceeds the {config.MAX_FILE_SIZE} byte upload limit."
        )
    if find_user_by_email(db, email) is not None:
        raise ConflictError("Email is already registered.")

    user_role = db.query(Role).filter(Role.name == USER_ROLE).first()
    if user_role is None:
        logger.error("Default '%s' role not found in the database. Cannot assign role to new user.", USER_ROLE)
        raise DependencyFailureError("System configuration error: default role not found.")

    user = User(
        id=new_id(),
        name=name.strip(),
        email=normalize_email(email),
        phone=phone,
        hashed_password=get_password_hash(password),
    )
    user.roles.append(UserRole(role=user_role))

    if profile_picture is not None:
        key = f"{user.id}-{uuid.uuid4()}-{profile_picture.filename}"
        store.put(config.MINIO_PROFILE_BUCKET, key, profile_picture, allow_compression=False)
        user.profile_picture_key = key

    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        _discard_profile_picture(store, user)
        raise ConflictError("Email is already registered.")
    except Exception:
        db.rollback()
        _discard_profile_picture(store, user)
        logger.exception("An error occurred during user registration for email %s.", email)
        raise
    db.refresh(user)
    logger.info("Registered user %s", user.id)
    return user


def _discard_profile_picture(store: ObjectStore, user: User) -> None:
    if user.profile_picture_key:
        remove_objects(store, config.MINIO_PROFILE_BUCKET, [user.profile_picture_key])


def authenticate_user(db: Session, email: str, password: str) -> Optional[User]:
    user = find_user_by_email(db, email)
    if user is None or not verify_password(password, user.hashed_password):
        return None
    return user


def revoke_token(db: Session, jti: str) -> None:
    if db.get(RevokedToken, jti) is not None:
        return
    db.add(RevokedToken(jti=jti))
    db.commit()


# -------------------------
# Profile
# -------------------------
def update_profile(db: Session, user: User, name: str, phone: str) -> User:
    """Replace the user's display name and phone number. Both are required."""
    name = (name or "").strip()
    phone = (phone or "").strip()
    if not name:
        raise ValidationFailedError("Name is required.")
    if not phone:
        raise ValidationFailedError("Phone number is required.")

    user.name = name
    user.phone = phone
    try:
        db.commit()
    except Exception:
        logger.exception("Failed to update profile for user %s. Rolling back.", user.id)
        db.rollback()
        raise
    db.refresh(user)
    logger.info("User %s updated their profile.", user.id)
    return user


# -------------------------
# Role administration
# -------------------------
def assign_role(db: Session, user_id: str, role_name: str) -> None:
    user = db.get(User, user_id)
    if user is None:
        logger.warning("User %s not found.", user_id)
        raise NotFoundError("User not found.")
    role = db.query(Role).filter(Role.name == role_name).first()
    if role is None:
        logger.warning("Role '%s' not found.", role_name)
        raise NotFoundError("Role not found.")

    if any(ur.role_id == role.id for ur in user.roles):
        logger.info("User %s already has role '%s'.", user_id, role_name)
        return

    user.roles.append(UserRole(role=role))
    db.commit()
    logger.info("Assigned role '%s' to user %s.", role_name, user_id)


def remove_role(db: Session, actor: Actor, user_id: str, role_name: str) -> None:
    if user_id == actor.id and role_name.lower() == ADMIN_ROLE.lower():
        logger.warning("Admin user %s attempted to remove their own Admin role.", actor.id)
        raise ConflictError("Administrators cannot remove their own Admin role.")

    role = db.query(Role).filter(Role.name == role_name).first()
    if role is None:
        logger.warning("Role '%s' not found.", role_name)
        raise NotFoundError("Role not found.")

    user_role = db.get(UserRole, (user_id, role.id))
    if user_role is None:
        raise NotFoundError("User does not have this role.")

    db.delete(user_role)
    db.commit()
    logger.info("Removed role '%s' from user %s.", role_name, user_id)
