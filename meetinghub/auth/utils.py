import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from passlib.context import CryptContext
from jose import jwt, JWTError
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from meetinghub.auth.rules import Actor, ADMIN_ROLE
from meetinghub.core.config import SECRET_KEY, ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES
from meetinghub.core.db import get_db
from meetinghub.models.user import User, RevokedToken

MAX_PASSWORD_BYTES = 72

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


# -----------------------------
# Password utils
# -----------------------------
def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def is_password_too_long(password: str) -> bool:
    return len(password.encode("utf-8")) > MAX_PASSWORD_BYTES


# -----------------------------
# JWT utils
# -----------------------------
def create_access_token(user_id: str, email: str, roles: List[str], expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = {
        "sub": user_id,
        "email": email,
        "roles": roles,
        "jti": str(uuid.uuid4()),
        "exp": expire,
    }
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_token_payload(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> dict:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise _credentials_exception()

    if payload.get("sub") is None or payload.get("jti") is None:
        raise _credentials_exception()
    if db.get(RevokedToken, payload["jti"]) is not None:
        raise _credentials_exception()
    return payload


def get_current_user(payload: dict = Depends(get_token_payload), db: Session = Depends(get_db)) -> User:
    user = db.get(User, payload["sub"])
    if user is None:
        raise _credentials_exception()
    return user


def get_current_actor(user: User = Depends(get_current_user)) -> Actor:
    # Roles are re-read from the database so revoked roles take effect before token expiry
    return Actor(id=user.id, roles=frozenset(ur.role.name for ur in user.roles))


def require_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    if not actor.has_role(ADMIN_ROLE):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin role required")
    return actor
