import uuid
from sqlalchemy.orm import declarative_base
from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from meetinghub.core.timeutils import utcnow

Base = declarative_base()


def new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = 'users'
    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    # Stored lower-cased; uniqueness is case-insensitive
    email = Column(String(255), unique=True, index=True, nullable=False)
    phone = Column(String(50), nullable=True)
    hashed_password = Column(String(255), nullable=False)
    profile_picture_key = Column(String(512), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    roles = relationship('UserRole', back_populates='user', cascade='all, delete-orphan')


class Role(Base):
    __tablename__ = 'roles'
    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(50), unique=True, nullable=False)


class UserRole(Base):
    __tablename__ = 'user_roles'
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), primary_key=True)
    role_id = Column(String(36), ForeignKey('roles.id', ondelete='CASCADE'), primary_key=True)

    user = relationship('User', back_populates='roles')
    role = relationship('Role')


class RevokedToken(Base):
    __tablename__ = 'revoked_tokens'
    jti = Column(String(64), primary_key=True)
    revoked_at = Column(DateTime, default=utcnow, nullable=False)
