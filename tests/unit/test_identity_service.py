"""
Unit tests for services.identity_service and auth.utils.
Registration, role administration, token handling and the startup seeding steps.
"""
import pytest
from jose import jwt

from meetinghub.auth.rules import ADMIN_ROLE, USER_ROLE
from meetinghub.auth.utils import create_access_token, get_password_hash, verify_password
from meetinghub.core import config
from meetinghub.core.errors import (
    ConflictError,
    DependencyFailureError,
    FileTooLargeError,
    NotFoundError,
    ValidationFailedError,
)
from meetinghub.models.user import RevokedToken, Role, User, UserRole
from meetinghub.services import identity_service


class TestPasswordHashing:
    def test_hash_is_salted_and_verifiable(self):
        first = get_password_hash("TestPassword123")
        second = get_password_hash("TestPassword123")
        assert first != second
        assert verify_password("TestPassword123", first) is True
        assert verify_password("WrongPassword", first) is False


class TestTokens:
    def test_token_carries_identity_roles_and_jti(self):
        token = create_access_token("user-1", "a@example.com", [USER_ROLE])
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
        assert payload["sub"] == "user-1"
        assert payload["email"] == "a@example.com"
        assert payload["roles"] == [USER_ROLE]
        assert payload["jti"]

    def test_revoking_twice_is_a_no_op(self, db):
        identity_service.revoke_token(db, "jti-1")
        identity_service.revoke_token(db, "jti-1")
        assert db.query(RevokedToken).count() == 1


class TestRegistration:
    def test_register_assigns_user_role_and_normalizes_email(self, db, store):
        user = identity_service.register_user(db, store, "Ann", "Ann@Example.com", "StrongPass!23")
        assert user.email == "ann@example.com"
        assert identity_service.role_names(user) == [USER_ROLE]
        assert identity_service.authenticate_user(db, "ANN@example.com", "StrongPass!23").id == user.id
        assert identity_service.authenticate_user(db, "ann@example.com", "wrong") is None

    def test_duplicate_email_is_case_insensitive(self, db, store):
        identity_service.register_user(db, store, "Ann", "ann@example.com", "StrongPass!23")
        with pytest.raises(ConflictError):
            identity_service.register_user(db, store, "Ann 2", "ANN@example.com", "StrongPass!23")

    def test_password_over_72_bytes_rejected(self, db, store):
        with pytest.raises(ValidationFailedError):
            identity_service.register_user(db, store, "Ann", "ann@example.com", "é" * 40)
        assert db.query(User).count() == 0

    def test_profile_picture_is_stored_under_user_prefix(self, db, store, make_upload):
        user = identity_service.register_user(
            db, store, "Ann", "ann@example.com", "StrongPass!23",
            profile_picture=make_upload("me.png", b"png", "image/png"),
        )
        assert user.profile_picture_key.startswith(f"{user.id}-")
        assert user.profile_picture_key.endswith("-me.png")
        assert store.keys(config.MINIO_PROFILE_BUCKET) == [user.profile_picture_key]

    def test_oversized_profile_picture_rejected_before_anything_is_written(self, db, store, make_upload,
                                                                           monkeypatch):
        monkeypatch.setattr(config, "MAX_FILE_SIZE", 10)
        with pytest.raises(FileTooLargeError):
            identity_service.register_user(
                db, store, "Ann", "ann@example.com", "StrongPass!23",
                profile_picture=make_upload("me.png", b"x" * 11, "image/png"),
            )
        assert store.put_calls == 0
        assert db.query(User).count() == 0

    def test_missing_role_catalog_is_a_dependency_failure(self, db, store):

        db.query(UserRole).delete()
        db.query(Role).delete()
        db.commit()
        with pytest.raises(DependencyFailureError):
            identity_service.register_user(db, store, "Ann", "ann@example.com", "StrongPass!23")


class TestProfileUpdate:
    def test_update_replaces_name_and_phone(self, db, make_user):
        user, _ = make_user("ann")
        updated = identity_service.update_profile(db, user, "  Ann Lee ", "+1 555 0100")
        assert updated.name == "Ann Lee"
        assert updated.phone == "+1 555 0100"
        assert db.get(User, user.id).name == "Ann Lee"

    @pytest.mark.parametrize("name, phone", [("", "+1 555 0100"), ("Ann", "   "), ("  ", "")])
    def test_name_and_phone_are_required(self, db, make_user, name, phone):
        user, _ = make_user("ann")
        with pytest.raises(ValidationFailedError):
            identity_service.update_profile(db, user, name, phone)
        db.refresh(user)
        assert user.name == "ann"


class TestSeeding:
    def test_ensure_roles_exist_is_idempotent(self, db):
        identity_service.ensure_roles_exist(db)
        identity_service.ensure_roles_exist(db)
        assert sorted(r.name for r in db.query(Role).all()) == sorted([ADMIN_ROLE, USER_ROLE])

    def test_default_admin_skipped_without_password(self, db, monkeypatch):
        monkeypatch.setattr(config, "ADMIN_PASSWORD", None)
        assert identity_service.ensure_default_admin(db) is None
        assert db.query(User).count() == 0

    def test_default_admin_created_once(self, db, monkeypatch):
        monkeypatch.setattr(config, "ADMIN_PASSWORD", "AdminPass!23")
        admin = identity_service.ensure_default_admin(db)
        assert sorted(identity_service.role_names(admin)) == [ADMIN_ROLE, USER_ROLE]
        assert identity_service.ensure_default_admin(db) is None
        assert db.query(User).count() == 1


class TestRoleAdministration:
    def test_assign_is_idempotent(self, db, make_user):
        user, _ = make_user("bob")
        identity_service.assign_role(db, user.id, ADMIN_ROLE)
        identity_service.assign_role(db, user.id, ADMIN_ROLE)
        assert db.query(UserRole).filter_by(user_id=user.id).count() == 2

    def test_assign_unknown_user_or_role(self, db, make_user):
        user, _ = make_user("bob")
        with pytest.raises(NotFoundError):
            identity_service.assign_role(db, "nobody", USER_ROLE)
        with pytest.raises(NotFoundError):
            identity_service.assign_role(db, user.id, "Superuser")

    def test_admin_cannot_drop_own_admin_role(self, db, make_user):
        _, admin = make_user("root", admin=True)
        with pytest.raises(ConflictError):
            identity_service.remove_role(db, admin, admin.id, ADMIN_ROLE)

    def test_remove_role(self, db, make_user):
        _, admin = make_user("root", admin=True)
        other, _ = make_user("bob", admin=True)

        identity_service.remove_role(db, admin, other.id, ADMIN_ROLE)
        db.refresh(other)
        assert identity_service.role_names(other) == [USER_ROLE]

        with pytest.raises(NotFoundError):
            identity_service.remove_role(db, admin, other.id, ADMIN_ROLE)
