from uuid import uuid4

import pytest
from fastapi import HTTPException
from sqlalchemy import func, select

from clinic_iam.api import auth as auth_api
from clinic_iam.core.security import decode_access_token, parse_authorization_header
from clinic_iam.dependencies import build_request_context
from clinic_iam.models.audit import AuditLog
from clinic_iam.models.auth import RefreshToken
from clinic_iam.models.enums import UserStatus
from clinic_iam.models.identity import RolePermission
from clinic_iam.schemas.auth import ChangePasswordRequest, LoginRequest, RefreshTokenRequest
from clinic_iam.services import auth as auth_service
from clinic_iam.services import passwords as passwords_module
from clinic_iam.services.passwords import Pbkdf2PasswordHasher, verify_password

PASSWORD = "StrongPassw0rd!"


def _doctor(seed, *, status: str = UserStatus.ACTIVE.value):
    org_id = uuid4()
    read = seed.permission(org_id, "patients", "read")
    create = seed.permission(org_id, "appointments", "create")
    role = seed.role(org_id, "doctor", [read, create])
    user = seed.user(org_id, email="doc@clinic.example", phone="+15550100", roles=[role], status=status)
    return user, role


def test_login_returns_tokens_and_fresh_permissions(db_session, seed):
    user, _ = _doctor(seed)

    data = auth_service.login(db_session, identifier="DOC@clinic.example", password=PASSWORD)

    assert data["token_type"] == "Bearer"
    assert data["expires_in"] == 900
    assert data["user"]["permissions"] == ["appointments.create", "patients.read"]
    assert data["user"]["role_codes"] == ["doctor"]
    claims = decode_access_token(data["access_token"])
    assert claims["sub"] == str(user.id)
    assert claims["permissions"] == ["appointments.create", "patients.read"]


def test_login_by_phone_and_login_audit(db_session, seed):
    user, _ = _doctor(seed)

    auth_service.login(db_session, identifier="+15550100", password=PASSWORD, ip_address="10.1.1.1")
    db_session.flush()

    login_entry = db_session.execute(select(AuditLog).where(AuditLog.action == "login")).scalar_one()
    assert login_entry.user_id == str(user.id)
    assert login_entry.resource == "users"
    assert login_entry.ip_address == "10.1.1.1"
    token_entry = db_session.execute(select(AuditLog).where(AuditLog.resource == "refresh_tokens")).scalar_one()
    assert token_entry.action == "create"


def test_bad_credentials_share_one_error(db_session, seed):
    _doctor(seed)

    with pytest.raises(HTTPException) as wrong_password:
        auth_service.login(db_session, identifier="doc@clinic.example", password="nope")
    with pytest.raises(HTTPException) as unknown_user:
        auth_service.login(db_session, identifier="ghost@clinic.example", password=PASSWORD)

    assert wrong_password.value.status_code == unknown_user.value.status_code == 401
    assert wrong_password.value.detail == unknown_user.value.detail == "invalid credentials"


def test_inactive_login_is_forbidden_without_tokens(db_session, seed):
    _doctor(seed, status=UserStatus.INACTIVE.value)

    with pytest.raises(HTTPException) as exc:
        auth_service.login(db_session, identifier="doc@clinic.example", password=PASSWORD)

    assert exc.value.status_code == 403
    assert db_session.execute(select(func.count()).select_from(RefreshToken)).scalar_one() == 0


def test_refresh_rotates_and_reresolves_permissions(db_session, seed):
    user, role = _doctor(seed)
    first = auth_service.login(db_session, identifier="doc@clinic.example", password=PASSWORD)

    extra = seed.permission(user.org_id, "invoices", "read")
    extra_mapping = RolePermission(org_id=user.org_id, role_id=role.id, permission_id=extra.id)
    db_session.add(extra_mapping)
    db_session.flush()

    second = auth_service.refresh(db_session, refresh_token=first["refresh_token"])

    assert second["refresh_token"] != first["refresh_token"]
    assert second["user"]["permissions"] == ["appointments.create", "invoices.read", "patients.read"]
    with pytest.raises(HTTPException) as exc:
        auth_service.refresh(db_session, refresh_token=first["refresh_token"])
    assert exc.value.status_code == 401


def test_refresh_rejects_deactivated_user(db_session, seed):
    user, _ = _doctor(seed)
    data = auth_service.login(db_session, identifier="doc@clinic.example", password=PASSWORD)
    user.status = UserStatus.INACTIVE.value
    db_session.flush()

    with pytest.raises(HTTPException) as exc:
        auth_service.refresh(db_session, refresh_token=data["refresh_token"])
    assert exc.value.status_code == 403


def test_logout_revokes_refresh_token_and_denies_access_token(db_session, seed):
    _doctor(seed)
    data = auth_service.login(db_session, identifier="doc@clinic.example", password=PASSWORD)

    auth_service.logout(db_session, refresh_token=data["refresh_token"], access_token=data["access_token"])

    with pytest.raises(HTTPException) as refresh_exc:
        auth_service.refresh(db_session, refresh_token=data["refresh_token"])
    with pytest.raises(HTTPException) as access_exc:
        parse_authorization_header(f"Bearer {data['access_token']}")
    assert refresh_exc.value.status_code == 401
    assert access_exc.value.status_code == 401


def test_logout_with_invalid_refresh_token_is_unauthorized(db_session):
    with pytest.raises(HTTPException) as exc:
        auth_service.logout(db_session, refresh_token="not-a-token")
    assert exc.value.status_code == 401


def test_me_reflects_current_permissions(db_session, seed):
    user, _ = _doctor(seed)

    data = auth_service.me(db_session, user.id)

    assert data["id"] == user.id
    assert data["permissions"] == ["appointments.create", "patients.read"]
    with pytest.raises(HTTPException):
        auth_service.me(db_session, uuid4())


def test_change_password_wrong_current_keeps_hash(db_session, seed):
    user, _ = _doctor(seed)
    ctx = seed.ctx(user.org_id, user_id=user.id)
    original_hash = user.password_hash

    with pytest.raises(HTTPException) as exc:
        auth_service.change_password(db_session, ctx, current_password="wrong", new_password="AnotherPassw0rd!")
    assert exc.value.status_code == 401
    assert user.password_hash == original_hash

    auth_service.change_password(db_session, ctx, current_password=PASSWORD, new_password="AnotherPassw0rd!")
    assert verify_password("AnotherPassw0rd!", user.password_hash)
    db_session.flush()
    entry = db_session.execute(select(AuditLog).where(AuditLog.resource == "users")).scalar_one()
    assert entry.payload["operation"] == "change_password"


def test_auth_routes_wrap_results(db_session, seed, make_request):
    _doctor(seed)

    login = auth_api.login(
        payload=LoginRequest(identifier="doc@clinic.example", password=PASSWORD),
        request=make_request("/api/auth/login", "POST"),
        db=db_session,
    )
    assert login["request_id"] == "test-request-id"
    data = login["data"]
    assert data["token_type"] == "Bearer"

    principal = parse_authorization_header(f"Bearer {data['access_token']}")
    ctx = build_request_context(principal, make_request("/api/auth/me"))
    me = auth_api.me(request=make_request("/api/auth/me"), ctx=ctx, db=db_session)
    assert me["data"]["email"] == "doc@clinic.example"
    assert ctx.ip_address == "10.0.0.8"

    rotated = auth_api.refresh_token(
        payload=RefreshTokenRequest(refreshToken=data["refresh_token"]),
        request=make_request("/api/auth/refresh-token", "POST"),
        db=db_session,
    )
    new_refresh = rotated["data"]["refresh_token"]

    response = auth_api.change_password(
        payload=ChangePasswordRequest(currentPassword=PASSWORD, newPassword="AnotherPassw0rd!"),
        ctx=ctx,
        db=db_session,
    )
    assert response.status_code == 204

    logout = auth_api.logout(
        payload=RefreshTokenRequest(refresh_token=new_refresh),
        request=make_request("/api/auth/logout", "POST"),
        credentials=None,
        db=db_session,
    )
    assert logout.status_code == 204


class _CountingHasher:
    def __init__(self) -> None:
        self.inner = Pbkdf2PasswordHasher(1000)
        self.verify_calls = 0

    def hash(self, password: str) -> str:
        return self.inner.hash(password)

    def verify(self, password: str, password_hash: str) -> bool:
        self.verify_calls += 1
        return self.inner.verify(password, password_hash)


def test_unknown_identifier_still_runs_password_verification(db_session, seed, monkeypatch):
    _doctor(seed)
    hasher = _CountingHasher()
    monkeypatch.setattr(passwords_module, "get_password_hasher", lambda: hasher)

    with pytest.raises(HTTPException) as unknown_user:
        auth_service.login(db_session, identifier="ghost@clinic.example", password=PASSWORD)
    assert unknown_user.value.detail == "invalid credentials"
    assert hasher.verify_calls == 1

    with pytest.raises(HTTPException):
        auth_service.login(db_session, identifier="doc@clinic.example", password="wrong")
    assert hasher.verify_calls == 2
