from collections.abc import Iterable
from uuid import UUID, uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from starlette.requests import Request

from clinic_iam.core import security as security_module
from clinic_iam.core.config import get_settings
from clinic_iam.dependencies import RequestContext
from clinic_iam.models import AuditLog, Permission, RefreshToken, Role, RolePermission, User
from clinic_iam.models.enums import PermissionScope, UserStatus
from clinic_iam.services import passwords as passwords_module
from clinic_iam.services.passwords import get_password_hasher
from clinic_iam.services.permissions import build_permission_code
from clinic_iam.services.tenant_scope import SUPER_ADMIN_PERMISSION

TEST_JWT_SECRET = "unit-test-secret-unit-test-secret-0001"
TEST_PASSWORD = "StrongPassw0rd!"

_TABLES = (User, Role, Permission, RolePermission, RefreshToken, AuditLog)


def _clear_caches() -> None:
    get_settings.cache_clear()
    get_password_hasher.cache_clear()
    passwords_module._placeholder_hash.cache_clear()
    security_module._redis_client = None
    with security_module._LOCAL_LOCK:
        security_module._LOCAL_BLACKLIST.clear()


@pytest.fixture(autouse=True)
def _test_settings(monkeypatch):
    monkeypatch.setenv("CLINIC_AUTH_JWT_SECRET", TEST_JWT_SECRET)
    monkeypatch.setenv("CLINIC_AUTH_JWT_ALGORITHM", "HS256")
    monkeypatch.setenv("CLINIC_AUTH_PASSWORD_HASH_ITERATIONS", "1000")
    monkeypatch.delenv("CLINIC_REDIS_URL", raising=False)
    monkeypatch.delenv("CLINIC_TENANT_REJECT_ORG_MISMATCH", raising=False)
    _clear_caches()
    yield
    _clear_caches()


@pytest.fixture
def db_session() -> Session:
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    for model in _TABLES:
        model.__table__.create(engine)
    local_session = sessionmaker(bind=engine, autoflush=False, autocommit=False, class_=Session)
    db = local_session()
    try:
        yield db
    finally:
        db.close()
        engine.dispose()


@pytest.fixture
def make_request():
    def _make_request(path: str = "/test", method: str = "GET") -> Request:
        request = Request(
            {
                "type": "http",
                "method": method,
                "path": path,
                "headers": [(b"user-agent", b"pytest"), (b"x-forwarded-for", b"10.0.0.8, 10.0.0.1")],
            }
        )
        request.state.request_id = "test-request-id"
        return request

    return _make_request


class Seeder:
    """测试数据构造器。"""

    def __init__(self, db: Session) -> None:
        self.db = db

    def permission(
        self,
        org_id: UUID,
        resource: str,
        action: str,
        *,
        scope: str = PermissionScope.TENANT.value,
        active: bool = True,
    ) -> Permission:
        permission = Permission(
            org_id=org_id,
            name=f"{resource} {action}",
            permission_code=build_permission_code(resource, action),
            scope=scope,
            resource=resource,
            action=action,
            active=active,
        )
        self.db.add(permission)
        self.db.flush()
        return permission

    def role(self, org_id: UUID, role_code: str, permissions: Iterable[Permission] = ()) -> Role:
        role = Role(org_id=org_id, name=role_code.title(), role_code=role_code)
        self.db.add(role)
        self.db.flush()
        for permission in permissions:
            self.db.add(RolePermission(org_id=org_id, role_id=role.id, permission_id=permission.id))
        self.db.flush()
        return role

    def user(
        self,
        org_id: UUID,
        *,
        email: str | None = None,
        phone: str | None = None,
        password: str | None = TEST_PASSWORD,
        roles: Iterable[Role] = (),
        status: str = UserStatus.ACTIVE.value,
        full_name: str = "Test User",
    ) -> User:
        roles = list(roles)
        user = User(
            org_id=org_id,
            full_name=full_name,
            email=email,
            phone=phone,
            password_hash=passwords_module.hash_password(password) if password else None,
            status=status,
            role_ids=[str(role.id) for role in roles],
            role_codes=[role.role_code for role in roles],
        )
        self.db.add(user)
        self.db.flush()
        return user

    def ctx(
        self,
        org_id: UUID | None,
        permissions: Iterable[str] = (),
        *,
        user_id: UUID | None = None,
        super_admin: bool = False,
    ) -> RequestContext:
        codes = set(permissions)
        if super_admin:
            codes.add(SUPER_ADMIN_PERMISSION)
        return RequestContext(
            user_id=user_id or uuid4(),
            org_id=org_id,
            permissions=frozenset(codes),
            ip_address="10.0.0.8",
            user_agent="pytest",
        )


@pytest.fixture
def seed(db_session: Session) -> Seeder:
    return Seeder(db_session)
