from uuid import uuid4

import pytest
from fastapi import HTTPException
from sqlalchemy import func, select

from clinic_iam.models.audit import AuditLog
from clinic_iam.models.identity import Permission, Role, RolePermission
from clinic_iam.services.audit import record_audit
from clinic_iam.services.bootstrap import (
    ADMIN_ROLE_CODE,
    SUPER_ADMIN_ROLE_CODE,
    bootstrap_organization,
    default_permission_catalog,
)
from clinic_iam.services.permissions import resolve_permission_codes


def test_record_audit_enriches_payload(db_session):
    actor = uuid4()
    entry = record_audit(
        db_session,
        actor_user_id=actor,
        action="update",
        resource="roles",
        extra={"ids": [1, 2], "operation": "bulk"},
        ip_address="10.0.0.8",
        user_agent="pytest",
    )

    assert entry.user_id == str(actor)
    assert entry.payload["actor_user_id"] == str(actor)
    assert entry.payload["action"] == "update"
    assert entry.payload["resource"] == "roles"
    assert entry.payload["target_ids"] == ["1", "2"]
    assert entry.payload["operation"] == "bulk"


def test_record_audit_target_id_precedence(db_session):
    explicit = record_audit(
        db_session,
        actor_user_id="actor-1",
        action="update",
        resource="users",
        target_ids=["t-1"],
        extra={"ids": ["x"], "id": "y"},
    )
    single = record_audit(db_session, actor_user_id="actor-1", action="update", resource="users", extra={"id": "y"})
    empty = record_audit(db_session, actor_user_id="actor-1", action="update", resource="users")

    assert explicit.payload["target_ids"] == ["t-1"]
    assert single.payload["target_ids"] == ["y"]
    assert empty.payload["target_ids"] == []


def test_record_audit_rejects_blank_actor(db_session):
    for actor in (None, "", "   "):
        with pytest.raises(HTTPException) as exc:
            record_audit(db_session, actor_user_id=actor, action="create", resource="roles")
        assert exc.value.status_code == 400
    db_session.flush()
    assert db_session.execute(select(func.count()).select_from(AuditLog)).scalar_one() == 0


def test_default_catalog_codes_are_unique():
    pairs = default_permission_catalog()
    codes = [f"{resource}.{action}" for resource, action in pairs]

    assert len(codes) == len(set(codes))
    assert "users.assign_roles" in codes
    assert "permissions.read" in codes
    assert not any(code.startswith("system.") for code in codes)


def test_bootstrap_organization_seeds_admin_and_is_idempotent(db_session):
    org_id = uuid4()

    admin = bootstrap_organization(
        db_session,
        org_id=org_id,
        admin_full_name="Clinic Admin",
        admin_email="Admin@Clinic.Example",
        admin_password="StrongPassw0rd!",
    )
    again = bootstrap_organization(
        db_session,
        org_id=org_id,
        admin_full_name="Clinic Admin",
        admin_email="admin@clinic.example",
        admin_password="Ignored0000!",
    )

    assert again.id == admin.id
    assert admin.email == "admin@clinic.example"
    assert admin.role_codes == [ADMIN_ROLE_CODE]
    expected = len(default_permission_catalog())
    assert db_session.execute(select(func.count()).select_from(Permission)).scalar_one() == expected
    assert db_session.execute(select(func.count()).select_from(RolePermission)).scalar_one() == expected
    codes = resolve_permission_codes(db_session, admin.id)
    assert len(codes) == expected
    assert "system.super_admin" not in codes


def test_bootstrap_super_admin(db_session):
    org_id = uuid4()

    admin = bootstrap_organization(
        db_session,
        org_id=org_id,
        admin_full_name="Platform Admin",
        admin_phone="+15550999",
        admin_password="StrongPassw0rd!",
        super_admin=True,
    )

    assert admin.role_codes == [ADMIN_ROLE_CODE, SUPER_ADMIN_ROLE_CODE]
    assert "system.super_admin" in resolve_permission_codes(db_session, admin.id)
    super_role = db_session.execute(select(Role).where(Role.role_code == SUPER_ADMIN_ROLE_CODE)).scalar_one()
    assert super_role.org_id == org_id


def test_bootstrap_requires_identifier(db_session):
    with pytest.raises(HTTPException) as exc:
        bootstrap_organization(db_session, org_id=uuid4(), admin_full_name="X", admin_password="StrongPassw0rd!")
    assert exc.value.status_code == 400
