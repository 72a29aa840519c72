from uuid import uuid4

import pytest
from fastapi import HTTPException
from sqlalchemy import select

from clinic_iam.models.audit import AuditLog
from clinic_iam.models.enums import PermissionScope
from clinic_iam.models.identity import RolePermission
from clinic_iam.services.role_permissions import add_role_permissions, list_role_permissions
from clinic_iam.services.permissions import (
    build_permission_code,
    create_permission,
    deactivate_permission,
    get_permission,
    list_permissions,
    normalize_scope,
    resolve_permission_codes,
    update_permission,
)


def test_build_permission_code():
    assert build_permission_code(" patients ", "read ") == "patients.read"
    with pytest.raises(HTTPException):
        build_permission_code("patients", " ")


def test_normalize_scope_rules(seed):
    tenant_ctx = seed.ctx(uuid4())
    super_ctx = seed.ctx(uuid4(), super_admin=True)

    assert normalize_scope(tenant_ctx, scope=None, resource="patients") == "tenant"
    assert normalize_scope(tenant_ctx, scope=None, resource="patients", existing_scope="tenant") == "tenant"
    assert normalize_scope(super_ctx, scope=None, resource="system") == "system"
    assert normalize_scope(super_ctx, scope="SYSTEM", resource="patients") == "system"

    with pytest.raises(HTTPException) as invalid:
        normalize_scope(tenant_ctx, scope="global", resource="patients")
    assert invalid.value.status_code == 400

    with pytest.raises(HTTPException) as forbidden:
        normalize_scope(tenant_ctx, scope=None, resource="system")
    assert forbidden.value.status_code == 403
    assert forbidden.value.detail == "system scope requires super admin"


def test_update_recomputes_code_and_rechecks_uniqueness(db_session, seed):
    org_id = uuid4()
    ctx = seed.ctx(org_id, ["permissions.create", "permissions.update"])
    seed.permission(org_id, "patients", "read")
    target = create_permission(db_session, ctx, org_id=None, name="Patients Write", resource="patients", action="write")

    with pytest.raises(HTTPException) as exc:
        update_permission(db_session, ctx, target.id, action="read")
    assert exc.value.status_code == 409

    updated = update_permission(db_session, ctx, target.id, resource="appointments", action="create")
    assert updated.permission_code == "appointments.create"
    assert updated.org_id == org_id


def test_create_duplicate_code_conflicts(db_session, seed):
    org_id = uuid4()
    ctx = seed.ctx(org_id, ["permissions.create"])
    create_permission(db_session, ctx, org_id=org_id, name="Read", resource="patients", action="read")

    with pytest.raises(HTTPException) as exc:
        create_permission(db_session, ctx, org_id=org_id, name="Again", resource="patients", action="read")
    assert exc.value.status_code == 409


def test_create_writes_into_actor_org_and_audits(db_session, seed):
    org_1, org_2 = uuid4(), uuid4()
    ctx = seed.ctx(org_1, ["permissions.create"])

    permission = create_permission(db_session, ctx, org_id=org_2, name="Read", resource="patients", action="read")
    db_session.flush()

    assert permission.org_id == org_1
    entry = db_session.execute(select(AuditLog).where(AuditLog.resource == "permissions")).scalar_one()
    assert entry.action == "create"
    assert entry.user_id == str(ctx.user_id)
    assert entry.payload["target_ids"] == [str(permission.id)]
    assert entry.payload["permission_code"] == "patients.read"


def test_system_permissions_hidden_from_non_super_admin(db_session, seed):
    org_id = uuid4()
    seed.permission(org_id, "patients", "read")
    system_permission = seed.permission(org_id, "system", "configure", scope=PermissionScope.SYSTEM.value)
    tenant_ctx = seed.ctx(org_id, ["permissions.read"])
    super_ctx = seed.ctx(org_id, super_admin=True)

    codes = [row.permission_code for row in list_permissions(db_session, tenant_ctx, include_system=True)]
    assert codes == ["patients.read"]

    with pytest.raises(HTTPException) as exc:
        get_permission(db_session, tenant_ctx, system_permission.id)
    assert exc.value.status_code == 404

    super_codes = [row.permission_code for row in list_permissions(db_session, super_ctx, include_system=True)]
    assert super_codes == ["patients.read", "system.configure"]
    hidden = [row.permission_code for row in list_permissions(db_session, super_ctx, include_system=False)]
    assert hidden == ["patients.read"]


def test_list_filters_and_org_scope(db_session, seed):
    org_1, org_2 = uuid4(), uuid4()
    seed.permission(org_1, "patients", "read")
    seed.permission(org_1, "patients", "delete", active=False)
    seed.permission(org_1, "appointments", "read")
    seed.permission(org_2, "invoices", "read")
    ctx = seed.ctx(org_1, ["permissions.read"])

    assert [p.permission_code for p in list_permissions(db_session, ctx, org_id=org_2)] == [
        "appointments.read",
        "patients.delete",
        "patients.read",
    ]
    assert [p.permission_code for p in list_permissions(db_session, ctx, resource="patients", active=True)] == [
        "patients.read"
    ]
    assert [p.permission_code for p in list_permissions(db_session, ctx, action="read")] == [
        "appointments.read",
        "patients.read",
    ]


def test_get_other_org_permission_is_not_found(db_session, seed):
    org_1, org_2 = uuid4(), uuid4()
    foreign = seed.permission(org_2, "patients", "read")

    with pytest.raises(HTTPException) as exc:
        get_permission(db_session, seed.ctx(org_1), foreign.id)
    assert exc.value.status_code == 404


def test_deactivate_removes_permission_from_roles(db_session, seed):
    org_id = uuid4()
    read = seed.permission(org_id, "patients", "read")
    write = seed.permission(org_id, "patients", "update")
    role = seed.role(org_id, "nurse", [read, write])
    user = seed.user(org_id, email="nurse@clinic.example", roles=[role])
    ctx = seed.ctx(org_id, ["permissions.delete"])

    assert resolve_permission_codes(db_session, user.id) == ["patients.read", "patients.update"]

    deactivated = deactivate_permission(db_session, ctx, read.id)

    assert deactivated.active is False
    remaining = db_session.execute(
        select(RolePermission.permission_id).where(RolePermission.role_id == role.id)
    ).scalars().all()
    assert remaining == [write.id]
    assert resolve_permission_codes(db_session, user.id) == ["patients.update"]


def test_update_inactive_cascades_like_deactivate(db_session, seed):
    org_id = uuid4()
    read = seed.permission(org_id, "patients", "read")
    role = seed.role(org_id, "nurse", [read])
    ctx = seed.ctx(org_id, ["permissions.update"])

    update_permission(db_session, ctx, read.id, active=False)

    mappings = db_session.execute(select(RolePermission).where(RolePermission.role_id == role.id)).scalars().all()
    assert mappings == []


def test_update_inactive_detaches_already_inactive_permission(db_session, seed):
    org_id = uuid4()
    billing = seed.permission(org_id, "billing", "read", active=False)
    role = seed.role(org_id, "clerk")
    ctx = seed.ctx(org_id, ["permissions.update", "roles.update", "roles.read"])
    add_role_permissions(db_session, ctx, role.id, [billing.id])
    assert [row.permission_code for row in list_role_permissions(db_session, ctx, role.id)] == ["billing.read"]

    update_permission(db_session, ctx, billing.id, active=False)

    assert "billing.read" not in [row.permission_code for row in list_role_permissions(db_session, ctx, role.id)]
    mappings = db_session.execute(select(RolePermission).where(RolePermission.role_id == role.id)).scalars().all()
    assert mappings == []


def test_super_admin_create_defaults_to_tenant_scope_visible_only_in_its_org(db_session, seed):
    org_1, org_2 = uuid4(), uuid4()
    super_ctx = seed.ctx(uuid4(), super_admin=True)
    admin_1 = seed.ctx(org_1, ["permissions.read"])
    admin_2 = seed.ctx(org_2, ["permissions.read"])

    created = create_permission(
        db_session, super_ctx, org_id=org_1, name="Billing Read", resource="billing", action="read"
    )

    assert created.scope == PermissionScope.TENANT.value
    assert created.org_id == org_1
    assert [row.id for row in list_permissions(db_session, admin_1)] == [created.id]
    assert list_permissions(db_session, admin_2) == []


def test_tenant_admin_cannot_touch_system_scope(db_session, seed):
    org_id = uuid4()
    system_permission = seed.permission(org_id, "system", "configure", scope=PermissionScope.SYSTEM.value)
    ctx = seed.ctx(org_id, ["permissions.create", "permissions.update", "permissions.read"])

    with pytest.raises(HTTPException) as create_exc:
        create_permission(db_session, ctx, org_id=None, name="Configure", resource="system", action="configure")
    assert create_exc.value.status_code == 403

    with pytest.raises(HTTPException) as update_exc:
        update_permission(db_session, ctx, system_permission.id, name="Renamed")
    assert update_exc.value.status_code == 403

    codes = [row.permission_code for row in list_permissions(db_session, ctx, include_system=True)]
    assert "system.configure" not in codes


def test_super_admin_creates_system_permission_with_explicit_org(db_session, seed):
    org_id = uuid4()
    ctx = seed.ctx(uuid4(), super_admin=True)

    permission = create_permission(db_session, ctx, org_id=org_id, name="Configure", resource="system", action="configure")

    assert permission.scope == "system"
    assert permission.org_id == org_id


def test_resolver_ignores_inactive_and_deduplicates(db_session, seed):
    org_id = uuid4()
    shared = seed.permission(org_id, "patients", "read")
    inactive = seed.permission(org_id, "patients", "delete", active=False)
    doctor = seed.role(org_id, "doctor", [shared, inactive])
    nurse = seed.role(org_id, "nurse", [shared])
    user = seed.user(org_id, email="multi@clinic.example", roles=[doctor, nurse])
    no_roles = seed.user(org_id, email="none@clinic.example")

    assert resolve_permission_codes(db_session, user.id) == ["patients.read"]
    assert resolve_permission_codes(db_session, no_roles.id) == []
    with pytest.raises(HTTPException) as exc:
        resolve_permission_codes(db_session, uuid4())
    assert exc.value.status_code == 404
