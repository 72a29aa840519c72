from uuid import uuid4

import pytest
from fastapi import HTTPException

from clinic_iam.models.enums import PermissionScope
from clinic_iam.services.role_permissions import (
    add_role_permissions,
    list_role_permissions,
    remove_role_permission,
    replace_role_permissions,
)


def _codes(rows) -> list[str]:
    return [row.permission_code for row in rows]


def test_replace_then_list_round_trip_and_clear(db_session, seed):
    org_id = uuid4()
    read = seed.permission(org_id, "patients", "read")
    create = seed.permission(org_id, "appointments", "create")
    role = seed.role(org_id, "receptionist")
    ctx = seed.ctx(org_id, ["roles.update", "roles.read"])

    replaced = replace_role_permissions(db_session, ctx, role.id, [read.id, create.id, read.id])

    assert _codes(replaced) == ["appointments.create", "patients.read"]
    assert _codes(list_role_permissions(db_session, ctx, role.id)) == ["appointments.create", "patients.read"]

    replace_role_permissions(db_session, ctx, role.id, [create.id])
    assert _codes(list_role_permissions(db_session, ctx, role.id)) == ["appointments.create"]

    replace_role_permissions(db_session, ctx, role.id, [])
    assert list_role_permissions(db_session, ctx, role.id) == []


def test_add_is_a_union_that_skips_existing(db_session, seed):
    org_id = uuid4()
    read = seed.permission(org_id, "patients", "read")
    update = seed.permission(org_id, "patients", "update")
    role = seed.role(org_id, "nurse", [read])
    ctx = seed.ctx(org_id, ["roles.update"])

    rows = add_role_permissions(db_session, ctx, role.id, [read.id, update.id])

    assert _codes(rows) == ["patients.read", "patients.update"]


def test_remove_unassigned_permission_is_not_found(db_session, seed):
    org_id = uuid4()
    read = seed.permission(org_id, "patients", "read")
    other = seed.permission(org_id, "patients", "update")
    role = seed.role(org_id, "nurse", [read])
    ctx = seed.ctx(org_id, ["roles.update"])

    remove_role_permission(db_session, ctx, role.id, read.id)
    assert list_role_permissions(db_session, ctx, role.id) == []

    with pytest.raises(HTTPException) as exc:
        remove_role_permission(db_session, ctx, role.id, other.id)
    assert exc.value.status_code == 404


def test_foreign_and_unknown_permission_ids_are_not_found(db_session, seed):
    org_1, org_2 = uuid4(), uuid4()
    foreign = seed.permission(org_2, "patients", "read")
    role = seed.role(org_1, "nurse")
    ctx = seed.ctx(org_1, ["roles.update"])

    for permission_id in (foreign.id, uuid4()):
        with pytest.raises(HTTPException) as exc:
            replace_role_permissions(db_session, ctx, role.id, [permission_id])
        assert exc.value.status_code == 404


def test_system_permissions_only_assignable_by_super_admin(db_session, seed):
    org_id = uuid4()
    system_permission = seed.permission(org_id, "system", "configure", scope=PermissionScope.SYSTEM.value)
    tenant_permission = seed.permission(org_id, "patients", "read")
    role = seed.role(org_id, "ops")
    tenant_ctx = seed.ctx(org_id, ["roles.update", "roles.read"])
    super_ctx = seed.ctx(org_id, super_admin=True)

    with pytest.raises(HTTPException) as exc:
        add_role_permissions(db_session, tenant_ctx, role.id, [system_permission.id])
    assert exc.value.status_code == 404

    add_role_permissions(db_session, super_ctx, role.id, [system_permission.id, tenant_permission.id])

    assert _codes(list_role_permissions(db_session, super_ctx, role.id)) == ["patients.read", "system.configure"]
    assert _codes(list_role_permissions(db_session, tenant_ctx, role.id)) == ["patients.read"]


def test_role_outside_scope_is_not_found(db_session, seed):
    org_1, org_2 = uuid4(), uuid4()
    foreign_role = seed.role(org_2, "nurse")

    with pytest.raises(HTTPException) as exc:
        list_role_permissions(db_session, seed.ctx(org_1, ["roles.read"]), foreign_role.id)
    assert exc.value.status_code == 404


def test_tenant_replace_keeps_hidden_system_mappings(db_session, seed):
    org_id = uuid4()
    system_permission = seed.permission(org_id, "system", "configure", scope=PermissionScope.SYSTEM.value)
    read = seed.permission(org_id, "patients", "read")
    update = seed.permission(org_id, "patients", "update")
    role = seed.role(org_id, "ops", [system_permission, read])
    tenant_ctx = seed.ctx(org_id, ["roles.update", "roles.read"])
    super_ctx = seed.ctx(org_id, super_admin=True)

    replaced = replace_role_permissions(db_session, tenant_ctx, role.id, [update.id])

    assert _codes(replaced) == ["patients.update"]
    assert _codes(list_role_permissions(db_session, super_ctx, role.id)) == ["patients.update", "system.configure"]

    replace_role_permissions(db_session, super_ctx, role.id, [])
    assert list_role_permissions(db_session, super_ctx, role.id) == []
