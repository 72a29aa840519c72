"""角色与权限点映射服务。"""

from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from clinic_iam.core.errors import not_found
from clinic_iam.dependencies import RequestContext
from clinic_iam.models.enums import AuditAction, AuditResource, PermissionScope
from clinic_iam.models.identity import Permission, Role, RolePermission
from clinic_iam.services.audit import audit_for
from clinic_iam.services.roles import load_role
from clinic_iam.services.tenant_scope import is_super_admin


def _assigned_permissions(db: Session, ctx: RequestContext, role: Role) -> list[Permission]:
    stmt = (
        select(Permission)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .where(RolePermission.role_id == role.id)
    )
    if not is_super_admin(ctx):
        stmt = stmt.where(Permission.scope != PermissionScope.SYSTEM.value)
    return db.execute(stmt.order_by(Permission.permission_code.asc(), Permission.id.asc())).scalars().all()


def _validate_permission_ids(
    db: Session,
    ctx: RequestContext,
    role: Role,
    permission_ids: list[UUID],
) -> list[Permission]:
    """校验待分配权限点。

    规则：
    1. 每个 ID 都必须存在且与角色同组织。
    2. 非超级管理员不能分配 system 作用域权限点。
    违反任一条都按不存在处理。
    """
    unique_ids = list(dict.fromkeys(permission_ids))
    if not unique_ids:
        return []

    rows = db.execute(select(Permission).where(Permission.id.in_(unique_ids))).scalars().all()
    by_id = {permission.id: permission for permission in rows}
    super_admin = is_super_admin(ctx)
    validated: list[Permission] = []
    for permission_id in unique_ids:
        permission = by_id.get(permission_id)
        if permission is None or permission.org_id != role.org_id:
            raise not_found(f"permission not found: {permission_id}")
        if permission.scope == PermissionScope.SYSTEM and not super_admin:
            raise not_found(f"permission not found: {permission_id}")
        validated.append(permission)
    return validated


def list_role_permissions(db: Session, ctx: RequestContext, role_id: UUID) -> list[Permission]:
    """返回角色当前权限点，按权限码排序。"""
    role = load_role(db, ctx, role_id)
    return _assigned_permissions(db, ctx, role)


def replace_role_permissions(
    db: Session,
    ctx: RequestContext,
    role_id: UUID,
    permission_ids: list[UUID],
) -> list[Permission]:
    """整体替换角色权限点，传空列表即清空。

    非超级管理员看不到也无法重新分配 system 作用域映射，替换时保留这部分映射。
    """
    role = load_role(db, ctx, role_id)
    permissions = _validate_permission_ids(db, ctx, role, permission_ids)

    stmt = delete(RolePermission).where(RolePermission.role_id == role.id)
    if not is_super_admin(ctx):
        system_ids = select(Permission.id).where(Permission.scope == PermissionScope.SYSTEM.value)
        stmt = stmt.where(RolePermission.permission_id.not_in(system_ids))
    db.execute(stmt.execution_options(synchronize_session="fetch"))
    for permission in permissions:
        db.add(RolePermission(org_id=role.org_id, role_id=role.id, permission_id=permission.id))
    db.flush()

    audit_for(
        db,
        ctx,
        action=AuditAction.UPDATE,
        resource=AuditResource.ROLES,
        target_ids=[role.id],
        extra={"operation": "replace_permissions", "permission_ids": [item.id for item in permissions]},
    )
    return _assigned_permissions(db, ctx, role)


def add_role_permissions(
    db: Session,
    ctx: RequestContext,
    role_id: UUID,
    permission_ids: list[UUID],
) -> list[Permission]:
    """追加角色权限点，已存在的映射跳过。"""
    role = load_role(db, ctx, role_id)
    permissions = _validate_permission_ids(db, ctx, role, permission_ids)

    existing = set(
        db.execute(select(RolePermission.permission_id).where(RolePermission.role_id == role.id)).scalars().all()
    )
    added: list[UUID] = []
    for permission in permissions:
        if permission.id in existing:
            continue
        db.add(RolePermission(org_id=role.org_id, role_id=role.id, permission_id=permission.id))
        added.append(permission.id)
    db.flush()

    audit_for(
        db,
        ctx,
        action=AuditAction.UPDATE,
        resource=AuditResource.ROLES,
        target_ids=[role.id],
        extra={"operation": "add_permissions", "permission_ids": added},
    )
    return _assigned_permissions(db, ctx, role)


def remove_role_permission(db: Session, ctx: RequestContext, role_id: UUID, permission_id: UUID) -> None:
    """移除单个角色权限点，未分配时返回 404。"""
    role = load_role(db, ctx, role_id)
    mapping = db.execute(
        select(RolePermission)
        .where(RolePermission.role_id == role.id)
        .where(RolePermission.permission_id == permission_id)
    ).scalar_one_or_none()
    if mapping is None:
        raise not_found("role permission not found")

    db.delete(mapping)
    db.flush()

    audit_for(
        db,
        ctx,
        action=AuditAction.UPDATE,
        resource=AuditResource.ROLES,
        target_ids=[role.id],
        extra={"operation": "remove_permission", "permission_ids": [permission_id]},
    )
