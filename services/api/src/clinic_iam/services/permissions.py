"""权限点目录管理与权限解析（数据库驱动）。"""

from enum import StrEnum
import logging
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from clinic_iam.core.errors import conflict, forbidden, invalid_request, not_found
from clinic_iam.dependencies import RequestContext
from clinic_iam.models.enums import AuditAction, AuditResource, PermissionScope
from clinic_iam.models.identity import Permission, RolePermission, User
from clinic_iam.services.audit import audit_for
from clinic_iam.services.tenant_scope import is_super_admin, resolve_organization_id, resolve_scope

logger = logging.getLogger(__name__)

SYSTEM_RESOURCE = "system"


class PermissionAction(StrEnum):
    """管理接口鉴权动作定义。"""

    PERMISSIONS_READ = "permissions.read"
    PERMISSIONS_CREATE = "permissions.create"
    PERMISSIONS_UPDATE = "permissions.update"
    PERMISSIONS_DELETE = "permissions.delete"

    ROLES_READ = "roles.read"
    ROLES_CREATE = "roles.create"
    ROLES_UPDATE = "roles.update"
    ROLES_DELETE = "roles.delete"

    USERS_READ = "users.read"
    USERS_CREATE = "users.create"
    USERS_UPDATE = "users.update"
    USERS_DELETE = "users.delete"
    USERS_ASSIGN_ROLES = "users.assign_roles"
    USERS_STATUS = "users.status"


def build_permission_code(resource: str, action: str) -> str:
    """权限码始终由 resource + "." + action 计算得出。"""
    resource_value = (resource or "").strip()
    action_value = (action or "").strip()
    if not resource_value or not action_value:
        raise invalid_request("resource and action are required")
    return f"{resource_value}.{action_value}"


def normalize_scope(
    ctx: RequestContext,
    *,
    scope: str | None,
    resource: str,
    existing_scope: str | None = None,
) -> str:
    """规范化权限作用域。

    规则：
    1. 未传 scope 时沿用已有值，新建时默认为 tenant。
    2. resource 为 system 时强制 system。
    3. 只有超级管理员可以落地 system 作用域。
    """
    if scope is None or not scope.strip():
        value = existing_scope or PermissionScope.TENANT.value
    else:
        value = scope.strip().lower()
        if value not in {item.value for item in PermissionScope}:
            raise invalid_request("scope must be tenant or system")

    if resource.strip() == SYSTEM_RESOURCE:
        value = PermissionScope.SYSTEM.value

    if value == PermissionScope.SYSTEM and not is_super_admin(ctx):
        raise forbidden("system scope requires super admin")
    return value


def _ensure_code_available(db: Session, *, org_id: UUID, code: str, exclude_id: UUID | None = None) -> None:
    stmt = select(Permission.id).where(Permission.org_id == org_id).where(Permission.permission_code == code)
    if exclude_id is not None:
        stmt = stmt.where(Permission.id != exclude_id)
    if db.execute(stmt.limit(1)).scalar_one_or_none() is not None:
        raise conflict(f"permission code already exists: {code}")


def _detach_from_roles(db: Session, permission_id: UUID) -> int:
    """删除引用该权限点的全部角色映射，返回删除条数。"""
    result = db.execute(delete(RolePermission).where(RolePermission.permission_id == permission_id))
    return result.rowcount or 0


def list_permissions(
    db: Session,
    ctx: RequestContext,
    *,
    org_id: UUID | None = None,
    include_system: bool = False,
    active: bool | None = None,
    resource: str | None = None,
    action: str | None = None,
) -> list[Permission]:
    """按可见范围查询权限点。

    非超级管理员即使传 include_system=true 也看不到 system 作用域权限点。
    """
    stmt = select(Permission)
    scoped_org_id = resolve_scope(ctx, org_id)
    if scoped_org_id is not None:
        stmt = stmt.where(Permission.org_id == scoped_org_id)
    if not (include_system and is_super_admin(ctx)):
        stmt = stmt.where(Permission.scope != PermissionScope.SYSTEM.value)
    if active is not None:
        stmt = stmt.where(Permission.active.is_(active))
    if resource:
        stmt = stmt.where(Permission.resource == resource.strip())
    if action:
        stmt = stmt.where(Permission.action == action.strip())
    return db.execute(stmt.order_by(Permission.permission_code.asc(), Permission.id.asc())).scalars().all()


def _load_in_scope(db: Session, ctx: RequestContext, permission_id: UUID) -> Permission:
    permission = db.get(Permission, permission_id)
    if permission is None:
        raise not_found("permission not found")
    scoped_org_id = resolve_scope(ctx, None)
    if scoped_org_id is not None and permission.org_id != scoped_org_id:
        raise not_found("permission not found")
    return permission


def _load_for_write(db: Session, ctx: RequestContext, permission_id: UUID) -> Permission:
    permission = _load_in_scope(db, ctx, permission_id)
    if permission.scope == PermissionScope.SYSTEM and not is_super_admin(ctx):
        raise forbidden("system scope requires super admin")
    return permission


def get_permission(db: Session, ctx: RequestContext, permission_id: UUID) -> Permission:
    """读取单个权限点，不可见时统一返回 404。"""
    permission = _load_in_scope(db, ctx, permission_id)
    if permission.scope == PermissionScope.SYSTEM and not is_super_admin(ctx):
        raise not_found("permission not found")
    return permission


def create_permission(
    db: Session,
    ctx: RequestContext,
    *,
    org_id: UUID | None,
    name: str,
    resource: str,
    action: str,
    scope: str | None = None,
    description: str | None = None,
    active: bool = True,
) -> Permission:
    """创建权限点。"""
    target_org_id = resolve_organization_id(ctx, org_id)
    resource_value = resource.strip()
    action_value = action.strip()
    code = build_permission_code(resource_value, action_value)
    scope_value = normalize_scope(ctx, scope=scope, resource=resource_value)
    _ensure_code_available(db, org_id=target_org_id, code=code)

    permission = Permission(
        org_id=target_org_id,
        name=name.strip(),
        permission_code=code,
        scope=scope_value,
        resource=resource_value,
        action=action_value,
        description=description,
        active=active,
    )
    db.add(permission)
    db.flush()

    audit_for(
        db,
        ctx,
        action=AuditAction.CREATE,
        resource=AuditResource.PERMISSIONS,
        extra={"id": permission.id, "org_id": target_org_id, "permission_code": code, "scope": scope_value},
    )
    return permission


def update_permission(
    db: Session,
    ctx: RequestContext,
    permission_id: UUID,
    *,
    name: str | None = None,
    resource: str | None = None,
    action: str | None = None,
    scope: str | None = None,
    description: str | None = None,
    active: bool | None = None,
) -> Permission:
    """更新权限点。

    说明：
    1. 权限码按更新后的 resource/action 重新计算并重新校验唯一性。
    2. 更新为停用时，同一事务内移除全部角色映射。
    """
    permission = _load_for_write(db, ctx, permission_id)

    resource_value = resource.strip() if resource is not None else permission.resource
    action_value = action.strip() if action is not None else permission.action
    code = build_permission_code(resource_value, action_value)
    scope_value = normalize_scope(ctx, scope=scope, resource=resource_value, existing_scope=permission.scope)
    if code != permission.permission_code:
        _ensure_code_available(db, org_id=permission.org_id, code=code, exclude_id=permission.id)

    if name is not None:
        permission.name = name.strip()
    if description is not None:
        permission.description = description
    permission.resource = resource_value
    permission.action = action_value
    permission.permission_code = code
    permission.scope = scope_value
    if active is not None:
        permission.active = active

    detached = 0
    # 显式传入 active=false 时无论原状态如何都清理映射。
    if active is False:
        detached = _detach_from_roles(db, permission.id)
        logger.info("permission deactivated id=%s detached_roles=%s", permission.id, detached)
    db.flush()

    audit_for(
        db,
        ctx,
        action=AuditAction.UPDATE,
        resource=AuditResource.PERMISSIONS,
        extra={"id": permission.id, "permission_code": code, "active": permission.active, "detached": detached},
    )
    return permission


def deactivate_permission(db: Session, ctx: RequestContext, permission_id: UUID) -> Permission:
    """停用权限点并移除全部角色映射。"""
    permission = _load_for_write(db, ctx, permission_id)

    permission.active = False
    detached = _detach_from_roles(db, permission.id)
    db.flush()
    logger.info("permission deactivated id=%s detached_roles=%s", permission.id, detached)

    audit_for(
        db,
        ctx,
        action=AuditAction.DELETE,
        resource=AuditResource.PERMISSIONS,
        extra={"id": permission.id, "permission_code": permission.permission_code, "detached": detached},
    )
    return permission


def _parse_role_ids(values: list[str] | None) -> list[UUID]:
    parsed: list[UUID] = []
    for value in values or []:
        try:
            parsed.append(UUID(str(value)))
        except ValueError:
            continue
    return parsed


def resolve_user_permissions(db: Session, user: User) -> list[Permission]:
    """按用户当前角色解析有效权限点。

    规则：
    1. 没有角色时返回空列表。
    2. 读时过滤 active=false 的权限点。
    3. 结果去重并按权限码排序。
    """
    role_ids = _parse_role_ids(user.role_ids)
    if not role_ids:
        return []

    permission_ids = (
        db.execute(select(RolePermission.permission_id).where(RolePermission.role_id.in_(role_ids)))
        .scalars()
        .all()
    )
    if not permission_ids:
        return []

    rows = (
        db.execute(
            select(Permission)
            .where(Permission.id.in_(set(permission_ids)))
            .where(Permission.active.is_(True))
            .order_by(Permission.permission_code.asc(), Permission.id.asc())
        )
        .scalars()
        .all()
    )
    resolved: list[Permission] = []
    seen: set[UUID] = set()
    for permission in rows:
        if permission.id in seen:
            continue
        seen.add(permission.id)
        resolved.append(permission)
    return resolved


def resolve_user_permission_codes(db: Session, user: User) -> list[str]:
    """返回去重、排序后的权限码，空白码被丢弃。"""
    codes = {
        permission.permission_code.strip()
        for permission in resolve_user_permissions(db, user)
        if permission.permission_code and permission.permission_code.strip()
    }
    return sorted(codes)


def _require_user(db: Session, user_id: UUID) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise not_found("user not found")
    return user


def resolve_permissions(db: Session, user_id: UUID) -> list[Permission]:
    """按用户 ID 解析有效权限点，用户不存在返回 404。"""
    return resolve_user_permissions(db, _require_user(db, user_id))


def resolve_permission_codes(db: Session, user_id: UUID) -> list[str]:
    """按用户 ID 解析有效权限码。"""
    return resolve_user_permission_codes(db, _require_user(db, user_id))
