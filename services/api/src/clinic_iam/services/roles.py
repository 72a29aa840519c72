"""角色管理服务。"""

import logging
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from clinic_iam.core.errors import conflict, invalid_request, not_found
from clinic_iam.dependencies import RequestContext
from clinic_iam.models.enums import AuditAction, AuditResource
from clinic_iam.models.identity import Role, RolePermission, User
from clinic_iam.services.audit import audit_for
from clinic_iam.services.tenant_scope import resolve_organization_id, resolve_scope

logger = logging.getLogger(__name__)


def normalize_role_code(role_code: str) -> str:
    """规范化角色编码。"""
    value = (role_code or "").strip().lower()
    if not value:
        raise invalid_request("role_code is required")
    return value


def load_role(db: Session, ctx: RequestContext, role_id: UUID) -> Role:
    """按可见范围读取角色，范围外与不存在一样返回 404。"""
    role = db.get(Role, role_id)
    if role is None:
        raise not_found("role not found")
    scoped_org_id = resolve_scope(ctx, None)
    if scoped_org_id is not None and role.org_id != scoped_org_id:
        raise not_found("role not found")
    return role


def _ensure_unique(
    db: Session,
    *,
    org_id: UUID,
    name: str,
    role_code: str,
    exclude_id: UUID | None = None,
) -> None:
    """同组织内角色名与角色编码都必须唯一。"""
    for column, value, label in ((Role.name, name, "name"), (Role.role_code, role_code, "code")):
        stmt = select(Role.id).where(Role.org_id == org_id).where(column == value)
        if exclude_id is not None:
            stmt = stmt.where(Role.id != exclude_id)
        if db.execute(stmt.limit(1)).scalar_one_or_none() is not None:
            raise conflict(f"role {label} already exists: {value}")


def list_roles(db: Session, ctx: RequestContext, *, org_id: UUID | None = None) -> list[Role]:
    """按可见范围查询角色。"""
    stmt = select(Role)
    scoped_org_id = resolve_scope(ctx, org_id)
    if scoped_org_id is not None:
        stmt = stmt.where(Role.org_id == scoped_org_id)
    return db.execute(stmt.order_by(Role.role_code.asc(), Role.id.asc())).scalars().all()


def get_role(db: Session, ctx: RequestContext, role_id: UUID) -> Role:
    return load_role(db, ctx, role_id)


def create_role(
    db: Session,
    ctx: RequestContext,
    *,
    org_id: UUID | None,
    name: str,
    role_code: str,
    description: str | None = None,
) -> Role:
    """创建角色。"""
    target_org_id = resolve_organization_id(ctx, org_id)
    name_value = (name or "").strip()
    if not name_value:
        raise invalid_request("name is required")
    code_value = normalize_role_code(role_code)
    _ensure_unique(db, org_id=target_org_id, name=name_value, role_code=code_value)

    role = Role(org_id=target_org_id, name=name_value, role_code=code_value, description=description)
    db.add(role)
    db.flush()

    audit_for(
        db,
        ctx,
        action=AuditAction.CREATE,
        resource=AuditResource.ROLES,
        extra={"id": role.id, "org_id": target_org_id, "role_code": code_value},
    )
    return role


def update_role(
    db: Session,
    ctx: RequestContext,
    role_id: UUID,
    *,
    name: str | None = None,
    role_code: str | None = None,
    description: str | None = None,
) -> Role:
    """更新角色，所属组织不可变更。"""
    role = load_role(db, ctx, role_id)
    name_value = name.strip() if name is not None else role.name
    if not name_value:
        raise invalid_request("name is required")
    code_value = normalize_role_code(role_code) if role_code is not None else role.role_code
    _ensure_unique(db, org_id=role.org_id, name=name_value, role_code=code_value, exclude_id=role.id)

    old_code = role.role_code
    role.name = name_value
    role.role_code = code_value
    if description is not None:
        role.description = description

    if old_code != code_value:
        # 用户上冗余保存的角色编码需要同步。
        role_key = str(role.id)
        users = db.execute(select(User).where(User.org_id == role.org_id)).scalars().all()
        for user in users:
            if role_key in (user.role_ids or []):
                user.role_codes = [code_value if code == old_code else code for code in user.role_codes or []]
    db.flush()

    audit_for(
        db,
        ctx,
        action=AuditAction.UPDATE,
        resource=AuditResource.ROLES,
        extra={"id": role.id, "role_code": code_value},
    )
    return role


def _role_in_use(db: Session, role: Role) -> bool:
    mapped = db.execute(
        select(func.count()).select_from(RolePermission).where(RolePermission.role_id == role.id)
    ).scalar_one()
    if mapped:
        return True
    role_key = str(role.id)
    role_id_lists = db.execute(select(User.role_ids).where(User.org_id == role.org_id)).scalars().all()
    return any(role_key in (role_ids or []) for role_ids in role_id_lists)


def delete_role(db: Session, ctx: RequestContext, role_id: UUID) -> None:
    """删除角色，仍被权限映射或用户引用时返回 409。"""
    role = load_role(db, ctx, role_id)
    if _role_in_use(db, role):
        raise conflict("role is in use")

    audit_for(
        db,
        ctx,
        action=AuditAction.DELETE,
        resource=AuditResource.ROLES,
        extra={"id": role.id, "role_code": role.role_code},
    )
    db.delete(role)
    db.flush()
    logger.info("role deleted id=%s org_id=%s", role.id, role.org_id)
