"""用户管理服务（本地凭据存储）。"""

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from clinic_iam.core.errors import conflict, invalid_request, not_found
from clinic_iam.dependencies import RequestContext
from clinic_iam.models.enums import AuditAction, AuditResource, UserStatus
from clinic_iam.models.identity import Permission, Role, User
from clinic_iam.services.audit import audit_for
from clinic_iam.services.passwords import hash_password
from clinic_iam.services.permissions import resolve_user_permissions
from clinic_iam.services.tenant_scope import resolve_organization_id, resolve_scope

logger = logging.getLogger(__name__)


def normalize_email(value: str | None) -> str | None:
    """标准化邮箱字段（去空格 + 小写），空串视为未提供。"""
    if value is None:
        return None
    normalized = value.strip().lower()
    return normalized or None


def normalize_phone(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    return normalized or None


def normalize_status(value: str | None) -> str:
    """用户状态只允许 active/inactive，未传默认 active。"""
    if value is None or not value.strip():
        return UserStatus.ACTIVE.value
    normalized = value.strip().lower()
    if normalized not in {item.value for item in UserStatus}:
        raise invalid_request("status must be active or inactive")
    return normalized


def find_user_by_identifier(db: Session, identifier: str) -> User | None:
    """按登录标识查找用户：先按小写邮箱，再按手机号。"""
    value = (identifier or "").strip()
    if not value:
        return None
    email = normalize_email(value)
    user = db.execute(select(User).where(User.email == email).limit(1)).scalar_one_or_none()
    if user is not None:
        return user
    return db.execute(select(User).where(User.phone == value).limit(1)).scalar_one_or_none()


def _ensure_identifiers_available(
    db: Session,
    *,
    email: str | None,
    phone: str | None,
    exclude_id: UUID | None = None,
) -> None:
    """邮箱与手机号全局唯一，保证按标识登录不存在歧义。"""
    for column, value, label in ((User.email, email, "email"), (User.phone, phone, "phone")):
        if value is None:
            continue
        stmt = select(User.id).where(column == value)
        if exclude_id is not None:
            stmt = stmt.where(User.id != exclude_id)
        if db.execute(stmt.limit(1)).scalar_one_or_none() is not None:
            raise conflict(f"{label} already exists")


def resolve_roles(
    db: Session,
    *,
    org_id: UUID,
    role_ids: list[UUID] | None,
    role_codes: list[str] | None,
) -> list[Role]:
    """在用户所属组织内解析角色集合。

    规则：
    1. 只传一种时按该种解析，任一未命中返回 400。
    2. 两种都传时必须指向同一角色集合，否则返回 400。
    """
    by_ids: list[Role] | None = None
    by_codes: list[Role] | None = None

    if role_ids is not None:
        unique_ids = list(dict.fromkeys(role_ids))
        rows = (
            db.execute(select(Role).where(Role.org_id == org_id).where(Role.id.in_(unique_ids))).scalars().all()
            if unique_ids
            else []
        )
        if len(rows) != len(unique_ids):
            raise invalid_request("role_ids contain unknown roles for organization")
        by_ids = rows

    if role_codes is not None:
        unique_codes = list(dict.fromkeys(code.strip().lower() for code in role_codes if code and code.strip()))
        rows = (
            db.execute(select(Role).where(Role.org_id == org_id).where(Role.role_code.in_(unique_codes)))
            .scalars()
            .all()
            if unique_codes
            else []
        )
        if len(rows) != len(unique_codes):
            raise invalid_request("role_codes contain unknown roles for organization")
        by_codes = rows

    if by_ids is not None and by_codes is not None:
        if {role.id for role in by_ids} != {role.id for role in by_codes}:
            raise invalid_request("role_ids and role_codes do not match")
    roles = by_ids if by_ids is not None else by_codes or []
    return sorted(roles, key=lambda role: role.role_code)


def _apply_roles(user: User, roles: list[Role]) -> None:
    user.role_ids = [str(role.id) for role in roles]
    user.role_codes = [role.role_code for role in roles]


def load_user(db: Session, ctx: RequestContext, user_id: UUID) -> User:
    """按可见范围读取用户，范围外与不存在一样返回 404。"""
    user = db.get(User, user_id)
    if user is None:
        raise not_found("user not found")
    scoped_org_id = resolve_scope(ctx, None)
    if scoped_org_id is not None and user.org_id != scoped_org_id:
        raise not_found("user not found")
    return user


def list_users(
    db: Session,
    ctx: RequestContext,
    *,
    org_id: UUID | None = None,
    status: str | None = None,
    role_code: str | None = None,
) -> list[User]:
    """按可见范围查询用户。"""
    stmt = select(User)
    scoped_org_id = resolve_scope(ctx, org_id)
    if scoped_org_id is not None:
        stmt = stmt.where(User.org_id == scoped_org_id)
    if status:
        stmt = stmt.where(User.status == normalize_status(status))
    users = db.execute(stmt.order_by(User.full_name.asc(), User.id.asc())).scalars().all()
    if role_code:
        code = role_code.strip().lower()
        users = [user for user in users if code in (user.role_codes or [])]
    return users


def get_user(db: Session, ctx: RequestContext, user_id: UUID) -> User:
    return load_user(db, ctx, user_id)


def create_user(
    db: Session,
    ctx: RequestContext,
    *,
    org_id: UUID | None,
    full_name: str,
    email: str | None,
    phone: str | None,
    password: str | None,
    status: str | None = None,
    role_ids: list[UUID] | None = None,
    role_codes: list[str] | None = None,
) -> User:
    """创建用户。"""
    target_org_id = resolve_organization_id(ctx, org_id)
    name_value = (full_name or "").strip()
    if not name_value:
        raise invalid_request("full_name is required")
    email_value = normalize_email(email)
    phone_value = normalize_phone(phone)
    if email_value is None and phone_value is None:
        raise invalid_request("email or phone is required")
    _ensure_identifiers_available(db, email=email_value, phone=phone_value)
    roles = resolve_roles(db, org_id=target_org_id, role_ids=role_ids, role_codes=role_codes)

    user = User(
        org_id=target_org_id,
        full_name=name_value,
        email=email_value,
        phone=phone_value,
        password_hash=hash_password(password) if password else None,
        status=normalize_status(status),
    )
    _apply_roles(user, roles)
    db.add(user)
    db.flush()

    audit_for(
        db,
        ctx,
        action=AuditAction.CREATE,
        resource=AuditResource.USERS,
        extra={"id": user.id, "org_id": target_org_id, "role_codes": user.role_codes},
    )
    return user


def update_user_roles(
    db: Session,
    ctx: RequestContext,
    user_id: UUID,
    *,
    role_ids: list[UUID] | None,
    role_codes: list[str] | None,
) -> User:
    """更新用户角色，ID 与编码在用户所属组织内解析。"""
    user = load_user(db, ctx, user_id)
    if role_ids is None and role_codes is None:
        raise invalid_request("role_ids or role_codes is required")
    roles = resolve_roles(db, org_id=user.org_id, role_ids=role_ids, role_codes=role_codes)
    _apply_roles(user, roles)
    db.flush()

    audit_for(
        db,
        ctx,
        action=AuditAction.UPDATE,
        resource=AuditResource.USERS,
        extra={"id": user.id, "operation": "assign_roles", "role_codes": user.role_codes},
    )
    return user


def update_user_status(db: Session, ctx: RequestContext, user_id: UUID, *, status: str) -> User:
    """更新用户状态。"""
    user = load_user(db, ctx, user_id)
    if status is None or not status.strip():
        raise invalid_request("status is required")
    user.status = normalize_status(status)
    db.flush()

    audit_for(
        db,
        ctx,
        action=AuditAction.UPDATE,
        resource=AuditResource.USERS,
        extra={"id": user.id, "operation": "status", "status": user.status},
    )
    return user


def deactivate_user(db: Session, ctx: RequestContext, user_id: UUID) -> User:
    """软删除用户：置为 inactive，记录保留。"""
    user = load_user(db, ctx, user_id)
    user.status = UserStatus.INACTIVE.value
    db.flush()
    logger.info("user deactivated id=%s org_id=%s", user.id, user.org_id)

    audit_for(
        db,
        ctx,
        action=AuditAction.DELETE,
        resource=AuditResource.USERS,
        extra={"id": user.id},
    )
    return user


def list_user_permissions(db: Session, ctx: RequestContext, user_id: UUID) -> list[Permission]:
    """返回用户当前有效权限点。"""
    user = load_user(db, ctx, user_id)
    return resolve_user_permissions(db, user)
