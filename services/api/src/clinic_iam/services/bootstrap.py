"""组织初始化服务。

为新组织写入默认权限点目录、admin 角色与首个管理员账号；
可选同时开通平台超级管理员（system.super_admin）。重复执行是幂等的。
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from clinic_iam.core.errors import conflict, invalid_request
from clinic_iam.models.enums import AuditAction, AuditResource, PermissionScope, UserStatus
from clinic_iam.models.identity import Permission, Role, RolePermission, User
from clinic_iam.services.audit import record_audit
from clinic_iam.services.passwords import hash_password
from clinic_iam.services.permissions import build_permission_code
from clinic_iam.services.tenant_scope import SUPER_ADMIN_PERMISSION
from clinic_iam.services.users import normalize_email, normalize_phone

ADMIN_ROLE_CODE = "admin"
SUPER_ADMIN_ROLE_CODE = "super_admin"

_CRUD_RESOURCES = [
    "lookup_values",
    "organizations",
    "clinics",
    "branches",
    "departments",
    "roles",
    "permissions",
    "users",
    "staff",
    "staff_leaves",
    "rosters",
    "patients",
    "patient_medical_history",
    "allergies",
    "diagnoses",
    "appointments",
    "treatment_types",
    "treatments",
    "treatment_sessions",
    "treatment_packages",
    "prescriptions",
    "invoices",
    "discounts",
    "expenses",
    "suppliers",
    "inventory_items",
    "orders",
    "house_visits",
]
_READ_CREATE_RESOURCES = ["reminders", "inventory_transactions", "revenue_ledger", "payments"]
_READ_UPDATE_RESOURCES = ["settings", "staff_availability"]
_READ_ONLY_RESOURCES = ["audit_log", "financial_summary", "inventory_levels", "reports", "receipts"]
_EXTRA_ACTIONS = [
    ("users", "assign_roles"),
    ("users", "status"),
    ("patients", "duplicates"),
    ("patients", "timeline"),
    ("appointments", "status"),
    ("appointments", "reschedule"),
    ("appointments", "available_slots"),
    ("treatments", "results"),
    ("treatment_packages", "consume"),
    ("treatment_packages", "status"),
    ("prescriptions", "fulfill"),
    ("prescriptions", "approve"),
    ("prescriptions", "status"),
    ("invoices", "status"),
    ("discounts", "approve"),
    ("rosters", "generate"),
    ("rosters", "publish"),
    ("orders", "status"),
    ("orders", "receive"),
    ("house_visits", "status"),
    ("staff", "performance"),
    ("refunds", "create"),
]


def _label(resource: str, action: str) -> str:
    return f"{resource.replace('_', ' ').title()} {action.replace('_', ' ').title()}"


def default_permission_catalog() -> list[tuple[str, str]]:
    """返回默认租户权限点 (resource, action) 列表，按权限码排序。"""
    pairs: list[tuple[str, str]] = []
    for resource in _CRUD_RESOURCES:
        pairs.extend((resource, action) for action in ("read", "create", "update", "delete"))
    for resource in _READ_CREATE_RESOURCES:
        pairs.extend((resource, action) for action in ("read", "create"))
    for resource in _READ_UPDATE_RESOURCES:
        pairs.extend((resource, action) for action in ("read", "update"))
    pairs.extend((resource, "read") for resource in _READ_ONLY_RESOURCES)
    pairs.extend(_EXTRA_ACTIONS)
    return sorted(dict.fromkeys(pairs), key=lambda pair: build_permission_code(*pair))


def _upsert_permission(db: Session, *, org_id: UUID, resource: str, action: str, scope: str) -> Permission:
    code = build_permission_code(resource, action)
    permission = db.execute(
        select(Permission).where(Permission.org_id == org_id).where(Permission.permission_code == code)
    ).scalar_one_or_none()
    if permission is None:
        permission = Permission(
            org_id=org_id,
            name=_label(resource, action),
            permission_code=code,
            scope=scope,
            resource=resource,
            action=action,
        )
        db.add(permission)
    permission.active = True
    return permission


def _upsert_role(db: Session, *, org_id: UUID, role_code: str, name: str, description: str) -> Role:
    role = db.execute(
        select(Role).where(Role.org_id == org_id).where(Role.role_code == role_code)
    ).scalar_one_or_none()
    if role is None:
        role = Role(org_id=org_id, role_code=role_code, name=name, description=description)
        db.add(role)
    return role


def _grant(db: Session, role: Role, permissions: list[Permission]) -> None:
    db.flush()
    existing = set(
        db.execute(select(RolePermission.permission_id).where(RolePermission.role_id == role.id)).scalars().all()
    )
    for permission in permissions:
        if permission.id not in existing:
            db.add(RolePermission(org_id=role.org_id, role_id=role.id, permission_id=permission.id))


def bootstrap_organization(
    db: Session,
    *,
    org_id: UUID,
    admin_full_name: str,
    admin_password: str,
    admin_email: str | None = None,
    admin_phone: str | None = None,
    super_admin: bool = False,
) -> User:
    """初始化组织权限目录与首个管理员。

    管理员已存在（同邮箱/手机号）时只补齐角色与权限，不重置口令。
    """
    email = normalize_email(admin_email)
    phone = normalize_phone(admin_phone)
    if email is None and phone is None:
        raise invalid_request("email or phone is required")

    tenant_permissions = [
        _upsert_permission(db, org_id=org_id, resource=resource, action=action, scope=PermissionScope.TENANT.value)
        for resource, action in default_permission_catalog()
    ]
    admin_role = _upsert_role(
        db,
        org_id=org_id,
        role_code=ADMIN_ROLE_CODE,
        name="Administrator",
        description="Organization administrator with every tenant permission",
    )
    _grant(db, admin_role, tenant_permissions)
    roles = [admin_role]

    if super_admin:
        system_resource, system_action = SUPER_ADMIN_PERMISSION.split(".", 1)
        system_permission = _upsert_permission(
            db,
            org_id=org_id,
            resource=system_resource,
            action=system_action,
            scope=PermissionScope.SYSTEM.value,
        )
        super_role = _upsert_role(
            db,
            org_id=org_id,
            role_code=SUPER_ADMIN_ROLE_CODE,
            name="Super Administrator",
            description="Platform-wide administrator",
        )
        _grant(db, super_role, [system_permission])
        roles.append(super_role)

    stmt = select(User)
    stmt = stmt.where(User.email == email) if email is not None else stmt.where(User.phone == phone)
    user = db.execute(stmt.limit(1)).scalar_one_or_none()
    if user is not None and user.org_id != org_id:
        raise conflict("admin identifier already used by another organization")
    if user is None:
        user = User(
            org_id=org_id,
            full_name=admin_full_name.strip(),
            email=email,
            phone=phone,
            password_hash=hash_password(admin_password),
            status=UserStatus.ACTIVE.value,
        )
        db.add(user)

    role_ids = list(user.role_ids or [])
    role_codes = list(user.role_codes or [])
    for role in roles:
        if str(role.id) not in role_ids:
            role_ids.append(str(role.id))
            role_codes.append(role.role_code)
    user.role_ids = role_ids
    user.role_codes = role_codes
    db.flush()

    record_audit(
        db,
        actor_user_id=user.id,
        action=AuditAction.CREATE,
        resource=AuditResource.USERS,
        extra={
            "id": user.id,
            "operation": "bootstrap_organization",
            "org_id": org_id,
            "role_codes": role_codes,
            "permission_count": len(tenant_permissions),
        },
    )
    return user
