"""服务层能力导出集合。"""

from clinic_iam.services.audit import audit_for, record_audit
from clinic_iam.services.permissions import (
    PermissionAction,
    build_permission_code,
    normalize_scope,
    resolve_permission_codes,
    resolve_permissions,
)
from clinic_iam.services.tenant_scope import (
    SUPER_ADMIN_PERMISSION,
    has_permission,
    is_super_admin,
    require_authority,
    resolve_organization_id,
    resolve_scope,
)
from clinic_iam.services.tokens import access_token_ttl_seconds, create_access_token

__all__ = [
    "audit_for",
    "record_audit",
    "PermissionAction",
    "build_permission_code",
    "normalize_scope",
    "resolve_permissions",
    "resolve_permission_codes",
    "SUPER_ADMIN_PERMISSION",
    "has_permission",
    "is_super_admin",
    "require_authority",
    "resolve_organization_id",
    "resolve_scope",
    "access_token_ttl_seconds",
    "create_access_token",
]
