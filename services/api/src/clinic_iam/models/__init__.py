"""ORM 模型导出集合。"""

from clinic_iam.models.audit import AuditLog
from clinic_iam.models.auth import RefreshToken
from clinic_iam.models.identity import Permission, Role, RolePermission, User

__all__ = [
    "AuditLog",
    "Permission",
    "RefreshToken",
    "Role",
    "RolePermission",
    "User",
]
