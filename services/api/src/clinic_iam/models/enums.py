"""领域枚举定义。"""

from enum import StrEnum


class UserStatus(StrEnum):
    """用户状态。"""

    ACTIVE = "active"  # 可登录并参与权限解析。
    INACTIVE = "inactive"  # 已停用，登录返回 403，仅软删除保留。


class PermissionScope(StrEnum):
    """权限点作用域。"""

    TENANT = "tenant"  # 组织内可见、可分配。
    SYSTEM = "system"  # 平台级权限，仅超级管理员可见与分配。


class AuditAction(StrEnum):
    """审计动作。"""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    LOGIN = "login"


class AuditResource(StrEnum):
    """审计资源类型。"""

    USERS = "users"
    ROLES = "roles"
    PERMISSIONS = "permissions"
    REFRESH_TOKENS = "refresh_tokens"
