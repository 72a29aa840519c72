"""路由模块导出集合。"""

from . import auth, health, permissions, roles, users

__all__ = [
    "auth",
    "health",
    "permissions",
    "roles",
    "users",
]
