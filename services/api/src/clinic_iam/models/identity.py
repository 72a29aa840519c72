"""用户、角色、权限点与角色权限映射模型。"""

from uuid import UUID

from sqlalchemy import Boolean, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from clinic_iam.models.base import Base, JSONType, TimestampMixin, UUIDPrimaryKeyMixin
from clinic_iam.models.enums import PermissionScope, UserStatus


class User(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """组织内用户，同时承担本地凭据存储。"""

    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("org_id", "email", name="uk_user_org_email"),
        UniqueConstraint("org_id", "phone", name="uk_user_org_phone"),
    )

    # 所属组织 ID。
    org_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    full_name: Mapped[str] = mapped_column(String(128), nullable=False)
    # 登录邮箱，统一小写存储。
    email: Mapped[str | None] = mapped_column(String(256), index=True)
    phone: Mapped[str | None] = mapped_column(String(32), index=True)
    # 口令哈希，不存明文。
    password_hash: Mapped[str | None] = mapped_column(String(256))
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=UserStatus.ACTIVE)
    # 角色 ID 列表（字符串化 UUID），与 role_codes 指向同一角色集合。
    role_ids: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    role_codes: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)


class Role(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """组织内角色。"""

    __tablename__ = "roles"
    __table_args__ = (
        UniqueConstraint("org_id", "name", name="uk_role_org_name"),
        UniqueConstraint("org_id", "role_code", name="uk_role_org_code"),
    )

    org_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    role_code: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)


class Permission(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """权限点。

    permission_code 始终由 resource + "." + action 计算得出，不接受客户端传入。
    """

    __tablename__ = "permissions"
    __table_args__ = (UniqueConstraint("org_id", "permission_code", name="uk_permission_org_code"),)

    org_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    permission_code: Mapped[str] = mapped_column(String(160), nullable=False, index=True)
    # 作用域（tenant/system），resource=system 时强制为 system。
    scope: Mapped[str] = mapped_column(String(16), nullable=False, default=PermissionScope.TENANT)
    resource: Mapped[str] = mapped_column(String(64), nullable=False)
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    # 停用后权限解析立即忽略该权限点。
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class RolePermission(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """角色与权限点的多对多映射，角色与权限点必须同属一个组织。"""

    __tablename__ = "role_permissions"
    __table_args__ = (UniqueConstraint("role_id", "permission_id", name="uk_role_permission"),)

    org_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    role_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    permission_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
