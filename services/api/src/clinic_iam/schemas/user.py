"""用户管理请求与响应结构。"""

from datetime import datetime
from uuid import UUID

from pydantic import Field

from clinic_iam.schemas.common import CamelSchema


class UserCreateRequest(CamelSchema):
    """创建用户请求，邮箱与手机号至少提供一个。"""

    org_id: UUID | None = Field(default=None, description="目标组织 ID，超级管理员必填。")
    full_name: str = Field(min_length=1, max_length=128, description="姓名。")
    email: str | None = Field(
        default=None,
        max_length=256,
        pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$",
        description="登录邮箱。",
    )
    phone: str | None = Field(default=None, max_length=32, description="手机号。")
    password: str | None = Field(default=None, min_length=8, max_length=128, description="初始口令。")
    status: str | None = Field(default=None, description="用户状态：active/inactive。")
    role_ids: list[UUID] | None = Field(default=None, description="角色 ID 列表。")
    role_codes: list[str] | None = Field(default=None, description="角色编码列表。")


class UserRolesUpdateRequest(CamelSchema):
    """更新用户角色请求，两种都传时必须指向同一角色集合。"""

    role_ids: list[UUID] | None = Field(default=None, description="角色 ID 列表。")
    role_codes: list[str] | None = Field(default=None, description="角色编码列表。")


class UserStatusUpdateRequest(CamelSchema):
    """更新用户状态请求。"""

    status: str = Field(min_length=1, description="用户状态：active/inactive。")


class UserData(CamelSchema):
    """用户视图（不含口令哈希）。"""

    id: UUID = Field(description="用户 ID。")
    org_id: UUID = Field(description="所属组织 ID。")
    full_name: str = Field(description="姓名。")
    email: str | None = Field(default=None, description="邮箱。")
    phone: str | None = Field(default=None, description="手机号。")
    status: str = Field(description="用户状态。")
    role_ids: list[str] = Field(default_factory=list, description="角色 ID 列表。")
    role_codes: list[str] = Field(default_factory=list, description="角色编码列表。")
    created_at: datetime | None = Field(default=None, description="创建时间。")
    updated_at: datetime | None = Field(default=None, description="更新时间。")
