"""权限点管理请求与响应结构。"""

from datetime import datetime
from uuid import UUID

from pydantic import Field

from clinic_iam.schemas.common import CamelSchema


class PermissionCreateRequest(CamelSchema):
    """创建权限点请求，权限码由 resource + action 计算。"""

    org_id: UUID | None = Field(default=None, description="目标组织 ID，超级管理员必填。")
    name: str = Field(min_length=1, max_length=128, description="权限点名称。")
    resource: str = Field(min_length=1, max_length=64, description="资源。", examples=["patients"])
    action: str = Field(min_length=1, max_length=64, description="动作。", examples=["read"])
    scope: str | None = Field(default=None, description="作用域：tenant/system。")
    description: str | None = Field(default=None, description="描述。")
    active: bool = Field(default=True, description="是否启用。")


class PermissionUpdateRequest(CamelSchema):
    """更新权限点请求，未传字段保持不变。"""

    name: str | None = Field(default=None, min_length=1, max_length=128, description="权限点名称。")
    resource: str | None = Field(default=None, min_length=1, max_length=64, description="资源。")
    action: str | None = Field(default=None, min_length=1, max_length=64, description="动作。")
    scope: str | None = Field(default=None, description="作用域：tenant/system。")
    description: str | None = Field(default=None, description="描述。")
    active: bool | None = Field(default=None, description="是否启用，置为 false 时移除全部角色映射。")


class PermissionData(CamelSchema):
    """权限点视图。"""

    id: UUID = Field(description="权限点 ID。")
    org_id: UUID = Field(description="所属组织 ID。")
    name: str = Field(description="权限点名称。")
    permission_code: str = Field(description="权限码。")
    scope: str = Field(description="作用域。")
    resource: str = Field(description="资源。")
    action: str = Field(description="动作。")
    description: str | None = Field(default=None, description="描述。")
    active: bool = Field(description="是否启用。")
    created_at: datetime | None = Field(default=None, description="创建时间。")
    updated_at: datetime | None = Field(default=None, description="更新时间。")
