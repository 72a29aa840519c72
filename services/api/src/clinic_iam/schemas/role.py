"""角色管理请求与响应结构。"""

from datetime import datetime
from uuid import UUID

from pydantic import Field

from clinic_iam.schemas.common import CamelSchema


class RoleCreateRequest(CamelSchema):
    """创建角色请求。"""

    org_id: UUID | None = Field(default=None, description="目标组织 ID，超级管理员必填。")
    name: str = Field(min_length=1, max_length=128, description="角色名称。")
    role_code: str = Field(min_length=1, max_length=64, description="角色编码。", examples=["receptionist"])
    description: str | None = Field(default=None, description="描述。")


class RoleUpdateRequest(CamelSchema):
    """更新角色请求，所属组织不可修改。"""

    name: str | None = Field(default=None, min_length=1, max_length=128, description="角色名称。")
    role_code: str | None = Field(default=None, min_length=1, max_length=64, description="角色编码。")
    description: str | None = Field(default=None, description="描述。")


class RolePermissionsRequest(CamelSchema):
    """角色权限点替换/追加请求。"""

    permission_ids: list[UUID] = Field(default_factory=list, description="权限点 ID 列表。")


class RoleData(CamelSchema):
    """角色视图。"""

    id: UUID = Field(description="角色 ID。")
    org_id: UUID = Field(description="所属组织 ID。")
    name: str = Field(description="角色名称。")
    role_code: str = Field(description="角色编码。")
    description: str | None = Field(default=None, description="描述。")
    created_at: datetime | None = Field(default=None, description="创建时间。")
    updated_at: datetime | None = Field(default=None, description="更新时间。")
