"""认证请求与响应结构。"""

from uuid import UUID

from pydantic import Field

from clinic_iam.schemas.common import CamelSchema


class LoginRequest(CamelSchema):
    """账号口令登录请求。"""

    identifier: str = Field(
        min_length=1,
        max_length=256,
        description="登录标识：邮箱或手机号。",
        examples=["admin@clinic.example"],
    )
    password: str = Field(min_length=1, max_length=128, description="登录密码。")


class RefreshTokenRequest(CamelSchema):
    """刷新令牌请求（刷新与登出共用）。"""

    refresh_token: str = Field(min_length=1, max_length=512, description="刷新令牌原始值。")


class ChangePasswordRequest(CamelSchema):
    """修改口令请求。"""

    current_password: str = Field(min_length=1, max_length=128, description="当前口令。")
    new_password: str = Field(min_length=8, max_length=128, description="新口令。")


class AuthUserData(CamelSchema):
    """认证用户视图。"""

    id: UUID = Field(description="用户 ID。")
    org_id: UUID = Field(description="所属组织 ID。")
    full_name: str = Field(description="姓名。")
    email: str | None = Field(default=None, description="邮箱。")
    phone: str | None = Field(default=None, description="手机号。")
    status: str = Field(description="用户状态。")
    role_ids: list[str] = Field(default_factory=list, description="角色 ID 列表。")
    role_codes: list[str] = Field(default_factory=list, description="角色编码列表。")
    permissions: list[str] = Field(default_factory=list, description="实时解析的权限码列表。")


class AuthTokenData(CamelSchema):
    """登录/刷新结果。"""

    access_token: str = Field(description="访问令牌。")
    refresh_token: str = Field(description="刷新令牌，仅此一次返回原始值。")
    token_type: str = Field(default="Bearer", description="令牌类型。")
    expires_in: int = Field(description="访问令牌有效期（秒）。")
    user: AuthUserData = Field(description="当前用户。")
