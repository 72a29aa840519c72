"""请求上下文依赖。

职责:
1. 解析并校验访问令牌。
2. 基于令牌声明构造显式的 RequestContext。
3. RequestContext 作为参数逐层传入服务层，不依赖任何全局安全上下文。
"""

from dataclasses import dataclass, field
from uuid import UUID

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from clinic_iam.core.errors import unauthorized
from clinic_iam.core.security import AuthenticatedPrincipal, parse_authorization_header

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class RequestContext:
    """请求上下文。

    下游只应依赖四个访问入口：操作人 ID、组织 ID、权限集合、has_permission。
    """

    # 当前操作人用户 ID。
    user_id: UUID
    # 当前操作人所属组织 ID。
    org_id: UUID | None
    # 已验签令牌中的权限码集合。
    permissions: frozenset[str] = field(default_factory=frozenset)
    # 客户端 IP 与 User-Agent，用于审计。
    ip_address: str | None = None
    user_agent: str | None = None

    def has_permission(self, code: str) -> bool:
        """判断当前操作人是否具备指定权限码。"""
        return code in self.permissions


def client_ip(request: Request) -> str | None:
    """从代理头或连接信息中提取客户端 IP。"""
    # 优先读取反向代理透传头，兼容网关/负载均衡场景。
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


def user_agent(request: Request) -> str | None:
    return request.headers.get("user-agent")


def _parse_uuid(value: str | None) -> UUID | None:
    if not value:
        return None
    try:
        return UUID(value)
    except ValueError:
        return None


def get_current_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> AuthenticatedPrincipal:
    """提取并解析当前请求认证主体。"""
    authorization = None
    if credentials is not None and credentials.credentials:
        authorization = f"{credentials.scheme} {credentials.credentials}"
    return parse_authorization_header(authorization)


def build_request_context(principal: AuthenticatedPrincipal, request: Request | None = None) -> RequestContext:
    """由认证主体构造请求上下文。"""
    user_id = _parse_uuid(principal.subject)
    if user_id is None:
        raise unauthorized()
    return RequestContext(
        user_id=user_id,
        org_id=_parse_uuid(principal.org_id),
        permissions=frozenset(principal.permissions),
        ip_address=client_ip(request) if request is not None else None,
        user_agent=user_agent(request) if request is not None else None,
    )


def get_request_context(
    request: Request,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
) -> RequestContext:
    """完成认证并生成后续路由统一使用的 RequestContext。"""
    return build_request_context(principal, request)
