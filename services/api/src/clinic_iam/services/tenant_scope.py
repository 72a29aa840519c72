"""租户范围守卫。

所有租户内读写都经过这里确定组织边界，是防止跨租户访问的唯一收口：
1. 读：非超级管理员永远只能看到自身组织，忽略请求中携带的组织 ID。
2. 写：非超级管理员写入的记录永远落在自身组织。
"""

import logging
from uuid import UUID

from clinic_iam.core.config import get_settings
from clinic_iam.core.errors import forbidden, invalid_request
from clinic_iam.dependencies import RequestContext

logger = logging.getLogger(__name__)

SUPER_ADMIN_PERMISSION = "system.super_admin"


def is_super_admin(ctx: RequestContext) -> bool:
    """权限集合包含 system.super_admin 即为超级管理员。"""
    return ctx.has_permission(SUPER_ADMIN_PERMISSION)


def has_permission(ctx: RequestContext, code: str) -> bool:
    return ctx.has_permission(code)


def require_authority(ctx: RequestContext, code: str) -> None:
    """要求当前操作人具备指定权限码，否则 403。"""
    if not ctx.has_permission(code):
        logger.info("authority denied user_id=%s permission=%s", ctx.user_id, code)
        raise forbidden()


def _require_actor_org(ctx: RequestContext) -> UUID:
    if ctx.org_id is None:
        raise invalid_request("organization_id is required for tenant scope")
    return ctx.org_id


def resolve_scope(ctx: RequestContext, requested_org_id: UUID | None) -> UUID | None:
    """解析读操作的组织范围。

    超级管理员原样返回请求值（None 表示不限组织）；
    其他人始终返回自身组织，请求值被忽略。
    """
    if is_super_admin(ctx):
        return requested_org_id
    return _require_actor_org(ctx)


def resolve_organization_id(ctx: RequestContext, request_org_id: UUID | None) -> UUID:
    """解析写操作的目标组织。

    超级管理员必须显式指定目标组织；
    其他人始终写入自身组织，请求值不一致时按配置静默覆盖或返回 403。
    """
    if is_super_admin(ctx):
        if request_org_id is None:
            raise invalid_request("organization_id is required")
        return request_org_id

    actor_org_id = _require_actor_org(ctx)
    if request_org_id is not None and request_org_id != actor_org_id:
        if get_settings().tenant_reject_org_mismatch:
            raise forbidden("organization_id does not match current tenant")
        logger.warning(
            "overriding requested organization user_id=%s requested=%s actual=%s",
            ctx.user_id,
            request_org_id,
            actor_org_id,
        )
    return actor_org_id


def is_visible(ctx: RequestContext, org_id: UUID) -> bool:
    """判断某组织下的记录对当前操作人是否可见。"""
    scoped_org_id = resolve_scope(ctx, None)
    return scoped_org_id is None or scoped_org_id == org_id
