"""审计服务。"""

import logging
from typing import Any
from uuid import UUID

from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from clinic_iam.core.errors import invalid_request
from clinic_iam.dependencies import RequestContext
from clinic_iam.models.audit import AuditLog

logger = logging.getLogger(__name__)


def _resolve_target_ids(target_ids: list[Any] | None, extra: dict[str, Any]) -> list[str]:
    """目标 ID 依次取显式 target_ids、extra["ids"]、extra["id"]。"""
    if target_ids:
        return [str(item) for item in target_ids]
    ids = extra.get("ids")
    if isinstance(ids, (list, tuple, set)) and ids:
        return [str(item) for item in ids]
    single = extra.get("id")
    if single is not None and str(single).strip():
        return [str(single)]
    return []


def record_audit(
    db: Session,
    *,
    actor_user_id: UUID | str | None,
    action: str,
    resource: str,
    target_ids: list[Any] | None = None,
    extra: dict[str, Any] | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> AuditLog:
    """写入统一审计日志。

    操作人为空时直接拒绝，错误向上传播，由调用方所在事务一并回滚。
    """
    actor = str(actor_user_id).strip() if actor_user_id is not None else ""
    if not actor:
        raise invalid_request("audit actor user id is required")

    extra = dict(extra or {})
    payload: dict[str, Any] = {
        **extra,
        "actor_user_id": actor,
        "action": action,
        "resource": resource,
        "target_ids": _resolve_target_ids(target_ids, extra),
    }
    entry = AuditLog(
        user_id=actor,
        action=str(action),
        resource=str(resource),
        payload=jsonable_encoder(payload),
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.add(entry)
    logger.debug("audit %s %s actor=%s targets=%s", resource, action, actor, payload["target_ids"])
    return entry


def audit_for(
    db: Session,
    ctx: RequestContext,
    *,
    action: str,
    resource: str,
    target_ids: list[Any] | None = None,
    extra: dict[str, Any] | None = None,
) -> AuditLog:
    """以请求上下文中的操作人与客户端信息写入审计。"""
    return record_audit(
        db,
        actor_user_id=ctx.user_id,
        action=action,
        resource=resource,
        target_ids=target_ids,
        extra=extra,
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )
