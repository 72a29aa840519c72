"""认证编排服务。

登录、刷新、登出、当前用户与改密的完整流程：
凭据校验 -> 权限实时解析 -> 访问令牌 + 刷新令牌签发，变更路径统一写审计。
"""

import logging
from typing import Any
from uuid import UUID

from fastapi import HTTPException
from sqlalchemy.orm import Session

from clinic_iam.core.errors import forbidden, invalid_request, not_found, unauthorized
from clinic_iam.core.security import decode_access_token, revoke_token_jti
from clinic_iam.dependencies import RequestContext
from clinic_iam.models.enums import AuditAction, AuditResource, UserStatus
from clinic_iam.models.identity import User
from clinic_iam.services import refresh_tokens
from clinic_iam.services.audit import audit_for, record_audit
from clinic_iam.services.passwords import hash_password, verify_against_placeholder, verify_password
from clinic_iam.services.permissions import resolve_user_permission_codes
from clinic_iam.services.tokens import access_token_ttl_seconds, create_access_token
from clinic_iam.services.users import find_user_by_identifier

logger = logging.getLogger(__name__)

TOKEN_TYPE = "Bearer"


def build_auth_user(user: User, permission_codes: list[str]) -> dict[str, Any]:
    """组装认证用户视图。"""
    return {
        "id": user.id,
        "org_id": user.org_id,
        "full_name": user.full_name,
        "email": user.email,
        "phone": user.phone,
        "status": user.status,
        "role_ids": list(user.role_ids or []),
        "role_codes": list(user.role_codes or []),
        "permissions": permission_codes,
    }


def _token_response(user: User, permission_codes: list[str], raw_refresh_token: str) -> dict[str, Any]:
    return {
        "access_token": create_access_token(user, permission_codes),
        "refresh_token": raw_refresh_token,
        "token_type": TOKEN_TYPE,
        "expires_in": access_token_ttl_seconds(),
        "user": build_auth_user(user, permission_codes),
    }


def login(
    db: Session,
    *,
    identifier: str,
    password: str,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> dict[str, Any]:
    """账号口令登录。

    用户不存在与口令错误返回同一 401，停用用户返回 403 且不签发任何令牌。
    """
    user = find_user_by_identifier(db, identifier)
    if user is None:
        verify_against_placeholder(password)
    if user is None or not verify_password(password, user.password_hash):
        logger.info("login failed reason=%s", "unknown_identifier" if user is None else "bad_password")
        raise unauthorized("invalid credentials")
    if user.status != UserStatus.ACTIVE:
        logger.info("login rejected reason=inactive user_id=%s", user.id)
        raise forbidden("user is inactive")

    permission_codes = resolve_user_permission_codes(db, user)
    raw_refresh_token, _ = refresh_tokens.issue(db, user, ip_address=ip_address, user_agent=user_agent)
    record_audit(
        db,
        actor_user_id=user.id,
        action=AuditAction.LOGIN,
        resource=AuditResource.USERS,
        extra={"id": user.id, "org_id": user.org_id},
        ip_address=ip_address,
        user_agent=user_agent,
    )
    logger.info("login succeeded user_id=%s org_id=%s", user.id, user.org_id)
    return _token_response(user, permission_codes, raw_refresh_token)


def refresh(
    db: Session,
    *,
    refresh_token: str | None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> dict[str, Any]:
    """轮换刷新令牌并按数据库当前状态重新签发访问令牌。"""
    existing = refresh_tokens.require_valid(db, refresh_token)
    user = db.get(User, existing.user_id)
    if user is None:
        raise unauthorized("invalid refresh token")
    if user.status != UserStatus.ACTIVE:
        raise forbidden("user is inactive")

    raw_refresh_token, _ = refresh_tokens.rotate_from(db, existing, ip_address=ip_address, user_agent=user_agent)
    permission_codes = resolve_user_permission_codes(db, user)
    return _token_response(user, permission_codes, raw_refresh_token)


def logout(
    db: Session,
    *,
    refresh_token: str | None,
    access_token: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    """吊销刷新令牌；携带访问令牌时同时拉黑其 jti。"""
    refresh_tokens.revoke(db, refresh_token, ip_address=ip_address, user_agent=user_agent)
    if not access_token:
        return
    try:
        claims = decode_access_token(access_token)
    except HTTPException:
        logger.info("logout access token not denied: token invalid or expired")
        return
    jti = claims.get("jti")
    exp = claims.get("exp")
    if isinstance(jti, str) and jti and isinstance(exp, int):
        revoke_token_jti(jti, exp)


def me(db: Session, user_id: UUID) -> dict[str, Any]:
    """返回当前用户资料与实时权限码。"""
    user = db.get(User, user_id)
    if user is None:
        raise not_found("user not found")
    return build_auth_user(user, resolve_user_permission_codes(db, user))


def change_password(
    db: Session,
    ctx: RequestContext,
    *,
    current_password: str,
    new_password: str,
) -> None:
    """修改当前用户口令，当前口令错误时返回 401 且哈希保持不变。"""
    user = db.get(User, ctx.user_id)
    if user is None:
        raise not_found("user not found")
    if not new_password:
        raise invalid_request("new password is required")
    if not verify_password(current_password, user.password_hash):
        logger.info("change password rejected user_id=%s", user.id)
        raise unauthorized("invalid credentials")

    user.password_hash = hash_password(new_password)
    db.flush()
    audit_for(
        db,
        ctx,
        action=AuditAction.UPDATE,
        resource=AuditResource.USERS,
        extra={"id": user.id, "operation": "change_password"},
    )
