"""刷新令牌生命周期服务。

状态机：issued -> {rotated, revoked, expired}。
1. 原始令牌只在签发时返回，数据库只保存 SHA-256 摘要。
2. 轮换通过一条条件更新完成“吊销父令牌”，同一父令牌并发轮换只会有一个成功。
3. 记录只更新 revoked_at/replaced_by，不在本服务中删除。
"""

from datetime import datetime, timedelta, timezone
import hashlib
import logging
import secrets
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from clinic_iam.core.config import get_settings
from clinic_iam.core.errors import unauthorized
from clinic_iam.models.auth import RefreshToken
from clinic_iam.models.enums import AuditAction, AuditResource
from clinic_iam.models.identity import User
from clinic_iam.services.audit import record_audit

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    """部分方言读回的时间不带时区，统一按 UTC 解释。"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def hash_token(raw_token: str) -> str:
    """返回原始令牌的 SHA-256 十六进制摘要。"""
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def _new_raw_token() -> str:
    return secrets.token_bytes(get_settings().auth_refresh_token_bytes).hex()


def _audit(
    db: Session,
    token: RefreshToken,
    *,
    action: str,
    extra: dict[str, object],
    ip_address: str | None,
    user_agent: str | None,
) -> None:
    record_audit(
        db,
        actor_user_id=token.user_id,
        action=action,
        resource=AuditResource.REFRESH_TOKENS,
        extra={"id": token.id, "user_id": token.user_id, **extra},
        ip_address=ip_address,
        user_agent=user_agent,
    )


def _insert_token(
    db: Session,
    *,
    user_id: UUID,
    token_id: UUID | None = None,
    ip_address: str | None,
    user_agent: str | None,
) -> tuple[str, RefreshToken]:
    raw_token = _new_raw_token()
    token = RefreshToken(
        id=token_id or uuid4(),
        user_id=user_id,
        token_hash=hash_token(raw_token),
        expires_at=_utcnow() + timedelta(seconds=get_settings().auth_refresh_token_ttl_seconds),
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.add(token)
    db.flush()
    return raw_token, token


def issue(
    db: Session,
    user: User,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> tuple[str, RefreshToken]:
    """为用户签发新的刷新令牌，返回 (原始令牌, 记录)。"""
    raw_token, token = _insert_token(db, user_id=user.id, ip_address=ip_address, user_agent=user_agent)
    _audit(
        db,
        token,
        action=AuditAction.CREATE,
        extra={"expires_at": token.expires_at},
        ip_address=ip_address,
        user_agent=user_agent,
    )
    return raw_token, token


def require_valid(db: Session, raw_token: str | None) -> RefreshToken:
    """校验刷新令牌：不存在、已吊销、已过期都返回 401。"""
    if not raw_token or not raw_token.strip():
        raise unauthorized("refresh token is required")

    token = db.execute(
        select(RefreshToken).where(RefreshToken.token_hash == hash_token(raw_token.strip()))
    ).scalar_one_or_none()
    if token is None:
        raise unauthorized("invalid refresh token")
    if token.revoked_at is not None:
        logger.warning("revoked refresh token presented id=%s user_id=%s", token.id, token.user_id)
        raise unauthorized("refresh token revoked")
    if _as_utc(token.expires_at) <= _utcnow():
        raise unauthorized("refresh token expired")
    return token


def rotate_from(
    db: Session,
    existing: RefreshToken,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> tuple[str, RefreshToken]:
    """以已校验的父令牌轮换出新令牌。

    吊销父令牌与写入 replaced_by 在同一条条件更新中完成；
    条件不满足（已被并发轮换或已过期）时返回 401，不签发子令牌。
    """
    now = _utcnow()
    child_id = uuid4()
    result = db.execute(
        update(RefreshToken)
        .where(RefreshToken.id == existing.id)
        .where(RefreshToken.revoked_at.is_(None))
        .where(RefreshToken.expires_at > now)
        .values(revoked_at=now, replaced_by=child_id)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        logger.warning("refresh token rotation conflict id=%s user_id=%s", existing.id, existing.user_id)
        raise unauthorized("refresh token already rotated")
    db.expire(existing)

    raw_token, child = _insert_token(
        db,
        user_id=existing.user_id,
        token_id=child_id,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    _audit(
        db,
        existing,
        action=AuditAction.UPDATE,
        extra={"operation": "rotate", "replaced_by": child.id},
        ip_address=ip_address,
        user_agent=user_agent,
    )
    _audit(
        db,
        child,
        action=AuditAction.CREATE,
        extra={"rotated_from": existing.id, "expires_at": child.expires_at},
        ip_address=ip_address,
        user_agent=user_agent,
    )
    return raw_token, child


def rotate(
    db: Session,
    raw_token: str | None,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> tuple[str, RefreshToken]:
    """校验并轮换刷新令牌。"""
    existing = require_valid(db, raw_token)
    return rotate_from(db, existing, ip_address=ip_address, user_agent=user_agent)


def revoke(
    db: Session,
    raw_token: str | None,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> RefreshToken:
    """吊销刷新令牌（登出），不串联新令牌。"""
    existing = require_valid(db, raw_token)
    result = db.execute(
        update(RefreshToken)
        .where(RefreshToken.id == existing.id)
        .where(RefreshToken.revoked_at.is_(None))
        .values(revoked_at=_utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise unauthorized("refresh token revoked")
    db.expire(existing)
    logger.info("refresh token revoked id=%s user_id=%s", existing.id, existing.user_id)

    _audit(
        db,
        existing,
        action=AuditAction.UPDATE,
        extra={"operation": "revoke"},
        ip_address=ip_address,
        user_agent=user_agent,
    )
    return existing
