"""访问令牌解析、校验与黑名单工具。"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import re
from threading import Lock
from typing import Any

import jwt
from jwt import InvalidTokenError
from redis import Redis
from redis.exceptions import RedisError

from clinic_iam.core.config import get_settings
from clinic_iam.core.errors import unauthorized

logger = logging.getLogger(__name__)

_LOCAL_BLACKLIST: dict[str, int] = {}
_LOCAL_LOCK = Lock()
_redis_client: Redis | None = None


@dataclass
class AuthenticatedPrincipal:
    """已验签访问令牌对应的认证主体。"""

    # 用户 ID（sub）。
    subject: str
    # 所属组织 ID（org_id）。
    org_id: str | None
    # 签发时解析出的权限码集合。
    permissions: list[str] = field(default_factory=list)
    # 角色编码。
    roles: list[str] = field(default_factory=list)
    display_name: str | None = None
    # 原始声明集，便于下游扩展。
    claims: dict[str, Any] = field(default_factory=dict)


def decode_access_token(token: str) -> dict[str, Any]:
    """按配置校验签名、过期时间与签发方。"""
    settings = get_settings()
    try:
        return jwt.decode(
            token,
            key=settings.auth_jwt_secret,
            algorithms=[settings.auth_jwt_algorithm],
            issuer=settings.auth_jwt_issuer,
            leeway=settings.auth_jwt_leeway_seconds,
            options={"require": ["exp", "iat", "sub"]},
        )
    except InvalidTokenError as exc:
        raise unauthorized() from exc


def _cleanup_local(now_ts: int) -> None:
    expired_keys = [key for key, expires_at in _LOCAL_BLACKLIST.items() if expires_at <= now_ts]
    for key in expired_keys:
        _LOCAL_BLACKLIST.pop(key, None)


def _get_redis() -> Redis | None:
    global _redis_client
    settings = get_settings()
    if not settings.redis_url:
        return None
    if _redis_client is None:
        _redis_client = Redis.from_url(settings.redis_url, decode_responses=True)
    return _redis_client


def _key_for_jti(jti: str) -> str:
    settings = get_settings()
    return f"{settings.auth_token_blacklist_prefix}{jti}"


def revoke_token_jti(jti: str, exp_ts: int) -> None:
    """将访问令牌 jti 拉黑到令牌过期时间。"""
    now_ts = int(datetime.now(timezone.utc).timestamp())
    ttl = max(1, exp_ts - now_ts)
    redis_client = _get_redis()
    if redis_client is not None:
        try:
            redis_client.setex(_key_for_jti(jti), ttl, "1")
            return
        except RedisError:
            # Redis 不可用时回退到进程内缓存，保证登出语义尽量可用。
            logger.warning("redis unavailable, falling back to local token blacklist")

    with _LOCAL_LOCK:
        _cleanup_local(now_ts)
        _LOCAL_BLACKLIST[jti] = exp_ts


def is_token_jti_revoked(jti: str) -> bool:
    """判断访问令牌 jti 是否已被拉黑。"""
    redis_client = _get_redis()
    if redis_client is not None:
        try:
            return bool(redis_client.exists(_key_for_jti(jti)))
        except RedisError:
            logger.warning("redis unavailable, checking local token blacklist")

    now_ts = int(datetime.now(timezone.utc).timestamp())
    with _LOCAL_LOCK:
        _cleanup_local(now_ts)
        expires_at = _LOCAL_BLACKLIST.get(jti)
        return expires_at is not None and expires_at > now_ts


def token_blacklist_backend() -> str:
    """返回当前黑名单后端：redis、local（未配置 Redis）或 degraded（Redis 不可达）。"""
    redis_client = _get_redis()
    if redis_client is None:
        return "local"
    try:
        redis_client.ping()
    except RedisError:
        logger.warning("redis ping failed, token blacklist degraded to local cache")
        return "degraded"
    return "redis"


def extract_bearer_token(authorization: str | None) -> str:
    """从 Authorization 头中提取 Bearer token，兼容重复头被逗号拼接的场景。"""
    if not authorization:
        raise unauthorized()
    tokens = re.findall(r"Bearer\s+([^,\s]+)", authorization, flags=re.IGNORECASE)
    for candidate in reversed(tokens):
        token = candidate.strip()
        if token:
            return token
    raise unauthorized()


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str) and item]


def parse_authorization_header(authorization: str | None) -> AuthenticatedPrincipal:
    """解析认证头并返回认证主体。"""
    token = extract_bearer_token(authorization)
    claims = decode_access_token(token)

    jti = claims.get("jti")
    if isinstance(jti, str) and jti and is_token_jti_revoked(jti):
        raise unauthorized()

    subject = str(claims.get("sub") or "").strip()
    if not subject:
        raise unauthorized()

    org_id = claims.get("org_id")
    name = claims.get("name")
    return AuthenticatedPrincipal(
        subject=subject,
        org_id=org_id if isinstance(org_id, str) and org_id else None,
        permissions=_string_list(claims.get("permissions")),
        roles=_string_list(claims.get("roles")),
        display_name=name if isinstance(name, str) else None,
        claims=claims,
    )
