"""访问令牌签发服务。"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import jwt

from clinic_iam.core.config import get_settings
from clinic_iam.models.identity import User


def access_token_ttl_seconds() -> int:
    """访问令牌有效期（秒）。"""
    return get_settings().auth_access_token_ttl_seconds


def create_access_token(user: User, permission_codes: list[str]) -> str:
    """签发访问令牌。

    权限码由调用方在签发前从数据库实时解析后传入，令牌内不做缓存复用。
    """
    settings = get_settings()
    now = datetime.now(timezone.utc)
    expires_at = now + timedelta(seconds=access_token_ttl_seconds())

    claims: dict[str, object] = {
        "iss": settings.auth_jwt_issuer,
        "sub": str(user.id),
        "iat": int(now.timestamp()),
        "exp": int(expires_at.timestamp()),
        "jti": str(uuid4()),
        "org_id": str(user.org_id),
        "roles": list(user.role_codes or []),
        "permissions": list(permission_codes),
        "name": user.full_name,
    }
    return jwt.encode(claims, settings.auth_jwt_secret, algorithm=settings.auth_jwt_algorithm)
