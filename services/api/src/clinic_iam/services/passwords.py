"""口令哈希与校验。

哈希计算属于 CPU 密集型操作，统一提交到专用有界线程池并设置超时，
避免大量并发登录长期占满请求线程。
"""

from __future__ import annotations

import base64
import binascii
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from functools import lru_cache
import hashlib
import hmac
import logging
import secrets

from fastapi import HTTPException, status

from clinic_iam.core.config import get_settings

logger = logging.getLogger(__name__)


class Pbkdf2PasswordHasher:
    """PBKDF2-SHA256 口令哈希实现。

    只要提供 hash/verify 两个方法即可替换为其他算法实现。
    """

    algorithm = "pbkdf2_sha256"

    def __init__(self, iterations: int) -> None:
        self.iterations = iterations

    def hash(self, password: str) -> str:
        salt = secrets.token_bytes(16)
        digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, self.iterations)
        salt_b64 = base64.b64encode(salt).decode("ascii")
        digest_b64 = base64.b64encode(digest).decode("ascii")
        return f"{self.algorithm}${self.iterations}${salt_b64}${digest_b64}"

    def verify(self, password: str, password_hash: str) -> bool:
        try:
            algorithm, iterations_text, salt_b64, expected_digest_b64 = password_hash.split("$", 3)
            if algorithm != self.algorithm:
                return False
            iterations = int(iterations_text)
            salt = base64.b64decode(salt_b64.encode("ascii"))
            expected_digest = base64.b64decode(expected_digest_b64.encode("ascii"))
        except (ValueError, TypeError, binascii.Error):
            return False

        actual_digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
        return hmac.compare_digest(actual_digest, expected_digest)


@lru_cache
def get_password_hasher() -> Pbkdf2PasswordHasher:
    """返回当前配置的口令哈希器。"""
    return Pbkdf2PasswordHasher(get_settings().auth_password_hash_iterations)


@lru_cache
def _get_executor() -> ThreadPoolExecutor:
    settings = get_settings()
    return ThreadPoolExecutor(
        max_workers=settings.auth_password_hash_workers,
        thread_name_prefix="password-hash",
    )


def _run_bounded(fn, *args):
    future = _get_executor().submit(fn, *args)
    try:
        return future.result(timeout=get_settings().auth_password_hash_timeout_seconds)
    except FutureTimeoutError as exc:
        future.cancel()
        logger.warning("password hashing timed out")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="password hashing temporarily unavailable",
        ) from exc


def hash_password(password: str) -> str:
    """生成口令哈希。"""
    return _run_bounded(get_password_hasher().hash, password)


def verify_password(password: str, password_hash: str | None) -> bool:
    """校验口令是否匹配，未设置口令的账号一律不匹配。"""
    if not password_hash:
        return False
    return _run_bounded(get_password_hasher().verify, password, password_hash)


@lru_cache
def _placeholder_hash() -> str:
    return get_password_hasher().hash(secrets.token_hex(16))


def verify_against_placeholder(password: str) -> None:
    """账号不存在时按同等代价执行一次校验，使登录失败耗时与账号是否存在无关。"""
    _run_bounded(get_password_hasher().verify, password, _placeholder_hash())
