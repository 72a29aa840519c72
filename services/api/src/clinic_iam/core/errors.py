"""统一业务异常构造。

服务层直接抛出 HTTPException，由全局异常处理器包装为标准错误结构。
跨租户访问一律返回 404，避免暴露其他租户数据是否存在。
"""

from fastapi import HTTPException, status


def unauthorized(message: str = "unauthorized") -> HTTPException:
    """401：凭据无效、令牌失效或缺失。"""
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=message)


def forbidden(message: str = "forbidden") -> HTTPException:
    """403：已认证但无权执行。"""
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=message)


def not_found(message: str) -> HTTPException:
    """404：资源不存在或不在可见组织范围内。"""
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=message)


def conflict(message: str) -> HTTPException:
    """409：唯一性冲突或资源仍被引用。"""
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=message)


def invalid_request(message: str) -> HTTPException:
    """400：请求语义不合法。"""
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)
