"""统一响应包裹工具。

成功：`{request_id, data, meta}`；失败：`{request_id, error: {code, message, details}}`。
"""

from datetime import datetime, timezone
from time import perf_counter
from typing import Any
import uuid

from fastapi import Request

DEFAULT_ERROR_MESSAGE = "internal server error"


def request_id_of(request: Request) -> str:
    """读取请求追踪 ID，未经过中间件时现场生成。"""
    request_id = getattr(request.state, "request_id", None)
    if not request_id:
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
    return request_id


def _request_facts(request: Request) -> dict[str, Any]:
    return {
        "method": request.method.upper(),
        "path": request.url.path,
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    }


def _elapsed_ms(request: Request) -> int | None:
    started_at = getattr(request.state, "request_started_at", None)
    if not isinstance(started_at, float):
        return None
    return int((perf_counter() - started_at) * 1000)


def success(request: Request, data: Any, meta: dict[str, Any] | None = None) -> dict[str, Any]:
    """构造成功响应。"""
    final_meta = {**_request_facts(request), "process_ms": _elapsed_ms(request)}
    final_meta.update(meta or {})
    return {"request_id": request_id_of(request), "data": data, "meta": final_meta}


def error_payload(
    request: Request,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """构造错误响应，details 中附带请求方法、路径与时间。"""
    final_details = _request_facts(request)
    final_details.update(details or {})
    return {
        "request_id": request_id_of(request),
        "error": {"code": code, "message": message, "details": final_details},
    }
