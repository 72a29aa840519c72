"""应用中间件注册。"""

import logging
from time import perf_counter
import uuid

from fastapi import FastAPI, Request

logger = logging.getLogger(__name__)

_MAX_INBOUND_REQUEST_ID = 128


async def request_id_middleware(request: Request, call_next):
    """注入请求追踪 ID，并通过响应头返回。

    网关已透传 X-Request-Id 时沿用，否则生成新的 UUID。
    """
    inbound = (request.headers.get("x-request-id") or "").strip()
    request.state.request_id = inbound[:_MAX_INBOUND_REQUEST_ID] or str(uuid.uuid4())
    request.state.request_started_at = perf_counter()
    response = await call_next(request)
    response.headers["X-Request-Id"] = request.state.request_id
    elapsed = perf_counter() - request.state.request_started_at
    response.headers["X-Process-Time-Ms"] = str(round(elapsed * 1000, 2))
    logger.debug(
        "%s %s -> %s in %.2fms request_id=%s",
        request.method,
        request.url.path,
        response.status_code,
        elapsed * 1000,
        request.state.request_id,
    )
    return response


def register_middlewares(app: FastAPI) -> None:
    """集中注册中间件。"""
    app.middleware("http")(request_id_middleware)
