"""存活与就绪探针。"""

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy import text
from sqlalchemy.orm import Session

from clinic_iam.core.security import token_blacklist_backend
from clinic_iam.db.session import get_db
from clinic_iam.schemas.common import ErrorResponse, HealthStatusData, SuccessResponse
from clinic_iam.utils.response import success

router = APIRouter(prefix="/health", tags=["health"])


@router.get(
    "/live",
    summary="存活探针",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[HealthStatusData],
    responses={500: {"model": ErrorResponse}},
)
def live(request: Request):
    """进程存活即返回 ok。"""
    return success(request, {"status": "ok"})


@router.get(
    "/ready",
    summary="就绪探针",
    description="数据库不可用时返回 500；黑名单后端降级只在 checks 中体现，不影响就绪。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[HealthStatusData],
    responses={500: {"model": ErrorResponse}},
)
def ready(request: Request, db: Session = Depends(get_db)):
    """检查数据库连通性与令牌黑名单后端。"""
    db.execute(text("select 1"))
    checks = {"database": "ok", "token_blacklist": token_blacklist_backend()}
    return success(request, {"status": "ready", "checks": checks})
