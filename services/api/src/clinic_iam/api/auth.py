"""认证接口。"""

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from clinic_iam.db.session import get_db
from clinic_iam.dependencies import RequestContext, bearer_scheme, client_ip, get_request_context, user_agent
from clinic_iam.schemas.auth import (
    AuthTokenData,
    AuthUserData,
    ChangePasswordRequest,
    LoginRequest,
    RefreshTokenRequest,
)
from clinic_iam.schemas.common import ErrorResponse, SuccessResponse
from clinic_iam.services import auth as auth_service
from clinic_iam.utils.response import success

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post(
    "/login",
    summary="账号口令登录",
    description="使用邮箱或手机号 + 口令登录，返回访问令牌、刷新令牌与实时权限。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[AuthTokenData],
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
def login(
    payload: LoginRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    """登录并签发令牌。"""
    data = auth_service.login(
        db,
        identifier=payload.identifier,
        password=payload.password,
        ip_address=client_ip(request),
        user_agent=user_agent(request),
    )
    db.commit()
    return success(request, AuthTokenData.model_validate(data).model_dump())


@router.post(
    "/refresh-token",
    summary="轮换刷新令牌",
    description="吊销当前刷新令牌并签发新的访问令牌与刷新令牌，权限按数据库当前状态重新解析。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[AuthTokenData],
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
def refresh_token(
    payload: RefreshTokenRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    """轮换刷新令牌。"""
    data = auth_service.refresh(
        db,
        refresh_token=payload.refresh_token,
        ip_address=client_ip(request),
        user_agent=user_agent(request),
    )
    db.commit()
    return success(request, AuthTokenData.model_validate(data).model_dump())


@router.post(
    "/logout",
    summary="登出",
    description="吊销指定刷新令牌；请求同时携带访问令牌时将其加入黑名单。",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    responses={401: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
def logout(
    payload: RefreshTokenRequest,
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
):
    """登出当前会话。"""
    auth_service.logout(
        db,
        refresh_token=payload.refresh_token,
        access_token=credentials.credentials if credentials is not None else None,
        ip_address=client_ip(request),
        user_agent=user_agent(request),
    )
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/me",
    summary="查询当前用户",
    description="返回当前登录用户资料与实时解析的权限码。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[AuthUserData],
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def me(
    request: Request,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """返回当前用户。"""
    data = auth_service.me(db, ctx.user_id)
    return success(request, AuthUserData.model_validate(data).model_dump())


@router.post(
    "/change-password",
    summary="修改口令",
    description="校验当前口令后更新为新口令。",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    responses={401: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
def change_password(
    payload: ChangePasswordRequest,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """修改当前用户口令。"""
    auth_service.change_password(
        db,
        ctx,
        current_password=payload.current_password,
        new_password=payload.new_password,
    )
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
