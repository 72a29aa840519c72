"""用户管理接口。"""

from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, Request, status
from sqlalchemy.orm import Session

from clinic_iam.db.session import get_db
from clinic_iam.dependencies import RequestContext, get_request_context
from clinic_iam.schemas.common import ErrorResponse, SuccessResponse
from clinic_iam.schemas.permission import PermissionData
from clinic_iam.schemas.user import UserCreateRequest, UserData, UserRolesUpdateRequest, UserStatusUpdateRequest
from clinic_iam.services import PermissionAction, require_authority
from clinic_iam.services import users as user_service
from clinic_iam.utils.response import success

router = APIRouter(prefix="/users", tags=["users"])

_ERRORS = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}


def _dump(user) -> dict:
    return UserData.model_validate(user).model_dump()


@router.get(
    "",
    summary="查询用户",
    description="按可见组织查询用户，支持按状态与角色编码过滤。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[list[UserData]],
    responses=_ERRORS,
)
def list_users(
    request: Request,
    org_id: UUID | None = Query(default=None, alias="orgId", description="目标组织，仅超级管理员生效。"),
    user_status: str | None = Query(default=None, alias="status", description="按用户状态过滤。"),
    role_code: str | None = Query(default=None, alias="roleCode", description="按角色编码过滤。"),
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """查询用户列表。"""
    require_authority(ctx, PermissionAction.USERS_READ)
    rows = user_service.list_users(db, ctx, org_id=org_id, status=user_status, role_code=role_code)
    return success(request, [_dump(row) for row in rows])


@router.get(
    "/{user_id}",
    summary="查询用户详情",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[UserData],
    responses=_ERRORS,
)
def get_user(
    request: Request,
    user_id: UUID = Path(..., description="用户 ID。"),
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """查询单个用户。"""
    require_authority(ctx, PermissionAction.USERS_READ)
    return success(request, _dump(user_service.get_user(db, ctx, user_id)))


@router.post(
    "",
    summary="创建用户",
    description="邮箱与手机号至少提供一个且全局唯一。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[UserData],
    responses={**_ERRORS, 409: {"model": ErrorResponse}},
)
def create_user(
    payload: UserCreateRequest,
    request: Request,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """创建用户。"""
    require_authority(ctx, PermissionAction.USERS_CREATE)
    user = user_service.create_user(
        db,
        ctx,
        org_id=payload.org_id,
        full_name=payload.full_name,
        email=payload.email,
        phone=payload.phone,
        password=payload.password,
        status=payload.status,
        role_ids=payload.role_ids,
        role_codes=payload.role_codes,
    )
    db.commit()
    return success(request, _dump(user))


@router.put(
    "/{user_id}/roles",
    summary="更新用户角色",
    description="角色 ID 与编码在用户所属组织内解析，两者同时提供时必须一致。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[UserData],
    responses=_ERRORS,
)
def update_user_roles(
    payload: UserRolesUpdateRequest,
    request: Request,
    user_id: UUID = Path(..., description="用户 ID。"),
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """更新用户角色。"""
    require_authority(ctx, PermissionAction.USERS_ASSIGN_ROLES)
    user = user_service.update_user_roles(
        db,
        ctx,
        user_id,
        role_ids=payload.role_ids,
        role_codes=payload.role_codes,
    )
    db.commit()
    return success(request, _dump(user))


@router.post(
    "/{user_id}/status",
    summary="更新用户状态",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[UserData],
    responses=_ERRORS,
)
def update_user_status(
    payload: UserStatusUpdateRequest,
    request: Request,
    user_id: UUID = Path(..., description="用户 ID。"),
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """更新用户状态。"""
    require_authority(ctx, PermissionAction.USERS_STATUS)
    user = user_service.update_user_status(db, ctx, user_id, status=payload.status)
    db.commit()
    return success(request, _dump(user))


@router.delete(
    "/{user_id}",
    summary="停用用户",
    description="软删除：置为 inactive，记录保留。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[UserData],
    responses=_ERRORS,
)
def delete_user(
    request: Request,
    user_id: UUID = Path(..., description="用户 ID。"),
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """停用用户。"""
    require_authority(ctx, PermissionAction.USERS_DELETE)
    user = user_service.deactivate_user(db, ctx, user_id)
    db.commit()
    return success(request, _dump(user))


@router.get(
    "/{user_id}/permissions",
    summary="查询用户有效权限点",
    description="返回按用户当前角色实时解析的有效权限点。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[list[PermissionData]],
    responses=_ERRORS,
)
def list_user_permissions(
    request: Request,
    user_id: UUID = Path(..., description="用户 ID。"),
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """查询用户有效权限点。"""
    require_authority(ctx, PermissionAction.USERS_READ)
    rows = user_service.list_user_permissions(db, ctx, user_id)
    return success(request, [PermissionData.model_validate(row).model_dump() for row in rows])
