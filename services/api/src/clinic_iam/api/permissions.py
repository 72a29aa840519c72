"""权限点目录管理接口。"""

from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, Request, status
from sqlalchemy.orm import Session

from clinic_iam.db.session import get_db
from clinic_iam.dependencies import RequestContext, get_request_context
from clinic_iam.schemas.common import ErrorResponse, SuccessResponse
from clinic_iam.schemas.permission import PermissionCreateRequest, PermissionData, PermissionUpdateRequest
from clinic_iam.services import PermissionAction, require_authority
from clinic_iam.services import permissions as permission_service
from clinic_iam.utils.response import success

router = APIRouter(prefix="/permissions", tags=["permissions"])

_ERRORS = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}


def _dump(permission) -> dict:
    return PermissionData.model_validate(permission).model_dump()


@router.get(
    "",
    summary="查询权限点",
    description="按可见组织查询权限点；system 作用域仅超级管理员在 includeSystem=true 时可见。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[list[PermissionData]],
    responses=_ERRORS,
)
def list_permissions(
    request: Request,
    org_id: UUID | None = Query(default=None, alias="orgId", description="目标组织，仅超级管理员生效。"),
    include_system: bool = Query(default=False, alias="includeSystem", description="是否包含 system 作用域。"),
    active: bool | None = Query(default=None, description="按启用状态过滤。"),
    resource: str | None = Query(default=None, description="按资源过滤。"),
    action: str | None = Query(default=None, description="按动作过滤。"),
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """查询权限点列表。"""
    require_authority(ctx, PermissionAction.PERMISSIONS_READ)
    rows = permission_service.list_permissions(
        db,
        ctx,
        org_id=org_id,
        include_system=include_system,
        active=active,
        resource=resource,
        action=action,
    )
    return success(request, [_dump(row) for row in rows])


@router.get(
    "/{permission_id}",
    summary="查询权限点详情",
    description="范围外或不可见的权限点统一返回 404。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[PermissionData],
    responses=_ERRORS,
)
def get_permission(
    request: Request,
    permission_id: UUID = Path(..., description="权限点 ID。"),
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """查询单个权限点。"""
    require_authority(ctx, PermissionAction.PERMISSIONS_READ)
    return success(request, _dump(permission_service.get_permission(db, ctx, permission_id)))


@router.post(
    "",
    summary="创建权限点",
    description="权限码由 resource + action 自动计算，同组织内唯一。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[PermissionData],
    responses={**_ERRORS, 409: {"model": ErrorResponse}},
)
def create_permission(
    payload: PermissionCreateRequest,
    request: Request,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """创建权限点。"""
    require_authority(ctx, PermissionAction.PERMISSIONS_CREATE)
    permission = permission_service.create_permission(
        db,
        ctx,
        org_id=payload.org_id,
        name=payload.name,
        resource=payload.resource,
        action=payload.action,
        scope=payload.scope,
        description=payload.description,
        active=payload.active,
    )
    db.commit()
    return success(request, _dump(permission))


@router.put(
    "/{permission_id}",
    summary="更新权限点",
    description="权限码随 resource/action 重新计算；停用时同步移除全部角色映射。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[PermissionData],
    responses={**_ERRORS, 409: {"model": ErrorResponse}},
)
def update_permission(
    payload: PermissionUpdateRequest,
    request: Request,
    permission_id: UUID = Path(..., description="权限点 ID。"),
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """更新权限点。"""
    require_authority(ctx, PermissionAction.PERMISSIONS_UPDATE)
    permission = permission_service.update_permission(
        db,
        ctx,
        permission_id,
        name=payload.name,
        resource=payload.resource,
        action=payload.action,
        scope=payload.scope,
        description=payload.description,
        active=payload.active,
    )
    db.commit()
    return success(request, _dump(permission))


@router.delete(
    "/{permission_id}",
    summary="停用权限点",
    description="软删除：置为停用并移除全部角色映射。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[PermissionData],
    responses=_ERRORS,
)
def delete_permission(
    request: Request,
    permission_id: UUID = Path(..., description="权限点 ID。"),
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """停用权限点。"""
    require_authority(ctx, PermissionAction.PERMISSIONS_DELETE)
    permission = permission_service.deactivate_permission(db, ctx, permission_id)
    db.commit()
    return success(request, _dump(permission))
