"""角色与角色权限管理接口。"""

from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, Request, Response, status
from sqlalchemy.orm import Session

from clinic_iam.db.session import get_db
from clinic_iam.dependencies import RequestContext, get_request_context
from clinic_iam.schemas.common import ErrorResponse, SuccessResponse
from clinic_iam.schemas.permission import PermissionData
from clinic_iam.schemas.role import RoleCreateRequest, RoleData, RolePermissionsRequest, RoleUpdateRequest
from clinic_iam.services import PermissionAction, require_authority
from clinic_iam.services import role_permissions as role_permission_service
from clinic_iam.services import roles as role_service
from clinic_iam.utils.response import success

router = APIRouter(prefix="/roles", tags=["roles"])

_ERRORS = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}


def _dump_role(role) -> dict:
    return RoleData.model_validate(role).model_dump()


def _dump_permissions(rows) -> list[dict]:
    return [PermissionData.model_validate(row).model_dump() for row in rows]


@router.get(
    "",
    summary="查询角色",
    description="按可见组织查询角色。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[list[RoleData]],
    responses=_ERRORS,
)
def list_roles(
    request: Request,
    org_id: UUID | None = Query(default=None, alias="orgId", description="目标组织，仅超级管理员生效。"),
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """查询角色列表。"""
    require_authority(ctx, PermissionAction.ROLES_READ)
    rows = role_service.list_roles(db, ctx, org_id=org_id)
    return success(request, [_dump_role(row) for row in rows])


@router.get(
    "/{role_id}",
    summary="查询角色详情",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[RoleData],
    responses=_ERRORS,
)
def get_role(
    request: Request,
    role_id: UUID = Path(..., description="角色 ID。"),
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """查询单个角色。"""
    require_authority(ctx, PermissionAction.ROLES_READ)
    return success(request, _dump_role(role_service.get_role(db, ctx, role_id)))


@router.post(
    "",
    summary="创建角色",
    description="同组织内角色名称与编码唯一。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[RoleData],
    responses={**_ERRORS, 409: {"model": ErrorResponse}},
)
def create_role(
    payload: RoleCreateRequest,
    request: Request,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """创建角色。"""
    require_authority(ctx, PermissionAction.ROLES_CREATE)
    role = role_service.create_role(
        db,
        ctx,
        org_id=payload.org_id,
        name=payload.name,
        role_code=payload.role_code,
        description=payload.description,
    )
    db.commit()
    return success(request, _dump_role(role))


@router.put(
    "/{role_id}",
    summary="更新角色",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[RoleData],
    responses={**_ERRORS, 409: {"model": ErrorResponse}},
)
def update_role(
    payload: RoleUpdateRequest,
    request: Request,
    role_id: UUID = Path(..., description="角色 ID。"),
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """更新角色。"""
    require_authority(ctx, PermissionAction.ROLES_UPDATE)
    role = role_service.update_role(
        db,
        ctx,
        role_id,
        name=payload.name,
        role_code=payload.role_code,
        description=payload.description,
    )
    db.commit()
    return success(request, _dump_role(role))


@router.delete(
    "/{role_id}",
    summary="删除角色",
    description="角色仍被权限映射或用户引用时返回 409。",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    responses={**_ERRORS, 409: {"model": ErrorResponse}},
)
def delete_role(
    role_id: UUID = Path(..., description="角色 ID。"),
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """删除角色。"""
    require_authority(ctx, PermissionAction.ROLES_DELETE)
    role_service.delete_role(db, ctx, role_id)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/{role_id}/permissions",
    summary="查询角色权限点",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[list[PermissionData]],
    responses=_ERRORS,
)
def list_role_permissions(
    request: Request,
    role_id: UUID = Path(..., description="角色 ID。"),
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """查询角色当前权限点。"""
    require_authority(ctx, PermissionAction.ROLES_READ)
    rows = role_permission_service.list_role_permissions(db, ctx, role_id)
    return success(request, _dump_permissions(rows))


@router.put(
    "/{role_id}/permissions",
    summary="替换角色权限点",
    description="以请求中的权限点集合整体替换，传空列表即清空。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[list[PermissionData]],
    responses=_ERRORS,
)
def replace_role_permissions(
    payload: RolePermissionsRequest,
    request: Request,
    role_id: UUID = Path(..., description="角色 ID。"),
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """替换角色权限点。"""
    require_authority(ctx, PermissionAction.ROLES_UPDATE)
    rows = role_permission_service.replace_role_permissions(db, ctx, role_id, payload.permission_ids)
    db.commit()
    return success(request, _dump_permissions(rows))


@router.post(
    "/{role_id}/permissions",
    summary="追加角色权限点",
    description="已分配的权限点自动跳过。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[list[PermissionData]],
    responses=_ERRORS,
)
def add_role_permissions(
    payload: RolePermissionsRequest,
    request: Request,
    role_id: UUID = Path(..., description="角色 ID。"),
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """追加角色权限点。"""
    require_authority(ctx, PermissionAction.ROLES_UPDATE)
    rows = role_permission_service.add_role_permissions(db, ctx, role_id, payload.permission_ids)
    db.commit()
    return success(request, _dump_permissions(rows))


@router.delete(
    "/{role_id}/permissions/{permission_id}",
    summary="移除角色权限点",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    responses=_ERRORS,
)
def remove_role_permission(
    role_id: UUID = Path(..., description="角色 ID。"),
    permission_id: UUID = Path(..., description="权限点 ID。"),
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """移除单个角色权限点。"""
    require_authority(ctx, PermissionAction.ROLES_UPDATE)
    role_permission_service.remove_role_permission(db, ctx, role_id, permission_id)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
