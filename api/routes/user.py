"""
用户API路由 - FastAPI表现层
"""
from fastapi import APIRouter, Depends, Query, Request, Security, status
from fastapi.responses import JSONResponse
from typing import Annotated, Any

from application.services.user_service import UserApplicationService
from core.exceptions import business_error_payload
from core.response import success_response, paginated_response, Response as ApiResponse, PaginatedData
from application.dto import (
    AdminUserCreateDTO, AdminUserUpdateDTO, ProfileUpdateDTO, ChangePasswordDTO,
    IdentityDTO, ProductCreateDTO, UserListQuery, UserResponseDTO,
)
from api.dependencies import (
    get_current_identity,
    get_user_service,
    require_admin,
)
from domain.common.exceptions import DomainValidationException, DuplicateKeyException
from shared.codes import BusinessCode

router = APIRouter(
    prefix="/users",
    tags=["用户管理"]
)


@router.get(
    "",
    summary="获取用户列表",
    response_model=ApiResponse[PaginatedData[UserResponseDTO]],
)
async def list_users(
    query: Annotated[UserListQuery, Query()],
    service: UserApplicationService = Depends(get_user_service),
    _admin: IdentityDTO = Security(require_admin)
):
    """
    获取用户列表（需要管理员权限）

    username / email 模糊匹配，role / status / source 精确匹配，按创建时间倒序
    """
    users, total = await service.list_users(query)
    return paginated_response(
        items=users,
        total=total,
        page=query.page,
        size=query.size,
    )


@router.post(
    "",
    summary="管理员创建用户",
    status_code=status.HTTP_201_CREATED,
    response_model=ApiResponse[UserResponseDTO],
)
async def create_user(
    request: Request,
    user_data: AdminUserCreateDTO,
    service: UserApplicationService = Depends(get_user_service),
    admin: IdentityDTO = Security(require_admin)
):
    """创建失败时 HTTP 状态码为 200，响应体 code 为 400"""
    try:
        user = await service.admin_create_user(admin, user_data)
    except (DomainValidationException, DuplicateKeyException) as exc:
        payload = business_error_payload(exc, request)
        payload["code"] = int(BusinessCode.BAD_REQUEST)
        return JSONResponse(status_code=status.HTTP_200_OK, content=payload)
    return success_response(data=user, message="User created", code=BusinessCode.CREATED)


@router.put("/me", summary="更新当前用户信息", response_model=ApiResponse[UserResponseDTO])
async def update_current_user(
    update_data: ProfileUpdateDTO,
    identity: IdentityDTO = Depends(get_current_identity),
    service: UserApplicationService = Depends(get_user_service)
):
    """更新昵称、头像或密码；修改密码会使所有会话失效"""
    updated_user = await service.update_profile(identity, update_data)
    return success_response(data=updated_user, message="Profile updated")


@router.put("/change-password", summary="修改密码", response_model=ApiResponse[Any])
async def change_password(
    password_data: ChangePasswordDTO,
    identity: IdentityDTO = Depends(get_current_identity),
    service: UserApplicationService = Depends(get_user_service)
):
    """修改当前用户的密码，成功后需要重新登录"""
    await service.change_password(identity.id, password_data)
    return success_response(data=None, message="Password changed, please log in again")


@router.get("/{user_id}", summary="获取指定用户信息", response_model=ApiResponse[UserResponseDTO])
async def get_user(
    user_id: int,
    service: UserApplicationService = Depends(get_user_service),
    _admin: IdentityDTO = Security(require_admin)
):
    """获取指定用户的信息（需要管理员权限）"""
    user = await service.get_user(user_id)
    return success_response(data=user)


@router.put("/{user_id}", summary="更新用户信息", response_model=ApiResponse[UserResponseDTO])
async def update_user(
    user_id: int,
    update_data: AdminUserUpdateDTO,
    service: UserApplicationService = Depends(get_user_service),
    admin: IdentityDTO = Security(require_admin)
):
    """更新指定用户的信息（需要管理员权限）"""
    updated_user = await service.admin_update_user(admin, user_id, update_data)
    return success_response(data=updated_user, message="User updated")


@router.delete("/{user_id}", summary="删除用户", response_model=ApiResponse[Any])
async def delete_user(
    user_id: int,
    service: UserApplicationService = Depends(get_user_service),
    admin: IdentityDTO = Security(require_admin)
):
    """删除指定用户及其会话、登录日志（需要管理员权限）"""
    await service.delete_user(admin, user_id)
    return success_response(data=None, message="User deleted")


@router.post(
    "/{user_id}/products",
    summary="关联产品",
    response_model=ApiResponse[UserResponseDTO],
)
async def add_product(
    user_id: int,
    product: ProductCreateDTO,
    identity: IdentityDTO = Depends(get_current_identity),
    service: UserApplicationService = Depends(get_user_service)
):
    """管理员或用户本人可操作"""
    user = await service.add_product(identity, user_id, product)
    return success_response(data=user, message="Product associated")


@router.delete(
    "/{user_id}/products/{product_id}",
    summary="取消产品关联",
    response_model=ApiResponse[UserResponseDTO],
)
async def remove_product(
    user_id: int,
    product_id: str,
    identity: IdentityDTO = Depends(get_current_identity),
    service: UserApplicationService = Depends(get_user_service)
):
    user = await service.remove_product(identity, user_id, product_id)
    return success_response(data=user, message="Product association removed")
