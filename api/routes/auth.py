"""
认证API路由 - 注册、登录、登出
"""
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from application.services.user_service import UserApplicationService
from application.dto import (
    UserCreateDTO, UserResponseDTO, LoginDTO, LoginResultDTO,
    IdentityDTO, RevokeResultDTO, ClientInfo,
)
from api.dependencies import (
    get_client_info,
    get_current_identity,
    get_token,
    get_user_service,
)
from core.exceptions import business_error_payload
from core.response import success_response, Response as ApiResponse
from domain.common.exceptions import InvalidCredentialsException, AccountDisabledException
from shared.codes import BusinessCode

router = APIRouter(
    prefix="/auth",
    tags=["认证"]
)


@router.post(
    "/register",
    summary="用户注册",
    status_code=status.HTTP_201_CREATED,
    response_model=ApiResponse[UserResponseDTO],
)
async def register(
    user_data: UserCreateDTO,
    service: UserApplicationService = Depends(get_user_service)
):
    """
    注册新用户

    - **username** / **email**: 均需唯一
    - **password**: 至少 6 位
    - **nickname**: 可选，默认与用户名相同
    - **source**: 可选，注册来源
    """
    user = await service.register(user_data)
    return success_response(data=user, message="Registration succeeded", code=BusinessCode.CREATED)


@router.post("/login", summary="用户登录", response_model=ApiResponse[LoginResultDTO])
async def login(
    request: Request,
    login_data: LoginDTO,
    client: ClientInfo = Depends(get_client_info),
    service: UserApplicationService = Depends(get_user_service)
):
    """
    用户名或邮箱登录

    登录失败时 HTTP 状态码仍为 200，响应体 code 为 401（账号停用为 403）。
    """
    try:
        result = await service.login(login_data, client)
    except (InvalidCredentialsException, AccountDisabledException) as exc:
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content=business_error_payload(exc, request),
        )
    return success_response(data=result, message="Login succeeded")


@router.post("/logout", summary="登出当前会话", response_model=ApiResponse[RevokeResultDTO])
async def logout(
    token: str = Depends(get_token),
    identity: IdentityDTO = Depends(get_current_identity),
    service: UserApplicationService = Depends(get_user_service)
):
    count = await service.logout(identity, token)
    return success_response(data=RevokeResultDTO(revoked=count), message="Logged out")


@router.post("/logout-all", summary="登出所有设备", response_model=ApiResponse[RevokeResultDTO])
async def logout_all(
    identity: IdentityDTO = Depends(get_current_identity),
    service: UserApplicationService = Depends(get_user_service)
):
    count = await service.logout_all(identity)
    return success_response(data=RevokeResultDTO(revoked=count), message="Logged out from all devices")


@router.get("/me", summary="获取当前身份", response_model=ApiResponse[IdentityDTO])
async def me(identity: IdentityDTO = Depends(get_current_identity)):
    """返回令牌对应的身份信息"""
    return success_response(data=identity)
