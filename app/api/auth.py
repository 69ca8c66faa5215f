"""
app.api.auth
~~~~~~~~~~~~

账号 REST 接口。

路由前缀 ``/api/auth``。

端点:
  - ``POST  /register``   → 注册（发送邮箱验证链接）
  - ``POST  /login``      → 登录，返回令牌
  - ``GET   /verify``     → 邮箱验证
  - ``GET   /me``         → 当前用户信息
  - ``PATCH /me``         → 修改资料

注意：slowapi 的装饰器会包一层函数，FastAPI 需要在本模块的全局命名空间里
解析参数注解，因此本模块不使用 ``from __future__ import annotations``。
"""
from fastapi import APIRouter, Depends, Query, Request, status

from app.api.deps import get_auth_service, get_current_user
from app.core.rate_limit import limiter
from app.core.security import TokenClaims
from app.core.settings import settings
from app.schemas.api_response import ApiResponse
from app.schemas.auth import (
    LoginRequest,
    LoginResponseData,
    ProfileUpdateRequest,
    RegisterRequest,
    UserData,
)
from app.services.auth_service import AuthService

router: APIRouter = APIRouter()


@router.post("/register", summary="注册", status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.AUTH_RATE_LIMIT)
async def register(
    request: Request,
    body: RegisterRequest,
    service: AuthService = Depends(get_auth_service),
) -> ApiResponse[None]:
    """注册新账号，验证链接 5 分钟内有效。"""
    await service.register(body)
    return ApiResponse.ok(
        data=None,
        msg="An email has been sent to you for verification, Please verify within 5 minutes",
    )


@router.post("/login", summary="登录", response_model=ApiResponse[LoginResponseData])
@limiter.limit(settings.AUTH_RATE_LIMIT)
async def login(
    request: Request,
    body: LoginRequest,
    service: AuthService = Depends(get_auth_service),
) -> ApiResponse[LoginResponseData]:
    data = await service.login(body.username, body.password)
    return ApiResponse.ok(data=data, msg="Login successful")


@router.get("/verify", summary="邮箱验证")
async def verify_email(
    token: str = Query(..., min_length=1, description="注册时签发的验证令牌"),
    service: AuthService = Depends(get_auth_service),
) -> ApiResponse[None]:
    await service.verify_email(token)
    return ApiResponse.ok(data=None, msg="Email verified successfully")


@router.get("/me", summary="当前用户", response_model=ApiResponse[UserData])
async def get_me(
    user: TokenClaims = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> ApiResponse[UserData]:
    return ApiResponse.ok(data=await service.get_me(user.user_id))


@router.patch("/me", summary="修改资料", response_model=ApiResponse[UserData])
async def update_me(
    body: ProfileUpdateRequest,
    user: TokenClaims = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> ApiResponse[UserData]:
    data = await service.update_profile(user.user_id, body)
    return ApiResponse.ok(data=data, msg="Profile updated successfully")
