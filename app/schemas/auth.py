"""
app.schemas.auth
~~~~~~~~~~~~~~~~

账号相关的 Pydantic 请求/响应模型。
"""
from __future__ import annotations

from pydantic import BaseModel, Field


class RegisterRequest(BaseModel):
    """注册请求体。"""

    username: str = Field(..., min_length=1, max_length=64, description="用户名")
    email: str = Field(..., min_length=3, max_length=254, description="邮箱")
    password: str = Field(..., min_length=1, description="明文密码")
    name: str | None = Field(default=None, max_length=100, description="显示名称")


class LoginRequest(BaseModel):
    """登录请求体。"""

    username: str = Field(..., min_length=1, description="用户名")
    password: str = Field(..., min_length=1, description="明文密码")


class ProfileUpdateRequest(BaseModel):
    """资料修改请求体，未提供的字段保持不变。"""

    username: str | None = Field(default=None, min_length=1, max_length=64)
    name: str | None = Field(default=None, max_length=100)


class UserData(BaseModel):
    """对外展示的用户信息。"""

    id: str = Field(..., description="用户 ID")
    username: str = Field(..., description="用户名")
    email: str | None = Field(default=None, description="邮箱")
    name: str | None = Field(default=None, description="显示名称")
    verified: bool | None = Field(default=None, description="邮箱是否已验证")


class LoginResponseData(BaseModel):
    """登录响应数据。"""

    token: str = Field(..., description="登录令牌")
    user: UserData
