"""
app.api.deps
~~~~~~~~~~~~

FastAPI 依赖 —— 从 ``app.state`` 取出服务实例，以及 HTTP 鉴权 / 成员 / 管理员校验。
"""
from __future__ import annotations

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.exceptions import AuthenticationError, AuthorizationError
from app.core.security import TokenClaims, decode_token
from app.db.membership_repository import MembershipRecord, MembershipRepository
from app.services.auth_service import AuthService
from app.services.channel_service import ChannelService
from app.services.gateway import ChatGateway
from app.services.server_service import ServerService

_bearer = HTTPBearer(auto_error=False)


# ── 服务实例 ──────────────────────────────────────────────────────────

def get_gateway(request: Request) -> ChatGateway:
    return request.app.state.gateway


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_server_service(request: Request) -> ServerService:
    return request.app.state.server_service


def get_channel_service(request: Request) -> ChannelService:
    return request.app.state.channel_service


def get_membership_repository(request: Request) -> MembershipRepository:
    return request.app.state.memberships


# ── 鉴权 ──────────────────────────────────────────────────────────────

def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> TokenClaims:
    """校验 ``Authorization: Bearer`` 登录令牌。"""
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Unauthorized")
    try:
        return decode_token(credentials.credentials, expected_type="access")
    except AuthenticationError as e:
        raise AuthenticationError("Invalid token") from e


async def authorize_member(
    server_id: str,
    user: TokenClaims = Depends(get_current_user),
    memberships: MembershipRepository = Depends(get_membership_repository),
) -> MembershipRecord:
    """要求当前用户是 ``server_id`` 的成员。"""
    membership = await memberships.get_membership(user.user_id, server_id)
    if membership is None:
        raise AuthorizationError("Forbidden: You are not a member of this server")
    return membership


async def authorize_admin(
    membership: MembershipRecord = Depends(authorize_member),
) -> MembershipRecord:
    """要求当前用户是 ``server_id`` 的管理员。"""
    if not membership.get("admin"):
        raise AuthorizationError("Forbidden: You are not an admin of this server")
    return membership
