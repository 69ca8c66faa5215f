"""
app.api.servers
~~~~~~~~~~~~~~~

服务器 REST 接口 —— 服务器管理 + 成员管理 + 实时房间概览。

路由前缀 ``/api/server``，全部需要登录。

端点:
  - ``GET    ""``                              → 全部服务器（含 joined 标记）
  - ``GET    /my``                             → 我加入的服务器
  - ``POST   ""``                              → 创建服务器
  - ``POST   /{server_id}/join``               → 加入服务器
  - ``GET    /{server_id}``                    → 服务器详情（成员）
  - ``PATCH  /{server_id}``                    → 修改服务器（管理员）
  - ``DELETE /{server_id}``                    → 删除服务器（管理员）
  - ``GET    /{server_id}/members``            → 成员列表（成员）
  - ``DELETE /{server_id}/leave``              → 退出服务器（成员）
  - ``GET    /{server_id}/rooms``              → 实时房间在线概览（成员）
  - ``PATCH  /{server_id}/promote/{user_id}``  → 升为管理员（管理员）
  - ``PATCH  /{server_id}/demote/{user_id}``   → 降为成员（管理员）
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, status

from app.api.deps import (
    authorize_admin,
    authorize_member,
    get_current_user,
    get_gateway,
    get_server_service,
)
from app.core.security import TokenClaims
from app.schemas.api_response import ApiResponse
from app.schemas.community import (
    MemberData,
    ServerCreateRequest,
    ServerData,
    ServerDetailsData,
    ServerListData,
    ServerUpdateRequest,
)
from app.schemas.gateway import RoomInfoData
from app.services.gateway import ChatGateway
from app.services.server_service import ServerService

router: APIRouter = APIRouter(dependencies=[Depends(get_current_user)])


# ── 列表 / 创建 ───────────────────────────────────────────────────────

@router.get("", summary="全部服务器", response_model=ApiResponse[ServerListData])
async def list_servers(
    user: TokenClaims = Depends(get_current_user),
    service: ServerService = Depends(get_server_service),
) -> ApiResponse[ServerListData]:
    return ApiResponse.ok(data=await service.list_servers(user.user_id))


@router.get("/my", summary="我加入的服务器", response_model=ApiResponse[ServerListData])
async def my_servers(
    user: TokenClaims = Depends(get_current_user),
    service: ServerService = Depends(get_server_service),
) -> ApiResponse[ServerListData]:
    return ApiResponse.ok(data=await service.my_servers(user.user_id))


@router.post(
    "",
    summary="创建服务器",
    status_code=status.HTTP_201_CREATED,
    response_model=ApiResponse[ServerData],
)
async def create_server(
    body: ServerCreateRequest,
    user: TokenClaims = Depends(get_current_user),
    service: ServerService = Depends(get_server_service),
) -> ApiResponse[ServerData]:
    data = await service.create_server(user.user_id, body)
    return ApiResponse.ok(data=data, msg="Server created successfully")


@router.post("/{server_id}/join", summary="加入服务器", status_code=status.HTTP_201_CREATED)
async def join_server(
    server_id: str,
    user: TokenClaims = Depends(get_current_user),
    service: ServerService = Depends(get_server_service),
) -> ApiResponse[None]:
    await service.join(server_id, user.user_id)
    return ApiResponse.ok(data=None, msg="Joined server successfully")


# ── 成员可见 ──────────────────────────────────────────────────────────

@router.get(
    "/{server_id}",
    summary="服务器详情",
    response_model=ApiResponse[ServerDetailsData],
    dependencies=[Depends(authorize_member)],
)
async def server_details(
    server_id: str,
    user: TokenClaims = Depends(get_current_user),
    service: ServerService = Depends(get_server_service),
) -> ApiResponse[ServerDetailsData]:
    return ApiResponse.ok(data=await service.get_details(server_id, user.user_id))


@router.get(
    "/{server_id}/members",
    summary="成员列表",
    response_model=ApiResponse[list[MemberData]],
    dependencies=[Depends(authorize_member)],
)
async def list_members(
    server_id: str,
    service: ServerService = Depends(get_server_service),
) -> ApiResponse[list[MemberData]]:
    return ApiResponse.ok(data=await service.list_members(server_id))


@router.delete("/{server_id}/leave", summary="退出服务器", dependencies=[Depends(authorize_member)])
async def leave_server(
    server_id: str,
    user: TokenClaims = Depends(get_current_user),
    service: ServerService = Depends(get_server_service),
) -> ApiResponse[None]:
    await service.leave(server_id, user.user_id)
    return ApiResponse.ok(data=None, msg="Left server successfully")


@router.get(
    "/{server_id}/rooms",
    summary="实时房间概览",
    response_model=ApiResponse[list[RoomInfoData]],
    dependencies=[Depends(authorize_member)],
)
async def list_rooms(
    server_id: str,
    gateway: ChatGateway = Depends(get_gateway),
) -> ApiResponse[list[RoomInfoData]]:
    """返回该服务器下当前有人订阅的房间及在线数。"""
    return ApiResponse.ok(data=gateway.list_rooms(server_id))


# ── 管理员 ────────────────────────────────────────────────────────────

@router.patch(
    "/{server_id}",
    summary="修改服务器",
    response_model=ApiResponse[ServerData],
    dependencies=[Depends(authorize_admin)],
)
async def edit_server(
    server_id: str,
    body: ServerUpdateRequest,
    service: ServerService = Depends(get_server_service),
) -> ApiResponse[ServerData]:
    data = await service.update_server(server_id, body)
    return ApiResponse.ok(data=data, msg="Server updated successfully")


@router.delete("/{server_id}", summary="删除服务器", dependencies=[Depends(authorize_admin)])
async def delete_server(
    server_id: str,
    service: ServerService = Depends(get_server_service),
) -> ApiResponse[None]:
    await service.delete_server(server_id)
    return ApiResponse.ok(data=None, msg="Server deleted successfully")


@router.patch(
    "/{server_id}/promote/{user_id}",
    summary="升为管理员",
    dependencies=[Depends(authorize_admin)],
)
async def promote_member(
    server_id: str,
    user_id: str,
    service: ServerService = Depends(get_server_service),
) -> ApiResponse[None]:
    await service.promote(server_id, user_id)
    return ApiResponse.ok(data=None, msg="Member promoted successfully")


@router.patch(
    "/{server_id}/demote/{user_id}",
    summary="降为成员",
    dependencies=[Depends(authorize_admin)],
)
async def demote_member(
    server_id: str,
    user_id: str,
    service: ServerService = Depends(get_server_service),
) -> ApiResponse[None]:
    await service.demote(server_id, user_id)
    return ApiResponse.ok(data=None, msg="Member demoted successfully")
