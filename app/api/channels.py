"""
app.api.channels
~~~~~~~~~~~~~~~~

频道与消息 REST 接口。

路由前缀 ``/api/server/{server_id}/channel``，全部要求是该服务器成员，
频道的增删改要求管理员。

端点:
  - ``GET    ""``                                        → 频道列表
  - ``POST   ""``                                        → 新建频道（管理员）
  - ``GET    /{channel_name}``                           → 频道详情（含消息）
  - ``PATCH  /{channel_name}``                           → 修改频道（管理员）
  - ``DELETE /{channel_name}``                           → 删除频道（管理员）
  - ``POST   /{channel_name}/joinroom``                  → 音视频房间令牌（仅通话频道）
  - ``POST   /{channel_name}/message``                   → 发送消息
  - ``DELETE /{channel_name}/message/{message_id}``      → 删除自己的消息
  - ``POST   /{channel_name}/message/{message_id}/like`` → 点赞
  - ``DELETE /{channel_name}/message/{message_id}/dislike`` → 取消点赞
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, status

from app.api.deps import authorize_admin, authorize_member, get_channel_service, get_current_user
from app.core.security import TokenClaims
from app.schemas.api_response import ApiResponse
from app.schemas.community import (
    ChannelCreateRequest,
    ChannelData,
    ChannelDetailsData,
    ChannelUpdateRequest,
    MessageCreateRequest,
    MessageData,
    RoomTokenData,
)
from app.services.channel_service import ChannelService

router: APIRouter = APIRouter(dependencies=[Depends(authorize_member)])


# ── 频道 ──────────────────────────────────────────────────────────────

@router.get("", summary="频道列表", response_model=ApiResponse[list[ChannelData]])
async def list_channels(
    server_id: str,
    service: ChannelService = Depends(get_channel_service),
) -> ApiResponse[list[ChannelData]]:
    return ApiResponse.ok(data=await service.list_channels(server_id))


@router.post(
    "",
    summary="新建频道",
    status_code=status.HTTP_201_CREATED,
    response_model=ApiResponse[ChannelData],
    dependencies=[Depends(authorize_admin)],
)
async def create_channel(
    server_id: str,
    body: ChannelCreateRequest,
    service: ChannelService = Depends(get_channel_service),
) -> ApiResponse[ChannelData]:
    return ApiResponse.ok(data=await service.create_channel(server_id, body))


@router.get("/{channel_name}", summary="频道详情", response_model=ApiResponse[ChannelDetailsData])
async def channel_details(
    server_id: str,
    channel_name: str,
    user: TokenClaims = Depends(get_current_user),
    service: ChannelService = Depends(get_channel_service),
) -> ApiResponse[ChannelDetailsData]:
    return ApiResponse.ok(data=await service.get_details(server_id, channel_name, user.user_id))


@router.patch(
    "/{channel_name}",
    summary="修改频道",
    response_model=ApiResponse[ChannelData],
    dependencies=[Depends(authorize_admin)],
)
async def edit_channel(
    server_id: str,
    channel_name: str,
    body: ChannelUpdateRequest,
    service: ChannelService = Depends(get_channel_service),
) -> ApiResponse[ChannelData]:
    return ApiResponse.ok(data=await service.update_channel(server_id, channel_name, body))


@router.delete("/{channel_name}", summary="删除频道", dependencies=[Depends(authorize_admin)])
async def delete_channel(
    server_id: str,
    channel_name: str,
    service: ChannelService = Depends(get_channel_service),
) -> ApiResponse[None]:
    await service.delete_channel(server_id, channel_name)
    return ApiResponse.ok(data=None, msg="Channel deleted successfully")


@router.post(
    "/{channel_name}/joinroom",
    summary="加入音视频房间",
    response_model=ApiResponse[RoomTokenData],
)
async def join_room(
    server_id: str,
    channel_name: str,
    user: TokenClaims = Depends(get_current_user),
    service: ChannelService = Depends(get_channel_service),
) -> ApiResponse[RoomTokenData]:
    return ApiResponse.ok(data=await service.join_room(server_id, channel_name, user.user_id))


# ── 消息 ──────────────────────────────────────────────────────────────

@router.post(
    "/{channel_name}/message",
    summary="发送消息",
    status_code=status.HTTP_201_CREATED,
    response_model=ApiResponse[MessageData],
)
async def create_message(
    server_id: str,
    channel_name: str,
    body: MessageCreateRequest,
    user: TokenClaims = Depends(get_current_user),
    service: ChannelService = Depends(get_channel_service),
) -> ApiResponse[MessageData]:
    data = await service.create_message(server_id, channel_name, user.user_id, body)
    return ApiResponse.ok(data=data)


@router.delete("/{channel_name}/message/{message_id}", summary="删除消息")
async def delete_message(
    message_id: str,
    user: TokenClaims = Depends(get_current_user),
    service: ChannelService = Depends(get_channel_service),
) -> ApiResponse[None]:
    await service.delete_message(message_id, user.user_id)
    return ApiResponse.ok(data=None)


@router.post("/{channel_name}/message/{message_id}/like", summary="点赞")
async def like_message(
    server_id: str,
    channel_name: str,
    message_id: str,
    user: TokenClaims = Depends(get_current_user),
    service: ChannelService = Depends(get_channel_service),
) -> ApiResponse[None]:
    await service.like(server_id, channel_name, message_id, user.user_id)
    return ApiResponse.ok(data=None)


@router.delete("/{channel_name}/message/{message_id}/dislike", summary="取消点赞")
async def dislike_message(
    message_id: str,
    user: TokenClaims = Depends(get_current_user),
    service: ChannelService = Depends(get_channel_service),
) -> ApiResponse[None]:
    await service.dislike(message_id, user.user_id)
    return ApiResponse.ok(data=None)
