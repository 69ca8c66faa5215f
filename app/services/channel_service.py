"""
app.services.channel_service
~~~~~~~~~~~~~~~~~~~~~~~~~~~~

频道与消息业务服务 —— 频道增删改查、消息收发与点赞。

这里只负责持久化；实时推送由客户端在 HTTP 请求成功后通过网关事件
（``sendMessage`` / ``like`` / ``dislike``）自行广播。
"""
from __future__ import annotations

from pymongo.errors import DuplicateKeyError

from app.core.exceptions import BadRequestError, ConflictError, NotFoundError
from app.core.logging import get_logger
from app.core.security import create_room_token
from app.core.settings import settings
from app.db.channel_repository import ChannelRepository
from app.db.like_repository import LikeRepository
from app.db.message_repository import MessageDoc, MessageRepository
from app.db.user_repository import UserDoc, UserRepository
from app.schemas.community import (
    AuthorData,
    ChannelCreateRequest,
    ChannelData,
    ChannelDetailsData,
    ChannelUpdateRequest,
    MediaData,
    MessageCreateRequest,
    MessageData,
    RoomTokenData,
)

logger = get_logger(__name__)


def _to_message_data(
    doc: MessageDoc,
    author: UserDoc | None,
    viewer_id: str,
    likes: int = 0,
    liked: bool = False,
) -> MessageData:
    return MessageData(
        id=doc["_id"],
        content=doc["content"],
        media=[MediaData(**m) for m in doc.get("media", [])],
        created_at=doc["created_at"],
        created_by=AuthorData(
            id=doc["user_id"],
            username=author and author["username"],
            name=author and author.get("name"),
        ),
        likes=likes,
        liked=liked,
        self_authored=doc["user_id"] == viewer_id,
    )


class ChannelService:
    """频道与消息业务服务。"""

    def __init__(
        self,
        users: UserRepository,
        channels: ChannelRepository,
        messages: MessageRepository,
        likes: LikeRepository,
    ) -> None:
        self.users = users
        self.channels = channels
        self.messages = messages
        self.likes = likes

    # ── 频道 ──────────────────────────────────────────────────────────

    async def list_channels(self, server_id: str) -> list[ChannelData]:
        return [ChannelData(**c) for c in await self.channels.list_for_server(server_id)]

    async def get_details(self, server_id: str, channel_name: str, viewer_id: str) -> ChannelDetailsData:
        """频道详情，消息按时间正序，附带点赞数与当前用户的点赞状态。"""
        channel = await self.channels.find(server_id, channel_name)
        if channel is None:
            raise NotFoundError("Channel not found")

        messages = await self.messages.list_for_channel(server_id, channel_name)
        message_ids = [m["_id"] for m in messages]
        authors = await self.users.find_many(list({m["user_id"] for m in messages}))
        counts = await self.likes.count_by_message(message_ids)
        liked = await self.likes.liked_by_user(viewer_id, message_ids)

        return ChannelDetailsData(
            **ChannelData(**channel).model_dump(),
            messages=[
                _to_message_data(
                    m,
                    authors.get(m["user_id"]),
                    viewer_id,
                    likes=counts.get(m["_id"], 0),
                    liked=m["_id"] in liked,
                )
                for m in messages
            ],
        )

    async def create_channel(self, server_id: str, request: ChannelCreateRequest) -> ChannelData:
        try:
            channel = await self.channels.create(
                server_id,
                request.name,
                topic=request.topic,
                restricted=request.restricted,
                call=request.call,
            )
        except DuplicateKeyError as e:
            raise BadRequestError("Channel already exists") from e
        logger.info("频道已创建 | server=%s | channel=%s", server_id, request.name)
        return ChannelData(**channel)

    async def update_channel(
        self, server_id: str, channel_name: str, request: ChannelUpdateRequest,
    ) -> ChannelData:
        """修改频道；改名时消息随之迁移。"""
        fields = request.model_dump(exclude_none=True)
        if not fields:
            channel = await self.channels.find(server_id, channel_name)
        else:
            try:
                channel = await self.channels.update(server_id, channel_name, fields)
            except DuplicateKeyError as e:
                raise ConflictError("Channel already exists") from e
        if channel is None:
            raise NotFoundError("Channel doesn't exist")

        new_name = fields.get("name")
        if new_name and new_name != channel_name:
            await self.messages.rename_channel(server_id, channel_name, new_name)
            logger.info("频道已改名 | server=%s | %s -> %s", server_id, channel_name, new_name)
        return ChannelData(**channel)

    async def delete_channel(self, server_id: str, channel_name: str) -> None:
        if not await self.channels.delete(server_id, channel_name):
            raise NotFoundError("Channel doesn't exist")
        message_ids = await self.messages.delete_for_channel(server_id, channel_name)
        await self.likes.delete_for_messages(message_ids)
        logger.info("频道已删除 | server=%s | channel=%s", server_id, channel_name)

    async def join_room(self, server_id: str, channel_name: str, user_id: str) -> RoomTokenData:
        """为开启了通话的频道签发音视频房间令牌，房间名为 ``{server_id}/{channel_name}``。"""
        channel = await self.channels.find(server_id, channel_name)
        if channel is None or not channel.get("call"):
            raise NotFoundError("No room found")
        token = create_room_token(user_id, f"{server_id}/{channel_name}")
        logger.info("签发房间令牌 | server=%s | channel=%s | user=%s", server_id, channel_name, user_id)
        return RoomTokenData(url=settings.LIVEKIT_URL, token=token)

    # ── 消息 ──────────────────────────────────────────────────────────

    async def create_message(
        self, server_id: str, channel_name: str, user_id: str, request: MessageCreateRequest,
    ) -> MessageData:
        if await self.channels.find(server_id, channel_name) is None:
            raise NotFoundError("Channel not found")
        doc = await self.messages.create(
            server_id,
            channel_name,
            user_id,
            request.content,
            media=[m.model_dump() for m in request.media],
        )
        author = await self.users.find_by_id(user_id)
        return _to_message_data(doc, author, user_id)

    async def delete_message(self, message_id: str, user_id: str) -> None:
        """删除自己发送的消息，连同其点赞。"""
        if not await self.messages.delete_own(message_id, user_id):
            raise NotFoundError("Message not found")
        await self.likes.delete_for_messages([message_id])

    async def like(self, server_id: str, channel_name: str, message_id: str, user_id: str) -> None:
        await self._require_message(server_id, channel_name, message_id)
        if not await self.likes.add(user_id, message_id):
            raise ConflictError("Message already liked")

    async def dislike(self, message_id: str, user_id: str) -> None:
        if not await self.likes.remove(user_id, message_id):
            raise NotFoundError("Like not found")

    async def _require_message(self, server_id: str, channel_name: str, message_id: str) -> MessageDoc:
        message = await self.messages.find_by_id(message_id)
        if (
            message is None
            or message["server_id"] != server_id
            or message["channel_name"] != channel_name
        ):
            raise NotFoundError("Message not found")
        return message
