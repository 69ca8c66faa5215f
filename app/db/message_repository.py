"""
app.db.message_repository
~~~~~~~~~~~~~~~~~~~~~~~~~

频道消息持久化仓库 —— 封装 MongoDB ``messages`` 集合的增删查操作。

每条消息一个文档（扁平设计），按 ``(server_id, channel_name, created_at)``
建立复合索引，便于按频道分区并按时间排序。
"""
from __future__ import annotations

from datetime import datetime
from typing import TypedDict

from pymongo import ASCENDING, IndexModel

from app.core.logging import get_logger
from app.db.base import MongoRepository, new_id, utcnow

logger = get_logger(__name__)


class MediaItem(TypedDict):
    name: str
    type: str


class MessageDoc(TypedDict):
    """代表 ``messages`` 集合的单条记录。"""
    _id: str
    server_id: str
    channel_name: str
    user_id: str
    content: str
    media: list[MediaItem]
    created_at: datetime


class MessageRepository(MongoRepository):
    """频道消息仓库。"""

    collection_name = "messages"
    indexes = (
        IndexModel(
            [("server_id", ASCENDING), ("channel_name", ASCENDING), ("created_at", ASCENDING)],
            name="idx_channel_time",
        ),
    )

    async def create(
        self,
        server_id: str,
        channel_name: str,
        user_id: str,
        content: str,
        media: list[MediaItem] | None = None,
    ) -> MessageDoc:
        """保存一条频道消息。

        Args:
            server_id: 所属服务器。
            channel_name: 所属频道名。
            user_id: 作者。
            content: 消息文本。
            media: 附件元数据（文件名 + MIME 类型），文件本体不经过后端。
        """
        await self._ensure_indexes()
        doc: MessageDoc = {
            "_id": new_id(),
            "server_id": server_id,
            "channel_name": channel_name,
            "user_id": user_id,
            "content": content,
            "media": list(media or []),
            "created_at": utcnow(),
        }
        await self._collection.insert_one(doc)
        return doc

    async def find_by_id(self, message_id: str) -> MessageDoc | None:
        await self._ensure_indexes()
        return await self._collection.find_one({"_id": message_id})

    async def list_for_channel(self, server_id: str, channel_name: str) -> list[MessageDoc]:
        """获取频道全部消息（按时间正序）。"""
        await self._ensure_indexes()
        cursor = (
            self._collection
            .find({"server_id": server_id, "channel_name": channel_name})
            .sort("created_at", 1)
        )
        return await cursor.to_list(length=None)

    async def delete_own(self, message_id: str, user_id: str) -> bool:
        """删除消息，仅当 ``user_id`` 是作者时生效。"""
        await self._ensure_indexes()
        result = await self._collection.delete_one({"_id": message_id, "user_id": user_id})
        return result.deleted_count > 0

    async def rename_channel(self, server_id: str, old_name: str, new_name: str) -> int:
        """频道改名后同步迁移消息。"""
        await self._ensure_indexes()
        result = await self._collection.update_many(
            {"server_id": server_id, "channel_name": old_name},
            {"$set": {"channel_name": new_name}},
        )
        return result.modified_count

    async def delete_for_channel(self, server_id: str, channel_name: str) -> list[str]:
        """删除频道下的全部消息，返回被删除的消息 ID。"""
        return await self._delete_matching({"server_id": server_id, "channel_name": channel_name})

    async def delete_for_server(self, server_id: str) -> list[str]:
        """删除服务器下的全部消息，返回被删除的消息 ID。"""
        return await self._delete_matching({"server_id": server_id})

    async def _delete_matching(self, query: dict[str, str]) -> list[str]:
        await self._ensure_indexes()
        ids: list[str] = await self._collection.distinct("_id", query)
        if ids:
            await self._collection.delete_many({"_id": {"$in": ids}})
            logger.debug("已删除 %d 条消息 | query=%s", len(ids), query)
        return ids
