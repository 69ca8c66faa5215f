"""
app.db.like_repository
~~~~~~~~~~~~~~~~~~~~~~

消息点赞持久化仓库 —— 封装 ``likes`` 集合。

同一用户对同一条消息最多一个赞，由唯一索引保证。
"""
from __future__ import annotations

from pymongo import ASCENDING, IndexModel
from pymongo.errors import DuplicateKeyError

from app.db.base import MongoRepository, utcnow


class LikeRepository(MongoRepository):
    """点赞仓库。"""

    collection_name = "likes"
    indexes = (
        IndexModel(
            [("user_id", ASCENDING), ("message_id", ASCENDING)],
            name="uniq_user_message",
            unique=True,
        ),
        IndexModel([("message_id", ASCENDING)], name="idx_message"),
    )

    async def add(self, user_id: str, message_id: str) -> bool:
        """点赞。已经赞过时返回 ``False``。"""
        await self._ensure_indexes()
        try:
            await self._collection.insert_one({
                "user_id": user_id,
                "message_id": message_id,
                "created_at": utcnow(),
            })
        except DuplicateKeyError:
            return False
        return True

    async def remove(self, user_id: str, message_id: str) -> bool:
        """取消点赞。本来就没赞过时返回 ``False``。"""
        await self._ensure_indexes()
        result = await self._collection.delete_one({"user_id": user_id, "message_id": message_id})
        return result.deleted_count > 0

    async def count_by_message(self, message_ids: list[str]) -> dict[str, int]:
        """统计每条消息的点赞数，没有赞的消息不出现在结果里。"""
        await self._ensure_indexes()
        if not message_ids:
            return {}
        cursor = self._collection.aggregate([
            {"$match": {"message_id": {"$in": message_ids}}},
            {"$group": {"_id": "$message_id", "count": {"$sum": 1}}},
        ])
        return {row["_id"]: row["count"] async for row in cursor}

    async def liked_by_user(self, user_id: str, message_ids: list[str]) -> set[str]:
        """返回 ``message_ids`` 中被该用户赞过的那部分。"""
        await self._ensure_indexes()
        if not message_ids:
            return set()
        cursor = self._collection.find(
            {"user_id": user_id, "message_id": {"$in": message_ids}},
            {"_id": 0, "message_id": 1},
        )
        return {row["message_id"] async for row in cursor}

    async def delete_for_messages(self, message_ids: list[str]) -> int:
        await self._ensure_indexes()
        if not message_ids:
            return 0
        result = await self._collection.delete_many({"message_id": {"$in": message_ids}})
        return result.deleted_count
