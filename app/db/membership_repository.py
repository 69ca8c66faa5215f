"""
app.db.membership_repository
~~~~~~~~~~~~~~~~~~~~~~~~~~~~

成员关系持久化仓库 —— 封装 ``memberships`` 集合。

``get_membership()`` 同时被 HTTP 鉴权依赖和实时网关握手使用，
是判断“某用户是否属于某服务器”的唯一入口。
"""
from __future__ import annotations

from datetime import datetime
from typing import TypedDict

from pymongo import ASCENDING, IndexModel

from app.db.base import MongoRepository, utcnow


class MembershipRecord(TypedDict):
    """``memberships`` 集合中的单条记录。"""
    user_id: str
    server_id: str
    admin: bool
    created_at: datetime


_PROJECTION = {"_id": 0, "user_id": 1, "server_id": 1, "admin": 1, "created_at": 1}


class MembershipRepository(MongoRepository):
    """成员关系仓库。"""

    collection_name = "memberships"
    indexes = (
        IndexModel(
            [("user_id", ASCENDING), ("server_id", ASCENDING)],
            name="uniq_user_server",
            unique=True,
        ),
        IndexModel([("server_id", ASCENDING)], name="idx_server"),
    )

    async def get_membership(self, user_id: str, server_id: str) -> MembershipRecord | None:
        """查询成员关系，不存在时返回 ``None``。"""
        await self._ensure_indexes()
        return await self._collection.find_one(
            {"user_id": user_id, "server_id": server_id}, _PROJECTION,
        )

    async def create(self, user_id: str, server_id: str, admin: bool = False) -> MembershipRecord:
        """新增成员关系。

        Raises:
            pymongo.errors.DuplicateKeyError: 已经是成员。
        """
        await self._ensure_indexes()
        doc: MembershipRecord = {
            "user_id": user_id,
            "server_id": server_id,
            "admin": admin,
            "created_at": utcnow(),
        }
        # insert_one 会往传入的字典里写 _id，复制一份避免泄漏到返回值
        await self._collection.insert_one(dict(doc))
        return doc

    async def delete(self, user_id: str, server_id: str) -> bool:
        await self._ensure_indexes()
        result = await self._collection.delete_one({"user_id": user_id, "server_id": server_id})
        return result.deleted_count > 0

    async def set_admin(self, user_id: str, server_id: str, admin: bool) -> bool:
        await self._ensure_indexes()
        result = await self._collection.update_one(
            {"user_id": user_id, "server_id": server_id},
            {"$set": {"admin": admin}},
        )
        return result.matched_count > 0

    async def list_for_server(self, server_id: str) -> list[MembershipRecord]:
        await self._ensure_indexes()
        cursor = self._collection.find({"server_id": server_id}, _PROJECTION).sort("created_at", 1)
        return await cursor.to_list(length=None)

    async def list_for_user(self, user_id: str) -> list[MembershipRecord]:
        await self._ensure_indexes()
        cursor = self._collection.find({"user_id": user_id}, _PROJECTION)
        return await cursor.to_list(length=None)

    async def delete_for_server(self, server_id: str) -> int:
        await self._ensure_indexes()
        result = await self._collection.delete_many({"server_id": server_id})
        return result.deleted_count
