"""
app.db.channel_repository
~~~~~~~~~~~~~~~~~~~~~~~~~

频道持久化仓库 —— 封装 ``channels`` 集合。

频道以 ``(server_id, name)`` 唯一标识，没有独立 ID；
频道名同时也是实时网关里的房间名。
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, TypedDict

from pymongo import ASCENDING, IndexModel, ReturnDocument

from app.db.base import MongoRepository, utcnow


class ChannelDoc(TypedDict):
    """``channels`` 集合中的单条记录。"""
    server_id: str
    name: str
    topic: str | None
    restricted: bool
    call: bool
    created_at: datetime


_PROJECTION = {"_id": 0}


class ChannelRepository(MongoRepository):
    """频道仓库。"""

    collection_name = "channels"
    indexes = (
        IndexModel(
            [("server_id", ASCENDING), ("name", ASCENDING)],
            name="uniq_server_name",
            unique=True,
        ),
    )

    async def list_for_server(self, server_id: str) -> list[ChannelDoc]:
        await self._ensure_indexes()
        cursor = self._collection.find({"server_id": server_id}, _PROJECTION).sort("created_at", 1)
        return await cursor.to_list(length=None)

    async def find(self, server_id: str, name: str) -> ChannelDoc | None:
        await self._ensure_indexes()
        return await self._collection.find_one({"server_id": server_id, "name": name}, _PROJECTION)

    async def create(
        self,
        server_id: str,
        name: str,
        topic: str | None = None,
        restricted: bool = False,
        call: bool = False,
    ) -> ChannelDoc:
        """新建频道。

        Raises:
            pymongo.errors.DuplicateKeyError: 同名频道已存在。
        """
        await self._ensure_indexes()
        doc: ChannelDoc = {
            "server_id": server_id,
            "name": name,
            "topic": topic,
            "restricted": restricted,
            "call": call,
            "created_at": utcnow(),
        }
        await self._collection.insert_one(dict(doc))
        return doc

    async def update(self, server_id: str, name: str, fields: dict[str, Any]) -> ChannelDoc | None:
        """更新频道字段，``fields`` 中可包含新的 ``name``。

        Raises:
            pymongo.errors.DuplicateKeyError: 改名后与已有频道冲突。
        """
        await self._ensure_indexes()
        return await self._collection.find_one_and_update(
            {"server_id": server_id, "name": name},
            {"$set": fields},
            projection=_PROJECTION,
            return_document=ReturnDocument.AFTER,
        )

    async def delete(self, server_id: str, name: str) -> bool:
        await self._ensure_indexes()
        result = await self._collection.delete_one({"server_id": server_id, "name": name})
        return result.deleted_count > 0

    async def delete_for_server(self, server_id: str) -> int:
        await self._ensure_indexes()
        result = await self._collection.delete_many({"server_id": server_id})
        return result.deleted_count
