"""
app.db.server_repository
~~~~~~~~~~~~~~~~~~~~~~~~

组织（服务器）持久化仓库 —— 封装 ``servers`` 集合。

``is_primary`` 的服务器是学校主服务器，只允许邮箱域名匹配 ``domain`` 的用户加入。
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, TypedDict

from pymongo import ReturnDocument

from app.db.base import MongoRepository, new_id, utcnow


class ServerDoc(TypedDict):
    """``servers`` 集合中的单条记录。"""
    _id: str
    name: str
    description: str | None
    is_primary: bool
    domain: str | None
    created_at: datetime


class ServerRepository(MongoRepository):
    """服务器仓库。"""

    collection_name = "servers"

    async def find_by_id(self, server_id: str) -> ServerDoc | None:
        return await self._collection.find_one({"_id": server_id})

    async def list_all(self) -> list[ServerDoc]:
        cursor = self._collection.find({}).sort("created_at", 1)
        return await cursor.to_list(length=None)

    async def find_many(self, server_ids: list[str]) -> list[ServerDoc]:
        cursor = self._collection.find({"_id": {"$in": server_ids}}).sort("created_at", 1)
        return await cursor.to_list(length=None)

    async def create(
        self,
        name: str,
        description: str | None = None,
        is_primary: bool = False,
        domain: str | None = None,
    ) -> ServerDoc:
        doc: ServerDoc = {
            "_id": new_id(),
            "name": name,
            "description": description,
            "is_primary": is_primary,
            "domain": domain,
            "created_at": utcnow(),
        }
        await self._collection.insert_one(doc)
        return doc

    async def update(self, server_id: str, fields: dict[str, Any]) -> ServerDoc | None:
        return await self._collection.find_one_and_update(
            {"_id": server_id},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
        )

    async def delete(self, server_id: str) -> bool:
        result = await self._collection.delete_one({"_id": server_id})
        return result.deleted_count > 0
