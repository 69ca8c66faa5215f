"""
app.db.user_repository
~~~~~~~~~~~~~~~~~~~~~~

用户账号持久化仓库 —— 封装 ``users`` 集合。

用户名与邮箱各自唯一；未验证邮箱的账号允许被重新注册覆盖。
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, TypedDict

from pymongo import ASCENDING, IndexModel, ReturnDocument

from app.db.base import MongoRepository, new_id, utcnow


class UserDoc(TypedDict):
    """``users`` 集合中的单条记录。"""
    _id: str
    username: str
    email: str
    name: str | None
    password_hash: str
    verified: bool
    created_at: datetime


class UserRepository(MongoRepository):
    """用户仓库。"""

    collection_name = "users"
    indexes = (
        IndexModel([("username", ASCENDING)], name="uniq_username", unique=True),
        IndexModel([("email", ASCENDING)], name="uniq_email", unique=True),
    )

    async def find_by_id(self, user_id: str) -> UserDoc | None:
        await self._ensure_indexes()
        return await self._collection.find_one({"_id": user_id})

    async def find_by_username(self, username: str) -> UserDoc | None:
        await self._ensure_indexes()
        return await self._collection.find_one({"username": username})

    async def find_by_username_or_email(self, username: str, email: str) -> UserDoc | None:
        """按用户名或邮箱查找，任一命中即返回。"""
        await self._ensure_indexes()
        return await self._collection.find_one(
            {"$or": [{"username": username}, {"email": email}]},
        )

    async def find_many(self, user_ids: list[str]) -> dict[str, UserDoc]:
        """批量查询用户，返回 ``{user_id: doc}``。"""
        await self._ensure_indexes()
        cursor = self._collection.find(
            {"_id": {"$in": user_ids}},
            {"password_hash": 0},
        )
        return {doc["_id"]: doc async for doc in cursor}

    async def create(
        self,
        username: str,
        email: str,
        password_hash: str,
        name: str | None = None,
    ) -> UserDoc:
        await self._ensure_indexes()
        doc: UserDoc = {
            "_id": new_id(),
            "username": username,
            "email": email,
            "name": name,
            "password_hash": password_hash,
            "verified": False,
            "created_at": utcnow(),
        }
        await self._collection.insert_one(doc)
        return doc

    async def overwrite_unverified(
        self,
        user_id: str,
        username: str,
        email: str,
        password_hash: str,
        name: str | None = None,
    ) -> UserDoc | None:
        """用新的注册信息覆盖一个尚未验证的账号。"""
        await self._ensure_indexes()
        return await self._collection.find_one_and_update(
            {"_id": user_id, "verified": False},
            {"$set": {
                "username": username,
                "email": email,
                "name": name,
                "password_hash": password_hash,
            }},
            return_document=ReturnDocument.AFTER,
        )

    async def mark_verified(self, user_id: str) -> bool:
        await self._ensure_indexes()
        result = await self._collection.update_one(
            {"_id": user_id}, {"$set": {"verified": True}},
        )
        return result.matched_count > 0

    async def update_profile(self, user_id: str, fields: dict[str, Any]) -> UserDoc | None:
        """更新资料字段（用户名 / 昵称）。

        Raises:
            pymongo.errors.DuplicateKeyError: 新用户名已被占用。
        """
        await self._ensure_indexes()
        return await self._collection.find_one_and_update(
            {"_id": user_id},
            {"$set": fields},
            projection={"password_hash": 0},
            return_document=ReturnDocument.AFTER,
        )
