"""
app.db.base
~~~~~~~~~~~

仓库基类 —— 持有集合句柄，并在首次操作时惰性建立索引。
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import IndexModel

from app.core.logging import get_logger

logger = get_logger(__name__)


def new_id() -> str:
    """生成文档 ID。纯十六进制，满足网关路径 ``^\\w+$`` 的约束。"""
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MongoRepository:
    """所有集合仓库的公共部分。

    子类声明 ``collection_name`` 和 ``indexes`` 即可。

    Attributes:
        db: MongoDB 数据库实例。
    """

    collection_name: str = ""
    indexes: tuple[IndexModel, ...] = ()

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self.db = db
        self._collection = db[self.collection_name]
        self._indexes_created = False

    async def _ensure_indexes(self) -> None:
        """确保索引已创建（惰性，首次操作时执行一次）。"""
        if self._indexes_created:
            return
        if self.indexes:
            await self._collection.create_indexes(list(self.indexes))
        self._indexes_created = True
        logger.debug("%s 索引已就绪", self.collection_name)
