"""
app.db
~~~~~~

MongoDB 连接管理与各集合仓库。

进程内只有一个 ``AsyncIOMotorClient``：lifespan 启动时 ``connect_mongo()``
创建并返回数据库句柄，交给各 ``*_repository`` 使用；关闭时 ``close_mongo()``。

客户端以 ``tz_aware=True`` 创建，读出的时间字段带 UTC 时区，
与写入时的 ``utcnow()`` 保持一致。
"""
from __future__ import annotations

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from app.core.logging import get_logger
from app.core.settings import settings

logger = get_logger(__name__)

_client: AsyncIOMotorClient | None = None


def _redact(uri: str) -> str:
    """去掉连接串里的账号密码，只保留主机部分用于日志。"""
    scheme, sep, rest = uri.partition("://")
    if not sep or "@" not in rest:
        return uri
    return f"{scheme}://***@{rest.rsplit('@', 1)[1]}"


async def connect_mongo() -> AsyncIOMotorDatabase:
    """创建客户端、确认服务端可达，返回默认数据库。

    Raises:
        pymongo.errors.PyMongoError: 在 ``MONGO_TIMEOUT_MS`` 内无法连上或认证失败。
    """
    global _client
    _client = AsyncIOMotorClient(
        settings.MONGO_URI,
        tz_aware=True,
        serverSelectionTimeoutMS=settings.MONGO_TIMEOUT_MS,
        appname=settings.PROJECT_NAME,
    )
    db = _client[settings.MONGO_DB_NAME]
    try:
        await db.command("ping")
    except PyMongoError:
        logger.error("MongoDB 不可用 | uri=%s", _redact(settings.MONGO_URI), exc_info=True)
        _client.close()
        _client = None
        raise

    logger.info("MongoDB 已连接 | uri=%s | db=%s", _redact(settings.MONGO_URI), db.name)
    return db


async def close_mongo() -> None:
    global _client
    if _client is None:
        return
    _client.close()
    _client = None
    logger.info("MongoDB 连接已关闭")
