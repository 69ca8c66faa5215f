"""
app.services.connection
~~~~~~~~~~~~~~~~~~~~~~~

实时连接模型 —— 一个已通过握手的 WebSocket 会话。

出站帧不直接写 socket，而是放进连接自己的有界队列，由 ``drain()`` 协程
按入队顺序逐帧发送。这样广播只是同步入队，不会在中途让出事件循环，
同一房间内的投递顺序与发出顺序一致。
"""
from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

from app.core.logging import get_logger
from app.schemas.gateway import AckId, Identity, encode_ack, encode_event

logger = get_logger(__name__)


class Connection:
    """一个实时会话。

    身份（``user_id`` / ``server_id``）在握手时确定，之后只读；
    ``rooms`` 只由 ``RoomRegistry`` 维护。

    Attributes:
        rooms: 当前订阅的房间名集合。
        outbox: 待发送帧队列，``None`` 是结束标记。
    """

    def __init__(self, identity: Identity, outbox_size: int = 256) -> None:
        self._id: str = uuid.uuid4().hex
        self._identity = identity
        self.rooms: set[str] = set()
        self.outbox: asyncio.Queue[str | None] = asyncio.Queue(maxsize=outbox_size)
        self._closed = False

    @property
    def connection_id(self) -> str:
        return self._id

    @property
    def identity(self) -> Identity:
        return self._identity

    @property
    def user_id(self) -> str:
        return self._identity.user_id

    @property
    def server_id(self) -> str:
        return self._identity.server_id

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, event: str, *args: Any) -> bool:
        """把一个网关事件放入发送队列。

        Returns:
            是否成功入队。连接已关闭或队列已满时返回 ``False``（该帧被丢弃）。
        """
        return self._enqueue(encode_event(event, *args))

    def send_ack(self, ack_id: AckId) -> bool:
        return self._enqueue(encode_ack(ack_id))

    def _enqueue(self, frame: str) -> bool:
        if self._closed:
            return False
        try:
            self.outbox.put_nowait(frame)
        except asyncio.QueueFull:
            logger.warning(
                "发送队列已满，丢弃一帧 | conn=%s | user=%s", self._id, self.user_id,
            )
            return False
        return True

    def close(self) -> None:
        """标记关闭并通知 ``drain()`` 退出。"""
        if self._closed:
            return
        self._closed = True
        try:
            self.outbox.put_nowait(None)
        except asyncio.QueueFull:
            # 队列满说明 drain() 正在发送，它每发完一帧都会检查 closed
            pass

    async def drain(self, send_text: Callable[[str], Awaitable[None]]) -> None:
        """持续发送队列中的帧，直到连接关闭或发送失败。"""
        while True:
            frame = await self.outbox.get()
            if frame is None or self._closed:
                break
            try:
                await send_text(frame)
            except Exception as e:
                logger.warning("发送失败，停止向该连接投递: %s | conn=%s", e, self._id)
                self._closed = True
                break

    def __repr__(self) -> str:
        return f"<Connection {self._id} user={self.user_id} server={self.server_id}>"
