"""
app.services.event_relay
~~~~~~~~~~~~~~~~~~~~~~~~

事件中继 —— 处理客户端事件，并把聊天事件广播给同一房间的所有订阅者。

- ``joinChannel(room)`` / ``leaveChannel(room)``: 只改订阅，不广播
- ``sendMessage(room, payload)``: 原样广播 ``newMessage(payload)``，广播后回确认
- ``like(room, message_id)`` / ``dislike(room, message_id)``:
  广播 ``like(message_id, user_id)``，``user_id`` 取自连接身份而不是客户端

房间名只在发送者自己的服务器命名空间内解析，跨服务器投递在结构上不可能发生。
发送者本人也在投递范围内。
"""
from __future__ import annotations

from collections.abc import Callable
from typing import Any

from app.core.exceptions import ProtocolMisuseError
from app.core.logging import get_logger
from app.schemas.gateway import (
    DISLIKE,
    JOIN_CHANNEL,
    LEAVE_CHANNEL,
    LIKE,
    NEW_MESSAGE,
    SEND_MESSAGE,
    AckId,
)
from app.services.connection import Connection
from app.services.room_registry import RoomRegistry

logger = get_logger(__name__)


def _room_arg(args: list[Any]) -> str:
    if not args or not isinstance(args[0], str) or not args[0]:
        raise ProtocolMisuseError("缺少房间名")
    return args[0]


def _message_id_arg(args: list[Any]) -> str:
    if len(args) < 2 or not isinstance(args[1], str) or not args[1]:
        raise ProtocolMisuseError("缺少消息 ID")
    return args[1]


class EventRelay:
    """事件中继。

    Attributes:
        registry: 所属网关的房间订阅表。
    """

    def __init__(self, registry: RoomRegistry) -> None:
        self.registry = registry
        self._handlers: dict[str, Callable[[Connection, list[Any]], None]] = {
            JOIN_CHANNEL: self._on_join_channel,
            LEAVE_CHANNEL: self._on_leave_channel,
            SEND_MESSAGE: self._on_send_message,
            LIKE: self._on_like,
            DISLIKE: self._on_dislike,
        }

    def dispatch(
        self,
        connection: Connection,
        event: str,
        args: list[Any],
        ack: AckId | None = None,
    ) -> bool:
        """处理一条客户端事件。

        参数不合法的事件被忽略（记录警告），连接保持不变。

        Returns:
            事件是否被处理。
        """
        handler = self._handlers.get(event)
        try:
            if handler is None:
                raise ProtocolMisuseError(f"未知事件 {event!r}")
            handler(connection, args)
        except ProtocolMisuseError as e:
            logger.warning(
                "忽略非法事件: %s | event=%s | conn=%s", e.message, event, connection.connection_id,
            )
            return False

        if ack is not None:
            connection.send_ack(ack)
        return True

    def broadcast(self, server_id: str, room: str, event: str, *args: Any) -> int:
        """向房间内所有订阅者（含发送者）投递事件。

        Returns:
            成功入队的连接数。
        """
        delivered = 0
        for subscriber in self.registry.subscribers(server_id, room):
            if subscriber.send(event, *args):
                delivered += 1
        return delivered

    # ── 事件处理 ──────────────────────────────────────────────────────

    def _on_join_channel(self, connection: Connection, args: list[Any]) -> None:
        self.registry.join(connection, _room_arg(args))

    def _on_leave_channel(self, connection: Connection, args: list[Any]) -> None:
        self.registry.leave(connection, _room_arg(args))

    def _on_send_message(self, connection: Connection, args: list[Any]) -> None:
        room = _room_arg(args)
        if len(args) < 2:
            raise ProtocolMisuseError("缺少消息内容")
        # 消息内容原样转发，作者信息由客户端负载自带
        self.broadcast(connection.server_id, room, NEW_MESSAGE, args[1])

    def _on_like(self, connection: Connection, args: list[Any]) -> None:
        room = _room_arg(args)
        self.broadcast(connection.server_id, room, LIKE, _message_id_arg(args), connection.user_id)

    def _on_dislike(self, connection: Connection, args: list[Any]) -> None:
        room = _room_arg(args)
        self.broadcast(connection.server_id, room, DISLIKE, _message_id_arg(args), connection.user_id)
