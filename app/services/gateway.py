"""
app.services.gateway
~~~~~~~~~~~~~~~~~~~~

实时聊天网关 —— 组合握手鉴权、房间订阅表与事件中继。

在 FastAPI lifespan 中创建并挂载到 ``app.state.gateway``，
WebSocket 端点只负责收发帧，所有状态都在这里。

连接状态: ``Connecting → Authenticated → (Idle ⇄ Subscribed)* → Disconnected``。
``open()`` 之前不存在 ``Connection`` 对象；``close()`` 之后连接不再属于任何房间。
"""
from __future__ import annotations

from pydantic import ValidationError

from app.core.exceptions import ProtocolMisuseError
from app.core.logging import get_logger
from app.schemas.gateway import ClientFrame, RoomInfoData
from app.services.connection import Connection
from app.services.event_relay import EventRelay
from app.services.handshake import HandshakeAuthenticator
from app.services.room_registry import RoomRegistry

logger = get_logger(__name__)


def parse_frame(raw: str | None) -> ClientFrame:
    """解析客户端文本帧。

    Raises:
        ProtocolMisuseError: 不是文本、不是 JSON 对象或字段不合法。
    """
    if raw is None:
        raise ProtocolMisuseError("只接受文本帧")
    try:
        return ClientFrame.model_validate_json(raw)
    except ValidationError as e:
        raise ProtocolMisuseError(f"无法解析的帧: {e.error_count()} 处错误") from e


class ChatGateway:
    """实时聊天网关。

    Attributes:
        authenticator: 握手鉴权器。
        registry: 房间订阅表（每个网关实例独享）。
        relay: 事件中继。
        outbox_size: 新连接的发送队列上限。
    """

    def __init__(
        self,
        authenticator: HandshakeAuthenticator,
        registry: RoomRegistry | None = None,
        outbox_size: int = 256,
    ) -> None:
        self.authenticator = authenticator
        self.registry = registry or RoomRegistry()
        self.relay = EventRelay(self.registry)
        self.outbox_size = outbox_size
        self._connections: dict[str, Connection] = {}

    async def open(self, token: str | None, server_id: str) -> Connection:
        """执行握手，成功后创建并登记连接。

        Raises:
            AuthenticationError: 握手失败，此时不会创建任何连接。
        """
        identity = await self.authenticator.authenticate(token, server_id)
        connection = Connection(identity, outbox_size=self.outbox_size)
        self._connections[connection.connection_id] = connection
        logger.info(
            "连接已建立 | server=%s | user=%s | conn=%s | 在线: %d",
            identity.server_id, identity.user_id, connection.connection_id, len(self._connections),
        )
        return connection

    def handle_frame(self, connection: Connection, raw: str | None) -> bool:
        """解析并处理一帧客户端数据。非法帧被忽略。

        Returns:
            该帧是否被处理。
        """
        try:
            frame = parse_frame(raw)
        except ProtocolMisuseError as e:
            logger.warning("忽略非法帧: %s | conn=%s", e.message, connection.connection_id)
            return False
        return self.relay.dispatch(connection, frame.event, frame.args, frame.ack)

    def close(self, connection: Connection) -> None:
        """断开连接：退出所有房间并停止发送。重复调用无副作用。"""
        if connection.closed and connection.connection_id not in self._connections:
            return
        rooms = self.registry.disconnect(connection)
        connection.close()
        self._connections.pop(connection.connection_id, None)
        logger.info(
            "连接已断开 | server=%s | user=%s | 退出房间: %s | 在线: %d",
            connection.server_id, connection.user_id, rooms, len(self._connections),
        )

    def list_rooms(self, server_id: str) -> list[RoomInfoData]:
        """列出某服务器下的活跃房间。"""
        return self.registry.rooms(server_id)

    @property
    def online_count(self) -> int:
        """当前在线连接数（所有服务器）。"""
        return len(self._connections)
