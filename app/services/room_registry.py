"""
app.services.room_registry
~~~~~~~~~~~~~~~~~~~~~~~~~~

房间订阅表 —— 维护 ``(server_id, 房间名) → 在线连接集合`` 的映射。

房间不是持久化对象：第一次有人加入时出现，最后一个订阅者离开或断线时消失，
“键不存在”与“集合为空”等价。不同服务器下的同名房间是两个互不相干的房间。

所有方法都是同步的，运行在单个事件循环上，无需加锁。
"""
from __future__ import annotations

from app.core.logging import get_logger
from app.schemas.gateway import RoomInfoData
from app.services.connection import Connection

logger = get_logger(__name__)

RoomKey = tuple[str, str]


class RoomRegistry:
    """房间订阅表，由网关实例持有（非模块级全局变量）。"""

    def __init__(self) -> None:
        self._rooms: dict[RoomKey, set[Connection]] = {}

    def join(self, connection: Connection, room: str) -> bool:
        """把连接加入其所属服务器下的房间。

        Returns:
            是否新加入；已在房间内时为 ``False``（幂等，不报错）。
        """
        if room in connection.rooms:
            return False
        self._rooms.setdefault((connection.server_id, room), set()).add(connection)
        connection.rooms.add(room)
        logger.debug("加入房间 | server=%s | room=%s | conn=%s",
                     connection.server_id, room, connection.connection_id)
        return True

    def leave(self, connection: Connection, room: str) -> bool:
        """把连接移出房间。

        Returns:
            是否确实移出；本来不在房间内时为 ``False``。
        """
        if room not in connection.rooms:
            return False
        connection.rooms.discard(room)
        self._discard((connection.server_id, room), connection)
        logger.debug("离开房间 | server=%s | room=%s | conn=%s",
                     connection.server_id, room, connection.connection_id)
        return True

    def disconnect(self, connection: Connection) -> list[str]:
        """连接断开时把它从所有已订阅房间中移除。

        Returns:
            被移出的房间名列表。
        """
        rooms = sorted(connection.rooms)
        for room in rooms:
            self._discard((connection.server_id, room), connection)
        connection.rooms.clear()
        return rooms

    def subscribers(self, server_id: str, room: str) -> frozenset[Connection]:
        """返回房间当前订阅者的快照。"""
        return frozenset(self._rooms.get((server_id, room), ()))

    def rooms(self, server_id: str) -> list[RoomInfoData]:
        """列出某服务器下所有非空房间及其在线数。"""
        return [
            RoomInfoData(room=room, online_count=len(members))
            for (sid, room), members in sorted(self._rooms.items())
            if sid == server_id
        ]

    def _discard(self, key: RoomKey, connection: Connection) -> None:
        members = self._rooms.get(key)
        if members is None:
            return
        members.discard(connection)
        if not members:
            del self._rooms[key]
