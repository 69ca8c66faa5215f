"""
app.schemas.gateway
~~~~~~~~~~~~~~~~~~~

实时网关的线路格式。

每个 WebSocket 文本帧是一个 JSON 对象:

- 客户端 → 网关: ``{"event": "sendMessage", "args": ["general", {...}], "ack": 7}``
- 网关 → 客户端: ``{"event": "newMessage", "args": [{...}]}``
- 确认帧:        ``{"event": "ack", "ack": 7}``
"""
from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

AckId = int | str

# 客户端 → 网关
JOIN_CHANNEL = "joinChannel"
LEAVE_CHANNEL = "leaveChannel"
SEND_MESSAGE = "sendMessage"
LIKE = "like"
DISLIKE = "dislike"

# 网关 → 客户端
NEW_MESSAGE = "newMessage"
ACK = "ack"


class ClientFrame(BaseModel):
    """客户端发来的一帧事件。"""

    model_config = ConfigDict(extra="ignore")

    event: str = Field(..., min_length=1, description="事件名")
    args: list[Any] = Field(default_factory=list, description="位置参数")
    ack: AckId | None = Field(default=None, description="需要确认时携带的确认 ID")


class Identity(BaseModel):
    """握手通过后绑定到连接上的身份，连接存续期间不可变。"""

    model_config = ConfigDict(frozen=True)

    user_id: str
    server_id: str


class RoomInfoData(BaseModel):
    """房间在线摘要。"""

    room: str = Field(..., description="房间名（即频道名）")
    online_count: int = Field(..., description="当前订阅该房间的连接数")


def encode_event(event: str, *args: Any) -> str:
    """把网关事件编码为一个文本帧。"""
    return json.dumps({"event": event, "args": list(args)}, ensure_ascii=False)


def encode_ack(ack_id: AckId) -> str:
    return json.dumps({"event": ACK, "ack": ack_id}, ensure_ascii=False)
