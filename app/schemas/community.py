"""
app.schemas.community
~~~~~~~~~~~~~~~~~~~~~

服务器 / 成员 / 频道 / 消息相关的 Pydantic 请求/响应模型。
"""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


# ── 服务器 ────────────────────────────────────────────────────────────

class ServerCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="服务器名称")
    description: str | None = Field(default=None, description="简介")


class ServerUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = None


class ServerSummary(BaseModel):
    """服务器列表项。``joined`` 只在全量列表中出现。"""

    id: str
    name: str
    joined: bool | None = None


class ServerListData(BaseModel):
    """主服务器（学校）与其他服务器分开返回。"""

    primary_server: ServerSummary | None = None
    secondary_servers: list[ServerSummary] = Field(default_factory=list)


class ServerData(BaseModel):
    id: str
    name: str
    description: str | None = None
    is_primary: bool = False


class MemberData(BaseModel):
    id: str
    username: str
    name: str | None = None
    admin: bool = False


class ChannelData(BaseModel):
    name: str = Field(..., description="频道名（同时是实时网关的房间名）")
    topic: str | None = None
    restricted: bool = False
    call: bool = Field(default=False, description="是否为语音 / 视频频道")


class ServerDetailsData(ServerData):
    channels: list[ChannelData] = Field(default_factory=list)
    members: list[MemberData] = Field(default_factory=list)
    is_admin: bool = False


# ── 频道 ──────────────────────────────────────────────────────────────

class ChannelCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=64)
    topic: str | None = None
    restricted: bool = False
    call: bool = False


class ChannelUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=64)
    topic: str | None = None
    restricted: bool | None = None
    call: bool | None = None


# ── 消息 ──────────────────────────────────────────────────────────────

class MediaData(BaseModel):
    name: str = Field(..., min_length=1, description="文件名")
    type: str = Field(..., min_length=1, description="MIME 类型")


class MessageCreateRequest(BaseModel):
    content: str = Field(default="", description="消息文本")
    media: list[MediaData] = Field(default_factory=list, description="附件元数据")


class AuthorData(BaseModel):
    id: str
    username: str | None = None
    name: str | None = None


class MessageData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    content: str
    media: list[MediaData] = Field(default_factory=list)
    created_at: datetime
    created_by: AuthorData
    likes: int = Field(default=0, description="点赞数")
    liked: bool = Field(default=False, description="当前用户是否赞过")
    self_authored: bool = Field(default=False, alias="self", description="是否为当前用户发送")


class ChannelDetailsData(ChannelData):
    messages: list[MessageData] = Field(default_factory=list)


class RoomTokenData(BaseModel):
    """加入音视频房间所需的连接信息。"""

    url: str = Field(..., description="LiveKit 服务地址")
    token: str = Field(..., description="房间令牌")
