"""
app.schemas
~~~~~~~~~~~
REST 与实时网关共用的 Pydantic 模型。
"""
from app.schemas.api_response import ApiResponse
from app.schemas.auth import LoginResponseData, UserData
from app.schemas.community import (
    ChannelData,
    ChannelDetailsData,
    MemberData,
    MessageData,
    ServerData,
    ServerDetailsData,
    RoomTokenData,
    ServerListData,
)
from app.schemas.gateway import ClientFrame, Identity, RoomInfoData

# 泛型应答体需要在所有数据模型导入后解析前向引用
ApiResponse.model_rebuild()
