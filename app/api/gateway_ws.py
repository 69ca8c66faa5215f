"""
app.api.gateway_ws
~~~~~~~~~~~~~~~~~~

WebSocket 实时聊天接口 —— 按服务器划分命名空间，按频道名划分房间。

客户端连接 ``/ws/server/{server_id}``，通过查询参数 ``token`` 或
``Authorization: Bearer`` 请求头提供登录令牌。握手失败时在 accept 之前以
1008 关闭连接，原因统一为 ``Authentication error``。

消息协议见 ``app.schemas.gateway``。
"""
from __future__ import annotations

import asyncio
import uuid

from fastapi import APIRouter, WebSocket, status

from app.core.exceptions import AuthenticationError
from app.core.logging import get_logger, request_id_ctx_var
from app.services.gateway import ChatGateway
from app.services.handshake import HANDSHAKE_ERROR

logger = get_logger(__name__)

router: APIRouter = APIRouter()


def _extract_token(websocket: WebSocket, token: str | None) -> str | None:
    """查询参数优先，其次是 ``Authorization: Bearer`` 请求头。"""
    if token:
        return token
    authorization = websocket.headers.get("authorization", "")
    scheme, _, credential = authorization.partition(" ")
    if scheme.lower() == "bearer" and credential.strip():
        return credential.strip()
    return None


@router.websocket("/ws/server/{server_id}")
async def server_gateway_endpoint(
    websocket: WebSocket,
    server_id: str,
    token: str | None = None,
) -> None:
    """服务器实时网关端点。

    握手通过后并发运行两个协程:

    - ``receive_loop``: 逐帧解析客户端事件并交给网关处理
    - ``send_loop``: 把连接发送队列里的帧写回 socket

    接收端结束（正常断开或异常）时立即清理房间订阅，再通知发送端退出。
    握手通过后，无论从哪条路径退出都会注销连接。

    Args:
        websocket: FastAPI WebSocket 连接对象。
        server_id: 服务器 ID。
        token: 登录令牌（可选，也可放在请求头中）。
    """
    ws_req_id = f"ws-{uuid.uuid4().hex[:8]}"
    ctx_token = request_id_ctx_var.set(ws_req_id)

    try:
        gateway: ChatGateway = websocket.app.state.gateway
        try:
            connection = await gateway.open(_extract_token(websocket, token), server_id)
        except AuthenticationError:
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=HANDSHAKE_ERROR)
            return

        async def receive_loop() -> None:
            try:
                while True:
                    message = await websocket.receive()
                    if message["type"] == "websocket.disconnect":
                        break
                    try:
                        gateway.handle_frame(connection, message.get("text"))
                    except Exception as e:
                        # 单个事件出错不影响本连接后续事件，更不影响其他连接
                        logger.error("事件处理异常: %s | conn=%s", e, connection.connection_id, exc_info=True)
            except Exception as e:
                logger.error("WebSocket 接收异常: %s | server=%s", e, server_id, exc_info=True)
            finally:
                gateway.close(connection)

        async def send_loop() -> None:
            await connection.drain(websocket.send_text)

        try:
            await websocket.accept()
            await asyncio.gather(receive_loop(), send_loop())
        finally:
            # accept 失败或被取消时 receive_loop 不会运行
            gateway.close(connection)

    finally:
        request_id_ctx_var.reset(ctx_token)
