"""
app.services.handshake
~~~~~~~~~~~~~~~~~~~~~~

网关握手鉴权 —— 在连接建立之前校验令牌与服务器成员身份。

任何失败（没带令牌、令牌无效或过期、不是成员、查询成员关系时出错）
都抛出同一个 ``AuthenticationError("Authentication error")``，
客户端无法据此区分失败原因；具体原因只写进服务端日志。
"""
from __future__ import annotations

import re
from collections.abc import Awaitable, Callable
from typing import NoReturn

from app.core.exceptions import AuthenticationError
from app.core.logging import get_logger
from app.core.security import TokenClaims
from app.db.membership_repository import MembershipRecord
from app.schemas.gateway import Identity

logger = get_logger(__name__)

HANDSHAKE_ERROR: str = "Authentication error"

SERVER_ID_PATTERN = re.compile(r"\w+")

TokenVerifier = Callable[[str | None], TokenClaims]
MembershipLookup = Callable[[str, str], Awaitable[MembershipRecord | None]]


class HandshakeAuthenticator:
    """握手鉴权器。

    两个外部协作者通过构造函数注入，便于测试替换:

    Attributes:
        verify_token: 校验令牌并返回声明，失败时抛出 ``AuthenticationError``。
        lookup_membership: ``(user_id, server_id)`` → 成员记录或 ``None``。
    """

    def __init__(self, verify_token: TokenVerifier, lookup_membership: MembershipLookup) -> None:
        self.verify_token = verify_token
        self.lookup_membership = lookup_membership

    async def authenticate(self, token: str | None, server_id: str) -> Identity:
        """校验握手，成功时返回要绑定到连接上的身份。

        Args:
            token: 客户端提供的令牌，``None`` / 空串表示未提供。
            server_id: 从连接路径解析出的服务器 ID。

        Raises:
            AuthenticationError: 任何原因导致的握手失败（消息统一）。
        """
        if not server_id or not SERVER_ID_PATTERN.fullmatch(server_id):
            self._reject(server_id, "非法的服务器 ID")

        try:
            claims = self.verify_token(token)
        except AuthenticationError as e:
            self._reject(server_id, f"令牌校验失败: {e.message}")
        except Exception as e:
            logger.warning("令牌校验异常 | server=%s", server_id, exc_info=True)
            raise AuthenticationError(HANDSHAKE_ERROR) from e

        try:
            membership = await self.lookup_membership(claims.user_id, server_id)
        except Exception as e:
            # 依赖不可用时拒绝连接，绝不在不确定的情况下放行
            logger.warning(
                "成员关系查询失败，拒绝握手 | user=%s | server=%s",
                claims.user_id, server_id, exc_info=True,
            )
            raise AuthenticationError(HANDSHAKE_ERROR) from e

        if membership is None:
            self._reject(server_id, f"用户 {claims.user_id} 不是成员")

        return Identity(user_id=claims.user_id, server_id=server_id)

    @staticmethod
    def _reject(server_id: str, reason: str) -> NoReturn:
        logger.info("握手被拒绝 | server=%s | 原因: %s", server_id, reason)
        raise AuthenticationError(HANDSHAKE_ERROR)
