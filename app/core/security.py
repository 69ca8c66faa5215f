"""
app.core.security
~~~~~~~~~~~~~~~~~

令牌签发 / 校验与密码哈希。

- 令牌：HS256 JWT（PyJWT），使用 ``settings.JWT_SECRET`` 作为共享密钥。
  ``type`` 声明区分登录令牌（``access``）和邮箱验证令牌（``verify``），
  两者不能互相顶替。
- 密码：Argon2id（argon2-cffi）。
- 音视频：LiveKit 房间令牌（livekit-api），用独立的 API key / secret 签名。
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Literal

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError
from livekit import api as livekit_api
from pydantic import BaseModel

from app.core.exceptions import AuthenticationError, TransientDependencyError
from app.core.logging import get_logger
from app.core.settings import settings

logger = get_logger(__name__)

TokenType = Literal["access", "verify"]

_hasher = PasswordHasher()


class TokenClaims(BaseModel):
    """校验通过的令牌声明。"""

    sub: str
    type: TokenType
    exp: int
    iat: int | None = None

    @property
    def user_id(self) -> str:
        return self.sub


# ── 密码 ──────────────────────────────────────────────────────────────

def hash_password(password: str) -> str:
    """使用 Argon2id 哈希明文密码。"""
    return _hasher.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """校验明文密码与哈希是否匹配，哈希格式异常时视为不匹配。"""
    try:
        return _hasher.verify(password_hash, password)
    except (VerificationError, InvalidHashError):
        return False


# ── 令牌 ──────────────────────────────────────────────────────────────

def _encode(user_id: str, token_type: TokenType, expires_delta: timedelta) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "type": token_type,
        "iat": now,
        "exp": now + expires_delta,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def create_access_token(user_id: str, expires_delta: timedelta | None = None) -> str:
    """签发登录令牌。"""
    return _encode(
        user_id,
        "access",
        expires_delta or timedelta(hours=settings.ACCESS_TOKEN_EXPIRE_HOURS),
    )


def create_verification_token(user_id: str, expires_delta: timedelta | None = None) -> str:
    """签发邮箱验证令牌。"""
    return _encode(
        user_id,
        "verify",
        expires_delta or timedelta(minutes=settings.VERIFY_TOKEN_EXPIRE_MINUTES),
    )


def decode_token(token: str | None, expected_type: TokenType = "access") -> TokenClaims:
    """校验令牌签名、有效期与类型，返回声明。

    Args:
        token: 客户端提供的原始令牌，``None`` 或空串表示未提供。
        expected_type: 期望的令牌类型。

    Returns:
        校验通过的 ``TokenClaims``。

    Raises:
        AuthenticationError: 令牌缺失、格式错误、签名错误、已过期或类型不符。
    """
    if not token:
        raise AuthenticationError("Missing token")
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError as e:
        raise AuthenticationError("Token expired") from e
    except jwt.InvalidTokenError as e:
        raise AuthenticationError("Invalid token") from e

    if payload.get("type") != expected_type:
        logger.debug("令牌类型不符 | expected=%s | got=%s", expected_type, payload.get("type"))
        raise AuthenticationError("Invalid token")
    return TokenClaims(**payload)


# ── 音视频房间 ────────────────────────────────────────────────────────

def create_room_token(user_id: str, room: str) -> str:
    """签发加入 LiveKit 房间的令牌，身份为 ``user_id``，仅授予 ``room_join``。

    Raises:
        TransientDependencyError: 未配置 LiveKit 密钥。
    """
    if not settings.LIVEKIT_API_KEY or not settings.LIVEKIT_API_SECRET:
        logger.error("LiveKit 密钥未配置，无法签发房间令牌 | room=%s", room)
        raise TransientDependencyError("Voice/video rooms are unavailable")
    return (
        livekit_api.AccessToken(settings.LIVEKIT_API_KEY, settings.LIVEKIT_API_SECRET)
        .with_identity(user_id)
        .with_grants(livekit_api.VideoGrants(room_join=True, room=room))
        .to_jwt()
    )
