"""
app.services.auth_service
~~~~~~~~~~~~~~~~~~~~~~~~~

账号业务服务 —— 注册、邮箱验证、登录与资料维护。

注册后账号处于未验证状态，需要访问验证链接后才能登录。
验证链接交给 ``notify_verification`` 回调；未配置时写入 DEBUG 日志。
"""
from __future__ import annotations

from collections.abc import Awaitable, Callable

from pymongo.errors import DuplicateKeyError

from app.core.exceptions import AuthenticationError, BadRequestError, ConflictError, NotFoundError
from app.core.logging import get_logger
from app.core.security import (
    create_access_token,
    create_verification_token,
    decode_token,
    hash_password,
    verify_password,
)
from app.core.settings import settings
from app.db.user_repository import UserDoc, UserRepository
from app.schemas.auth import (
    LoginResponseData,
    ProfileUpdateRequest,
    RegisterRequest,
    UserData,
)

logger = get_logger(__name__)

VerificationNotifier = Callable[[UserDoc, str], Awaitable[None]]


def to_user_data(doc: UserDoc, include_private: bool = True) -> UserData:
    return UserData(
        id=doc["_id"],
        username=doc["username"],
        email=doc.get("email") if include_private else None,
        name=doc.get("name"),
        verified=doc.get("verified") if include_private else None,
    )


async def _log_verification(user: UserDoc, verify_url: str) -> None:
    logger.debug("邮箱验证链接 | user=%s | url=%s", user["_id"], verify_url)


class AuthService:
    """账号业务服务。

    Attributes:
        users: 用户仓库。
        notify_verification: 验证链接投递回调。
    """

    def __init__(
        self,
        users: UserRepository,
        notify_verification: VerificationNotifier | None = None,
    ) -> None:
        self.users = users
        self.notify_verification = notify_verification or _log_verification

    async def register(self, request: RegisterRequest) -> UserDoc:
        """注册或覆盖一个未验证账号，并发出验证链接。

        Raises:
            ConflictError: 用户名或邮箱已被已验证账号占用。
        """
        existing = await self.users.find_by_username_or_email(request.username, request.email)
        if existing is not None and existing.get("verified"):
            raise ConflictError("Username or email already taken")

        password_hash = hash_password(request.password)
        try:
            if existing is not None:
                user = await self.users.overwrite_unverified(
                    existing["_id"], request.username, request.email, password_hash, request.name,
                )
            else:
                user = await self.users.create(
                    request.username, request.email, password_hash, request.name,
                )
        except DuplicateKeyError as e:
            # 用户名命中一个账号、邮箱命中另一个账号
            raise ConflictError("Username or email already taken") from e
        if user is None:
            raise ConflictError("Username or email already taken")

        token = create_verification_token(user["_id"])
        verify_url = f"{settings.BACKEND_URL}api/auth/verify?token={token}"
        await self.notify_verification(user, verify_url)
        logger.info("新用户注册 | user=%s | username=%s", user["_id"], user["username"])
        return user

    async def verify_email(self, token: str) -> None:
        """根据验证令牌把账号标记为已验证。

        Raises:
            BadRequestError: 令牌无效或已过期，或账号不存在。
        """
        try:
            claims = decode_token(token, expected_type="verify")
        except AuthenticationError as e:
            raise BadRequestError("Email verification failed") from e
        if not await self.users.mark_verified(claims.user_id):
            raise BadRequestError("Email verification failed")
        logger.info("邮箱验证成功 | user=%s", claims.user_id)

    async def login(self, username: str, password: str) -> LoginResponseData:
        """校验用户名密码并签发登录令牌。

        Raises:
            NotFoundError: 用户不存在或邮箱未验证。
            AuthenticationError: 密码错误。
        """
        user = await self.users.find_by_username(username)
        if user is None or not user.get("verified"):
            raise NotFoundError("User not found")
        if not verify_password(password, user["password_hash"]):
            raise AuthenticationError("Invalid password")

        return LoginResponseData(
            token=create_access_token(user["_id"]),
            user=to_user_data(user),
        )

    async def get_me(self, user_id: str) -> UserData:
        user = await self.users.find_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return to_user_data(user)

    async def update_profile(self, user_id: str, request: ProfileUpdateRequest) -> UserData:
        """修改用户名 / 显示名称。

        Raises:
            ConflictError: 新用户名已被占用。
            NotFoundError: 用户不存在。
        """
        fields = request.model_dump(exclude_none=True)
        if not fields:
            return await self.get_me(user_id)
        try:
            user = await self.users.update_profile(user_id, fields)
        except DuplicateKeyError as e:
            raise ConflictError("Username already taken") from e
        if user is None:
            raise NotFoundError("User not found")
        return to_user_data(user)
