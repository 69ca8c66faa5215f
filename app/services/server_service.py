"""
app.services.server_service
~~~~~~~~~~~~~~~~~~~~~~~~~~~

服务器业务服务 —— 服务器的增删改查与成员管理。

主服务器（``is_primary``）代表一所学校，只有邮箱域名以该服务器 ``domain``
结尾的用户才能加入；其他服务器任何登录用户都可以加入。
"""
from __future__ import annotations

from pymongo.errors import DuplicateKeyError

from app.core.exceptions import AuthorizationError, BadRequestError, NotFoundError
from app.core.logging import get_logger
from app.db.channel_repository import ChannelRepository
from app.db.like_repository import LikeRepository
from app.db.membership_repository import MembershipRepository
from app.db.message_repository import MessageRepository
from app.db.server_repository import ServerDoc, ServerRepository
from app.db.user_repository import UserRepository
from app.schemas.community import (
    ChannelData,
    MemberData,
    ServerCreateRequest,
    ServerData,
    ServerDetailsData,
    ServerListData,
    ServerSummary,
    ServerUpdateRequest,
)

logger = get_logger(__name__)


def _email_domain(email: str) -> str:
    return email.rsplit("@", 1)[-1].lower()


def _matches_domain(email: str, server: ServerDoc) -> bool:
    domain = (server.get("domain") or "").lower()
    return bool(domain) and _email_domain(email).endswith(domain)


def _to_server_data(doc: ServerDoc) -> ServerData:
    return ServerData(
        id=doc["_id"],
        name=doc["name"],
        description=doc.get("description"),
        is_primary=doc.get("is_primary", False),
    )


class ServerService:
    """服务器业务服务。"""

    def __init__(
        self,
        users: UserRepository,
        servers: ServerRepository,
        memberships: MembershipRepository,
        channels: ChannelRepository,
        messages: MessageRepository,
        likes: LikeRepository,
    ) -> None:
        self.users = users
        self.servers = servers
        self.memberships = memberships
        self.channels = channels
        self.messages = messages
        self.likes = likes

    # ── 列表 ──────────────────────────────────────────────────────────

    async def list_servers(self, user_id: str) -> ServerListData:
        """全部服务器：与用户邮箱匹配的主服务器 + 所有非主服务器，带 ``joined`` 标记。"""
        user = await self.users.find_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        joined_ids = {m["server_id"] for m in await self.memberships.list_for_user(user_id)}
        servers = await self.servers.list_all()

        primary = next(
            (s for s in servers if s.get("is_primary") and _matches_domain(user["email"], s)),
            None,
        )
        return ServerListData(
            primary_server=primary and ServerSummary(
                id=primary["_id"], name=primary["name"], joined=primary["_id"] in joined_ids,
            ),
            secondary_servers=[
                ServerSummary(id=s["_id"], name=s["name"], joined=s["_id"] in joined_ids)
                for s in servers
                if not s.get("is_primary")
            ],
        )

    async def my_servers(self, user_id: str) -> ServerListData:
        """用户已加入的服务器。"""
        joined_ids = [m["server_id"] for m in await self.memberships.list_for_user(user_id)]
        servers = await self.servers.find_many(joined_ids) if joined_ids else []
        primary = next((s for s in servers if s.get("is_primary")), None)
        return ServerListData(
            primary_server=primary and ServerSummary(id=primary["_id"], name=primary["name"]),
            secondary_servers=[
                ServerSummary(id=s["_id"], name=s["name"])
                for s in servers
                if not s.get("is_primary")
            ],
        )

    # ── 服务器增删改查 ────────────────────────────────────────────────

    async def create_server(self, user_id: str, request: ServerCreateRequest) -> ServerData:
        """创建服务器，创建者自动成为管理员。"""
        server = await self.servers.create(request.name, request.description)
        await self.memberships.create(user_id, server["_id"], admin=True)
        logger.info("服务器已创建 | server=%s | owner=%s", server["_id"], user_id)
        return _to_server_data(server)

    async def get_details(self, server_id: str, user_id: str) -> ServerDetailsData:
        server = await self.servers.find_by_id(server_id)
        if server is None:
            raise NotFoundError("Server not found")
        channels = await self.channels.list_for_server(server_id)
        members = await self.list_members(server_id)
        return ServerDetailsData(
            **_to_server_data(server).model_dump(),
            channels=[ChannelData(**c) for c in channels],
            members=members,
            is_admin=any(m.id == user_id and m.admin for m in members),
        )

    async def update_server(self, server_id: str, request: ServerUpdateRequest) -> ServerData:
        fields = request.model_dump(exclude_none=True)
        server = (
            await self.servers.update(server_id, fields)
            if fields
            else await self.servers.find_by_id(server_id)
        )
        if server is None:
            raise NotFoundError("Server not found")
        return _to_server_data(server)

    async def delete_server(self, server_id: str) -> None:
        """删除服务器及其成员关系、频道、消息和点赞。"""
        if not await self.servers.delete(server_id):
            raise NotFoundError("Server not found")
        message_ids = await self.messages.delete_for_server(server_id)
        await self.likes.delete_for_messages(message_ids)
        await self.channels.delete_for_server(server_id)
        await self.memberships.delete_for_server(server_id)
        logger.info("服务器已删除 | server=%s | 消息: %d", server_id, len(message_ids))

    # ── 成员 ──────────────────────────────────────────────────────────

    async def join(self, server_id: str, user_id: str) -> None:
        """加入服务器。

        Raises:
            BadRequestError: 已经是成员。
            NotFoundError: 服务器不存在。
            AuthorizationError: 主服务器且邮箱域名不匹配。
        """
        if await self.memberships.get_membership(user_id, server_id) is not None:
            raise BadRequestError("Already a member of this server")

        server = await self.servers.find_by_id(server_id)
        if server is None:
            raise NotFoundError("Server not found")

        if server.get("is_primary"):
            user = await self.users.find_by_id(user_id)
            if user is None or not _matches_domain(user["email"], server):
                raise AuthorizationError("Cannot join primary server directly")

        try:
            await self.memberships.create(user_id, server_id)
        except DuplicateKeyError as e:
            raise BadRequestError("Already a member of this server") from e
        logger.info("加入服务器 | server=%s | user=%s", server_id, user_id)

    async def leave(self, server_id: str, user_id: str) -> None:
        if not await self.memberships.delete(user_id, server_id):
            raise NotFoundError("Not a member of this server")
        logger.info("退出服务器 | server=%s | user=%s", server_id, user_id)

    async def list_members(self, server_id: str) -> list[MemberData]:
        memberships = await self.memberships.list_for_server(server_id)
        users = await self.users.find_many([m["user_id"] for m in memberships])
        return [
            MemberData(
                id=m["user_id"],
                username=users[m["user_id"]]["username"],
                name=users[m["user_id"]].get("name"),
                admin=m.get("admin", False),
            )
            for m in memberships
            if m["user_id"] in users
        ]

    async def promote(self, server_id: str, target_user_id: str) -> None:
        if not await self.memberships.set_admin(target_user_id, server_id, True):
            raise NotFoundError("User not a member of this server")
        logger.info("成员升为管理员 | server=%s | user=%s", server_id, target_user_id)

    async def demote(self, server_id: str, target_user_id: str) -> None:
        membership = await self.memberships.get_membership(target_user_id, server_id)
        if membership is None:
            raise NotFoundError("User not a member of this server")
        if not membership.get("admin"):
            raise BadRequestError("User is not an admin")
        await self.memberships.set_admin(target_user_id, server_id, False)
        logger.info("管理员降为成员 | server=%s | user=%s", server_id, target_user_id)
