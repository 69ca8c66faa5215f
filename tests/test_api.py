"""
tests.test_api
~~~~~~~~~~~~~~

REST 接口测试：鉴权 / 成员 / 管理员依赖、统一应答体与异常映射。

不进入 ``TestClient`` 上下文，因此不会触发 lifespan 连接 MongoDB；
``app.state`` 上的服务由 fixture 换成 mock。
"""
from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from pymongo.errors import ServerSelectionTimeoutError

from app.core.exceptions import NotFoundError
from app.core.security import create_access_token
from app.main import app
from app.schemas.auth import LoginResponseData, UserData
from app.schemas.community import RoomTokenData
from app.services.gateway import ChatGateway


@pytest.fixture()
def api(fake_memberships):
    """挂载 mock 服务，返回 ``(client, state)``。"""
    auth_service = MagicMock()
    server_service = MagicMock()
    channel_service = MagicMock()
    gateway = ChatGateway(authenticator=AsyncMock())

    app.state.memberships = fake_memberships
    app.state.auth_service = auth_service
    app.state.server_service = server_service
    app.state.channel_service = channel_service
    app.state.gateway = gateway

    state = SimpleNamespace(
        auth_service=auth_service,
        server_service=server_service,
        channel_service=channel_service,
        gateway=gateway,
    )
    return TestClient(app), state


def _bearer(user_id: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


class TestSystem:

    def test_health(self, api) -> None:
        client, _ = api
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    def test_request_id_echoed(self, api) -> None:
        client, _ = api
        resp = client.get("/health", headers={"X-Request-ID": "req-test"})
        assert resp.headers["X-Request-ID"] == "req-test"


class TestAuthentication:

    def test_missing_token(self, api) -> None:
        client, _ = api
        resp = client.get("/api/server")
        assert resp.status_code == 401
        assert resp.json() == {"code": 401, "data": None, "msg": "Unauthorized"}

    def test_invalid_token(self, api) -> None:
        client, _ = api
        resp = client.get("/api/server", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401
        assert resp.json()["msg"] == "Invalid token"

    def test_login_success(self, api) -> None:
        client, state = api
        state.auth_service.login = AsyncMock(return_value=LoginResponseData(
            token="t0k3n",
            user=UserData(id="u1", username="alice", email="a@uni.edu", verified=True),
        ))

        resp = client.post("/api/auth/login", json={"username": "alice", "password": "pw"})

        assert resp.status_code == 200
        body = resp.json()
        assert body["code"] == 200
        assert body["data"]["token"] == "t0k3n"
        state.auth_service.login.assert_awaited_once_with("alice", "pw")

    def test_login_unknown_user(self, api) -> None:
        client, state = api
        state.auth_service.login = AsyncMock(side_effect=NotFoundError("User not found"))

        resp = client.post("/api/auth/login", json={"username": "ghost", "password": "pw"})

        assert resp.status_code == 404
        assert resp.json() == {"code": 404, "data": None, "msg": "User not found"}

    def test_register_returns_created(self, api) -> None:
        client, state = api
        state.auth_service.register = AsyncMock()

        resp = client.post(
            "/api/auth/register",
            json={"username": "alice", "email": "a@uni.edu", "password": "pw"},
        )

        assert resp.status_code == 201
        assert "verify" in resp.json()["msg"]


class TestMembershipGuards:

    def test_non_member_forbidden(self, api) -> None:
        client, state = api
        resp = client.get("/api/server/srv1/members", headers=_bearer("carol"))

        assert resp.status_code == 403
        assert resp.json()["msg"] == "Forbidden: You are not a member of this server"

    def test_member_cannot_delete_server(self, api) -> None:
        client, state = api
        state.server_service.delete_server = AsyncMock()

        resp = client.delete("/api/server/srv1", headers=_bearer("bob"))

        assert resp.status_code == 403
        assert resp.json()["msg"] == "Forbidden: You are not an admin of this server"
        state.server_service.delete_server.assert_not_awaited()

    def test_admin_deletes_server(self, api) -> None:
        client, state = api
        state.server_service.delete_server = AsyncMock()

        resp = client.delete("/api/server/srv1", headers=_bearer("alice"))

        assert resp.status_code == 200
        state.server_service.delete_server.assert_awaited_once_with("srv1")

    def test_channel_routes_require_membership(self, api) -> None:
        client, state = api
        state.channel_service.list_channels = AsyncMock(return_value=[])

        resp = client.get("/api/server/srv1/channel", headers=_bearer("carol"))

        assert resp.status_code == 403
        state.channel_service.list_channels.assert_not_awaited()

    def test_member_creates_message(self, api) -> None:
        client, state = api
        state.channel_service.create_message = AsyncMock(return_value={
            "id": "m1",
            "content": "hi",
            "created_at": "2024-05-01T12:00:00Z",
            "created_by": {"id": "bob", "username": "bob"},
            "self": True,
        })

        resp = client.post(
            "/api/server/srv1/channel/general/message",
            json={"content": "hi"},
            headers=_bearer("bob"),
        )

        assert resp.status_code == 201
        assert resp.json()["data"]["self"] is True
        args = state.channel_service.create_message.call_args[0]
        assert args[:3] == ("srv1", "general", "bob")


class TestVoiceRoomRoute:

    def test_member_gets_room_token(self, api) -> None:
        client, state = api
        state.channel_service.join_room = AsyncMock(
            return_value=RoomTokenData(url="wss://livekit.test", token="room-token"),
        )

        resp = client.post("/api/server/srv1/channel/voice/joinroom", headers=_bearer("bob"))

        assert resp.status_code == 200
        assert resp.json()["data"] == {"url": "wss://livekit.test", "token": "room-token"}
        state.channel_service.join_room.assert_awaited_once_with("srv1", "voice", "bob")

    def test_non_member_gets_no_room_token(self, api) -> None:
        client, state = api
        state.channel_service.join_room = AsyncMock()

        resp = client.post("/api/server/srv1/channel/voice/joinroom", headers=_bearer("carol"))

        assert resp.status_code == 403
        state.channel_service.join_room.assert_not_awaited()

    def test_channel_without_call(self, api) -> None:
        client, state = api
        state.channel_service.join_room = AsyncMock(side_effect=NotFoundError("No room found"))

        resp = client.post("/api/server/srv1/channel/general/joinroom", headers=_bearer("bob"))

        assert resp.status_code == 404
        assert resp.json() == {"code": 404, "data": None, "msg": "No room found"}


class TestRealtimeRooms:

    def test_rooms_reflect_gateway_subscriptions(self, api, connection_factory) -> None:
        client, state = api
        state.gateway.registry.join(connection_factory("bob", "srv1"), "general")
        state.gateway.registry.join(connection_factory("carol", "srv2"), "general")

        resp = client.get("/api/server/srv1/rooms", headers=_bearer("bob"))

        assert resp.status_code == 200
        assert resp.json()["data"] == [{"room": "general", "online_count": 1}]


class TestErrorMapping:

    def test_database_unavailable_maps_to_503(self, api) -> None:
        client, state = api
        state.server_service.list_servers = AsyncMock(
            side_effect=ServerSelectionTimeoutError("no primary"),
        )

        resp = client.get("/api/server", headers=_bearer("bob"))

        assert resp.status_code == 503
        assert resp.json()["code"] == 503
