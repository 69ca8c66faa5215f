"""
tests.test_event_relay
~~~~~~~~~~~~~~~~~~~~~~

EventRelay + ChatGateway 单元测试：房间广播、确认帧、非法事件处理。

连接不接真实 socket，直接读取发送队列里的帧做断言。
"""
from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from app.core.exceptions import AuthenticationError, ProtocolMisuseError
from app.schemas.gateway import Identity
from app.services.event_relay import EventRelay
from app.services.gateway import ChatGateway, parse_frame
from app.services.room_registry import RoomRegistry


@pytest.fixture()
def relay() -> EventRelay:
    return EventRelay(RoomRegistry())


class TestSendMessage:
    """``sendMessage`` 原样广播为 ``newMessage``。"""

    def test_broadcast_includes_sender(self, relay, connection_factory, drain_outbox) -> None:
        alice = connection_factory("alice", "srv1")
        bob = connection_factory("bob", "srv1")
        relay.dispatch(alice, "joinChannel", ["general"])
        relay.dispatch(bob, "joinChannel", ["general"])

        payload = {"id": "m1", "content": "hi", "created_by": {"id": "alice"}}
        assert relay.dispatch(alice, "sendMessage", ["general", payload]) is True

        expected = [{"event": "newMessage", "args": [payload]}]
        assert drain_outbox(alice) == expected
        assert drain_outbox(bob) == expected

    def test_payload_relayed_untouched(self, relay, connection_factory, drain_outbox) -> None:
        """作者信息由客户端负载自带，网关不改写。"""
        bob = connection_factory("bob", "srv1")
        relay.dispatch(bob, "joinChannel", ["general"])

        spoofed = {"content": "hello", "created_by": {"id": "someone-else"}, "extra": [1, 2]}
        relay.dispatch(bob, "sendMessage", ["general", spoofed])

        assert drain_outbox(bob)[0]["args"] == [spoofed]

    def test_sender_need_not_be_subscribed(self, relay, connection_factory, drain_outbox) -> None:
        alice = connection_factory("alice", "srv1")
        bob = connection_factory("bob", "srv1")
        relay.dispatch(bob, "joinChannel", ["general"])

        relay.dispatch(alice, "sendMessage", ["general", {"content": "x"}])

        assert drain_outbox(alice) == []
        assert len(drain_outbox(bob)) == 1

    def test_other_rooms_not_notified(self, relay, connection_factory, drain_outbox) -> None:
        alice = connection_factory("alice", "srv1")
        bob = connection_factory("bob", "srv1")
        relay.dispatch(alice, "joinChannel", ["general"])
        relay.dispatch(bob, "joinChannel", ["random"])

        relay.dispatch(alice, "sendMessage", ["general", {"content": "x"}])

        assert drain_outbox(bob) == []

    def test_same_room_name_on_other_server_not_notified(
        self, relay, connection_factory, drain_outbox,
    ) -> None:
        alice = connection_factory("alice", "srv1")
        carol = connection_factory("carol", "srv2")
        relay.dispatch(alice, "joinChannel", ["general"])
        relay.dispatch(carol, "joinChannel", ["general"])

        relay.dispatch(alice, "sendMessage", ["general", {"content": "x"}])

        assert drain_outbox(carol) == []
        assert len(drain_outbox(alice)) == 1

    def test_left_connection_stops_receiving(self, relay, connection_factory, drain_outbox) -> None:
        alice = connection_factory("alice", "srv1")
        bob = connection_factory("bob", "srv1")
        relay.dispatch(alice, "joinChannel", ["general"])
        relay.dispatch(bob, "joinChannel", ["general"])
        relay.dispatch(bob, "leaveChannel", ["general"])

        relay.dispatch(alice, "sendMessage", ["general", {"content": "x"}])

        assert drain_outbox(bob) == []

    def test_delivery_order_matches_send_order(self, relay, connection_factory, drain_outbox) -> None:
        """同一房间内，每个订阅者看到的消息顺序与发出顺序一致。"""
        alice = connection_factory("alice", "srv1")
        bob = connection_factory("bob", "srv1")
        relay.dispatch(alice, "joinChannel", ["general"])
        relay.dispatch(bob, "joinChannel", ["general"])

        sequence = [(alice, 1), (bob, 2), (alice, 3), (alice, 4), (bob, 5)]
        for sender, n in sequence:
            relay.dispatch(sender, "sendMessage", ["general", {"n": n}])

        for conn in (alice, bob):
            assert [f["args"][0]["n"] for f in drain_outbox(conn)] == [1, 2, 3, 4, 5]


class TestLikes:
    """``like`` / ``dislike`` 广播时附带服务端确定的用户 ID。"""

    @pytest.mark.parametrize("event", ["like", "dislike"])
    def test_user_id_taken_from_connection(
        self, relay, connection_factory, drain_outbox, event,
    ) -> None:
        alice = connection_factory("alice", "srv1")
        bob = connection_factory("bob", "srv1")
        relay.dispatch(alice, "joinChannel", ["general"])
        relay.dispatch(bob, "joinChannel", ["general"])

        # 客户端多传的参数被忽略
        relay.dispatch(bob, event, ["general", "m1", "alice"])

        expected = [{"event": event, "args": ["m1", "bob"]}]
        assert drain_outbox(alice) == expected
        assert drain_outbox(bob) == expected

    def test_like_without_message_id_ignored(self, relay, connection_factory, drain_outbox) -> None:
        alice = connection_factory("alice", "srv1")
        relay.dispatch(alice, "joinChannel", ["general"])

        assert relay.dispatch(alice, "like", ["general"], ack=1) is False
        assert drain_outbox(alice) == []


class TestAcks:
    """带 ``ack`` 的事件在处理完成后收到确认。"""

    def test_join_and_leave_ack_without_broadcast(
        self, relay, connection_factory, drain_outbox,
    ) -> None:
        alice = connection_factory("alice", "srv1")
        bob = connection_factory("bob", "srv1")
        relay.dispatch(bob, "joinChannel", ["general"])

        relay.dispatch(alice, "joinChannel", ["general"], ack=1)
        relay.dispatch(alice, "leaveChannel", ["general"], ack="two")

        assert drain_outbox(alice) == [
            {"event": "ack", "ack": 1},
            {"event": "ack", "ack": "two"},
        ]
        assert drain_outbox(bob) == []

    def test_ack_follows_own_broadcast_copy(self, relay, connection_factory, drain_outbox) -> None:
        alice = connection_factory("alice", "srv1")
        relay.dispatch(alice, "joinChannel", ["general"])

        relay.dispatch(alice, "sendMessage", ["general", {"content": "x"}], ack=42)

        assert drain_outbox(alice) == [
            {"event": "newMessage", "args": [{"content": "x"}]},
            {"event": "ack", "ack": 42},
        ]


class TestProtocolMisuse:
    """非法事件被忽略，连接与订阅不受影响。"""

    @pytest.mark.parametrize(
        ("event", "args"),
        [
            ("joinChannel", []),
            ("joinChannel", [123]),
            ("leaveChannel", [""]),
            ("sendMessage", ["general"]),
            ("sendMessage", []),
            ("dislike", ["general", 5]),
            ("typing", ["general"]),
        ],
    )
    def test_bad_event_is_ignored(
        self, relay, connection_factory, drain_outbox, event, args,
    ) -> None:
        alice = connection_factory("alice", "srv1")
        relay.dispatch(alice, "joinChannel", ["general"])

        assert relay.dispatch(alice, event, args, ack=9) is False
        assert drain_outbox(alice) == []
        assert alice.rooms == {"general"}

    def test_connection_still_works_after_misuse(
        self, relay, connection_factory, drain_outbox,
    ) -> None:
        alice = connection_factory("alice", "srv1")
        relay.dispatch(alice, "joinChannel", ["general"])
        relay.dispatch(alice, "sendMessage", [])

        relay.dispatch(alice, "sendMessage", ["general", "ok"])
        assert drain_outbox(alice) == [{"event": "newMessage", "args": ["ok"]}]


# ── ChatGateway ───────────────────────────────────────────────────────

def _gateway(identity: Identity | None = None, error: Exception | None = None) -> ChatGateway:
    authenticator = AsyncMock()
    if error is not None:
        authenticator.authenticate.side_effect = error
    else:
        authenticator.authenticate.return_value = identity
    return ChatGateway(authenticator)


class TestChatGateway:
    """测试网关的连接登记、帧解析与断线清理。"""

    @pytest.mark.asyncio
    async def test_open_registers_connection(self) -> None:
        gateway = _gateway(Identity(user_id="alice", server_id="srv1"))
        conn = await gateway.open("token", "srv1")

        assert conn.user_id == "alice"
        assert conn.server_id == "srv1"
        assert gateway.online_count == 1
        gateway.authenticator.authenticate.assert_awaited_once_with("token", "srv1")

    @pytest.mark.asyncio
    async def test_failed_handshake_creates_no_connection(self) -> None:
        gateway = _gateway(error=AuthenticationError("Authentication error"))

        with pytest.raises(AuthenticationError):
            await gateway.open(None, "srv1")
        assert gateway.online_count == 0

    @pytest.mark.asyncio
    async def test_handle_frame_routes_to_relay(self, drain_outbox) -> None:
        gateway = _gateway(Identity(user_id="alice", server_id="srv1"))
        conn = await gateway.open("token", "srv1")

        assert gateway.handle_frame(conn, '{"event": "joinChannel", "args": ["general"], "ack": 1}')
        assert gateway.handle_frame(conn, '{"event": "sendMessage", "args": ["general", "hi"]}')

        assert drain_outbox(conn) == [
            {"event": "ack", "ack": 1},
            {"event": "newMessage", "args": ["hi"]},
        ]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", [None, "not json", "[1, 2]", '{"args": []}', '{"event": ""}'])
    async def test_malformed_frame_ignored(self, drain_outbox, raw) -> None:
        gateway = _gateway(Identity(user_id="alice", server_id="srv1"))
        conn = await gateway.open("token", "srv1")

        assert gateway.handle_frame(conn, raw) is False
        assert drain_outbox(conn) == []
        assert not conn.closed

    @pytest.mark.asyncio
    async def test_close_clears_all_subscriptions(self) -> None:
        gateway = _gateway(Identity(user_id="alice", server_id="srv1"))
        conn = await gateway.open("token", "srv1")
        gateway.handle_frame(conn, '{"event": "joinChannel", "args": ["general"]}')
        gateway.handle_frame(conn, '{"event": "joinChannel", "args": ["random"]}')
        assert len(gateway.list_rooms("srv1")) == 2

        gateway.close(conn)

        assert gateway.list_rooms("srv1") == []
        assert gateway.online_count == 0
        assert conn.closed is True

    @pytest.mark.asyncio
    async def test_close_twice_is_harmless(self) -> None:
        gateway = _gateway(Identity(user_id="alice", server_id="srv1"))
        first = await gateway.open("token", "srv1")
        second = await gateway.open("token", "srv1")

        gateway.close(first)
        gateway.close(first)

        assert gateway.online_count == 1
        assert not second.closed


class TestParseFrame:

    def test_defaults(self) -> None:
        frame = parse_frame('{"event": "joinChannel"}')
        assert frame.args == []
        assert frame.ack is None

    def test_binary_frame_rejected(self) -> None:
        with pytest.raises(ProtocolMisuseError):
            parse_frame(None)
