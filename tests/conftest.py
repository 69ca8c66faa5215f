"""
tests.conftest
~~~~~~~~~~~~~~

共享 pytest fixtures —— 不连接 MongoDB，成员关系等外部依赖全部用内存假对象代替。
"""
from __future__ import annotations

import json
import os
from typing import Any

import pytest

# ── 在所有测试导入前设置环境变量 ─────────────────────────────────────
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-pytest-only-0123456789")
os.environ.setdefault("ENVIRONMENT", "test")  # 激活 .env.test 配置，同时关闭限流
os.environ.setdefault("LIVEKIT_URL", "wss://livekit.test")
os.environ.setdefault("LIVEKIT_API_KEY", "test-livekit-key")
os.environ.setdefault("LIVEKIT_API_SECRET", "test-livekit-secret-0123456789abcdef")

from app.db.membership_repository import MembershipRecord  # noqa: E402
from app.db.base import utcnow  # noqa: E402
from app.schemas.gateway import Identity  # noqa: E402
from app.services.connection import Connection  # noqa: E402


class FakeMemberships:
    """内存版成员关系表，接口与 ``MembershipRepository.get_membership`` 一致。"""

    def __init__(self) -> None:
        self.records: dict[tuple[str, str], MembershipRecord] = {}
        self.calls: list[tuple[str, str]] = []

    def add(self, user_id: str, server_id: str, admin: bool = False) -> None:
        self.records[(user_id, server_id)] = {
            "user_id": user_id,
            "server_id": server_id,
            "admin": admin,
            "created_at": utcnow(),
        }

    async def get_membership(self, user_id: str, server_id: str) -> MembershipRecord | None:
        self.calls.append((user_id, server_id))
        return self.records.get((user_id, server_id))


@pytest.fixture()
def fake_memberships() -> FakeMemberships:
    """预置三名用户：alice / bob 在 srv1，carol 在 srv2，alice 是 srv1 管理员。"""
    memberships = FakeMemberships()
    memberships.add("alice", "srv1", admin=True)
    memberships.add("bob", "srv1")
    memberships.add("carol", "srv2")
    return memberships


def make_connection(user_id: str, server_id: str, outbox_size: int = 256) -> Connection:
    return Connection(Identity(user_id=user_id, server_id=server_id), outbox_size=outbox_size)


def pending_frames(connection: Connection) -> list[dict[str, Any]]:
    """取出连接发送队列中所有已入队的帧（解码为字典）。"""
    frames: list[dict[str, Any]] = []
    while not connection.outbox.empty():
        frame = connection.outbox.get_nowait()
        if frame is not None:
            frames.append(json.loads(frame))
    return frames


@pytest.fixture()
def connection_factory():
    """构造已通过握手的连接：``connection_factory("alice", "srv1")``。"""
    return make_connection


@pytest.fixture()
def drain_outbox():
    """读取并清空连接发送队列：``drain_outbox(conn) -> list[dict]``。"""
    return pending_frames
