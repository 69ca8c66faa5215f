"""
tests.test_auth_service
~~~~~~~~~~~~~~~~~~~~~~~

AuthService 业务服务层单元测试，用户仓库全部 mock。
"""
from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock
from urllib.parse import parse_qs, urlparse

import pytest
from pymongo.errors import DuplicateKeyError

from app.core.exceptions import AuthenticationError, BadRequestError, ConflictError, NotFoundError
from app.core.security import (
    create_access_token,
    create_verification_token,
    decode_token,
    hash_password,
)
from app.core.settings import settings
from app.schemas.auth import ProfileUpdateRequest, RegisterRequest
from app.services.auth_service import AuthService


def _user(user_id: str = "u1", verified: bool = True, password: str = "pw") -> dict:
    return {
        "_id": user_id,
        "username": "alice",
        "email": "alice@uni.edu",
        "name": "Alice",
        "password_hash": hash_password(password),
        "verified": verified,
        "created_at": datetime.now(timezone.utc),
    }


def _mock_users() -> MagicMock:
    users = MagicMock()
    users.find_by_id = AsyncMock(return_value=None)
    users.find_by_username = AsyncMock(return_value=None)
    users.find_by_username_or_email = AsyncMock(return_value=None)
    users.create = AsyncMock()
    users.overwrite_unverified = AsyncMock()
    users.mark_verified = AsyncMock(return_value=True)
    users.update_profile = AsyncMock()
    return users


_REGISTER = RegisterRequest(username="alice", email="alice@uni.edu", password="pw", name="Alice")


class TestRegister:

    @pytest.mark.asyncio
    async def test_new_user_gets_verification_link(self) -> None:
        users = _mock_users()
        users.create.return_value = _user(verified=False)
        notifier = AsyncMock()

        service = AuthService(users, notify_verification=notifier)
        await service.register(_REGISTER)

        args = users.create.call_args[0]
        assert args[0] == "alice" and args[1] == "alice@uni.edu"
        assert args[2] != "pw"  # 只存哈希

        _, verify_url = notifier.call_args[0]
        assert verify_url.startswith(f"{settings.BACKEND_URL}api/auth/verify?token=")
        token = parse_qs(urlparse(verify_url).query)["token"][0]
        assert decode_token(token, expected_type="verify").user_id == "u1"

    @pytest.mark.asyncio
    async def test_verified_account_conflicts(self) -> None:
        users = _mock_users()
        users.find_by_username_or_email.return_value = _user(verified=True)

        with pytest.raises(ConflictError):
            await AuthService(users).register(_REGISTER)
        users.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unverified_account_is_overwritten(self) -> None:
        users = _mock_users()
        users.find_by_username_or_email.return_value = _user("old", verified=False)
        users.overwrite_unverified.return_value = _user("old", verified=False)

        await AuthService(users, notify_verification=AsyncMock()).register(_REGISTER)

        assert users.overwrite_unverified.call_args[0][0] == "old"
        users.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_duplicate_key_maps_to_conflict(self) -> None:
        users = _mock_users()
        users.create.side_effect = DuplicateKeyError("E11000 duplicate key")

        with pytest.raises(ConflictError):
            await AuthService(users).register(_REGISTER)


class TestVerifyEmail:

    @pytest.mark.asyncio
    async def test_valid_token_marks_verified(self) -> None:
        users = _mock_users()
        await AuthService(users).verify_email(create_verification_token("u1"))
        users.mark_verified.assert_awaited_once_with("u1")

    @pytest.mark.asyncio
    async def test_access_token_is_not_a_verification_token(self) -> None:
        users = _mock_users()
        with pytest.raises(BadRequestError, match="Email verification failed"):
            await AuthService(users).verify_email(create_access_token("u1"))
        users.mark_verified.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_user(self) -> None:
        users = _mock_users()
        users.mark_verified.return_value = False
        with pytest.raises(BadRequestError):
            await AuthService(users).verify_email(create_verification_token("ghost"))


class TestLogin:

    @pytest.mark.asyncio
    async def test_success_returns_access_token(self) -> None:
        users = _mock_users()
        users.find_by_username.return_value = _user()

        data = await AuthService(users).login("alice", "pw")

        assert decode_token(data.token).user_id == "u1"
        assert data.user.username == "alice"
        assert data.user.verified is True

    @pytest.mark.asyncio
    async def test_wrong_password(self) -> None:
        users = _mock_users()
        users.find_by_username.return_value = _user()
        with pytest.raises(AuthenticationError, match="Invalid password"):
            await AuthService(users).login("alice", "nope")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("doc", [None, "unverified"])
    async def test_unknown_or_unverified_user(self, doc) -> None:
        users = _mock_users()
        users.find_by_username.return_value = _user(verified=False) if doc else None
        with pytest.raises(NotFoundError, match="User not found"):
            await AuthService(users).login("alice", "pw")


class TestProfile:

    @pytest.mark.asyncio
    async def test_get_me_missing_user(self) -> None:
        with pytest.raises(NotFoundError):
            await AuthService(_mock_users()).get_me("ghost")

    @pytest.mark.asyncio
    async def test_update_only_sends_provided_fields(self) -> None:
        users = _mock_users()
        updated = _user()
        updated["name"] = "Alice L."
        users.update_profile.return_value = updated

        data = await AuthService(users).update_profile("u1", ProfileUpdateRequest(name="Alice L."))

        users.update_profile.assert_awaited_once_with("u1", {"name": "Alice L."})
        assert data.name == "Alice L."

    @pytest.mark.asyncio
    async def test_username_taken(self) -> None:
        users = _mock_users()
        users.update_profile.side_effect = DuplicateKeyError("E11000 duplicate key")
        with pytest.raises(ConflictError, match="Username already taken"):
            await AuthService(users).update_profile("u1", ProfileUpdateRequest(username="bob"))
