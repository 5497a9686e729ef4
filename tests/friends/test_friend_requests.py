"""Friend request state machine, exercised at the service layer."""

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from habitcircle.auth.session import SessionContext
from habitcircle.db.models import Friendship
from habitcircle.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from habitcircle.friends.requests import remove_friend, respond_to_request, send_request
from habitcircle.friends.resolver import resolve_friends
from tests.conftest import create_user


async def _row_count(db: AsyncSession) -> int:
    return (await db.execute(select(func.count()).select_from(Friendship))).scalar_one()


class TestSendRequest:
    async def test_creates_single_pending_row(self, db_session: AsyncSession):
        a = await create_user(db_session, "alice")
        b = await create_user(db_session, "bob")

        friendship = await send_request(db_session, a, "bob")

        rows = (await db_session.execute(select(Friendship))).scalars().all()
        assert len(rows) == 1
        assert rows[0].id == friendship.id
        assert rows[0].status == "pending"
        assert rows[0].requester_id == a.user_id
        assert rows[0].target_id == b.user_id

    async def test_canonical_pair_is_ordered(self, db_session: AsyncSession):
        a = await create_user(db_session, "alice")
        b = await create_user(db_session, "bob")

        friendship = await send_request(db_session, b, "alice")

        assert friendship.user_low_id == min(a.user_id, b.user_id)
        assert friendship.user_high_id == max(a.user_id, b.user_id)

    async def test_username_lookup_ignores_case_and_spaces(self, db_session: AsyncSession):
        a = await create_user(db_session, "alice")
        await create_user(db_session, "bob")

        friendship = await send_request(db_session, a, "  BoB ")
        assert friendship.status == "pending"

    async def test_repeat_request_is_already_pending(self, db_session: AsyncSession):
        a = await create_user(db_session, "alice")
        await create_user(db_session, "bob")
        await send_request(db_session, a, "bob")

        with pytest.raises(ConflictError) as exc_info:
            await send_request(db_session, a, "bob")
        assert exc_info.value.code == "already_pending"
        assert await _row_count(db_session) == 1

    async def test_reverse_request_is_already_pending(self, db_session: AsyncSession):
        a = await create_user(db_session, "alice")
        b = await create_user(db_session, "bob")
        await send_request(db_session, a, "bob")

        with pytest.raises(ConflictError) as exc_info:
            await send_request(db_session, b, "alice")
        assert exc_info.value.code == "already_pending"

    async def test_request_to_friend_is_already_friends(self, db_session: AsyncSession):
        a = await create_user(db_session, "alice")
        b = await create_user(db_session, "bob")
        request = await send_request(db_session, a, "bob")
        await respond_to_request(db_session, b, request.id, accept=True)

        with pytest.raises(ConflictError) as exc_info:
            await send_request(db_session, b, "alice")
        assert exc_info.value.code == "already_friends"

    async def test_self_request_rejected(self, db_session: AsyncSession):
        a = await create_user(db_session, "alice")

        with pytest.raises(ValidationError) as exc_info:
            await send_request(db_session, a, "alice")
        assert exc_info.value.code == "self_request"
        assert await _row_count(db_session) == 0

    async def test_self_check_runs_before_lookup(self, db_session: AsyncSession):
        """The self check uses the caller's own handle, so it needs no user row."""
        await create_user(db_session, "alice")
        ghost = SessionContext(user_id=999, email="ghost@example.com", username="ghost", session_id="s")

        with pytest.raises(ValidationError) as exc_info:
            await send_request(db_session, ghost, "ghost")
        assert exc_info.value.code == "self_request"

    async def test_blank_username_rejected(self, db_session: AsyncSession):
        a = await create_user(db_session, "alice")

        with pytest.raises(ValidationError) as exc_info:
            await send_request(db_session, a, "   ")
        assert exc_info.value.code == "blank_username"

    async def test_unknown_user(self, db_session: AsyncSession):
        a = await create_user(db_session, "alice")

        with pytest.raises(NotFoundError) as exc_info:
            await send_request(db_session, a, "nobody")
        assert exc_info.value.code == "user_not_found"


class TestRespond:
    async def test_accept_keeps_single_row_and_befriends_both(self, db_session: AsyncSession):
        a = await create_user(db_session, "alice")
        b = await create_user(db_session, "bob")
        request = await send_request(db_session, a, "bob")

        accepted = await respond_to_request(db_session, b, request.id, accept=True)

        assert accepted is not None
        assert accepted.id == request.id
        assert accepted.status == "accepted"
        assert accepted.responded_at is not None
        assert await _row_count(db_session) == 1
        assert [f.friend_id for f in await resolve_friends(db_session, a)] == [b.user_id]
        assert [f.friend_id for f in await resolve_friends(db_session, b)] == [a.user_id]

    async def test_reject_deletes_row_and_allows_new_request(self, db_session: AsyncSession):
        a = await create_user(db_session, "alice")
        b = await create_user(db_session, "bob")
        request = await send_request(db_session, a, "bob")

        assert await respond_to_request(db_session, b, request.id, accept=False) is None
        assert await _row_count(db_session) == 0

        again = await send_request(db_session, a, "bob")
        assert again.status == "pending"

    async def test_requester_can_cancel(self, db_session: AsyncSession):
        a = await create_user(db_session, "alice")
        await create_user(db_session, "bob")
        request = await send_request(db_session, a, "bob")

        assert await respond_to_request(db_session, a, request.id, accept=False) is None
        assert await _row_count(db_session) == 0

    async def test_requester_cannot_accept(self, db_session: AsyncSession):
        a = await create_user(db_session, "alice")
        await create_user(db_session, "bob")
        request = await send_request(db_session, a, "bob")

        with pytest.raises(AuthorizationError) as exc_info:
            await respond_to_request(db_session, a, request.id, accept=True)
        assert exc_info.value.code == "not_request_target"
        assert request.status == "pending"

    async def test_outsider_cannot_see_request(self, db_session: AsyncSession):
        a = await create_user(db_session, "alice")
        await create_user(db_session, "bob")
        mallory = await create_user(db_session, "mallory")
        request = await send_request(db_session, a, "bob")

        for accept in (True, False):
            with pytest.raises(NotFoundError) as exc_info:
                await respond_to_request(db_session, mallory, request.id, accept=accept)
            assert exc_info.value.code == "request_not_found"
        assert await _row_count(db_session) == 1

    async def test_unknown_request(self, db_session: AsyncSession):
        a = await create_user(db_session, "alice")
        with pytest.raises(NotFoundError):
            await respond_to_request(db_session, a, 12345, accept=True)

    async def test_cannot_respond_twice(self, db_session: AsyncSession):
        a = await create_user(db_session, "alice")
        b = await create_user(db_session, "bob")
        request = await send_request(db_session, a, "bob")
        await respond_to_request(db_session, b, request.id, accept=True)

        with pytest.raises(ConflictError):
            await respond_to_request(db_session, b, request.id, accept=False)


class TestRemoveFriend:
    async def test_either_side_can_unfriend(self, db_session: AsyncSession):
        a = await create_user(db_session, "alice")
        b = await create_user(db_session, "bob")
        request = await send_request(db_session, a, "bob")
        await respond_to_request(db_session, b, request.id, accept=True)

        await remove_friend(db_session, b, a.user_id)

        assert await resolve_friends(db_session, a) == []
        assert await _row_count(db_session) == 0

    async def test_pending_request_is_not_a_friendship(self, db_session: AsyncSession):
        a = await create_user(db_session, "alice")
        b = await create_user(db_session, "bob")
        await send_request(db_session, a, "bob")

        with pytest.raises(NotFoundError) as exc_info:
            await remove_friend(db_session, a, b.user_id)
        assert exc_info.value.code == "not_friends"
