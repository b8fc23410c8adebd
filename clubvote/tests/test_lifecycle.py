import uuid
from datetime import datetime, timedelta, timezone

import pytest

from core.exceptions import (
    AlreadyFinalizedError,
    MeetingNotFoundError,
    NotAMemberError,
    NotClubOfficerError,
    PlatformAdminRequiredError,
    RequestValidationFailed,
    VotingClosedError,
    VotingEndedError,
    VotingNotStartedError,
)
from models import Meeting, User
from services.access import Caller
from services.lifecycle import (
    MeetingLifecycleController,
    MeetingState,
    accepting_votes,
    check_voting_window,
    meeting_state,
    results_available,
)

NOW = datetime(2026, 10, 19, 20, 0, tzinfo=timezone.utc)


def _meeting(**kwargs):
    fields = {"is_voting_open": False, "is_finalized": False}
    fields.update(kwargs)
    return Meeting(**fields)


class TestVotingWindow:
    def test_closed_meeting_rejects(self):
        with pytest.raises(VotingClosedError):
            check_voting_window(_meeting(), NOW)

    def test_open_without_window_accepts(self):
        assert accepting_votes(_meeting(is_voting_open=True), NOW) is True

    def test_before_start(self):
        meeting = _meeting(is_voting_open=True, voting_start_time=NOW + timedelta(minutes=5))
        with pytest.raises(VotingNotStartedError):
            check_voting_window(meeting, NOW)

    def test_after_end(self):
        meeting = _meeting(is_voting_open=True, voting_end_time=NOW - timedelta(seconds=1))
        with pytest.raises(VotingEndedError):
            check_voting_window(meeting, NOW)

    def test_naive_window_treated_as_utc(self):
        meeting = _meeting(
            is_voting_open=True,
            voting_start_time=datetime(2026, 10, 19, 19, 0),
            voting_end_time=datetime(2026, 10, 19, 21, 0),
        )
        assert accepting_votes(meeting, NOW) is True

    def test_results_hidden_until_window_ends(self):
        meeting = _meeting(is_voting_open=True, voting_end_time=NOW + timedelta(hours=1))
        assert results_available(meeting, NOW) is False
        assert results_available(meeting, NOW + timedelta(hours=2)) is True
        assert results_available(_meeting(), NOW) is True


class TestMeetingState:
    def test_draft(self):
        assert meeting_state(_meeting()) == MeetingState.DRAFT

    def test_closed_after_opening_once(self):
        meeting = _meeting(last_opened_at=NOW)
        assert meeting_state(meeting) == MeetingState.VOTING_CLOSED

    def test_finalized_wins(self):
        meeting = _meeting(is_voting_open=True, is_finalized=True)
        assert meeting_state(meeting) == MeetingState.FINALIZED


async def test_create_meeting_requires_manager(db, world):
    controller = MeetingLifecycleController(db)
    alice = world.members[0]

    with pytest.raises(NotClubOfficerError):
        await controller.create_meeting(
            world.caller(alice), world.club.id, "Members only", NOW
        )

    meeting = await controller.create_meeting(
        world.admin_caller, world.club.id, "  Special   Session ", NOW
    )
    assert meeting.title == "Special Session"
    assert meeting_state(meeting) == MeetingState.DRAFT


async def test_create_meeting_rejects_short_title(db, world):
    with pytest.raises(RequestValidationFailed):
        await MeetingLifecycleController(db).create_meeting(
            world.admin_caller, world.club.id, " a ", NOW
        )


async def test_open_close_reopen(db, world):
    controller = MeetingLifecycleController(db)
    admin = world.admin_caller
    meeting_id = world.meeting.id

    meeting = await controller.open_voting(admin, meeting_id)
    assert meeting_state(meeting) == MeetingState.VOTING_OPEN
    assert meeting.last_opened_at is not None

    meeting = await controller.close_voting(admin, meeting_id)
    assert meeting_state(meeting) == MeetingState.VOTING_CLOSED

    meeting = await controller.open_voting(admin, meeting_id)
    assert meeting.is_voting_open is True


async def test_open_twice_is_noop(db, world):
    controller = MeetingLifecycleController(db)
    first = await controller.open_voting(world.admin_caller, world.meeting.id)
    opened_at = first.last_opened_at
    second = await controller.open_voting(world.admin_caller, world.meeting.id)
    assert second.last_opened_at == opened_at


async def test_reopen_clears_elapsed_end_time(db, world):
    controller = MeetingLifecycleController(db)
    admin = world.admin_caller
    await controller.open_voting(admin, world.meeting.id)
    await controller.close_voting(admin, world.meeting.id, stamp_end_time=True)
    assert world.meeting.voting_end_time is not None

    meeting = await controller.open_voting(admin, world.meeting.id)
    assert meeting.voting_end_time is None
    assert accepting_votes(meeting) is True


async def test_finalize_is_terminal(db, world):
    controller = MeetingLifecycleController(db)
    admin = world.admin_caller
    await controller.open_voting(admin, world.meeting.id)

    meeting = await controller.finalize(admin, world.meeting.id)
    assert meeting.is_finalized is True
    assert meeting.is_voting_open is False
    assert meeting.finalized_at is not None

    with pytest.raises(AlreadyFinalizedError):
        await controller.open_voting(admin, world.meeting.id)
    with pytest.raises(AlreadyFinalizedError):
        await controller.finalize(admin, world.meeting.id)
    with pytest.raises(AlreadyFinalizedError):
        await controller.set_voting_window(admin, world.meeting.id, NOW, None)
    with pytest.raises(AlreadyFinalizedError):
        await controller.close_voting(admin, world.meeting.id)


async def test_members_cannot_change_state(db, world):
    controller = MeetingLifecycleController(db)
    bob = world.caller(world.members[1])
    with pytest.raises(NotClubOfficerError):
        await controller.open_voting(bob, world.meeting.id)
    with pytest.raises(NotClubOfficerError):
        await controller.finalize(bob, world.meeting.id)


async def test_voting_window_validation(db, world):
    controller = MeetingLifecycleController(db)
    with pytest.raises(RequestValidationFailed):
        await controller.set_voting_window(
            world.admin_caller, world.meeting.id, NOW, NOW - timedelta(hours=1)
        )

    meeting = await controller.set_voting_window(
        world.admin_caller, world.meeting.id, NOW, NOW + timedelta(hours=1)
    )
    assert meeting.voting_start_time is not None
    assert meeting.voting_end_time is not None


async def test_force_close_needs_platform_admin(db, world):
    controller = MeetingLifecycleController(db)
    await controller.open_voting(world.admin_caller, world.meeting.id)

    # A club admin is not a platform operator
    with pytest.raises(PlatformAdminRequiredError):
        await controller.force_close(world.admin_caller, world.meeting.id)

    operator = User(email="ops@example.org", name="Ops", is_platform_admin=True)
    db.add(operator)
    await db.flush()

    meeting = await controller.force_close(Caller(user_id=operator.id), world.meeting.id)
    assert meeting.is_voting_open is False
    assert meeting.voting_end_time is not None


async def test_list_meetings(db, world):
    controller = MeetingLifecycleController(db)
    alice = world.caller(world.members[0])

    assert [m.id for m in await controller.list_meetings(alice, world.club.id)] == [
        world.meeting.id
    ]
    assert await controller.list_meetings(alice, world.club.id, active_only=True) == []

    with pytest.raises(NotAMemberError):
        await controller.list_meetings(world.caller(world.outsiders[0]), world.club.id)


async def test_unknown_meeting(db, world):
    with pytest.raises(MeetingNotFoundError):
        await MeetingLifecycleController(db).open_voting(world.admin_caller, uuid.uuid4())


async def test_force_close_rejects_finalized_meeting(db, world):
    controller = MeetingLifecycleController(db)
    operator = User(email="ops@example.org", name="Ops", is_platform_admin=True)
    db.add(operator)
    await db.flush()
    await controller.finalize(world.admin_caller, world.meeting.id)

    with pytest.raises(AlreadyFinalizedError):
        await controller.force_close(Caller(user_id=operator.id), world.meeting.id)
