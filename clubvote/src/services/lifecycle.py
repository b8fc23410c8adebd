"""Meeting voting state machine.

DRAFT -> VOTING_OPEN <-> VOTING_CLOSED, and any non-final state -> FINALIZED.
Every transition is one conditional UPDATE on the meeting row, so readers
never see a half-applied state.
"""
import enum
import logging
import uuid
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import (
    AlreadyFinalizedError,
    ClubNotFoundError,
    MeetingNotFoundError,
    NominationsLockedError,
    RequestValidationFailed,
    VotingClosedError,
    VotingEndedError,
    VotingNotStartedError,
)
from core.sanitization import sanitize_title
from core.timeutils import as_utc, utcnow
from models.club import Club
from models.meeting import Meeting
from models.meeting_category import MeetingCategory
from models.vote import Vote
from services.access import Caller, MembershipService

logger = logging.getLogger(__name__)


class MeetingState(str, enum.Enum):
    DRAFT = "DRAFT"
    VOTING_OPEN = "VOTING_OPEN"
    VOTING_CLOSED = "VOTING_CLOSED"
    FINALIZED = "FINALIZED"


def meeting_state(meeting: Meeting) -> MeetingState:
    if meeting.is_finalized:
        return MeetingState.FINALIZED
    if meeting.is_voting_open:
        return MeetingState.VOTING_OPEN
    if meeting.last_opened_at is not None:
        return MeetingState.VOTING_CLOSED
    return MeetingState.DRAFT


def check_voting_window(meeting: Meeting, now: datetime | None = None) -> None:
    """Raise unless the meeting is accepting ballots at ``now``."""
    if not meeting.is_voting_open:
        raise VotingClosedError()
    now = now or utcnow()
    start = as_utc(meeting.voting_start_time)
    end = as_utc(meeting.voting_end_time)
    if start and now < start:
        raise VotingNotStartedError()
    if end and now > end:
        raise VotingEndedError()


def accepting_votes(meeting: Meeting, now: datetime | None = None) -> bool:
    try:
        check_voting_window(meeting, now)
    except (VotingClosedError, VotingNotStartedError, VotingEndedError):
        return False
    return True


def results_available(meeting: Meeting, now: datetime | None = None) -> bool:
    if not meeting.is_voting_open:
        return True
    end = as_utc(meeting.voting_end_time)
    return end is not None and (now or utcnow()) > end


class MeetingLifecycleController:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.members = MembershipService(db)

    async def get_meeting(self, meeting_id: uuid.UUID) -> Meeting:
        meeting = await self.db.get(Meeting, meeting_id)
        if not meeting:
            raise MeetingNotFoundError()
        return meeting

    async def get_managed_meeting(self, caller: Caller, meeting_id: uuid.UUID) -> Meeting:
        meeting = await self.get_meeting(meeting_id)
        await self.members.require_manager(caller, meeting.club_id)
        return meeting

    def ensure_editable(self, meeting: Meeting) -> None:
        """Nominations and enablement are frozen while ballots are in flight."""
        if meeting.is_finalized:
            raise AlreadyFinalizedError()
        if meeting.is_voting_open:
            raise NominationsLockedError()

    async def create_meeting(
        self,
        caller: Caller,
        club_id: uuid.UUID,
        title: str,
        meeting_date: datetime,
        description: str | None = None,
    ) -> Meeting:
        if not await self.db.get(Club, club_id):
            raise ClubNotFoundError()
        await self.members.require_manager(caller, club_id)

        title = sanitize_title(title)
        if len(title) < 3:
            raise RequestValidationFailed("Title must be at least 3 characters")

        meeting = Meeting(
            club_id=club_id,
            title=title,
            description=description,
            meeting_date=meeting_date,
            is_voting_open=False,
            is_finalized=False,
        )
        self.db.add(meeting)
        await self.db.flush()
        await self.db.refresh(meeting)
        logger.info("Meeting %s created for club %s", meeting.id, club_id)
        return meeting

    async def list_meetings(
        self, caller: Caller, club_id: uuid.UUID, active_only: bool = False
    ) -> list[Meeting]:
        await self.members.require_voting_member(caller, club_id)
        stmt = select(Meeting).where(Meeting.club_id == club_id)
        if active_only:
            stmt = stmt.where(Meeting.is_voting_open.is_(True))
        result = await self.db.execute(stmt.order_by(Meeting.meeting_date.desc()))
        return list(result.scalars().all())

    async def list_all_meetings(self, caller: Caller) -> list[dict]:
        """Operator overview of every meeting with vote and category counts."""
        await self.members.require_platform_admin(caller)

        vote_counts = (
            select(Vote.meeting_id, func.count(Vote.id).label("n"))
            .group_by(Vote.meeting_id)
            .subquery()
        )
        category_counts = (
            select(MeetingCategory.meeting_id, func.count(MeetingCategory.id).label("n"))
            .group_by(MeetingCategory.meeting_id)
            .subquery()
        )
        result = await self.db.execute(
            select(
                Meeting,
                Club.name,
                func.coalesce(vote_counts.c.n, 0),
                func.coalesce(category_counts.c.n, 0),
            )
            .join(Club, Club.id == Meeting.club_id)
            .outerjoin(vote_counts, vote_counts.c.meeting_id == Meeting.id)
            .outerjoin(category_counts, category_counts.c.meeting_id == Meeting.id)
            .order_by(Meeting.created_at.desc())
        )
        return [
            {
                "meeting": meeting,
                "club_name": club_name,
                "vote_count": vote_count,
                "category_count": category_count,
            }
            for meeting, club_name, vote_count, category_count in result.all()
        ]

    async def update_details(
        self,
        caller: Caller,
        meeting_id: uuid.UUID,
        title: str | None = None,
        description: str | None = None,
    ) -> Meeting:
        meeting = await self.get_managed_meeting(caller, meeting_id)
        if title is not None:
            title = sanitize_title(title)
            if len(title) < 3:
                raise RequestValidationFailed("Title must be at least 3 characters")
            meeting.title = title
        if description is not None:
            meeting.description = description
        await self.db.flush()
        return meeting

    async def set_voting_window(
        self,
        caller: Caller,
        meeting_id: uuid.UUID,
        start: datetime | None,
        end: datetime | None,
    ) -> Meeting:
        meeting = await self.get_managed_meeting(caller, meeting_id)
        if meeting.is_finalized:
            raise AlreadyFinalizedError()
        if start and end and as_utc(start) > as_utc(end):
            raise RequestValidationFailed("Voting window must start before it ends")
        await self._apply(
            meeting,
            [Meeting.is_finalized.is_(False)],
            voting_start_time=start,
            voting_end_time=end,
        )
        return meeting

    async def set_voting_open(
        self, caller: Caller, meeting_id: uuid.UUID, is_open: bool
    ) -> Meeting:
        if is_open:
            return await self.open_voting(caller, meeting_id)
        return await self.close_voting(caller, meeting_id)

    async def open_voting(self, caller: Caller, meeting_id: uuid.UUID) -> Meeting:
        meeting = await self.get_managed_meeting(caller, meeting_id)
        if meeting.is_finalized:
            raise AlreadyFinalizedError()
        if meeting.is_voting_open:
            return meeting

        now = utcnow()
        values = {"is_voting_open": True, "last_opened_at": now}
        # A window end stamped by an earlier close would reject every ballot
        end = as_utc(meeting.voting_end_time)
        if end and end <= now:
            values["voting_end_time"] = None

        applied = await self._apply(meeting, [Meeting.is_finalized.is_(False)], **values)
        if not applied:
            raise AlreadyFinalizedError()
        logger.info("Voting opened for meeting %s", meeting.id)
        return meeting

    async def close_voting(
        self, caller: Caller, meeting_id: uuid.UUID, stamp_end_time: bool = False
    ) -> Meeting:
        meeting = await self.get_managed_meeting(caller, meeting_id)
        return await self._close(meeting, stamp_end_time)

    async def force_close(self, caller: Caller, meeting_id: uuid.UUID) -> Meeting:
        """Operator override: close voting on any club's meeting."""
        user = await self.members.require_platform_admin(caller)
        meeting = await self.get_meeting(meeting_id)
        await self._close(meeting, stamp_end_time=True)
        logger.warning("Voting force-closed for meeting %s by %s", meeting.id, user.email)
        return meeting

    async def finalize(self, caller: Caller, meeting_id: uuid.UUID) -> Meeting:
        meeting = await self.get_managed_meeting(caller, meeting_id)
        if meeting.is_finalized:
            raise AlreadyFinalizedError()

        applied = await self._apply(
            meeting,
            [Meeting.is_finalized.is_(False)],
            is_finalized=True,
            finalized_at=utcnow(),
            is_voting_open=False,
        )
        if not applied:
            raise AlreadyFinalizedError()
        logger.info("Meeting %s finalized", meeting.id)
        return meeting

    async def _close(self, meeting: Meeting, stamp_end_time: bool) -> Meeting:
        if meeting.is_finalized:
            raise AlreadyFinalizedError()
        values: dict = {"is_voting_open": False}
        if stamp_end_time:
            values["voting_end_time"] = utcnow()
        applied = await self._apply(meeting, [Meeting.is_voting_open.is_(True)], **values)
        if applied:
            logger.info("Voting closed for meeting %s", meeting.id)
        return meeting

    async def _apply(self, meeting: Meeting, guards: list, **values) -> bool:
        """Compare-and-set on the meeting row; False when a guard no longer holds."""
        result = await self.db.execute(
            update(Meeting)
            .where(Meeting.id == meeting.id, *guards)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.db.refresh(meeting)
        return result.rowcount > 0
