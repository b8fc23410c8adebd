"""Append-only store of cast ballots.

The unique constraints on ``votes`` are the authoritative duplicate guard.
The existence check done during validation only gives an early, friendlier
answer; two concurrent submissions that both pass it still race on the
INSERT, and the loser gets ``DuplicateVoteError``.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import is_unique_violation
from core.exceptions import (
    DuplicateVoteError,
    IneligibleNomineeError,
    InvalidCategoryError,
    MeetingNotFoundError,
    RequestValidationFailed,
)
from core.sanitization import sanitize_guest_name
from models.category import VotingCategory
from models.meeting import Meeting
from models.vote import FINGERPRINT_CONSTRAINT, VOTER_CONSTRAINT, Vote
from services.access import Caller, MembershipService
from services.lifecycle import check_voting_window
from services.registry import NominationRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NomineeChoice:
    """Either a member nominee or a guest name, never both."""

    member_id: uuid.UUID | None = None
    guest_name: str | None = None

    def __post_init__(self):
        if (self.member_id is None) == (self.guest_name is None):
            raise RequestValidationFailed(
                "Exactly one of nominee ID or guest nominee name is required"
            )

    @classmethod
    def of(cls, member_id: uuid.UUID | None, guest_name: str | None) -> "NomineeChoice":
        if guest_name is not None:
            guest_name = sanitize_guest_name(guest_name) or None
        return cls(member_id=member_id, guest_name=guest_name)


class VoteLedger:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.members = MembershipService(db)
        self.registry = NominationRegistry(db)

    async def cast_vote(
        self,
        voter: Caller,
        meeting_id: uuid.UUID,
        category_id: uuid.UUID,
        nominee: NomineeChoice,
        now: datetime | None = None,
    ) -> Vote:
        """Admit one vote from a club member.

        Checks run in a fixed order and stop at the first failure: meeting,
        open state, window, category, membership, prior vote, eligibility.
        """
        meeting = await self._open_meeting(meeting_id, now)
        await self._active_category(meeting, category_id)
        member = await self.members.require_voting_member(voter, meeting.club_id)

        existing = await self.db.scalar(
            select(Vote.id).where(
                Vote.meeting_id == meeting.id,
                Vote.category_id == category_id,
                Vote.voter_id == member.id,
            )
        )
        if existing:
            raise DuplicateVoteError()

        await self._check_eligible(meeting, category_id, nominee)

        vote = Vote(
            meeting_id=meeting.id,
            category_id=category_id,
            voter_id=member.id,
            is_anonymous=False,
            nominee_id=nominee.member_id,
            guest_nominee_name=nominee.guest_name,
        )
        return await self._admit(vote, VOTER_CONSTRAINT, ("votes.voter_id",))

    async def cast_anonymous_vote(
        self,
        fingerprint: str,
        meeting_id: uuid.UUID,
        category_id: uuid.UUID,
        nominee: NomineeChoice,
        now: datetime | None = None,
    ) -> Vote:
        """Admit a vote keyed by an opaque, caller-supplied fingerprint.

        The ledger does not derive the fingerprint; it only enforces that a
        given fingerprint votes once per category.
        """
        if not fingerprint:
            raise RequestValidationFailed("Voter fingerprint is required")

        meeting = await self._open_meeting(meeting_id, now)
        await self._active_category(meeting, category_id)

        existing = await self.db.scalar(
            select(Vote.id).where(
                Vote.meeting_id == meeting.id,
                Vote.category_id == category_id,
                Vote.voter_fingerprint == fingerprint,
            )
        )
        if existing:
            raise DuplicateVoteError()

        await self._check_eligible(meeting, category_id, nominee)

        vote = Vote(
            meeting_id=meeting.id,
            category_id=category_id,
            voter_fingerprint=fingerprint,
            is_anonymous=True,
            nominee_id=nominee.member_id,
            guest_nominee_name=nominee.guest_name,
        )
        return await self._admit(vote, FINGERPRINT_CONSTRAINT, ("votes.voter_fingerprint",))

    async def voted_category_ids(
        self, voter: Caller, meeting_id: uuid.UUID
    ) -> list[uuid.UUID]:
        meeting = await self._meeting(meeting_id)
        member = await self.members.get_membership(meeting.club_id, voter.user_id)
        if not member:
            return []
        result = await self.db.execute(
            select(Vote.category_id).where(
                Vote.meeting_id == meeting.id, Vote.voter_id == member.id
            )
        )
        return list(result.scalars().all())

    async def raw_counts(self, caller: Caller, meeting_id: uuid.UUID) -> list[dict]:
        """Live vote counts grouped by category and nominee, for managers."""
        meeting = await self._meeting(meeting_id)
        await self.members.require_manager(caller, meeting.club_id)

        result = await self.db.execute(
            select(
                Vote.category_id,
                Vote.nominee_id,
                Vote.guest_nominee_name,
                func.count(Vote.id),
            )
            .where(Vote.meeting_id == meeting.id)
            .group_by(Vote.category_id, Vote.nominee_id, Vote.guest_nominee_name)
        )
        rows = [
            {
                "category_id": category_id,
                "nominee_id": nominee_id,
                "guest_nominee_name": guest_name,
                "count": count,
            }
            for category_id, nominee_id, guest_name, count in result.all()
        ]
        rows.sort(
            key=lambda r: (
                str(r["category_id"]),
                -r["count"],
                str(r["nominee_id"] or ""),
                r["guest_nominee_name"] or "",
            )
        )
        return rows

    async def _meeting(self, meeting_id: uuid.UUID) -> Meeting:
        meeting = await self.db.get(Meeting, meeting_id)
        if not meeting:
            raise MeetingNotFoundError()
        return meeting

    async def _open_meeting(self, meeting_id: uuid.UUID, now: datetime | None) -> Meeting:
        meeting = await self._meeting(meeting_id)
        check_voting_window(meeting, now)
        return meeting

    async def _active_category(
        self, meeting: Meeting, category_id: uuid.UUID
    ) -> VotingCategory:
        category = await self.db.get(VotingCategory, category_id)
        if not category or not category.is_active or category.club_id != meeting.club_id:
            raise InvalidCategoryError()
        return category

    async def _check_eligible(
        self, meeting: Meeting, category_id: uuid.UUID, nominee: NomineeChoice
    ) -> None:
        eligible = await self.registry.is_eligible(
            meeting.id,
            category_id,
            nominee_id=nominee.member_id,
            guest_name=nominee.guest_name,
        )
        if not eligible:
            raise IneligibleNomineeError()

    async def _admit(self, vote: Vote, constraint: str, columns: tuple[str, ...]) -> Vote:
        self.db.add(vote)
        try:
            await self.db.flush()
        except IntegrityError as exc:
            if is_unique_violation(exc, constraint, columns):
                logger.info(
                    "Rejected concurrent duplicate vote in meeting %s category %s",
                    vote.meeting_id,
                    vote.category_id,
                )
                raise DuplicateVoteError() from exc
            logger.error("Vote insert failed: %s", exc.orig)
            raise
        return vote

