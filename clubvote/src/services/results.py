"""Tallying of recorded votes into per-category winners.

Tie-break: among nominees with the same count, the one whose display name
sorts first (case-insensitive) wins; identical names fall back to the
nominee key (member UUID, or ``guest:<name>``). Output is fully ordered, so
repeated tallies over the same votes are identical.
"""
import logging
import uuid
from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import ClubNotFoundError, ResultsNotAvailableError
from core.timeutils import utcnow
from models.category import VotingCategory
from models.club import Club
from models.meeting import Meeting
from models.meeting_category import MeetingCategory
from models.member import UNKNOWN_MEMBER
from models.vote import Vote, VoteResult
from services.access import Caller, MembershipService
from services.lifecycle import MeetingLifecycleController, results_available

logger = logging.getLogger(__name__)

GUEST_KEY_PREFIX = "guest:"

SNAPSHOT_COLUMNS = (
    "winner_id",
    "winner_guest_name",
    "vote_count",
    "total_votes",
    "calculated_at",
)


@dataclass(frozen=True)
class NomineeTally:
    key: str
    name: str
    vote_count: int
    nominee_id: uuid.UUID | None = None
    guest_name: str | None = None

    @property
    def is_guest(self) -> bool:
        return self.nominee_id is None


@dataclass(frozen=True)
class CategoryResult:
    category_id: uuid.UUID
    category_name: str
    nominees: tuple[NomineeTally, ...]
    total_votes: int

    @property
    def winner(self) -> NomineeTally | None:
        return self.nominees[0] if self.nominees else None

    @property
    def is_guest_winner(self) -> bool:
        return self.winner is not None and self.winner.is_guest


@dataclass(frozen=True)
class MeetingResults:
    meeting_id: uuid.UUID
    title: str
    meeting_date: datetime
    categories: tuple[CategoryResult, ...]


def nominee_key(nominee_id: uuid.UUID | None, guest_name: str | None) -> str:
    if nominee_id is not None:
        return str(nominee_id)
    return f"{GUEST_KEY_PREFIX}{guest_name}"


def tally_votes(
    votes: Iterable[tuple[uuid.UUID, uuid.UUID | None, str | None]],
    categories: Sequence[VotingCategory],
    member_names: Mapping[uuid.UUID, str],
) -> list[CategoryResult]:
    """Count ``(category_id, nominee_id, guest_name)`` rows per category.

    Every category in ``categories`` is reported, with no nominees when it
    received no votes. Votes for categories missing from ``categories`` are
    still counted under an "Unknown" heading.
    """
    counts: dict[uuid.UUID, Counter] = {}
    identities: dict[str, tuple[uuid.UUID | None, str | None]] = {}
    for category_id, nominee_id, guest_name in votes:
        key = nominee_key(nominee_id, guest_name)
        identities[key] = (nominee_id, guest_name)
        counts.setdefault(category_id, Counter())[key] += 1

    headings = {c.id: (c.display_order or 0, c.name) for c in categories}
    for category_id in counts:
        headings.setdefault(category_id, (0, "Unknown"))

    results = []
    for category_id, (_, category_name) in sorted(
        headings.items(), key=lambda kv: (kv[1][0], kv[1][1].casefold(), str(kv[0]))
    ):
        nominees = []
        for key, count in counts.get(category_id, Counter()).items():
            nominee_id, guest_name = identities[key]
            if nominee_id is not None:
                name = member_names.get(nominee_id, UNKNOWN_MEMBER)
            else:
                name = guest_name or "Unknown Guest"
            nominees.append(
                NomineeTally(
                    key=key,
                    name=name,
                    vote_count=count,
                    nominee_id=nominee_id,
                    guest_name=guest_name,
                )
            )
        nominees.sort(key=lambda n: (-n.vote_count, n.name.casefold(), n.key))
        results.append(
            CategoryResult(
                category_id=category_id,
                category_name=category_name,
                nominees=tuple(nominees),
                total_votes=sum(n.vote_count for n in nominees),
            )
        )
    return results


class ResultAggregator:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.lifecycle = MeetingLifecycleController(db)
        self.members = MembershipService(db)

    async def tally(self, meeting_id: uuid.UUID) -> list[CategoryResult]:
        """Side-effect free; safe to poll while voting is open."""
        meeting = await self.lifecycle.get_meeting(meeting_id)
        return await self._tally(meeting)

    async def results(
        self, meeting_id: uuid.UUID, now: datetime | None = None
    ) -> MeetingResults:
        """Published results; withheld while the meeting still takes ballots."""
        meeting = await self.lifecycle.get_meeting(meeting_id)
        if not results_available(meeting, now):
            raise ResultsNotAvailableError()
        return await self._meeting_results(meeting)

    async def freeze(self, caller: Caller, meeting_id: uuid.UUID) -> list[VoteResult]:
        meeting = await self.lifecycle.get_managed_meeting(caller, meeting_id)
        if not results_available(meeting):
            raise ResultsNotAvailableError()
        return await self.freeze_meeting(meeting)

    async def freeze_meeting(self, meeting: Meeting) -> list[VoteResult]:
        """Snapshot winners into ``vote_results``, one row per voted category.

        Each row is written with INSERT ... ON CONFLICT (meeting_id, category_id)
        DO UPDATE, so re-running, or racing another freeze, overwrites the
        snapshot in place.
        """
        calculated_at = utcnow()
        insert = self._dialect_insert()

        frozen = []
        for result in await self._tally(meeting):
            winner = result.winner
            if winner is None:
                continue
            stmt = insert(VoteResult).values(
                id=uuid.uuid4(),
                meeting_id=meeting.id,
                category_id=result.category_id,
                winner_id=winner.nominee_id,
                winner_guest_name=winner.guest_name,
                vote_count=winner.vote_count,
                total_votes=result.total_votes,
                calculated_at=calculated_at,
            )
            await self.db.execute(
                stmt.on_conflict_do_update(
                    index_elements=["meeting_id", "category_id"],
                    set_={name: stmt.excluded[name] for name in SNAPSHOT_COLUMNS},
                )
            )
            frozen.append(result.category_id)

        saved = []
        if frozen:
            rows = await self.db.execute(
                select(VoteResult)
                .where(
                    VoteResult.meeting_id == meeting.id,
                    VoteResult.category_id.in_(frozen),
                )
                .execution_options(populate_existing=True)
            )
            by_category = {row.category_id: row for row in rows.scalars()}
            saved = [by_category[category_id] for category_id in frozen]

        logger.info("Froze %d category results for meeting %s", len(saved), meeting.id)
        return saved

    def _dialect_insert(self):
        if self.db.get_bind().dialect.name == "postgresql":
            return postgresql.insert
        return sqlite.insert

    async def club_statistics(self, caller: Caller, club_id: uuid.UUID) -> list[MeetingResults]:
        """Tally of every finalized meeting in a club, newest first."""
        if not await self.db.get(Club, club_id):
            raise ClubNotFoundError()
        await self.members.require_manager(caller, club_id)

        result = await self.db.execute(
            select(Meeting)
            .where(Meeting.club_id == club_id, Meeting.is_finalized.is_(True))
            .order_by(Meeting.meeting_date.desc(), Meeting.id)
        )
        return [await self._meeting_results(m) for m in result.scalars().all()]

    async def _meeting_results(self, meeting: Meeting) -> MeetingResults:
        return MeetingResults(
            meeting_id=meeting.id,
            title=meeting.title,
            meeting_date=meeting.meeting_date,
            categories=tuple(await self._tally(meeting)),
        )

    async def _tally(self, meeting: Meeting) -> list[CategoryResult]:
        votes = (
            await self.db.execute(
                select(Vote.category_id, Vote.nominee_id, Vote.guest_nominee_name).where(
                    Vote.meeting_id == meeting.id
                )
            )
        ).all()

        enabled = (
            await self.db.execute(
                select(MeetingCategory.category_id).where(
                    MeetingCategory.meeting_id == meeting.id
                )
            )
        ).scalars().all()

        category_ids = set(enabled) | {category_id for category_id, _, _ in votes}
        categories = []
        if category_ids:
            categories = list(
                (
                    await self.db.execute(
                        select(VotingCategory).where(VotingCategory.id.in_(category_ids))
                    )
                ).scalars().all()
            )

        names = await self.members.display_names(
            {nominee_id for _, nominee_id, _ in votes if nominee_id is not None}
        )
        return tally_votes(votes, categories, names)
