"""Per-meeting category enablement and nominee rosters."""
import logging
import uuid
from dataclasses import dataclass

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import is_unique_violation
from core.exceptions import (
    CategoryNotFoundError,
    DuplicateEnablementError,
    DuplicateGuestError,
    InvalidCategoryError,
    InvalidNominationError,
    RequestValidationFailed,
)
from core.sanitization import sanitize_guest_name
from models.category import VotingCategory
from models.meeting import Meeting
from models.meeting_category import MeetingCategory
from models.member import UNKNOWN_MEMBER, Member
from models.nomination import Nomination
from models.user import User
from services.access import Caller, MembershipService
from services.lifecycle import MeetingLifecycleController

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Disabled:
    """No enablement row for this (meeting, category)."""

    @property
    def is_enabled(self) -> bool:
        return False


@dataclass(frozen=True)
class Enabled:
    guest_names: tuple[str, ...] = ()

    @property
    def is_enabled(self) -> bool:
        return True


Enablement = Disabled | Enabled


@dataclass(frozen=True)
class NominatedMember:
    member_id: uuid.UUID
    name: str


@dataclass(frozen=True)
class EligibleNominees:
    category_id: uuid.UUID
    members: tuple[NominatedMember, ...] = ()
    guest_names: tuple[str, ...] = ()

    def includes_member(self, member_id: uuid.UUID) -> bool:
        return any(m.member_id == member_id for m in self.members)

    def includes_guest(self, name: str) -> bool:
        return name in self.guest_names


class NominationRegistry:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.lifecycle = MeetingLifecycleController(db)
        self.members = MembershipService(db)

    async def _editable_meeting(self, caller: Caller, meeting_id: uuid.UUID) -> Meeting:
        meeting = await self.lifecycle.get_managed_meeting(caller, meeting_id)
        self.lifecycle.ensure_editable(meeting)
        return meeting

    async def _club_category(self, meeting: Meeting, category_id: uuid.UUID) -> VotingCategory:
        category = await self.db.get(VotingCategory, category_id)
        if not category or category.club_id != meeting.club_id:
            raise CategoryNotFoundError()
        return category

    async def _enablement_row(
        self, meeting_id: uuid.UUID, category_id: uuid.UUID, lock: bool = False
    ) -> MeetingCategory | None:
        stmt = select(MeetingCategory).where(
            MeetingCategory.meeting_id == meeting_id,
            MeetingCategory.category_id == category_id,
        )
        if lock:
            stmt = stmt.with_for_update(of=MeetingCategory)
        return await self.db.scalar(stmt)

    async def _insert_enablement(
        self, meeting_id: uuid.UUID, category_id: uuid.UUID
    ) -> MeetingCategory:
        row = MeetingCategory(meeting_id=meeting_id, category_id=category_id, guest_names=[])
        try:
            async with self.db.begin_nested():
                self.db.add(row)
        except IntegrityError as exc:
            if is_unique_violation(
                exc, "uq_meeting_category", ("meeting_categories.category_id",)
            ):
                raise DuplicateEnablementError() from exc
            raise
        return row

    # Enablement

    async def get_enablement(
        self, meeting_id: uuid.UUID, category_id: uuid.UUID
    ) -> Enablement:
        row = await self._enablement_row(meeting_id, category_id)
        if row is None:
            return Disabled()
        return Enabled(tuple(row.guest_names or ()))

    async def list_enabled_categories(self, meeting_id: uuid.UUID) -> list[MeetingCategory]:
        await self.lifecycle.get_meeting(meeting_id)
        result = await self.db.execute(
            select(MeetingCategory)
            .join(VotingCategory, VotingCategory.id == MeetingCategory.category_id)
            .where(MeetingCategory.meeting_id == meeting_id)
            .order_by(VotingCategory.display_order, VotingCategory.name)
        )
        return list(result.scalars().unique().all())

    async def toggle_category(
        self, caller: Caller, meeting_id: uuid.UUID, category_id: uuid.UUID
    ) -> bool:
        """Flip enablement; returns True when the category ends up enabled."""
        meeting = await self._editable_meeting(caller, meeting_id)
        row = await self._enablement_row(meeting.id, category_id)
        if row is not None:
            await self._drop_category(meeting.id, category_id)
            logger.info("Category %s disabled for meeting %s", category_id, meeting.id)
            return False

        category = await self._club_category(meeting, category_id)
        if not category.is_active:
            raise InvalidCategoryError()
        await self._insert_enablement(meeting.id, category_id)
        logger.info("Category %s enabled for meeting %s", category_id, meeting.id)
        return True

    async def enable_category(
        self, caller: Caller, meeting_id: uuid.UUID, category_id: uuid.UUID
    ) -> Enablement:
        meeting = await self._editable_meeting(caller, meeting_id)
        row = await self._enablement_row(meeting.id, category_id)
        if row is None:
            category = await self._club_category(meeting, category_id)
            if not category.is_active:
                raise InvalidCategoryError()
            try:
                row = await self._insert_enablement(meeting.id, category_id)
            except DuplicateEnablementError:
                # Lost a race with another enable; the outcome is the same
                row = await self._enablement_row(meeting.id, category_id)
        return Enabled(tuple(row.guest_names or ()))

    async def disable_category(
        self, caller: Caller, meeting_id: uuid.UUID, category_id: uuid.UUID
    ) -> Enablement:
        """Remove the enablement row. Its guest list and nominations go with it."""
        meeting = await self._editable_meeting(caller, meeting_id)
        await self._drop_category(meeting.id, category_id)
        return Disabled()

    async def _drop_category(self, meeting_id: uuid.UUID, category_id: uuid.UUID) -> None:
        async with self.db.begin_nested():
            await self.db.execute(
                delete(Nomination).where(
                    Nomination.meeting_id == meeting_id,
                    Nomination.category_id == category_id,
                )
            )
            await self.db.execute(
                delete(MeetingCategory).where(
                    MeetingCategory.meeting_id == meeting_id,
                    MeetingCategory.category_id == category_id,
                )
            )

    # Member nominations

    async def list_nominations(
        self, meeting_id: uuid.UUID
    ) -> list[tuple[Nomination, str]]:
        """Nominations of the meeting paired with the nominee's display name."""
        await self.lifecycle.get_meeting(meeting_id)
        result = await self.db.execute(
            select(Nomination, User.name)
            .join(Member, Member.id == Nomination.member_id)
            .join(User, User.id == Member.user_id)
            .where(Nomination.meeting_id == meeting_id)
            .order_by(Nomination.category_id, Nomination.created_at)
        )
        return [(n, name or UNKNOWN_MEMBER) for n, name in result.all()]

    async def replace_nominations(
        self,
        caller: Caller,
        meeting_id: uuid.UUID,
        nominations: list[tuple[uuid.UUID, uuid.UUID]],
    ) -> int:
        """Swap the meeting's whole nomination set for ``nominations``.

        Takes (category_id, member_id) pairs; repeated pairs are kept once.
        Delete and insert share one transaction, so readers see either the
        old set or the new one. Returns the number of nominations stored.
        """
        meeting = await self._editable_meeting(caller, meeting_id)

        pairs = list(dict.fromkeys(nominations))
        category_ids = {category_id for category_id, _ in pairs}
        member_ids = {member_id for _, member_id in pairs}

        if category_ids:
            result = await self.db.execute(
                select(VotingCategory.id).where(
                    VotingCategory.id.in_(category_ids),
                    VotingCategory.club_id == meeting.club_id,
                )
            )
            unknown = category_ids - set(result.scalars().all())
            if unknown:
                raise InvalidNominationError(
                    f"Unknown category for this club: {sorted(map(str, unknown))[0]}"
                )
            result = await self.db.execute(
                select(MeetingCategory.category_id).where(
                    MeetingCategory.meeting_id == meeting.id,
                    MeetingCategory.category_id.in_(category_ids),
                )
            )
            disabled = category_ids - set(result.scalars().all())
            if disabled:
                raise InvalidNominationError(
                    f"Category not enabled for this meeting: {sorted(map(str, disabled))[0]}"
                )

        eligible = await self.members.active_members(meeting.club_id, member_ids)
        missing = member_ids - set(eligible)
        if missing:
            raise InvalidNominationError(
                f"Not an active club member: {sorted(map(str, missing))[0]}"
            )

        nominator = await self.members.get_membership(meeting.club_id, caller.user_id)
        nominated_by = nominator.display_name if nominator else None

        async with self.db.begin_nested():
            await self.db.execute(
                delete(Nomination).where(Nomination.meeting_id == meeting.id)
            )
            self.db.add_all(
                Nomination(
                    meeting_id=meeting.id,
                    category_id=category_id,
                    member_id=member_id,
                    nominated_by=nominated_by,
                )
                for category_id, member_id in pairs
            )

        logger.info("Replaced nominations for meeting %s (%d entries)", meeting.id, len(pairs))
        return len(pairs)

    async def toggle_nomination(
        self,
        caller: Caller,
        meeting_id: uuid.UUID,
        category_id: uuid.UUID,
        member_id: uuid.UUID,
    ) -> bool:
        """Add or remove a single nomination; returns True when it now exists."""
        meeting = await self._editable_meeting(caller, meeting_id)
        existing = await self.db.scalar(
            select(Nomination).where(
                Nomination.meeting_id == meeting.id,
                Nomination.category_id == category_id,
                Nomination.member_id == member_id,
            )
        )
        if existing:
            await self.db.delete(existing)
            await self.db.flush()
            return False

        await self._club_category(meeting, category_id)
        if await self._enablement_row(meeting.id, category_id) is None:
            raise InvalidNominationError("Category not enabled for this meeting")
        if not await self.members.active_members(meeting.club_id, {member_id}):
            raise InvalidNominationError("Not an active club member")

        nominator = await self.members.get_membership(meeting.club_id, caller.user_id)
        try:
            async with self.db.begin_nested():
                self.db.add(
                    Nomination(
                        meeting_id=meeting.id,
                        category_id=category_id,
                        member_id=member_id,
                        nominated_by=nominator.display_name if nominator else None,
                    )
                )
        except IntegrityError as exc:
            if is_unique_violation(exc, "uq_nomination", ("nominations.member_id",)):
                return True
            raise
        return True

    # Guest nominees

    async def add_guest(
        self, caller: Caller, meeting_id: uuid.UUID, category_id: uuid.UUID, name: str
    ) -> Enabled:
        meeting = await self._editable_meeting(caller, meeting_id)
        guest = self._clean_guest(name)
        row = await self._guest_row(meeting, category_id)

        current = list(row.guest_names or [])
        if guest in current:
            raise DuplicateGuestError()
        row.guest_names = [*current, guest]
        await self.db.flush()
        return Enabled(tuple(row.guest_names))

    async def remove_guest(
        self, caller: Caller, meeting_id: uuid.UUID, category_id: uuid.UUID, name: str
    ) -> Enabled:
        meeting = await self._editable_meeting(caller, meeting_id)
        guest = self._clean_guest(name)
        row = await self._guest_row(meeting, category_id)

        row.guest_names = [g for g in (row.guest_names or []) if g != guest]
        await self.db.flush()
        return Enabled(tuple(row.guest_names))

    def _clean_guest(self, name: str) -> str:
        guest = sanitize_guest_name(name)
        if not guest:
            raise RequestValidationFailed("Guest name is required")
        return guest

    async def _guest_row(self, meeting: Meeting, category_id: uuid.UUID) -> MeetingCategory:
        """Locked enablement row, created on first use."""
        row = await self._enablement_row(meeting.id, category_id, lock=True)
        if row is not None:
            return row
        await self._club_category(meeting, category_id)
        try:
            return await self._insert_enablement(meeting.id, category_id)
        except DuplicateEnablementError:
            return await self._enablement_row(meeting.id, category_id, lock=True)

    # Eligibility

    async def list_eligible_nominees(
        self, meeting_id: uuid.UUID, category_id: uuid.UUID
    ) -> EligibleNominees:
        """Nominees of an enabled category; a disabled category has none."""
        enablement = await self.get_enablement(meeting_id, category_id)
        if not isinstance(enablement, Enabled):
            return EligibleNominees(category_id=category_id)

        result = await self.db.execute(
            select(Nomination.member_id, User.name)
            .join(Member, Member.id == Nomination.member_id)
            .join(User, User.id == Member.user_id)
            .where(
                Nomination.meeting_id == meeting_id,
                Nomination.category_id == category_id,
            )
        )
        members = sorted(
            (
                NominatedMember(member_id, name or UNKNOWN_MEMBER)
                for member_id, name in result.all()
            ),
            key=lambda m: (m.name.casefold(), str(m.member_id)),
        )
        return EligibleNominees(
            category_id=category_id,
            members=tuple(members),
            guest_names=enablement.guest_names,
        )

    async def is_eligible(
        self,
        meeting_id: uuid.UUID,
        category_id: uuid.UUID,
        nominee_id: uuid.UUID | None = None,
        guest_name: str | None = None,
    ) -> bool:
        nominees = await self.list_eligible_nominees(meeting_id, category_id)
        if nominee_id is not None:
            return nominees.includes_member(nominee_id)
        return guest_name is not None and nominees.includes_guest(guest_name)
