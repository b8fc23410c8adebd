import uuid
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import (
    NotAMemberError,
    NotClubOfficerError,
    PlatformAdminRequiredError,
)
from models.member import MANAGER_ROLES, UNKNOWN_MEMBER, Member, MembershipStatus
from models.user import User


@dataclass(frozen=True)
class Caller:
    """Identity of the user behind a request, as resolved by the auth gateway."""

    user_id: uuid.UUID


class MembershipService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_membership(self, club_id: uuid.UUID, user_id: uuid.UUID) -> Member | None:
        return await self.db.scalar(
            select(Member).where(Member.club_id == club_id, Member.user_id == user_id)
        )

    async def require_manager(self, caller: Caller, club_id: uuid.UUID) -> Member:
        member = await self.get_membership(club_id, caller.user_id)
        if not member or member.role not in MANAGER_ROLES:
            raise NotClubOfficerError()
        return member

    async def require_voting_member(self, caller: Caller, club_id: uuid.UUID) -> Member:
        member = await self.get_membership(club_id, caller.user_id)
        if not member or not member.is_voting_member:
            raise NotAMemberError()
        return member

    async def require_platform_admin(self, caller: Caller) -> User:
        user = await self.db.get(User, caller.user_id)
        if not user or not user.is_platform_admin:
            raise PlatformAdminRequiredError()
        return user

    async def active_members(
        self, club_id: uuid.UUID, member_ids: set[uuid.UUID]
    ) -> dict[uuid.UUID, Member]:
        if not member_ids:
            return {}
        result = await self.db.execute(
            select(Member).where(
                Member.id.in_(member_ids),
                Member.club_id == club_id,
                Member.is_active.is_(True),
                Member.status == MembershipStatus.ACTIVE,
            )
        )
        return {m.id: m for m in result.scalars().unique().all()}

    async def display_names(self, member_ids: set[uuid.UUID]) -> dict[uuid.UUID, str]:
        """Resolve member names at read time; names are never copied onto votes."""
        if not member_ids:
            return {}
        result = await self.db.execute(
            select(Member.id, User.name)
            .join(User, User.id == Member.user_id)
            .where(Member.id.in_(member_ids))
        )
        return {member_id: name or UNKNOWN_MEMBER for member_id, name in result.all()}
