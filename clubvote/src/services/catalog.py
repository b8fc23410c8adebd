import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import CategoryNotFoundError, ClubNotFoundError, RequestValidationFailed
from core.sanitization import sanitize_title
from models.category import VotingCategory
from models.club import Club
from services.access import Caller, MembershipService

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("name", "description", "display_order", "is_active")


class CategoryCatalog:
    """Club-level list of award categories."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.members = MembershipService(db)

    async def list_categories(
        self, club_id: uuid.UUID, include_inactive: bool = False
    ) -> list[VotingCategory]:
        stmt = select(VotingCategory).where(VotingCategory.club_id == club_id)
        if not include_inactive:
            stmt = stmt.where(VotingCategory.is_active.is_(True))
        result = await self.db.execute(
            stmt.order_by(VotingCategory.display_order, VotingCategory.name)
        )
        return list(result.scalars().all())

    async def create_category(
        self,
        caller: Caller,
        club_id: uuid.UUID,
        name: str,
        description: str | None = None,
        display_order: int = 0,
    ) -> VotingCategory:
        if not await self.db.get(Club, club_id):
            raise ClubNotFoundError()
        await self.members.require_manager(caller, club_id)

        category = VotingCategory(
            club_id=club_id,
            name=self._clean_name(name),
            description=description,
            display_order=display_order or 0,
            is_active=True,
        )
        self.db.add(category)
        await self.db.flush()
        logger.info("Category %r created for club %s", category.name, club_id)
        return category

    async def update_category(
        self, caller: Caller, category_id: uuid.UUID, **fields
    ) -> VotingCategory:
        category = await self._managed_category(caller, category_id)
        for key, value in fields.items():
            if key not in UPDATABLE_FIELDS:
                raise RequestValidationFailed(f"Unknown category field: {key}")
            if value is None:
                continue
            if key == "name":
                value = self._clean_name(value)
            setattr(category, key, value)
        await self.db.flush()
        return category

    async def deactivate_category(
        self, caller: Caller, category_id: uuid.UUID
    ) -> VotingCategory:
        """Soft delete; existing votes keep pointing at the row."""
        category = await self._managed_category(caller, category_id)
        category.is_active = False
        await self.db.flush()
        logger.info("Category %s deactivated", category.id)
        return category

    async def _managed_category(
        self, caller: Caller, category_id: uuid.UUID
    ) -> VotingCategory:
        category = await self.db.get(VotingCategory, category_id)
        if not category:
            raise CategoryNotFoundError()
        await self.members.require_manager(caller, category.club_id)
        return category

    def _clean_name(self, name: str) -> str:
        name = sanitize_title(name)
        if not name:
            raise RequestValidationFailed("Name is required")
        return name[:100]
