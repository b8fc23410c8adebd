import uuid

from sqlalchemy import JSON, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from models.base import Base


class MeetingCategory(Base):
    """Enablement row: a catalog category switched on for one meeting."""

    __tablename__ = "meeting_categories"
    __table_args__ = (
        UniqueConstraint("meeting_id", "category_id", name="uq_meeting_category"),
    )

    meeting_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("meetings.id"), nullable=False
    )
    category_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("voting_categories.id"), nullable=False
    )
    guest_names: Mapped[list] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=list
    )

    meeting: Mapped["Meeting"] = relationship(back_populates="categories")  # noqa: F821
    category: Mapped["VotingCategory"] = relationship(lazy="joined")  # noqa: F821
