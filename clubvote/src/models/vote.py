import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base

VOTER_CONSTRAINT = "uq_vote_voter"
FINGERPRINT_CONSTRAINT = "uq_vote_fingerprint"


class Vote(Base):
    """One ballot entry. Never updated or deleted once admitted."""

    __tablename__ = "votes"
    __table_args__ = (
        UniqueConstraint("meeting_id", "category_id", "voter_id", name=VOTER_CONSTRAINT),
        UniqueConstraint(
            "meeting_id", "category_id", "voter_fingerprint", name=FINGERPRINT_CONSTRAINT
        ),
        CheckConstraint(
            "(nominee_id IS NULL) <> (guest_nominee_name IS NULL)",
            name="ck_vote_single_nominee",
        ),
    )

    meeting_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("meetings.id"), nullable=False, index=True
    )
    category_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("voting_categories.id"), nullable=False
    )
    voter_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("members.id"), nullable=True
    )
    voter_fingerprint: Mapped[str | None] = mapped_column(String(128), nullable=True)
    is_anonymous: Mapped[bool] = mapped_column(Boolean, default=False)

    nominee_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("members.id"), nullable=True
    )
    guest_nominee_name: Mapped[str | None] = mapped_column(String(100), nullable=True)


class VoteResult(Base):
    """Frozen per-category outcome, written by an explicit freeze."""

    __tablename__ = "vote_results"
    __table_args__ = (
        UniqueConstraint("meeting_id", "category_id", name="uq_vote_result"),
    )

    meeting_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("meetings.id"), nullable=False
    )
    category_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("voting_categories.id"), nullable=False
    )
    winner_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("members.id"), nullable=True
    )
    winner_guest_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    vote_count: Mapped[int] = mapped_column(Integer, default=0)
    total_votes: Mapped[int] = mapped_column(Integer, default=0)
    calculated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
