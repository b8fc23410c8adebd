import enum
import uuid

from sqlalchemy import Boolean, Enum, ForeignKey, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from models.base import Base


class MemberRole(str, enum.Enum):
    ADMIN = "ADMIN"
    OFFICER = "OFFICER"
    MEMBER = "MEMBER"


class MembershipStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    REJECTED = "REJECTED"


MANAGER_ROLES = (MemberRole.ADMIN, MemberRole.OFFICER)
UNKNOWN_MEMBER = "Unknown Member"


class Member(Base):
    __tablename__ = "members"
    __table_args__ = (
        UniqueConstraint("user_id", "club_id", name="uq_member_user_club"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    club_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("clubs.id"), nullable=False, index=True
    )
    role: Mapped[MemberRole] = mapped_column(
        Enum(MemberRole, name="member_role"), default=MemberRole.MEMBER
    )
    status: Mapped[MembershipStatus] = mapped_column(
        Enum(MembershipStatus, name="membership_status"),
        default=MembershipStatus.PENDING,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    membership_number: Mapped[str | None] = mapped_column(String(50), nullable=True)

    user: Mapped["User"] = relationship(back_populates="memberships", lazy="joined")  # noqa: F821
    club: Mapped["Club"] = relationship(back_populates="members")  # noqa: F821

    @property
    def is_voting_member(self) -> bool:
        return self.is_active and self.status == MembershipStatus.ACTIVE

    @property
    def is_manager(self) -> bool:
        return self.role in MANAGER_ROLES

    @property
    def display_name(self) -> str:
        if self.user is not None and self.user.name:
            return self.user.name
        return UNKNOWN_MEMBER
