"""create voting tables

Revision ID: 3c9d1e7a42b0
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "3c9d1e7a42b0"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _base_columns() -> list[sa.Column]:
    return [
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "clubs",
        *_base_columns(),
        sa.Column("name", sa.String(200), nullable=False),
    )
    op.create_table(
        "users",
        *_base_columns(),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("name", sa.String(100), nullable=True),
        sa.Column("is_platform_admin", sa.Boolean(), server_default=sa.false()),
    )
    op.create_table(
        "members",
        *_base_columns(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("club_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("clubs.id"), nullable=False),
        sa.Column(
            "role",
            sa.Enum("ADMIN", "OFFICER", "MEMBER", name="member_role"),
            server_default="MEMBER",
        ),
        sa.Column(
            "status",
            sa.Enum("PENDING", "ACTIVE", "REJECTED", name="membership_status"),
            server_default="PENDING",
        ),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("membership_number", sa.String(50), nullable=True),
        sa.UniqueConstraint("user_id", "club_id", name="uq_member_user_club"),
    )
    op.create_index("ix_members_club_id", "members", ["club_id"])

    op.create_table(
        "voting_categories",
        *_base_columns(),
        sa.Column("club_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("clubs.id"), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("display_order", sa.Integer(), server_default="0"),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
    )
    op.create_index("ix_voting_categories_club_id", "voting_categories", ["club_id"])

    op.create_table(
        "meetings",
        *_base_columns(),
        sa.Column("club_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("clubs.id"), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("meeting_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_voting_open", sa.Boolean(), server_default=sa.false()),
        sa.Column("voting_start_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("voting_end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_opened_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_finalized", sa.Boolean(), server_default=sa.false()),
        sa.Column("finalized_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_meetings_club_id", "meetings", ["club_id"])

    op.create_table(
        "meeting_categories",
        *_base_columns(),
        sa.Column("meeting_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("meetings.id"), nullable=False),
        sa.Column(
            "category_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("voting_categories.id"),
            nullable=False,
        ),
        sa.Column(
            "guest_names",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.UniqueConstraint("meeting_id", "category_id", name="uq_meeting_category"),
    )

    op.create_table(
        "nominations",
        *_base_columns(),
        sa.Column("meeting_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("meetings.id"), nullable=False),
        sa.Column(
            "category_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("voting_categories.id"),
            nullable=False,
        ),
        sa.Column("member_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("members.id"), nullable=False),
        sa.Column("nominated_by", sa.String(100), nullable=True),
        sa.UniqueConstraint("meeting_id", "category_id", "member_id", name="uq_nomination"),
    )
    op.create_index("ix_nominations_meeting_id", "nominations", ["meeting_id"])

    op.create_table(
        "votes",
        *_base_columns(),
        sa.Column("meeting_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("meetings.id"), nullable=False),
        sa.Column(
            "category_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("voting_categories.id"),
            nullable=False,
        ),
        sa.Column("voter_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("members.id"), nullable=True),
        sa.Column("voter_fingerprint", sa.String(128), nullable=True),
        sa.Column("is_anonymous", sa.Boolean(), server_default=sa.false()),
        sa.Column("nominee_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("members.id"), nullable=True),
        sa.Column("guest_nominee_name", sa.String(100), nullable=True),
        sa.UniqueConstraint("meeting_id", "category_id", "voter_id", name="uq_vote_voter"),
        sa.UniqueConstraint(
            "meeting_id", "category_id", "voter_fingerprint", name="uq_vote_fingerprint"
        ),
        sa.CheckConstraint(
            "(nominee_id IS NULL) <> (guest_nominee_name IS NULL)",
            name="ck_vote_single_nominee",
        ),
    )
    op.create_index("ix_votes_meeting_id", "votes", ["meeting_id"])

    op.create_table(
        "vote_results",
        *_base_columns(),
        sa.Column("meeting_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("meetings.id"), nullable=False),
        sa.Column(
            "category_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("voting_categories.id"),
            nullable=False,
        ),
        sa.Column("winner_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("members.id"), nullable=True),
        sa.Column("winner_guest_name", sa.String(100), nullable=True),
        sa.Column("vote_count", sa.Integer(), server_default="0"),
        sa.Column("total_votes", sa.Integer(), server_default="0"),
        sa.Column("calculated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("meeting_id", "category_id", name="uq_vote_result"),
    )


def downgrade() -> None:
    op.drop_table("vote_results")
    op.drop_index("ix_votes_meeting_id", table_name="votes")
    op.drop_table("votes")
    op.drop_index("ix_nominations_meeting_id", table_name="nominations")
    op.drop_table("nominations")
    op.drop_table("meeting_categories")
    op.drop_index("ix_meetings_club_id", table_name="meetings")
    op.drop_table("meetings")
    op.drop_index("ix_voting_categories_club_id", table_name="voting_categories")
    op.drop_table("voting_categories")
    op.drop_index("ix_members_club_id", table_name="members")
    op.drop_table("members")
    op.drop_table("users")
    op.drop_table("clubs")
    sa.Enum(name="membership_status").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="member_role").drop(op.get_bind(), checkfirst=True)
