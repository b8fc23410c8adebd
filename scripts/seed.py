"""Seed script to populate the database with a demo club for local testing."""
import asyncio
import sys
from datetime import datetime, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "clubvote" / "src"))

from core.database import engine, get_db  # noqa: E402
from models import (  # noqa: E402
    Base,
    Club,
    Meeting,
    MeetingCategory,
    Member,
    MemberRole,
    MembershipStatus,
    Nomination,
    User,
    VotingCategory,
)


async def seed():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with get_db() as db:
        club = Club(name="Riverside Speakers")
        db.add(club)
        await db.flush()

        people = [
            ("marie@example.org", "Marie", MemberRole.ADMIN),
            ("paul@example.org", "Paul", MemberRole.OFFICER),
            ("lucas@example.org", "Lucas", MemberRole.MEMBER),
            ("ines@example.org", "Ines", MemberRole.MEMBER),
        ]
        members = []
        for email, name, role in people:
            user = User(email=email, name=name)
            db.add(user)
            await db.flush()
            member = Member(
                user=user,
                club_id=club.id,
                role=role,
                status=MembershipStatus.ACTIVE,
                is_active=True,
            )
            db.add(member)
            members.append(member)
        await db.flush()

        categories = []
        for order, name in enumerate(
            ["Best Speaker", "Best Evaluator", "Best Table Topics", "Best Role Player"]
        ):
            category = VotingCategory(club_id=club.id, name=name, display_order=order)
            db.add(category)
            categories.append(category)
        await db.flush()

        meeting = Meeting(
            club_id=club.id,
            title="Weekly Meeting #1",
            meeting_date=datetime.now(timezone.utc),
        )
        db.add(meeting)
        await db.flush()

        for category in categories[:3]:
            db.add(MeetingCategory(meeting_id=meeting.id, category_id=category.id, guest_names=[]))
        db.add(
            MeetingCategory(
                meeting_id=meeting.id, category_id=categories[3].id, guest_names=["Jordan"]
            )
        )

        nominations = [(0, 2), (0, 3), (1, 1), (1, 2), (2, 3)]
        for ci, mi in nominations:
            db.add(
                Nomination(
                    meeting_id=meeting.id,
                    category_id=categories[ci].id,
                    member_id=members[mi].id,
                    nominated_by="Marie",
                )
            )
        await db.flush()

        print("Database seeded with sample data!")
        print(f"  club {club.name} ({club.id})")
        print(f"  {len(members)} members, admin user id {members[0].user_id}")
        print(f"  {len(categories)} categories")
        print(f"  meeting {meeting.id} with {len(nominations)} nominations")


if __name__ == "__main__":
    asyncio.run(seed())
