import os

# Set env vars BEFORE any imports from the project happen
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///test.db")
os.environ.setdefault("GATEWAY_SECRET", "test-secret")
os.environ.setdefault("RATE_LIMIT_PER_MINUTE", "1000")

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from core import database
from core.rate_limiter import vote_rate_limiter
from models import (
    Base,
    Club,
    Meeting,
    Member,
    MemberRole,
    MembershipStatus,
    User,
    VotingCategory,
)
from services.access import Caller
from services.lifecycle import MeetingLifecycleController
from services.registry import NominationRegistry


def make_engine(path):
    """File-backed SQLite engine whose transactions take the write lock up front.

    SQLite has no row locks; BEGIN IMMEDIATE makes concurrent writers queue
    on the busy timeout instead of failing with "database is locked".
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{path}", poolclass=NullPool)

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


@pytest.fixture
async def engine(tmp_path):
    engine = make_engine(tmp_path / "club.db")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@dataclass
class ClubWorld:
    """A club with an admin, a few active members and a draft meeting."""

    club: Club
    admin: Member
    members: list[Member]
    categories: dict[str, VotingCategory]
    meeting: Meeting
    outsiders: list[Member] = field(default_factory=list)

    @property
    def admin_caller(self) -> Caller:
        return Caller(user_id=self.admin.user_id)

    def caller(self, member: Member) -> Caller:
        return Caller(user_id=member.user_id)


async def add_member(
    db: AsyncSession,
    club: Club,
    name: str,
    role: MemberRole = MemberRole.MEMBER,
    status: MembershipStatus = MembershipStatus.ACTIVE,
    is_active: bool = True,
) -> Member:
    user = User(email=f"{name.lower()}@example.org", name=name)
    db.add(user)
    await db.flush()
    member = Member(user=user, club_id=club.id, role=role, status=status, is_active=is_active)
    db.add(member)
    await db.flush()
    return member


async def build_world(db: AsyncSession) -> ClubWorld:
    club = Club(name="Riverside Speakers")
    db.add(club)
    await db.flush()

    admin = await add_member(db, club, "Marie", role=MemberRole.ADMIN)
    members = [
        await add_member(db, club, name) for name in ("Alice", "Bob", "Chloe", "Xavier", "Yolanda")
    ]
    pending = await add_member(db, club, "Pierre", status=MembershipStatus.PENDING)

    categories = {}
    for order, name in enumerate(["Best Speaker", "Best Evaluator", "Best Table Topics"]):
        category = VotingCategory(club_id=club.id, name=name, display_order=order, is_active=True)
        db.add(category)
        categories[name] = category

    meeting = Meeting(
        club_id=club.id,
        title="Weekly Meeting",
        meeting_date=datetime(2026, 10, 19, 19, 0, tzinfo=timezone.utc),
        is_voting_open=False,
        is_finalized=False,
    )
    db.add(meeting)
    await db.flush()
    await db.commit()

    return ClubWorld(
        club=club,
        admin=admin,
        members=members,
        categories=categories,
        meeting=meeting,
        outsiders=[pending],
    )


@pytest.fixture
async def world(db) -> ClubWorld:
    return await build_world(db)


async def prepare_voting(db: AsyncSession, world: ClubWorld) -> ClubWorld:
    """Nominate a roster, add guest Jordan to Best Speaker and open voting."""
    registry = NominationRegistry(db)
    admin = world.admin_caller
    alice, bob, chloe, xavier, yolanda = world.members
    speaker = world.categories["Best Speaker"]
    evaluator = world.categories["Best Evaluator"]

    await registry.enable_category(admin, world.meeting.id, speaker.id)
    await registry.enable_category(admin, world.meeting.id, evaluator.id)
    await registry.replace_nominations(
        admin,
        world.meeting.id,
        [
            (speaker.id, alice.id),
            (speaker.id, xavier.id),
            (speaker.id, yolanda.id),
            (evaluator.id, bob.id),
            (evaluator.id, chloe.id),
        ],
    )
    await registry.add_guest(admin, world.meeting.id, speaker.id, "Jordan")
    await MeetingLifecycleController(db).open_voting(admin, world.meeting.id)
    await db.commit()
    return world


@pytest.fixture
async def voting_world(db, world) -> ClubWorld:
    return await prepare_voting(db, world)


@pytest.fixture
def api_world(tmp_path, monkeypatch) -> ClubWorld:
    """A voting-open world behind the HTTP app's session factory."""
    engine = make_engine(tmp_path / "api.db")
    factory = async_sessionmaker(engine, expire_on_commit=False)

    async def seed():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with factory() as session:
            world = await build_world(session)
            return await prepare_voting(session, world)

    world = asyncio.run(seed())
    monkeypatch.setattr(database, "async_session", factory)
    vote_rate_limiter.reset()
    yield world
    vote_rate_limiter.reset()
