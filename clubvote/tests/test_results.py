import asyncio
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from core.exceptions import NotClubOfficerError, ResultsNotAvailableError
from models import VoteResult, VotingCategory
from services.ledger import NomineeChoice, VoteLedger
from services.lifecycle import MeetingLifecycleController
from services.results import ResultAggregator, nominee_key, tally_votes


def _category(name, order=0):
    return VotingCategory(id=uuid.uuid4(), name=name, display_order=order, is_active=True)


class TestTallyVotes:
    def test_counts_and_winner(self):
        category = _category("Best Speaker")
        member_a, member_b = uuid.uuid4(), uuid.uuid4()
        votes = (
            [(category.id, member_a, None)] * 3
            + [(category.id, member_b, None)]
            + [(category.id, None, "Jordan")] * 2
        )

        [result] = tally_votes(votes, [category], {member_a: "Alice", member_b: "Bob"})

        assert result.total_votes == 6
        assert result.winner.nominee_id == member_a
        assert result.winner.vote_count == 3
        assert result.is_guest_winner is False
        assert [(n.name, n.vote_count) for n in result.nominees] == [
            ("Alice", 3),
            ("Jordan", 2),
            ("Bob", 1),
        ]

    def test_tie_goes_to_name_order(self):
        category = _category("Best Evaluator")
        member_x, member_y = uuid.uuid4(), uuid.uuid4()
        names = {member_x: "Xavier", member_y: "Yolanda"}
        # Yolanda's votes arrive first
        votes = [(category.id, member_y, None)] * 2 + [(category.id, member_x, None)] * 2

        winners = {
            tally_votes(order, [category], names)[0].winner.name
            for order in (votes, list(reversed(votes)), votes)
        }
        assert winners == {"Xavier"}

    def test_tie_between_same_names_uses_key(self):
        category = _category("Best Speaker")
        first, second = sorted([uuid.uuid4(), uuid.uuid4()], key=str)
        votes = [(category.id, second, None), (category.id, first, None)]

        [result] = tally_votes(votes, [category], {first: "Sam", second: "Sam"})
        assert result.winner.nominee_id == first

    def test_guest_winner(self):
        category = _category("Best Table Topics")
        member = uuid.uuid4()
        votes = [(category.id, None, "Jordan")] * 2 + [(category.id, member, None)]

        [result] = tally_votes(votes, [category], {member: "Alice"})
        assert result.is_guest_winner is True
        assert result.winner.key == nominee_key(None, "Jordan") == "guest:Jordan"

    def test_zero_vote_category_reported(self):
        voted, empty = _category("Best Speaker", 0), _category("Best Evaluator", 1)
        member = uuid.uuid4()

        results = tally_votes([(voted.id, member, None)], [empty, voted], {member: "Alice"})

        assert [r.category_name for r in results] == ["Best Speaker", "Best Evaluator"]
        assert results[1].nominees == ()
        assert results[1].winner is None
        assert results[1].total_votes == 0
        assert results[1].is_guest_winner is False

    def test_unknown_names_fall_back(self):
        stray_category, member = uuid.uuid4(), uuid.uuid4()
        [result] = tally_votes([(stray_category, member, None)], [], {})
        assert result.category_name == "Unknown"
        assert result.winner.name == "Unknown Member"


async def _cast(db, world, voter, category_name, nominee):
    await VoteLedger(db).cast_vote(
        world.caller(voter), world.meeting.id, world.categories[category_name].id, nominee
    )


async def _cast_sample(db, world):
    alice, bob, chloe, xavier, yolanda = world.members
    await _cast(db, world, alice, "Best Speaker", NomineeChoice(xavier.id))
    await _cast(db, world, bob, "Best Speaker", NomineeChoice(xavier.id))
    await _cast(db, world, chloe, "Best Speaker", NomineeChoice(guest_name="Jordan"))
    await _cast(db, world, yolanda, "Best Speaker", NomineeChoice(alice.id))


async def test_live_tally_while_open(db, voting_world):
    world = voting_world
    await _cast_sample(db, world)

    results = await ResultAggregator(db).tally(world.meeting.id)

    assert [r.category_name for r in results] == ["Best Speaker", "Best Evaluator"]
    speaker, evaluator = results
    assert speaker.winner.name == "Xavier"
    assert speaker.total_votes == 4
    assert evaluator.winner is None


async def test_results_withheld_while_open(db, voting_world):
    world = voting_world
    aggregator = ResultAggregator(db)

    with pytest.raises(ResultsNotAvailableError):
        await aggregator.results(world.meeting.id)

    await MeetingLifecycleController(db).close_voting(world.admin_caller, world.meeting.id)
    published = await aggregator.results(world.meeting.id)
    assert published.title == "Weekly Meeting"


async def test_results_available_once_window_ends(db, voting_world):
    world = voting_world
    now = datetime(2026, 10, 19, 20, 0, tzinfo=timezone.utc)
    await MeetingLifecycleController(db).set_voting_window(
        world.admin_caller, world.meeting.id, None, now
    )

    aggregator = ResultAggregator(db)
    with pytest.raises(ResultsNotAvailableError):
        await aggregator.results(world.meeting.id, now=now - timedelta(minutes=1))
    assert await aggregator.results(world.meeting.id, now=now + timedelta(minutes=1))


async def test_freeze_is_idempotent(db, voting_world):
    world = voting_world
    await _cast_sample(db, world)
    lifecycle = MeetingLifecycleController(db)
    aggregator = ResultAggregator(db)

    with pytest.raises(ResultsNotAvailableError):
        await aggregator.freeze(world.admin_caller, world.meeting.id)

    await lifecycle.close_voting(world.admin_caller, world.meeting.id)
    first = await aggregator.freeze(world.admin_caller, world.meeting.id)
    second = await aggregator.freeze(world.admin_caller, world.meeting.id)

    # Only categories that received votes are frozen
    assert len(first) == len(second) == 1
    assert first[0].id == second[0].id
    assert second[0].winner_id == world.members[3].id
    assert second[0].winner_guest_name is None
    assert second[0].vote_count == 2
    assert second[0].total_votes == 4

    rows = await db.scalar(
        select(func.count(VoteResult.id)).where(VoteResult.meeting_id == world.meeting.id)
    )
    assert rows == 1


async def test_freeze_requires_manager(db, voting_world):
    world = voting_world
    await MeetingLifecycleController(db).close_voting(world.admin_caller, world.meeting.id)
    with pytest.raises(NotClubOfficerError):
        await ResultAggregator(db).freeze(world.caller(world.members[0]), world.meeting.id)


async def test_final_tally_matches_live_tally(db, voting_world):
    world = voting_world
    await _cast_sample(db, world)
    aggregator = ResultAggregator(db)
    live = await aggregator.tally(world.meeting.id)

    await MeetingLifecycleController(db).finalize(world.admin_caller, world.meeting.id)
    final = await aggregator.results(world.meeting.id)

    assert list(final.categories) == live


async def test_club_statistics(db, voting_world):
    world = voting_world
    await _cast_sample(db, world)
    lifecycle = MeetingLifecycleController(db)
    aggregator = ResultAggregator(db)

    # Not finalized yet
    assert await aggregator.club_statistics(world.admin_caller, world.club.id) == []

    await lifecycle.finalize(world.admin_caller, world.meeting.id)
    later = await lifecycle.create_meeting(
        world.admin_caller,
        world.club.id,
        "Next Meeting",
        world.meeting.meeting_date + timedelta(days=7),
    )
    await lifecycle.finalize(world.admin_caller, later.id)

    stats = await aggregator.club_statistics(world.admin_caller, world.club.id)
    assert [s.title for s in stats] == ["Next Meeting", "Weekly Meeting"]
    assert stats[0].categories == ()
    assert stats[1].categories[0].winner.name == "Xavier"

    with pytest.raises(NotClubOfficerError):
        await aggregator.club_statistics(world.caller(world.members[0]), world.club.id)


async def test_concurrent_freezes_share_one_snapshot(session_factory, db, voting_world):
    world = voting_world
    await _cast_sample(db, world)
    await MeetingLifecycleController(db).close_voting(world.admin_caller, world.meeting.id)
    await ResultAggregator(db).freeze(world.admin_caller, world.meeting.id)
    await db.commit()

    async def freeze():
        async with session_factory() as session:
            rows = await ResultAggregator(session).freeze(world.admin_caller, world.meeting.id)
            await session.commit()
            return [(r.category_id, r.winner_id, r.vote_count) for r in rows]

    outcomes = await asyncio.gather(freeze(), freeze(), freeze())

    speaker = world.categories["Best Speaker"].id
    assert outcomes == [[(speaker, world.members[3].id, 2)]] * 3
    async with session_factory() as session:
        rows = await session.scalar(
            select(func.count(VoteResult.id)).where(VoteResult.meeting_id == world.meeting.id)
        )
    assert rows == 1


async def test_live_tally_is_repeatable(db, voting_world):
    world = voting_world
    alice, bob, chloe, xavier, yolanda = world.members
    # A two-way tie in Best Speaker plus a guest vote
    await _cast(db, world, alice, "Best Speaker", NomineeChoice(yolanda.id))
    await _cast(db, world, bob, "Best Speaker", NomineeChoice(xavier.id))
    await _cast(db, world, chloe, "Best Speaker", NomineeChoice(yolanda.id))
    await _cast(db, world, yolanda, "Best Speaker", NomineeChoice(xavier.id))
    await _cast(db, world, xavier, "Best Speaker", NomineeChoice(guest_name="Jordan"))
    aggregator = ResultAggregator(db)

    first = await aggregator.tally(world.meeting.id)
    second = await aggregator.tally(world.meeting.id)

    assert first == second
    assert first[0].winner.name == "Xavier"
    assert [n.name for n in first[0].nominees] == ["Xavier", "Yolanda", "Jordan"]
