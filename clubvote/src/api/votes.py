import logging
import uuid

from fastapi import APIRouter, Depends, Header, Query

from api.dependencies import get_caller, verify_gateway_secret
from api.schemas import (
    BallotEntryOutcome,
    BallotIn,
    BallotReceipt,
    RawCount,
    VoteIn,
    VoteOut,
    VoteReceipt,
)
from core.database import get_db
from core.exceptions import ClubVoteError, RateLimitedError
from core.rate_limiter import vote_rate_limiter
from services.access import Caller
from services.ledger import NomineeChoice, VoteLedger

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(verify_gateway_secret)])


def _throttle(key: str) -> None:
    if not vote_rate_limiter.is_allowed(key):
        raise RateLimitedError()


@router.post("/votes", status_code=201, response_model=VoteReceipt)
async def cast_vote(body: VoteIn, caller: Caller = Depends(get_caller)):
    _throttle(str(caller.user_id))
    nominee = NomineeChoice.of(body.nominee_id, body.guest_nominee_name)

    async with get_db() as db:
        vote = await VoteLedger(db).cast_vote(
            caller, body.meeting_id, body.category_id, nominee
        )
        receipt = VoteReceipt(
            message="Vote submitted successfully", vote=VoteOut.model_validate(vote)
        )
    logger.info("Vote recorded in meeting %s category %s", body.meeting_id, body.category_id)
    return receipt


@router.post("/votes/anonymous", status_code=201, response_model=VoteReceipt)
async def cast_anonymous_vote(
    body: VoteIn,
    x_voter_fingerprint: str = Header(...),
):
    _throttle(f"fp:{x_voter_fingerprint}")
    nominee = NomineeChoice.of(body.nominee_id, body.guest_nominee_name)

    async with get_db() as db:
        vote = await VoteLedger(db).cast_anonymous_vote(
            x_voter_fingerprint, body.meeting_id, body.category_id, nominee
        )
        receipt = VoteReceipt(
            message="Vote submitted successfully", vote=VoteOut.model_validate(vote)
        )
    return receipt


@router.post("/votes/ballot", response_model=BallotReceipt)
async def submit_ballot(body: BallotIn, caller: Caller = Depends(get_caller)):
    """Cast one vote per entry, each in its own transaction.

    Entries succeed or fail independently; the receipt says how many of
    the submitted categories were recorded.
    """
    _throttle(str(caller.user_id))

    entries = []
    for entry in body.votes:
        try:
            nominee = NomineeChoice.of(entry.nominee_id, entry.guest_nominee_name)
            async with get_db() as db:
                vote = await VoteLedger(db).cast_vote(
                    caller, body.meeting_id, entry.category_id, nominee
                )
                vote_id = vote.id
        except ClubVoteError as exc:
            entries.append(
                BallotEntryOutcome(
                    category_id=entry.category_id, recorded=False, error=exc.message
                )
            )
            continue
        entries.append(
            BallotEntryOutcome(category_id=entry.category_id, recorded=True, vote_id=vote_id)
        )

    recorded = sum(1 for e in entries if e.recorded)
    logger.info(
        "Ballot for meeting %s: %d of %d categories recorded",
        body.meeting_id,
        recorded,
        len(entries),
    )
    return BallotReceipt(recorded=recorded, total=len(entries), entries=entries)


@router.get("/votes", response_model=list[RawCount])
async def vote_counts(
    meeting_id: uuid.UUID = Query(alias="meetingId"),
    caller: Caller = Depends(get_caller),
):
    async with get_db() as db:
        rows = await VoteLedger(db).raw_counts(caller, meeting_id)
    return [RawCount(**row) for row in rows]


@router.get("/votes/mine", response_model=list[uuid.UUID])
async def my_votes(
    meeting_id: uuid.UUID = Query(alias="meetingId"),
    caller: Caller = Depends(get_caller),
):
    async with get_db() as db:
        return await VoteLedger(db).voted_category_ids(caller, meeting_id)
