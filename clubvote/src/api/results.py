import uuid

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_caller, verify_gateway_secret
from api.schemas import FrozenResultOut, MeetingResultsOut, ResultsRequest
from core.database import get_db
from services.access import Caller
from services.results import ResultAggregator

router = APIRouter(dependencies=[Depends(verify_gateway_secret)])


@router.get("/results", response_model=MeetingResultsOut)
async def get_results(meeting_id: uuid.UUID = Query(alias="meetingId")):
    async with get_db() as db:
        results = await ResultAggregator(db).results(meeting_id)
    return MeetingResultsOut.from_results(results)


@router.post("/results", response_model=list[FrozenResultOut])
async def freeze_results(body: ResultsRequest, caller: Caller = Depends(get_caller)):
    async with get_db() as db:
        rows = await ResultAggregator(db).freeze(caller, body.meeting_id)
        return [FrozenResultOut.model_validate(row) for row in rows]


@router.get("/statistics", response_model=list[MeetingResultsOut])
async def club_statistics(
    club_id: uuid.UUID = Query(alias="clubId"),
    caller: Caller = Depends(get_caller),
):
    async with get_db() as db:
        meetings = await ResultAggregator(db).club_statistics(caller, club_id)
    return [MeetingResultsOut.from_results(m) for m in meetings]
