import uuid

from fastapi import APIRouter, Depends

from api.dependencies import get_caller, verify_gateway_secret
from api.schemas import MeetingOut, MeetingOverview
from core.database import get_db
from services.access import Caller
from services.lifecycle import MeetingLifecycleController

router = APIRouter(prefix="/admin", dependencies=[Depends(verify_gateway_secret)])


@router.get("/meetings", response_model=list[MeetingOverview])
async def all_meetings(caller: Caller = Depends(get_caller)):
    async with get_db() as db:
        rows = await MeetingLifecycleController(db).list_all_meetings(caller)
        return [
            MeetingOverview(
                id=row["meeting"].id,
                title=row["meeting"].title,
                club_id=row["meeting"].club_id,
                club_name=row["club_name"],
                meeting_date=row["meeting"].meeting_date,
                is_voting_open=row["meeting"].is_voting_open,
                is_finalized=row["meeting"].is_finalized,
                vote_count=row["vote_count"],
                category_count=row["category_count"],
            )
            for row in rows
        ]


@router.post("/meetings/{meeting_id}/force-close", response_model=MeetingOut)
async def force_close(meeting_id: uuid.UUID, caller: Caller = Depends(get_caller)):
    async with get_db() as db:
        meeting = await MeetingLifecycleController(db).force_close(caller, meeting_id)
        return MeetingOut.from_meeting(meeting)
