import uuid

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_caller, verify_gateway_secret
from api.schemas import (
    CategoryOut,
    CategoryToggle,
    EligibleNomineesOut,
    EnabledCategoryOut,
    GuestAction,
    MeetingCreate,
    MeetingOut,
    MeetingUpdate,
    NominationBatch,
    NominationIn,
    NominationOut,
    NomineeOption,
    VotingWindow,
)
from core.database import get_db
from services.access import Caller
from services.lifecycle import MeetingLifecycleController
from services.registry import NominationRegistry
from services.results import ResultAggregator

router = APIRouter(dependencies=[Depends(verify_gateway_secret)])


@router.post("/meetings", status_code=201, response_model=MeetingOut)
async def create_meeting(body: MeetingCreate, caller: Caller = Depends(get_caller)):
    async with get_db() as db:
        meeting = await MeetingLifecycleController(db).create_meeting(
            caller,
            club_id=body.club_id,
            title=body.title,
            meeting_date=body.meeting_date,
            description=body.description,
        )
        return MeetingOut.from_meeting(meeting)


@router.get("/meetings", response_model=list[MeetingOut])
async def list_meetings(
    club_id: uuid.UUID = Query(alias="clubId"),
    active: bool = False,
    caller: Caller = Depends(get_caller),
):
    async with get_db() as db:
        meetings = await MeetingLifecycleController(db).list_meetings(
            caller, club_id, active_only=active
        )
        return [MeetingOut.from_meeting(m) for m in meetings]


@router.put("/meetings", response_model=MeetingOut)
async def update_meeting(body: MeetingUpdate, caller: Caller = Depends(get_caller)):
    """Open or close voting, and/or edit title and description."""
    async with get_db() as db:
        lifecycle = MeetingLifecycleController(db)
        if body.title is not None or body.description is not None:
            await lifecycle.update_details(caller, body.id, body.title, body.description)
        if body.is_voting_open is not None:
            meeting = await lifecycle.set_voting_open(caller, body.id, body.is_voting_open)
        else:
            meeting = await lifecycle.get_managed_meeting(caller, body.id)
        return MeetingOut.from_meeting(meeting)


@router.get("/meetings/{meeting_id}", response_model=MeetingOut)
async def get_meeting(meeting_id: uuid.UUID, caller: Caller = Depends(get_caller)):
    async with get_db() as db:
        meeting = await MeetingLifecycleController(db).get_meeting(meeting_id)
        return MeetingOut.from_meeting(meeting)


@router.put("/meetings/{meeting_id}/window", response_model=MeetingOut)
async def set_voting_window(
    meeting_id: uuid.UUID, body: VotingWindow, caller: Caller = Depends(get_caller)
):
    async with get_db() as db:
        meeting = await MeetingLifecycleController(db).set_voting_window(
            caller, meeting_id, body.voting_start_time, body.voting_end_time
        )
        return MeetingOut.from_meeting(meeting)


@router.post("/meetings/{meeting_id}/finalize", response_model=MeetingOut)
async def finalize_meeting(meeting_id: uuid.UUID, caller: Caller = Depends(get_caller)):
    async with get_db() as db:
        meeting = await MeetingLifecycleController(db).finalize(caller, meeting_id)
        # Authoritative tally, committed together with the finalization
        await ResultAggregator(db).freeze_meeting(meeting)
        return MeetingOut.from_meeting(meeting)


@router.get("/meetings/{meeting_id}/categories", response_model=list[EnabledCategoryOut])
async def list_meeting_categories(
    meeting_id: uuid.UUID, caller: Caller = Depends(get_caller)
):
    async with get_db() as db:
        rows = await NominationRegistry(db).list_enabled_categories(meeting_id)
        return [
            EnabledCategoryOut(
                category_id=row.category_id,
                category=CategoryOut.model_validate(row.category),
                guest_names=list(row.guest_names or []),
            )
            for row in rows
        ]


@router.post("/meetings/{meeting_id}/categories")
async def toggle_meeting_category(
    meeting_id: uuid.UUID, body: CategoryToggle, caller: Caller = Depends(get_caller)
):
    async with get_db() as db:
        enabled = await NominationRegistry(db).toggle_category(
            caller, meeting_id, body.category_id
        )
    return {"enabled": enabled}


@router.get(
    "/meetings/{meeting_id}/categories/{category_id}/nominees",
    response_model=EligibleNomineesOut,
)
async def eligible_nominees(
    meeting_id: uuid.UUID, category_id: uuid.UUID, caller: Caller = Depends(get_caller)
):
    async with get_db() as db:
        nominees = await NominationRegistry(db).list_eligible_nominees(meeting_id, category_id)
    return EligibleNomineesOut(
        category_id=nominees.category_id,
        members=[NomineeOption(member_id=m.member_id, name=m.name) for m in nominees.members],
        guest_names=list(nominees.guest_names),
    )


@router.get("/meetings/{meeting_id}/nominations", response_model=list[NominationOut])
async def list_nominations(meeting_id: uuid.UUID, caller: Caller = Depends(get_caller)):
    async with get_db() as db:
        nominations = await NominationRegistry(db).list_nominations(meeting_id)
        return [
            NominationOut(
                id=n.id,
                category_id=n.category_id,
                member_id=n.member_id,
                member_name=name,
                nominated_by=n.nominated_by,
            )
            for n, name in nominations
        ]


@router.post("/meetings/{meeting_id}/nominations")
async def toggle_nomination(
    meeting_id: uuid.UUID, body: NominationIn, caller: Caller = Depends(get_caller)
):
    async with get_db() as db:
        nominated = await NominationRegistry(db).toggle_nomination(
            caller, meeting_id, body.category_id, body.member_id
        )
    return {"nominated": nominated}


@router.post("/meetings/{meeting_id}/nominations/batch")
async def replace_nominations(
    meeting_id: uuid.UUID, body: NominationBatch, caller: Caller = Depends(get_caller)
):
    async with get_db() as db:
        count = await NominationRegistry(db).replace_nominations(
            caller,
            meeting_id,
            [(n.category_id, n.member_id) for n in body.nominations],
        )
    return {"success": True, "count": count}


@router.post("/meetings/{meeting_id}/guests")
async def manage_guest(
    meeting_id: uuid.UUID, body: GuestAction, caller: Caller = Depends(get_caller)
):
    async with get_db() as db:
        registry = NominationRegistry(db)
        if body.action == "add":
            enablement = await registry.add_guest(
                caller, meeting_id, body.category_id, body.guest_name
            )
        else:
            enablement = await registry.remove_guest(
                caller, meeting_id, body.category_id, body.guest_name
            )
    return {"success": True, "guestNames": list(enablement.guest_names)}
