import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from models.meeting import Meeting
from services.lifecycle import MeetingState, meeting_state
from services.results import CategoryResult, MeetingResults, NomineeTally


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


# Meetings

class MeetingCreate(CamelModel):
    club_id: uuid.UUID
    title: str = Field(min_length=3)
    meeting_date: datetime
    description: str | None = None


class MeetingUpdate(CamelModel):
    id: uuid.UUID
    is_voting_open: bool | None = None
    title: str | None = None
    description: str | None = None


class VotingWindow(CamelModel):
    voting_start_time: datetime | None = None
    voting_end_time: datetime | None = None


class MeetingOut(CamelModel):
    id: uuid.UUID
    club_id: uuid.UUID
    title: str
    description: str | None = None
    meeting_date: datetime
    is_voting_open: bool
    voting_start_time: datetime | None = None
    voting_end_time: datetime | None = None
    is_finalized: bool
    finalized_at: datetime | None = None
    state: MeetingState

    @classmethod
    def from_meeting(cls, meeting: Meeting) -> "MeetingOut":
        return cls(
            id=meeting.id,
            club_id=meeting.club_id,
            title=meeting.title,
            description=meeting.description,
            meeting_date=meeting.meeting_date,
            is_voting_open=meeting.is_voting_open,
            voting_start_time=meeting.voting_start_time,
            voting_end_time=meeting.voting_end_time,
            is_finalized=meeting.is_finalized,
            finalized_at=meeting.finalized_at,
            state=meeting_state(meeting),
        )


class MeetingOverview(CamelModel):
    id: uuid.UUID
    title: str
    club_id: uuid.UUID
    club_name: str
    meeting_date: datetime
    is_voting_open: bool
    is_finalized: bool
    vote_count: int
    category_count: int


# Categories

class CategoryCreate(CamelModel):
    club_id: uuid.UUID
    name: str = Field(min_length=1, max_length=100)
    description: str | None = None
    display_order: int = 0


class CategoryUpdate(CamelModel):
    category_id: uuid.UUID
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = None
    display_order: int | None = None
    is_active: bool | None = None


class CategoryOut(CamelModel):
    id: uuid.UUID
    club_id: uuid.UUID
    name: str
    description: str | None = None
    display_order: int
    is_active: bool


class CategoryToggle(CamelModel):
    category_id: uuid.UUID


class EnabledCategoryOut(CamelModel):
    category_id: uuid.UUID
    category: CategoryOut
    guest_names: list[str] = []


# Nominations

class NominationIn(CamelModel):
    category_id: uuid.UUID
    member_id: uuid.UUID


class NominationBatch(CamelModel):
    nominations: list[NominationIn] = []


class NominationOut(CamelModel):
    id: uuid.UUID
    category_id: uuid.UUID
    member_id: uuid.UUID
    member_name: str
    nominated_by: str | None = None


class GuestAction(CamelModel):
    category_id: uuid.UUID
    guest_name: str = Field(min_length=1)
    action: Literal["add", "remove"] = "add"


class NomineeOption(CamelModel):
    member_id: uuid.UUID
    name: str


class EligibleNomineesOut(CamelModel):
    category_id: uuid.UUID
    members: list[NomineeOption]
    guest_names: list[str]


# Votes

class NomineeFields(CamelModel):
    category_id: uuid.UUID
    nominee_id: uuid.UUID | None = None
    guest_nominee_name: str | None = None

    @model_validator(mode="after")
    def exactly_one_nominee(self):
        if (self.nominee_id is None) == (self.guest_nominee_name is None):
            raise ValueError("Exactly one of nomineeId or guestNomineeName is required")
        return self


class VoteIn(NomineeFields):
    meeting_id: uuid.UUID


class BallotIn(CamelModel):
    meeting_id: uuid.UUID
    votes: list[NomineeFields] = Field(min_length=1)


class VoteOut(CamelModel):
    id: uuid.UUID
    meeting_id: uuid.UUID
    category_id: uuid.UUID
    nominee_id: uuid.UUID | None = None
    guest_nominee_name: str | None = None
    is_anonymous: bool
    created_at: datetime


class VoteReceipt(CamelModel):
    message: str
    vote: VoteOut


class BallotEntryOutcome(CamelModel):
    category_id: uuid.UUID
    recorded: bool
    vote_id: uuid.UUID | None = None
    error: str | None = None


class BallotReceipt(CamelModel):
    recorded: int
    total: int
    entries: list[BallotEntryOutcome]


class RawCount(CamelModel):
    category_id: uuid.UUID
    nominee_id: uuid.UUID | None = None
    guest_nominee_name: str | None = None
    count: int


# Results

class NomineeTallyOut(CamelModel):
    nominee_id: uuid.UUID | None = None
    guest_name: str | None = None
    name: str
    vote_count: int
    is_guest: bool

    @classmethod
    def from_tally(cls, tally: NomineeTally) -> "NomineeTallyOut":
        return cls(
            nominee_id=tally.nominee_id,
            guest_name=tally.guest_name,
            name=tally.name,
            vote_count=tally.vote_count,
            is_guest=tally.is_guest,
        )


class CategoryResultOut(CamelModel):
    category_id: uuid.UUID
    category_name: str
    nominees: list[NomineeTallyOut]
    winner: NomineeTallyOut | None = None
    total_votes: int
    is_guest_winner: bool

    @classmethod
    def from_result(cls, result: CategoryResult) -> "CategoryResultOut":
        return cls(
            category_id=result.category_id,
            category_name=result.category_name,
            nominees=[NomineeTallyOut.from_tally(n) for n in result.nominees],
            winner=NomineeTallyOut.from_tally(result.winner) if result.winner else None,
            total_votes=result.total_votes,
            is_guest_winner=result.is_guest_winner,
        )


class MeetingSummary(CamelModel):
    id: uuid.UUID
    title: str
    meeting_date: datetime


class MeetingResultsOut(CamelModel):
    meeting: MeetingSummary
    results: list[CategoryResultOut]

    @classmethod
    def from_results(cls, results: MeetingResults) -> "MeetingResultsOut":
        return cls(
            meeting=MeetingSummary(
                id=results.meeting_id,
                title=results.title,
                meeting_date=results.meeting_date,
            ),
            results=[CategoryResultOut.from_result(r) for r in results.categories],
        )


class FrozenResultOut(CamelModel):
    category_id: uuid.UUID
    winner_id: uuid.UUID | None = None
    winner_guest_name: str | None = None
    vote_count: int
    total_votes: int
    calculated_at: datetime


class ResultsRequest(CamelModel):
    meeting_id: uuid.UUID
