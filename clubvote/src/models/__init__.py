from models.base import Base
from models.club import Club
from models.user import User
from models.member import Member, MemberRole, MembershipStatus
from models.category import VotingCategory
from models.meeting import Meeting
from models.meeting_category import MeetingCategory
from models.nomination import Nomination
from models.vote import Vote, VoteResult

__all__ = [
    "Base",
    "Club",
    "User",
    "Member",
    "MemberRole",
    "MembershipStatus",
    "VotingCategory",
    "Meeting",
    "MeetingCategory",
    "Nomination",
    "Vote",
    "VoteResult",
]
