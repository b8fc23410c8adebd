class ClubVoteError(Exception):
    """Base for every error the voting core reports to callers."""

    status_code = 500
    message = "Internal server error"

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


# Taxonomy

class UnauthorizedError(ClubVoteError):
    status_code = 401
    message = "Unauthorized"


class NotFoundError(ClubVoteError):
    status_code = 404
    message = "Not found"


class ForbiddenError(ClubVoteError):
    status_code = 403
    message = "Forbidden"


class InvalidStateError(ClubVoteError):
    status_code = 400
    message = "Operation not allowed in the current state"


class DuplicateViolationError(ClubVoteError):
    status_code = 400
    message = "Duplicate entry"


class RequestValidationFailed(ClubVoteError):
    status_code = 400
    message = "Invalid request"


class RateLimitedError(ClubVoteError):
    status_code = 429
    message = "Rate limit exceeded"


# Not found

class MeetingNotFoundError(NotFoundError):
    message = "Meeting not found"


class CategoryNotFoundError(NotFoundError):
    message = "Category not found"


class ClubNotFoundError(NotFoundError):
    message = "Club not found"


# Forbidden

class NotAMemberError(ForbiddenError):
    message = "You are not an active member of this club"


class NotClubOfficerError(ForbiddenError):
    message = "Only admins and officers can perform this action"


class PlatformAdminRequiredError(ForbiddenError):
    message = "Platform admin access required"


class ResultsNotAvailableError(ForbiddenError):
    message = "Results are not available until voting closes"


# Invalid state

class VotingClosedError(InvalidStateError):
    message = "Voting is not open for this meeting"


class VotingNotStartedError(InvalidStateError):
    message = "Voting has not started yet"


class VotingEndedError(InvalidStateError):
    message = "Voting has ended"


class AlreadyFinalizedError(InvalidStateError):
    message = "Meeting already finalized"


class NominationsLockedError(InvalidStateError):
    message = "Nominations cannot be changed while voting is open"


# Duplicates

class DuplicateVoteError(DuplicateViolationError):
    message = "You have already voted in this category"


class DuplicateGuestError(DuplicateViolationError):
    message = "Guest already exists in this category"


class DuplicateEnablementError(DuplicateViolationError):
    message = "Category is already enabled for this meeting"


# Validation

class InvalidCategoryError(RequestValidationFailed):
    message = "Invalid or inactive voting category"


class IneligibleNomineeError(RequestValidationFailed):
    message = "Nominee is not eligible in this category"


class InvalidNominationError(RequestValidationFailed):
    message = "Invalid nomination"
