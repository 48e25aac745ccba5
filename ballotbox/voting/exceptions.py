class VotingServiceError(Exception):
    """Base Exception for voting service"""

    pass


class BallotValidationError(VotingServiceError):
    """Raised when a ballot is malformed (bad candidate, missing provenance)"""

    def __init__(self, field_errors):
        self.field_errors = dict(field_errors)
        super().__init__("; ".join(f"{field}: {msg}" for field, msg in self.field_errors.items()))


class DuplicateVoteError(VotingServiceError):
    """Raised when user tries to vote twice in the same session"""

    pass


class SessionNotActiveError(VotingServiceError):
    """Raised when a vote arrives outside the session's voting window"""

    def __init__(self, status, message=None):
        self.status = status
        super().__init__(message or f"Voting is not open for this session (status: {status})")


class SessionNotFoundError(VotingServiceError):
    """Raised when no session has the requested identifier"""

    def __init__(self, session_id):
        self.session_id = session_id
        super().__init__(f"Voting session '{session_id}' not found")


class EligibilityError(VotingServiceError):
    """Raised when the voter does not meet the session's eligibility rules"""

    pass


class NotYetAnnounced(VotingServiceError):
    """
    Results were requested before their announcement time. An expected
    outcome, carrying the time the caller can count down to.
    """

    def __init__(self, announcement_time):
        self.announcement_time = announcement_time
        super().__init__(f"Results will be announced on {announcement_time.isoformat()}")


class InfrastructureError(VotingServiceError):
    """Raised when the ballot store cannot be reached"""

    pass
