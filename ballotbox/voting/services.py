import logging
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Optional

from django.contrib.auth import get_user_model
from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone
from elections.lifecycle import refresh_status
from elections.models import ABSTAIN, VotingSession

from .exceptions import (
    BallotValidationError,
    DuplicateVoteError,
    EligibilityError,
    InfrastructureError,
    SessionNotActiveError,
    SessionNotFoundError,
)
from .models import Vote
from .tally import AdminTally, PublicTally, admin_tally, public_tally, votes_by_hour
from .visibility import CallerRole, check_disclosure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Provenance:
    """Where a ballot came from. Kept for audit, never used for deduplication."""

    ip_address: Optional[str]
    user_agent: Optional[str]

    @classmethod
    def from_request(cls, request):
        user_agent = request.META.get("HTTP_USER_AGENT")
        if user_agent:
            user_agent = user_agent[: Vote._meta.get_field("user_agent").max_length]
        return cls(ip_address=request.META.get("REMOTE_ADDR"), user_agent=user_agent)


@contextmanager
def storage_errors(operation):
    """Re-raise database failures as InfrastructureError."""
    try:
        yield
    except DatabaseError as e:
        logger.error(f"Storage failure during {operation}: {e}")
        raise InfrastructureError(f"Storage unavailable during {operation}") from e


class VotingService:
    """
    Centralized service for all voting operations.
    Handles ballot validation, the one-ballot-per-voter guarantee and results.
    """

    def get_session(self, session_id) -> VotingSession:
        with storage_errors("session lookup"):
            try:
                return VotingSession.objects.prefetch_related("candidates").get(session_id=session_id)
            except VotingSession.DoesNotExist:
                raise SessionNotFoundError(session_id) from None

    def cast_vote(self, user, session_id, candidate, provenance: Provenance, now=None) -> Vote:
        """
        Record `user`'s ballot for `candidate` in session `session_id`.

        Args:
            user: The authenticated voter
            session_id: Business identifier of the voting session
            candidate: Candidate key, or the abstain sentinel
            provenance: Connection metadata stored with the ballot
            now: Clock reading used to decide whether voting is open

        Returns:
            The created Vote

        Raises:
            BallotValidationError: Missing provenance or unknown candidate
            SessionNotFoundError: No such session
            EligibilityError: Email verification required but missing
            SessionNotActiveError: Session is not accepting votes now
            DuplicateVoteError: The voter already has a ballot in this session
            InfrastructureError: The store could not be reached
        """
        # short ID for tracing one cast through the logs
        request_id = str(uuid.uuid4())[:8]

        field_errors = {}
        if not candidate:
            field_errors["candidate"] = "Candidate selection is required"
        if not provenance.ip_address:
            field_errors["ip_address"] = "IP address is required"
        if not provenance.user_agent:
            field_errors["user_agent"] = "User agent is required"
        if field_errors:
            raise BallotValidationError(field_errors)

        session = self.get_session(session_id)

        if session.require_email_verification and not user.is_email_verified:
            raise EligibilityError("Email verification required")

        status = refresh_status(session, now)
        if status != VotingSession.Status.ACTIVE:
            raise SessionNotActiveError(status)

        if candidate not in session.candidate_keys() and not (
            candidate == ABSTAIN and session.allow_abstain
        ):
            raise BallotValidationError({"candidate": "Invalid candidate selection"})

        # No existence pre-check: the unique constraint decides.
        with storage_errors("cast vote"):
            try:
                with transaction.atomic():
                    vote = Vote.objects.create(
                        voter=user,
                        voting_session=session,
                        candidate=candidate,
                        ip_address=provenance.ip_address,
                        user_agent=provenance.user_agent,
                    )
            except IntegrityError:
                logger.warning(f"[{request_id}] Duplicate vote by user {user.pk} in {session.session_id}")
                raise DuplicateVoteError("You have already voted in this session") from None

        logger.info(
            f"[{request_id}] Vote successfully cast.",
            extra={"vote_id": str(vote.id), "voter": user.pk, "voting_session": session.session_id},
        )
        return vote

    def vote_status(self, user, session_id) -> Dict[str, Any]:
        """Whether `user` has a ballot in `session_id`, and what it was."""
        session = self.get_session(session_id)
        with storage_errors("vote status"):
            vote = Vote.objects.filter(voter=user, voting_session=session).first()
        return {
            "has_voted": vote is not None,
            "vote": {"candidate": vote.candidate, "timestamp": vote.created_at} if vote else None,
        }

    def vote_history(self, user):
        """The user's own ballots across all sessions, newest first."""
        return Vote.objects.filter(voter=user).select_related("voting_session").order_by("-created_at", "id")

    def get_public_results(self, session_id, role=CallerRole.PUBLIC, now=None) -> PublicTally:
        session = self.get_session(session_id)
        refresh_status(session, now)
        check_disclosure(session, role, now)
        with storage_errors("public tally"):
            return public_tally(session)

    def get_admin_results(self, session_id, now=None) -> AdminTally:
        session = self.get_session(session_id)
        refresh_status(session, now)
        with storage_errors("admin tally"):
            return admin_tally(session)

    def get_voting_stats(self, session_id, now=None) -> Dict[str, Any]:
        """Turnout figures for the admin dashboard."""
        now = now or timezone.now()
        session = self.get_session(session_id)
        User = get_user_model()

        with storage_errors("voting stats"):
            voters = User.objects.filter(role=User.Role.VOTER)
            total_voters = voters.count()
            verified_voters = voters.filter(is_email_verified=True).count()
            total_votes = Vote.objects.verified().for_session(session).count()
            hourly = votes_by_hour(session, now)

        voting_rate = f"{total_votes / verified_voters * 100:.2f}%" if verified_voters else "0%"
        return {
            "total_voters": total_voters,
            "verified_voters": verified_voters,
            "total_votes": total_votes,
            "voting_rate": voting_rate,
            "votes_by_hour": hourly,
        }


# Singleton instance
_voting_service: Optional[VotingService] = None


def get_voting_service() -> VotingService:
    """Get or create the voting service singleton"""
    global _voting_service
    if _voting_service is None:
        _voting_service = VotingService()
    return _voting_service
