import logging

from django.conf import settings
from django.utils import timezone
from rest_framework import generics, permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.permissions import IsAdminRole

from .exceptions import (
    BallotValidationError,
    DuplicateVoteError,
    EligibilityError,
    InfrastructureError,
    NotYetAnnounced,
    SessionNotActiveError,
    SessionNotFoundError,
)
from .serializers import (
    AdminTallySerializer,
    PublicTallySerializer,
    VoteCreateSerializer,
    VoteHistorySerializer,
    VoteReceiptSerializer,
)
from .services import Provenance, get_voting_service
from .visibility import role_for

# __name__ = 'voting.views' automatically
logger = logging.getLogger(__name__)


def _error(message, http_status, **extra):
    return Response({"status": "error", "message": message, **extra}, status=http_status)


def _not_found(e):
    return _error(str(e), status.HTTP_404_NOT_FOUND)


def _unavailable(e):
    logger.error(f"Voting service unavailable: {e}")
    return _error("The voting service is temporarily unavailable", status.HTTP_503_SERVICE_UNAVAILABLE)


def _session_id(kwargs):
    # legacy routes carry no session id and fall back to the configured default
    return kwargs.get("session_id") or settings.DEFAULT_VOTING_SESSION


class CastVoteView(APIView):
    """
    API endpoint for casting a ballot in a voting session.
    """

    # Ensure that only authenticated users can access that endpoint.
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, *args, **kwargs):
        serializer = VoteCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return _error("Validation failed", status.HTTP_400_BAD_REQUEST, errors=serializer.errors)

        session_id = _session_id(kwargs)
        voting_service = get_voting_service()

        try:
            vote = voting_service.cast_vote(
                user=request.user,
                session_id=session_id,
                candidate=serializer.validated_data["candidate"],
                provenance=Provenance.from_request(request),
            )

        except BallotValidationError as e:
            return _error("Validation failed", status.HTTP_400_BAD_REQUEST, errors=e.field_errors)

        except DuplicateVoteError as e:
            return _error(str(e), status.HTTP_409_CONFLICT)

        except SessionNotActiveError as e:
            return _error(str(e), status.HTTP_403_FORBIDDEN, session_status=e.status)

        except EligibilityError as e:
            return _error(str(e), status.HTTP_403_FORBIDDEN)

        except SessionNotFoundError as e:
            return _not_found(e)

        except InfrastructureError as e:
            return _unavailable(e)

        return Response(
            {
                "status": "success",
                "message": "Vote cast successfully",
                "data": VoteReceiptSerializer(vote).data,
            },
            status=status.HTTP_201_CREATED,
        )


class VoteStatusView(APIView):
    """
    Tells the caller whether they have already voted in a session.
    """

    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, *args, **kwargs):
        session_id = _session_id(kwargs)
        try:
            data = get_voting_service().vote_status(request.user, session_id)
        except SessionNotFoundError as e:
            return _not_found(e)
        except InfrastructureError as e:
            return _unavailable(e)
        return Response({"status": "success", "data": {"voting_session": session_id, **data}})


class VoteHistoryView(generics.ListAPIView):
    """
    Paginated list of the caller's own ballots across all sessions.
    """

    permission_classes = [permissions.IsAuthenticated]
    serializer_class = VoteHistorySerializer

    def get_queryset(self):
        return get_voting_service().vote_history(self.request.user)


class PublicResultsView(APIView):
    """
    Aggregated results without any voter detail. Withheld from non-admins
    until the session's results are public or announced.
    """

    # Allows users (authenticated or not) to view the results once announced
    permission_classes = [permissions.AllowAny]

    def get(self, request, *args, **kwargs):
        session_id = _session_id(kwargs)
        try:
            tally = get_voting_service().get_public_results(session_id, role=role_for(request.user))
        except NotYetAnnounced as e:
            return _error(
                str(e),
                status.HTTP_403_FORBIDDEN,
                announcement_time=e.announcement_time,
            )
        except SessionNotFoundError as e:
            return _not_found(e)
        except InfrastructureError as e:
            return _unavailable(e)

        return Response(
            {
                "status": "success",
                "message": "Results retrived successfully",
                "data": {**PublicTallySerializer(tally).data, "generated_at": timezone.now()},
            }
        )


class AdminResultsView(APIView):
    """
    Full results for administrators, including who voted for whom.
    """

    permission_classes = [IsAdminRole]

    def get(self, request, *args, **kwargs):
        session_id = _session_id(kwargs)
        try:
            tally = get_voting_service().get_admin_results(session_id)
        except SessionNotFoundError as e:
            return _not_found(e)
        except InfrastructureError as e:
            return _unavailable(e)

        logger.info(f"Admin results for {session_id} viewed by {request.user.username}")
        return Response(
            {
                "status": "success",
                "data": {**AdminTallySerializer(tally).data, "generated_at": timezone.now()},
            }
        )


class VotingStatsView(APIView):
    """
    Turnout and votes-per-hour figures for a session.
    """

    permission_classes = [IsAdminRole]

    def get(self, request, *args, **kwargs):
        try:
            stats = get_voting_service().get_voting_stats(_session_id(kwargs))
        except SessionNotFoundError as e:
            return _not_found(e)
        except InfrastructureError as e:
            return _unavailable(e)
        return Response({"status": "success", "data": stats})
