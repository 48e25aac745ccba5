import logging

from django.utils import timezone
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter
from rest_framework.response import Response

from accounts.permissions import IsAdminRole

from .filters import VotingSessionFilter
from .lifecycle import cancel_session, refresh_status
from .models import VotingSession
from .permissions import IsAdminOrAuthenticatedReadOnly
from .serializers import (
    AnnouncementTimeSerializer,
    VotingSessionSerializer,
    VotingSessionUpdateSerializer,
)

logger = logging.getLogger("elections")


class VotingSessionViewSet(
    mixins.CreateModelMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.UpdateModelMixin,
    viewsets.GenericViewSet,
):
    """
    Session administration surface.

    Listing, creating, updating, cancelling and moving the announcement time
    are admin only; any signed-in user may read a single session. Sessions
    are never deleted.
    """

    queryset = VotingSession.objects.select_related("created_by").prefetch_related("candidates")
    lookup_field = "session_id"

    filter_backends = [DjangoFilterBackend, OrderingFilter]
    filterset_class = VotingSessionFilter
    ordering_fields = ["voting_start_time", "created_at"]
    ordering = ["-created_at"]

    def get_permissions(self):
        if self.action == "retrieve":
            return [IsAdminOrAuthenticatedReadOnly()]
        return [IsAdminRole()]

    def get_serializer_class(self):
        if self.action in ("update", "partial_update"):
            return VotingSessionUpdateSerializer
        if self.action == "announcement_time":
            return AnnouncementTimeSerializer
        return VotingSessionSerializer

    def get_serializer_context(self):
        context = super().get_serializer_context()
        # one clock reading per request so every row agrees
        context["now"] = timezone.now()
        return context

    def create(self, request, *args, **kwargs):
        logger.debug(f"Incoming data: {request.data}")
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        session = serializer.save(created_by=request.user)
        refresh_status(session)
        logger.info(f"Voting session created by admin: {request.user.username} - {session.session_id}")
        return Response(
            {
                "status": "success",
                "message": "Voting session created successfully",
                "data": serializer.data,
            },
            status=status.HTTP_201_CREATED,
        )

    def retrieve(self, request, *args, **kwargs):
        session = self.get_object()
        refresh_status(session)
        serializer = self.get_serializer(session)
        return Response({"status": "success", "data": serializer.data})

    def update(self, request, *args, **kwargs):
        logger.debug(f"Incoming data: {request.data}")
        session = self.get_object()
        # Every update is partial: fields left out keep their stored values.
        serializer = self.get_serializer(session, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        session = serializer.save()
        refresh_status(session)
        return Response(
            {
                "status": "success",
                "message": "Voting session updated successfully",
                "data": serializer.data,
            }
        )

    @action(detail=True, methods=["post"])
    def cancel(self, request, session_id=None):
        session = cancel_session(self.get_object(), actor=request.user)
        return Response(
            {
                "status": "success",
                "message": "Voting session cancelled",
                "data": {"session_id": session.session_id, "status": session.status},
            }
        )

    @action(detail=True, methods=["put"], url_path="announcement-time")
    def announcement_time(self, request, session_id=None):
        session = self.get_object()
        serializer = self.get_serializer(session, data=request.data)
        serializer.is_valid(raise_exception=True)
        session = serializer.save()
        return Response(
            {
                "status": "success",
                "message": "Result announcement time updated successfully",
                "data": {
                    "announcement_time": session.result_announcement_time,
                    "is_results_public": session.is_results_public,
                },
            }
        )
