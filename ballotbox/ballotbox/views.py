from django.conf import settings
from django.utils import timezone
from rest_framework import permissions
from rest_framework.response import Response
from rest_framework.views import APIView


class HealthView(APIView):
    """Liveness probe; never touches the database."""

    permission_classes = [permissions.AllowAny]
    authentication_classes = []

    def get(self, request):
        return Response(
            {
                "status": "success",
                "message": "Voting API is running",
                "timestamp": timezone.now(),
                "version": settings.API_VERSION,
            }
        )
