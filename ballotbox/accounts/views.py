import logging

from django.utils import timezone
from rest_framework import generics
from rest_framework.authtoken.models import Token
from rest_framework.authtoken.views import ObtainAuthToken
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response

from .permissions import IsAnonymousUser
from .serializers import UserRegistrationSerializer

logger = logging.getLogger("accounts")


class CustomAuthToken(ObtainAuthToken):
    """
    Custom authentication token view that extends DRF's default `ObtainAuthToken` class.
    This view provides a token upon sucessful login and also update `last_login` timestamp.
    """

    def post(self, request, *args, **kwargs):
        logger.info("Authentication attempt for user: %s", request.data.get("username"))

        serializer = self.serializer_class(
            data=request.data, context={"request": request}
        )
        try:
            serializer.is_valid(raise_exception=True)
        except ValidationError:
            logger.warning(
                "Authentication failed for user: %s", request.data.get("username")
            )
            raise
        user = serializer.validated_data["user"]

        # Retrive an existing token or create a new one for the user.
        token, created = Token.objects.get_or_create(user=user)

        user.last_login = timezone.now()
        user.save(update_fields=["last_login"])

        if created:
            logger.info("New token created for user: %s", user.username)
        else:
            logger.info("Existing token returned for user: %s", user.username)

        return Response(
            {
                "token": token.key,
                "user_id": user.pk,
                "email": user.email,
                "role": user.role,
                "is_email_verified": user.is_email_verified,
            }
        )


class UserRegistrationView(generics.CreateAPIView):
    """
    API endpoint for creating new voter accounts.
    """

    serializer_class = UserRegistrationSerializer
    # Only anonymous callers may register
    permission_classes = [IsAnonymousUser]

    def create(self, request, *args, **kwargs):
        logger.info("User registration attempt: %s", request.data.get("username"))
        response = super().create(request, *args, **kwargs)
        logger.info("User registered sucessfully -> %s", request.data.get("username"))
        return response
