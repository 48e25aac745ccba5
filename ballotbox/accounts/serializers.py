#serializer module provides functionalities for serializing & deserializing complex data into JSON
import logging

from django.contrib.auth.password_validation import validate_password
from rest_framework import serializers

from .models import User

logger = logging.getLogger("accounts")


class UserRegistrationSerializer(serializers.ModelSerializer):
    """
    serializer for creating voter accounts.
    """

    password = serializers.CharField(
        write_only=True, required=True, style={"input_type": "password"}
    )  # 'style' helps DRF's browsable API render this as a password input field.
    email = serializers.EmailField(required=True)

    class Meta:
        model = User
        fields = ("id", "username", "password", "email", "first_name", "last_name", "role", "is_email_verified")
        # Self-registered accounts are always plain, unverified voters.
        read_only_fields = ("id", "role", "is_email_verified")

    def validate_email(self, value):
        if User.objects.filter(email__iexact=value).exists():
            logger.warning("Registration attempt with an email already in use")
            raise serializers.ValidationError("A user with this email already exists.")
        return value.lower()

    def validate_password(self, value):
        validate_password(value)
        return value

    def create(self, validated_data):
        """
        This method is called to create a new user instance when valid data is submitted.
        """
        user = User.objects.create_user(
            username=validated_data["username"],
            email=validated_data["email"],
            password=validated_data["password"],
            first_name=validated_data.get("first_name", ""),
            last_name=validated_data.get("last_name", ""),
        )
        logger.info(f"New user registered: {user.username}")
        return user
