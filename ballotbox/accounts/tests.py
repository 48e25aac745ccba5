from django.urls import reverse_lazy
from rest_framework import status
from rest_framework.authtoken.models import Token
from rest_framework.test import APITestCase

from .models import User


class UserRegistrationTest(APITestCase):
    url = reverse_lazy("accounts:register")

    def test_registration_creates_unverified_voter(self):
        response = self.client.post(
            self.url,
            {
                "username": "newvoter",
                "email": "NewVoter@Example.com",
                "password": "Str0ngPassw0rd!",
                "role": "admin",
                "is_email_verified": True,
            },
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertNotIn("password", response.data)
        user = User.objects.get(username="newvoter")
        self.assertEqual(user.role, User.Role.VOTER)
        self.assertFalse(user.is_email_verified)
        self.assertEqual(user.email, "newvoter@example.com")
        self.assertTrue(user.check_password("Str0ngPassw0rd!"))

    def test_duplicate_email_rejected(self):
        User.objects.create_user(username="first", email="taken@example.com", password="Str0ngPassw0rd!")

        response = self.client.post(
            self.url,
            {"username": "second", "email": "taken@example.com", "password": "Str0ngPassw0rd!"},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("email", response.data)

    def test_weak_password_rejected(self):
        response = self.client.post(
            self.url, {"username": "weak", "email": "weak@example.com", "password": "123"}, format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("password", response.data)

    def test_authenticated_user_cannot_register(self):
        user = User.objects.create_user(username="existing", password="Str0ngPassw0rd!")
        self.client.force_authenticate(user)

        response = self.client.post(
            self.url, {"username": "other", "email": "other@example.com", "password": "Str0ngPassw0rd!"}, format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class LoginTest(APITestCase):
    url = reverse_lazy("accounts:api_token_auth")

    def setUp(self):
        self.user = User.objects.create_user(
            username="voter", email="voter@example.com", password="Str0ngPassw0rd!", is_email_verified=True
        )

    def test_login_returns_token_and_identity(self):
        response = self.client.post(self.url, {"username": "voter", "password": "Str0ngPassw0rd!"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["token"], Token.objects.get(user=self.user).key)
        self.assertEqual(response.data["role"], "voter")
        self.assertTrue(response.data["is_email_verified"])
        self.user.refresh_from_db()
        self.assertIsNotNone(self.user.last_login)

    def test_login_with_bad_password(self):
        with self.assertLogs("accounts", level="WARNING") as logs:
            response = self.client.post(self.url, {"username": "voter", "password": "wrong"}, format="json")

        self.assertIn("Authentication failed for user: voter", logs.output[0])

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(Token.objects.exists())
