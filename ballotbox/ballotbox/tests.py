from django.test import SimpleTestCase
from django.urls import reverse
from rest_framework.test import APIClient


class HealthViewTest(SimpleTestCase):
    def test_health_is_public(self):
        response = APIClient().get(reverse("health"))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], "success")
        self.assertEqual(response.data["version"], "1.0.0")
