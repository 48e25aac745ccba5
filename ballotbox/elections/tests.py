from datetime import timedelta
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.db import DatabaseError
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from .lifecycle import cancel_session, compute_status, is_voting_active, refresh_status
from .models import Candidate, VotingSession, VotingSessionQuerySet
from .serializers import VotingSessionSerializer

User = get_user_model()

CANDIDATES = [
    {"id": "candidate1", "name": "Alice", "description": "", "image_url": ""},
    {"id": "candidate2", "name": "Bob", "description": "", "image_url": ""},
]


def make_admin(username="admin"):
    return User.objects.create_user(
        username=username, password="pass1234", role=User.Role.ADMIN, is_email_verified=True
    )


def make_session(created_by, session_id="general-election-2024", start=None, end=None, **kwargs):
    now = timezone.now()
    start = start or now - timedelta(hours=1)
    end = end or now + timedelta(hours=1)
    session = VotingSession.objects.create(
        session_id=session_id,
        title=kwargs.pop("title", "General Election"),
        voting_start_time=start,
        voting_end_time=end,
        result_announcement_time=kwargs.pop("result_announcement_time", end + timedelta(hours=1)),
        created_by=created_by,
        **kwargs,
    )
    for position, key in enumerate(["candidate1", "candidate2", "candidate3"]):
        Candidate.objects.create(voting_session=session, key=key, name=key.title(), position=position)
    return session


class VotingSessionSerializerTest(TestCase):
    def setUp(self):
        self.admin = make_admin()

    def _data(self, **overrides):
        now = timezone.now()
        data = {
            "session_id": "student-council-2024",
            "title": "Student Council Election",
            "description": "Annual vote",
            "candidates": CANDIDATES,
            "voting_start_time": now,
            "voting_end_time": now + timedelta(days=1),
            "result_announcement_time": now + timedelta(days=2),
        }
        data.update(overrides)
        return data

    # method that test the serializer with valid session data
    def test_valid_session_data(self):
        serializer = VotingSessionSerializer(data=self._data())

        self.assertTrue(serializer.is_valid(), serializer.errors)

    # method to test .save() work or not and confirm the DB interaction
    def test_serializer_creates_session_with_ordered_candidates(self):
        serializer = VotingSessionSerializer(
            data=self._data(settings={"allow_abstain": False, "show_voter_count": False})
        )
        serializer.is_valid(raise_exception=True)

        session = serializer.save(created_by=self.admin)

        self.assertEqual(VotingSession.objects.count(), 1)
        self.assertEqual(session.created_by, self.admin)
        self.assertEqual(session.candidate_keys(), ["candidate1", "candidate2"])
        self.assertFalse(session.allow_abstain)
        self.assertFalse(session.show_voter_count)
        self.assertTrue(session.require_email_verification)

    def test_invalid_title_too_long(self):
        serializer = VotingSessionSerializer(data=self._data(title="x" * 101))

        self.assertFalse(serializer.is_valid())
        self.assertIn("title", serializer.errors)

    def test_end_time_before_start_time(self):
        now = timezone.now()
        serializer = VotingSessionSerializer(
            data=self._data(voting_start_time=now, voting_end_time=now - timedelta(hours=1))
        )

        self.assertFalse(serializer.is_valid())
        self.assertIn("voting_end_time", serializer.errors)

    def test_end_time_equal_to_start_time(self):
        now = timezone.now()
        serializer = VotingSessionSerializer(data=self._data(voting_start_time=now, voting_end_time=now))

        self.assertFalse(serializer.is_valid())

    def test_duplicate_candidate_ids_rejected(self):
        serializer = VotingSessionSerializer(data=self._data(candidates=[CANDIDATES[0], CANDIDATES[0]]))

        self.assertFalse(serializer.is_valid())
        self.assertIn("candidates", serializer.errors)

    def test_abstain_is_reserved(self):
        serializer = VotingSessionSerializer(
            data=self._data(candidates=[{"id": "abstain", "name": "Nobody"}])
        )

        self.assertFalse(serializer.is_valid())
        self.assertIn("candidates", serializer.errors)

    def test_empty_candidate_list_rejected(self):
        serializer = VotingSessionSerializer(data=self._data(candidates=[]))

        self.assertFalse(serializer.is_valid())
        self.assertIn("candidates", serializer.errors)

    def test_session_id_must_be_unique(self):
        make_session(self.admin, session_id="student-council-2024")
        serializer = VotingSessionSerializer(data=self._data())

        self.assertFalse(serializer.is_valid())
        self.assertIn("session_id", serializer.errors)


class ComputeStatusTest(TestCase):
    def setUp(self):
        self.admin = make_admin()
        self.start = timezone.now() + timedelta(days=1)
        self.end = self.start + timedelta(days=1)
        self.session = make_session(self.admin, start=self.start, end=self.end)

    def test_status_follows_the_voting_window(self):
        cases = [
            (self.start - timedelta(seconds=1), VotingSession.Status.UPCOMING),
            (self.start, VotingSession.Status.ACTIVE),
            (self.start + timedelta(hours=5), VotingSession.Status.ACTIVE),
            (self.end, VotingSession.Status.ACTIVE),
            (self.end + timedelta(seconds=1), VotingSession.Status.COMPLETED),
        ]
        for now, expected in cases:
            with self.subTest(now=now):
                self.assertEqual(compute_status(self.session, now), expected)

    def test_compute_status_does_not_write(self):
        compute_status(self.session, self.start + timedelta(hours=1))

        self.session.refresh_from_db()
        self.assertEqual(self.session.status, VotingSession.Status.UPCOMING)

    def test_cancelled_is_sticky(self):
        cancel_session(self.session, actor=self.admin)

        for now in (self.start - timedelta(days=1), self.start, self.end + timedelta(days=1)):
            with self.subTest(now=now):
                self.assertEqual(compute_status(self.session, now), VotingSession.Status.CANCELLED)
                self.assertFalse(is_voting_active(self.session, now))

    def test_refresh_status_persists_recomputed_value(self):
        status_ = refresh_status(self.session, self.start + timedelta(hours=1))

        self.assertEqual(status_, VotingSession.Status.ACTIVE)
        self.session.refresh_from_db()
        self.assertEqual(self.session.status, VotingSession.Status.ACTIVE)

    def test_refresh_status_survives_write_failure(self):
        with patch.object(VotingSessionQuerySet, "update", side_effect=DatabaseError("db gone")):
            status_ = refresh_status(self.session, self.end + timedelta(hours=1))

        self.assertEqual(status_, VotingSession.Status.COMPLETED)
        self.assertEqual(self.session.status, VotingSession.Status.COMPLETED)

    def test_refresh_does_not_overwrite_a_concurrent_cancel(self):
        VotingSession.objects.filter(pk=self.session.pk).update(status=VotingSession.Status.CANCELLED)

        refresh_status(self.session, self.start + timedelta(hours=1))

        self.session.refresh_from_db()
        self.assertEqual(self.session.status, VotingSession.Status.CANCELLED)


class WithStatusQuerySetTest(TestCase):
    def setUp(self):
        admin = make_admin()
        now = timezone.now()
        self.upcoming = make_session(admin, "upcoming", start=now + timedelta(days=1), end=now + timedelta(days=2))
        self.active = make_session(admin, "active", start=now - timedelta(days=1), end=now + timedelta(days=1))
        self.completed = make_session(admin, "completed", start=now - timedelta(days=2), end=now - timedelta(days=1))
        self.cancelled = make_session(admin, "cancelled", start=now - timedelta(days=1), end=now + timedelta(days=1))
        cancel_session(self.cancelled)

    def test_filters_by_computed_status(self):
        for status_, expected in [
            ("upcoming", self.upcoming),
            ("active", self.active),
            ("completed", self.completed),
            ("cancelled", self.cancelled),
        ]:
            with self.subTest(status=status_):
                self.assertEqual(list(VotingSession.objects.with_status(status_)), [expected])


class VotingSessionApiTest(APITestCase):
    def setUp(self):
        self.admin = make_admin()
        self.voter = User.objects.create_user(username="voter", password="pass1234")
        self.list_url = reverse("elections:session-list")

    def _payload(self, **overrides):
        now = timezone.now()
        payload = {
            "session_id": "board-2024",
            "title": "Board Election",
            "candidates": CANDIDATES,
            "voting_start_time": (now - timedelta(hours=1)).isoformat(),
            "voting_end_time": (now + timedelta(hours=1)).isoformat(),
            "result_announcement_time": (now + timedelta(hours=2)).isoformat(),
            "settings": {"allow_abstain": False},
        }
        payload.update(overrides)
        return payload

    def test_admin_creates_session(self):
        self.client.force_authenticate(self.admin)

        response = self.client.post(self.list_url, self._payload(), format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        data = response.data["data"]
        self.assertEqual(data["status"], "active")
        self.assertTrue(data["is_voting_active"])
        self.assertFalse(data["should_show_results"])
        self.assertEqual([c["id"] for c in data["candidates"]], ["candidate1", "candidate2"])
        self.assertFalse(data["settings"]["allow_abstain"])
        self.assertEqual(data["created_by"], "admin")
        self.assertEqual(VotingSession.objects.get().status, VotingSession.Status.ACTIVE)

    def test_voter_cannot_create_session(self):
        self.client.force_authenticate(self.voter)

        response = self.client.post(self.list_url, self._payload(), format="json")

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertFalse(VotingSession.objects.exists())

    def test_list_is_admin_only_and_filters_on_computed_status(self):
        now = timezone.now()
        make_session(self.admin, "over", start=now - timedelta(days=2), end=now - timedelta(days=1))
        make_session(self.admin, "open")

        self.client.force_authenticate(self.voter)
        self.assertEqual(self.client.get(self.list_url).status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(self.admin)
        response = self.client.get(self.list_url, {"status": "completed"})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([s["session_id"] for s in response.data["data"]], ["over"])
        self.assertEqual(response.data["pagination"]["total"], 1)

    def test_voter_can_read_a_session(self):
        session = make_session(self.admin)
        self.client.force_authenticate(self.voter)

        response = self.client.get(reverse("elections:session-detail", args=[session.session_id]))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["data"]["voter_count"], 0)

    def test_update_ignores_immutable_fields(self):
        session = make_session(self.admin)
        self.client.force_authenticate(self.admin)

        response = self.client.put(
            reverse("elections:session-detail", args=[session.session_id]),
            {
                "title": "Renamed Election",
                "session_id": "hijacked",
                "candidates": [{"id": "mallory", "name": "Mallory"}],
                "is_results_public": True,
            },
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        session.refresh_from_db()
        self.assertEqual(session.title, "Renamed Election")
        self.assertEqual(session.session_id, "general-election-2024")
        self.assertTrue(session.is_results_public)
        self.assertEqual(session.candidate_keys(), ["candidate1", "candidate2", "candidate3"])
        self.assertEqual(session.created_by, self.admin)

    def test_update_revalidates_timing_against_stored_values(self):
        session = make_session(self.admin)
        self.client.force_authenticate(self.admin)

        response = self.client.patch(
            reverse("elections:session-detail", args=[session.session_id]),
            {"voting_end_time": (session.voting_start_time - timedelta(minutes=1)).isoformat()},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_cancel_session(self):
        session = make_session(self.admin)
        self.client.force_authenticate(self.admin)

        response = self.client.post(reverse("elections:session-cancel", args=[session.session_id]))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["data"]["status"], "cancelled")
        session.refresh_from_db()
        self.assertEqual(session.status, VotingSession.Status.CANCELLED)

    def test_set_announcement_time(self):
        session = make_session(self.admin)
        self.client.force_authenticate(self.admin)
        announce_at = timezone.now() + timedelta(days=3)

        response = self.client.put(
            reverse("elections:session-announcement-time", args=[session.session_id]),
            {"announcement_time": announce_at.isoformat(), "make_results_public": True},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        session.refresh_from_db()
        self.assertEqual(session.result_announcement_time, announce_at)
        self.assertTrue(session.is_results_public)
