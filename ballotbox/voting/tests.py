import threading
from datetime import datetime, timedelta, timezone as dt_timezone
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.db import DatabaseError, IntegrityError, connection, transaction
from django.test import TestCase, TransactionTestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from elections.lifecycle import cancel_session
from elections.models import Candidate, VotingSession

from .exceptions import (
    BallotValidationError,
    DuplicateVoteError,
    EligibilityError,
    InfrastructureError,
    NotYetAnnounced,
    SessionNotActiveError,
    SessionNotFoundError,
)
from .models import Vote
from .services import Provenance, VotingService
from .tally import CandidateResult, admin_tally, percentage, public_tally, votes_by_hour
from .visibility import CallerRole, can_reveal, check_disclosure

User = get_user_model()

PROVENANCE = Provenance(ip_address="10.0.0.1", user_agent="Mozilla/5.0 (test)")


def make_user(username, role=User.Role.VOTER, verified=True):
    return User.objects.create_user(
        username=username,
        email=f"{username}@example.com",
        password="pass1234",
        role=role,
        is_email_verified=verified,
    )


def make_session(created_by, session_id="general-election-2024", keys=("A", "B", "C"), **kwargs):
    now = timezone.now()
    start = kwargs.pop("start", now - timedelta(hours=1))
    end = kwargs.pop("end", now + timedelta(hours=1))
    session = VotingSession.objects.create(
        session_id=session_id,
        title=kwargs.pop("title", "General Election"),
        voting_start_time=start,
        voting_end_time=end,
        result_announcement_time=kwargs.pop("result_announcement_time", end + timedelta(hours=1)),
        created_by=created_by,
        **kwargs,
    )
    for position, key in enumerate(keys):
        Candidate.objects.create(voting_session=session, key=key, name=f"Candidate {key}", position=position)
    return session


def add_votes(session, candidate, count, is_verified=True, prefix=None):
    prefix = prefix or f"{session.session_id}-{candidate}-{is_verified}"
    for i in range(count):
        Vote.objects.create(
            voter=make_user(f"{prefix}-{i}"),
            voting_session=session,
            candidate=candidate,
            ip_address="10.0.0.1",
            user_agent="test",
            is_verified=is_verified,
        )


class CastVoteTest(TestCase):
    def setUp(self):
        self.service = VotingService()
        self.admin = make_user("admin", role=User.Role.ADMIN)
        self.voter = make_user("voter")
        self.session = make_session(self.admin)

    def test_cast_vote_records_ballot_with_provenance(self):
        vote = self.service.cast_vote(self.voter, self.session.session_id, "A", PROVENANCE)

        self.assertEqual(Vote.objects.count(), 1)
        self.assertEqual(vote.voter, self.voter)
        self.assertEqual(vote.voting_session_id, "general-election-2024")
        self.assertEqual(vote.candidate, "A")
        self.assertEqual(vote.ip_address, "10.0.0.1")
        self.assertEqual(vote.user_agent, "Mozilla/5.0 (test)")
        self.assertTrue(vote.is_verified)

    def test_second_vote_is_rejected_as_duplicate(self):
        self.service.cast_vote(self.voter, self.session.session_id, "A", PROVENANCE)

        with self.assertRaises(DuplicateVoteError):
            self.service.cast_vote(self.voter, self.session.session_id, "B", PROVENANCE)

        self.assertEqual(Vote.objects.filter(voter=self.voter).count(), 1)
        self.assertEqual(Vote.objects.get(voter=self.voter).candidate, "A")

    def test_same_voter_can_vote_in_different_sessions(self):
        other = make_session(self.admin, session_id="board-2024")

        self.service.cast_vote(self.voter, self.session.session_id, "A", PROVENANCE)
        self.service.cast_vote(self.voter, other.session_id, "B", PROVENANCE)

        self.assertEqual(Vote.objects.filter(voter=self.voter).count(), 2)

    def test_unique_constraint_is_enforced_by_the_database(self):
        Vote.objects.create(
            voter=self.voter, voting_session=self.session, candidate="A", ip_address="10.0.0.1", user_agent="x"
        )

        with self.assertRaises(IntegrityError), transaction.atomic():
            Vote.objects.create(
                voter=self.voter, voting_session=self.session, candidate="B", ip_address="10.0.0.1", user_agent="x"
            )

    def test_unknown_candidate_is_a_validation_error(self):
        with self.assertRaises(BallotValidationError) as ctx:
            self.service.cast_vote(self.voter, self.session.session_id, "Z", PROVENANCE)

        self.assertIn("candidate", ctx.exception.field_errors)
        self.assertFalse(Vote.objects.exists())

    def test_abstain_allowed_by_default(self):
        vote = self.service.cast_vote(self.voter, self.session.session_id, "abstain", PROVENANCE)

        self.assertEqual(vote.candidate, "abstain")

    def test_abstain_rejected_when_disabled(self):
        session = make_session(self.admin, session_id="strict", allow_abstain=False)

        with self.assertRaises(BallotValidationError):
            self.service.cast_vote(self.voter, session.session_id, "abstain", PROVENANCE)

        self.assertFalse(Vote.objects.exists())

    def test_missing_provenance_is_a_validation_error(self):
        for provenance, field in [
            (Provenance(ip_address=None, user_agent="ua"), "ip_address"),
            (Provenance(ip_address="10.0.0.1", user_agent=""), "user_agent"),
        ]:
            with self.subTest(field=field):
                with self.assertRaises(BallotValidationError) as ctx:
                    self.service.cast_vote(self.voter, self.session.session_id, "A", provenance)
                self.assertIn(field, ctx.exception.field_errors)

        self.assertFalse(Vote.objects.exists())

    def test_unknown_session(self):
        with self.assertRaises(SessionNotFoundError):
            self.service.cast_vote(self.voter, "no-such-session", "A", PROVENANCE)

    def test_vote_outside_window_is_rejected_with_status(self):
        start = self.session.voting_start_time
        end = self.session.voting_end_time
        for now, expected in [
            (start - timedelta(minutes=1), VotingSession.Status.UPCOMING),
            (end + timedelta(minutes=1), VotingSession.Status.COMPLETED),
        ]:
            with self.subTest(expected=expected):
                with self.assertRaises(SessionNotActiveError) as ctx:
                    self.service.cast_vote(self.voter, self.session.session_id, "A", PROVENANCE, now=now)
                self.assertEqual(ctx.exception.status, expected)

        self.assertFalse(Vote.objects.exists())

    def test_vote_in_cancelled_session_is_rejected(self):
        cancel_session(self.session)

        with self.assertRaises(SessionNotActiveError) as ctx:
            self.service.cast_vote(self.voter, self.session.session_id, "A", PROVENANCE)

        self.assertEqual(ctx.exception.status, VotingSession.Status.CANCELLED)

    def test_email_verification_required(self):
        unverified = make_user("unverified", verified=False)

        with self.assertRaises(EligibilityError):
            self.service.cast_vote(unverified, self.session.session_id, "A", PROVENANCE)

        open_session = make_session(self.admin, session_id="open", require_email_verification=False)
        self.service.cast_vote(unverified, open_session.session_id, "A", PROVENANCE)
        self.assertEqual(Vote.objects.filter(voter=unverified).count(), 1)

    def test_storage_failure_is_an_infrastructure_error(self):
        with patch.object(Vote.objects, "create", side_effect=DatabaseError("connection lost")):
            with self.assertRaises(InfrastructureError):
                self.service.cast_vote(self.voter, self.session.session_id, "A", PROVENANCE)

    def test_ballots_are_immutable(self):
        vote = self.service.cast_vote(self.voter, self.session.session_id, "A", PROVENANCE)

        vote.candidate = "B"
        with self.assertRaises(ValueError):
            vote.save()
        with self.assertRaises(ValueError):
            vote.delete()
        self.assertEqual(Vote.objects.get(pk=vote.pk).candidate, "A")


class ConcurrentCastTest(TransactionTestCase):
    def test_concurrent_casts_yield_exactly_one_ballot(self):
        admin = make_user("admin", role=User.Role.ADMIN)
        voter = make_user("voter")
        session = make_session(admin)
        attempts = 8
        barrier = threading.Barrier(attempts)
        outcomes = []
        lock = threading.Lock()

        def cast():
            try:
                barrier.wait()
                try:
                    VotingService().cast_vote(voter, session.session_id, "A", PROVENANCE)
                    outcome = "ok"
                except DuplicateVoteError:
                    outcome = "duplicate"
                with lock:
                    outcomes.append(outcome)
            finally:
                connection.close()

        threads = [threading.Thread(target=cast) for _ in range(attempts)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(outcomes.count("ok"), 1)
        self.assertEqual(outcomes.count("duplicate"), attempts - 1)
        self.assertEqual(Vote.objects.filter(voter=voter).count(), 1)


class TallyTest(TestCase):
    def setUp(self):
        self.admin = make_user("admin", role=User.Role.ADMIN)
        self.session = make_session(self.admin, keys=("A", "B"), allow_abstain=False)

    def test_counts_and_percentages(self):
        add_votes(self.session, "A", 3)
        add_votes(self.session, "B", 1)

        tally = public_tally(self.session)

        self.assertEqual(tally.total_votes, 4)
        self.assertEqual(
            list(tally.results),
            [
                CandidateResult(candidate="A", name="Candidate A", count=3, percentage=75.0),
                CandidateResult(candidate="B", name="Candidate B", count=1, percentage=25.0),
            ],
        )

    def test_no_votes_gives_zero_percentages(self):
        tally = public_tally(self.session)

        self.assertEqual(tally.total_votes, 0)
        self.assertEqual([r.candidate for r in tally.results], ["A", "B"])
        self.assertTrue(all(r.count == 0 and r.percentage == 0 for r in tally.results))

    def test_admin_results_refresh_stored_status(self):
        after_close = self.session.voting_end_time + timedelta(minutes=5)

        tally = VotingService().get_admin_results(self.session.session_id, now=after_close)

        self.assertEqual(tally.total_votes, 0)
        self.session.refresh_from_db()
        self.assertEqual(self.session.status, VotingSession.Status.COMPLETED)

    def test_percentages_round_to_two_places(self):
        add_votes(self.session, "A", 2)
        add_votes(self.session, "B", 1)

        tally = public_tally(self.session)

        self.assertEqual([r.percentage for r in tally.results], [66.67, 33.33])
        self.assertEqual(percentage(1, 3), 33.33)
        self.assertEqual(percentage(5, 0), 0)

    def test_unverified_and_foreign_ballots_are_ignored(self):
        other = make_session(self.admin, session_id="other", keys=("A", "B"))
        add_votes(self.session, "A", 1)
        add_votes(self.session, "B", 2, is_verified=False)
        add_votes(other, "B", 5)

        tally = public_tally(self.session)

        self.assertEqual(tally.total_votes, 1)
        self.assertEqual([(r.candidate, r.count) for r in tally.results], [("A", 1), ("B", 0)])

    def test_ties_are_broken_by_candidate_id(self):
        session = make_session(self.admin, session_id="ties", keys=("C", "A", "B"))
        add_votes(session, "B", 2)
        add_votes(session, "C", 2)
        add_votes(session, "A", 1)

        tally = public_tally(session)

        self.assertEqual([r.candidate for r in tally.results], ["B", "C", "A", "abstain"])

    def test_repeated_tallies_are_identical(self):
        add_votes(self.session, "A", 2)
        add_votes(self.session, "B", 2)

        first = public_tally(self.session)
        second = public_tally(self.session)

        self.assertEqual(first.results, second.results)
        self.assertEqual([r.candidate for r in first.results], ["A", "B"])

    def test_admin_tally_lists_ballots_per_candidate(self):
        voter = make_user("alice")
        Vote.objects.create(
            voter=voter, voting_session=self.session, candidate="B", ip_address="192.168.1.5", user_agent="ua"
        )
        add_votes(self.session, "A", 2)

        tally = admin_tally(self.session)

        self.assertEqual(tally.total_votes, 3)
        by_candidate = {r.candidate: r for r in tally.results}
        self.assertEqual(by_candidate["A"].count, 2)
        self.assertEqual(len(by_candidate["A"].ballots), 2)
        (ballot,) = by_candidate["B"].ballots
        self.assertEqual(ballot.username, "alice")
        self.assertEqual(ballot.email, "alice@example.com")
        self.assertEqual(ballot.ip_address, "192.168.1.5")

    def test_public_tally_has_no_voter_detail(self):
        add_votes(self.session, "A", 1)

        for result in public_tally(self.session).results:
            self.assertFalse(hasattr(result, "ballots"))

    def test_votes_by_hour(self):
        now = datetime(2024, 5, 10, 12, 30, tzinfo=dt_timezone.utc)
        session = make_session(
            self.admin, session_id="hourly", start=now - timedelta(days=3), end=now + timedelta(days=1)
        )
        for i, created_at in enumerate(
            [
                now - timedelta(hours=2),  # 10:30
                now - timedelta(minutes=105),  # 10:45
                now - timedelta(hours=1),  # 11:30
                now - timedelta(hours=30),  # outside the window
            ]
        ):
            Vote.objects.create(
                voter=make_user(f"hourly-{i}"),
                voting_session=session,
                candidate="A",
                ip_address="10.0.0.1",
                user_agent="ua",
                created_at=created_at,
            )

        self.assertEqual(
            votes_by_hour(session, now),
            [{"day": 10, "hour": 10, "count": 2}, {"day": 10, "hour": 11, "count": 1}],
        )


class VisibilityGateTest(TestCase):
    def setUp(self):
        self.admin = make_user("admin", role=User.Role.ADMIN)
        self.announce_at = timezone.now() + timedelta(days=1)
        self.session = make_session(self.admin, result_announcement_time=self.announce_at)

    def test_admin_always_sees_results(self):
        self.assertTrue(can_reveal(self.session, CallerRole.ADMIN, self.announce_at - timedelta(days=5)))

    def test_public_waits_for_announcement(self):
        before = self.announce_at - timedelta(seconds=1)

        self.assertFalse(can_reveal(self.session, CallerRole.PUBLIC, before))
        with self.assertRaises(NotYetAnnounced) as ctx:
            check_disclosure(self.session, CallerRole.PUBLIC, before)
        self.assertEqual(ctx.exception.announcement_time, self.announce_at)

        self.assertTrue(can_reveal(self.session, CallerRole.PUBLIC, self.announce_at))

    def test_public_flag_overrides_announcement_time(self):
        self.session.is_results_public = True

        self.assertTrue(can_reveal(self.session, CallerRole.PUBLIC, self.announce_at - timedelta(days=1)))

    def test_service_gates_public_results(self):
        service = VotingService()
        add_votes(self.session, "A", 1)

        with self.assertRaises(NotYetAnnounced):
            service.get_public_results(self.session.session_id)

        admin_view = service.get_public_results(self.session.session_id, role=CallerRole.ADMIN)
        self.assertEqual(admin_view.total_votes, 1)

        later = service.get_public_results(self.session.session_id, now=self.announce_at)
        self.assertEqual(later.total_votes, 1)


class VotingApiTest(APITestCase):
    def setUp(self):
        self.admin = make_user("admin", role=User.Role.ADMIN)
        self.voter = make_user("voter")
        self.session = make_session(self.admin)
        self.cast_url = reverse("voting:cast_vote", args=[self.session.session_id])

    def test_cast_vote_returns_receipt(self):
        self.client.force_authenticate(self.voter)

        response = self.client.post(self.cast_url, {"candidate": "A"}, format="json", HTTP_USER_AGENT="Firefox")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        receipt = response.data["data"]
        self.assertEqual(receipt["candidate"], "A")
        self.assertEqual(set(receipt), {"id", "candidate", "timestamp"})
        vote = Vote.objects.get()
        self.assertEqual(vote.ip_address, "127.0.0.1")
        self.assertEqual(vote.user_agent, "Firefox")

    def test_duplicate_vote_is_a_conflict(self):
        self.client.force_authenticate(self.voter)
        self.client.post(self.cast_url, {"candidate": "A"}, format="json", HTTP_USER_AGENT="Firefox")

        response = self.client.post(self.cast_url, {"candidate": "B"}, format="json", HTTP_USER_AGENT="Firefox")

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(Vote.objects.count(), 1)

    def test_missing_user_agent_is_rejected(self):
        self.client.force_authenticate(self.voter)

        response = self.client.post(self.cast_url, {"candidate": "A"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("user_agent", response.data["errors"])
        self.assertFalse(Vote.objects.exists())

    def test_invalid_candidate_is_rejected(self):
        self.client.force_authenticate(self.voter)

        response = self.client.post(self.cast_url, {"candidate": "Z"}, format="json", HTTP_USER_AGENT="Firefox")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("candidate", response.data["errors"])

    def test_closed_session_reports_status(self):
        cancel_session(self.session)
        self.client.force_authenticate(self.voter)

        response = self.client.post(self.cast_url, {"candidate": "A"}, format="json", HTTP_USER_AGENT="Firefox")

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data["session_status"], "cancelled")

    def test_unknown_session_is_not_found(self):
        self.client.force_authenticate(self.voter)

        response = self.client.post(
            reverse("voting:cast_vote", args=["missing"]), {"candidate": "A"}, format="json", HTTP_USER_AGENT="x"
        )

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_long_user_agent_is_truncated(self):
        self.client.force_authenticate(self.voter)

        response = self.client.post(self.cast_url, {"candidate": "A"}, format="json", HTTP_USER_AGENT="x" * 600)

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(Vote.objects.get().user_agent, "x" * 500)

    def test_anonymous_cannot_vote(self):
        response = self.client.post(self.cast_url, {"candidate": "A"}, format="json", HTTP_USER_AGENT="Firefox")

        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))

    def test_vote_status_on_default_session(self):
        self.client.force_authenticate(self.voter)
        self.assertFalse(self.client.get(reverse("voting:vote_status_default")).data["data"]["has_voted"])

        self.client.post(self.cast_url, {"candidate": "B"}, format="json", HTTP_USER_AGENT="Firefox")
        data = self.client.get(reverse("voting:vote_status_default")).data["data"]

        self.assertTrue(data["has_voted"])
        self.assertEqual(data["vote"]["candidate"], "B")
        self.assertEqual(data["voting_session"], "general-election-2024")

    def test_vote_status_for_unknown_session(self):
        self.client.force_authenticate(self.voter)

        response = self.client.get(reverse("voting:vote_status", args=["missing"]))

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data["status"], "error")

    def test_history_lists_own_ballots_with_session_title(self):
        other = make_session(self.admin, session_id="board-2024", title="Board Election")
        service = VotingService()
        service.cast_vote(self.voter, self.session.session_id, "A", PROVENANCE)
        service.cast_vote(self.voter, other.session_id, "B", PROVENANCE)
        service.cast_vote(make_user("someone"), other.session_id, "A", PROVENANCE)
        self.client.force_authenticate(self.voter)

        response = self.client.get(reverse("voting:vote_history"), {"limit": 1})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data["data"]), 1)
        self.assertEqual(response.data["data"][0]["session_title"], "Board Election")
        self.assertEqual(response.data["pagination"]["total"], 2)
        self.assertTrue(response.data["pagination"]["has_next"])

    def test_public_results_before_announcement(self):
        response = self.client.get(reverse("voting:public_results", args=[self.session.session_id]))

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data["announcement_time"], self.session.result_announcement_time)

    def test_public_results_after_announcement(self):
        VotingSession.objects.filter(pk=self.session.pk).update(is_results_public=True)
        add_votes(self.session, "A", 3)
        add_votes(self.session, "B", 1)

        response = self.client.get(reverse("voting:public_results_default"))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.data["data"]
        self.assertEqual(data["total_votes"], 4)
        self.assertEqual(data["session"]["session_id"], "general-election-2024")
        self.assertEqual(data["results"][0], {"candidate": "A", "name": "Candidate A", "count": 3, "percentage": 75.0})
        self.assertNotIn("ballots", data["results"][0])

    def test_admin_results_include_voters(self):
        add_votes(self.session, "A", 1)

        self.client.force_authenticate(self.voter)
        self.assertEqual(
            self.client.get(reverse("voting:admin_results", args=[self.session.session_id])).status_code,
            status.HTTP_403_FORBIDDEN,
        )

        self.client.force_authenticate(self.admin)
        response = self.client.get(reverse("voting:admin_results", args=[self.session.session_id]))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data["data"]["results"][0]["ballots"]), 1)

    def test_stats(self):
        make_user("pending", verified=False)
        VotingService().cast_vote(self.voter, self.session.session_id, "A", PROVENANCE)
        self.client.force_authenticate(self.admin)

        response = self.client.get(reverse("voting:voting_stats", args=[self.session.session_id]))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        stats = response.data["data"]
        self.assertEqual(stats["total_voters"], 2)
        self.assertEqual(stats["verified_voters"], 1)
        self.assertEqual(stats["total_votes"], 1)
        self.assertEqual(stats["voting_rate"], "100.00%")
        self.assertEqual(sum(bucket["count"] for bucket in stats["votes_by_hour"]), 1)
