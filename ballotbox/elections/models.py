from uuid import uuid4

from django.conf import settings
from django.db import models
from django.db.models import F, Q
from django.utils import timezone

# Ballot value recorded when a voter explicitly abstains.
ABSTAIN = "abstain"


class VotingSessionQuerySet(models.QuerySet):
    def with_status(self, status, now=None):
        """
        Filter on the status derived from the voting window at `now` rather
        than on the stored (possibly stale) status column.
        """
        now = now or timezone.now()
        cancelled = VotingSession.Status.CANCELLED
        if status == cancelled:
            return self.filter(status=cancelled)

        qs = self.exclude(status=cancelled)
        if status == VotingSession.Status.UPCOMING:
            return qs.filter(voting_start_time__gt=now)
        if status == VotingSession.Status.ACTIVE:
            return qs.filter(voting_start_time__lte=now, voting_end_time__gte=now)
        if status == VotingSession.Status.COMPLETED:
            return qs.filter(voting_end_time__lt=now)
        return self.none()


class VotingSession(models.Model):
    """
    A bounded election event: its own candidate list, voting window and
    result disclosure policy.
    """

    class Status(models.TextChoices):
        UPCOMING = "upcoming", "Upcoming"
        ACTIVE = "active", "Active"
        COMPLETED = "completed", "Completed"
        CANCELLED = "cancelled", "Cancelled"

    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    session_id = models.SlugField(max_length=100, unique=True)
    title = models.CharField(max_length=100)
    description = models.CharField(max_length=500, blank=True, default="")

    status = models.CharField(max_length=10, choices=Status.choices, default=Status.UPCOMING)
    voting_start_time = models.DateTimeField()
    voting_end_time = models.DateTimeField()
    result_announcement_time = models.DateTimeField()

    is_results_public = models.BooleanField(
        default=False, help_text="Reveal results to everyone before the announcement time"
    )
    # Stored for completeness; changing a cast ballot is not supported.
    allow_vote_change = models.BooleanField(default=False)
    max_votes_per_user = models.PositiveSmallIntegerField(default=1)

    # settings bundle
    show_real_time_results = models.BooleanField(default=False)
    show_voter_count = models.BooleanField(default=True)
    require_email_verification = models.BooleanField(default=True)
    allow_abstain = models.BooleanField(default=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="voting_sessions"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = VotingSessionQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="elections_v_status_6c1f0a_idx"),
            models.Index(
                fields=["voting_start_time", "voting_end_time"], name="elections_v_voting__a2b7d4_idx"
            ),
            models.Index(fields=["result_announcement_time"], name="elections_v_result__e91c3b_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(voting_start_time__lt=F("voting_end_time")),
                name="voting_session_start_before_end",
            ),
        ]

    def __str__(self):
        return f"{self.title} ({self.session_id})"

    def candidate_keys(self):
        return [candidate.key for candidate in self.candidates.all()]


class Candidate(models.Model):
    """
    Candidate model - one entry of a session's ordered candidate list.
    """

    voting_session = models.ForeignKey(
        VotingSession, on_delete=models.CASCADE, related_name="candidates"
    )
    key = models.CharField(max_length=50, help_text="Candidate id as recorded on ballots")
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    image_url = models.CharField(max_length=500, blank=True, default="")
    position = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ["position"]
        constraints = [
            models.UniqueConstraint(
                fields=["voting_session", "key"], name="unique_candidate_key_per_session"
            ),
        ]

    def __str__(self):
        return f"{self.name} ({self.key})"
