from uuid import uuid4

from django.conf import settings
from django.db import models
from django.utils import timezone


class VoteQuerySet(models.QuerySet):
    def verified(self):
        return self.filter(is_verified=True)

    def for_session(self, session):
        return self.filter(voting_session=session)


class Vote(models.Model):
    """
    One voter's ballot in one voting session. Ballots are written once and
    never updated or deleted.
    """

    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    voter = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="votes")
    voting_session = models.ForeignKey(
        "elections.VotingSession",
        to_field="session_id",
        on_delete=models.PROTECT,
        related_name="votes",
    )
    # Candidate key, or the abstain sentinel.
    candidate = models.CharField(max_length=50)
    ip_address = models.GenericIPAddressField()
    user_agent = models.CharField(max_length=500)
    # Reserved for moderation; only verified ballots are tallied.
    is_verified = models.BooleanField(default=True)
    created_at = models.DateTimeField(default=timezone.now, editable=False)

    objects = VoteQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            # One ballot per voter per session. Enforced by the database so
            # concurrent casts cannot both succeed.
            models.UniqueConstraint(
                fields=["voter", "voting_session"], name="unique_vote_per_voter_session"
            ),
        ]
        indexes = [
            models.Index(fields=["voting_session", "is_verified"], name="voting_vote_session_ver_idx"),
            models.Index(fields=["voter", "created_at"], name="voting_vote_voter_time_idx"),
        ]

    def __str__(self):
        """
        Returns a string representation of the Vote instance, useful for the Django Admin."""
        return f"Vote by {self.voter} in {self.voting_session_id}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Cast ballots are immutable and cannot be updated.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Cast ballots are immutable and cannot be deleted.")
