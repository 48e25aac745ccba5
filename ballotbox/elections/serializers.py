import logging

from django.db import transaction
from rest_framework import serializers

from voting.visibility import should_show_results

from .lifecycle import compute_status, is_voting_active
from .models import ABSTAIN, Candidate, VotingSession

logger = logging.getLogger("elections")


class CandidateSerializer(serializers.ModelSerializer):
    """
    One entry of a session's candidate list. `id` is the candidate key that
    ballots record.
    """

    id = serializers.CharField(source="key", max_length=50)

    class Meta:
        model = Candidate
        fields = ["id", "name", "description", "image_url"]


class SessionSettingsSerializer(serializers.Serializer):
    """Groups the per-session toggles under a single `settings` object."""

    show_real_time_results = serializers.BooleanField(required=False)
    show_voter_count = serializers.BooleanField(required=False)
    require_email_verification = serializers.BooleanField(required=False)
    allow_abstain = serializers.BooleanField(required=False)


class VotingSessionSerializer(serializers.ModelSerializer):
    """
    Serializer for creating and reading voting sessions.
    Status and the derived flags are computed at serialization time, never read
    back from the stored column.
    """

    candidates = CandidateSerializer(many=True)
    settings = SessionSettingsSerializer(source="*", required=False)
    status = serializers.SerializerMethodField()
    is_voting_active = serializers.SerializerMethodField()
    should_show_results = serializers.SerializerMethodField()
    voter_count = serializers.SerializerMethodField()
    created_by = serializers.StringRelatedField(read_only=True)

    class Meta:
        model = VotingSession
        fields = (
            "id",
            "session_id",
            "title",
            "description",
            "candidates",
            "status",
            "voting_start_time",
            "voting_end_time",
            "result_announcement_time",
            "is_results_public",
            "allow_vote_change",
            "max_votes_per_user",
            "settings",
            "is_voting_active",
            "should_show_results",
            "voter_count",
            "created_by",
            "created_at",
            "updated_at",
        )
        read_only_fields = ("id", "allow_vote_change", "max_votes_per_user", "created_at", "updated_at")

    def _now(self):
        return self.context.get("now")

    def get_status(self, obj):
        return compute_status(obj, self._now())

    def get_is_voting_active(self, obj):
        return is_voting_active(obj, self._now())

    def get_should_show_results(self, obj):
        return should_show_results(obj, self._now())

    def get_voter_count(self, obj):
        if not obj.show_voter_count:
            return None
        return obj.votes.filter(is_verified=True).count()

    def validate_candidates(self, value):
        if not value:
            raise serializers.ValidationError("A voting session needs at least one candidate.")

        keys = [candidate["key"] for candidate in value]
        if ABSTAIN in keys:
            raise serializers.ValidationError(f"'{ABSTAIN}' is reserved and cannot be a candidate id.")
        if len(set(keys)) != len(keys):
            logger.warning(f"Duplicate candidate ids submitted: {keys}")
            raise serializers.ValidationError("Candidate ids must be unique within a session.")
        return value

    def validate(self, data):
        """
        Business rules not covered by field validation.
        Timing fields missing from `data` are taken from the instance being updated.
        """
        instance = self.instance
        start_time = data.get("voting_start_time", instance.voting_start_time if instance else None)
        end_time = data.get("voting_end_time", instance.voting_end_time if instance else None)

        logger.debug(
            f"Validating session: start_time:{start_time}, end_time:{end_time}, instance = {instance}"
        )

        if start_time and end_time and start_time >= end_time:
            logger.warning("Voting end time must be after start time.")
            raise serializers.ValidationError(
                {"voting_end_time": "The voting end time must be after the voting start time."}
            )
        return data

    @transaction.atomic
    def create(self, validated_data):
        candidates = validated_data.pop("candidates")
        session = VotingSession.objects.create(**validated_data)
        Candidate.objects.bulk_create(
            [
                Candidate(voting_session=session, position=position, **candidate)
                for position, candidate in enumerate(candidates)
            ]
        )
        logger.info(
            f"Voting session created: {session.session_id} with {len(candidates)} candidates"
        )
        return session


class VotingSessionUpdateSerializer(VotingSessionSerializer):
    """
    Admin updates. Only the timing, title, description, public-results flag
    and settings may change; everything else is read only.
    """

    candidates = CandidateSerializer(many=True, read_only=True)

    class Meta(VotingSessionSerializer.Meta):
        read_only_fields = VotingSessionSerializer.Meta.read_only_fields + ("session_id",)

    def update(self, instance, validated_data):
        logger.info(f"Voting session updated by admin: {instance.session_id}, fields={sorted(validated_data)}")
        return super().update(instance, validated_data)


class AnnouncementTimeSerializer(serializers.Serializer):
    announcement_time = serializers.DateTimeField()
    make_results_public = serializers.BooleanField(required=False)

    def update(self, instance, validated_data):
        instance.result_announcement_time = validated_data["announcement_time"]
        update_fields = ["result_announcement_time", "updated_at"]
        if "make_results_public" in validated_data:
            instance.is_results_public = validated_data["make_results_public"]
            update_fields.append("is_results_public")
        instance.save(update_fields=update_fields)
        logger.info(
            f"Result announcement for {instance.session_id} set to {instance.result_announcement_time}"
        )
        return instance
