from rest_framework import serializers

from .models import Vote


class VoteCreateSerializer(serializers.Serializer):
    """
    Input for casting a ballot. Everything else about the ballot (voter,
    session, provenance) comes from the request, not the body.
    """

    candidate = serializers.CharField(max_length=50)


class VoteReceiptSerializer(serializers.ModelSerializer):
    """
    What the voter gets back after a successful cast.
    """

    timestamp = serializers.DateTimeField(source="created_at", read_only=True)

    class Meta:
        model = Vote
        fields = ["id", "candidate", "timestamp"]


class VoteHistorySerializer(serializers.ModelSerializer):
    """
    Serializer for user's own ballots, annotated with the session title.
    """

    session_title = serializers.CharField(source="voting_session.title", read_only=True)
    timestamp = serializers.DateTimeField(source="created_at", read_only=True)

    class Meta:
        model = Vote
        fields = ["id", "candidate", "voting_session", "session_title", "timestamp", "is_verified"]


class SessionSummarySerializer(serializers.Serializer):
    session_id = serializers.CharField()
    title = serializers.CharField()
    status = serializers.CharField()
    announcement_time = serializers.DateTimeField(source="result_announcement_time")


class CandidateResultSerializer(serializers.Serializer):
    candidate = serializers.CharField()
    name = serializers.CharField()
    count = serializers.IntegerField()
    percentage = serializers.FloatField()


class PublicTallySerializer(serializers.Serializer):
    session = SessionSummarySerializer()
    results = CandidateResultSerializer(many=True)
    total_votes = serializers.IntegerField()


class BallotDetailSerializer(serializers.Serializer):
    voter_id = serializers.IntegerField()
    username = serializers.CharField()
    name = serializers.CharField()
    email = serializers.CharField()
    role = serializers.CharField()
    voted_at = serializers.DateTimeField()
    ip_address = serializers.CharField()


class AdminCandidateResultSerializer(CandidateResultSerializer):
    ballots = BallotDetailSerializer(many=True)


class AdminTallySerializer(serializers.Serializer):
    session = SessionSummarySerializer()
    results = AdminCandidateResultSerializer(many=True)
    total_votes = serializers.IntegerField()
