from django.urls import path

from .views import (
    AdminResultsView,
    CastVoteView,
    PublicResultsView,
    VoteHistoryView,
    VoteStatusView,
    VotingStatsView,
)

app_name = "voting"

urlpatterns = [
    path("sessions/<slug:session_id>/vote/", CastVoteView.as_view(), name="cast_vote"),
    path("sessions/<slug:session_id>/status/", VoteStatusView.as_view(), name="vote_status"),
    path("sessions/<slug:session_id>/results/", PublicResultsView.as_view(), name="public_results"),
    path("sessions/<slug:session_id>/results/admin/", AdminResultsView.as_view(), name="admin_results"),
    path("sessions/<slug:session_id>/stats/", VotingStatsView.as_view(), name="voting_stats"),
    path("history/", VoteHistoryView.as_view(), name="vote_history"),
    # Single-election routes; they act on settings.DEFAULT_VOTING_SESSION.
    path("cast/", CastVoteView.as_view(), name="cast_vote_default"),
    path("status/", VoteStatusView.as_view(), name="vote_status_default"),
    path("results/public/", PublicResultsView.as_view(), name="public_results_default"),
    path("results/", AdminResultsView.as_view(), name="admin_results_default"),
    path("stats/", VotingStatsView.as_view(), name="voting_stats_default"),
]
