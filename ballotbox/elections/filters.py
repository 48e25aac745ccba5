import django_filters

from .models import VotingSession


class VotingSessionFilter(django_filters.FilterSet):
    """
    `status` filters on the status derived from the current time, so a session
    whose window has passed is found under `completed` even if its stored
    status was never refreshed.
    """

    status = django_filters.ChoiceFilter(
        choices=VotingSession.Status.choices, method="filter_status"
    )
    title = django_filters.CharFilter(lookup_expr="icontains")

    class Meta:
        model = VotingSession
        fields = ["status", "title"]

    def filter_status(self, queryset, name, value):
        return queryset.with_status(value)
