from django.contrib import admin

from .models import Vote


class VoteAdmin(admin.ModelAdmin):
    """
    Ballots are an audit record: viewable by staff, never editable.
    """

    list_display = ("id", "voting_session", "voter", "candidate", "is_verified", "created_at")
    list_filter = ("voting_session", "is_verified")
    search_fields = ("voter__username", "voting_session__session_id")
    readonly_fields = [field.name for field in Vote._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    def has_view_permission(self, request, obj=None):
        return request.user.is_staff or request.user.is_superuser


admin.site.register(Vote, VoteAdmin)
