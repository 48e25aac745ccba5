import logging

from django.contrib import admin

from .models import Candidate, VotingSession

logger = logging.getLogger("elections")


class CandidateInline(admin.TabularInline):
    model = Candidate
    extra = 0
    fields = ("position", "key", "name", "description", "image_url")

    # The candidate list is fixed once the session exists.
    def has_add_permission(self, request, obj=None):
        return obj is None

    def has_change_permission(self, request, obj=None):
        return obj is None

    def has_delete_permission(self, request, obj=None):
        return obj is None


class VotingSessionAdmin(admin.ModelAdmin):
    list_display = ("session_id", "title", "status", "voting_start_time", "voting_end_time", "created_by")
    list_filter = ("status",)
    search_fields = ("session_id", "title")
    inlines = [CandidateInline]

    def get_readonly_fields(self, request, obj=None):
        if obj:
            return ("session_id", "created_by", "status", "created_at", "updated_at")
        return ("created_by", "status", "created_at", "updated_at")

    def has_delete_permission(self, request, obj=None):
        return False

    def save_model(self, request, obj, form, change):
        if change:
            logger.info(f"Voting session updated by admin: {request.user.username} - {obj.session_id}")
        else:
            obj.created_by = request.user
            logger.info(f"Voting session created by admin: {request.user.username} - {obj.session_id}")
        super().save_model(request, obj, form, change)


admin.site.register(VotingSession, VotingSessionAdmin)
