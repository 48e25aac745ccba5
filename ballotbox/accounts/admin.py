import logging

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from .models import User

logger = logging.getLogger("accounts")


class UserAdmin(BaseUserAdmin):
    list_display = ("username", "email", "role", "is_email_verified", "is_staff")
    list_filter = ("role", "is_email_verified", "is_staff")
    fieldsets = BaseUserAdmin.fieldsets + (
        ("Voting", {"fields": ("role", "is_email_verified")}),
    )

    def has_change_permission(self, request, obj=None):
        return request.user.is_superuser

    def has_delete_permission(self, request, obj=None):
        return request.user.is_superuser

    def has_view_permission(self, request, obj=None):
        return request.user.is_superuser or request.user.is_staff

    def save_model(self, request, obj, form, change):
        if change:
            logger.info(f"User updated by admin: {request.user.username} - {obj.username}")
        else:
            logger.info(f"User created by admin: {request.user.username} - {obj.username}")
        super().save_model(request, obj, form, change)


admin.site.register(User, UserAdmin)
