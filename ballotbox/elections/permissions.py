from rest_framework.permissions import SAFE_METHODS, BasePermission


class IsAdminOrAuthenticatedReadOnly(BasePermission):
    """
    Any authenticated user may read; only admins may write.
    """

    message = "Admin access required"

    def has_permission(self, request, view):
        user = request.user
        if not (user and user.is_authenticated):
            return False
        # allow read-only methods for any signed-in user.
        if request.method in SAFE_METHODS:
            return True
        return user.is_admin
