from rest_framework.permissions import BasePermission


class IsTeacher(BasePermission):
    """
    Restricts an endpoint to users with the TEACHER role.
    """

    message = {
        "code": "TEACHER_ONLY",
        "message": "Permission denied: teachers only.",
    }

    def has_permission(self, request, view):
        user = getattr(request, "user", None)
        return bool(user and user.is_authenticated and getattr(user, "is_teacher", False))


class IsOwnerOrTeacher(BasePermission):
    """
    Object-level check: the owner (``obj.user``) or any teacher may read.
    """

    message = {
        "code": "FORBIDDEN",
        "message": "Forbidden",
    }

    def has_object_permission(self, request, view, obj):
        user = request.user
        return obj.user_id == user.pk or getattr(user, "is_teacher", False)
