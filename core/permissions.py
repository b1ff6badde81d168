# core/permissions.py
from rest_framework.permissions import BasePermission, SAFE_METHODS

ADMIN_ROLES = {"ADMIN"}

def is_admin(user) -> bool:
    return bool(getattr(user, "is_superuser", False) or getattr(user, "role", None) in ADMIN_ROLES)

class IsAdminOrReadOnly(BasePermission):
    """
    - Lecture: tout utilisateur authentifié
    - Écriture: ADMIN uniquement
    """
    def has_permission(self, request, view):
        user = request.user
        if not getattr(user, "is_authenticated", False):
            return False
        if request.method in SAFE_METHODS:
            return True
        return is_admin(user)
