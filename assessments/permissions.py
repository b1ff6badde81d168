# assessments/permissions.py
from rest_framework.permissions import BasePermission, SAFE_METHODS

from .utils import teacher_can_edit

EDITOR_ROLES = {"ADMIN", "TEACHER"}


class ClassroomEditorOrReadOnly(BasePermission):
    """
    - Lecture: tout utilisateur authentifié (le périmètre STUDENT/PARENT est
      appliqué par get_queryset)
    - Écriture: ADMIN, ou TEACHER responsable de la classe de l'objet
    La création (pas encore d'objet) est vérifiée dans perform_create.
    """
    message = "Not allowed to edit data for this class."

    def has_permission(self, request, view):
        user = request.user
        if not getattr(user, "is_authenticated", False):
            return False
        if request.method in SAFE_METHODS or getattr(user, "is_superuser", False):
            return True
        return getattr(user, "role", None) in EDITOR_ROLES

    def has_object_permission(self, request, view, obj):
        if request.method in SAFE_METHODS:
            return True
        return teacher_can_edit(request.user, obj.classroom_id)
