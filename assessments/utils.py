# assessments/utils.py
from core.models import Classroom
from core.permissions import is_admin

def teacher_can_edit(user, classroom_id: int) -> bool:
    """
    True si:
      - user est ADMIN (écriture autorisée partout), ou
      - user est TEACHER ET responsable de la classe classroom_id.
    """
    if not getattr(user, "is_authenticated", False):
        return False

    if is_admin(user):
        return True

    if getattr(user, "role", None) != "TEACHER":
        return False

    return Classroom.objects.filter(id=classroom_id, teacher=user).exists()
