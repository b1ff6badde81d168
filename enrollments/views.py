# enrollments/views.py
from rest_framework import viewsets, filters
from django.db import transaction
from django_filters.rest_framework import DjangoFilterBackend
from .models import Student
from .serializers import StudentSerializer
from core.permissions import IsAdminOrReadOnly
from grading.services import reassign_student

def visible_students(user, qs=None):
    """
    Périmètre de lecture selon le rôle:
      - STUDENT: lui-même
      - PARENT: ses enfants
      - ADMIN/TEACHER: tous
    """
    qs = Student.objects.all() if qs is None else qs
    role = getattr(user, "role", None)
    if getattr(user, "is_superuser", False):
        return qs
    if role == "STUDENT":
        return qs.filter(user=user)
    if role == "PARENT":
        return qs.filter(parents=user)
    return qs

class StudentViewSet(viewsets.ModelViewSet):
    queryset = Student.objects.select_related("classroom").prefetch_related("parents").all()
    serializer_class = StudentSerializer
    permission_classes = [IsAdminOrReadOnly]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter]
    filterset_fields = ["classroom"]
    search_fields = ["matricule","last_name","first_name"]

    def get_queryset(self):
        return visible_students(self.request.user, super().get_queryset())

    def perform_update(self, serializer):
        old_classroom_id = serializer.instance.classroom_id
        with transaction.atomic():
            student = serializer.save()
            reassign_student(student.id, old_classroom_id, student.classroom_id)
