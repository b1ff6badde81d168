# assessments/views.py
from rest_framework import viewsets, status
from rest_framework.response import Response
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied

from .models import AssessmentType, Mark
from .serializers import AssessmentTypeSerializer, MarkSerializer, BulkMarksUpsertSerializer
from .permissions import ClassroomEditorOrReadOnly
from .utils import teacher_can_edit
from . import services
from enrollments.views import visible_students

class ClassroomScopedMixin:
    permission_classes = [ClassroomEditorOrReadOnly]

    def _check_can_edit(self, classroom_id):
        if not teacher_can_edit(self.request.user, classroom_id):
            raise PermissionDenied(ClassroomEditorOrReadOnly.message)

class AssessmentTypeViewSet(ClassroomScopedMixin, viewsets.ModelViewSet):
    queryset = AssessmentType.objects.select_related("classroom")
    serializer_class = AssessmentTypeSerializer
    filterset_fields = ["classroom","is_active"]

    def perform_create(self, serializer):
        self._check_can_edit(serializer.validated_data["classroom"].id)
        serializer.save()

    def perform_destroy(self, instance):
        services.delete_assessment_type(instance)

class MarkViewSet(ClassroomScopedMixin, viewsets.ModelViewSet):
    queryset = Mark.objects.select_related(
        "student","assessment_type__classroom","entered_by"
    )
    serializer_class = MarkSerializer
    filterset_fields = ["student","assessment_type","status","assessment_date"]  # GET /api/marks/?student=<id>

    def get_queryset(self):
        qs = super().get_queryset()
        user = self.request.user
        # STUDENT/PARENT: uniquement les notes publiées de leurs élèves
        if getattr(user, "role", None) in ("STUDENT", "PARENT") and not user.is_superuser:
            qs = qs.filter(student__in=visible_students(user), status=Mark.Status.PUBLISHED)
        classroom = self.request.query_params.get("classroom")
        if classroom:
            qs = qs.filter(assessment_type__classroom_id=classroom)
        return qs

    def perform_create(self, serializer):
        self._check_can_edit(serializer.validated_data["assessment_type"].classroom_id)
        serializer.save()

    def perform_destroy(self, instance):
        services.delete_mark(instance)

    @action(detail=False, methods=["post"], url_path="bulk")
    def bulk(self, request, *args, **kwargs):
        """Upsert de notes pour une évaluation (un type + une date)."""
        ser = BulkMarksUpsertSerializer(data=request.data, context={"request": request})
        ser.is_valid(raise_exception=True)
        self._check_can_edit(ser.validated_data["assessment_type"].classroom_id)
        result = ser.save()
        return Response(result, status=status.HTTP_200_OK)
