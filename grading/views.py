from django.shortcuts import get_object_or_404
from rest_framework import viewsets
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from rest_framework.exceptions import PermissionDenied, ValidationError

from core.models import Classroom
from enrollments.models import Student
from enrollments.views import visible_students
from assessments.utils import teacher_can_edit
from .models import GradeSnapshot
from .serializers import GradeSnapshotSerializer
from .services import compute_student_grade, recalculate_class, detect_student_trend, predict_student_final

def _int_param(request, name, required=False):
    raw = request.query_params.get(name)
    if raw in (None, ""):
        if required:
            raise ValidationError({name: "This query parameter is required."})
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError({name: "Must be an integer."})

def _visible_student(request, student_id):
    # 404 si l'élève n'existe pas ou sort du périmètre (STUDENT/PARENT)
    return get_object_or_404(visible_students(request.user), id=student_id)

def _classroom_for(request, student):
    """?classroom=<id>, sinon la classe courante de l'élève."""
    classroom_id = _int_param(request, "classroom")
    if classroom_id is None:
        if student.classroom_id is None:
            raise ValidationError({"classroom": "Student has no current class; pass ?classroom=<id>."})
        return student.classroom_id
    return get_object_or_404(Classroom, id=classroom_id).id

class GradeSnapshotViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = GradeSnapshot.objects.select_related("student", "classroom")
    serializer_class = GradeSnapshotSerializer
    permission_classes = [IsAuthenticated]
    filterset_fields = ["classroom", "student", "grade_letter"]

    def get_queryset(self):
        qs = super().get_queryset()
        return qs.filter(student__in=visible_students(self.request.user))

class StudentGradeView(APIView):
    """Calcul à la volée (non persisté) de la note d'un élève dans une classe."""
    permission_classes = [IsAuthenticated]
    def get(self, request, student_id):
        student = _visible_student(request, student_id)
        classroom_id = _classroom_for(request, student)
        result = compute_student_grade(student.id, classroom_id)
        return Response({"student_id": student.id, "classroom_id": classroom_id, **result.as_dict()})

class StudentTrendView(APIView):
    permission_classes = [IsAuthenticated]
    def get(self, request, student_id):
        student = _visible_student(request, student_id)
        lookback = _int_param(request, "lookback")
        if lookback is not None and lookback < 1:
            raise ValidationError({"lookback": "Must be at least 1."})
        classroom_id = _int_param(request, "classroom")
        trend = detect_student_trend(student.id, lookback=lookback, classroom_id=classroom_id)
        return Response({"student_id": student.id, **trend.as_dict()})

class StudentPredictionView(APIView):
    permission_classes = [IsAuthenticated]
    def get(self, request, student_id):
        student = _visible_student(request, student_id)
        classroom_id = _classroom_for(request, student)
        prediction = predict_student_final(student.id, classroom_id)
        return Response({"student_id": student.id, "classroom_id": classroom_id, **prediction.as_dict()})

class ClassRecalculateView(APIView):
    permission_classes = [IsAuthenticated]
    def post(self, request, classroom_id):
        classroom = get_object_or_404(Classroom, id=classroom_id)
        if not teacher_can_edit(request.user, classroom.id):
            raise PermissionDenied("Not allowed to recalculate grades for this class.")
        return Response(recalculate_class(classroom.id))
