from rest_framework import viewsets
from rest_framework.response import Response
from rest_framework.decorators import action
from .models import Classroom
from .serializers import ClassroomSerializer
from .permissions import IsAdminOrReadOnly
# Create your views here.

class ClassroomViewSet(viewsets.ModelViewSet):
    queryset = Classroom.objects.select_related("teacher").all()
    serializer_class = ClassroomSerializer
    permission_classes = [IsAdminOrReadOnly]
    filterset_fields = ["academic_year","subject","teacher","is_active"]

    @action(detail=True, methods=["get"])
    def weights(self, request, pk=None):
        """Somme des poids actifs: {is_valid, total_weight, remaining}"""
        from assessments.services import validate_weights  # évite import circulaire
        classroom = self.get_object()
        return Response(validate_weights(classroom.id))

    @action(detail=True, methods=["get"], url_path="weight-history")
    def weight_history(self, request, pk=None):
        from assessments.serializers import AssessmentWeightHistorySerializer
        classroom = self.get_object()
        qs = classroom.weight_history.select_related("assessment_type", "changed_by")
        return Response(AssessmentWeightHistorySerializer(qs, many=True).data)
