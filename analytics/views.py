import logging
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.exceptions import PermissionDenied
from rest_framework.response import Response
from django.shortcuts import get_object_or_404

from core.models import Classroom
from grading.services import class_average, grade_distribution, class_alerts
from assessments.services import validate_weights

logger = logging.getLogger(__name__)

# Create your views here.

@api_view(["GET"])
@permission_classes([IsAuthenticated])
def class_stats(request, classroom_id: int):
    """
    Tableau de bord d'une classe (à partir des snapshots):
      - moyenne / min / max
      - distribution des lettres A..F
      - alertes (note basse, tendance à la baisse)
      - état des pondérations
    """
    if getattr(request.user, "role", None) in ("STUDENT", "PARENT") and not request.user.is_superuser:
        raise PermissionDenied("Class statistics are reserved to staff.")
    classroom = get_object_or_404(Classroom.objects.select_related("teacher"), id=classroom_id)

    alerts = class_alerts(classroom.id)
    logger.debug("classroom=%s: %s alerts", classroom.id, len(alerts))

    return Response({
        "classroom": {
            "id": classroom.id,
            "name": classroom.name,
            "subject": classroom.subject,
            "academic_year": classroom.academic_year,
        },
        "average": class_average(classroom.id),
        "distribution": grade_distribution(classroom.id),
        "weights": validate_weights(classroom.id),
        "alerts": alerts,
    })
