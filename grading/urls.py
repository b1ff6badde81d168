from django.urls import path
from rest_framework.routers import DefaultRouter
from .views import (
    GradeSnapshotViewSet, StudentGradeView, StudentTrendView, StudentPredictionView, ClassRecalculateView
)

router = DefaultRouter()
router.register(r"grades", GradeSnapshotViewSet, basename="grades")

urlpatterns = router.urls + [
    path("grading/students/<int:student_id>/grade/", StudentGradeView.as_view(), name="grading-student-grade"),
    path("grading/students/<int:student_id>/trend/", StudentTrendView.as_view(), name="grading-student-trend"),
    path("grading/students/<int:student_id>/prediction/", StudentPredictionView.as_view(), name="grading-student-prediction"),
    path("grading/classes/<int:classroom_id>/recalculate/", ClassRecalculateView.as_view(), name="grading-class-recalculate"),
]
