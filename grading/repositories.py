"""
Accès aux données du moteur de notes.

Les services dépendent de GradingRepository, pas de l'ORM directement;
DjangoGradingRepository est l'implémentation par défaut.
"""
from django.utils import timezone
from rest_framework.exceptions import NotFound

from assessments.models import AssessmentType, Mark
from enrollments.models import Student
from .calculations import AssessmentTypeInfo, MarkInfo, GradeResult, _q
from .models import GradeSnapshot


class GradingRepository:
    def get_active_assessment_types(self, classroom_id):
        raise NotImplementedError

    def get_published_marks(self, student_id, classroom_id=None, limit=None):
        """Notes publiées, les plus récentes d'abord (date d'évaluation puis saisie)."""
        raise NotImplementedError

    def get_student_ids_in_class(self, classroom_id):
        raise NotImplementedError

    def lock_student(self, student_id):
        """Sérialise les recalculs d'un même élève (à appeler dans une transaction)."""
        raise NotImplementedError

    def get_snapshot(self, student_id, classroom_id):
        raise NotImplementedError

    def save_snapshot(self, student_id, classroom_id, result: GradeResult):
        raise NotImplementedError

    def delete_snapshot(self, student_id, classroom_id):
        raise NotImplementedError

    def get_snapshots_for_class(self, classroom_id):
        raise NotImplementedError


class DjangoGradingRepository(GradingRepository):

    def get_active_assessment_types(self, classroom_id):
        qs = (AssessmentType.objects
              .filter(classroom_id=classroom_id, is_active=True)
              .order_by("display_order", "id"))
        return [AssessmentTypeInfo(id=a.id, name=a.name, weight=a.weight, display_order=a.display_order)
                for a in qs]

    def get_published_marks(self, student_id, classroom_id=None, limit=None):
        qs = (Mark.objects
              .filter(student_id=student_id, status=Mark.Status.PUBLISHED)
              .order_by("-assessment_date", "-entered_at", "-id"))
        if classroom_id is not None:
            qs = qs.filter(assessment_type__classroom_id=classroom_id)
        if limit is not None:
            qs = qs[:limit]
        return [MarkInfo(assessment_type_id=m.assessment_type_id, score=m.score, max_score=m.max_score,
                         assessment_date=m.assessment_date, entered_at=m.entered_at)
                for m in qs]

    def get_student_ids_in_class(self, classroom_id):
        return list(Student.objects.filter(classroom_id=classroom_id).order_by("id").values_list("id", flat=True))

    def lock_student(self, student_id):
        # SELECT ... FOR UPDATE (sans effet sur SQLite, qui sérialise déjà les écritures)
        try:
            return Student.objects.select_for_update().get(id=student_id)
        except Student.DoesNotExist:
            raise NotFound(f"Student {student_id} not found.")

    def get_snapshot(self, student_id, classroom_id):
        return GradeSnapshot.objects.filter(student_id=student_id, classroom_id=classroom_id).first()

    def save_snapshot(self, student_id, classroom_id, result: GradeResult):
        # lecture puis insert/update explicite, dans la transaction de l'appelant
        snapshot = (GradeSnapshot.objects.select_for_update()
                    .filter(student_id=student_id, classroom_id=classroom_id).first())
        if snapshot is None:
            snapshot = GradeSnapshot(student_id=student_id, classroom_id=classroom_id)
        snapshot.current_total = _q(result.current_total)
        snapshot.percentage = _q(result.percentage)
        snapshot.grade_letter = result.grade_letter or ""
        snapshot.breakdown = result.breakdown
        snapshot.has_all_marks = result.has_all_marks
        snapshot.total_weight_completed = _q(result.total_weight_completed)
        snapshot.computed_at = timezone.now()
        snapshot.save()
        return snapshot

    def delete_snapshot(self, student_id, classroom_id):
        deleted, _ = GradeSnapshot.objects.filter(student_id=student_id, classroom_id=classroom_id).delete()
        return deleted

    def get_snapshots_for_class(self, classroom_id):
        return list(GradeSnapshot.objects
                    .filter(classroom_id=classroom_id)
                    .select_related("student"))
