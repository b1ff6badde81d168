from django.db import models
from core.models import Classroom
from enrollments.models import Student
# Create your models here.

class GradeSnapshot(models.Model):
    """
    Note pondérée courante d'un élève dans une classe.
    Toujours recalculée (grading.services.recalculate_student), jamais éditée à la main.
    """
    student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name="grade_snapshots")
    classroom = models.ForeignKey(Classroom, on_delete=models.CASCADE, related_name="grade_snapshots")
    current_total = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True)  # /20
    percentage = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True)
    grade_letter = models.CharField(max_length=2, blank=True)
    # {"Midterm": {"score": 18.0, "weight": 30.0, "contribution": 5.4}, ...}
    breakdown = models.JSONField(default=dict, blank=True)
    has_all_marks = models.BooleanField(default=False)
    total_weight_completed = models.DecimalField(max_digits=5, decimal_places=2, default=0)
    computed_at = models.DateTimeField()

    class Meta:
        unique_together = (("student", "classroom"),)
        ordering = ["classroom", "-current_total"]

    def __str__(self):
        return f"{self.student} @ {self.classroom}: {self.current_total} ({self.grade_letter})"
