from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models
from django.db.models import Sum

from core.models import Classroom
from grading.conf import get_config
from .validators import validate_score_range
from enrollments.models import Student

# Create your models here.

class AssessmentType(models.Model):
    """Catégorie d'évaluation pondérée d'une classe (ex: Midterm 30%)."""
    classroom = models.ForeignKey(Classroom, on_delete=models.CASCADE, related_name="assessment_types")
    name = models.CharField(max_length=64)  # ex: Midterm Exam, Homework
    weight = models.DecimalField(max_digits=5, decimal_places=2,
                                 validators=[MinValueValidator(0), MaxValueValidator(100)])
    max_score = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal("20.00"),
                                    validators=[MinValueValidator(Decimal("0.01"))])
    display_order = models.PositiveSmallIntegerField(default=0)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = (("classroom", "name"),)
        ordering = ["classroom", "display_order", "id"]

    def __str__(self):
        return f"{self.name} ({self.weight}%)"

    def clean(self):
        # garde-fou pour l'admin; l'API passe par assessments.services (avec verrou)
        if not self.is_active or self.weight is None or not self.classroom_id:
            return
        others = (AssessmentType.objects
                  .filter(classroom_id=self.classroom_id, is_active=True)
                  .exclude(pk=self.pk)
                  .aggregate(total=Sum("weight"))["total"]) or Decimal("0")
        if others + Decimal(self.weight) > get_config().max_total_weight:
            raise ValidationError({"weight": f"Total weight would exceed 100% ({others + Decimal(self.weight)}%)."})


class Mark(models.Model):
    class Status(models.TextChoices):
        DRAFT = "draft", "Draft"
        PUBLISHED = "published", "Published"

    student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name="marks")
    assessment_type = models.ForeignKey(AssessmentType, on_delete=models.PROTECT, related_name="marks")
    assessment_date = models.DateField()
    score = models.DecimalField(max_digits=5, decimal_places=2, validators=[validate_score_range])
    max_score = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal("20.00"))
    teacher_comment = models.TextField(blank=True)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PUBLISHED)
    entered_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
                                   related_name="entered_marks")
    entered_at = models.DateTimeField(auto_now_add=True)
    modified_at = models.DateTimeField(auto_now=True)
    # [{changed_at, changed_by, field, old, new}, ...]
    change_log = models.JSONField(default=list, blank=True)

    class Meta:
        unique_together = (("student", "assessment_type", "assessment_date"),)
        ordering = ["-assessment_date", "-entered_at"]

    def __str__(self):
        return f"{self.student} → {self.assessment_type.name} [{self.assessment_date}]: {self.score}"

    @property
    def classroom_id(self):
        return self.assessment_type.classroom_id


class AssessmentWeightHistory(models.Model):
    classroom = models.ForeignKey(Classroom, on_delete=models.CASCADE, related_name="weight_history")
    assessment_type = models.ForeignKey(AssessmentType, on_delete=models.CASCADE, related_name="weight_history")
    old_weight = models.DecimalField(max_digits=5, decimal_places=2)
    new_weight = models.DecimalField(max_digits=5, decimal_places=2)
    changed_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
                                   related_name="weight_changes")
    changed_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-changed_at", "-id"]

    def __str__(self):
        return f"{self.assessment_type.name}: {self.old_weight}% → {self.new_weight}%"
