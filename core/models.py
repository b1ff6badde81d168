from django.db import models
from django.conf import settings

# Create your models here.
class Classroom(models.Model):
    """
    Une classe = un groupe d'élèves pour une matière et une année.
    Exemple: name='Form 5A', subject='Mathematics', academic_year='2025/2026'
    """
    name = models.CharField(max_length=64)
    subject = models.CharField(max_length=64)
    academic_year = models.CharField(max_length=9)
    teacher = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
                                related_name="classes")
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = (("academic_year", "name", "subject"),)
        ordering = ["-academic_year", "name", "subject"]

    def __str__(self):
        return f"{self.name} - {self.subject} ({self.academic_year})"
