from django.db import models
from django.conf import settings
from core.models import Classroom
# Create your models here.

class Student(models.Model):
    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
                                related_name="student")
    matricule = models.CharField(max_length=32, unique=True)
    last_name = models.CharField(max_length=64)
    first_name = models.CharField(max_length=64)
    dob = models.DateField(null=True, blank=True)
    # classe courante (une seule à la fois)
    classroom = models.ForeignKey(Classroom, on_delete=models.PROTECT, null=True, blank=True,
                                  related_name="students")
    # accès PARENT
    parents = models.ManyToManyField(settings.AUTH_USER_MODEL, blank=True, related_name="children")

    class Meta:
        ordering = ["last_name","first_name"]

    def __str__(self):
        return f"{self.matricule} - {self.last_name} {self.first_name}"

    @property
    def full_name(self):
        return f"{self.last_name} {self.first_name}"
