from django.db import models
from django.contrib.auth.models import AbstractUser
# Create your models here.

class User(AbstractUser):
    class Role(models.TextChoices):
        ADMIN = "ADMIN"
        TEACHER = "TEACHER"
        STUDENT = "STUDENT"
        PARENT = "PARENT"
    role = models.CharField(max_length=16, choices=Role.choices, default=Role.TEACHER)

    @property
    def is_admin_role(self):
        return self.role == self.Role.ADMIN or self.is_superuser
