from django.contrib import admin
from django.db import transaction
from grading.services import reassign_student
from .models import Student
# Register your models here.

@admin.register(Student)
class StudentAdmin(admin.ModelAdmin):
    list_display = ("matricule", "last_name", "first_name", "classroom")
    list_filter = ("classroom__academic_year", "classroom")
    search_fields = ("matricule", "last_name", "first_name")
    filter_horizontal = ("parents",)

    def save_model(self, request, obj, form, change):
        old_classroom_id = form.initial.get("classroom") if change else None
        with transaction.atomic():
            super().save_model(request, obj, form, change)
            if change:
                reassign_student(obj.id, old_classroom_id, obj.classroom_id)
