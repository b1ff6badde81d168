from django.contrib import admin
from .models import GradeSnapshot
# Register your models here.

@admin.register(GradeSnapshot)
class GradeSnapshotAdmin(admin.ModelAdmin):
    list_display = ("student", "classroom", "current_total", "percentage", "grade_letter", "computed_at")
    list_filter = ("classroom", "grade_letter")
    search_fields = ("student__matricule", "student__last_name")

    # dérivé des notes: lecture seule
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False
