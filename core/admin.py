from django.contrib import admin
from .models import Classroom
from assessments.models import AssessmentType
# Register your models here.
class AssessmentTypeInline(admin.TabularInline):
    # consultation seulement: les poids se modifient via AssessmentTypeAdmin (historique + recalcul)
    model = AssessmentType
    extra = 0
    fields = ("name", "weight", "max_score", "display_order", "is_active")
    readonly_fields = fields
    show_change_link = True

    def has_add_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

@admin.register(Classroom)
class ClassroomAdmin(admin.ModelAdmin):
    list_display = ("name", "subject", "academic_year", "teacher", "is_active")
    list_filter  = ("academic_year", "is_active")
    search_fields = ("name", "subject")
    inlines = [AssessmentTypeInline]
