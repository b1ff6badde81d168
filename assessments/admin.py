from django import forms
from django.contrib import admin
from django.core.exceptions import ValidationError
from rest_framework import serializers

from .models import AssessmentType, Mark, AssessmentWeightHistory
from . import services
# Register your models here.
# Les écritures passent par assessments.services (verrous, historique des poids, recalcul des snapshots).

ASSESSMENT_TYPE_FIELDS = ("name", "weight", "display_order", "is_active")
MARK_FIELDS = ("score", "status", "assessment_date", "teacher_comment")


def _as_form_error(exc):
    # serializers.ValidationError (DRF) -> ValidationError (Django)
    return ValidationError(exc.detail if isinstance(exc.detail, dict) else list(exc.detail))


class AssessmentTypeAdminForm(forms.ModelForm):
    class Meta:
        model = AssessmentType
        fields = ("classroom",) + ASSESSMENT_TYPE_FIELDS

    def clean_name(self):
        # classroom en lecture seule à la modification: unique_together n'est plus vérifié par le form
        name = self.cleaned_data["name"]
        if self.instance.pk and AssessmentType.objects.filter(
                classroom_id=self.instance.classroom_id, name=name).exclude(pk=self.instance.pk).exists():
            raise ValidationError("An assessment type with this name already exists in this class.")
        return name


@admin.register(AssessmentType)
class AssessmentTypeAdmin(admin.ModelAdmin):
    form = AssessmentTypeAdminForm
    list_display = ("name", "classroom", "weight", "display_order", "is_active")
    list_filter = ("is_active", "classroom__academic_year")
    search_fields = ("name", "classroom__name", "classroom__subject")
    fields = ("classroom",) + ASSESSMENT_TYPE_FIELDS

    def get_readonly_fields(self, request, obj=None):
        return ("classroom",) if obj else ()

    def has_delete_permission(self, request, obj=None):
        # un type déjà noté se désactive, il ne se supprime pas
        if obj is not None and obj.marks.exists():
            return False
        return super().has_delete_permission(request, obj)

    def save_model(self, request, obj, form, change):
        if change:
            changes = {f: form.cleaned_data[f] for f in form.changed_data if f in ASSESSMENT_TYPE_FIELDS}
            services.update_assessment_type(obj, changes, user=request.user)
            return
        created = services.create_assessment_type(
            classroom_id=obj.classroom_id,
            name=obj.name,
            weight=obj.weight,
            display_order=obj.display_order,
            is_active=obj.is_active,
        )
        obj.pk = created.pk

    def delete_model(self, request, obj):
        services.delete_assessment_type(obj)

    def delete_queryset(self, request, queryset):
        for obj in queryset:
            services.delete_assessment_type(obj)


class MarkAdminForm(forms.ModelForm):
    class Meta:
        model = Mark
        fields = ("student", "assessment_type") + MARK_FIELDS

    def clean(self):
        data = super().clean()
        student = data.get("student") or getattr(self.instance, "student", None)
        atype = data.get("assessment_type") or getattr(self.instance, "assessment_type", None)
        try:
            if data.get("score") is not None:
                services.check_score(data["score"], atype)
            if self.instance.pk is None and student is not None and atype is not None:
                services.check_same_classroom(student, atype)
        except serializers.ValidationError as exc:
            raise _as_form_error(exc)
        return data


@admin.register(Mark)
class MarkAdmin(admin.ModelAdmin):
    form = MarkAdminForm
    list_display = ("student", "assessment_type", "assessment_date", "score", "status")
    list_filter = ("status", "assessment_type__classroom")
    search_fields = ("student__matricule", "student__last_name", "assessment_type__name")

    def get_readonly_fields(self, request, obj=None):
        if obj:
            return ("student", "assessment_type", "entered_by", "entered_at", "modified_at", "change_log")
        return ()

    def save_model(self, request, obj, form, change):
        if change:
            changes = {f: form.cleaned_data[f] for f in form.changed_data if f in MARK_FIELDS}
            services.update_mark(obj, changes, user=request.user)
            return
        created = services.create_mark(
            student=obj.student,
            assessment_type=obj.assessment_type,
            assessment_date=obj.assessment_date,
            score=obj.score,
            status=obj.status,
            teacher_comment=obj.teacher_comment,
            user=request.user,
        )
        obj.pk = created.pk

    def delete_model(self, request, obj):
        services.delete_mark(obj)

    def delete_queryset(self, request, queryset):
        for obj in queryset.select_related("assessment_type"):
            services.delete_mark(obj)

@admin.register(AssessmentWeightHistory)
class AssessmentWeightHistoryAdmin(admin.ModelAdmin):
    list_display = ("assessment_type", "old_weight", "new_weight", "changed_by", "changed_at")
    list_filter = ("classroom",)

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False
