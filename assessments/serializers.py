from rest_framework import serializers

from .models import AssessmentType, Mark, AssessmentWeightHistory
from . import services


# -------------------------
#  Model Serializers
# -------------------------

class AssessmentTypeSerializer(serializers.ModelSerializer):
    total_marks = serializers.IntegerField(source="marks.count", read_only=True)

    class Meta:
        model = AssessmentType
        fields = ["id", "classroom", "name", "weight", "max_score", "display_order", "is_active",
                  "total_marks", "created_at", "updated_at"]
        read_only_fields = ["max_score", "created_at", "updated_at"]

    def validate_classroom(self, classroom):
        # on ne déplace pas un type d'évaluation d'une classe à l'autre
        if self.instance is not None and classroom.id != self.instance.classroom_id:
            raise serializers.ValidationError("Assessment type cannot be moved to another class.")
        return classroom

    def create(self, validated):
        return services.create_assessment_type(
            classroom_id=validated["classroom"].id,
            name=validated["name"],
            weight=validated["weight"],
            display_order=validated.get("display_order", 0),
            is_active=validated.get("is_active", True),
        )

    def update(self, instance, validated):
        validated.pop("classroom", None)
        request = self.context.get("request")
        return services.update_assessment_type(instance, validated, user=getattr(request, "user", None))


class MarkSerializer(serializers.ModelSerializer):
    student_name = serializers.CharField(source="student.full_name", read_only=True)
    assessment_type_name = serializers.CharField(source="assessment_type.name", read_only=True)
    classroom = serializers.IntegerField(source="assessment_type.classroom_id", read_only=True)
    entered_by = serializers.CharField(source="entered_by.username", read_only=True, default=None)

    class Meta:
        model = Mark
        fields = ["id", "student", "student_name", "assessment_type", "assessment_type_name", "classroom",
                  "assessment_date", "score", "max_score", "status", "teacher_comment",
                  "entered_by", "entered_at", "modified_at", "change_log"]
        read_only_fields = ["max_score", "entered_at", "modified_at", "change_log"]
        # le doublon (student, assessment_type, date) est un 409 levé par assessments.services
        validators = []

    def to_representation(self, instance):
        data = super().to_representation(instance)
        # Convertir Decimal -> float pour confort front
        for key in ("score", "max_score"):
            if data.get(key) is not None:
                data[key] = float(data[key])
        return data

    def validate(self, data):
        if self.instance is not None:
            for field in ("student", "assessment_type"):
                if field in data and data[field] != getattr(self.instance, field):
                    raise serializers.ValidationError({field: "Cannot be changed; delete and re-enter the mark."})
        student = data.get("student") or getattr(self.instance, "student", None)
        atype = data.get("assessment_type") or getattr(self.instance, "assessment_type", None)
        if "score" in data:
            data["score"] = services.check_score(data["score"], atype)
        if self.instance is None:
            services.check_same_classroom(student, atype)
        return data

    def create(self, validated):
        request = self.context.get("request")
        return services.create_mark(
            student=validated["student"],
            assessment_type=validated["assessment_type"],
            assessment_date=validated["assessment_date"],
            score=validated["score"],
            status=validated.get("status", Mark.Status.PUBLISHED),
            teacher_comment=validated.get("teacher_comment", ""),
            user=getattr(request, "user", None),
        )

    def update(self, instance, validated):
        validated.pop("student", None)
        validated.pop("assessment_type", None)
        request = self.context.get("request")
        return services.update_mark(instance, validated, user=getattr(request, "user", None))


class AssessmentWeightHistorySerializer(serializers.ModelSerializer):
    assessment_type_name = serializers.CharField(source="assessment_type.name", read_only=True)
    changed_by = serializers.CharField(source="changed_by.username", read_only=True, default=None)

    class Meta:
        model = AssessmentWeightHistory
        fields = ["id", "classroom", "assessment_type", "assessment_type_name",
                  "old_weight", "new_weight", "changed_by", "changed_at"]


# -------------------------
#  BULK SERIALIZERS
# -------------------------

class BulkMarksUpsertSerializer(serializers.Serializer):
    """
    Upsert des notes pour UNE évaluation à une date.

    Body:
    {
      "assessment_type": 10,
      "assessment_date": "2025-10-14",
      "status": "published",                  // optionnel
      "entries": [
        { "student": 101, "score": 17.5 },
        { "student": 102, "score": 12, "teacher_comment": "Bien" }
      ]
    }
    """
    assessment_type = serializers.PrimaryKeyRelatedField(queryset=AssessmentType.objects.select_related("classroom"))
    assessment_date = serializers.DateField()
    status = serializers.ChoiceField(choices=Mark.Status.choices, default=Mark.Status.PUBLISHED)
    entries = serializers.ListField(child=serializers.DictField(), allow_empty=True)

    def validate(self, attrs):
        # Validation basique des entrées; score/élève vérifiés au moment du create() pour les raisons de skip
        for e in attrs.get("entries", []):
            if "student" not in e:
                raise serializers.ValidationError("Each entry must have 'student'.")
            if "score" not in e:
                raise serializers.ValidationError("Each entry must have 'score'.")
        return attrs

    def create(self, validated):
        request = self.context.get("request")
        return services.bulk_upsert_marks(
            validated["assessment_type"],
            validated["assessment_date"],
            validated.get("entries", []),
            status=validated["status"],
            user=getattr(request, "user", None),
        )
