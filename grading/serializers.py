from rest_framework import serializers
from .models import GradeSnapshot

class GradeSnapshotSerializer(serializers.ModelSerializer):
    student_name = serializers.CharField(source="student.full_name", read_only=True)
    matricule = serializers.CharField(source="student.matricule", read_only=True)
    current_total = serializers.FloatField(read_only=True)
    percentage = serializers.FloatField(read_only=True)
    total_weight_completed = serializers.FloatField(read_only=True)

    class Meta:
        model = GradeSnapshot
        fields = ["id","student","student_name","matricule","classroom","current_total","percentage",
                  "grade_letter","breakdown","has_all_marks","total_weight_completed","computed_at"]
        read_only_fields = fields
