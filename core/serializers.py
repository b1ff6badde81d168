from rest_framework import serializers
from .models import Classroom

class ClassroomSerializer(serializers.ModelSerializer):
    teacher_name = serializers.SerializerMethodField()
    student_count = serializers.IntegerField(source="students.count", read_only=True)

    class Meta:
        model = Classroom
        fields = ["id","name","subject","academic_year","teacher","teacher_name","is_active","student_count","created_at"]
        read_only_fields = ["created_at"]

    def get_teacher_name(self, obj):
        if not obj.teacher:
            return None
        return obj.teacher.get_full_name() or obj.teacher.username

    def validate_academic_year(self, value):
        # format attendu: '2025/2026'
        parts = value.split("/")
        if len(parts) != 2 or not all(p.isdigit() and len(p) == 4 for p in parts) or int(parts[1]) != int(parts[0]) + 1:
            raise serializers.ValidationError("academic_year must look like '2025/2026'.")
        return value

    def validate_teacher(self, user):
        if user is not None and getattr(user, "role", None) != "TEACHER":
            raise serializers.ValidationError("Assigned user must have the TEACHER role.")
        return user
