from rest_framework import serializers
from django.contrib.auth import get_user_model

User = get_user_model()

class MeSerializer(serializers.ModelSerializer):
    full_name = serializers.SerializerMethodField()
    student_id = serializers.SerializerMethodField()
    children = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ["id", "username", "email", "first_name", "last_name", "full_name", "role", "student_id", "children"]

    def get_full_name(self, obj):
        return obj.get_full_name() or obj.username

    def get_student_id(self, obj):
        student = getattr(obj, "student", None)
        return student.id if student else None

    def get_children(self, obj):
        # PARENT -> élèves liés
        if obj.role != User.Role.PARENT:
            return []
        return list(obj.children.values_list("id", flat=True))
