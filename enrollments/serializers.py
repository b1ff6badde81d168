# enrollments/serializers.py
from rest_framework import serializers
from .models import Student

class StudentSerializer(serializers.ModelSerializer):
    classroom_name = serializers.CharField(source="classroom.name", read_only=True, default=None)

    class Meta:
        model = Student
        fields = ["id","matricule","last_name","first_name","dob","classroom","classroom_name","user","parents"]
        extra_kwargs = {"parents": {"required": False}}

    def validate_user(self, user):
        if user is not None and getattr(user, "role", None) != "STUDENT":
            raise serializers.ValidationError("Linked user must have the STUDENT role.")
        return user

    def validate_parents(self, parents):
        bad = [p.id for p in parents if getattr(p, "role", None) != "PARENT"]
        if bad:
            raise serializers.ValidationError(f"Users {bad} do not have the PARENT role.")
        return parents
