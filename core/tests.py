from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.test import TestCase
from rest_framework.test import APIClient

from .models import Classroom

User = get_user_model()


class ClassroomTests(TestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username="admin", password="pass12345", role="ADMIN")
        self.teacher = User.objects.create_user(username="mr_fouda", password="pass12345", role="TEACHER",
                                                first_name="Jean", last_name="Fouda")
        self.client = APIClient()
        self.client.force_authenticate(self.admin)

    def test_admin_creates_class(self):
        res = self.client.post("/api/classes/", {
            "name": "Form 5A", "subject": "Mathematics", "academic_year": "2025/2026", "teacher": self.teacher.id,
        }, format="json")
        self.assertEqual(res.status_code, 201, res.data)
        self.assertEqual(res.data["teacher_name"], "Jean Fouda")
        self.assertEqual(res.data["student_count"], 0)

    def test_bad_academic_year(self):
        for year in ("2025", "2025/2027", "25/26"):
            res = self.client.post("/api/classes/", {"name": "Form 5A", "subject": "Maths", "academic_year": year},
                                   format="json")
            self.assertEqual(res.status_code, 400)
            self.assertIn("academic_year", res.data)

    def test_teacher_must_have_teacher_role(self):
        res = self.client.post("/api/classes/", {
            "name": "Form 5A", "subject": "Mathematics", "academic_year": "2025/2026", "teacher": self.admin.id,
        }, format="json")
        self.assertEqual(res.status_code, 400)
        self.assertIn("teacher", res.data)

    def test_teacher_cannot_create_class(self):
        self.client.force_authenticate(self.teacher)
        res = self.client.post("/api/classes/", {"name": "Form 5A", "subject": "Maths",
                                                 "academic_year": "2025/2026"}, format="json")
        self.assertEqual(res.status_code, 403)
        self.assertEqual(self.client.get("/api/classes/").status_code, 200)

    def test_class_is_unique_per_year_and_subject(self):
        Classroom.objects.create(name="Form 5A", subject="Mathematics", academic_year="2025/2026")
        Classroom.objects.create(name="Form 5A", subject="Physics", academic_year="2025/2026")
        with self.assertRaises(IntegrityError), transaction.atomic():
            Classroom.objects.create(name="Form 5A", subject="Mathematics", academic_year="2025/2026")

    def test_weights_of_empty_class(self):
        classroom = Classroom.objects.create(name="Form 5A", subject="Mathematics", academic_year="2025/2026")
        res = self.client.get(f"/api/classes/{classroom.id}/weights/")
        self.assertEqual(res.data, {"is_valid": False, "total_weight": 0.0, "remaining": 100.0})
