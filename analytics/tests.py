from datetime import date
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework.test import APIClient

from assessments.models import AssessmentType
from assessments.services import create_mark
from core.models import Classroom
from enrollments.models import Student

User = get_user_model()


class ClassStatsTests(TestCase):
    def setUp(self):
        self.teacher = User.objects.create_user(username="mr_fouda", password="pass12345", role="TEACHER")
        self.classroom = Classroom.objects.create(name="Form 5A", subject="Mathematics",
                                                  academic_year="2025/2026", teacher=self.teacher)
        final = AssessmentType.objects.create(classroom=self.classroom, name="Final", weight=Decimal("100"))
        for i, score in enumerate([19, 15, 8]):
            student = Student.objects.create(matricule=f"S00{i}", last_name=f"Eleve{i}", first_name="X",
                                             classroom=self.classroom)
            create_mark(student, final, date(2025, 10, 14), Decimal(score))
        self.client = APIClient()
        self.client.force_authenticate(self.teacher)

    def test_stats(self):
        res = self.client.get(f"/api/analytics/classes/{self.classroom.id}/stats/")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data["classroom"]["name"], "Form 5A")
        self.assertEqual(res.data["average"]["student_count"], 3)
        self.assertEqual(res.data["average"]["average_total"], 14.0)
        self.assertEqual(res.data["distribution"]["A"]["count"], 1)
        self.assertEqual(res.data["distribution"]["C"]["count"], 1)
        self.assertEqual(res.data["distribution"]["F"]["count"], 1)
        self.assertTrue(res.data["weights"]["is_valid"])
        self.assertEqual([(a["type"], a["severity"]) for a in res.data["alerts"]], [("low_score", "critical")])

    def test_unknown_class(self):
        self.assertEqual(self.client.get("/api/analytics/classes/999/stats/").status_code, 404)

    def test_students_and_parents_are_forbidden(self):
        for role in ("STUDENT", "PARENT"):
            user = User.objects.create_user(username=role.lower(), password="pass12345", role=role)
            self.client.force_authenticate(user)
            res = self.client.get(f"/api/analytics/classes/{self.classroom.id}/stats/")
            self.assertEqual(res.status_code, 403)
