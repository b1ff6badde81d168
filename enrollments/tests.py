from datetime import date
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.urls import reverse
from rest_framework.test import APIClient

from assessments.models import AssessmentType, Mark
from assessments.services import create_mark
from core.models import Classroom
from grading.models import GradeSnapshot
from grading.services import class_average, grade_distribution, reassign_student
from .models import Student
from .views import visible_students

User = get_user_model()


class StudentVisibilityTests(TestCase):
    def setUp(self):
        self.classroom = Classroom.objects.create(name="Form 5A", subject="Mathematics", academic_year="2025/2026")
        self.alice_user = User.objects.create_user(username="alice", password="pass12345", role="STUDENT")
        self.parent = User.objects.create_user(username="mama", password="pass12345", role="PARENT")
        self.teacher = User.objects.create_user(username="mr_fouda", password="pass12345", role="TEACHER")
        self.alice = Student.objects.create(matricule="S001", last_name="Ngono", first_name="Alice",
                                            classroom=self.classroom, user=self.alice_user)
        self.bob = Student.objects.create(matricule="S002", last_name="Etoa", first_name="Bob",
                                          classroom=self.classroom)
        self.bob.parents.add(self.parent)

    def test_scopes(self):
        self.assertEqual(list(visible_students(self.alice_user)), [self.alice])
        self.assertEqual(list(visible_students(self.parent)), [self.bob])
        self.assertEqual(visible_students(self.teacher).count(), 2)

    def test_full_name(self):
        self.assertEqual(self.alice.full_name, "Ngono Alice")

    def test_search(self):
        client = APIClient()
        client.force_authenticate(self.teacher)
        res = client.get("/api/students/?search=Etoa")
        self.assertEqual([s["matricule"] for s in res.data["results"]], ["S002"])
        self.assertEqual(res.data["results"][0]["classroom_name"], "Form 5A")

    def test_student_list_is_scoped(self):
        client = APIClient()
        client.force_authenticate(self.alice_user)
        res = client.get("/api/students/")
        self.assertEqual(res.data["count"], 1)
        self.assertEqual(client.get(f"/api/students/{self.bob.id}/").status_code, 404)

    def test_linked_user_must_be_student(self):
        admin = User.objects.create_user(username="admin", password="pass12345", role="ADMIN")
        client = APIClient()
        client.force_authenticate(admin)
        res = client.post("/api/students/", {"matricule": "S003", "last_name": "Abega", "first_name": "Paul",
                                             "user": self.teacher.id}, format="json")
        self.assertEqual(res.status_code, 400)
        self.assertIn("user", res.data)


class ClassroomChangeTests(TestCase):
    def setUp(self):
        self.admin = User.objects.create_superuser(username="root", email="root@example.com", password="pass12345")
        self.form5a = Classroom.objects.create(name="Form 5A", subject="Mathematics", academic_year="2025/2026")
        self.form5b = Classroom.objects.create(name="Form 5B", subject="Mathematics", academic_year="2025/2026")
        self.alice = Student.objects.create(matricule="S001", last_name="Ngono", first_name="Alice",
                                            classroom=self.form5a)
        quiz_a = AssessmentType.objects.create(classroom=self.form5a, name="Quiz", weight=Decimal("100"))
        create_mark(self.alice, quiz_a, date(2025, 10, 14), Decimal("8"))

    def test_move_drops_old_class_snapshot(self):
        client = APIClient()
        client.force_authenticate(self.admin)
        res = client.patch(f"/api/students/{self.alice.id}/", {"classroom": self.form5b.id}, format="json")
        self.assertEqual(res.status_code, 200, res.data)
        self.assertFalse(GradeSnapshot.objects.filter(student=self.alice, classroom=self.form5a).exists())
        self.assertEqual(class_average(self.form5a.id)["student_count"], 0)
        self.assertEqual(grade_distribution(self.form5a.id)["F"]["count"], 0)

    def test_move_recalculates_new_class(self):
        quiz_b = AssessmentType.objects.create(classroom=self.form5b, name="Quiz", weight=Decimal("100"))
        # note saisie avant le changement de classe, sans recalcul
        Mark.objects.create(student=self.alice, assessment_type=quiz_b, assessment_date=date(2025, 9, 1),
                            score=Decimal("16"))
        reassign_student(self.alice.id, self.form5a.id, self.form5b.id)
        self.assertEqual(GradeSnapshot.objects.get(student=self.alice).classroom, self.form5b)

    def test_unchanged_class_keeps_snapshot(self):
        client = APIClient()
        client.force_authenticate(self.admin)
        client.patch(f"/api/students/{self.alice.id}/", {"first_name": "Alicia"}, format="json")
        self.assertTrue(GradeSnapshot.objects.filter(student=self.alice, classroom=self.form5a).exists())

    def test_admin_move_drops_old_class_snapshot(self):
        self.client.force_login(self.admin)
        res = self.client.post(reverse("admin:enrollments_student_change", args=[self.alice.id]), {
            "matricule": "S001", "last_name": "Ngono", "first_name": "Alice", "dob": "",
            "classroom": self.form5b.id, "user": "", "parents": [],
        })
        self.assertEqual(res.status_code, 302)
        self.assertFalse(GradeSnapshot.objects.filter(classroom=self.form5a).exists())
