from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework.test import APIClient

from enrollments.models import Student

User = get_user_model()


class AccountsApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()

    def test_health_is_public(self):
        res = self.client.get("/api/health/")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data, {"status": "ok", "database": "ok"})

    def test_me_requires_authentication(self):
        # SessionAuthentication en premier: 403 plutôt que 401
        self.assertEqual(self.client.get("/api/me/").status_code, 403)

    def test_me_for_student(self):
        user = User.objects.create_user(username="alice", password="pass12345", role=User.Role.STUDENT,
                                        first_name="Alice", last_name="Ngono")
        student = Student.objects.create(matricule="S001", last_name="Ngono", first_name="Alice", user=user)
        self.client.force_authenticate(user)
        res = self.client.get("/api/me/")
        self.assertEqual(res.data["role"], "STUDENT")
        self.assertEqual(res.data["full_name"], "Alice Ngono")
        self.assertEqual(res.data["student_id"], student.id)
        self.assertEqual(res.data["children"], [])

    def test_me_for_parent_lists_children(self):
        parent = User.objects.create_user(username="mama", password="pass12345", role=User.Role.PARENT)
        kid = Student.objects.create(matricule="S001", last_name="Ngono", first_name="Alice")
        kid.parents.add(parent)
        self.client.force_authenticate(parent)
        res = self.client.get("/api/me/")
        self.assertEqual(res.data["children"], [kid.id])
        self.assertIsNone(res.data["student_id"])
        self.assertEqual(res.data["full_name"], "mama")

    def test_default_role_is_teacher(self):
        user = User.objects.create_user(username="t", password="pass12345")
        self.assertEqual(user.role, User.Role.TEACHER)
        self.assertFalse(user.is_admin_role)
