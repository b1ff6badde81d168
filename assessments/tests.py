from datetime import date
from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError as DjangoValidationError
from django.test import TestCase
from django.urls import reverse
from rest_framework import serializers
from rest_framework.test import APIClient

from core.models import Classroom
from enrollments.models import Student
from grading.exceptions import ComputationError, ConflictError, WeightLimitExceeded
from grading.models import GradeSnapshot
from .models import AssessmentType, AssessmentWeightHistory, Mark
from .services import (
    bulk_upsert_marks, check_score, create_assessment_type, create_mark, delete_assessment_type,
    update_assessment_type, update_mark, validate_weights,
)

User = get_user_model()

DAY = date(2025, 10, 14)


class SchoolFixtureMixin:
    def setUp(self):
        self.admin = User.objects.create_user(username="admin", password="pass12345", role="ADMIN")
        self.teacher = User.objects.create_user(username="mr_fouda", password="pass12345", role="TEACHER")
        self.other_teacher = User.objects.create_user(username="mrs_bella", password="pass12345", role="TEACHER")
        self.classroom = Classroom.objects.create(name="Form 5A", subject="Mathematics",
                                                  academic_year="2025/2026", teacher=self.teacher)
        self.other_classroom = Classroom.objects.create(name="Form 5B", subject="Mathematics",
                                                        academic_year="2025/2026", teacher=self.other_teacher)
        self.student = Student.objects.create(matricule="S001", last_name="Ngono", first_name="Alice",
                                              classroom=self.classroom)
        self.types = {
            name: create_assessment_type(self.classroom.id, name, Decimal(weight), display_order=i)
            for i, (name, weight) in enumerate([("Midterm", 30), ("Final", 40), ("Homework", 15), ("Quiz", 15)])
        }


class WeightTests(SchoolFixtureMixin, TestCase):
    def test_weights_sum_to_100(self):
        self.assertEqual(validate_weights(self.classroom.id),
                         {"is_valid": True, "total_weight": 100.0, "remaining": 0.0})

    def test_adding_type_over_budget_is_rejected(self):
        with self.assertRaises(WeightLimitExceeded) as ctx:
            create_assessment_type(self.classroom.id, "Project", Decimal("5"))
        self.assertEqual(ctx.exception.current_total, Decimal("100"))
        self.assertEqual(ctx.exception.resulting_total, Decimal("105"))
        self.assertFalse(AssessmentType.objects.filter(name="Project").exists())

    def test_inactive_type_does_not_count(self):
        at = create_assessment_type(self.classroom.id, "Project", Decimal("5"), is_active=False)
        self.assertFalse(at.is_active)
        self.assertEqual(validate_weights(self.classroom.id)["total_weight"], 100.0)

    def test_reactivation_over_budget_is_rejected(self):
        at = create_assessment_type(self.classroom.id, "Project", Decimal("5"), is_active=False)
        with self.assertRaises(WeightLimitExceeded):
            update_assessment_type(at, {"is_active": True})
        at.refresh_from_db()
        self.assertFalse(at.is_active)

    def test_rejected_update_leaves_weights_and_history_untouched(self):
        quiz = self.types["Quiz"]
        with self.assertRaises(WeightLimitExceeded):
            update_assessment_type(quiz, {"weight": Decimal("20")}, user=self.teacher)
        quiz.refresh_from_db()
        self.assertEqual(quiz.weight, Decimal("15"))
        self.assertFalse(AssessmentWeightHistory.objects.exists())

    def test_tolerance_allows_rounding_drift(self):
        update_assessment_type(self.types["Quiz"], {"weight": Decimal("15.01")})
        self.assertEqual(validate_weights(self.classroom.id)["total_weight"], 100.01)
        with self.assertRaises(WeightLimitExceeded):
            update_assessment_type(self.types["Quiz"], {"weight": Decimal("15.02")})

    def test_weight_change_is_recorded(self):
        update_assessment_type(self.types["Quiz"], {"weight": Decimal("10")}, user=self.teacher)
        history = AssessmentWeightHistory.objects.get()
        self.assertEqual(history.old_weight, Decimal("15"))
        self.assertEqual(history.new_weight, Decimal("10"))
        self.assertEqual(history.changed_by, self.teacher)
        self.assertEqual(history.classroom, self.classroom)
        self.assertEqual(validate_weights(self.classroom.id),
                         {"is_valid": False, "total_weight": 95.0, "remaining": 5.0})

    def test_rename_only_writes_no_history(self):
        update_assessment_type(self.types["Quiz"], {"name": "Pop quiz"})
        self.assertFalse(AssessmentWeightHistory.objects.exists())

    def test_rename_refreshes_snapshot_breakdown(self):
        create_mark(self.student, self.types["Homework"], DAY, Decimal("20"))
        update_assessment_type(self.types["Homework"], {"name": "Devoirs"})
        breakdown = GradeSnapshot.objects.get(student=self.student).breakdown
        self.assertNotIn("Homework", breakdown)
        self.assertEqual(breakdown["Devoirs"]["score"], 20.0)

    def test_reorder_refreshes_snapshot_breakdown(self):
        create_mark(self.student, self.types["Quiz"], DAY, Decimal("11"))
        update_assessment_type(self.types["Quiz"], {"display_order": 0})
        update_assessment_type(self.types["Midterm"], {"display_order": 9})
        breakdown = GradeSnapshot.objects.get(student=self.student).breakdown
        self.assertEqual(list(breakdown), ["Quiz", "Final", "Homework", "Midterm"])

    def test_weight_change_recalculates_class(self):
        for name, score in [("Midterm", 18), ("Final", 16), ("Homework", 19), ("Quiz", 17)]:
            create_mark(self.student, self.types[name], DAY, Decimal(score))
        self.assertEqual(GradeSnapshot.objects.get().current_total, Decimal("17.20"))

        update_assessment_type(self.types["Quiz"], {"weight": Decimal("10")})
        # toutes les notes présentes: somme pondérée brute, 17.20 - 0.15*17 + 0.10*17
        self.assertEqual(GradeSnapshot.objects.get().current_total, Decimal("16.35"))

    def test_weights_are_per_classroom(self):
        at = create_assessment_type(self.other_classroom.id, "Midterm", Decimal("100"))
        self.assertEqual(at.classroom, self.other_classroom)

    def test_delete_type_with_marks_is_conflict(self):
        create_mark(self.student, self.types["Quiz"], DAY, Decimal("12"))
        with self.assertRaises(ConflictError):
            delete_assessment_type(self.types["Quiz"])
        self.assertTrue(AssessmentType.objects.filter(id=self.types["Quiz"].id).exists())


class MarkServiceTests(SchoolFixtureMixin, TestCase):
    def test_duplicate_mark_is_conflict_and_first_is_kept(self):
        first = create_mark(self.student, self.types["Quiz"], DAY, Decimal("12"))
        with self.assertRaises(ConflictError):
            create_mark(self.student, self.types["Quiz"], DAY, Decimal("18"))
        self.assertEqual(Mark.objects.count(), 1)
        first.refresh_from_db()
        self.assertEqual(first.score, Decimal("12"))
        self.assertEqual(GradeSnapshot.objects.get().current_total, Decimal("12.00"))

    def test_same_type_other_date_is_allowed(self):
        create_mark(self.student, self.types["Quiz"], DAY, Decimal("12"))
        create_mark(self.student, self.types["Quiz"], date(2025, 10, 21), Decimal("16"))
        self.assertEqual(Mark.objects.count(), 2)
        # la plus récente compte
        self.assertEqual(GradeSnapshot.objects.get().current_total, Decimal("16.00"))

    def test_score_bounds(self):
        self.assertEqual(check_score(0), Decimal("0"))
        self.assertEqual(check_score("20"), Decimal("20"))
        for bad in (Decimal("-0.5"), Decimal("20.01"), "abc", None, "NaN"):
            with self.assertRaises(serializers.ValidationError):
                check_score(bad)

    def test_out_of_range_mark_is_not_saved(self):
        with self.assertRaises(serializers.ValidationError):
            create_mark(self.student, self.types["Quiz"], DAY, Decimal("21"))
        self.assertFalse(Mark.objects.exists())
        self.assertFalse(GradeSnapshot.objects.exists())

    def test_assessment_type_from_other_class_is_rejected(self):
        foreign = create_assessment_type(self.other_classroom.id, "Quiz", Decimal("20"))
        with self.assertRaises(serializers.ValidationError):
            create_mark(self.student, foreign, DAY, Decimal("12"))

    def test_update_appends_change_log(self):
        m = create_mark(self.student, self.types["Quiz"], DAY, Decimal("12"), user=self.teacher)
        update_mark(m, {"score": Decimal("14"), "teacher_comment": "Recorrigé"}, user=self.teacher)
        update_mark(m, {"score": Decimal("14")}, user=self.teacher)
        m.refresh_from_db()
        self.assertEqual(m.score, Decimal("14"))
        self.assertEqual([e["field"] for e in m.change_log], ["score", "teacher_comment"])
        self.assertEqual(m.change_log[0]["old"], "12.00")
        self.assertEqual(m.change_log[0]["new"], "14")
        self.assertEqual(m.change_log[0]["changed_by"], "mr_fouda")

    def test_moving_mark_onto_existing_date_is_conflict(self):
        create_mark(self.student, self.types["Quiz"], DAY, Decimal("12"))
        other = create_mark(self.student, self.types["Quiz"], date(2025, 10, 21), Decimal("16"))
        with self.assertRaises(ConflictError):
            update_mark(other, {"assessment_date": DAY})

    def test_bulk_upsert(self):
        bob = Student.objects.create(matricule="S002", last_name="Etoa", first_name="Bob", classroom=self.classroom)
        carol = Student.objects.create(matricule="S004", last_name="Mballa", first_name="Carol",
                                       classroom=self.classroom)
        outsider = Student.objects.create(matricule="S003", last_name="Abega", first_name="Paul",
                                          classroom=self.other_classroom)
        existing = create_mark(self.student, self.types["Homework"], DAY, Decimal("10"))

        result = bulk_upsert_marks(self.types["Homework"], DAY, [
            {"student": self.student.id, "score": 15},
            {"student": bob.id, "score": 17.5, "teacher_comment": "Bien"},
            {"student": outsider.id, "score": 12},
            {"student": 9999, "score": 12},
            {"student": bob.id, "score": 45},
            {"student": carol.id, "score": 45},
        ], user=self.teacher)

        self.assertEqual(result["updated"], [existing.id])
        self.assertEqual(len(result["created"]), 1)
        self.assertEqual([s["reason"] for s in result["skipped"]],
                         ["Student not in this class", "Student not found", "Duplicate entry", "Invalid score"])
        existing.refresh_from_db()
        self.assertEqual(existing.score, Decimal("15"))
        self.assertEqual(GradeSnapshot.objects.get(student=bob).current_total, Decimal("17.50"))

    def test_bulk_repeated_student_is_skipped_without_partial_write(self):
        result = bulk_upsert_marks(self.types["Quiz"], DAY, [
            {"student": self.student.id, "score": 12},
            {"student": self.student.id, "score": 14},
        ])
        self.assertEqual(len(result["created"]), 1)
        self.assertEqual(result["skipped"], [{"student": self.student.id, "reason": "Duplicate entry"}])
        self.assertEqual(Mark.objects.get().score, Decimal("12"))

    def test_bulk_accepts_string_student_ids(self):
        result = bulk_upsert_marks(self.types["Quiz"], DAY, [{"student": str(self.student.id), "score": "13.5"}])
        self.assertEqual(result["skipped"], [])
        self.assertEqual(Mark.objects.get(student=self.student).score, Decimal("13.5"))

    def test_bulk_failure_rolls_back_every_entry(self):
        bob = Student.objects.create(matricule="S002", last_name="Etoa", first_name="Bob", classroom=self.classroom)
        with patch("assessments.services.recalculate_student",
                        side_effect=[None, ComputationError()]):
            with self.assertRaises(ComputationError):
                bulk_upsert_marks(self.types["Quiz"], DAY, [
                    {"student": self.student.id, "score": 12},
                    {"student": bob.id, "score": 14},
                ])
        self.assertFalse(Mark.objects.exists())


class MarkApiTests(SchoolFixtureMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.client = APIClient()
        self.client.force_authenticate(self.teacher)

    def _post(self, **overrides):
        payload = {"student": self.student.id, "assessment_type": self.types["Midterm"].id,
                   "assessment_date": "2025-10-14", "score": "18"}
        payload.update(overrides)
        return self.client.post("/api/marks/", payload, format="json")

    def test_create_mark_updates_snapshot(self):
        res = self._post()
        self.assertEqual(res.status_code, 201, res.data)
        self.assertEqual(res.data["score"], 18.0)
        self.assertEqual(res.data["classroom"], self.classroom.id)
        self.assertEqual(res.data["entered_by"], "mr_fouda")
        self.assertEqual(GradeSnapshot.objects.get(student=self.student).current_total, Decimal("18.00"))

    def test_duplicate_returns_409(self):
        self.assertEqual(self._post().status_code, 201)
        res = self._post(score="5")
        self.assertEqual(res.status_code, 409)
        self.assertEqual(Mark.objects.get().score, Decimal("18"))

    def test_out_of_range_returns_400(self):
        res = self._post(score="25")
        self.assertEqual(res.status_code, 400)
        self.assertIn("score", res.data)

    def test_other_teacher_is_forbidden(self):
        self.client.force_authenticate(self.other_teacher)
        self.assertEqual(self._post().status_code, 403)
        self.assertFalse(Mark.objects.exists())

    def test_student_cannot_write(self):
        user = User.objects.create_user(username="alice", password="pass12345", role="STUDENT")
        self.client.force_authenticate(user)
        self.assertEqual(self._post().status_code, 403)

    def test_anonymous_is_rejected(self):
        self.client.force_authenticate(None)
        self.assertEqual(self._post().status_code, 403)

    def test_student_sees_only_own_published_marks(self):
        bob = Student.objects.create(matricule="S002", last_name="Etoa", first_name="Bob", classroom=self.classroom)
        create_mark(self.student, self.types["Midterm"], DAY, Decimal("14"))
        create_mark(self.student, self.types["Quiz"], DAY, Decimal("3"), status=Mark.Status.DRAFT)
        create_mark(bob, self.types["Midterm"], DAY, Decimal("11"))
        user = User.objects.create_user(username="alice", password="pass12345", role="STUDENT")
        self.student.user = user
        self.student.save()

        self.client.force_authenticate(user)
        res = self.client.get("/api/marks/")
        self.assertEqual(res.status_code, 200)
        self.assertEqual([m["score"] for m in res.data["results"]], [14.0])

    def test_parent_sees_children_marks(self):
        create_mark(self.student, self.types["Midterm"], DAY, Decimal("14"))
        parent = User.objects.create_user(username="mama", password="pass12345", role="PARENT")
        self.student.parents.add(parent)
        self.client.force_authenticate(parent)
        res = self.client.get("/api/marks/")
        self.assertEqual(res.data["count"], 1)

    def test_patch_and_delete(self):
        mark_id = self._post().data["id"]
        res = self.client.patch(f"/api/marks/{mark_id}/", {"score": "12"}, format="json")
        self.assertEqual(res.status_code, 200, res.data)
        self.assertEqual(len(res.data["change_log"]), 1)
        self.assertEqual(GradeSnapshot.objects.get().current_total, Decimal("12.00"))

        res = self.client.delete(f"/api/marks/{mark_id}/")
        self.assertEqual(res.status_code, 204)
        self.assertFalse(GradeSnapshot.objects.exists())

    def test_bulk_endpoint(self):
        res = self.client.post("/api/marks/bulk/", {
            "assessment_type": self.types["Quiz"].id,
            "assessment_date": "2025-10-14",
            "entries": [{"student": self.student.id, "score": 16}],
        }, format="json")
        self.assertEqual(res.status_code, 200, res.data)
        self.assertEqual(len(res.data["created"]), 1)


class AssessmentTypeApiTests(SchoolFixtureMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.client = APIClient()
        self.client.force_authenticate(self.teacher)

    def test_weight_overflow_returns_400_with_totals(self):
        res = self.client.patch(f"/api/assessment-types/{self.types['Quiz'].id}/", {"weight": "30"}, format="json")
        self.assertEqual(res.status_code, 400)
        self.assertEqual(float(res.data["current_total"]), 85.0)
        self.assertEqual(float(res.data["attempted"]), 30.0)
        self.assertEqual(float(res.data["resulting_total"]), 115.0)

    def test_create_type(self):
        update_assessment_type(self.types["Quiz"], {"weight": Decimal("10")})
        res = self.client.post("/api/assessment-types/", {
            "classroom": self.classroom.id, "name": "Oral", "weight": "5", "display_order": 5,
        }, format="json")
        self.assertEqual(res.status_code, 201, res.data)
        self.assertTrue(validate_weights(self.classroom.id)["is_valid"])

    def test_weight_history_endpoint(self):
        self.client.patch(f"/api/assessment-types/{self.types['Quiz'].id}/", {"weight": "10"}, format="json")
        res = self.client.get(f"/api/classes/{self.classroom.id}/weight-history/")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data[0]["assessment_type_name"], "Quiz")
        self.assertEqual(res.data[0]["changed_by"], "mr_fouda")

    def test_weights_endpoint(self):
        res = self.client.get(f"/api/classes/{self.classroom.id}/weights/")
        self.assertEqual(res.status_code, 200)
        self.assertTrue(res.data["is_valid"])

    def test_delete_type_with_marks_returns_409(self):
        create_mark(self.student, self.types["Quiz"], DAY, Decimal("12"))
        res = self.client.delete(f"/api/assessment-types/{self.types['Quiz'].id}/")
        self.assertEqual(res.status_code, 409)

    def test_other_teacher_cannot_change_weights(self):
        self.client.force_authenticate(self.other_teacher)
        res = self.client.patch(f"/api/assessment-types/{self.types['Quiz'].id}/", {"weight": "10"}, format="json")
        self.assertEqual(res.status_code, 403)


class AdminWriteTests(SchoolFixtureMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.superuser = User.objects.create_superuser(username="root", email="root@example.com",
                                                       password="pass12345")
        self.client.force_login(self.superuser)

    def _mark_form(self, **overrides):
        data = {"student": self.student.id, "assessment_type": self.types["Quiz"].id,
                "assessment_date": "2025-10-14", "score": "14", "status": "published", "teacher_comment": ""}
        data.update(overrides)
        return data

    def test_admin_mark_add_updates_snapshot(self):
        res = self.client.post(reverse("admin:assessments_mark_add"), self._mark_form())
        self.assertEqual(res.status_code, 302)
        mark = Mark.objects.get()
        self.assertEqual(mark.entered_by, self.superuser)
        self.assertEqual(GradeSnapshot.objects.get(student=self.student).current_total, Decimal("14.00"))

    def test_admin_mark_out_of_range_is_refused(self):
        res = self.client.post(reverse("admin:assessments_mark_add"), self._mark_form(score="25"))
        self.assertEqual(res.status_code, 200)
        self.assertFalse(Mark.objects.exists())

    def test_admin_mark_change_and_delete_update_snapshot(self):
        mark = create_mark(self.student, self.types["Quiz"], DAY, Decimal("14"))
        form = self._mark_form(score="9")
        del form["student"], form["assessment_type"]
        res = self.client.post(reverse("admin:assessments_mark_change", args=[mark.id]), form)
        self.assertEqual(res.status_code, 302)
        mark.refresh_from_db()
        self.assertEqual([e["field"] for e in mark.change_log], ["score"])
        self.assertEqual(GradeSnapshot.objects.get().current_total, Decimal("9.00"))

        res = self.client.post(reverse("admin:assessments_mark_delete", args=[mark.id]), {"post": "yes"})
        self.assertEqual(res.status_code, 302)
        self.assertFalse(GradeSnapshot.objects.exists())

    def test_admin_weight_change_writes_history_and_recalculates(self):
        create_mark(self.student, self.types["Final"], DAY, Decimal("10"))
        create_mark(self.student, self.types["Quiz"], DAY, Decimal("20"))
        quiz = self.types["Quiz"]
        res = self.client.post(reverse("admin:assessments_assessmenttype_change", args=[quiz.id]), {
            "name": "Quiz", "weight": "5", "display_order": "3", "is_active": "on",
        })
        self.assertEqual(res.status_code, 302)
        history = AssessmentWeightHistory.objects.get()
        self.assertEqual(history.changed_by, self.superuser)
        # (0.40*10 + 0.05*20) / 0.45
        self.assertEqual(GradeSnapshot.objects.get().current_total, Decimal("11.11"))

    def test_admin_weight_over_budget_is_refused(self):
        quiz = self.types["Quiz"]
        res = self.client.post(reverse("admin:assessments_assessmenttype_change", args=[quiz.id]), {
            "name": "Quiz", "weight": "40", "display_order": "3", "is_active": "on",
        })
        self.assertEqual(res.status_code, 200)
        quiz.refresh_from_db()
        self.assertEqual(quiz.weight, Decimal("15"))
        self.assertFalse(AssessmentWeightHistory.objects.exists())

    def test_model_validation_bounds_score(self):
        mark = Mark(student=self.student, assessment_type=self.types["Quiz"], assessment_date=DAY,
                    score=Decimal("25"))
        with self.assertRaises(DjangoValidationError) as ctx:
            mark.full_clean()
        self.assertIn("score", ctx.exception.message_dict)
