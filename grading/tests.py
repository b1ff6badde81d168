from datetime import date, datetime, timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.exceptions import ImproperlyConfigured
from django.db import DatabaseError
from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework.test import APIClient

from assessments.models import AssessmentType, Mark
from assessments.services import create_mark, delete_mark, update_mark
from core.models import Classroom
from enrollments.models import Student
from grading.calculations import (
    AssessmentTypeInfo, MarkInfo, GradeResult, classify, compute_grade, detect_trend,
    latest_marks_by_type, normalize, predict_final,
)
from grading.conf import get_config
from grading.exceptions import InvalidInputError
from grading.models import GradeSnapshot
from grading.repositories import DjangoGradingRepository
from grading.services import (
    class_alerts, class_average, compute_student_grade, detect_student_trend, grade_distribution,
    recalculate_class, recalculate_student,
)

User = get_user_model()

MIDTERM = AssessmentTypeInfo(id=1, name="Midterm", weight=Decimal("30"), display_order=1)
FINAL = AssessmentTypeInfo(id=2, name="Final", weight=Decimal("40"), display_order=2)
HOMEWORK = AssessmentTypeInfo(id=3, name="Homework", weight=Decimal("15"), display_order=3)
QUIZ = AssessmentTypeInfo(id=4, name="Quiz", weight=Decimal("15"), display_order=4)
ALL_TYPES = [MIDTERM, FINAL, HOMEWORK, QUIZ]


def mark(type_id, score, max_score="20", day=1):
    return MarkInfo(assessment_type_id=type_id, score=Decimal(str(score)), max_score=Decimal(max_score),
                    assessment_date=date(2025, 10, day))


class NormalizeTests(SimpleTestCase):
    def test_same_scale_is_identity(self):
        self.assertEqual(normalize(Decimal("17"), Decimal("20"), Decimal("20")), Decimal("17"))

    def test_rescales_to_target(self):
        self.assertEqual(normalize(45, 50, 20), Decimal("18"))

    def test_defaults_to_configured_max_score(self):
        self.assertEqual(normalize(5, 10), Decimal("10"))

    def test_zero_max_score_rejected(self):
        with self.assertRaises(InvalidInputError):
            normalize(10, 0, 20)

    def test_negative_max_score_rejected(self):
        with self.assertRaises(InvalidInputError):
            normalize(10, -20, 20)


class ComputeGradeTests(SimpleTestCase):
    def test_full_completion_is_plain_weighted_sum(self):
        marks = {1: mark(1, 18), 2: mark(2, 16), 3: mark(3, 19), 4: mark(4, 17)}
        result = compute_grade(ALL_TYPES, marks)

        # 0.30*18 + 0.40*16 + 0.15*19 + 0.15*17
        self.assertEqual(result.current_total, Decimal("17.20"))
        self.assertTrue(result.has_all_marks)
        self.assertEqual(result.total_weight_completed, Decimal("100"))
        data = result.as_dict()
        self.assertEqual(data["current_total"], 17.2)
        self.assertEqual(data["percentage"], 86.0)
        self.assertEqual(data["grade_letter"], "B")
        self.assertEqual(data["grade_description"], "Very Good")
        self.assertEqual(data["breakdown"]["Midterm"], {"score": 18.0, "weight": 30.0, "contribution": 5.4})

    def test_single_perfect_partial_score_extrapolates_to_perfect_total(self):
        result = compute_grade(ALL_TYPES, {3: mark(3, 20)})

        self.assertFalse(result.has_all_marks)
        self.assertEqual(result.total_weight_completed, Decimal("15"))
        self.assertEqual(result.current_total, Decimal("20"))
        self.assertEqual(result.grade_letter, "A")
        self.assertEqual(result.as_dict()["percentage"], 100.0)

    def test_partial_completion_rescales_on_completed_weight(self):
        # (0.30*15 + 0.15*12) / 0.45 = 6.3 / 0.45 = 14
        result = compute_grade(ALL_TYPES, {1: mark(1, 15), 3: mark(3, 12)})
        self.assertEqual(result.current_total, Decimal("14"))
        self.assertEqual(result.grade_letter, "C")
        self.assertEqual(result.total_weight_completed, Decimal("45"))

    def test_missing_marks_have_null_contribution(self):
        result = compute_grade(ALL_TYPES, {1: mark(1, 15)})
        self.assertEqual(result.breakdown["Final"], {"score": None, "weight": 40.0, "contribution": None})
        self.assertEqual(list(result.breakdown), ["Midterm", "Final", "Homework", "Quiz"])

    def test_no_assessment_types_is_no_data(self):
        result = compute_grade([], {})
        self.assertIsNone(result.current_total)
        self.assertIsNone(result.percentage)
        self.assertFalse(result.has_all_marks)

    def test_no_marks_is_no_data_not_an_error(self):
        result = compute_grade(ALL_TYPES, {})
        self.assertIsNone(result.current_total)
        self.assertIsNone(result.grade_letter)
        self.assertFalse(result.has_all_marks)
        self.assertEqual(len(result.breakdown), 4)

    def test_marks_on_other_scale_are_normalized(self):
        result = compute_grade([HOMEWORK], {3: mark(3, 40, max_score="50")})
        self.assertEqual(result.current_total, Decimal("16"))

    def test_rounding_only_at_output(self):
        types = [AssessmentTypeInfo(1, "A", Decimal("33.33")), AssessmentTypeInfo(2, "B", Decimal("66.67"))]
        result = compute_grade(types, {1: mark(1, 13), 2: mark(2, 14)})
        expected = Decimal("13") * Decimal("0.3333") + Decimal("14") * Decimal("0.6667")
        self.assertEqual(result.current_total, expected)
        self.assertEqual(result.as_dict()["current_total"], 13.67)

    def test_latest_mark_wins_when_several_dates(self):
        marks = latest_marks_by_type([mark(1, 10, day=1), mark(1, 18, day=5), mark(1, 12, day=3)])
        self.assertEqual(marks[1].score, Decimal("18"))

    def test_latest_mark_tie_broken_by_entry_time(self):
        early = MarkInfo(1, Decimal("10"), Decimal("20"), date(2025, 10, 1), datetime(2025, 10, 1, 8))
        late = MarkInfo(1, Decimal("11"), Decimal("20"), date(2025, 10, 1), datetime(2025, 10, 1, 9))
        self.assertEqual(latest_marks_by_type([late, early])[1], late)


class ClassifyTests(SimpleTestCase):
    def test_thresholds_resolve_to_higher_band(self):
        self.assertEqual(classify(Decimal("18.0")).letter, "A")
        self.assertEqual(classify(Decimal("17.999")).letter, "B")
        self.assertEqual(classify(Decimal("16")).letter, "B")
        self.assertEqual(classify(Decimal("14")).letter, "C")
        self.assertEqual(classify(Decimal("12")).letter, "D")
        self.assertEqual(classify(Decimal("11.99")).letter, "F")

    def test_extremes(self):
        self.assertEqual(classify(20).letter, "A")
        self.assertEqual(classify(0).letter, "F")

    def test_out_of_range_is_clamped_to_end_bands(self):
        self.assertEqual(classify(-3).letter, "F")
        self.assertEqual(classify(25).letter, "A")

    def test_descriptions(self):
        self.assertEqual(classify(19).description, "Excellent")
        self.assertEqual(classify(5).description, "Needs Improvement")

    @override_settings(GRADING={"GRADE_A_MIN": "17"})
    def test_thresholds_come_from_settings(self):
        self.assertEqual(classify(Decimal("17")).letter, "A")


class ConfigTests(SimpleTestCase):
    def test_defaults(self):
        config = get_config()
        self.assertEqual(config.max_score, Decimal("20"))
        self.assertEqual(config.trend_lookback, 3)
        self.assertEqual(config.decline_threshold, Decimal("1.0"))
        self.assertEqual(config.max_total_weight, Decimal("100.01"))

    @override_settings(GRADING={"GRADE_A_MIN": "15", "GRADE_B_MIN": "16"})
    def test_unordered_thresholds_rejected(self):
        with self.assertRaises(ImproperlyConfigured):
            get_config()

    @override_settings(GRADING={"DECLINE_THRESHOLD": "a lot"})
    def test_non_numeric_value_rejected(self):
        with self.assertRaises(ImproperlyConfigured):
            get_config()


class DetectTrendTests(SimpleTestCase):
    def test_each_older_mark_higher_is_consistent_decline(self):
        trend = detect_trend([14, 16, 18])
        self.assertTrue(trend.is_declining)
        self.assertEqual(trend.trend, "consistent_decline")
        self.assertEqual(trend.as_dict()["average_change"], 2.0)

    def test_mixed_marks_are_stable(self):
        # ((17-18) + (19-17)) / 2 = 0.5
        trend = detect_trend([18, 17, 19])
        self.assertFalse(trend.is_declining)
        self.assertEqual(trend.trend, "stable")
        self.assertEqual(trend.average_change, Decimal("0.5"))

    def test_large_average_drop_without_consistency_is_declining(self):
        # ((16-12) + (15-16)) / 2 = 1.5
        trend = detect_trend([12, 16, 15])
        self.assertTrue(trend.is_declining)
        self.assertEqual(trend.trend, "declining")

    def test_average_drop_equal_to_threshold_is_stable(self):
        # ((15-13) + (15-15)) / 2 = 1.0, pas > 1.0
        trend = detect_trend([13, 15, 15])
        self.assertEqual(trend.trend, "stable")

    def test_equal_marks_are_not_a_decline(self):
        self.assertEqual(detect_trend([15, 15]).trend, "stable")

    def test_fewer_than_two_marks_is_insufficient(self):
        for marks in ([], [12]):
            trend = detect_trend(marks)
            self.assertFalse(trend.is_declining)
            self.assertEqual(trend.trend, "insufficient_data")
            self.assertNotIn("average_change", trend.as_dict())

    def test_window_is_truncated_to_lookback(self):
        self.assertEqual(detect_trend([10, 12, 14, 5]).trend, "consistent_decline")
        self.assertEqual(detect_trend([10, 12, 14, 5], lookback=4).trend, "stable")
        self.assertEqual(detect_trend([10, 12, 14, 5]).recent_count, 3)

    @override_settings(GRADING={"DECLINE_THRESHOLD": "0.4"})
    def test_threshold_from_settings(self):
        self.assertEqual(detect_trend([18, 17, 19]).trend, "declining")


class PredictFinalTests(SimpleTestCase):
    def _result(self, total, completed):
        return GradeResult(current_total=Decimal(total), total_weight_completed=Decimal(completed))

    def test_no_data(self):
        prediction = predict_final(GradeResult())
        self.assertIsNone(prediction.predicted_grade)
        self.assertIsNone(prediction.predicted_total)
        self.assertEqual(prediction.confidence, "low")
        self.assertEqual(prediction.message, "Insufficient data for prediction")

    def test_flat_extrapolation(self):
        prediction = predict_final(self._result("17.2", "100"))
        self.assertEqual(prediction.predicted_total, Decimal("17.2"))
        self.assertEqual(prediction.predicted_grade, "B")
        self.assertEqual(prediction.confidence, "high")
        self.assertEqual(prediction.message, "Based on 100% completion, predicted final grade: B (17.20/20)")

    def test_confidence_levels(self):
        self.assertEqual(predict_final(self._result("15", "75")).confidence, "high")
        self.assertEqual(predict_final(self._result("15", "74.99")).confidence, "medium")
        self.assertEqual(predict_final(self._result("15", "50")).confidence, "medium")
        self.assertEqual(predict_final(self._result("15", "15")).confidence, "low")

    def test_zero_total_is_still_a_prediction(self):
        prediction = predict_final(self._result("0", "40"))
        self.assertEqual(prediction.predicted_grade, "F")
        self.assertEqual(prediction.confidence, "low")


# -------------------------
#  Services (base de données)
# -------------------------

class GradingFixtureMixin:
    def setUp(self):
        self.teacher = User.objects.create_user(username="teacher", password="pass12345", role="TEACHER")
        self.classroom = Classroom.objects.create(name="Form 5A", subject="Mathematics",
                                                  academic_year="2025/2026", teacher=self.teacher)
        self.alice = Student.objects.create(matricule="S001", last_name="Ngono", first_name="Alice",
                                            classroom=self.classroom)
        self.bob = Student.objects.create(matricule="S002", last_name="Etoa", first_name="Bob",
                                          classroom=self.classroom)
        self.types = {}
        for order, (name, weight) in enumerate([("Midterm", 30), ("Final", 40), ("Homework", 15), ("Quiz", 15)]):
            self.types[name] = AssessmentType.objects.create(classroom=self.classroom, name=name,
                                                             weight=Decimal(weight), display_order=order)

    def enter(self, student, name, score, day=1, status=Mark.Status.PUBLISHED):
        return create_mark(student, self.types[name], date(2025, 10, day), Decimal(str(score)), status=status)


class RecalculationTests(GradingFixtureMixin, TestCase):
    def test_first_published_mark_creates_snapshot(self):
        self.enter(self.alice, "Homework", 20)
        snap = GradeSnapshot.objects.get(student=self.alice, classroom=self.classroom)
        self.assertEqual(snap.current_total, Decimal("20.00"))
        self.assertEqual(snap.grade_letter, "A")
        self.assertFalse(snap.has_all_marks)
        self.assertEqual(snap.total_weight_completed, Decimal("15.00"))

    def test_full_marks_snapshot(self):
        for name, score, day in [("Midterm", 18, 1), ("Final", 16, 2), ("Homework", 19, 3), ("Quiz", 17, 4)]:
            self.enter(self.alice, name, score, day)
        snap = GradeSnapshot.objects.get(student=self.alice)
        self.assertEqual(snap.current_total, Decimal("17.20"))
        self.assertEqual(snap.percentage, Decimal("86.00"))
        self.assertTrue(snap.has_all_marks)
        self.assertEqual(snap.breakdown["Final"]["contribution"], 6.4)

    def test_recalculate_is_idempotent(self):
        self.enter(self.alice, "Midterm", 13.37, 1)
        self.enter(self.alice, "Quiz", 9.5, 2)
        first = recalculate_student(self.alice.id, self.classroom.id)
        second = recalculate_student(self.alice.id, self.classroom.id)
        for field in ("current_total", "percentage", "grade_letter", "breakdown",
                      "has_all_marks", "total_weight_completed"):
            self.assertEqual(getattr(first, field), getattr(second, field))
        self.assertEqual(GradeSnapshot.objects.filter(student=self.alice).count(), 1)

    def test_deleting_last_mark_deletes_snapshot(self):
        m = self.enter(self.alice, "Quiz", 14)
        self.assertTrue(GradeSnapshot.objects.filter(student=self.alice).exists())
        delete_mark(m)
        self.assertFalse(GradeSnapshot.objects.filter(student=self.alice).exists())

    def test_draft_marks_are_ignored_until_published(self):
        m = self.enter(self.alice, "Quiz", 14, status=Mark.Status.DRAFT)
        self.assertFalse(GradeSnapshot.objects.filter(student=self.alice).exists())
        update_mark(m, {"status": Mark.Status.PUBLISHED})
        self.assertEqual(GradeSnapshot.objects.get(student=self.alice).current_total, Decimal("14.00"))

    def test_updating_score_updates_snapshot(self):
        m = self.enter(self.alice, "Quiz", 14)
        update_mark(m, {"score": Decimal("8")})
        snap = GradeSnapshot.objects.get(student=self.alice)
        self.assertEqual(snap.current_total, Decimal("8.00"))
        self.assertEqual(snap.grade_letter, "F")

    def test_compute_does_not_persist(self):
        Mark.objects.create(student=self.alice, assessment_type=self.types["Final"],
                            assessment_date=date(2025, 10, 1), score=Decimal("12"))
        result = compute_student_grade(self.alice.id, self.classroom.id)
        self.assertEqual(result.current_total, Decimal("12"))
        self.assertFalse(GradeSnapshot.objects.exists())

    def test_inactive_types_are_ignored(self):
        self.enter(self.alice, "Quiz", 10, 1)
        self.enter(self.alice, "Final", 20, 2)
        AssessmentType.objects.filter(id=self.types["Quiz"].id).update(is_active=False)
        result = compute_student_grade(self.alice.id, self.classroom.id)
        self.assertEqual(result.current_total, Decimal("20"))
        self.assertNotIn("Quiz", result.breakdown)

    def test_recalculate_class_counts_every_student(self):
        self.enter(self.alice, "Quiz", 14)
        results = recalculate_class(self.classroom.id)
        self.assertEqual(results, {"total": 2, "updated": 2, "errors": []})
        # Bob n'a aucune note: pas de snapshot
        self.assertFalse(GradeSnapshot.objects.filter(student=self.bob).exists())

    def test_recalculate_class_isolates_failures(self):
        self.enter(self.alice, "Quiz", 14)
        self.enter(self.bob, "Quiz", 11)
        bob_id = self.bob.id

        class FlakyRepository(DjangoGradingRepository):
            def get_published_marks(self, student_id, classroom_id=None, limit=None):
                if student_id == bob_id:
                    raise DatabaseError("connection lost")
                return super().get_published_marks(student_id, classroom_id, limit)

        with self.assertLogs("grading.services", level="ERROR"):
            results = recalculate_class(self.classroom.id, repo=FlakyRepository())

        self.assertEqual(results["total"], 2)
        self.assertEqual(results["updated"], 1)
        self.assertEqual(results["errors"], [{"student_id": bob_id, "error": "Grade computation failed."}])
        # le snapshot précédent de Bob est intact
        self.assertEqual(GradeSnapshot.objects.get(student=self.bob).current_total, Decimal("11.00"))

    def test_trend_uses_latest_published_marks(self):
        self.enter(self.alice, "Midterm", 18, day=1)
        self.enter(self.alice, "Final", 16, day=2)
        self.enter(self.alice, "Homework", 14, day=3)
        self.enter(self.alice, "Quiz", 2, day=4, status=Mark.Status.DRAFT)
        trend = detect_student_trend(self.alice.id)
        self.assertEqual(trend.marks, [14.0, 16.0, 18.0])
        self.assertEqual(trend.trend, "consistent_decline")


class ClassStatisticsTests(GradingFixtureMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.carol = Student.objects.create(matricule="S003", last_name="Mballa", first_name="Carol",
                                            classroom=self.classroom)
        self.enter(self.alice, "Final", 19)
        self.enter(self.bob, "Final", 11)
        self.enter(self.carol, "Final", 9)

    def test_class_average(self):
        data = class_average(self.classroom.id)
        self.assertEqual(data, {"student_count": 3, "average_total": 13.0, "average_percentage": 65.0,
                                "lowest_total": 9.0, "highest_total": 19.0})

    def test_class_average_without_snapshots(self):
        other = Classroom.objects.create(name="Form 1", subject="Biology", academic_year="2025/2026")
        self.assertEqual(class_average(other.id)["student_count"], 0)
        self.assertIsNone(class_average(other.id)["average_total"])

    def test_grade_distribution_is_zero_filled(self):
        dist = grade_distribution(self.classroom.id)
        self.assertEqual(list(dist), ["A", "B", "C", "D", "F"])
        self.assertEqual(dist["A"], {"count": 1, "percentage": 33.33})
        self.assertEqual(dist["F"], {"count": 2, "percentage": 66.67})
        self.assertEqual(dist["C"], {"count": 0, "percentage": 0.0})

    def test_alerts(self):
        self.enter(self.alice, "Midterm", 17, day=2)
        self.enter(self.alice, "Homework", 15, day=3)
        alerts = class_alerts(self.classroom.id)
        by_student = {}
        for a in alerts:
            by_student.setdefault(a["student_id"], []).append((a["type"], a["severity"]))
        self.assertEqual(by_student[self.carol.id], [("low_score", "critical")])
        self.assertEqual(by_student[self.bob.id], [("low_score", "warning")])
        self.assertEqual(by_student[self.alice.id], [("declining_trend", "warning")])


class GradingApiTests(GradingFixtureMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.admin = User.objects.create_user(username="admin", password="pass12345", role="ADMIN")
        self.client = APIClient()
        self.client.force_authenticate(self.admin)
        today = date(2025, 10, 1)
        for offset, (name, score) in enumerate([("Midterm", 18), ("Final", 16), ("Homework", 14)]):
            create_mark(self.alice, self.types[name], today + timedelta(days=offset), Decimal(score))

    def test_student_grade(self):
        res = self.client.get(f"/api/grading/students/{self.alice.id}/grade/")
        self.assertEqual(res.status_code, 200)
        # (5.4 + 6.4 + 2.1) / 0.85
        self.assertEqual(res.data["current_total"], 16.35)
        self.assertEqual(res.data["grade_letter"], "B")
        self.assertFalse(res.data["has_all_marks"])
        self.assertEqual(res.data["classroom_id"], self.classroom.id)

    def test_student_grade_unknown_student(self):
        res = self.client.get("/api/grading/students/9999/grade/")
        self.assertEqual(res.status_code, 404)

    def test_trend(self):
        res = self.client.get(f"/api/grading/students/{self.alice.id}/trend/")
        self.assertEqual(res.status_code, 200)
        self.assertTrue(res.data["is_declining"])
        self.assertEqual(res.data["trend"], "consistent_decline")
        self.assertEqual(res.data["marks"], [14.0, 16.0, 18.0])

    def test_trend_with_single_mark_window_is_insufficient(self):
        res = self.client.get(f"/api/grading/students/{self.alice.id}/trend/?lookback=1")
        self.assertEqual(res.status_code, 200)
        self.assertFalse(res.data["is_declining"])
        self.assertEqual(res.data["trend"], "insufficient_data")
        self.assertEqual(res.data["marks"], [14.0])

    def test_trend_rejects_empty_window(self):
        for raw in ("0", "-2", "abc"):
            res = self.client.get(f"/api/grading/students/{self.alice.id}/trend/?lookback={raw}")
            self.assertEqual(res.status_code, 400)
            self.assertIn("lookback", res.data)

    def test_prediction(self):
        res = self.client.get(f"/api/grading/students/{self.alice.id}/prediction/")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data["predicted_grade"], "B")
        self.assertEqual(res.data["confidence"], "high")
        self.assertEqual(res.data["current_completion"], 85.0)

    def test_prediction_without_marks(self):
        res = self.client.get(f"/api/grading/students/{self.bob.id}/prediction/")
        self.assertIsNone(res.data["predicted_grade"])
        self.assertEqual(res.data["confidence"], "low")

    def test_recalculate_class(self):
        GradeSnapshot.objects.all().delete()
        res = self.client.post(f"/api/grading/classes/{self.classroom.id}/recalculate/")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data, {"total": 2, "updated": 2, "errors": []})
        self.assertTrue(GradeSnapshot.objects.filter(student=self.alice).exists())

    def test_recalculate_forbidden_for_other_teacher(self):
        other = User.objects.create_user(username="other", password="pass12345", role="TEACHER")
        self.client.force_authenticate(other)
        res = self.client.post(f"/api/grading/classes/{self.classroom.id}/recalculate/")
        self.assertEqual(res.status_code, 403)

    def test_snapshots_list(self):
        res = self.client.get(f"/api/grades/?classroom={self.classroom.id}")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data["count"], 1)
        self.assertEqual(res.data["results"][0]["current_total"], 16.35)

    def test_student_sees_only_own_grade(self):
        alice_user = User.objects.create_user(username="alice", password="pass12345", role="STUDENT")
        self.alice.user = alice_user
        self.alice.save()
        self.client.force_authenticate(alice_user)
        self.assertEqual(self.client.get(f"/api/grading/students/{self.alice.id}/grade/").status_code, 200)
        self.assertEqual(self.client.get(f"/api/grading/students/{self.bob.id}/grade/").status_code, 404)
