"""
Écritures sur AssessmentType et Mark.

Chaque écriture de note et son recalcul se font dans la même transaction:
si le recalcul échoue, la note n'est pas enregistrée (pas de snapshot périmé).
"""
import logging
from decimal import Decimal, InvalidOperation

from django.db import IntegrityError, transaction
from django.db.models import Sum
from django.utils import timezone
from rest_framework import serializers

from core.models import Classroom
from enrollments.models import Student
from grading.conf import get_config
from grading.exceptions import ConflictError, NotFound, WeightLimitExceeded
from grading.services import recalculate_class, recalculate_student
from .models import AssessmentType, AssessmentWeightHistory, Mark

logger = logging.getLogger(__name__)

D0 = Decimal("0")
D100 = Decimal("100")


# -------------------------
#  Poids
# -------------------------

def active_weight_total(classroom_id, exclude_id=None):
    qs = AssessmentType.objects.filter(classroom_id=classroom_id, is_active=True)
    if exclude_id is not None:
        qs = qs.exclude(id=exclude_id)
    return qs.aggregate(total=Sum("weight"))["total"] or D0


def validate_weights(classroom_id):
    """{is_valid, total_weight, remaining}; valide = somme des poids actifs == 100 (± tolérance)."""
    config = get_config()
    total = active_weight_total(classroom_id)
    return {
        "is_valid": abs(total - D100) < config.weight_tolerance,
        "total_weight": float(total),
        "remaining": float(D100 - total),
    }


def _lock_classroom(classroom_id):
    try:
        return Classroom.objects.select_for_update().get(id=classroom_id)
    except Classroom.DoesNotExist:
        raise NotFound(f"Classroom {classroom_id} not found.")


def _check_weight_budget(classroom_id, weight, exclude_id=None):
    # à appeler après _lock_classroom, dans la même transaction
    current = active_weight_total(classroom_id, exclude_id)
    resulting = current + Decimal(str(weight))
    if resulting > get_config().max_total_weight:
        logger.warning("Weight change rejected for classroom=%s: current=%s attempted=%s total=%s",
                       classroom_id, current, weight, resulting)
        raise WeightLimitExceeded(current, weight, resulting)


def create_assessment_type(classroom_id, name, weight, display_order=0, max_score=None, is_active=True):
    config = get_config()
    with transaction.atomic():
        _lock_classroom(classroom_id)
        if is_active:
            _check_weight_budget(classroom_id, weight)
        at = AssessmentType.objects.create(
            classroom_id=classroom_id,
            name=name,
            weight=weight,
            display_order=display_order,
            max_score=max_score if max_score is not None else config.max_score,
            is_active=is_active,
        )
        if is_active:
            recalculate_class(classroom_id)
    logger.info("Assessment type %s (%s%%) created for classroom=%s", at.name, at.weight, classroom_id)
    return at


def update_assessment_type(assessment_type, changes, user=None):
    """
    changes: sous-ensemble de {name, weight, display_order, is_active}.
    Un changement de poids est historisé. Tout champ repris dans les snapshots
    (poids, activation, nom et ordre du breakdown) modifié -> recalcul de la classe.
    """
    classroom_id = assessment_type.classroom_id
    with transaction.atomic():
        _lock_classroom(classroom_id)
        at = AssessmentType.objects.select_for_update().get(id=assessment_type.id)

        new_weight = Decimal(str(changes.get("weight", at.weight)))
        new_active = changes.get("is_active", at.is_active)
        weight_changed = new_weight != at.weight
        active_changed = new_active != at.is_active
        layout_changed = any(
            field in changes and changes[field] != getattr(at, field) for field in ("name", "display_order")
        )

        if new_active and (weight_changed or active_changed):
            _check_weight_budget(classroom_id, new_weight, exclude_id=at.id)

        if weight_changed:
            AssessmentWeightHistory.objects.create(
                classroom_id=classroom_id,
                assessment_type=at,
                old_weight=at.weight,
                new_weight=new_weight,
                changed_by=user if getattr(user, "is_authenticated", False) else None,
            )

        for field in ("name", "display_order", "is_active"):
            if field in changes:
                setattr(at, field, changes[field])
        at.weight = new_weight
        at.save()

        if weight_changed or active_changed or layout_changed:
            recalculate_class(classroom_id)
    return at


def delete_assessment_type(assessment_type):
    classroom_id = assessment_type.classroom_id
    with transaction.atomic():
        _lock_classroom(classroom_id)
        if assessment_type.marks.exists():
            raise ConflictError("Assessment type already has marks; deactivate it instead.")
        assessment_type.delete()
        recalculate_class(classroom_id)


# -------------------------
#  Notes
# -------------------------

def check_score(value, assessment_type=None):
    config = get_config()
    try:
        score = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise serializers.ValidationError({"score": "Score must be a number."})
    if not score.is_finite():
        raise serializers.ValidationError({"score": "Score must be a number."})
    upper = config.max_score
    if assessment_type is not None:
        upper = min(upper, Decimal(assessment_type.max_score))
    if not (config.min_score <= score <= upper):
        raise serializers.ValidationError(
            {"score": f"Score must be between {config.min_score.normalize():f} and {upper.normalize():f}."}
        )
    return score


def check_same_classroom(student, assessment_type):
    if student.classroom_id != assessment_type.classroom_id:
        raise serializers.ValidationError(
            {"assessment_type": "Assessment type does not belong to the student's class."}
        )


def _lock_student(student_id):
    try:
        return Student.objects.select_for_update().get(id=student_id)
    except Student.DoesNotExist:
        raise NotFound(f"Student {student_id} not found.")


def _actor(user):
    if user is None or not getattr(user, "is_authenticated", False):
        return None
    return user


def _duplicate_exists(student_id, assessment_type_id, assessment_date, exclude_id=None):
    qs = Mark.objects.filter(student_id=student_id, assessment_type_id=assessment_type_id,
                             assessment_date=assessment_date)
    if exclude_id is not None:
        qs = qs.exclude(id=exclude_id)
    return qs.exists()


def _duplicate_error(student_id, assessment_type_id, assessment_date):
    logger.warning("Duplicate mark rejected: student=%s assessment_type=%s date=%s",
                   student_id, assessment_type_id, assessment_date)
    return ConflictError("Mark already exists for this student and assessment on this date.")


def create_mark(student, assessment_type, assessment_date, score, status=Mark.Status.PUBLISHED,
                teacher_comment="", user=None):
    score = check_score(score, assessment_type)
    check_same_classroom(student, assessment_type)

    with transaction.atomic():
        _lock_student(student.id)
        if _duplicate_exists(student.id, assessment_type.id, assessment_date):
            raise _duplicate_error(student.id, assessment_type.id, assessment_date)
        try:
            with transaction.atomic():
                mark = Mark.objects.create(
                    student=student,
                    assessment_type=assessment_type,
                    assessment_date=assessment_date,
                    score=score,
                    max_score=assessment_type.max_score,
                    status=status,
                    teacher_comment=teacher_comment or "",
                    entered_by=_actor(user),
                )
        except IntegrityError:
            raise _duplicate_error(student.id, assessment_type.id, assessment_date)
        recalculate_student(student.id, assessment_type.classroom_id)
    return mark


def update_mark(mark, changes, user=None):
    """changes: sous-ensemble de {score, status, assessment_date, teacher_comment}; chaque modif est journalisée."""
    if "score" in changes:
        changes = {**changes, "score": check_score(changes["score"], mark.assessment_type)}

    with transaction.atomic():
        _lock_student(mark.student_id)
        mark = Mark.objects.select_for_update().select_related("assessment_type").get(id=mark.id)

        new_date = changes.get("assessment_date", mark.assessment_date)
        if new_date != mark.assessment_date and _duplicate_exists(
                mark.student_id, mark.assessment_type_id, new_date, exclude_id=mark.id):
            raise _duplicate_error(mark.student_id, mark.assessment_type_id, new_date)

        actor = _actor(user)
        now = timezone.now().isoformat()
        log = list(mark.change_log or [])
        for field in ("score", "status", "assessment_date", "teacher_comment"):
            if field not in changes:
                continue
            old, new = getattr(mark, field), changes[field]
            if old == new:
                continue
            log.append({
                "changed_at": now,
                "changed_by": actor.username if actor else None,
                "field": field,
                "old": str(old),
                "new": str(new),
            })
            setattr(mark, field, new)
        mark.change_log = log
        try:
            with transaction.atomic():
                mark.save()
        except IntegrityError:
            raise _duplicate_error(mark.student_id, mark.assessment_type_id, mark.assessment_date)
        recalculate_student(mark.student_id, mark.assessment_type.classroom_id)
    return mark


def delete_mark(mark):
    classroom_id = mark.assessment_type.classroom_id
    student_id = mark.student_id
    with transaction.atomic():
        _lock_student(student_id)
        mark.delete()
        recalculate_student(student_id, classroom_id)


def _entry_student_id(entry):
    try:
        return int(entry.get("student"))
    except (TypeError, ValueError):
        return None


def bulk_upsert_marks(assessment_type, assessment_date, entries, status=Mark.Status.PUBLISHED, user=None):
    """
    Saisie en lot pour UNE évaluation à une date donnée, en une seule transaction.
    entries: [{"student": <id>, "score": 17.5, "teacher_comment": "..."}]
    Les entrées invalides ou répétées sont ignorées avec une raison (comme une saisie partielle).
    """
    student_ids = [sid for sid in (_entry_student_id(e) for e in entries) if sid is not None]
    results = {"created": [], "updated": [], "skipped": []}

    with transaction.atomic():
        students = {s.id: s for s in Student.objects.filter(id__in=student_ids)}
        existing = {
            m.student_id: m
            for m in Mark.objects.filter(assessment_type=assessment_type, assessment_date=assessment_date)
        }
        seen = set()

        for e in entries:
            student_id = _entry_student_id(e)
            student = students.get(student_id)
            if student is None:
                results["skipped"].append({"student": e.get("student"), "reason": "Student not found"})
                continue
            if student_id in seen:
                results["skipped"].append({"student": student_id, "reason": "Duplicate entry"})
                continue
            seen.add(student_id)
            if student.classroom_id != assessment_type.classroom_id:
                results["skipped"].append({"student": student_id, "reason": "Student not in this class"})
                continue
            try:
                score = check_score(e.get("score"), assessment_type)
            except serializers.ValidationError:
                results["skipped"].append({"student": student_id, "reason": "Invalid score"})
                continue

            if student_id in existing:
                changes = {"score": score, "status": status}
                if "teacher_comment" in e:
                    changes["teacher_comment"] = e["teacher_comment"] or ""
                m = update_mark(existing[student_id], changes, user=user)
                results["updated"].append(m.id)
            else:
                m = create_mark(student, assessment_type, assessment_date, score, status=status,
                                teacher_comment=e.get("teacher_comment", ""), user=user)
                existing[student_id] = m
                results["created"].append(m.id)

    logger.info("Bulk marks for assessment_type=%s date=%s: %s created, %s updated, %s skipped",
                assessment_type.id, assessment_date, len(results["created"]), len(results["updated"]),
                len(results["skipped"]))
    return results
