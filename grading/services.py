import logging
from collections import OrderedDict
from decimal import Decimal

from django.db import DatabaseError, transaction

from .calculations import (
    D0, D100, _f, _q, compute_grade, detect_trend, grade_bands, latest_marks_by_type, predict_final,
)
from .conf import get_config
from .exceptions import ComputationError, NotFound
from .repositories import DjangoGradingRepository

logger = logging.getLogger(__name__)


def _repo(repo):
    return repo if repo is not None else DjangoGradingRepository()


def compute_student_grade(student_id: int, classroom_id: int, repo=None, config=None):
    """
    Calcule (sans persister) la note pondérée d'un élève dans une classe.
    Règles: voir grading.calculations.compute_grade (extrapolation si incomplet).
    """
    repo = _repo(repo)
    try:
        assessment_types = repo.get_active_assessment_types(classroom_id)
        marks = repo.get_published_marks(student_id, classroom_id)
    except DatabaseError as exc:
        logger.exception("Grade computation failed for student=%s classroom=%s: %s", student_id, classroom_id, exc)
        raise ComputationError()
    return compute_grade(assessment_types, latest_marks_by_type(marks), config)


def recalculate_student(student_id: int, classroom_id: int, repo=None, config=None):
    """
    Recalcule et persiste le snapshot (student, classroom).
    Retourne le GradeSnapshot, ou None si plus aucune note publiée (snapshot supprimé).
    """
    repo = _repo(repo)
    try:
        with transaction.atomic():
            repo.lock_student(student_id)
            result = compute_student_grade(student_id, classroom_id, repo, config)
            if not result.has_data:
                repo.delete_snapshot(student_id, classroom_id)
                logger.debug("No published marks for student=%s classroom=%s, snapshot removed",
                             student_id, classroom_id)
                return None
            snapshot = repo.save_snapshot(student_id, classroom_id, result)
    except DatabaseError as exc:
        logger.exception("Snapshot update failed for student=%s classroom=%s: %s", student_id, classroom_id, exc)
        raise ComputationError()
    logger.debug("Snapshot student=%s classroom=%s -> %s (%s)",
                 student_id, classroom_id, snapshot.current_total, snapshot.grade_letter)
    return snapshot


def recalculate_class(classroom_id: int, repo=None, config=None):
    """
    Recalcule tous les élèves de la classe, un par un.
    L'échec d'un élève est noté dans `errors` sans interrompre le lot.
    """
    repo = _repo(repo)
    student_ids = repo.get_student_ids_in_class(classroom_id)
    results = {"total": len(student_ids), "updated": 0, "errors": []}

    for student_id in student_ids:
        try:
            recalculate_student(student_id, classroom_id, repo, config)
        except (ComputationError, NotFound, DatabaseError) as exc:
            results["errors"].append({"student_id": student_id, "error": str(exc)})
            continue
        results["updated"] += 1

    logger.info("Recalculated classroom=%s: %s/%s updated, %s errors",
                classroom_id, results["updated"], results["total"], len(results["errors"]))
    return results


def reassign_student(student_id: int, old_classroom_id, new_classroom_id, repo=None, config=None):
    """
    Changement de classe: le snapshot de l'ancienne classe est supprimé (les stats de
    classe ne portent que sur les élèves présents), celui de la nouvelle est recalculé.
    Les notes restent; la note de l'ancienne classe reste consultable à la volée (?classroom=).
    """
    if old_classroom_id == new_classroom_id:
        return None
    repo = _repo(repo)
    with transaction.atomic():
        if old_classroom_id is not None:
            repo.delete_snapshot(student_id, old_classroom_id)
        snapshot = None
        if new_classroom_id is not None:
            snapshot = recalculate_student(student_id, new_classroom_id, repo, config)
    logger.info("Student %s moved from classroom=%s to classroom=%s", student_id, old_classroom_id, new_classroom_id)
    return snapshot


def detect_student_trend(student_id: int, lookback: int = None, classroom_id: int = None, repo=None, config=None):
    c = config or get_config()
    window = c.trend_lookback if lookback is None else lookback
    repo = _repo(repo)
    try:
        marks = repo.get_published_marks(student_id, classroom_id, limit=window)
    except DatabaseError as exc:
        logger.exception("Trend detection failed for student=%s: %s", student_id, exc)
        raise ComputationError()
    return detect_trend([m.score for m in marks], window, c)


def predict_student_final(student_id: int, classroom_id: int, repo=None, config=None):
    result = compute_student_grade(student_id, classroom_id, repo, config)
    return predict_final(result, config)


# -------------------------
#  Statistiques de classe (sur les snapshots)
# -------------------------

def class_average(classroom_id: int, repo=None):
    snapshots = [s for s in _repo(repo).get_snapshots_for_class(classroom_id) if s.current_total is not None]
    if not snapshots:
        return {"student_count": 0, "average_total": None, "average_percentage": None,
                "lowest_total": None, "highest_total": None}
    totals = [Decimal(s.current_total) for s in snapshots]
    percentages = [Decimal(s.percentage) for s in snapshots]
    n = len(snapshots)
    return {
        "student_count": n,
        "average_total": _f(sum(totals, D0) / n),
        "average_percentage": _f(sum(percentages, D0) / n),
        "lowest_total": _f(min(totals)),
        "highest_total": _f(max(totals)),
    }


def grade_distribution(classroom_id: int, repo=None, config=None):
    letters = [b.letter for b in grade_bands(config)]
    counts = OrderedDict((letter, 0) for letter in letters)
    snapshots = _repo(repo).get_snapshots_for_class(classroom_id)
    for s in snapshots:
        if s.grade_letter in counts:
            counts[s.grade_letter] += 1
    n = sum(counts.values())
    return OrderedDict(
        (letter, {"count": count, "percentage": _f(Decimal(count) * D100 / n) if n else 0.0})
        for letter, count in counts.items()
    )


def class_alerts(classroom_id: int, repo=None, config=None):
    """
    Alertes calculées à la volée (non persistées):
      - low_score: total < CRITICAL_THRESHOLD (critical) ou < WARNING_THRESHOLD (warning)
      - declining_trend: tendance à la baisse sur les dernières notes de la classe
    """
    c = config or get_config()
    repo = _repo(repo)
    alerts = []
    snapshots = {s.student_id: s for s in repo.get_snapshots_for_class(classroom_id)}

    for student_id in repo.get_student_ids_in_class(classroom_id):
        snap = snapshots.get(student_id)
        if snap is not None and snap.current_total is not None:
            total = Decimal(snap.current_total)
            severity = None
            if total < c.critical_threshold:
                severity = "critical"
            elif total < c.warning_threshold:
                severity = "warning"
            if severity:
                alerts.append({
                    "student_id": student_id,
                    "type": "low_score",
                    "severity": severity,
                    "message": f"Current total {_q(total)}/{c.max_score.normalize():f} is below "
                               f"{c.critical_threshold if severity == 'critical' else c.warning_threshold}",
                })

        trend = detect_student_trend(student_id, classroom_id=classroom_id, repo=repo, config=c)
        if trend.is_declining:
            alerts.append({
                "student_id": student_id,
                "type": "declining_trend",
                "severity": "warning",
                "message": f"Marks trend: {trend.trend} ({', '.join(str(m) for m in trend.marks)})",
            })
    return alerts
