"""
Moteur de calcul des notes (barème 0-20), sans accès base de données.

    normalize        -> ramène une note brute sur l'échelle cible
    compute_grade    -> moyenne pondérée (avec complétion partielle)
    classify         -> lettre A..F
    detect_trend     -> tendance à la baisse sur les dernières notes
    predict_final    -> prédiction naïve de la note finale

Tous les calculs se font en Decimal; l'arrondi (2 décimales, ROUND_HALF_UP)
n'est appliqué qu'à la sortie (as_dict / snapshot).

Politique de complétion partielle: si toutes les évaluations n'ont pas encore
de note, le total est extrapolé "comme si" les poids déjà notés représentaient
100% de la note (total / (poids_complété / 100)). Une seule note de 20/20 en
Homework (15%) donne donc 20/20 au total, et non 3/20. C'est un choix de
présentation discutable mais attendu par l'interface; ne pas le "corriger".
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from .conf import GradingConfig, get_config
from .exceptions import InvalidInputError

D0 = Decimal("0")
D100 = Decimal("100")

TREND_INSUFFICIENT = "insufficient_data"
TREND_CONSISTENT_DECLINE = "consistent_decline"
TREND_DECLINING = "declining"
TREND_STABLE = "stable"


def _q(x):
    return Decimal(str(x)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _f(x):
    return float(_q(x)) if x is not None else None


# -------------------------
#  Types
# -------------------------

@dataclass(frozen=True)
class AssessmentTypeInfo:
    id: int
    name: str
    weight: Decimal
    display_order: int = 0


@dataclass(frozen=True)
class MarkInfo:
    assessment_type_id: int
    score: Decimal
    max_score: Decimal
    assessment_date: Optional[date] = None
    entered_at: Optional[datetime] = None


@dataclass(frozen=True)
class GradeBand:
    letter: str
    min_mark: Decimal  # inclusif
    max_mark: Decimal
    description: str

    def as_dict(self):
        return {
            "letter": self.letter,
            "min": float(self.min_mark),
            "max": float(self.max_mark),
            "description": self.description,
        }


@dataclass
class GradeResult:
    current_total: Optional[Decimal] = None
    percentage: Optional[Decimal] = None
    grade_letter: Optional[str] = None
    grade_description: Optional[str] = None
    breakdown: Dict[str, dict] = field(default_factory=dict)
    has_all_marks: bool = False
    total_weight_completed: Decimal = D0

    @property
    def has_data(self):
        return self.current_total is not None

    def as_dict(self):
        return {
            "current_total": _f(self.current_total),
            "percentage": _f(self.percentage),
            "grade_letter": self.grade_letter,
            "grade_description": self.grade_description,
            "breakdown": self.breakdown,
            "has_all_marks": self.has_all_marks,
            "total_weight_completed": _f(self.total_weight_completed),
        }


@dataclass
class TrendResult:
    is_declining: bool
    trend: str
    marks: List[float]
    average_change: Optional[Decimal] = None

    @property
    def recent_count(self):
        return len(self.marks)

    def as_dict(self):
        data = {
            "is_declining": self.is_declining,
            "trend": self.trend,
            "marks": self.marks,
            "recent_count": self.recent_count,
        }
        if self.average_change is not None:
            data["average_change"] = _f(self.average_change)
        return data


@dataclass
class Prediction:
    predicted_total: Optional[Decimal]
    predicted_grade: Optional[str]
    predicted_description: Optional[str]
    current_completion: Decimal
    confidence: str
    message: str

    def as_dict(self):
        return {
            "predicted_total": _f(self.predicted_total),
            "predicted_grade": self.predicted_grade,
            "predicted_description": self.predicted_description,
            "current_completion": _f(self.current_completion),
            "confidence": self.confidence,
            "message": self.message,
        }


# -------------------------
#  Normalisation
# -------------------------

def normalize(score, max_score, target_scale=None, config: GradingConfig = None) -> Decimal:
    """score / max_score * target_scale (target_scale = MAX_SCORE par défaut)."""
    if target_scale is None:
        target_scale = (config or get_config()).max_score
    max_score = Decimal(str(max_score))
    if max_score <= D0:
        raise InvalidInputError(f"max_score must be greater than 0, got {max_score}.")
    return Decimal(str(score)) / max_score * Decimal(str(target_scale))


# -------------------------
#  Mentions
# -------------------------

def grade_bands(config: GradingConfig = None):
    """Table A..F, du seuil le plus haut au plus bas, contiguë sur [MIN, MAX]."""
    c = config or get_config()
    return (
        GradeBand("A", c.grade_a_min, c.max_score, "Excellent"),
        GradeBand("B", c.grade_b_min, c.grade_a_min, "Very Good"),
        GradeBand("C", c.grade_c_min, c.grade_b_min, "Good"),
        GradeBand("D", c.grade_d_min, c.grade_c_min, "Satisfactory"),
        GradeBand("F", c.min_score, c.grade_d_min, "Needs Improvement"),
    )


def classify(total, config: GradingConfig = None) -> GradeBand:
    """
    Première bande (A -> F) dont le seuil min est atteint; égalité -> bande haute.
    Hors [MIN, MAX] on borne: au-dessus de MAX -> A, en dessous de MIN -> F.
    """
    bands = grade_bands(config)
    value = Decimal(str(total))
    for band in bands[:-1]:
        if value >= band.min_mark:
            return band
    return bands[-1]


# -------------------------
#  Moyenne pondérée
# -------------------------

def latest_marks_by_type(marks: Iterable[MarkInfo]) -> Dict[int, MarkInfo]:
    """Une note par type: la plus récente (date d'évaluation, puis date de saisie)."""
    latest = {}
    for m in marks:
        current = latest.get(m.assessment_type_id)
        if current is None or _mark_key(m) > _mark_key(current):
            latest[m.assessment_type_id] = m
    return latest


def _mark_key(m: MarkInfo):
    return (m.assessment_date or date.min, m.entered_at or datetime.min)


def compute_grade(assessment_types: Sequence[AssessmentTypeInfo],
                  marks_by_assessment_type: Mapping[int, MarkInfo],
                  config: GradingConfig = None) -> GradeResult:
    c = config or get_config()
    if not assessment_types:
        return GradeResult()

    total_weighted = D0
    weight_completed = D0
    has_all_marks = True
    breakdown = {}

    for at in sorted(assessment_types, key=lambda a: (a.display_order, a.id)):
        weight = Decimal(str(at.weight))
        mark = marks_by_assessment_type.get(at.id)
        if mark is None:
            has_all_marks = False
            breakdown[at.name] = {"score": None, "weight": float(weight), "contribution": None}
            continue

        normalized = normalize(mark.score, mark.max_score, c.max_score)
        contribution = normalized * (weight / D100)
        total_weighted += contribution
        weight_completed += weight
        breakdown[at.name] = {
            "score": float(Decimal(str(mark.score))),
            "weight": float(weight),
            "contribution": _f(contribution),
        }

    if weight_completed == D0:
        return GradeResult(breakdown=breakdown, has_all_marks=False)

    if has_all_marks:
        current_total = total_weighted
    else:
        # extrapolation "comme si complet" (voir docstring du module)
        current_total = total_weighted / (weight_completed / D100)

    band = classify(current_total, c)
    return GradeResult(
        current_total=current_total,
        percentage=current_total / c.max_score * D100,
        grade_letter=band.letter,
        grade_description=band.description,
        breakdown=breakdown,
        has_all_marks=has_all_marks,
        total_weight_completed=weight_completed,
    )


# -------------------------
#  Tendance
# -------------------------

def detect_trend(recent_scores_newest_first: Sequence, lookback: int = None,
                 config: GradingConfig = None) -> TrendResult:
    """
    Heuristique sur les `lookback` dernières notes (plus récente d'abord):
      - baisse constante: chaque note < la précédente (plus ancienne)
      - variation moyenne: moyenne de (ancienne - récente), positive = baisse
      - en baisse si constante OU variation moyenne > DECLINE_THRESHOLD
    """
    c = config or get_config()
    window = c.trend_lookback if lookback is None else lookback
    scores = [Decimal(str(s)) for s in list(recent_scores_newest_first)[:window]]
    as_floats = [float(s) for s in scores]

    if len(scores) < 2:
        return TrendResult(is_declining=False, trend=TREND_INSUFFICIENT, marks=as_floats)

    pairs = list(zip(scores, scores[1:]))  # (récente, plus ancienne)
    consistent = all(newer < older for newer, older in pairs)
    average_change = sum((older - newer for newer, older in pairs), D0) / len(pairs)

    if consistent:
        trend = TREND_CONSISTENT_DECLINE
    elif average_change > c.decline_threshold:
        trend = TREND_DECLINING
    else:
        trend = TREND_STABLE

    return TrendResult(
        is_declining=trend != TREND_STABLE,
        trend=trend,
        marks=as_floats,
        average_change=average_change,
    )


# -------------------------
#  Prédiction
# -------------------------

def confidence_for(completion, config: GradingConfig = None) -> str:
    c = config or get_config()
    completion = Decimal(str(completion))
    if completion >= c.high_confidence_completion:
        return "high"
    if completion >= c.medium_confidence_completion:
        return "medium"
    return "low"


def predict_final(result: GradeResult, config: GradingConfig = None) -> Prediction:
    """Extrapolation plate: la note finale prédite = la note courante."""
    c = config or get_config()
    if result.current_total is None:
        return Prediction(
            predicted_total=None,
            predicted_grade=None,
            predicted_description=None,
            current_completion=result.total_weight_completed,
            confidence="low",
            message="Insufficient data for prediction",
        )

    band = classify(result.current_total, c)
    completion = result.total_weight_completed
    total = _q(result.current_total)
    return Prediction(
        predicted_total=result.current_total,
        predicted_grade=band.letter,
        predicted_description=band.description,
        current_completion=completion,
        confidence=confidence_for(completion, c),
        message=(f"Based on {_q(completion).normalize():f}% completion, predicted final grade: "
                 f"{band.letter} ({total}/{c.max_score.normalize():f})"),
    )
