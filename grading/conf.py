from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

DEFAULTS = {
    "MAX_SCORE": "20",
    "MIN_SCORE": "0",
    "GRADE_A_MIN": "18",
    "GRADE_B_MIN": "16",
    "GRADE_C_MIN": "14",
    "GRADE_D_MIN": "12",
    "TREND_LOOKBACK": "3",
    "DECLINE_THRESHOLD": "1.0",
    "HIGH_CONFIDENCE_COMPLETION": "75",
    "MEDIUM_CONFIDENCE_COMPLETION": "50",
    "WARNING_THRESHOLD": "12",
    "CRITICAL_THRESHOLD": "10",
    "WEIGHT_TOLERANCE": "0.01",
}


@dataclass(frozen=True)
class GradingConfig:
    max_score: Decimal
    min_score: Decimal
    grade_a_min: Decimal
    grade_b_min: Decimal
    grade_c_min: Decimal
    grade_d_min: Decimal
    trend_lookback: int
    decline_threshold: Decimal
    high_confidence_completion: Decimal
    medium_confidence_completion: Decimal
    warning_threshold: Decimal
    critical_threshold: Decimal
    weight_tolerance: Decimal

    @property
    def max_total_weight(self) -> Decimal:
        return Decimal("100") + self.weight_tolerance


def _decimal(raw, key):
    try:
        return Decimal(str(raw[key]))
    except (InvalidOperation, TypeError, ValueError):
        raise ImproperlyConfigured(f"GRADING['{key}'] must be a number, got {raw[key]!r}")


def get_config() -> GradingConfig:
    """Lit settings.GRADING (complété par DEFAULTS) à chaque appel, pour override_settings."""
    raw = {**DEFAULTS, **getattr(settings, "GRADING", {})}
    try:
        lookback = int(raw["TREND_LOOKBACK"])
    except (TypeError, ValueError):
        raise ImproperlyConfigured(f"GRADING['TREND_LOOKBACK'] must be an integer, got {raw['TREND_LOOKBACK']!r}")

    config = GradingConfig(
        max_score=_decimal(raw, "MAX_SCORE"),
        min_score=_decimal(raw, "MIN_SCORE"),
        grade_a_min=_decimal(raw, "GRADE_A_MIN"),
        grade_b_min=_decimal(raw, "GRADE_B_MIN"),
        grade_c_min=_decimal(raw, "GRADE_C_MIN"),
        grade_d_min=_decimal(raw, "GRADE_D_MIN"),
        trend_lookback=lookback,
        decline_threshold=_decimal(raw, "DECLINE_THRESHOLD"),
        high_confidence_completion=_decimal(raw, "HIGH_CONFIDENCE_COMPLETION"),
        medium_confidence_completion=_decimal(raw, "MEDIUM_CONFIDENCE_COMPLETION"),
        warning_threshold=_decimal(raw, "WARNING_THRESHOLD"),
        critical_threshold=_decimal(raw, "CRITICAL_THRESHOLD"),
        weight_tolerance=_decimal(raw, "WEIGHT_TOLERANCE"),
    )

    thresholds = [config.max_score, config.grade_a_min, config.grade_b_min,
                  config.grade_c_min, config.grade_d_min, config.min_score]
    # bornes strictement décroissantes: MAX >= A > B > C > D > MIN
    if not (thresholds[0] >= thresholds[1] and all(a > b for a, b in zip(thresholds[1:], thresholds[2:]))):
        raise ImproperlyConfigured(
            "Grade thresholds must satisfy MAX_SCORE >= A > B > C > D > MIN_SCORE, got "
            + ", ".join(str(t) for t in thresholds)
        )
    if config.trend_lookback < 2:
        raise ImproperlyConfigured("GRADING['TREND_LOOKBACK'] must be at least 2.")
    return config
