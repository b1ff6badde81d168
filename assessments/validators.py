from django.core.exceptions import ValidationError

from grading.conf import get_config


def validate_score_range(value):
    """Note dans [MIN_SCORE, MAX_SCORE] du barème configuré (lu à l'appel, pas à l'import)."""
    config = get_config()
    if value is None:
        return
    if not (config.min_score <= value <= config.max_score):
        raise ValidationError(
            "Score must be between %(min)s and %(max)s.",
            code="score_range",
            params={"min": config.min_score.normalize(), "max": config.max_score.normalize()},
        )
