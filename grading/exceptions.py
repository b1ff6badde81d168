from rest_framework import status
from rest_framework.exceptions import APIException, NotFound, ValidationError

__all__ = [
    "InvalidInputError", "WeightLimitExceeded", "ConflictError", "ComputationError",
    "NotFound", "ValidationError",
]


class InvalidInputError(APIException):
    """Entrée numérique impossible à traiter (ex: max_score <= 0)."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid input."
    default_code = "invalid_input"


class WeightLimitExceeded(ValidationError):
    def __init__(self, current_total, attempted, resulting_total, limit=100):
        self.current_total = current_total
        self.attempted = attempted
        self.resulting_total = resulting_total
        super().__init__({
            "detail": f"Total weight would exceed {limit}%.",
            "current_total": float(current_total),
            "attempted": float(attempted),
            "resulting_total": float(resulting_total),
        }, code="weight_limit")


class ConflictError(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Conflicting resource already exists."
    default_code = "conflict"


class ComputationError(APIException):
    # détail opaque côté client, la cause est loggée
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Grade computation failed."
    default_code = "computation_error"
