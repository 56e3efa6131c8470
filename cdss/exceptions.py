"""
CDSS Exception Hierarchy

Structured error types raised (or recorded) by the evaluation core.
"""

from typing import Any, Dict, Iterable, Optional


class CDSSError(Exception):
    """Base exception for all CDSS evaluation errors."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details
        }


class ValidationError(CDSSError):
    """Malformed or out-of-domain input. Always surfaced to the caller."""

    def __init__(
        self,
        message: str,
        field: str = "unknown",
        allowed: Optional[Iterable[Any]] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        extra: Dict[str, Any] = {"field": field}
        if allowed is not None:
            allowed = [str(a) for a in allowed]
            extra["allowed"] = allowed
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            details={**extra, **(details or {})}
        )
        self.field = field
        self.allowed = allowed


class RuleEvaluationError(CDSSError):
    """A single rule failed while being evaluated. Recorded, never raised to callers."""

    def __init__(
        self,
        rule_id: str,
        cause: Exception,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=f"Rule {rule_id} failed: {type(cause).__name__}: {cause}",
            code="RULE_EVALUATION_ERROR",
            details={"rule_id": rule_id, "cause": type(cause).__name__, **(details or {})}
        )
        self.rule_id = rule_id
        self.cause = cause


def require_range(
    value: Any,
    field: str,
    minimum: float,
    maximum: float
) -> float:
    """Return value as float if it lies in [minimum, maximum], else raise ValidationError."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number, got {value!r}", field=field)

    # NaN fails both comparisons
    if not (minimum <= number <= maximum):
        raise ValidationError(
            f"{field}={value} is outside the accepted range [{minimum}, {maximum}]",
            field=field,
            details={"min": minimum, "max": maximum, "value": value}
        )
    return number
