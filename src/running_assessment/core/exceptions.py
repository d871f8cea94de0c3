"""
Custom exceptions for the running assessment core.

Only input invariant violations raise; insufficient evidence, numerical
degeneracies and quality-gate failures are reported through result warnings.
"""


class AssessmentError(Exception):
    """Base exception for all running assessment errors."""


class InputValidationError(AssessmentError, ValueError):
    """Input invariant violated (non-monotonic data, bad mass, too few points)."""


class RuleNotFoundError(AssessmentError, KeyError):
    """No grade rule is active for the requested grade and instant."""


class InvalidTransitionError(AssessmentError):
    """Requested attempt status transition is not allowed."""

    def __init__(self, current: str, target: str, reason: str = "") -> None:
        self.current = current
        self.target = target
        message = f"Cannot transition from '{current}' to '{target}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class CalibrationError(AssessmentError):
    """Distance mapping is malformed or degenerate."""


class DegenerateFitError(AssessmentError):
    """Regression system is singular (e.g. all x values equal)."""
