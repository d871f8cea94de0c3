"""Core infrastructure modules."""

from .config import GaitDetectionConfig, HFVPConfig, ScoringConfig, Settings, load_settings
from .exceptions import (
    AssessmentError,
    CalibrationError,
    DegenerateFitError,
    InputValidationError,
    InvalidTransitionError,
    RuleNotFoundError,
)

__all__ = [
    "AssessmentError",
    "CalibrationError",
    "DegenerateFitError",
    "GaitDetectionConfig",
    "HFVPConfig",
    "InputValidationError",
    "InvalidTransitionError",
    "RuleNotFoundError",
    "ScoringConfig",
    "Settings",
    "load_settings",
]
