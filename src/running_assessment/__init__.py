"""Running Assessment: gait events, sprint force-velocity profiles and skill certification.

Analyzes pose landmarks extracted from running videos: detects foot contacts
and toe-offs, derives step metrics, estimates the horizontal force-velocity
profile from split times and scores certification attempts against graded
rule sets.
"""

import logging

__version__ = "0.1.0"

from running_assessment.analysis import (
    GaitEventDetector,
    HFVPEstimator,
    HFVPInput,
    compute_hfvp,
    compute_step_metrics,
    detect_gait_events,
)
from running_assessment.certification import (
    CertificationScorer,
    GradeCode,
    ScoringInput,
    determine_judgment_mode,
    load_grade_rules,
)
from running_assessment.core import Settings, load_settings
from running_assessment.pose import LandmarkSequence

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "CertificationScorer",
    "GaitEventDetector",
    "GradeCode",
    "HFVPEstimator",
    "HFVPInput",
    "LandmarkSequence",
    "ScoringInput",
    "Settings",
    "__version__",
    "compute_hfvp",
    "compute_step_metrics",
    "detect_gait_events",
    "determine_judgment_mode",
    "load_grade_rules",
    "load_settings",
]
