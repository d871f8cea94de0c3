"""Certification domain types: grades, measurements, scoring input and results."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Iterator, Mapping, Sequence

import numpy as np

from running_assessment.core.exceptions import InputValidationError
from running_assessment.pose.angles import AngleMeasurement

MIN_GRADE = 1
MAX_GRADE = 10
REVIEW_GRADE_LIMIT = 2  # grades at or below this number are the advanced ones

# Item keys accepted by manual corrections
CORRECTABLE_ITEMS = (
    "knee_flexion",
    "hip_extension",
    "trunk_lean",
    "stride_length_ratio",
    "stride_frequency",
    "contact_time",
    "f0",
    "v0",
    "pmax",
    "drf",
)


class QualityGrade(Enum):
    """Reliability label attached to a measurement or score."""

    GOOD = "good"
    ACCEPTABLE = "acceptable"
    REFERENCE_ONLY = "reference_only"

    @property
    def rank(self) -> int:
        return {"good": 0, "acceptable": 1, "reference_only": 2}[self.value]

    def worst(self, other: QualityGrade) -> QualityGrade:
        """The less reliable of two grades."""
        return self if self.rank >= other.rank else other

    @property
    def is_certifiable(self) -> bool:
        return self is not QualityGrade.REFERENCE_ONLY


class JudgmentMode(Enum):
    """Whether a grade's outcome is machine-final or needs human confirmation."""

    AUTO_FINAL = "AUTO_FINAL"
    REVIEW_REQUIRED = "REVIEW_REQUIRED"


class AttemptStatus(Enum):
    """Lifecycle state of a certification attempt."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    AUTO_PASS = "auto_pass"
    AUTO_FAIL = "auto_fail"
    UNDER_REVIEW = "under_review"
    CERTIFIED_PASS = "certified_pass"
    CERTIFIED_FAIL = "certified_fail"
    NEEDS_RESUBMISSION = "needs_resubmission"


_GRADE_PATTERN = re.compile(r"^\s*(?:grade\s*)?(\d{1,2})\s*(?:級|kyu)?\s*$", re.IGNORECASE)


@dataclass(frozen=True, order=True)
class GradeCode:
    """Grade on the 1-10 scale; lower numbers are more advanced."""

    number: int

    def __post_init__(self) -> None:
        if not MIN_GRADE <= self.number <= MAX_GRADE:
            raise InputValidationError(
                f"Grade must be between {MIN_GRADE} and {MAX_GRADE}, got {self.number}"
            )

    @classmethod
    def parse(cls, value: GradeCode | int | str) -> GradeCode:
        """Accept ``3``, ``"3"``, ``"3級"``, ``"3kyu"`` or ``"Grade 3"``."""
        if isinstance(value, GradeCode):
            return value
        if isinstance(value, bool):
            raise InputValidationError(f"Invalid grade code: {value!r}")
        if isinstance(value, int):
            return cls(value)
        match = _GRADE_PATTERN.match(str(value))
        if not match:
            raise InputValidationError(f"Invalid grade code: {value!r}")
        return cls(int(match.group(1)))

    @property
    def is_advanced(self) -> bool:
        """Top grades that carry H-FVP items and human review."""
        return self.number <= REVIEW_GRADE_LIMIT

    @property
    def label(self) -> str:
        return f"{self.number}級"

    def __str__(self) -> str:
        return str(self.number)


# =============================================================================
# Measurements
# =============================================================================


@dataclass(frozen=True)
class StrideMeasurement:
    """Stride aggregates over a run."""

    stride_length: float  # m
    stride_frequency: float  # steps/s
    height_ratio: float  # stride_length / athlete height
    step_count: int

    @classmethod
    def from_values(
        cls,
        strides: Sequence[float],
        cadences: Sequence[float],
        height_m: float,
    ) -> StrideMeasurement:
        """Aggregate per-step strides and cadences."""
        if height_m <= 0:
            raise InputValidationError(f"Athlete height must be positive, got {height_m}")
        s = np.asarray([v for v in strides if v is not None], dtype=float)
        c = np.asarray([v for v in cadences if v is not None], dtype=float)
        s, c = s[np.isfinite(s)], c[np.isfinite(c)]
        if s.size == 0 or c.size == 0:
            raise InputValidationError("Stride measurement needs at least one stride and cadence")
        length = float(s.mean())
        return cls(
            stride_length=length,
            stride_frequency=float(c.mean()),
            height_ratio=length / height_m,
            step_count=int(s.size),
        )

    def to_dict(self) -> dict[str, float]:
        return {
            "stride_length": self.stride_length,
            "stride_frequency": self.stride_frequency,
            "height_ratio": self.height_ratio,
            "step_count": float(self.step_count),
        }


@dataclass(frozen=True)
class ContactTimeMeasurement:
    """Ground contact time aggregates (s)."""

    average: float
    min: float
    max: float
    values: tuple[float, ...] = ()
    flight_time_average: float | None = None

    @classmethod
    def from_values(
        cls,
        contact_times: Sequence[float],
        flight_times: Sequence[float | None] = (),
    ) -> ContactTimeMeasurement:
        values = tuple(float(v) for v in contact_times)
        if not values:
            raise InputValidationError("Contact time measurement needs at least one value")
        flights = [f for f in flight_times if f is not None]
        return cls(
            average=float(np.mean(values)),
            min=min(values),
            max=max(values),
            values=values,
            flight_time_average=float(np.mean(flights)) if flights else None,
        )

    def to_dict(self) -> dict[str, float | None]:
        return {
            "average": self.average,
            "min": self.min,
            "max": self.max,
            "flight_time_average": self.flight_time_average,
        }


@dataclass(frozen=True)
class HFVPMeasurement:
    """Mass-normalized H-FVP aggregate consumed by scoring."""

    f0: float  # N/kg
    v0: float  # m/s
    pmax: float  # W/kg
    drf: float  # % per (m/s)
    fv_r2: float
    pos_r2: float = float("nan")
    rf_max: float = 100.0  # %

    def to_dict(self) -> dict[str, float]:
        return {
            "f0": self.f0,
            "v0": self.v0,
            "pmax": self.pmax,
            "drf": self.drf,
            "rf_max": self.rf_max,
            "fv_r2": self.fv_r2,
            "pos_r2": self.pos_r2,
        }


@dataclass(frozen=True)
class QualityMetrics:
    """Data quality vector for one attempt."""

    pose_confidence_avg: float  # 0-1
    pose_confidence_min: float  # 0-1
    frame_drop_rate: float  # 0-1
    measurement_points: int
    fv_r2: float | None = None
    pos_r2: float | None = None

    @classmethod
    def from_pose_stats(
        cls,
        stats,
        measurement_points: int,
        hfvp: HFVPMeasurement | None = None,
    ) -> QualityMetrics:
        """Combine PoseQualityStats with optional regression R² values."""
        return cls(
            pose_confidence_avg=stats.pose_confidence_avg,
            pose_confidence_min=stats.pose_confidence_min,
            frame_drop_rate=stats.frame_drop_rate,
            measurement_points=measurement_points,
            fv_r2=hfvp.fv_r2 if hfvp is not None else None,
            pos_r2=hfvp.pos_r2 if hfvp is not None else None,
        )

    def to_dict(self) -> dict[str, float | None]:
        return {
            "pose_confidence_avg": self.pose_confidence_avg,
            "pose_confidence_min": self.pose_confidence_min,
            "frame_drop_rate": self.frame_drop_rate,
            "measurement_points": float(self.measurement_points),
            "fv_r2": self.fv_r2,
            "pos_r2": self.pos_r2,
        }


@dataclass(frozen=True)
class ManualCorrection:
    """A reviewer's override of one measured item."""

    item: str
    original_value: float
    corrected_value: float
    reason: str
    corrected_by: str
    corrected_at: datetime

    def __post_init__(self) -> None:
        if self.item not in CORRECTABLE_ITEMS:
            raise InputValidationError(
                f"Unknown correction item '{self.item}'. Valid: {', '.join(CORRECTABLE_ITEMS)}"
            )
        if not np.isfinite(self.corrected_value):
            raise InputValidationError("Corrected value must be finite")

    def to_dict(self) -> dict:
        return {
            "item": self.item,
            "original_value": self.original_value,
            "corrected_value": self.corrected_value,
            "reason": self.reason,
            "corrected_by": self.corrected_by,
            "corrected_at": self.corrected_at.isoformat(),
        }


@dataclass(frozen=True)
class ScoringInput:
    """Everything the scoring engine needs for one attempt."""

    grade: GradeCode
    angles: AngleMeasurement
    stride: StrideMeasurement
    contact_time: ContactTimeMeasurement
    quality: QualityMetrics
    hfvp: HFVPMeasurement | None = None
    manual_corrections: tuple[ManualCorrection, ...] = ()
    technique_score: float | None = None  # reviewer-assigned; None awards full points

    def __post_init__(self) -> None:
        object.__setattr__(self, "grade", GradeCode.parse(self.grade))
        object.__setattr__(self, "manual_corrections", tuple(self.manual_corrections))


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class ItemScoreDetail:
    """Score breakdown of one evaluated item."""

    raw_value: float
    criteria_min: float
    criteria_max: float
    criteria_ideal: float
    deviation: float
    score: float
    max_score: float
    percentage: float
    is_within_range: bool
    is_near_threshold: bool
    quality_adjusted: bool

    def to_dict(self) -> dict[str, float | bool]:
        return {
            "raw_value": self.raw_value,
            "criteria_min": self.criteria_min,
            "criteria_max": self.criteria_max,
            "criteria_ideal": self.criteria_ideal,
            "deviation": self.deviation,
            "score": self.score,
            "max_score": self.max_score,
            "percentage": self.percentage,
            "is_within_range": self.is_within_range,
            "is_near_threshold": self.is_near_threshold,
            "quality_adjusted": self.quality_adjusted,
        }


@dataclass(frozen=True)
class CategoryScore:
    """Items of one category and their rounded sum."""

    items: Mapping[str, ItemScoreDetail] = field(default_factory=dict)
    overall_score: float = 0.0

    def __post_init__(self) -> None:
        # Read-only view so a produced result cannot be edited in place
        object.__setattr__(self, "items", MappingProxyType(dict(self.items)))

    @property
    def sub_scores(self) -> dict[str, float]:
        return {name: detail.score for name, detail in self.items.items()}

    def __getitem__(self, name: str) -> ItemScoreDetail:
        return self.items[name]

    def to_dict(self) -> dict:
        return {
            "overall_score": self.overall_score,
            "items": {name: d.to_dict() for name, d in self.items.items()},
        }


@dataclass(frozen=True)
class ScoringResult:
    """Immutable outcome of scoring one attempt."""

    grade: GradeCode
    angle: CategoryScore
    stride: CategoryScore
    contact_time: CategoryScore
    hfvp: CategoryScore | None
    technique_score: float

    total_score: float
    pass_threshold: float
    is_passed: bool
    score_difference: float

    quality_grade: QualityGrade
    quality_warnings: tuple[str, ...]

    requires_review: bool
    has_manual_corrections: bool

    calculation_version: str
    rule_version: int
    calculated_at: datetime

    @property
    def angle_score(self) -> float:
        return self.angle.overall_score

    @property
    def stride_score(self) -> float:
        return self.stride.overall_score

    @property
    def contact_time_score(self) -> float:
        return self.contact_time.overall_score

    @property
    def hfvp_score(self) -> float:
        return self.hfvp.overall_score if self.hfvp is not None else 0.0

    def items(self) -> Iterator[tuple[str, ItemScoreDetail]]:
        """All evaluated items across categories."""
        for category in (self.angle, self.stride, self.contact_time, self.hfvp):
            if category is not None:
                yield from category.items.items()

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "grade": self.grade.number,
            "angle_score": self.angle_score,
            "stride_score": self.stride_score,
            "contact_time_score": self.contact_time_score,
            "hfvp_score": self.hfvp_score,
            "technique_score": self.technique_score,
            "angle_details": self.angle.to_dict(),
            "stride_details": self.stride.to_dict(),
            "contact_time_details": self.contact_time.to_dict(),
            "hfvp_details": self.hfvp.to_dict() if self.hfvp is not None else None,
            "total_score": self.total_score,
            "pass_threshold": self.pass_threshold,
            "is_passed": self.is_passed,
            "score_difference": self.score_difference,
            "quality_grade": self.quality_grade.value,
            "quality_warnings": list(self.quality_warnings),
            "requires_review": self.requires_review,
            "has_manual_corrections": self.has_manual_corrections,
            "calculation_version": self.calculation_version,
            "rule_version": self.rule_version,
            "calculated_at": self.calculated_at.isoformat(),
        }
