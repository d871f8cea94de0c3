"""Data quality gate for certification scoring."""

from __future__ import annotations

import numpy as np

from running_assessment.core.config import ScoringConfig
from running_assessment.core.exceptions import InputValidationError

from .types import QualityGrade, QualityMetrics


def evaluate_quality(
    metrics: QualityMetrics,
    includes_hfvp: bool,
    config: ScoringConfig | None = None,
) -> QualityGrade:
    """
    Grade input reliability.

    good: pose confidence, frame-drop rate and (when H-FVP is scored) F-v R²
    all meet the good thresholds; acceptable: all meet the looser ones.
    """
    cfg = config or ScoringConfig()
    fv_r2 = metrics.fv_r2 if metrics.fv_r2 is not None else float("nan")

    def fv_ok(threshold: float) -> bool:
        return not includes_hfvp or (np.isfinite(fv_r2) and fv_r2 >= threshold)

    if (
        metrics.pose_confidence_avg >= cfg.good_pose_confidence
        and metrics.frame_drop_rate <= cfg.good_frame_drop_rate
        and fv_ok(cfg.good_fv_r2)
    ):
        return QualityGrade.GOOD

    if (
        metrics.pose_confidence_avg >= cfg.acceptable_pose_confidence
        and metrics.frame_drop_rate <= cfg.acceptable_frame_drop_rate
        and fv_ok(cfg.acceptable_fv_r2)
    ):
        return QualityGrade.ACCEPTABLE

    return QualityGrade.REFERENCE_ONLY


def hfvp_item_quality(
    overall: QualityGrade,
    fv_r2: float,
    config: ScoringConfig | None = None,
) -> QualityGrade:
    """Quality applied to H-FVP items: the F-v fit can only lower the overall grade."""
    cfg = config or ScoringConfig()
    if not np.isfinite(fv_r2) or fv_r2 < cfg.acceptable_fv_r2:
        return QualityGrade.REFERENCE_ONLY
    if fv_r2 < cfg.good_fv_r2:
        return overall.worst(QualityGrade.ACCEPTABLE)
    return overall


def generate_quality_warnings(
    metrics: QualityMetrics,
    grade: QualityGrade,
    includes_hfvp: bool,
    config: ScoringConfig | None = None,
) -> list[str]:
    """Human-readable reasons for a degraded quality grade."""
    cfg = config or ScoringConfig()
    warnings = []

    if metrics.pose_confidence_avg < cfg.acceptable_pose_confidence:
        warnings.append(f"Low pose confidence (average {metrics.pose_confidence_avg * 100:.1f}%)")
    if metrics.frame_drop_rate > cfg.acceptable_frame_drop_rate:
        warnings.append(f"High frame drop rate ({metrics.frame_drop_rate * 100:.1f}%)")
    if includes_hfvp:
        fv_r2 = metrics.fv_r2
        if fv_r2 is None or not np.isfinite(fv_r2):
            warnings.append("H-FVP regression R² is unavailable")
        elif fv_r2 < cfg.acceptable_fv_r2:
            warnings.append(f"Low H-FVP regression accuracy (R²={fv_r2:.3f})")
    if grade is QualityGrade.REFERENCE_ONLY:
        warnings.append("Data quality is below the certification threshold; please re-measure")

    return warnings


def validate_quality_metrics(metrics: QualityMetrics) -> None:
    """
    Check value ranges of a quality vector.

    Raises:
        InputValidationError: Listing every out-of-range field
    """
    errors = []
    for name in ("pose_confidence_avg", "pose_confidence_min", "frame_drop_rate"):
        value = getattr(metrics, name)
        if not (np.isfinite(value) and 0.0 <= value <= 1.0):
            errors.append(f"{name} must be within [0, 1]")
    for name in ("fv_r2", "pos_r2"):
        value = getattr(metrics, name)
        if value is not None and np.isfinite(value) and not 0.0 <= value <= 1.0:
            errors.append(f"{name} must be within [0, 1]")
    if metrics.measurement_points < 0:
        errors.append("measurement_points must be >= 0")

    if errors:
        raise InputValidationError("; ".join(errors))


def quality_summary(
    metrics: QualityMetrics,
    includes_hfvp: bool = False,
    config: ScoringConfig | None = None,
) -> str:
    """Multi-line quality report."""
    grade = evaluate_quality(metrics, includes_hfvp, config)
    warnings = generate_quality_warnings(metrics, grade, includes_hfvp, config)

    lines = [f"Data quality: {grade.value}"]
    if warnings:
        lines.append("")
        lines.append("Warnings:")
        lines.extend(f"  - {w}" for w in warnings)
    if grade is QualityGrade.REFERENCE_ONLY:
        lines.append("")
        lines.append("Scores are for reference only and cannot be certified.")
    return "\n".join(lines) + "\n"
