"""
Certification Scoring
=====================

Convert run measurements into a graded, quality-gated score.

Each item scores full marks at its ideal value, decays linearly to half marks
at either boundary of ``[min, max]`` and scores zero outside it. Item scores
are then discounted by data quality and summed into category and total scores.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable

import numpy as np

from running_assessment.core.config import ScoringConfig
from running_assessment.core.exceptions import InputValidationError

from .audit import AuditEventType, AuditLog, utc_now
from .quality import evaluate_quality, generate_quality_warnings, hfvp_item_quality
from .rules import Criterion, GradeRule, GradeRuleSet
from .types import (
    CategoryScore,
    ItemScoreDetail,
    QualityGrade,
    ScoringInput,
    ScoringResult,
)

logger = logging.getLogger(__name__)

SCORING_VERSION = "1.0.0"

# Share of each category's points allocated to its items
ITEM_SHARES = {
    "angle": {"knee_flexion": 0.40, "hip_extension": 0.35, "trunk_lean": 0.25},
    "stride": {"stride_length_ratio": 0.60, "stride_frequency": 0.40},
    "contact_time": {"contact_time": 1.0},
    "hfvp": {"f0": 0.30, "v0": 0.30, "pmax": 0.30, "drf": 0.10},
}

# Where each correctable item lives on ScoringInput: (measurement attribute, field)
CORRECTION_FIELDS = {
    "knee_flexion": ("angles", "knee_average"),
    "hip_extension": ("angles", "hip_average"),
    "trunk_lean": ("angles", "trunk_average"),
    "stride_length_ratio": ("stride", "height_ratio"),
    "stride_frequency": ("stride", "stride_frequency"),
    "contact_time": ("contact_time", "average"),
    "f0": ("hfvp", "f0"),
    "v0": ("hfvp", "v0"),
    "pmax": ("hfvp", "pmax"),
    "drf": ("hfvp", "drf"),
}


def _near_boundary(raw: float, boundary: float, criterion: Criterion, band: float) -> bool:
    tolerance = band * abs(boundary) if boundary != 0 else band * criterion.range
    return abs(raw - boundary) <= tolerance


def score_item(
    raw_value: float,
    criterion: Criterion,
    max_score: float,
    quality: QualityGrade,
    config: ScoringConfig | None = None,
) -> ItemScoreDetail:
    """
    Score one item against its criterion.

    Args:
        raw_value: Measured value
        criterion: Acceptable range and ideal value
        max_score: Points allocated to the item
        quality: Quality grade applied to this item
        config: Review band and quality multipliers

    Returns:
        ItemScoreDetail
    """
    cfg = config or ScoringConfig()
    raw = float(raw_value)
    deviation = raw - criterion.ideal
    finite = bool(np.isfinite(raw))

    within = finite and criterion.min <= raw <= criterion.max
    near = within and (
        _near_boundary(raw, criterion.min, criterion, cfg.review_band)
        or _near_boundary(raw, criterion.max, criterion, cfg.review_band)
    )

    if not within:
        base = 0.0
    elif criterion.range == 0:
        base = max_score
    else:
        base = max_score * (1 - 0.5 * abs(deviation) / (criterion.range / 2))

    multiplier = {
        QualityGrade.GOOD: 1.0,
        QualityGrade.ACCEPTABLE: cfg.acceptable_multiplier,
        QualityGrade.REFERENCE_ONLY: 0.0,
    }[quality]
    final = min(max(base * multiplier, 0.0), max_score)

    return ItemScoreDetail(
        raw_value=raw,
        criteria_min=criterion.min,
        criteria_max=criterion.max,
        criteria_ideal=criterion.ideal,
        deviation=deviation,
        score=round(final, 2),
        max_score=max_score,
        percentage=final / max_score * 100 if max_score > 0 else 0.0,
        is_within_range=within,
        is_near_threshold=near,
        quality_adjusted=quality is not QualityGrade.GOOD,
    )


def _raw_values(inp: ScoringInput) -> dict[str, float]:
    values = {
        "knee_flexion": inp.angles.knee_average,
        "hip_extension": inp.angles.hip_average,
        "trunk_lean": inp.angles.trunk_average,
        "stride_length_ratio": inp.stride.height_ratio,
        "stride_frequency": inp.stride.stride_frequency,
        "contact_time": inp.contact_time.average,
    }
    if inp.hfvp is not None:
        values.update(f0=inp.hfvp.f0, v0=inp.hfvp.v0, pmax=inp.hfvp.pmax, drf=inp.hfvp.drf)
    return values


def apply_manual_corrections(
    inp: ScoringInput,
    audit: AuditLog | None = None,
) -> tuple[ScoringInput, list[str]]:
    """
    Overwrite corrected fields on a copy of the input.

    Corrections apply in order; each one is recorded in the audit log with
    the value it replaced.

    Returns:
        (corrected input, warnings)
    """
    corrected = inp
    warnings: list[str] = []

    for correction in inp.manual_corrections:
        attr, field_name = CORRECTION_FIELDS[correction.item]
        measurement = getattr(corrected, attr)
        if measurement is None:
            raise InputValidationError(f"Cannot correct '{correction.item}': no {attr} measurement")

        old_value = float(getattr(measurement, field_name))
        if not np.isclose(old_value, correction.original_value, equal_nan=True):
            warnings.append(
                f"Correction of {correction.item}: recorded original {correction.original_value:g} "
                f"differs from measured {old_value:g}"
            )
        updated = replace(measurement, **{field_name: float(correction.corrected_value)})
        corrected = replace(corrected, **{attr: updated})

        if audit is not None:
            audit.record(
                AuditEventType.MANUAL_CORRECTION_APPLIED,
                {
                    "item": correction.item,
                    "field": f"{attr}.{field_name}",
                    "old_value": old_value,
                    "new_value": float(correction.corrected_value),
                    "original_value": correction.original_value,
                    "reason": correction.reason,
                },
                actor=correction.corrected_by,
                timestamp=correction.corrected_at,
            )
        logger.info(
            "Manual correction %s: %g -> %g by %s",
            correction.item, old_value, correction.corrected_value, correction.corrected_by,
        )

    return corrected, warnings


class CertificationScorer:
    """
    Score certification attempts against grade rules.

    Scoring is a pure function of input, rule and config; only
    ``calculated_at`` depends on the injected clock.
    """

    def __init__(
        self,
        rules: GradeRuleSet | None = None,
        config: ScoringConfig | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize scorer.

        Args:
            rules: Rule set used when no rule is passed to ``score``
            config: Review band and quality thresholds
            clock: Source of ``calculated_at`` timestamps
        """
        self.rules = rules
        self.config = config or ScoringConfig()
        self.clock = clock

    def score(
        self,
        inp: ScoringInput,
        rule: GradeRule | None = None,
        audit: AuditLog | None = None,
        calculated_at: datetime | None = None,
    ) -> ScoringResult:
        """
        Score one attempt.

        Args:
            inp: Measurements, quality vector and manual corrections
            rule: Grade rule; resolved from the rule set when omitted
            audit: Optional audit log receiving correction and score events
            calculated_at: Timestamp to stamp on the result

        Returns:
            ScoringResult
        """
        cfg = self.config
        if rule is None:
            if self.rules is None:
                raise InputValidationError("No grade rule given and no rule set configured")
            rule = self.rules.get(inp.grade, calculated_at)
        if rule.grade != inp.grade:
            raise InputValidationError(
                f"Rule is for grade {rule.grade}, input is for grade {inp.grade}"
            )
        if rule.includes_hfvp and inp.hfvp is None:
            raise InputValidationError(f"Grade {inp.grade} requires an H-FVP measurement")

        corrected, correction_warnings = apply_manual_corrections(inp, audit)

        quality = evaluate_quality(corrected.quality, rule.includes_hfvp, cfg)
        warnings = generate_quality_warnings(corrected.quality, quality, rule.includes_hfvp, cfg)
        warnings.extend(correction_warnings)

        raw = _raw_values(corrected)
        categories: dict[str, CategoryScore] = {}
        for category, shares in ITEM_SHARES.items():
            if category == "hfvp" and not rule.includes_hfvp:
                continue
            item_quality = quality
            if category == "hfvp":
                item_quality = hfvp_item_quality(quality, corrected.hfvp.fv_r2, cfg)
                if item_quality is not quality:
                    warnings.append(f"H-FVP items scored at {item_quality.value} quality (F-v R² gate)")
            points = rule.points[category]
            items = {
                name: score_item(raw[name], rule.criteria[name], round(points * share, 4), item_quality, cfg)
                for name, share in shares.items()
            }
            categories[category] = CategoryScore(
                items=items,
                overall_score=round(sum(d.score for d in items.values()), 2),
            )

        technique_points = rule.points["technique"]
        if corrected.technique_score is None:
            technique = technique_points
        else:
            technique = float(np.clip(corrected.technique_score, 0.0, technique_points))

        total = sum(c.overall_score for c in categories.values()) + technique
        total = round(min(total, 100.0), 2)
        is_passed = total >= rule.pass_score and quality.is_certifiable
        requires_review = any(
            d.is_near_threshold for c in categories.values() for d in c.items.values()
        )

        result = ScoringResult(
            grade=inp.grade,
            angle=categories["angle"],
            stride=categories["stride"],
            contact_time=categories["contact_time"],
            hfvp=categories.get("hfvp"),
            technique_score=technique,
            total_score=total,
            pass_threshold=rule.pass_score,
            is_passed=is_passed,
            score_difference=round(total - rule.pass_score, 2),
            quality_grade=quality,
            quality_warnings=tuple(warnings),
            requires_review=requires_review,
            has_manual_corrections=bool(inp.manual_corrections),
            calculation_version=SCORING_VERSION,
            rule_version=rule.version,
            calculated_at=calculated_at or self.clock(),
        )

        if audit is not None:
            audit.record(
                AuditEventType.SCORE_CALCULATED,
                {
                    "grade": inp.grade.number,
                    "total_score": result.total_score,
                    "is_passed": result.is_passed,
                    "quality_grade": quality.value,
                    "requires_review": requires_review,
                    "rule_version": rule.version,
                    "calculation_version": SCORING_VERSION,
                },
                timestamp=result.calculated_at,
            )

        log = logger.warning if quality is QualityGrade.REFERENCE_ONLY else logger.info
        log(
            "Grade %s score %.2f / threshold %.0f (%s, quality=%s)",
            inp.grade, total, rule.pass_score, "pass" if is_passed else "fail", quality.value,
        )
        return result


def score_certification(
    inp: ScoringInput,
    rule: GradeRule,
    config: ScoringConfig | None = None,
    audit: AuditLog | None = None,
    calculated_at: datetime | None = None,
) -> ScoringResult:
    """
    Convenience function for certification scoring.

    Args:
        inp: Scoring input
        rule: Grade rule to score against
        config: Optional scoring configuration
        audit: Optional audit log
        calculated_at: Optional result timestamp

    Returns:
        ScoringResult
    """
    scorer = CertificationScorer(config=config)
    return scorer.score(inp, rule, audit=audit, calculated_at=calculated_at)

