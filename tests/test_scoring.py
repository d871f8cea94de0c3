"""Tests for grade rules, quality gating and certification scoring."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone

import pytest

from running_assessment.certification.audit import AuditEventType, AuditLog
from running_assessment.certification.quality import (
    evaluate_quality,
    generate_quality_warnings,
    hfvp_item_quality,
    quality_summary,
    validate_quality_metrics,
)
from running_assessment.certification.rules import Criterion, GradeRule, GradeRuleSet
from running_assessment.certification.scoring import (
    SCORING_VERSION,
    CertificationScorer,
    score_certification,
    score_item,
)
from running_assessment.certification.types import (
    GradeCode,
    ManualCorrection,
    QualityGrade,
    QualityMetrics,
)
from running_assessment.core.config import ScoringConfig
from running_assessment.core.exceptions import InputValidationError, RuleNotFoundError
from running_assessment.pose.angles import AngleMeasurement

SCORED_AT = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
GOOD = QualityGrade.GOOD


def _quality(**overrides) -> QualityMetrics:
    values = dict(
        pose_confidence_avg=0.9,
        pose_confidence_min=0.8,
        frame_drop_rate=0.05,
        measurement_points=10,
    )
    values.update(overrides)
    return QualityMetrics(**values)


class TestGradeCode:
    """Tests for GradeCode parsing."""

    @pytest.mark.parametrize("value", [3, "3", "3級", "3kyu", "Grade 3", " 3 KYU "])
    def test_parse(self, value):
        """Test accepted grade code spellings."""
        assert GradeCode.parse(value) == GradeCode(3)

    @pytest.mark.parametrize("value", [0, 11, "abc", "3dan", True])
    def test_parse_invalid(self, value):
        """Test rejected grade codes."""
        with pytest.raises(InputValidationError):
            GradeCode.parse(value)

    def test_advanced_grades(self):
        """Test which grades are advanced."""
        assert GradeCode(1).is_advanced
        assert GradeCode(2).is_advanced
        assert not GradeCode(3).is_advanced
        assert GradeCode(2).label == "2級"


class TestGradeRules:
    """Tests for grade rule loading and resolution."""

    def test_bundled_rules(self, grade_rules):
        """Test that all grades 1-10 are bundled."""
        assert grade_rules.grades == list(range(1, 11))

    def test_point_allocations(self, grade_rules):
        """Test H-FVP allocation only for the advanced grades."""
        for rule in grade_rules:
            assert sum(rule.points.values()) == pytest.approx(100.0)
            assert rule.includes_hfvp == rule.grade.is_advanced

    def test_pass_scores(self, grade_rules):
        """Test pass thresholds."""
        assert grade_rules.get(1, SCORED_AT).pass_score == 80
        assert grade_rules.get(5, SCORED_AT).pass_score == 70

    def test_rule_not_active_before_effective_date(self, grade_rules):
        """Test that no rule resolves before the effective date."""
        with pytest.raises(RuleNotFoundError):
            grade_rules.get(3, datetime(2020, 1, 1, tzinfo=timezone.utc))

    def test_highest_version_wins(self, grade_rules):
        """Test version resolution among active rules."""
        base = grade_rules.get(3, SCORED_AT)
        newer = replace(base, version=2, pass_score=75)
        rules = GradeRuleSet.from_rules([base, newer])

        assert rules.get(3, SCORED_AT).pass_score == 75

    def test_effective_until(self, grade_rules):
        """Test that an expired rule no longer resolves."""
        base = grade_rules.get(3, SCORED_AT)
        expired = replace(base, effective_until=datetime(2026, 2, 20, tzinfo=timezone.utc))
        rules = GradeRuleSet.from_rules([expired])

        with pytest.raises(RuleNotFoundError):
            rules.get(3, SCORED_AT)

    def test_points_must_sum_to_100(self, grade_rules):
        """Test point allocation validation."""
        base = grade_rules.get(3, SCORED_AT)

        with pytest.raises(InputValidationError, match="sum to 100"):
            GradeRule(grade=3, pass_score=70, points={"angle": 50}, criteria=base.criteria)

    def test_criterion_min_max_sorted(self):
        """Test that reversed bounds are normalized."""
        criterion = Criterion(min=-6.0, max=-10.0, ideal=-8.0)

        assert criterion.min == -10.0
        assert criterion.max == -6.0
        assert criterion.range == pytest.approx(4.0)

    def test_criterion_ideal_in_range(self):
        """Test that an ideal outside the range is rejected."""
        with pytest.raises(InputValidationError):
            Criterion(min=0, max=10, ideal=12)

    def test_yaml_round_trip(self, grade_rules, temp_dir):
        """Test loading rules from a custom YAML file."""
        import yaml

        path = temp_dir / "rules.yaml"
        path.write_text(yaml.safe_dump({"rules": [grade_rules.get(4, SCORED_AT).to_dict()]}))

        rules = GradeRuleSet.from_yaml(path)

        assert rules.get(4, SCORED_AT).criteria["knee_flexion"].ideal == 125


class TestScoreItem:
    """Tests for single-item scoring."""

    def test_ideal_value_scores_full(self):
        """Test full marks at the ideal value."""
        detail = score_item(125, Criterion(90, 160, 125), 12.0, GOOD)

        assert detail.score == 12.0
        assert detail.percentage == pytest.approx(100.0)
        assert detail.is_within_range
        assert not detail.is_near_threshold

    def test_near_lower_boundary(self):
        """Test knee 94 against {90, 130, 160}: in range and near the threshold."""
        detail = score_item(94, Criterion(min=90, max=160, ideal=130), 12.0, GOOD)

        assert detail.is_within_range
        assert detail.is_near_threshold
        assert detail.deviation == pytest.approx(-36.0)
        assert detail.score == pytest.approx(12.0 * (1 - 0.5 * 36 / 35), abs=0.01)

    @pytest.mark.parametrize("raw", [90.0, 160.0])
    def test_exact_boundary(self, raw):
        """Test that exact boundaries are within range and near the threshold."""
        detail = score_item(raw, Criterion(90, 160, 125), 12.0, GOOD)

        assert detail.is_within_range
        assert detail.is_near_threshold
        assert detail.score == pytest.approx(6.0)

    def test_zero_boundary_uses_range_band(self):
        """Test the review band at a boundary of zero."""
        criterion = Criterion(0, 8, 5)

        assert score_item(0.3, criterion, 7.5, GOOD).is_near_threshold
        assert not score_item(0.5, criterion, 7.5, GOOD).is_near_threshold

    def test_out_of_range_scores_zero(self):
        """Test zero score outside the range."""
        detail = score_item(170, Criterion(90, 160, 125), 12.0, GOOD)

        assert detail.score == 0.0
        assert not detail.is_within_range
        assert not detail.is_near_threshold

    def test_nan_scores_zero(self):
        """Test that a missing measurement scores zero."""
        detail = score_item(float("nan"), Criterion(90, 160, 125), 12.0, GOOD)

        assert detail.score == 0.0
        assert not detail.is_within_range

    def test_quality_multipliers(self):
        """Test acceptable discount and reference-only zero."""
        criterion = Criterion(90, 160, 125)

        acceptable = score_item(125, criterion, 10.0, QualityGrade.ACCEPTABLE)
        reference = score_item(125, criterion, 10.0, QualityGrade.REFERENCE_ONLY)

        assert acceptable.score == pytest.approx(9.0)
        assert acceptable.quality_adjusted
        assert reference.score == 0.0


class TestQualityGate:
    """Tests for data quality evaluation."""

    def test_good(self):
        """Test good quality."""
        assert evaluate_quality(_quality(), includes_hfvp=False) is QualityGrade.GOOD

    def test_acceptable(self):
        """Test acceptable quality."""
        metrics = _quality(pose_confidence_avg=0.6, frame_drop_rate=0.15)

        assert evaluate_quality(metrics, includes_hfvp=False) is QualityGrade.ACCEPTABLE

    def test_reference_only(self):
        """Test reference-only quality and its warnings."""
        metrics = _quality(pose_confidence_avg=0.4)

        grade = evaluate_quality(metrics, includes_hfvp=False)
        warnings = generate_quality_warnings(metrics, grade, includes_hfvp=False)

        assert grade is QualityGrade.REFERENCE_ONLY
        assert any("Low pose confidence" in w for w in warnings)
        assert any("re-measure" in w for w in warnings)

    def test_hfvp_r2_gate(self):
        """Test that a weak F-v fit lowers quality only when H-FVP is scored."""
        metrics = _quality(fv_r2=0.85)

        assert evaluate_quality(metrics, includes_hfvp=False) is QualityGrade.GOOD
        assert evaluate_quality(metrics, includes_hfvp=True) is QualityGrade.ACCEPTABLE

    def test_missing_r2_when_hfvp_scored(self):
        """Test that an unavailable R² is reference-only for H-FVP grades."""
        metrics = _quality()

        grade = evaluate_quality(metrics, includes_hfvp=True)

        assert grade is QualityGrade.REFERENCE_ONLY
        assert any("unavailable" in w for w in generate_quality_warnings(metrics, grade, True))

    def test_hfvp_item_quality(self):
        """Test the H-FVP item gate never upgrades quality."""
        assert hfvp_item_quality(GOOD, 0.95) is GOOD
        assert hfvp_item_quality(GOOD, 0.85) is QualityGrade.ACCEPTABLE
        assert hfvp_item_quality(QualityGrade.ACCEPTABLE, 0.95) is QualityGrade.ACCEPTABLE
        assert hfvp_item_quality(GOOD, 0.5) is QualityGrade.REFERENCE_ONLY

    def test_validate_quality_metrics(self):
        """Test range validation of quality metrics."""
        validate_quality_metrics(_quality(fv_r2=0.9))

        with pytest.raises(InputValidationError, match="frame_drop_rate"):
            validate_quality_metrics(_quality(frame_drop_rate=1.5))

    def test_quality_summary(self):
        """Test the text summary."""
        text = quality_summary(_quality(pose_confidence_avg=0.3))

        assert "Data quality: reference_only" in text
        assert "cannot be certified" in text


class TestCertificationScorer:
    """Tests for CertificationScorer."""

    @pytest.mark.parametrize("grade", [1, 2, 3, 7, 10])
    def test_ideal_input_scores_100(self, grade, ideal_input_for, grade_rules):
        """Test that ideal values with good quality give every item its max."""
        inp = ideal_input_for(grade)
        rule = grade_rules.get(grade, SCORED_AT)

        result = CertificationScorer().score(inp, rule, calculated_at=SCORED_AT)

        for _, detail in result.items():
            assert detail.score == pytest.approx(detail.max_score, abs=0.005)
        assert result.total_score == pytest.approx(100.0)
        assert result.is_passed
        assert result.quality_grade is GOOD
        assert not result.requires_review

    def test_hfvp_category_only_for_advanced(self, ideal_input_for, grade_rules):
        """Test that H-FVP items are scored only for grades 1 and 2."""
        scorer = CertificationScorer(grade_rules)

        advanced = scorer.score(ideal_input_for(2), calculated_at=SCORED_AT)
        basic = scorer.score(ideal_input_for(5), calculated_at=SCORED_AT)

        assert advanced.hfvp is not None
        assert set(advanced.hfvp.items) == {"f0", "v0", "pmax", "drf"}
        assert basic.hfvp is None
        assert basic.hfvp_score == 0.0

    def test_missing_hfvp_raises(self, ideal_input_for, grade_rules):
        """Test that advanced grades require an H-FVP measurement."""
        inp = ideal_input_for(1, hfvp=None)

        with pytest.raises(InputValidationError, match="H-FVP"):
            CertificationScorer().score(inp, grade_rules.get(1, SCORED_AT))

    def test_rule_grade_mismatch(self, ideal_input_for, grade_rules):
        """Test that a rule for another grade is rejected."""
        with pytest.raises(InputValidationError):
            CertificationScorer().score(ideal_input_for(3), grade_rules.get(4, SCORED_AT))

    def test_near_threshold_requires_review(self, ideal_input_for, grade_rules):
        """Test the review flag for a borderline knee angle."""
        inp = ideal_input_for(2, angles=AngleMeasurement.from_averages(knee=94, hip=155, trunk=5))

        result = CertificationScorer().score(inp, grade_rules.get(2, SCORED_AT), calculated_at=SCORED_AT)

        knee = result.angle["knee_flexion"]
        assert knee.is_within_range
        assert knee.is_near_threshold
        assert result.requires_review
        assert result.total_score < 100

    def test_reference_only_quality_fails(self, ideal_input_for, grade_rules):
        """Test that unreliable data cannot pass."""
        inp = ideal_input_for(3, quality=_quality(pose_confidence_avg=0.3))

        result = CertificationScorer().score(inp, grade_rules.get(3, SCORED_AT), calculated_at=SCORED_AT)

        assert result.quality_grade is QualityGrade.REFERENCE_ONLY
        assert not result.is_passed
        assert result.quality_warnings

    def test_below_pass_score_fails(self, ideal_input_for, grade_rules):
        """Test a failing total."""
        inp = ideal_input_for(3, angles=AngleMeasurement.from_averages(knee=50, hip=100, trunk=30))

        result = CertificationScorer().score(inp, grade_rules.get(3, SCORED_AT), calculated_at=SCORED_AT)

        assert result.angle_score == 0.0
        assert result.total_score == pytest.approx(60.0)
        assert not result.is_passed
        assert result.score_difference == pytest.approx(-10.0)

    def test_acceptable_quality_discount(self, ideal_input_for, grade_rules):
        """Test the acceptable-quality multiplier on every item."""
        inp = ideal_input_for(3, quality=_quality(pose_confidence_avg=0.6))

        result = CertificationScorer().score(inp, grade_rules.get(3, SCORED_AT), calculated_at=SCORED_AT)

        assert result.quality_grade is QualityGrade.ACCEPTABLE
        assert result.total_score == pytest.approx(90 * 0.9 + 10)
        assert result.is_passed

    def test_weak_fv_fit_zeroes_hfvp_items(self, ideal_input_for, grade_rules):
        """Test that an F-v R² below the acceptable gate zeroes the H-FVP category."""
        base = ideal_input_for(1)
        inp = replace(base, hfvp=replace(base.hfvp, fv_r2=0.6))

        result = CertificationScorer().score(inp, grade_rules.get(1, SCORED_AT), calculated_at=SCORED_AT)

        assert result.hfvp_score == 0.0
        assert any("F-v R²" in w for w in result.quality_warnings)

    def test_technique_score(self, ideal_input_for, grade_rules):
        """Test reviewer technique points are clipped to the allocation."""
        rule = grade_rules.get(3, SCORED_AT)

        partial = CertificationScorer().score(ideal_input_for(3, technique_score=4), rule, calculated_at=SCORED_AT)
        excess = CertificationScorer().score(ideal_input_for(3, technique_score=50), rule, calculated_at=SCORED_AT)

        assert partial.technique_score == 4
        assert partial.total_score == pytest.approx(94.0)
        assert excess.technique_score == 10

    def test_idempotent(self, ideal_input_for, grade_rules):
        """Test that scoring twice yields identical results."""
        inp = ideal_input_for(2, angles=AngleMeasurement.from_averages(knee=94, hip=150, trunk=3))
        rule = grade_rules.get(2, SCORED_AT)
        scorer = CertificationScorer()

        first = scorer.score(inp, rule, calculated_at=SCORED_AT)
        second = scorer.score(inp, rule, calculated_at=SCORED_AT)

        assert first == second
        assert first.to_dict() == second.to_dict()

    def test_injected_clock(self, ideal_input_for, grade_rules):
        """Test that calculated_at comes from the injected clock."""
        scorer = CertificationScorer(grade_rules, clock=lambda: SCORED_AT)

        result = scorer.score(ideal_input_for(4))

        assert result.calculated_at == SCORED_AT
        assert result.calculation_version == SCORING_VERSION
        assert result.rule_version == 1

    def test_manual_correction(self, ideal_input_for, grade_rules):
        """Test that corrections override the raw value and are audited."""
        correction = ManualCorrection(
            item="knee_flexion",
            original_value=125.0,
            corrected_value=170.0,
            reason="Knee occluded at contact",
            corrected_by="examiner-7",
            corrected_at=SCORED_AT,
        )
        inp = ideal_input_for(3, manual_corrections=[correction])
        audit = AuditLog()

        result = score_certification(inp, grade_rules.get(3, SCORED_AT), audit=audit, calculated_at=SCORED_AT)

        assert result.has_manual_corrections
        assert result.angle["knee_flexion"].raw_value == 170.0
        assert not result.angle["knee_flexion"].is_within_range
        assert inp.angles.knee_average == 125.0
        corrections = audit.of_type(AuditEventType.MANUAL_CORRECTION_APPLIED)
        assert len(corrections) == 1
        assert corrections[0].actor == "examiner-7"
        assert corrections[0].payload["old_value"] == 125.0
        assert len(audit.of_type(AuditEventType.SCORE_CALCULATED)) == 1

    def test_correction_original_mismatch_warns(self, ideal_input_for, grade_rules):
        """Test a warning when the recorded original differs from the measurement."""
        correction = ManualCorrection(
            item="contact_time",
            original_value=0.2,
            corrected_value=0.11,
            reason="Recount",
            corrected_by="examiner-2",
            corrected_at=SCORED_AT,
        )
        inp = ideal_input_for(3, manual_corrections=[correction])

        result = CertificationScorer().score(inp, grade_rules.get(3, SCORED_AT), calculated_at=SCORED_AT)

        assert any("differs from measured" in w for w in result.quality_warnings)

    def test_unknown_correction_item(self):
        """Test that only known items can be corrected."""
        with pytest.raises(InputValidationError, match="Unknown correction item"):
            ManualCorrection("cadence", 1.0, 2.0, "typo", "examiner", SCORED_AT)

    def test_custom_review_band(self, ideal_input_for, grade_rules):
        """Test that the review band is configurable."""
        inp = ideal_input_for(3, angles=AngleMeasurement.from_averages(knee=95, hip=150, trunk=6))
        rule = grade_rules.get(3, SCORED_AT)

        narrow = CertificationScorer(config=ScoringConfig(review_band=0.01)).score(inp, rule, calculated_at=SCORED_AT)
        wide = CertificationScorer(config=ScoringConfig(review_band=0.2)).score(inp, rule, calculated_at=SCORED_AT)

        assert not narrow.requires_review
        assert wide.requires_review

    def test_result_to_dict(self, ideal_input_for, grade_rules):
        """Test result serialization."""
        result = CertificationScorer().score(ideal_input_for(3), grade_rules.get(3, SCORED_AT), calculated_at=SCORED_AT)

        data = result.to_dict()

        assert data["grade"] == 3
        assert data["hfvp_details"] is None
        assert data["calculated_at"] == SCORED_AT.isoformat()
        assert data["angle_details"]["items"]["knee_flexion"]["score"] == 16.0

    def test_result_items_are_read_only(self, ideal_input_for, grade_rules):
        """Test that category items of a produced result cannot be edited in place."""
        result = CertificationScorer().score(ideal_input_for(1), grade_rules.get(1, SCORED_AT), calculated_at=SCORED_AT)
        knee = result.angle["knee_flexion"]

        with pytest.raises(TypeError):
            result.angle.items["knee_flexion"] = replace(knee, score=0.0)
        with pytest.raises(TypeError):
            del result.hfvp.items["f0"]

        assert result.angle["knee_flexion"] == knee
        assert result.to_dict()["angle_details"]["items"]["knee_flexion"]["score"] == knee.score
