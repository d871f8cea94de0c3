"""Certification scoring, grade rules and judgment routing."""

from .audit import AuditEventType, AuditLog, AuditLogEntry
from .certificate import (
    generate_application_id,
    generate_certificate_number,
    validate_application_id,
    validate_certificate_number,
)
from .quality import (
    evaluate_quality,
    generate_quality_warnings,
    hfvp_item_quality,
    quality_summary,
    validate_quality_metrics,
)
from .router import (
    NextAction,
    ReviewDecision,
    VideoSubmissionCheck,
    allowed_transitions,
    apply_review_decision,
    can_apply_certificate,
    can_resubmit,
    determine_final_status,
    determine_judgment_mode,
    initial_status,
    is_final_status,
    is_under_review,
    next_action,
    requires_hfvp_evaluation,
    requires_video_submission,
    route_result,
    transition,
    validate_video_submission,
)
from .rules import Criterion, GradeRule, GradeRuleSet, load_grade_rules
from .scoring import (
    SCORING_VERSION,
    CertificationScorer,
    apply_manual_corrections,
    score_certification,
    score_item,
)
from .types import (
    AttemptStatus,
    CategoryScore,
    ContactTimeMeasurement,
    GradeCode,
    HFVPMeasurement,
    ItemScoreDetail,
    JudgmentMode,
    ManualCorrection,
    QualityGrade,
    QualityMetrics,
    ScoringInput,
    ScoringResult,
    StrideMeasurement,
)

__all__ = [
    # Types
    "AttemptStatus",
    "CategoryScore",
    "ContactTimeMeasurement",
    "GradeCode",
    "HFVPMeasurement",
    "ItemScoreDetail",
    "JudgmentMode",
    "ManualCorrection",
    "QualityGrade",
    "QualityMetrics",
    "ScoringInput",
    "ScoringResult",
    "StrideMeasurement",
    # Rules
    "Criterion",
    "GradeRule",
    "GradeRuleSet",
    "load_grade_rules",
    # Quality
    "evaluate_quality",
    "generate_quality_warnings",
    "hfvp_item_quality",
    "quality_summary",
    "validate_quality_metrics",
    # Scoring
    "SCORING_VERSION",
    "CertificationScorer",
    "apply_manual_corrections",
    "score_certification",
    "score_item",
    # Audit
    "AuditEventType",
    "AuditLog",
    "AuditLogEntry",
    # Router
    "NextAction",
    "ReviewDecision",
    "VideoSubmissionCheck",
    "allowed_transitions",
    "apply_review_decision",
    "can_apply_certificate",
    "can_resubmit",
    "determine_final_status",
    "determine_judgment_mode",
    "initial_status",
    "is_final_status",
    "is_under_review",
    "next_action",
    "requires_hfvp_evaluation",
    "requires_video_submission",
    "route_result",
    "transition",
    "validate_video_submission",
    # Certificates
    "generate_application_id",
    "generate_certificate_number",
    "validate_application_id",
    "validate_certificate_number",
]
