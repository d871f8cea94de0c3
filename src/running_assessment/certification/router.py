"""
Grade/judgment routing.

Decides whether an attempt is judged automatically or needs human review and
guards the attempt status transitions:

    REVIEW_REQUIRED: draft -> submitted -> under_review ->
                     {certified_pass, certified_fail, needs_resubmission}
    AUTO_FINAL:      draft -> {auto_pass, auto_fail}

``needs_resubmission`` and ``auto_fail`` restart at ``draft``. Persisting the
status is the caller's job.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from running_assessment.core.exceptions import InvalidTransitionError

from .audit import AuditEventType, AuditLog
from .types import AttemptStatus, GradeCode, JudgmentMode, ScoringResult

logger = logging.getLogger(__name__)

S = AttemptStatus

FINAL_STATUSES = frozenset({S.AUTO_PASS, S.AUTO_FAIL, S.CERTIFIED_PASS, S.CERTIFIED_FAIL})
CERTIFIABLE_STATUSES = frozenset({S.AUTO_PASS, S.CERTIFIED_PASS})
RESUBMITTABLE_STATUSES = frozenset({S.NEEDS_RESUBMISSION, S.AUTO_FAIL})

TRANSITIONS: dict[JudgmentMode, dict[AttemptStatus, frozenset[AttemptStatus]]] = {
    JudgmentMode.AUTO_FINAL: {
        S.DRAFT: frozenset({S.AUTO_PASS, S.AUTO_FAIL}),
        S.AUTO_FAIL: frozenset({S.DRAFT}),
    },
    JudgmentMode.REVIEW_REQUIRED: {
        S.DRAFT: frozenset({S.SUBMITTED}),
        S.SUBMITTED: frozenset({S.UNDER_REVIEW}),
        S.UNDER_REVIEW: frozenset({S.CERTIFIED_PASS, S.CERTIFIED_FAIL, S.NEEDS_RESUBMISSION}),
        S.NEEDS_RESUBMISSION: frozenset({S.DRAFT}),
    },
}


class ReviewDecision(Enum):
    """Outcome chosen by a human reviewer."""

    PASS = "pass"
    FAIL = "fail"
    RESUBMIT = "resubmit"


REVIEW_OUTCOMES = {
    ReviewDecision.PASS: S.CERTIFIED_PASS,
    ReviewDecision.FAIL: S.CERTIFIED_FAIL,
    ReviewDecision.RESUBMIT: S.NEEDS_RESUBMISSION,
}


@dataclass(frozen=True)
class NextAction:
    """What the athlete can do next."""

    action: str
    label: str
    description: str


@dataclass(frozen=True)
class VideoSubmissionCheck:
    valid: bool
    errors: list[str] = field(default_factory=list)


def determine_judgment_mode(grade: GradeCode | int | str) -> JudgmentMode:
    """Advanced grades (2 and 1) need human review; the rest are auto-final."""
    code = GradeCode.parse(grade)
    return JudgmentMode.REVIEW_REQUIRED if code.is_advanced else JudgmentMode.AUTO_FINAL


def initial_status(mode: JudgmentMode) -> AttemptStatus:
    return S.DRAFT


def determine_final_status(
    mode: JudgmentMode,
    total_score: float,
    pass_threshold: float,
    quality_ok: bool = True,
) -> AttemptStatus:
    """
    Status after automatic scoring.

    Review-required attempts go to ``submitted`` regardless of score.
    """
    if mode is JudgmentMode.REVIEW_REQUIRED:
        return S.SUBMITTED
    return S.AUTO_PASS if total_score >= pass_threshold and quality_ok else S.AUTO_FAIL


def route_result(
    result: ScoringResult,
    mode: JudgmentMode | None = None,
    audit: AuditLog | None = None,
    actor: str | None = None,
) -> AttemptStatus:
    """Status a freshly scored attempt moves to from ``draft``; audited as ``result_issued``."""
    mode = mode or determine_judgment_mode(result.grade)
    status = determine_final_status(
        mode, result.total_score, result.pass_threshold, result.quality_grade.is_certifiable
    )
    if audit is not None:
        audit.record(
            AuditEventType.RESULT_ISSUED,
            {
                "grade": result.grade.number,
                "mode": mode.value,
                "status": status.value,
                "total_score": result.total_score,
            },
            actor=actor,
        )
    return status


def requires_video_submission(mode: JudgmentMode) -> bool:
    return mode is JudgmentMode.REVIEW_REQUIRED


def requires_hfvp_evaluation(grade: GradeCode | int | str) -> bool:
    return GradeCode.parse(grade).is_advanced


def can_apply_certificate(status: AttemptStatus) -> bool:
    return status in CERTIFIABLE_STATUSES


def can_resubmit(status: AttemptStatus) -> bool:
    return status in RESUBMITTABLE_STATUSES


def is_final_status(status: AttemptStatus) -> bool:
    return status in FINAL_STATUSES


def is_under_review(status: AttemptStatus) -> bool:
    return status is S.UNDER_REVIEW


def allowed_transitions(status: AttemptStatus, mode: JudgmentMode) -> frozenset[AttemptStatus]:
    """Statuses reachable in one step from ``status``."""
    return TRANSITIONS[mode].get(status, frozenset())


def transition(
    status: AttemptStatus,
    target: AttemptStatus,
    mode: JudgmentMode,
    audit: AuditLog | None = None,
    actor: str | None = None,
) -> AttemptStatus:
    """
    Validate and perform one status transition.

    Raises:
        InvalidTransitionError: ``target`` is not reachable from ``status``
    """
    if target not in allowed_transitions(status, mode):
        reason = "final status" if is_final_status(status) else f"not allowed in {mode.value} mode"
        raise InvalidTransitionError(status.value, target.value, reason)

    if audit is not None:
        audit.record(
            AuditEventType.STATUS_CHANGED,
            {"from": status.value, "to": target.value, "mode": mode.value},
            actor=actor,
        )
    logger.info("Attempt status %s -> %s", status.value, target.value)
    return target


def apply_review_decision(
    status: AttemptStatus,
    decision: ReviewDecision | str,
    audit: AuditLog | None = None,
    reviewer: str | None = None,
) -> AttemptStatus:
    """Move an attempt under review to its reviewed outcome."""
    decision = ReviewDecision(decision)
    return transition(
        status,
        REVIEW_OUTCOMES[decision],
        JudgmentMode.REVIEW_REQUIRED,
        audit=audit,
        actor=reviewer,
    )


def next_action(mode: JudgmentMode, status: AttemptStatus) -> NextAction:
    """Next user-facing action for an attempt."""
    if status is S.DRAFT:
        return NextAction("complete_draft", "Complete attempt", "Record the video and run automatic scoring")

    if status in CERTIFIABLE_STATUSES:
        return NextAction("apply_certificate", "Apply for certificate", "Passed; a certificate can be requested")

    if mode is JudgmentMode.AUTO_FINAL and status is S.AUTO_FAIL:
        return NextAction("resubmit", "Retake", "Not passed; review the feedback and try again")

    if mode is JudgmentMode.REVIEW_REQUIRED:
        if status in (S.SUBMITTED, S.UNDER_REVIEW):
            return NextAction("wait_review", "Awaiting review", "An examiner will review the submission")
        if status is S.CERTIFIED_FAIL:
            return NextAction("view_result", "View result", "Not passed; see the examiner's comments")
        if status is S.NEEDS_RESUBMISSION:
            return NextAction("resubmit", "Resubmit", "Fix the videos and submit again")

    return NextAction("view_result", "View result", "The attempt result is available")


def validate_video_submission(
    fixed_video_url: str | None,
    panning_video_url: str | None,
) -> VideoSubmissionCheck:
    """Review-required grades need both the fixed and the panning camera video."""
    errors = []
    if not fixed_video_url or not fixed_video_url.strip():
        errors.append("Fixed camera video is required")
    if not panning_video_url or not panning_video_url.strip():
        errors.append("Panning camera video is required")
    return VideoSubmissionCheck(valid=not errors, errors=errors)
