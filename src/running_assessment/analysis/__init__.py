"""Gait event detection, step metrics and sprint force-velocity profiling."""

from .gait_events import GaitDetectionResult, GaitEventDetector, detect_gait_events
from .hfvp import (
    HFVPEstimator,
    HFVPInput,
    HFVPResult,
    SegmentMetrics,
    compute_hfvp,
    markers_from_splits,
)
from .regression import LinearFit, huber_fit, mad_scale, weighted_linear_fit
from .segments import MergedRun, PlacedStep, SegmentSteps, merge_segments
from .step_metrics import (
    EventKind,
    GaitEvent,
    Side,
    StepMetric,
    StepSummary,
    apply_distances,
    compute_step_metrics,
    contact_frames,
    hfvp_input_from_steps,
    summarize_steps,
)

__all__ = [
    # Gait events
    "EventKind",
    "GaitDetectionResult",
    "GaitEvent",
    "GaitEventDetector",
    "Side",
    "detect_gait_events",
    # Step metrics
    "StepMetric",
    "StepSummary",
    "apply_distances",
    "compute_step_metrics",
    "contact_frames",
    "hfvp_input_from_steps",
    "summarize_steps",
    # H-FVP
    "HFVPEstimator",
    "HFVPInput",
    "HFVPResult",
    "SegmentMetrics",
    "compute_hfvp",
    "markers_from_splits",
    # Regression
    "LinearFit",
    "huber_fit",
    "mad_scale",
    "weighted_linear_fit",
    # Segments
    "MergedRun",
    "PlacedStep",
    "SegmentSteps",
    "merge_segments",
]
