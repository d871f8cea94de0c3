"""
Multi-segment merge.

A long run filmed by several cameras is analyzed one segment at a time; each
segment owns its landmark buffer and steps. Merging offsets every segment's
local contact distances by the segment start, removes steps seen twice near
a boundary and recomputes strides across the joined run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from running_assessment.core.exceptions import InputValidationError

from .step_metrics import StepMetric

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SegmentSteps:
    """Steps detected in one camera segment with local contact distances (m)."""

    segment_index: int
    start_distance: float
    end_distance: float
    steps: tuple[StepMetric, ...]
    contact_distances: tuple[float, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "steps", tuple(self.steps))
        object.__setattr__(self, "contact_distances", tuple(float(d) for d in self.contact_distances))
        if self.end_distance <= self.start_distance:
            raise InputValidationError(
                f"Segment {self.segment_index}: end distance must exceed start distance"
            )
        if len(self.steps) != len(self.contact_distances):
            raise InputValidationError(
                f"Segment {self.segment_index}: one contact distance per step is required"
            )

    @property
    def length(self) -> float:
        return self.end_distance - self.start_distance


@dataclass(frozen=True)
class PlacedStep:
    """A step positioned on the whole run."""

    segment_index: int
    local_index: int
    step: StepMetric
    distance: float  # absolute distance at contact (m)
    stride: float | None = None
    speed: float | None = None

    def to_dict(self) -> dict:
        return {
            "segment_index": self.segment_index,
            "local_index": self.local_index,
            "contact_frame": self.step.contact_frame,
            "distance": self.distance,
            "stride": self.stride,
            "speed": self.speed,
            "contact_time": self.step.contact_time,
            "flight_time": self.step.flight_time,
            "confidence": self.step.confidence,
        }


@dataclass
class MergedRun:
    """Steps of all segments joined into one run."""

    steps: list[PlacedStep] = field(default_factory=list)
    total_distance: float = 0.0
    total_time: float = 0.0
    avg_stride: float = 0.0
    median_stride: float = 0.0
    avg_speed: float = 0.0
    avg_contact_time: float = 0.0
    avg_flight_time: float = 0.0
    n_duplicates_removed: int = 0
    warnings: list[str] = field(default_factory=list)

    @property
    def n_steps(self) -> int:
        return len(self.steps)

    def to_dict(self) -> dict[str, float]:
        """Convert to dictionary (excludes step details)."""
        return {
            "n_steps": float(self.n_steps),
            "total_distance": self.total_distance,
            "total_time": self.total_time,
            "avg_stride": self.avg_stride,
            "median_stride": self.median_stride,
            "avg_speed": self.avg_speed,
            "avg_contact_time": self.avg_contact_time,
            "avg_flight_time": self.avg_flight_time,
            "n_duplicates_removed": float(self.n_duplicates_removed),
        }


def _remove_boundary_duplicates(
    steps: list[PlacedStep],
    boundaries: Sequence[float],
    tolerance: float,
) -> tuple[list[PlacedStep], int]:
    """Keep one step per boundary among those from different segments within tolerance."""
    removed: set[int] = set()
    for boundary in boundaries:
        nearby = [
            i for i, s in enumerate(steps)
            if i not in removed and abs(s.distance - boundary) < tolerance
        ]
        if len({steps[i].segment_index for i in nearby}) < 2:
            continue
        # Highest confidence wins, then the one closest to the boundary
        keep = min(
            nearby,
            key=lambda i: (-steps[i].step.confidence, abs(steps[i].distance - boundary)),
        )
        removed.update(i for i in nearby if i != keep)

    return [s for i, s in enumerate(steps) if i not in removed], len(removed)


def merge_segments(
    segments: Sequence[SegmentSteps],
    boundary_tolerance_m: float = 0.5,
) -> MergedRun:
    """
    Merge per-segment steps into one run.

    Args:
        segments: Independently analyzed segments (any order)
        boundary_tolerance_m: Steps this close to a segment boundary are
            considered the same physical contact

    Returns:
        MergedRun with recomputed strides and speeds
    """
    if not segments:
        return MergedRun()

    ordered = sorted(segments, key=lambda s: s.segment_index)
    warnings: list[str] = []

    for prev, cur in zip(ordered, ordered[1:]):
        gap = cur.start_distance - prev.end_distance
        if abs(gap) > boundary_tolerance_m:
            kind = "gap" if gap > 0 else "overlap"
            warnings.append(
                f"Segments {prev.segment_index} and {cur.segment_index} have a {abs(gap):.2f} m {kind}"
            )

    placed = [
        PlacedStep(
            segment_index=seg.segment_index,
            local_index=i,
            step=step,
            distance=seg.start_distance + local,
        )
        for seg in ordered
        for i, (step, local) in enumerate(zip(seg.steps, seg.contact_distances))
        if np.isfinite(local)
    ]
    n_missing = sum(len(seg.steps) for seg in ordered) - len(placed)
    if n_missing:
        warnings.append(f"{n_missing} steps without a contact distance were skipped")

    placed.sort(key=lambda s: s.distance)
    boundaries = [seg.start_distance for seg in ordered[1:]]
    deduped, n_removed = _remove_boundary_duplicates(placed, boundaries, boundary_tolerance_m)
    if n_removed:
        warnings.append(f"Removed {n_removed} duplicate steps near segment boundaries")

    merged_steps = []
    for i, s in enumerate(deduped):
        stride = speed = None
        if i + 1 < len(deduped):
            stride = deduped[i + 1].distance - s.distance
            if s.step.step_time:
                speed = stride / s.step.step_time
        merged_steps.append(
            PlacedStep(s.segment_index, s.local_index, s.step, s.distance, stride, speed)
        )

    strides = [s.stride for s in merged_steps if s.stride is not None and s.stride > 0]
    total_time = float(sum(s.step.step_time or s.step.contact_time for s in merged_steps))
    total_distance = float(sum(seg.length for seg in ordered))
    flights = [s.step.flight_time for s in merged_steps if s.step.flight_time is not None]

    logger.info(
        "Merged %d segments into %d steps (%d duplicates removed)",
        len(ordered), len(merged_steps), n_removed,
    )
    return MergedRun(
        steps=merged_steps,
        total_distance=total_distance,
        total_time=total_time,
        avg_stride=float(np.mean(strides)) if strides else 0.0,
        median_stride=float(np.median(strides)) if strides else 0.0,
        avg_speed=total_distance / total_time if total_time > 0 else 0.0,
        avg_contact_time=float(np.mean([s.step.contact_time for s in merged_steps])) if merged_steps else 0.0,
        avg_flight_time=float(np.mean(flights)) if flights else 0.0,
        n_duplicates_removed=n_removed,
        warnings=warnings,
    )
