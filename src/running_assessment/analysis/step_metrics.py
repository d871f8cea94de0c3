"""
Step Metrics
============

Pair contact/toe-off events into discrete steps and compute timing metrics.
Distance-dependent metrics (stride, speed, acceleration) stay empty until an
external distance mapping supplies track distances at contact.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterable, Mapping, Sequence

import numpy as np

from running_assessment.core.exceptions import InputValidationError

from .hfvp import HFVPInput

logger = logging.getLogger(__name__)


class EventKind(Enum):
    """Gait event types."""

    CONTACT = "contact"
    TOE_OFF = "toe_off"


class Side(Enum):
    """Foot the event was attributed to."""

    LEFT = "left"
    RIGHT = "right"
    BOTH = "both"


@dataclass(frozen=True)
class GaitEvent:
    """A foot contact or toe-off at a video frame."""

    frame: int
    kind: EventKind
    confidence: float  # 0-1
    side: Side = Side.BOTH

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise InputValidationError(f"Event confidence must be in [0, 1], got {self.confidence}")

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "frame": self.frame,
            "kind": self.kind.value,
            "confidence": self.confidence,
            "side": self.side.value,
        }


@dataclass(frozen=True)
class StepMetric:
    """One contact -> toe-off -> next contact cycle."""

    index: int
    contact_frame: int
    toe_off_frame: int
    next_contact_frame: int | None
    contact_time: float  # s
    flight_time: float | None  # s
    step_time: float | None  # s
    cadence: float | None  # steps/s
    stride: float | None = None  # m
    speed: float | None = None  # m/s
    acceleration: float | None = None  # m/s^2
    confidence: float = 0.0
    side: Side = Side.BOTH

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "index": self.index,
            "contact_frame": self.contact_frame,
            "toe_off_frame": self.toe_off_frame,
            "next_contact_frame": self.next_contact_frame,
            "contact_time": self.contact_time,
            "flight_time": self.flight_time,
            "step_time": self.step_time,
            "cadence": self.cadence,
            "stride": self.stride,
            "speed": self.speed,
            "acceleration": self.acceleration,
            "confidence": self.confidence,
            "side": self.side.value,
        }


@dataclass(frozen=True)
class StepSummary:
    """Aggregate statistics over a list of steps."""

    n_steps: int
    contact_time_mean: float
    flight_time_mean: float
    step_time_mean: float
    cadence_mean: float
    stride_mean: float | None
    speed_mean: float | None
    contact_times: tuple[float, ...] = ()

    def to_dict(self) -> dict[str, float | None]:
        """Convert to dictionary."""
        return {
            "n_steps": float(self.n_steps),
            "contact_time_mean": self.contact_time_mean,
            "flight_time_mean": self.flight_time_mean,
            "step_time_mean": self.step_time_mean,
            "cadence_mean": self.cadence_mean,
            "stride_mean": self.stride_mean,
            "speed_mean": self.speed_mean,
        }


def compute_step_metrics(events: Sequence[GaitEvent], fps: float) -> list[StepMetric]:
    """
    Pair contacts and toe-offs into steps.

    Consecutive contacts with a toe-off strictly between them form one step;
    the earliest such toe-off is used. A contact with no toe-off before the
    next contact is dropped. The last contact forms a final step with no next
    contact when a toe-off follows it.

    Args:
        events: Gait events (any order)
        fps: Frames per second

    Returns:
        Time-ordered list of StepMetric
    """
    if fps <= 0:
        raise InputValidationError(f"fps must be positive, got {fps}")

    contacts = sorted((e for e in events if e.kind is EventKind.CONTACT), key=lambda e: e.frame)
    toe_offs = sorted((e for e in events if e.kind is EventKind.TOE_OFF), key=lambda e: e.frame)

    steps: list[StepMetric] = []
    for i, contact in enumerate(contacts):
        next_contact = contacts[i + 1] if i + 1 < len(contacts) else None
        toe_off = next(
            (
                t for t in toe_offs
                if t.frame > contact.frame
                and (next_contact is None or t.frame < next_contact.frame)
            ),
            None,
        )
        if toe_off is None:
            continue

        contact_time = (toe_off.frame - contact.frame) / fps
        if next_contact is not None:
            flight_time = (next_contact.frame - toe_off.frame) / fps
            step_time = contact_time + flight_time
            cadence = 1.0 / step_time
            confidence = (contact.confidence + toe_off.confidence + next_contact.confidence) / 3
        else:
            flight_time = step_time = cadence = None
            confidence = (contact.confidence + toe_off.confidence) / 2

        steps.append(
            StepMetric(
                index=len(steps),
                contact_frame=contact.frame,
                toe_off_frame=toe_off.frame,
                next_contact_frame=next_contact.frame if next_contact is not None else None,
                contact_time=contact_time,
                flight_time=flight_time,
                step_time=step_time,
                cadence=cadence,
                confidence=confidence,
                side=contact.side,
            )
        )

    dropped = len(contacts) - len(steps)
    if dropped:
        logger.debug("Dropped %d contacts without a following toe-off", dropped)
    return steps


def contact_frames(steps: Sequence[StepMetric]) -> list[int]:
    """All contact frames referenced by the steps, including next contacts."""
    frames = {s.contact_frame for s in steps}
    frames.update(s.next_contact_frame for s in steps if s.next_contact_frame is not None)
    return sorted(frames)


def _known(distances: Mapping[int, float], frame: int | None) -> float | None:
    if frame is None:
        return None
    value = distances.get(frame)
    if value is None or not np.isfinite(value):
        return None
    return float(value)


def apply_distances(
    steps: Sequence[StepMetric],
    distances: Mapping[int, float],
) -> list[StepMetric]:
    """
    Fill stride, speed and acceleration from track distances at contact.

    Args:
        steps: Steps from compute_step_metrics
        distances: Track distance (m) keyed by contact frame

    Returns:
        New StepMetric objects; fields stay None where a distance is unknown
    """
    with_speed: list[StepMetric] = []
    for step in steps:
        start = _known(distances, step.contact_frame)
        end = _known(distances, step.next_contact_frame)
        stride = speed = None
        if start is not None and end is not None:
            stride = end - start
            if step.step_time:
                speed = stride / step.step_time
        with_speed.append(replace(step, stride=stride, speed=speed, acceleration=None))

    result = []
    for i, step in enumerate(with_speed):
        acceleration = None
        following = with_speed[i + 1] if i + 1 < len(with_speed) else None
        if (
            following is not None
            and following.contact_frame == step.next_contact_frame
            and step.speed is not None
            and following.speed is not None
            and step.step_time
        ):
            acceleration = (following.speed - step.speed) / step.step_time
        result.append(replace(step, acceleration=acceleration))
    return result


def _mean(values: Iterable[float | None]) -> float | None:
    finite = [v for v in values if v is not None and np.isfinite(v)]
    return float(np.mean(finite)) if finite else None


def summarize_steps(steps: Sequence[StepMetric]) -> StepSummary:
    """Aggregate timing and distance metrics over steps."""
    if not steps:
        return StepSummary(0, 0.0, 0.0, 0.0, 0.0, None, None)

    return StepSummary(
        n_steps=len(steps),
        contact_time_mean=_mean(s.contact_time for s in steps) or 0.0,
        flight_time_mean=_mean(s.flight_time for s in steps) or 0.0,
        step_time_mean=_mean(s.step_time for s in steps) or 0.0,
        cadence_mean=_mean(s.cadence for s in steps) or 0.0,
        stride_mean=_mean(s.stride for s in steps),
        speed_mean=_mean(s.speed for s in steps),
        contact_times=tuple(s.contact_time for s in steps),
    )


def hfvp_input_from_steps(
    steps: Sequence[StepMetric],
    distances: Mapping[int, float],
    fps: float,
    mass_kg: float,
) -> HFVPInput:
    """
    Build an H-FVP input from distance and time at each contact.

    Contacts without a known distance are skipped; time is measured from the
    first usable contact.
    """
    points = [(f, _known(distances, f)) for f in contact_frames(steps)]
    points = [(f, d) for f, d in points if d is not None]
    if len(points) < 3:
        raise InputValidationError(
            f"At least 3 contacts with known distance are required, got {len(points)}"
        )
    return HFVPInput(
        marker_distances=[d for _, d in points],
        cumulative_times=[f / fps for f, _ in points],
        mass_kg=mass_kg,
    )
