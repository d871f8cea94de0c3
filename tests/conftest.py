"""Pytest fixtures for running-assessment tests."""

from __future__ import annotations

import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

import numpy as np
import pytest

from running_assessment.certification.rules import GradeRule, load_grade_rules
from running_assessment.certification.types import (
    ContactTimeMeasurement,
    HFVPMeasurement,
    QualityMetrics,
    ScoringInput,
    StrideMeasurement,
)
from running_assessment.pose.angles import AngleMeasurement
from running_assessment.pose.landmarks import SIDE_JOINTS, LandmarkSequence

GROUND_Y = 0.9
KNEE_Y = 0.7
HIP_Y = 0.5
SHOULDER_Y = 0.3
FOOT_X = {"left": 0.48, "right": 0.52}
TOE_OFFSET = 0.03


@dataclass
class SyntheticRun:
    """Synthetic landmark sequence with the injected ground-contact frames."""

    sequence: LandmarkSequence
    contact_frames: list[int]
    toe_off_frames: list[int]  # last frame on the ground


def make_running_sequence(
    n_steps: int,
    fps: float = 30.0,
    lead: int = 10,
    tail: int = 10,
    period: int = 15,
    stance: int = 7,
    amplitude: float = 0.08,
    visibility: float = 1.0,
) -> SyntheticRun:
    """
    Build a sequence with ``n_steps`` alternating foot contacts.

    Step ``i`` lands at ``lead + i * period`` on the left foot for even ``i``
    and stays on the ground for ``stance + 1`` frames; the foot is lifted by
    ``amplitude`` otherwise. Hips, knees and shoulders stay still with the
    leg segments vertical, so only the toe trajectory carries gait signal.
    """
    n_frames = lead + (n_steps - 1) * period + stance + 1 + tail
    data = np.zeros((n_frames, 33, 4), dtype=np.float32)
    data[:, :, 0] = 0.5
    data[:, :, 1] = 0.2
    data[:, :, 3] = visibility

    contacts, toe_offs = [], []
    foot_y = {side: np.full(n_frames, GROUND_Y - amplitude) for side in SIDE_JOINTS}
    for i in range(n_steps):
        start = lead + i * period
        side = "left" if i % 2 == 0 else "right"
        foot_y[side][start:start + stance + 1] = GROUND_Y
        contacts.append(start)
        toe_offs.append(start + stance)

    for side, joints in SIDE_JOINTS.items():
        x = FOOT_X[side]
        data[:, joints["shoulder"], :2] = (x, SHOULDER_Y)
        data[:, joints["hip"], :2] = (x, HIP_Y)
        data[:, joints["knee"], :2] = (x, KNEE_Y)
        data[:, joints["ankle"], 0] = x
        data[:, joints["ankle"], 1] = foot_y[side]
        data[:, joints["toe"], 0] = x + TOE_OFFSET
        data[:, joints["toe"], 1] = foot_y[side]

    return SyntheticRun(LandmarkSequence.from_array(data, fps), contacts, toe_offs)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def running_sequence() -> SyntheticRun:
    """Five-step synthetic run at 30 fps."""
    return make_running_sequence(5)


@pytest.fixture(scope="session")
def grade_rules():
    """Bundled grade rule set."""
    return load_grade_rules()


@pytest.fixture
def fixed_time() -> datetime:
    return datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def build_ideal_input(rule: GradeRule, **overrides) -> ScoringInput:
    """Scoring input whose every raw value sits at the rule's ideal value."""
    c = rule.criteria
    hfvp = None
    if rule.includes_hfvp:
        hfvp = HFVPMeasurement(
            f0=c["f0"].ideal,
            v0=c["v0"].ideal,
            pmax=c["pmax"].ideal,
            drf=c["drf"].ideal,
            fv_r2=0.95,
            pos_r2=0.97,
        )
    values = dict(
        grade=rule.grade,
        angles=AngleMeasurement.from_averages(
            knee=c["knee_flexion"].ideal,
            hip=c["hip_extension"].ideal,
            trunk=c["trunk_lean"].ideal,
        ),
        stride=StrideMeasurement(
            stride_length=c["stride_length_ratio"].ideal * 1.75,
            stride_frequency=c["stride_frequency"].ideal,
            height_ratio=c["stride_length_ratio"].ideal,
            step_count=12,
        ),
        contact_time=ContactTimeMeasurement.from_values([c["contact_time"].ideal]),
        quality=QualityMetrics(
            pose_confidence_avg=0.92,
            pose_confidence_min=0.81,
            frame_drop_rate=0.02,
            measurement_points=12,
            fv_r2=0.95 if hfvp is not None else None,
            pos_r2=0.97 if hfvp is not None else None,
        ),
        hfvp=hfvp,
    )
    values.update(overrides)
    return ScoringInput(**values)


@pytest.fixture
def ideal_input_for(grade_rules):
    """Factory: ideal scoring input for a grade number."""

    def factory(grade: int, **overrides) -> ScoringInput:
        rule = grade_rules.get(grade, datetime(2026, 3, 1, tzinfo=timezone.utc))
        return build_ideal_input(rule, **overrides)

    return factory
