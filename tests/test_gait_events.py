"""Tests for gait event detection."""

from __future__ import annotations

import numpy as np
import pytest
from conftest import make_running_sequence

from running_assessment.analysis.gait_events import (
    Candidate,
    GaitEventDetector,
    detect_gait_events,
)
from running_assessment.analysis.step_metrics import EventKind, Side
from running_assessment.core.config import GaitDetectionConfig
from running_assessment.pose.landmarks import SIDE_JOINTS, LandmarkSequence

FRAME_TOLERANCE = 2


class TestGaitEventDetector:
    """Tests for GaitEventDetector."""

    @pytest.mark.parametrize("n_steps", [1, 5, 20])
    def test_recovers_injected_steps(self, n_steps):
        """Test that k injected contact/toe-off pairs give k steps."""
        run = make_running_sequence(n_steps)

        result = detect_gait_events(run.sequence)

        assert len(result.steps) == n_steps
        for step, contact, toe_off in zip(result.steps, run.contact_frames, run.toe_off_frames):
            assert abs(step.contact_frame - contact) <= FRAME_TOLERANCE
            assert abs(step.toe_off_frame - toe_off) <= FRAME_TOLERANCE
        assert result.steps[-1].next_contact_frame is None

    def test_events_sorted_and_unique(self, running_sequence):
        """Test event ordering and frame uniqueness."""
        result = detect_gait_events(running_sequence.sequence)

        frames = [e.frame for e in result.events]
        assert frames == sorted(frames)
        assert len(frames) == len(set(frames))
        assert len(result.contacts) == 5
        assert len(result.toe_offs) == 5

    def test_sides_alternate(self, running_sequence):
        """Test that contacts are attributed to the moving foot."""
        result = detect_gait_events(running_sequence.sequence)

        sides = [e.side for e in result.contacts]
        assert sides == [Side.LEFT, Side.RIGHT, Side.LEFT, Side.RIGHT, Side.LEFT]

    def test_confidence_from_toe_vote(self, running_sequence):
        """Test fused confidence of toe-only evidence."""
        result = detect_gait_events(running_sequence.sequence)

        # Only the toe detector fires: weight 0.35 x confidence 0.9
        for event in result.events:
            assert event.confidence == pytest.approx(0.315, abs=1e-6)
        assert result.candidate_counts["joint_angle"] == 0
        assert result.candidate_counts["velocity"] == 0
        assert result.candidate_counts["height"] == 0

    def test_step_timing(self, running_sequence):
        """Test contact and step time of detected steps."""
        result = detect_gait_events(running_sequence.sequence)

        step = result.steps[0]
        assert step.step_time == pytest.approx(15 / 30)
        assert step.cadence == pytest.approx(2.0)
        assert 0.1 <= step.contact_time <= 0.3

    def test_detection_rate(self, running_sequence):
        """Test detection rate is capped at 1."""
        result = detect_gait_events(running_sequence.sequence)

        assert result.detection_rate == 1.0
        assert result.to_dict()["n_steps"] == 5.0

    def test_low_visibility_votes_below_threshold(self):
        """Test that weak toe evidence is discarded by the vote threshold."""
        run = make_running_sequence(5, visibility=0.5)

        result = detect_gait_events(run.sequence)

        # 0.35 x 0.9 x 0.5 < 0.2
        assert result.events == []
        assert result.steps == []

    def test_short_sequence_returns_empty(self):
        """Test that sequences shorter than min_frames give an empty result."""
        data = np.zeros((5, 33, 4), dtype=np.float32)
        seq = LandmarkSequence.from_array(data, fps=30.0)

        result = GaitEventDetector().detect(seq)

        assert result.events == []
        assert result.steps == []
        assert result.detection_rate == 0.0

    def test_missing_landmarks(self):
        """Test a sequence with no detected pose."""
        data = np.full((40, 33, 4), np.nan, dtype=np.float32)
        data[..., 3] = 0.0
        seq = LandmarkSequence.from_array(data, fps=30.0)

        result = detect_gait_events(seq)

        assert result.events == []
        assert result.steps == []
        assert sum(result.candidate_counts.values()) == 0

    def test_fps_override(self, running_sequence):
        """Test that an explicit fps is used for timing."""
        result = detect_gait_events(running_sequence.sequence, fps=60.0)

        assert result.steps[0].step_time == pytest.approx(15 / 60)

    def test_frame_indices_are_mapped(self):
        """Test that events carry buffer frame indices, not row positions."""
        run = make_running_sequence(3)
        seq = LandmarkSequence.from_array(
            run.sequence.to_array(), fps=30.0, frame_indices=np.arange(len(run.sequence)) + 500
        )

        result = detect_gait_events(seq)

        assert result.steps[0].contact_frame >= 500


class TestFusion:
    """Tests for weighted vote fusion."""

    def test_same_kind_too_close_is_rejected(self):
        """Test minimum distance between same-kind events."""
        detector = GaitEventDetector()
        candidates = {
            "toe_trajectory": [
                Candidate(10, EventKind.CONTACT, 0.9, Side.LEFT),
                Candidate(12, EventKind.CONTACT, 0.8, Side.RIGHT),
            ],
            "joint_angle": [],
            "velocity": [],
            "height": [],
        }

        accepted = detector._fuse(candidates)

        assert [c.row for c in accepted] == [10]

    def test_different_kinds_cannot_share_a_frame(self):
        """Test that one frame holds at most one event."""
        detector = GaitEventDetector()
        candidates = {
            "toe_trajectory": [Candidate(10, EventKind.CONTACT, 0.9, Side.LEFT)],
            "joint_angle": [Candidate(10, EventKind.TOE_OFF, 0.9, Side.LEFT)],
            "velocity": [],
            "height": [],
        }

        accepted = detector._fuse(candidates)

        assert len(accepted) == 1
        assert accepted[0].kind is EventKind.CONTACT

    def test_votes_add_across_detectors(self):
        """Test that agreeing detectors push a weak candidate over the threshold."""
        detector = GaitEventDetector()
        candidates = {
            "toe_trajectory": [],
            "joint_angle": [],
            "velocity": [Candidate(20, EventKind.TOE_OFF, 0.6, Side.BOTH)],
            "height": [Candidate(20, EventKind.TOE_OFF, 0.6, Side.BOTH)],
        }

        accepted = detector._fuse(candidates)

        # 0.20 * 0.6 + 0.15 * 0.6 = 0.21
        assert len(accepted) == 1
        assert accepted[0].confidence == pytest.approx(0.21)

    def test_custom_vote_threshold(self):
        """Test that the vote threshold comes from the config."""
        detector = GaitEventDetector(GaitDetectionConfig(min_vote=0.5))
        candidates = {
            "toe_trajectory": [Candidate(10, EventKind.CONTACT, 0.9, Side.LEFT)],
            "joint_angle": [],
            "velocity": [],
            "height": [],
        }

        assert detector._fuse(candidates) == []


class TestEarlyRecovery:
    """Tests for early-step recovery."""

    def test_recovers_movement_before_first_event(self):
        """Test that hip movement before the first event yields recovered contacts."""
        data = np.zeros((60, 33, 4), dtype=np.float32)
        data[..., 3] = 1.0
        hip_y = np.full(60, 0.3)
        hip_y[10:40] = 0.3 + 0.015 * np.arange(30)
        hip_y[40:] = hip_y[39]
        for side in SIDE_JOINTS.values():
            data[:, side["hip"], 0] = 0.5
            data[:, side["hip"], 1] = hip_y
        seq = LandmarkSequence.from_array(data, fps=30.0)
        detector = GaitEventDetector()

        recovered = detector._recover_early(seq, [Candidate(40, EventKind.CONTACT, 0.5, Side.LEFT)])

        assert [c.row for c in recovered] == [12, 17, 22, 27, 32]
        assert all(c.kind is EventKind.CONTACT for c in recovered)
        assert all(c.confidence == 0.6 for c in recovered)

    def test_no_movement_recovers_nothing(self, running_sequence):
        """Test that still hips add no events."""
        result = detect_gait_events(running_sequence.sequence)

        assert result.n_recovered == 0
