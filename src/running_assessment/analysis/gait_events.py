"""
Gait Event Detection
====================

Detect foot contacts and toe-offs in a running video's landmark stream.

Four independent weak detectors scan the same sequence:
- Toe trajectory: vertical toe position, ground/air threshold crossings
- Joint angle: rapid knee extension / ankle plantarflexion
- Body-center velocity: hip-midpoint vertical deceleration / acceleration
- Body-center height: downward / upward steps of the hip midpoint

Their candidates are fused by weighted voting, de-duplicated by a minimum
inter-event distance, and a final pass recovers steps missed at the start of
the clip.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import NamedTuple

import numpy as np
from scipy.ndimage import uniform_filter1d

from running_assessment.core.config import GaitDetectionConfig
from running_assessment.pose.angles import ankle_angles, knee_angles
from running_assessment.pose.landmarks import SIDE_JOINTS, LandmarkSequence

from .step_metrics import EventKind, GaitEvent, Side, StepMetric, compute_step_metrics

logger = logging.getLogger(__name__)

# Expected one event per this many frames when computing the detection rate
FRAMES_PER_EXPECTED_EVENT = 15


class Candidate(NamedTuple):
    """Raw detector output before fusion (``row`` is the buffer position)."""

    row: int
    kind: EventKind
    confidence: float
    side: Side


@dataclass
class GaitDetectionResult:
    """Fused gait events and the steps paired from them."""

    events: list[GaitEvent] = field(default_factory=list)
    steps: list[StepMetric] = field(default_factory=list)
    detection_rate: float = 0.0
    candidate_counts: dict[str, int] = field(default_factory=dict)
    n_recovered: int = 0

    @property
    def contacts(self) -> list[GaitEvent]:
        return [e for e in self.events if e.kind is EventKind.CONTACT]

    @property
    def toe_offs(self) -> list[GaitEvent]:
        return [e for e in self.events if e.kind is EventKind.TOE_OFF]

    def to_dict(self) -> dict[str, float]:
        """Convert to dictionary (excludes event details)."""
        return {
            "n_events": float(len(self.events)),
            "n_contacts": float(len(self.contacts)),
            "n_toe_offs": float(len(self.toe_offs)),
            "n_steps": float(len(self.steps)),
            "n_recovered": float(self.n_recovered),
            "detection_rate": self.detection_rate,
        }


def _fill_gaps(values: np.ndarray) -> np.ndarray | None:
    """Linearly interpolate NaN samples; None if fewer than two are finite."""
    finite = np.isfinite(values)
    if finite.sum() < 2:
        return None
    if finite.all():
        return values.astype(float)
    x = np.arange(len(values))
    return np.interp(x, x[finite], values[finite])


class GaitEventDetector:
    """
    Detect contact and toe-off events by fusing four weak detectors.

    Each detector emits ``(row, kind, confidence, side)`` candidates. A
    detector that cannot see its landmarks simply emits nothing, so its
    weight drops out of the vote for that run.
    """

    def __init__(self, config: GaitDetectionConfig | None = None):
        """
        Initialize detector.

        Args:
            config: Detection thresholds and fusion weights
        """
        self.config = config or GaitDetectionConfig()

    def detect(self, seq: LandmarkSequence, fps: float | None = None) -> GaitDetectionResult:
        """
        Detect gait events and pair them into steps.

        Args:
            seq: Landmark buffer for one video
            fps: Frames per second (defaults to the buffer's fps)

        Returns:
            GaitDetectionResult; empty when the sequence is too short
        """
        fps = fps or seq.fps
        if len(seq) < self.config.min_frames:
            logger.debug("Sequence too short for gait detection (%d frames)", len(seq))
            return self._empty_result()

        per_detector = {
            "toe_trajectory": self._detect_toe_trajectory(seq),
            "joint_angle": self._detect_joint_angle(seq),
            "velocity": self._detect_velocity(seq),
            "height": self._detect_height(seq),
        }
        counts = {name: len(c) for name, c in per_detector.items()}
        logger.debug("Gait candidates per detector: %s", counts)

        accepted = self._fuse(per_detector)
        recovered = self._recover_early(seq, accepted) if accepted else []

        frame_indices = seq.frame_indices
        events = sorted(
            (
                GaitEvent(
                    frame=int(frame_indices[c.row]),
                    kind=c.kind,
                    confidence=float(np.clip(c.confidence, 0.0, 1.0)),
                    side=c.side,
                )
                for c in accepted + recovered
            ),
            key=lambda e: (e.frame, e.kind.value),
        )
        steps = compute_step_metrics(events, fps)

        expected = max(1, len(seq) // FRAMES_PER_EXPECTED_EVENT)
        detection_rate = min(1.0, len(events) / expected)

        logger.info(
            "Detected %d gait events (%d recovered), %d steps in %d frames",
            len(events), len(recovered), len(steps), len(seq),
        )
        return GaitDetectionResult(
            events=events,
            steps=steps,
            detection_rate=detection_rate,
            candidate_counts=counts,
            n_recovered=len(recovered),
        )

    def _empty_result(self) -> GaitDetectionResult:
        """Return empty result for insufficient data."""
        return GaitDetectionResult()

    def _smooth(self, values: np.ndarray) -> np.ndarray:
        if self.config.smoothing_window <= 1:
            return values
        return uniform_filter1d(values, size=self.config.smoothing_window, mode="nearest")

    def _hip_height(self, seq: LandmarkSequence) -> np.ndarray | None:
        """Smoothed hip-midpoint height (1 - y), gaps interpolated."""
        thr = self.config.visibility_threshold
        left = seq.xy(SIDE_JOINTS["left"]["hip"], thr)[:, 1]
        right = seq.xy(SIDE_JOINTS["right"]["hip"], thr)[:, 1]
        mid = np.where(np.isfinite(left) & np.isfinite(right), (left + right) / 2, np.fmax(left, right))
        filled = _fill_gaps(1.0 - mid)
        return None if filled is None else self._smooth(filled)

    def _detect_toe_trajectory(self, seq: LandmarkSequence) -> list[Candidate]:
        """Threshold crossings of each toe's height above its ground level."""
        cfg = self.config
        candidates = []

        for side_name, joints in SIDE_JOINTS.items():
            toe_idx = joints["toe"]
            height = _fill_gaps(1.0 - seq.xy(toe_idx, cfg.visibility_threshold)[:, 1])
            if height is None:
                continue
            height = self._smooth(height)

            ground = np.percentile(height, 10)
            amplitude = np.percentile(height, 90) - ground
            if amplitude < cfg.toe_min_amplitude:
                continue

            on_ground = height <= ground + cfg.toe_ground_fraction * amplitude
            base_conf = min(0.95, 0.4 + 0.5 * min(1.0, amplitude / 0.05))
            visibility = seq.visibility(toe_idx)
            side = Side(side_name)

            for i in range(1, len(height)):
                if on_ground[i] and not on_ground[i - 1]:
                    candidates.append(
                        Candidate(i, EventKind.CONTACT, base_conf * float(visibility[i]), side)
                    )
                elif on_ground[i - 1] and not on_ground[i]:
                    # Last frame on the ground before the toe rises
                    candidates.append(
                        Candidate(i - 1, EventKind.TOE_OFF, base_conf * float(visibility[i - 1]), side)
                    )

        return candidates

    def _detect_joint_angle(self, seq: LandmarkSequence) -> list[Candidate]:
        """Rapid knee extension with dorsiflexion (contact) or plantarflexion (toe-off)."""
        cfg = self.config
        candidates = []

        for side_name in SIDE_JOINTS:
            knee_delta = np.diff(knee_angles(seq, side_name, cfg.visibility_threshold))
            ankle_delta = np.diff(ankle_angles(seq, side_name, cfg.visibility_threshold))
            side = Side(side_name)

            for i, (dk, da) in enumerate(zip(knee_delta, ankle_delta)):
                if not (np.isfinite(dk) and np.isfinite(da)):
                    continue
                if dk > cfg.knee_extension_rate and da < -cfg.ankle_dorsiflexion_rate:
                    candidates.append(Candidate(i + 1, EventKind.CONTACT, min(0.9, abs(dk) / 20), side))
                elif da > cfg.ankle_plantarflexion_rate and dk > cfg.knee_toe_off_rate:
                    candidates.append(Candidate(i + 1, EventKind.TOE_OFF, min(0.9, da / 15), side))

        return candidates

    def _detect_velocity(self, seq: LandmarkSequence) -> list[Candidate]:
        """Sharp change in hip-midpoint vertical speed."""
        height = self._hip_height(seq)
        if height is None:
            return []

        speed = np.abs(np.gradient(height))
        change = np.diff(speed)
        thr = self.config.velocity_change_threshold
        candidates = []

        for i, delta in enumerate(change):
            if delta < -thr:
                candidates.append(Candidate(i + 1, EventKind.CONTACT, min(0.8, abs(delta) / 0.025), Side.BOTH))
            elif delta > thr:
                candidates.append(Candidate(i + 1, EventKind.TOE_OFF, min(0.8, delta / 0.025), Side.BOTH))

        return candidates

    def _detect_height(self, seq: LandmarkSequence) -> list[Candidate]:
        """Downward (contact) and upward (toe-off) steps in hip-midpoint height."""
        height = self._hip_height(seq)
        if height is None:
            return []

        steps = np.diff(height)
        thr = self.config.height_step_threshold
        candidates = []

        for i, dh in enumerate(steps):
            if dh < -thr:
                candidates.append(Candidate(i + 1, EventKind.CONTACT, min(0.8, abs(dh) / 0.05), Side.BOTH))
            elif dh > thr:
                candidates.append(Candidate(i + 1, EventKind.TOE_OFF, min(0.8, dh / 0.05), Side.BOTH))

        return candidates

    def _fuse(self, per_detector: dict[str, list[Candidate]]) -> list[Candidate]:
        """
        Weighted voting over (row, kind) keys.

        Votes are accepted greedily from the strongest down; a vote is
        rejected when an accepted event of the same kind lies closer than
        ``min_step_frames`` or any accepted event already occupies its frame.
        Ties are broken by the earlier frame.
        """
        cfg = self.config
        votes: dict[tuple[int, EventKind], float] = {}
        best_side: dict[tuple[int, EventKind], tuple[float, Side]] = {}

        for name, candidates in per_detector.items():
            weight = cfg.weights.get(name, 0.0)
            for c in candidates:
                key = (c.row, c.kind)
                contribution = weight * c.confidence
                votes[key] = votes.get(key, 0.0) + contribution
                if key not in best_side or contribution > best_side[key][0]:
                    best_side[key] = (contribution, c.side)

        ranked = sorted(votes.items(), key=lambda kv: (-kv[1], kv[0][0], kv[0][1].value))

        accepted: list[Candidate] = []
        for (row, kind), vote in ranked:
            if vote < cfg.min_vote:
                break
            if any(
                (a.kind is kind and abs(a.row - row) < cfg.min_step_frames) or a.row == row
                for a in accepted
            ):
                continue
            accepted.append(Candidate(row, kind, min(1.0, vote), best_side[(row, kind)][1]))

        return accepted

    def _recover_early(self, seq: LandmarkSequence, accepted: list[Candidate]) -> list[Candidate]:
        """
        Search the frames before the first accepted event for missed steps.

        Movement is the summed absolute hip-height change over a short window.
        Recovered events never displace accepted ones.
        """
        cfg = self.config
        height = self._hip_height(seq)
        if height is None:
            return []

        first = min(c.row for c in accepted)
        start = first - min(first, cfg.early_search_frames)
        window = cfg.early_window
        occupied = [c.row for c in accepted]
        recovered: list[Candidate] = []

        for lo in range(start, first - window + 1, window):
            hi = lo + window
            movement = float(np.abs(np.diff(height[lo:hi])).sum())
            if movement <= cfg.early_movement_threshold:
                continue
            center = lo + window // 2
            if any(abs(center - r) < cfg.min_step_frames for r in occupied):
                continue
            kind = EventKind.CONTACT if height[hi - 1] < height[lo] else EventKind.TOE_OFF
            recovered.append(Candidate(center, kind, cfg.early_confidence, Side.BOTH))
            occupied.append(center)

        if recovered:
            logger.debug("Recovered %d early events before row %d", len(recovered), first)
        return recovered


def detect_gait_events(
    seq: LandmarkSequence,
    fps: float | None = None,
    config: GaitDetectionConfig | None = None,
) -> GaitDetectionResult:
    """
    Convenience function for gait event detection.

    Args:
        seq: Landmark buffer
        fps: Frames per second (defaults to the buffer's fps)
        config: Optional detection configuration

    Returns:
        GaitDetectionResult
    """
    detector = GaitEventDetector(config)
    return detector.detect(seq, fps)
