"""Joint angle computation from image-plane landmarks."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

import numpy as np

from .landmarks import SIDE_JOINTS, LandmarkSequence


def joint_angle(a: np.ndarray, b: np.ndarray, c: np.ndarray) -> np.ndarray:
    """
    Angle at ``b`` formed by ``a-b-c`` in degrees (law of cosines).

    Accepts (2,) points or (T, 2) trajectories. Degenerate (zero-length)
    segments and NaN inputs give NaN.
    """
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    c = np.asarray(c, dtype=float)
    v1 = a - b
    v2 = c - b
    n1 = np.linalg.norm(v1, axis=-1)
    n2 = np.linalg.norm(v2, axis=-1)
    denom = n1 * n2
    with np.errstate(invalid="ignore", divide="ignore"):
        cos_angle = np.sum(v1 * v2, axis=-1) / denom
    cos_angle = np.where(denom > 0, cos_angle, np.nan)
    return np.degrees(np.arccos(np.clip(cos_angle, -1.0, 1.0)))


def knee_angles(seq: LandmarkSequence, side: str, visibility_threshold: float = 0.3) -> np.ndarray:
    """Hip-knee-ankle angle per frame (180 = fully extended)."""
    j = SIDE_JOINTS[side]
    return joint_angle(
        seq.xy(j["hip"], visibility_threshold),
        seq.xy(j["knee"], visibility_threshold),
        seq.xy(j["ankle"], visibility_threshold),
    )


def ankle_angles(seq: LandmarkSequence, side: str, visibility_threshold: float = 0.3) -> np.ndarray:
    """Knee-ankle-toe angle per frame; increases with plantarflexion."""
    j = SIDE_JOINTS[side]
    return joint_angle(
        seq.xy(j["knee"], visibility_threshold),
        seq.xy(j["ankle"], visibility_threshold),
        seq.xy(j["toe"], visibility_threshold),
    )


def hip_angles(seq: LandmarkSequence, side: str, visibility_threshold: float = 0.3) -> np.ndarray:
    """Shoulder-hip-knee angle per frame (hip extension)."""
    j = SIDE_JOINTS[side]
    return joint_angle(
        seq.xy(j["shoulder"], visibility_threshold),
        seq.xy(j["hip"], visibility_threshold),
        seq.xy(j["knee"], visibility_threshold),
    )


def trunk_lean(seq: LandmarkSequence, visibility_threshold: float = 0.3) -> np.ndarray:
    """
    Forward lean of the trunk from image vertical in degrees.

    Measured on the vector from the hip midpoint to the shoulder midpoint;
    0 means upright, the sign is dropped.
    """
    l, r = SIDE_JOINTS["left"], SIDE_JOINTS["right"]
    shoulders = (seq.xy(l["shoulder"], visibility_threshold) + seq.xy(r["shoulder"], visibility_threshold)) / 2
    hips = (seq.xy(l["hip"], visibility_threshold) + seq.xy(r["hip"], visibility_threshold)) / 2
    v = shoulders - hips
    # image y grows downward, so an upright trunk points to -y
    return np.degrees(np.abs(np.arctan2(v[:, 0], -v[:, 1])))


def _nanmean(values: np.ndarray) -> float:
    finite = values[np.isfinite(values)]
    return float(finite.mean()) if finite.size else float("nan")


@dataclass
class AngleMeasurement:
    """Angle aggregates sampled over a run."""

    knee_left: list[float] = field(default_factory=list)
    knee_right: list[float] = field(default_factory=list)
    hip_left: list[float] = field(default_factory=list)
    hip_right: list[float] = field(default_factory=list)
    trunk: list[float] = field(default_factory=list)

    knee_average: float = float("nan")
    hip_average: float = float("nan")
    trunk_average: float = float("nan")

    @classmethod
    def from_averages(cls, knee: float, hip: float, trunk: float) -> AngleMeasurement:
        """Measurement known only through its averages."""
        return cls(knee_average=knee, hip_average=hip, trunk_average=trunk)

    def to_dict(self) -> dict[str, float]:
        """Convert averages to dictionary."""
        return {
            "knee": self.knee_average,
            "hip": self.hip_average,
            "trunk": self.trunk_average,
        }


def measure_angles(
    seq: LandmarkSequence,
    frames: Iterable[int] | None = None,
    visibility_threshold: float = 0.3,
) -> AngleMeasurement:
    """
    Sample knee, hip and trunk angles from a landmark sequence.

    Args:
        seq: Landmark buffer
        frames: Frame indices to sample (e.g. contact frames); all frames if None
        visibility_threshold: Landmarks below this visibility are ignored

    Returns:
        AngleMeasurement with per-side samples and NaN-aware averages
    """
    if frames is None:
        rows = np.arange(len(seq))
    else:
        lookup = {int(f): i for i, f in enumerate(seq.frame_indices)}
        rows = np.array([lookup[f] for f in frames if int(f) in lookup], dtype=int)

    if rows.size == 0:
        return AngleMeasurement()

    kl = knee_angles(seq, "left", visibility_threshold)[rows]
    kr = knee_angles(seq, "right", visibility_threshold)[rows]
    hl = hip_angles(seq, "left", visibility_threshold)[rows]
    hr = hip_angles(seq, "right", visibility_threshold)[rows]
    tr = trunk_lean(seq, visibility_threshold)[rows]

    return AngleMeasurement(
        knee_left=[float(v) for v in kl],
        knee_right=[float(v) for v in kr],
        hip_left=[float(v) for v in hl],
        hip_right=[float(v) for v in hr],
        trunk=[float(v) for v in tr],
        knee_average=_nanmean(np.concatenate([kl, kr])),
        hip_average=_nanmean(np.concatenate([hl, hr])),
        trunk_average=_nanmean(tr),
    )
