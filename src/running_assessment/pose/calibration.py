"""
Image-plane to track-distance mapping.

Calibration itself is an external artifact; this module only applies it.
"""

from __future__ import annotations

import logging
from typing import Iterable, Protocol, Sequence

import numpy as np

from running_assessment.core.exceptions import CalibrationError

from .landmarks import SIDE_JOINTS, LandmarkFrame, LandmarkSequence

logger = logging.getLogger(__name__)


class DistanceMapping(Protocol):
    """Maps pixel coordinates to distance along the track (m)."""

    def to_track_distance(self, x_px: float, y_px: float) -> float:
        ...


class HomographyMapping:
    """Apply a 3x3 image-to-world homography; world x is the track distance."""

    def __init__(self, matrix: Sequence[Sequence[float]] | np.ndarray) -> None:
        H = np.asarray(matrix, dtype=float)
        if H.shape != (3, 3):
            raise CalibrationError(f"Homography must be 3x3, got {H.shape}")
        if not np.isfinite(H).all():
            raise CalibrationError("Homography contains non-finite values")
        self.matrix = H

    def to_world(self, x_px: float, y_px: float) -> tuple[float, float]:
        """World coordinates of a pixel; NaN when the projection degenerates."""
        x, y, w = self.matrix @ np.array([x_px, y_px, 1.0])
        if abs(w) < 1e-12:
            logger.warning("Homography division by near-zero at (%.1f, %.1f)", x_px, y_px)
            return float("nan"), float("nan")
        return float(x / w), float(y / w)

    def to_track_distance(self, x_px: float, y_px: float) -> float:
        return self.to_world(x_px, y_px)[0]


class LinearDistanceMapping:
    """Piecewise-linear mapping from image x to distance using known markers."""

    def __init__(self, pixel_marks: Sequence[float], distance_marks: Sequence[float]) -> None:
        px = np.asarray(pixel_marks, dtype=float)
        dist = np.asarray(distance_marks, dtype=float)
        if px.shape != dist.shape or px.size < 2:
            raise CalibrationError("Need at least two matching pixel/distance marks")
        order = np.argsort(px)
        px, dist = px[order], dist[order]
        if (np.diff(px) <= 0).any():
            raise CalibrationError("Pixel marks must be distinct")
        self.pixel_marks = px
        self.distance_marks = dist

    def to_track_distance(self, x_px: float, y_px: float) -> float:
        # Linear extrapolation beyond the outermost marks
        px, dist = self.pixel_marks, self.distance_marks
        if x_px < px[0]:
            slope = (dist[1] - dist[0]) / (px[1] - px[0])
            return float(dist[0] + slope * (x_px - px[0]))
        if x_px > px[-1]:
            slope = (dist[-1] - dist[-2]) / (px[-1] - px[-2])
            return float(dist[-1] + slope * (x_px - px[-1]))
        return float(np.interp(x_px, px, dist))


def grounded_foot_pixel(frame: LandmarkFrame, width: int, height: int) -> tuple[float, float]:
    """
    Pixel position of the grounded foot.

    The foot whose ankle/toe sits lower in the image (larger y) is taken as
    the one in contact; x is the ankle-toe midpoint.
    """
    best: tuple[float, float] | None = None
    best_y = -np.inf
    for side in ("left", "right"):
        ankle = frame.point(SIDE_JOINTS[side]["ankle"])
        toe = frame.point(SIDE_JOINTS[side]["toe"])
        foot_y = float(np.nanmax([ankle[1], toe[1]])) if np.isfinite([ankle[1], toe[1]]).any() else np.nan
        if not np.isfinite(foot_y):
            continue
        if foot_y > best_y:
            best_y = foot_y
            foot_x = float(np.nanmean([ankle[0], toe[0]]))
            best = (foot_x * width, foot_y * height)
    if best is None:
        return float("nan"), float("nan")
    return best


def contact_distances(
    seq: LandmarkSequence,
    contact_frames: Iterable[int],
    mapping: DistanceMapping,
    width: int,
    height: int,
) -> list[float]:
    """Track distance of the grounded foot at each contact frame (NaN if unavailable)."""
    lookup = {int(f): i for i, f in enumerate(seq.frame_indices)}
    distances = []
    for frame_idx in contact_frames:
        row = lookup.get(int(frame_idx))
        if row is None:
            distances.append(float("nan"))
            continue
        x_px, y_px = grounded_foot_pixel(seq[row], width, height)
        if not (np.isfinite(x_px) and np.isfinite(y_px)):
            distances.append(float("nan"))
            continue
        distances.append(mapping.to_track_distance(x_px, y_px))
    return distances
