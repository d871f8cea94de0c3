"""
Landmark Buffer
===============

Typed, memory-compact representation of one video's per-frame pose landmarks.

The pose provider delivers 33 landmarks per frame, each ``(x, y, z, visibility)``
in normalized image coordinates. Frames are stored in a single float32 array of
shape ``(T, 33, 4)``; a frame with no detected pose carries NaN coordinates and
zero visibility.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

import numpy as np

from running_assessment.core.exceptions import InputValidationError

N_LANDMARKS = 33
N_CHANNELS = 4  # x, y, z, visibility

POSE_LANDMARK_NAMES = [
    "nose", "left_eye_inner", "left_eye", "left_eye_outer",
    "right_eye_inner", "right_eye", "right_eye_outer",
    "left_ear", "right_ear", "mouth_left", "mouth_right",
    "left_shoulder", "right_shoulder", "left_elbow", "right_elbow",
    "left_wrist", "right_wrist", "left_pinky", "right_pinky",
    "left_index", "right_index", "left_thumb", "right_thumb",
    "left_hip", "right_hip", "left_knee", "right_knee",
    "left_ankle", "right_ankle", "left_heel", "right_heel",
    "left_foot_index", "right_foot_index",
]

# Key joint indices for running analysis
GAIT_JOINTS = {
    "left_shoulder": 11, "right_shoulder": 12,
    "left_elbow": 13, "right_elbow": 14,
    "left_hip": 23, "right_hip": 24,
    "left_knee": 25, "right_knee": 26,
    "left_ankle": 27, "right_ankle": 28,
    "left_heel": 29, "right_heel": 30,
    "left_toe": 31, "right_toe": 32,
}

LOWER_BODY_JOINTS = list(range(23, 33))

SIDE_JOINTS = {
    "left": {"shoulder": 11, "hip": 23, "knee": 25, "ankle": 27, "toe": 31},
    "right": {"shoulder": 12, "hip": 24, "knee": 26, "ankle": 28, "toe": 32},
}


def _validate_landmark_block(data: np.ndarray) -> None:
    """Check joint count and visibility range of a (..., 33, 4) block."""
    if data.ndim < 2 or data.shape[-2:] != (N_LANDMARKS, N_CHANNELS):
        raise InputValidationError(
            f"Expected landmarks of shape (..., {N_LANDMARKS}, {N_CHANNELS}), got {data.shape}"
        )
    vis = data[..., 3]
    if np.isnan(vis).any():
        raise InputValidationError("Visibility must not be NaN")
    if (vis < 0).any() or (vis > 1).any():
        raise InputValidationError("Visibility must lie in [0, 1]")


@dataclass(frozen=True)
class LandmarkFrame:
    """Single frame of pose landmarks."""

    frame_index: int
    landmarks: np.ndarray  # (33, 4) - x, y, z, visibility

    def __post_init__(self) -> None:
        data = np.array(self.landmarks, dtype=np.float32)
        _validate_landmark_block(data)
        if data.ndim != 2:
            raise InputValidationError("A frame holds exactly one pose")
        data.flags.writeable = False
        object.__setattr__(self, "landmarks", data)

    @classmethod
    def missing(cls, frame_index: int) -> LandmarkFrame:
        """Frame in which the pose provider found no person."""
        data = np.full((N_LANDMARKS, N_CHANNELS), np.nan, dtype=np.float32)
        data[:, 3] = 0.0
        return cls(frame_index=frame_index, landmarks=data)

    @classmethod
    def from_provider(
        cls,
        frame_index: int,
        landmarks: Sequence[Mapping[str, float]] | None,
    ) -> LandmarkFrame:
        """Build a frame from the provider's list of ``{x, y, z, visibility}`` dicts."""
        if landmarks is None:
            return cls.missing(frame_index)
        if len(landmarks) != N_LANDMARKS:
            raise InputValidationError(
                f"Expected {N_LANDMARKS} landmarks, got {len(landmarks)}"
            )
        data = np.array(
            [
                [lm.get("x", np.nan), lm.get("y", np.nan), lm.get("z", 0.0), lm.get("visibility", 0.0)]
                for lm in landmarks
            ],
            dtype=np.float32,
        )
        return cls(frame_index=frame_index, landmarks=data)

    @property
    def is_detected(self) -> bool:
        return bool((self.landmarks[:, 3] > 0).any())

    def point(self, joint_idx: int) -> np.ndarray:
        """(x, y) of a joint."""
        return self.landmarks[joint_idx, :2]

    def visibility(self, joint_idx: int) -> float:
        return float(self.landmarks[joint_idx, 3])


@dataclass(frozen=True)
class PoseQualityStats:
    """Pose-derived data quality indicators for one sequence."""

    pose_confidence_avg: float
    pose_confidence_min: float
    frame_drop_rate: float
    n_frames: int
    n_expected_frames: int

    def to_dict(self) -> dict[str, float]:
        """Convert to dictionary."""
        return {
            "pose_confidence_avg": self.pose_confidence_avg,
            "pose_confidence_min": self.pose_confidence_min,
            "frame_drop_rate": self.frame_drop_rate,
            "n_frames": float(self.n_frames),
            "n_expected_frames": float(self.n_expected_frames),
        }


class LandmarkSequence:
    """
    Ordered, frame-indexed landmark buffer for one analyzed video.

    The underlying array is read-only; derived data is always computed into
    new arrays.
    """

    __slots__ = ("_data", "_frame_indices", "_fps")

    def __init__(
        self,
        data: np.ndarray,
        fps: float,
        frame_indices: Iterable[int] | None = None,
    ) -> None:
        arr = np.array(data, dtype=np.float32)
        if arr.size == 0:
            arr = arr.reshape(0, N_LANDMARKS, N_CHANNELS)
        _validate_landmark_block(arr)
        if arr.ndim != 3:
            raise InputValidationError("Sequence data must be (T, 33, 4)")
        if not np.isfinite(fps) or fps <= 0:
            raise InputValidationError(f"fps must be positive, got {fps}")

        if frame_indices is None:
            idx = np.arange(arr.shape[0], dtype=np.int64)
        else:
            idx = np.asarray(list(frame_indices), dtype=np.int64)
        if idx.shape != (arr.shape[0],):
            raise InputValidationError("frame_indices must match the number of frames")
        if len(idx) > 1 and (np.diff(idx) <= 0).any():
            raise InputValidationError("frame_indices must be strictly increasing")

        arr.flags.writeable = False
        idx.flags.writeable = False
        self._data = arr
        self._frame_indices = idx
        self._fps = float(fps)

    @classmethod
    def from_frames(cls, frames: Sequence[LandmarkFrame], fps: float) -> LandmarkSequence:
        """Stack LandmarkFrame objects into a buffer."""
        if not frames:
            return cls(np.empty((0, N_LANDMARKS, N_CHANNELS), dtype=np.float32), fps, [])
        data = np.stack([f.landmarks for f in frames])
        return cls(data, fps, [f.frame_index for f in frames])

    @classmethod
    def from_array(
        cls,
        array: np.ndarray,
        fps: float,
        frame_indices: Iterable[int] | None = None,
    ) -> LandmarkSequence:
        """Wrap a (T, 33, 4) array."""
        return cls(array, fps, frame_indices)

    @classmethod
    def from_provider(
        cls,
        frames: Sequence[Sequence[Mapping[str, Any]] | None],
        fps: float,
        start_frame: int = 0,
    ) -> LandmarkSequence:
        """Build a buffer from per-frame provider output (None = no pose)."""
        return cls.from_frames(
            [LandmarkFrame.from_provider(start_frame + i, lms) for i, lms in enumerate(frames)],
            fps,
        )

    def __len__(self) -> int:
        return self._data.shape[0]

    def __getitem__(self, i: int) -> LandmarkFrame:
        return LandmarkFrame(frame_index=int(self._frame_indices[i]), landmarks=self._data[i])

    def __iter__(self):
        for i in range(len(self)):
            yield self[i]

    @property
    def fps(self) -> float:
        return self._fps

    @property
    def frame_indices(self) -> np.ndarray:
        return self._frame_indices

    @property
    def n_frames(self) -> int:
        return len(self)

    @property
    def duration(self) -> float:
        return len(self) / self._fps

    @property
    def detection_rate(self) -> float:
        """Fraction of frames with a detected pose."""
        if len(self) == 0:
            return 0.0
        detected = (self._data[:, :, 3] > 0).any(axis=1)
        return float(detected.mean())

    def to_array(self) -> np.ndarray:
        """Read-only (T, 33, 4) view."""
        return self._data

    def joint(self, joint_idx: int) -> np.ndarray:
        """Trajectory of a joint (T, 4)."""
        return self._data[:, joint_idx, :]

    def xy(self, joint_idx: int, visibility_threshold: float | None = None) -> np.ndarray:
        """
        (T, 2) image-plane trajectory of a joint.

        Samples below ``visibility_threshold`` are replaced with NaN.
        """
        pts = np.array(self._data[:, joint_idx, :2], dtype=float)
        if visibility_threshold is not None:
            pts[self._data[:, joint_idx, 3] < visibility_threshold] = np.nan
        return pts

    def visibility(self, joint_idx: int) -> np.ndarray:
        return self._data[:, joint_idx, 3]

    def quality_metrics(self, visibility_threshold: float = 0.5) -> PoseQualityStats:
        """
        Compute pose confidence and frame-drop rate over the lower body.

        A frame counts as dropped if it is missing from the frame index
        sequence or its mean lower-body visibility is below the threshold.
        """
        n = len(self)
        if n == 0:
            return PoseQualityStats(0.0, 0.0, 1.0, 0, 0)

        lower_vis = self._data[:, LOWER_BODY_JOINTS, 3].astype(float).mean(axis=1)
        detected = (self._data[:, :, 3] > 0).any(axis=1)

        if detected.any():
            conf_avg = float(lower_vis[detected].mean())
            conf_min = float(lower_vis[detected].min())
        else:
            conf_avg = conf_min = 0.0

        expected = int(self._frame_indices[-1] - self._frame_indices[0]) + 1
        gaps = expected - n
        low = int((lower_vis < visibility_threshold).sum())
        drop_rate = (gaps + low) / expected

        return PoseQualityStats(
            pose_confidence_avg=conf_avg,
            pose_confidence_min=conf_min,
            frame_drop_rate=float(drop_rate),
            n_frames=n,
            n_expected_frames=expected,
        )
