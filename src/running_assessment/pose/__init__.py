"""Pose landmark buffer, joint angles and distance calibration."""

from .angles import (
    AngleMeasurement,
    ankle_angles,
    hip_angles,
    joint_angle,
    knee_angles,
    measure_angles,
    trunk_lean,
)
from .calibration import (
    DistanceMapping,
    HomographyMapping,
    LinearDistanceMapping,
    contact_distances,
    grounded_foot_pixel,
)
from .landmarks import (
    GAIT_JOINTS,
    LOWER_BODY_JOINTS,
    N_LANDMARKS,
    POSE_LANDMARK_NAMES,
    SIDE_JOINTS,
    LandmarkFrame,
    LandmarkSequence,
    PoseQualityStats,
)

__all__ = [
    # Landmarks
    "GAIT_JOINTS",
    "LOWER_BODY_JOINTS",
    "N_LANDMARKS",
    "POSE_LANDMARK_NAMES",
    "SIDE_JOINTS",
    "LandmarkFrame",
    "LandmarkSequence",
    "PoseQualityStats",
    # Angles
    "AngleMeasurement",
    "ankle_angles",
    "hip_angles",
    "joint_angle",
    "knee_angles",
    "measure_angles",
    "trunk_lean",
    # Calibration
    "DistanceMapping",
    "HomographyMapping",
    "LinearDistanceMapping",
    "contact_distances",
    "grounded_foot_pixel",
]
