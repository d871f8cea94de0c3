"""Configuration management with dataclasses and YAML loading."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import yaml


@dataclass
class GaitDetectionConfig:
    """Gait event detection configuration."""

    min_frames: int = 10
    visibility_threshold: float = 0.3
    smoothing_window: int = 3
    min_step_frames: int = 5  # minimum distance between same-kind events
    min_vote: float = 0.2  # fused vote below this is discarded

    # Toe trajectory
    toe_ground_fraction: float = 0.25  # share of the toe amplitude counted as "on ground"
    toe_min_amplitude: float = 0.02

    # Joint angle velocity (degrees per frame)
    knee_extension_rate: float = 10.0
    ankle_dorsiflexion_rate: float = 5.0
    ankle_plantarflexion_rate: float = 8.0
    knee_toe_off_rate: float = 5.0

    # Body center (normalized image units per frame)
    velocity_change_threshold: float = 0.01
    height_step_threshold: float = 0.01

    # Early-step recovery
    early_search_frames: int = 30
    early_window: int = 5
    early_movement_threshold: float = 0.05
    early_confidence: float = 0.6

    # Fixed design constants; must sum to 1.0
    weights: dict[str, float] = field(
        default_factory=lambda: {
            "toe_trajectory": 0.35,
            "joint_angle": 0.30,
            "velocity": 0.20,
            "height": 0.15,
        }
    )

    def __post_init__(self) -> None:
        """Validate detector weights."""
        total = sum(self.weights.values())
        if abs(total - 1.0) > 1e-9:
            raise ValueError(f"Detector weights must sum to 1.0, got {total}")
        if self.smoothing_window < 1:
            raise ValueError("smoothing_window must be >= 1")


@dataclass
class HFVPConfig:
    """Horizontal force-velocity profile configuration."""

    regression: str = "huber"  # "ols" or "huber"
    first_segment_model: str = "from_rest"  # or "speed_over_time"
    remove_outliers: bool = True
    outlier_sigma: float = 3.5
    huber_k: float = 1.345
    max_iterations: int = 30

    accel_epsilon: float = 0.2  # m/s^2
    speed_tolerance: float = 0.10  # m/s
    slope_epsilon: float = 1e-6
    v0_vmax_margin: float = 0.05  # m/s
    mid_run_distance: float = 30.0  # m

    # Quality grading
    good_fv_r2: float = 0.90
    good_pos_r2: float = 0.92
    good_min_points: int = 4
    acceptable_fv_r2: float = 0.70
    acceptable_pos_r2: float = 0.85
    acceptable_min_points: int = 3

    def __post_init__(self) -> None:
        """Validate option names."""
        if self.regression not in ("ols", "huber"):
            raise ValueError(f"Unknown regression method: {self.regression}")
        if self.first_segment_model not in ("from_rest", "speed_over_time"):
            raise ValueError(f"Unknown first segment model: {self.first_segment_model}")


@dataclass
class ScoringConfig:
    """Certification scoring configuration."""

    review_band: float = 0.05  # near-threshold band around min/max
    acceptable_multiplier: float = 0.9

    good_pose_confidence: float = 0.7
    good_frame_drop_rate: float = 0.1
    good_fv_r2: float = 0.90
    acceptable_pose_confidence: float = 0.5
    acceptable_frame_drop_rate: float = 0.2
    acceptable_fv_r2: float = 0.80

    rules_path: Path | None = None  # None uses the bundled grade rules

    def __post_init__(self) -> None:
        """Convert string paths to Path objects."""
        if isinstance(self.rules_path, str):
            self.rules_path = Path(self.rules_path)


@dataclass
class Settings:
    """Main application settings."""

    gait: GaitDetectionConfig = field(default_factory=GaitDetectionConfig)
    hfvp: HFVPConfig = field(default_factory=HFVPConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> Settings:
        """Load settings from YAML file."""
        path = Path(path)
        if not path.exists():
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> Settings:
        """Create Settings from dictionary."""
        return cls(
            gait=GaitDetectionConfig(**data.get("gait", {})),
            hfvp=HFVPConfig(**data.get("hfvp", {})),
            scoring=ScoringConfig(**data.get("scoring", {})),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert settings to dictionary."""
        result = asdict(self)
        rules_path = result["scoring"].get("rules_path")
        if isinstance(rules_path, Path):
            result["scoring"]["rules_path"] = str(rules_path)
        return result


def load_settings(config_path: str | Path | None = None) -> Settings:
    """
    Build a settings object from the first config file found.

    A fresh instance is returned on every call; components receive the
    relevant sub-config explicitly.
    """
    if config_path is None:
        for candidate in [
            Path("config/settings.yaml"),
            Path.home() / ".config/running-assessment/settings.yaml",
        ]:
            if candidate.exists():
                config_path = candidate
                break

    return Settings.from_yaml(config_path) if config_path else Settings()
