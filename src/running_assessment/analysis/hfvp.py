"""
Horizontal Force-Velocity Profile (H-FVP)
=========================================

Estimate sprint mechanical capabilities from split times over known distances.

Per section the average speed and an approximate acceleration give the
propulsive force ``F = m * a``. A straight line ``F = F0 + slope * v`` fitted
over the acceleration phase yields:
- F0: theoretical maximal horizontal force
- V0: theoretical maximal velocity (``-F0 / slope``)
- Pmax: maximal power (``F0 * V0 / 4``)
- DRF: decrease in ratio of force with speed
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from running_assessment.certification.types import HFVPMeasurement, QualityGrade
from running_assessment.core.config import HFVPConfig
from running_assessment.core.exceptions import DegenerateFitError, InputValidationError

from .regression import EPS, LinearFit, fit_line, mad_scale

logger = logging.getLogger(__name__)


def _round(value: float, digits: int = 3) -> float:
    """Round finite values; anything else becomes NaN."""
    if value is None or not np.isfinite(value):
        return float("nan")
    return round(float(value), digits)


def _section_label(start: float, end: float) -> str:
    return f"{int(np.floor(start + 0.5))}-{int(np.floor(end + 0.5))}m"


def markers_from_splits(split_distances: Sequence[float]) -> list[float]:
    """
    Cumulative marker distances from section lengths.

    ``[5, 5, 10]`` -> ``[0, 5, 10, 20]``
    """
    markers = [0.0]
    for value in split_distances:
        if not np.isfinite(value) or value <= 0:
            raise InputValidationError(f"Split distances must be positive, got {value}")
        markers.append(markers[-1] + float(value))
    return markers


@dataclass(frozen=True)
class HFVPInput:
    """Marker distances (m), cumulative times (s) and athlete mass (kg)."""

    marker_distances: tuple[float, ...]
    cumulative_times: tuple[float, ...]
    mass_kg: float

    def __post_init__(self) -> None:
        d = tuple(float(v) for v in self.marker_distances)
        t = tuple(float(v) for v in self.cumulative_times)
        object.__setattr__(self, "marker_distances", d)
        object.__setattr__(self, "cumulative_times", t)

        if not np.isfinite(self.mass_kg) or self.mass_kg <= 0:
            raise InputValidationError(f"mass_kg must be positive, got {self.mass_kg}")
        if len(d) != len(t) or len(d) < 3:
            raise InputValidationError(
                "marker_distances and cumulative_times must have the same length (>= 3 points)"
            )
        if not (np.isfinite(d).all() and np.isfinite(t).all()):
            raise InputValidationError("Distances and times must be finite")
        for i in range(1, len(d)):
            if not d[i] > d[i - 1]:
                raise InputValidationError(f"Distances are not strictly increasing at index {i}")
            if not t[i] > t[i - 1]:
                raise InputValidationError(f"Cumulative times are not strictly increasing at index {i}")

    @property
    def n_points(self) -> int:
        return len(self.marker_distances)


@dataclass(frozen=True)
class SegmentMetrics:
    """Kinematics and kinetics of one section between two markers."""

    section: str
    start_distance: float
    end_distance: float
    distance: float
    split_time: float
    cumulative_time: float
    speed: float
    acceleration: float
    force: float  # N
    power: float  # W
    rf_percent: float
    is_outlier: bool

    def to_dict(self) -> dict:
        return {
            "section": self.section,
            "start_distance": self.start_distance,
            "end_distance": self.end_distance,
            "distance": self.distance,
            "split_time": self.split_time,
            "cumulative_time": self.cumulative_time,
            "speed": self.speed,
            "acceleration": self.acceleration,
            "force": self.force,
            "power": self.power,
            "rf_percent": self.rf_percent,
            "is_outlier": self.is_outlier,
        }


@dataclass
class HFVPResult:
    """
    Force-velocity-power profile.

    When ``is_physically_valid`` is False, V0, Pmax and tau are not
    meaningful; they are still reported (often NaN) and the reasons are
    listed in ``warnings``.
    """

    f0: float  # N
    f0_rel: float  # N/kg
    v0: float  # m/s
    pmax: float  # W
    pmax_rel: float  # W/kg
    vmax_measured: float  # m/s
    tau: float  # s
    drf: float  # % per (m/s)
    fv_r2: float
    pos_r2: float
    used_points: int
    total_points: int
    is_physically_valid: bool
    quality_grade: QualityGrade
    rf_max: float = 100.0
    used_sections: list[str] = field(default_factory=list)
    excluded_sections: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    segments: list[SegmentMetrics] = field(default_factory=list)

    def to_measurement(self) -> HFVPMeasurement:
        """Mass-normalized aggregate for certification scoring."""
        return HFVPMeasurement(
            f0=self.f0_rel,
            v0=self.v0,
            pmax=self.pmax_rel,
            drf=self.drf,
            fv_r2=self.fv_r2,
            pos_r2=self.pos_r2,
            rf_max=self.rf_max,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary (excludes segment details)."""
        return {
            "f0": self.f0,
            "f0_rel": self.f0_rel,
            "v0": self.v0,
            "pmax": self.pmax,
            "pmax_rel": self.pmax_rel,
            "vmax_measured": self.vmax_measured,
            "tau": self.tau,
            "drf": self.drf,
            "rf_max": self.rf_max,
            "fv_r2": self.fv_r2,
            "pos_r2": self.pos_r2,
            "used_points": self.used_points,
            "total_points": self.total_points,
            "used_sections": list(self.used_sections),
            "excluded_sections": list(self.excluded_sections),
            "is_physically_valid": self.is_physically_valid,
            "quality_grade": self.quality_grade.value,
            "warnings": list(self.warnings),
        }


@dataclass
class _FVFit:
    """Force-velocity fit over a subset of sections."""

    fit: LinearFit | None
    keep_idx: list[int]
    removed_idx: list[int]


class HFVPEstimator:
    """
    Robust H-FVP estimation from split times.

    Workflow:
    1. Per-section speed and acceleration (from-rest model for the first one)
    2. Acceleration-phase filter for the F-v regression
    3. OLS or Huber fit, optional single outlier-removal pass
    4. Physical validity gate, position-fit R² and quality grade
    """

    def __init__(self, config: HFVPConfig | None = None):
        """
        Initialize estimator.

        Args:
            config: Regression options and quality thresholds
        """
        self.config = config or HFVPConfig()

    def compute(self, inp: HFVPInput, options: HFVPConfig | None = None) -> HFVPResult:
        """
        Compute the force-velocity profile.

        Args:
            inp: Validated distance/time/mass input
            options: Per-call override of the estimator configuration

        Returns:
            HFVPResult with quality grade and warnings
        """
        cfg = options or self.config
        mass = inp.mass_kg

        d = np.asarray(inp.marker_distances) - inp.marker_distances[0]
        t = np.asarray(inp.cumulative_times) - inp.cumulative_times[0]

        split_d = np.diff(d)
        split_t = np.diff(t)
        speeds = split_d / split_t
        accels = np.empty_like(speeds)
        if cfg.first_segment_model == "from_rest":
            accels[0] = 2 * split_d[0] / split_t[0] ** 2
        else:
            accels[0] = speeds[0] / split_t[0]
        for i in range(1, len(speeds)):
            accels[i] = 2 * (speeds[i] - speeds[i - 1]) / (split_t[i] + split_t[i - 1])

        forces = mass * accels
        powers = forces * speeds
        n_seg = len(speeds)
        vmax_idx = int(np.argmax(speeds))
        vmax = float(speeds[vmax_idx])

        # Acceleration phase: positive acceleration, no clear speed drop, up to peak speed
        accel_idx = []
        for i in range(n_seg):
            a_ok = accels[i] > cfg.accel_epsilon
            v_ok = speeds[i] > 0 if i == 0 else speeds[i] >= speeds[i - 1] - cfg.speed_tolerance
            if a_ok and v_ok and i <= vmax_idx:
                accel_idx.append(i)

        use_filtered = len(accel_idx) >= 3
        candidate_idx = accel_idx if use_filtered else list(range(n_seg))
        excluded_by_phase = [i for i in range(n_seg) if i not in accel_idx] if use_filtered else []

        fv = self._fit_force_velocity(speeds[candidate_idx], forces[candidate_idx], cfg)
        keep_idx = [candidate_idx[k] for k in fv.keep_idx]
        removed_idx = [candidate_idx[k] for k in fv.removed_idx]
        dropped_idx = excluded_by_phase + removed_idx

        warnings: list[str] = []
        if fv.fit is None:
            slope = f0 = fv_r2 = float("nan")
            warnings.append("F-v regression is degenerate (all section speeds are equal)")
        else:
            slope, f0, fv_r2 = fv.fit.slope, fv.fit.intercept, fv.fit.r2

        v0 = -f0 / slope if slope < 0 and abs(slope) > cfg.slope_epsilon else float("nan")
        pmax = f0 * v0 / 4 if np.isfinite(v0) else float("nan")
        f0_rel = f0 / mass
        tau = v0 / f0_rel if np.isfinite(v0) and f0_rel > 0 else float("nan")

        is_valid = bool(
            slope < 0
            and abs(slope) > cfg.slope_epsilon
            and np.isfinite(f0) and f0 > 0
            and np.isfinite(v0) and v0 > 0
            and np.isfinite(pmax) and pmax > 0
        )

        pos_r2 = float("nan")
        if is_valid and np.isfinite(tau) and tau > 0:
            pos_r2 = self._position_r2(d[1:], t[1:], v0, tau)

        rf_percent = forces / f0 * 100 if np.isfinite(f0) and abs(f0) > EPS else np.full(n_seg, np.nan)
        drf = float("nan")
        if len(keep_idx) >= 2 and np.isfinite(rf_percent).all():
            try:
                drf = fit_line(
                    speeds[keep_idx], rf_percent[keep_idx], cfg.regression, **self._fit_kwargs(cfg)
                ).slope
            except DegenerateFitError:
                logger.debug("DRF fit is degenerate")

        dropped = set(dropped_idx)
        segments = [
            SegmentMetrics(
                section=_section_label(d[i], d[i + 1]),
                start_distance=_round(d[i]),
                end_distance=_round(d[i + 1]),
                distance=_round(split_d[i]),
                split_time=_round(split_t[i]),
                cumulative_time=_round(t[i + 1]),
                speed=_round(speeds[i]),
                acceleration=_round(accels[i]),
                force=_round(forces[i], 1),
                power=_round(powers[i], 1),
                rf_percent=_round(rf_percent[i], 1),
                is_outlier=i in dropped,
            )
            for i in range(n_seg)
        ]

        # Warnings
        if not use_filtered:
            warnings.append(
                "Fewer than 3 acceleration-phase sections; all sections were used "
                "(low confidence, reference only)"
            )
        elif len(keep_idx) < 4:
            warnings.append(f"Only {len(keep_idx)} points used in the regression; precision is limited")

        if not is_valid:
            if not slope < 0:
                warnings.append("F-v slope is zero, positive or undefined; V0 cannot be estimated")
            elif abs(slope) <= cfg.slope_epsilon:
                warnings.append(f"F-v slope is near zero (|slope|={abs(slope):.2e}); V0 may diverge")
            if not (np.isfinite(f0) and f0 > 0):
                warnings.append("F0 is negative, zero or not a number")
            if not (np.isfinite(v0) and v0 > 0):
                warnings.append("V0 is not physically valid")
            if not (np.isfinite(pmax) and pmax > 0):
                warnings.append("Pmax is not valid (follows from F0 or V0)")

        if np.isfinite(fv_r2) and fv_r2 < 0.8:
            warnings.append(f"Low F-v regression R² ({_round(fv_r2)})")
        if np.isfinite(pos_r2) and pos_r2 < cfg.acceptable_pos_r2:
            warnings.append(f"Low position-fit R² ({_round(pos_r2)}); measurement noise is likely")
        if removed_idx:
            warnings.append(f"Removed {len(removed_idx)} outlier points and refitted")
        if excluded_by_phase:
            warnings.append(
                f"Excluded {len(excluded_by_phase)} decelerating or low-acceleration sections "
                f"from the F-v regression (a <= {cfg.accel_epsilon} m/s² or clear speed drop)"
            )
        if any(s.end_distance >= cfg.mid_run_distance and s.force < 0 for s in segments):
            warnings.append(
                f"Negative force after {cfg.mid_run_distance:g} m (deceleration may be included)"
            )
        if is_valid and v0 < vmax - cfg.v0_vmax_margin:
            warnings.append(
                f"V0 ({_round(v0, 2)} m/s) is below measured Vmax ({_round(vmax, 2)} m/s); "
                "deceleration or noise may be included"
            )
        if np.isfinite(drf) and drf >= 0:
            warnings.append("DRF is non-negative (normally negative); check data quality")

        grade = self._grade(is_valid, fv_r2, pos_r2, len(keep_idx), use_filtered, warnings, cfg)

        result = HFVPResult(
            f0=_round(f0, 1),
            f0_rel=_round(f0_rel),
            v0=_round(v0),
            pmax=_round(pmax, 1),
            pmax_rel=_round(pmax / mass),
            vmax_measured=_round(vmax),
            tau=_round(tau),
            drf=_round(drf),
            fv_r2=_round(fv_r2),
            pos_r2=_round(pos_r2),
            used_points=len(keep_idx),
            total_points=n_seg,
            is_physically_valid=is_valid,
            quality_grade=grade,
            used_sections=[_section_label(d[i], d[i + 1]) for i in keep_idx],
            excluded_sections=[_section_label(d[i], d[i + 1]) for i in dropped_idx],
            warnings=warnings,
            segments=segments,
        )

        log = logger.warning if grade is QualityGrade.REFERENCE_ONLY else logger.info
        log(
            "H-FVP: F0=%.1f N, V0=%.3f m/s, Pmax=%.1f W, R²=%.3f, grade=%s",
            result.f0, result.v0, result.pmax, result.fv_r2, grade.value,
        )
        return result

    @staticmethod
    def _fit_kwargs(cfg: HFVPConfig) -> dict:
        if cfg.regression == "huber":
            return {"k": cfg.huber_k, "max_iterations": cfg.max_iterations}
        return {}

    def _fit_force_velocity(self, x: np.ndarray, y: np.ndarray, cfg: HFVPConfig) -> _FVFit:
        """Fit with one optional MAD-threshold outlier-removal pass."""
        all_idx = list(range(len(x)))
        try:
            base = fit_line(x, y, cfg.regression, **self._fit_kwargs(cfg))
        except DegenerateFitError:
            return _FVFit(None, all_idx, [])

        if not cfg.remove_outliers or len(x) < 4:
            return _FVFit(base, all_idx, [])

        scale = mad_scale(base.residuals)
        if scale < 1e-9:
            return _FVFit(base, all_idx, [])

        threshold = cfg.outlier_sigma * scale
        keep = [i for i in all_idx if abs(base.residuals[i]) <= threshold]
        removed = [i for i in all_idx if abs(base.residuals[i]) > threshold]
        if len(keep) < 3 or not removed:
            return _FVFit(base, all_idx, [])

        try:
            refit = fit_line(x[keep], y[keep], cfg.regression, **self._fit_kwargs(cfg))
        except DegenerateFitError:
            return _FVFit(base, all_idx, [])
        logger.debug("Removed %d F-v outliers", len(removed))
        return _FVFit(refit, keep, removed)

    @staticmethod
    def _position_r2(x_actual: np.ndarray, t_cum: np.ndarray, v0: float, tau: float) -> float:
        """R² of x(t) = V0 * (t - tau * (1 - exp(-t / tau))) against measured distances."""
        x_pred = v0 * (t_cum - tau * (1 - np.exp(-t_cum / tau)))
        ss_res = float(np.sum((x_actual - x_pred) ** 2))
        ss_tot = float(np.sum((x_actual - x_actual.mean()) ** 2))
        if ss_tot < EPS:
            return 1.0
        return max(0.0, 1 - ss_res / ss_tot)

    @staticmethod
    def _grade(
        is_valid: bool,
        fv_r2: float,
        pos_r2: float,
        used_points: int,
        use_filtered: bool,
        warnings: list[str],
        cfg: HFVPConfig,
    ) -> QualityGrade:
        """
        Quality grade of the profile.

        good: valid, fv_r2 and pos_r2 above the good thresholds, enough
        points and no warnings. acceptable: valid, looser thresholds and no
        fallback to all sections. Anything else is reference only.
        """
        pos_ok_good = np.isfinite(pos_r2) and pos_r2 >= cfg.good_pos_r2
        pos_ok_acceptable = not np.isfinite(pos_r2) or pos_r2 >= cfg.acceptable_pos_r2

        if (
            not is_valid
            or not use_filtered
            or not np.isfinite(fv_r2)
            or fv_r2 < cfg.acceptable_fv_r2
            or not pos_ok_acceptable
            or used_points < cfg.acceptable_min_points
        ):
            return QualityGrade.REFERENCE_ONLY

        if (
            fv_r2 >= cfg.good_fv_r2
            and pos_ok_good
            and used_points >= cfg.good_min_points
            and not warnings
        ):
            return QualityGrade.GOOD

        return QualityGrade.ACCEPTABLE


def compute_hfvp(inp: HFVPInput, options: HFVPConfig | None = None) -> HFVPResult:
    """
    Convenience function for H-FVP estimation.

    Args:
        inp: Distance/time/mass input
        options: Optional estimator configuration

    Returns:
        HFVPResult
    """
    estimator = HFVPEstimator(options)
    return estimator.compute(inp)
