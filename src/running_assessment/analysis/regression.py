"""Weighted and Huber-robust straight-line regression."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
from sklearn.metrics import r2_score

from running_assessment.core.exceptions import DegenerateFitError, InputValidationError

logger = logging.getLogger(__name__)

EPS = 1e-12
MAD_TO_SIGMA = 1.4826  # MAD -> standard deviation under normality


@dataclass
class LinearFit:
    """Result of fitting y = intercept + slope * x."""

    intercept: float
    slope: float
    r2: float
    residuals: np.ndarray
    weights: np.ndarray
    n_iterations: int = 1

    def predict(self, x: np.ndarray) -> np.ndarray:
        return self.intercept + self.slope * np.asarray(x, dtype=float)


def mad_scale(residuals: np.ndarray) -> float:
    """Robust residual scale: 1.4826 * median(|r|)."""
    residuals = np.asarray(residuals, dtype=float)
    if residuals.size == 0:
        return 0.0
    return MAD_TO_SIGMA * float(np.median(np.abs(residuals)))


def weighted_r2(y: np.ndarray, y_pred: np.ndarray, weights: np.ndarray | None = None) -> float:
    """Weighted coefficient of determination; 1.0 for a constant target."""
    y = np.asarray(y, dtype=float)
    w = np.ones_like(y) if weights is None else np.asarray(weights, dtype=float)
    y_mean = np.sum(w * y) / np.sum(w)
    if np.sum(w * (y - y_mean) ** 2) < EPS:
        return 1.0
    return float(r2_score(y, y_pred, sample_weight=w))


def weighted_linear_fit(
    x: np.ndarray,
    y: np.ndarray,
    weights: np.ndarray | None = None,
) -> LinearFit:
    """
    Closed-form weighted least squares line.

    Raises:
        InputValidationError: Mismatched lengths or fewer than 2 points
        DegenerateFitError: Normal-equation denominator is near zero
    """
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    if x.shape != y.shape or x.size < 2:
        raise InputValidationError("Regression needs matching x/y with at least 2 points")
    w = np.ones_like(x) if weights is None else np.asarray(weights, dtype=float)

    sw = w.sum()
    sx = (w * x).sum()
    sy = (w * y).sum()
    sxx = (w * x * x).sum()
    sxy = (w * x * y).sum()

    denom = sw * sxx - sx * sx
    if abs(denom) < EPS:
        raise DegenerateFitError("Regression denominator is near zero; line is undetermined")

    slope = (sw * sxy - sx * sy) / denom
    intercept = (sy - slope * sx) / sw
    y_pred = intercept + slope * x

    return LinearFit(
        intercept=float(intercept),
        slope=float(slope),
        r2=weighted_r2(y, y_pred, w),
        residuals=y - y_pred,
        weights=w,
    )


def huber_fit(
    x: np.ndarray,
    y: np.ndarray,
    k: float = 1.345,
    max_iterations: int = 30,
    tol: float = 1e-10,
) -> LinearFit:
    """
    Huber M-estimator via iteratively re-weighted least squares.

    Each pass re-weights points by ``min(1, k * scale / |r|)`` where scale is
    the MAD of the current residuals. Stops when the slope changes by less
    than ``tol`` or after ``max_iterations`` passes.
    """
    weights = np.ones(len(x))
    prev_slope = np.nan

    for iteration in range(1, max_iterations + 1):
        fit = weighted_linear_fit(x, y, weights)
        fit.n_iterations = iteration
        scale = mad_scale(fit.residuals)
        if scale < 1e-9:
            return fit

        c = k * scale
        abs_r = np.abs(fit.residuals)
        weights = np.where(abs_r <= c, 1.0, c / np.maximum(abs_r, EPS))

        if np.isfinite(prev_slope) and abs(fit.slope - prev_slope) < tol:
            logger.debug("Huber converged after %d iterations", iteration)
            return fit
        prev_slope = fit.slope

    fit = weighted_linear_fit(x, y, weights)
    fit.n_iterations = max_iterations
    return fit


def fit_line(x: np.ndarray, y: np.ndarray, method: str = "huber", **kwargs) -> LinearFit:
    """Fit a line with ``"ols"`` or ``"huber"``."""
    if method == "huber":
        return huber_fit(x, y, **kwargs)
    if method == "ols":
        return weighted_linear_fit(x, y)
    raise ValueError(f"Unknown regression method: {method}")
