"""
Normalization module for fiber-photometry signals.

Fits the isosbestic reference channel to the signal channel by linear
least squares and turns the residual into a detrended ΔF/F in percent:

    dF = 100 * detrend((signal - fitted_reference) / fitted_reference)
"""

import warnings
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import numpy as np

from .exceptions import DegenerateFitError, DivisionByZeroError, InsufficientDataError


DEGENERATE_RTOL = 1000 * np.finfo(float).eps


@dataclass(frozen=True)
class FitParameters:
    """Result of fitting ``signal ≈ slope * reference + intercept``."""

    slope: float
    intercept: float
    r_squared: float
    n_samples: int

    def apply(self, reference: np.ndarray) -> np.ndarray:
        return self.slope * np.asarray(reference, dtype=float) + self.intercept


class Normalizer:
    """Reference-channel fitting and ΔF/F for fiber-photometry data."""

    def __init__(self, fps: float):
        self.fps = fps

    def fit_reference_to_signal(
        self,
        signal: np.ndarray,
        reference: np.ndarray
    ) -> Tuple[np.ndarray, FitParameters]:
        """
        Fit reference channel to signal channel.

        Args:
            signal: Filtered signal channel (e.g., 490nm)
            reference: Filtered isosbestic reference channel (e.g., 400nm)

        Returns:
            Tuple of (fitted_reference, fit_parameters)
        """
        signal = np.asarray(signal, dtype=float)
        reference = np.asarray(reference, dtype=float)

        if signal.shape != reference.shape or signal.ndim != 1:
            raise ValueError("Signal and reference must be 1D arrays of the same length")
        if len(signal) < 2:
            raise InsufficientDataError(
                f"Need at least 2 samples for a linear fit, got {len(signal)}"
            )
        if not (np.all(np.isfinite(signal)) and np.all(np.isfinite(reference))):
            raise ValueError("Signal and reference must not contain NaN or infinite values")
        # Filtering a constant channel leaves ripple of a few ulps of its level
        reference_mean = np.mean(reference)
        if np.ptp(reference) <= DEGENERATE_RTOL * max(1.0, abs(reference_mean)):
            raise DegenerateFitError("Reference channel is constant; slope is undefined")

        # signal = a * reference + b, solved on the centered reference
        centered = reference - reference_mean
        A = np.vstack([centered, np.ones(len(centered))]).T
        coeffs, _, _, _ = np.linalg.lstsq(A, signal, rcond=None)
        slope = float(coeffs[0])
        intercept = float(coeffs[1] - coeffs[0] * reference_mean)

        fitted_reference = slope * reference + intercept

        ss_res = np.sum((signal - fitted_reference) ** 2)
        ss_tot = np.sum((signal - np.mean(signal)) ** 2)
        r_squared = 1 - (ss_res / ss_tot) if ss_tot > 0 else 0.0

        fit = FitParameters(
            slope=slope,
            intercept=intercept,
            r_squared=float(r_squared),
            n_samples=len(signal)
        )

        return fitted_reference, fit

    def fractional_deviation(
        self,
        signal: np.ndarray,
        fitted_reference: np.ndarray,
        on_zero_baseline: str = 'raise'
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Compute (signal - fitted) / fitted.

        Args:
            signal: Filtered signal channel
            fitted_reference: Reference channel after the linear fit
            on_zero_baseline: 'raise' or 'nan' for samples where the fit is zero

        Returns:
            Tuple of (delta, invalid_indices)
        """
        if on_zero_baseline not in ('raise', 'nan'):
            raise ValueError(f"Unknown zero-baseline policy: {on_zero_baseline}")

        signal = np.asarray(signal, dtype=float)
        fitted_reference = np.asarray(fitted_reference, dtype=float)

        invalid_indices = np.flatnonzero(fitted_reference == 0)
        if len(invalid_indices) > 0 and on_zero_baseline == 'raise':
            raise DivisionByZeroError(
                f"Fitted reference is zero at {len(invalid_indices)} samples "
                f"(first at index {invalid_indices[0]})"
            )

        with warnings.catch_warnings():
            warnings.simplefilter("ignore", RuntimeWarning)
            delta = (signal - fitted_reference) / fitted_reference

        if len(invalid_indices) > 0:
            warnings.warn(f"Found {len(invalid_indices)} invalid baseline values")
            delta[invalid_indices] = np.nan

        return delta, invalid_indices

    def detrend(
        self,
        data: np.ndarray,
        time_vec: Optional[np.ndarray] = None
    ) -> np.ndarray:
        """
        Subtract the best-fit line over time.

        NaN samples are left out of the fit and stay NaN.
        """
        data = np.asarray(data, dtype=float)
        if time_vec is None:
            time_vec = np.arange(len(data)) / self.fps

        valid_mask = ~np.isnan(data)
        if np.sum(valid_mask) < 2:
            return np.where(valid_mask, 0.0, np.nan)

        coeffs = np.polyfit(time_vec[valid_mask], data[valid_mask], deg=1)
        trend = np.polyval(coeffs, time_vec)

        return data - trend

    def calculate_dff(
        self,
        signal: np.ndarray,
        reference: np.ndarray,
        time_vec: Optional[np.ndarray] = None,
        on_zero_baseline: str = 'raise'
    ) -> Tuple[np.ndarray, Dict[str, Any]]:
        """
        Calculate detrended ΔF/F (in percent) using the fitted reference.

        Args:
            signal: Filtered signal channel
            reference: Filtered reference channel
            time_vec: Time vector used for detrending (defaults to samples / fps)
            on_zero_baseline: 'raise' or 'nan', see ``fractional_deviation``

        Returns:
            Tuple of (dff_percent, calculation_info)
        """
        fitted_reference, fit = self.fit_reference_to_signal(signal, reference)
        delta, invalid_indices = self.fractional_deviation(
            signal, fitted_reference, on_zero_baseline
        )
        dff = 100 * self.detrend(delta, time_vec)

        calc_info = {
            'method': 'reference_fit',
            'fit': fit,
            'fitted_reference': fitted_reference,
            'invalid_indices': invalid_indices
        }

        return dff, calc_info
