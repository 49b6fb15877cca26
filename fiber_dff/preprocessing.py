"""
Preprocessing module for fiber-photometry signals.

Handles time-window slicing and zero-phase Butterworth low-pass
filtering. Both channels must go through the same zero-phase filter:
dF/F is sensitive to any time-lag mismatch between them.
"""

from typing import Optional, Tuple

import numpy as np
from scipy.signal import butter, filtfilt

from .exceptions import InsufficientDataError, InvalidWindowError


def filter_padlen(order: int) -> int:
    """Edge padding ``filtfilt`` uses for a Butterworth filter of this order."""
    # butter() returns order + 1 coefficients in both b and a
    return 3 * (order + 1)


def lowpass(
    x: np.ndarray,
    cutoff_hz: float,
    sampling_rate_hz: float,
    order: int = 4
) -> np.ndarray:
    """
    Butterworth low-pass filter applied forward and backward (zero phase).

    Args:
        x: Unfiltered 1D signal
        cutoff_hz: Cutoff frequency in Hz
        sampling_rate_hz: Sampling rate in Hz
        order: Butterworth filter order

    Returns:
        Filtered signal, same length as ``x``
    """
    nyquist = sampling_rate_hz / 2
    if not 0 < cutoff_hz < nyquist:
        raise ValueError(f"Invalid cutoff frequency {cutoff_hz} Hz for Nyquist {nyquist} Hz")
    if int(order) != order or order < 1:
        raise ValueError(f"Filter order must be a positive integer, got {order}")

    x = np.asarray(x, dtype=float)
    if x.ndim != 1:
        raise ValueError(f"Expected a 1D signal, got shape {x.shape}")

    padlen = filter_padlen(int(order))
    if len(x) <= padlen:
        raise InsufficientDataError(
            f"Signal has {len(x)} samples; order-{order} filter needs more than {padlen}"
        )

    b, a = butter(int(order), cutoff_hz / nyquist, btype='low')
    return filtfilt(b, a, x)


class Preprocessor:
    """Windowing and filtering for one dual-channel session."""

    def __init__(self, fps: float):
        self.fps = fps
        self.nyquist = fps / 2

    def window_indices(
        self,
        n_samples: int,
        t1: float,
        t2: Optional[float] = None,
        end_margin_s: float = 0.5
    ) -> Tuple[int, int]:
        """
        Convert a time window to a [start, stop) sample slice.

        Args:
            n_samples: Number of samples in the recording
            t1: Window start in seconds
            t2: Window end in seconds; None drops the trailing ``end_margin_s``
            end_margin_s: Seconds trimmed from the end when t2 is None

        Returns:
            Tuple of (start_idx, stop_idx)
        """
        duration = n_samples / self.fps

        if t2 is None:
            stop_idx = n_samples - int(round(end_margin_s * self.fps))
            t2_check = stop_idx / self.fps
        else:
            stop_idx = int(round(t2 * self.fps))
            t2_check = t2

        if not (0 <= t1 < t2_check <= duration):
            raise InvalidWindowError(
                f"Window [{t1}, {t2_check}] s is outside recording of {duration:.3f} s"
            )

        start_idx = int(round(t1 * self.fps))
        stop_idx = min(stop_idx, n_samples)
        if stop_idx <= start_idx:
            raise InvalidWindowError(
                f"Window [{t1}, {t2_check}] s contains no samples at {self.fps} Hz"
            )

        return start_idx, stop_idx

    def slice_window(
        self,
        channel_data: np.ndarray,
        t1: float,
        t2: Optional[float] = None,
        end_margin_s: float = 0.5
    ) -> np.ndarray:
        """Slice a (channels, samples) matrix to the requested time window."""
        start_idx, stop_idx = self.window_indices(
            channel_data.shape[-1], t1, t2, end_margin_s
        )
        return channel_data[..., start_idx:stop_idx]

    def time_vector(self, n_samples: int) -> np.ndarray:
        """Time in seconds for each sample, starting at 0."""
        return np.arange(n_samples) / self.fps

    def lowpass_filter(
        self,
        signal_data: np.ndarray,
        cutoff_hz: float,
        order: int = 4
    ) -> np.ndarray:
        """
        Apply the zero-phase low-pass filter.

        Args:
            signal_data: 1D signal or 2D (channels, samples) array
            cutoff_hz: Cutoff frequency in Hz
            order: Filter order

        Returns:
            Filtered array, same shape as the input
        """
        signal_data = np.asarray(signal_data, dtype=float)

        if signal_data.ndim == 1:
            return lowpass(signal_data, cutoff_hz, self.fps, order)

        filtered = np.zeros_like(signal_data)
        for i in range(signal_data.shape[0]):
            filtered[i] = lowpass(signal_data[i], cutoff_hz, self.fps, order)

        return filtered
