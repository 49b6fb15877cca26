"""
Session pipeline: windowing, filtering, reference fit and ΔF/F.

Follows Lerner et al., Cell 2015:

    dF/F = (signal - fitted reference) / fitted reference

with both channels low-pass filtered first and the result linearly
detrended and expressed in percent.
"""

import json
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import numpy as np
import pandas as pd

from .config import ProcessingConfig
from .normalization import FitParameters, Normalizer
from .preprocessing import Preprocessor
from .recording import Recording


TIMESERIES_COLUMNS = (
    'time',
    'raw_signal',
    'raw_reference',
    'filtered_signal',
    'filtered_reference',
    'fitted_reference',
    'dff',
)


@dataclass(frozen=True, eq=False)
class SessionResult:
    """Everything produced by one ``process`` call."""

    raw_signal: np.ndarray
    raw_reference: np.ndarray
    filtered_signal: np.ndarray
    filtered_reference: np.ndarray
    fitted_reference: np.ndarray
    time: np.ndarray
    dff: np.ndarray
    events: np.ndarray
    fit: FitParameters
    t1: float
    t2: float
    sampling_rate_hz: float
    processing_log: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        for name in TIMESERIES_COLUMNS + ('events',):
            getattr(self, name).setflags(write=False)

    @property
    def n_samples(self) -> int:
        return len(self.time)

    def to_dataframe(self) -> pd.DataFrame:
        """Per-sample arrays as named columns."""
        return pd.DataFrame({name: getattr(self, name) for name in TIMESERIES_COLUMNS})

    def events_frame(self) -> pd.DataFrame:
        return pd.DataFrame({
            'timestamp': self.events,
            'trial_index': np.arange(len(self.events))
        })

    def save(self, output_dir: Union[str, Path]) -> Path:
        """Write timeseries.csv, events.csv and processing_log.json."""
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        self.to_dataframe().to_csv(output_dir / 'timeseries.csv', index=False)
        self.events_frame().to_csv(output_dir / 'events.csv', index=False)

        with open(output_dir / 'processing_log.json', 'w') as f:
            json.dump(self.processing_log, f, indent=2, default=str)

        return output_dir


def _resolve_sampling_rate(recording: Recording, config: ProcessingConfig) -> float:
    if recording.sampling_rate_hz is None:
        return config.effective_sampling_rate_hz

    fs = recording.sampling_rate_hz
    if config.sampling_rate_hz is not None and not np.isclose(
        fs, config.sampling_rate_hz, rtol=1e-6, atol=0
    ):
        warnings.warn(
            f"FPS mismatch: configured {config.sampling_rate_hz:.1f} Hz, "
            f"recording reports {fs:.1f} Hz; using the recording's rate"
        )
    return fs


def process(
    recording: Recording,
    t1: Optional[float] = None,
    t2: Optional[float] = None,
    config: Optional[ProcessingConfig] = None
) -> SessionResult:
    """
    Process one fiber-photometry session into a detrended ΔF/F trace.

    Args:
        recording: Raw dual-channel recording (row 0 signal, row 1 reference)
        t1: Window start in seconds; overrides ``config.t1``
        t2: Window end in seconds; overrides ``config.t2``
        config: Processing parameters (defaults if omitted)

    Returns:
        SessionResult with raw, filtered and fitted channels, time vector,
        ΔF/F in percent and event onsets relative to t1
    """
    config = config or ProcessingConfig()
    t1 = config.t1 if t1 is None else t1
    t2 = config.t2 if t2 is None else t2

    fs = _resolve_sampling_rate(recording, config)
    preprocessor = Preprocessor(fs)
    normalizer = Normalizer(fs)
    processing_log: Dict[str, Any] = {'config': config.to_dict()}

    # 1. Slice to the time window
    start_idx, stop_idx = preprocessor.window_indices(
        recording.n_samples, t1, t2, config.end_margin_s
    )
    window_end = stop_idx / fs if t2 is None else t2
    raw = recording.data[:, start_idx:stop_idx]
    time_vec = preprocessor.time_vector(raw.shape[1])

    processing_log['t1'] = t1
    processing_log['t2'] = window_end
    processing_log['window_indices'] = (start_idx, stop_idx)
    processing_log['sampling_rate_hz'] = fs

    # 2. Zero-phase low-pass per channel
    filtered = preprocessor.lowpass_filter(raw, config.cutoff_hz, config.filter_order)
    processing_log['lowpass_cutoff_hz'] = config.cutoff_hz
    processing_log['filter_order'] = config.filter_order

    # 3. Fit reference onto signal, ΔF/F, detrend
    dff, dff_info = normalizer.calculate_dff(
        filtered[0], filtered[1], time_vec,
        on_zero_baseline=config.on_zero_baseline
    )
    fit = dff_info['fit']
    processing_log['fit'] = {
        'slope': fit.slope,
        'intercept': fit.intercept,
        'r_squared': fit.r_squared,
    }
    processing_log['invalid_baseline_indices'] = dff_info['invalid_indices'].tolist()

    # 4. Event onsets relative to the window start
    events = recording.events - t1
    outside = (events < 0) | (events > window_end - t1)
    if np.any(outside):
        warnings.warn(f"{int(np.sum(outside))} event onsets fall outside the analysis window")
    processing_log['n_events'] = len(events)

    processing_log['final_duration'] = raw.shape[1] / fs
    processing_log['final_samples'] = raw.shape[1]

    return SessionResult(
        raw_signal=raw[0].copy(),
        raw_reference=raw[1].copy(),
        filtered_signal=filtered[0],
        filtered_reference=filtered[1],
        fitted_reference=dff_info['fitted_reference'],
        time=time_vec,
        dff=dff,
        events=events,
        fit=fit,
        t1=float(t1),
        t2=float(window_end),
        sampling_rate_hz=float(fs),
        processing_log=processing_log
    )
