"""
Processing configuration.

A single ``ProcessingConfig`` replaces the hardcoded acquisition constants
(sampling rate, low-pass cutoff, filter order) and the optional time-window
arguments. Values can be loaded from a YAML file of the form::

    processing:
      t1: 3.0
      sampling_rate_hz: 382
      cutoff_hz: 25
      filter_order: 4
"""

from dataclasses import dataclass, fields, asdict
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .exceptions import InvalidWindowError


ZERO_BASELINE_POLICIES = ('raise', 'nan')
DEFAULT_SAMPLING_RATE_HZ = 382.0


@dataclass(frozen=True)
class ProcessingConfig:
    """
    Parameters for one session-processing call.

    Args:
        t1: Window start in seconds (skips sensor warm-up)
        t2: Window end in seconds; None means ``duration - end_margin_s``
        sampling_rate_hz: Acquisition rate used when the recording carries
            none; None falls back to ``DEFAULT_SAMPLING_RATE_HZ``
        cutoff_hz: Low-pass cutoff frequency
        filter_order: Butterworth filter order
        end_margin_s: Trailing seconds dropped when t2 is not given
        on_zero_baseline: 'raise' to fail when the fitted reference hits zero,
            'nan' to mark those samples as NaN and continue

    The t1/t2 ordering is checked against the recording when processing,
    since either end can be overridden per call.
    """

    t1: float = 3.0
    t2: Optional[float] = None
    sampling_rate_hz: Optional[float] = None
    cutoff_hz: float = 25.0
    filter_order: int = 4
    end_margin_s: float = 0.5
    on_zero_baseline: str = 'raise'

    def __post_init__(self):
        if self.sampling_rate_hz is not None:
            if self.sampling_rate_hz <= 0:
                raise ValueError(f"Sampling rate must be positive, got {self.sampling_rate_hz}")
            nyquist = self.sampling_rate_hz / 2
            if not self.cutoff_hz < nyquist:
                raise ValueError(
                    f"Invalid cutoff frequency {self.cutoff_hz} Hz for Nyquist {nyquist} Hz"
                )
        if self.cutoff_hz <= 0:
            raise ValueError(f"Invalid cutoff frequency {self.cutoff_hz} Hz")
        if int(self.filter_order) != self.filter_order or self.filter_order < 1:
            raise ValueError(f"Filter order must be a positive integer, got {self.filter_order}")
        if self.t1 < 0:
            raise InvalidWindowError(f"t1 must be non-negative, got {self.t1}")
        if self.t2 is not None and self.t2 <= 0:
            raise InvalidWindowError(f"t2 must be positive, got {self.t2}")
        if self.end_margin_s < 0:
            raise ValueError(f"end_margin_s must be non-negative, got {self.end_margin_s}")
        if self.on_zero_baseline not in ZERO_BASELINE_POLICIES:
            raise ValueError(
                f"Unknown zero-baseline policy: {self.on_zero_baseline} "
                f"(expected one of {', '.join(ZERO_BASELINE_POLICIES)})"
            )

    @property
    def effective_sampling_rate_hz(self) -> float:
        if self.sampling_rate_hz is None:
            return DEFAULT_SAMPLING_RATE_HZ
        return self.sampling_rate_hz

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> 'ProcessingConfig':
        """Build a config from a flat mapping or one nested under 'processing'."""
        if 'processing' in config and isinstance(config['processing'], dict):
            config = config['processing']

        known = {f.name for f in fields(cls)}
        unknown = set(config) - known
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        return cls(**config)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def load_config(config_path: Union[str, Path]) -> ProcessingConfig:
    """Load configuration from YAML file."""
    with open(config_path, 'r') as f:
        config = yaml.safe_load(f)
    return ProcessingConfig.from_dict(config or {})
