"""
Input structure for one fiber-photometry session.

The instrument-file loader lives outside this package; ``Recording`` only
holds what it produced: a two-row channel matrix (signal, reference), the
sampling rate when known, and TTL/event onsets in seconds.
"""

import warnings
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

import numpy as np


@dataclass(frozen=True, eq=False)
class Recording:
    """Raw dual-channel fiber-photometry recording."""

    data: np.ndarray
    sampling_rate_hz: Optional[float] = None
    events: Optional[np.ndarray] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        data = np.array(self.data, dtype=float)
        if data.ndim != 2 or data.shape[0] != 2:
            raise ValueError(
                f"Channel data must have shape (2, n_samples), got {data.shape}"
            )
        if data.shape[1] == 0:
            raise ValueError("Channel data contains no samples")
        if self.sampling_rate_hz is not None and self.sampling_rate_hz <= 0:
            raise ValueError(f"Sampling rate must be positive, got {self.sampling_rate_hz}")

        for name, row in zip(('signal', 'reference'), data):
            if not np.all(np.isfinite(row)):
                warnings.warn(f"Missing data detected in {name} channel")

        events = np.array([] if self.events is None else self.events, dtype=float)
        if events.ndim != 1:
            raise ValueError(f"Events must be a 1-D sequence of onsets, got shape {events.shape}")
        if np.any(np.diff(events) < 0):
            warnings.warn("Event onsets are not sorted; sorting them")
            events = np.sort(events)

        data.setflags(write=False)
        events.setflags(write=False)
        # Frozen dataclass: normalized arrays go in through object.__setattr__
        object.__setattr__(self, 'data', data)
        object.__setattr__(self, 'events', events)

    @classmethod
    def from_tdt(
        cls,
        block: Mapping[str, Any],
        stream: str = 'LMag',
        epoc: str = 'DIn4',
        sampling_rate_hz: Optional[float] = None
    ) -> 'Recording':
        """
        Adapt a TDT block already loaded into nested mappings.

        Args:
            block: Mapping with ``streams[stream]['data']`` (2 x N) and,
                optionally, ``epocs[epoc]['onset']``
            stream: Stream holding the signal/reference rows
            epoc: Digital-input epoc holding TTL onsets
            sampling_rate_hz: Overrides the stream's own ``fs`` entry

        Returns:
            Recording with an empty event array when the epoc is absent
        """
        stream_block = block['streams'][stream]
        fs = sampling_rate_hz if sampling_rate_hz is not None else stream_block.get('fs')

        epocs = block.get('epocs') or {}
        events = epocs[epoc]['onset'] if epoc in epocs else None

        return cls(
            data=stream_block['data'],
            sampling_rate_hz=fs,
            events=events,
            metadata={'source': 'tdt', 'stream': stream, 'epoc': epoc}
        )

    @property
    def signal(self) -> np.ndarray:
        return self.data[0]

    @property
    def reference(self) -> np.ndarray:
        return self.data[1]

    @property
    def n_samples(self) -> int:
        return self.data.shape[1]

    @property
    def has_events(self) -> bool:
        return len(self.events) > 0

    def duration(self, sampling_rate_hz: Optional[float] = None) -> float:
        """Recording length in seconds."""
        fs = sampling_rate_hz if sampling_rate_hz is not None else self.sampling_rate_hz
        if fs is None:
            raise ValueError("Sampling rate unknown; pass sampling_rate_hz")
        return self.n_samples / fs
