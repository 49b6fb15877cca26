"""
Visualization module for processed sessions.

Consumes a ``SessionResult``; nothing in the pipeline depends on it.
"""

import warnings
from pathlib import Path
from typing import List, Optional, Sequence

import numpy as np
import matplotlib.pyplot as plt

from .pipeline import SessionResult


class Visualizer:
    """Figures for filtered channels, fitted reference and ΔF/F."""

    def __init__(self, style: str = "seaborn-v0_8", dpi: int = 300):
        self.style = style
        self.dpi = dpi

    def _safe_legend(self, ax):
        """Add legend only if there are labeled artists."""
        handles, labels = ax.get_legend_handles_labels()
        if handles and labels:
            ax.legend()

    def _setup_style(self):
        """Setup matplotlib style."""
        try:
            plt.style.use(self.style)
        except OSError:
            warnings.warn(f"Style '{self.style}' not found, using default")
            plt.style.use('default')

        plt.rcParams.update({
            'figure.dpi': self.dpi,
            'savefig.dpi': self.dpi,
            'font.size': 10,
            'axes.labelsize': 12,
            'axes.titlesize': 12,
            'legend.fontsize': 10,
            'lines.linewidth': 1.0,
            'axes.spines.top': False,
            'axes.spines.right': False,
        })

    def plot_channels(
        self,
        result: SessionResult,
        signal_label: str = '490 nm',
        reference_label: str = '400 nm',
        save_path: Optional[str] = None
    ) -> plt.Figure:
        """
        Two panels: demeaned filtered channels, then signal vs fitted reference.
        """
        self._setup_style()
        fig, axes = plt.subplots(2, 1, figsize=(12, 7), sharex=True)

        ax = axes[0]
        ax.plot(result.time, result.filtered_signal - np.mean(result.filtered_signal),
                label=f'Signal, {signal_label}', color='green')
        ax.plot(result.time, result.filtered_reference - np.mean(result.filtered_reference),
                label=f'Reference, {reference_label}', color='black')
        ax.set_ylabel('Fluorescence (AU)')
        ax.set_title('Low-pass filtered and demeaned channels')
        self._safe_legend(ax)

        ax = axes[1]
        ax.plot(result.time, result.filtered_signal, label=signal_label, color='green')
        ax.plot(result.time, result.fitted_reference,
                label=f'Fitted {reference_label}', color='black')
        ax.set_xlabel('Time (s)')
        ax.set_ylabel('Fluorescence (AU)')
        ax.set_title(f'Signal and fitted reference (R² = {result.fit.r_squared:.3f})')
        ax.set_xlim(0, result.time[-1])
        self._safe_legend(ax)

        plt.tight_layout()

        if save_path:
            self._save_figure(fig, save_path)

        return fig

    def plot_dff(
        self,
        result: SessionResult,
        title: str = 'Processed ΔF/F',
        save_path: Optional[str] = None
    ) -> plt.Figure:
        """Plot ΔF/F with vertical markers at event onsets."""
        self._setup_style()
        fig, ax = plt.subplots(figsize=(12, 4))

        ax.plot(result.time, result.dff, color='green')
        ax.set_xlim(0, result.time[-1])
        ax.set_xlabel('Time (s)')
        ax.set_ylabel('ΔF/F (%)')
        ax.set_title(title)

        ax.set_ylim(*self.dff_limits(result.dff))
        self._add_event_markers(ax, result.events)

        plt.tight_layout()

        if save_path:
            self._save_figure(fig, save_path)

        return fig

    @staticmethod
    def dff_limits(dff: np.ndarray) -> tuple:
        """Fixed range for flat traces, otherwise follow the peak."""
        peak = np.nanmax(dff)
        if peak <= 3:
            return -2.0, 5.0
        return -3.0, peak + 1

    def _add_event_markers(self, ax, events: Sequence[float]):
        for i, onset in enumerate(events):
            ax.axvline(x=onset, color='red', linewidth=0.8, alpha=0.8,
                       label='Event' if i == 0 else None)
        self._safe_legend(ax)

    def _save_figure(self, fig: plt.Figure, save_path: str, formats: Optional[List[str]] = None):
        """Save figure in multiple formats."""
        formats = formats or ['png', 'svg']
        base_path = Path(save_path)
        base_path.parent.mkdir(parents=True, exist_ok=True)

        for fmt in formats:
            output_path = base_path.with_suffix(f'.{fmt}')
            fig.savefig(output_path, format=fmt, dpi=self.dpi, bbox_inches='tight')
