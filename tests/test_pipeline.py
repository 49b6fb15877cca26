"""
Tests for the session pipeline.
"""

import json
import pytest
import tempfile
import warnings
from pathlib import Path

import numpy as np
import pandas as pd

from fiber_dff import (
    ProcessingConfig,
    Recording,
    SessionResult,
    process,
    InvalidWindowError,
    InsufficientDataError,
    DegenerateFitError,
    DivisionByZeroError,
    Normalizer,
)
from fiber_dff.pipeline import TIMESERIES_COLUMNS


def make_recording(duration, fs, events=None, sampling_rate_hz=None, seed=0):
    """Signal = 2 * reference + 1 + noise, reference = slow sine."""
    rng = np.random.RandomState(seed)
    n_samples = int(round(duration * fs))
    time_vec = np.arange(n_samples) / fs
    reference = 10 + np.sin(2 * np.pi * 0.1 * time_vec)
    signal = 2 * reference + 1 + rng.normal(0, 0.01, n_samples)
    return Recording(
        np.vstack([signal, reference]),
        sampling_rate_hz=sampling_rate_hz,
        events=events
    )


class TestProcess:
    """Test cases for process()."""

    @pytest.fixture
    def config(self):
        return ProcessingConfig(sampling_rate_hz=100.0)

    def test_end_to_end(self, config):
        recording = make_recording(20.0, 100.0)

        result = process(recording, config=config)

        assert isinstance(result, SessionResult)
        assert result.t1 == 3.0
        assert result.t2 == pytest.approx(19.5)
        assert result.n_samples == 1650
        assert result.fit.slope == pytest.approx(2.0, abs=0.02)
        assert result.fit.intercept == pytest.approx(1.0, abs=0.2)
        assert abs(np.mean(result.dff)) < 1e-6
        assert np.all(np.isfinite(result.dff))

    def test_output_shapes(self, config):
        recording = make_recording(20.0, 100.0)

        result = process(recording, config=config)

        for name in TIMESERIES_COLUMNS:
            assert getattr(result, name).shape == (1650,)
        assert result.time[0] == 0.0
        assert result.time[-1] == pytest.approx(1649 / 100.0)
        np.testing.assert_array_equal(result.raw_signal, recording.signal[300:1950])
        np.testing.assert_array_equal(result.raw_reference, recording.reference[300:1950])

    def test_default_window_at_382_hz(self):
        np.random.seed(7)
        n_samples = 100 * 382
        data = np.vstack([
            200 + np.random.normal(0, 1, n_samples),
            100 + np.random.normal(0, 1, n_samples)
        ])

        result = process(Recording(data))

        assert result.sampling_rate_hz == 382.0
        assert result.n_samples == int(round((100 - 3 - 0.5) * 382))

    def test_explicit_window(self, config):
        recording = make_recording(20.0, 100.0)

        result = process(recording, t1=5.0, t2=15.0, config=config)

        assert result.n_samples == 1000
        assert result.t2 == 15.0
        np.testing.assert_array_equal(result.raw_signal, recording.signal[500:1500])

    def test_window_from_config(self):
        recording = make_recording(20.0, 100.0)
        config = ProcessingConfig(t1=1.0, t2=11.0, sampling_rate_hz=100.0)

        result = process(recording, config=config)

        assert result.n_samples == 1000

    def test_only_t2_given(self, config):
        recording = make_recording(20.0, 100.0)

        result = process(recording, t2=10.0, config=config)

        assert result.t1 == 3.0
        assert result.n_samples == 700

    def test_event_offset(self, config):
        recording = make_recording(60.0, 100.0, events=[5.0, 50.0])

        result = process(recording, config=config)

        np.testing.assert_allclose(result.events, [2.0, 47.0])

    def test_no_events(self, config):
        result = process(make_recording(20.0, 100.0), config=config)

        assert result.events.shape == (0,)

    def test_events_outside_window_warn(self, config):
        recording = make_recording(20.0, 100.0, events=[1.0, 10.0])

        with pytest.warns(UserWarning, match="outside the analysis window"):
            result = process(recording, config=config)

        np.testing.assert_allclose(result.events, [-2.0, 7.0])

    def test_invalid_window(self, config):
        recording = make_recording(20.0, 100.0)

        with pytest.raises(InvalidWindowError):
            process(recording, t1=5.0, t2=25.0, config=config)
        with pytest.raises(InvalidWindowError):
            process(recording, t1=12.0, t2=8.0, config=config)

    def test_window_too_short_for_filter(self, config):
        recording = make_recording(20.0, 100.0)

        with pytest.raises(InsufficientDataError):
            process(recording, t1=5.0, t2=5.1, config=config)

    def test_constant_reference(self, config):
        data = np.vstack([np.linspace(1, 2, 2000), np.full(2000, 5.0)])

        with pytest.raises(DegenerateFitError):
            process(Recording(data), config=config)

    def test_recording_rate_wins(self):
        recording = make_recording(20.0, 100.0, sampling_rate_hz=100.0)

        with warnings.catch_warnings(record=True) as w:
            warnings.simplefilter("always")
            result = process(recording, config=ProcessingConfig(sampling_rate_hz=382.0))

            assert any("FPS mismatch" in str(x.message) for x in w)

        assert result.sampling_rate_hz == 100.0
        assert result.n_samples == 1650

    def test_recording_rate_with_default_config_no_warning(self):
        """TDT rates like 381.47 Hz are used as-is without a mismatch warning."""
        recording = make_recording(20.0, 381.47, sampling_rate_hz=381.47)

        with warnings.catch_warnings():
            warnings.simplefilter("error")
            result = process(recording)

        assert result.sampling_rate_hz == 381.47

    def test_matching_rate_no_warning(self, config):
        recording = make_recording(20.0, 100.0, sampling_rate_hz=100.0)

        with warnings.catch_warnings():
            warnings.simplefilter("error")
            process(recording, config=config)

    def test_config_t2_with_call_t1(self):
        """A config t2 below the default t1 works once the call sets t1."""
        config = ProcessingConfig(t2=2.0, sampling_rate_hz=100.0)

        result = process(make_recording(20.0, 100.0), t1=1.0, config=config)

        assert result.n_samples == 100

    def test_reversed_config_window(self):
        config = ProcessingConfig(t1=5.0, t2=4.0, sampling_rate_hz=100.0)

        with pytest.raises(InvalidWindowError):
            process(make_recording(20.0, 100.0), config=config)

    def test_zero_baseline_nan_policy(self, monkeypatch):
        recording = make_recording(20.0, 100.0)
        config = ProcessingConfig(sampling_rate_hz=100.0, on_zero_baseline='nan')
        original_fit = Normalizer.fit_reference_to_signal

        def fit_with_zero(self, signal, reference):
            fitted, fit = original_fit(self, signal, reference)
            fitted = fitted.copy()
            fitted[[10, 20]] = 0.0
            return fitted, fit

        monkeypatch.setattr(Normalizer, 'fit_reference_to_signal', fit_with_zero)

        with pytest.warns(UserWarning, match="invalid baseline values"):
            result = process(recording, config=config)

        assert result.processing_log['invalid_baseline_indices'] == [10, 20]
        assert np.isnan(result.dff[10]) and np.isnan(result.dff[20])
        assert np.sum(np.isnan(result.dff)) == 2

    def test_zero_baseline_raises_by_default(self, config, monkeypatch):
        original_fit = Normalizer.fit_reference_to_signal

        def fit_with_zero(self, signal, reference):
            fitted, fit = original_fit(self, signal, reference)
            fitted = fitted.copy()
            fitted[10] = 0.0
            return fitted, fit

        monkeypatch.setattr(Normalizer, 'fit_reference_to_signal', fit_with_zero)

        with pytest.raises(DivisionByZeroError, match="index 10"):
            process(make_recording(20.0, 100.0), config=config)

    def test_results_compare_by_identity(self, config):
        recording = make_recording(20.0, 100.0)
        first = process(recording, config=config)
        second = process(recording, config=config)

        assert first == first
        assert first != second
        assert len({first, second}) == 2

    def test_result_is_read_only(self, config):
        result = process(make_recording(20.0, 100.0), config=config)

        with pytest.raises(ValueError):
            result.dff[0] = 0.0

    def test_processing_log(self, config):
        result = process(make_recording(20.0, 100.0, events=[5.0]), config=config)
        log = result.processing_log

        assert log['window_indices'] == (300, 1950)
        assert log['lowpass_cutoff_hz'] == 25.0
        assert log['filter_order'] == 4
        assert log['fit']['slope'] == result.fit.slope
        assert log['invalid_baseline_indices'] == []
        assert log['n_events'] == 1
        assert log['final_samples'] == 1650


class TestSessionResultOutput:
    """Test cases for tabular export and persistence."""

    @pytest.fixture
    def result(self):
        recording = make_recording(20.0, 100.0, events=[5.0, 12.0])
        return process(recording, config=ProcessingConfig(sampling_rate_hz=100.0))

    def test_to_dataframe(self, result):
        df = result.to_dataframe()

        assert list(df.columns) == list(TIMESERIES_COLUMNS)
        assert len(df) == result.n_samples
        np.testing.assert_array_equal(df['dff'].values, result.dff)

    def test_events_frame(self, result):
        events_df = result.events_frame()

        assert list(events_df['timestamp']) == pytest.approx([2.0, 9.0])
        assert list(events_df['trial_index']) == [0, 1]

    def test_save(self, result):
        with tempfile.TemporaryDirectory() as tmp:
            output_dir = result.save(Path(tmp) / 'session')

            timeseries = pd.read_csv(output_dir / 'timeseries.csv')
            events = pd.read_csv(output_dir / 'events.csv')
            with open(output_dir / 'processing_log.json') as f:
                log = json.load(f)

            assert len(timeseries) == result.n_samples
            np.testing.assert_allclose(timeseries['dff'].values, result.dff)
            assert len(events) == 2
            assert log['final_samples'] == result.n_samples
            assert log['config']['cutoff_hz'] == 25.0


if __name__ == '__main__':
    pytest.main([__file__])
