"""
Unit tests for the gait performance analyzer.

Telemetry is synthesized directly so every metric can be checked against a
closed-form value.
"""

import numpy as np
import pandas as pd
import pytest

from tensegrity_cpg.core.simulation.performance_analyzer import GaitAnalyzer, GaitMetrics


@pytest.fixture
def telemetry():
    """10 samples, 2 nodes locked 0.5 rad apart, 4 muscles."""
    time = np.arange(10) * 0.1
    phase_0 = np.mod(2.0 * np.pi * time, 2.0 * np.pi)
    phase_1 = np.mod(phase_0 - 0.5, 2.0 * np.pi)
    data = {
        'time': time,
        'n_saturated': [0] * 8 + [2, 2],
        'phase_0': phase_0,
        'phase_1': phase_1,
    }
    for k in range(4):
        data[f'target_length_{k}'] = np.full(10, 1.0)
        data[f'offset_{k}'] = np.full(10, 0.2 if k < 2 else -0.2)
        data[f'tension_{k}'] = np.linspace(0.0, 90.0, 10) if k == 0 else np.full(10, 30.0)
    return data


class TestGaitAnalyzer:
    """Test suite for GaitAnalyzer."""

    def test_saturation_percentage(self, telemetry):
        metrics = GaitAnalyzer(saturation_limit=5.0).analyze(telemetry)

        assert metrics.n_muscles == 4
        assert metrics.saturated_samples == 4
        assert metrics.saturation_percentage == pytest.approx(10.0)
        assert not metrics.meets_saturation_requirement

    def test_coordination(self, telemetry):
        metrics = GaitAnalyzer().analyze(telemetry)

        assert metrics.n_nodes == 2
        assert metrics.mean_phase_lag == pytest.approx(0.5)
        assert metrics.mean_synchrony == pytest.approx(np.cos(0.25))
        assert metrics.final_synchrony == pytest.approx(np.cos(0.25))

    def test_effort(self, telemetry):
        metrics = GaitAnalyzer().analyze(telemetry)

        assert metrics.rms_length_offset == pytest.approx(0.2)
        assert metrics.peak_length_offset == pytest.approx(0.2)
        assert metrics.peak_tension == pytest.approx(90.0)
        assert 0.0 < metrics.rms_tension < 90.0

    def test_time_window(self, telemetry):
        metrics = GaitAnalyzer().analyze(telemetry, start_time=0.0, end_time=0.45)

        assert metrics.sample_count == 5
        assert metrics.saturation_percentage == 0.0
        assert metrics.meets_saturation_requirement
        assert metrics.total_duration == pytest.approx(0.4)
        assert metrics.metadata['end_time'] == 0.45

    def test_accepts_dataframe(self, telemetry):
        from_dict = GaitAnalyzer().analyze(telemetry)
        from_frame = GaitAnalyzer().analyze(pd.DataFrame(telemetry))

        assert from_frame.saturation_percentage == from_dict.saturation_percentage
        assert from_frame.mean_phase_lag == from_dict.mean_phase_lag

    def test_synchrony_column_fallback(self):
        metrics = GaitAnalyzer().analyze({'time': [0.0, 0.1], 'synchrony': [0.4, 0.8]})

        assert metrics.mean_synchrony == pytest.approx(0.6)
        assert metrics.final_synchrony == pytest.approx(0.8)

    def test_missing_time(self):
        with pytest.raises(ValueError, match="time"):
            GaitAnalyzer().analyze({'phase_0': [0.0]})

    def test_empty_telemetry_warns(self):
        with pytest.warns(UserWarning, match="Empty telemetry"):
            metrics = GaitAnalyzer().analyze({'time': []})
        assert metrics == GaitMetrics()

    def test_empty_window_warns(self, telemetry):
        with pytest.warns(UserWarning, match="Empty time window"):
            metrics = GaitAnalyzer().analyze(telemetry, start_time=5.0)
        assert metrics.sample_count == 0

    def test_summary_table(self, telemetry):
        analyzer = GaitAnalyzer()
        runs = [analyzer.analyze(telemetry), analyzer.analyze(telemetry, end_time=0.45)]

        table = analyzer.summary_table(runs, labels=['full', 'first_half'])

        assert list(table.index) == ['full', 'first_half']
        assert 'metadata' not in table.columns
        assert table.loc['full', 'saturation_percentage'] == pytest.approx(10.0)
        assert table.loc['first_half', 'sample_count'] == 5

    def test_summary_table_default_labels(self, telemetry):
        analyzer = GaitAnalyzer()
        table = analyzer.summary_table([analyzer.analyze(telemetry)])
        assert list(table.index) == ['run_0']

        with pytest.raises(ValueError):
            analyzer.summary_table([analyzer.analyze(telemetry)], labels=['a', 'b'])
