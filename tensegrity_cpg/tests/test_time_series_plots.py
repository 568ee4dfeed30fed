"""
Smoke tests for the telemetry plots (non-interactive backend).
"""

import matplotlib
matplotlib.use('Agg')

import matplotlib.pyplot as plt
import numpy as np
import pytest

from tensegrity_cpg.core.simulation.simulation_runner import SimulationConfig, SimulationRunner
from tensegrity_cpg.core.visualization.time_series_plots import TimelinePlotter


@pytest.fixture(scope="module")
def telemetry():
    config = SimulationConfig(dt=0.01, duration=2.0, n_segments=2, amplitude=0.6, verbose=False)
    runner = SimulationRunner(config)
    with pytest.warns(UserWarning):
        runner.run_simulation()
    return runner.telemetry_frame()


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close('all')


class TestTimelinePlotter:

    def test_plot_phases(self, telemetry):
        fig, axes = TimelinePlotter().plot_phases(telemetry)

        assert len(axes[0].get_lines()) == 2
        assert len(axes[1].get_lines()) == 1

    def test_plot_setpoints_subset(self, telemetry):
        fig, ax = TimelinePlotter(time_unit='ms').plot_setpoints(
            telemetry, bounds=(0.5, 1.5), muscles=[0, 1]
        )

        # two muscles plus two bound lines
        assert len(ax.get_lines()) == 4
        assert ax.get_xlabel() == 'Time (ms)'

    def test_plot_saturation(self, telemetry):
        fig, ax = TimelinePlotter().plot_saturation(telemetry)
        assert any('Saturation' in t.get_text() for t in ax.texts)

    def test_missing_columns_warn(self):
        with pytest.warns(UserWarning):
            TimelinePlotter().plot_saturation({'time': [0.0, 0.1]})

    def test_full_suite_saved(self, telemetry, tmp_path):
        path = tmp_path / "timeline.png"
        fig = TimelinePlotter().plot_full_suite(telemetry, bounds=(0.5, 1.5), save_path=str(path))

        assert path.exists()
        assert len(fig.axes) == 4

    def test_time_window(self, telemetry):
        plotter = TimelinePlotter()
        df = plotter._to_dataframe(telemetry, (0.5, 1.0))

        assert df['time'].min() >= 0.5
        assert df['time'].max() <= 1.0

    def test_contiguous_regions(self):
        regions = TimelinePlotter()._get_contiguous_regions(np.array([False, True, True, False, True]))
        assert regions == [(1, 3), (4, 5)]
