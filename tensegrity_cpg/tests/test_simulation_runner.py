"""
Integration tests for the host simulation runner and the CLI.
"""

import numpy as np
import pandas as pd
import pytest

from tensegrity_cpg.core.control.actuation_controller import ControllerState
from tensegrity_cpg.core.control.errors import TopologyMismatchError
from tensegrity_cpg.core.control.parameters import ParameterSet, TensorParameterSource
from tensegrity_cpg.core.simulation.performance_analyzer import GaitAnalyzer, GaitMetrics
from tensegrity_cpg.core.simulation.simulation_runner import (
    SimulationConfig,
    SimulationRunner,
    build_chain_parameter_tensors,
)
from tensegrity_cpg import runner as cli


class TestChainParameters:

    def test_chain_edges(self):
        nodes, edges = build_chain_parameter_tensors(4, 2.0, 0.1, 1.5, 0.3)
        params = ParameterSet.from_tensors(nodes, edges)

        assert params.n_nodes == 4
        assert len(params.edges) == 6
        (edge,) = params.incoming(0)
        assert (edge.source, edge.weight, edge.phase_bias) == (1, 1.5, -0.3)
        assert {e.source for e in params.incoming(2)} == {1, 3}
        assert params.node(3).frequency == 2.0

    def test_uncoupled_chain(self):
        nodes, edges = build_chain_parameter_tensors(3, 1.0, 0.1, 0.0, 0.3)
        assert ParameterSet.from_tensors(nodes, edges).edges == ()

    def test_initial_phases(self):
        nodes, _ = build_chain_parameter_tensors(2, 1.0, 0.1, 1.0, 0.0, initial_phases=[0.5, 1.5])
        np.testing.assert_array_equal(nodes[:, 3], [0.5, 1.5])


class TestSimulationRunner:
    """Test suite for SimulationRunner."""

    @pytest.fixture
    def config(self):
        return SimulationConfig(
            dt=0.005,
            duration=5.0,
            n_segments=3,
            muscles_per_segment=4,
            randomize_initial_phase=False,
            verbose=False,
        )

    def test_run_produces_telemetry(self, config):
        runner = SimulationRunner(config)
        results = runner.run_simulation()

        assert results['steps'] == 1000
        assert results['n_samples'] == 1000
        assert results['duration'] == pytest.approx(5.0)
        assert results['saturation_count'] == 0
        assert isinstance(results['metrics'], GaitMetrics)

        frame = runner.telemetry_frame()
        assert isinstance(frame, pd.DataFrame)
        assert len(frame) == 1000
        for column in ['time', 'synchrony', 'n_saturated', 'phase_2', 'amplitude_0',
                       'target_length_11', 'offset_11', 'tension_11']:
            assert column in frame.columns
        assert frame['time'].iloc[-1] == pytest.approx(5.0)

    def test_controller_torn_down_after_run(self, config):
        runner = SimulationRunner(config)
        runner.run_simulation(duration=0.1)

        assert runner.controller.state is ControllerState.ATTACHED
        assert runner.controller.network is None

    def test_traveling_wave_locks_to_phase_lag(self, config):
        runner = SimulationRunner(config)
        runner.run_simulation()

        metrics = GaitAnalyzer().analyze(runner.log_data, start_time=3.0)
        assert metrics.mean_phase_lag == pytest.approx(config.phase_lag, abs=0.05)
        assert metrics.meets_saturation_requirement

    def test_repeated_runs_are_deterministic(self):
        config = SimulationConfig(dt=0.01, duration=1.0, verbose=False, seed=7)
        runner = SimulationRunner(config)

        first = runner.run_simulation()
        second = runner.run_simulation()

        np.testing.assert_array_equal(first['final_phases'], second['final_phases'])
        np.testing.assert_array_equal(first['final_tensions'], second['final_tensions'])

    def test_log_period(self):
        config = SimulationConfig(dt=0.005, duration=1.0, log_period=0.05, verbose=False)
        runner = SimulationRunner(config)
        results = runner.run_simulation()

        assert results['steps'] == 200
        assert results['n_samples'] == 20

    def test_external_parameter_source(self):
        nodes = np.column_stack([np.full(2, 1.0), np.full(2, 0.05)])
        config = SimulationConfig(dt=0.01, duration=0.5, n_segments=2, verbose=False)
        runner = SimulationRunner(config, parameter_source=TensorParameterSource(nodes))
        results = runner.run_simulation()

        assert results['steps'] == 50
        assert runner.controller.parameter_source is runner.parameter_source

    def test_topology_mismatch_surfaces(self):
        nodes = np.column_stack([np.full(2, 1.0), np.full(2, 0.05)])
        config = SimulationConfig(dt=0.01, duration=0.5, n_segments=3, verbose=False)
        runner = SimulationRunner(config, parameter_source=TensorParameterSource(nodes))

        with pytest.raises(TopologyMismatchError):
            runner.run_simulation()
        assert runner.controller.state is ControllerState.ATTACHED

    def test_saturation_reported(self):
        config = SimulationConfig(dt=0.01, duration=2.0, amplitude=1.0, verbose=False)
        runner = SimulationRunner(config)

        with pytest.warns(UserWarning, match="saturated"):
            results = runner.run_simulation()

        assert results['saturation_count'] > 0
        assert results['saturation_percentage'] == pytest.approx(
            results['metrics'].saturation_percentage
        )

    def test_invalid_dt(self):
        with pytest.raises(ValueError):
            SimulationRunner(SimulationConfig(dt=0.0, verbose=False))

    def test_verbose_output(self, capsys):
        config = SimulationConfig(dt=0.01, duration=0.2, verbose=True)
        SimulationRunner(config).run_simulation()

        out = capsys.readouterr().out
        assert "Starting simulation" in out
        assert "INFO: ActuationController ready" in out
        assert "Simulation complete" in out


class TestCommandLine:

    def test_main_runs(self, tmp_path):
        csv_path = tmp_path / "telemetry.csv"
        status = cli.main([
            '--duration', '0.2', '--dt', '0.01', '--segments', '2',
            '--integrator', 'rk4', '--quiet', '--csv', str(csv_path),
        ])

        assert status == 0
        frame = pd.read_csv(csv_path)
        assert len(frame) == 20
        assert 'phase_1' in frame.columns

    def test_main_reports_bad_configuration(self, capsys):
        status = cli.main(['--segments', '0', '--quiet'])

        assert status == 1
        assert "Configuration Error" in capsys.readouterr().out

    def test_config_from_args(self):
        args = cli.build_parser().parse_args(['--frequency', '0.5', '--phase-lag', '180'])
        config = cli.config_from_args(args)

        assert config.frequency == pytest.approx(np.pi)
        assert config.phase_lag == pytest.approx(np.pi)
        assert config.controller_config['integrator'] == 'euler'
