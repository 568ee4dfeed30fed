"""
Simulation Runner for the Tensegrity CPG Digital Twin

This module implements the host simulation loop around the actuation
controller:

    attach -> setup -> step(dt) x N -> teardown

The runner owns a TensegrityModel, attaches one ActuationController to it,
steps the model at a fixed dt and logs telemetry for later analysis.

Data Flow:
---------
CPGNetwork -> ImpedanceMapper -> CableActuatorModel.set_control -> tensions

Default Gait:
------------
Without an explicit parameter source the runner builds a traveling wave:
equal-frequency nodes chained by bidirectional coupling edges whose phase
bias makes each segment lag its predecessor by `phase_lag`:

    edge i -> i+1 : weight w, phase_bias +phase_lag
    edge i+1 -> i : weight w, phase_bias -phase_lag
"""

import numpy as np
import pandas as pd
from typing import Any, Dict, List, Optional, Tuple
from dataclasses import dataclass, field
from collections import defaultdict
import time

from tensegrity_cpg.core.control.actuation_controller import ActuationController
from tensegrity_cpg.core.control.parameters import TensorParameterSource
from tensegrity_cpg.core.models.tensegrity_model import TensegrityModel
from tensegrity_cpg.core.simulation.performance_analyzer import GaitAnalyzer


@dataclass
class SimulationConfig:
    """Configuration for simulation runner."""

    # Timing
    dt: float = 0.001              # Physics/control timestep [s]
    duration: float = 5.0          # Default run length [s]
    log_period: Optional[float] = None  # Logging period [s] (None = every step)

    # Structure
    n_segments: int = 3
    muscles_per_segment: int = 4
    antagonistic: bool = True      # Alternate muscle output scale +1/-1 in each segment

    # Default traveling-wave gait
    frequency: float = 2.0 * np.pi  # Natural frequency [rad/s]
    amplitude: float = 0.1         # Length amplitude [m]
    coupling_weight: float = 2.0   # Chain coupling weight [rad/s]
    phase_lag: float = np.pi / 2.0  # Lag between neighboring segments [rad]
    stiffness: float = 1000.0      # Impedance stiffness [N/m]
    damping: float = 10.0          # Impedance damping [N·s/m]
    randomize_initial_phase: bool = True

    # Deterministic execution
    seed: int = 42

    # Execution
    verbose: bool = True
    enable_plotting: bool = False

    # Component configs
    controller_config: Dict = field(default_factory=dict)
    actuator_config: Dict = field(default_factory=dict)


def build_chain_parameter_tensors(
    n_segments: int,
    frequency: float,
    amplitude: float,
    coupling_weight: float,
    phase_lag: float,
    stiffness: float = 1000.0,
    damping: float = 10.0,
    initial_phases: Optional[np.ndarray] = None
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Build node/edge tensors for a chain-coupled traveling wave.

    Parameters
    ----------
    n_segments : int
        Number of oscillator nodes
    frequency : float
        Natural frequency of every node [rad/s]
    amplitude : float
        Length amplitude of every node
    coupling_weight : float
        Weight of every chain edge (0 = uncoupled)
    phase_lag : float
        Desired θᵢ - θᵢ₊₁ [rad]
    stiffness, damping : float
        Impedance gains of every node
    initial_phases : np.ndarray, optional
        Initial phase per node (default zeros)

    Returns
    -------
    Tuple[np.ndarray, np.ndarray]
        node tensor (n, 6) and edge tensor (n, n, 1, 2)
    """
    if initial_phases is None:
        initial_phases = np.zeros(n_segments)

    node_tensor = np.zeros((n_segments, 6))
    node_tensor[:, 0] = frequency
    node_tensor[:, 1] = amplitude
    node_tensor[:, 3] = initial_phases
    node_tensor[:, 4] = stiffness
    node_tensor[:, 5] = damping

    edge_tensor = np.zeros((n_segments, n_segments, 1, 2))
    if coupling_weight != 0.0:
        for i in range(n_segments - 1):
            edge_tensor[i, i + 1, 0] = (coupling_weight, phase_lag)
            edge_tensor[i + 1, i, 0] = (coupling_weight, -phase_lag)
    return node_tensor, edge_tensor


class SimulationRunner:
    """
    Closed-loop host simulation for a CPG-controlled tensegrity model.

    Usage:
    ------
    >>> config = SimulationConfig(n_segments=4, duration=2.0)
    >>> runner = SimulationRunner(config)
    >>> results = runner.run_simulation()
    >>> print(f"Saturation: {results['saturation_percentage']:.1f} %")
    """

    def __init__(self, config: SimulationConfig, parameter_source: Optional[Any] = None):
        """
        Parameters
        ----------
        config : SimulationConfig
            Timing, structure and default-gait configuration
        parameter_source : ParameterSource, optional
            Learned parameters; a chain traveling wave is built from config
            when omitted
        """
        if config.dt <= 0.0:
            raise ValueError(f"dt must be positive, got {config.dt}")
        self.config = config
        self.rng = np.random.default_rng(config.seed)

        muscle_scales = [1.0] * config.muscles_per_segment
        if config.antagonistic:
            muscle_scales = [1.0 if k % 2 == 0 else -1.0 for k in range(config.muscles_per_segment)]

        self.model = TensegrityModel({
            'n_segments': config.n_segments,
            'muscles_per_segment': config.muscles_per_segment,
            'actuator_config': config.actuator_config,
            'muscle_scales': muscle_scales,
        })

        if parameter_source is None:
            if config.randomize_initial_phase:
                initial_phases = self.rng.uniform(0.0, 2.0 * np.pi, config.n_segments)
            else:
                initial_phases = np.zeros(config.n_segments)
            parameter_source = TensorParameterSource(*build_chain_parameter_tensors(
                config.n_segments,
                config.frequency,
                config.amplitude,
                config.coupling_weight,
                config.phase_lag,
                stiffness=config.stiffness,
                damping=config.damping,
                initial_phases=initial_phases,
            ))
        self.parameter_source = parameter_source

        controller_config = dict(config.controller_config)
        actuator_config = config.actuator_config
        for key in ('rest_length', 'min_length', 'max_length'):
            if key in actuator_config:
                controller_config.setdefault(key, actuator_config[key])
        self.controller = ActuationController(parameter_source, controller_config, verbose=config.verbose)
        self.model.attach(self.controller)

        if config.log_period is None:
            self.log_every = 1
        else:
            self.log_every = max(1, int(round(config.log_period / config.dt)))

        self.time: float = 0.0
        self.iteration: int = 0
        self._init_logging()

    def _init_logging(self) -> None:
        """Initialize data logging infrastructure."""
        self.log_data: Dict[str, List] = defaultdict(list)

    def _log_data(self, tensions: np.ndarray) -> None:
        network = self.controller.network
        setpoints = self.controller.last_setpoints

        self.log_data['time'].append(self.time)
        self.log_data['synchrony'].append(network.synchrony())
        self.log_data['n_saturated'].append(sum(1 for sp in setpoints if sp.saturated))
        for i, (phase, amplitude) in enumerate(zip(network.phases(), network.amplitudes())):
            self.log_data[f'phase_{i}'].append(phase)
            self.log_data[f'amplitude_{i}'].append(amplitude)
        for k, sp in enumerate(setpoints):
            self.log_data[f'target_length_{k}'].append(sp.target_length)
            self.log_data[f'offset_{k}'].append(sp.commanded_offset)
        for k, tension in enumerate(tensions):
            self.log_data[f'tension_{k}'].append(tension)

    def run_single_step(self) -> np.ndarray:
        """
        Step the model (and through it the controller) once.

        Returns
        -------
        np.ndarray
            Cable tensions after the step [N]
        """
        tensions = self.model.step(self.config.dt)
        self.iteration += 1
        self.time = self.iteration * self.config.dt
        if self.iteration % self.log_every == 0:
            self._log_data(tensions)
        return tensions

    def run_simulation(self, duration: Optional[float] = None) -> Dict:
        """
        Execute setup, the fixed-step loop and teardown.

        Parameters
        ----------
        duration : float, optional
            Simulated time [s] (default: config.duration)

        Returns
        -------
        Dict
            Logged telemetry and performance summary
        """
        duration = self.config.duration if duration is None else duration
        n_steps = int(round(duration / self.config.dt))
        verbose = self.config.verbose

        if verbose:
            print(f"Starting simulation for {duration:.2f} seconds...")
            print(f"  dt: {self.config.dt*1e3:.2f} ms ({n_steps} steps)")
            print(f"  Structure: {self.model!r}")

        self.time = 0.0
        self.iteration = 0
        self._init_logging()

        start_time = time.perf_counter()
        self.model.setup()
        try:
            for _ in range(n_steps):
                self.run_single_step()
                if verbose and n_steps >= 10 and self.iteration % (n_steps // 10) == 0:
                    print(f"  Progress: {100.0 * self.iteration / n_steps:.0f}% (t={self.time:.2f}s)")
            results = self._compute_summary()
        finally:
            self.model.teardown()

        elapsed_time = time.perf_counter() - start_time
        if verbose:
            print(f"Simulation complete: {self.time:.3f} simulated seconds")
            print(f"  Wall-clock time: {elapsed_time:.2f} seconds")
            print(f"  Saturated setpoints: {results['saturation_count']} "
                  f"({results['saturation_percentage']:.2f} %)")

        if self.config.enable_plotting:
            self.plot_results()
        return results

    def _compute_summary(self) -> Dict:
        """
        Compute performance metrics from logged data and controller counters.

        Must run before teardown, which clears the controller's counters.
        """
        controller = self.controller
        metrics = GaitAnalyzer().analyze(self.log_data) if self.log_data.get('time') else None
        return {
            'log_data': self.log_data,
            'n_samples': len(self.log_data.get('time', [])),
            'steps': controller.step_count,
            'duration': self.time,
            'saturation_count': controller.saturation_count,
            'saturation_percentage': 100.0 * controller.saturation_fraction,
            'final_phases': controller.network.phases(),
            'final_synchrony': controller.network.synchrony(),
            'final_tensions': self.model.tensions(),
            'metrics': metrics,
        }

    def telemetry_frame(self) -> pd.DataFrame:
        """Logged telemetry as a DataFrame indexed by sample."""
        return pd.DataFrame(self.log_data)

    def plot_results(self) -> None:
        """Generate telemetry plots of the last run."""
        if not self.log_data.get('time'):
            print("Warning: No simulation data to plot. Run simulation first.")
            return
        import matplotlib.pyplot as plt
        from tensegrity_cpg.core.visualization.time_series_plots import TimelinePlotter

        TimelinePlotter().plot_full_suite(self.log_data)
        plt.show()
