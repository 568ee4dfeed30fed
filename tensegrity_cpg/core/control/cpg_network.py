"""
Central Pattern Generator Network of Coupled Phase Oscillators

Each controlled body segment owns one oscillator node. Nodes are coupled by
directional edges and advanced together as one system:

    dθᵢ/dt = ωᵢ + Σ_{j→i} wⱼᵢ · sin(θⱼ - θᵢ - φⱼᵢ)

where the sum runs over the incoming coupling edges of node i, wⱼᵢ is the
edge weight and φⱼᵢ its phase bias. Phases are wrapped into [0, 2π) after
every step.

Amplitudes are normally fixed at their learned value. With a positive
`amplitude_ramp_rate` they start at zero and converge exponentially:

    rᵢ(t + dt) = Rᵢ + (rᵢ(t) - Rᵢ) · exp(-λ·dt)

which is exact for the first-order ramp and stable for any dt.

Integration:
-----------
Fixed step, explicit. 'euler' (default) or classical 'rk4'. In both cases
every derivative of a step is evaluated from the phase snapshot taken at the
start of that step (or from RK stages built on it), so the result does not
depend on node iteration order.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

import numpy as np

from tensegrity_cpg.core.control.errors import InvalidStateError, OutOfRangeError
from tensegrity_cpg.core.control.parameters import CouplingEdge, ParameterSet


TWO_PI = 2.0 * np.pi
INTEGRATORS = ('euler', 'rk4')


def wrap_phase(phase):
    """Wrap phase(s) into [0, 2π)."""
    wrapped = np.mod(phase, TWO_PI)
    # np.mod of a tiny negative number rounds up to exactly 2π
    return np.where(wrapped >= TWO_PI, 0.0, wrapped)


@dataclass
class OscillatorNode:
    """Snapshot of one oscillator's runtime state."""
    node_id: int
    phase: float
    frequency: float
    amplitude: float
    target_amplitude: float


class CPGNetwork:
    """
    Network of coupled phase oscillators.

    Usage:
    ------
    >>> network = CPGNetwork({'integrator': 'euler'})
    >>> network.initialize([[1.0, 0.5], [1.0, 0.5]], edge_tensor)
    >>> network.advance(0.01)
    >>> network.phase_at(0)
    0.01
    """

    def __init__(self, config: Optional[dict] = None):
        """
        Parameters
        ----------
        config : dict, optional
            - 'integrator': 'euler' (default) or 'rk4'
            - 'amplitude_ramp_rate': amplitude convergence rate λ [1/s];
              0 (default) keeps amplitudes at their learned value
        """
        config = config or {}
        self.config = config

        self.integrator: str = config.get('integrator', 'euler')
        if self.integrator not in INTEGRATORS:
            raise ValueError(f"Unknown integrator '{self.integrator}', expected one of {INTEGRATORS}")

        self.amplitude_ramp_rate: float = float(config.get('amplitude_ramp_rate', 0.0))
        if not np.isfinite(self.amplitude_ramp_rate) or self.amplitude_ramp_rate < 0.0:
            raise ValueError(f"amplitude_ramp_rate must be finite and >= 0, got {self.amplitude_ramp_rate}")

        self.parameters: Optional[ParameterSet] = None
        self.time: float = 0.0
        self.step_count: int = 0

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def initialize(self, node_params: Any, edge_params: Optional[Any] = None) -> None:
        """
        Construct nodes and edges from learned parameters.

        Parameters
        ----------
        node_params : ParameterSet | Mapping | array_like
            A ready ParameterSet, a node-id mapping, or the node tensor.
        edge_params : Mapping | array_like, optional
            Edge mapping or edge tensor matching the form of node_params.

        Raises
        ------
        ConfigError
            Dangling edge, non-finite or negative frequency/amplitude, or
            any other parameter validation failure.
        """
        if isinstance(node_params, ParameterSet):
            if edge_params is not None:
                raise ValueError("edge_params must be None when passing a ParameterSet")
            parameters = node_params
        elif isinstance(node_params, Mapping):
            parameters = ParameterSet.from_mappings(node_params, edge_params)
        else:
            parameters = ParameterSet.from_tensors(node_params, edge_params)
        self.load(parameters)

    def load(self, parameters: ParameterSet) -> None:
        """Adopt an already validated ParameterSet and reset runtime state."""
        node_ids = parameters.node_ids
        index = {node_id: i for i, node_id in enumerate(node_ids)}
        nodes = parameters.nodes.values()

        self._node_ids: Tuple[int, ...] = node_ids
        self._index: Dict[int, int] = index
        self._omega = np.array([p.frequency for p in nodes], dtype=float)
        self._target_amplitude = np.array([p.amplitude for p in nodes], dtype=float)
        self._initial_phase = np.array([p.initial_phase for p in nodes], dtype=float)

        edges = parameters.edges
        self._src = np.array([index[e.source] for e in edges], dtype=int)
        self._tgt = np.array([index[e.target] for e in edges], dtype=int)
        self._weight = np.array([e.weight for e in edges], dtype=float)
        self._bias = np.array([e.phase_bias for e in edges], dtype=float)

        self.parameters = parameters
        self.reset()

    def reset(self) -> None:
        """Restore phases to their initial values and restart amplitude ramps."""
        self._require_initialized()
        self._phases = wrap_phase(self._initial_phase)
        if self.amplitude_ramp_rate > 0.0:
            self._amplitudes = np.zeros_like(self._target_amplitude)
        else:
            self._amplitudes = self._target_amplitude.copy()
        self.time = 0.0
        self.step_count = 0

    def release(self) -> None:
        """Drop all parameters and runtime state."""
        self.parameters = None
        self.time = 0.0
        self.step_count = 0

    @property
    def initialized(self) -> bool:
        return self.parameters is not None

    def _require_initialized(self) -> None:
        if self.parameters is None:
            raise InvalidStateError("CPG network has not been initialized")

    # ------------------------------------------------------------------
    # Dynamics
    # ------------------------------------------------------------------

    def _phase_derivative(self, phases: np.ndarray) -> np.ndarray:
        """dθ/dt for every node, evaluated from one phase vector."""
        derivative = self._omega.copy()
        if self._src.size:
            coupling = self._weight * np.sin(phases[self._src] - phases[self._tgt] - self._bias)
            derivative += np.bincount(self._tgt, weights=coupling, minlength=derivative.size)
        return derivative

    def advance(self, dt: float) -> None:
        """
        Advance every oscillator by one fixed step.

        Parameters
        ----------
        dt : float
            Time step [s], must be positive and finite.

        Raises
        ------
        ValueError
            If dt <= 0 or not finite.
        InvalidStateError
            If the network has not been initialized.
        """
        self._require_initialized()
        if not np.isfinite(dt) or dt <= 0.0:
            raise ValueError(f"dt must be positive and finite, got {dt}")

        phases = self._phases
        if self.integrator == 'rk4':
            k1 = self._phase_derivative(phases)
            k2 = self._phase_derivative(phases + 0.5 * dt * k1)
            k3 = self._phase_derivative(phases + 0.5 * dt * k2)
            k4 = self._phase_derivative(phases + dt * k3)
            increment = (dt / 6.0) * (k1 + 2.0 * k2 + 2.0 * k3 + k4)
        else:
            increment = dt * self._phase_derivative(phases)

        self._phases = wrap_phase(phases + increment)

        if self.amplitude_ramp_rate > 0.0:
            decay = np.exp(-self.amplitude_ramp_rate * dt)
            target = self._target_amplitude
            self._amplitudes = target + (self._amplitudes - target) * decay

        self.step_count += 1
        self.time += dt

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    def _position(self, node_id: int) -> int:
        self._require_initialized()
        try:
            return self._index[node_id]
        except (KeyError, TypeError):
            raise OutOfRangeError(f"Unknown node id {node_id!r}") from None

    def phase_at(self, node_id: int) -> float:
        i = self._position(node_id)
        return float(self._phases[i])

    def amplitude_at(self, node_id: int) -> float:
        i = self._position(node_id)
        return float(self._amplitudes[i])

    def node(self, node_id: int) -> OscillatorNode:
        i = self._position(node_id)
        return OscillatorNode(
            node_id=node_id,
            phase=float(self._phases[i]),
            frequency=float(self._omega[i]),
            amplitude=float(self._amplitudes[i]),
            target_amplitude=float(self._target_amplitude[i]),
        )

    def nodes(self) -> List[OscillatorNode]:
        return [self.node(node_id) for node_id in self.node_ids]

    @property
    def node_ids(self) -> Tuple[int, ...]:
        self._require_initialized()
        return self._node_ids

    @property
    def edges(self) -> Tuple[CouplingEdge, ...]:
        self._require_initialized()
        return self.parameters.edges

    def phases(self) -> np.ndarray:
        """Phases in ascending node-id order (copy)."""
        self._require_initialized()
        return self._phases.copy()

    def amplitudes(self) -> np.ndarray:
        """Amplitudes in ascending node-id order (copy)."""
        self._require_initialized()
        return self._amplitudes.copy()

    def synchrony(self) -> float:
        """Kuramoto order parameter |mean(exp(iθ))| in [0, 1]."""
        self._require_initialized()
        return float(np.abs(np.mean(np.exp(1j * self._phases))))

    def get_state(self) -> Dict:
        """
        Get current network state for logging/debugging.

        Returns
        -------
        Dict
            Phases, amplitudes, time and step count
        """
        if not self.initialized:
            return {'initialized': False}
        return {
            'initialized': True,
            'time': self.time,
            'step_count': self.step_count,
            'node_ids': self._node_ids,
            'phases': self._phases.copy(),
            'amplitudes': self._amplitudes.copy(),
            'synchrony': self.synchrony(),
        }
