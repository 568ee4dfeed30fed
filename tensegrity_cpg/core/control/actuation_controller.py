"""
Actuation Controller: CPG Lifecycle and Actuator Dispatch

Orchestrates the CPG network and the impedance mapper for one controllable
tensegrity model, and is the only part of the control stack with side
effects on actuators.

Lifecycle:
---------
    UNINITIALIZED --attach--> ATTACHED --setup--> READY --step--> STEPPING
                                 ^                  |               |  ^
                                 |                  +---teardown----+  |
                                 +----------------------------------+  step
    ATTACHED/READY/STEPPING --detach--> TORNDOWN --attach--> ATTACHED

- attach: one subject at a time; a second attach raises AlreadyAttachedError
- setup: loads parameters, builds the muscle assignment; on failure the
  controller stays ATTACHED with no partial state
- step: advance the CPG, compute every setpoint, then dispatch them all
- teardown: releases all owned state; idempotent

Per-step data flow:
------------------
    CPGNetwork.advance(dt)
        -> for each node: (phase, amplitude)
            -> ImpedanceMapper.compute_setpoint(...) per assigned muscle
                -> actuator.set_control(target_length, stiffness, damping)

All setpoints of a step are computed from the post-advance network state
before the first dispatch, so actuators within a step always see mutually
consistent oscillator state.
"""

from dataclasses import dataclass
from enum import Enum, auto
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple
import warnings

import numpy as np

from tensegrity_cpg.core.control.cpg_network import CPGNetwork
from tensegrity_cpg.core.control.errors import (
    AlreadyAttachedError,
    ConfigError,
    InvalidStateError,
    TopologyMismatchError,
)
from tensegrity_cpg.core.control.impedance_mapper import (
    ImpedanceMapper,
    ImpedanceSetpoint,
    MuscleBounds,
)
from tensegrity_cpg.core.control.parameters import ParameterSet


class ControllerState(Enum):
    """Lifecycle state of an ActuationController."""
    UNINITIALIZED = auto()
    ATTACHED = auto()
    READY = auto()
    STEPPING = auto()
    TORNDOWN = auto()


@dataclass(frozen=True)
class MuscleBinding:
    """One actuator driven by one oscillator node."""
    node_id: int
    actuator: Any
    bounds: MuscleBounds
    scale: float = 1.0
    stiffness_scale: float = 1.0
    damping_scale: float = 1.0


MuscleAssignment = Mapping[int, Tuple[MuscleBinding, ...]]


class ActuationController:
    """
    CPG-driven impedance controller for a segmented tensegrity model.

    The subject (controlled model) must provide:
    - segment_ids() -> iterable of segment ids
    - actuator_groups_for_segment(segment_id) -> list of actuator handles

    Each actuator handle must provide set_control(target_length, stiffness,
    damping). Optional handle attributes rest_length, min_length, max_length
    and output_scale override the controller defaults for that muscle;
    stiffness_scale and damping_scale (default 1, finite and >= 0) scale the
    node's impedance gains so muscle groups on one segment can differ.

    Usage:
    ------
    >>> controller = ActuationController(TensorParameterSource(nodes, edges))
    >>> model.attach(controller)   # calls controller.attach(model)
    >>> model.setup()              # calls controller.setup(model)
    >>> for _ in range(1000):
    ...     model.step(0.001)      # calls controller.step(model, 0.001)
    >>> model.teardown()
    """

    def __init__(self, parameter_source: Any, config: Optional[dict] = None, verbose: bool = False):
        """
        Parameters
        ----------
        parameter_source : ParameterSource | ParameterSet
            Supplier of learned parameters, queried at every setup.
        config : dict, optional
            - 'integrator': CPG integrator, 'euler' or 'rk4'
            - 'amplitude_ramp_rate': CPG amplitude ramp rate [1/s]
            - 'rest_length': default muscle rest length [length]
            - 'min_length': default lower length bound [length]
            - 'max_length': default upper length bound [length]
        verbose : bool
            Print INFO lines on lifecycle transitions.
        """
        config = config or {}
        self.config = config
        self.parameter_source = parameter_source
        self.verbose = verbose

        self.network_config: Dict[str, Any] = {
            key: config[key] for key in ('integrator', 'amplitude_ramp_rate') if key in config
        }
        # Fail on a bad integrator/ramp setting at construction, not at setup
        CPGNetwork(self.network_config)

        self.default_bounds = MuscleBounds(
            rest_length=float(config.get('rest_length', 1.0)),
            min_length=float(config.get('min_length', 0.5)),
            max_length=float(config.get('max_length', 1.5)),
        )

        self._state = ControllerState.UNINITIALIZED
        self._subject: Optional[Any] = None
        self._clear_runtime()

    def _clear_runtime(self) -> None:
        self._parameters: Optional[ParameterSet] = None
        self._network: Optional[CPGNetwork] = None
        self._mapper: Optional[ImpedanceMapper] = None
        self._assignment: Optional[MuscleAssignment] = None
        self._last_setpoints: Tuple[ImpedanceSetpoint, ...] = ()
        self.step_count: int = 0
        self.dispatch_count: int = 0
        self.saturation_count: int = 0
        self._saturation_reported: bool = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def attach(self, subject: Any) -> None:
        """
        Register as the controller of `subject`.

        Raises
        ------
        AlreadyAttachedError
            If already attached to a subject (including the same one).
        TypeError
            If the subject lacks the structure capability.
        """
        if self._subject is not None:
            raise AlreadyAttachedError(
                f"Controller is already attached to {self._subject!r}; detach it first"
            )
        for capability in ('segment_ids', 'actuator_groups_for_segment'):
            if not callable(getattr(subject, capability, None)):
                raise TypeError(f"Subject {subject!r} does not provide {capability}()")
        self._subject = subject
        self._state = ControllerState.ATTACHED
        if self.verbose:
            print(f"INFO: ActuationController attached to {subject!r}")

    def setup(self, subject: Any) -> None:
        """
        Load parameters, build the CPG and the muscle assignment.

        Raises
        ------
        InvalidStateError
            If not ATTACHED to this subject.
        ConfigError
            If the learned parameters are invalid.
        TopologyMismatchError
            If the subject's segments do not match the parameter nodes.
        """
        self._require_subject(subject, 'setup')
        if self._state is not ControllerState.ATTACHED:
            raise InvalidStateError(
                f"setup() requires state ATTACHED, controller is {self._state.name}"
            )

        # Everything is built in locals so a failure leaves no partial controller
        source = self.parameter_source
        parameters = source if isinstance(source, ParameterSet) else source.load()
        assignment = self._build_assignment(subject, parameters)
        network = CPGNetwork(self.network_config)
        network.load(parameters)
        mapper = ImpedanceMapper(parameters, self.default_bounds)

        self._clear_runtime()
        self._parameters = parameters
        self._network = network
        self._mapper = mapper
        self._assignment = assignment
        self._state = ControllerState.READY

        if self.verbose:
            n_muscles = sum(len(group) for group in assignment.values())
            print(f"INFO: ActuationController ready ({parameters.n_nodes} nodes, "
                  f"{len(parameters.edges)} coupling edges, {n_muscles} muscles, "
                  f"integrator={network.integrator})")

    def step(self, subject: Any, dt: float) -> List[ImpedanceSetpoint]:
        """
        Advance the CPG by dt and dispatch one setpoint to every muscle.

        Parameters
        ----------
        subject : Any
            The attached subject
        dt : float
            Time step [s], must be positive

        Returns
        -------
        List[ImpedanceSetpoint]
            Setpoints in muscle-assignment order (ascending node id, then
            actuator order within the segment group)

        Raises
        ------
        InvalidStateError
            Before setup, after teardown, or for a foreign subject.
        ValueError
            If dt <= 0.
        """
        if self._state not in (ControllerState.READY, ControllerState.STEPPING):
            raise InvalidStateError(
                f"step() requires state READY or STEPPING, controller is {self._state.name}"
            )
        self._require_subject(subject, 'step')

        network = self._network
        network.advance(dt)

        commands: List[Tuple[MuscleBinding, ImpedanceSetpoint]] = []
        for node_id, bindings in self._assignment.items():
            phase = network.phase_at(node_id)
            amplitude = network.amplitude_at(node_id)
            for binding in bindings:
                setpoint = self._mapper.compute_setpoint(
                    node_id, phase, amplitude, binding.bounds, binding.scale,
                    binding.stiffness_scale, binding.damping_scale
                )
                commands.append((binding, setpoint))

        # The network has advanced: book the step before any handle can raise
        setpoints = [setpoint for _, setpoint in commands]
        n_saturated = sum(1 for sp in setpoints if sp.saturated)
        self.saturation_count += n_saturated
        self.dispatch_count += len(setpoints)
        self.step_count += 1
        self._last_setpoints = tuple(setpoints)
        self._state = ControllerState.STEPPING

        if n_saturated and not self._saturation_reported:
            self._saturation_reported = True
            warnings.warn(
                f"Muscle length setpoints saturated at t={network.time:.4f}s "
                f"({n_saturated}/{len(setpoints)} muscles clipped to their length bounds)"
            )

        for binding, setpoint in commands:
            binding.actuator.set_control(setpoint.target_length, setpoint.stiffness, setpoint.damping)

        return setpoints

    def teardown(self, subject: Any) -> None:
        """Release all owned state and return to ATTACHED. No-op if nothing is set up."""
        if self._state not in (ControllerState.READY, ControllerState.STEPPING):
            return
        self._require_subject(subject, 'teardown')
        if self.verbose:
            print(f"INFO: ActuationController teardown after {self.step_count} steps "
                  f"({self.saturation_count} saturated setpoints)")
        self._network.release()
        self._clear_runtime()
        self._state = ControllerState.ATTACHED

    def detach(self, subject: Any) -> None:
        """Tear down if needed and end the association with `subject`."""
        if self._subject is None:
            return
        self._require_subject(subject, 'detach')
        self.teardown(subject)
        self._subject = None
        self._state = ControllerState.TORNDOWN
        if self.verbose:
            print(f"INFO: ActuationController detached from {subject!r}")

    def _require_subject(self, subject: Any, operation: str) -> None:
        if self._subject is None:
            raise InvalidStateError(f"{operation}() called on a controller that is not attached")
        if subject is not self._subject:
            raise InvalidStateError(
                f"{operation}() called with {subject!r}, controller is attached to {self._subject!r}"
            )

    # ------------------------------------------------------------------
    # Muscle assignment
    # ------------------------------------------------------------------

    def _build_assignment(self, subject: Any, parameters: ParameterSet) -> MuscleAssignment:
        segment_ids = tuple(subject.segment_ids())
        node_ids = parameters.node_ids
        if len(segment_ids) != len(set(segment_ids)):
            raise TopologyMismatchError(f"Subject reports duplicate segment ids: {segment_ids}")
        if set(segment_ids) != set(node_ids):
            raise TopologyMismatchError(
                f"Subject has {len(segment_ids)} segments {sorted(segment_ids)}, "
                f"CPG parameters define {len(node_ids)} nodes {list(node_ids)}"
            )

        assignment: Dict[int, Tuple[MuscleBinding, ...]] = {}
        for node_id in node_ids:
            handles = list(subject.actuator_groups_for_segment(node_id))
            if not handles:
                raise TopologyMismatchError(f"Segment {node_id} has no actuators")
            assignment[node_id] = tuple(
                MuscleBinding(
                    node_id=node_id,
                    actuator=handle,
                    bounds=self._bounds_for(handle),
                    scale=self._handle_scale(handle, 'output_scale'),
                    stiffness_scale=self._handle_scale(handle, 'stiffness_scale', non_negative=True),
                    damping_scale=self._handle_scale(handle, 'damping_scale', non_negative=True),
                )
                for handle in handles
            )
        return MappingProxyType(assignment)

    @staticmethod
    def _handle_scale(handle: Any, attribute: str, non_negative: bool = False) -> float:
        value = float(getattr(handle, attribute, 1.0))
        if not np.isfinite(value):
            raise ConfigError(f"{attribute} of {handle!r} must be finite, got {value}")
        if non_negative and value < 0.0:
            raise ConfigError(f"{attribute} of {handle!r} must be >= 0, got {value}")
        return value

    def _bounds_for(self, handle: Any) -> MuscleBounds:
        defaults = self.default_bounds
        return MuscleBounds(
            rest_length=float(getattr(handle, 'rest_length', defaults.rest_length)),
            min_length=float(getattr(handle, 'min_length', defaults.min_length)),
            max_length=float(getattr(handle, 'max_length', defaults.max_length)),
        )

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def subject(self) -> Optional[Any]:
        return self._subject

    @property
    def parameters(self) -> Optional[ParameterSet]:
        return self._parameters

    @property
    def network(self) -> Optional[CPGNetwork]:
        return self._network

    @property
    def mapper(self) -> Optional[ImpedanceMapper]:
        return self._mapper

    @property
    def muscle_assignment(self) -> Optional[MuscleAssignment]:
        return self._assignment

    @property
    def last_setpoints(self) -> Tuple[ImpedanceSetpoint, ...]:
        return self._last_setpoints

    @property
    def saturation_fraction(self) -> float:
        """Fraction of dispatched setpoints that were clipped since setup."""
        if self.dispatch_count == 0:
            return 0.0
        return self.saturation_count / self.dispatch_count

    def get_state(self) -> Dict:
        """
        Get current controller state for logging/debugging.

        Returns
        -------
        Dict
            Lifecycle state, counters and (when set up) the CPG state
        """
        return {
            'state': self._state.name,
            'step_count': self.step_count,
            'dispatch_count': self.dispatch_count,
            'saturation_count': self.saturation_count,
            'saturation_fraction': self.saturation_fraction,
            'network': self._network.get_state() if self._network is not None else None,
        }
