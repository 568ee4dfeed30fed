"""
Actuation control package for the tensegrity digital twin.

This package provides the CPG-based impedance control stack:
- Learned-parameter model (node/edge tensors -> validated ParameterSet)
- Coupled phase-oscillator network (CPGNetwork)
- Oscillator-to-muscle impedance mapping (ImpedanceMapper)
- Lifecycle orchestration and actuator dispatch (ActuationController)
"""

from .errors import (
    ConfigError,
    TopologyMismatchError,
    InvalidStateError,
    AlreadyAttachedError,
    OutOfRangeError,
)
from .parameters import (
    NODE_PARAMETER_FIELDS,
    NodeParameters,
    CouplingParameters,
    CouplingEdge,
    ParameterSet,
    ParameterSource,
    TensorParameterSource,
    MappingParameterSource,
)
from .cpg_network import (
    TWO_PI,
    OscillatorNode,
    CPGNetwork,
    wrap_phase,
)
from .impedance_mapper import (
    MuscleBounds,
    ImpedanceSetpoint,
    ImpedanceMapper,
)
from .actuation_controller import (
    ControllerState,
    MuscleBinding,
    ActuationController,
)

__all__ = [
    'ConfigError',
    'TopologyMismatchError',
    'InvalidStateError',
    'AlreadyAttachedError',
    'OutOfRangeError',
    'NODE_PARAMETER_FIELDS',
    'NodeParameters',
    'CouplingParameters',
    'CouplingEdge',
    'ParameterSet',
    'ParameterSource',
    'TensorParameterSource',
    'MappingParameterSource',
    'TWO_PI',
    'OscillatorNode',
    'CPGNetwork',
    'wrap_phase',
    'MuscleBounds',
    'ImpedanceSetpoint',
    'ImpedanceMapper',
    'ControllerState',
    'MuscleBinding',
    'ActuationController',
]
