"""
Impedance Mapper: Oscillator State to Muscle Setpoint

Converts one oscillator's instantaneous (phase, amplitude) into an impedance
command for a muscle driven by that oscillator:

    L_raw    = L_rest + s · r · sin(θ) + b
    L_target = clip(L_raw, L_min, L_max)
    K        = k_s · K₀ · (1 + g_K · r)
    C        = c_s · C₀ · (1 + g_C · r)

with s the per-muscle output scale, r the amplitude, b the node bias and
K₀, C₀, g_K, g_C taken from the node's learned parameters. k_s and c_s are
per-muscle impedance scales, so muscle groups sharing one oscillator can
run with different stiffness and damping. Stiffness and damping are
floored at zero (a negative gain with a large amplitude would otherwise
produce a pushing cable).

Non-finite inputs are rejected with ValueError rather than mapped to a
NaN length command.

Clipping to the physical length bounds is not an error. It is reported
through ImpedanceSetpoint.saturated so evaluation code can penalize
infeasible commands.

The mapper is a pure function of its inputs and the static ParameterSet.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np

from tensegrity_cpg.core.control.errors import ConfigError
from tensegrity_cpg.core.control.parameters import ParameterSet


@dataclass(frozen=True)
class MuscleBounds:
    """Rest length and physical length limits of one muscle."""
    rest_length: float
    min_length: float
    max_length: float

    def __post_init__(self):
        values = (self.rest_length, self.min_length, self.max_length)
        if not all(np.isfinite(v) for v in values):
            raise ConfigError(f"Muscle bounds must be finite, got {values}")
        if self.min_length < 0.0:
            raise ConfigError(f"min_length must be >= 0, got {self.min_length}")
        if not self.min_length <= self.rest_length <= self.max_length:
            raise ConfigError(
                f"Muscle bounds must satisfy min <= rest <= max, got "
                f"min={self.min_length}, rest={self.rest_length}, max={self.max_length}"
            )


@dataclass(frozen=True)
class ImpedanceSetpoint:
    """
    Transient impedance command for one muscle.

    Attributes
    ----------
    target_length : float
        Commanded rest length after clipping [length]
    stiffness : float
        Commanded stiffness [force/length]
    damping : float
        Commanded damping [force·s/length]
    saturated : bool
        True when the raw target length fell outside the muscle bounds
    commanded_offset : float
        Unclipped offset from the rest length (s · r · sin θ + b)
    """
    target_length: float
    stiffness: float
    damping: float
    saturated: bool
    commanded_offset: float


class ImpedanceMapper:
    """
    Stateless mapping from oscillator state to impedance setpoints.

    Usage:
    ------
    >>> mapper = ImpedanceMapper(parameters, MuscleBounds(1.0, 0.5, 1.5))
    >>> sp = mapper.compute_setpoint(0, np.pi / 2, 0.2)
    >>> sp.target_length
    1.2
    """

    def __init__(self, parameters: ParameterSet, default_bounds: MuscleBounds):
        """
        Parameters
        ----------
        parameters : ParameterSet
            Validated node parameters (read only)
        default_bounds : MuscleBounds
            Bounds used when compute_setpoint is called without per-muscle bounds
        """
        self.parameters = parameters
        self.default_bounds = default_bounds

    def compute_setpoint(
        self,
        node_id: int,
        phase: float,
        amplitude: float,
        bounds: Optional[MuscleBounds] = None,
        scale: float = 1.0,
        stiffness_scale: float = 1.0,
        damping_scale: float = 1.0
    ) -> ImpedanceSetpoint:
        """
        Compute the impedance setpoint for one muscle.

        Parameters
        ----------
        node_id : int
            Oscillator driving the muscle
        phase : float
            Oscillator phase [rad]
        amplitude : float
            Oscillator amplitude [length]
        bounds : MuscleBounds, optional
            Per-muscle bounds; defaults to the mapper's default_bounds
        scale : float
            Per-muscle output scale (several muscles may share one oscillator)
        stiffness_scale : float
            Per-muscle multiplier on the node stiffness
        damping_scale : float
            Per-muscle multiplier on the node damping

        Returns
        -------
        ImpedanceSetpoint

        Raises
        ------
        OutOfRangeError
            If node_id is not in the parameter set.
        ValueError
            If phase, amplitude or one of the scales is not finite.
        """
        node = self.parameters.node(node_id)
        bounds = bounds or self.default_bounds

        inputs = (phase, amplitude, scale, stiffness_scale, damping_scale)
        if not all(np.isfinite(v) for v in inputs):
            raise ValueError(
                f"Non-finite setpoint input for node {node_id}: phase={phase}, "
                f"amplitude={amplitude}, scale={scale}, stiffness_scale={stiffness_scale}, "
                f"damping_scale={damping_scale}"
            )

        offset = scale * amplitude * np.sin(phase) + node.bias
        raw_length = bounds.rest_length + offset
        target_length = min(max(raw_length, bounds.min_length), bounds.max_length)

        stiffness = max(stiffness_scale * node.stiffness * (1.0 + node.stiffness_gain * amplitude), 0.0)
        damping = max(damping_scale * node.damping * (1.0 + node.damping_gain * amplitude), 0.0)

        return ImpedanceSetpoint(
            target_length=float(target_length),
            stiffness=float(stiffness),
            damping=float(damping),
            saturated=bool(raw_length < bounds.min_length or raw_length > bounds.max_length),
            commanded_offset=float(offset),
        )
