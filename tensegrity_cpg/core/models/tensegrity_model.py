"""
Segmented Tensegrity Model (Controller Host)

A spine-like tensegrity model made of rigid segments linked by actuated
cables. Each segment carries a group of muscles that a controller may drive
through their impedance interface.

The model is the subject in an observer relationship: controllers are held
by reference and notified at setup, every step and teardown. It exposes the
structure capability the controllers query at setup:

    segment_ids()                      -> (0, 1, ..., n_segments - 1)
    actuator_groups_for_segment(id)    -> [CableActuatorModel, ...]

Rigid-body dynamics are out of scope; each cable uses the quasi-static
length model of CableActuatorModel.
"""

import numpy as np
from typing import Any, Dict, List, Optional, Tuple

from tensegrity_cpg.core.actuators.cable_actuator import CableActuatorModel


class TensegrityModel:
    """
    Segmented tensegrity structure with per-segment muscle groups.

    Usage:
    ------
    >>> model = TensegrityModel({'n_segments': 3, 'muscles_per_segment': 4})
    >>> model.attach(controller)
    >>> model.setup()
    >>> tensions = model.step(0.001)
    >>> model.teardown()
    """

    def __init__(self, config: Optional[dict] = None, name: str = 'TensegrityModel'):
        """
        Parameters
        ----------
        config : dict, optional
            - 'n_segments': Number of controllable segments
            - 'muscles_per_segment': Muscles attached to each segment
            - 'actuator_config': CableActuatorModel config shared by all muscles
            - 'muscle_scales': Output scale per muscle position in a segment
              (e.g. [1, -1, 1, -1] for antagonistic pairs)
            - 'muscle_impedance_scales': (stiffness_scale, damping_scale) per
              muscle position, for muscle groups with different impedance
        name : str
            Label used in log output
        """
        config = config or {}
        self.config = config
        self.name = name

        self.n_segments: int = int(config.get('n_segments', 3))
        self.muscles_per_segment: int = int(config.get('muscles_per_segment', 4))
        if self.n_segments < 1 or self.muscles_per_segment < 1:
            raise ValueError("n_segments and muscles_per_segment must be >= 1")

        actuator_config = dict(config.get('actuator_config', {}))
        muscle_scales = config.get('muscle_scales', [1.0] * self.muscles_per_segment)
        if len(muscle_scales) != self.muscles_per_segment:
            raise ValueError(
                f"muscle_scales needs {self.muscles_per_segment} entries, got {len(muscle_scales)}"
            )
        impedance_scales = config.get('muscle_impedance_scales',
                                      [(1.0, 1.0)] * self.muscles_per_segment)
        if len(impedance_scales) != self.muscles_per_segment:
            raise ValueError(
                f"muscle_impedance_scales needs {self.muscles_per_segment} entries, "
                f"got {len(impedance_scales)}"
            )

        self.muscles: Dict[int, List[CableActuatorModel]] = {}
        for segment in range(self.n_segments):
            group = []
            for scale, (k_scale, c_scale) in zip(muscle_scales, impedance_scales):
                muscle_config = dict(actuator_config)
                muscle_config['output_scale'] = float(scale)
                muscle_config['stiffness_scale'] = float(k_scale)
                muscle_config['damping_scale'] = float(c_scale)
                group.append(CableActuatorModel(muscle_config))
            self.muscles[segment] = group

        self._observers: List[Any] = []
        self.time: float = 0.0
        self.is_setup: bool = False

    def __repr__(self) -> str:
        return f"{self.name}(segments={self.n_segments}, muscles={self.n_muscles})"

    # ------------------------------------------------------------------
    # Observer management and lifecycle notifications
    # ------------------------------------------------------------------

    def attach(self, controller: Any) -> None:
        """Register a controller; it is notified at setup, step and teardown."""
        controller.attach(self)
        self._observers.append(controller)

    def detach(self, controller: Any) -> None:
        controller.detach(self)
        self._observers.remove(controller)

    @property
    def controllers(self) -> Tuple[Any, ...]:
        return tuple(self._observers)

    def setup(self) -> None:
        """Reset the structure and notify controllers of setup."""
        for group in self.muscles.values():
            for muscle in group:
                muscle.reset()
        self.time = 0.0
        for controller in self._observers:
            controller.setup(self)
        self.is_setup = True

    def step(self, dt: float) -> np.ndarray:
        """
        Notify controllers of the step, then advance every muscle.

        Parameters
        ----------
        dt : float
            Time step [s], must be positive

        Returns
        -------
        np.ndarray
            Cable tensions [N] in segment/muscle order
        """
        if dt <= 0.0:
            raise ValueError(f"dt must be positive, got {dt}")
        if not self.is_setup:
            raise RuntimeError(f"{self!r} must be set up before stepping")

        for controller in self._observers:
            controller.step(self, dt)

        tensions = np.array([muscle.step(dt) for muscle in self.all_muscles()])
        self.time += dt
        return tensions

    def teardown(self) -> None:
        """Notify controllers of teardown."""
        for controller in self._observers:
            controller.teardown(self)
        self.is_setup = False

    # ------------------------------------------------------------------
    # Structure capability
    # ------------------------------------------------------------------

    def segment_ids(self) -> Tuple[int, ...]:
        return tuple(self.muscles)

    def actuator_groups_for_segment(self, segment_id: int) -> List[CableActuatorModel]:
        try:
            return list(self.muscles[segment_id])
        except KeyError:
            raise KeyError(f"{self!r} has no segment {segment_id!r}") from None

    def all_muscles(self) -> List[CableActuatorModel]:
        return [muscle for segment in self.segment_ids() for muscle in self.muscles[segment]]

    @property
    def n_muscles(self) -> int:
        return self.n_segments * self.muscles_per_segment

    def rest_lengths(self) -> np.ndarray:
        return np.array([m.current_rest_length for m in self.all_muscles()])

    def tensions(self) -> np.ndarray:
        return np.array([m.tension for m in self.all_muscles()])

    def get_state(self) -> Dict:
        """
        Get the current structure state.

        Returns
        -------
        Dict
            Time, rest lengths, lengths and tensions of every muscle
        """
        muscles = self.all_muscles()
        return {
            'time': self.time,
            'rest_lengths': np.array([m.current_rest_length for m in muscles]),
            'lengths': np.array([m.length for m in muscles]),
            'tensions': np.array([m.tension for m in muscles]),
        }
