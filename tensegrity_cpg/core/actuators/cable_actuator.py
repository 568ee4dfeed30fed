"""
Impedance-Controlled Cable Actuator Model

This module implements a reduced-order model of an actuated tensegrity cable
("muscle"). The controller commands a target rest length together with a
stiffness and damping; the actuator tracks the command with a bounded motor
speed and produces a cable tension:

    dL_rest/dt = clip((L_target - L_rest) / dt, -v_max, v_max)
    T          = clip(K · (L - L_rest) + C · dL/dt, T_min, T_max)

Without a physics engine the cable length L relaxes toward the rest length
with a first-order lag (quasi-static cable):

    τ · dL/dt = L_rest - L

Cables cannot push, so T_min defaults to zero.
"""

import numpy as np
from typing import Dict


class CableActuatorModel:
    """
    Reduced-order impedance-controlled cable actuator.

    Non-ideal effects included:
    - Rest-length slew limit (motor speed)
    - Tension saturation (cable slack and motor torque limit)
    - First-order length lag standing in for the structure's compliance
    """

    def __init__(self, config: dict):
        """
        Initialize the cable actuator.

        Parameters
        ----------
        config : dict
            Configuration dictionary containing:
            - 'rest_length': Nominal rest length [m]
            - 'min_length': Minimum commandable rest length [m]
            - 'max_length': Maximum commandable rest length [m]
            - 'max_speed': Maximum rest-length rate [m/s]
            - 'max_tension': Maximum tension [N]
            - 'min_tension': Minimum tension [N] (0 = slack cable)
            - 'length_time_constant': Length lag time constant [s]
            - 'output_scale': Scale applied to the oscillator output for this muscle
            - 'stiffness_scale': Multiplier on the commanded stiffness of this muscle
            - 'damping_scale': Multiplier on the commanded damping of this muscle
            - 'pretension_strain': Initial strain L/L_rest - 1 [-]
        """
        self.rest_length: float = config.get('rest_length', 1.0)  # [m]
        self.min_length: float = config.get('min_length', 0.5)  # [m]
        self.max_length: float = config.get('max_length', 1.5)  # [m]

        self.max_speed: float = config.get('max_speed', 2.0)  # [m/s]
        self.max_tension: float = config.get('max_tension', 1000.0)  # [N]
        self.min_tension: float = config.get('min_tension', 0.0)  # [N]
        self.length_time_constant: float = config.get('length_time_constant', 0.05)  # [s]
        self.output_scale: float = config.get('output_scale', 1.0)
        self.stiffness_scale: float = config.get('stiffness_scale', 1.0)
        self.damping_scale: float = config.get('damping_scale', 1.0)
        self.pretension_strain: float = config.get('pretension_strain', 0.05)

        if not self.min_length <= self.rest_length <= self.max_length:
            raise ValueError(
                f"Cable bounds must satisfy min <= rest <= max, got "
                f"{self.min_length}, {self.rest_length}, {self.max_length}"
            )
        if self.max_speed <= 0.0 or self.length_time_constant <= 0.0:
            raise ValueError("max_speed and length_time_constant must be positive")

        self.reset()

    def reset(self) -> None:
        """
        Reset the actuator state to initial conditions.
        """
        self.current_rest_length: float = self.rest_length
        self.length: float = self.rest_length * (1.0 + self.pretension_strain)
        self.velocity: float = 0.0
        self.tension: float = 0.0

        # Last command (holds until the next set_control)
        self.target_length: float = self.rest_length
        self.stiffness: float = 0.0
        self.damping: float = 0.0
        self.command_count: int = 0

    def set_control(self, target_length: float, stiffness: float, damping: float) -> None:
        """
        Latch an impedance command. Non-blocking; applied on the next step.

        Parameters
        ----------
        target_length : float
            Target rest length [m]
        stiffness : float
            Impedance stiffness [N/m]
        damping : float
            Impedance damping [N·s/m]
        """
        self.target_length = float(np.clip(target_length, self.min_length, self.max_length))
        self.stiffness = max(float(stiffness), 0.0)
        self.damping = max(float(damping), 0.0)
        self.command_count += 1

    def step(self, dt: float) -> float:
        """
        Compute one time step of the actuator.

        Parameters
        ----------
        dt : float
            Time step [s]

        Returns
        -------
        float
            Output cable tension [N]
        """
        # Rest length tracks the target at bounded motor speed
        max_delta = self.max_speed * dt
        delta = np.clip(self.target_length - self.current_rest_length, -max_delta, max_delta)
        self.current_rest_length += delta

        # Quasi-static length: exact first-order update
        alpha = 1.0 - np.exp(-dt / self.length_time_constant)
        new_length = self.length + alpha * (self.current_rest_length - self.length)
        self.velocity = (new_length - self.length) / dt
        self.length = new_length

        # Impedance law with saturation
        tension = self.stiffness * (self.length - self.current_rest_length) + self.damping * self.velocity
        self.tension = float(np.clip(tension, self.min_tension, self.max_tension))

        return self.tension

    def get_state(self) -> Dict:
        """
        Get the current internal state of the actuator.

        Returns
        -------
        Dict
            Dictionary containing current state variables
        """
        return {
            'rest_length': self.current_rest_length,
            'length': self.length,
            'velocity': self.velocity,
            'tension': self.tension,
            'target_length': self.target_length,
            'stiffness': self.stiffness,
            'damping': self.damping,
        }
