"""
Error Taxonomy for the Tensegrity Actuation Control Subsystem

All conditions raised here are caller-contract or data-validity violations.
None of them are transient, so nothing in the control stack retries.

- ConfigError: malformed or inconsistent learned-parameter tensors
- TopologyMismatchError: structure does not match the parameter node set
- InvalidStateError: controller lifecycle contract violated
- AlreadyAttachedError: controller attached to a second subject
- OutOfRangeError: query for an unknown node id

Actuator saturation is not an error and has no exception class; it is
reported through ImpedanceSetpoint.saturated.
"""


class ConfigError(ValueError):
    """Learned-parameter tensors are malformed or inconsistent."""


class TopologyMismatchError(ValueError):
    """Subject's actuator groups do not match the expected node set."""


class InvalidStateError(RuntimeError):
    """Lifecycle operation called in a state that does not allow it."""


class AlreadyAttachedError(InvalidStateError):
    """Controller is already attached to a subject."""


class OutOfRangeError(KeyError):
    """Node id is not part of the network."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the message readable
        return str(self.args[0]) if self.args else ''
