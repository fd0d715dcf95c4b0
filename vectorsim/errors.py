"""Fatal error taxonomy for vectorsim.

Two families abort a run:
  - ConfigurationError: raised while building parameterizations, before
    any simulated day runs.
  - VectorFittingError: raised by the emergence calibration during warm-up.

ConfigurationError subclasses ValueError so callers validating plain
configuration values can keep catching ValueError.
"""


class ConfigurationError(ValueError):
    """Invalid scenario configuration (bounds, sums, unsupported modes)."""


class VectorFittingError(RuntimeError):
    """Emergence calibration could not proceed."""


class DegenerateTransmissionError(VectorFittingError):
    """Simulated sporozoite rate is ~0 although transmission was requested."""

    def __init__(self, message: str = ""):
        super().__init__(
            message
            or "Simulated S_v is approx 0 (mosquitoes are not infectious "
               "before interventions). Calibration cannot handle this; "
               "increase the EIR or change the entomology model."
        )


class FittingDivergenceError(VectorFittingError):
    """Correction factor out of bounds despite non-negligible transmission."""


class CheckpointError(RuntimeError):
    """Checkpoint stream has the wrong header, version or length."""
