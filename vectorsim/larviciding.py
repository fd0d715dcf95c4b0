"""Larviciding: decay-function reduction of vector emergence.

survival(t) = 1 − effectiveness × decay(t − t_deploy, het)

The emergence engine multiplies each day's emergence by this factor.
"""

from __future__ import annotations

import math
from typing import Optional

import numpy as np

from vectorsim.config import LarvicidingSection
from vectorsim.decay import DecayFunction, DecayHet, make_decay_function
from vectorsim.errors import ConfigurationError


class LarvicidingParams:
    """Validated larviciding effect parameters for one species."""

    def __init__(self, section: LarvicidingSection):
        eff = section.effectiveness
        if not (math.isfinite(eff) and 0.0 <= eff <= 1.0):
            raise ConfigurationError(
                f"larviciding.effectiveness must be in [0, 1], got {eff}"
            )
        self.effectiveness = float(eff)
        self.decay: DecayFunction = make_decay_function(section.decay)


class Larviciding:
    """Current larviciding deployment for one species' breeding sites.

    Checkpoint layout (in order): deploy_time, decay_het.t_mult.
    """

    def __init__(self, params: LarvicidingParams):
        self.params = params
        self.deploy_time: Optional[int] = None
        self.decay_het = DecayHet(0.0)

    def deploy(self, now: int, rng: np.random.Generator) -> None:
        self.deploy_time = int(now)
        self.decay_het = self.params.decay.sample_het(rng)

    def survival_factor(self, now: int) -> float:
        """Fraction of emergence surviving larviciding on day `now`."""
        if self.deploy_time is None or now < self.deploy_time:
            return 1.0
        remaining = self.params.decay.evaluate(now - self.deploy_time, self.decay_het)
        return 1.0 - self.params.effectiveness * remaining

    def checkpoint_write(self, writer) -> None:
        writer.write_time(self.deploy_time)
        writer.write_float(self.decay_het.t_mult)

    def checkpoint_read(self, reader) -> None:
        self.deploy_time = reader.read_time()
        self.decay_het = DecayHet(reader.read_float())
