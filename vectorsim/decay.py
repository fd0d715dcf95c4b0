"""Decay functions with per-deployment heterogeneity.

A decay function maps elapsed time since deployment to a remaining-potency
fraction in [0, 1]: f(0) = 1 and f is non-increasing.

Every shape is written in terms of an effective age a = t × t_mult, where
t_mult = base_t_mult / h combines the shape's characteristic rate with a
heterogeneity draw h ~ Lognormal(mean=1, CV). h is sampled once per
deployment and stored in a DecayHet token, so potency replays exactly after
a checkpoint restore.

Shapes (L = characteristic time in days, k = shape parameter):
  constant:        f = 1
  step:            f = 1 if t < L else 0
  linear:          f = max(0, 1 − t/L)
  exponential:     f = exp(−ln2 × t/L)                 (half-life L)
  weibull:         f = exp(−ln2 × (t/L)^k)             (half-life L)
  hill:            f = 1 / (1 + (t/L)^k)               (half-life L)
  smooth-compact:  f = exp(k − k/(1 − (t/L)²)) for t < L, else 0
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Mapping, Union

import numpy as np

from vectorsim.errors import ConfigurationError
from vectorsim.samplers import LognormalSampler


@dataclass(frozen=True)
class DecayHet:
    """Heterogeneity token: effective-age multiplier for one deployment."""
    t_mult: float


class DecayFunction:
    """Base class. Subclasses define `base_t_mult` and `_shape`."""

    name = ""

    def __init__(self, L: float = 1.0, k: float = 1.0, cv: float = 0.0):
        for pname, value in (('L', L), ('k', k), ('CV', cv)):
            if not math.isfinite(value):
                raise ConfigurationError(
                    f"decay function '{self.name}': {pname} must be finite, got {value}"
                )
        if L <= 0.0:
            raise ConfigurationError(
                f"decay function '{self.name}': L must be positive, got {L}"
            )
        if k <= 0.0:
            raise ConfigurationError(
                f"decay function '{self.name}': k must be positive, got {k}"
            )
        self.L = float(L)
        self.k = float(k)
        self._het_sampler = LognormalSampler(mean=1.0, cv=float(cv))

    @property
    def cv(self) -> float:
        return self._het_sampler.cv

    @property
    def base_t_mult(self) -> float:
        return 1.0 / self.L

    def _shape(self, age: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def sample_het(self, rng: np.random.Generator) -> DecayHet:
        """Draw a heterogeneity token (consumes RNG only when CV > 0)."""
        return DecayHet(self.base_t_mult / self._het_sampler.sample(rng))

    def unit_het(self) -> DecayHet:
        """Token with no individual variation."""
        return DecayHet(self.base_t_mult)

    def evaluate(
        self,
        elapsed: Union[float, np.ndarray],
        het: DecayHet,
    ) -> Union[float, np.ndarray]:
        """Remaining potency fraction after `elapsed` days.

        Accepts a scalar (returns float) or an array (returns array).
        """
        t = np.asarray(elapsed, dtype=np.float64)
        if np.any(t < 0.0):
            raise ValueError(f"elapsed time must be >= 0, got {elapsed}")
        out = self._shape(np.atleast_1d(t) * het.t_mult)
        if t.ndim == 0:
            return float(out[0])
        return out.reshape(t.shape)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(L={self.L}, k={self.k}, CV={self.cv})"


class ConstantDecay(DecayFunction):
    name = "constant"

    def _shape(self, age):
        return np.ones_like(age)


class StepDecay(DecayFunction):
    name = "step"

    def _shape(self, age):
        return np.where(age < 1.0, 1.0, 0.0)


class LinearDecay(DecayFunction):
    name = "linear"

    def _shape(self, age):
        return np.where(age < 1.0, 1.0 - age, 0.0)


class ExponentialDecay(DecayFunction):
    name = "exponential"

    @property
    def base_t_mult(self) -> float:
        return math.log(2.0) / self.L

    def _shape(self, age):
        return np.exp(-age)


class WeibullDecay(DecayFunction):
    name = "weibull"

    @property
    def base_t_mult(self) -> float:
        return math.log(2.0) ** (1.0 / self.k) / self.L

    def _shape(self, age):
        return np.exp(-np.power(age, self.k))


class HillDecay(DecayFunction):
    name = "hill"

    def _shape(self, age):
        return 1.0 / (1.0 + np.power(age, self.k))


class SmoothCompactDecay(DecayFunction):
    name = "smooth-compact"

    def _shape(self, age):
        out = np.zeros_like(age)
        inside = age < 1.0
        a = age[inside]
        out[inside] = np.exp(self.k - self.k / (1.0 - a * a))
        return out


DECAY_FUNCTIONS = {
    cls.name: cls
    for cls in (
        ConstantDecay, StepDecay, LinearDecay, ExponentialDecay,
        WeibullDecay, HillDecay, SmoothCompactDecay,
    )
}


def make_decay_function(descriptor: Union[Mapping[str, Any], Any]) -> DecayFunction:
    """Build a decay function from a DecaySection or a plain mapping.

    Raises:
        ConfigurationError: Unknown function name or invalid parameters.
    """
    if isinstance(descriptor, Mapping):
        get = descriptor.get
    else:
        def get(key, default=None):
            return getattr(descriptor, key, default)

    function = get('function', None)
    if function not in DECAY_FUNCTIONS:
        raise ConfigurationError(
            f"decay function must be one of {sorted(DECAY_FUNCTIONS)}, "
            f"got {function!r}"
        )
    try:
        L = float(get('L', 1.0))
        k = float(get('k', 1.0))
        cv = float(get('CV', 0.0))
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"decay function '{function}': {e}") from e
    return DECAY_FUNCTIONS[function](L=L, k=k, cv=cv)
