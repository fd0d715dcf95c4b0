"""Parametric samplers drawing from caller-owned numpy Generators."""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from vectorsim.errors import ConfigurationError


@dataclass(frozen=True)
class NormalSampler:
    """Normal(mu, sigma). sigma = 0 always returns mu without consuming RNG."""
    mu: float
    sigma: float

    def __post_init__(self):
        if not (math.isfinite(self.mu) and math.isfinite(self.sigma)):
            raise ConfigurationError(
                f"NormalSampler: parameters must be finite, got mu={self.mu}, "
                f"sigma={self.sigma}"
            )
        if self.sigma < 0.0:
            raise ConfigurationError(
                f"NormalSampler: sigma must be >= 0, got {self.sigma}"
            )

    @classmethod
    def from_mean_cv(cls, mean: float, cv: float) -> 'NormalSampler':
        return cls(mu=mean, sigma=mean * cv)

    def sample(self, rng: np.random.Generator) -> float:
        if self.sigma == 0.0:
            return self.mu
        return float(rng.normal(self.mu, self.sigma))


@dataclass(frozen=True)
class LognormalSampler:
    """Lognormal parameterized by its mean and coefficient of variation.

    σ² = ln(1 + CV²),  μ = ln(mean) − σ²/2
    CV = 0 always returns the mean without consuming RNG.
    """
    mean: float = 1.0
    cv: float = 0.0

    def __post_init__(self):
        if not (math.isfinite(self.mean) and self.mean > 0.0):
            raise ConfigurationError(
                f"LognormalSampler: mean must be positive, got {self.mean}"
            )
        if not (math.isfinite(self.cv) and self.cv >= 0.0):
            raise ConfigurationError(
                f"LognormalSampler: CV must be >= 0, got {self.cv}"
            )

    @property
    def sigma(self) -> float:
        return math.sqrt(math.log1p(self.cv * self.cv))

    @property
    def mu(self) -> float:
        s = self.sigma
        return math.log(self.mean) - 0.5 * s * s

    def sample(self, rng: np.random.Generator) -> float:
        if self.cv == 0.0:
            return self.mean
        return float(rng.lognormal(self.mu, self.sigma))
