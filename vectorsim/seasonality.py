"""Seasonal forcing from log-Fourier series.

Daily EIR (and from it the target sporozoite rate) is described by a
Fourier series of its logarithm:

  v(t) = exp( a₀ + Σₙ aₙ cos(n(ωt − r)) + bₙ sin(n(ωt − r)) ),  ω = 2π/365

with coefficients stored as [a₀, a₁, b₁, a₂, b₂, ...] and r the rotation
angle. Because the series is in log space, adding log(c) to a₀ multiplies
the synthesized curve by c.

Provides:
  - exp_idft: inverse synthesis at a rotation angle
  - log_dft: coefficients from 12 monthly mean values
  - find_angle: discretized phase search (L1 distance) over a full turn
"""

from __future__ import annotations

import math
from typing import Sequence

import numpy as np

from vectorsim.config import DAYS_PER_YEAR, SeasonalitySection
from vectorsim.errors import ConfigurationError


MONTHS_PER_YEAR = 12
MAX_MONTHLY_HARMONICS = 5


def _check_coefficients(coeffs: Sequence[float]) -> np.ndarray:
    fc = np.asarray(coeffs, dtype=np.float64)
    if fc.ndim != 1 or fc.size % 2 == 0:
        raise ConfigurationError(
            "Fourier coefficients must be an odd-length list "
            f"[a0, a1, b1, ...], got length {fc.size}"
        )
    if not np.all(np.isfinite(fc)):
        raise ConfigurationError("Fourier coefficients must be finite")
    return fc


def _synthesize(fc: np.ndarray, angles: np.ndarray, n_days: int) -> np.ndarray:
    """Curves for each rotation angle; shape (len(angles), n_days)."""
    w = 2.0 * np.pi / n_days
    wt = w * np.arange(n_days)[np.newaxis, :] - angles[:, np.newaxis]
    log_v = np.full(wt.shape, fc[0])
    for n in range(1, (fc.size + 1) // 2):
        log_v += fc[2 * n - 1] * np.cos(n * wt) + fc[2 * n] * np.sin(n * wt)
    return np.exp(log_v)


def exp_idft(
    coeffs: Sequence[float],
    rotate_angle: float = 0.0,
    n_days: int = DAYS_PER_YEAR,
) -> np.ndarray:
    """Synthesize a daily curve from log-Fourier coefficients.

    Args:
        coeffs: Odd-length [a0, a1, b1, a2, b2, ...].
        rotate_angle: Phase rotation r (radians); positive delays the curve.
        n_days: Period length in days.

    Returns:
        Array of shape (n_days,).
    """
    fc = _check_coefficients(coeffs)
    return _synthesize(fc, np.array([rotate_angle], dtype=np.float64), n_days)[0]


def log_dft(monthly_values: Sequence[float], n_harmonics: int = 2) -> np.ndarray:
    """Log-Fourier coefficients from 12 monthly means at month midpoints.

    Month m is placed at angle 2π(m + ½)/12, so `exp_idft(coeffs, 0)`
    evaluated at mid-month days recovers any monthly series whose log is a
    trigonometric polynomial of degree ≤ n_harmonics.
    """
    v = np.asarray(monthly_values, dtype=np.float64)
    if v.shape != (MONTHS_PER_YEAR,):
        raise ConfigurationError(
            f"monthly EIR needs {MONTHS_PER_YEAR} values, got {v.size}"
        )
    if not np.all(np.isfinite(v)) or np.any(v <= 0.0):
        raise ConfigurationError("monthly EIR values must be positive and finite")
    if not 1 <= n_harmonics <= MAX_MONTHLY_HARMONICS:
        raise ConfigurationError(
            f"n_harmonics must be in [1, {MAX_MONTHLY_HARMONICS}], got {n_harmonics}"
        )

    log_v = np.log(v)
    theta = 2.0 * np.pi * (np.arange(MONTHS_PER_YEAR) + 0.5) / MONTHS_PER_YEAR
    coeffs = np.empty(2 * n_harmonics + 1)
    coeffs[0] = log_v.mean()
    for n in range(1, n_harmonics + 1):
        coeffs[2 * n - 1] = 2.0 * np.mean(log_v * np.cos(n * theta))
        coeffs[2 * n] = 2.0 * np.mean(log_v * np.sin(n * theta))
    return coeffs


def resolve_fourier_coefficients(section: SeasonalitySection) -> np.ndarray:
    """Fourier coefficients for a species' seasonality section.

    Raises:
        ConfigurationError: If neither form is given or values are invalid.
    """
    if not math.isfinite(section.rotate_angle):
        raise ConfigurationError("seasonality.rotate_angle must be finite")
    if section.fourier_coefficients is not None:
        return _check_coefficients(section.fourier_coefficients)
    if section.monthly_eir is not None:
        return log_dft(section.monthly_eir, section.n_harmonics)
    raise ConfigurationError(
        "seasonality requires fourier_coefficients or monthly_eir"
    )


def candidate_offsets(n_steps: int = DAYS_PER_YEAR) -> np.ndarray:
    """Phase offsets 2πk/n_steps over one full turn, wrapped to [−π, π)."""
    k = np.arange(n_steps)
    k = np.where(2 * k >= n_steps, k - n_steps, k)
    return 2.0 * np.pi * k / n_steps


def find_angle(
    coeffs: Sequence[float],
    rotate_angle: float,
    observed: np.ndarray,
) -> float:
    """Phase offset whose synthesized curve is closest (L1) to `observed`.

    Candidates are resynthesized at `rotate_angle + offset` for each offset
    of `candidate_offsets()`. Distances equal up to floating round-off are
    ties; the tie with the smallest |offset| wins, so an already aligned
    curve returns exactly 0.
    """
    fc = _check_coefficients(coeffs)
    observed = np.asarray(observed, dtype=np.float64)
    offsets = candidate_offsets(observed.size)
    curves = _synthesize(fc, rotate_angle + offsets, observed.size)
    dist = np.abs(curves - observed[np.newaxis, :]).sum(axis=1)

    best = dist.min()
    tol = 1e-9 * (best + np.abs(observed).sum())
    ties = np.flatnonzero(dist <= best + tol)
    return float(offsets[ties[np.argmin(np.abs(offsets[ties]))]])
