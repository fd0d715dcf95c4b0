"""Tests for vectorsim.seasonality — log-Fourier synthesis and phase search."""

import math

import numpy as np
import pytest

from vectorsim.config import SeasonalitySection
from vectorsim.errors import ConfigurationError
from vectorsim.seasonality import (
    MONTHS_PER_YEAR,
    candidate_offsets,
    exp_idft,
    find_angle,
    log_dft,
    resolve_fourier_coefficients,
)


COEFFS = np.array([-3.0, 0.8, -0.4, 0.3, 0.1])
DAY_ANGLE = 2.0 * np.pi / 365


# ═══════════════════════════════════════════════════════════════════════
# SYNTHESIS
# ═══════════════════════════════════════════════════════════════════════

class TestExpIdft:
    def test_shape_and_positive(self):
        v = exp_idft(COEFFS)
        assert v.shape == (365,)
        assert np.all(v > 0.0)

    def test_constant_series(self):
        np.testing.assert_allclose(exp_idft([math.log(2.0)]), 2.0)

    def test_a0_shift_scales_curve(self):
        shifted = COEFFS.copy()
        shifted[0] += math.log(7.0)
        np.testing.assert_allclose(exp_idft(shifted), 7.0 * exp_idft(COEFFS))

    def test_rotation_delays_curve(self):
        """Rotating by d days of angle is the same as rolling d days later."""
        base = exp_idft(COEFFS, 0.0)
        rotated = exp_idft(COEFFS, 10 * DAY_ANGLE)
        np.testing.assert_allclose(rotated, np.roll(base, 10))

    def test_period_length(self):
        assert exp_idft(COEFFS, n_days=73).shape == (73,)

    def test_closed_form_day_zero(self):
        expected = math.exp(-3.0 + 0.8 + 0.3)
        assert exp_idft(COEFFS)[0] == pytest.approx(expected)

    def test_even_length_rejected(self):
        with pytest.raises(ConfigurationError, match="odd-length"):
            exp_idft([1.0, 2.0])

    def test_non_finite_rejected(self):
        with pytest.raises(ConfigurationError, match="finite"):
            exp_idft([0.0, float('nan'), 0.0])


# ═══════════════════════════════════════════════════════════════════════
# MONTHLY INPUT
# ═══════════════════════════════════════════════════════════════════════

class TestLogDft:
    def test_constant_months(self):
        coeffs = log_dft([0.5] * 12, n_harmonics=2)
        assert coeffs.shape == (5,)
        assert coeffs[0] == pytest.approx(math.log(0.5))
        np.testing.assert_allclose(coeffs[1:], 0.0, atol=1e-12)

    def test_recovers_trig_polynomial(self):
        theta = 2.0 * np.pi * (np.arange(MONTHS_PER_YEAR) + 0.5) / MONTHS_PER_YEAR
        log_v = 0.5 + 0.7 * np.cos(theta) - 0.3 * np.sin(theta) + 0.2 * np.cos(2 * theta)
        coeffs = log_dft(np.exp(log_v), n_harmonics=2)
        np.testing.assert_allclose(coeffs, [0.5, 0.7, -0.3, 0.2, 0.0], atol=1e-12)

    def test_monthly_midpoints_reproduced(self):
        theta = 2.0 * np.pi * (np.arange(MONTHS_PER_YEAR) + 0.5) / MONTHS_PER_YEAR
        monthly = np.exp(-2.0 + 0.6 * np.sin(theta))
        daily = exp_idft(log_dft(monthly, n_harmonics=1), 0.0, n_days=24)
        np.testing.assert_allclose(daily[1::2], monthly)

    def test_wrong_length(self):
        with pytest.raises(ConfigurationError, match="12 values"):
            log_dft([1.0] * 11)

    def test_non_positive_values(self):
        with pytest.raises(ConfigurationError, match="positive"):
            log_dft([1.0] * 11 + [0.0])

    def test_harmonic_limit(self):
        with pytest.raises(ConfigurationError, match="n_harmonics"):
            log_dft([1.0] * 12, n_harmonics=6)


class TestResolveFourierCoefficients:
    def test_coefficients_take_precedence(self):
        section = SeasonalitySection(fourier_coefficients=[-2.0, 0.1, 0.2],
                                     monthly_eir=[1.0] * 12)
        np.testing.assert_array_equal(resolve_fourier_coefficients(section), [-2.0, 0.1, 0.2])

    def test_monthly_path(self):
        section = SeasonalitySection(fourier_coefficients=None,
                                     monthly_eir=[0.2] * 12, n_harmonics=3)
        coeffs = resolve_fourier_coefficients(section)
        assert coeffs.shape == (7,)
        assert coeffs[0] == pytest.approx(math.log(0.2))

    def test_neither_given(self):
        section = SeasonalitySection(fourier_coefficients=None, monthly_eir=None)
        with pytest.raises(ConfigurationError, match="seasonality"):
            resolve_fourier_coefficients(section)


# ═══════════════════════════════════════════════════════════════════════
# PHASE SEARCH
# ═══════════════════════════════════════════════════════════════════════

class TestFindAngle:
    def test_candidate_offsets(self):
        offsets = candidate_offsets()
        assert offsets.shape == (365,)
        assert offsets[0] == 0.0
        assert offsets.min() >= -np.pi
        assert offsets.max() < np.pi

    def test_aligned_curve_gives_zero(self):
        observed = exp_idft(COEFFS, 0.3)
        assert find_angle(COEFFS, 0.3, observed) == 0.0

    def test_scaled_aligned_curve_gives_zero(self):
        observed = 0.5 * exp_idft(COEFFS, 0.3)
        assert find_angle(COEFFS, 0.3, observed) == 0.0

    @pytest.mark.parametrize("days", [20, -30, 150])
    def test_recovers_shift(self, days):
        observed = np.roll(exp_idft(COEFFS, 0.0), days)
        assert find_angle(COEFFS, 0.0, observed) == pytest.approx(days * DAY_ANGLE)

    def test_result_within_half_turn(self):
        observed = np.roll(exp_idft(COEFFS, 0.0), 300)
        angle = find_angle(COEFFS, 0.0, observed)
        assert angle == pytest.approx(-65 * DAY_ANGLE)
