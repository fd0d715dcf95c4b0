"""Tests for vectorsim.irs — IRS dose, decay and effect curves."""

import math

import numpy as np
import pytest

from vectorsim.config import (
    DecaySection,
    DeterrencySection,
    IRSSection,
    KillingEffectSection,
    SpeciesIRSSection,
)
from vectorsim.errors import ConfigurationError
from vectorsim.irs import IRS, IRSAnophelesParams, IRSParams


@pytest.fixture
def rng():
    return np.random.default_rng(2024)


@pytest.fixture
def linear_params():
    """Fixed dose of 50 with linear decay over 100 days."""
    return IRSParams(IRSSection(
        initial_insecticide_mean=50.0,
        initial_insecticide_cv=0.0,
        decay=DecaySection(function="linear", L=100.0),
    ))


@pytest.fixture
def species_params(linear_params):
    return IRSAnophelesParams(linear_params, SpeciesIRSSection(
        prop_active=0.8,
        deterrency=DeterrencySection(insecticide_factor=0.5,
                                     insecticide_scaling_factor=0.02),
        preprandial=KillingEffectSection(base_factor=0.1, insecticide_factor=0.3,
                                         insecticide_scaling_factor=0.01),
        postprandial=KillingEffectSection(base_factor=0.0, insecticide_factor=0.5,
                                          insecticide_scaling_factor=0.01),
    ), species="gambiae")


# ═══════════════════════════════════════════════════════════════════════
# GLOBAL PARAMETERS
# ═══════════════════════════════════════════════════════════════════════

class TestIRSParams:
    def test_max_insecticide_defaults_to_mean_plus_two_sd(self):
        params = IRSParams(IRSSection(initial_insecticide_mean=118.0,
                                      initial_insecticide_cv=0.1))
        assert params.max_insecticide == pytest.approx(118.0 + 2 * 11.8)

    def test_explicit_max_insecticide(self):
        params = IRSParams(IRSSection(max_insecticide=200.0))
        assert params.max_insecticide == 200.0

    def test_sampled_dose_clamped(self, rng):
        params = IRSParams(IRSSection(initial_insecticide_mean=100.0,
                                      initial_insecticide_cv=3.0))
        doses = np.array([params.sample_initial_insecticide(rng) for _ in range(2000)])
        assert doses.min() >= 0.0
        assert doses.max() <= params.max_insecticide
        assert np.any(doses == 0.0)

    def test_negative_mean_rejected(self):
        with pytest.raises(ConfigurationError, match="initial_insecticide_mean"):
            IRSParams(IRSSection(initial_insecticide_mean=-1.0))

    def test_negative_cv_rejected(self):
        with pytest.raises(ConfigurationError, match="initial_insecticide_cv"):
            IRSParams(IRSSection(initial_insecticide_cv=-0.1))


# ═══════════════════════════════════════════════════════════════════════
# EFFECT CURVES
# ═══════════════════════════════════════════════════════════════════════

class TestEffectCurves:
    def test_no_effect_without_insecticide(self, species_params):
        assert species_params.relative_attractiveness(0.0) == pytest.approx(1.0)
        assert species_params.preprandial_survival_factor(0.0) == pytest.approx(1.0)
        assert species_params.postprandial_survival_factor(0.0) == pytest.approx(1.0)

    def test_deterrency_closed_form(self, species_params):
        x = 30.0
        expected = math.exp(math.log(0.5) * (1.0 - math.exp(-x * 0.02)))
        assert species_params.relative_attractiveness(x) == pytest.approx(expected)

    def test_survival_closed_form(self, species_params):
        x = 30.0
        expected = (1.0 - 0.1 - 0.3 * (1.0 - math.exp(-x * 0.01))) / (1.0 - 0.1)
        assert species_params.preprandial_survival_factor(x) == pytest.approx(expected)

    def test_curves_monotone_decreasing(self, species_params):
        xs = np.linspace(0.0, 50.0, 51)
        for curve in (species_params.relative_attractiveness,
                      species_params.preprandial_survival_factor,
                      species_params.postprandial_survival_factor):
            values = np.array([curve(x) for x in xs])
            assert np.all(np.diff(values) < 0.0)

    def test_by_protection(self, species_params):
        assert species_params.proportion_protected == 0.8
        assert species_params.proportion_unprotected == pytest.approx(0.2)
        assert species_params.by_protection(0.0) == pytest.approx(0.2)
        assert species_params.by_protection(1.0) == pytest.approx(1.0)
        assert species_params.by_protection(0.5) == pytest.approx(0.6)

    def test_prop_active_bounds(self, linear_params):
        with pytest.raises(ConfigurationError, match="prop_active"):
            IRSAnophelesParams(linear_params, SpeciesIRSSection(prop_active=1.2))

    def test_base_factor_of_one_rejected(self, linear_params):
        section = SpeciesIRSSection(
            postprandial=KillingEffectSection(base_factor=1.0))
        with pytest.raises(ConfigurationError, match="base_factor"):
            IRSAnophelesParams(linear_params, section)

    def test_error_names_species(self, linear_params):
        section = SpeciesIRSSection(
            deterrency=DeterrencySection(insecticide_factor=-0.5))
        with pytest.raises(ConfigurationError, match="species funestus"):
            IRSAnophelesParams(linear_params, section, species="funestus")

    def test_negative_survival_rejected(self, linear_params):
        section = SpeciesIRSSection(preprandial=KillingEffectSection(
            base_factor=0.0, insecticide_factor=2.0, insecticide_scaling_factor=1.0))
        with pytest.raises(ConfigurationError, match="outside"):
            IRSAnophelesParams(linear_params, section)


# ═══════════════════════════════════════════════════════════════════════
# DEPLOYMENT
# ═══════════════════════════════════════════════════════════════════════

class TestIRSDeployment:
    def test_never_deployed(self, linear_params, species_params):
        irs = IRS()
        assert irs.insecticide_content(linear_params, 100) == 0.0
        assert irs.relative_attractiveness(species_params, 100) == 1.0
        assert irs.preprandial_survival_factor(species_params, 100) == 1.0
        assert irs.postprandial_survival_factor(species_params, 100) == 1.0

    def test_linear_decay_of_content(self, linear_params, rng):
        irs = IRS()
        irs.deploy(linear_params, 10, rng)
        assert irs.initial_insecticide == 50.0
        assert irs.insecticide_content(linear_params, 10) == pytest.approx(50.0)
        assert irs.insecticide_content(linear_params, 60) == pytest.approx(25.0)
        assert irs.insecticide_content(linear_params, 110) == 0.0

    def test_factors_use_remaining_content(self, linear_params, species_params, rng):
        irs = IRS()
        irs.deploy(linear_params, 0, rng)
        content = irs.insecticide_content(linear_params, 40)
        expected = species_params.by_protection(
            species_params.relative_attractiveness(content))
        assert irs.relative_attractiveness(species_params, 40) == pytest.approx(expected)
        expected = species_params.by_protection(
            species_params.postprandial_survival_factor(content))
        assert irs.postprandial_survival_factor(species_params, 40) == pytest.approx(expected)

    def test_effect_wears_off(self, linear_params, species_params, rng):
        irs = IRS()
        irs.deploy(linear_params, 0, rng)
        assert irs.relative_attractiveness(species_params, 1) < 1.0
        assert irs.relative_attractiveness(species_params, 100) == pytest.approx(1.0)

    def test_redeploy_replaces(self, linear_params, rng):
        irs = IRS()
        irs.deploy(linear_params, 0, rng)
        irs.deploy(linear_params, 80, rng)
        assert irs.deploy_time == 80
        assert irs.insecticide_content(linear_params, 130) == pytest.approx(25.0)

    def test_deploy_draws_from_rng(self, rng):
        params = IRSParams(IRSSection(initial_insecticide_cv=0.2,
                                      decay=DecaySection(CV=0.3)))
        a, b = IRS(), IRS()
        a.deploy(params, 0, rng)
        b.deploy(params, 0, rng)
        assert a.initial_insecticide != b.initial_insecticide
        assert a.insecticide_decay_het != b.insecticide_decay_het
