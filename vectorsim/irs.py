"""Indoor residual spraying (IRS) effect model.

Implements:
  - IRSParams: deployed insecticide dose distribution, maximum dose, decay
  - IRSAnophelesParams: per-species effect curves of insecticide content x
      * deterrency (relative attractiveness)
            α(x) = exp(log(PF) × (1 − exp(−x × s)))           ∈ (0, 1]
      * pre-/post-prandial killing (survival factor)
            σ(x) = (1 − BF − PF × (1 − exp(−x × s))) / (1 − BF) ∈ [0, 1]
  - IRS: one deployment (time, sampled dose, decay heterogeneity)

Curve coefficients (log PF, 1/(1 − BF)) are computed once at init. All three
curves are monotone in x, so checking the bounds at x = 0 and x = max
insecticide validates the whole domain; violations raise ConfigurationError
at configuration time, never at query time.

Partial coverage: `by_protection(x) = x × prop_active + (1 − prop_active)`
blends the full effect on protected hosts with no effect on the rest.
"""

from __future__ import annotations

import math
from typing import Optional

import numpy as np

from vectorsim.config import (
    DeterrencySection,
    IRSSection,
    KillingEffectSection,
    SpeciesIRSSection,
)
from vectorsim.decay import DecayFunction, DecayHet, make_decay_function
from vectorsim.errors import ConfigurationError
from vectorsim.samplers import NormalSampler


# ═══════════════════════════════════════════════════════════════════════
# GLOBAL PARAMETERS
# ═══════════════════════════════════════════════════════════════════════

class IRSParams:
    """Constant IRS parameters shared by every deployment."""

    def __init__(self, section: IRSSection):
        mean = section.initial_insecticide_mean
        cv = section.initial_insecticide_cv
        if not (math.isfinite(mean) and mean >= 0.0):
            raise ConfigurationError(
                f"irs.initial_insecticide_mean must be >= 0, got {mean}"
            )
        if not (math.isfinite(cv) and cv >= 0.0):
            raise ConfigurationError(
                f"irs.initial_insecticide_cv must be >= 0, got {cv}"
            )
        self._initial_insecticide = NormalSampler.from_mean_cv(mean, cv)

        if section.max_insecticide is None:
            max_insecticide = mean + 2.0 * self._initial_insecticide.sigma
        else:
            max_insecticide = float(section.max_insecticide)
        if not (math.isfinite(max_insecticide) and max_insecticide >= 0.0):
            raise ConfigurationError(
                f"irs.max_insecticide must be >= 0, got {max_insecticide}"
            )
        self._max_insecticide = max_insecticide
        self._decay = make_decay_function(section.decay)

    @property
    def max_insecticide(self) -> float:
        return self._max_insecticide

    @property
    def insecticide_decay(self) -> DecayFunction:
        return self._decay

    def sample_initial_insecticide(self, rng: np.random.Generator) -> float:
        """Sampled dose clamped to [0, max_insecticide]."""
        dose = self._initial_insecticide.sample(rng)
        return min(max(dose, 0.0), self._max_insecticide)


# ═══════════════════════════════════════════════════════════════════════
# EFFECT CURVES
# ═══════════════════════════════════════════════════════════════════════

def _check_scaling(scaling: float, label: str) -> float:
    if not (math.isfinite(scaling) and scaling >= 0.0):
        raise ConfigurationError(
            f"{label}: insecticide_scaling_factor must be finite and >= 0, "
            f"got {scaling}"
        )
    return float(scaling)


class RelativeAttractiveness:
    """Deterrency curve; never perfect (> 0), never attractive (≤ 1)."""

    def __init__(self, section: DeterrencySection, max_insecticide: float,
                 label: str = "deterrency"):
        PF = section.insecticide_factor
        self.insecticide_scaling = _check_scaling(
            section.insecticide_scaling_factor, label)
        if not (math.isfinite(PF) and PF > 0.0):
            # we take its log
            raise ConfigurationError(
                f"{label}: insecticide_factor must be positive, got {PF}"
            )
        self.lPF = math.log(PF)

        upper = self(max_insecticide)
        if not (0.0 < upper <= 1.0):
            raise ConfigurationError(
                f"{label}: with these parameters IRS would attract mosquitoes "
                f"(relative attractiveness {upper} at max insecticide)"
            )

    def __call__(self, insecticide_content: float) -> float:
        component = 1.0 - math.exp(-insecticide_content * self.insecticide_scaling)
        return math.exp(self.lPF * component)


class SurvivalFactor:
    """Additional survival imposed by IRS; tends to 1 as the IRS ages."""

    def __init__(self, section: KillingEffectSection, max_insecticide: float,
                 label: str = "killing effect"):
        BF = section.base_factor
        PF = section.insecticide_factor
        self.insecticide_scaling = _check_scaling(
            section.insecticide_scaling_factor, label)
        if not (math.isfinite(BF) and 0.0 <= BF < 1.0):
            raise ConfigurationError(
                f"{label}: base_factor must be in [0, 1), got {BF}"
            )
        if not math.isfinite(PF):
            raise ConfigurationError(
                f"{label}: insecticide_factor must be finite, got {PF}"
            )
        self.BF = BF
        self.PF = PF
        self.inv_base_survival = 1.0 / (1.0 - BF)

        for x in (0.0, max_insecticide):
            value = self(x)
            if not (0.0 <= value <= 1.0):
                raise ConfigurationError(
                    f"{label}: survival factor {value} at insecticide content "
                    f"{x} is outside [0, 1]"
                )

    def __call__(self, insecticide_content: float) -> float:
        component = 1.0 - math.exp(-insecticide_content * self.insecticide_scaling)
        killing = self.BF + self.PF * component
        return (1.0 - killing) * self.inv_base_survival


# ═══════════════════════════════════════════════════════════════════════
# PER-SPECIES PARAMETERS
# ═══════════════════════════════════════════════════════════════════════

class IRSAnophelesParams:
    """Per-species IRS effect parameters."""

    def __init__(self, base: IRSParams, section: SpeciesIRSSection,
                 species: str = ""):
        prefix = f"species {species}: irs" if species else "irs"
        if not (math.isfinite(section.prop_active)
                and 0.0 <= section.prop_active <= 1.0):
            raise ConfigurationError(
                f"{prefix}.prop_active must be in [0, 1], got {section.prop_active}"
            )
        self.base = base
        self.proportion_protected = float(section.prop_active)
        self.proportion_unprotected = 1.0 - self.proportion_protected

        max_x = base.max_insecticide
        self._relative_attractiveness = RelativeAttractiveness(
            section.deterrency, max_x, f"{prefix}.deterrency")
        self._preprandial_killing = SurvivalFactor(
            section.preprandial, max_x, f"{prefix}.preprandial")
        self._postprandial_killing = SurvivalFactor(
            section.postprandial, max_x, f"{prefix}.postprandial")

    def relative_attractiveness(self, insecticide_content: float) -> float:
        return self._relative_attractiveness(insecticide_content)

    def preprandial_survival_factor(self, insecticide_content: float) -> float:
        return self._preprandial_killing(insecticide_content)

    def postprandial_survival_factor(self, insecticide_content: float) -> float:
        return self._postprandial_killing(insecticide_content)

    def by_protection(self, x: float) -> float:
        """x × proportion_protected + proportion_unprotected."""
        return x * self.proportion_protected + self.proportion_unprotected


# ═══════════════════════════════════════════════════════════════════════
# DEPLOYMENT INSTANCE
# ═══════════════════════════════════════════════════════════════════════

class IRS:
    """State of one IRS deployment (one per protected cohort).

    Checkpoint layout (in order): deploy_time, initial_insecticide,
    insecticide_decay_het.t_mult.
    """

    def __init__(self):
        self.deploy_time: Optional[int] = None   # None = never deployed
        self.initial_insecticide = 0.0           # mg/m²
        self.insecticide_decay_het = DecayHet(0.0)

    def deploy(self, params: IRSParams, now: int,
               rng: np.random.Generator) -> None:
        """Spray at day `now`, replacing any previous deployment."""
        self.deploy_time = int(now)
        self.initial_insecticide = params.sample_initial_insecticide(rng)
        self.insecticide_decay_het = params.insecticide_decay.sample_het(rng)

    def insecticide_content(self, params: IRSParams, now: int) -> float:
        """Remaining insecticide: initial dose × decay since deployment."""
        if self.deploy_time is None:
            return 0.0
        remaining = params.insecticide_decay.evaluate(
            now - self.deploy_time, self.insecticide_decay_het)
        return self.initial_insecticide * remaining

    def relative_attractiveness(self, params: IRSAnophelesParams, now: int) -> float:
        if self.deploy_time is None:
            return 1.0
        effect = params.relative_attractiveness(
            self.insecticide_content(params.base, now))
        return params.by_protection(effect)

    def preprandial_survival_factor(self, params: IRSAnophelesParams, now: int) -> float:
        if self.deploy_time is None:
            return 1.0
        effect = params.preprandial_survival_factor(
            self.insecticide_content(params.base, now))
        return params.by_protection(effect)

    def postprandial_survival_factor(self, params: IRSAnophelesParams, now: int) -> float:
        if self.deploy_time is None:
            return 1.0
        effect = params.postprandial_survival_factor(
            self.insecticide_content(params.base, now))
        return params.by_protection(effect)

    # ── Checkpointing ────────────────────────────────────────────────

    def checkpoint_write(self, writer) -> None:
        writer.write_time(self.deploy_time)
        writer.write_float(self.initial_insecticide)
        writer.write_float(self.insecticide_decay_het.t_mult)

    def checkpoint_read(self, reader) -> None:
        self.deploy_time = reader.read_time()
        self.initial_insecticide = reader.read_float()
        self.insecticide_decay_het = DecayHet(reader.read_float())
