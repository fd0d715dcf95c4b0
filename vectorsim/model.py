"""Run context, emergence warm-up and the daily vector loop.

One RunContext per replicate owns every piece of mutable state: RNG
streams, the IRS deployment, genotype registry, and per-species emergence
and transmission state. Nothing is shared between contexts.

  - Warm-up (`calibrate`): repeat {run warmup_days_per_round days →
    init_iterate} per species until it converges, needs no fitting, fails,
    or max_fitting_rounds is reached (FittingDivergenceError).
  - Main run (`run_days`): daily loop; IRS modifies the feeding survival
    P_df through deterrency × pre-prandial × post-prandial survival.

Daily step, per species:
  1. P_df(t) = P_df × α(t) × σ_pre(t) × σ_post(t)
  2. S_v = transmission.update(t, P_df(t))
  3. E   = emergence.update(t, S_v)
  4. transmission.add_emergence(E)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

import numpy as np

from vectorsim.config import SimulationConfig, SpeciesSection, default_config
from vectorsim.emergence import FitState, FixedEmergence
from vectorsim.errors import FittingDivergenceError
from vectorsim.genotypes import GenotypeRegistry
from vectorsim.irs import IRS, IRSAnophelesParams, IRSParams
from vectorsim.larviciding import Larviciding, LarvicidingParams
from vectorsim.rng import create_rng_hierarchy, get_species_rng
from vectorsim.seasonality import resolve_fourier_coefficients
from vectorsim.transmission import MosqTransmission


logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════
# RESULTS
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class WarmupResult:
    """Outcome of emergence calibration for one species."""
    species: str
    rounds: int = 0
    state: FitState = FitState.UNFITTED
    scale_factor: float = 1.0
    shift_angle: float = 0.0


@dataclass
class SimulationResult:
    """Daily series from `run_days`, keyed by species name."""
    start_day: int = 0
    n_days: int = 0
    daily_sv: Dict[str, np.ndarray] = field(default_factory=dict)
    daily_emergence: Dict[str, np.ndarray] = field(default_factory=dict)
    daily_eir: Dict[str, np.ndarray] = field(default_factory=dict)


# ═══════════════════════════════════════════════════════════════════════
# RUN CONTEXT
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class VectorSpecies:
    """Per-species state and parameters."""
    section: SpeciesSection
    emergence: FixedEmergence
    transmission: MosqTransmission
    irs_params: IRSAnophelesParams
    larviciding: Larviciding
    rng: np.random.Generator
    eir_to_sv: float = 1.0   # human population / P_df

    @property
    def name(self) -> str:
        return self.section.name


class RunContext:
    """All mutable state of one replicate run."""

    def __init__(self, config: Optional[SimulationConfig] = None, replicate: int = 0):
        if config is None:
            config = default_config()
        self.config = config
        sim = config.simulation
        self.rngs = create_rng_hierarchy(
            sim.seed, [sp.name for sp in config.species], replicate)
        self.irs_params = IRSParams(config.irs)
        self.irs = IRS()
        self.genotypes = GenotypeRegistry.from_section(config.genotypology)
        self.day = 0
        self.main_phase = False

        self.species: List[VectorSpecies] = []
        for sp in config.species:
            larv = Larviciding(LarvicidingParams(sp.larviciding))
            emergence = FixedEmergence.from_species(
                resolve_fourier_coefficients(sp.seasonality),
                sp.seasonality.rotate_angle,
                sp.prop_infected,
                sp.prop_infectious,
                larviciding=larv,
            )
            self.species.append(VectorSpecies(
                section=sp,
                emergence=emergence,
                transmission=MosqTransmission(sp.extrinsic_incubation_days),
                irs_params=IRSAnophelesParams(self.irs_params, sp.irs, species=sp.name),
                larviciding=larv,
                rng=get_species_rng(self.rngs, sp.name),
                eir_to_sv=sim.human_population / sp.p_df,
            ))

        kappa = sim.human_infectiousness
        for vs in self.species:
            sp = vs.section
            vs.emergence.init2(sp.p_A, sp.p_df, sp.p_df * kappa, vs.eir_to_sv,
                               vs.transmission)

    @classmethod
    def from_config(cls, config: SimulationConfig, replicate: int = 0) -> 'RunContext':
        return cls(config, replicate)

    def get_species(self, name: str) -> VectorSpecies:
        for vs in self.species:
            if vs.name == name:
                return vs
        raise KeyError(f"Unknown species '{name}'")

    # ── Interventions ────────────────────────────────────────────────

    def deploy_irs(self) -> None:
        self.irs.deploy(self.irs_params, self.day, self.rngs['interventions'])

    def deploy_larviciding(self, species: Optional[str] = None) -> None:
        targets = self.species if species is None else [self.get_species(species)]
        for vs in targets:
            vs.larviciding.deploy(self.day, vs.rng)

    def feeding_survival(self, vs: VectorSpecies) -> float:
        """P_df today after IRS deterrency and killing."""
        now = self.day
        return (vs.section.p_df
                * self.irs.relative_attractiveness(vs.irs_params, now)
                * self.irs.preprandial_survival_factor(vs.irs_params, now)
                * self.irs.postprandial_survival_factor(vs.irs_params, now))

    # ── Daily step ───────────────────────────────────────────────────

    def step_day(self) -> Dict[str, tuple]:
        """Advance every species one day; returns {name: (S_v, emergence)}."""
        out = {}
        for vs in self.species:
            s_v = vs.transmission.update(self.day, p_df=self.feeding_survival(vs))
            emergence = vs.emergence.update(self.day, s_v)
            vs.transmission.add_emergence(emergence)
            out[vs.name] = (s_v, emergence)
        self.day += 1
        return out

    def start_main_phase(self) -> None:
        if not self.main_phase:
            self.genotypes.start_intervention_period()
            self.main_phase = True

    # ── Checkpointing ────────────────────────────────────────────────

    def checkpoint_write(self, writer) -> None:
        """Layout: day, main_phase, RNG streams (creation order), IRS, then
        per species (configuration order): emergence, transmission."""
        writer.write_int(self.day)
        writer.write_int(int(self.main_phase))
        for rng in self.rngs.values():
            writer.write_rng(rng)
        self.irs.checkpoint_write(writer)
        for vs in self.species:
            vs.emergence.checkpoint_write(writer)
            vs.transmission.checkpoint_write(writer)

    def checkpoint_read(self, reader) -> None:
        self.day = reader.read_int()
        main_phase = bool(reader.read_int())
        for rng in self.rngs.values():
            reader.read_rng(rng)
        self.irs.checkpoint_read(reader)
        for vs in self.species:
            vs.emergence.checkpoint_read(reader)
            vs.transmission.checkpoint_read(reader)
        if main_phase:
            self.start_main_phase()


# ═══════════════════════════════════════════════════════════════════════
# WARM-UP
# ═══════════════════════════════════════════════════════════════════════

def calibrate(context: RunContext) -> Dict[str, WarmupResult]:
    """Fit every species' emergence; bounded by max_fitting_rounds.

    Raises:
        DegenerateTransmissionError / FittingDivergenceError: from the
            fitting step, or FittingDivergenceError when a species is still
            fitting after max_fitting_rounds.
    """
    sim = context.config.simulation
    results = {vs.name: WarmupResult(species=vs.name) for vs in context.species}
    active = [vs for vs in context.species if vs.emergence.fit_state == FitState.FITTING]

    for round_no in range(1, sim.max_fitting_rounds + 1):
        if not active:
            break
        for _ in range(sim.warmup_days_per_round):
            context.step_day()
        still_fitting = []
        for vs in active:
            keep_going = vs.emergence.init_iterate(vs.transmission)
            results[vs.name].rounds = round_no
            if keep_going:
                still_fitting.append(vs)
            else:
                logger.info(
                    "Species %s: emergence %s after %d round(s), scale %.4f, "
                    "shift %.4f rad", vs.name, vs.emergence.fit_state.name.lower(),
                    round_no, vs.emergence.scale_factor, vs.emergence.shift_angle,
                )
        active = still_fitting

    for vs in context.species:
        r = results[vs.name]
        r.state = vs.emergence.fit_state
        r.scale_factor = vs.emergence.scale_factor
        r.shift_angle = vs.emergence.shift_angle

    if active:
        names = ", ".join(vs.name for vs in active)
        for vs in active:
            vs.emergence.fit_state = FitState.FAILED_DIVERGENT
            results[vs.name].state = FitState.FAILED_DIVERGENT
        raise FittingDivergenceError(
            f"emergence fitting did not converge within "
            f"{sim.max_fitting_rounds} rounds for: {names}"
        )
    return results


# ═══════════════════════════════════════════════════════════════════════
# MAIN RUN
# ═══════════════════════════════════════════════════════════════════════

def run_days(
    context: RunContext,
    n_days: int,
    irs_days: Iterable[int] = (),
    larviciding_days: Iterable[int] = (),
) -> SimulationResult:
    """Run the main daily loop after warm-up.

    Args:
        context: Calibrated run context.
        n_days: Days to simulate.
        irs_days: Offsets (from the first simulated day) at which IRS is
            sprayed, before that day's step.
        larviciding_days: Offsets at which larviciding is applied to every
            species.

    Returns:
        SimulationResult with per-species daily S_v, emergence and EIR.
    """
    context.start_main_phase()
    irs_days = set(irs_days)
    larviciding_days = set(larviciding_days)

    result = SimulationResult(start_day=context.day, n_days=n_days)
    for vs in context.species:
        result.daily_sv[vs.name] = np.zeros(n_days)
        result.daily_emergence[vs.name] = np.zeros(n_days)
        result.daily_eir[vs.name] = np.zeros(n_days)

    for i in range(n_days):
        if i in irs_days:
            context.deploy_irs()
        if i in larviciding_days:
            context.deploy_larviciding()
        for name, (s_v, emergence) in context.step_day().items():
            result.daily_sv[name][i] = s_v
            result.daily_emergence[name][i] = emergence
            result.daily_eir[name][i] = s_v / context.get_species(name).eir_to_sv
    return result
