"""Configuration system for vectorsim.

Hierarchical YAML configuration with deep-merge support:
  base.yaml → scenario override → sweep overrides

Sections map 1:1 to YAML top-level keys; `species` is a list with one
entry per vector species. Unknown keys are ignored.

Validation happens once, at load time: effect curves are built and their
bounds checked here, so no invalid parameterization reaches a simulated day.
"""

from __future__ import annotations

import copy
import dataclasses
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from vectorsim.errors import ConfigurationError


DAYS_PER_YEAR = 365


# ═══════════════════════════════════════════════════════════════════════
# CONFIGURATION DATACLASSES
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SimulationSection:
    """Run control and the human-side inputs the vector model consumes."""
    seed: int = 42
    human_population: float = 1000.0   # Hosts available to each species
    human_infectiousness: float = 0.03  # kappa: P(mosquito infected | feed)
    max_fitting_rounds: int = 10        # Upper bound on emergence fitting rounds
    warmup_days_per_round: int = 5 * DAYS_PER_YEAR


@dataclass
class DecaySection:
    """Decay-function descriptor.

    function: constant | step | linear | exponential | weibull | hill |
              smooth-compact
    L:  characteristic time (days); half-life for exponential/weibull/hill
    k:  shape parameter (weibull, hill, smooth-compact)
    CV: coefficient of variation of per-deployment heterogeneity
    """
    function: str = "exponential"
    L: float = 182.5
    k: float = 1.0
    CV: float = 0.0


@dataclass
class IRSSection:
    """Global IRS description: deployed dose distribution and decay."""
    initial_insecticide_mean: float = 118.0  # mg/m²
    initial_insecticide_cv: float = 0.1
    max_insecticide: Optional[float] = None  # None → mean + 2σ
    decay: DecaySection = field(default_factory=DecaySection)


@dataclass
class DeterrencySection:
    """Relative attractiveness: exp(log(PF) × (1 − exp(−x × scaling)))."""
    insecticide_factor: float = 0.56
    insecticide_scaling_factor: float = 0.0125


@dataclass
class KillingEffectSection:
    """Survival factor: (1 − BF − PF × (1 − exp(−x × scaling))) / (1 − BF)."""
    base_factor: float = 0.0
    insecticide_factor: float = 0.0
    insecticide_scaling_factor: float = 0.0


@dataclass
class SpeciesIRSSection:
    """Per-species IRS effect curves."""
    prop_active: float = 0.9   # Proportion of bites on protected (sprayed) hosts
    deterrency: DeterrencySection = field(default_factory=DeterrencySection)
    preprandial: KillingEffectSection = field(default_factory=KillingEffectSection)
    postprandial: KillingEffectSection = field(
        default_factory=lambda: KillingEffectSection(
            base_factor=0.0, insecticide_factor=0.48,
            insecticide_scaling_factor=0.0025,
        )
    )


@dataclass
class LarvicidingSection:
    """Emergence reduction from larviciding."""
    effectiveness: float = 0.0
    decay: DecaySection = field(
        default_factory=lambda: DecaySection(function="step", L=90.0)
    )


@dataclass
class SeasonalitySection:
    """Seasonal EIR shape.

    Either fourier_coefficients ([a0, a1, b1, a2, b2, ...] of log daily EIR)
    or monthly_eir (12 monthly mean daily EIR values) must be given; Fourier
    coefficients take precedence.
    """
    fourier_coefficients: Optional[List[float]] = field(
        default_factory=lambda: [-3.0, 0.8, -0.4]
    )
    rotate_angle: float = 0.0
    monthly_eir: Optional[List[float]] = None
    n_harmonics: int = 2


@dataclass
class SpeciesSection:
    """One vector species: bionomics, seasonality and intervention effects."""
    name: str = "gambiae"
    p_A: float = 0.69               # P(survive a day without feeding)
    p_df: float = 0.22              # P(feed and survive the feeding day)
    extrinsic_incubation_days: int = 10
    prop_infected: float = 0.078    # O_v / N_v at the seeded state
    prop_infectious: float = 0.021  # S_v / N_v at the seeded state
    seasonality: SeasonalitySection = field(default_factory=SeasonalitySection)
    irs: SpeciesIRSSection = field(default_factory=SpeciesIRSSection)
    larviciding: LarvicidingSection = field(default_factory=LarvicidingSection)


@dataclass
class AlleleSection:
    name: str = ""
    initial_frequency: float = 1.0
    fitness: float = 1.0


@dataclass
class LocusSection:
    name: str = ""
    alleles: List[AlleleSection] = field(default_factory=list)


@dataclass
class GenotypologySection:
    """Parasite genotypes. No loci → single genotype, no sampling."""
    sampling_mode: str = "initial"   # 'initial' or 'tracking'
    loci: List[LocusSection] = field(default_factory=list)


@dataclass
class SimulationConfig:
    """Complete scenario configuration.

    Load from YAML via `load_config()`.
    """
    simulation: SimulationSection = field(default_factory=SimulationSection)
    irs: IRSSection = field(default_factory=IRSSection)
    species: List[SpeciesSection] = field(default_factory=lambda: [SpeciesSection()])
    genotypology: GenotypologySection = field(default_factory=GenotypologySection)


# ═══════════════════════════════════════════════════════════════════════
# YAML LOADING & MERGING
# ═══════════════════════════════════════════════════════════════════════

def deep_merge(base: Dict, override: Dict) -> Dict:
    """Recursively merge override into base. Modifies base in place.

    - Dict values are merged recursively
    - Non-dict values (including lists) are replaced
    - Keys in override but not base are added
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base


# Nested section fields, per section class
_NESTED = {
    IRSSection: {'decay': DecaySection},
    SpeciesIRSSection: {
        'deterrency': DeterrencySection,
        'preprandial': KillingEffectSection,
        'postprandial': KillingEffectSection,
    },
    LarvicidingSection: {'decay': DecaySection},
    SpeciesSection: {
        'seasonality': SeasonalitySection,
        'irs': SpeciesIRSSection,
        'larviciding': LarvicidingSection,
    },
}


def _dict_to_section(section_cls, data: Any) -> Any:
    """Convert a dict to a dataclass, ignoring unknown keys."""
    if data is None:
        return section_cls()
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"{section_cls.__name__}: expected a mapping, got {type(data).__name__}"
        )
    valid_fields = {f.name for f in dataclasses.fields(section_cls)}
    nested = _NESTED.get(section_cls, {})
    kwargs = {}
    for k, v in data.items():
        if k not in valid_fields:
            continue
        if k in nested:
            kwargs[k] = _dict_to_section(nested[k], v)
        else:
            kwargs[k] = v
    return section_cls(**kwargs)


def _genotypology_from_dict(data: Any) -> GenotypologySection:
    if not isinstance(data, dict):
        return GenotypologySection()
    loci = []
    for locus in data.get('loci') or []:
        alleles = [_dict_to_section(AlleleSection, a) for a in locus.get('alleles') or []]
        loci.append(LocusSection(name=locus.get('name', ''), alleles=alleles))
    return GenotypologySection(
        sampling_mode=data.get('sampling_mode', 'initial'),
        loci=loci,
    )


def _yaml_to_config(data: Dict) -> SimulationConfig:
    """Convert a merged YAML dict to a SimulationConfig."""
    simulation = _dict_to_section(SimulationSection, data.get('simulation'))
    irs = _dict_to_section(IRSSection, data.get('irs'))

    if 'species' in data and isinstance(data['species'], list):
        species = [_dict_to_section(SpeciesSection, s) for s in data['species']]
    else:
        species = [SpeciesSection()]

    genotypology = _genotypology_from_dict(data.get('genotypology'))
    return SimulationConfig(
        simulation=simulation,
        irs=irs,
        species=species,
        genotypology=genotypology,
    )


# ═══════════════════════════════════════════════════════════════════════
# VALIDATION
# ═══════════════════════════════════════════════════════════════════════

def _check_probability(value: float, name: str) -> None:
    if not (math.isfinite(value) and 0.0 <= value <= 1.0):
        raise ConfigurationError(f"{name} must be in [0, 1], got {value}")


def validate_config(config: SimulationConfig) -> None:
    """Validate configuration constraints. Raises ConfigurationError on failure.

    Checks:
      - Run control values are positive
      - Bionomics probabilities are consistent
      - Seasonality is specified and well-formed
      - IRS and larviciding curves stay inside their bounds over the
        whole insecticide-content domain (built via vectorsim.irs)
      - Genotypology frequencies and sampling mode
    """
    from vectorsim.genotypes import GenotypeRegistry
    from vectorsim.irs import IRSAnophelesParams, IRSParams
    from vectorsim.larviciding import LarvicidingParams
    from vectorsim.seasonality import resolve_fourier_coefficients

    sim = config.simulation
    if sim.seed < 0:
        raise ConfigurationError("simulation.seed must be non-negative")
    if not sim.human_population > 0:
        raise ConfigurationError("simulation.human_population must be positive")
    _check_probability(sim.human_infectiousness, "simulation.human_infectiousness")
    if sim.max_fitting_rounds < 1:
        raise ConfigurationError(
            f"simulation.max_fitting_rounds must be >= 1, got {sim.max_fitting_rounds}"
        )
    if sim.warmup_days_per_round < 5 * DAYS_PER_YEAR:
        raise ConfigurationError(
            "simulation.warmup_days_per_round must cover the five-year "
            f"S_v buffer ({5 * DAYS_PER_YEAR} days), got {sim.warmup_days_per_round}"
        )

    if not config.species:
        raise ConfigurationError("at least one species must be configured")

    irs_params = IRSParams(config.irs)

    names = set()
    for i, sp in enumerate(config.species):
        label = f"species[{i}] ({sp.name})"
        if not sp.name:
            raise ConfigurationError(f"species[{i}].name must not be empty")
        if sp.name in names:
            raise ConfigurationError(f"duplicate species name '{sp.name}'")
        names.add(sp.name)

        _check_probability(sp.p_A, f"{label}.p_A")
        _check_probability(sp.p_df, f"{label}.p_df")
        if not sp.p_A + sp.p_df < 1.0:
            raise ConfigurationError(
                f"{label}: p_A + p_df must be < 1 (some mosquitoes must die "
                f"each day), got {sp.p_A + sp.p_df}"
            )
        if sp.p_df <= 0.0:
            raise ConfigurationError(f"{label}.p_df must be positive")
        if sp.extrinsic_incubation_days < 1:
            raise ConfigurationError(
                f"{label}.extrinsic_incubation_days must be >= 1"
            )
        if not (0.0 < sp.prop_infectious <= sp.prop_infected <= 1.0):
            raise ConfigurationError(
                f"{label}: expected 0 < prop_infectious <= prop_infected <= 1, "
                f"got {sp.prop_infectious}, {sp.prop_infected}"
            )

        resolve_fourier_coefficients(sp.seasonality)
        IRSAnophelesParams(irs_params, sp.irs, species=sp.name)
        LarvicidingParams(sp.larviciding)
        if sp.irs.prop_active == 0.0:
            import warnings
            warnings.warn(
                f"{label}: irs.prop_active is 0, IRS will have no effect on "
                f"this species.",
                UserWarning,
                stacklevel=2,
            )

    GenotypeRegistry.from_section(config.genotypology)


def load_config(
    base_path: Union[str, Path],
    scenario_path: Optional[Union[str, Path]] = None,
    sweep_overrides: Optional[Dict] = None,
) -> SimulationConfig:
    """Load and merge hierarchical YAML configuration.

    Merge order: base → scenario → sweep overrides.

    Raises:
        FileNotFoundError: If base_path doesn't exist.
        ConfigurationError: If validation fails.
    """
    base_path = Path(base_path)
    if not base_path.exists():
        raise FileNotFoundError(f"Config file not found: {base_path}")

    with open(base_path) as f:
        config_dict = yaml.safe_load(f) or {}

    if scenario_path is not None:
        scenario_path = Path(scenario_path)
        if scenario_path.exists():
            with open(scenario_path) as f:
                scenario = yaml.safe_load(f) or {}
            deep_merge(config_dict, scenario)

    if sweep_overrides is not None:
        deep_merge(config_dict, copy.deepcopy(sweep_overrides))

    config = _yaml_to_config(config_dict)
    validate_config(config)
    return config


def config_from_dict(data: Dict) -> SimulationConfig:
    """Build and validate a config from an in-memory dict."""
    config = _yaml_to_config(copy.deepcopy(data))
    validate_config(config)
    return config


def default_config() -> SimulationConfig:
    """Return a SimulationConfig with all default values."""
    config = SimulationConfig()
    validate_config(config)
    return config
