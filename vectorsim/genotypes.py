"""Parasite genotype registry.

Every allele of every locus gets a unique integer code. Genotypes are all
combinations of one allele per locus; a genotype's initial frequency and
fitness are the products over its alleles.

The registry is built once per scenario load from configuration and owned
by the run context; independent runs build their own.

Sampling modes:
  first     always genotype 0 (no genotypology configured)
  initial   sample from initial frequencies
  tracking  sample from tracked genotype success; declared in configuration
            but not implemented
"""

from __future__ import annotations

import bisect
import itertools
import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple

import numpy as np

from vectorsim.config import GenotypologySection
from vectorsim.errors import ConfigurationError


FREQUENCY_TOLERANCE = 1e-3


class SampleMode(Enum):
    FIRST = "first"
    INITIAL = "initial"
    TRACKING = "tracking"


@dataclass(frozen=True)
class Genotype:
    """One allele combination."""
    alleles: FrozenSet[int]
    init_freq: float
    fitness: float


class GenotypeRegistry:
    """Allele codes, genotype list and cumulative initial frequencies."""

    def __init__(
        self,
        genotypes: List[Genotype],
        allele_codes: Dict[str, Dict[str, int]],
        intervention_mode: SampleMode = SampleMode.FIRST,
    ):
        self.genotypes = genotypes
        self.allele_codes = allele_codes
        self.current_mode = SampleMode.INITIAL if allele_codes else SampleMode.FIRST
        self.intervention_mode = intervention_mode

        self._cum_freqs: List[float] = []
        cum_p = 0.0
        for g in genotypes:
            cum_p += g.init_freq
            self._cum_freqs.append(cum_p)
        if allele_codes and abs(cum_p - 1.0) > FREQUENCY_TOLERANCE:
            raise ConfigurationError(
                f"genotype frequencies must sum to 1.0, found {cum_p}"
            )

    @classmethod
    def single(cls) -> 'GenotypeRegistry':
        """No genotypology: a single genotype, always sampled."""
        return cls([Genotype(frozenset({0}), 1.0, 1.0)], {})

    @classmethod
    def from_section(cls, section: GenotypologySection) -> 'GenotypeRegistry':
        """Build from configuration.

        Raises:
            ConfigurationError: Unknown sampling mode, empty locus, or allele
                frequencies of a locus not summing to 1 (± 0.001).
        """
        if not section.loci:
            return cls.single()

        try:
            mode = SampleMode(section.sampling_mode)
        except ValueError:
            mode = None
        if mode not in (SampleMode.INITIAL, SampleMode.TRACKING):
            raise ConfigurationError(
                "genotypology.sampling_mode: expected 'initial' or 'tracking', "
                f"got {section.sampling_mode!r}"
            )

        allele_codes: Dict[str, Dict[str, int]] = {}
        per_locus: List[List[Tuple[int, float, float]]] = []
        next_code = 0
        for locus in section.loci:
            if not locus.alleles:
                raise ConfigurationError(f"locus '{locus.name}' has no alleles")
            if locus.name in allele_codes:
                raise ConfigurationError(f"duplicate locus '{locus.name}'")
            codes = allele_codes[locus.name] = {}
            alleles = []
            cum_p = 0.0
            for allele in locus.alleles:
                if not (math.isfinite(allele.initial_frequency)
                        and allele.initial_frequency >= 0.0):
                    raise ConfigurationError(
                        f"locus '{locus.name}', allele '{allele.name}': "
                        f"initial_frequency must be >= 0"
                    )
                codes[allele.name] = next_code
                alleles.append((next_code, allele.initial_frequency, allele.fitness))
                cum_p += allele.initial_frequency
                next_code += 1
            if abs(cum_p - 1.0) > FREQUENCY_TOLERANCE:
                raise ConfigurationError(
                    "expected sum of initial frequencies of alleles to be 1, "
                    f"but for the {len(alleles)} alleles under locus "
                    f"'{locus.name}' this is {cum_p}"
                )
            # absorb small errors into the first allele
            code, freq, fit = alleles[0]
            alleles[0] = (code, freq + 1.0 - cum_p, fit)
            per_locus.append(alleles)

        genotypes = []
        for combo in itertools.product(*per_locus):
            genotypes.append(Genotype(
                alleles=frozenset(code for code, _, _ in combo),
                init_freq=float(np.prod([f for _, f, _ in combo])),
                fitness=float(np.prod([w for _, _, w in combo])),
            ))
        return cls(genotypes, allele_codes, intervention_mode=mode)

    def __len__(self) -> int:
        return len(self.genotypes)

    def find_allele_code(self, locus: str, allele: str) -> Optional[int]:
        """Code of `allele` at `locus`, or None if either is unknown."""
        return self.allele_codes.get(locus, {}).get(allele)

    def start_intervention_period(self) -> None:
        """Switch to the sampling mode configured for the intervention period."""
        if self.allele_codes:
            self.current_mode = self.intervention_mode

    def sample_genotype(self, rng: np.random.Generator) -> int:
        """Index of a genotype for a new infection."""
        if self.current_mode is SampleMode.FIRST:
            return 0
        if self.current_mode is SampleMode.INITIAL:
            u = rng.random()
            i = bisect.bisect_right(self._cum_freqs, u)
            return min(i, len(self.genotypes) - 1)
        raise NotImplementedError("tracking-based genotype sampling")
