"""Seeded RNG factory for reproducible runs.

Uses NumPy's SeedSequence → PCG64 hierarchy to guarantee:
  - Statistical independence between streams and between replicates
  - Bit-exact replay with the same master seed
  - Adding species doesn't affect other species' streams

Every replicate owns its own hierarchy; nothing here is shared across runs.
"""

from __future__ import annotations

from typing import Dict, Sequence

import numpy as np


# Fixed streams, in spawn order
GLOBAL_STREAMS = ('global', 'interventions', 'genotypes')


def create_rng_hierarchy(
    master_seed: int,
    species_names: Sequence[str] = (),
    replicate: int = 0,
) -> Dict[str, np.random.Generator]:
    """Create independent RNG streams for one replicate run.

    Streams created:
      - 'global':        Initialization and anything not covered below
      - 'interventions': IRS dose and decay-heterogeneity draws
      - 'genotypes':     Genotype sampling
      - 'species_<name>': Per-species streams (larviciding deployment draws)

    Args:
        master_seed: Master RNG seed (non-negative integer).
        species_names: Vector species names, in configuration order.
        replicate: Replicate index; each index gets an unrelated hierarchy.

    Returns:
        Dictionary mapping stream names to numpy Generator instances.

    Example:
        >>> rngs = create_rng_hierarchy(42, ['gambiae'])
        >>> rngs['interventions'].random()  # reproducible
    """
    if master_seed < 0:
        raise ValueError(f"master_seed must be non-negative, got {master_seed}")
    if replicate < 0:
        raise ValueError(f"replicate must be non-negative, got {replicate}")
    ss = np.random.SeedSequence(master_seed, spawn_key=(replicate,))
    child_seeds = ss.spawn(len(GLOBAL_STREAMS) + len(species_names))

    rngs: Dict[str, np.random.Generator] = {}
    for i, name in enumerate(GLOBAL_STREAMS):
        rngs[name] = np.random.Generator(np.random.PCG64(child_seeds[i]))
    offset = len(GLOBAL_STREAMS)
    for i, name in enumerate(species_names):
        key = f'species_{name}'
        if key in rngs:
            raise ValueError(f"Duplicate species name '{name}'")
        rngs[key] = np.random.Generator(np.random.PCG64(child_seeds[offset + i]))

    return rngs


def get_species_rng(
    rngs: Dict[str, np.random.Generator],
    name: str,
) -> np.random.Generator:
    """Get the RNG stream for a vector species.

    Raises:
        KeyError: If the species doesn't have a stream.
    """
    key = f'species_{name}'
    if key not in rngs:
        known = sorted(k[len('species_'):] for k in rngs if k.startswith('species_'))
        raise KeyError(f"No RNG stream for species '{name}'. Available: {known}")
    return rngs[key]


def rng_state_snapshot(
    rngs: Dict[str, np.random.Generator],
) -> Dict[str, dict]:
    """Capture full RNG state for checkpointing.

    Returns a dict of {name: state_dict} that can be serialized (e.g. via pickle)
    and restored to resume a run exactly.
    """
    return {name: rng.bit_generator.state for name, rng in rngs.items()}


def restore_rng_state(
    rngs: Dict[str, np.random.Generator],
    states: Dict[str, dict],
) -> None:
    """Restore RNG state from a checkpoint snapshot.

    Raises:
        KeyError: If a stream in states doesn't exist in rngs.
    """
    for name, state in states.items():
        if name not in rngs:
            raise KeyError(f"Cannot restore RNG state for unknown stream '{name}'")
        rngs[name].bit_generator.state = state
