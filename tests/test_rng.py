"""Tests for vectorsim.rng — seeded RNG hierarchy and checkpointing."""

import numpy as np
import pytest

from vectorsim.rng import (
    GLOBAL_STREAMS,
    create_rng_hierarchy,
    get_species_rng,
    restore_rng_state,
    rng_state_snapshot,
)


class TestCreateRngHierarchy:
    def test_returns_correct_keys(self):
        rngs = create_rng_hierarchy(42, ['gambiae', 'funestus'])
        for name in GLOBAL_STREAMS:
            assert name in rngs
        assert 'species_gambiae' in rngs
        assert 'species_funestus' in rngs
        assert len(rngs) == 2 + 3  # 2 species + 3 global streams

    def test_generators_are_independent(self):
        """Different streams produce different sequences."""
        rngs = create_rng_hierarchy(42, ['a', 'b', 'c'])
        vals = {name: rng.random() for name, rng in rngs.items()}
        assert len(set(vals.values())) == len(vals), "RNG streams produced duplicate values"

    def test_reproducibility(self):
        """Same seed produces identical sequences."""
        rngs1 = create_rng_hierarchy(42, ['gambiae'])
        rngs2 = create_rng_hierarchy(42, ['gambiae'])
        for name in rngs1:
            np.testing.assert_array_equal(rngs1[name].random(100), rngs2[name].random(100))

    def test_different_seeds_differ(self):
        rngs1 = create_rng_hierarchy(42)
        rngs2 = create_rng_hierarchy(43)
        assert not np.array_equal(rngs1['global'].random(10), rngs2['global'].random(10))

    def test_replicates_differ(self):
        """Each replicate gets an unrelated hierarchy from the same seed."""
        r0 = create_rng_hierarchy(42, replicate=0)
        r1 = create_rng_hierarchy(42, replicate=1)
        for name in GLOBAL_STREAMS:
            assert not np.array_equal(r0[name].random(10), r1[name].random(10))

    def test_adding_species_keeps_existing_streams(self):
        rngs1 = create_rng_hierarchy(42, ['gambiae'])
        rngs2 = create_rng_hierarchy(42, ['gambiae', 'funestus'])
        for name in rngs1:
            np.testing.assert_array_equal(rngs1[name].random(20), rngs2[name].random(20))

    def test_no_species(self):
        """Edge case: zero species is valid (only global streams)."""
        assert len(create_rng_hierarchy(42)) == 3

    def test_negative_seed_rejected(self):
        with pytest.raises(ValueError, match="master_seed"):
            create_rng_hierarchy(-1)

    def test_negative_replicate_rejected(self):
        with pytest.raises(ValueError, match="replicate"):
            create_rng_hierarchy(42, replicate=-1)

    def test_duplicate_species_rejected(self):
        with pytest.raises(ValueError, match="Duplicate species"):
            create_rng_hierarchy(42, ['gambiae', 'gambiae'])


class TestGetSpeciesRng:
    def test_lookup(self):
        rngs = create_rng_hierarchy(42, ['gambiae'])
        assert get_species_rng(rngs, 'gambiae') is rngs['species_gambiae']

    def test_unknown_species(self):
        rngs = create_rng_hierarchy(42, ['gambiae'])
        with pytest.raises(KeyError, match="funestus"):
            get_species_rng(rngs, 'funestus')


class TestRngCheckpointing:
    def test_snapshot_and_restore(self):
        """Restoring a snapshot replays the same draws."""
        rngs = create_rng_hierarchy(42, ['gambiae'])
        for rng in rngs.values():
            rng.random(5)
        snapshot = rng_state_snapshot(rngs)
        expected = {name: rng.random(10) for name, rng in rngs.items()}

        restore_rng_state(rngs, snapshot)
        for name, rng in rngs.items():
            np.testing.assert_array_equal(rng.random(10), expected[name])

    def test_restore_unknown_stream(self):
        rngs = create_rng_hierarchy(42)
        snapshot = {'species_ghost': rngs['global'].bit_generator.state}
        with pytest.raises(KeyError, match="ghost"):
            restore_rng_state(rngs, snapshot)
