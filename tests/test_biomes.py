import os
import sys

import numpy as np
import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

import biomes
from biomes import (biome_map_from_names, biome_names, classify, enforce_min_size,
    generate_biome_map, initialize_biomes, runs_of, smooth_transitions)


def test_biome_map_is_reproducible_for_seed_42():
    a = generate_biome_map(42, 2000)
    b = generate_biome_map(42, 2000)
    assert len(a) == 2000
    assert biome_names(a) == biome_names(b)


def test_every_biome_run_meets_minimum_size():
    table = initialize_biomes()
    for seed in (42, 7, 31337, 2024):
        bmap = generate_biome_map(seed, 2000, table, smoothing_radius=10, min_size=30)
        index = {b.name: i for i, b in enumerate(table)}
        runs = runs_of([index[b.name] for b in bmap])
        assert sum(length for _, length in runs) == 2000
        if len(runs) > 1:
            assert min(length for _, length in runs) >= 30, (seed, runs)


def test_thresholds_cover_unit_interval():
    table = initialize_biomes()
    thresholds = [b.noise_threshold for b in table]
    assert thresholds == sorted(thresholds)
    assert thresholds[-1] == 1.0
    picked = classify(np.array([0.0, 0.39, 0.40, 0.55, 0.999, 1.0]), table)
    assert [table[i].name for i in picked] == [
        'Desert', 'Desert', 'Plains', 'Forest', 'Mountains', 'Mountains']


def test_subset_catalogue_tops_out_at_one():
    table = initialize_biomes(('Desert', 'Grassland'))
    assert [b.name for b in table] == ['Desert', 'Grassland']
    assert table[-1].noise_threshold == 1.0
    # a fresh catalogue is not affected
    assert initialize_biomes()[2].noise_threshold == 0.53
    with pytest.raises(ValueError):
        initialize_biomes(('Atlantis',))


def test_short_run_between_matching_neighbours_is_absorbed():
    indices = np.array([0] * 40 + [1] * 5 + [0] * 40)
    assert (enforce_min_size(indices, 30) == 0).all()


def test_short_run_joins_longer_neighbour():
    indices = np.array([0] * 40 + [1] * 5 + [2] * 50)
    result = enforce_min_size(indices, 30)
    assert runs_of(result) == [[0, 40], [2, 55]]


def test_single_run_is_left_alone():
    indices = np.array([3] * 10)
    assert runs_of(enforce_min_size(indices, 30)) == [[3, 10]]


def test_smoothing_only_touches_columns_near_borders():
    indices = np.array([0] * 50 + [1] * 50)
    result = smooth_transitions(42, indices, 5)
    # the border sits between columns 49 and 50
    assert (result[:44] == 0).all()
    assert (result[56:] == 1).all()
    assert (smooth_transitions(42, indices, 0) == indices).all()
    assert (smooth_transitions(42, indices, 5) == result).all()


def test_biome_names_round_trip():
    table = initialize_biomes()
    bmap = generate_biome_map(9, 500, table)
    names = biome_names(bmap)
    assert biome_map_from_names(names, table) == bmap
    with pytest.raises(ValueError):
        biome_map_from_names(names[:-1] + ['Atlantis'], table)


def test_biome_noise_is_normalised():
    values = biomes.biome_noise(3, 1000)
    assert values.shape == (1000,)
    assert values.min() >= 0.0 and values.max() <= 1.0
