import os
import sys

import numpy as np
import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from biomes import generate_biome_map, initialize_biomes
from rulesets import AntRuleset, ServerRuleset, SinglePlayerRuleset, get_ruleset
from terrain import add_mountain_peaks, add_valleys, generate_terrain_heights, smooth_heights


def _heights(seed, ruleset):
    ruleset = get_ruleset(ruleset)
    table = initialize_biomes(ruleset.biomes)
    bmap = generate_biome_map(seed, ruleset.world_width, table)
    return bmap, generate_terrain_heights(seed, bmap, ruleset.world_width, ruleset)


def test_rulesets_by_name_or_class():
    assert get_ruleset('ant') is AntRuleset
    assert get_ruleset(ServerRuleset) is ServerRuleset
    assert get_ruleset('single_player').world_width == 1000
    with pytest.raises(ValueError):
        get_ruleset('nether')


def test_heights_are_deterministic():
    _, a = _heights(1234, 'single_player')
    _, b = _heights(1234, 'single_player')
    assert a.dtype.kind == 'i'
    assert (a == b).all()
    _, c = _heights(1235, 'single_player')
    assert not (a == c).all()


@pytest.mark.parametrize("ruleset", [ServerRuleset, SinglePlayerRuleset])
def test_heights_stay_inside_clamps(ruleset):
    floor_row = ruleset.world_height - ruleset.floor_thickness
    lowest = max(ruleset.min_surface, floor_row - ruleset.surface_margin)
    for seed in (1, 42, 99999):
        _, heights = _heights(seed, ruleset)
        assert len(heights) == ruleset.world_width
        assert heights.min() >= ruleset.min_surface
        assert heights.max() <= lowest
        assert heights.min() > ruleset.sky_threshold


def test_ant_world_is_flat():
    _, heights = _heights(5, 'ant')
    assert (heights == AntRuleset.base_height).all()


def test_length_mismatch_is_rejected():
    bmap = generate_biome_map(3, 1000)
    with pytest.raises(ValueError):
        generate_terrain_heights(3, bmap[:-1], 1000, 'single_player')


def test_smoothing_weights_and_edges():
    result = smooth_heights([0.0, 0.0, 10.0, 0.0, 0.0], passes=1, radius=1)
    assert result[2] == pytest.approx(5.0)
    assert result[1] == pytest.approx(2.5)
    assert result[0] == pytest.approx(0.0)
    flat = smooth_heights(np.full(50, 7.0), passes=3, radius=3)
    assert np.allclose(flat, 7.0)


def test_peaks_lift_the_surface():
    table = initialize_biomes(('Mountains',))
    bmap = [table[0]] * 400
    heights = np.full(400, 1000.0)
    placed = add_mountain_peaks(17, heights, bmap, 12)
    assert 0 < placed <= 12
    # y grows downward, so peaks only ever reduce the surface row
    assert heights.max() <= 1000.0
    assert heights.min() < 1000.0


def test_valleys_lower_the_ground():
    heights = np.full(600, 1000.0)
    count = add_valleys(23, heights)
    assert 5 <= count <= 9
    # valleys push the surface row down, never up
    assert heights.min() >= 1000.0
    assert heights.max() >= 1010.0
    again = np.full(600, 1000.0)
    assert add_valleys(23, again) == count
    assert (again == heights).all()
