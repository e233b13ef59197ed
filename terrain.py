'''
terrain.py -- per-column surface heights

Y grows downward, so a larger height value means lower ground. Heights are
built once per seed from terrain noise and the biome map, smoothed, then
shaped by mountain peaks and valleys.
'''
import numpy

import config
import logutil
from rulesets import get_ruleset
from worldnoise import PerlinNoise, random_for_position

TERRAIN_NOISE_SALT = 57
PEAK_SALT = 2003
VALLEY_SALT = 3001


def smooth_heights(heights, passes=3, radius=3):
    '''
    weighted moving average, weight 1 - |i|/(radius+1); windows are cut short
    at the world edges
    '''
    heights = numpy.asarray(heights, dtype=numpy.float64)
    n = len(heights)
    for _ in range(passes):
        total = numpy.zeros(n)
        weights = numpy.zeros(n)
        for i in range(-radius, radius + 1):
            w = 1.0 - abs(i) / float(radius + 1)
            lo = max(0, -i)
            hi = min(n, n - i)
            if lo >= hi:
                continue
            total[lo:hi] += heights[lo + i:hi + i] * w
            weights[lo:hi] += w
        heights = total / weights
    return heights


def add_mountain_peaks(seed, heights, biome_map, max_peaks):
    '''
    walks the world left to right; each column has a small seeded chance of
    starting a peak whose triangular profile lifts the surface
    '''
    n = len(heights)
    placed = 0
    x = 0
    while x < n and placed < max_peaks:
        roll = random_for_position(seed, x, 0, PEAK_SALT)
        chance = 0.05 if biome_map[x].name == 'Mountains' else 0.005
        if roll < chance:
            width = 20 + int(random_for_position(seed, x, 1, PEAK_SALT) * 31)
            lift = 15.0 + random_for_position(seed, x, 2, PEAK_SALT) * 35.0
            center = x + width // 2
            for i in range(x, min(n, x + width)):
                falloff = 1.0 - abs(i - center) / (width / 2.0)
                if falloff > 0:
                    heights[i] -= lift * falloff
            placed += 1
            x += width
        else:
            x += 1
    return placed


def add_valleys(seed, heights):
    '''a handful of seeded valleys with an inverse-square depth profile'''
    n = len(heights)
    count = 5 + int(random_for_position(seed, 0, 0, VALLEY_SALT) * 5)
    xs = numpy.arange(n, dtype=numpy.float64)
    for k in range(count):
        center = int(random_for_position(seed, k, 1, VALLEY_SALT) * n)
        width = 10.0 + random_for_position(seed, k, 2, VALLEY_SALT) * 20.0
        depth = 10.0 + random_for_position(seed, k, 3, VALLEY_SALT) * 15.0
        d = (xs - center) / width
        heights += depth / (1.0 + d * d * 4.0) * (numpy.abs(d) < 1.5)
    return count


def generate_terrain_heights(seed, biome_map, world_width, ruleset=None):
    '''returns a numpy int array of surface rows, one per world X column'''
    ruleset = get_ruleset(ruleset or getattr(config, 'RULESET', 'server'))
    if len(biome_map) != world_width:
        raise ValueError(f"biome map has {len(biome_map)} columns, expected {world_width}")
    floor_row = ruleset.world_height - ruleset.floor_thickness
    lowest = max(ruleset.min_surface, floor_row - ruleset.surface_margin)
    if ruleset.amplitude == 0 and not ruleset.use_biome_modifiers:
        return numpy.full(world_width, ruleset.base_height, dtype=numpy.int64)

    perlin = PerlinNoise(seed + TERRAIN_NOISE_SALT)
    xs = numpy.arange(world_width, dtype=numpy.float64)
    tn = perlin.terrain_noise(xs, 0.0)
    amp = numpy.array([b.amplitude for b in biome_map], dtype=numpy.float64)
    if ruleset.use_biome_modifiers:
        mod = numpy.array([b.height_modifier for b in biome_map], dtype=numpy.float64)
    else:
        mod = numpy.zeros(world_width)
    heights = ruleset.base_height - (tn * ruleset.amplitude * amp + mod)
    heights = smooth_heights(heights,
        getattr(config, 'TERRAIN_SMOOTHING_PASSES', 3),
        getattr(config, 'TERRAIN_SMOOTHING_RADIUS', 3))
    peaks = 0
    if ruleset.peaks:
        peaks = add_mountain_peaks(seed, heights, biome_map, ruleset.max_peaks)
    valleys = 0
    if ruleset.valleys:
        valleys = add_valleys(seed, heights)
    heights = numpy.clip(numpy.floor(heights), ruleset.min_surface, lowest).astype(numpy.int64)
    logutil.log("WORLDGEN", f"terrain seed={seed} rows {heights.min()}..{heights.max()} peaks={peaks} valleys={valleys}", level="DEBUG")
    return heights
