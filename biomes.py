'''
biomes.py -- biome catalogue and the per-column biome map

A biome is assigned to every world X column. The map comes from blended 1D
Perlin noise classified by ascending thresholds, then softened near borders and
finally cleaned of runs shorter than the minimum biome size.
'''
import numpy

import config
import logutil
from worldnoise import PerlinNoise, random_grid

# Salts keep the biome decisions independent of other position randomness.
BIOME_NOISE_SALT = 31
TRANSITION_SALT = 1103


class Biome(object):
    def __init__(self, name, noise_threshold, height_modifier=0, amplitude=1.0,
            soil_density=0.5, ant_friendliness=1.0, features=None, feature_order=(),
            tree_height=(3, 6), water_chance=0.0, map_color=(255, 255, 255)):
        self.name = name
        # Upper bound (exclusive) of the [0, 1] noise band classified as this biome.
        self.noise_threshold = noise_threshold
        # Flat lift of the surface in tiles (positive is higher ground).
        self.height_modifier = height_modifier
        # Multiplier on terrain noise: flatter below 1, rougher above.
        self.amplitude = amplitude
        # 0..1; dense soil keeps more dirt underground and resists caves.
        self.soil_density = soil_density
        # Scales tunnel width in this biome.
        self.ant_friendliness = ant_friendliness
        self.features = dict(features or {})
        self.feature_order = tuple(feature_order)
        self.tree_height = tree_height
        self.water_chance = water_chance
        self.map_color = map_color

    def feature_frequency(self, feature):
        return self.features.get(feature, 0.0)

    def __repr__(self):
        return self.name

    def __str__(self):
        return self.name


def initialize_biomes(names=None):
    '''
    returns the biome catalogue ordered by ascending noise threshold
    `names` restricts it to a subset (the last one always covers the top of [0, 1])
    '''
    table = [
        Biome('Desert', 0.40, height_modifier=-5, amplitude=0.7, soil_density=0.3,
            ant_friendliness=0.9, features={'cacti': 0.1}, feature_order=('cacti',),
            map_color=(240, 230, 140)),
        Biome('Plains', 0.47, height_modifier=0, amplitude=0.5, soil_density=0.6,
            ant_friendliness=1.0,
            features={'trees': 0.05, 'tall_grass': 0.3, 'flowers': 0.15, 'bushes': 0.1},
            feature_order=('trees', 'tall_grass', 'flowers', 'bushes'),
            tree_height=(3, 6), map_color=(124, 252, 0)),
        Biome('Grassland', 0.53, height_modifier=2, amplitude=0.6, soil_density=0.7,
            ant_friendliness=1.2,
            features={'trees': 0.02, 'tall_grass': 0.45, 'flowers': 0.2, 'bushes': 0.05},
            feature_order=('trees', 'tall_grass', 'flowers', 'bushes'),
            tree_height=(3, 5), map_color=(154, 205, 50)),
        Biome('Forest', 0.60, height_modifier=5, amplitude=0.8, soil_density=0.65,
            ant_friendliness=0.8,
            features={'trees': 0.3, 'mushrooms': 0.1, 'tall_grass': 0.2, 'bushes': 0.15},
            feature_order=('trees', 'mushrooms', 'tall_grass', 'bushes'),
            tree_height=(4, 8), map_color=(34, 139, 34)),
        Biome('Wetland', 0.66, height_modifier=-3, amplitude=0.4, soil_density=0.8,
            ant_friendliness=0.6,
            features={'trees': 0.04, 'mushrooms': 0.08, 'tall_grass': 0.35},
            feature_order=('trees', 'mushrooms', 'tall_grass'),
            tree_height=(3, 5), water_chance=0.25, map_color=(47, 79, 79)),
        Biome('Mountains', 1.0, height_modifier=20, amplitude=2.0, soil_density=0.2,
            ant_friendliness=0.4, features={'snow': 0.3, 'trees': 0.05},
            feature_order=('snow', 'trees'), tree_height=(3, 6),
            map_color=(160, 160, 160)),
    ]
    if names is not None:
        wanted = set(names)
        table = [b for b in table if b.name in wanted]
        if not table:
            raise ValueError(f"no biomes named {sorted(wanted)}")
    table[-1].noise_threshold = 1.0
    return table


def biome_noise(seed, world_width):
    '''blended three band 1D noise mapped onto [0, 1] per column'''
    perlin = PerlinNoise(seed + BIOME_NOISE_SALT)
    xs = numpy.arange(world_width, dtype=numpy.float64)
    value = (perlin.noise(xs / 600.0, 0.5) * 0.6
             + perlin.noise(xs / 200.0, 10.5) * 0.3
             + perlin.noise(xs / 60.0, 20.5) * 0.1)
    return numpy.clip((value + 1.0) * 0.5, 0.0, 1.0)


def classify(values, biome_table):
    thresholds = numpy.array([b.noise_threshold for b in biome_table[:-1]])
    return numpy.searchsorted(thresholds, values, side='right')


def smooth_transitions(seed, indices, radius):
    '''
    near each border, columns adopt the biome across it with a chance that
    falls off linearly with distance from the border
    '''
    width = len(indices)
    if radius <= 0 or width < 2:
        return indices.copy()
    result = indices.copy()
    rolls = random_grid(seed, numpy.arange(width), 0, TRANSITION_SALT)
    borders = [x for x in range(1, width) if indices[x] != indices[x - 1]]
    for x in range(width):
        best = None
        for b in borders:
            # The border sits between columns b-1 and b.
            d = b - x if x < b else x - b + 1
            if d > radius:
                if b > x:
                    break
                continue
            if best is None or d < best[0]:
                best = (d, indices[b] if x < b else indices[b - 1])
        if best is None:
            continue
        d, other = best
        if rolls[x] < (1.0 - d / float(radius + 1)) * 0.5:
            result[x] = other
    return result


def runs_of(indices):
    runs = []
    for value in indices:
        value = int(value)
        if runs and runs[-1][0] == value:
            runs[-1][1] += 1
        else:
            runs.append([value, 1])
    return runs


def enforce_min_size(indices, min_size):
    '''
    repeatedly absorbs the shortest run below `min_size` into its longer
    neighbour until every run is at least `min_size` long (or one run is left)
    '''
    runs = runs_of(indices)
    while len(runs) > 1:
        i = min(range(len(runs)), key=lambda k: runs[k][1])
        if runs[i][1] >= min_size:
            break
        left = runs[i - 1] if i > 0 else None
        right = runs[i + 1] if i + 1 < len(runs) else None
        if left is not None and right is not None and left[0] == right[0]:
            left[1] += runs[i][1] + right[1]
            del runs[i:i + 2]
        elif right is None or (left is not None and left[1] >= right[1]):
            left[1] += runs[i][1]
            del runs[i]
        else:
            right[1] += runs[i][1]
            del runs[i]
    result = numpy.empty(len(indices), dtype=numpy.int64)
    x = 0
    for value, length in runs:
        result[x:x + length] = value
        x += length
    return result


def generate_biome_map(seed, world_width, biome_table=None, smoothing_radius=None, min_size=None):
    '''returns a list of Biome, one per world X column'''
    if biome_table is None:
        biome_table = initialize_biomes()
    if smoothing_radius is None:
        smoothing_radius = getattr(config, 'BIOME_SMOOTHING_RADIUS', 10)
    if min_size is None:
        min_size = getattr(config, 'BIOME_MIN_SIZE', 30)
    indices = classify(biome_noise(seed, world_width), biome_table)
    indices = smooth_transitions(seed, indices, smoothing_radius)
    indices = enforce_min_size(indices, min_size)
    runs = runs_of(indices)
    logutil.log("WORLDGEN", f"biome map seed={seed} width={world_width} regions={len(runs)}", level="DEBUG")
    return [biome_table[i] for i in indices]


def biome_names(biome_map):
    return [b.name for b in biome_map]


def biome_map_from_names(names, biome_table):
    by_name = {b.name: b for b in biome_table}
    try:
        return [by_name[n] for n in names]
    except KeyError as e:
        raise ValueError(f"unknown biome {e.args[0]!r}")
