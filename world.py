'''
world.py -- the world context

One World owns everything derived from a seed: the biome map, the height field
and the chunk generator. Nothing here is process global, so a server and a test
can hold several worlds at once.
'''
import time

import numpy

import config
import logutil
from biomes import initialize_biomes, generate_biome_map, biome_names, biome_map_from_names
from mapgen import ChunkGenerator
from rulesets import get_ruleset
from terrain import generate_terrain_heights


def new_seed():
    return int(time.time() * 1000) % 1000000007


class World(object):
    def __init__(self, seed=None, ruleset=None, biome_map=None, heights=None):
        self.ruleset = get_ruleset(ruleset or getattr(config, 'RULESET', 'server'))
        self.width = self.ruleset.world_width
        self.height = self.ruleset.world_height
        self.biome_table = initialize_biomes(self.ruleset.biomes)
        self.metadata = {
            'createdAt': time.time(),
            'lastSaved': None,
            'blockUpdates': 0,
        }
        self.reset(seed, biome_map=biome_map, heights=heights)

    def reset(self, seed=None, biome_map=None, heights=None):
        '''
        switch to `seed` (a fresh one when None) and rebuild every derived
        structure; `biome_map` (names) and `heights` may be supplied from a save
        '''
        if seed is None:
            seed = getattr(config, 'WORLD_SEED', None)
        if seed is None:
            seed = new_seed()
        self.seed = int(seed)
        t0 = time.perf_counter()
        if biome_map is not None:
            self.biome_map = biome_map_from_names(biome_map, self.biome_table)
        else:
            self.biome_map = generate_biome_map(self.seed, self.width, self.biome_table)
        if heights is not None:
            self.heights = numpy.asarray(heights, dtype=numpy.int64)
        else:
            self.heights = generate_terrain_heights(self.seed, self.biome_map, self.width, self.ruleset)
        if len(self.biome_map) != self.width or len(self.heights) != self.width:
            raise ValueError(f"world data does not span {self.width} columns")
        self.generator = ChunkGenerator(self.seed, self.biome_map, self.heights, self.ruleset)
        self.metadata['createdAt'] = time.time()
        self.metadata['blockUpdates'] = 0
        logutil.log("WORLDGEN", f"world ready seed={self.seed} ruleset={self.ruleset.name} "
            f"size={self.width}x{self.height} in {(time.perf_counter() - t0) * 1000.0:.1f}ms")

    def generate_chunk(self, chunk_x, chunk_y):
        return self.generator.generate(chunk_x, chunk_y)

    def in_bounds(self, x, y):
        return 0 <= x < self.width and 0 <= y < self.height

    def chunk_in_world(self, chunk_x, chunk_y):
        '''True when any tile of chunk (chunk_x, chunk_y) lies inside the world'''
        cs = config.CHUNK_SIZE
        return (chunk_x * cs < self.width and (chunk_x + 1) * cs > 0
                and chunk_y * cs < self.height and (chunk_y + 1) * cs > 0)

    def terrain_height(self, x):
        x = min(max(int(x), 0), self.width - 1)
        return int(self.heights[x])

    def biome_at(self, x):
        x = min(max(int(x), 0), self.width - 1)
        return self.biome_map[x]

    def spawn_point(self):
        '''a column near the middle of the world, one tile above its surface'''
        x = self.width // 2
        return x, self.terrain_height(x) - 1

    def biome_names(self):
        return biome_names(self.biome_map)

    def height_list(self):
        return [int(h) for h in self.heights]
