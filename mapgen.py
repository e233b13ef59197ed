#std/external libs
import numpy

#local libs
import config
import logutil
from rulesets import get_ruleset
from worldnoise import PerlinNoise, random_for_position, random_grid
from tiles import (AIR, DIRT, STONE, GRASS, SAND, BEDROCK, WOOD, LEAVES, BUSH, FLOWER,
    TALL_GRASS, CACTUS, SNOW, MUSHROOM, WATER, CLOUD)

# Salts for independent per-position decisions.
WATER_SALT = 11
CRUST_SALT = 13
DEEP_SALT = 17
ORE_SALT = 400
DECOR_SALT = 100
TREE_SALT = 500
CHAMBER_SALT = 700
FLECK_SALT = 800
CAVE_NOISE_SALT = 71
TUNNEL_NOISE_SALT = 73
CLOUD_NOISE_SALT = 79

# Chamber anchors: at most one per CHAMBER_CELL x CHAMBER_CELL block of tiles.
CHAMBER_CELL = 48
CHAMBER_CHANCE = 0.35
CHAMBER_REACH = 9
FLECK_CHANCE = 0.04

MAX_TREE_HEIGHT = 8
# Furthest column a surface feature can reach from its root.
DECORATION_REACH = MAX_TREE_HEIGHT * 4 // 10 + 1

DECORATION_TILES = {
    'tall_grass': TALL_GRASS,
    'flowers': FLOWER,
    'bushes': BUSH,
    'mushrooms': MUSHROOM,
    'snow': SNOW,
}


class GenerationError(Exception):
    pass


class ChunkGenerator(object):
    '''
    Synthesizes chunk tile grids from the world seed, biome map and height field.

    `generate` is a pure function of (seed, chunk_x, chunk_y, biome_map, heights):
    anything that crosses a chunk border (tree canopies, chambers) is evaluated
    from its seeded origin, so every chunk stamps its own share of it and the
    order in which chunks are generated never matters.

    Grids are numpy uint8 arrays indexed [local_y, local_x].
    '''
    def __init__(self, seed, biome_map, heights, ruleset=None, chunk_size=None):
        self.seed = int(seed)
        self.ruleset = get_ruleset(ruleset or getattr(config, 'RULESET', 'server'))
        self.chunk_size = chunk_size or config.CHUNK_SIZE
        self.biome_map = biome_map
        self.heights = None if heights is None else numpy.asarray(heights, dtype=numpy.int64)
        self.world_width = self.ruleset.world_width
        self.world_height = self.ruleset.world_height
        self.floor_row = self.world_height - self.ruleset.floor_thickness
        self.cave_noise = PerlinNoise(self.seed + CAVE_NOISE_SALT)
        self.tunnel_noise = PerlinNoise(self.seed + TUNNEL_NOISE_SALT)
        self.cloud_noise = PerlinNoise(self.seed + CLOUD_NOISE_SALT)

    def _check_inputs(self):
        if self.heights is None or self.biome_map is None:
            raise GenerationError("height field or biome map not built")
        if len(self.heights) != self.world_width or len(self.biome_map) != self.world_width:
            raise GenerationError(f"world inputs do not span {self.world_width} columns")

    def generate(self, chunk_x, chunk_y):
        try:
            self._check_inputs()
            return self._generate(chunk_x, chunk_y)
        except GenerationError as e:
            logutil.log("WORLDGEN", f"chunk {chunk_x},{chunk_y}: {e}; using safe default", level="WARN")
            return self.safe_chunk(chunk_x, chunk_y)

    def _axes(self, chunk_x, chunk_y):
        cs = self.chunk_size
        wx = numpy.arange(cs, dtype=numpy.int64) + chunk_x * cs
        wy = numpy.arange(cs, dtype=numpy.int64) + chunk_y * cs
        return wx, wy

    def _outside(self, wx, wy):
        '''mask of cells outside the world (including the bedrock floor)'''
        col_out = (wx < 0) | (wx >= self.world_width)
        row_out = (wy < 0) | (wy >= self.floor_row)
        return col_out[None, :] | row_out[:, None]

    def safe_chunk(self, chunk_x, chunk_y):
        '''air with bedrock wherever the world ends'''
        wx, wy = self._axes(chunk_x, chunk_y)
        grid = numpy.zeros((self.chunk_size, self.chunk_size), dtype=numpy.uint8)
        grid[self._outside(wx, wy)] = BEDROCK
        return grid

    def surface_tile(self, x):
        rs = self.ruleset
        if rs.surface_tile is not None:
            return rs.surface_tile
        biome = self.biome_map[x]
        if biome.name == 'Desert':
            return SAND
        if biome.name == 'Mountains' and self.heights[x] <= rs.base_height - rs.snow_line:
            return SNOW
        if biome.water_chance > 0 and random_for_position(self.seed, x, 0, WATER_SALT) < biome.water_chance:
            return WATER
        return GRASS

    def _generate(self, chunk_x, chunk_y):
        rs = self.ruleset
        seed = self.seed
        cs = self.chunk_size
        wx, wy = self._axes(chunk_x, chunk_y)
        xi = numpy.clip(wx, 0, self.world_width - 1)
        h = self.heights[xi]
        biomes = [self.biome_map[x] for x in xi]
        soil = numpy.array([b.soil_density for b in biomes])[None, :]
        friendliness = numpy.array([b.ant_friendliness for b in biomes])[None, :]
        WX = wx[None, :]
        WY = wy[:, None]
        depth = WY - h[None, :]
        grid = numpy.zeros((cs, cs), dtype=numpy.uint8)

        # surface row
        surface = numpy.array([self.surface_tile(x) for x in xi], dtype=numpy.uint8)
        on_surface = depth == 0
        grid[on_surface] = numpy.broadcast_to(surface[None, :], grid.shape)[on_surface]

        # near-surface crust
        crust_tile = numpy.array([SAND if b.name == 'Desert' else rs.crust_tile for b in biomes], dtype=numpy.uint8)
        crust = (depth >= 1) & (depth <= rs.crust_depth)
        crust_stone = random_grid(seed, WX, WY, CRUST_SALT) < rs.crust_stone_chance
        grid[crust] = numpy.broadcast_to(crust_tile[None, :], grid.shape)[crust]
        grid[crust & crust_stone] = STONE

        # deep fill
        deep = depth > rs.crust_depth
        mix = numpy.clip((depth - rs.crust_depth - 1) / rs.deep_depth_scale, 0.0, rs.deep_max_mix)
        mix = mix * (1.0 - soil * rs.soil_weight)
        secondary = random_grid(seed, WX, WY, DEEP_SALT) < mix
        grid[deep] = rs.deep_primary
        grid[deep & secondary] = rs.deep_secondary

        # ores replace stone, deepest (rarest) first
        stone = grid == STONE
        for k, (ore, min_depth, chance) in enumerate(rs.ores):
            roll = random_grid(seed, WX, WY, ORE_SALT + k)
            hit = stone & (depth >= min_depth) & (roll < chance)
            grid[hit] = ore
            stone &= ~hit

        carvable = (depth >= rs.cave_min_depth) & (WY < self.floor_row)
        if rs.caves:
            grid[carvable & self._cave_mask(WX, WY, depth, soil)] = AIR
        if rs.tunnels:
            grid[carvable & self._tunnel_mask(WX, WY, friendliness)] = AIR
        if rs.chambers:
            self._carve_chambers(grid, wx, wy)
        if rs.clouds:
            band = (WY >= rs.cloud_top) & (WY <= rs.cloud_bottom) & (depth < 0)
            if band.any():
                c = self.cloud_noise.octave_noise(WX / 40.0, WY / 8.0, 2, 0.5, 2.0)
                grid[band & (c > rs.cloud_threshold)] = CLOUD
        if rs.decorations:
            self._decorate(grid, wx, wy)

        grid[self._outside(wx, wy)] = BEDROCK
        return grid

    def _cave_mask(self, WX, WY, depth, soil):
        n = self.cave_noise
        base = n.octave_noise(WX / 40.0, WY / 40.0, 3, 0.5, 2.0)
        # stretched along x so caves run mostly horizontally
        horizontal = n.noise(WX / 80.0, WY / 20.0 + 100.5)
        shaft = numpy.clip(n.noise(WX / 6.0 + 300.5, WY / 120.0) - 0.6, 0.0, None) * 2.0
        chamber = numpy.clip(n.noise(WX / 25.0 + 500.5, WY / 25.0 + 500.5) - 0.5, 0.0, None)
        value = 0.5 + 0.6 * base + 0.4 * horizontal + shaft + chamber
        threshold = self.ruleset.cave_threshold + soil * 0.1 - numpy.clip(depth / 400.0, 0.0, 0.1)
        return value > threshold

    def _tunnel_value(self, WX, WY):
        return numpy.abs(self.tunnel_noise.octave_noise(WX / 30.0, WY / 30.0, 2, 0.5, 2.0))

    def _tunnel_mask(self, WX, WY, friendliness):
        return self._tunnel_value(WX, WY) < self.ruleset.tunnel_width * friendliness

    def chamber_at(self, gx, gy):
        '''
        the chamber anchored in grid cell (gx, gy) as (x, y, rx, ry), or None;
        anchors only qualify next to a tunnel and well below the surface
        '''
        seed = self.seed
        if random_for_position(seed, gx, gy, CHAMBER_SALT) >= CHAMBER_CHANCE:
            return None
        ax = gx * CHAMBER_CELL + int(random_for_position(seed, gx, gy, CHAMBER_SALT + 1) * CHAMBER_CELL)
        ay = gy * CHAMBER_CELL + int(random_for_position(seed, gx, gy, CHAMBER_SALT + 2) * CHAMBER_CELL)
        if ax < 0 or ax >= self.world_width or ay >= self.floor_row:
            return None
        if ay - self.heights[ax] < self.ruleset.cave_min_depth + 5:
            return None
        width = self.ruleset.tunnel_width * self.biome_map[ax].ant_friendliness * 4.0
        if self._tunnel_value(float(ax), float(ay)) >= width:
            return None
        rx = 3 + int(random_for_position(seed, gx, gy, CHAMBER_SALT + 3) * 5)
        ry = max(2.0, rx * (0.5 + random_for_position(seed, gx, gy, CHAMBER_SALT + 4) * 0.7))
        return ax, ay, float(rx), ry

    def _carve_chambers(self, grid, wx, wy):
        seed = self.seed
        WX = wx[None, :]
        WY = wy[:, None]
        gx0 = (int(wx[0]) - CHAMBER_REACH) // CHAMBER_CELL
        gx1 = (int(wx[-1]) + CHAMBER_REACH) // CHAMBER_CELL
        gy0 = (int(wy[0]) - CHAMBER_REACH) // CHAMBER_CELL
        gy1 = (int(wy[-1]) + CHAMBER_REACH) // CHAMBER_CELL
        flecks = (STONE, DIRT) + tuple(ore for ore, _, _ in self.ruleset.ores[-1:])
        xi = numpy.clip(wx, 0, self.world_width - 1)
        depth = WY - self.heights[xi][None, :]
        carvable = (depth >= self.ruleset.cave_min_depth) & (WY < self.floor_row)
        for gy in range(gy0, gy1 + 1):
            for gx in range(gx0, gx1 + 1):
                chamber = self.chamber_at(gx, gy)
                if chamber is None:
                    continue
                ax, ay, rx, ry = chamber
                inside = ((WX - ax) / rx) ** 2 + ((WY - ay) / ry) ** 2 <= 1.0
                inside &= carvable
                if not inside.any():
                    continue
                grid[inside] = AIR
                fleck = inside & (random_grid(seed, WX, WY, FLECK_SALT) < FLECK_CHANCE)
                pick = (random_grid(seed, WX, WY, FLECK_SALT + 1) * len(flecks)).astype(numpy.int64)
                grid[fleck] = numpy.array(flecks, dtype=numpy.uint8)[pick[fleck]]

    def _decorate(self, grid, wx, wy):
        '''
        evaluates surface features for every column that could reach into this
        chunk, in ascending x order, and stamps the cells that land inside it
        '''
        x0 = int(wx[0])
        y0 = int(wy[0])
        cs = self.chunk_size

        def stamp(x, y, tile, over=(AIR,)):
            lx = x - x0
            ly = y - y0
            if 0 <= lx < cs and 0 <= ly < cs and grid[ly, lx] in over:
                grid[ly, lx] = tile

        lo = max(0, x0 - DECORATION_REACH)
        hi = min(self.world_width, x0 + cs + DECORATION_REACH)
        for x in range(lo, hi):
            h = int(self.heights[x])
            # Features sit on top of the surface and rise at most a tree's height.
            if h - MAX_TREE_HEIGHT - 3 > y0 + cs or h <= y0:
                continue
            feature = self.feature_at(x)
            if feature is None:
                continue
            if feature == 'trees':
                trunk, leaves = self.tree_shape(x)
                for y in trunk:
                    stamp(x, y, WOOD, over=(AIR, LEAVES))
                for lx, ly in leaves:
                    stamp(lx, ly, LEAVES)
            elif feature == 'cacti':
                stamp(x, h - 1, CACTUS)
                stamp(x, h - 2, CACTUS)
            else:
                stamp(x, h - 1, DECORATION_TILES[feature])

    def feature_at(self, x):
        '''the surface feature rooted at column x (first matching roll wins)'''
        surface = self.surface_tile(x)
        if surface == WATER:
            return None
        h = int(self.heights[x])
        biome = self.biome_map[x]
        for k, feature in enumerate(biome.feature_order):
            roll = random_for_position(self.seed, x, h - 1, DECOR_SALT * (k + 1))
            if roll < biome.feature_frequency(feature):
                return feature
        return None

    def tree_shape(self, x):
        '''
        trunk rows and leaf cells of the tree rooted at column x; the canopy is a
        disk per layer starting 60% up the trunk and narrowing at the top
        '''
        h = int(self.heights[x])
        lo, hi = self.biome_map[x].tree_height
        hi = min(hi, MAX_TREE_HEIGHT)
        height = lo + int(random_for_position(self.seed, x, h, TREE_SALT) * (hi - lo + 1))
        trunk = [h - 1 - i for i in range(height)]
        leaf_start = int(height * 0.6)
        leaf_radius = int(height * 0.4) + 1
        leaves = []
        for i in range(leaf_start, height + 1):
            if i == height:
                radius = 1
            elif i >= height - 1:
                radius = max(1, leaf_radius - 1)
            else:
                radius = leaf_radius
            y = h - 1 - i
            for dx in range(-radius, radius + 1):
                if dx == 0 and i < height:
                    continue
                leaves.append((x + dx, y))
        return trunk, leaves


def generate_chunk(chunk_x, chunk_y, seed, biome_map, heights, ruleset=None):
    return ChunkGenerator(seed, biome_map, heights, ruleset).generate(chunk_x, chunk_y)
