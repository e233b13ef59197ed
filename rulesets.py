'''
rulesets.py -- parameter tables selecting one of the world variants

All variants share one generator (mapgen.ChunkGenerator); a ruleset only
changes the numbers and switches features on or off. Y grows downward, so row 0
is the top of the world and the bedrock floor sits at the bottom rows.
'''
from tiles import DIRT, STONE, SAND, ORE, COAL, IRON, GOLD, DIAMOND


class Ruleset(object):
    name = None
    world_width = 2000
    world_height = 2000
    # Surface row before biome modifiers and noise.
    base_height = 1000
    # Vertical scale of terrain noise.
    amplitude = 30.0
    use_biome_modifiers = True
    biomes = None #None: the full catalogue
    # Thickness of the bedrock floor.
    floor_thickness = 5
    # Rows above this always read as air without touching storage.
    sky_threshold = 0
    # Surface rows are clamped into [min_surface, world_height - floor - surface_margin].
    min_surface = 0
    surface_margin = 40

    surface_tile = None #None: chosen by biome
    crust_depth = 3
    crust_tile = DIRT
    crust_stone_chance = 0.1
    # Deep fill: `deep_secondary` with probability rising with depth.
    deep_primary = DIRT
    deep_secondary = STONE
    deep_depth_scale = 20.0
    deep_max_mix = 0.95
    # Multiplier on how much soil density keeps dirt in deep fill.
    soil_weight = 0.3

    # [(tile, min depth below surface, chance)] rolled deepest first.
    ores = ()

    caves = True
    cave_threshold = 0.72
    cave_min_depth = 5
    tunnel_width = 0.035
    tunnels = True
    chambers = False

    clouds = False
    cloud_top = 0
    cloud_bottom = 0
    cloud_threshold = 0.55

    decorations = True
    snow_line = 40 #mountain columns at least this far above base get snow caps
    peaks = False
    valleys = False
    max_peaks = 12


class ServerRuleset(Ruleset):
    name = 'server'
    world_width = 2000
    world_height = 2000
    base_height = 1000
    sky_threshold = 780
    min_surface = 840
    ores = (
        (DIAMOND, 80, 0.004),
        (GOLD, 50, 0.01),
        (IRON, 20, 0.03),
        (COAL, 4, 0.05),
    )
    cave_threshold = 0.72
    chambers = True
    clouds = True
    cloud_top = 790
    cloud_bottom = 830
    peaks = True
    valleys = True


class SinglePlayerRuleset(Ruleset):
    name = 'single_player'
    world_width = 1000
    world_height = 1000
    base_height = 333
    sky_threshold = 160
    min_surface = 213
    ores = (
        (ORE, 10, 0.02),
    )
    cave_threshold = 0.75
    clouds = True
    cloud_top = 170
    cloud_bottom = 205


class AntRuleset(Ruleset):
    name = 'ant'
    world_width = 1000
    world_height = 1000
    base_height = 5
    amplitude = 0.0
    use_biome_modifiers = False
    biomes = ('Desert', 'Grassland')
    sky_threshold = 5
    min_surface = 5
    surface_tile = SAND
    crust_tile = SAND
    crust_stone_chance = 0.0
    crust_depth = 2
    # Below the crust sand gives way to soil with depth.
    deep_primary = SAND
    deep_secondary = DIRT
    deep_max_mix = 0.8
    soil_weight = 0.0
    caves = False
    tunnel_width = 0.08
    decorations = False


RULESETS = {
    'server': ServerRuleset,
    'single_player': SinglePlayerRuleset,
    'ant': AntRuleset,
}


def get_ruleset(ruleset):
    '''accepts a ruleset class, or its name'''
    if isinstance(ruleset, type) and issubclass(ruleset, Ruleset):
        return ruleset
    try:
        return RULESETS[ruleset]
    except KeyError:
        raise ValueError(f"unknown ruleset {ruleset!r}")
