'''
tiles.py -- the tile catalogue

Tile ids are small unsigned integers stored in numpy uint8 chunk grids. Id 0 is
air, every other id is the 1-based position of its class in TILES, so the order
of that list is the on-disk and on-the-wire enumeration.
'''
import numpy


class Tile(object):
    name = None
    solid = True
    diggable = True
    # Inventory item granted when dug (None: nothing collected).
    item = None
    score = 0
    map_color = (255, 255, 255)

class Decoration(Tile):
    solid = False

class Dirt(Tile):
    name = 'Dirt'
    item = 'dirt'
    map_color = (139, 69, 19)

class Stone(Tile):
    name = 'Stone'
    item = 'stone'
    map_color = (128, 128, 128)

class Grass(Tile):
    name = 'Grass'
    item = 'grass'
    map_color = (34, 139, 34)

class Sand(Tile):
    name = 'Sand'
    item = 'sand'
    map_color = (238, 214, 175)

class Ore(Tile):
    name = 'Ore'
    item = 'ore'
    score = 2
    map_color = (255, 215, 0)

class Bedrock(Tile):
    name = 'Bedrock'
    diggable = False
    map_color = (30, 30, 30)

class Coal(Tile):
    name = 'Coal'
    item = 'coal'
    score = 1
    map_color = (54, 54, 54)

class Iron(Tile):
    name = 'Iron'
    item = 'iron'
    score = 3
    map_color = (165, 140, 120)

class Gold(Tile):
    name = 'Gold'
    item = 'gold'
    score = 5
    map_color = (255, 215, 0)

class Diamond(Tile):
    name = 'Diamond'
    item = 'diamond'
    score = 10
    map_color = (0, 255, 255)

class Wood(Decoration):
    name = 'Wood'
    item = 'wood'
    score = 1
    map_color = (101, 67, 33)

class Leaves(Decoration):
    name = 'Leaves'
    item = 'leaves'
    score = 1
    map_color = (0, 128, 0)

class Bush(Decoration):
    name = 'Bush'
    map_color = (46, 110, 40)

class Flower(Decoration):
    name = 'Flower'
    item = 'flower'
    score = 2
    map_color = (255, 105, 180)

class TallGrass(Decoration):
    name = 'Tall Grass'
    map_color = (90, 170, 60)

class Cactus(Decoration):
    name = 'Cactus'
    map_color = (40, 150, 60)

class Snow(Tile):
    name = 'Snow'
    map_color = (250, 250, 250)

class Mushroom(Decoration):
    name = 'Mushroom'
    item = 'mushroom'
    score = 3
    map_color = (200, 40, 40)

class Water(Decoration):
    name = 'Water'
    diggable = False
    map_color = (64, 110, 220)

class Cloud(Decoration):
    name = 'Cloud'
    diggable = False
    map_color = (235, 240, 250)


TILES = [
    Dirt,
    Stone,
    Grass,
    Sand,
    Ore,
    Bedrock,
    Coal,
    Iron,
    Gold,
    Diamond,
    Wood,
    Leaves,
    Bush,
    Flower,
    TallGrass,
    Cactus,
    Snow,
    Mushroom,
    Water,
    Cloud,
]
i = 1
TILE_ID = {'Air': 0}
for x in TILES:
    TILE_ID[x.name] = i
    i+=1
NUM_TILES = len(TILES) + 1
TILE_NAMES = ['Air'] + [x.name for x in TILES]

AIR = TILE_ID['Air']
DIRT = TILE_ID['Dirt']
STONE = TILE_ID['Stone']
GRASS = TILE_ID['Grass']
SAND = TILE_ID['Sand']
ORE = TILE_ID['Ore']
BEDROCK = TILE_ID['Bedrock']
COAL = TILE_ID['Coal']
IRON = TILE_ID['Iron']
GOLD = TILE_ID['Gold']
DIAMOND = TILE_ID['Diamond']
WOOD = TILE_ID['Wood']
LEAVES = TILE_ID['Leaves']
BUSH = TILE_ID['Bush']
FLOWER = TILE_ID['Flower']
TALL_GRASS = TILE_ID['Tall Grass']
CACTUS = TILE_ID['Cactus']
SNOW = TILE_ID['Snow']
MUSHROOM = TILE_ID['Mushroom']
WATER = TILE_ID['Water']
CLOUD = TILE_ID['Cloud']

TILE_SOLID = numpy.array([False] + [x.solid for x in TILES], dtype = numpy.uint8)
TILE_DIGGABLE = numpy.array([False] + [x.diggable for x in TILES], dtype = numpy.uint8)
TILE_SCORE = numpy.array([0] + [x.score for x in TILES], dtype = numpy.int32)
TILE_COLORS = numpy.array([(135, 206, 235)] + [x.map_color for x in TILES], dtype = numpy.uint8)
TILE_ITEM = [None] + [x.item for x in TILES]
# Single characters for text dumps of chunks.
TILE_GLYPHS = ' #%"s*B@ig$|&bft!~m=o'


def is_valid_tile(value):
    return isinstance(value, (int, numpy.integer)) and not isinstance(value, bool) and 0 <= value < NUM_TILES
