'''
chunk_store.py -- chunk lifecycle for one world

Chunks live in one of three places:
    chunks     active chunks around the tracked center
    cache      evicted chunks that were never modified (bounded, oldest dropped first)
    persisted  evicted chunks that were modified; they are never regenerated

Lookups fall through active -> cache -> persisted -> generator, so a tile
outside the active area still reads its stored value (or the same value a fresh
generation gives).
'''
import collections

import config
import logutil
from tiles import AIR, BEDROCK, is_valid_tile
from util import chunkify, chunk_key, chunk_distance, chunks_in_radius, local_coords


class ChunkStore(object):
    def __init__(self, world, radius=None, cache_size=None, on_change=None):
        self.world = world
        self.radius = getattr(config, 'ACTIVE_RADIUS', 2) if radius is None else radius
        self.cache_size = getattr(config, 'CHUNK_CACHE_SIZE', 64) if cache_size is None else cache_size
        self.chunk_size = config.CHUNK_SIZE
        # called with the chunk key "x,y" whenever a tile really changes
        self.on_change = on_change
        self.chunks = {}
        self.cache = collections.OrderedDict()
        self.modified = set()
        self.persisted = {}
        self.center = None

    def clear(self):
        self.chunks.clear()
        self.cache.clear()
        self.modified.clear()
        self.persisted.clear()
        self.center = None

    @property
    def chunk_count(self):
        return len(self.chunks)

    @property
    def modified_count(self):
        return len(self.modified) + len(self.persisted)

    def is_modified(self, chunk_x, chunk_y):
        pos = (chunk_x, chunk_y)
        return pos in self.modified or pos in self.persisted

    def get_chunk(self, chunk_x, chunk_y):
        '''
        the grid for chunk (chunk_x, chunk_y), activating it if needed.
        Chunks wholly outside the world are generated but never kept.
        '''
        if not self.world.chunk_in_world(chunk_x, chunk_y):
            return self.world.generate_chunk(chunk_x, chunk_y)
        pos = (chunk_x, chunk_y)
        grid = self.chunks.get(pos)
        if grid is not None:
            return grid
        if pos in self.cache:
            grid = self.cache.pop(pos)
        elif pos in self.persisted:
            grid = self.persisted.pop(pos)
            self.modified.add(pos)
        else:
            grid = self.world.generate_chunk(chunk_x, chunk_y)
        self.chunks[pos] = grid
        return grid

    def peek_chunk(self, chunk_x, chunk_y):
        '''the stored grid, or None, without activating or generating anything'''
        pos = (chunk_x, chunk_y)
        for store in (self.chunks, self.persisted, self.cache):
            if pos in store:
                return store[pos]
        return None

    def load_chunk(self, chunk_x, chunk_y, grid, modified=True):
        '''installs an externally supplied grid (save file, server data)'''
        pos = (chunk_x, chunk_y)
        self.cache.pop(pos, None)
        self.persisted.pop(pos, None)
        self.chunks[pos] = grid
        if modified:
            self.modified.add(pos)
        else:
            self.modified.discard(pos)

    def _out_of_world(self, x, y):
        return not self.world.in_bounds(x, y)

    def get_tile(self, x, y):
        x = int(x)
        y = int(y)
        if self._out_of_world(x, y):
            return BEDROCK
        if y < self.world.ruleset.sky_threshold:
            return AIR
        grid = self.get_chunk(*chunkify((x, y), self.chunk_size))
        lx, ly = local_coords((x, y), self.chunk_size)
        return int(grid[ly, lx])

    def set_tile(self, x, y, tile):
        '''
        writes `tile` at (x, y); returns True only when the stored value changed.
        Writes outside the world, into the sky band or of unknown tiles are refused.
        '''
        x = int(x)
        y = int(y)
        if not is_valid_tile(tile):
            logutil.log("CHUNKS", f"refusing unknown tile {tile!r} at {x},{y}", level="WARN")
            return False
        if self._out_of_world(x, y) or y < self.world.ruleset.sky_threshold:
            return False
        pos = chunkify((x, y), self.chunk_size)
        grid = self.get_chunk(*pos)
        lx, ly = local_coords((x, y), self.chunk_size)
        if grid[ly, lx] == tile:
            return False
        grid[ly, lx] = tile
        self.modified.add(pos)
        if self.on_change is not None:
            self.on_change(chunk_key(*pos))
        return True

    def _evict(self, pos):
        grid = self.chunks.pop(pos)
        if pos in self.modified:
            self.modified.discard(pos)
            self.persisted[pos] = grid
            return
        self.cache[pos] = grid
        while len(self.cache) > self.cache_size:
            self.cache.popitem(last=False)

    def update_active_center(self, world_x, world_y):
        '''
        track a new center (tile coordinates). Chunks beyond radius+1 are evicted,
        everything within radius is generated. Returns False when the center
        chunk did not change.
        '''
        center = chunkify((world_x, world_y), self.chunk_size)
        if center == self.center:
            return False
        self.center = center
        evicted = 0
        for pos in list(self.chunks):
            if chunk_distance(pos, center) > self.radius + 1:
                self._evict(pos)
                evicted += 1
        for pos in chunks_in_radius(center, self.radius):
            self.get_chunk(*pos)
        logutil.log("CHUNKS", f"center {center}: {len(self.chunks)} active, {evicted} evicted, "
            f"{len(self.cache)} cached, {len(self.persisted)} persisted", level="DEBUG")
        return True

    def modified_chunks(self):
        '''{(chunk_x, chunk_y): grid} for every chunk that differs from generation'''
        result = dict(self.persisted)
        for pos in self.modified:
            result[pos] = self.chunks[pos]
        return result
