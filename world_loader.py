'''
world_loader.py -- single-player world: local generation, chunk lifecycle and local persistence

The local process is the only writer, so edits go straight into the chunk
store. Only chunks that differ from a fresh generation are kept in the
key/value store ("chunk:x,y" keys); a chunk edited back to its generated state
is deleted from it.
'''
import time

import numpy

import config
import logutil
from chunk_store import ChunkStore
from rulesets import get_ruleset
from tiles import AIR, TILE_DIGGABLE, TILE_ITEM, TILE_SCORE
from util import parse_chunk_key, grid_to_list, grid_from_list
from world import World
import world_db

CHUNK_PREFIX = 'chunk:'


class LocalWorld(object):
    def __init__(self, db_path=None, seed=None, ruleset=None, clock=time.time):
        self.clock = clock
        self.db = world_db.KeyValueDB(db_path or config.LOCAL_DB_PATH)
        stored_seed = self._stored('seed')
        stored_ruleset = self._stored('ruleset')
        if seed is None:
            seed = stored_seed
        ruleset = get_ruleset(ruleset or stored_ruleset or 'single_player')
        if ((stored_seed is not None and seed != stored_seed)
                or (stored_ruleset is not None and ruleset.name != stored_ruleset)):
            # a different world: stored edits belong to the old one
            logutil.log("LOCAL", f"world changed from seed={stored_seed} ruleset={stored_ruleset}, dropping stored chunks")
            self._drop_chunks()
        self.world = World(seed=seed, ruleset=ruleset)
        self.db.put('seed', self.world.seed)
        self.db.put('ruleset', self.world.ruleset.name)
        self.dirty = set()
        self.store = ChunkStore(self.world, on_change=self.dirty.add)
        self.inventory = {}
        self.score = 0
        self.last_save = clock()
        self._load_chunks()

    def _stored(self, key):
        try:
            return self.db.get(key)
        except KeyError:
            return None

    def _drop_chunks(self):
        for key in self.db.keys(CHUNK_PREFIX):
            self.db.delete(key)

    def _load_chunks(self):
        count = 0
        for key in self.db.keys(CHUNK_PREFIX):
            try:
                pos = parse_chunk_key(key[len(CHUNK_PREFIX):])
                grid = grid_from_list(self.db.get(key))
            except (KeyError, ValueError) as e:
                logutil.log("LOCAL", f"skipping stored chunk {key}: {e}", level="WARN")
                continue
            self.store.persisted[pos] = grid
            count += 1
        logutil.log("LOCAL", f"world seed={self.world.seed} with {count} stored chunks")

    def get_tile(self, x, y):
        return self.store.get_tile(x, y)

    def set_tile(self, x, y, tile):
        return self.store.set_tile(x, y, tile)

    def dig(self, x, y):
        '''removes a diggable tile; returns the collected item name (or None)'''
        original = self.store.get_tile(x, y)
        if not TILE_DIGGABLE[original]:
            return None
        if not self.store.set_tile(x, y, AIR):
            return None
        item = TILE_ITEM[original]
        if item is not None:
            self.inventory[item] = self.inventory.get(item, 0) + 1
            self.score += int(TILE_SCORE[original])
        return item

    def update(self, world_x, world_y, now=None):
        '''track the player position and autosave when due'''
        now = self.clock() if now is None else now
        self.store.update_active_center(world_x, world_y)
        if self.dirty and now - self.last_save >= getattr(config, 'LOCAL_AUTO_SAVE_INTERVAL', 60.0):
            self.flush()

    def flush(self):
        '''writes every chunk changed since the last flush; returns the number written'''
        written = 0
        for key in sorted(self.dirty):
            pos = parse_chunk_key(key)
            grid = self.store.peek_chunk(*pos)
            if grid is None:
                continue
            db_key = CHUNK_PREFIX + key
            if numpy.array_equal(grid, self.world.generate_chunk(*pos)):
                self.db.delete(db_key)
            else:
                self.db.put(db_key, grid_to_list(grid))
                written += 1
        self.dirty.clear()
        self.last_save = self.clock()
        return written

    def stored_chunk_keys(self):
        return [k[len(CHUNK_PREFIX):] for k in self.db.keys(CHUNK_PREFIX)]

    def close(self):
        self.flush()
        self.db.close()

