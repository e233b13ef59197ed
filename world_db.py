'''
world_db.py -- world persistence

WorldFile   the authoritative server's single JSON save
KeyValueDB  the single-player key/value store (sqlite backed, JSON values)

Both raise PersistenceError for any I/O or decoding failure. Saves are written
to a temporary file and moved over the old one, so a failed save leaves the
previous save readable.
'''
import json
import os
import sqlite3
import time

import logutil
from util import chunk_key, parse_chunk_key, grid_to_list, grid_from_list


class PersistenceError(Exception):
    pass


def _atomic_write_json(path, data):
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    tmp_path = path + '.tmp'
    try:
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(data, f)
        os.replace(tmp_path, path)
    except (OSError, TypeError, ValueError):
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise


def pack_world(world, chunks):
    '''
    the save record for `world` with the modified `chunks`
    ({(chunk_x, chunk_y): grid})
    '''
    return {
        'worldSeed': world.seed,
        'ruleset': world.ruleset.name,
        'terrainHeights': world.height_list(),
        'biomeMap': world.biome_names(),
        'chunks': {chunk_key(*pos): grid_to_list(grid) for pos, grid in chunks.items()},
        'worldMetadata': dict(world.metadata),
    }


def unpack_chunks(record, chunk_size=None):
    '''{(chunk_x, chunk_y): grid} from a save record, validating every grid'''
    chunks = {}
    for key, data in record.get('chunks', {}).items():
        try:
            chunks[parse_chunk_key(key)] = grid_from_list(data, chunk_size)
        except ValueError as e:
            raise PersistenceError(f"bad chunk {key!r} in save: {e}")
    return chunks


class WorldFile(object):
    def __init__(self, path):
        self.path = path

    def exists(self):
        return os.path.exists(self.path)

    def save(self, world, chunks):
        t0 = time.perf_counter()
        now = time.time()
        record = pack_world(world, chunks)
        record['worldMetadata']['lastSaved'] = now
        try:
            _atomic_write_json(self.path, record)
        except (OSError, TypeError, ValueError) as e:
            logutil.log("WORLDDB", f"save to {self.path} failed: {e}", level="ERROR")
            raise PersistenceError(str(e))
        world.metadata['lastSaved'] = now
        logutil.log("WORLDDB", f"saved {len(chunks)} chunks to {self.path} in {(time.perf_counter() - t0) * 1000.0:.1f}ms")

    def load(self):
        '''the raw save record; required keys are checked'''
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                record = json.load(f)
        except (OSError, ValueError) as e:
            raise PersistenceError(f"cannot read {self.path}: {e}")
        for key in ('worldSeed', 'terrainHeights', 'biomeMap'):
            if key not in record:
                raise PersistenceError(f"save {self.path} has no {key}")
        return record


class KeyValueDB(object):
    '''
    small persistent mapping of string keys to JSON values
    get raises KeyError for missing keys
    '''
    def __init__(self, path):
        self.path = path
        try:
            directory = os.path.dirname(path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            self._conn = sqlite3.connect(path)
            with self._conn:
                self._conn.execute('CREATE TABLE IF NOT EXISTS kv (key TEXT PRIMARY KEY, value TEXT NOT NULL)')
        except (OSError, sqlite3.Error) as e:
            raise PersistenceError(f"cannot open {path}: {e}")

    def get(self, key):
        try:
            row = self._conn.execute('SELECT value FROM kv WHERE key = ?', (key,)).fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(str(e))
        if row is None:
            raise KeyError(key)
        try:
            return json.loads(row[0])
        except ValueError as e:
            raise PersistenceError(f"corrupt value for {key!r}: {e}")

    def put(self, key, value):
        try:
            with self._conn:
                self._conn.execute('INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)', (key, json.dumps(value)))
        except (sqlite3.Error, TypeError, ValueError) as e:
            raise PersistenceError(str(e))

    def delete(self, key):
        try:
            with self._conn:
                self._conn.execute('DELETE FROM kv WHERE key = ?', (key,))
        except sqlite3.Error as e:
            raise PersistenceError(str(e))

    def keys(self, prefix=''):
        try:
            rows = self._conn.execute('SELECT key FROM kv WHERE key LIKE ? ORDER BY key', (prefix + '%',)).fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(str(e))
        return [r[0] for r in rows]

    def close(self):
        self._conn.close()
