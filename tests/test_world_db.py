import json
import os
import sys

import numpy as np
import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

import config
import world_db
from chunk_store import ChunkStore
from tiles import STONE, DIRT
from world import World
from world_db import KeyValueDB, PersistenceError, WorldFile, unpack_chunks


def _edited_world():
    world = World(seed=5, ruleset='ant')
    store = ChunkStore(world)
    edits = [(100, 100, STONE), (101, 100, STONE), (400, 30, DIRT), (3, 900, STONE)]
    for x, y, tile in edits:
        store.set_tile(x, y, tile)
    return world, store, edits


def test_save_then_load_reproduces_world(tmp_path):
    world, store, edits = _edited_world()
    path = str(tmp_path / 'saves' / 'world.json')
    save = WorldFile(path)
    assert not save.exists()
    save.save(world, store.modified_chunks())
    assert save.exists()
    assert world.metadata['lastSaved'] is not None

    record = WorldFile(path).load()
    assert record['worldSeed'] == 5
    assert record['ruleset'] == 'ant'
    assert record['terrainHeights'] == world.height_list()
    assert record['biomeMap'] == world.biome_names()
    assert len(record['chunks']) == len(store.modified_chunks())

    loaded = World(seed=record['worldSeed'], ruleset=record['ruleset'],
        biome_map=record['biomeMap'], heights=record['terrainHeights'])
    restored = ChunkStore(loaded)
    restored.persisted.update(unpack_chunks(record))
    for x, y, tile in edits:
        assert restored.get_tile(x, y) == tile


def test_only_modified_chunks_are_saved(tmp_path):
    world = World(seed=6, ruleset='ant')
    store = ChunkStore(world)
    store.update_active_center(500, 500)
    path = str(tmp_path / 'world.json')
    WorldFile(path).save(world, store.modified_chunks())
    with open(path) as f:
        assert json.load(f)['chunks'] == {}


def test_failed_save_keeps_previous_file(tmp_path):
    world, store, _ = _edited_world()
    path = str(tmp_path / 'world.json')
    save = WorldFile(path)
    save.save(world, store.modified_chunks())
    before = save.load()

    world.metadata['unserializable'] = object()
    with pytest.raises(PersistenceError):
        save.save(world, store.modified_chunks())
    assert not os.path.exists(path + '.tmp')
    after = save.load()
    assert after == before
    assert 'unserializable' not in after['worldMetadata']


def test_unreadable_saves_raise_persistence_error(tmp_path):
    with pytest.raises(PersistenceError):
        WorldFile(str(tmp_path / 'missing.json')).load()
    corrupt = tmp_path / 'corrupt.json'
    corrupt.write_text('{"worldSeed": 1,')
    with pytest.raises(PersistenceError):
        WorldFile(str(corrupt)).load()
    partial = tmp_path / 'partial.json'
    partial.write_text(json.dumps({'worldSeed': 1}))
    with pytest.raises(PersistenceError):
        WorldFile(str(partial)).load()


def test_bad_chunk_in_save_is_rejected():
    cs = config.CHUNK_SIZE
    good = np.zeros((cs, cs), dtype=np.uint8).tolist()
    assert list(unpack_chunks({'chunks': {'1,-2': good}})) == [(1, -2)]
    with pytest.raises(PersistenceError):
        unpack_chunks({'chunks': {'1,2': [[0, 1], [1, 0]]}})
    with pytest.raises(PersistenceError):
        unpack_chunks({'chunks': {'nonsense': good}})


def test_key_value_store(tmp_path):
    path = str(tmp_path / 'local.db')
    db = KeyValueDB(path)
    db.put('seed', 123)
    db.put('chunk:0,1', [[1, 2], [3, 4]])
    db.put('chunk:-1,1', [[0]])
    assert db.get('seed') == 123
    assert db.keys('chunk:') == ['chunk:-1,1', 'chunk:0,1']
    with pytest.raises(KeyError):
        db.get('missing')
    db.delete('chunk:-1,1')
    db.close()

    db = KeyValueDB(path)
    assert db.get('chunk:0,1') == [[1, 2], [3, 4]]
    assert db.keys() == ['chunk:0,1', 'seed']
    with pytest.raises(PersistenceError):
        db.put('bad', object())
    db.close()


def test_pack_world_uses_chunk_keys():
    world, store, _ = _edited_world()
    record = world_db.pack_world(world, store.modified_chunks())
    assert '6,6' in record['chunks']
    assert record['worldMetadata']['blockUpdates'] == 0
