import os
import sys

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

import config
from tiles import AIR, SAND, STONE, TILE_ITEM
from world_loader import LocalWorld


class FakeClock(object):
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


def _open(tmp_path, seed=11, clock=None):
    return LocalWorld(db_path=str(tmp_path / 'local.db'), seed=seed, ruleset='ant', clock=clock or FakeClock())


def test_no_op_write_stores_nothing(tmp_path):
    local = _open(tmp_path)
    current = local.get_tile(100, 100)
    assert local.set_tile(100, 100, current) is False
    assert local.dirty == set()
    assert local.flush() == 0
    assert local.stored_chunk_keys() == []
    local.close()


def test_edits_survive_reopening(tmp_path):
    local = _open(tmp_path)
    assert local.set_tile(100, 100, STONE)
    assert local.flush() == 1
    assert local.stored_chunk_keys() == ['6,6']
    local.close()

    reopened = _open(tmp_path, seed=None)
    assert reopened.world.seed == 11
    assert reopened.world.ruleset.name == 'ant'
    assert reopened.get_tile(100, 100) == STONE
    reopened.close()


def test_undone_edit_is_removed_from_storage(tmp_path):
    local = _open(tmp_path)
    original = local.get_tile(100, 100)
    local.set_tile(100, 100, STONE)
    local.flush()
    local.set_tile(100, 100, original)
    assert local.flush() == 0
    assert local.stored_chunk_keys() == []
    local.close()


def test_new_seed_drops_old_edits(tmp_path):
    local = _open(tmp_path)
    local.set_tile(100, 100, STONE)
    local.close()
    other = _open(tmp_path, seed=12)
    assert other.world.seed == 12
    assert other.stored_chunk_keys() == []
    assert other.get_tile(100, 100) != STONE
    other.close()


def test_dig_collects_and_refuses_bedrock(tmp_path):
    local = _open(tmp_path)
    # crust row just under the flat sand surface
    assert local.get_tile(50, 6) == SAND
    assert local.dig(50, 6) == TILE_ITEM[SAND]
    assert local.get_tile(50, 6) == AIR
    assert local.inventory == {TILE_ITEM[SAND]: 1}
    assert local.dig(50, 6) is None
    assert local.dig(-1, 6) is None
    assert local.dig(50, local.world.height - 1) is None
    local.close()


def test_update_autosaves_when_due(tmp_path):
    clock = FakeClock(0.0)
    local = _open(tmp_path, clock=clock)
    local.update(100, 100, now=0.0)
    local.set_tile(100, 100, STONE)
    local.update(100, 100, now=config.LOCAL_AUTO_SAVE_INTERVAL / 2)
    assert local.stored_chunk_keys() == []
    local.update(100, 100, now=config.LOCAL_AUTO_SAVE_INTERVAL)
    assert local.stored_chunk_keys() == ['6,6']
    assert local.dirty == set()
    local.close()


def test_reopening_with_another_ruleset_starts_fresh(tmp_path):
    path = str(tmp_path / 'local.db')
    first = LocalWorld(db_path=path, seed=5, ruleset='single_player', clock=FakeClock())
    x, y = first.world.spawn_point()
    y += 4
    tile = STONE if first.get_tile(x, y) != STONE else SAND
    assert first.set_tile(x, y, tile)
    first.close()
    check = LocalWorld(db_path=path, clock=FakeClock())
    assert check.world.ruleset.name == 'single_player'
    assert len(check.stored_chunk_keys()) == 1
    check.close()

    # same seed, different ruleset: the stored edits belong to another world
    second = LocalWorld(db_path=path, seed=5, ruleset='ant', clock=FakeClock())
    assert second.world.ruleset.name == 'ant'
    assert second.stored_chunk_keys() == []
    second.close()

    reopened = LocalWorld(db_path=path, clock=FakeClock())
    assert reopened.world.ruleset.name == 'ant'
    assert reopened.world.seed == 5
    reopened.close()
