import os
import sys

import numpy as np

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

import config
from main import render_view, set_address
from server import Server
from server_connection import ClientWorld, ServerConnection
from tiles import AIR, DIRT, STONE

CHUNK = config.CHUNK_SIZE


class FakeClock(object):
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


class FakeConn(object):
    def send(self, frame):
        pass

    def close(self):
        pass


class ScriptedConn(object):
    def __init__(self, frames):
        self.frames = list(frames)
        self.sent = []
        self.closed = False

    def send(self, frame):
        self.sent.append(frame)

    def poll(self, timeout=0.0):
        return bool(self.frames)

    def recv(self):
        return self.frames.pop(0)

    def close(self):
        self.closed = True


def _client(clock=None):
    return ClientWorld(clock=clock or FakeClock(), request_timeout=5.0, dig_cooldown=0.5)


def _sent(world, name):
    return [data for msg, data in world.outbox if msg == name]


def _chunk_payload(cx, cy, tile, server_generated=True):
    grid = np.full((CHUNK, CHUNK), tile, dtype=np.uint8)
    return {'chunkX': cx, 'chunkY': cy, 'data': grid.tolist(), 'serverGenerated': server_generated}


def test_requests_are_not_duplicated():
    world = _client()
    assert world.request_chunk(1, 2, now=0.0)
    assert not world.request_chunk(1, 2, now=1.0)
    assert world.is_loaded(1, 2)
    assert _sent(world, 'requestChunk') == [{'chunkX': 1, 'chunkY': 2}]


def test_lost_request_is_retried_after_timeout():
    world = _client()
    world.request_chunk(1, 2, now=0.0)
    assert world.request_chunk(1, 2, now=5.0)
    assert len(_sent(world, 'requestChunk')) == 2
    assert world.expire_requests(now=11.0) == [(1, 2)]
    assert not world.is_loaded(1, 2)


def test_request_around_covers_the_radius_once():
    world = _client()
    assert world.request_around(40, 40, radius=1, now=0.0) == 9
    assert world.request_around(41, 41, radius=1, now=1.0) == 0


def test_chunk_data_fills_pending_and_ignores_strangers():
    world = _client()
    world.request_chunk(0, 0, now=0.0)
    world.handle_message('chunkData', None, _chunk_payload(0, 0, DIRT))
    world.handle_message('chunkData', None, _chunk_payload(5, 5, DIRT))
    assert (0, 0) in world.chunks
    assert (5, 5) not in world.chunks
    assert world.pending == {}
    assert world.get_tile(3, 3) == DIRT
    assert world.get_tile(5 * CHUNK, 5 * CHUNK) is None
    assert world.chunk_meta[(0, 0)]['loadedFromServer']


def test_chunk_data_without_server_flag_merges_differences():
    world = _client()
    world.request_chunk(0, 0, now=0.0)
    world.handle_message('chunkData', None, _chunk_payload(0, 0, DIRT))
    held = world.chunks[(0, 0)]
    update = _chunk_payload(0, 0, DIRT, server_generated=False)
    update['data'][2][7] = STONE
    world.handle_message('chunkData', 3, update)
    assert world.chunks[(0, 0)] is held
    assert world.get_tile(7, 2) == STONE
    assert world.chunk_meta[(0, 0)]['updatedFromServer']


def test_block_update_applies_to_held_chunks_only():
    world = _client()
    world.request_chunk(0, 0, now=0.0)
    world.handle_message('chunkData', None, _chunk_payload(0, 0, DIRT))
    world.handle_message('blockUpdate', 2, {'x': 4, 'y': 5, 'tileType': AIR, 'playerId': 2})
    world.handle_message('blockUpdate', 2, {'x': 400, 'y': 5, 'tileType': AIR, 'playerId': 2})
    assert world.get_tile(4, 5) == AIR
    assert world.get_tile(400, 5) is None
    assert world.chunks.keys() == {(0, 0)}


def test_dig_waits_for_server_and_respects_cooldown():
    world = _client()
    world.request_chunk(0, 0, now=0.0)
    world.handle_message('chunkData', None, _chunk_payload(0, 0, DIRT))
    assert world.dig(4, 5, now=10.0)
    # nothing changes until the server confirms
    assert world.get_tile(4, 5) == DIRT
    assert not world.dig(4, 5, now=10.2)
    assert world.dig(4, 5, now=10.6)
    digs = _sent(world, 'blockDig')
    assert len(digs) == 2
    assert digs[0] == {'x': 4, 'y': 5, 'tileType': AIR, 'itemCollected': 'dirt', 'originalTileType': DIRT}
    assert not world.dig(400, 5, now=20.0)
    world.disconnected = True
    assert not world.dig(6, 6, now=30.0)


def test_old_digs_are_forgotten():
    world = _client()
    world.request_chunk(0, 0, now=0.0)
    world.handle_message('chunkData', None, _chunk_payload(0, 0, DIRT))
    for x in range(CHUNK):
        assert world.dig(x, 3, now=1.0 + x)
        assert len(world.recent_digs) == 1
    world.dig(0, 4, now=100.0)
    world.dig(1, 4, now=100.1)
    assert world.expire_requests(now=100.3) == []
    assert set(world.recent_digs) == {(0, 4), (1, 4)}
    world.expire_requests(now=101.0)
    assert world.recent_digs == {}


def test_world_reset_clears_client_state():
    world = _client()
    world.request_chunk(0, 0, now=0.0)
    world.handle_message('chunkData', None, _chunk_payload(0, 0, DIRT))
    world.request_chunk(1, 0, now=0.0)
    world.dig(1, 1, now=0.0)
    world.handle_message('worldReset', None, {'worldSeed': 55, 'terrainHeights': [3, 4], 'biomeMap': ['Desert', 'Desert']})
    assert world.seed == 55
    assert world.chunks == {}
    assert world.pending == {}
    assert world.recent_digs == {}
    assert world.reset_count == 1
    assert world.request_chunk(0, 0, now=1.0)


def test_players_are_tracked():
    world = _client()
    world.handle_message('initialize', None, {'id': 7, 'worldSeed': 1, 'terrainHeights': [1], 'biomeMap': ['Desert'],
        'players': [{'id': 7, 'x': 0, 'y': 0}]})
    assert world.initialized and world.player_id == 7
    world.handle_message('playerJoined', 8, {'id': 8, 'x': 1, 'y': 1})
    world.handle_message('playerMoved', 8, {'id': 8, 'x': 5, 'y': 6, 'direction': -1})
    world.handle_message('playerUpdated', 8, {'id': 8, 'inventory': {'dirt': 1}, 'score': 0})
    assert world.players[8]['x'] == 5
    assert world.players[8]['inventory'] == {'dirt': 1}
    world.handle_message('playerLeft', 8, {'id': 8})
    assert set(world.players) == {7}


def test_malformed_and_unknown_messages_do_not_raise():
    world = _client()
    world.handle_message('chunkData', None, {'chunkX': 0})
    world.handle_message('blockUpdate', None, None)
    world.handle_message('worldSaved', None, {'success': True})
    assert world.replies == {'worldSaved': {'success': True}}


def test_pump_skips_malformed_frames():
    world = _client()
    world.send('playerMove', {'x': 1, 'y': 2, 'direction': 1})
    conn = ScriptedConn([
        'garbage',
        ['playerJoined', None],
        None,
        [['list'], None, {}],
        ('playerJoined', None, {'id': 7}),
    ])
    link = ServerConnection(world=world, conn=conn)
    assert link.pump() == 5
    assert not world.disconnected
    assert world.players == {7: {'id': 7}}
    assert conn.sent == [['playerMove', {'x': 1, 'y': 2, 'direction': 1}]]
    link.close()
    assert conn.closed
    assert conn.sent[-1] == ['quit', None]


def _deliver(server_player, world):
    for msg, origin, data in server_player.comms_queue:
        world.handle_message(msg, origin, data)
    del server_player.comms_queue[:]


def _submit(world, server, server_player):
    while world.outbox:
        server.handler.handle_frame(server_player, list(world.outbox.popleft()))


def test_client_and_server_agree(tmp_path):
    clock = FakeClock(100.0)
    server = Server(seed=31, ruleset='single_player', save_path=str(tmp_path / 'w.json'), clock=clock, load=False)
    me = server.handler.add_player(FakeConn())
    other = server.handler.add_player(FakeConn())
    world = _client(clock)
    _deliver(me, world)
    assert world.initialized and world.player_id == me.id

    x = server.world.width // 2
    y = server.world.terrain_height(x) + 2
    world.request_around(x, y, radius=1)
    _submit(world, server, me)
    _deliver(me, world)
    assert world.pending == {}
    assert world.get_tile(x, y) == server.store.get_tile(x, y)

    assert world.dig(x, y)
    _submit(world, server, me)
    _deliver(me, world)
    assert world.get_tile(x, y) == AIR == server.store.get_tile(x, y)
    assert [frame[0] for frame in other.comms_queue].count('blockUpdate') == 1

    cx, cy = x // CHUNK, y // CHUNK
    assert not world.push_chunk(cx + 50, cy)
    assert world.push_chunk(cx, cy)
    _submit(world, server, me)
    pushed = [data for msg, _, data in other.comms_queue if msg == 'chunkData']
    assert pushed[-1]['data'] == world.chunks[(cx, cy)].tolist()


def test_render_view_marks_player_and_unknown_tiles():
    view = render_view(lambda x, y: None if x < 0 else AIR, 0, 0, width=4, height=2)
    assert view.split('\n') == ['??  ', '??P ']


def test_set_address_parses_host_and_port(monkeypatch):
    monkeypatch.setattr(config, 'SERVER_IP', None)
    monkeypatch.setattr(config, 'SERVER_PORT', 20226)
    set_address('10.0.0.2:4000')
    assert (config.SERVER_IP, config.SERVER_PORT) == ('10.0.0.2', 4000)
    set_address('example.org')
    assert (config.SERVER_IP, config.SERVER_PORT) == ('example.org', 4000)
