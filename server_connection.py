'''
server_connection.py -- client side of the multiplayer protocol

ClientWorld is the client's partial mirror of the server world. It never
generates chunks: it asks for them, remembers what it asked for, and applies
what the server sends. ServerConnection moves frames between a ClientWorld and
the server socket.
'''
import collections
import time

import config
import msocket
from tiles import AIR, TILE_ITEM
from util import chunkify, chunks_in_radius, local_coords, grid_from_list

import logging
logging.basicConfig(level = logging.INFO)
def sconn_log(*args):
    logging.log(logging.INFO,*args)


class ClientWorld(object):
    def __init__(self, clock=time.time, request_timeout=None, dig_cooldown=None):
        self.clock = clock
        self.request_timeout = getattr(config, 'CHUNK_REQUEST_TIMEOUT', 5.0) if request_timeout is None else request_timeout
        self.dig_cooldown = getattr(config, 'CLIENT_BLOCK_COOLDOWN', 0.5) if dig_cooldown is None else dig_cooldown
        self.player_id = None
        self.players = {}
        self.seed = None
        self.terrain_heights = None
        self.biome_names = None
        self.chunks = {}
        self.chunk_meta = {}
        # chunk -> time of the outstanding request
        self.pending = {}
        self.recent_digs = {}
        self.replies = {}
        self.outbox = collections.deque()
        self.initialized = False
        self.disconnected = False
        self.reset_count = 0
        self._fn_dict = {
            'initialize': self.initialize,
            'chunkData': self.chunk_data,
            'blockUpdate': self.block_update,
            'worldReset': self.world_reset,
            'playerJoined': self.player_joined,
            'playerLeft': self.player_left,
            'playerMoved': self.player_moved,
            'playerUpdated': self.player_updated,
        }

    def register_function(self, name, fn):
        self._fn_dict[name]=fn

    def handle_message(self, msg, origin_id, data):
        fn = self._fn_dict.get(msg)
        if fn is None:
            # administrative replies are kept for whoever asked
            self.replies[msg] = data
            return
        try:
            fn(origin_id, data)
        except (KeyError, TypeError, ValueError) as e:
            sconn_log('dropped malformed %s from server: %s', msg, e)

    def send(self, message, data=None):
        self.outbox.append([message, data])

    # ----- chunk bookkeeping -----

    def is_loaded(self, chunk_x, chunk_y):
        pos = (chunk_x, chunk_y)
        return pos in self.chunks or pos in self.pending

    def request_chunk(self, chunk_x, chunk_y, now=None):
        '''
        asks the server for a chunk unless it is held or already requested;
        requests older than the timeout count as lost and are sent again
        '''
        now = self.clock() if now is None else now
        pos = (chunk_x, chunk_y)
        if pos in self.chunks:
            return False
        asked = self.pending.get(pos)
        if asked is not None and now - asked < self.request_timeout:
            return False
        if asked is not None:
            sconn_log('chunk %s,%s request timed out, retrying', chunk_x, chunk_y)
        self.pending[pos] = now
        self.send('requestChunk', {'chunkX': chunk_x, 'chunkY': chunk_y})
        return True

    def request_around(self, x, y, radius=None, now=None):
        radius = getattr(config, 'ACTIVE_RADIUS', 2) if radius is None else radius
        sent = 0
        for pos in chunks_in_radius(chunkify((x, y)), radius):
            if self.request_chunk(pos[0], pos[1], now):
                sent += 1
        return sent

    def expire_requests(self, now=None):
        '''forget requests older than the timeout so they can be re-requested'''
        now = self.clock() if now is None else now
        self.forget_old_digs(now)
        stale = [pos for pos, t in self.pending.items() if now - t >= self.request_timeout]
        for pos in stale:
            del self.pending[pos]
        return stale

    def forget_old_digs(self, now):
        old = [pos for pos, t in self.recent_digs.items() if now - t >= self.dig_cooldown]
        for pos in old:
            del self.recent_digs[pos]

    def get_tile(self, x, y):
        '''tile at (x, y), or None when its chunk is not held'''
        grid = self.chunks.get(chunkify((x, y)))
        if grid is None:
            return None
        lx, ly = local_coords((x, y))
        return int(grid[ly, lx])

    # ----- player intents -----

    def dig(self, x, y, tile=AIR, now=None):
        '''
        sends a tile edit; nothing changes locally until the server's
        blockUpdate arrives. Returns False when suppressed.
        '''
        now = self.clock() if now is None else now
        if self.disconnected:
            return False
        x = int(x)
        y = int(y)
        self.forget_old_digs(now)
        last = self.recent_digs.get((x, y))
        if last is not None and now - last < self.dig_cooldown:
            return False
        original = self.get_tile(x, y)
        if original is None or original == tile:
            return False
        self.recent_digs[(x, y)] = now
        self.send('blockDig', {
            'x': x,
            'y': y,
            'tileType': tile,
            'itemCollected': TILE_ITEM[original] if tile == AIR else None,
            'originalTileType': original,
        })
        return True

    def move(self, x, y, direction):
        self.send('playerMove', {'x': x, 'y': y, 'direction': direction})

    def push_chunk(self, chunk_x, chunk_y):
        grid = self.chunks.get((chunk_x, chunk_y))
        if grid is None:
            return False
        self.send('saveChunk', {'chunkX': chunk_x, 'chunkY': chunk_y, 'data': grid.tolist()})
        return True

    def reset_world(self, seed=None):
        self.send('resetWorldSeed', {'seed': seed})

    # ----- server messages -----

    def initialize(self, origin_id, data):
        self.player_id = data['id']
        self.seed = data['worldSeed']
        self.terrain_heights = list(data['terrainHeights'])
        self.biome_names = list(data['biomeMap'])
        self.players = {p['id']: p for p in data.get('players', [])}
        self.initialized = True
        sconn_log('initialized as player %s, seed %s', self.player_id, self.seed)

    def chunk_data(self, origin_id, data):
        pos = (int(data['chunkX']), int(data['chunkY']))
        if pos not in self.chunks and pos not in self.pending:
            # not something this client is tracking
            return
        grid = grid_from_list(data['data'])
        self.pending.pop(pos, None)
        now = self.clock()
        current = self.chunks.get(pos)
        if data.get('serverGenerated') or current is None:
            self.chunks[pos] = grid
            self.chunk_meta[pos] = {'loadedFromServer': True, 'loadedAt': now}
            return
        changed = current != grid
        if changed.any():
            current[changed] = grid[changed]
            self.chunk_meta.setdefault(pos, {}).update({'updatedFromServer': True, 'lastUpdated': now})

    def block_update(self, origin_id, data):
        x = int(data['x'])
        y = int(data['y'])
        grid = self.chunks.get(chunkify((x, y)))
        if grid is None:
            return
        lx, ly = local_coords((x, y))
        grid[ly, lx] = int(data['tileType'])

    def world_reset(self, origin_id, data):
        self.seed = data['worldSeed']
        self.terrain_heights = list(data['terrainHeights'])
        self.biome_names = list(data['biomeMap'])
        self.chunks.clear()
        self.chunk_meta.clear()
        self.pending.clear()
        self.recent_digs.clear()
        self.reset_count += 1
        sconn_log('world reset, seed %s', self.seed)

    def player_joined(self, origin_id, data):
        self.players[data['id']] = data

    def player_left(self, origin_id, data):
        self.players.pop(data['id'], None)

    def player_moved(self, origin_id, data):
        p = self.players.setdefault(data['id'], {'id': data['id']})
        p.update(x=data['x'], y=data['y'], direction=data['direction'])

    def player_updated(self, origin_id, data):
        p = self.players.setdefault(data['id'], {'id': data['id']})
        p.update(inventory=data['inventory'], score=data['score'])


class ServerConnection(object):
    '''
    Handles the connection to the multiplayer server for one ClientWorld
    '''
    def __init__(self, server_ip=None, server_port=None, world=None, conn=None):
        if conn is None:
            server_ip = server_ip or config.SERVER_IP or 'localhost'
            server_port = server_port or config.SERVER_PORT
            sconn_log('connecting to server at %s:%i', server_ip, server_port)
            conn = msocket.Client(server_ip, server_port)
        self._conn = conn
        self.world = world or ClientWorld()

    def pump(self, timeout=0.0):
        '''
        sends everything queued by the world, then applies whatever the server
        has sent (waiting up to `timeout` for the first frame)
        '''
        if self.world.disconnected:
            return 0
        received = 0
        try:
            while self.world.outbox:
                self._conn.send(self.world.outbox.popleft())
            while self._conn.poll(timeout):
                self.receive(self._conn.recv())
                received += 1
                timeout = 0
        except (EOFError, OSError):
            ##TODO: try to reconnect
            sconn_log('lost connection to server')
            self.world.disconnected = True
        return received

    def receive(self, frame):
        try:
            msg, pid, data = frame
        except (TypeError, ValueError):
            msg = None
        if not isinstance(msg, str):
            sconn_log('dropped malformed frame from server: %.80r', frame)
            return
        self.world.handle_message(msg, pid, data)

    def close(self):
        if not self.world.disconnected:
            try:
                self._conn.send(['quit', None])
            except (EOFError, OSError):
                pass
        self._conn.close()
        self.world.disconnected = True
