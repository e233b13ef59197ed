# standard library imports
import time
import select
import sys
import traceback

# local imports
import config
import logutil
import msocket
import world_db
from chunk_store import ChunkStore
from players import Player, ClientPlayer
from tiles import AIR, TILE_DIGGABLE, TILE_ITEM, TILE_SCORE, is_valid_tile
from util import chunk_key, grid_to_list, grid_from_list
from world import World, new_seed


class ProtocolError(Exception):
    '''a client message that is malformed or unexpected'''
    pass


def start_server(ip, port, seed=None):
    config.SERVER_IP = ip
    config.SERVER_PORT = port
    Server(seed=seed).serve_forever()


class ServerConnectionHandler(object):
    '''
    Handles the low level connection handling details of the multiplayer server

    Client frames are [message, payload]; server frames are
    [message, origin_player_id, payload]. Handlers registered with
    `register_function` are called as fn(player, payload).
    '''
    def __init__(self, clock=time.time):
        self.listener = None
        self.players = []
        self.fn_dict = {}
        self.clock = clock
        self.server_owner = None

    def register_function(self, name, fn):
        self.fn_dict[name]=fn

    def call_function(self, name, *args):
        try:
            fn = self.fn_dict[name]
        except KeyError:
            raise ProtocolError(f"unknown message {name!r}")
        return fn(*args)

    def connections(self):
        return [p.conn for p in self.players]

    def connections_with_comms(self):
        return [p.conn for p in self.players if len(p.comms_queue)>0]

    def add_player(self, conn):
        player = Player(conn, now=self.clock())
        self.players.append(player)
        logutil.log("SERVER", f"connected new player id {player.id}")
        if self.server_owner is not None:
            self.server_owner.player_joined(player)
        return player

    def drop_player(self, player):
        try:
            player.conn.close()
        except OSError:
            pass
        if player in self.players:
            self.players.remove(player)
        if self.server_owner is not None:
            self.server_owner.player_left(player)

    def handle_frame(self, player, frame):
        '''
        decode and dispatch one client frame; errors are logged and the frame
        dropped so one bad client cannot take the server down
        '''
        player.last_active = self.clock()
        try:
            if not isinstance(frame, (list, tuple)) or len(frame) != 2 or not isinstance(frame[0], str):
                raise ProtocolError(f"malformed frame {frame!r:.80}")
            msg, data = frame
            logutil.log("SERVER", f"received {msg} from player {player.id} ({player.name})", level="DEBUG")
            if msg == 'quit':
                logutil.log("SERVER", f"player {player.id} requested disconnect")
                self.drop_player(player)
                return
            self.call_function(msg, player, data)
        except ProtocolError as e:
            logutil.log("SERVER", f"dropped message from player {player.id}: {e}", level="WARN")
        except Exception:
            logutil.log("SERVER", f"handler error for player {player.id}:\n{traceback.format_exc()}", level="ERROR")

    def serve(self):
        self.listener = msocket.Listener(config.SERVER_IP, config.SERVER_PORT)
        logutil.log("SERVER", f"listening on {config.SERVER_IP}:{config.SERVER_PORT}")
        alive = True
        while alive:
            try:
                r,w,x = select.select([self.listener] + self.connections(), self.connections_with_comms(), [], 0.5)
            except KeyboardInterrupt:
                logutil.log("SERVER", "received keyboard interrupt", level="WARN")
                break
            for p in list(self.players):
                if p.conn in r:
                    try:
                        frame = p.conn.recv()
                    except (EOFError, OSError):
                        logutil.log("SERVER", f"disconnect EOF for player {p.id} ({p.name})", level="WARN")
                        self.drop_player(p)
                        continue
                    except Exception as e:
                        #unpickling garbage
                        logutil.log("SERVER", f"unreadable frame from player {p.id}: {e}", level="WARN")
                        continue
                    self.handle_frame(p, frame)
            for p in list(self.players):
                if p.conn in w and p in self.players:
                    self.dispatch_top_message(p)
            if self.listener in r:
                try:
                    conn = self.listener.accept()
                except Exception as e:
                    logutil.log("SERVER", f"failed handshake: {e}", level="WARN")
                else:
                    self.add_player(conn)
            if self.server_owner is not None:
                self.server_owner.tick()
        self.listener.close()

    ##TODO: queue calls should collapse similar calls (e.g. multiple block updates in the same chunk)
    def queue_for_player(self, player, message, data=None, origin=None):
        origin = player if origin is None else origin
        player.comms_queue.append([message, origin.id, data])

    def queue_for_others(self, player, message, data=None):
        for p in self.players:
            if p != player:
                p.comms_queue.append([message, player.id, data])

    def queue_for_all_players(self, player, message, data=None):
        origin = None if player is None else player.id
        for p in self.players:
            p.comms_queue.append([message, origin, data])

    def dispatch_top_message(self, player):
        logutil.log("SERVER", f"sending {player.comms_queue[0][0]} to {player.id} ({player.name})", level="DEBUG")
        try:
            player.conn.send(player.comms_queue.pop(0))
        except (OSError, EOFError):
            logutil.log("SERVER", f"send failed for player {player.id}", level="WARN")
            self.drop_player(player)


def _int_field(data, name):
    if not isinstance(data, dict) or name not in data:
        raise ProtocolError(f"missing field {name!r}")
    value = data[name]
    if isinstance(value, bool):
        raise ProtocolError(f"field {name!r} is not an integer")
    try:
        if int(value) != value:
            raise ProtocolError(f"field {name!r} is not an integer")
        return int(value)
    except (TypeError, ValueError, OverflowError):
        raise ProtocolError(f"field {name!r} is not an integer")


class Server(object):
    '''
    Authoritative multiplayer server
    owns the world (seed, biome map, height field) and the canonical chunk store

    Client messages (payload fields)
        requestChunk(chunkX, chunkY)
            replies chunkData(chunkX, chunkY, data, serverGenerated)
        blockDig(x, y, tileType, [itemCollected], [originalTileType])
            applies the edit and broadcasts blockUpdate(x, y, tileType, playerId,
            originalTileType) to every player, at most once per tile per cooldown
        saveChunk(chunkX, chunkY, data, ...)
            overwrites the server copy and sends it to the other players
        resetWorldSeed([seed])
            new world, broadcast worldReset(worldSeed, terrainHeights, biomeMap)
        playerMove(x, y, direction)
            broadcast playerMoved(id, x, y, direction) to the others
        inventoryUpdate(inventory)
            broadcast playerUpdated(id, inventory, score) to the others
        getWorldData / getPlayerList / getWorldMap / saveWorld
            administrative queries, answered to the asking player only

    Connection events: initialize(id, players, worldSeed, terrainHeights, biomeMap)
    to the new player, playerJoined(player) to the others, playerLeft(id) to all.
    '''
    def __init__(self, handler=None, seed=None, ruleset=None, save_path=None, clock=time.time, load=True):
        self.clock = clock
        self.handler = handler or ServerConnectionHandler(clock=clock)
        self.handler.server_owner = self
        self.save_file = world_db.WorldFile(save_path or config.WORLD_SAVE_PATH)
        self.recent_updates = {}
        self.chunk_meta = {}
        self.start_time = clock()
        self.last_save = self.start_time
        self.last_cleanup = self.start_time
        self.dirty = False
        self.world = None
        if load and seed is None and self.save_file.exists():
            self._load_world(ruleset)
        if self.world is None:
            self.world = World(seed=seed, ruleset=ruleset)
            self.store = ChunkStore(self.world, cache_size=0)
        self.world.metadata.setdefault('blockUpdates', 0)
        logutil.log("SERVER", f"ready seed={self.world.seed} ruleset={self.world.ruleset.name}")
        self.handler.register_function('requestChunk', self.request_chunk)
        self.handler.register_function('blockDig', self.block_dig)
        self.handler.register_function('saveChunk', self.save_chunk)
        self.handler.register_function('resetWorldSeed', self.reset_world_seed)
        self.handler.register_function('playerMove', self.player_move)
        self.handler.register_function('inventoryUpdate', self.inventory_update)
        self.handler.register_function('getWorldData', self.get_world_data)
        self.handler.register_function('getPlayerList', self.get_player_list)
        self.handler.register_function('getWorldMap', self.get_world_map)
        self.handler.register_function('saveWorld', self.save_world_request)

    def serve_forever(self):
        try:
            self.handler.serve()
        finally:
            logutil.log("SERVER", "shutting down")
            self.save_world()

    def _load_world(self, ruleset):
        try:
            record = self.save_file.load()
            world = World(seed=record['worldSeed'], ruleset=record.get('ruleset', ruleset),
                biome_map=record['biomeMap'], heights=record['terrainHeights'])
            chunks = world_db.unpack_chunks(record)
        except (world_db.PersistenceError, ValueError) as e:
            logutil.log("SERVER", f"could not load {self.save_file.path}, starting a new world: {e}", level="ERROR")
            return
        world.metadata.update(record.get('worldMetadata', {}))
        self.world = world
        self.store = ChunkStore(world, cache_size=0)
        self.store.persisted.update(chunks)
        logutil.log("SERVER", f"loaded seed={world.seed} with {len(chunks)} saved chunks")

    # ----- timers -----

    def tick(self, now=None):
        now = self.clock() if now is None else now
        if now - self.last_cleanup >= getattr(config, 'CLEANUP_INTERVAL', 30.0):
            self.cleanup_recent_updates(now)
            self.last_cleanup = now
        if now - self.last_save >= getattr(config, 'AUTO_SAVE_INTERVAL', 300.0):
            self.last_save = now
            if self.dirty:
                self.save_world()

    def cleanup_recent_updates(self, now=None):
        now = self.clock() if now is None else now
        expiration = getattr(config, 'RECENT_UPDATE_EXPIRATION', 10.0)
        stale = [k for k, t in self.recent_updates.items() if now - t > expiration]
        for k in stale:
            del self.recent_updates[k]
        return len(stale)

    def save_world(self):
        '''returns False (after logging) when the save could not be written'''
        try:
            self.save_file.save(self.world, self.store.modified_chunks())
        except world_db.PersistenceError:
            return False
        self.dirty = False
        return True

    # ----- connection events -----

    def player_joined(self, player):
        player.x, player.y = self.world.spawn_point()
        self.handler.queue_for_player(player, 'initialize', {
            'id': player.id,
            'players': [ClientPlayer(p).to_dict() for p in self.handler.players],
            'worldSeed': self.world.seed,
            'terrainHeights': self.world.height_list(),
            'biomeMap': self.world.biome_names(),
        })
        self.handler.queue_for_others(player, 'playerJoined', ClientPlayer(player).to_dict())

    def player_left(self, player):
        logutil.log("SERVER", f"player {player.id} ({player.name}) left")
        self.handler.queue_for_all_players(player, 'playerLeft', {'id': player.id})

    # ----- message handlers -----

    def request_chunk(self, player, data):
        chunk_x = _int_field(data, 'chunkX')
        chunk_y = _int_field(data, 'chunkY')
        grid = self.store.get_chunk(chunk_x, chunk_y)
        self.handler.queue_for_player(player, 'chunkData', {
            'chunkX': chunk_x,
            'chunkY': chunk_y,
            'data': grid_to_list(grid),
            'serverGenerated': True,
        })

    def block_dig(self, player, data):
        '''
        sets the tile at (x, y) to `tileType` and tells every player, including
        the sender. Repeat edits of the same tile inside the cooldown are ignored.
        '''
        x = _int_field(data, 'x')
        y = _int_field(data, 'y')
        tile = _int_field(data, 'tileType')
        if not is_valid_tile(tile):
            raise ProtocolError(f"unknown tile type {tile}")
        now = self.clock()
        last = self.recent_updates.get((x, y))
        if last is not None and now - last < getattr(config, 'SERVER_BLOCK_COOLDOWN', 1.0):
            logutil.log("SERVER", f"cooldown suppressed edit at {x},{y} by {player.id}", level="DEBUG")
            return
        original = self.store.get_tile(x, y)
        if tile == AIR and not TILE_DIGGABLE[original]:
            return
        if not self.store.set_tile(x, y, tile):
            return
        self.recent_updates[(x, y)] = now
        self.world.metadata['blockUpdates'] = self.world.metadata.get('blockUpdates', 0) + 1
        self.dirty = True
        if tile == AIR and TILE_ITEM[original] is not None:
            player.collect(TILE_ITEM[original], int(TILE_SCORE[original]))
            self.handler.queue_for_all_players(player, 'playerUpdated',
                {'id': player.id, 'inventory': dict(player.inventory), 'score': player.score})
        self.handler.queue_for_all_players(player, 'blockUpdate', {
            'x': x,
            'y': y,
            'tileType': tile,
            'playerId': player.id,
            'originalTileType': original,
        })

    def save_chunk(self, player, data):
        chunk_x = _int_field(data, 'chunkX')
        chunk_y = _int_field(data, 'chunkY')
        if not self.world.chunk_in_world(chunk_x, chunk_y):
            raise ProtocolError(f"chunk {chunk_x},{chunk_y} is outside the world")
        try:
            grid = grid_from_list(data.get('data'))
        except ValueError as e:
            raise ProtocolError(str(e))
        key = chunk_key(chunk_x, chunk_y)
        meta = self.chunk_meta.setdefault(key, {})
        meta.update({k: v for k, v in data.items() if k not in ('chunkX', 'chunkY', 'data')})
        meta['lastUpdated'] = self.clock()
        meta['updatedBy'] = player.id
        self.store.load_chunk(chunk_x, chunk_y, grid, modified=True)
        self.dirty = True
        payload = dict(meta)
        payload.update({'chunkX': chunk_x, 'chunkY': chunk_y, 'data': grid_to_list(grid), 'serverGenerated': True})
        self.handler.queue_for_others(player, 'chunkData', payload)

    def reset_world_seed(self, player, data):
        seed = None
        if isinstance(data, dict) and data.get('seed') not in (None, ''):
            seed = _int_field(data, 'seed')
        self.reset_world(seed, player)

    def reset_world(self, seed=None, player=None):
        self.store.clear()
        self.recent_updates.clear()
        self.chunk_meta.clear()
        self.world.reset(new_seed() if seed is None else seed)
        self.save_world()
        logutil.log("SERVER", f"world reset to seed {self.world.seed}")
        self.handler.queue_for_all_players(player, 'worldReset', {
            'worldSeed': self.world.seed,
            'terrainHeights': self.world.height_list(),
            'biomeMap': self.world.biome_names(),
        })

    def player_move(self, player, data):
        if not isinstance(data, dict):
            raise ProtocolError("playerMove needs a payload")
        try:
            player.x = float(data.get('x', player.x))
            player.y = float(data.get('y', player.y))
            player.direction = 1 if float(data.get('direction', player.direction)) >= 0 else -1
        except (TypeError, ValueError):
            raise ProtocolError(f"bad position {data!r:.80}")
        self.handler.queue_for_others(player, 'playerMoved',
            {'id': player.id, 'x': player.x, 'y': player.y, 'direction': player.direction})

    def inventory_update(self, player, data):
        inventory = data.get('inventory') if isinstance(data, dict) else None
        if not isinstance(inventory, dict):
            raise ProtocolError("inventoryUpdate needs an inventory mapping")
        try:
            player.inventory = {str(k): int(v) for k, v in inventory.items()}
        except (TypeError, ValueError):
            raise ProtocolError("inventory counts must be integers")
        self.handler.queue_for_others(player, 'playerUpdated',
            {'id': player.id, 'inventory': dict(player.inventory), 'score': player.score})

    def get_world_data(self, player, data=None):
        self.handler.queue_for_player(player, 'worldData', {
            'worldSeed': self.world.seed,
            'ruleset': self.world.ruleset.name,
            'worldWidth': self.world.width,
            'worldHeight': self.world.height,
            'chunkSize': config.CHUNK_SIZE,
            'loadedChunks': self.store.chunk_count,
            'modifiedChunks': self.store.modified_count,
            'playerCount': len(self.handler.players),
            'worldMetadata': dict(self.world.metadata),
        })

    def get_player_list(self, player, data=None):
        now = self.clock()
        window = getattr(config, 'PLAYER_ACTIVE_WINDOW', 60.0)
        players = [ClientPlayer(p).to_dict() for p in self.handler.players]
        active = sum(1 for p in self.handler.players if now - p.last_active <= window)
        self.handler.queue_for_player(player, 'playerList', {
            'players': players,
            'totalPlayers': len(players),
            'activePlayers': active,
            'serverStartTime': self.start_time,
        })

    def get_world_map(self, player, data=None):
        self.handler.queue_for_player(player, 'worldMapData', {
            'terrainHeights': self.world.height_list(),
            'biomeMap': self.world.biome_names(),
            'biomeColors': {b.name: list(b.map_color) for b in self.world.biome_table},
            'players': [{'id': p.id, 'x': p.x, 'y': p.y, 'color': p.color} for p in self.handler.players],
        })

    def save_world_request(self, player, data=None):
        self.handler.queue_for_player(player, 'worldSaved', {'success': self.save_world()})


if __name__ == '__main__':
    #TODO: use argparse module to override default server settings
    config.SERVER_IP = 'localhost'
    config.LOG_FILE_PATH = getattr(config, 'SERVER_LOG_FILE_PATH', None)
    if len(sys.argv)>1:
        if sys.argv[1] == 'LAN':
            config.SERVER_IP = msocket.get_network_ip()
        elif ':' in sys.argv[1]:
            host, port = sys.argv[1].split(':', 1)
            config.SERVER_IP = host
            try:
                config.SERVER_PORT = int(port)
            except ValueError:
                pass
        else:
            config.SERVER_IP = sys.argv[1]
    seed = None
    if len(sys.argv)>2:
        seed = int(sys.argv[2])
    start_server(config.SERVER_IP, config.SERVER_PORT, seed)
