'''
main.py -- headless text client

    python main.py              single-player world stored in config.LOCAL_DB_PATH
    python main.py host:port    join a multiplayer server
    python main.py serve [host:port] [seed]
                                run the authoritative server

Commands: a/d/w/s move, "dig dx dy" removes the tile at an offset from the
player, "save", "reset [seed]" (multiplayer), "q" quits.
'''
import sys
import time

import config
import logutil
from tiles import TILE_GLYPHS

VIEW_WIDTH = 64
VIEW_HEIGHT = 24
MOVES = {'a': (-4, 0), 'd': (4, 0), 'w': (0, -4), 's': (0, 4)}


def render_view(get_tile, cx, cy, width=VIEW_WIDTH, height=VIEW_HEIGHT):
    '''
    text view centred on (cx, cy); unknown tiles (not yet received) show as ?
    and the player as P
    '''
    rows = []
    for y in range(cy - height // 2, cy + height // 2):
        row = []
        for x in range(cx - width // 2, cx + width // 2):
            if (x, y) == (cx, cy):
                row.append('P')
                continue
            tile = get_tile(x, y)
            row.append('?' if tile is None else TILE_GLYPHS[tile])
        rows.append(''.join(row))
    return '\n'.join(rows)


def run_single_player():
    from world_loader import LocalWorld
    local = LocalWorld()
    x, y = local.world.spawn_point()
    try:
        while True:
            local.update(x, y)
            print(render_view(local.get_tile, x, y))
            print(f"seed {local.world.seed} at {x},{y} biome {local.world.biome_at(x)} score {local.score} {local.inventory}")
            cmd = input('> ').split()
            if not cmd:
                continue
            if cmd[0] == 'q':
                break
            if cmd[0] in MOVES:
                dx, dy = MOVES[cmd[0]]
                x += dx
                y += dy
            elif cmd[0] == 'dig' and len(cmd) == 3:
                item = local.dig(x + int(cmd[1]), y + int(cmd[2]))
                print(f"collected {item}" if item else "nothing to dig")
            elif cmd[0] == 'save':
                print(f"saved {local.flush()} chunks")
    finally:
        local.close()


def run_multiplayer():
    from server_connection import ServerConnection
    conn = ServerConnection(config.SERVER_IP, config.SERVER_PORT)
    world = conn.world
    deadline = time.time() + 10.0
    while not world.initialized and time.time() < deadline:
        conn.pump(0.5)
    if not world.initialized:
        logutil.log("CLIENT", "server did not send initialize", level="ERROR")
        conn.close()
        return
    x = len(world.terrain_heights) // 2
    y = world.terrain_heights[x] - 1
    try:
        while True:
            world.expire_requests()
            world.request_around(x, y)
            conn.pump(0.5)
            print(render_view(world.get_tile, x, y))
            state = 'DISCONNECTED' if world.disconnected else f"{len(world.players)} players"
            print(f"seed {world.seed} at {x},{y} {state}")
            cmd = input('> ').split()
            if not cmd:
                continue
            if cmd[0] == 'q':
                break
            if cmd[0] in MOVES:
                dx, dy = MOVES[cmd[0]]
                x += dx
                y += dy
                world.move(x, y, 1 if dx >= 0 else -1)
            elif cmd[0] == 'dig' and len(cmd) == 3:
                if not world.dig(x + int(cmd[1]), y + int(cmd[2])):
                    print("dig suppressed")
            elif cmd[0] == 'save':
                world.send('saveWorld')
            elif cmd[0] == 'reset':
                world.reset_world(int(cmd[1]) if len(cmd) > 1 else None)
    finally:
        conn.close()


def set_address(arg):
    if ':' in arg:
        host, port = arg.split(':', 1)
        config.SERVER_IP = host
        try:
            config.SERVER_PORT = int(port)
        except ValueError:
            pass
    else:
        config.SERVER_IP = arg


def main():
    if len(sys.argv)>1 and sys.argv[1] == 'serve':
        import server
        config.SERVER_IP = 'localhost'
        config.LOG_FILE_PATH = getattr(config, 'SERVER_LOG_FILE_PATH', None)
        if len(sys.argv)>2:
            set_address(sys.argv[2])
        seed = int(sys.argv[3]) if len(sys.argv)>3 else None
        server.start_server(config.SERVER_IP, config.SERVER_PORT, seed)
    elif len(sys.argv)>1:
        set_address(sys.argv[1])
        logutil.log("MAIN", f"Using server IP address {config.SERVER_IP}:{config.SERVER_PORT}")
        run_multiplayer()
    else:
        run_single_player()


if __name__ == '__main__':
    main()
