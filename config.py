import os

# Size of chunks used for generation, storage and sync (square, in tiles).
CHUNK_SIZE = 16

# Generation ruleset: 'server', 'single_player' or 'ant' (see rulesets.py).
RULESET = 'server'

# Fixed world seed (None picks one from the clock when a world is created).
WORLD_SEED = None

# Chunk lifecycle
ACTIVE_RADIUS = 2 #chunks kept loaded (and generated eagerly) around the tracked center
CHUNK_CACHE_SIZE = 64 #evicted-but-unmodified chunks kept for fast reload

# Biome smoothing
BIOME_SMOOTHING_RADIUS = 10
BIOME_MIN_SIZE = 30

# Terrain smoothing
TERRAIN_SMOOTHING_PASSES = 3
TERRAIN_SMOOTHING_RADIUS = 3

SERVER_IP = None
SERVER_PORT = 20226
SERVER_AUTHKEY = b'password'

# Seconds between accepted edits of the same tile (server suppresses rapid duplicates).
SERVER_BLOCK_COOLDOWN = 1.0
# Client side suppression before a dig request is sent at all.
CLIENT_BLOCK_COOLDOWN = 0.5
# Recent edit bookkeeping expires after this many seconds.
RECENT_UPDATE_EXPIRATION = 10.0
CLEANUP_INTERVAL = 30.0
AUTO_SAVE_INTERVAL = 300.0
# Single-player worlds autosave more often.
LOCAL_AUTO_SAVE_INTERVAL = 60.0

# Unanswered chunk requests may be re-sent after this many seconds.
CHUNK_REQUEST_TIMEOUT = 5.0

# Players that have not sent anything for this long are listed as inactive.
PLAYER_ACTIVE_WINDOW = 60.0

# Persistence
WORLD_SAVE_PATH = os.path.join('saves', 'world_save.json')
LOCAL_DB_PATH = os.path.join('saves', 'local_world.db')

# Enable ANSI colors in logs.
LOG_COLOR = True

# Minimum level printed: DEBUG, INFO, WARN or ERROR.
LOG_LEVEL = 'INFO'

# Optional file that every log line is appended to (None disables).
LOG_FILE_PATH = None
SERVER_LOG_FILE_PATH = 'log-server.txt'
