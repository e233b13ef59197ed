import math

import numpy as np

import config
from tiles import NUM_TILES


def normalize(position):
    """ Accepts `position` of arbitrary precision and returns the tile
    containing that position.

    Parameters
    ----------
    position : tuple of len 2

    Returns
    -------
    tile_position : tuple of ints of len 2

    """
    x, y = position
    return (int(math.floor(x)), int(math.floor(y)))


def chunkify(position, chunk_size=None):
    """ Returns the chunk coordinates (not tile coordinates) for the given
    `position`. Floor division, so negative positions land in negative chunks.

    Parameters
    ----------
    position : tuple of len 2

    Returns
    -------
    chunk : tuple of ints of len 2

    """
    cs = chunk_size or config.CHUNK_SIZE
    x, y = normalize(position)
    return (x // cs, y // cs)


def local_coords(position, chunk_size=None):
    """ Returns the (local_x, local_y) offset of `position` inside its chunk.
    """
    cs = chunk_size or config.CHUNK_SIZE
    x, y = normalize(position)
    return (x % cs, y % cs)


def chunk_key(chunk_x, chunk_y):
    """ Canonical string key "x,y" for a chunk, as used in saves and on the wire.
    """
    return f"{int(chunk_x)},{int(chunk_y)}"


def parse_chunk_key(key):
    """ Inverse of `chunk_key`. Raises ValueError on malformed keys.
    """
    parts = str(key).split(',')
    if len(parts) != 2:
        raise ValueError(f"bad chunk key {key!r}")
    return (int(parts[0]), int(parts[1]))


def chunks_in_radius(center, radius):
    """ All chunk coordinates within a square `radius` of chunk `center`,
    nearest rings first.
    """
    cx, cy = center
    result = [(cx + dx, cy + dy) for dy in range(-radius, radius + 1) for dx in range(-radius, radius + 1)]
    result.sort(key=lambda c: max(abs(c[0] - cx), abs(c[1] - cy)))
    return result


def chunk_distance(a, b):
    """ Chebyshev distance between two chunk coordinates.
    """
    return max(abs(a[0] - b[0]), abs(a[1] - b[1]))


def grid_to_list(grid):
    """ Nested lists of ints for a chunk grid (save files and wire payloads).
    """
    return np.asarray(grid).tolist()


def grid_from_list(data, chunk_size=None):
    """ Validated uint8 chunk grid from nested sequences. Raises ValueError
    when the shape or the tile values are wrong.
    """
    cs = chunk_size or config.CHUNK_SIZE
    try:
        arr = np.array(data, dtype=np.int64)
    except (TypeError, ValueError) as e:
        raise ValueError(f"chunk data is not a grid of integers: {e}")
    if arr.shape != (cs, cs):
        raise ValueError(f"chunk data has shape {arr.shape}, expected {(cs, cs)}")
    if arr.min() < 0 or arr.max() >= NUM_TILES:
        raise ValueError("chunk data contains unknown tile types")
    return arr.astype(np.uint8)
