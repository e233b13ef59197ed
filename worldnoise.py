'''
worldnoise.py -- seeded randomness and Perlin noise used by world generation

Everything here is a pure function of its integer inputs. Position randomness
is a splitmix64 style integer hash (no floating point trig), so the same seed
gives the same world on every platform. `random_for_position` is the scalar
form used by per-column decisions and `random_grid` is the numpy form used for
whole chunk grids; both return identical values for identical inputs.
'''
import numpy

MASK64 = (1 << 64) - 1
MASK53 = (1 << 53) - 1

_MX = 0x632BE59BD9B4E019
_MY = 0x9E3779B97F4A7C15
_MS = 0x94D049BB133111EB
_M1 = 0xbf58476d1ce4e5b9
_M2 = 0x94d049bb133111eb

# Salt used when shuffling Perlin permutation tables.
PERMUTATION_SALT = 7919


def _mix(h):
    h &= MASK64
    h = (h ^ (h >> 30)) * _M1 & MASK64
    h = (h ^ (h >> 27)) * _M2 & MASK64
    h ^= (h >> 31)
    return h


def random_for_position(seed, x, y=0, salt=0):
    '''
    deterministic float in [0,1) for the integer position (x, y)
    `salt` separates independent decisions made at the same position
    '''
    h = (int(x) * _MX) ^ (int(y) * _MY) ^ (int(salt) * _MS) ^ int(seed)
    h = _mix(h)
    return (h & MASK53) / float(1 << 53)


def seeded_random(seed):
    '''deterministic float in [0,1) derived from `seed` alone'''
    return random_for_position(seed, 0, 0, 0)


def random_grid(seed, xs, ys, salt=0):
    '''
    vectorised random_for_position over integer arrays `xs`, `ys`
    (broadcast against each other)
    '''
    xs = numpy.asarray(xs, dtype=numpy.int64).astype(numpy.uint64)
    ys = numpy.asarray(ys, dtype=numpy.int64).astype(numpy.uint64)
    with numpy.errstate(over='ignore'):
        h = (xs * numpy.uint64(_MX)) ^ (ys * numpy.uint64(_MY))
        h = h ^ numpy.uint64((int(salt) * _MS) & MASK64) ^ numpy.uint64(int(seed) & MASK64)
        h = (h ^ (h >> numpy.uint64(30))) * numpy.uint64(_M1)
        h = (h ^ (h >> numpy.uint64(27))) * numpy.uint64(_M2)
        h = h ^ (h >> numpy.uint64(31))
    return (h & numpy.uint64(MASK53)).astype(numpy.float64) / float(1 << 53)


def fade(t):
    return t * t * t * (t * (t * 6 - 15) + 10)


def lerp(a, b, t):
    return a + t * (b - a)


def grad(h, x, y):
    h = h & 15
    u = numpy.where(h < 8, x, y)
    v = numpy.where(h < 4, y, x)
    return numpy.where(h & 1, -u, u) + numpy.where(h & 2, -v, v)


class PerlinNoise(object):
    '''
    2D Perlin noise over a seeded permutation of 0..255

    The table is doubled to 512 entries so corner lookups never wrap.
    `noise` accepts scalars or numpy arrays and returns the same shape.
    '''
    def __init__(self, seed):
        self.seed = int(seed)
        p = numpy.arange(256, dtype=numpy.int64)
        # Fisher-Yates driven by the position hash.
        for i in range(255, 0, -1):
            j = int(random_for_position(self.seed, i, 0, PERMUTATION_SALT) * (i + 1))
            p[i], p[j] = p[j], p[i]
        self.perm = numpy.concatenate([p, p])

    def noise(self, x, y):
        scalar = numpy.ndim(x) == 0 and numpy.ndim(y) == 0
        x = numpy.asarray(x, dtype=numpy.float64)
        y = numpy.asarray(y, dtype=numpy.float64)
        x0 = numpy.floor(x)
        y0 = numpy.floor(y)
        X = x0.astype(numpy.int64) & 255
        Y = y0.astype(numpy.int64) & 255
        xf = x - x0
        yf = y - y0
        u = fade(xf)
        v = fade(yf)
        p = self.perm
        a = p[X] + Y
        b = p[X + 1] + Y
        aa = p[a]
        ab = p[a + 1]
        ba = p[b]
        bb = p[b + 1]
        result = lerp(
            lerp(grad(aa, xf, yf), grad(ba, xf - 1, yf), u),
            lerp(grad(ab, xf, yf - 1), grad(bb, xf - 1, yf - 1), u),
            v)
        if scalar:
            return float(result)
        return result

    __call__ = noise

    def octave_noise(self, x, y, octaves=4, persistence=0.5, lacunarity=2.0):
        '''
        sum `octaves` layers of noise, each at `lacunarity` times the frequency
        and `persistence` times the amplitude of the previous one, normalised by
        the total amplitude and clipped to [-1, 1]
        '''
        x = numpy.asarray(x, dtype=numpy.float64)
        y = numpy.asarray(y, dtype=numpy.float64)
        total = numpy.zeros(numpy.broadcast(x, y).shape)
        frequency = 1.0
        amplitude = 1.0
        max_amplitude = 0.0
        for _ in range(max(1, int(octaves))):
            total = total + self.noise(x * frequency, y * frequency) * amplitude
            max_amplitude += amplitude
            amplitude *= persistence
            frequency *= lacunarity
        result = numpy.clip(total / max_amplitude, -1.0, 1.0)
        if result.ndim == 0:
            return float(result)
        return result

    def terrain_noise(self, x, y=0.0):
        '''
        four fixed bands (continental, hills, bumps, grit) blended into one
        terrain silhouette value in [-1, 1]
        '''
        x = numpy.asarray(x, dtype=numpy.float64)
        y = numpy.asarray(y, dtype=numpy.float64)
        value = (self.octave_noise(x / 400.0, y / 400.0 + 0.5, 3, 0.5, 2.0) * 0.5
                 + self.octave_noise(x / 150.0, y / 150.0 + 17.25, 3, 0.5, 2.0) * 0.3
                 + self.octave_noise(x / 50.0, y / 50.0 + 41.75, 2, 0.5, 2.0) * 0.15
                 + self.noise(x / 15.0, y / 15.0 + 73.5) * 0.05)
        result = numpy.clip(value, -1.0, 1.0)
        if result.ndim == 0:
            return float(result)
        return result
