"""Deterministic hashing, value noise and small geometry helpers.

Everything here is built on a SplitMix64 integer hash so results never depend on
the host RNG or on floating point trigonometry. The ``*_grid`` variants evaluate
the same functions over numpy coordinate arrays using wrapping ``uint64``
arithmetic and return the same values as their scalar counterparts.
"""

from __future__ import annotations

import math

import numpy as np

_MASK64 = (1 << 64) - 1
_GOLDEN = 0x9E3779B97F4A7C15
_MIX1 = 0xBF58476D1CE4E5B9
_MIX2 = 0x94D049BB133111EB
_UNIT = 1.0 / (1 << 53)
_OCTAVE_SEED_STEP = 1013


def _mix64(value: int) -> int:
    z = (value + _GOLDEN) & _MASK64
    z = ((z ^ (z >> 30)) * _MIX1) & _MASK64
    z = ((z ^ (z >> 27)) * _MIX2) & _MASK64
    return z ^ (z >> 31)


def _hash(seed: int, salt: int) -> int:
    return _mix64((seed & _MASK64) ^ _mix64(salt & _MASK64))


def seeded_random(seed: int, salt: int = 0) -> float:
    """Uniform sample in [0, 1) fully determined by ``seed`` and ``salt``."""
    return (_hash(int(seed), int(salt)) >> 11) * _UNIT


def smoothstep(t: float) -> float:
    return t * t * (3.0 - 2.0 * t)


def distance(x1: float, y1: float, x2: float, y2: float) -> float:
    return math.hypot(x2 - x1, y2 - y1)


def _corner(ix: int, iy: int, seed: int) -> float:
    h = _mix64(_hash(seed, ix) ^ (iy & _MASK64))
    return (h >> 11) * _UNIT


def value_noise(x: float, y: float, seed: int) -> float:
    """Smoothly interpolated lattice noise in [0, 1]."""
    x0 = math.floor(x)
    y0 = math.floor(y)
    tx = smoothstep(x - x0)
    ty = smoothstep(y - y0)

    v00 = _corner(x0, y0, seed)
    v10 = _corner(x0 + 1, y0, seed)
    v01 = _corner(x0, y0 + 1, seed)
    v11 = _corner(x0 + 1, y0 + 1, seed)

    top = v00 + (v10 - v00) * tx
    bottom = v01 + (v11 - v01) * tx
    return top + (bottom - top) * ty


def fractal_noise(
    x: float,
    y: float,
    seed: int,
    octaves: int = 3,
    persistence: float = 0.5,
    lacunarity: float = 2.0,
) -> float:
    """Sum of ``octaves`` value-noise layers normalized back to [0, 1]."""
    total = 0.0
    amplitude = 1.0
    frequency = 1.0
    norm = 0.0
    for octave in range(octaves):
        total += value_noise(x * frequency, y * frequency, seed + octave * _OCTAVE_SEED_STEP) * amplitude
        norm += amplitude
        amplitude *= persistence
        frequency *= lacunarity
    return total / norm


def _mix64_array(z: np.ndarray) -> np.ndarray:
    z = z + np.uint64(_GOLDEN)
    z = (z ^ (z >> np.uint64(30))) * np.uint64(_MIX1)
    z = (z ^ (z >> np.uint64(27))) * np.uint64(_MIX2)
    return z ^ (z >> np.uint64(31))


def _as_uint64(values: np.ndarray) -> np.ndarray:
    return np.asarray(values, dtype=np.int64).astype(np.uint64)


def _corner_array(ix: np.ndarray, iy: np.ndarray, seed: int) -> np.ndarray:
    seed_bits = np.uint64(seed & _MASK64)
    h = _mix64_array(seed_bits ^ _mix64_array(_as_uint64(ix)))
    h = _mix64_array(h ^ _as_uint64(iy))
    return (h >> np.uint64(11)).astype(np.float64) * _UNIT


def value_noise_grid(xs: np.ndarray, ys: np.ndarray, seed: int) -> np.ndarray:
    """Vectorized :func:`value_noise` over broadcastable coordinate arrays."""
    xs, ys = np.broadcast_arrays(np.atleast_1d(np.asarray(xs, dtype=np.float64)), np.atleast_1d(np.asarray(ys, dtype=np.float64)))
    x0 = np.floor(xs)
    y0 = np.floor(ys)
    tx = xs - x0
    ty = ys - y0
    tx = tx * tx * (3.0 - 2.0 * tx)
    ty = ty * ty * (3.0 - 2.0 * ty)

    ix = x0.astype(np.int64)
    iy = y0.astype(np.int64)
    v00 = _corner_array(ix, iy, seed)
    v10 = _corner_array(ix + 1, iy, seed)
    v01 = _corner_array(ix, iy + 1, seed)
    v11 = _corner_array(ix + 1, iy + 1, seed)

    top = v00 + (v10 - v00) * tx
    bottom = v01 + (v11 - v01) * tx
    return top + (bottom - top) * ty


def fractal_noise_grid(
    xs: np.ndarray,
    ys: np.ndarray,
    seed: int,
    octaves: int = 3,
    persistence: float = 0.5,
    lacunarity: float = 2.0,
) -> np.ndarray:
    """Vectorized :func:`fractal_noise`."""
    xs = np.asarray(xs, dtype=np.float64)
    ys = np.asarray(ys, dtype=np.float64)
    total: np.ndarray | float = 0.0
    amplitude = 1.0
    frequency = 1.0
    norm = 0.0
    for octave in range(octaves):
        total = total + value_noise_grid(xs * frequency, ys * frequency, seed + octave * _OCTAVE_SEED_STEP) * amplitude
        norm += amplitude
        amplitude *= persistence
        frequency *= lacunarity
    return np.asarray(total) / norm
