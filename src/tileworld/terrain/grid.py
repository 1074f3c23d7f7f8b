"""Dense lattices over world bounds.

Module fields are stored in numpy arrays indexed by ``((x - min_x) // stride,
(y - min_y) // stride)``; textual ``"x,y"`` keys only exist at the export boundary.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterator

import numpy as np

from tileworld.models import WorldBounds


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


@dataclass(frozen=True, slots=True)
class Lattice:
    bounds: WorldBounds
    stride: int = 1

    @property
    def shape(self) -> tuple[int, int]:
        return (
            (self.bounds.width - 1) // self.stride + 1,
            (self.bounds.height - 1) // self.stride + 1,
        )

    def axes(self) -> tuple[np.ndarray, np.ndarray]:
        width, height = self.shape
        xs = self.bounds.min_x + self.stride * np.arange(width, dtype=np.int64)
        ys = self.bounds.min_y + self.stride * np.arange(height, dtype=np.int64)
        return xs, ys

    def coordinates(self) -> tuple[np.ndarray, np.ndarray]:
        xs, ys = self.axes()
        return np.meshgrid(xs, ys, indexing="ij")

    def points(self) -> Iterator[tuple[int, int, int, int]]:
        """Yield ``(i, j, x, y)`` for every lattice point."""
        width, height = self.shape
        for i in range(width):
            x = self.bounds.min_x + i * self.stride
            for j in range(height):
                yield i, j, x, self.bounds.min_y + j * self.stride

    def position_of(self, i: int, j: int) -> tuple[int, int]:
        return self.bounds.min_x + i * self.stride, self.bounds.min_y + j * self.stride

    def index_of(self, x: float, y: float) -> tuple[int, int] | None:
        """Index of an exact lattice point, or None."""
        if not self.bounds.contains(x, y):
            return None
        dx = x - self.bounds.min_x
        dy = y - self.bounds.min_y
        if dx != int(dx) or dy != int(dy) or int(dx) % self.stride or int(dy) % self.stride:
            return None
        return int(dx) // self.stride, int(dy) // self.stride

    def nearest_index(self, x: float, y: float) -> tuple[int, int] | None:
        """Snap an in-bounds position to the nearest lattice point."""
        if not self.bounds.contains(x, y):
            return None
        width, height = self.shape
        i = min(max(round_half_up((x - self.bounds.min_x) / self.stride), 0), width - 1)
        j = min(max(round_half_up((y - self.bounds.min_y) / self.stride), 0), height - 1)
        return i, j

    def nearest_indices(self, xs: np.ndarray, ys: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        width, height = self.shape
        i = np.floor((np.asarray(xs) - self.bounds.min_x) / self.stride + 0.5).astype(np.int64)
        j = np.floor((np.asarray(ys) - self.bounds.min_y) / self.stride + 0.5).astype(np.int64)
        return np.clip(i, 0, width - 1), np.clip(j, 0, height - 1)
