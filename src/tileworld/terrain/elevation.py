"""Elevation layer composed from geology influence, erosion and fractal noise."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np
from scipy.ndimage import convolve

from tileworld.config import ElevationSettings
from tileworld.models import WorldBounds
from tileworld.noise import distance, fractal_noise_grid, seeded_random
from tileworld.terrain.base import ModuleData, WorldContext
from tileworld.terrain.grid import Lattice

NOISE_SEED_OFFSET = 7
HILL_SEED_OFFSET = 5000
HILLY_THRESHOLD = 0.35
FLAT_GRADIENT = 0.05
SMOOTHING_KERNEL = np.array([[0.0, 0.2, 0.0], [0.2, 0.2, 0.2], [0.0, 0.2, 0.0]])


@dataclass(frozen=True, slots=True)
class Hill:
    x: int
    y: int
    radius: float
    height: float


def place_hills(bounds: WorldBounds, seed: int, settings: ElevationSettings) -> list[Hill]:
    """Seeded hill centers kept ``hill_spacing`` apart; used by the ``hills`` method."""
    margin_x = min(int(settings.max_hill_radius // 2), bounds.width // 4)
    margin_y = min(int(settings.max_hill_radius // 2), bounds.height // 4)
    span_x = max(bounds.width - 1 - 2 * margin_x, 0)
    span_y = max(bounds.height - 1 - 2 * margin_y, 0)

    hills: list[Hill] = []
    for attempt in range(settings.hill_count * 20):
        if len(hills) >= settings.hill_count:
            break
        attempt_seed = seed + HILL_SEED_OFFSET + attempt
        x = bounds.min_x + margin_x + int(seeded_random(attempt_seed, 0) * span_x)
        y = bounds.min_y + margin_y + int(seeded_random(attempt_seed, 1) * span_y)
        if any(distance(x, y, hill.x, hill.y) < settings.hill_spacing for hill in hills):
            continue
        radius = settings.min_hill_radius + seeded_random(attempt_seed, 2) * (
            settings.max_hill_radius - settings.min_hill_radius
        )
        height = settings.min_hill_height + seeded_random(attempt_seed, 3) * (
            settings.max_hill_height - settings.min_hill_height
        )
        hills.append(Hill(x=x, y=y, radius=radius, height=height))
    return hills


def smooth(grid: np.ndarray, passes: int) -> np.ndarray:
    """Five-point average with edge padding."""
    for _ in range(passes):
        grid = convolve(grid, SMOOTHING_KERNEL, mode="nearest")
    return grid


@dataclass(frozen=True, slots=True, eq=False)
class ElevationField:
    bounds: WorldBounds
    lattice: Lattice
    grid: np.ndarray
    base_elevation: float
    method: str
    hills: tuple[Hill, ...] = ()

    def elevation_at(self, x: float, y: float) -> float:
        index = self.lattice.nearest_index(x, y)
        if index is None:
            return self.base_elevation
        return float(self.grid[index])

    def gradient(self, x: float, y: float, step: int = 1) -> tuple[float, float, float]:
        dx = (self.elevation_at(x + step, y) - self.elevation_at(x - step, y)) / (2 * step)
        dy = (self.elevation_at(x, y + step) - self.elevation_at(x, y - step)) / (2 * step)
        return dx, dy, float(np.hypot(dx, dy))

    def is_hilly(self, x: float, y: float) -> bool:
        return self.elevation_at(x, y) > HILLY_THRESHOLD

    def is_flat(self, x: float, y: float) -> bool:
        return self.gradient(x, y)[2] < FLAT_GRADIENT

    def neighbourhood_mean(self, x: float, y: float, radius: int) -> float:
        index = self.lattice.nearest_index(x, y)
        if index is None:
            return self.base_elevation
        i, j = index
        window = self.grid[max(i - radius, 0) : i + radius + 1, max(j - radius, 0) : j + radius + 1]
        return float(window.mean())

    def statistics(self) -> dict[str, Any]:
        return {
            "method": self.method,
            "min": float(self.grid.min()),
            "max": float(self.grid.max()),
            "mean": float(self.grid.mean()),
            "hills": len(self.hills),
        }


class ElevationModule:
    """Materializes a dense, clamped elevation grid over the world bounds."""

    name = "elevation"
    priority = 110
    dependencies: tuple[str, ...] = ("geology",)

    def generate(self, context: WorldContext) -> ElevationField:
        settings = context.config.elevation
        lattice = Lattice(context.bounds, stride=1)
        xs, ys = lattice.coordinates()
        noise = fractal_noise_grid(
            xs * settings.noise_scale,
            ys * settings.noise_scale,
            context.seed + NOISE_SEED_OFFSET,
            octaves=settings.noise_octaves,
        )

        hills: list[Hill] = []
        if settings.method == "hills":
            grid = np.full(lattice.shape, settings.base_elevation, dtype=np.float64)
            hills = place_hills(context.bounds, context.seed, settings)
            for hill in hills:
                t = np.clip(1.0 - np.hypot(xs - hill.x, ys - hill.y) / hill.radius, 0.0, 1.0)
                grid = grid + hill.height * t * t * (3.0 - 2.0 * t)
        else:
            geology = context.get_field("geology")
            influence = geology.elevation_influence_grid(lattice)
            erosion = geology.erosion_resistance_grid(lattice)
            grid = (
                settings.base_elevation
                + influence * settings.geological_strength
                - (1.0 - erosion) * settings.erosion_strength * 0.2
            )
        grid = grid + noise * settings.noise_amount

        grid = smooth(grid, settings.smoothing_passes)
        grid = np.clip(grid, 0.0, min(1.0, settings.max_elevation))
        return ElevationField(
            bounds=context.bounds,
            lattice=lattice,
            grid=grid,
            base_elevation=settings.base_elevation,
            method=settings.method,
            hills=tuple(hills),
        )

    def get_data_at(self, x: int, y: int, context: WorldContext) -> ModuleData:
        elevation: ElevationField = context.get_field(self.name)
        value = elevation.elevation_at(x, y)
        return ModuleData(
            terrain=None,
            features=[f"elevation-{value:.2f}"],
            payload={"elevation": value, "method": elevation.method},
        )

    def affects_position(self, x: int, y: int, context: WorldContext) -> bool:
        return context.in_bounds(x, y)
