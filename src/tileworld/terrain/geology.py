"""Geology layer: seeded rock formations plus rock-type and soil-quality lattices."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

import numpy as np

from tileworld.config import GeologySettings, RockProperties
from tileworld.models import ROCK_TYPES, RockType, WorldBounds
from tileworld.noise import distance, seeded_random, value_noise
from tileworld.terrain.base import ModuleData, WorldContext
from tileworld.terrain.grid import Lattice

FORMATION_SEED_STRIDE = 1000
SAMPLE_STRIDE = 2
INFLUENCE_WEIGHT = 0.3

_ROCK_CODES = {rock: code for code, rock in enumerate(ROCK_TYPES)}


@dataclass(frozen=True, slots=True)
class Formation:
    id: int
    type: str
    center_x: int
    center_y: int
    radius: float
    rock_type: RockType
    elevation_effect: float
    strength: float

    def influence_at(self, x: float, y: float) -> float:
        d = distance(x, y, self.center_x, self.center_y)
        if d >= self.radius:
            return 0.0
        return (1.0 - d / self.radius) * self.strength

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "center_x": self.center_x,
            "center_y": self.center_y,
            "radius": self.radius,
            "rock_type": self.rock_type.value,
            "elevation_effect": self.elevation_effect,
            "strength": self.strength,
        }


def _center_range(low: int, high: int, margin: int) -> tuple[float, float]:
    if high - low < 2 * margin:
        middle = (low + high) / 2
        return middle, middle
    return low + margin, high - margin


def create_formations(bounds: WorldBounds, seed: int, settings: GeologySettings) -> tuple[Formation, ...]:
    """Place every template's formations; formation ids run across templates."""
    low_x, high_x = _center_range(bounds.min_x, bounds.max_x, settings.formation_margin)
    low_y, high_y = _center_range(bounds.min_y, bounds.max_y, settings.formation_margin)

    formations: list[Formation] = []
    for template in settings.formations:
        for _ in range(template.count):
            index = len(formations)
            formation_seed = seed + index * FORMATION_SEED_STRIDE
            formations.append(
                Formation(
                    id=index,
                    type=template.type,
                    center_x=math.floor(low_x + seeded_random(formation_seed, 0) * (high_x - low_x)),
                    center_y=math.floor(low_y + seeded_random(formation_seed, 1000) * (high_y - low_y)),
                    radius=template.min_radius
                    + seeded_random(formation_seed, 2000) * (template.max_radius - template.min_radius),
                    rock_type=template.rock_type,
                    elevation_effect=template.elevation_effect,
                    strength=0.8 + seeded_random(formation_seed, 3000) * 0.4,
                )
            )
    return tuple(formations)


def determine_rock_type(
    x: int, y: int, formations: tuple[Formation, ...], base_rock_type: RockType, seed: int
) -> RockType:
    """Dominant formation wins; a sparse deterministic perturbation adds intrusions."""
    rock = base_rock_type
    strongest = 0.0
    for formation in formations:
        influence = formation.influence_at(x, y)
        if influence > strongest:
            strongest = influence
            rock = formation.rock_type

    if value_noise(x * 0.01, y * 0.01, seed + 12345) > 0.7 and seeded_random(seed, x * 1337 + y) > 0.8:
        rock = ROCK_TYPES[math.floor(seeded_random(seed + 1, x + y * 1000) * len(ROCK_TYPES))]
    return rock


def _soil_quality(x: int, y: int, rock: RockType, settings: GeologySettings, seed: int) -> float:
    baseline = settings.rock_properties[rock].soil_quality
    weathered = baseline + settings.weathering_effect * value_noise(x * 0.02, y * 0.02, seed + 54321)
    return min(1.0, max(0.0, weathered))


@dataclass(frozen=True, slots=True, eq=False)
class GeologyField:
    bounds: WorldBounds
    seed: int
    settings: GeologySettings
    formations: tuple[Formation, ...]
    lattice: Lattice
    rock_codes: np.ndarray
    soil: np.ndarray

    def _sample_index(self, x: float, y: float) -> tuple[int, int] | None:
        # exact lattice points snap onto themselves
        return self.lattice.nearest_index(x, y)

    def rock_type_at(self, x: float, y: float) -> RockType:
        index = self._sample_index(x, y)
        if index is None:
            return self.settings.base_rock_type
        return ROCK_TYPES[int(self.rock_codes[index])]

    def soil_quality_at(self, x: float, y: float) -> float:
        index = self._sample_index(x, y)
        if index is None:
            return self.settings.rock_properties[self.settings.base_rock_type].soil_quality
        return float(self.soil[index])

    def rock_properties_at(self, x: float, y: float) -> RockProperties:
        return self.settings.rock_properties[self.rock_type_at(x, y)]

    def erosion_resistance_at(self, x: float, y: float) -> float:
        return self.rock_properties_at(x, y).erosion_resistance

    def water_retention_at(self, x: float, y: float) -> float:
        return self.rock_properties_at(x, y).water_retention

    def determine_rock_type_at(self, x: int, y: int) -> RockType:
        return determine_rock_type(x, y, self.formations, self.settings.base_rock_type, self.seed)

    def elevation_influence_at(self, x: float, y: float) -> float:
        total = self.rock_properties_at(x, y).elevation_bonus
        for formation in self.formations:
            d = distance(x, y, formation.center_x, formation.center_y)
            if d < formation.radius:
                total += INFLUENCE_WEIGHT * (1.0 - d / formation.radius) * formation.elevation_effect * formation.strength
        return total

    def _property_grid(self, lattice: Lattice, attribute: str) -> np.ndarray:
        xs, ys = lattice.coordinates()
        i, j = self.lattice.nearest_indices(xs, ys)
        table = np.array(
            [getattr(self.settings.rock_properties[rock], attribute) for rock in ROCK_TYPES], dtype=np.float64
        )
        return table[self.rock_codes[i, j]]

    def elevation_influence_grid(self, lattice: Lattice) -> np.ndarray:
        """Vectorized :meth:`elevation_influence_at` over every point of ``lattice``."""
        total = self._property_grid(lattice, "elevation_bonus")
        xs, ys = lattice.coordinates()
        for formation in self.formations:
            d = np.hypot(xs - formation.center_x, ys - formation.center_y)
            contribution = INFLUENCE_WEIGHT * (1.0 - d / formation.radius) * formation.elevation_effect * formation.strength
            total = total + np.where(d < formation.radius, contribution, 0.0)
        return total

    def erosion_resistance_grid(self, lattice: Lattice) -> np.ndarray:
        return self._property_grid(lattice, "erosion_resistance")

    def rock_distribution(self) -> dict[str, int]:
        counts = np.bincount(self.rock_codes.ravel().astype(np.int64), minlength=len(ROCK_TYPES))
        return {rock.value: int(counts[code]) for code, rock in enumerate(ROCK_TYPES)}

    def statistics(self) -> dict[str, Any]:
        return {
            "formations": len(self.formations),
            "rock_distribution": self.rock_distribution(),
            "samples": int(self.rock_codes.size),
        }


class GeologyModule:
    """Seeds formations and fills the stride-2 rock-type and soil lattices."""

    name = "geology"
    priority = 120
    dependencies: tuple[str, ...] = ()

    def generate(self, context: WorldContext) -> GeologyField:
        settings = context.config.geology
        formations = create_formations(context.bounds, context.seed, settings)
        lattice = Lattice(context.bounds, stride=SAMPLE_STRIDE)

        rock_codes = np.empty(lattice.shape, dtype=np.int8)
        soil = np.empty(lattice.shape, dtype=np.float64)
        for i, j, x, y in lattice.points():
            rock = determine_rock_type(x, y, formations, settings.base_rock_type, context.seed)
            rock_codes[i, j] = _ROCK_CODES[rock]
            soil[i, j] = _soil_quality(x, y, rock, settings, context.seed)

        return GeologyField(
            bounds=context.bounds,
            seed=context.seed,
            settings=settings,
            formations=formations,
            lattice=lattice,
            rock_codes=rock_codes,
            soil=soil,
        )

    def get_data_at(self, x: int, y: int, context: WorldContext) -> ModuleData:
        geology: GeologyField = context.get_field(self.name)
        rock = geology.rock_type_at(x, y)
        soil = geology.soil_quality_at(x, y)
        properties = geology.settings.rock_properties[rock]
        return ModuleData(
            terrain=None,
            features=[f"rock-{rock.value}", f"soil-{soil:.1f}"],
            payload={
                "rock_type": rock,
                "soil_quality": soil,
                "erosion_resistance": properties.erosion_resistance,
                "water_retention": properties.water_retention,
                "elevation_influence": geology.elevation_influence_at(x, y),
            },
        )

    def affects_position(self, x: int, y: int, context: WorldContext) -> bool:
        return context.in_bounds(x, y)
