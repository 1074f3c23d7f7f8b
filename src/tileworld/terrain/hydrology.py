"""Hydrology layer: lake basins, spring-fed rivers and a water-distance field."""

from __future__ import annotations

import math
from collections import deque
from dataclasses import dataclass, field
from typing import Any

import numpy as np
from scipy.ndimage import distance_transform_edt

from tileworld.config import HydrologySettings
from tileworld.models import Position, RockType, TerrainKind, WorldBounds
from tileworld.noise import distance, seeded_random
from tileworld.terrain.base import ModuleData, WorldContext
from tileworld.terrain.elevation import ElevationField
from tileworld.terrain.geology import GeologyField
from tileworld.terrain.grid import Lattice

EIGHT_NEIGHBOURS = ((-1, -1), (0, -1), (1, -1), (-1, 0), (1, 0), (-1, 1), (0, 1), (1, 1))
FOUR_NEIGHBOURS = ((0, -1), (-1, 0), (1, 0), (0, 1))

LAKE_SEED_OFFSET = 7000
SPRING_SEED_OFFSET = 9000
SPRING_ATTEMPTS_PER_RIVER = 25
SPRING_SAMPLE_STRIDE = 10
NEAR_WATER_DISTANCE = 15.0

_SPRING_ROCK_BONUS = {RockType.HARD: 0.3, RockType.SOFT: 0.15, RockType.CLAY: 0.0}


@dataclass(frozen=True, slots=True)
class Spring:
    x: int
    y: int
    elevation: float
    rock_type: RockType
    suitability: float


@dataclass(slots=True)
class River:
    id: str
    source: Spring
    path: tuple[Position, ...]
    confluences: list[dict[str, Any]] = field(default_factory=list)

    @property
    def length(self) -> int:
        return len(self.path)


@dataclass(frozen=True, slots=True)
class Lake:
    id: str
    center: Position
    radius: float
    elevation: float
    rock_type: RockType
    cells: frozenset[Position]

    def contains(self, x: int, y: int) -> bool:
        return (x, y) in self.cells


def moisture_for_distance(water_distance: float) -> float:
    """Moisture of a dry cell from its distance to the nearest water."""
    if water_distance <= 3:
        return 0.8
    if water_distance <= 8:
        return 0.6
    if water_distance <= NEAR_WATER_DISTANCE:
        return 0.4
    return 0.2


@dataclass(frozen=True, slots=True, eq=False)
class HydrologyField:
    bounds: WorldBounds
    lattice: Lattice
    springs: tuple[Spring, ...]
    rivers: tuple[River, ...]
    lakes: tuple[Lake, ...]
    lake_ids: np.ndarray
    river_mask: np.ndarray
    water_distance: np.ndarray

    def _index(self, x: float, y: float) -> tuple[int, int] | None:
        return self.lattice.nearest_index(x, y)

    def is_in_lake(self, x: float, y: float) -> bool:
        index = self._index(x, y)
        return index is not None and int(self.lake_ids[index]) >= 0

    def lake_at(self, x: float, y: float) -> Lake | None:
        index = self._index(x, y)
        if index is None or int(self.lake_ids[index]) < 0:
            return None
        return self.lakes[int(self.lake_ids[index])]

    def is_on_river(self, x: float, y: float) -> bool:
        index = self._index(x, y)
        return index is not None and bool(self.river_mask[index])

    def is_water_at(self, x: float, y: float) -> bool:
        return self.is_on_river(x, y) or self.is_in_lake(x, y)

    def distance_to_water(self, x: float, y: float) -> float:
        index = self._index(x, y)
        if index is not None:
            return float(self.water_distance[index])
        best = math.inf
        for lake in self.lakes:
            best = min(best, max(0.0, distance(x, y, *lake.center) - lake.radius))
        for river in self.rivers:
            for point in river.path:
                best = min(best, distance(x, y, point.x, point.y))
        return best

    def is_near_water(self, x: float, y: float, radius: float = NEAR_WATER_DISTANCE) -> bool:
        return self.distance_to_water(x, y) <= radius

    def moisture_level(self, x: float, y: float) -> float:
        if self.is_water_at(x, y):
            return 1.0
        return moisture_for_distance(self.distance_to_water(x, y))

    def statistics(self) -> dict[str, Any]:
        return {
            "springs": len(self.springs),
            "rivers": len(self.rivers),
            "lakes": len(self.lakes),
            "river_cells": int(self.river_mask.sum()),
            "lake_cells": int((self.lake_ids >= 0).sum()),
            "confluences": sum(len(river.confluences) for river in self.rivers),
            "total_river_length": sum(river.length for river in self.rivers),
        }


class HydrologyModule:
    """Finds lake basins first, then traces rivers downhill from springs."""

    name = "hydrology"
    priority = 90
    dependencies: tuple[str, ...] = ("geology", "elevation")

    def generate(self, context: WorldContext) -> HydrologyField:
        settings = context.config.hydrology
        geology: GeologyField = context.get_field("geology")
        elevation: ElevationField = context.get_field("elevation")
        lattice = Lattice(context.bounds, stride=1)

        lake_ids = np.full(lattice.shape, -1, dtype=np.int16)
        lakes = self._generate_lakes(context, settings, geology, elevation, lattice, lake_ids)
        springs = self._find_springs(context, settings, geology, elevation, lattice, lake_ids)

        river_mask = np.zeros(lattice.shape, dtype=bool)
        rivers: list[River] = []
        for spring in springs:
            path = self._trace_river(spring, context.bounds, settings, geology, elevation, lattice, lake_ids)
            if len(path) < settings.min_river_length:
                continue
            rivers.append(River(id=f"river_{len(rivers)}", source=spring, path=tuple(path)))
            self._paint_river(path, settings.river_width, lattice, river_mask)

        if settings.confluence_enabled:
            self._record_confluences(rivers, settings.confluence_distance)

        water_distance = self._distance_field(lattice, lakes, rivers)
        water_distance[(lake_ids >= 0) | river_mask] = 0.0
        return HydrologyField(
            bounds=context.bounds,
            lattice=lattice,
            springs=tuple(springs),
            rivers=tuple(rivers),
            lakes=tuple(lakes),
            lake_ids=lake_ids,
            river_mask=river_mask,
            water_distance=water_distance,
        )

    def get_data_at(self, x: int, y: int, context: WorldContext) -> ModuleData:
        hydrology: HydrologyField = context.get_field(self.name)
        payload = {
            "has_water": hydrology.is_water_at(x, y),
            "distance_to_water": hydrology.distance_to_water(x, y),
            "moisture": hydrology.moisture_level(x, y),
        }
        if hydrology.is_on_river(x, y):
            return ModuleData(terrain=TerrainKind.RIVER, features=["water-river"], payload=payload)
        if hydrology.is_in_lake(x, y):
            return ModuleData(terrain=TerrainKind.LAKE, features=["water-lake"], payload=payload)
        features = ["near-water"] if hydrology.is_near_water(x, y) else []
        return ModuleData(terrain=None, features=features, payload=payload)

    def affects_position(self, x: int, y: int, context: WorldContext) -> bool:
        hydrology: HydrologyField = context.get_field(self.name)
        return hydrology.is_near_water(x, y)

    def _generate_lakes(
        self,
        context: WorldContext,
        settings: HydrologySettings,
        geology: GeologyField,
        elevation: ElevationField,
        lattice: Lattice,
        lake_ids: np.ndarray,
    ) -> list[Lake]:
        bounds = context.bounds
        stride = settings.lake_sample_stride
        window = settings.basin_window
        candidates: list[tuple[float, int, int]] = []
        for x in range(bounds.min_x + stride // 2, bounds.max_x + 1, stride):
            for y in range(bounds.min_y + stride // 2, bounds.max_y + 1, stride):
                height = elevation.elevation_at(x, y)
                if height > settings.lake_max_elevation:
                    continue
                retention = geology.water_retention_at(x, y)
                if retention < settings.retention_threshold:
                    continue
                if any(
                    elevation.elevation_at(x + dx * window, y + dy * window) < height
                    for dx, dy in EIGHT_NEIGHBOURS
                    if bounds.contains(x + dx * window, y + dy * window)
                ):
                    continue

                rock = geology.rock_type_at(x, y)
                suitability = 0.3 * (1.0 - height / max(settings.lake_max_elevation, 1e-9)) + 0.2 * retention
                if rock is RockType.CLAY:
                    suitability += settings.lake_clay_preference
                elif rock is RockType.HARD:
                    suitability -= settings.lake_hard_rock_avoidance
                if suitability > 0.3:
                    candidates.append((suitability, x, y))

        candidates.sort(key=lambda candidate: (-candidate[0], candidate[1], candidate[2]))
        lakes: list[Lake] = []
        for _, x, y in candidates:
            if len(lakes) >= settings.lake_count:
                break
            if any(distance(x, y, *lake.center) < settings.lake_spacing for lake in lakes):
                continue

            index = len(lakes)
            radius = settings.min_lake_radius + seeded_random(context.seed + LAKE_SEED_OFFSET + index, x * 31 + y) * (
                settings.max_lake_radius - settings.min_lake_radius
            )
            height = elevation.elevation_at(x, y)
            cells = self._flood_lake(
                x, y, radius, height + settings.lake_fill_depth, index, elevation, lattice, lake_ids
            )
            if not cells:
                continue
            lakes.append(
                Lake(
                    id=f"lake_{index}",
                    center=Position(x, y),
                    radius=radius,
                    elevation=height,
                    rock_type=geology.rock_type_at(x, y),
                    cells=frozenset(cells),
                )
            )
        return lakes

    @staticmethod
    def _flood_lake(
        x: int,
        y: int,
        radius: float,
        spill_level: float,
        index: int,
        elevation: ElevationField,
        lattice: Lattice,
        lake_ids: np.ndarray,
    ) -> list[Position]:
        center_index = lattice.nearest_index(x, y)
        if center_index is None or lake_ids[center_index] >= 0:
            return []
        lake_ids[center_index] = index
        cells = [Position(x, y)]
        queue = deque(cells)
        while queue:
            cx, cy = queue.popleft()
            for dx, dy in FOUR_NEIGHBOURS:
                nx, ny = cx + dx, cy + dy
                cell_index = lattice.nearest_index(nx, ny)
                if cell_index is None or lake_ids[cell_index] >= 0:
                    continue
                if distance(nx, ny, x, y) > radius or elevation.elevation_at(nx, ny) > spill_level:
                    continue
                lake_ids[cell_index] = index
                position = Position(nx, ny)
                cells.append(position)
                queue.append(position)
        return cells

    @staticmethod
    def _spring_threshold(bounds: WorldBounds, elevation: ElevationField) -> float:
        samples = sorted(
            elevation.elevation_at(x, y)
            for x in range(bounds.min_x, bounds.max_x + 1, SPRING_SAMPLE_STRIDE)
            for y in range(bounds.min_y, bounds.max_y + 1, SPRING_SAMPLE_STRIDE)
        )
        median = samples[len(samples) // 2]
        return max(median + 0.05, samples[-1] * 0.6)

    def _find_springs(
        self,
        context: WorldContext,
        settings: HydrologySettings,
        geology: GeologyField,
        elevation: ElevationField,
        lattice: Lattice,
        lake_ids: np.ndarray,
    ) -> list[Spring]:
        if settings.spring_count == 0:
            return []
        bounds = context.bounds
        threshold = self._spring_threshold(bounds, elevation)
        margin_x = min(settings.spring_margin, bounds.width // 4)
        margin_y = min(settings.spring_margin, bounds.height // 4)
        span_x = max(bounds.width - 2 * margin_x, 1)
        span_y = max(bounds.height - 2 * margin_y, 1)

        candidates: dict[Position, Spring] = {}
        for attempt in range(settings.spring_count * SPRING_ATTEMPTS_PER_RIVER):
            x = bounds.min_x + margin_x + int(seeded_random(context.seed + SPRING_SEED_OFFSET, attempt * 2) * span_x)
            y = bounds.min_y + margin_y + int(seeded_random(context.seed + SPRING_SEED_OFFSET, attempt * 2 + 1) * span_y)
            position = Position(x, y)
            if position in candidates or not bounds.contains(x, y):
                continue
            height = elevation.elevation_at(x, y)
            if height < threshold or lake_ids[lattice.nearest_index(x, y)] >= 0:
                continue
            if not any(
                elevation.elevation_at(x + dx, y + dy) < height
                for dx, dy in EIGHT_NEIGHBOURS
                if bounds.contains(x + dx, y + dy)
            ):
                continue
            rock = geology.rock_type_at(x, y)
            suitability = 0.5 * height + _SPRING_ROCK_BONUS[rock]
            if suitability < settings.spring_min_suitability:
                continue
            candidates[position] = Spring(x=x, y=y, elevation=height, rock_type=rock, suitability=suitability)

        springs: list[Spring] = []
        for spring in sorted(candidates.values(), key=lambda s: (-s.suitability, s.x, s.y)):
            if len(springs) >= settings.spring_count:
                break
            if any(distance(spring.x, spring.y, other.x, other.y) < settings.spring_spacing for other in springs):
                continue
            springs.append(spring)
        return springs

    @staticmethod
    def _rock_preference(rock: RockType, settings: HydrologySettings) -> float:
        if rock is RockType.HARD:
            return -settings.hard_rock_avoidance
        if rock is RockType.SOFT:
            return settings.soft_rock_preference
        return settings.clay_channeling

    def _trace_river(
        self,
        spring: Spring,
        bounds: WorldBounds,
        settings: HydrologySettings,
        geology: GeologyField,
        elevation: ElevationField,
        lattice: Lattice,
        lake_ids: np.ndarray,
    ) -> list[Position]:
        """Steepest-descent chain biased by rock preference; never revisits a cell."""
        x, y = spring.x, spring.y
        current = spring.elevation
        sea_level = max(0.05, 0.2 * spring.elevation)
        path = [Position(x, y)]
        visited = {path[0]}

        while len(path) < settings.max_river_length:
            best: tuple[float, int, int, float] | None = None
            for dx, dy in EIGHT_NEIGHBOURS:
                nx, ny = x + dx, y + dy
                if (nx, ny) in visited or not bounds.contains(nx, ny):
                    continue
                height = elevation.elevation_at(nx, ny)
                drop = current - height
                if drop < -settings.uphill_tolerance:
                    continue
                score = drop * 8 + 0.1 * self._rock_preference(geology.rock_type_at(nx, ny), settings)
                if best is None or score > best[0]:
                    best = (score, nx, ny, height)
            if best is None:
                break

            _, x, y, current = best
            position = Position(x, y)
            path.append(position)
            visited.add(position)
            if lake_ids[lattice.nearest_index(x, y)] >= 0 or bounds.is_edge(x, y) or current <= sea_level:
                break
        return path

    @staticmethod
    def _paint_river(path: list[Position], width: int, lattice: Lattice, river_mask: np.ndarray) -> None:
        for point in path:
            for dx in range(-width, width + 1):
                for dy in range(-width, width + 1):
                    index = lattice.index_of(point.x + dx, point.y + dy)
                    if index is not None:
                        river_mask[index] = True

    @staticmethod
    def _record_confluences(rivers: list[River], max_distance: float) -> None:
        for later_index, tributary in enumerate(rivers):
            tributary_points = np.array(tributary.path, dtype=np.float64)
            for main in rivers[:later_index]:
                main_points = np.array(main.path, dtype=np.float64)
                gaps = np.hypot(
                    tributary_points[:, None, 0] - main_points[None, :, 0],
                    tributary_points[:, None, 1] - main_points[None, :, 1],
                )
                hits = np.argwhere(gaps <= max_distance)
                if hits.size == 0:
                    continue
                point = tributary.path[int(hits[0][0])]
                tributary.confluences.append({"river": main.id, "x": point.x, "y": point.y})

    @staticmethod
    def _distance_field(lattice: Lattice, lakes: list[Lake], rivers: list[River]) -> np.ndarray:
        xs, ys = lattice.coordinates()
        field_ = np.full(lattice.shape, np.inf, dtype=np.float64)
        for lake in lakes:
            rim = np.hypot(xs - lake.center.x, ys - lake.center.y) - lake.radius
            field_ = np.minimum(field_, np.maximum(rim, 0.0))

        path_mask = np.zeros(lattice.shape, dtype=bool)
        points = np.array([point for river in rivers for point in river.path], dtype=np.float64).reshape(-1, 2)
        if len(points):
            path_mask[lattice.nearest_indices(points[:, 0], points[:, 1])] = True
            field_ = np.minimum(field_, distance_transform_edt(~path_mask, sampling=lattice.stride))
        return field_

