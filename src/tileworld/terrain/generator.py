"""World generator facade: ordered modules, committed fields and per-position queries."""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Iterable

from tileworld.config import TerrainConfig
from tileworld.errors import ConfigurationInvalid, ModuleGenerationFailure
from tileworld.models import RockType, TerrainKind, WorldBounds
from tileworld.terrain import default_registry
from tileworld.terrain.base import (
    ModuleData,
    ModuleRegistry,
    TerrainModule,
    WorldContext,
    downstream_of,
    resolve_generation_order,
)

DEFAULT_MODULES = ("geology", "elevation", "hydrology")


@dataclass(slots=True)
class TerrainSample:
    terrain: TerrainKind | None
    features: list[str] = field(default_factory=list)
    modules: dict[str, ModuleData] = field(default_factory=dict)


@dataclass(slots=True)
class WaterInfo:
    has_water: bool
    in_lake: bool
    on_river: bool
    near_water: bool
    distance: float
    moisture: float


@dataclass(slots=True)
class PositionAnalysis:
    x: int
    y: int
    elevation: float
    rock_type: RockType
    soil_quality: float
    water: WaterInfo
    features: list[str] = field(default_factory=list)
    suitability: dict[str, float] = field(default_factory=dict)
    terrain: TerrainKind | None = None

    def as_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["rock_type"] = self.rock_type.value
        payload["terrain"] = self.terrain.value if self.terrain else None
        return payload


class WorldGenerator:
    """Runs terrain modules in dependency order and serves their committed fields.

    Generation is staged: modules write into a copy of the field map, which only
    replaces the committed map once every module in the run has succeeded.
    """

    def __init__(
        self,
        config: TerrainConfig,
        *,
        registry: ModuleRegistry | None = None,
        modules: Iterable[str] = DEFAULT_MODULES,
        logger: logging.Logger | None = None,
    ) -> None:
        registry = registry or default_registry
        self._config = config
        self._registry = registry
        self._modules: list[TerrainModule] = [registry.create(name) for name in modules]
        self._order = resolve_generation_order(self._modules)
        self._context = self._new_context({}, config.world.bounds, config.world.default_seed)
        self._generation_times: dict[str, float] = {}
        self._logger = logger or logging.getLogger("tileworld.generator")

    @property
    def config(self) -> TerrainConfig:
        return self._config

    @property
    def context(self) -> WorldContext:
        return self._context

    @property
    def bounds(self) -> WorldBounds:
        return self._context.bounds

    @property
    def seed(self) -> int:
        return self._context.seed

    @property
    def is_generated(self) -> bool:
        return all(self._context.has_field(module.name) for module in self._order)

    def configure(self, config: TerrainConfig) -> None:
        """Swap configuration; takes effect at the next generation."""
        self._config = config

    def add_module(self, name: str) -> None:
        modules = [*self._modules, self._registry.create(name)]
        self._order = resolve_generation_order(modules)
        self._modules = modules

    def remove_module(self, name: str) -> None:
        modules = [module for module in self._modules if module.name != name]
        if len(modules) == len(self._modules):
            raise ConfigurationInvalid(f"Terrain module is not installed: {name}")
        self._order = resolve_generation_order(modules)
        self._modules = modules
        self._context.fields.pop(name, None)

    def generation_order(self) -> list[str]:
        return [module.name for module in self._order]

    def generate_world(self) -> None:
        """Generate every module from scratch with the configured bounds and seed."""
        world = self._config.world
        self._run(self._order, self._new_context({}, world.bounds, world.default_seed))
        self._logger.info(
            "world_generated",
            extra={"seed": world.default_seed, "bounds": world.bounds.as_dict(), "modules": self.generation_order()},
        )

    def regenerate_module(self, name: str) -> list[str]:
        """Regenerate ``name`` and its downstream dependents; returns the module names rebuilt."""
        if name not in self.generation_order():
            raise ConfigurationInvalid(f"Unknown terrain module: {name}")
        if not self.is_generated:
            self.generate_world()
            return self.generation_order()

        cascade = downstream_of(name, self._order)
        staged = self._new_context(dict(self._context.fields), self._context.bounds, self._context.seed)
        self._run(cascade, staged)
        rebuilt = [module.name for module in cascade]
        self._logger.info("modules_regenerated", extra={"requested": name, "modules": rebuilt})
        return rebuilt

    def _new_context(self, fields: dict[str, Any], bounds: WorldBounds, seed: int) -> WorldContext:
        return WorldContext(bounds=bounds, seed=seed, config=self._config, fields=fields)

    def _run(self, modules: list[TerrainModule], context: WorldContext) -> None:
        for module in modules:
            started = time.perf_counter()
            try:
                generated = module.generate(context)
            except Exception as exc:  # noqa: BLE001 - surfaced to the caller with the module name.
                self._logger.exception("module_generation_failed", extra={"terrain_module": module.name})
                raise ModuleGenerationFailure(module.name, exc) from exc
            context.fields[module.name] = generated
            self._generation_times[module.name] = (time.perf_counter() - started) * 1000
        self._context = context

    def get_field(self, name: str) -> Any:
        return self._context.get_field(name)

    def get_terrain_at(self, x: int, y: int) -> TerrainSample:
        """Merge module contributions; later modules in generation order override terrain."""
        sample = TerrainSample(terrain=None)
        for module in self._order:
            if not module.affects_position(x, y, self._context):
                continue
            data = module.get_data_at(x, y, self._context)
            sample.modules[module.name] = data
            sample.features.extend(data.features)
            if data.terrain is not None:
                sample.terrain = data.terrain
        return sample

    def elevation_at(self, x: float, y: float) -> float:
        if not self._context.has_field("elevation"):
            return self._config.elevation.base_elevation
        return self._context.get_field("elevation").elevation_at(x, y)

    def elevation_neighbourhood_mean(self, x: float, y: float, radius: int) -> float:
        if not self._context.has_field("elevation"):
            return self._config.elevation.base_elevation
        return self._context.get_field("elevation").neighbourhood_mean(x, y, radius)

    def rock_type_at(self, x: float, y: float) -> RockType:
        return self._context.get_field("geology").rock_type_at(x, y)

    def soil_quality_at(self, x: float, y: float) -> float:
        return self._context.get_field("geology").soil_quality_at(x, y)

    def water_at(self, x: float, y: float) -> WaterInfo:
        if not self._context.has_field("hydrology"):
            return WaterInfo(False, False, False, False, float("inf"), 0.2)
        hydrology = self._context.get_field("hydrology")
        in_lake = hydrology.is_in_lake(x, y)
        on_river = hydrology.is_on_river(x, y)
        return WaterInfo(
            has_water=in_lake or on_river,
            in_lake=in_lake,
            on_river=on_river,
            near_water=hydrology.is_near_water(x, y),
            distance=hydrology.distance_to_water(x, y),
            moisture=hydrology.moisture_level(x, y),
        )

    def analyze_position(self, x: int, y: int) -> PositionAnalysis:
        elevation = self.elevation_at(x, y)
        soil = self.soil_quality_at(x, y)
        rock = self.rock_type_at(x, y)
        water = self.water_at(x, y)
        erosion = self._config.geology.rock_properties[rock].erosion_resistance

        settlement = 0.0
        if 0.2 < elevation < 0.5:
            settlement += 0.3
        if water.near_water and not water.has_water:
            settlement += 0.4
        settlement += 0.2 * soil
        if elevation > 0.15:
            settlement += 0.1

        agriculture = 0.0
        if 0.15 < elevation < 0.4:
            agriculture += 0.3
        if water.moisture > 0.4:
            agriculture += 0.4
        agriculture += 0.2 * soil
        if not water.has_water:
            agriculture += 0.1

        defense = 0.0
        if elevation > 0.4:
            defense += 0.4
        if water.near_water:
            defense += 0.2
        defense += 0.2 * erosion
        if elevation > 0.6:
            defense += 0.2

        return PositionAnalysis(
            x=x,
            y=y,
            elevation=elevation,
            rock_type=rock,
            soil_quality=soil,
            water=water,
            features=self.get_terrain_at(x, y).features,
            suitability={
                "settlement": round(min(settlement, 1.0), 3),
                "agriculture": round(min(agriculture, 1.0), 3),
                "defense": round(min(defense, 1.0), 3),
            },
        )

    def module_status(self) -> list[dict[str, Any]]:
        status = []
        for module in self._order:
            generated = self._context.has_field(module.name)
            status.append(
                {
                    "name": module.name,
                    "priority": module.priority,
                    "dependencies": list(module.dependencies),
                    "generated": generated,
                    "generation_ms": round(self._generation_times.get(module.name, 0.0), 2),
                    "statistics": self._context.get_field(module.name).statistics() if generated else None,
                }
            )
        return status

    def world_features(self) -> dict[str, Any]:
        features: dict[str, Any] = {"formations": [], "springs": [], "rivers": [], "lakes": []}
        if self._context.has_field("geology"):
            features["formations"] = [f.as_dict() for f in self._context.get_field("geology").formations]
        if self._context.has_field("hydrology"):
            hydrology = self._context.get_field("hydrology")
            features["springs"] = [
                {"x": s.x, "y": s.y, "elevation": s.elevation, "rock_type": s.rock_type.value} for s in hydrology.springs
            ]
            features["rivers"] = [
                {"id": r.id, "length": r.length, "source": [r.source.x, r.source.y], "confluences": r.confluences}
                for r in hydrology.rivers
            ]
            features["lakes"] = [
                {"id": lake.id, "center": list(lake.center), "radius": lake.radius, "cells": len(lake.cells)}
                for lake in hydrology.lakes
            ]
        return features
