"""World system: lazily classified cells over the generated terrain fields."""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Mapping, Protocol

from tileworld.config import FeatureTypeSpec, TerrainConfig, TerrainTypeSpec
from tileworld.errors import OutOfBounds
from tileworld.features import TreeLayer
from tileworld.models import (
    WATER_KINDS,
    Feature,
    Position,
    RenderedCell,
    TerrainKind,
    WorldBounds,
    WorldCell,
)
from tileworld.terrain.base import ModuleRegistry
from tileworld.terrain.classifier import TerrainClassifier
from tileworld.terrain.generator import PositionAnalysis, WorldGenerator

UNKNOWN_ELEVATION = 0.2
FALLBACK_ELEVATION = 0.2


class TerrainView(Protocol):
    """What agents and entities need from the world."""

    @property
    def bounds(self) -> WorldBounds: ...

    def is_valid_position(self, x: int, y: int) -> bool: ...

    def is_at_world_boundary(self, x: int, y: int) -> bool: ...

    def get_terrain_at(self, x: int, y: int) -> RenderedCell: ...

    def terrain_type(self, kind: TerrainKind) -> TerrainTypeSpec: ...

    def can_move_to(self, x: int, y: int) -> bool: ...

    def is_passable(self, x: int, y: int) -> bool: ...

    def is_water_at(self, x: int, y: int) -> bool: ...

    def get_feature_at(self, x: int, y: int) -> Feature | None: ...

    def blocks_vision(self, x: int, y: int) -> bool: ...


class WorldSystem:
    """Owns the generator, the classifier, the tree layer and the cell cache."""

    def __init__(
        self,
        config: TerrainConfig,
        *,
        registry: ModuleRegistry | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._active = config
        self._logger = logger or logging.getLogger("tileworld.world")
        self._generator = WorldGenerator(config, registry=registry, logger=logging.getLogger("tileworld.generator"))
        self._classifier = TerrainClassifier(self._generator, config.classifier)
        self._trees = TreeLayer()
        self._cells: dict[Position, WorldCell] = {}
        self._bounds = config.world.bounds

    @property
    def config(self) -> TerrainConfig:
        return self._config

    @property
    def active_config(self) -> TerrainConfig:
        """Configuration the current cells were generated under."""
        return self._active

    @property
    def generator(self) -> WorldGenerator:
        return self._generator

    @property
    def classifier(self) -> TerrainClassifier:
        return self._classifier

    @property
    def trees(self) -> TreeLayer:
        return self._trees

    @property
    def bounds(self) -> WorldBounds:
        return self._bounds

    @property
    def seed(self) -> int:
        return self._generator.seed

    def initialize(self) -> None:
        """Generate every module and derived layer; raises ModuleGenerationFailure."""
        self._generator.configure(self._config)
        self._generator.generate_world()
        self._rebuild_derived()
        self._logger.info(
            "world_initialized",
            extra={"seed": self.seed, "bounds": self._bounds.as_dict(), "trees": len(self._trees)},
        )

    def configure(self, config: TerrainConfig) -> None:
        """Replace configuration; generated fields change only on regeneration."""
        self._config = config
        self._generator.configure(config)

    def regenerate_world(self) -> None:
        self._generator.configure(self._config)
        self._generator.generate_world()
        self._rebuild_derived()
        self._logger.info("world_regenerated", extra={"seed": self.seed})

    def regenerate_module(self, name: str) -> list[str]:
        self._generator.configure(self._config)
        rebuilt = self._generator.regenerate_module(name)
        self._rebuild_derived()
        return rebuilt

    def _rebuild_derived(self) -> None:
        self._active = self._config
        self._bounds = self._generator.bounds
        self._classifier = TerrainClassifier(self._generator, self._active.classifier)
        self._cells.clear()
        self._trees = TreeLayer.generate(self._bounds, self._active.trees, self.seed, self.cell_at)

    def is_valid_position(self, x: int, y: int) -> bool:
        return self._bounds.contains(x, y)

    def is_at_world_boundary(self, x: int, y: int) -> bool:
        return self._bounds.is_edge(x, y)

    def set_world_bounds(self, min_x: int, max_x: int, min_y: int, max_y: int) -> None:
        """Stage new bounds; they take effect at the next :meth:`regenerate_world`."""
        self.update_configuration("world", {"min_x": min_x, "max_x": max_x, "min_y": min_y, "max_y": max_y})

    def terrain_type(self, kind: TerrainKind) -> TerrainTypeSpec:
        return self._active.terrain_types[kind]

    def feature_type(self, feature: Feature) -> FeatureTypeSpec:
        return self._active.feature_types[feature.type]

    def cell_at(self, x: int, y: int) -> WorldCell:
        if not self.is_valid_position(x, y):
            raise OutOfBounds(x, y)
        key = Position(x, y)
        cell = self._cells.get(key)
        if cell is None:
            cell = self._generate_cell(x, y)
            self._cells[key] = cell
        return cell

    def _generate_cell(self, x: int, y: int) -> WorldCell:
        try:
            terrain = self._classifier.classify(x, y)
            elevation = self._generator.elevation_at(x, y)
        except Exception:  # noqa: BLE001 - a single bad cell must not take the world down.
            self._logger.exception("cell_generation_failed", extra={"x": x, "y": y})
            return WorldCell(terrain=TerrainKind.PLAINS, elevation=FALLBACK_ELEVATION, walkable=True)
        return WorldCell(terrain=terrain, elevation=elevation, walkable=self.terrain_type(terrain).walkable)

    def _unknown_record(self) -> RenderedCell:
        spec = self.terrain_type(TerrainKind.UNKNOWN)
        return RenderedCell(
            symbol=spec.symbol,
            style_tag=spec.style_tag,
            display_name=spec.display_name,
            terrain=TerrainKind.UNKNOWN,
            discovered=False,
            elevation=UNKNOWN_ELEVATION,
        )

    def get_terrain_at(self, x: int, y: int) -> RenderedCell:
        if not self.is_valid_position(x, y):
            return self._unknown_record()

        cell = self.cell_at(x, y)
        spec = self.terrain_type(cell.terrain)
        record = RenderedCell(
            symbol=spec.symbol,
            style_tag=spec.style_tag,
            display_name=spec.display_name,
            terrain=cell.terrain,
            discovered=cell.discovered,
            elevation=cell.elevation,
        )
        feature = self._trees.feature_at(x, y)
        if feature is not None:
            feature_spec = self.feature_type(feature)
            record.feature = feature
            record.symbol = feature_spec.symbol
            record.style_tag = f"{spec.style_tag} {feature_spec.style_tag}"
        return record

    def get_feature_at(self, x: int, y: int) -> Feature | None:
        return self._trees.feature_at(x, y)

    def can_move_to(self, x: int, y: int) -> bool:
        if not self.is_valid_position(x, y):
            return False
        return self.cell_at(x, y).walkable

    def is_passable(self, x: int, y: int) -> bool:
        """Walkable terrain that is not blocked by a feature such as a tree trunk."""
        if not self.can_move_to(x, y):
            return False
        feature = self._trees.feature_at(x, y)
        return feature is None or self.feature_type(feature).walkable

    def blocks_vision(self, x: int, y: int) -> bool:
        feature = self._trees.feature_at(x, y)
        return feature is not None and self.feature_type(feature).blocks_vision

    def is_water_at(self, x: int, y: int) -> bool:
        return self.is_valid_position(x, y) and self.cell_at(x, y).terrain in WATER_KINDS

    def mark_discovered(self, x: int, y: int) -> bool:
        """Flip the discovered bit of an existing cell; returns True when it changed."""
        if not self.is_valid_position(x, y):
            raise OutOfBounds(x, y)
        cell = self._cells.get(Position(x, y))
        if cell is None or cell.discovered:
            return False
        cell.discovered = True
        return True

    def discover_around(self, x: int, y: int, radius: int) -> int:
        discovered = 0
        for dx in range(-radius, radius + 1):
            for dy in range(-radius, radius + 1):
                cx, cy = x + dx, y + dy
                if dx * dx + dy * dy > radius * radius or not self.is_valid_position(cx, cy):
                    continue
                self.cell_at(cx, cy)
                discovered += self.mark_discovered(cx, cy)
        return discovered

    def quick_config_elevation(self, method: str) -> None:
        self.configure(self._config.with_preset("elevation", method))

    def quick_config_water(self, level: str) -> None:
        self.configure(self._config.with_preset("water", level))

    def apply_geological_preset(self, name: str) -> None:
        self.configure(self._config.with_preset("geological", name))

    def update_configuration(self, section: str, values: Mapping[str, Any]) -> None:
        self.configure(self._config.overlay(section, values))
        self._logger.info("configuration_updated", extra={"section": section, "keys": sorted(values)})

    def validate_configuration(self) -> list[str]:
        return self._config.validate_sections()

    def analyze_position(self, x: int, y: int) -> PositionAnalysis:
        if not self.is_valid_position(x, y):
            raise OutOfBounds(x, y)
        analysis = self._generator.analyze_position(x, y)
        analysis.terrain = self.cell_at(x, y).terrain
        return analysis

    def terrain_statistics(self, step: int | None = None) -> dict[str, Any]:
        """Classify a strided sample of the world without touching the cell cache."""
        step = step or self._config.performance.statistics_sample_step
        counts: Counter[str] = Counter()
        for x in range(self._bounds.min_x, self._bounds.max_x + 1, step):
            for y in range(self._bounds.min_y, self._bounds.max_y + 1, step):
                counts[self._classifier.classify(x, y).value] += 1

        total = sum(counts.values())
        return {
            "step": step,
            "samples": total,
            "counts": dict(sorted(counts.items())),
            "percentages": {kind: round(100.0 * count / total, 1) for kind, count in sorted(counts.items())},
        }

    def world_features(self) -> dict[str, Any]:
        features = self._generator.world_features()
        features["trees"] = self._trees.as_list()
        return features

    def statistics(self) -> dict[str, Any]:
        return {
            "generated_cells": len(self._cells),
            "discovered_cells": sum(cell.discovered for cell in self._cells.values()),
            "trees": len(self._trees),
            "modules": self._generator.module_status(),
        }

    def export_world_state(self) -> dict[str, Any]:
        return {
            "configuration": self._config.export(),
            "world_bounds": self._bounds.as_dict(),
            "generated_cells": [
                (
                    f"{position.x},{position.y}",
                    {
                        "terrain": cell.terrain.value,
                        "elevation": cell.elevation,
                        "walkable": cell.walkable,
                        "discovered": cell.discovered,
                    },
                )
                for position, cell in self._cells.items()
            ],
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
