from __future__ import annotations

from typing import Any

import pytest

from tileworld.config import TerrainConfig, load_config
from tileworld.models import Feature, FeatureType, Position, RenderedCell, TerrainKind, WorldBounds


def make_config(
    *,
    size: int = 25,
    seed: int = 42,
    water: bool = True,
    trees: bool = True,
    **sections: Any,
) -> TerrainConfig:
    overrides: dict[str, Any] = {
        "world": {"min_x": -size, "max_x": size, "min_y": -size, "max_y": size, "default_seed": seed},
    }
    if not water:
        overrides["hydrology"] = {"spring_count": 0, "lake_count": 0}
    if not trees:
        overrides["trees"] = {"forest_patch_count": 0, "scattered_tree_count": 0}
    for name, values in sections.items():
        overrides[name] = {**overrides.get(name, {}), **values}
    return load_config(**overrides)


@pytest.fixture
def small_config() -> TerrainConfig:
    return make_config(size=25, seed=42)


@pytest.fixture
def open_config() -> TerrainConfig:
    """A flat, dry, treeless world where every cell is walkable plains or forest."""
    return make_config(
        size=25,
        seed=7,
        water=False,
        trees=False,
        elevation={"method": "hills", "hill_count": 0, "noise_amount": 0.0, "base_elevation": 0.1},
    )


class StubWorld:
    """Hand-built terrain for agent and entity tests."""

    def __init__(self, size: int = 20, config: TerrainConfig | None = None) -> None:
        self._config = config or TerrainConfig()
        self._bounds = WorldBounds(min_x=-size, max_x=size, min_y=-size, max_y=size)
        self.terrain: dict[Position, TerrainKind] = {}
        self.features: dict[Position, Feature] = {}

    @property
    def bounds(self) -> WorldBounds:
        return self._bounds

    def set_terrain(self, x: int, y: int, kind: TerrainKind) -> None:
        self.terrain[Position(x, y)] = kind

    def add_tree(self, x: int, y: int, tree_id: int = 0) -> None:
        for dx in (-1, 0, 1):
            for dy in (-1, 0, 1):
                kind = FeatureType.TREE_TRUNK if (dx, dy) == (0, 0) else FeatureType.TREE_CANOPY
                self.features[Position(x + dx, y + dy)] = Feature(kind, tree_id, x, y)

    def is_valid_position(self, x: int, y: int) -> bool:
        return self._bounds.contains(x, y)

    def is_at_world_boundary(self, x: int, y: int) -> bool:
        return self._bounds.is_edge(x, y)

    def terrain_type(self, kind: TerrainKind):
        return self._config.terrain_types[kind]

    def get_terrain_at(self, x: int, y: int) -> RenderedCell:
        kind = self.terrain.get(Position(x, y), TerrainKind.PLAINS) if self.is_valid_position(x, y) else TerrainKind.UNKNOWN
        spec = self.terrain_type(kind)
        return RenderedCell(
            symbol=spec.symbol,
            style_tag=spec.style_tag,
            display_name=spec.display_name,
            terrain=kind,
            discovered=False,
            elevation=0.2,
            feature=self.features.get(Position(x, y)),
        )

    def can_move_to(self, x: int, y: int) -> bool:
        return self.is_valid_position(x, y) and self.terrain_type(self.get_terrain_at(x, y).terrain).walkable

    def is_passable(self, x: int, y: int) -> bool:
        feature = self.features.get(Position(x, y))
        return self.can_move_to(x, y) and (feature is None or feature.type is not FeatureType.TREE_TRUNK)

    def is_water_at(self, x: int, y: int) -> bool:
        return self.get_terrain_at(x, y).terrain in (TerrainKind.RIVER, TerrainKind.LAKE)

    def get_feature_at(self, x: int, y: int) -> Feature | None:
        return self.features.get(Position(x, y))

    def blocks_vision(self, x: int, y: int) -> bool:
        return Position(x, y) in self.features


@pytest.fixture
def stub_world() -> StubWorld:
    return StubWorld()
