from __future__ import annotations

import numpy as np
import pytest
from conftest import make_config

from tileworld.errors import ConfigurationInvalid, ModuleGenerationFailure
from tileworld.models import TerrainKind
from tileworld.terrain import ElevationModule, GeologyModule, HydrologyModule
from tileworld.terrain.base import ModuleData, ModuleRegistry
from tileworld.terrain.generator import WorldGenerator


class ExplodingElevation(ElevationModule):
    def generate(self, context):
        raise ValueError("bad elevation")


class RoadModule:
    name = "roads"
    priority = 10
    dependencies: tuple[str, ...] = ("geology",)

    def generate(self, context):
        return {"road_y": 0}

    def get_data_at(self, x, y, context) -> ModuleData:
        return ModuleData(terrain=TerrainKind.ROAD, features=["road"])

    def affects_position(self, x, y, context) -> bool:
        return y == context.get_field(self.name)["road_y"]


def _registry(elevation=ElevationModule) -> ModuleRegistry:
    registry = ModuleRegistry()
    registry.register_module_type("geology", GeologyModule)
    registry.register_module_type("elevation", elevation)
    registry.register_module_type("hydrology", HydrologyModule)
    registry.register_module_type("roads", RoadModule)
    return registry


def test_generation_is_deterministic() -> None:
    config = make_config(size=30, seed=42)
    first = WorldGenerator(config)
    second = WorldGenerator(config)
    first.generate_world()
    second.generate_world()

    assert first.get_field("geology").formations == second.get_field("geology").formations
    assert np.array_equal(first.get_field("geology").rock_codes, second.get_field("geology").rock_codes)
    assert np.array_equal(first.get_field("elevation").grid, second.get_field("elevation").grid)
    for x, y in [(0, 0), (-30, 17), (29, -3), (5, 5)]:
        assert first.analyze_position(x, y) == second.analyze_position(x, y)


def test_generation_order_and_status() -> None:
    generator = WorldGenerator(make_config(size=20, water=False))
    assert not generator.is_generated

    generator.generate_world()

    assert generator.generation_order() == ["geology", "elevation", "hydrology"]
    assert generator.is_generated
    assert [entry["generated"] for entry in generator.module_status()] == [True, True, True]


def test_failed_regeneration_keeps_committed_fields() -> None:
    config = make_config(size=20, water=False)
    registry = _registry()
    generator = WorldGenerator(config, registry=registry)
    generator.generate_world()
    before = generator.get_field("elevation")

    registry.register_module_type("elevation", ExplodingElevation)
    broken = WorldGenerator(config, registry=registry)
    with pytest.raises(ModuleGenerationFailure) as excinfo:
        broken.generate_world()

    assert excinfo.value.module == "elevation"
    assert isinstance(excinfo.value.cause, ValueError)
    assert not broken.context.has_field("geology")
    assert generator.get_field("elevation") is before


def test_failure_mid_cascade_leaves_previous_fields(monkeypatch: pytest.MonkeyPatch) -> None:
    generator = WorldGenerator(make_config(size=20, water=False))
    generator.generate_world()
    geology = generator.get_field("geology")
    elevation = generator.get_field("elevation")

    def explode(self, context):
        raise RuntimeError("hydrology offline")

    monkeypatch.setattr(HydrologyModule, "generate", explode)
    with pytest.raises(ModuleGenerationFailure):
        generator.regenerate_module("geology")

    assert generator.get_field("geology") is geology
    assert generator.get_field("elevation") is elevation


def test_regenerate_module_rebuilds_downstream_only() -> None:
    generator = WorldGenerator(make_config(size=20, water=False))
    generator.generate_world()
    geology = generator.get_field("geology")

    rebuilt = generator.regenerate_module("elevation")

    assert rebuilt == ["elevation", "hydrology"]
    assert generator.get_field("geology") is geology


def test_regenerate_unknown_module_is_configuration_error() -> None:
    generator = WorldGenerator(make_config(size=20, water=False))

    with pytest.raises(ConfigurationInvalid):
        generator.regenerate_module("vegetation")


def test_later_modules_override_terrain() -> None:
    generator = WorldGenerator(
        make_config(size=20, water=False),
        registry=_registry(),
        modules=("geology", "elevation", "hydrology", "roads"),
    )
    generator.generate_world()

    on_road = generator.get_terrain_at(3, 0)
    off_road = generator.get_terrain_at(3, 4)

    assert generator.generation_order()[-1] == "roads"
    assert on_road.terrain is TerrainKind.ROAD
    assert "road" in on_road.features
    assert off_road.terrain is None
    assert any(feature.startswith("rock-") for feature in off_road.features)


def test_add_and_remove_modules() -> None:
    generator = WorldGenerator(make_config(size=20, water=False), registry=_registry())

    generator.add_module("roads")
    assert "roads" in generator.generation_order()
    generator.remove_module("roads")
    assert "roads" not in generator.generation_order()
    with pytest.raises(ConfigurationInvalid):
        generator.remove_module("roads")
    with pytest.raises(ConfigurationInvalid):
        generator.add_module("weather")


def test_analyze_position_scores_are_bounded() -> None:
    generator = WorldGenerator(make_config(size=30, seed=8))
    generator.generate_world()

    analysis = generator.analyze_position(4, -6)

    assert set(analysis.suitability) == {"settlement", "agriculture", "defense"}
    assert all(0.0 <= score <= 1.0 for score in analysis.suitability.values())
    assert analysis.as_dict()["rock_type"] in {"hard", "soft", "clay"}
