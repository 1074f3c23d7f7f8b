from __future__ import annotations

import json
import logging

import pytest
from conftest import make_config

from tileworld.errors import ConfigurationInvalid, OutOfBounds
from tileworld.models import FeatureType, TerrainKind
from tileworld.world import WorldSystem


@pytest.fixture(scope="module")
def world() -> WorldSystem:
    system = WorldSystem(make_config(size=25, seed=42))
    system.initialize()
    return system


def test_same_seed_gives_the_same_cells() -> None:
    first = WorldSystem(make_config(size=25, seed=42))
    second = WorldSystem(make_config(size=25, seed=42))
    first.initialize()
    second.initialize()

    assert first.get_terrain_at(0, 0) == second.get_terrain_at(0, 0)
    assert first.get_terrain_at(0, 0) == first.get_terrain_at(0, 0)
    for x, y in [(-25, -25), (12, -7), (25, 25)]:
        assert first.cell_at(x, y) == second.cell_at(x, y)


def test_out_of_bounds_reads_unknown(world: WorldSystem) -> None:
    record = world.get_terrain_at(100, 100)

    assert record.terrain is TerrainKind.UNKNOWN
    assert record.discovered is False
    assert record.elevation == 0.2
    assert not world.can_move_to(100, 100)
    assert not world.is_passable(100, 100)
    assert not world.is_water_at(100, 100)
    with pytest.raises(OutOfBounds):
        world.cell_at(100, 100)
    with pytest.raises(OutOfBounds):
        world.analyze_position(-26, 0)


def test_can_move_to_matches_terrain_walkability(world: WorldSystem) -> None:
    for x in range(-25, 26, 3):
        for y in range(-25, 26, 3):
            record = world.get_terrain_at(x, y)
            assert world.can_move_to(x, y) == world.terrain_type(record.terrain).walkable


def test_water_cells_are_not_walkable(world: WorldSystem) -> None:
    for x in range(-25, 26):
        for y in range(-25, 26):
            if world.is_water_at(x, y):
                assert not world.can_move_to(x, y)


def test_mark_discovered_only_flips_existing_cells() -> None:
    system = WorldSystem(make_config(size=10, water=False, trees=False))
    system.initialize()

    assert system.mark_discovered(3, 3) is False
    system.cell_at(3, 3)
    assert system.mark_discovered(3, 3) is True
    assert system.mark_discovered(3, 3) is False
    assert system.get_terrain_at(3, 3).discovered
    with pytest.raises(OutOfBounds):
        system.mark_discovered(11, 0)


def test_discover_around_counts_new_cells() -> None:
    system = WorldSystem(make_config(size=10, water=False, trees=False))
    system.initialize()

    assert system.discover_around(0, 0, 1) == 5
    assert system.discover_around(0, 0, 1) == 0
    assert system.statistics()["discovered_cells"] == 5


def test_regeneration_clears_the_cell_cache() -> None:
    system = WorldSystem(make_config(size=15, seed=3, water=False))
    system.initialize()
    system.cell_at(0, 0)
    system.mark_discovered(0, 0)

    system.regenerate_world()

    assert system.statistics()["discovered_cells"] == 0
    assert not system.get_terrain_at(0, 0).discovered


def test_regenerate_module_reclassifies_cells() -> None:
    system = WorldSystem(make_config(size=20, seed=5, water=False, trees=False))
    system.initialize()
    system.apply_geological_preset("granite_heavy")

    assert system.regenerate_module("geology") == ["geology", "elevation", "hydrology"]
    for x in range(-20, 21, 4):
        for y in range(-20, 21, 4):
            assert system.cell_at(x, y).terrain is system.classifier.classify(x, y)


def test_failing_cell_falls_back_to_plains(monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture) -> None:
    system = WorldSystem(make_config(size=10, water=False, trees=False))
    system.initialize()

    def explode(x, y):
        raise ValueError("classifier offline")

    monkeypatch.setattr(system.classifier, "classify", explode)
    with caplog.at_level(logging.ERROR, logger="tileworld.world"):
        cell = system.cell_at(2, 2)

    assert cell.terrain is TerrainKind.PLAINS
    assert cell.elevation == 0.2
    assert cell.walkable
    assert any(record.getMessage() == "cell_generation_failed" for record in caplog.records)


def test_trees_block_movement_at_the_trunk_and_vision_everywhere() -> None:
    system = WorldSystem(
        make_config(
            size=30,
            seed=11,
            water=False,
            trees={"scattered_tree_count": 40},
            elevation={"method": "hills", "hill_count": 0, "noise_amount": 0.0, "base_elevation": 0.1},
        )
    )
    system.initialize()
    assert len(system.trees) > 0
    tree = system.trees.trees[0]

    trunk = system.get_terrain_at(tree.x, tree.y)
    canopy = system.get_terrain_at(tree.x + 1, tree.y)

    assert trunk.feature is not None and trunk.feature.type is FeatureType.TREE_TRUNK
    assert trunk.symbol == system.config.feature_types[FeatureType.TREE_TRUNK].symbol
    assert trunk.style_tag.endswith("tree-trunk")
    assert system.can_move_to(tree.x, tree.y)
    assert not system.is_passable(tree.x, tree.y)
    assert system.is_passable(tree.x + 1, tree.y)
    assert system.blocks_vision(tree.x + 1, tree.y)
    assert canopy.feature is not None
    assert canopy.feature.tree_id == tree.id


def test_configuration_changes_wait_for_regeneration() -> None:
    system = WorldSystem(make_config(size=10, water=False))
    system.initialize()

    system.set_world_bounds(-5, 5, -5, 5)
    assert system.bounds.max_x == 10
    system.regenerate_world()
    assert system.bounds.max_x == 5

    with pytest.raises(ConfigurationInvalid):
        system.quick_config_water("flooded")
    with pytest.raises(ConfigurationInvalid):
        system.update_configuration("deer", {"vision_range": 0})
    assert "companion spawn position lies outside the world bounds" in system.validate_configuration()


def test_terrain_statistics_do_not_touch_the_cache(world: WorldSystem) -> None:
    before = world.statistics()["generated_cells"]

    stats = world.terrain_statistics(step=5)

    assert stats["samples"] == 11 * 11
    assert sum(stats["counts"].values()) == stats["samples"]
    assert world.statistics()["generated_cells"] == before


def test_analyze_position_includes_the_classified_terrain(world: WorldSystem) -> None:
    analysis = world.analyze_position(4, 4)

    assert analysis.terrain is world.cell_at(4, 4).terrain


def test_export_world_state_is_json_ready(world: WorldSystem) -> None:
    world.cell_at(1, 2)

    state = world.export_world_state()
    keys = [key for key, _ in state["generated_cells"]]

    assert "1,2" in keys
    assert state["world_bounds"] == {"min_x": -25, "max_x": 25, "min_y": -25, "max_y": 25}
    assert set(state) == {"configuration", "world_bounds", "generated_cells", "timestamp"}
    json.dumps(state)
    json.dumps(world.world_features())


def test_terrain_type_changes_wait_for_regeneration(open_config) -> None:
    system = WorldSystem(open_config)
    system.initialize()
    kind = system.get_terrain_at(0, 0).terrain
    blocked = system.config.terrain_types[kind].model_copy(update={"walkable": False})

    system.update_configuration("terrain_types", {kind: blocked})

    assert system.config.terrain_types[kind].walkable is False
    assert system.active_config.terrain_types[kind].walkable is True
    assert system.can_move_to(0, 0) is True
    assert system.can_move_to(0, 0) == system.terrain_type(system.get_terrain_at(0, 0).terrain).walkable

    system.regenerate_world()

    assert system.get_terrain_at(0, 0).terrain is kind
    assert system.can_move_to(0, 0) is False
    assert system.can_move_to(0, 0) == system.terrain_type(system.get_terrain_at(0, 0).terrain).walkable
