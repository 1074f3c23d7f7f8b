from __future__ import annotations

import logging
import math
import random

import pytest
from conftest import StubWorld, make_config

from tileworld.config import DeerSettings
from tileworld.entities import Deer, DeerState
from tileworld.entities.deer import bresenham
from tileworld.managers import DeerManager
from tileworld.models import Position, TerrainKind
from tileworld.world import WorldSystem


def _deer(world, x: int = 0, y: int = 0, deer_id: int = 0, **settings) -> Deer:
    return Deer(deer_id, x, y, world, DeerSettings(**settings), random.Random(deer_id))


def test_spawn_places_spaced_deer_on_open_ground() -> None:
    world = WorldSystem(make_config(size=50, seed=1))
    world.initialize()
    manager = DeerManager(world, world.config.deer, seed=1)

    report = manager.spawn_deer()

    assert report.placed == len(manager.deer) <= 20
    assert report.shortfall == 20 - report.placed
    assert report.attempts <= world.config.deer.spawn_attempts
    for index, deer in enumerate(manager.deer):
        assert -40 <= deer.x <= 40 and -40 <= deer.y <= 40
        assert world.is_passable(deer.x, deer.y)
        assert not world.is_water_at(deer.x, deer.y)
        for other in manager.deer[index + 1 :]:
            assert math.hypot(deer.x - other.x, deer.y - other.y) >= 5


def test_spawn_is_deterministic_for_a_seed(stub_world: StubWorld) -> None:
    first = DeerManager(stub_world, DeerSettings(), seed=9)
    second = DeerManager(stub_world, DeerSettings(), seed=9)

    assert first.spawn_deer().positions == second.spawn_deer().positions


def test_deer_stays_alert_while_the_player_lingers(stub_world: StubWorld) -> None:
    deer = _deer(stub_world)
    player = Position(3, 0)

    states = []
    for tick in range(1, 4):
        deer.update(player, [deer], tick)
        states.append(deer.state)

    assert states == [DeerState.ALERT, DeerState.ALERT, DeerState.ALERT]
    deer.update(player, [deer], 4)
    assert deer.state is DeerState.FLEEING


def test_alert_deer_calms_down_when_the_player_is_gone(stub_world: StubWorld) -> None:
    deer = _deer(stub_world)
    deer.update(Position(3, 0), [deer], 1)

    for tick in range(2, 5):
        deer.update(Position(0, 19), [deer], tick)

    assert deer.state is DeerState.WANDERING


def test_panic_distance_starts_fleeing_immediately(stub_world: StubWorld) -> None:
    deer = _deer(stub_world)

    deer.update(Position(1, 0), [deer], 1)

    assert deer.state is DeerState.FLEEING
    assert deer.distance_to(1, 0) > 1
    assert deer.position == Position(-1, 1)


def test_fleeing_deer_alerts_the_herd(stub_world: StubWorld) -> None:
    leader = _deer(stub_world, 0, 0, deer_id=0)
    follower = _deer(stub_world, 5, 0, deer_id=1)
    leader.scare(Position(1, 0))

    follower.update(Position(0, 19), [leader, follower], 1)

    assert follower.state is DeerState.ALERT


def test_canopy_blocks_line_of_sight(stub_world: StubWorld) -> None:
    deer = _deer(stub_world)
    assert deer.can_see_position(4, 0)

    stub_world.add_tree(2, 0)

    assert not deer.has_line_of_sight(4, 0)
    assert not deer.can_see_position(4, 0)
    assert deer.can_see_position(0, 4)


def test_boundary_cells_block_line_of_sight(stub_world: StubWorld) -> None:
    deer = _deer(stub_world, 20, -2)

    assert not deer.can_see_position(20, 2)
    assert not deer.can_see_position(21, 0)


def test_vision_range_limits_sight(stub_world: StubWorld) -> None:
    deer = _deer(stub_world)

    assert deer.can_see_position(8, 0)
    assert not deer.can_see_position(6, 6)
    assert Position(0, 9) not in deer.vision_tiles()


def test_vision_cone_follows_facing(stub_world: StubWorld) -> None:
    deer = _deer(stub_world, vision_cone_degrees=90)
    deer.facing = (1.0, 0.0)

    assert deer.can_see_position(4, 1)
    assert not deer.can_see_position(-4, 0)


def test_bresenham_yields_only_intermediate_cells() -> None:
    assert list(bresenham(Position(0, 0), Position(3, 0))) == [Position(1, 0), Position(2, 0)]
    assert list(bresenham(Position(0, 0), Position(2, 2))) == [Position(1, 1)]
    assert list(bresenham(Position(0, 0), Position(1, 1))) == []


def test_deer_never_enter_blocked_cells(stub_world: StubWorld) -> None:
    for y in range(-20, 21):
        stub_world.set_terrain(3, y, TerrainKind.RIVER)
    stub_world.add_tree(-4, -4)
    player = Position(1, 0)
    manager = DeerManager(stub_world, DeerSettings(max_deer_count=6), seed=3, player_position=lambda: player)
    manager.spawn_deer()

    for tick in range(1, 60):
        player = Position(tick % 5 - 2, 0)
        manager.tick(tick)
        for deer in manager.deer:
            assert stub_world.is_valid_position(deer.x, deer.y)
            assert stub_world.is_passable(deer.x, deer.y)


def test_deer_under_canopy_are_hidden(stub_world: StubWorld) -> None:
    stub_world.add_tree(5, 5)
    manager = DeerManager(stub_world, DeerSettings(max_deer_count=1), seed=2)
    manager.spawn_deer()
    deer = manager.deer[0]

    deer.x, deer.y = 6, 5
    hidden = manager.render(6, 5, stub_world.get_terrain_at(6, 5))
    deer.x, deer.y = 0, 0
    shown = manager.render(0, 0, stub_world.get_terrain_at(0, 0))

    assert hidden.deer is None
    assert shown.deer == {"id": deer.id, "state": "wandering"}
    assert shown.style_tag == "deer-entity deer-wandering"


def test_one_failing_deer_does_not_stop_the_herd(
    stub_world: StubWorld, caplog: pytest.LogCaptureFixture
) -> None:
    manager = DeerManager(stub_world, DeerSettings(max_deer_count=3), seed=4, player_position=lambda: Position(0, 19))
    manager.spawn_deer()
    broken = manager.deer[0]

    def explode(player, peers, tick):
        raise RuntimeError("hoof stuck")

    broken.update = explode
    with caplog.at_level(logging.ERROR, logger="tileworld.deer"):
        manager.tick(7)

    assert all(deer.last_tick == 7 for deer in manager.deer[1:])
    failures = [record for record in caplog.records if record.getMessage() == "deer_update_failed"]
    assert failures and failures[0].deer_id == broken.id


def test_missing_player_uses_the_default_position(
    stub_world: StubWorld, caplog: pytest.LogCaptureFixture
) -> None:
    manager = DeerManager(stub_world, DeerSettings(max_deer_count=1), seed=5, player_position=lambda: None)
    manager.spawn_deer()

    with caplog.at_level(logging.WARNING, logger="tileworld.deer"):
        manager.tick(1)

    assert any(record.getMessage() == "player_position_missing" for record in caplog.records)


def test_debug_info_only_in_debug_mode(stub_world: StubWorld) -> None:
    manager = DeerManager(stub_world, DeerSettings(max_deer_count=2), seed=6)
    manager.spawn_deer()

    assert manager.debug_info() is None
    assert manager.toggle_debug() is True
    info = manager.debug_info()
    assert info is not None and info["deer_count"] == 2
    assert len(info["deer"]) == 2


def test_scare_and_calm_all(stub_world: StubWorld) -> None:
    manager = DeerManager(stub_world, DeerSettings(max_deer_count=3), seed=8)
    manager.spawn_deer()

    manager.scare_all(Position(0, 0))
    assert manager.deer_states()["fleeing"] == 3
    stats = manager.behavior_stats(Position(0, 0))
    assert stats["total_deer"] == 3
    assert len(stats["fleeing"]) == 3

    manager.calm_all()
    assert manager.deer_states() == {"wandering": 3, "alert": 0, "fleeing": 0}


def test_fleeing_deer_prefers_cells_away_from_the_herd(stub_world: StubWorld) -> None:
    alone = _deer(stub_world)
    alone.update(Position(1, 0), [alone], 1)
    assert alone.position == Position(-1, 1)

    deer = _deer(stub_world)
    peer = _deer(stub_world, -2, 1, deer_id=1)

    deer.update(Position(1, 0), [deer, peer], 1)

    assert deer.state is DeerState.FLEEING
    assert deer.position == Position(-1, -1)
    assert deer.target == Position(-1, -1)
    assert deer.debug_info()["target"] == [-1, -1]


def test_fleeing_deer_accepts_a_crowded_cell_when_nothing_else_is_open(stub_world: StubWorld) -> None:
    for x, y in [(0, 1), (0, -1), (-1, -1)]:
        stub_world.set_terrain(x, y, TerrainKind.RIVER)
    deer = _deer(stub_world)
    peer = _deer(stub_world, -2, 1, deer_id=1)

    deer.update(Position(1, 0), [deer, peer], 1)

    assert deer.position == Position(-1, 1)


def test_fleeing_deer_never_steps_towards_the_threat(stub_world: StubWorld) -> None:
    for x, y in [(-1, -1), (-1, 0), (-1, 1), (0, 1), (0, -1)]:
        stub_world.set_terrain(x, y, TerrainKind.RIVER)
    deer = _deer(stub_world)

    deer.scare(Position(2, 0))

    assert deer.state is DeerState.FLEEING
    assert deer.position == Position(0, 0)
    assert deer.target is None


def test_calm_clears_the_flee_target(stub_world: StubWorld) -> None:
    deer = _deer(stub_world)
    deer.scare(Position(1, 0))
    assert deer.target == deer.position

    deer.calm()

    assert deer.target is None
    assert deer.debug_info()["target"] is None


def test_failing_player_source_falls_back_to_the_default_position(
    stub_world: StubWorld, caplog: pytest.LogCaptureFixture
) -> None:
    def lost():
        raise RuntimeError("player tracker offline")

    manager = DeerManager(stub_world, DeerSettings(max_deer_count=2), seed=5, player_position=lost)
    manager.spawn_deer()

    with caplog.at_level(logging.WARNING, logger="tileworld.deer"):
        manager.tick(3)

    assert all(deer.last_tick == 3 for deer in manager.deer)
    messages = [record.getMessage() for record in caplog.records]
    assert "player_position_failed" in messages
    assert "player_position_missing" in messages
