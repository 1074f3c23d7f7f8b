from __future__ import annotations

from conftest import make_config

from tileworld.models import ROCK_TYPES, WorldBounds
from tileworld.terrain.base import WorldContext
from tileworld.terrain.geology import GeologyModule, create_formations, determine_rock_type


def _generate(config):
    context = WorldContext(bounds=config.world.bounds, seed=config.world.default_seed, config=config)
    return GeologyModule().generate(context), context


def test_formations_follow_templates_and_are_deterministic() -> None:
    config = make_config(size=100, seed=42)
    bounds = config.world.bounds

    formations = create_formations(bounds, 42, config.geology)

    assert len(formations) == sum(template.count for template in config.geology.formations)
    assert formations == create_formations(bounds, 42, config.geology)
    assert [formation.id for formation in formations] == list(range(len(formations)))
    for formation in formations:
        template = next(t for t in config.geology.formations if t.type == formation.type)
        assert template.min_radius <= formation.radius <= template.max_radius
        assert 0.8 <= formation.strength <= 1.2
        assert -70 <= formation.center_x <= 70
        assert -70 <= formation.center_y <= 70


def test_formation_centres_collapse_in_small_worlds() -> None:
    config = make_config(size=10)

    formations = create_formations(WorldBounds(-10, 10, -10, 10), 3, config.geology)

    assert {(formation.center_x, formation.center_y) for formation in formations} == {(0, 0)}


def test_lattice_matches_determine_rock_type_at_sample_points() -> None:
    config = make_config(size=25, seed=42)
    geology, _ = _generate(config)

    for x in range(-25, 26, 2):
        for y in range(-25, 26, 2):
            expected = determine_rock_type(x, y, geology.formations, config.geology.base_rock_type, 42)
            assert geology.rock_type_at(x, y) == expected


def test_off_lattice_queries_snap_to_the_nearest_sample() -> None:
    geology, _ = _generate(make_config(size=25, seed=42))

    # (-24, -24) is one step from min_x; half-up rounding snaps it to (-23, -23).
    assert geology.rock_type_at(-24, -24) == geology.rock_type_at(-23, -23)
    assert geology.soil_quality_at(0.4, 0.4) == geology.soil_quality_at(1, 1)


def test_soil_quality_is_clamped_and_statistics_add_up() -> None:
    geology, _ = _generate(make_config(size=25, seed=9))

    assert ((geology.soil >= 0.0) & (geology.soil <= 1.0)).all()
    stats = geology.statistics()
    assert sum(stats["rock_distribution"].values()) == stats["samples"] == 26 * 26
    assert set(stats["rock_distribution"]) == {rock.value for rock in ROCK_TYPES}


def test_out_of_bounds_queries_use_base_rock() -> None:
    config = make_config(size=25)
    geology, _ = _generate(config)

    assert geology.rock_type_at(500, 500) == config.geology.base_rock_type


def test_module_data_reports_rock_and_soil_features() -> None:
    geology, context = _generate(make_config(size=25, seed=42))
    context.fields["geology"] = geology

    data = GeologyModule().get_data_at(0, 0, context)

    assert data.terrain is None
    assert data.features[0] == f"rock-{geology.rock_type_at(0, 0).value}"
    assert data.payload["soil_quality"] == geology.soil_quality_at(0, 0)
    assert GeologyModule().affects_position(0, 0, context)
    assert not GeologyModule().affects_position(100, 0, context)
