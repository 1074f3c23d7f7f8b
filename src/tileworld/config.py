"""Runtime configuration for the tile world.

Every section is a pydantic model so overlays and presets are validated the same
way as values coming from the environment (``TILEWORLD_WORLD__DEFAULT_SEED=7``).
"""

from __future__ import annotations

from typing import Any, Literal, Mapping

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from tileworld.errors import ConfigurationInvalid
from tileworld.models import ROCK_TYPES, FeatureType, RockType, TerrainKind, WorldBounds


class WorldSettings(BaseModel):
    min_x: int = -100
    max_x: int = 100
    min_y: int = -100
    max_y: int = 100
    default_seed: int = 12345
    player_start: tuple[int, int] = (0, 0)
    default_player_position: tuple[int, int] = Field(
        default=(15, 15),
        description="Used by agent ticks when no player position is available.",
    )

    @model_validator(mode="after")
    def _check_extent(self) -> WorldSettings:
        if self.min_x > self.max_x or self.min_y > self.max_y:
            raise ValueError("world bounds are inverted")
        return self

    @property
    def bounds(self) -> WorldBounds:
        return WorldBounds(min_x=self.min_x, max_x=self.max_x, min_y=self.min_y, max_y=self.max_y)


class TerrainTypeSpec(BaseModel):
    symbol: str
    display_name: str
    style_tag: str
    walkable: bool = True


class FeatureTypeSpec(BaseModel):
    symbol: str
    display_name: str
    style_tag: str
    walkable: bool = True
    blocks_vision: bool = False


def _default_terrain_types() -> dict[TerrainKind, TerrainTypeSpec]:
    rows = {
        TerrainKind.PLAINS: ("▓", "Plains", True),
        TerrainKind.FOREST: ("↟", "Forest", True),
        TerrainKind.FOOTHILLS: ("▒", "Foothills", True),
        TerrainKind.MOUNTAIN: ("▲", "Mountain", True),
        TerrainKind.ROAD: ("=", "Road", True),
        TerrainKind.TRAIL: ("·", "Trail", True),
        TerrainKind.RIVER: ("~", "River", False),
        TerrainKind.LAKE: ("▀", "Lake", False),
        TerrainKind.BUILDING: ("■", "Building", True),
        TerrainKind.VILLAGE: ("⌂", "Village", True),
        TerrainKind.UNKNOWN: ("░", "Unknown", False),
    }
    return {
        kind: TerrainTypeSpec(symbol=symbol, display_name=name, style_tag=f"terrain-{kind.value}", walkable=walkable)
        for kind, (symbol, name, walkable) in rows.items()
    }


def _default_feature_types() -> dict[FeatureType, FeatureTypeSpec]:
    return {
        FeatureType.TREE_TRUNK: FeatureTypeSpec(
            symbol="♠", display_name="Tree Trunk", style_tag="tree-trunk", walkable=False, blocks_vision=True
        ),
        FeatureType.TREE_CANOPY: FeatureTypeSpec(
            symbol="♣", display_name="Tree Canopy", style_tag="tree-canopy", walkable=True, blocks_vision=True
        ),
    }


class FormationTemplate(BaseModel):
    type: str
    count: int = Field(default=1, ge=0)
    min_radius: float = Field(gt=0)
    max_radius: float = Field(gt=0)
    rock_type: RockType
    elevation_effect: float = Field(ge=-1.0, le=1.0)

    @model_validator(mode="after")
    def _check_radii(self) -> FormationTemplate:
        if self.min_radius > self.max_radius:
            raise ValueError(f"formation '{self.type}' has min_radius greater than max_radius")
        return self


class RockProperties(BaseModel):
    erosion_resistance: float = Field(ge=0.0, le=1.0)
    soil_quality: float = Field(ge=0.0, le=1.0)
    water_retention: float = Field(ge=0.0, le=1.0)
    elevation_bonus: float = Field(ge=-1.0, le=1.0)


def _default_formations() -> list[FormationTemplate]:
    return [
        FormationTemplate(
            type="granite_intrusion", count=2, min_radius=40, max_radius=80, rock_type=RockType.HARD, elevation_effect=0.6
        ),
        FormationTemplate(
            type="limestone_beds", count=3, min_radius=30, max_radius=60, rock_type=RockType.SOFT, elevation_effect=-0.3
        ),
        FormationTemplate(
            type="clay_deposits", count=4, min_radius=20, max_radius=40, rock_type=RockType.CLAY, elevation_effect=-0.1
        ),
    ]


def _default_rock_properties() -> dict[RockType, RockProperties]:
    return {
        RockType.HARD: RockProperties(erosion_resistance=0.9, soil_quality=0.2, water_retention=0.1, elevation_bonus=0.4),
        RockType.SOFT: RockProperties(erosion_resistance=0.3, soil_quality=0.8, water_retention=0.4, elevation_bonus=-0.2),
        RockType.CLAY: RockProperties(erosion_resistance=0.5, soil_quality=0.6, water_retention=0.9, elevation_bonus=-0.1),
    }


class GeologySettings(BaseModel):
    formations: list[FormationTemplate] = Field(default_factory=_default_formations)
    rock_properties: dict[RockType, RockProperties] = Field(default_factory=_default_rock_properties)
    base_rock_type: RockType = RockType.SOFT
    weathering_effect: float = Field(default=0.3, ge=0.0, le=1.0)
    formation_margin: int = Field(default=30, ge=0)

    @model_validator(mode="after")
    def _check_rock_properties(self) -> GeologySettings:
        missing = [rock.value for rock in ROCK_TYPES if rock not in self.rock_properties]
        if missing:
            raise ValueError(f"rock_properties missing entries for: {', '.join(missing)}")
        return self


class ElevationSettings(BaseModel):
    method: Literal["geology", "hills"] = "geology"
    base_elevation: float = Field(default=0.2, ge=0.0, le=1.0)
    max_elevation: float = Field(default=1.0, gt=0.0, le=1.0)
    geological_strength: float = Field(default=0.7, ge=0.0)
    erosion_strength: float = Field(default=0.3, ge=0.0)
    noise_amount: float = Field(default=0.05, ge=0.0)
    noise_scale: float = Field(default=0.02, gt=0.0)
    noise_octaves: int = Field(default=3, ge=1)
    smoothing_passes: int = Field(default=2, ge=0)
    hill_count: int = Field(default=6, ge=0)
    min_hill_radius: float = Field(default=20, gt=0)
    max_hill_radius: float = Field(default=35, gt=0)
    min_hill_height: float = Field(default=0.25, ge=0.0, le=1.0)
    max_hill_height: float = Field(default=0.45, ge=0.0, le=1.0)
    hill_spacing: float = Field(default=45, ge=0.0)

    @model_validator(mode="after")
    def _check_ranges(self) -> ElevationSettings:
        if self.min_hill_radius > self.max_hill_radius:
            raise ValueError("min_hill_radius greater than max_hill_radius")
        if self.min_hill_height > self.max_hill_height:
            raise ValueError("min_hill_height greater than max_hill_height")
        return self


class HydrologySettings(BaseModel):
    spring_count: int = Field(default=8, ge=0)
    spring_margin: int = Field(default=20, ge=0)
    spring_spacing: float = Field(default=30, ge=0.0)
    spring_min_suitability: float = 0.3
    max_river_length: int = Field(default=100, ge=1)
    min_river_length: int = Field(default=10, ge=1)
    river_width: int = Field(default=1, ge=0)
    uphill_tolerance: float = Field(default=0.01, ge=0.0)
    hard_rock_avoidance: float = 0.4
    soft_rock_preference: float = 0.6
    clay_channeling: float = 0.4
    lake_count: int = Field(default=4, ge=0)
    min_lake_radius: float = Field(default=6, gt=0)
    max_lake_radius: float = Field(default=18, gt=0)
    lake_spacing: float = Field(default=35, ge=0.0)
    lake_sample_stride: int = Field(default=12, ge=1)
    lake_clay_preference: float = 0.6
    lake_hard_rock_avoidance: float = 0.4
    lake_max_elevation: float = Field(default=0.3, ge=0.0, le=1.0)
    lake_fill_depth: float = Field(default=0.1, ge=0.0)
    retention_threshold: float = Field(default=0.35, ge=0.0, le=1.0)
    basin_window: int = Field(default=3, ge=1)
    confluence_enabled: bool = True
    confluence_distance: float = Field(default=8, ge=0.0)

    @model_validator(mode="after")
    def _check_ranges(self) -> HydrologySettings:
        if self.min_lake_radius > self.max_lake_radius:
            raise ValueError("min_lake_radius greater than max_lake_radius")
        if self.min_river_length > self.max_river_length:
            raise ValueError("min_river_length greater than max_river_length")
        return self


class ClassifierSettings(BaseModel):
    forest_min_elevation: float = Field(default=0.15, ge=0.0, le=1.0)
    foothills_min_elevation: float = Field(default=0.35, ge=0.0, le=1.0)
    mountain_min_elevation: float = Field(default=0.55, ge=0.0, le=1.0)
    forest_min_soil: float = Field(default=0.5, ge=0.0, le=1.0)
    hysteresis_band: float = Field(default=0.02, ge=0.0)
    hysteresis_radius: int = Field(default=1, ge=0)

    @model_validator(mode="after")
    def _check_order(self) -> ClassifierSettings:
        if not self.forest_min_elevation <= self.foothills_min_elevation <= self.mountain_min_elevation:
            raise ValueError("classifier thresholds must be ordered forest <= foothills <= mountain")
        return self


class TreeSettings(BaseModel):
    forest_patch_count: int = Field(default=3, ge=0)
    trees_per_patch: int = Field(default=12, ge=0)
    patch_radius: int = Field(default=10, ge=1)
    scattered_tree_count: int = Field(default=15, ge=0)
    min_tree_spacing: float = Field(default=4, ge=0.0)
    boundary_margin: int = Field(default=2, ge=1)


class DeerSettings(BaseModel):
    max_deer_count: int = Field(default=20, ge=0)
    spawn_attempts: int = Field(default=200, ge=0)
    spawn_margin: int = Field(default=10, ge=0)
    spawn_spacing: float = Field(default=5.0, ge=0.0)
    vision_range: int = Field(default=8, ge=1)
    alert_range: float = Field(default=7.0, ge=0.0)
    panic_distance: float = Field(default=1.5, ge=0.0)
    alert_confirm_ticks: int = Field(default=3, ge=1)
    alert_calm_ticks: int = Field(default=3, ge=1)
    flee_calm_ticks: int = Field(default=8, ge=1)
    wander_move_chance: float = Field(default=0.3, ge=0.0, le=1.0)
    min_spacing: float = Field(default=2.0, ge=0.0)
    herd_alert_radius: float = Field(default=12.0, ge=0.0)
    vision_cone_degrees: float = Field(default=360.0, gt=0.0, le=360.0)


class CompanionSettings(BaseModel):
    follow_distance: float = Field(default=2.0, ge=0.0)
    idle_timeout_ticks: int = Field(default=20, ge=1)
    spawn_x: int = 17
    spawn_y: int = 17
    spawn_search_radius: int = Field(default=2, ge=0)
    idle_action_interval: int = Field(default=10, ge=1)


class PerformanceSettings(BaseModel):
    deer_update_interval_ms: int = Field(default=750, gt=0)
    companion_update_interval_ms: int = Field(default=200, gt=0)
    statistics_sample_step: int = Field(default=8, ge=1)
    exploration_radius: int = Field(default=3, ge=0)
    message_history: int = Field(default=50, ge=1)
    scheduler_poll_interval_ms: int = Field(default=50, gt=0)


def _default_presets() -> dict[str, dict[str, dict[str, Any]]]:
    return {
        "elevation": {
            "geology": {"method": "geology"},
            "flat": {
                "method": "hills",
                "hill_count": 2,
                "min_hill_radius": 15,
                "max_hill_radius": 25,
                "min_hill_height": 0.18,
                "max_hill_height": 0.28,
                "hill_spacing": 80,
            },
            "rolling": {
                "method": "hills",
                "hill_count": 6,
                "min_hill_radius": 20,
                "max_hill_radius": 35,
                "min_hill_height": 0.25,
                "max_hill_height": 0.45,
                "hill_spacing": 45,
            },
            "hilly": {
                "method": "hills",
                "hill_count": 10,
                "min_hill_radius": 18,
                "max_hill_radius": 32,
                "min_hill_height": 0.3,
                "max_hill_height": 0.55,
                "hill_spacing": 30,
            },
        },
        "water": {
            "dry": {"spring_count": 1, "lake_count": 2},
            "normal": {"spring_count": 3, "lake_count": 4},
            "wet": {"spring_count": 5, "lake_count": 6},
        },
        "geological": {
            "mountainous": {
                "formations": [
                    _formation("granite_range", 2, 60, 100, RockType.HARD, 0.9),
                    _formation("valley_systems", 3, 30, 50, RockType.SOFT, -0.4),
                ]
            },
            "rolling": {
                "formations": [
                    _formation("soft_hills", 4, 30, 50, RockType.SOFT, 0.3),
                    _formation("clay_valleys", 3, 25, 40, RockType.CLAY, -0.2),
                ]
            },
            "flat": {
                "formations": [
                    _formation("sedimentary_layers", 5, 40, 80, RockType.SOFT, 0.1),
                    _formation("clay_basins", 4, 30, 60, RockType.CLAY, -0.05),
                ]
            },
            "volcanic": {
                "formations": [
                    _formation("volcanic_peaks", 2, 20, 35, RockType.HARD, 1.0),
                    _formation("lava_plains", 3, 50, 80, RockType.HARD, 0.2),
                    _formation("ash_valleys", 2, 30, 50, RockType.SOFT, -0.1),
                ]
            },
            "granite_heavy": {
                "formations": [
                    _formation("granite_intrusion", 4, 35, 60, RockType.HARD, 0.9),
                    _formation("clay_pockets", 2, 15, 25, RockType.CLAY, -0.1),
                ]
            },
        },
    }


def _formation(kind: str, count: int, min_radius: float, max_radius: float, rock: RockType, effect: float) -> dict:
    return {
        "type": kind,
        "count": count,
        "min_radius": min_radius,
        "max_radius": max_radius,
        "rock_type": rock.value,
        "elevation_effect": effect,
    }


PRESET_SECTIONS = {"elevation": "elevation", "water": "hydrology", "geological": "geology"}


class TerrainConfig(BaseSettings):
    """Environment-driven world configuration; treated as read-only once built."""

    model_config = SettingsConfigDict(
        env_prefix="TILEWORLD_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    app_name: str = "tileworld"
    log_level: str = "INFO"
    world: WorldSettings = Field(default_factory=WorldSettings)
    terrain_types: dict[TerrainKind, TerrainTypeSpec] = Field(default_factory=_default_terrain_types)
    feature_types: dict[FeatureType, FeatureTypeSpec] = Field(default_factory=_default_feature_types)
    geology: GeologySettings = Field(default_factory=GeologySettings)
    elevation: ElevationSettings = Field(default_factory=ElevationSettings)
    hydrology: HydrologySettings = Field(default_factory=HydrologySettings)
    classifier: ClassifierSettings = Field(default_factory=ClassifierSettings)
    trees: TreeSettings = Field(default_factory=TreeSettings)
    deer: DeerSettings = Field(default_factory=DeerSettings)
    companion: CompanionSettings = Field(default_factory=CompanionSettings)
    performance: PerformanceSettings = Field(default_factory=PerformanceSettings)
    presets: dict[str, dict[str, dict[str, Any]]] = Field(default_factory=_default_presets)

    @field_validator("terrain_types")
    @classmethod
    def _require_every_terrain_kind(
        cls, value: dict[TerrainKind, TerrainTypeSpec]
    ) -> dict[TerrainKind, TerrainTypeSpec]:
        missing = [kind.value for kind in TerrainKind if kind not in value]
        if missing:
            raise ValueError(f"terrain_types missing entries for: {', '.join(missing)}")
        return value

    @field_validator("feature_types")
    @classmethod
    def _require_every_feature_type(
        cls, value: dict[FeatureType, FeatureTypeSpec]
    ) -> dict[FeatureType, FeatureTypeSpec]:
        missing = [kind.value for kind in FeatureType if kind not in value]
        if missing:
            raise ValueError(f"feature_types missing entries for: {', '.join(missing)}")
        return value

    def get_world_config(self) -> WorldSettings:
        return self.world

    def get_geology_config(self) -> GeologySettings:
        return self.geology

    def get_elevation_config(self) -> ElevationSettings:
        return self.elevation

    def get_hydrology_config(self) -> HydrologySettings:
        return self.hydrology

    def get_terrain_types(self) -> dict[TerrainKind, TerrainTypeSpec]:
        return self.terrain_types

    def get_performance_config(self) -> PerformanceSettings:
        return self.performance

    def get_elevation_preset(self, name: str) -> dict[str, Any]:
        return self._preset("elevation", name)

    def get_water_preset(self, level: str) -> dict[str, Any]:
        return self._preset("water", level)

    def get_geological_preset(self, name: str) -> dict[str, Any]:
        return self._preset("geological", name)

    def preset_names(self) -> dict[str, list[str]]:
        return {kind: sorted(values) for kind, values in self.presets.items()}

    def overlay(self, section: str, values: Mapping[str, Any]) -> TerrainConfig:
        """Return a new validated config with ``values`` shallow-merged over ``section``."""
        if section == "presets" or section not in type(self).model_fields:
            raise ConfigurationInvalid(f"Unknown configuration section: {section}")

        current = getattr(self, section)
        if isinstance(current, BaseModel):
            merged: Any = {**current.model_dump(), **dict(values)}
        elif isinstance(current, dict):
            merged = {**current, **dict(values)}
        else:
            merged = values

        payload = self.model_dump()
        payload[section] = merged
        try:
            return type(self).model_validate(payload)
        except ValidationError as exc:
            raise ConfigurationInvalid(f"Invalid values for section '{section}': {exc}") from exc

    def with_preset(self, kind: str, name: str) -> TerrainConfig:
        if kind not in PRESET_SECTIONS:
            raise ConfigurationInvalid(f"Unknown preset kind: {kind}")
        return self.overlay(PRESET_SECTIONS[kind], self._preset(kind, name))

    def validate_sections(self) -> list[str]:
        """Report cross-section problems that single-field validation cannot see."""
        problems: list[str] = []
        bounds = self.world.bounds
        if self.elevation.base_elevation > self.elevation.max_elevation:
            problems.append("elevation.base_elevation exceeds elevation.max_elevation")
        if self.classifier.mountain_min_elevation > self.elevation.max_elevation:
            problems.append("classifier.mountain_min_elevation is unreachable with elevation.max_elevation")
        inner = bounds.shrink(self.deer.spawn_margin)
        if self.deer.max_deer_count and (inner.min_x > inner.max_x or inner.min_y > inner.max_y):
            problems.append("deer.spawn_margin leaves no room inside the world bounds")
        if not bounds.contains(self.companion.spawn_x, self.companion.spawn_y):
            problems.append("companion spawn position lies outside the world bounds")
        if not bounds.contains(*self.world.player_start):
            problems.append("world.player_start lies outside the world bounds")
        if self.deer.alert_range > self.deer.vision_range:
            problems.append("deer.alert_range exceeds deer.vision_range")
        return problems

    def export(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    def _preset(self, kind: str, name: str) -> dict[str, Any]:
        try:
            return dict(self.presets[kind][name])
        except KeyError as exc:
            raise ConfigurationInvalid(f"Unknown {kind} preset: {name}") from exc


def load_config(**overrides: Any) -> TerrainConfig:
    """Build a config from the environment plus explicit section overrides."""
    try:
        return TerrainConfig(**overrides)
    except ValidationError as exc:
        raise ConfigurationInvalid(str(exc)) from exc
