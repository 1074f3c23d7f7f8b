from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, NamedTuple


class Position(NamedTuple):
    x: int
    y: int


class RockType(str, Enum):
    HARD = "hard"
    SOFT = "soft"
    CLAY = "clay"


ROCK_TYPES: tuple[RockType, ...] = (RockType.HARD, RockType.SOFT, RockType.CLAY)


class TerrainKind(str, Enum):
    PLAINS = "plains"
    FOREST = "forest"
    FOOTHILLS = "foothills"
    MOUNTAIN = "mountain"
    ROAD = "road"
    TRAIL = "trail"
    RIVER = "river"
    LAKE = "lake"
    BUILDING = "building"
    VILLAGE = "village"
    UNKNOWN = "unknown"


WATER_KINDS = frozenset({TerrainKind.RIVER, TerrainKind.LAKE})


class FeatureType(str, Enum):
    TREE_TRUNK = "tree_trunk"
    TREE_CANOPY = "tree_canopy"


@dataclass(frozen=True, slots=True)
class WorldBounds:
    """Closed rectangle of valid world positions."""

    min_x: int
    max_x: int
    min_y: int
    max_y: int

    @property
    def width(self) -> int:
        return self.max_x - self.min_x + 1

    @property
    def height(self) -> int:
        return self.max_y - self.min_y + 1

    def contains(self, x: float, y: float) -> bool:
        return self.min_x <= x <= self.max_x and self.min_y <= y <= self.max_y

    def is_edge(self, x: int, y: int) -> bool:
        return x in (self.min_x, self.max_x) or y in (self.min_y, self.max_y)

    def shrink(self, margin: int) -> WorldBounds:
        return WorldBounds(
            min_x=self.min_x + margin,
            max_x=self.max_x - margin,
            min_y=self.min_y + margin,
            max_y=self.max_y - margin,
        )

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(slots=True)
class Feature:
    type: FeatureType
    tree_id: int
    trunk_x: int
    trunk_y: int


@dataclass(slots=True)
class WorldCell:
    terrain: TerrainKind
    elevation: float
    walkable: bool
    discovered: bool = False


@dataclass(slots=True)
class RenderedCell:
    """Record consumed by the presentation layer for one position."""

    symbol: str
    style_tag: str
    display_name: str
    terrain: TerrainKind
    discovered: bool
    elevation: float
    feature: Feature | None = None
    deer: dict[str, Any] | None = None
    companion: dict[str, Any] | None = None


@dataclass(slots=True)
class BlockedMovement:
    x: int
    y: int
    reason: str
    terrain: TerrainKind | None = None


@dataclass(slots=True)
class SpawnReport:
    requested: int
    placed: int
    attempts: int
    positions: list[Position] = field(default_factory=list)

    @property
    def shortfall(self) -> int:
        return max(0, self.requested - self.placed)
