"""Movable entities constrained by terrain movement rules."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from tileworld.models import BlockedMovement, Position, RenderedCell, TerrainKind

if TYPE_CHECKING:
    from tileworld.world import TerrainView

OUT_OF_BOUNDS_REASON = "Cannot move outside world boundaries"


@dataclass(frozen=True, slots=True)
class MovementRules:
    """Terrain kinds an entity may enter.

    ``cannot_walk_on`` wins over ``can_walk_on``. ``special_access`` maps a kind
    listed in neither set to the tag an entity must hold before it may enter.
    """

    can_walk_on: frozenset[TerrainKind] = field(default_factory=frozenset)
    cannot_walk_on: frozenset[TerrainKind] = field(default_factory=frozenset)
    special_access: dict[TerrainKind, str] = field(default_factory=dict)


DEFAULT_MOVEMENT_RULES = MovementRules(
    can_walk_on=frozenset(
        {TerrainKind.PLAINS, TerrainKind.FOREST, TerrainKind.FOOTHILLS, TerrainKind.ROAD, TerrainKind.TRAIL}
    ),
    cannot_walk_on=frozenset(
        {TerrainKind.RIVER, TerrainKind.LAKE, TerrainKind.MOUNTAIN, TerrainKind.BUILDING, TerrainKind.VILLAGE}
    ),
    special_access={TerrainKind.BUILDING: "door"},
)


NEIGHBOUR_OFFSETS = ((1, 0), (-1, 0), (0, 1), (0, -1), (1, 1), (1, -1), (-1, 1), (-1, -1))


def _sign(value: int) -> int:
    return (value > 0) - (value < 0)


def greedy_step(
    origin: Position,
    target: Position,
    passable: Callable[[int, int], bool],
) -> Position | None:
    """One tile toward ``target``: diagonal, then horizontal, then vertical, then any closer neighbour."""
    dx, dy = target.x - origin.x, target.y - origin.y
    if dx == 0 and dy == 0:
        return None

    sx, sy = _sign(dx), _sign(dy)
    preferred = []
    if sx and sy:
        preferred.append((sx, sy))
    if sx:
        preferred.append((sx, 0))
    if sy:
        preferred.append((0, sy))
    for ox, oy in preferred:
        if passable(origin.x + ox, origin.y + oy):
            return Position(origin.x + ox, origin.y + oy)

    current = dx * dx + dy * dy
    best: Position | None = None
    best_distance = current
    for ox, oy in NEIGHBOUR_OFFSETS:
        x, y = origin.x + ox, origin.y + oy
        remaining = (target.x - x) ** 2 + (target.y - y) ** 2
        if remaining < best_distance and passable(x, y):
            best, best_distance = Position(x, y), remaining
    return best


class MovableEntity:
    def __init__(
        self,
        world: TerrainView,
        x: int,
        y: int,
        *,
        rules: MovementRules = DEFAULT_MOVEMENT_RULES,
        on_blocked: Callable[[BlockedMovement], None] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.world = world
        self.x = x
        self.y = y
        self.rules = rules
        self.on_blocked = on_blocked
        self._access: set[str] = set()
        self._logger = logger or logging.getLogger("tileworld.entity")

    @property
    def position(self) -> Position:
        return Position(self.x, self.y)

    def grant_access(self, tag: str) -> None:
        self._access.add(tag)

    def revoke_access(self, tag: str) -> None:
        self._access.discard(tag)

    def can_move_to(self, x: int, y: int) -> bool:
        if not self.world.is_valid_position(x, y):
            return False
        kind = self.world.get_terrain_at(x, y).terrain
        if kind in self.rules.cannot_walk_on:
            return False
        if kind in self.rules.can_walk_on:
            return self.world.can_move_to(x, y)
        tag = self.rules.special_access.get(kind)
        return tag is not None and tag in self._access

    def blocked_reason(self, x: int, y: int) -> BlockedMovement:
        if not self.world.is_valid_position(x, y):
            return BlockedMovement(x=x, y=y, reason=OUT_OF_BOUNDS_REASON)
        kind = self.world.get_terrain_at(x, y).terrain
        name = self.world.terrain_type(kind).display_name
        return BlockedMovement(x=x, y=y, reason=f"Cannot walk on {name}", terrain=kind)

    def move(self, dx: int, dy: int) -> bool:
        return self.set_position(self.x + dx, self.y + dy)

    def set_position(self, x: int, y: int) -> bool:
        if not self.can_move_to(x, y):
            blocked = self.blocked_reason(x, y)
            self._logger.info(
                "movement_blocked",
                extra={"x": x, "y": y, "reason": blocked.reason},
            )
            if self.on_blocked is not None:
                self.on_blocked(blocked)
            return False

        self.x = x
        self.y = y
        return True

    def current_terrain(self) -> RenderedCell:
        return self.world.get_terrain_at(self.x, self.y)
