"""Deer agent: a wandering, alert and fleeing state machine driven by line of sight."""

from __future__ import annotations

import math
import random
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterator, Sequence

from tileworld.config import DeerSettings
from tileworld.entities.base import NEIGHBOUR_OFFSETS
from tileworld.models import Position

if TYPE_CHECKING:
    from tileworld.world import TerrainView


class DeerState(str, Enum):
    WANDERING = "wandering"
    ALERT = "alert"
    FLEEING = "fleeing"


def bresenham(start: Position, end: Position) -> Iterator[Position]:
    """Cells strictly between ``start`` and ``end`` on the Bresenham line."""
    x0, y0 = start
    x1, y1 = end
    dx, dy = abs(x1 - x0), -abs(y1 - y0)
    sx = 1 if x0 < x1 else -1
    sy = 1 if y0 < y1 else -1
    error = dx + dy
    x, y = x0, y0
    while (x, y) != (x1, y1):
        doubled = 2 * error
        if doubled >= dy:
            error += dy
            x += sx
        if doubled <= dx:
            error += dx
            y += sy
        if (x, y) != (x1, y1):
            yield Position(x, y)


class Deer:
    """One deer. Callers pass the same player snapshot to every deer in a tick."""

    def __init__(
        self,
        id: int,
        x: int,
        y: int,
        world: TerrainView,
        settings: DeerSettings,
        rng: random.Random,
    ) -> None:
        self.id = id
        self.x = x
        self.y = y
        self.world = world
        self.settings = settings
        self._rng = rng
        self.state = DeerState.WANDERING
        self.state_ticks = 0
        self.facing: tuple[float, float] = (1.0, 0.0)
        self.last_player_seen: Position | None = None
        self.target: Position | None = None
        self.last_player_distance = math.inf
        self._closer_ticks = 0
        self._unseen_ticks = 0
        self.last_tick = 0

    @property
    def position(self) -> Position:
        return Position(self.x, self.y)

    def distance_to(self, x: float, y: float) -> float:
        return math.hypot(self.x - x, self.y - y)

    def update(self, player: Position, peers: Sequence[Deer], tick: int) -> None:
        self.last_tick = tick
        self.state_ticks += 1
        sees = self.can_see_position(player.x, player.y)
        distance = self.distance_to(player.x, player.y)
        self.last_player_distance = distance
        if sees:
            self.last_player_seen = player

        if self.state is DeerState.WANDERING:
            self._update_wandering(player, peers, sees, distance)
        elif self.state is DeerState.ALERT:
            self._update_alert(player, peers, sees, distance)
        else:
            self._update_fleeing(peers, sees)

    def _update_wandering(self, player: Position, peers: Sequence[Deer], sees: bool, distance: float) -> None:
        if sees and distance <= self.settings.panic_distance:
            self._start_fleeing(player, peers)
            return
        if sees:
            self._set_state(DeerState.ALERT)
            self._face(player.x, player.y)
            return
        radius = self.settings.herd_alert_radius
        if any(
            peer.id != self.id and peer.state is DeerState.FLEEING and self.distance_to(peer.x, peer.y) <= radius
            for peer in peers
        ):
            self._set_state(DeerState.ALERT)
            return

        if self._rng.random() < self.settings.wander_move_chance:
            occupied = {peer.position for peer in peers if peer.id != self.id}
            options = [
                Position(self.x + dx, self.y + dy)
                for dx, dy in NEIGHBOUR_OFFSETS
                if Position(self.x + dx, self.y + dy) not in occupied and self.world.is_passable(self.x + dx, self.y + dy)
            ]
            if options:
                self._step_to(self._rng.choice(options))

    def _update_alert(self, player: Position, peers: Sequence[Deer], sees: bool, distance: float) -> None:
        if not sees:
            self._closer_ticks = 0
            self._unseen_ticks += 1
            if self._unseen_ticks >= self.settings.alert_calm_ticks:
                self._set_state(DeerState.WANDERING)
            return

        self._unseen_ticks = 0
        self._face(player.x, player.y)
        if distance <= self.settings.panic_distance:
            self._start_fleeing(player, peers)
            return
        if distance < self.settings.alert_range:
            self._closer_ticks += 1
            if self._closer_ticks >= self.settings.alert_confirm_ticks:
                self._start_fleeing(player, peers)
        else:
            self._closer_ticks = 0

    def _update_fleeing(self, peers: Sequence[Deer], sees: bool) -> None:
        if sees:
            self._unseen_ticks = 0
        else:
            self._unseen_ticks += 1
            if self._unseen_ticks >= self.settings.flee_calm_ticks:
                self._set_state(DeerState.WANDERING)
                return
        if self.last_player_seen is not None:
            self._flee_step(self.last_player_seen, peers)

    def _start_fleeing(self, player: Position, peers: Sequence[Deer]) -> None:
        self.last_player_seen = player
        self._set_state(DeerState.FLEEING)
        self._flee_step(player, peers)

    def _flee_step(self, threat: Position, peers: Sequence[Deer]) -> None:
        """Step to the passable neighbour farthest from ``threat``, keeping spacing when possible."""
        others = [peer for peer in peers if peer.id != self.id]
        current = self.distance_to(threat.x, threat.y)
        spaced: list[tuple[float, Position]] = []
        crowded: list[tuple[float, Position]] = []
        for dx, dy in NEIGHBOUR_OFFSETS:
            candidate = Position(self.x + dx, self.y + dy)
            if not self.world.is_passable(candidate.x, candidate.y):
                continue
            if any(peer.position == candidate for peer in others):
                continue
            away = math.hypot(candidate.x - threat.x, candidate.y - threat.y)
            if away <= current:
                continue
            near_peer = any(
                math.hypot(candidate.x - peer.x, candidate.y - peer.y) < self.settings.min_spacing for peer in others
            )
            (crowded if near_peer else spaced).append((away, candidate))

        options = spaced or crowded
        if options:
            # max() keeps the first of equal candidates, so ties follow NEIGHBOUR_OFFSETS order.
            self._step_to(max(options, key=lambda option: option[0])[1])
        else:
            self.target = None

    def _step_to(self, target: Position) -> None:
        self.target = target
        self._face(target.x, target.y)
        self.x, self.y = target

    def _face(self, x: float, y: float) -> None:
        dx, dy = x - self.x, y - self.y
        length = math.hypot(dx, dy)
        if length:
            self.facing = (dx / length, dy / length)

    def _set_state(self, state: DeerState) -> None:
        if state is self.state:
            return
        self.state = state
        self.state_ticks = 0
        self._closer_ticks = 0
        self._unseen_ticks = 0

    def scare(self, player: Position) -> None:
        self._start_fleeing(player, ())

    def calm(self) -> None:
        self._set_state(DeerState.WANDERING)
        self.last_player_seen = None
        self.target = None

    def in_vision_cone(self, x: int, y: int) -> bool:
        cone = self.settings.vision_cone_degrees
        if cone >= 360:
            return True
        dx, dy = x - self.x, y - self.y
        length = math.hypot(dx, dy)
        if not length:
            return True
        cosine = (dx * self.facing[0] + dy * self.facing[1]) / length
        return cosine >= math.cos(math.radians(cone / 2))

    def can_see_position(self, x: int, y: int) -> bool:
        if not self.world.is_valid_position(x, y):
            return False
        if self.distance_to(x, y) > self.settings.vision_range:
            return False
        if not self.in_vision_cone(x, y):
            return False
        return self.has_line_of_sight(x, y)

    def has_line_of_sight(self, x: int, y: int) -> bool:
        for cell in bresenham(self.position, Position(x, y)):
            if self.world.is_at_world_boundary(cell.x, cell.y) or self.world.blocks_vision(cell.x, cell.y):
                return False
        return True

    def vision_tiles(self) -> set[Position]:
        reach = self.settings.vision_range
        tiles: set[Position] = set()
        for dx in range(-reach, reach + 1):
            for dy in range(-reach, reach + 1):
                x, y = self.x + dx, self.y + dy
                if self.can_see_position(x, y):
                    tiles.add(Position(x, y))
        return tiles

    def debug_info(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "state": self.state.value,
            "position": {"x": self.x, "y": self.y},
            "facing": [round(self.facing[0], 3), round(self.facing[1], 3)],
            "state_ticks": self.state_ticks,
            "last_player_distance": round(self.last_player_distance, 2),
            "last_player_seen": list(self.last_player_seen) if self.last_player_seen else None,
            "target": list(self.target) if self.target else None,
            "last_tick": self.last_tick,
        }
