from __future__ import annotations

import math
import random
from enum import Enum
from typing import TYPE_CHECKING, Any

from tileworld.config import CompanionSettings
from tileworld.entities.base import greedy_step
from tileworld.models import Position

if TYPE_CHECKING:
    from tileworld.world import TerrainView

IDLE_ACTIONS = ("sitting", "sniffing", "looking_around", "lying_down")


class CompanionState(str, Enum):
    IDLE = "idle"
    FOLLOWING = "following"
    COMING = "coming"


class Companion:
    """Dog that trails the player while the player keeps moving and comes when called."""

    def __init__(
        self,
        id: int,
        x: int,
        y: int,
        world: TerrainView,
        settings: CompanionSettings,
        rng: random.Random,
        player: Position,
    ) -> None:
        self.id = id
        self.x = x
        self.y = y
        self.world = world
        self.settings = settings
        self._rng = rng
        self.state = CompanionState.IDLE
        self.state_ticks = 0
        self.idle_action: str | None = None
        self.last_player = player
        # The position observed at spawn is not movement.
        self.player_still_ticks = settings.idle_timeout_ticks
        self.last_tick = 0

    @property
    def position(self) -> Position:
        return Position(self.x, self.y)

    def distance_to(self, x: float, y: float) -> float:
        return math.hypot(self.x - x, self.y - y)

    def update(self, player: Position, tick: int) -> None:
        self.last_tick = tick
        self.state_ticks += 1
        if player != self.last_player:
            self.player_still_ticks = 0
            self.last_player = player
        else:
            self.player_still_ticks += 1

        player_active = self.player_still_ticks < self.settings.idle_timeout_ticks
        if self.state is CompanionState.IDLE:
            if not player_active:
                self._idle_behaviour()
                return
            self._set_state(CompanionState.FOLLOWING)

        if self.state is CompanionState.FOLLOWING:
            if not player_active:
                self._set_state(CompanionState.IDLE)
                return
            if self.distance_to(player.x, player.y) > self.settings.follow_distance:
                self._step_toward(player)
        else:
            if self.distance_to(player.x, player.y) > self.settings.follow_distance:
                self._step_toward(player)
            if self.distance_to(player.x, player.y) <= self.settings.follow_distance:
                self._set_state(CompanionState.FOLLOWING)

    def come_here(self) -> None:
        self._set_state(CompanionState.COMING)

    def _step_toward(self, target: Position) -> None:
        step = greedy_step(self.position, target, self.world.is_passable)
        if step is not None:
            self.x, self.y = step

    def _idle_behaviour(self) -> None:
        if self.idle_action is None or self.state_ticks % self.settings.idle_action_interval == 0:
            self.idle_action = self._rng.choice(IDLE_ACTIONS)

    def _set_state(self, state: CompanionState) -> None:
        if state is self.state:
            return
        self.state = state
        self.state_ticks = 0
        if state is not CompanionState.IDLE:
            self.idle_action = None

    def debug_info(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "state": self.state.value,
            "position": {"x": self.x, "y": self.y},
            "distance_to_player": round(self.distance_to(*self.last_player), 1),
            "idle_action": self.idle_action,
            "player_still_ticks": self.player_still_ticks,
            "last_tick": self.last_tick,
        }
