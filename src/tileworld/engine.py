"""Engine facade wiring the world, the player, both agent managers and the scheduler."""

from __future__ import annotations

import logging
from collections import deque
from typing import Any, Mapping

from tileworld.config import TerrainConfig
from tileworld.entities.base import MovableEntity
from tileworld.errors import TileWorldError
from tileworld.managers.companion import CompanionManager
from tileworld.managers.deer import DeerManager
from tileworld.models import BlockedMovement, Position, RenderedCell
from tileworld.scheduler import Clock, TickScheduler, VirtualClock
from tileworld.telemetry.logging import LoggingTelemetry, Telemetry
from tileworld.world import WorldSystem

DEER_TICKER = "deer"
COMPANION_TICKER = "companion"
PLAYER_SEARCH_RADIUS = 10


class EngineNotInitialized(TileWorldError):
    """Raised when a command runs before :meth:`TileWorldEngine.initialize`."""


class TileWorldEngine:
    """Command surface over one world; all calls run serially with the tickers."""

    def __init__(
        self,
        config: TerrainConfig,
        *,
        clock: Clock | None = None,
        telemetry: Telemetry | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._logger = logger or logging.getLogger("tileworld.engine")
        self._telemetry = telemetry or LoggingTelemetry()
        self.world = WorldSystem(config)
        self.scheduler = TickScheduler(clock or VirtualClock())
        self.messages: deque[str] = deque(maxlen=config.performance.message_history)
        self.player: MovableEntity | None = None
        self.deer: DeerManager | None = None
        self.companion: CompanionManager | None = None

    @property
    def config(self) -> TerrainConfig:
        return self.world.config

    @property
    def initialized(self) -> bool:
        return self.player is not None

    def initialize(self) -> None:
        self.world.initialize()
        config = self.config
        start = Position(*config.world.player_start)
        self.player = MovableEntity(self.world, start.x, start.y, on_blocked=self._on_blocked)
        self._place_player()

        default_player = Position(*config.world.default_player_position)
        self.deer = DeerManager(
            self.world,
            config.deer,
            seed=self.world.seed,
            player_position=self.player_position,
            default_player_position=default_player,
        )
        self.deer.spawn_deer()
        self.companion = CompanionManager(
            self.world,
            config.companion,
            seed=self.world.seed,
            player_position=self.player_position,
            default_player_position=default_player,
        )
        self.companion.spawn_companion()

        for name in (DEER_TICKER, COMPANION_TICKER):
            self.scheduler.cancel(name)
        self.scheduler.register(DEER_TICKER, config.performance.deer_update_interval_ms, self.deer.tick)
        self.scheduler.register(COMPANION_TICKER, config.performance.companion_update_interval_ms, self.companion.tick)
        self.world.discover_around(self.player.x, self.player.y, config.performance.exploration_radius)
        self._emit("engine_initialized", {"seed": self.world.seed, "player": list(self.player.position)})

    def _require_player(self) -> MovableEntity:
        if self.player is None:
            raise EngineNotInitialized("Call initialize() first")
        return self.player

    def player_position(self) -> Position | None:
        return self.player.position if self.player is not None else None

    def _place_player(self) -> None:
        """Keep the player on the start tile, or the nearest enterable tile around it."""
        player = self._require_player()
        if player.can_move_to(player.x, player.y):
            return
        origin = player.position
        for radius in range(1, PLAYER_SEARCH_RADIUS + 1):
            for dx in range(-radius, radius + 1):
                for dy in range(-radius, radius + 1):
                    if max(abs(dx), abs(dy)) == radius and player.can_move_to(origin.x + dx, origin.y + dy):
                        player.x, player.y = origin.x + dx, origin.y + dy
                        self._logger.info("player_relocated", extra={"x": player.x, "y": player.y})
                        return
        self._logger.warning("player_start_blocked", extra={"x": origin.x, "y": origin.y})

    def _on_blocked(self, blocked: BlockedMovement) -> None:
        self.messages.append(blocked.reason)

    def _emit(self, event_name: str, payload: dict[str, Any]) -> None:
        self._telemetry.emit(event_name, payload)

    def move_player(self, dx: int, dy: int) -> bool:
        player = self._require_player()
        moved = player.move(dx, dy)
        if moved:
            self.world.discover_around(player.x, player.y, self.config.performance.exploration_radius)
        self._emit("player_moved" if moved else "player_blocked", {"x": player.x, "y": player.y, "dx": dx, "dy": dy})
        return moved

    def call_companion(self) -> bool:
        called = self.companion is not None and self.companion.call_companion()
        if called:
            self.messages.append("Companion is coming")
        return called

    def toggle_deer_debug(self) -> bool:
        if self.deer is None:
            raise EngineNotInitialized("Call initialize() first")
        return self.deer.toggle_debug()

    def regenerate_world(self) -> None:
        self.world.regenerate_world()
        self._after_regeneration()
        self._emit("world_regenerated", {"seed": self.world.seed})

    def regenerate_module(self, name: str) -> list[str]:
        rebuilt = self.world.regenerate_module(name)
        self._after_regeneration()
        self._emit("module_regenerated", {"requested": name, "rebuilt": rebuilt})
        return rebuilt

    def _after_regeneration(self) -> None:
        if self.player is not None:
            self._place_player()
        if self.deer is not None:
            self.deer.respawn()
        if self.companion is not None:
            self.companion.relocate_if_invalid()

    def apply_geological_preset(self, name: str) -> None:
        self.world.apply_geological_preset(name)
        self.messages.append(f"Geological preset '{name}' applied; regenerate to see it")

    def quick_config_elevation(self, method: str) -> None:
        self.world.quick_config_elevation(method)
        self.messages.append(f"Elevation preset '{method}' applied; regenerate to see it")

    def quick_config_water(self, level: str) -> None:
        self.world.quick_config_water(level)
        self.messages.append(f"Water preset '{level}' applied; regenerate to see it")

    def update_configuration(self, section: str, values: Mapping[str, Any]) -> None:
        self.world.update_configuration(section, values)

    def render_cell(self, x: int, y: int) -> RenderedCell:
        cell = self.world.get_terrain_at(x, y)
        if self.companion is not None:
            cell = self.companion.render(x, y, cell)
        if self.deer is not None:
            cell = self.deer.render(x, y, cell)
        return cell

    def render_view(self, center: Position, width: int, height: int) -> list[list[RenderedCell]]:
        """Rows of rendered cells, top row first, centred on ``center``."""
        left = center.x - width // 2
        top = center.y - height // 2
        return [[self.render_cell(left + column, top + row) for column in range(width)] for row in range(height)]

    def advance(self, ms: int) -> int:
        """Advance virtual time, firing agent ticks in order; returns the ticks fired."""
        return self.scheduler.run_for(ms)

    async def start(self) -> None:
        """Run the tickers on the real-time clock; raises ConfigurationInvalid on a VirtualClock."""
        await self.scheduler.start(self.config.performance.scheduler_poll_interval_ms)

    async def stop(self) -> None:
        await self.scheduler.stop()

    def export_world_state(self) -> dict[str, Any]:
        return self.world.export_world_state()

    def status(self) -> dict[str, Any]:
        player = self.player_position()
        return {
            "seed": self.world.seed,
            "bounds": self.world.bounds.as_dict(),
            "player": list(player) if player else None,
            "deer": self.deer.deer_states() if self.deer else None,
            "companion": self.companion.stats() if self.companion else None,
            "tickers": {ticker.name: ticker.ticks for ticker in self.scheduler.tickers()},
            "messages": list(self.messages),
            "world": self.world.statistics(),
        }
