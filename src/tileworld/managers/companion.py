from __future__ import annotations

import logging
import random
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from tileworld.config import CompanionSettings
from tileworld.entities.companion import Companion
from tileworld.managers.deer import PlayerSource, resolve_player
from tileworld.models import FeatureType, Position, RenderedCell

if TYPE_CHECKING:
    from tileworld.world import TerrainView

COMPANION_SYMBOL = "♥"
COMPANION_STYLE = "companion-dog"
COMPANION_SEED_OFFSET = 7777


class CompanionManager:
    """Spawns the single companion and drives it from the companion ticker."""

    def __init__(
        self,
        world: TerrainView,
        settings: CompanionSettings,
        *,
        seed: int,
        player_position: PlayerSource | None = None,
        default_player_position: Position = Position(15, 15),
        logger: logging.Logger | None = None,
    ) -> None:
        self._world = world
        self._settings = settings
        self._rng = random.Random(seed + COMPANION_SEED_OFFSET)
        self._player_position = player_position
        self._default_player = default_player_position
        self._logger = logger or logging.getLogger("tileworld.companion")
        self.companion: Companion | None = None
        self.last_tick = 0

    def spawn_companion(self, x: int | None = None, y: int | None = None) -> Companion | None:
        x = self._settings.spawn_x if x is None else x
        y = self._settings.spawn_y if y is None else y
        spot = self.find_spawn_position(x, y)
        if spot is None:
            self._logger.warning("companion_spawn_failed", extra={"x": x, "y": y})
            return None

        player = resolve_player(self._player_position, self._default_player, self._logger, self.last_tick)
        self.companion = Companion(0, spot.x, spot.y, self._world, self._settings, self._rng, player)
        self._logger.info("companion_spawned", extra={"x": spot.x, "y": spot.y})
        return self.companion

    def find_spawn_position(self, x: int, y: int) -> Position | None:
        """Nearest passable cell within ``spawn_search_radius`` rings around (x, y)."""
        for radius in range(self._settings.spawn_search_radius + 1):
            for dx in range(-radius, radius + 1):
                for dy in range(-radius, radius + 1):
                    if max(abs(dx), abs(dy)) != radius:
                        continue
                    if self._world.is_passable(x + dx, y + dy):
                        return Position(x + dx, y + dy)
        return None

    def relocate_if_invalid(self) -> bool:
        """Move the companion to a nearby open cell when regeneration put it somewhere blocked."""
        companion = self.companion
        if companion is None or self._world.is_passable(companion.x, companion.y):
            return False
        spot = self.find_spawn_position(companion.x, companion.y)
        if spot is None:
            spot = self.find_spawn_position(self._settings.spawn_x, self._settings.spawn_y)
        if spot is None:
            self._logger.warning("companion_relocation_failed", extra={"x": companion.x, "y": companion.y})
            return False
        companion.x, companion.y = spot
        self._logger.info("companion_relocated", extra={"x": spot.x, "y": spot.y})
        return True

    def tick(self, tick: int) -> None:
        self.last_tick = tick
        if self.companion is None:
            return
        player = resolve_player(self._player_position, self._default_player, self._logger, tick)
        try:
            self.companion.update(player, tick)
        except Exception:  # noqa: BLE001 - keep the ticker alive for the next update.
            self._logger.exception("companion_update_failed", extra={"tick": tick})

    def call_companion(self) -> bool:
        if self.companion is None:
            return False
        self.companion.come_here()
        self._logger.info("companion_called")
        return True

    def companion_at(self, x: int, y: int) -> Companion | None:
        companion = self.companion
        if companion is not None and companion.x == x and companion.y == y:
            return companion
        return None

    def render(self, x: int, y: int, base: RenderedCell) -> RenderedCell:
        companion = self.companion_at(x, y)
        if companion is None:
            return base
        if base.feature is not None and base.feature.type is FeatureType.TREE_CANOPY:
            return base
        return replace(
            base,
            symbol=COMPANION_SYMBOL,
            style_tag=f"{COMPANION_STYLE} companion-{companion.state.value}",
            display_name=f"Companion ({companion.state.value})",
            companion={"id": companion.id, "state": companion.state.value},
        )

    def stats(self) -> dict[str, Any]:
        if self.companion is None:
            return {"has_companion": False}
        return {
            "has_companion": True,
            "state": self.companion.state.value,
            "position": {"x": self.companion.x, "y": self.companion.y},
            "last_tick": self.last_tick,
        }

    def debug_info(self) -> dict[str, Any] | None:
        return self.companion.debug_info() if self.companion else None
