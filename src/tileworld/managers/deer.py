"""Deer herd manager: spawning, the per-tick update loop and render overlays."""

from __future__ import annotations

import logging
import math
import random
from dataclasses import replace
from typing import TYPE_CHECKING, Any, Callable

from tileworld.config import DeerSettings
from tileworld.entities.deer import Deer, DeerState
from tileworld.models import FeatureType, Position, RenderedCell, SpawnReport

if TYPE_CHECKING:
    from tileworld.world import TerrainView

DEER_SYMBOL = "♦"
DEER_STYLE = "deer-entity"

PlayerSource = Callable[[], "Position | None"]


def resolve_player(
    source: PlayerSource | None,
    default: Position,
    logger: logging.Logger,
    tick: int,
) -> Position:
    """Snapshot the player once per tick, falling back to ``default`` with one warning."""
    player = None
    if source is not None:
        try:
            player = source()
        except Exception:  # noqa: BLE001 - agents keep ticking without a player snapshot.
            logger.exception("player_position_failed", extra={"tick": tick})
    if player is None:
        logger.warning("player_position_missing", extra={"tick": tick, "fallback": list(default)})
        return default
    return player


class DeerManager:
    def __init__(
        self,
        world: TerrainView,
        settings: DeerSettings,
        *,
        seed: int,
        player_position: PlayerSource | None = None,
        default_player_position: Position = Position(15, 15),
        logger: logging.Logger | None = None,
    ) -> None:
        self._world = world
        self._settings = settings
        self._seed = seed
        self._rng = random.Random(seed)
        self._player_position = player_position
        self._default_player = default_player_position
        self._logger = logger or logging.getLogger("tileworld.deer")
        self._deer: list[Deer] = []
        self.debug_mode = False
        self.last_report: SpawnReport | None = None
        self.last_tick = 0

    @property
    def deer(self) -> list[Deer]:
        return list(self._deer)

    def spawn_deer(self) -> SpawnReport:
        """Place up to ``max_deer_count`` deer on open, spaced tiles inside the spawn margin."""
        herd, report = self._place_herd()
        self._deer = herd
        self.last_report = report
        if report.shortfall:
            self._logger.info(
                "deer_spawn_shortfall",
                extra={"requested": report.requested, "placed": report.placed, "attempts": report.attempts},
            )
        else:
            self._logger.info("deer_spawned", extra={"placed": report.placed, "attempts": report.attempts})
        return report

    def _place_herd(self) -> tuple[list[Deer], SpawnReport]:
        settings = self._settings
        inner = self._world.bounds.shrink(settings.spawn_margin)
        report = SpawnReport(requested=settings.max_deer_count, placed=0, attempts=0)
        herd: list[Deer] = []
        if inner.min_x > inner.max_x or inner.min_y > inner.max_y:
            return herd, report

        while report.attempts < settings.spawn_attempts and len(herd) < settings.max_deer_count:
            report.attempts += 1
            x = self._rng.randint(inner.min_x, inner.max_x)
            y = self._rng.randint(inner.min_y, inner.max_y)
            if not self.is_good_spawn_location(x, y, herd):
                continue
            deer_rng = random.Random(self._rng.getrandbits(32))
            herd.append(Deer(len(herd), x, y, self._world, settings, deer_rng))
            report.positions.append(Position(x, y))

        report.placed = len(herd)
        return herd, report

    def is_good_spawn_location(self, x: int, y: int, placed: list[Deer]) -> bool:
        if not self._world.is_passable(x, y) or self._world.is_water_at(x, y):
            return False
        return all(math.hypot(deer.x - x, deer.y - y) >= self._settings.spawn_spacing for deer in placed)

    def respawn(self) -> SpawnReport:
        """Replace the herd in one assignment so readers never see a half-built list."""
        return self.spawn_deer()

    def tick(self, tick: int) -> None:
        self.last_tick = tick
        player = resolve_player(self._player_position, self._default_player, self._logger, tick)
        herd = list(self._deer)
        for deer in herd:
            try:
                deer.update(player, herd, tick)
            except Exception:  # noqa: BLE001 - one bad deer must not stop the herd.
                self._logger.exception("deer_update_failed", extra={"deer_id": deer.id, "tick": tick})

    def deer_at(self, x: int, y: int) -> Deer | None:
        for deer in self._deer:
            if deer.x == x and deer.y == y:
                return deer
        return None

    def render(self, x: int, y: int, base: RenderedCell) -> RenderedCell:
        deer = self.deer_at(x, y)
        if deer is None:
            return base
        if base.feature is not None and base.feature.type is FeatureType.TREE_CANOPY:
            return base
        return replace(
            base,
            symbol=DEER_SYMBOL,
            style_tag=f"{DEER_STYLE} deer-{deer.state.value}",
            display_name=f"Deer ({deer.state.value})",
            deer={"id": deer.id, "state": deer.state.value},
        )

    def toggle_debug(self) -> bool:
        self.debug_mode = not self.debug_mode
        self._logger.info("deer_debug_toggled", extra={"enabled": self.debug_mode})
        return self.debug_mode

    def visible_tiles(self) -> set[Position]:
        tiles: set[Position] = set()
        for deer in self._deer:
            tiles |= deer.vision_tiles()
        return tiles

    def debug_info(self) -> dict[str, Any] | None:
        if not self.debug_mode:
            return None
        return {
            "deer_count": len(self._deer),
            "last_tick": self.last_tick,
            "deer": [deer.debug_info() for deer in self._deer],
            "visible_tiles": sorted(list(tile) for tile in self.visible_tiles()),
        }

    def deer_states(self) -> dict[str, int]:
        states = {state.value: 0 for state in DeerState}
        for deer in self._deer:
            states[deer.state.value] += 1
        return states

    def deer_near(self, position: Position, radius: float = 15) -> list[Deer]:
        return [deer for deer in self._deer if deer.distance_to(position.x, position.y) <= radius]

    def scare_all(self, player: Position) -> None:
        for deer in self._deer:
            deer.scare(player)
        self._logger.info("deer_scared", extra={"count": len(self._deer)})

    def calm_all(self) -> None:
        for deer in self._deer:
            deer.calm()
        self._logger.info("deer_calmed", extra={"count": len(self._deer)})

    def behavior_stats(self, player: Position) -> dict[str, Any]:
        distances = {deer.id: deer.distance_to(player.x, player.y) for deer in self._deer}
        return {
            "total_deer": len(self._deer),
            "states": self.deer_states(),
            "average_distance_from_player": (
                round(sum(distances.values()) / len(distances), 1) if distances else None
            ),
            "fleeing": [
                {"id": deer.id, "distance": round(distances[deer.id], 1), "ticks": deer.state_ticks}
                for deer in self._deer
                if deer.state is DeerState.FLEEING
            ],
            "alert": [
                {"id": deer.id, "distance": round(distances[deer.id], 1), "ticks": deer.state_ticks}
                for deer in self._deer
                if deer.state is DeerState.ALERT
            ],
        }
