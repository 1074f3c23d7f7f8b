"""Tree features layered over classified terrain: a trunk with a 3x3 canopy."""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from typing import Callable, Iterable

from tileworld.config import TreeSettings
from tileworld.models import Feature, FeatureType, Position, TerrainKind, WorldBounds, WorldCell
from tileworld.noise import distance
from tileworld.terrain.grid import round_half_up

TREE_SEED_OFFSET = 4242
HOST_TERRAIN = frozenset({TerrainKind.PLAINS, TerrainKind.FOREST})
CANOPY_OFFSETS = tuple((dx, dy) for dx in (-1, 0, 1) for dy in (-1, 0, 1) if (dx, dy) != (0, 0))


@dataclass(frozen=True, slots=True)
class Tree:
    id: int
    x: int
    y: int


class TreeLayer:
    """Lookup of tree features by position; trunks win over overlapping canopy."""

    def __init__(self, trees: Iterable[Tree] = ()) -> None:
        self._trees = list(trees)
        self._features: dict[Position, Feature] = {}
        for tree in self._trees:
            self._features[Position(tree.x, tree.y)] = Feature(FeatureType.TREE_TRUNK, tree.id, tree.x, tree.y)
        for tree in self._trees:
            for dx, dy in CANOPY_OFFSETS:
                self._features.setdefault(
                    Position(tree.x + dx, tree.y + dy),
                    Feature(FeatureType.TREE_CANOPY, tree.id, tree.x, tree.y),
                )

    @classmethod
    def generate(
        cls,
        bounds: WorldBounds,
        settings: TreeSettings,
        seed: int,
        cell_at: Callable[[int, int], WorldCell],
    ) -> TreeLayer:
        """Place forest patches, then scattered trees, with a seeded RNG."""
        inner = bounds.shrink(settings.boundary_margin)
        if inner.min_x > inner.max_x or inner.min_y > inner.max_y:
            return cls()

        rng = random.Random(seed + TREE_SEED_OFFSET)
        trees: list[Tree] = []

        def try_place(x: int, y: int) -> None:
            if not inner.contains(x, y):
                return
            if any(distance(x, y, tree.x, tree.y) < settings.min_tree_spacing for tree in trees):
                return
            if cell_at(x, y).terrain not in HOST_TERRAIN:
                return
            if not all(cell_at(x + dx, y + dy).walkable for dx, dy in CANOPY_OFFSETS):
                return
            trees.append(Tree(id=len(trees), x=x, y=y))

        for _ in range(settings.forest_patch_count):
            center_x = rng.randint(inner.min_x, inner.max_x)
            center_y = rng.randint(inner.min_y, inner.max_y)
            for _ in range(settings.trees_per_patch):
                angle = rng.random() * 2 * math.pi
                reach = rng.random() * settings.patch_radius
                try_place(
                    round_half_up(center_x + math.cos(angle) * reach),
                    round_half_up(center_y + math.sin(angle) * reach),
                )

        for _ in range(settings.scattered_tree_count):
            try_place(rng.randint(inner.min_x, inner.max_x), rng.randint(inner.min_y, inner.max_y))

        return cls(trees)

    @property
    def trees(self) -> list[Tree]:
        return list(self._trees)

    def __len__(self) -> int:
        return len(self._trees)

    def feature_at(self, x: int, y: int) -> Feature | None:
        return self._features.get(Position(x, y))

    def as_list(self) -> list[dict[str, int]]:
        return [{"id": tree.id, "x": tree.x, "y": tree.y} for tree in self._trees]
