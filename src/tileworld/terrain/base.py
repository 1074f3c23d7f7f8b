"""Terrain module contract, generation context, registry and scheduling."""

from __future__ import annotations

import heapq
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Iterable, Protocol

from tileworld.config import TerrainConfig
from tileworld.errors import ConfigurationInvalid
from tileworld.models import TerrainKind, WorldBounds


@dataclass(slots=True)
class ModuleData:
    """What a single module contributes at one position."""

    terrain: TerrainKind | None = None
    features: list[str] = field(default_factory=list)
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class WorldContext:
    """Explicit generation context threaded through every module.

    ``fields`` maps module names to the immutable field objects their last
    successful ``generate`` call produced.
    """

    bounds: WorldBounds
    seed: int
    config: TerrainConfig
    fields: dict[str, Any] = field(default_factory=dict)

    def in_bounds(self, x: float, y: float) -> bool:
        return self.bounds.contains(x, y)

    def get_field(self, name: str) -> Any:
        try:
            return self.fields[name]
        except KeyError as exc:
            raise ConfigurationInvalid(f"Terrain field '{name}' has not been generated") from exc

    def has_field(self, name: str) -> bool:
        return name in self.fields

    def with_fields(self, fields: dict[str, Any]) -> WorldContext:
        return replace(self, fields=fields)


class TerrainModule(Protocol):
    """One layer of the terrain pipeline."""

    name: str
    priority: int
    dependencies: tuple[str, ...]

    def generate(self, context: WorldContext) -> Any:
        """Build and return this module's field; must not mutate the context."""

    def get_data_at(self, x: int, y: int, context: WorldContext) -> ModuleData:
        """Return this module's contribution at ``(x, y)``."""

    def affects_position(self, x: int, y: int, context: WorldContext) -> bool:
        """Cheap check whether ``get_data_at`` has anything to say at ``(x, y)``."""


ModuleConstructor = Callable[[], TerrainModule]


class ModuleRegistry:
    """Constructors for terrain module types, keyed by name."""

    def __init__(self) -> None:
        self._constructors: dict[str, ModuleConstructor] = {}

    def register_module_type(self, name: str, constructor: ModuleConstructor) -> None:
        self._constructors[name] = constructor

    def create(self, name: str) -> TerrainModule:
        if name not in self._constructors:
            raise ConfigurationInvalid(f"Unknown terrain module type: {name}")
        module = self._constructors[name]()
        if module.name != name:
            raise ConfigurationInvalid(f"Module registered as '{name}' reports name '{module.name}'")
        return module

    def available(self) -> list[str]:
        return sorted(self._constructors)

    def __contains__(self, name: object) -> bool:
        return name in self._constructors


def resolve_generation_order(modules: Iterable[TerrainModule]) -> list[TerrainModule]:
    """Topologically sort modules; independent modules run by descending priority."""
    by_name: dict[str, TerrainModule] = {}
    for module in modules:
        if module.name in by_name:
            raise ConfigurationInvalid(f"Duplicate terrain module: {module.name}")
        by_name[module.name] = module

    remaining: dict[str, int] = {}
    dependents: dict[str, list[str]] = {name: [] for name in by_name}
    for name, module in by_name.items():
        requirements = set(module.dependencies)
        unknown = sorted(requirements - by_name.keys())
        if unknown:
            raise ConfigurationInvalid(f"Module '{name}' depends on unknown modules: {', '.join(unknown)}")
        remaining[name] = len(requirements)
        for requirement in requirements:
            dependents[requirement].append(name)

    ready = [(-module.priority, name) for name, module in by_name.items() if remaining[name] == 0]
    heapq.heapify(ready)
    order: list[TerrainModule] = []
    while ready:
        _, name = heapq.heappop(ready)
        order.append(by_name[name])
        for dependent in dependents[name]:
            remaining[dependent] -= 1
            if remaining[dependent] == 0:
                heapq.heappush(ready, (-by_name[dependent].priority, dependent))

    if len(order) != len(by_name):
        cycle = sorted(name for name, count in remaining.items() if count > 0)
        raise ConfigurationInvalid(f"Dependency cycle among terrain modules: {', '.join(cycle)}")
    return order


def downstream_of(name: str, order: list[TerrainModule]) -> list[TerrainModule]:
    """``name`` and every module that transitively depends on it, in generation order."""
    affected = {name}
    result: list[TerrainModule] = []
    for module in order:
        if module.name == name or affected.intersection(module.dependencies):
            affected.add(module.name)
            result.append(module)
    return result
