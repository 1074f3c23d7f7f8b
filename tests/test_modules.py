from __future__ import annotations

import pytest

from tileworld.errors import ConfigurationInvalid
from tileworld.terrain import default_registry
from tileworld.terrain.base import ModuleData, ModuleRegistry, downstream_of, resolve_generation_order


class StubModule:
    def __init__(self, name: str, priority: int = 100, dependencies: tuple[str, ...] = ()) -> None:
        self.name = name
        self.priority = priority
        self.dependencies = dependencies

    def generate(self, context):
        return {"name": self.name}

    def get_data_at(self, x, y, context) -> ModuleData:
        return ModuleData()

    def affects_position(self, x, y, context) -> bool:
        return False


def _names(modules) -> list[str]:
    return [module.name for module in modules]


def test_default_registry_has_the_three_layers() -> None:
    assert default_registry.available() == ["elevation", "geology", "hydrology"]
    assert "geology" in default_registry


def test_default_modules_resolve_into_pipeline_order() -> None:
    modules = [default_registry.create(name) for name in ("hydrology", "elevation", "geology")]

    assert _names(resolve_generation_order(modules)) == ["geology", "elevation", "hydrology"]


def test_independent_modules_run_by_descending_priority() -> None:
    modules = [StubModule("low", 10), StubModule("high", 200), StubModule("mid", 50, ("high",))]

    assert _names(resolve_generation_order(modules)) == ["high", "mid", "low"]


def test_dependency_cycle_is_rejected() -> None:
    modules = [StubModule("a", dependencies=("b",)), StubModule("b", dependencies=("a",))]

    with pytest.raises(ConfigurationInvalid, match="cycle"):
        resolve_generation_order(modules)


def test_unknown_dependency_and_duplicates_are_rejected() -> None:
    with pytest.raises(ConfigurationInvalid, match="unknown"):
        resolve_generation_order([StubModule("a", dependencies=("ghost",))])
    with pytest.raises(ConfigurationInvalid, match="Duplicate"):
        resolve_generation_order([StubModule("a"), StubModule("a")])


def test_registry_rejects_unknown_and_misnamed_modules() -> None:
    registry = ModuleRegistry()
    registry.register_module_type("vegetation", lambda: StubModule("flora"))

    with pytest.raises(ConfigurationInvalid):
        registry.create("roads")
    with pytest.raises(ConfigurationInvalid):
        registry.create("vegetation")


def test_downstream_of_includes_transitive_dependents() -> None:
    order = resolve_generation_order(
        [
            StubModule("geology", 120),
            StubModule("elevation", 110, ("geology",)),
            StubModule("hydrology", 90, ("elevation",)),
            StubModule("roads", 50),
        ]
    )

    assert _names(downstream_of("geology", order)) == ["geology", "elevation", "hydrology"]
    assert _names(downstream_of("elevation", order)) == ["elevation", "hydrology"]
    assert _names(downstream_of("roads", order)) == ["roads"]
