"""Layered terrain generation: geology -> elevation -> hydrology."""

from tileworld.terrain.base import (
    ModuleData,
    ModuleRegistry,
    TerrainModule,
    WorldContext,
    downstream_of,
    resolve_generation_order,
)
from tileworld.terrain.elevation import ElevationField, ElevationModule
from tileworld.terrain.geology import Formation, GeologyField, GeologyModule
from tileworld.terrain.hydrology import HydrologyField, HydrologyModule, Lake, River, Spring

default_registry = ModuleRegistry()
default_registry.register_module_type(GeologyModule.name, GeologyModule)
default_registry.register_module_type(ElevationModule.name, ElevationModule)
default_registry.register_module_type(HydrologyModule.name, HydrologyModule)


def register_module_type(name: str, constructor) -> None:
    """Register a module type on the default registry."""
    default_registry.register_module_type(name, constructor)


__all__ = [
    "ElevationField",
    "ElevationModule",
    "Formation",
    "GeologyField",
    "GeologyModule",
    "HydrologyField",
    "HydrologyModule",
    "Lake",
    "ModuleData",
    "ModuleRegistry",
    "River",
    "Spring",
    "TerrainModule",
    "WorldContext",
    "default_registry",
    "downstream_of",
    "register_module_type",
    "resolve_generation_order",
]
