"""Deterministic layered tile world with wildlife and companion agents."""

from tileworld.config import TerrainConfig, load_config
from tileworld.engine import TileWorldEngine
from tileworld.world import WorldSystem

__all__ = ["TerrainConfig", "TileWorldEngine", "WorldSystem", "load_config"]
